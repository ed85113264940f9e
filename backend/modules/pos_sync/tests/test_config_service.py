"""
Tests for the POS configuration registry and category mappings.
"""

from datetime import datetime, timedelta

import pytest

from core.config import settings
from modules.pos_sync.exceptions.pos_sync_exceptions import (
    ValidationError,
    MappingConflictError,
)
from modules.pos_sync.models.pos_config_models import POSConfiguration
from modules.pos_sync.schemas.pos_sync_schemas import POSConfigUpdate
from modules.pos_sync.services.category_mapping_service import CategoryMappingService
from modules.pos_sync.services.config_service import POSConfigService


def config_data(**overrides):
    data = {
        "config_name": "Store A",
        "store_id": 7,
        "api_url": "https://pos.example.com/",
        "api_login": "login-a",
        "organization_id": "org-a",
    }
    data.update(overrides)
    return data


class TestConfigRegistry:
    def test_create_normalizes_and_defaults(self, db_session):
        config = POSConfigService(db_session).create_config(config_data())

        assert config.id is not None
        assert config.api_url == "https://pos.example.com"
        assert config.is_active is True
        assert config.auto_sync_menu is True
        assert config.sync_interval_minutes == 30
        assert config.access_token is None

    def test_create_without_url_uses_configured_default(self, db_session, monkeypatch):
        monkeypatch.setattr(settings, "POS_DEFAULT_API_URL", "https://pos-default.example.com")
        data = config_data()
        del data["api_url"]

        config = POSConfigService(db_session).create_config(data)

        assert config.api_url == "https://pos-default.example.com"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"api_url": "ftp://pos.example.com"},
            {"api_url": "not a url"},
            {"api_login": "   "},
            {"organization_id": ""},
            {"sync_interval_minutes": 0},
        ],
    )
    def test_create_rejects_invalid_input(self, db_session, overrides):
        with pytest.raises(ValidationError):
            POSConfigService(db_session).create_config(config_data(**overrides))
        assert db_session.query(POSConfiguration).count() == 0

    def test_partial_update_leaves_other_fields(self, db_session):
        service = POSConfigService(db_session)
        config = service.create_config(config_data())

        updated = service.update_config(config.id, POSConfigUpdate(terminal_group_id="tg-9"))

        assert updated.terminal_group_id == "tg-9"
        assert updated.api_login == "login-a"
        assert updated.organization_id == "org-a"

    def test_credential_change_drops_cached_token(self, db_session):
        service = POSConfigService(db_session)
        config = service.create_config(config_data())
        config.access_token = "cached"
        config.token_expires_at = datetime.utcnow() + timedelta(hours=1)
        db_session.commit()

        updated = service.update_config(config.id, {"api_login": "login-b"})

        assert updated.access_token is None
        assert updated.token_expires_at is None

    def test_update_rejects_empty_login(self, db_session):
        service = POSConfigService(db_session)
        config = service.create_config(config_data())

        with pytest.raises(ValidationError):
            service.update_config(config.id, {"api_login": ""})

    def test_update_and_delete_missing_config(self, db_session):
        service = POSConfigService(db_session)
        assert service.update_config(999, {"config_name": "x"}) is None
        assert service.delete_config(999) is False

    def test_delete(self, db_session):
        service = POSConfigService(db_session)
        config = service.create_config(config_data())

        assert service.delete_config(config.id) is True
        assert service.get_config(config.id) is None

    def test_active_by_store_prefers_most_recently_updated(self, db_session):
        service = POSConfigService(db_session)
        older = service.create_config(config_data(config_name="old"))
        newer = service.create_config(config_data(config_name="new"))
        service.create_config(config_data(config_name="inactive", is_active=False))
        service.create_config(config_data(config_name="other store", store_id=8))

        older.updated_at = datetime.utcnow() - timedelta(days=1)
        newer.updated_at = datetime.utcnow()
        db_session.commit()

        assert service.get_active_by_store(7).id == newer.id

        older.updated_at = datetime.utcnow() + timedelta(minutes=1)
        db_session.commit()
        assert service.get_active_by_store(7).id == older.id

    def test_active_by_store_none_when_all_inactive(self, db_session):
        service = POSConfigService(db_session)
        service.create_config(config_data(is_active=False))
        assert service.get_active_by_store(7) is None

    def test_list_active_only(self, db_session):
        service = POSConfigService(db_session)
        service.create_config(config_data())
        service.create_config(config_data(is_active=False))

        assert len(service.list_configs()) == 2
        assert len(service.list_configs(active_only=True)) == 1


class TestCategoryMappings:
    def test_duplicate_mapping_rejected(self, db_session):
        service = CategoryMappingService(db_session)
        service.create_mapping({"external_group_id": "g1", "local_category_id": 3, "store_id": 1})

        with pytest.raises(MappingConflictError):
            service.create_mapping({"external_group_id": "g1", "local_category_id": 4, "store_id": 1})

    def test_same_group_allowed_for_other_store(self, db_session):
        service = CategoryMappingService(db_session)
        service.create_mapping({"external_group_id": "g1", "local_category_id": 3, "store_id": 1})
        service.create_mapping({"external_group_id": "g1", "local_category_id": 4, "store_id": 2})

        assert len(service.list_mappings()) == 2

    def test_resolve_prefers_store_mapping_over_global(self, db_session):
        service = CategoryMappingService(db_session)
        service.create_mapping({"external_group_id": "g1", "local_category_id": 10})
        service.create_mapping({"external_group_id": "g1", "local_category_id": 20, "store_id": 5})

        assert service.resolve("g1", 5) == 20
        assert service.resolve("g1", 6) == 10
        assert service.resolve("g1", None) == 10
        assert service.resolve("unknown", 5) is None
        assert service.resolve(None, 5) is None

    def test_update_and_delete(self, db_session):
        service = CategoryMappingService(db_session)
        mapping = service.create_mapping({"external_group_id": "g1", "local_category_id": 3})

        updated = service.update_mapping(mapping.id, {"local_category_id": 9})
        assert updated.local_category_id == 9

        assert service.delete_mapping(mapping.id) is True
        assert service.get_mapping(mapping.id) is None
