"""
Tests for inbound menu synchronization.
"""

import json
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from core.menu_models import MenuItem
from modules.pos_sync.enums.pos_sync_enums import MenuSyncStatus, MENU_SYNC_RUN_MARKER
from modules.pos_sync.models.pos_config_models import POSConfiguration
from modules.pos_sync.models.sync_models import MenuSyncRecord
from modules.pos_sync.services.menu_sync_service import MenuSyncService


def product(product_id, name, group="grp-drinks", price=100, **extra):
    data = {
        "id": product_id,
        "name": name,
        "description": f"{name} description",
        "parentGroup": group,
        "price": price,
        "isDeleted": False,
        "isIncludedInMenu": True,
    }
    data.update(extra)
    return data


@pytest.fixture
def menu_service(db_session, token_manager, fake_pos):
    return MenuSyncService(
        db_session, token_manager=token_manager, adapter_factory=fake_pos.adapter_factory
    )


@pytest.fixture
def catalog(fake_pos):
    fake_pos.nomenclature = {
        "revision": 7,
        "groups": [
            {"id": "grp-drinks", "name": "Drinks"},
            {"id": "grp-secret", "name": "Unmapped"},
        ],
        "products": [
            product("p-latte", "Latte", price=250, code="LAT-1"),
            product("p-tea", "Tea", sizePrices=[{"price": {"currentPrice": 120}}], price=None),
            product("p-mystery", "Mystery", group="grp-secret"),
            product("p-gone", "Gone", isDeleted=True),
            product("p-hidden", "Hidden", isIncludedInMenu=False),
        ],
    }
    return fake_pos.nomenclature


def local_items(db_session):
    return {item.external_product_id: item for item in db_session.query(MenuItem).all()}


class TestSyncMenuForConfig:
    @pytest.mark.asyncio
    async def test_reconciles_catalog(
        self, db_session, pos_config, category_mapping, menu_category, menu_service, catalog
    ):
        existing = MenuItem(
            category_id=menu_category.id,
            store_id=1,
            name="Old latte name",
            price=Decimal("200.00"),
            stock=5,
            external_product_id="p-latte",
        )
        db_session.add(existing)
        db_session.commit()

        result = await menu_service.sync_menu_for_config(pos_config)

        assert result.success is True
        assert result.revision == 7
        assert result.updated == 1
        assert result.created == 1
        assert result.unmapped == 1
        assert result.errors == 0

        items = local_items(db_session)
        assert set(items) == {"p-latte", "p-tea"}

        latte = items["p-latte"]
        assert latte.id == existing.id
        assert latte.name == "Latte"
        assert latte.name_ru == "Latte"
        assert latte.price == Decimal("250.00")
        assert latte.stock == 5

        tea = items["p-tea"]
        assert tea.category_id == menu_category.id
        assert tea.price == Decimal("120.00")
        assert tea.stock == 999
        assert tea.is_active is True
        assert tea.sku == "POS-p-tea"
        assert tea.store_id == 1

    @pytest.mark.asyncio
    async def test_unmapped_product_is_quarantined(
        self, db_session, pos_config, category_mapping, menu_service, catalog
    ):
        await menu_service.sync_menu_for_config(pos_config)

        record = (
            db_session.query(MenuSyncRecord)
            .filter_by(config_id=pos_config.id, external_product_id="p-mystery")
            .one()
        )
        assert record.sync_status == MenuSyncStatus.UNMAPPED
        assert record.local_product_id is None
        assert record.external_category_name == "Unmapped"
        assert "p-mystery" not in local_items(db_session)

    @pytest.mark.asyncio
    async def test_second_run_is_idempotent(
        self, db_session, pos_config, category_mapping, menu_service, catalog
    ):
        first = await menu_service.sync_menu_for_config(pos_config)
        second = await menu_service.sync_menu_for_config(pos_config)

        assert first.created == 2
        assert second.created == 0
        assert second.updated == 2
        assert db_session.query(MenuItem).count() == 2
        # One record per product plus the run marker
        assert db_session.query(MenuSyncRecord).filter_by(config_id=pos_config.id).count() == 4

    @pytest.mark.asyncio
    async def test_run_marker_and_config_bookkeeping(
        self, db_session, pos_config, category_mapping, menu_service, catalog
    ):
        await menu_service.sync_menu_for_config(pos_config)

        marker = (
            db_session.query(MenuSyncRecord)
            .filter_by(config_id=pos_config.id, external_product_id=MENU_SYNC_RUN_MARKER)
            .one()
        )
        assert marker.sync_status == MenuSyncStatus.SUCCESS
        stats = json.loads(marker.product_data)
        assert stats["revision"] == 7
        assert stats["created"] == 2
        assert stats["unmapped"] == 1

        db_session.refresh(pos_config)
        assert pos_config.menu_revision == 7
        assert pos_config.last_menu_sync_at is not None

    @pytest.mark.asyncio
    async def test_stop_list_marks_items_unavailable(
        self, db_session, pos_config, category_mapping, menu_service, fake_pos, catalog
    ):
        fake_pos.stop_list_ids = ["p-tea"]

        result = await menu_service.sync_menu_for_config(pos_config)

        assert result.stop_listed == 1
        items = local_items(db_session)
        assert items["p-tea"].is_available is False
        assert items["p-latte"].is_available is True
        record = db_session.query(MenuSyncRecord).filter_by(external_product_id="p-tea").one()
        assert record.is_in_stop_list is True

    @pytest.mark.asyncio
    async def test_stop_list_failure_is_not_fatal(
        self, db_session, pos_config, category_mapping, menu_service, fake_pos, catalog
    ):
        fake_pos.stop_list_status = 500

        result = await menu_service.sync_menu_for_config(pos_config)

        assert result.success is True
        assert result.created == 2

    @pytest.mark.asyncio
    async def test_hard_failure_writes_error_marker(
        self, db_session, pos_config, menu_service, fake_pos, catalog
    ):
        fake_pos.auth_status = 401

        result = await menu_service.sync_menu_for_config(pos_config)

        assert result.success is False
        assert result.error_message
        assert db_session.query(MenuItem).count() == 0
        marker = (
            db_session.query(MenuSyncRecord)
            .filter_by(external_product_id=MENU_SYNC_RUN_MARKER)
            .one()
        )
        assert marker.sync_status == MenuSyncStatus.ERROR
        db_session.refresh(pos_config)
        assert pos_config.last_menu_sync_at is None

    @pytest.mark.asyncio
    async def test_product_error_does_not_abort_run(
        self, db_session, pos_config, category_mapping, menu_service, catalog, monkeypatch
    ):
        original = menu_service._reconcile_product

        def flaky(config, product, *args, **kwargs):
            if product.id == "p-latte":
                raise ValueError("bad product")
            return original(config, product, *args, **kwargs)

        monkeypatch.setattr(menu_service, "_reconcile_product", flaky)

        result = await menu_service.sync_menu_for_config(pos_config)

        assert result.success is True
        assert result.errors == 1
        assert result.created == 1
        record = db_session.query(MenuSyncRecord).filter_by(external_product_id="p-latte").one()
        assert record.sync_status == MenuSyncStatus.ERROR

    @pytest.mark.asyncio
    async def test_malformed_products_are_isolated(
        self, db_session, pos_config, category_mapping, menu_service, fake_pos
    ):
        fake_pos.nomenclature = {
            "revision": 9,
            "groups": [{"id": "grp-drinks", "name": "Drinks"}],
            "products": [
                product("p-latte", "Latte", price=250),
                {"id": "p-nameless", "name": None, "parentGroup": "grp-drinks"},
                {"id": "p-gone", "isDeleted": True},
                product("p-juice", "Juice", price=None, sizePrices=[None]),
                "not-a-product",
            ],
        }

        result = await menu_service.sync_menu_for_config(pos_config)

        assert result.success is True
        assert result.created == 1
        assert result.errors == 3
        assert set(local_items(db_session)) == {"p-latte"}

        broken = {
            record.external_product_id: record
            for record in db_session.query(MenuSyncRecord).filter_by(
                config_id=pos_config.id, sync_status=MenuSyncStatus.ERROR
            )
        }
        assert set(broken) == {"p-nameless", "p-juice"}
        assert broken["p-nameless"].external_category_name == "Drinks"
        assert broken["p-juice"].external_product_name == "Juice"
        assert (
            db_session.query(MenuSyncRecord)
            .filter_by(config_id=pos_config.id, external_product_id="p-gone")
            .count()
            == 0
        )

    @pytest.mark.asyncio
    async def test_unexpected_product_error_keeps_other_products(
        self, db_session, pos_config, category_mapping, menu_service, catalog, monkeypatch
    ):
        original = menu_service._reconcile_product

        def broken(config, product, *args, **kwargs):
            if product.id == "p-tea":
                raise KeyError("sizeId")
            return original(config, product, *args, **kwargs)

        monkeypatch.setattr(menu_service, "_reconcile_product", broken)

        result = await menu_service.sync_menu_for_config(pos_config)

        assert result.success is True
        assert result.errors == 1
        assert set(local_items(db_session)) == {"p-latte"}
        record = db_session.query(MenuSyncRecord).filter_by(external_product_id="p-tea").one()
        assert record.sync_status == MenuSyncStatus.ERROR


class TestSyncAllMenus:
    def add_config(self, db_session, name, organization_id, **extra):
        config = POSConfiguration(
            config_name=name,
            store_id=1,
            api_url="https://pos.example.com",
            api_login=f"login-{name}",
            organization_id=organization_id,
            **extra,
        )
        db_session.add(config)
        db_session.commit()
        return config

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_others(
        self, db_session, category_mapping, menu_service, fake_pos, catalog
    ):
        self.add_config(db_session, "first", "org-1")
        self.add_config(db_session, "broken", "org-down")
        self.add_config(db_session, "third", "org-3")
        fake_pos.failing_organizations = {"org-down"}

        run = await menu_service.sync_all_menus()

        assert run.total == 3
        assert run.succeeded == 2
        assert run.failed == 1
        by_name = {result.store_name: result for result in run.results}
        assert by_name["broken"].success is False
        assert "503" in by_name["broken"].error_message
        assert by_name["first"].success and by_name["third"].success

    @pytest.mark.asyncio
    async def test_inactive_configs_are_ignored(
        self, db_session, menu_service, catalog
    ):
        self.add_config(db_session, "active", "org-1")
        self.add_config(db_session, "inactive", "org-2", is_active=False)

        run = await menu_service.sync_all_menus()

        assert run.total == 1
        assert run.results[0].store_name == "active"

    @pytest.mark.asyncio
    async def test_scheduled_run_skips_disabled_and_recent(
        self, db_session, menu_service, catalog
    ):
        self.add_config(db_session, "due", "org-1")
        self.add_config(db_session, "manual-only", "org-2", auto_sync_menu=False)
        self.add_config(
            db_session,
            "recent",
            "org-3",
            sync_interval_minutes=60,
            last_menu_sync_at=datetime.utcnow() - timedelta(minutes=5),
        )

        scheduled = await menu_service.sync_all_menus(scheduled=True)
        assert [result.store_name for result in scheduled.results] == ["due"]

        manual = await menu_service.sync_all_menus()
        assert manual.total == 3
