# backend/modules/pos_sync/services/config_service.py

"""
Configuration registry for POS integrations.

Pure persistence: nothing here talks to the POS. Input is validated here as
well as in the request schemas because the service is also called from code.
"""

import logging
from datetime import datetime
from typing import List, Optional, Dict, Any, Union

from pydantic import BaseModel
from sqlalchemy.orm import Session

from core.config import settings
from ..models.pos_config_models import POSConfiguration
from ..schemas.pos_sync_schemas import validate_api_url
from ..exceptions.pos_sync_exceptions import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

# Token fields are owned by the token manager and never written through here
EDITABLE_FIELDS = {
    "config_name",
    "store_id",
    "api_url",
    "api_login",
    "organization_id",
    "organization_name",
    "terminal_group_id",
    "terminal_group_name",
    "auto_sync_menu",
    "sync_interval_minutes",
    "is_active",
}


def _as_dict(data: Union[BaseModel, Dict[str, Any]], partial: bool) -> Dict[str, Any]:
    if isinstance(data, BaseModel):
        return data.model_dump(exclude_unset=partial)
    return dict(data)


class POSConfigService:
    def __init__(self, db: Session):
        self.db = db

    def list_configs(
        self, active_only: bool = False, store_id: Optional[int] = None
    ) -> List[POSConfiguration]:
        query = self.db.query(POSConfiguration)
        if active_only:
            query = query.filter(POSConfiguration.is_active.is_(True))
        if store_id is not None:
            query = query.filter(POSConfiguration.store_id == store_id)
        return query.order_by(POSConfiguration.id).all()

    def get_config(self, config_id: int) -> Optional[POSConfiguration]:
        return self.db.get(POSConfiguration, config_id)

    def require_config(self, config_id: int) -> POSConfiguration:
        config = self.get_config(config_id)
        if config is None:
            raise ConfigurationError(f"POS configuration {config_id} not found")
        return config

    def get_active_by_store(self, store_id: Optional[int]) -> Optional[POSConfiguration]:
        """
        Effective configuration for a store.

        Several active rows may exist for one store; the most recently updated
        one wins, ties broken by the highest id.
        """
        query = self.db.query(POSConfiguration).filter(
            POSConfiguration.is_active.is_(True)
        )
        if store_id is None:
            query = query.filter(POSConfiguration.store_id.is_(None))
        else:
            query = query.filter(POSConfiguration.store_id == store_id)

        return query.order_by(
            POSConfiguration.updated_at.desc(), POSConfiguration.id.desc()
        ).first()

    def create_config(self, data: Union[BaseModel, Dict[str, Any]]) -> POSConfiguration:
        values = {k: v for k, v in _as_dict(data, partial=False).items() if k in EDITABLE_FIELDS}
        values.setdefault("api_url", settings.POS_DEFAULT_API_URL)
        self._validate(values, partial=False)

        config = POSConfiguration(**values)
        self.db.add(config)
        self.db.commit()
        self.db.refresh(config)

        logger.info(
            f"Created POS configuration {config.id} for store {config.store_id}",
            extra={"config_id": config.id, "store_id": config.store_id},
        )
        return config

    def update_config(
        self, config_id: int, data: Union[BaseModel, Dict[str, Any]]
    ) -> Optional[POSConfiguration]:
        config = self.get_config(config_id)
        if config is None:
            return None

        values = {k: v for k, v in _as_dict(data, partial=True).items() if k in EDITABLE_FIELDS}
        self._validate(values, partial=True)

        credentials_changed = (
            "api_url" in values and values["api_url"] != config.api_url
        ) or ("api_login" in values and values["api_login"] != config.api_login)

        for field, value in values.items():
            setattr(config, field, value)

        if credentials_changed:
            # A cached token belongs to the old credentials
            config.access_token = None
            config.token_expires_at = None

        config.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(config)

        logger.info(
            f"Updated POS configuration {config.id}: {sorted(values)}",
            extra={"config_id": config.id},
        )
        return config

    def delete_config(self, config_id: int) -> bool:
        """Delete a configuration; queue and sync records are left in place"""
        config = self.get_config(config_id)
        if config is None:
            return False

        self.db.delete(config)
        self.db.commit()
        logger.info(f"Deleted POS configuration {config_id}", extra={"config_id": config_id})
        return True

    @staticmethod
    def _validate(values: Dict[str, Any], partial: bool):
        required = ("config_name", "api_login", "organization_id")
        for field in required:
            if field not in values:
                if partial:
                    continue
                raise ValidationError(f"{field} is required")
            value = values[field]
            if value is None or not str(value).strip():
                raise ValidationError(f"{field} must not be empty")
            values[field] = str(value).strip()

        if "api_url" in values:
            try:
                values["api_url"] = validate_api_url(values["api_url"])
            except (ValueError, TypeError, AttributeError):
                raise ValidationError("api_url must be a valid http(s) URL")

        if "sync_interval_minutes" in values:
            interval = values["sync_interval_minutes"]
            if interval is None or int(interval) < 1:
                raise ValidationError("sync_interval_minutes must be at least 1")

        for flag in ("auto_sync_menu", "is_active"):
            if flag in values and values[flag] is None:
                raise ValidationError(f"{flag} must not be null")
