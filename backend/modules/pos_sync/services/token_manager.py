# backend/modules/pos_sync/services/token_manager.py

"""
Bearer token cache for POS configurations.

Tokens are persisted on the configuration row. Refreshes are single-flight
per configuration: concurrent callers wait on one lock and reuse the token
the first caller stored.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from core.config import settings
from ..adapters.iiko_adapter import IikoAdapter
from ..models.pos_config_models import POSConfiguration
from ..exceptions.pos_sync_exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class TokenManager:
    def __init__(
        self,
        adapter_factory: Callable[[str], IikoAdapter] = IikoAdapter,
        safety_margin_seconds: Optional[int] = None,
    ):
        self.adapter_factory = adapter_factory
        self.safety_margin = timedelta(
            seconds=safety_margin_seconds
            if safety_margin_seconds is not None
            else settings.POS_TOKEN_SAFETY_MARGIN_SECONDS
        )
        self._locks: Dict[int, asyncio.Lock] = {}

    def _lock_for(self, config_id: int) -> asyncio.Lock:
        lock = self._locks.get(config_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[config_id] = lock
        return lock

    def _is_fresh(self, config: POSConfiguration, now: datetime) -> bool:
        if not config.access_token or not config.token_expires_at:
            return False
        return config.token_expires_at - self.safety_margin > now

    @staticmethod
    def _load(db: Session, config_id: int) -> POSConfiguration:
        config = db.get(POSConfiguration, config_id)
        if config is None:
            raise ConfigurationError(f"POS configuration {config_id} not found")
        return config

    async def get_token(self, db: Session, config_id: int) -> str:
        """
        Return a usable bearer token for the configuration.

        Raises:
            ConfigurationError: the configuration does not exist
            AuthError: the POS refused or failed the token request
        """
        config = self._load(db, config_id)
        if self._is_fresh(config, datetime.utcnow()):
            return config.access_token

        async with self._lock_for(config_id):
            # Another caller may have refreshed while we waited
            db.refresh(config)
            if self._is_fresh(config, datetime.utcnow()):
                return config.access_token

            logger.info(f"Refreshing POS access token for configuration {config_id}")
            adapter = self.adapter_factory(config.api_url)
            result = await adapter.authenticate(config.api_login)

            config.access_token = result.token
            config.token_expires_at = result.expires_at
            db.commit()

            logger.debug(
                f"POS token for configuration {config_id} valid until {result.expires_at}"
            )
            return result.token

    def invalidate(self, db: Session, config_id: int):
        """Drop the cached token so the next call re-authenticates"""
        config = db.get(POSConfiguration, config_id)
        if config is None:
            return
        config.access_token = None
        config.token_expires_at = None
        db.commit()
        logger.info(f"Invalidated POS access token for configuration {config_id}")


token_manager = TokenManager()
