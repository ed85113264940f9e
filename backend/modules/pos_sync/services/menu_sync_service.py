# backend/modules/pos_sync/services/menu_sync_service.py

"""
Inbound menu synchronization.

Pulls the POS nomenclature for each configuration and reconciles it into the
local product store. Reconciliation is idempotent: products are matched by
their external id within the configuration's store, so an unchanged catalog
only ever produces updates. Products whose POS group has no category mapping
are quarantined instead of being attached to a placeholder category.
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Set, Tuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import settings
from core.menu_models import MenuItem
from ..adapters.iiko_adapter import IikoAdapter
from ..enums.pos_sync_enums import MenuSyncStatus, MENU_SYNC_RUN_MARKER
from ..exceptions.pos_sync_exceptions import POSSyncError, NetworkError
from ..models.pos_config_models import POSConfiguration
from ..models.sync_models import MenuSyncRecord
from ..schemas.payload_schemas import NomenclatureProduct
from ..schemas.pos_sync_schemas import MenuSyncResult, MenuSyncRunResult
from .category_mapping_service import CategoryMappingService
from .config_service import POSConfigService
from .token_manager import TokenManager, token_manager as default_token_manager

logger = logging.getLogger(__name__)

CREATED = "created"
UPDATED = "updated"
UNMAPPED = "unmapped"


def _entry_label(entry: Any) -> str:
    if isinstance(entry, dict):
        return str(entry.get("id") or entry.get("name") or "<no id>")
    return repr(entry)[:80]


class MenuSyncService:
    def __init__(
        self,
        db: Session,
        token_manager: Optional[TokenManager] = None,
        adapter_factory: Callable[[str], IikoAdapter] = IikoAdapter,
    ):
        self.db = db
        self.token_manager = token_manager or default_token_manager
        self.adapter_factory = adapter_factory
        self.config_service = POSConfigService(db)
        self.mapping_service = CategoryMappingService(db)

    async def sync_menu_for_config(self, config: POSConfiguration) -> MenuSyncResult:
        """Pull the catalog for one configuration and reconcile it locally"""
        config_id = config.id
        result = MenuSyncResult(
            config_id=config_id, store_name=config.config_name, success=False
        )
        logger.info(f"Starting menu sync for configuration {config_id} ({config.config_name})")

        adapter = self.adapter_factory(config.api_url)
        try:
            token = await self.token_manager.get_token(self.db, config_id)
            nomenclature = await adapter.get_nomenclature(token, config.organization_id)
        except POSSyncError as e:
            if isinstance(e, NetworkError) and e.status_code == 401:
                self.token_manager.invalidate(self.db, config_id)
            logger.error(f"Menu sync for configuration {config_id} failed: {e.message}")
            result.error_message = e.message
            self._write_run_marker(config, result, datetime.utcnow(), MenuSyncStatus.ERROR)
            return result

        result.revision = nomenclature.revision
        stop_list: Set[str] = set()
        if settings.POS_MENU_SYNC_STOP_LISTS:
            try:
                stop_list = await adapter.get_stop_list(token, config.organization_id)
            except POSSyncError as e:
                logger.warning(
                    f"Stop list unavailable for configuration {config_id}, "
                    f"keeping current availability: {e.message}"
                )

        group_names = nomenclature.group_names()
        now = datetime.utcnow()

        for entry in nomenclature.product_entries():
            try:
                product = NomenclatureProduct.model_validate(entry)
            except PydanticValidationError as e:
                result.errors += 1
                logger.warning(f"Skipping malformed POS product {_entry_label(entry)}: {e}")
                self._record_product_error(
                    config, entry, group_names, f"Malformed product: {e}", now
                )
                continue

            if not product.is_sellable:
                continue

            in_stop_list = product.id in stop_list
            try:
                with self.db.begin_nested():
                    outcome = self._reconcile_product(
                        config, product, group_names, in_stop_list, now
                    )
            except Exception as e:
                result.errors += 1
                logger.error(
                    f"Failed to reconcile POS product {product.id} ({product.name}): {e}",
                    exc_info=True,
                )
                self._record_product_error(
                    config, product.model_dump(by_alias=True), group_names, str(e), now
                )
                continue

            if outcome == CREATED:
                result.created += 1
            elif outcome == UPDATED:
                result.updated += 1
            else:
                result.unmapped += 1
            if in_stop_list and outcome != UNMAPPED:
                result.stop_listed += 1

        result.success = True
        config.menu_revision = nomenclature.revision
        config.last_menu_sync_at = now
        self._write_run_marker(config, result, now, MenuSyncStatus.SUCCESS)

        logger.info(
            f"Menu sync for configuration {config_id} done: revision {result.revision}, "
            f"{result.created} created, {result.updated} updated, "
            f"{result.unmapped} unmapped, {result.errors} errors"
        )
        return result

    def _find_local_product(
        self, external_product_id: str, store_id: Optional[int]
    ) -> Optional[MenuItem]:
        query = self.db.query(MenuItem).filter(
            MenuItem.external_product_id == external_product_id
        )
        if store_id is None:
            query = query.filter(MenuItem.store_id.is_(None))
        else:
            query = query.filter(MenuItem.store_id == store_id)
        return query.order_by(MenuItem.id).first()

    def _reconcile_product(
        self,
        config: POSConfiguration,
        product: NomenclatureProduct,
        group_names: Dict[str, str],
        in_stop_list: bool,
        now: datetime,
    ) -> str:
        item = self._find_local_product(product.id, config.store_id)
        name_en = product.full_name_english or product.name
        description = product.description or ""

        if item is not None:
            item.name = product.name
            item.name_ru = product.name
            item.name_en = name_en
            item.description = description
            item.description_ru = description
            item.description_en = description
            item.price = product.price
            item.is_available = not in_stop_list
            item.updated_at = now
            outcome = UPDATED
        else:
            category_id = self.mapping_service.resolve(product.parent_group, config.store_id)
            if category_id is None:
                logger.info(
                    f"POS product {product.id} ({product.name}) quarantined: "
                    f"group {product.parent_group} has no category mapping"
                )
                outcome = UNMAPPED
            else:
                item = MenuItem(
                    category_id=category_id,
                    store_id=config.store_id,
                    sku=product.code or f"POS-{product.id}",
                    name=product.name,
                    name_ru=product.name,
                    name_en=name_en,
                    description=description,
                    description_ru=description,
                    description_en=description,
                    price=product.price,
                    stock=settings.POS_MENU_DEFAULT_STOCK,
                    is_active=True,
                    is_available=not in_stop_list,
                    external_product_id=product.id,
                )
                self.db.add(item)
                self.db.flush()
                outcome = CREATED

        record, _ = self._get_or_create_record(config, product.id, now)
        record.store_id = config.store_id
        record.external_product_name = product.name
        record.external_category_id = product.parent_group
        record.external_category_name = group_names.get(product.parent_group or "")
        record.local_product_id = item.id if item is not None else None
        record.product_data = product.model_dump_json(by_alias=True)
        record.price = product.price
        record.is_in_stop_list = in_stop_list
        record.is_available = not in_stop_list and outcome != UNMAPPED
        record.last_sync_at = now
        record.sync_status = MenuSyncStatus.UNMAPPED if outcome == UNMAPPED else MenuSyncStatus.SUCCESS
        self.db.flush()
        return outcome

    def _get_or_create_record(
        self, config: POSConfiguration, external_product_id: str, now: datetime
    ) -> Tuple[MenuSyncRecord, bool]:
        record = (
            self.db.query(MenuSyncRecord)
            .filter(
                MenuSyncRecord.config_id == config.id,
                MenuSyncRecord.external_product_id == external_product_id,
            )
            .first()
        )
        if record is not None:
            return record, False

        record = MenuSyncRecord(
            config_id=config.id,
            store_id=config.store_id,
            external_product_id=external_product_id,
            external_product_name=external_product_id,
            last_sync_at=now,
        )
        self.db.add(record)
        return record, True

    def _record_product_error(
        self,
        config: POSConfiguration,
        entry: Any,
        group_names: Dict[str, str],
        message: str,
        now: datetime,
    ):
        data = entry if isinstance(entry, dict) else {}
        external_id = data.get("id")
        if not isinstance(external_id, str) or not external_id:
            logger.error(f"Cannot record sync error for POS product without an id: {message}")
            return

        name = data.get("name")
        group_id = data.get("parentGroup")
        if not isinstance(group_id, str):
            group_id = None
        try:
            with self.db.begin_nested():
                record, _ = self._get_or_create_record(config, external_id, now)
                record.external_product_name = name if isinstance(name, str) and name else external_id
                record.external_category_id = group_id
                record.external_category_name = group_names.get(group_id or "")
                record.product_data = json.dumps({"error": message})
                record.last_sync_at = now
                record.sync_status = MenuSyncStatus.ERROR
        except SQLAlchemyError as e:
            logger.error(f"Could not record sync error for POS product {external_id}: {e}")

    def _write_run_marker(
        self,
        config: POSConfiguration,
        result: MenuSyncResult,
        now: datetime,
        status: MenuSyncStatus,
    ):
        record, _ = self._get_or_create_record(config, MENU_SYNC_RUN_MARKER, now)
        record.store_id = config.store_id
        record.external_product_name = "Menu sync run"
        record.product_data = json.dumps(
            {
                "revision": result.revision,
                "created": result.created,
                "updated": result.updated,
                "unmapped": result.unmapped,
                "errors": result.errors,
                "stop_listed": result.stop_listed,
                "error_message": result.error_message,
            }
        )
        record.last_sync_at = now
        record.sync_status = status
        self.db.commit()

    def _is_due(self, config: POSConfiguration, now: datetime) -> bool:
        if not config.auto_sync_menu:
            return False
        if config.last_menu_sync_at is None:
            return True
        interval = timedelta(minutes=config.sync_interval_minutes or 1)
        return config.last_menu_sync_at + interval <= now

    async def sync_all_menus(self, scheduled: bool = False) -> MenuSyncRunResult:
        """
        Sync every active configuration, one at a time.

        A failing configuration is recorded and counted without stopping the
        others. Scheduled runs skip configurations with automatic sync turned
        off or whose interval has not elapsed yet.
        """
        run = MenuSyncRunResult()
        now = datetime.utcnow()

        for config in self.config_service.list_configs(active_only=True):
            config_id = config.id
            store_name = config.config_name
            if scheduled and not self._is_due(config, now):
                logger.debug(f"Menu sync for configuration {config_id} not due, skipping")
                continue

            run.total += 1
            try:
                result = await self.sync_menu_for_config(config)
            except Exception as e:
                logger.error(
                    f"Unexpected error syncing menu for configuration {config_id}: {e}",
                    exc_info=True,
                )
                self.db.rollback()
                result = MenuSyncResult(
                    config_id=config_id,
                    store_name=store_name,
                    success=False,
                    error_message=str(e),
                )

            if result.success:
                run.succeeded += 1
            else:
                run.failed += 1
            run.results.append(result)

        logger.info(
            f"Menu sync run finished: {run.succeeded}/{run.total} configurations succeeded"
        )
        return run
