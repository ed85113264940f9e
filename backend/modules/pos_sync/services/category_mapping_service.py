# backend/modules/pos_sync/services/category_mapping_service.py

import logging
from datetime import datetime
from typing import List, Optional, Dict, Any, Union

from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..models.pos_config_models import CategoryMapping
from ..exceptions.pos_sync_exceptions import MappingConflictError, ValidationError

logger = logging.getLogger(__name__)


class CategoryMappingService:
    """CRUD over POS group to local category mappings, plus resolution for menu sync"""

    def __init__(self, db: Session):
        self.db = db

    def list_mappings(self, store_id: Optional[int] = None) -> List[CategoryMapping]:
        query = self.db.query(CategoryMapping)
        if store_id is not None:
            query = query.filter(CategoryMapping.store_id == store_id)
        return query.order_by(CategoryMapping.id).all()

    def get_mapping(self, mapping_id: int) -> Optional[CategoryMapping]:
        return self.db.get(CategoryMapping, mapping_id)

    def _find(self, external_group_id: str, store_id: Optional[int]) -> Optional[CategoryMapping]:
        query = self.db.query(CategoryMapping).filter(
            CategoryMapping.external_group_id == external_group_id
        )
        if store_id is None:
            query = query.filter(CategoryMapping.store_id.is_(None))
        else:
            query = query.filter(CategoryMapping.store_id == store_id)
        return query.first()

    def create_mapping(self, data: Union[BaseModel, Dict[str, Any]]) -> CategoryMapping:
        values = data.model_dump() if isinstance(data, BaseModel) else dict(data)

        group_id = (values.get("external_group_id") or "").strip()
        if not group_id:
            raise ValidationError("external_group_id must not be empty")
        if not values.get("local_category_id"):
            raise ValidationError("local_category_id is required")

        store_id = values.get("store_id")
        if self._find(group_id, store_id) is not None:
            raise MappingConflictError(
                f"Group {group_id} is already mapped for store {store_id}"
            )

        mapping = CategoryMapping(
            external_group_id=group_id,
            external_group_name=values.get("external_group_name"),
            local_category_id=values["local_category_id"],
            store_id=store_id,
        )
        self.db.add(mapping)
        self.db.commit()
        self.db.refresh(mapping)

        logger.info(
            f"Mapped POS group {group_id} to category {mapping.local_category_id}",
            extra={"store_id": store_id},
        )
        return mapping

    def update_mapping(
        self, mapping_id: int, data: Union[BaseModel, Dict[str, Any]]
    ) -> Optional[CategoryMapping]:
        mapping = self.get_mapping(mapping_id)
        if mapping is None:
            return None

        values = data.model_dump(exclude_unset=True) if isinstance(data, BaseModel) else dict(data)
        if "local_category_id" in values:
            if not values["local_category_id"]:
                raise ValidationError("local_category_id is required")
            mapping.local_category_id = values["local_category_id"]
        if "external_group_name" in values:
            mapping.external_group_name = values["external_group_name"]

        mapping.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(mapping)
        return mapping

    def delete_mapping(self, mapping_id: int) -> bool:
        mapping = self.get_mapping(mapping_id)
        if mapping is None:
            return False
        self.db.delete(mapping)
        self.db.commit()
        return True

    def resolve(self, external_group_id: Optional[str], store_id: Optional[int]) -> Optional[int]:
        """
        Local category id for a POS group, or None when unmapped.

        A store-specific mapping takes precedence over a global one
        (``store_id`` NULL).
        """
        if not external_group_id:
            return None

        mapping = None
        if store_id is not None:
            mapping = self._find(external_group_id, store_id)
        if mapping is None:
            mapping = self._find(external_group_id, None)
        return mapping.local_category_id if mapping else None
