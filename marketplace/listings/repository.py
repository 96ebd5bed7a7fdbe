from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from marketplace.common.enums import EntityType
from marketplace.listings.models import ListableEntity


EntityKey = Tuple[EntityType, str]


class ListingRepository:
    def __init__(self) -> None:
        self._entities: Dict[EntityKey, ListableEntity] = {}
        self._lock = threading.Lock()

    def add(self, entity: ListableEntity) -> None:
        with self._lock:
            self._entities[(entity.entity_type, entity.entity_id)] = entity

    def get(self, entity_type: EntityType, entity_id: str) -> Optional[ListableEntity]:
        with self._lock:
            return self._entities.get((entity_type, entity_id))

    def publish(self, entity: ListableEntity) -> ListableEntity:
        """Insert or replace listing content; boost fields stay owned by the ledger."""
        key = (entity.entity_type, entity.entity_id)
        with self._lock:
            existing = self._entities.get(key)
            if existing is not None:
                entity = replace(
                    entity,
                    created_at=existing.created_at,
                    is_boosted=existing.is_boosted,
                    boost_expires_at=existing.boost_expires_at,
                    boost_score=existing.boost_score,
                )
            self._entities[key] = entity
        return entity

    def list_entities(self, entity_type: EntityType, *, active_only: bool = True) -> List[ListableEntity]:
        with self._lock:
            entities = [entity for (kind, _), entity in self._entities.items() if kind == entity_type]
        if active_only:
            entities = [entity for entity in entities if entity.is_active]
        return entities

    def update_entity_boost_fields(
        self,
        entity_type: EntityType,
        entity_id: str,
        *,
        is_boosted: bool,
        boost_expires_at: Optional[datetime],
        boost_score: int,
    ) -> ListableEntity:
        key = (entity_type, entity_id)
        with self._lock:
            entity = self._entities.get(key)
            if entity is None:
                raise KeyError(f"{entity_type.table_name}/{entity_id} not found")
            updated = replace(
                entity,
                is_boosted=is_boosted,
                boost_expires_at=boost_expires_at,
                boost_score=boost_score,
            )
            self._entities[key] = updated
        return updated
