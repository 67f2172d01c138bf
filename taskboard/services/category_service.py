from __future__ import annotations

import logging

from taskboard.domain.entities import CategoryEntity
from taskboard.infra.stores import TaskStore

logger = logging.getLogger(__name__)


class CategoryService:
    def __init__(self, store: TaskStore) -> None:
        self._store = store

    def list_categories(self) -> list[CategoryEntity]:
        return self._store.list_categories()

    def create_category(self, name: str, color: str | None = None) -> CategoryEntity:
        data = {"name": name}
        if color:
            data["color"] = color
        return self._store.create_category(data)

    def update_category(self, category_id: str, data: dict) -> CategoryEntity:
        return self._store.update_category(category_id, data)

    def delete_category(self, category_id: str) -> int:
        detached = self._store.delete_category(category_id)
        logger.info("Deleted category %s, detached %s task(s)", category_id, detached)
        return detached
