"""
Адаптер сховища осіб
====================
Обгортка над DocumentStore, якою користується ядро:

- get_person / get_tree - читання з NotFound замість None
- get_projected / get_tree_members - масове читання з проекцією полів
- batch + commit - атомарний пакет; будь-яка помилка сховища -> Internal
"""

import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Sequence

from config import get_settings
from document_store import (
    FAMILY_TREES,
    INVITATIONS,
    USERS,
    DocumentStore,
    InMemoryDocumentStore,
    StoreError,
    WriteBatch,
)
from errors import InternalError, NotFoundError

logger = logging.getLogger(__name__)


EDGE_FIELDS = ("parentIds", "childrenIds", "spouseIds")

# Поля, які завжди запитуються для побудови дерева
PERSON_VIEW_FIELDS = (
    "parentIds",
    "childrenIds",
    "spouseIds",
    "displayName",
    "firstName",
    "lastName",
    "profilePicture",
    "gender",
    "familyTreeId",
    "email",
    "phoneNumber",
)


def edge_ids(doc: Optional[Dict[str, Any]], field_name: str) -> List[str]:
    """Список id ребра без дублікатів (порядок збережено)"""
    if not doc:
        return []
    return list(dict.fromkeys(doc.get(field_name) or []))


class PersonStore:
    """Адаптер між ядром та документним сховищем"""

    def __init__(self, store: DocumentStore):
        self.store = store

    # ==================== Читання ====================

    def find_person(self, person_id: str) -> Optional[Dict[str, Any]]:
        return self.store.get(USERS, person_id)

    def get_person(self, person_id: str, message: Optional[str] = None) -> Dict[str, Any]:
        person = self.store.get(USERS, person_id)
        if person is None:
            raise NotFoundError(message or f"Person {person_id} not found")
        return person

    def get_tree(self, family_tree_id: str, message: Optional[str] = None) -> Dict[str, Any]:
        tree = self.store.get(FAMILY_TREES, family_tree_id)
        if tree is None:
            raise NotFoundError(message or "Family tree not found")
        return tree

    def get_projected(self, person_ids: Iterable[str], fields: Sequence[str]) -> List[Dict[str, Any]]:
        ids = list(dict.fromkeys(person_ids))
        if not ids:
            return []
        return self.store.get_many(USERS, ids, fields)

    def get_tree_members(
        self,
        family_tree_id: str,
        fields: Optional[Sequence[str]] = PERSON_VIEW_FIELDS,
    ) -> List[Dict[str, Any]]:
        return self.store.query(USERS, "familyTreeId", family_tree_id, fields)

    def get_invitations(self, family_tree_id: str) -> List[Dict[str, Any]]:
        return self.store.query(INVITATIONS, "familyTreeId", family_tree_id)

    # ==================== Запис ====================

    def batch(self) -> WriteBatch:
        return self.store.batch()

    def commit(self, batch: WriteBatch, operation: str) -> None:
        """Закомітити пакет; помилка сховища -> InternalError (змін немає)"""
        try:
            batch.commit()
        except StoreError as e:
            logger.error("Batch commit failed for %s (%d ops): %s", operation, len(batch), e)
            raise InternalError(f"Failed to commit {operation}. No changes were applied.") from e

    @staticmethod
    def new_id(prefix: str = "person") -> str:
        return f"{prefix}_{uuid.uuid4().hex[:12]}"


# Singleton instance
_store_instance: Optional[PersonStore] = None


def get_store() -> PersonStore:
    """Отримати адаптер сховища згідно STORE_BACKEND"""
    global _store_instance
    if _store_instance is None:
        backend = get_settings().store_backend
        if backend == "neo4j":
            from neo4j_db import get_db
            _store_instance = PersonStore(get_db())
        elif backend == "memory":
            logger.warning("Using in-memory document store; data is not persisted")
            _store_instance = PersonStore(InMemoryDocumentStore())
        else:
            raise ValueError(f"Unknown STORE_BACKEND: {backend}")
    return _store_instance


def set_store(store: Optional[PersonStore]) -> None:
    """Підмінити адаптер (тести, вбудовування)"""
    global _store_instance
    _store_instance = store
