"""
Документне сховище
==================
Мінімальний контракт зовнішнього сховища документів, яким користується
ядро родового дерева:

- get / get_many / query - читання (з проекцією полів)
- commit(ops) - атомарний пакет записів (все або нічого)

Значення в update можуть бути трансформаціями полів (як FieldValue у
Firestore): ArrayUnion, ArrayRemove, Increment, SERVER_TIMESTAMP.

InMemoryDocumentStore - реалізація для тестів та локальної розробки.
Neo4j реалізація живе в neo4j_db.py.
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


# Колекції
USERS = "users"
FAMILY_TREES = "familyTrees"
INVITATIONS = "invitations"


class StoreError(Exception):
    """Сховище відхилило операцію"""


class MissingDocumentError(StoreError):
    """update для документа, якого не існує"""


# ==================== Трансформації полів ====================

@dataclass(frozen=True)
class ArrayUnion:
    """Додати значення до списку без дублікатів"""
    values: Tuple[Any, ...]


@dataclass(frozen=True)
class ArrayRemove:
    """Прибрати всі входження значень зі списку"""
    values: Tuple[Any, ...]


@dataclass(frozen=True)
class Increment:
    amount: int = 1


class _ServerTimestamp:
    def __repr__(self):
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


def array_union(*values: Any) -> ArrayUnion:
    return ArrayUnion(tuple(values))


def array_remove(*values: Any) -> ArrayRemove:
    return ArrayRemove(tuple(values))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def resolve_fields(current: Dict[str, Any], data: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    """
    Застосувати значення update (з трансформаціями) до поточного документа.

    Повертає НОВИЙ словник, current не змінюється.
    """
    result = dict(current)
    for key, value in data.items():
        if isinstance(value, ArrayUnion):
            items = list(result.get(key) or [])
            for item in value.values:
                if item not in items:
                    items.append(item)
            result[key] = items
        elif isinstance(value, ArrayRemove):
            result[key] = [item for item in (result.get(key) or []) if item not in value.values]
        elif isinstance(value, Increment):
            result[key] = (result.get(key) or 0) + value.amount
        elif value is SERVER_TIMESTAMP:
            result[key] = now
        else:
            result[key] = copy.deepcopy(value)
    return result


def project(doc: Dict[str, Any], fields: Optional[Iterable[str]]) -> Dict[str, Any]:
    """Залишити тільки потрібні поля (id завжди присутній)"""
    if fields is None:
        return dict(doc)
    projected = {"id": doc.get("id")}
    for name in fields:
        if name in doc:
            projected[name] = doc[name]
    return projected


# ==================== Пакет записів ====================

class WriteKind(str, Enum):
    SET = "set"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class WriteOp:
    kind: WriteKind
    collection: str
    doc_id: str
    data: Dict[str, Any] = field(default_factory=dict)


class WriteBatch:
    """
    Впорядкований список записів, що комітяться одним викликом.

    Використання:
        batch = store.batch()
        batch.set(USERS, "u1", {...})
        batch.update(USERS, "u2", {"childrenIds": array_union("u1")})
        batch.commit()
    """

    def __init__(self, store: "DocumentStore"):
        self._store = store
        self._committed = False
        self.ops: List[WriteOp] = []

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> "WriteBatch":
        self.ops.append(WriteOp(WriteKind.SET, collection, doc_id, dict(data)))
        return self

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> "WriteBatch":
        self.ops.append(WriteOp(WriteKind.UPDATE, collection, doc_id, dict(data)))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self.ops.append(WriteOp(WriteKind.DELETE, collection, doc_id))
        return self

    def __len__(self):
        return len(self.ops)

    def commit(self) -> None:
        if self._committed:
            raise StoreError("Batch already committed")
        self._store.commit(list(self.ops))
        self._committed = True


# ==================== Контракт сховища ====================

class DocumentStore(ABC):
    """Абстрактне документне сховище з атомарними пакетами"""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Документ або None"""

    @abstractmethod
    def get_many(
        self,
        collection: str,
        doc_ids: Sequence[str],
        fields: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        """Існуючі документи з переліку (відсутні пропускаються)"""

    @abstractmethod
    def query(
        self,
        collection: str,
        field_name: str,
        value: Any,
        fields: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        """Всі документи, де field_name == value"""

    @abstractmethod
    def commit(self, ops: List[WriteOp]) -> None:
        """Застосувати пакет атомарно; при помилці - StoreError і жодних змін"""

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        pass


class InMemoryDocumentStore(DocumentStore):
    """
    Сховище в пам'яті.

    Пакет застосовується до копії даних і підміняє їх лише після успіху,
    тож читач ніколи не бачить половину пакета.
    Лічильники reads/bulk_reads/commits потрібні тестам.
    """

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = defaultdict(dict)
        self._lock = threading.RLock()
        self.reads = 0
        self.bulk_reads = 0
        self.commits = 0

    def seed(self, collection: str, doc: Dict[str, Any]) -> None:
        """Покласти документ напряму (фікстури, імпорт)"""
        with self._lock:
            self._data[collection][doc["id"]] = copy.deepcopy(doc)

    def get(self, collection, doc_id):
        with self._lock:
            self.reads += 1
            doc = self._data[collection].get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def get_many(self, collection, doc_ids, fields=None):
        with self._lock:
            self.bulk_reads += 1
            docs = self._data[collection]
            return [
                copy.deepcopy(project(docs[doc_id], fields))
                for doc_id in dict.fromkeys(doc_ids)
                if doc_id in docs
            ]

    def query(self, collection, field_name, value, fields=None):
        with self._lock:
            self.bulk_reads += 1
            return [
                copy.deepcopy(project(doc, fields))
                for doc in self._data[collection].values()
                if doc.get(field_name) == value
            ]

    def commit(self, ops):
        now = utcnow()
        with self._lock:
            staged = copy.deepcopy(self._data)
            for index, op in enumerate(ops):
                self._apply_op(staged, op, now, index)
            self._data = staged
            self.commits += 1
        logger.debug("Committed batch of %d ops", len(ops))

    def _apply_op(self, staged, op: WriteOp, now: datetime, index: int) -> None:
        docs = staged[op.collection]
        if op.kind == WriteKind.SET:
            doc = resolve_fields({}, op.data, now)
            doc["id"] = op.doc_id
            docs[op.doc_id] = doc
        elif op.kind == WriteKind.UPDATE:
            current = docs.get(op.doc_id)
            if current is None:
                raise MissingDocumentError(f"No document to update: {op.collection}/{op.doc_id}")
            docs[op.doc_id] = resolve_fields(current, op.data, now)
        elif op.kind == WriteKind.DELETE:
            docs.pop(op.doc_id, None)
        else:
            raise StoreError(f"Unknown write kind: {op.kind}")

    def dump(self, collection: str) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(dict(self._data[collection]))
