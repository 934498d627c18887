"""
Neo4j сховище для Родового дерева
=================================
Документне сховище поверх Neo4j.

Структура графу:
- (:Person {id, parentIds, childrenIds, spouseIds, familyTreeId, ...})
- (:FamilyTree {id, ownerUserId, adminUserIds, memberUserIds, ...})
- (:Invitation {id, inviteeId, token, ...})

Ребра родини зберігаються як списки id у властивостях вузлів, тому
взаємність (A.parentIds <-> B.childrenIds) підтримує ядро, а не Cypher.
Один пакет записів = одна write-транзакція (все або нічого).
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from config import get_settings
from document_store import (
    FAMILY_TREES,
    INVITATIONS,
    USERS,
    DocumentStore,
    MissingDocumentError,
    StoreError,
    WriteKind,
    WriteOp,
    project,
    resolve_fields,
    utcnow,
)

# Neo4j driver
try:
    from neo4j import GraphDatabase
    NEO4J_AVAILABLE = True
except ImportError:
    NEO4J_AVAILABLE = False

logger = logging.getLogger(__name__)


# Колекція -> мітка вузла
LABELS = {
    USERS: "Person",
    FAMILY_TREES: "FamilyTree",
    INVITATIONS: "Invitation",
}

# Поля, за якими дозволено query (під кожне - індекс у ensure_schema)
QUERY_FIELDS = ("familyTreeId",)


class Neo4jDocumentStore(DocumentStore):
    """
    Документи як вузли Neo4j.

    Використання:
        store = Neo4jDocumentStore()
        store.ensure_schema()
        store.get("users", "u1")
    """

    def __init__(
        self,
        uri: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        driver: Any = None,
    ):
        if driver is not None:
            # Готовий драйвер (тести, спільний пул з'єднань)
            self.driver = driver
            return

        if not NEO4J_AVAILABLE:
            raise ImportError("Neo4j package not installed. Run: pip install neo4j")

        settings = get_settings()
        uri = uri or settings.neo4j_uri
        user = user or settings.neo4j_user
        password = password or settings.neo4j_password

        logger.info("🔧 Neo4j configuration: uri=%s user=%s password=%s", uri, user, "*" * len(password))

        try:
            self.driver = GraphDatabase.driver(uri, auth=(user, password))
            self._verify_connection()
        except Exception:
            logger.exception("❌ Neo4j connection failed (uri=%s, user=%s)", uri, user)
            raise

    def _verify_connection(self):
        """Перевірка з'єднання з Neo4j"""
        with self.driver.session() as session:
            record = session.run("RETURN 1 AS test").single()
            if not record or record["test"] != 1:
                raise StoreError("Neo4j connection test failed")
        logger.info("✅ Neo4j connected successfully")

    def close(self):
        """Закрити з'єднання"""
        self.driver.close()

    def ping(self) -> bool:
        try:
            self._verify_connection()
            return True
        except Exception as e:
            logger.warning("⚠️ Neo4j health check failed: %s", e)
            return False

    def ensure_schema(self) -> None:
        """Унікальні id для кожної мітки + індекси полів QUERY_FIELDS"""
        with self.driver.session() as session:
            for label in LABELS.values():
                session.run(
                    f"CREATE CONSTRAINT {label.lower()}_id IF NOT EXISTS "
                    f"FOR (d:{label}) REQUIRE d.id IS UNIQUE"
                )
            for label in ("Person", "Invitation"):
                for field_name in QUERY_FIELDS:
                    session.run(
                        f"CREATE INDEX {label.lower()}_{field_name.lower()} IF NOT EXISTS "
                        f"FOR (d:{label}) ON (d.{field_name})"
                    )

    # ==================== Читання ====================

    def get(self, collection, doc_id):
        label = self._label(collection)
        with self.driver.session() as session:
            record = session.run(
                f"MATCH (d:{label} {{id: $id}}) RETURN properties(d) AS doc",
                id=doc_id,
            ).single()
            return self._from_neo4j(record["doc"]) if record else None

    def get_many(self, collection, doc_ids, fields=None):
        label = self._label(collection)
        ids = list(dict.fromkeys(doc_ids))
        if not ids:
            return []
        with self.driver.session() as session:
            result = session.run(
                f"MATCH (d:{label}) WHERE d.id IN $ids RETURN properties(d) AS doc",
                ids=ids,
            )
            return [project(self._from_neo4j(record["doc"]), fields) for record in result]

    def query(self, collection, field_name, value, fields=None):
        label = self._label(collection)
        if field_name not in QUERY_FIELDS:
            raise StoreError(f"Field is not queryable: {field_name}")
        with self.driver.session() as session:
            result = session.run(
                f"MATCH (d:{label}) WHERE d.{field_name} = $value RETURN properties(d) AS doc",
                value=value,
            )
            return [project(self._from_neo4j(record["doc"]), fields) for record in result]

    # ==================== Запис ====================

    def commit(self, ops: List[WriteOp]) -> None:
        now = utcnow()
        try:
            with self.driver.session() as session:
                session.execute_write(self._apply_ops, ops, now)
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"Neo4j batch failed: {e}") from e
        logger.debug("Committed batch of %d ops to Neo4j", len(ops))

    def _apply_ops(self, tx, ops: List[WriteOp], now: datetime) -> None:
        """Транзакційна функція: весь пакет в одній транзакції"""
        for op in ops:
            label = self._label(op.collection)

            if op.kind == WriteKind.SET:
                props = resolve_fields({}, op.data, now)
                props["id"] = op.doc_id
                tx.run(
                    f"MERGE (d:{label} {{id: $id}}) SET d = $props",
                    id=op.doc_id,
                    props=self._to_neo4j(props),
                )

            elif op.kind == WriteKind.UPDATE:
                # Читаємо в тій самій транзакції, щоб трансформації бачили актуальний стан
                record = tx.run(
                    f"MATCH (d:{label} {{id: $id}}) RETURN properties(d) AS doc",
                    id=op.doc_id,
                ).single()
                if record is None:
                    raise MissingDocumentError(f"No document to update: {op.collection}/{op.doc_id}")
                props = resolve_fields(self._from_neo4j(record["doc"]), op.data, now)
                tx.run(
                    f"MATCH (d:{label} {{id: $id}}) SET d = $props",
                    id=op.doc_id,
                    props=self._to_neo4j(props),
                )

            elif op.kind == WriteKind.DELETE:
                tx.run(f"MATCH (d:{label} {{id: $id}}) DETACH DELETE d", id=op.doc_id)

    # ==================== Утиліти ====================

    @staticmethod
    def _label(collection: str) -> str:
        try:
            return LABELS[collection]
        except KeyError:
            raise StoreError(f"Unknown collection: {collection}") from None

    @staticmethod
    def _to_neo4j(props: Dict[str, Any]) -> Dict[str, Any]:
        """Neo4j не зберігає null та вкладені map-и"""
        clean = {}
        for key, value in props.items():
            if value is None:
                continue
            if isinstance(value, dict):
                raise StoreError(f"Nested maps are not supported by Neo4j properties: {key}")
            clean[key] = value
        return clean

    @staticmethod
    def _from_neo4j(props: Dict[str, Any]) -> Dict[str, Any]:
        # neo4j.time.DateTime -> datetime
        return {
            key: value.to_native() if hasattr(value, "to_native") else value
            for key, value in dict(props).items()
        }


# Singleton instance
_db_instance: Optional[Neo4jDocumentStore] = None


def get_db() -> Neo4jDocumentStore:
    """Отримати екземпляр бази даних"""
    global _db_instance
    if _db_instance is None:
        _db_instance = Neo4jDocumentStore()
        _db_instance.ensure_schema()
    return _db_instance
