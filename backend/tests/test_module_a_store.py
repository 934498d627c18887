"""
🗄️ МОДУЛЬ A: Сховище та адаптер осіб (Store)
=============================================

Тести перевіряють трансформації полів, атомарність пакетів,
проекцію масових читань та переклад помилок сховища.
"""

import pytest

import config
from config import Settings, get_settings
from document_store import (
    FAMILY_TREES,
    SERVER_TIMESTAMP,
    USERS,
    Increment,
    MissingDocumentError,
    StoreError,
    array_remove,
    array_union,
    project,
    resolve_fields,
    utcnow,
)
from errors import ErrorCode, InternalError, NotFoundError, PermissionDeniedError
from person_store import PERSON_VIEW_FIELDS, PersonStore, edge_ids


class TestFieldTransforms:
    """Трансформації значень update"""

    @pytest.mark.high
    @pytest.mark.unit
    def test_A1_array_union_skips_duplicates(self):
        """A-1: ArrayUnion додає лише відсутні значення"""
        now = utcnow()
        result = resolve_fields({"childrenIds": ["a", "b"]}, {"childrenIds": array_union("b", "c")}, now)
        assert result["childrenIds"] == ["a", "b", "c"]

    @pytest.mark.high
    @pytest.mark.unit
    def test_A2_array_remove_and_missing_field(self):
        """A-2: ArrayRemove прибирає всі входження; відсутнє поле -> []"""
        now = utcnow()
        result = resolve_fields(
            {"spouseIds": ["x", "y", "x"]},
            {"spouseIds": array_remove("x"), "parentIds": array_remove("z")},
            now,
        )
        assert result["spouseIds"] == ["y"]
        assert result["parentIds"] == []

    @pytest.mark.medium
    @pytest.mark.unit
    def test_A3_increment_and_server_timestamp(self):
        """A-3: Increment та SERVER_TIMESTAMP"""
        now = utcnow()
        current = {"memberCount": 3}
        result = resolve_fields(current, {"memberCount": Increment(-1), "updatedAt": SERVER_TIMESTAMP}, now)
        assert result["memberCount"] == 2
        assert result["updatedAt"] == now
        assert current == {"memberCount": 3}, "resolve_fields must not mutate its input"

    @pytest.mark.low
    @pytest.mark.unit
    def test_A4_projection_keeps_id(self):
        """A-4: Проекція завжди містить id"""
        doc = {"id": "p1", "firstName": "Ann", "email": "a@x.com"}
        assert project(doc, ["firstName"]) == {"id": "p1", "firstName": "Ann"}
        assert project(doc, None) == doc


class TestInMemoryStore:
    """Атомарні пакети в пам'яті"""

    @pytest.mark.critical
    @pytest.mark.unit
    def test_A5_batch_commits_all_ops(self, memory_store):
        """A-5: Пакет set + update + delete застосовується цілком"""
        memory_store.seed(USERS, {"id": "a", "childrenIds": []})
        memory_store.seed(USERS, {"id": "old"})

        batch = memory_store.batch()
        batch.set(USERS, "b", {"parentIds": ["a"], "createdAt": SERVER_TIMESTAMP})
        batch.update(USERS, "a", {"childrenIds": array_union("b")})
        batch.delete(USERS, "old")
        batch.commit()

        users = memory_store.dump(USERS)
        assert set(users) == {"a", "b"}
        assert users["a"]["childrenIds"] == ["b"]
        assert users["b"]["id"] == "b"
        assert users["b"]["createdAt"] is not None
        assert memory_store.commits == 1

    @pytest.mark.critical
    @pytest.mark.unit
    def test_A6_update_of_missing_document_fails_whole_batch(self, memory_store):
        """A-6: update неіснуючого документа -> жодних змін"""
        memory_store.seed(USERS, {"id": "a", "childrenIds": []})

        batch = memory_store.batch()
        batch.update(USERS, "a", {"childrenIds": array_union("ghost")})
        batch.update(USERS, "ghost", {"parentIds": array_union("a")})

        with pytest.raises(MissingDocumentError):
            batch.commit()

        assert memory_store.dump(USERS)["a"]["childrenIds"] == []
        assert memory_store.commits == 0

    @pytest.mark.critical
    @pytest.mark.unit
    def test_A7_injected_failure_leaves_no_partial_state(self, failing_store):
        """A-7: Збій на середині пакета - стан не змінено"""
        failing_store.seed(USERS, {"id": "a", "spouseIds": []})
        failing_store.seed(USERS, {"id": "b", "spouseIds": []})
        failing_store.fail_at = 1

        batch = failing_store.batch()
        batch.update(USERS, "a", {"spouseIds": array_union("b")})
        batch.update(USERS, "b", {"spouseIds": array_union("a")})

        with pytest.raises(StoreError):
            batch.commit()

        users = failing_store.dump(USERS)
        assert users["a"]["spouseIds"] == []
        assert users["b"]["spouseIds"] == []

    @pytest.mark.medium
    @pytest.mark.unit
    def test_A8_batch_cannot_be_committed_twice(self, memory_store):
        """A-8: Повторний commit того самого пакета - помилка"""
        batch = memory_store.batch().set(USERS, "a", {})
        batch.commit()
        with pytest.raises(StoreError):
            batch.commit()

    @pytest.mark.high
    @pytest.mark.unit
    def test_A9_reads_return_copies(self, memory_store):
        """A-9: Зміна прочитаного документа не змінює сховище"""
        memory_store.seed(USERS, {"id": "a", "childrenIds": ["c"]})
        doc = memory_store.get(USERS, "a")
        doc["childrenIds"].append("x")
        assert memory_store.get(USERS, "a")["childrenIds"] == ["c"]

    @pytest.mark.medium
    @pytest.mark.unit
    def test_A10_get_many_and_query_with_projection(self, memory_store):
        """A-10: get_many пропускає відсутні; query фільтрує за полем"""
        memory_store.seed(USERS, {"id": "a", "familyTreeId": "t1", "email": "a@x.com"})
        memory_store.seed(USERS, {"id": "b", "familyTreeId": "t2"})

        many = memory_store.get_many(USERS, ["a", "missing", "b"], ["familyTreeId"])
        assert many == [{"id": "a", "familyTreeId": "t1"}, {"id": "b", "familyTreeId": "t2"}]

        in_tree = memory_store.query(USERS, "familyTreeId", "t1", ["email"])
        assert in_tree == [{"id": "a", "email": "a@x.com"}]
        assert memory_store.bulk_reads == 2


class TestPersonStore:
    """Адаптер між ядром та сховищем"""

    @pytest.mark.high
    @pytest.mark.unit
    def test_A11_missing_documents_raise_not_found(self, store):
        """A-11: Відсутні особа/дерево -> NotFoundError з повідомленням"""
        with pytest.raises(NotFoundError, match="Person nobody not found"):
            store.get_person("nobody")
        with pytest.raises(NotFoundError, match="User not found"):
            store.get_person("nobody", "User not found")
        with pytest.raises(NotFoundError, match="Family tree not found"):
            store.get_tree("no_tree")

    @pytest.mark.critical
    @pytest.mark.unit
    def test_A12_store_failure_becomes_internal_error(self, failing_store):
        """A-12: Помилка сховища при коміті -> InternalError"""
        failing_store.fail_at = 0
        store = PersonStore(failing_store)
        batch = store.batch().set(USERS, "a", {})

        with pytest.raises(InternalError) as exc_info:
            store.commit(batch, "testOperation")

        assert exc_info.value.code == ErrorCode.INTERNAL
        assert "No changes were applied" in exc_info.value.message
        assert failing_store.dump(USERS) == {}

    @pytest.mark.high
    @pytest.mark.unit
    def test_A13_tree_members_use_view_projection(self, store, family):
        """A-13: Масове читання членів дерева - лише поля представлення"""
        members = store.get_tree_members("tree_1")
        assert {m["id"] for m in members} == {"U", "P1", "S1", "C1"}
        for member in members:
            assert set(member) <= set(PERSON_VIEW_FIELDS) | {"id"}
            assert "status" not in member

    @pytest.mark.low
    @pytest.mark.unit
    def test_A14_edge_ids_dedup_in_order(self):
        """A-14: edge_ids - без дублікатів, порядок збережено"""
        assert edge_ids({"parentIds": ["b", "a", "b"]}, "parentIds") == ["b", "a"]
        assert edge_ids(None, "parentIds") == []
        assert edge_ids({"parentIds": None}, "parentIds") == []

    @pytest.mark.low
    @pytest.mark.unit
    def test_A15_new_ids_are_unique(self):
        """A-15: Згенеровані id унікальні та з префіксом"""
        ids = {PersonStore.new_id() for _ in range(100)}
        assert len(ids) == 100
        assert all(i.startswith("person_") for i in ids)
        assert PersonStore.new_id("invitation").startswith("invitation_")


class TestConfigAndErrors:
    """Налаштування та таксономія помилок"""

    @pytest.mark.medium
    @pytest.mark.unit
    def test_A16_settings_from_environment(self, monkeypatch):
        """A-16: Settings читаються з оточення"""
        monkeypatch.setenv("STORE_BACKEND", "NEO4J")
        monkeypatch.setenv("MAX_RELATION_TRAVERSAL_DEPTH", "4")
        monkeypatch.setenv("FRONTEND_URL", "https://rodovid.example/")
        monkeypatch.setenv("INVITATION_TTL_DAYS", "3")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        settings = Settings.from_env()

        assert settings.store_backend == "neo4j"
        assert settings.max_relation_depth == 4
        assert settings.frontend_url == "https://rodovid.example"
        assert settings.invitation_ttl_days == 3
        assert settings.log_level == "DEBUG"

    @pytest.mark.low
    @pytest.mark.unit
    def test_A17_settings_are_cached_until_reset(self):
        """A-17: get_settings кешує, reset_settings скидає"""
        first = get_settings()
        assert get_settings() is first
        config.reset_settings()
        assert get_settings() is not first

    @pytest.mark.medium
    @pytest.mark.unit
    def test_A18_error_codes_map_to_http(self):
        """A-18: Код помилки -> HTTP статус і тіло відповіді"""
        error = PermissionDeniedError("nope")
        assert error.http_status == 403
        assert error.to_dict() == {"error": "permission-denied", "message": "nope"}
        assert NotFoundError("x").http_status == 404
        assert InternalError("x").http_status == 500
