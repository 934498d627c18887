"""
Pytest конфігурація та фікстури
================================
"""

import sys
import os
import pytest

# Додаємо backend до шляху
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import config
from config import Settings
from document_store import FAMILY_TREES, USERS, InMemoryDocumentStore, StoreError
from person_store import PersonStore
from validators import FamilyValidator


# ==================== Markers ====================

def pytest_configure(config):
    """Реєстрація кастомних маркерів"""
    config.addinivalue_line("markers", "critical: Critical priority tests")
    config.addinivalue_line("markers", "high: High priority tests")
    config.addinivalue_line("markers", "medium: Medium priority tests")
    config.addinivalue_line("markers", "low: Low priority tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "unit: Unit tests")


# ==================== Допоміжні класи ====================

class FailingDocumentStore(InMemoryDocumentStore):
    """In-memory сховище, що падає на операції з індексом fail_at"""

    def __init__(self, fail_at=None):
        super().__init__()
        self.fail_at = fail_at

    def _apply_op(self, staged, op, now, index):
        if self.fail_at is not None and index == self.fail_at:
            raise StoreError(f"Injected failure at op #{index} ({op.kind.value} {op.doc_id})")
        super()._apply_op(staged, op, now, index)


class RecordingEmailSender:
    """Запам'ятовує листи замість відправки"""

    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send_invitation(self, to, inviter_name, family_tree_name, claim_link, invitee_name=""):
        if self.fail:
            raise ConnectionError("SMTP server unavailable")
        self.sent.append({
            "to": to,
            "inviter_name": inviter_name,
            "family_tree_name": family_tree_name,
            "claim_link": claim_link,
            "invitee_name": invitee_name,
        })


class FamilySeeder:
    """
    Будівник тестових родин прямо в сховищі.

    Ребра задаються парами (parent_of, marry), обидві сторони одразу.
    memberUserIds/memberCount дерева рахуються з осіб цього дерева.
    """

    def __init__(self, memory_store, tree_id="tree_1"):
        self.memory_store = memory_store
        self.tree_id = tree_id
        self.people = {}
        self.trees = {}

    def tree(self, owner_id, admins=(), tree_id=None, **fields):
        tree_id = tree_id or self.tree_id
        doc = {
            "id": tree_id,
            "ownerUserId": owner_id,
            "adminUserIds": list(dict.fromkeys([owner_id, *admins])),
            "treeName": f"{owner_id} family",
            "isPrivate": True,
        }
        doc.update(fields)
        self.trees[tree_id] = doc
        self._flush()
        return doc

    def person(self, person_id, **fields):
        doc = {
            "id": person_id,
            "firstName": person_id.upper(),
            "lastName": "Test",
            "gender": "other",
            "parentIds": [],
            "childrenIds": [],
            "spouseIds": [],
            "familyTreeId": self.tree_id,
            "status": "invited",
            "isPendingSignUp": False,
        }
        doc.update(fields)
        self.people[person_id] = doc
        self._flush()
        return doc

    def people_of(self, *person_ids, **fields):
        for person_id in person_ids:
            self.person(person_id, **fields)

    def parent_of(self, parent_id, child_id):
        self.people[parent_id]["childrenIds"].append(child_id)
        self.people[child_id]["parentIds"].append(parent_id)
        self._flush()

    def marry(self, a, b):
        self.people[a]["spouseIds"].append(b)
        self.people[b]["spouseIds"].append(a)
        self._flush()

    def chain(self, person_ids):
        """Лінійний ланцюг поколінь: person_ids[0] - найстарший"""
        for person_id in person_ids:
            if person_id not in self.people:
                self.person(person_id)
        for parent_id, child_id in zip(person_ids, person_ids[1:]):
            self.parent_of(parent_id, child_id)

    def _flush(self):
        for doc in self.people.values():
            self.memory_store.seed(USERS, doc)
        for tree in self.trees.values():
            members = [pid for pid, p in self.people.items() if p.get("familyTreeId") == tree["id"]]
            self.memory_store.seed(FAMILY_TREES, {
                "memberUserIds": members,
                "memberCount": len(members),
                **tree,
            })


# ==================== Фікстури ====================

@pytest.fixture(autouse=True)
def test_settings():
    """Налаштування за замовчуванням, незалежно від .env"""
    config._settings = Settings()
    yield config._settings
    config.reset_settings()


@pytest.fixture
def memory_store():
    return InMemoryDocumentStore()


@pytest.fixture
def store(memory_store):
    """PersonStore над чистим in-memory сховищем"""
    return PersonStore(memory_store)


@pytest.fixture
def seed(memory_store):
    return FamilySeeder(memory_store)


@pytest.fixture
def failing_store():
    return FailingDocumentStore()


@pytest.fixture
def failing_seed(failing_store):
    return FamilySeeder(failing_store)


@pytest.fixture
def symmetric():
    """Перевірка взаємності ребер по всіх особах сховища"""

    def check(memory_store):
        users = memory_store.dump(USERS)
        for person_id, person in users.items():
            for parent_id in person.get("parentIds") or []:
                if parent_id in users:
                    assert person_id in users[parent_id].get("childrenIds", []), \
                        f"{parent_id}.childrenIds misses {person_id}"
            for child_id in person.get("childrenIds") or []:
                if child_id in users:
                    assert person_id in users[child_id].get("parentIds", []), \
                        f"{child_id}.parentIds misses {person_id}"
            for spouse_id in person.get("spouseIds") or []:
                if spouse_id in users:
                    assert person_id in users[spouse_id].get("spouseIds", []), \
                        f"{spouse_id}.spouseIds misses {person_id}"
        return True

    return check


@pytest.fixture
def validator():
    """Family validator instance"""
    return FamilyValidator()


@pytest.fixture
def email_sender():
    return RecordingEmailSender()


@pytest.fixture
def broken_email_sender():
    return RecordingEmailSender(fail=True)


@pytest.fixture
def family(seed):
    """
    Базова родина:

        P1
        |
        U ==== S1      (U - власник дерева, активний)
          \\  /
           C1
    """
    seed.people_of("P1", "S1", "C1")
    seed.person("U", status="active", email="u@example.com", displayName="Ulyana Test")
    seed.parent_of("P1", "U")
    seed.marry("U", "S1")
    seed.parent_of("U", "C1")
    seed.parent_of("S1", "C1")
    seed.tree("U", treeName="Test Family")
    return seed
