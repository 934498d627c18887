"""
🛡️ МОДУЛЬ E: Ролі адміністраторів (Admin Roles)
================================================

Тести перевіряють підвищення/зниження ролі на записі FamilyTree.
"""

import pytest

from admin_roles import demote_to_member, promote_to_admin
from document_store import FAMILY_TREES, WriteKind
from errors import InvalidArgumentError, NotFoundError, PermissionDeniedError


def admins(memory_store):
    return memory_store.dump(FAMILY_TREES)["tree_1"]["adminUserIds"]


class TestPromote:
    """promote_to_admin"""

    @pytest.mark.critical
    @pytest.mark.unit
    def test_E1_promote_member(self, store, memory_store, family):
        """E-1: Один запис - лише документ дерева"""
        committed = []
        original_commit = memory_store.commit

        def spy(ops):
            committed.append(list(ops))
            original_commit(ops)

        memory_store.commit = spy

        result = promote_to_admin(store, "U", "S1", "tree_1")

        assert result.success is True
        assert admins(memory_store) == ["U", "S1"]
        assert len(committed) == 1
        assert [(op.kind, op.collection) for op in committed[0]] == [(WriteKind.UPDATE, FAMILY_TREES)]

    @pytest.mark.critical
    @pytest.mark.unit
    def test_E2_promotion_is_idempotent(self, store, memory_store, family):
        """E-2: Вже адмін -> успіх з повідомленням, нуль записів"""
        promote_to_admin(store, "U", "S1", "tree_1")
        commits = memory_store.commits

        result = promote_to_admin(store, "U", "S1", "tree_1")

        assert result.success is True
        assert result.message == "This member is already an admin."
        assert memory_store.commits == commits
        assert admins(memory_store) == ["U", "S1"]

    @pytest.mark.high
    @pytest.mark.unit
    def test_E3_member_of_other_tree(self, store, memory_store, family):
        """E-3: Особа з іншого дерева -> InvalidArgument"""
        family.person("stranger", familyTreeId="tree_2")
        with pytest.raises(InvalidArgumentError, match="not part of this family tree"):
            promote_to_admin(store, "U", "stranger", "tree_1")
        assert memory_store.commits == 0

    @pytest.mark.medium
    @pytest.mark.unit
    def test_E4_missing_tree_or_member(self, store, family):
        """E-4: Немає дерева або особи -> NotFound"""
        with pytest.raises(NotFoundError):
            promote_to_admin(store, "U", "S1", "tree_9")
        with pytest.raises(NotFoundError):
            promote_to_admin(store, "U", "nobody", "tree_1")


class TestDemote:
    """demote_to_member"""

    @pytest.mark.critical
    @pytest.mark.unit
    def test_E5_demote_admin(self, store, memory_store, family):
        """E-5: Адмін -> член"""
        family.tree("U", admins=["S1"])

        result = demote_to_member(store, "U", "S1", "tree_1")

        assert result.success is True
        assert admins(memory_store) == ["U"]

    @pytest.mark.critical
    @pytest.mark.unit
    @pytest.mark.parametrize("acting_user_id", ["U", "S1", "P1", "someone_else"])
    def test_E6_owner_cannot_be_demoted(self, store, memory_store, family, acting_user_id):
        """E-6: Власника не можна понизити, хоч би хто просив"""
        family.tree("U", admins=["S1"])

        with pytest.raises(PermissionDeniedError, match="tree owner cannot be demoted"):
            demote_to_member(store, acting_user_id, "U", "tree_1")

        assert "U" in admins(memory_store)
        assert memory_store.commits == 0

    @pytest.mark.medium
    @pytest.mark.unit
    def test_E7_demote_non_admin_is_informational(self, store, memory_store, family):
        """E-7: Не адмін -> успіх з повідомленням, без запису"""
        result = demote_to_member(store, "U", "C1", "tree_1")
        assert result.success is True
        assert result.message == "This member is not an admin."
        assert memory_store.commits == 0
