"""
Ролі адміністраторів
====================
Адмін - це лише членство в FamilyTree.adminUserIds, не поле особи.
Зміна ролі - одне оновлення документа дерева, без пакета з ребрами.
"""

import logging

from document_store import FAMILY_TREES, SERVER_TIMESTAMP, ArrayRemove, ArrayUnion
from errors import PermissionDeniedError
from member_lifecycle import ensure_member_of_tree, is_tree_admin, is_tree_owner
from models import OperationResult
from person_store import PersonStore

logger = logging.getLogger(__name__)


def promote_to_admin(
    store: PersonStore,
    acting_user_id: str,
    member_id: str,
    family_tree_id: str,
) -> OperationResult:
    """
    Зробити члена дерева адміністратором.

    Повторне підвищення - успіх без запису.
    """
    tree = store.get_tree(family_tree_id)
    member = store.get_person(member_id, "Family member not found")
    ensure_member_of_tree(member, family_tree_id)

    if is_tree_admin(tree, member_id):
        return OperationResult(success=True, message="This member is already an admin.")

    batch = store.batch()
    batch.update(FAMILY_TREES, family_tree_id, {
        "adminUserIds": ArrayUnion((member_id,)),
        "updatedAt": SERVER_TIMESTAMP,
        "lastUpdatedBy": acting_user_id,
    })
    store.commit(batch, "promoteToAdmin")

    logger.info("User %s promoted %s to admin in tree %s", acting_user_id, member_id, family_tree_id)
    return OperationResult(success=True, message="Member promoted to admin successfully.")


def demote_to_member(
    store: PersonStore,
    acting_user_id: str,
    member_id: str,
    family_tree_id: str,
) -> OperationResult:
    """Зняти роль адміністратора (власника - ніколи)"""
    tree = store.get_tree(family_tree_id)
    if is_tree_owner(tree, member_id):
        raise PermissionDeniedError("The tree owner cannot be demoted from admin status.")

    if not is_tree_admin(tree, member_id):
        return OperationResult(success=True, message="This member is not an admin.")

    batch = store.batch()
    batch.update(FAMILY_TREES, family_tree_id, {
        "adminUserIds": ArrayRemove((member_id,)),
        "updatedAt": SERVER_TIMESTAMP,
        "lastUpdatedBy": acting_user_id,
    })
    store.commit(batch, "demoteToMember")

    logger.info("User %s demoted %s to member in tree %s", acting_user_id, member_id, family_tree_id)
    return OperationResult(success=True, message="Admin demoted to member successfully.")
