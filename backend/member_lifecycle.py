"""
Життєвий цикл членів дерева
===========================
Створення, оновлення та видалення особи. Кожна мутація - ОДИН пакет:
нова/змінена особа + дзеркальні ребра родичів + оновлення FamilyTree.

Права, що залежать від даних дерева (власник, активний обліковий запис),
перевіряються тут, незалежно від middleware.
"""

import logging
from typing import Any, Dict, List, Optional, Set, Union

from config import Settings
from document_store import FAMILY_TREES, SERVER_TIMESTAMP, USERS, ArrayRemove, ArrayUnion, Increment
from edge_mutations import EdgeChangeSet
from email_service import EmailSender, get_email_sender
from errors import (
    AbortedError,
    InvalidArgumentError,
    MissingParametersError,
    NotFoundError,
    PermissionDeniedError,
)
from invitations import send_member_invitation
from models import (
    CreateMemberOptions,
    DeleteMemberResult,
    MemberRole,
    MemberStatus,
    OperationResult,
    RelationType,
)
from person_store import PersonStore, edge_ids
from relationship_view import display_name, regenerate_tree_view

logger = logging.getLogger(__name__)


DEFAULT_INVITER_NAME = "A family member"

# Ці поля змінюються лише через спеціальні операції
PROTECTED_FIELDS = frozenset({
    "id",
    "parentIds",
    "childrenIds",
    "spouseIds",
    "status",
    "isPendingSignUp",
    "createdAt",
})

_BOOKKEEPING_FIELDS = PROTECTED_FIELDS | {"familyTreeId", "updatedAt", "lastUpdatedBy"}


# ==================== Guards ====================

def is_tree_owner(tree: Dict[str, Any], user_id: str) -> bool:
    return tree.get("ownerUserId") == user_id


def is_tree_admin(tree: Dict[str, Any], user_id: str) -> bool:
    return user_id in (tree.get("adminUserIds") or [])


def ensure_tree_manager(tree: Dict[str, Any], user_id: str, action: str) -> None:
    """Лише власник або адміністратор дерева"""
    if not (is_tree_owner(tree, user_id) or is_tree_admin(tree, user_id)):
        raise PermissionDeniedError(
            f"You don't have permission to {action} this tree. "
            "Only tree administrators can do this."
        )


def ensure_member_of_tree(member: Dict[str, Any], family_tree_id: str) -> None:
    if member.get("familyTreeId") != family_tree_id:
        raise InvalidArgumentError("This member is not part of this family tree.")


def ensure_children_shared(store: PersonStore, member: Dict[str, Any]) -> None:
    """
    Особу з дітьми можна видалити лише якщо КОЖЕН з подружжя
    має всіх її дітей. Особа з дітьми без подружжя - блокується.

    Raises:
        AbortedError: є "індивідуальні" діти
    """
    children = set(edge_ids(member, "childrenIds"))
    if not children:
        return

    spouses = store.get_projected(edge_ids(member, "spouseIds"), ("childrenIds",))
    if not spouses:
        raise AbortedError(
            "This member has children in the family tree. Please remove all children first."
        )

    for spouse in spouses:
        if not children <= set(edge_ids(spouse, "childrenIds")):
            raise AbortedError(
                "This member has individual children not shared with their spouse. "
                "Please reassign or remove these children first."
            )


# ==================== Створення ====================

def _wire_new_member(
    changes: EdgeChangeSet,
    new_id: str,
    relation: RelationType,
    selected: Dict[str, Any],
    options: CreateMemberOptions,
    in_tree: Set[str],
) -> None:
    """Ребра нової особи; родичі поза in_tree пропускаються"""

    def connect(relation_name: str, other_id: str) -> None:
        if other_id in in_tree:
            changes.add(new_id, relation_name, other_id)
        else:
            logger.warning("Skipping %s edge from %s to missing member %s", relation_name, new_id, other_id)

    selected_id = selected["id"]
    if relation == RelationType.CHILD:
        connect("parent", selected_id)
        if options.connect_to_spouse:
            for spouse_id in edge_ids(selected, "spouseIds"):
                connect("parent", spouse_id)
    elif relation == RelationType.PARENT:
        connect("child", selected_id)
        existing_parents = edge_ids(selected, "parentIds")
        if options.connect_to_existing_parent and existing_parents:
            connect("spouse", existing_parents[0])
    else:
        connect("spouse", selected_id)
        if options.connect_to_children:
            for child_id in edge_ids(selected, "childrenIds"):
                connect("child", child_id)


def create_family_member(
    store: PersonStore,
    acting_user_id: str,
    user_data: Dict[str, Any],
    relation_type: Union[str, RelationType],
    selected_node_id: str,
    options: Optional[Union[CreateMemberOptions, Dict[str, Any]]] = None,
    email_sender: Optional[EmailSender] = None,
    settings: Optional[Settings] = None,
) -> OperationResult:
    """
    Створити нову особу відносно обраного вузла.

    Ребра нової особи визначаються relation_type та options; кожне
    ребро має дзеркало в тому самому пакеті, як і запис у FamilyTree.
    Запрошення (якщо є email) надсилається ПІСЛЯ коміту.

    Raises:
        MissingParametersError: немає familyTreeId
        InvalidArgumentError: невідомий тип зв'язку / вузол з іншого дерева
        NotFoundError: немає дерева, обраного вузла чи поточного користувача
    """
    family_tree_id = user_data.get("familyTreeId")
    if not family_tree_id:
        raise MissingParametersError("Family Tree ID is missing in userData")

    try:
        relation = RelationType(relation_type)
    except ValueError:
        raise InvalidArgumentError(f"Invalid relation type: {relation_type}")

    if options is None:
        options = CreateMemberOptions()
    elif isinstance(options, dict):
        options = CreateMemberOptions.model_validate(options)

    tree = store.get_tree(family_tree_id)
    selected = store.get_person(selected_node_id, "Selected family member not found")
    if selected.get("familyTreeId") != family_tree_id:
        raise InvalidArgumentError("The selected member is not part of this family tree.")
    acting_user = store.get_person(acting_user_id, "Current user not found")
    inviter_name = display_name(acting_user) or DEFAULT_INVITER_NAME

    # Родичі обраного вузла, які справді є в цьому дереві
    relative_ids = [
        other_id
        for field_name in ("parentIds", "childrenIds", "spouseIds")
        for other_id in edge_ids(selected, field_name)
    ]
    in_tree = {
        doc["id"]
        for doc in store.get_projected(relative_ids, ("familyTreeId",))
        if doc.get("familyTreeId") == family_tree_id
    }
    in_tree.add(selected_node_id)

    new_id = store.new_id()
    changes = EdgeChangeSet()
    _wire_new_member(changes, new_id, relation, selected, options, in_tree)
    new_edges = changes.changes_for(new_id)

    email = user_data.get("email")
    person = {k: v for k, v in user_data.items() if k not in _BOOKKEEPING_FIELDS}
    if not person.get("displayName") and (person.get("firstName") or person.get("lastName")):
        person["displayName"] = display_name(person)
    person.update({
        "parentIds": list(new_edges.get("parentIds", {})),
        "childrenIds": list(new_edges.get("childrenIds", {})),
        "spouseIds": list(new_edges.get("spouseIds", {})),
        "familyTreeId": family_tree_id,
        "status": MemberStatus.INVITED.value,
        "isPendingSignUp": bool(email),
        "createdAt": SERVER_TIMESTAMP,
        "updatedAt": SERVER_TIMESTAMP,
        "lastUpdatedBy": acting_user_id,
    })

    batch = store.batch()
    batch.set(USERS, new_id, person)
    changes.write_to(batch, exclude={new_id})
    batch.update(FAMILY_TREES, family_tree_id, {
        "memberUserIds": ArrayUnion((new_id,)),
        "memberCount": Increment(1),
        "updatedAt": SERVER_TIMESTAMP,
        "lastUpdatedBy": acting_user_id,
    })
    store.commit(batch, "createFamilyMember")

    logger.info(
        "Created %s %s for %s in tree %s",
        relation.value, new_id, selected_node_id, family_tree_id,
    )

    if email:
        send_member_invitation(
            store,
            email_sender or get_email_sender(),
            invitee_id=new_id,
            invitee_email=email,
            invitee_name=person.get("displayName") or "",
            inviter_id=acting_user_id,
            inviter_name=inviter_name,
            family_tree_id=family_tree_id,
            family_tree_name=tree.get("treeName") or "",
            relationship=relation.value,
            prefill=user_data,
            settings=settings,
        )

    return OperationResult(success=True, user_id=new_id)


# ==================== Оновлення ====================

def update_family_member(
    store: PersonStore,
    acting_user_id: str,
    member_id: str,
    updated_data: Dict[str, Any],
    email_sender: Optional[EmailSender] = None,
    settings: Optional[Settings] = None,
) -> OperationResult:
    """
    Змінити не-реберні поля особи (ім'я, стать, email...).

    Новий або змінений email -> isPendingSignUp=True та запрошення.
    """
    updates = dict(updated_data)
    member = store.get_person(member_id, "Family member not found")

    family_tree_id = updates.pop("familyTreeId", None) or member.get("familyTreeId")
    if not family_tree_id:
        raise MissingParametersError("Family Tree ID is required.")
    ensure_member_of_tree(member, family_tree_id)

    tree = store.get_tree(family_tree_id)
    ensure_tree_manager(tree, acting_user_id, "update members in")

    forbidden = sorted(set(updates) & PROTECTED_FIELDS)
    if forbidden:
        raise InvalidArgumentError(
            f"These fields cannot be changed here: {', '.join(forbidden)}"
        )
    updates.pop("updatedAt", None)
    updates.pop("lastUpdatedBy", None)

    update_data: Dict[str, Any] = {
        **updates,
        "updatedAt": SERVER_TIMESTAMP,
        "lastUpdatedBy": acting_user_id,
    }
    if updates.get("firstName") and updates.get("lastName"):
        update_data["displayName"] = f"{updates['firstName']} {updates['lastName']}".strip()

    new_email = updates.get("email")
    is_new_email = bool(new_email) and new_email != member.get("email")
    if is_new_email:
        update_data["isPendingSignUp"] = True

    batch = store.batch()
    batch.update(USERS, member_id, update_data)
    store.commit(batch, "updateFamilyMember")

    if is_new_email:
        updater = store.find_person(acting_user_id) or {}
        send_member_invitation(
            store,
            email_sender or get_email_sender(),
            invitee_id=member_id,
            invitee_email=new_email,
            invitee_name=update_data.get("displayName") or member.get("displayName") or "",
            inviter_id=acting_user_id,
            inviter_name=display_name(updater) or DEFAULT_INVITER_NAME,
            family_tree_id=family_tree_id,
            family_tree_name=tree.get("treeName") or "",
            relationship="existing",
            prefill={
                "firstName": updates.get("firstName") or member.get("firstName"),
                "lastName": updates.get("lastName") or member.get("lastName"),
                "gender": updates.get("gender") or member.get("gender"),
                "phoneNumber": updates.get("phoneNumber") or member.get("phoneNumber"),
            },
            settings=settings,
        )

    return OperationResult(success=True)


# ==================== Видалення ====================

def delete_family_member(
    store: PersonStore,
    acting_user_id: str,
    member_id: str,
    family_tree_id: str,
    max_depth: Optional[int] = None,
) -> DeleteMemberResult:
    """
    Видалити особу разом з усіма дзеркальними ребрами.

    Returns:
        Перебудоване дерево з коренем у поточному користувачі
        (або власнику, або першому вузлі)

    Raises:
        NotFoundError: немає дерева або особи
        InvalidArgumentError: особа з іншого дерева
        PermissionDeniedError: недостатньо прав / спроба видалити власника
        AbortedError: у особи є діти, не спільні з подружжям
    """
    tree = store.get_tree(
        family_tree_id,
        "The family tree could not be found. Please refresh the page and try again.",
    )
    member = store.get_person(member_id, "Family member not found")
    ensure_member_of_tree(member, family_tree_id)

    ensure_tree_manager(tree, acting_user_id, "delete members from")
    if is_tree_owner(tree, member_id):
        raise PermissionDeniedError("The tree owner cannot be removed from the family tree.")
    if member.get("status") == MemberStatus.ACTIVE.value and not is_tree_owner(tree, acting_user_id):
        raise PermissionDeniedError(
            "This member has an active account. "
            "Only the tree owner can remove members with active accounts."
        )

    ensure_children_shared(store, member)

    relative_ids = (
        edge_ids(member, "parentIds")
        + edge_ids(member, "childrenIds")
        + edge_ids(member, "spouseIds")
    )
    existing = {doc["id"] for doc in store.get_projected(relative_ids, ("familyTreeId",))}

    changes = EdgeChangeSet()
    for field_name, relation in (("parentIds", "parent"), ("childrenIds", "child"), ("spouseIds", "spouse")):
        for other_id in edge_ids(member, field_name):
            if other_id in existing and other_id != member_id:
                changes.remove(member_id, relation, other_id)

    batch = store.batch()
    changes.write_to(batch, exclude={member_id}, extra_fields={"lastUpdatedBy": acting_user_id})
    batch.delete(USERS, member_id)
    batch.update(FAMILY_TREES, family_tree_id, {
        "memberUserIds": ArrayRemove((member_id,)),
        "adminUserIds": ArrayRemove((member_id,)),
        "memberCount": Increment(-1),
        "updatedAt": SERVER_TIMESTAMP,
        "lastUpdatedBy": acting_user_id,
    })
    store.commit(batch, "deleteFamilyMember")

    logger.info("🗑️ User %s deleted member %s from tree %s", acting_user_id, member_id, family_tree_id)

    view = regenerate_tree_view(
        store, family_tree_id, acting_user_id, tree.get("ownerUserId"), max_depth,
    )
    return DeleteMemberResult(success=True, tree_nodes=view.tree_nodes, root_node=view.root_node)


# ==================== Читання ====================

def _role(tree: Dict[str, Any], person_id: str) -> MemberRole:
    if is_tree_owner(tree, person_id):
        return MemberRole.OWNER
    if is_tree_admin(tree, person_id):
        return MemberRole.ADMIN
    return MemberRole.MEMBER


def get_family_tree_members(store: PersonStore, family_tree_id: str) -> List[Dict[str, Any]]:
    """Члени дерева з роллю та статусом для сторінки керування"""
    tree = store.get_tree(family_tree_id)
    result = []
    for data in store.get_tree_members(family_tree_id, fields=None):
        role = _role(tree, data["id"])
        is_pending = bool(data.get("isPendingSignUp"))
        result.append({
            "id": data["id"],
            "displayName": display_name(data),
            "email": data.get("email") or "",
            "profilePicture": data.get("profilePicture"),
            "role": role.value,
            "joinedAt": data.get("createdAt"),
            "status": (MemberStatus.INVITED if is_pending else MemberStatus.ACTIVE).value,
            "canAddMembers": role in (MemberRole.OWNER, MemberRole.ADMIN),
            "canEdit": is_pending,
            "isPendingSignUp": is_pending,
            "firstName": data.get("firstName"),
            "lastName": data.get("lastName"),
            "phoneNumber": data.get("phoneNumber"),
            "gender": data.get("gender"),
        })
    return result


def get_family_management_data(store: PersonStore, user_id: str) -> Dict[str, Any]:
    user = store.get_person(user_id, "User document not found")
    family_tree_id = user.get("familyTreeId")
    if not family_tree_id:
        raise NotFoundError("No family tree associated with this user")
    tree = store.get_tree(family_tree_id)

    members = [
        {
            "id": data["id"],
            "displayName": display_name(data),
            "profilePicture": data.get("profilePicture"),
            "createdAt": data.get("createdAt"),
            "isAdmin": is_tree_admin(tree, data["id"]),
            "isOwner": is_tree_owner(tree, data["id"]),
        }
        for data in store.get_tree_members(family_tree_id, fields=None)
    ]
    logger.debug("Management data for tree %s: %d members", family_tree_id, len(members))

    return {
        "tree": {
            "id": tree["id"],
            "ownerUserId": tree.get("ownerUserId"),
            "memberUserIds": tree.get("memberUserIds") or [],
            "adminUserIds": tree.get("adminUserIds") or [],
            "treeName": tree.get("treeName"),
            "memberCount": tree.get("memberCount"),
            "createdAt": tree.get("createdAt"),
        },
        "members": members,
    }
