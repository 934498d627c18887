"""
Представлення дерева
====================
Будує TreeNode для кожного члена дерева відносно кореневої особи.

- parents / children: з parentIds та (дзеркально) з childrenIds
- spouses: spouseIds, симетрично
- siblings: НЕ зберігаються, виводяться зі спільних батьків
- isBloodRelated: bounded BFS (blood_relation.py)

Чиста функція над одним масовим читанням - безпечно запускати паралельно.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from blood_relation import get_blood_related_set
from errors import NotFoundError
from models import NodeAttributes, RelationKind, RelationRef, RelationshipView, TreeNode
from person_store import PERSON_VIEW_FIELDS, PersonStore

logger = logging.getLogger(__name__)


@dataclass
class RelationshipMaps:
    """Попередньо обчислені мапи для O(1) пошуку"""
    child_to_parents: Dict[str, Set[str]] = field(default_factory=lambda: defaultdict(set))
    parent_to_children: Dict[str, Set[str]] = field(default_factory=lambda: defaultdict(set))
    person_to_spouses: Dict[str, Set[str]] = field(default_factory=lambda: defaultdict(set))
    valid_ids: Set[str] = field(default_factory=set)


def build_relationship_maps(members: Iterable[Dict[str, Any]]) -> RelationshipMaps:
    maps = RelationshipMaps()
    members = list(members)
    maps.valid_ids = {m["id"] for m in members}

    for member in members:
        person_id = member["id"]

        for parent_id in member.get("parentIds") or []:
            maps.child_to_parents[person_id].add(parent_id)
            maps.parent_to_children[parent_id].add(person_id)

        # Зворотний бік: childrenIds теж дає пару батько-дитина
        for child_id in member.get("childrenIds") or []:
            maps.child_to_parents[child_id].add(person_id)
            maps.parent_to_children[person_id].add(child_id)

        for spouse_id in member.get("spouseIds") or []:
            maps.person_to_spouses[person_id].add(spouse_id)
            maps.person_to_spouses[spouse_id].add(person_id)

    return maps


def find_siblings(person_id: str, maps: RelationshipMaps) -> Set[str]:
    """Брати/сестри - всі інші діти хоча б одного спільного батька"""
    siblings = set()
    for parent_id in maps.child_to_parents.get(person_id, ()):
        siblings.update(maps.parent_to_children.get(parent_id, ()))
    siblings.discard(person_id)
    return siblings


def _refs(ids: Iterable[str], kind: RelationKind, valid_ids: Set[str]) -> List[RelationRef]:
    return [RelationRef(id=i, type=kind) for i in sorted(ids) if i in valid_ids]


def display_name(data: Dict[str, Any]) -> str:
    if data.get("displayName"):
        return data["displayName"]
    return f"{data.get('firstName') or ''} {data.get('lastName') or ''}".strip()


def _gender(data: Dict[str, Any]) -> str:
    gender = (data.get("gender") or "other").lower()
    return gender if gender in ("male", "female") else "other"


def build_tree_nodes(
    root_id: str,
    members: List[Dict[str, Any]],
    tree_owner_id: Optional[str] = None,
    max_depth: Optional[int] = None,
) -> List[TreeNode]:
    """Побудувати вузли для всіх членів відносно root_id"""
    by_id = {m["id"]: m for m in members}
    blood_related = get_blood_related_set(root_id, by_id, max_depth)
    maps = build_relationship_maps(members)
    valid = maps.valid_ids

    nodes = []
    for data in members:
        person_id = data["id"]
        nodes.append(TreeNode(
            id=person_id,
            gender=_gender(data),
            parents=_refs(maps.child_to_parents.get(person_id, ()), RelationKind.BLOOD, valid),
            children=_refs(maps.parent_to_children.get(person_id, ()), RelationKind.BLOOD, valid),
            siblings=_refs(find_siblings(person_id, maps), RelationKind.BLOOD, valid),
            spouses=_refs(maps.person_to_spouses.get(person_id, ()), RelationKind.MARRIED, valid),
            attributes=NodeAttributes(
                display_name=display_name(data),
                profile_picture=data.get("profilePicture"),
                family_tree_id=data.get("familyTreeId"),
                is_blood_related=person_id in blood_related,
                tree_owner_id=tree_owner_id,
                email=data.get("email"),
                phone_number=data.get("phoneNumber"),
            ),
        ))
    return nodes


def get_family_tree_data(
    store: PersonStore,
    user_id: str,
    max_depth: Optional[int] = None,
) -> RelationshipView:
    """
    Дерево користувача відносно нього самого.

    Raises:
        NotFoundError: немає користувача, дерева, або familyTreeId
    """
    user = store.get_person(user_id, "User not found")
    family_tree_id = user.get("familyTreeId")
    if not family_tree_id:
        # Без дерева - ніякого масового читання
        raise NotFoundError("No family tree found for this user")

    members = store.get_tree_members(family_tree_id, PERSON_VIEW_FIELDS)
    tree = store.get_tree(family_tree_id)

    nodes = build_tree_nodes(user_id, members, tree.get("ownerUserId"), max_depth)
    logger.debug("Built %d tree nodes for %s in tree %s", len(nodes), user_id, family_tree_id)
    return RelationshipView(tree_nodes=nodes, root_node=user_id)


def regenerate_tree_view(
    store: PersonStore,
    family_tree_id: str,
    root_id: str,
    tree_owner_id: Optional[str] = None,
    max_depth: Optional[int] = None,
) -> RelationshipView:
    """
    Перебудувати дерево після мутації.

    Корінь: root_id, якщо він ще в дереві; інакше власник; інакше перший вузол.
    """
    members = store.get_tree_members(family_tree_id, PERSON_VIEW_FIELDS)
    member_ids = [m["id"] for m in members]

    if root_id not in member_ids:
        if tree_owner_id in member_ids:
            root_id = tree_owner_id
        elif member_ids:
            root_id = member_ids[0]

    nodes = build_tree_nodes(root_id, members, tree_owner_id, max_depth)
    return RelationshipView(tree_nodes=nodes, root_node=root_id if members else None)
