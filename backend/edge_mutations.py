"""
Мутації ребер
=============
Сховище не має зовнішніх ключів, тому кожна логічна зміна ребра
(додати батька, прибрати подружжя, ...) має породжувати ДВА оновлення:
на самій особі і дзеркальне на іншій. EdgeChangeSet збирає такі пари,
а потім записує все в один пакет.

Дзеркала:
- parentIds  <-> childrenIds
- spouseIds  <-> spouseIds
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

from document_store import SERVER_TIMESTAMP, USERS, WriteBatch, ArrayRemove, ArrayUnion
from errors import InvalidArgumentError, NotFoundError
from models import OperationResult, RelationshipUpdates
from person_store import EDGE_FIELDS, PersonStore, edge_ids
from validators import FamilyValidator, format_validation_results

logger = logging.getLogger(__name__)


RELATION_FIELDS = {
    "parent": "parentIds",
    "child": "childrenIds",
    "spouse": "spouseIds",
}

MIRROR_FIELDS = {
    "parentIds": "childrenIds",
    "childrenIds": "parentIds",
    "spouseIds": "spouseIds",
}


class EdgeChangeSet:
    """
    Набір змін ребер з автоматичними дзеркалами.

    Використання:
        changes = EdgeChangeSet()
        changes.add("child_1", "parent", "mom")   # + mom.childrenIds += child_1
        changes.remove("a", "spouse", "b")        # + b.spouseIds -= a
        changes.write_to(batch)

    Остання дія над тією самою парою перемагає.
    """

    def __init__(self):
        # (person_id, field) -> {other_id: True (add) | False (remove)}
        self._changes: Dict[Tuple[str, str], Dict[str, bool]] = {}

    def add(self, person_id: str, relation: str, other_id: str) -> "EdgeChangeSet":
        self._record(person_id, RELATION_FIELDS[relation], other_id, True)
        return self

    def remove(self, person_id: str, relation: str, other_id: str) -> "EdgeChangeSet":
        self._record(person_id, RELATION_FIELDS[relation], other_id, False)
        return self

    def _record(self, person_id: str, field_name: str, other_id: str, is_add: bool) -> None:
        self._changes.setdefault((person_id, field_name), {})[other_id] = is_add
        self._changes.setdefault((other_id, MIRROR_FIELDS[field_name]), {})[person_id] = is_add

    def __bool__(self):
        return bool(self._changes)

    def person_ids(self) -> Set[str]:
        return {person_id for person_id, _ in self._changes}

    def changes_for(self, person_id: str) -> Dict[str, Dict[str, bool]]:
        return {
            field_name: dict(others)
            for (pid, field_name), others in self._changes.items()
            if pid == person_id
        }

    def write_to(
        self,
        batch: WriteBatch,
        exclude: Iterable[str] = (),
        extra_fields: Optional[Dict[str, Any]] = None,
    ) -> int:
        """
        Записати зміни в пакет (ArrayRemove, потім ArrayUnion на особу).

        Args:
            exclude: особи, чиї ребра пишуться явно іншим оновленням
            extra_fields: додаткові поля до кожного оновлення (lastUpdatedBy...)

        Returns:
            Кількість доданих операцій
        """
        skip = set(exclude)
        grouped: Dict[str, Dict[str, Dict[str, bool]]] = {}
        for (person_id, field_name), others in self._changes.items():
            if person_id in skip:
                continue
            grouped.setdefault(person_id, {})[field_name] = others

        count = 0
        for person_id, fields in grouped.items():
            removals = {}
            unions = {}
            for field_name, others in fields.items():
                added = tuple(other for other, is_add in others.items() if is_add)
                removed = tuple(other for other, is_add in others.items() if not is_add)
                if removed:
                    removals[field_name] = ArrayRemove(removed)
                if added:
                    unions[field_name] = ArrayUnion(added)

            if removals:
                batch.update(USERS, person_id, removals)
                count += 1
            batch.update(USERS, person_id, {
                **unions,
                "updatedAt": SERVER_TIMESTAMP,
                **(extra_fields or {}),
            })
            count += 1
        return count


def merge_edge_list(current: List[str], remove: Iterable[str], add: Iterable[str]) -> List[str]:
    """(current - remove) | add, зберігаючи порядок"""
    add = list(dict.fromkeys(add))
    drop = set(remove) - set(add)
    result = [i for i in current if i not in drop]
    result.extend(i for i in add if i not in result)
    return result


# Поля запиту -> (поле документа, відношення для EdgeChangeSet)
_UPDATE_PLAN = (
    ("parentIds", "parent", "add_parents", "remove_parents"),
    ("childrenIds", "child", "add_children", "remove_children"),
    ("spouseIds", "spouse", "add_spouses", "remove_spouses"),
)


def update_family_relationships(
    store: PersonStore,
    acting_user_id: str,
    user_id: str,
    updates: Union[RelationshipUpdates, Dict[str, Any]],
    validator: Optional[FamilyValidator] = None,
) -> OperationResult:
    """
    Змінити ребра особи user_id одним атомарним пакетом.

    Для кожного доданого/прибраного id у той самий пакет потрапляє
    дзеркальне оновлення на іншій особі.

    Raises:
        NotFoundError: особа або доданий родич не існує
        InvalidArgumentError: родич з іншого дерева, самопосилання, цикл
        InternalError: пакет не закомітився (змін немає)
    """
    if isinstance(updates, dict):
        updates = RelationshipUpdates.model_validate(updates)
    if updates.is_empty():
        return OperationResult(success=True, message="No relationship changes requested")

    person = store.get_person(user_id)
    family_tree_id = person.get("familyTreeId")
    if not family_tree_id:
        raise NotFoundError("No family tree found for this user")

    added_ids: Set[str] = set()
    referenced_ids: Set[str] = set()
    for _, _, add_attr, remove_attr in _UPDATE_PLAN:
        added_ids.update(getattr(updates, add_attr))
        referenced_ids.update(getattr(updates, add_attr))
        referenced_ids.update(getattr(updates, remove_attr))
    referenced_ids.discard(user_id)

    relatives = {
        doc["id"]: doc
        for doc in store.get_projected(referenced_ids, ("familyTreeId",))
    }
    for other_id in sorted(added_ids - {user_id}):
        relative = relatives.get(other_id)
        if relative is None:
            raise NotFoundError(f"Person {other_id} not found")
        if relative.get("familyTreeId") != family_tree_id:
            raise InvalidArgumentError(f"Person {other_id} is not part of this family tree")

    new_edges = {}
    for field_name, _, add_attr, remove_attr in _UPDATE_PLAN:
        new_edges[field_name] = merge_edge_list(
            edge_ids(person, field_name),
            getattr(updates, remove_attr),
            getattr(updates, add_attr),
        )

    validator = validator or FamilyValidator()
    members = store.get_tree_members(family_tree_id, EDGE_FIELDS)
    is_valid, results = validator.validate_relationship_updates(
        person_id=user_id,
        new_parents=set(new_edges["parentIds"]),
        new_children=set(new_edges["childrenIds"]),
        new_spouses=set(new_edges["spouseIds"]),
        removed_children=set(updates.remove_children) - set(updates.add_children),
        members=members,
    )
    if not is_valid:
        raise InvalidArgumentError(format_validation_results(results))
    if results:
        logger.warning(
            "Relationship update of %s accepted with warnings:\n%s",
            user_id, format_validation_results(results),
        )

    changes = EdgeChangeSet()
    person_update: Dict[str, Any] = {}
    for field_name, relation, add_attr, remove_attr in _UPDATE_PLAN:
        to_add = getattr(updates, add_attr)
        to_remove = getattr(updates, remove_attr)
        if not to_add and not to_remove:
            continue
        person_update[field_name] = new_edges[field_name]
        for other_id in to_remove:
            # Видаленого родича вже немає - дзеркалити нікуди
            if other_id in relatives:
                changes.remove(user_id, relation, other_id)
        for other_id in to_add:
            changes.add(user_id, relation, other_id)

    batch = store.batch()
    batch.update(USERS, user_id, {
        **person_update,
        "updatedAt": SERVER_TIMESTAMP,
        "lastUpdatedBy": acting_user_id,
    })
    changes.write_to(batch, exclude={user_id})
    store.commit(batch, "updateFamilyRelationships")

    logger.info(
        "User %s updated relationships of %s (%d mirrored persons)",
        acting_user_id, user_id, len(changes.person_ids() - {user_id}),
    )
    return OperationResult(success=True)
