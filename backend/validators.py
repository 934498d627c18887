"""
Валідатори для Родового дерева
==============================
Перевірка топологічних помилок перед записом в БД.

Категорії:
- C1, C2: Самопосилання (шлюб із собою, бути своїм батьком)
- C3: Цикли (особа стає власним предком)
- C5: Подружжя, яке водночас батько/дитина

Модель дерева не підтримує циклів, тому C3 блокує операцію.
"""

from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Set, Tuple


class ValidationLevel(str, Enum):
    ERROR = "error"      # Блокує операцію
    WARNING = "warning"  # Попередження, але дозволяє


@dataclass
class ValidationResult:
    """Результат валідації"""
    valid: bool
    level: ValidationLevel
    code: str
    message: str

    def __str__(self):
        icon = "❌" if self.level == ValidationLevel.ERROR else "⚠️"
        return f"{icon} [{self.code}] {self.message}"


def parents_map(members: Iterable[Dict[str, Any]]) -> Dict[str, Set[str]]:
    """child -> parents з обох боків ребра (parentIds та childrenIds)"""
    result: Dict[str, Set[str]] = defaultdict(set)
    for member in members:
        for parent_id in member.get("parentIds") or []:
            result[member["id"]].add(parent_id)
        for child_id in member.get("childrenIds") or []:
            result[child_id].add(member["id"])
    return result


def ancestors_of(person_id: str, child_to_parents: Mapping[str, Set[str]]) -> Set[str]:
    """Всі предки особи (ітеративно, з visited)"""
    seen: Set[str] = set()
    stack = list(child_to_parents.get(person_id, ()))
    while stack:
        current = stack.pop()
        if current in seen:
            continue
        seen.add(current)
        stack.extend(child_to_parents.get(current, ()))
    return seen


class FamilyValidator:
    """
    Валідатор ребер родини.

    Використання:
        validator = FamilyValidator()
        ok, results = validator.validate_relationship_updates(
            person_id, new_parents, new_children, new_spouses,
            removed_children, members
        )
    """

    def validate_self_reference(
        self,
        person_id: str,
        other_id: str,
        relation_type: str
    ) -> List[ValidationResult]:
        """C1, C2: Перевірка самопосилань"""
        results = []

        if person_id == other_id:
            code_map = {
                "spouse": ("C1_SELF_MARRIAGE", "A person cannot be their own spouse"),
                "parent": ("C2_SELF_PARENT", "A person cannot be their own parent"),
                "child": ("C2_SELF_CHILD", "A person cannot be their own child"),
            }
            code, msg = code_map.get(relation_type, ("C0_SELF_REF", "Self references are not allowed"))
            results.append(ValidationResult(
                valid=False,
                level=ValidationLevel.ERROR,
                code=code,
                message=msg
            ))

        return results

    def validate_no_cycle(
        self,
        person_id: str,
        child_to_parents: Mapping[str, Set[str]]
    ) -> List[ValidationResult]:
        """C3: Особа не може бути власним предком"""
        results = []

        if person_id in ancestors_of(person_id, child_to_parents):
            results.append(ValidationResult(
                valid=False,
                level=ValidationLevel.ERROR,
                code="C3_CYCLE_DETECTED",
                message="This change would make the person their own ancestor"
            ))

        return results

    def validate_parents_count(
        self,
        person_id: str,
        parent_ids: Set[str]
    ) -> List[ValidationResult]:
        """C4: Більше двох батьків - попередження (прийомні батьки дозволені)"""
        results = []

        if len(parent_ids) > 2:
            results.append(ValidationResult(
                valid=True,
                level=ValidationLevel.WARNING,
                code="C4_MORE_THAN_TWO_PARENTS",
                message=f"{person_id} would have {len(parent_ids)} parents"
            ))

        return results

    def validate_spouse_not_parent_or_child(
        self,
        spouse_ids: Set[str],
        parent_ids: Set[str],
        children_ids: Set[str]
    ) -> List[ValidationResult]:
        """C5: Одна й та сама особа не може бути і подружжям, і батьком/дитиною"""
        results = []

        conflicts = spouse_ids & (parent_ids | children_ids)
        if conflicts:
            results.append(ValidationResult(
                valid=False,
                level=ValidationLevel.ERROR,
                code="C5_SPOUSE_IS_PARENT_OR_CHILD",
                message=f"A spouse cannot also be a parent or child: {', '.join(sorted(conflicts))}"
            ))

        return results

    # ==================== Комплексна валідація ====================

    def validate_relationship_updates(
        self,
        person_id: str,
        new_parents: Set[str],
        new_children: Set[str],
        new_spouses: Set[str],
        removed_children: Set[str],
        members: List[Dict[str, Any]]
    ) -> Tuple[bool, List[ValidationResult]]:
        """
        Повна валідація нових множин ребер однієї особи.

        Граф після зміни будується з поточних членів дерева з підміненими
        ребрами особи; решта дерева вважається ациклічною, тому
        достатньо перевірити цикл через саму особу.
        """
        results = []

        for parent_id in new_parents:
            results.extend(self.validate_self_reference(person_id, parent_id, "parent"))
        for child_id in new_children:
            results.extend(self.validate_self_reference(person_id, child_id, "child"))
        for spouse_id in new_spouses:
            results.extend(self.validate_self_reference(person_id, spouse_id, "spouse"))

        results.extend(self.validate_spouse_not_parent_or_child(new_spouses, new_parents, new_children))

        child_to_parents = parents_map(members)
        child_to_parents[person_id] = set(new_parents)
        for child_id in removed_children:
            child_to_parents[child_id].discard(person_id)
        for child_id in new_children:
            child_to_parents[child_id].add(person_id)

        results.extend(self.validate_no_cycle(person_id, child_to_parents))

        results.extend(self.validate_parents_count(person_id, child_to_parents[person_id]))
        for child_id in sorted(new_children):
            results.extend(self.validate_parents_count(child_id, child_to_parents[child_id]))

        errors = [r for r in results if r.level == ValidationLevel.ERROR]
        return len(errors) == 0, results


# ==================== Утиліти ====================

def format_validation_results(results: List[ValidationResult]) -> str:
    """Форматувати результати для виводу"""
    if not results:
        return "✅ Validation passed"

    lines = []
    errors = [r for r in results if r.level == ValidationLevel.ERROR]
    warnings = [r for r in results if r.level == ValidationLevel.WARNING]

    if errors:
        lines.append("❌ ERRORS:")
        for r in errors:
            lines.append(f"   {r}")

    if warnings:
        lines.append("⚠️ WARNINGS:")
        for r in warnings:
            lines.append(f"   {r}")

    return "\n".join(lines)
