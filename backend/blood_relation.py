"""
Кровна спорідненість
====================
Обмежений BFS по ребрах батьки/діти від кореневої особи.

- Подружні ребра НЕ проходяться: чоловік/дружина кровний родич лише
  якщо досяжний через спільних предків/нащадків.
- Стеля глибини (MAX_RELATION_TRAVERSAL_DEPTH) захищає від дуже
  глибоких або некоректних дерев: перевищення -> warning і зупинка,
  особи за стелею вважаються не кровними.
"""

import logging
from typing import Any, Dict, Mapping, Optional, Set

from config import get_settings

logger = logging.getLogger(__name__)


def get_blood_related_set(
    root_id: str,
    members: Mapping[str, Dict[str, Any]],
    max_depth: Optional[int] = None,
) -> Set[str]:
    """
    Всі id, досяжні від root_id через parentIds/childrenIds за max_depth рівнів.

    Args:
        root_id: особа, відносно якої рахуємо спорідненість
        members: id -> документ особи (потрібні parentIds, childrenIds)
        max_depth: стеля рівнів (за замовчуванням з налаштувань)

    Returns:
        Множина id (корінь завжди включено)
    """
    if max_depth is None:
        max_depth = get_settings().max_relation_depth

    visited = {root_id}
    frontier = [root_id]
    depth = 0

    while frontier:
        next_frontier = []
        queued = set()
        for person_id in frontier:
            data = members.get(person_id)
            if not data:
                continue
            for relative_id in (data.get("parentIds") or []) + (data.get("childrenIds") or []):
                if relative_id not in visited and relative_id not in queued:
                    queued.add(relative_id)
                    next_frontier.append(relative_id)

        if not next_frontier:
            break

        if depth >= max_depth:
            logger.warning(
                "Max blood relation depth %d exceeded during blood relation scan from %s "
                "(%d relatives left unvisited)",
                max_depth,
                root_id,
                len(next_frontier),
            )
            break

        visited.update(next_frontier)
        frontier = next_frontier
        depth += 1

    return visited
