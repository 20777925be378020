"""식별자 기반 그래프 헬퍼 — 순환 검사 및 전이 폐포.

Identifier-keyed graph helpers used by the permission catalog and role graph.
Edges are adjacency sets keyed by stable ids (never live ORM objects).
"""

from collections.abc import Hashable, Iterable, Mapping
from typing import TypeVar

K = TypeVar("K", bound=Hashable)


def would_create_cycle(
    edges: Mapping[K, Iterable[K]],
    node: K,
    new_targets: Iterable[K],
) -> bool:
    """node의 간선을 new_targets로 교체했을 때 순환이 생기는지 확인합니다.

    Return True if replacing ``node``'s outgoing edges with ``new_targets``
    would make ``node`` reachable from itself. Depth-first walk with a
    visited set, so diamonds are visited once.

    Args:
        edges: 현재 인접 집합 (Current adjacency sets)
        node: 수정 대상 노드 (Node whose edges are being replaced)
        new_targets: 새 간선 대상 (Proposed outgoing edges)
    """
    stack: list[K] = list(new_targets)
    visited: set[K] = set()
    while stack:
        current = stack.pop()
        if current == node:
            return True
        if current in visited:
            continue
        visited.add(current)
        stack.extend(edges.get(current, ()))
    return False


def reachable(edges: Mapping[K, Iterable[K]], start: K) -> set[K]:
    """start에서 도달 가능한 모든 노드 (start 포함).

    All nodes reachable from ``start`` following ``edges``, including
    ``start`` itself. Terminates on cyclic input.
    """
    seen: set[K] = {start}
    stack: list[K] = [start]
    while stack:
        current = stack.pop()
        for target in edges.get(current, ()):
            if target not in seen:
                seen.add(target)
                stack.append(target)
    return seen
