"""범위 평가 — 리소스가 할당의 범위 제한 안에 있는지 판정.

Scope evaluation. A resource is described by tags ``{kind, id}`` with kind
region / project / scheme. For every kind present on the resource, the
assignment must either be unrestricted for that kind or share at least one
id with the tags. Kinds absent from the resource never deny.
"""

from collections.abc import Iterable

from rbac_core.models.assignment import RoleAssignment
from rbac_core.schemas.authorization import ResourceTag

SCOPE_KINDS: tuple[str, ...] = ("region", "project", "scheme")


def restriction_for(assignment: RoleAssignment, kind: str) -> set[str]:
    """할당의 종류별 범위 제한 id 집합 (빈 집합 = 무제한)."""
    if kind == "region":
        values = assignment.scope_regions
    elif kind == "project":
        values = assignment.scope_projects
    else:
        values = assignment.scope_schemes
    return {str(value) for value in values or []}


def in_scope(assignment: RoleAssignment, tags: Iterable[ResourceTag]) -> bool:
    """리소스 태그가 할당 범위에 포함되는지 확인합니다.

    Args:
        assignment: 검사할 할당 (Assignment whose restriction applies)
        tags: 리소스 태그 목록 (Resource tags)

    Returns:
        bool: 리소스에 있는 모든 종류에 대해 무제한이거나 교집합이 있으면 True
    """
    tagged: dict[str, set[str]] = {}
    for tag in tags:
        tagged.setdefault(tag.kind, set()).add(tag.id)

    for kind, ids in tagged.items():
        restriction: set[str] = restriction_for(assignment, kind)
        if restriction and not (restriction & ids):
            return False
    return True
