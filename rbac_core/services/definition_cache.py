"""역할/권한 정의 캐시 — 읽기 위주 참조 데이터의 프로세스 내 스냅샷.

Definition cache — per-process snapshot of permission and role definitions.

Permission and role definitions change far less often than assignments, so
the resolver reads them from an immutable snapshot keyed by id. A snapshot
is reused until it is older than ``RBAC_CACHE_TTL_SECONDS`` or until a
definition mutation invalidates it. Mutating services call
``invalidate_on_commit`` so the snapshot is dropped immediately and again
once the surrounding transaction commits or rolls back.
"""

import logging
import time
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import AsyncSession

from rbac_core.config import settings
from rbac_core.models.permission import Permission
from rbac_core.models.role import Role
from rbac_core.schemas.conditions import ConditionSet, parse_conditions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PermissionDef:
    """권한 정의 스냅샷 (Immutable permission definition)."""

    id: UUID
    name: str
    module: str
    security_level: str
    is_active: bool
    audit_required: bool
    conditions: ConditionSet
    requires: frozenset[UUID] = frozenset()
    conflicts: frozenset[UUID] = frozenset()
    implies: frozenset[UUID] = frozenset()


@dataclass(frozen=True)
class RoleDef:
    """역할 정의 스냅샷 (Immutable role definition)."""

    id: UUID
    name: str
    level: int
    is_active: bool
    requires_approval: bool
    max_users: int | None
    permission_ids: frozenset[UUID] = frozenset()
    parent_ids: frozenset[UUID] = frozenset()
    assigner_ids: frozenset[UUID] = frozenset()


@dataclass
class DefinitionSnapshot:
    """권한/역할 정의 묶음.

    Attributes:
        permissions: id → PermissionDef
        roles: id → RoleDef
        loaded_at: time.monotonic() 기준 적재 시각 (Load time, monotonic clock)
    """

    permissions: dict[UUID, PermissionDef] = field(default_factory=dict)
    roles: dict[UUID, RoleDef] = field(default_factory=dict)
    loaded_at: float = 0.0
    _permission_names: dict[str, UUID] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        self._permission_names = {p.name: p.id for p in self.permissions.values()}

    def permission_by_name(self, name: str) -> PermissionDef | None:
        permission_id = self._permission_names.get(name)
        return self.permissions.get(permission_id) if permission_id is not None else None


def _permission_def(permission: Permission) -> PermissionDef:
    edges: dict[str, set[UUID]] = {"requires": set(), "conflicts": set(), "implies": set()}
    for dependency in permission.dependencies:
        edges[dependency.kind].add(dependency.depends_on_id)
    return PermissionDef(
        id=permission.id,
        name=permission.name,
        module=permission.module,
        security_level=permission.security_level,
        is_active=permission.is_active,
        audit_required=permission.audit_required,
        conditions=parse_conditions(permission.conditions),
        requires=frozenset(edges["requires"]),
        conflicts=frozenset(edges["conflicts"]),
        implies=frozenset(edges["implies"]),
    )


def _role_def(role: Role) -> RoleDef:
    return RoleDef(
        id=role.id,
        name=role.name,
        level=role.level,
        is_active=role.is_active,
        requires_approval=role.requires_approval,
        max_users=role.max_users,
        permission_ids=frozenset(rp.permission_id for rp in role.role_permissions),
        parent_ids=frozenset(edge.parent_id for edge in role.parents),
        assigner_ids=frozenset(edge.assigner_role_id for edge in role.assigners),
    )


class DefinitionCache:
    """TTL 기반 정의 스냅샷 캐시.

    Holds the current DefinitionSnapshot. Concurrent misses may each load;
    the last load started after the latest invalidation wins.
    """

    def __init__(self, ttl_seconds: float | None = None) -> None:
        self._ttl_override: float | None = ttl_seconds
        self._snapshot: DefinitionSnapshot | None = None
        self._generation: int = 0

    @property
    def ttl(self) -> float:
        return settings.RBAC_CACHE_TTL_SECONDS if self._ttl_override is None else self._ttl_override

    def _fresh(self, snapshot: DefinitionSnapshot | None) -> bool:
        return snapshot is not None and self.ttl > 0 and time.monotonic() - snapshot.loaded_at < self.ttl

    async def get(self, db: AsyncSession) -> DefinitionSnapshot:
        """유효한 스냅샷을 반환하고, 없으면 DB에서 적재합니다.

        Return a fresh snapshot, loading it through ``db`` when the cached
        one is missing or stale.
        """
        if self._fresh(self._snapshot):
            return self._snapshot  # type: ignore[return-value]
        generation: int = self._generation
        snapshot: DefinitionSnapshot = await self.load(db)
        # 적재 중 무효화되었으면 저장하지 않음
        if generation == self._generation and self.ttl > 0:
            self._snapshot = snapshot
        return snapshot

    async def load(self, db: AsyncSession) -> DefinitionSnapshot:
        """권한/역할 정의 전체를 읽어 새 스냅샷을 만듭니다 (Uncached load)."""
        permissions = (await db.execute(select(Permission))).scalars().all()
        roles = (await db.execute(select(Role))).scalars().all()
        snapshot = DefinitionSnapshot(
            permissions={p.id: _permission_def(p) for p in permissions},
            roles={r.id: _role_def(r) for r in roles},
            loaded_at=time.monotonic(),
        )
        logger.debug("Loaded definition snapshot: %d permissions, %d roles", len(snapshot.permissions), len(snapshot.roles))
        return snapshot

    def invalidate(self) -> None:
        """캐시된 스냅샷을 즉시 폐기합니다 (Drop the cached snapshot)."""
        self._generation += 1
        self._snapshot = None

    def invalidate_on_commit(self, db: AsyncSession) -> None:
        """지금 폐기하고, 현재 트랜잭션이 끝날 때 다시 폐기합니다.

        Invalidate now and once more when the session's transaction commits
        or rolls back, so a snapshot read mid-transaction never outlives it.
        """
        self.invalidate()
        sync_session = db.sync_session

        def _on_end(session) -> None:
            self.invalidate()

        event.listen(sync_session, "after_commit", _on_end, once=True)
        event.listen(sync_session, "after_rollback", _on_end, once=True)


# 싱글턴 인스턴스 — Singleton instance
definition_cache: DefinitionCache = DefinitionCache()
