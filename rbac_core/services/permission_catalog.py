"""권한 카탈로그 서비스 — 권한 정의 등록, 조회, 조건 검사.

Permission Catalog Service — registry of permission definitions.
Handles registration with requires-cycle validation, soft deactivation,
contextual condition validation and implies/conflicts queries.
"""

import logging
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rbac_core.config import settings
from rbac_core.models.permission import DEPENDENCY_KINDS, Permission
from rbac_core.models.types import utcnow
from rbac_core.repositories.permission_repository import permission_repository
from rbac_core.schemas.authorization import AccessContext
from rbac_core.schemas.conditions import ConditionSet, ConditionVerdict, dump_conditions, parse_conditions
from rbac_core.schemas.permission import (
    PermissionCreate,
    PermissionDependencies,
    PermissionResponse,
    PermissionUpdate,
)
from rbac_core.services.definition_cache import DefinitionSnapshot, PermissionDef, definition_cache
from rbac_core.utils.exceptions import NotFoundError, ValidationError
from rbac_core.utils.graph import reachable, would_create_cycle

logger = logging.getLogger(__name__)


def implied_ids(snapshot: DefinitionSnapshot, permission_ids: set[UUID]) -> set[UUID]:
    """implies 간선을 따라 확장한 id 집합 (입력 포함).

    Expand ``permission_ids`` along implies edges, memoized within this call
    by the shared visited set. The result includes the inputs.
    """
    edges: dict[UUID, frozenset[UUID]] = {pid: p.implies for pid, p in snapshot.permissions.items()}
    expanded: set[UUID] = set()
    for permission_id in permission_ids:
        if permission_id not in expanded:
            expanded |= reachable(edges, permission_id)
    return expanded


def conflicting_pairs(snapshot: DefinitionSnapshot, permission_ids: set[UUID]) -> list[tuple[str, str]]:
    """집합 안에서 서로 충돌하는 권한 이름 쌍 목록."""
    pairs: set[tuple[str, str]] = set()
    for permission_id in permission_ids:
        permission: PermissionDef | None = snapshot.permissions.get(permission_id)
        if permission is None:
            continue
        for other_id in permission.conflicts & permission_ids:
            other = snapshot.permissions[other_id]
            pairs.add(tuple(sorted((permission.name, other.name))))  # type: ignore[arg-type]
    return sorted(pairs)


class PermissionCatalog:
    """권한 정의 레지스트리.

    Registry of permission definitions. Permissions are never hard-deleted;
    ``deactivate`` clears the active flag instead.
    """

    async def to_response(self, db: AsyncSession, permission: Permission) -> PermissionResponse:
        """권한 모델을 응답 스키마로 변환합니다 (의존 간선은 이름으로 표시)."""
        target_ids: set[UUID] = {d.depends_on_id for d in permission.dependencies}
        names: dict[UUID, str] = {}
        if target_ids:
            rows = await db.execute(select(Permission.id, Permission.name).where(Permission.id.in_(target_ids)))
            names = {row.id: row.name for row in rows}
        edges: dict[str, list[str]] = {kind: [] for kind in DEPENDENCY_KINDS}
        for dependency in permission.dependencies:
            edges[dependency.kind].append(names.get(dependency.depends_on_id, str(dependency.depends_on_id)))
        return PermissionResponse(
            id=str(permission.id),
            name=permission.name,
            display_name=permission.display_name,
            description=permission.description,
            module=permission.module,
            category=permission.category,
            resource=permission.resource,
            action=permission.action,
            scope=permission.scope,
            security_level=permission.security_level,
            type=permission.type,
            priority=permission.priority,
            is_active=permission.is_active,
            audit_required=permission.audit_required,
            conditions=list(permission.conditions or []),
            dependencies=PermissionDependencies(**{kind: sorted(values) for kind, values in edges.items()}),
            created_at=permission.created_at,
            updated_at=permission.updated_at,
        )

    async def _resolve_names(self, db: AsyncSession, names: list[str]) -> list[UUID]:
        """권한 이름 목록을 id 목록으로 변환합니다 (순서 유지, 중복 제거).

        Raises:
            NotFoundError: 존재하지 않는 권한 이름 (Unknown permission name)
        """
        unique: list[str] = list(dict.fromkeys(names))
        found: dict[str, UUID] = {p.name: p.id for p in await permission_repository.get_by_names(db, unique)}
        missing: list[str] = [name for name in unique if name not in found]
        if missing:
            raise NotFoundError(f"Permission not found: {', '.join(missing)}")
        return [found[name] for name in unique]

    async def _apply_dependencies(
        self,
        db: AsyncSession,
        permission: Permission,
        dependencies: PermissionDependencies,
    ) -> None:
        resolved: dict[str, list[UUID]] = {
            kind: await self._resolve_names(db, getattr(dependencies, kind)) for kind in DEPENDENCY_KINDS
        }
        if permission.id in resolved["conflicts"]:
            raise ValidationError("A permission cannot conflict with itself")

        # requires 순환 검사 — 변경 전에 검사하여 실패 시 그래프 불변
        # Cycle check runs before any edge is written, so a failure leaves the graph unchanged
        edges: dict[UUID, set[UUID]] = await permission_repository.requires_edges(db)
        if would_create_cycle(edges, permission.id, resolved["requires"]):
            raise ValidationError(f"Circular dependency detected in requires of {permission.name}")

        for kind in DEPENDENCY_KINDS:
            await permission_repository.set_dependencies(db, permission, kind, resolved[kind])

    async def register(
        self,
        db: AsyncSession,
        data: PermissionCreate,
        actor_id: UUID | None = None,
    ) -> Permission:
        """새 권한을 등록합니다.

        Register a permission definition.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            data: 권한 정의 (Permission definition)
            actor_id: 등록한 사용자 (Acting user, optional)

        Returns:
            Permission: 등록된 권한 (Registered permission)

        Raises:
            ValidationError: 이름 중복 또는 requires 순환 (Duplicate name or requires cycle)
            NotFoundError: 의존 대상 권한 없음 (Unknown dependency target)
        """
        if await permission_repository.get_by_name(db, data.name) is not None:
            raise ValidationError(f"Permission already exists: {data.name}")

        # 의존 간선 검증을 먼저 수행 — Validate edges before inserting anything
        if data.name in data.dependencies.requires:
            raise ValidationError(f"Circular dependency detected in requires of {data.name}")
        if data.name in data.dependencies.conflicts:
            raise ValidationError("A permission cannot conflict with itself")
        for kind in DEPENDENCY_KINDS:
            await self._resolve_names(db, getattr(data.dependencies, kind))
        new_id: UUID = uuid4()

        permission = Permission(
            id=new_id,
            name=data.name,
            display_name=data.display_name,
            description=data.description,
            module=data.module,
            category=data.category,
            resource=data.resource,
            action=data.action,
            scope=data.scope,
            security_level=data.security_level,
            type=data.type,
            priority=data.priority,
            is_active=True,
            audit_required=data.audit_required,
            conditions=dump_conditions(ConditionSet(conditions=data.conditions).conditions),
            created_by=actor_id,
            dependencies=[],
        )
        db.add(permission)
        try:
            await db.flush()
        except IntegrityError as exc:
            raise ValidationError(f"Permission already exists: {data.name}") from exc

        await self._apply_dependencies(db, permission, data.dependencies)
        definition_cache.invalidate_on_commit(db)
        logger.info("Registered permission %s", permission.name)
        return permission

    async def get(self, db: AsyncSession, name: str, include_inactive: bool = False) -> Permission:
        """이름으로 권한을 조회합니다.

        Raises:
            NotFoundError: 없거나 비활성 (Missing, or inactive unless include_inactive)
        """
        permission: Permission | None = await permission_repository.get_by_name(db, name)
        if permission is None or (not permission.is_active and not include_inactive):
            raise NotFoundError(f"Permission not found: {name}")
        return permission

    async def list_by_module(self, db: AsyncSession, module: str, include_inactive: bool = False) -> list[Permission]:
        """모듈별 권한 목록 (category, name 순)."""
        return await permission_repository.list_filtered(db, module=module, include_inactive=include_inactive)

    async def list_by_security_level(
        self, db: AsyncSession, security_level: str, include_inactive: bool = False
    ) -> list[Permission]:
        """보안 등급별 권한 목록 (module, category 순)."""
        return await permission_repository.list_filtered(
            db, security_level=security_level, include_inactive=include_inactive
        )

    async def list_all(self, db: AsyncSession, include_inactive: bool = False) -> list[Permission]:
        """전체 권한 목록 (module, name 순)."""
        return await permission_repository.list_filtered(db, include_inactive=include_inactive)

    async def update(
        self,
        db: AsyncSession,
        name: str,
        data: PermissionUpdate,
        actor_id: UUID | None = None,
    ) -> Permission:
        """권한 정의를 수정합니다.

        Update display fields, conditions, flags and dependency edges.
        Dependency changes re-run the requires cycle check.

        Raises:
            NotFoundError: 권한 없음 (Unknown permission)
            ValidationError: requires 순환 (Requires cycle)
        """
        permission: Permission = await self.get(db, name, include_inactive=True)
        changes: dict = {
            field: value
            for field, value in data.model_dump(exclude_unset=True, exclude={"conditions", "dependencies"}).items()
            if value is not None or field == "description"
        }

        if data.dependencies is not None:
            await self._apply_dependencies(db, permission, data.dependencies)
        if "conditions" in data.model_fields_set:
            changes["conditions"] = dump_conditions(ConditionSet(conditions=data.conditions or []).conditions)
        changes["updated_by"] = actor_id

        permission = await permission_repository.update(db, permission, changes)
        definition_cache.invalidate_on_commit(db)
        logger.info("Updated permission %s", permission.name)
        return permission

    async def deactivate(self, db: AsyncSession, name: str, actor_id: UUID | None = None) -> Permission:
        """권한을 비활성화합니다 — 물리 삭제 없음 (Soft-disable only)."""
        permission: Permission = await self.get(db, name, include_inactive=True)
        permission = await permission_repository.update(db, permission, {"is_active": False, "updated_by": actor_id})
        definition_cache.invalidate_on_commit(db)
        logger.info("Deactivated permission %s", permission.name)
        return permission

    def validate_conditions(
        self,
        permission: Permission | PermissionDef,
        context: AccessContext | None = None,
    ) -> ConditionVerdict:
        """권한 조건을 컨텍스트에 대해 검사합니다.

        Validate a permission's conditions against the evaluation context.
        Order: time window, allowed weekdays, IP block list, IP allow list.
        The approval condition never denies; it is reported as
        ``requires_approval``. No configured conditions means valid.

        Args:
            permission: 권한 모델 또는 스냅샷 정의 (Permission row or snapshot definition)
            context: 평가 시각과 요청 IP (Subject timestamp and source IP)

        Returns:
            ConditionVerdict: (valid, reason, requires_approval)
        """
        conditions: ConditionSet = (
            permission.conditions
            if isinstance(permission.conditions, ConditionSet)
            else parse_conditions(permission.conditions)
        )
        context = context or AccessContext()
        timestamp: datetime = context.timestamp or utcnow()
        default_tz: str = settings.RBAC_DEFAULT_TIMEZONE

        approval = conditions.first("approval")
        requires_approval: bool = bool(approval and approval.required)

        reasons: list[str | None] = []
        window = conditions.first("time_window")
        if window is not None:
            reasons.append(window.check(timestamp, default_tz))
        weekdays = conditions.first("weekdays")
        if weekdays is not None:
            reasons.append(weekdays.check(timestamp, default_tz))
        ip = conditions.first("ip")
        if ip is not None:
            reasons.append(ip.check_blocked(context.source_ip))
            reasons.append(ip.check_allowed(context.source_ip))

        reason: str | None = next((r for r in reasons if r is not None), None)
        return ConditionVerdict(valid=reason is None, reason=reason, requires_approval=requires_approval)

    async def implied_closure(self, db: AsyncSession, name: str) -> set[str]:
        """implies 간선을 재귀적으로 확장한 권한 이름 집합 (자기 자신 제외).

        Flat set of permission names implied, directly or transitively, by
        ``name``.
        """
        snapshot: DefinitionSnapshot = await definition_cache.get(db)
        permission: PermissionDef | None = snapshot.permission_by_name(name)
        if permission is None:
            raise NotFoundError(f"Permission not found: {name}")
        ids: set[UUID] = implied_ids(snapshot, {permission.id}) - {permission.id}
        return {snapshot.permissions[pid].name for pid in ids}

    async def conflicts_with(self, db: AsyncSession, name: str, other: str) -> bool:
        """두 권한이 충돌하는지 확인합니다 (대칭)."""
        snapshot: DefinitionSnapshot = await definition_cache.get(db)
        first: PermissionDef | None = snapshot.permission_by_name(name)
        second: PermissionDef | None = snapshot.permission_by_name(other)
        if first is None or second is None:
            raise NotFoundError(f"Permission not found: {name if first is None else other}")
        return second.id in first.conflicts or first.id in second.conflicts


permission_catalog: PermissionCatalog = PermissionCatalog()
