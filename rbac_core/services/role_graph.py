"""역할 그래프 서비스 — 역할 정의, 상속, 권한 폐포.

Role Graph Service — role definitions, inheritance edges and the
transitive permission closure.
Handles role CRUD with inheritsFrom cycle validation, conflicting-permission
checks, system-role protection and statistics derived from assignments.
"""

import logging
from collections import deque
from collections.abc import Iterable
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rbac_core.models.permission import Permission
from rbac_core.models.role import Role
from rbac_core.models.types import utcnow
from rbac_core.repositories.assignment_repository import assignment_repository
from rbac_core.repositories.permission_repository import permission_repository
from rbac_core.repositories.role_repository import role_repository
from rbac_core.schemas.role import (
    RoleConstraints,
    RoleCreate,
    RoleHierarchyLevel,
    RoleResponse,
    RoleStats,
    RoleUpdate,
    ScopeConfig,
)
from rbac_core.services.definition_cache import DefinitionSnapshot, RoleDef, definition_cache
from rbac_core.services.permission_catalog import conflicting_pairs, implied_ids
from rbac_core.utils.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from rbac_core.utils.graph import would_create_cycle

logger = logging.getLogger(__name__)


def role_grants(snapshot: DefinitionSnapshot, role_id: UUID) -> dict[UUID, UUID]:
    """역할 폐포의 권한 → 제공 역할 매핑.

    Map every permission in the role's inheritance closure to the role that
    supplies it, nearest role first (the role itself before its ancestors).
    Inactive roles and inactive permissions contribute nothing. The visited
    set keeps the walk finite even on cyclic input.
    """
    grants: dict[UUID, UUID] = {}
    visited: set[UUID] = set()
    queue: deque[UUID] = deque([role_id])
    while queue:
        current_id = queue.popleft()
        if current_id in visited:
            continue
        visited.add(current_id)
        role: RoleDef | None = snapshot.roles.get(current_id)
        if role is None or not role.is_active:
            continue
        for permission_id in role.permission_ids:
            permission = snapshot.permissions.get(permission_id)
            if permission is not None and permission.is_active:
                grants.setdefault(permission_id, current_id)
        queue.extend(role.parent_ids)
    return grants


def can_assign(role: RoleDef | Role, assigner_role_ids: Iterable[UUID]) -> bool:
    """할당자가 역할을 부여할 수 있는지 확인합니다.

    True unconditionally when the role does not require approval; otherwise
    true iff one of ``assigner_role_ids`` is listed as an assigner of it.
    """
    if not role.requires_approval:
        return True
    allowed: set[UUID] = (
        set(role.assigner_ids) if isinstance(role, RoleDef) else {edge.assigner_role_id for edge in role.assigners}
    )
    return any(role_id in allowed for role_id in assigner_role_ids)


def has_capacity(role: Role) -> bool:
    """정원이 남았는지 확인합니다 (max_users 미설정 또는 active_users < max_users)."""
    return role.max_users is None or role.active_users < role.max_users


class RoleGraph:
    """역할 정의와 상속 그래프를 관리하는 서비스."""

    async def to_response(self, db: AsyncSession, role: Role) -> RoleResponse:
        """역할 모델을 응답 스키마로 변환합니다 (간선은 이름으로 표시)."""
        permission_ids: set[UUID] = {rp.permission_id for rp in role.role_permissions}
        role_ids: set[UUID] = {edge.parent_id for edge in role.parents} | {
            edge.assigner_role_id for edge in role.assigners
        }
        permission_names: dict[UUID, str] = {}
        role_names: dict[UUID, str] = {}
        if permission_ids:
            rows = await db.execute(select(Permission.id, Permission.name).where(Permission.id.in_(permission_ids)))
            permission_names = {row.id: row.name for row in rows}
        if role_ids:
            rows = await db.execute(select(Role.id, Role.name).where(Role.id.in_(role_ids)))
            role_names = {row.id: row.name for row in rows}

        return RoleResponse(
            id=str(role.id),
            name=role.name,
            display_name=role.display_name,
            description=role.description,
            type=role.type,
            level=role.level,
            category=role.category,
            is_active=role.is_active,
            is_default=role.is_default,
            permissions=sorted(permission_names[pid] for pid in permission_ids if pid in permission_names),
            inherits_from=sorted(role_names[e.parent_id] for e in role.parents if e.parent_id in role_names),
            scope_config=ScopeConfig(
                allowed_scope_levels=list(role.allowed_scope_levels or []),
                default_scope_level=role.default_scope_level,
                allow_multiple_scopes=role.allow_multiple_scopes,
                max_scopes=role.max_scopes,
            ),
            constraints=RoleConstraints(
                max_users=role.max_users,
                requires_approval=role.requires_approval,
                assignable_by=sorted(
                    role_names[e.assigner_role_id] for e in role.assigners if e.assigner_role_id in role_names
                ),
                is_deletable=role.is_deletable,
                is_modifiable=role.is_modifiable,
            ),
            stats=RoleStats(
                total_users=role.total_users,
                active_users=role.active_users,
                last_assigned_at=role.last_assigned_at,
            ),
            created_at=role.created_at,
            updated_at=role.updated_at,
        )

    # ------------------------------------------------------------------
    # 조회 — Reads
    # ------------------------------------------------------------------

    async def get_role(self, db: AsyncSession, role_id: UUID) -> Role:
        """ID로 역할을 조회합니다.

        Raises:
            NotFoundError: 역할 없음 (Role not found)
        """
        role: Role | None = await role_repository.get_by_id(db, role_id)
        if role is None:
            raise NotFoundError("Role not found")
        return role

    async def get_role_by_name(self, db: AsyncSession, name: str) -> Role:
        """이름으로 역할을 조회합니다."""
        role: Role | None = await role_repository.get_by_name(db, name)
        if role is None:
            raise NotFoundError(f"Role not found: {name}")
        return role

    async def list_roles(self, db: AsyncSession, include_inactive: bool = False) -> list[Role]:
        """역할 목록 (level, name 순)."""
        return await role_repository.list_roles(db, include_inactive=include_inactive)

    async def roles_by_category(self, db: AsyncSession, category: str) -> list[Role]:
        """카테고리별 활성 역할 목록."""
        return await role_repository.list_roles(db, category=category)

    async def hierarchy(self, db: AsyncSession) -> list[RoleHierarchyLevel]:
        """활성 역할을 레벨별로 묶어 반환합니다 (레벨 0이 먼저).

        Active roles grouped by level, highest rank (level 0) first.
        """
        levels: dict[int, list[Role]] = {}
        for role in await role_repository.list_roles(db):
            levels.setdefault(role.level, []).append(role)
        return [
            RoleHierarchyLevel(level=level, roles=[await self.to_response(db, r) for r in roles])
            for level, roles in sorted(levels.items())
        ]

    async def effective_permissions(self, db: AsyncSession, role_id: UUID) -> set[str]:
        """역할의 전이적 권한 집합 (직접 + 모든 조상의 권한, 중복 제거).

        Names of the role's direct permissions plus those of every ancestor
        reached through inheritsFrom, deduplicated.
        """
        snapshot: DefinitionSnapshot = await definition_cache.get(db)
        if role_id not in snapshot.roles:
            raise NotFoundError("Role not found")
        return {snapshot.permissions[pid].name for pid in role_grants(snapshot, role_id)}

    # ------------------------------------------------------------------
    # 변경 — Mutations
    # ------------------------------------------------------------------

    async def _resolve_permissions(self, db: AsyncSession, names: list[str]) -> list[UUID]:
        unique: list[str] = list(dict.fromkeys(names))
        found: dict[str, Permission] = {p.name: p for p in await permission_repository.get_by_names(db, unique)}
        missing: list[str] = [name for name in unique if name not in found]
        if missing:
            raise NotFoundError(f"Permission not found: {', '.join(missing)}")
        inactive: list[str] = [name for name in unique if not found[name].is_active]
        if inactive:
            raise ValidationError(f"Permission is inactive: {', '.join(inactive)}")
        return [found[name].id for name in unique]

    async def _resolve_roles(self, db: AsyncSession, names: list[str]) -> list[UUID]:
        unique: list[str] = list(dict.fromkeys(names))
        found: dict[str, UUID] = {r.name: r.id for r in await role_repository.get_by_names(db, unique)}
        missing: list[str] = [name for name in unique if name not in found]
        if missing:
            raise NotFoundError(f"Role not found: {', '.join(missing)}")
        return [found[name] for name in unique]

    async def _check_conflicts(
        self,
        db: AsyncSession,
        role_name: str,
        permission_ids: list[UUID],
        parent_ids: list[UUID],
    ) -> None:
        """후보 역할의 유효 권한에 충돌 쌍이 있으면 거부합니다.

        Reject a candidate definition whose effective permissions (direct,
        inherited and implied) contain a conflicting pair.
        """
        snapshot: DefinitionSnapshot = await definition_cache.load(db)
        effective: set[UUID] = set(permission_ids)
        for parent_id in parent_ids:
            effective |= set(role_grants(snapshot, parent_id))
        pairs = conflicting_pairs(snapshot, implied_ids(snapshot, effective))
        if pairs:
            listed = ", ".join(f"{a} / {b}" for a, b in pairs)
            raise ValidationError(f"Role {role_name} would hold conflicting permissions: {listed}")

    async def create_role(self, db: AsyncSession, data: RoleCreate, actor_id: UUID | None = None) -> Role:
        """새 역할을 생성합니다.

        Create a role. Permissions, parents and assigners are given by name.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            data: 역할 정의 (Role definition)
            actor_id: 생성한 사용자 (Acting user, optional)

        Returns:
            Role: 생성된 역할 (Created role)

        Raises:
            ValidationError: 이름 중복, 순환 상속, 비활성/충돌 권한
                             (Duplicate name, inheritance cycle, inactive or conflicting permissions)
            NotFoundError: 참조한 권한/역할 없음 (Unknown permission or role name)
        """
        if await role_repository.get_by_name(db, data.name) is not None:
            raise ValidationError(f"Role already exists: {data.name}")
        if data.name in data.inherits_from:
            raise ValidationError(f"Circular inheritance detected for role {data.name}")

        permission_ids: list[UUID] = await self._resolve_permissions(db, data.permissions)
        parent_ids: list[UUID] = await self._resolve_roles(db, data.inherits_from)
        assigner_names: list[str] = [n for n in data.constraints.assignable_by if n != data.name]
        assigner_ids: list[UUID] = await self._resolve_roles(db, assigner_names)
        await self._check_conflicts(db, data.name, permission_ids, parent_ids)

        role = Role(
            id=uuid4(),
            name=data.name,
            display_name=data.display_name,
            description=data.description,
            type=data.type,
            level=data.level,
            category=data.category,
            is_active=True,
            is_default=data.is_default,
            allowed_scope_levels=list(data.scope_config.allowed_scope_levels),
            default_scope_level=data.scope_config.default_scope_level,
            allow_multiple_scopes=data.scope_config.allow_multiple_scopes,
            max_scopes=data.scope_config.max_scopes,
            max_users=data.constraints.max_users,
            requires_approval=data.constraints.requires_approval,
            is_deletable=data.constraints.is_deletable and data.type != "system",
            is_modifiable=data.constraints.is_modifiable and data.type != "system",
            total_users=0,
            active_users=0,
            created_by=actor_id,
            role_permissions=[],
            parents=[],
            assigners=[],
        )
        db.add(role)
        try:
            await db.flush()
        except IntegrityError as exc:
            raise ValidationError(f"Role already exists: {data.name}") from exc

        await role_repository.set_permissions(db, role, permission_ids)
        await role_repository.set_parents(db, role, parent_ids)
        if data.name in data.constraints.assignable_by:
            assigner_ids.append(role.id)
        await role_repository.set_assigners(db, role, assigner_ids)

        definition_cache.invalidate_on_commit(db)
        logger.info("Created role %s (level %d)", role.name, role.level)
        return role

    async def update_role(
        self,
        db: AsyncSession,
        role_id: UUID,
        data: RoleUpdate,
        actor_id: UUID | None = None,
    ) -> Role:
        """역할 정의를 수정합니다.

        Update a custom role. Inheritance changes are cycle-checked before
        anything is written, so a rejected update leaves the graph unchanged.

        Raises:
            NotFoundError: 역할 없음 (Role not found)
            AuthorizationError: 시스템 역할 또는 수정 불가 역할 (System or non-modifiable role)
            ValidationError: 순환 상속, 비활성/충돌 권한 (Inheritance cycle, inactive or conflicting permissions)
        """
        role: Role = await self.get_role(db, role_id)
        if role.type == "system" or not role.is_modifiable:
            raise AuthorizationError("System roles cannot be modified")

        permission_ids: list[UUID] | None = (
            await self._resolve_permissions(db, data.permissions) if data.permissions is not None else None
        )
        parent_ids: list[UUID] | None = None
        if data.inherits_from is not None:
            parent_ids = await self._resolve_roles(db, data.inherits_from)
            edges: dict[UUID, set[UUID]] = await role_repository.inheritance_edges(db)
            if would_create_cycle(edges, role.id, parent_ids):
                raise ValidationError(f"Circular inheritance detected for role {role.name}")
        assigner_ids: list[UUID] | None = None
        if data.constraints is not None:
            assigner_ids = await self._resolve_roles(db, data.constraints.assignable_by)

        await self._check_conflicts(
            db,
            role.name,
            permission_ids if permission_ids is not None else [rp.permission_id for rp in role.role_permissions],
            parent_ids if parent_ids is not None else [edge.parent_id for edge in role.parents],
        )

        changes: dict = {
            field: value
            for field, value in data.model_dump(
                exclude_unset=True,
                include={"display_name", "description", "level", "category", "is_active", "is_default"},
            ).items()
            if value is not None or field == "description"
        }
        if data.scope_config is not None:
            changes.update(
                allowed_scope_levels=list(data.scope_config.allowed_scope_levels),
                default_scope_level=data.scope_config.default_scope_level,
                allow_multiple_scopes=data.scope_config.allow_multiple_scopes,
                max_scopes=data.scope_config.max_scopes,
            )
        if data.constraints is not None:
            changes.update(
                max_users=data.constraints.max_users,
                requires_approval=data.constraints.requires_approval,
                is_deletable=data.constraints.is_deletable,
                is_modifiable=data.constraints.is_modifiable,
            )
        changes["updated_by"] = actor_id

        if permission_ids is not None:
            await role_repository.set_permissions(db, role, permission_ids)
        if parent_ids is not None:
            await role_repository.set_parents(db, role, parent_ids)
        if assigner_ids is not None:
            await role_repository.set_assigners(db, role, assigner_ids)
        role = await role_repository.update(db, role, changes)

        definition_cache.invalidate_on_commit(db)
        logger.info("Updated role %s", role.name)
        return role

    async def delete_role(self, db: AsyncSession, role_id: UUID, actor_id: UUID | None = None) -> None:
        """역할을 삭제합니다.

        Physically delete a custom role. Blocked while any active
        assignment references it; inactive assignments (including lapsed
        ones the sweep has not reached yet) are removed with it.

        Raises:
            NotFoundError: 역할 없음 (Role not found)
            AuthorizationError: 시스템 역할 또는 삭제 불가 역할 (System or non-deletable role)
            ConflictError: 활성 할당 존재 (Active assignments exist)
        """
        role: Role = await self.get_role(db, role_id)
        if role.type == "system" or not role.is_deletable:
            raise AuthorizationError("System roles cannot be deleted")

        await self.sync_stats(db, role)
        if role.active_users > 0:
            raise ConflictError(f"Role {role.name} has {role.active_users} active assignment(s)")

        for assignment in await assignment_repository.list_for_role(db, role.id):
            await db.delete(assignment)
        await role_repository.detach_references(db, role.id)
        await role_repository.delete(db, role)

        definition_cache.invalidate_on_commit(db)
        logger.info("Deleted role %s by %s", role.name, actor_id)

    async def sync_stats(self, db: AsyncSession, role: Role) -> Role:
        """할당 테이블에서 역할 통계를 재계산합니다.

        Recompute total_users / active_users / last_assigned_at from
        role_assignments inside the caller's transaction. Assignments past
        valid_until are not counted as active even before the sweep runs.
        """
        total, active, last_assigned_at = await assignment_repository.role_stats(db, role.id, utcnow())
        role.total_users = total
        role.active_users = active
        role.last_assigned_at = last_assigned_at
        await db.flush()
        return role


role_graph: RoleGraph = RoleGraph()
