"""권한 판정 서비스 — 사용자의 유효 권한 계산과 권한 검사.

Permission Resolver Service.
Combines every currently valid assignment of a user into the effective
permission set and answers point queries with contextual condition checks.

Per assignment, in this order:
    1. 역할 폐포 (Role closure: direct + inherited, active roles/permissions only)
    2. 추가 권한 (In-force additional permissions)
    3. implies 확장 (Expand implies edges)
    4. 제한 권한 제거 (Subtract in-force restrictions; restrictions always win)
The per-assignment results are unioned across assignments.

Every boolean check is fail-closed: unknown input, datastore errors and
deadline overruns resolve to a denial with a reason, never to an exception.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from rbac_core.config import settings
from rbac_core.models.assignment import RoleAssignment
from rbac_core.models.types import utcnow
from rbac_core.models.user import User
from rbac_core.repositories.assignment_repository import assignment_repository
from rbac_core.repositories.user_repository import user_repository
from rbac_core.schemas.authorization import (
    AccessContext,
    AssignmentExplanation,
    PermissionCheckResult,
    PermissionExplanation,
    PermissionListCheckResult,
    ResourceTag,
    UserScope,
)
from rbac_core.schemas.conditions import ConditionVerdict
from rbac_core.services.definition_cache import DefinitionSnapshot, PermissionDef, definition_cache
from rbac_core.services.permission_catalog import implied_ids, permission_catalog
from rbac_core.services.role_graph import role_grants
from rbac_core.services.scope_evaluator import SCOPE_KINDS, in_scope, restriction_for
from rbac_core.utils.exceptions import NotFoundError
from rbac_core.utils.graph import reachable
from rbac_core.utils.retry import idempotent

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class AssignmentGrants:
    """할당 하나의 권한 계산 결과.

    Attributes:
        granted: 유효 권한 id → 출처 (role | inherited | implied | override)
        via: 권한 id → 제공 역할 id (Role that supplied a role/inherited grant)
        restricted: 제한되어 제거된 권한 id (Removed by an in-force restriction)
    """

    assignment: RoleAssignment
    granted: dict[UUID, str] = field(default_factory=dict)
    via: dict[UUID, UUID] = field(default_factory=dict)
    restricted: set[UUID] = field(default_factory=set)


@dataclass
class UserState:
    """권한 판정에 필요한 사용자 상태 스냅샷."""

    snapshot: DefinitionSnapshot
    user: User | None
    assignments: list[RoleAssignment]
    now: datetime


def assignment_grants(snapshot: DefinitionSnapshot, assignment: RoleAssignment, now: datetime) -> AssignmentGrants:
    """할당 하나의 유효 권한을 계산합니다.

    base role permissions → additions → implies expansion → subtractions.
    """
    result = AssignmentGrants(assignment=assignment)
    for permission_id, role_id in role_grants(snapshot, assignment.role_id).items():
        result.granted[permission_id] = "role" if role_id == assignment.role_id else "inherited"
        result.via[permission_id] = role_id

    for override in assignment.overrides:
        if override.effect != "grant" or not override.is_in_force(now):
            continue
        permission: PermissionDef | None = snapshot.permissions.get(override.permission_id)
        if permission is not None and permission.is_active:
            result.granted.setdefault(override.permission_id, "override")

    for permission_id in implied_ids(snapshot, set(result.granted)) - set(result.granted):
        permission = snapshot.permissions.get(permission_id)
        if permission is not None and permission.is_active:
            result.granted[permission_id] = "implied"

    for override in assignment.overrides:
        if override.effect == "restrict" and override.is_in_force(now):
            if result.granted.pop(override.permission_id, None) is not None:
                result.restricted.add(override.permission_id)
    return result


class PermissionResolver:
    """사용자 유효 권한 계산 및 권한 검사 서비스."""

    @idempotent
    async def _load(self, db: AsyncSession, user_id: UUID, now: datetime) -> UserState:
        snapshot: DefinitionSnapshot = await definition_cache.get(db)
        user: User | None = await user_repository.get_by_id(db, user_id)
        assignments: list[RoleAssignment] = []
        if user is not None and user.is_active:
            assignments = await assignment_repository.list_currently_valid(db, user_id, now)
        return UserState(snapshot=snapshot, user=user, assignments=assignments, now=now)

    async def _guarded(self, label: str, coro: Awaitable[T], denied: Callable[[str], T]) -> T:
        """데드라인과 fail-closed 처리 — 오류/시간 초과는 거부로 변환."""
        try:
            return await asyncio.wait_for(coro, timeout=settings.RBAC_CHECK_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            logger.warning("%s timed out after %.1fs; denying", label, settings.RBAC_CHECK_TIMEOUT_SECONDS)
            return denied("Authorization check timed out")
        except Exception as exc:
            logger.warning("%s failed; denying: %s", label, exc, exc_info=True)
            return denied(f"Authorization check failed: {exc.__class__.__name__}")

    @staticmethod
    def _effective_ids(state: UserState, assignments: Iterable[RoleAssignment] | None = None) -> set[UUID]:
        effective: set[UUID] = set()
        for assignment in state.assignments if assignments is None else assignments:
            effective |= set(assignment_grants(state.snapshot, assignment, state.now).granted)
        return effective

    def _evaluate(
        self,
        state: UserState,
        name: str,
        context: AccessContext | None,
        resource: list[ResourceTag] | None = None,
    ) -> PermissionCheckResult:
        """로드된 상태로 권한 하나를 판정합니다 (I/O 없음)."""

        def deny(reason: str) -> PermissionCheckResult:
            return PermissionCheckResult(allowed=False, permission=name, reason=reason)

        if state.user is None:
            return deny("User not found")
        if not state.user.is_active:
            return deny("User is inactive")
        permission: PermissionDef | None = state.snapshot.permission_by_name(name)
        if permission is None:
            return deny("Unknown permission")
        if not permission.is_active:
            return deny("Permission is inactive")
        if not state.assignments:
            return deny("No currently valid role assignments")

        assignments: list[RoleAssignment] = state.assignments
        if resource is not None:
            assignments = [a for a in assignments if in_scope(a, resource)]
            if not assignments:
                return deny("Resource is outside the scope of every valid assignment")

        effective: set[UUID] = self._effective_ids(state, assignments)
        if permission.id not in effective:
            return deny("Permission not granted")

        requires_edges = {pid: p.requires for pid, p in state.snapshot.permissions.items()}
        for required_id in sorted(reachable(requires_edges, permission.id) - {permission.id}, key=str):
            if required_id not in effective:
                required: PermissionDef | None = state.snapshot.permissions.get(required_id)
                return deny(f"Missing required permission: {required.name if required else required_id}")

        verdict: ConditionVerdict = permission_catalog.validate_conditions(permission, context)
        return PermissionCheckResult(
            allowed=verdict.valid,
            permission=name,
            reason=verdict.reason,
            requires_approval=verdict.requires_approval,
            audit_required=permission.audit_required,
        )

    # ------------------------------------------------------------------
    # 유효 권한 — Effective permissions
    # ------------------------------------------------------------------

    async def effective_permissions(self, db: AsyncSession, user_id: UUID) -> set[str]:
        """사용자의 유효 권한 이름 집합.

        Raises:
            NotFoundError: 사용자 없음 (Unknown user)
        """
        state: UserState = await self._load(db, user_id, utcnow())
        if state.user is None:
            raise NotFoundError("User not found")
        return {state.snapshot.permissions[pid].name for pid in self._effective_ids(state)}

    # ------------------------------------------------------------------
    # 권한 검사 — Point checks (fail-closed)
    # ------------------------------------------------------------------

    async def check_permission(
        self,
        db: AsyncSession,
        user_id: UUID,
        name: str,
        context: AccessContext | None = None,
        resource: list[ResourceTag] | None = None,
    ) -> PermissionCheckResult:
        """권한을 검사하고 사유와 함께 결과를 반환합니다.

        Check ``name`` for ``user_id``. When ``resource`` is given, only the
        assignments whose scope covers it are considered. Read-only: usage
        statistics are not touched.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            user_id: 검사 대상 사용자 (Subject user)
            name: 권한 이름 (Permission name)
            context: 평가 시각과 요청 IP (Subject timestamp and source IP)
            resource: 리소스 범위 태그 (Optional resource tags)

        Returns:
            PermissionCheckResult: 실패 시 allowed=False와 사유 (Never raises)
        """

        async def run() -> PermissionCheckResult:
            state: UserState = await self._load(db, user_id, utcnow())
            return self._evaluate(state, name, context, resource)

        result: PermissionCheckResult = await self._guarded(
            f"Permission check {name} for user {user_id}",
            run(),
            lambda reason: PermissionCheckResult(allowed=False, permission=name, reason=reason),
        )
        if result.allowed and result.audit_required:
            logger.info("Audited permission %s granted to user %s", name, user_id)
        return result

    async def has_permission(
        self,
        db: AsyncSession,
        user_id: UUID,
        name: str,
        context: AccessContext | None = None,
    ) -> bool:
        """사용자가 권한을 가지고 조건을 충족하는지 확인합니다 (fail-closed)."""
        return (await self.check_permission(db, user_id, name, context)).allowed

    async def can_perform(
        self,
        db: AsyncSession,
        user_id: UUID,
        name: str,
        resource: list[ResourceTag],
        context: AccessContext | None = None,
    ) -> bool:
        """리소스에 대해 권한을 행사할 수 있는지 확인합니다.

        True iff one currently valid assignment both grants ``name`` and is
        in scope for ``resource``, and the permission's conditions pass.
        """
        return (await self.check_permission(db, user_id, name, context, resource=resource)).allowed

    async def _check_many(
        self,
        db: AsyncSession,
        user_id: UUID,
        names: list[str],
        context: AccessContext | None,
        require_all: bool,
    ) -> PermissionListCheckResult:
        async def run() -> PermissionListCheckResult:
            state: UserState = await self._load(db, user_id, utcnow())
            missing: list[str] = [n for n in names if not self._evaluate(state, n, context).allowed]
            allowed: bool = not missing if require_all else len(missing) < len(names)
            return PermissionListCheckResult(allowed=allowed and bool(names), missing=missing)

        return await self._guarded(
            f"Permission list check for user {user_id}",
            run(),
            lambda reason: PermissionListCheckResult(allowed=False, missing=list(names)),
        )

    async def has_any_permission(
        self,
        db: AsyncSession,
        user_id: UUID,
        names: list[str],
        context: AccessContext | None = None,
    ) -> PermissionListCheckResult:
        """권한 중 하나라도 있으면 허용 (missing: 보유하지 않은 권한)."""
        return await self._check_many(db, user_id, names, context, require_all=False)

    async def has_all_permissions(
        self,
        db: AsyncSession,
        user_id: UUID,
        names: list[str],
        context: AccessContext | None = None,
    ) -> PermissionListCheckResult:
        """모든 권한이 있어야 허용 (missing: 보유하지 않은 권한)."""
        return await self._check_many(db, user_id, names, context, require_all=True)

    async def resource_accessible(self, db: AsyncSession, user_id: UUID, resource: list[ResourceTag]) -> bool:
        """유효 할당 중 하나라도 리소스를 범위에 포함하면 True (fail-closed)."""

        async def run() -> bool:
            state: UserState = await self._load(db, user_id, utcnow())
            if state.user is None or not state.user.is_active:
                return False
            return any(in_scope(a, resource) for a in state.assignments)

        return await self._guarded(f"Resource scope check for user {user_id}", run(), lambda reason: False)

    # ------------------------------------------------------------------
    # 진단 — Diagnostics
    # ------------------------------------------------------------------

    async def explain(
        self,
        db: AsyncSession,
        user_id: UUID,
        name: str,
        context: AccessContext | None = None,
    ) -> PermissionExplanation:
        """권한 판정 근거를 할당별로 설명합니다.

        Report, for every assignment of the user (valid or not), whether it
        grants, restricts or lacks the permission and where a grant comes
        from.

        Raises:
            NotFoundError: 사용자 없음 (Unknown user)
        """
        now: datetime = utcnow()
        state: UserState = await self._load(db, user_id, now)
        if state.user is None:
            raise NotFoundError("User not found")
        decision: PermissionCheckResult = self._evaluate(state, name, context)
        permission: PermissionDef | None = state.snapshot.permission_by_name(name)

        entries: list[AssignmentExplanation] = []
        for assignment in await assignment_repository.list_for_user(db, user_id, include_inactive=True):
            role = state.snapshot.roles.get(assignment.role_id)
            role_name: str = role.name if role else str(assignment.role_id)
            if not assignment.is_currently_valid(now):
                entries.append(
                    AssignmentExplanation(
                        assignment_id=str(assignment.id),
                        role_name=role_name,
                        outcome="not_valid",
                        detail=f"approval_status={assignment.approval_status}, is_active={assignment.is_active}",
                    )
                )
                continue
            grants: AssignmentGrants = assignment_grants(state.snapshot, assignment, now)
            if permission is not None and permission.id in grants.granted:
                via_id = grants.via.get(permission.id)
                via = state.snapshot.roles.get(via_id) if via_id else None
                entries.append(
                    AssignmentExplanation(
                        assignment_id=str(assignment.id),
                        role_name=role_name,
                        outcome="granted",
                        source=grants.granted[permission.id],  # type: ignore[arg-type]
                        via_role=via.name if via else None,
                    )
                )
            elif permission is not None and permission.id in grants.restricted:
                entries.append(
                    AssignmentExplanation(
                        assignment_id=str(assignment.id),
                        role_name=role_name,
                        outcome="restricted",
                        detail="Removed by an in-force restriction",
                    )
                )
            else:
                entries.append(
                    AssignmentExplanation(assignment_id=str(assignment.id), role_name=role_name, outcome="not_granted")
                )

        return PermissionExplanation(
            permission=name,
            allowed=decision.allowed,
            reason=decision.reason,
            assignments=entries,
        )

    async def user_scope(self, db: AsyncSession, user_id: UUID) -> UserScope:
        """유효 할당 전체의 범위 합집합.

        Raises:
            NotFoundError: 사용자 없음 (Unknown user)
        """
        state: UserState = await self._load(db, user_id, utcnow())
        if state.user is None:
            raise NotFoundError("User not found")
        ids: dict[str, set[str]] = {kind: set() for kind in SCOPE_KINDS}
        unrestricted: list[str] = []
        for kind in SCOPE_KINDS:
            for assignment in state.assignments:
                restriction: set[str] = restriction_for(assignment, kind)
                if not restriction and kind not in unrestricted:
                    unrestricted.append(kind)
                ids[kind] |= restriction
        return UserScope(
            regions=sorted(ids["region"]),
            projects=sorted(ids["project"]),
            schemes=sorted(ids["scheme"]),
            unrestricted=unrestricted,  # type: ignore[arg-type]
        )


permission_resolver: PermissionResolver = PermissionResolver()
