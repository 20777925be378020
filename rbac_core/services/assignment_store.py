"""역할 할당 서비스 — 사용자-역할 할당의 생성, 상태 전이, 오버라이드.

Assignment Store Service — the record of which user holds which role.
Handles assignment with capacity / assigner / scope validation, the
approval and activity state machine, per-assignment permission overrides,
the idempotent expiry sweep and usage statistics.

State machine:
    pending → approved → (active ⇄ suspended) → revoked | expired
    expired → revoked (explicit revoke of a lapsed grant)
    pending → rejected (terminal)
Every transition appends a history entry.
"""

import logging
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rbac_core.models.assignment import AssignmentHistory, AssignmentOverride, RoleAssignment
from rbac_core.models.permission import Permission
from rbac_core.models.role import Role
from rbac_core.models.types import utcnow
from rbac_core.models.user import User
from rbac_core.repositories.assignment_repository import assignment_repository
from rbac_core.repositories.permission_repository import permission_repository
from rbac_core.repositories.role_repository import role_repository
from rbac_core.repositories.user_repository import user_repository
from rbac_core.schemas.assignment import (
    AssignmentResponse,
    AssignmentScope,
    AssignOptions,
    DelegationInfo,
    HistoryEntryResponse,
    OverrideResponse,
)
from rbac_core.services.role_graph import can_assign, has_capacity, role_graph
from rbac_core.utils.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from rbac_core.utils.pagination import Page
from rbac_core.utils.retry import idempotent

logger = logging.getLogger(__name__)


def assignment_state(assignment: RoleAssignment, now: datetime) -> str:
    """할당의 상태 머신 상태를 계산합니다.

    One of pending, active, suspended, expired, revoked, rejected.
    """
    if assignment.approval_status == "revoked":
        return "revoked"
    if assignment.approval_status == "rejected":
        return "rejected"
    if assignment.is_expired(now) or (assignment.history and assignment.history[-1].action == "expired"):
        return "expired"
    if assignment.approval_status == "pending":
        return "pending"
    return "active" if assignment.is_active else "suspended"


class AssignmentStore:
    """사용자-역할 할당 저장소.

    All mutations run inside the caller's transaction; the caller commits.
    Role statistics are recomputed in the same transaction after each
    mutation that changes an assignment's active flag.
    """

    async def to_response(self, db: AsyncSession, assignment: RoleAssignment) -> AssignmentResponse:
        """할당 모델을 응답 스키마로 변환합니다."""
        role_name: str | None = (
            await db.execute(select(Role.name).where(Role.id == assignment.role_id))
        ).scalar_one_or_none()
        permission_ids: set[UUID] = {o.permission_id for o in assignment.overrides}
        names: dict[UUID, str] = {}
        if permission_ids:
            rows = await db.execute(select(Permission.id, Permission.name).where(Permission.id.in_(permission_ids)))
            names = {row.id: row.name for row in rows}

        def _override(entry: AssignmentOverride) -> OverrideResponse:
            return OverrideResponse(
                permission=names.get(entry.permission_id, str(entry.permission_id)),
                effect=entry.effect,
                actor_id=str(entry.actor_id) if entry.actor_id else None,
                reason=entry.reason,
                created_at=entry.created_at,
                expires_at=entry.expires_at,
            )

        delegation: DelegationInfo | None = None
        if assignment.delegated_from_user_id or assignment.delegated_from_role_id:
            delegation = DelegationInfo(
                from_user_id=assignment.delegated_from_user_id,
                from_role_id=assignment.delegated_from_role_id,
                reason=assignment.delegation_reason,
                expires_at=assignment.delegation_expires_at,
            )

        return AssignmentResponse(
            id=str(assignment.id),
            user_id=str(assignment.user_id),
            role_id=str(assignment.role_id),
            role_name=role_name,
            assigned_by=str(assignment.assigned_by) if assignment.assigned_by else None,
            assignment_reason=assignment.assignment_reason,
            scope=AssignmentScope(
                regions=list(assignment.scope_regions or []),
                projects=list(assignment.scope_projects or []),
                schemes=list(assignment.scope_schemes or []),
                custom_restrictions=dict(assignment.custom_restrictions or {}),
            ),
            valid_from=assignment.valid_from,
            valid_until=assignment.valid_until,
            is_active=assignment.is_active,
            is_primary=assignment.is_primary,
            is_temporary=assignment.is_temporary,
            approval_status=assignment.approval_status,
            approved_by=str(assignment.approved_by) if assignment.approved_by else None,
            approved_at=assignment.approved_at,
            approval_comments=assignment.approval_comments,
            delegation=delegation,
            last_used_at=assignment.last_used_at,
            usage_count=assignment.usage_count,
            additional_permissions=[_override(o) for o in assignment.overrides if o.effect == "grant"],
            restricted_permissions=[_override(o) for o in assignment.overrides if o.effect == "restrict"],
            history=[
                HistoryEntryResponse(
                    seq=h.seq,
                    action=h.action,
                    performed_by=str(h.performed_by) if h.performed_by else None,
                    performed_at=h.performed_at,
                    reason=h.reason,
                    details=h.details,
                )
                for h in assignment.history
            ],
            created_at=assignment.created_at,
        )

    def _append_history(
        self,
        assignment: RoleAssignment,
        action: str,
        actor_id: UUID | None,
        reason: str | None = None,
        details: dict | None = None,
        now: datetime | None = None,
    ) -> AssignmentHistory:
        seq: int = max((h.seq for h in assignment.history), default=0) + 1
        entry = AssignmentHistory(
            id=uuid4(),
            assignment_id=assignment.id,
            seq=seq,
            action=action,
            performed_by=actor_id,
            performed_at=now or utcnow(),
            reason=reason,
            details=details,
        )
        assignment.history.append(entry)
        return entry

    async def _flush(self, db: AsyncSession) -> None:
        # 부분 유니크 인덱스 위반 → ConflictError
        try:
            await db.flush()
        except IntegrityError as exc:
            raise ConflictError("Assignment conflicts with an existing active or primary assignment") from exc

    async def _sync_role(self, db: AsyncSession, role_id: UUID) -> None:
        role: Role | None = await role_repository.get_by_id(db, role_id)
        if role is not None:
            await role_graph.sync_stats(db, role)

    async def _find(self, db: AsyncSession, user_id: UUID, role_id: UUID) -> RoleAssignment:
        assignment: RoleAssignment | None = await assignment_repository.get_latest(db, user_id, role_id)
        if assignment is None:
            raise NotFoundError("Assignment not found")
        return assignment

    # ------------------------------------------------------------------
    # 부여 — Assign
    # ------------------------------------------------------------------

    async def assign(
        self,
        db: AsyncSession,
        user_id: UUID,
        role_id: UUID,
        assigned_by: UUID | None,
        options: AssignOptions | None = None,
        check_assigner: bool = True,
    ) -> RoleAssignment:
        """사용자에게 역할을 부여합니다.

        Assign ``role_id`` to ``user_id``. Not retried automatically.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            user_id: 대상 사용자 (Assignee)
            role_id: 부여할 역할 (Role to assign)
            assigned_by: 할당자 (Acting user)
            options: 범위, 유효 기간, primary 등 (Scope, validity window, primary flag, ...)
            check_assigner: False이면 할당자 검사와 승인 단계 생략 — 부트스트랩 전용
                            (Skip the assigner check and the approval step; bootstrap only)

        Returns:
            RoleAssignment: 생성된 할당, 승인 필요 역할이면 pending
                            (Created assignment; pending when the role requires approval)

        Raises:
            NotFoundError: 사용자/역할 없음 (Unknown user or role)
            ValidationError: 비활성 역할/사용자, 잘못된 범위나 기간 (Inactive role/user, invalid scope or window)
            ConflictError: 정원 초과 또는 중복 활성 할당 (Role at capacity or duplicate active assignment)
            AuthorizationError: 할당자가 역할을 부여할 수 없음 (Assigner may not assign this role)
        """
        options = options or AssignOptions()
        now: datetime = utcnow()

        user: User | None = await user_repository.get_by_id(db, user_id)
        if user is None:
            raise NotFoundError("User not found")
        if not user.is_active:
            raise ValidationError("User is inactive")

        role: Role | None = await role_repository.get_for_update(db, role_id)
        if role is None:
            raise NotFoundError("Role not found")
        if not role.is_active:
            raise ValidationError(f"Role {role.name} is inactive")

        # 스윕 전 만료 할당이 정원과 중복 검사를 막지 않도록 — Lapsed holders release their seat here
        await self._expire_lapsed(db, now, role_id=role_id)
        await role_graph.sync_stats(db, role)
        if not has_capacity(role):
            raise ConflictError(f"Role {role.name} has reached its maximum number of users")

        if check_assigner and role.requires_approval:
            assigner_roles: list[UUID] = []
            if assigned_by is not None:
                assigner_roles = [a.role_id for a in await self.active_assignments_for(db, assigned_by, now)]
            if not can_assign(role, assigner_roles):
                raise AuthorizationError(f"Assigner may not assign role {role.name}")

        if await assignment_repository.get_active(db, user_id, role_id) is not None:
            raise ConflictError("User already holds this role")

        scope: AssignmentScope = options.scope
        if scope.total_ids() > 1 and not role.allow_multiple_scopes:
            raise ValidationError(f"Role {role.name} does not allow multiple scopes")
        if scope.total_ids() > role.max_scopes:
            raise ValidationError(f"Role {role.name} allows at most {role.max_scopes} scope(s)")

        valid_from: datetime = options.valid_from or now
        if options.valid_until is not None and options.valid_until <= valid_from:
            raise ValidationError("valid_until must be after valid_from")

        # primary 강등과 새 할당 삽입은 같은 트랜잭션 — Demotion commits together with the insert
        if options.is_primary:
            for other in await assignment_repository.list_primary(db, user_id):
                other.is_primary = False
            await self._flush(db)

        # 할당자 검사를 생략하면 승인 단계도 생략 — Bootstrap assignments start approved
        approval_status: str = "pending" if role.requires_approval and check_assigner else "approved"
        delegation: DelegationInfo = options.delegation or DelegationInfo()
        assignment = RoleAssignment(
            id=uuid4(),
            user_id=user_id,
            role_id=role_id,
            assigned_by=assigned_by,
            assignment_reason=options.reason,
            scope_regions=list(scope.regions),
            scope_projects=list(scope.projects),
            scope_schemes=list(scope.schemes),
            custom_restrictions=dict(scope.custom_restrictions),
            valid_from=valid_from,
            valid_until=options.valid_until,
            is_active=True,
            is_primary=options.is_primary,
            is_temporary=options.is_temporary,
            approval_status=approval_status,
            approved_by=assigned_by if approval_status == "approved" else None,
            approved_at=now if approval_status == "approved" else None,
            delegated_from_user_id=delegation.from_user_id,
            delegated_from_role_id=delegation.from_role_id,
            delegation_reason=delegation.reason,
            delegation_expires_at=delegation.expires_at,
            usage_count=0,
            created_at=now,
            overrides=[],
            history=[],
        )
        self._append_history(
            assignment,
            "assigned",
            assigned_by,
            reason=options.reason,
            details={"approval_status": approval_status, "scope": scope.model_dump(mode="json")},
            now=now,
        )
        db.add(assignment)
        await self._flush(db)
        await role_graph.sync_stats(db, role)

        logger.info("Assigned role %s to user %s (%s)", role.name, user_id, approval_status)
        return assignment

    # ------------------------------------------------------------------
    # 상태 전이 — State transitions
    # ------------------------------------------------------------------

    async def revoke(
        self,
        db: AsyncSession,
        user_id: UUID,
        role_id: UUID,
        revoked_by: UUID | None,
        reason: str | None = None,
    ) -> RoleAssignment:
        """할당을 회수합니다 (active | suspended | expired → revoked).

        An assignment whose validity window has lapsed can still be revoked;
        the row is deactivated whether or not the sweep has reached it.

        Raises:
            NotFoundError: 할당 없음 (No assignment for the pair)
            ValidationError: 회수할 수 없는 상태 (Not approved, or already terminal)
        """
        assignment: RoleAssignment = await self._find(db, user_id, role_id)
        state: str = assignment_state(assignment, utcnow())
        if state not in ("active", "suspended", "expired"):
            raise ValidationError(f"Cannot revoke an assignment in state {state}")

        assignment.is_active = False
        assignment.is_primary = False
        assignment.approval_status = "revoked"
        self._append_history(assignment, "revoked", revoked_by, reason=reason, details={"previous_state": state})
        await self._flush(db)
        await self._sync_role(db, role_id)
        logger.info("Revoked role %s from user %s", role_id, user_id)
        return assignment

    async def suspend(
        self,
        db: AsyncSession,
        user_id: UUID,
        role_id: UUID,
        suspended_by: UUID | None,
        reason: str | None = None,
    ) -> RoleAssignment:
        """할당을 일시 정지합니다 (active → suspended).

        Raises:
            NotFoundError: 할당 없음 (No assignment for the pair)
            ValidationError: 활성 상태가 아님 (Assignment is not active)
        """
        assignment: RoleAssignment = await self._find(db, user_id, role_id)
        state: str = assignment_state(assignment, utcnow())
        if state != "active":
            raise ValidationError(f"Cannot suspend an assignment in state {state}")

        assignment.is_active = False
        self._append_history(assignment, "suspended", suspended_by, reason=reason)
        await self._flush(db)
        await self._sync_role(db, role_id)
        logger.info("Suspended role %s for user %s", role_id, user_id)
        return assignment

    async def reactivate(
        self,
        db: AsyncSession,
        user_id: UUID,
        role_id: UUID,
        reactivated_by: UUID | None,
        reason: str | None = None,
    ) -> RoleAssignment:
        """정지된 할당을 재활성화합니다 (suspended → active).

        Raises:
            NotFoundError: 할당 없음 (No assignment for the pair)
            ValidationError: 정지 상태가 아니거나 만료됨 (Not suspended, or expired)
            ConflictError: 같은 역할의 다른 활성 할당 존재 또는 정원 초과
                           (Another active assignment exists, or role at capacity)
        """
        assignment: RoleAssignment = await self._find(db, user_id, role_id)
        state: str = assignment_state(assignment, utcnow())
        if state != "suspended":
            raise ValidationError(f"Cannot reactivate an assignment in state {state}")

        role: Role | None = await role_repository.get_for_update(db, role_id)
        if role is None:
            raise NotFoundError("Role not found")
        await self._expire_lapsed(db, utcnow(), role_id=role_id)
        await role_graph.sync_stats(db, role)
        if not has_capacity(role):
            raise ConflictError(f"Role {role.name} has reached its maximum number of users")

        assignment.is_active = True
        self._append_history(assignment, "reactivated", reactivated_by, reason=reason)
        await self._flush(db)
        await role_graph.sync_stats(db, role)
        logger.info("Reactivated role %s for user %s", role.name, user_id)
        return assignment

    async def _decide(
        self,
        db: AsyncSession,
        assignment_id: UUID,
        approver_id: UUID | None,
        approve: bool,
        comments: str | None,
    ) -> RoleAssignment:
        now: datetime = utcnow()
        assignment: RoleAssignment = await self.get_assignment(db, assignment_id)
        state: str = assignment_state(assignment, now)
        if state != "pending":
            raise ValidationError(f"Cannot {'approve' if approve else 'reject'} an assignment in state {state}")

        role: Role | None = await role_repository.get_by_id(db, assignment.role_id)
        if role is None:
            raise NotFoundError("Role not found")
        approver_roles: list[UUID] = []
        if approver_id is not None:
            approver_roles = [a.role_id for a in await self.active_assignments_for(db, approver_id, now)]
        if not can_assign(role, approver_roles):
            raise AuthorizationError(f"Approver may not decide assignments of role {role.name}")

        status: str = "approved" if approve else "rejected"
        assignment.approval_status = status
        assignment.approved_by = approver_id
        assignment.approved_at = now
        assignment.approval_comments = comments
        if not approve:
            assignment.is_active = False
            assignment.is_primary = False
        self._append_history(
            assignment, "modified", approver_id, reason=comments, details={"approval_status": status}, now=now
        )
        await self._flush(db)
        await role_graph.sync_stats(db, role)
        logger.info("Assignment %s %s by %s", assignment.id, status, approver_id)
        return assignment

    async def approve(
        self,
        db: AsyncSession,
        assignment_id: UUID,
        approver_id: UUID | None,
        comments: str | None = None,
    ) -> RoleAssignment:
        """대기 중인 할당을 승인합니다 (pending → approved).

        Raises:
            ValidationError: 대기 상태가 아님 (Not pending)
            AuthorizationError: 승인자가 역할 부여 권한 없음 (Approver not an assigner of the role)
        """
        return await self._decide(db, assignment_id, approver_id, True, comments)

    async def reject(
        self,
        db: AsyncSession,
        assignment_id: UUID,
        approver_id: UUID | None,
        comments: str | None = None,
    ) -> RoleAssignment:
        """대기 중인 할당을 거절합니다 (pending → rejected, 종료 상태)."""
        return await self._decide(db, assignment_id, approver_id, False, comments)

    # ------------------------------------------------------------------
    # 오버라이드 — Per-assignment grants and restrictions
    # ------------------------------------------------------------------

    async def _upsert_override(
        self,
        db: AsyncSession,
        assignment_id: UUID,
        permission_name: str,
        effect: str,
        actor_id: UUID | None,
        reason: str | None,
        expires_at: datetime | None,
    ) -> AssignmentOverride:
        now: datetime = utcnow()
        assignment: RoleAssignment = await self.get_assignment(db, assignment_id)
        permission: Permission | None = await permission_repository.get_by_name(db, permission_name)
        if permission is None:
            raise NotFoundError(f"Permission not found: {permission_name}")
        if effect == "grant" and not permission.is_active:
            raise ValidationError(f"Permission is inactive: {permission_name}")
        if expires_at is not None and expires_at <= now:
            raise ValidationError("expires_at must be in the future")

        entry: AssignmentOverride | None = await assignment_repository.get_override(
            db, assignment.id, permission.id, effect
        )
        if entry is None:
            entry = AssignmentOverride(
                id=uuid4(),
                assignment_id=assignment.id,
                permission_id=permission.id,
                effect=effect,
            )
            assignment.overrides.append(entry)
        # 재추가 시 최신 사유/만료가 기존 항목을 대체 — Latest reason and expiry win
        entry.actor_id = actor_id
        entry.reason = reason
        entry.expires_at = expires_at
        entry.created_at = now

        self._append_history(
            assignment,
            "modified",
            actor_id,
            reason=reason,
            details={"override": effect, "permission": permission_name, "operation": "add"},
            now=now,
        )
        await self._flush(db)
        logger.info("Override %s %s on assignment %s", effect, permission_name, assignment.id)
        return entry

    async def add_override_permission(
        self,
        db: AsyncSession,
        assignment_id: UUID,
        permission_name: str,
        granted_by: UUID | None,
        reason: str | None = None,
        expires_at: datetime | None = None,
    ) -> AssignmentOverride:
        """할당에 추가 권한을 부여합니다 (같은 권한 재추가 시 교체).

        Idempotent upsert of an additional permission on one assignment.
        """
        return await self._upsert_override(db, assignment_id, permission_name, "grant", granted_by, reason, expires_at)

    async def add_restriction(
        self,
        db: AsyncSession,
        assignment_id: UUID,
        permission_name: str,
        restricted_by: UUID | None,
        reason: str | None = None,
        expires_at: datetime | None = None,
    ) -> AssignmentOverride:
        """할당에서 권한을 제한합니다 (같은 권한 재추가 시 교체).

        Idempotent upsert of a restriction; restrictions win over grants.
        """
        return await self._upsert_override(
            db, assignment_id, permission_name, "restrict", restricted_by, reason, expires_at
        )

    async def _remove_override(
        self,
        db: AsyncSession,
        assignment_id: UUID,
        permission_name: str,
        effect: str,
        actor_id: UUID | None,
    ) -> None:
        assignment: RoleAssignment = await self.get_assignment(db, assignment_id)
        permission: Permission | None = await permission_repository.get_by_name(db, permission_name)
        entry: AssignmentOverride | None = None
        if permission is not None:
            entry = next(
                (o for o in assignment.overrides if o.permission_id == permission.id and o.effect == effect), None
            )
        if entry is None:
            raise NotFoundError(f"No {effect} override for {permission_name} on this assignment")

        assignment.overrides.remove(entry)
        self._append_history(
            assignment,
            "modified",
            actor_id,
            details={"override": effect, "permission": permission_name, "operation": "remove"},
        )
        await self._flush(db)
        logger.info("Removed %s override %s from assignment %s", effect, permission_name, assignment.id)

    async def remove_override_permission(
        self, db: AsyncSession, assignment_id: UUID, permission_name: str, actor_id: UUID | None
    ) -> None:
        """추가 권한을 제거합니다."""
        await self._remove_override(db, assignment_id, permission_name, "grant", actor_id)

    async def remove_restriction(
        self, db: AsyncSession, assignment_id: UUID, permission_name: str, actor_id: UUID | None
    ) -> None:
        """권한 제한을 해제합니다."""
        await self._remove_override(db, assignment_id, permission_name, "restrict", actor_id)

    # ------------------------------------------------------------------
    # 만료 스윕 — Expiry sweep
    # ------------------------------------------------------------------

    @idempotent
    async def sweep_expired(self, db: AsyncSession, now: datetime | None = None) -> int:
        """유효 기간이 지난 활성 할당을 비활성화합니다.

        Deactivate every active assignment whose valid_until has passed and
        append an "expired" history entry to each. Each row is expired by a
        conditional UPDATE, so repeated or concurrent sweeps process an
        assignment at most once. Retried on DependencyError.

        Returns:
            int: 이번 호출에서 만료 처리한 할당 수 (Assignments expired by this call)
        """
        now = now or utcnow()
        expired: list[RoleAssignment] = await self._expire_lapsed(db, now)
        for role_id in {a.role_id for a in expired}:
            await self._sync_role(db, role_id)
        return len(expired)

    async def _expire_lapsed(
        self, db: AsyncSession, now: datetime, role_id: UUID | None = None
    ) -> list[RoleAssignment]:
        """만료 대상 할당을 비활성화하고 "expired" 이력을 남깁니다 (role_id로 범위 제한 가능)."""
        expired: list[RoleAssignment] = []
        for assignment_id in await assignment_repository.expired_candidate_ids(db, now, role_id=role_id):
            if not await assignment_repository.expire(db, assignment_id, now):
                continue
            assignment: RoleAssignment | None = await db.get(RoleAssignment, assignment_id, populate_existing=True)
            if assignment is None:
                continue
            self._append_history(
                assignment,
                "expired",
                None,
                reason="Validity window elapsed",
                details={"valid_until": assignment.valid_until.isoformat() if assignment.valid_until else None},
                now=now,
            )
            expired.append(assignment)

        await db.flush()
        if expired:
            logger.info("Expired %d role assignment(s)", len(expired))
        return expired

    # ------------------------------------------------------------------
    # 조회 — Reads
    # ------------------------------------------------------------------

    async def active_assignments_for(
        self, db: AsyncSession, user_id: UUID, now: datetime | None = None
    ) -> list[RoleAssignment]:
        """현재 유효한 할당 목록 (active ∧ approved ∧ 유효 기간 내, 순서 무관)."""
        return await assignment_repository.list_currently_valid(db, user_id, now or utcnow())

    async def assignments_for(
        self, db: AsyncSession, user_id: UUID, include_inactive: bool = False
    ) -> list[RoleAssignment]:
        """사용자의 할당 목록 (최신순)."""
        if await user_repository.get_by_id(db, user_id) is None:
            raise NotFoundError("User not found")
        return await assignment_repository.list_for_user(db, user_id, include_inactive=include_inactive)

    async def holders_of(
        self,
        db: AsyncSession,
        role_id: UUID,
        page: int = 1,
        per_page: int = 20,
        include_inactive: bool = False,
    ) -> Page:
        """역할 보유 할당 목록 (페이지네이션)."""
        await role_graph.get_role(db, role_id)
        items, total = await assignment_repository.get_paginated(
            db, assignment_repository.holders_query(role_id, include_inactive), page, per_page
        )
        return Page.build([await self.to_response(db, a) for a in items], total, page, per_page)

    async def get_assignment(self, db: AsyncSession, assignment_id: UUID) -> RoleAssignment:
        """ID로 할당을 조회합니다 (이력 포함).

        Raises:
            NotFoundError: 할당 없음 (Assignment not found)
        """
        assignment: RoleAssignment | None = await assignment_repository.get_by_id(db, assignment_id)
        if assignment is None:
            raise NotFoundError("Assignment not found")
        return assignment

    async def record_usage(
        self, db: AsyncSession, assignment_ids: list[UUID], now: datetime | None = None
    ) -> int:
        """사용 통계를 갱신합니다 — 권한 검사와 분리된 명시적 호출.

        Increment usage_count and set last_used_at. Permission checks never
        call this themselves.
        """
        updated: int = await assignment_repository.record_usage(db, assignment_ids, now or utcnow())
        if updated:
            # 세션에 적재된 인스턴스 갱신 — Refresh instances already in the identity map
            await db.execute(
                select(RoleAssignment)
                .where(RoleAssignment.id.in_(assignment_ids))
                .execution_options(populate_existing=True)
            )
        return updated


assignment_store: AssignmentStore = AssignmentStore()
