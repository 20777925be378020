"""역할 할당 레포지토리 — 할당, 오버라이드, 통계 쿼리.

Assignment Repository — queries for role assignments, their overrides and
the role statistics derived from them.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Select, and_, case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rbac_core.models.assignment import AssignmentOverride, RoleAssignment
from rbac_core.repositories.base import BaseRepository


class AssignmentRepository(BaseRepository[RoleAssignment]):
    """role_assignments / assignment_overrides 테이블 쿼리."""

    def __init__(self) -> None:
        super().__init__(RoleAssignment)

    async def get_active(self, db: AsyncSession, user_id: UUID, role_id: UUID) -> RoleAssignment | None:
        """활성 상태의 (user, role) 할당 조회 (At most one by the partial unique index)."""
        result = await db.execute(
            select(RoleAssignment).where(
                RoleAssignment.user_id == user_id,
                RoleAssignment.role_id == role_id,
                RoleAssignment.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def get_latest(self, db: AsyncSession, user_id: UUID, role_id: UUID) -> RoleAssignment | None:
        """(user, role)의 가장 최근 할당 조회 — 비활성 포함 (Most recent, active or not)."""
        result = await db.execute(
            select(RoleAssignment)
            .where(RoleAssignment.user_id == user_id, RoleAssignment.role_id == role_id)
            .order_by(RoleAssignment.is_active.desc(), RoleAssignment.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_for_user(
        self,
        db: AsyncSession,
        user_id: UUID,
        include_inactive: bool = False,
    ) -> list[RoleAssignment]:
        """사용자의 할당 목록 (최신순)."""
        query: Select = (
            select(RoleAssignment)
            .where(RoleAssignment.user_id == user_id)
            .order_by(RoleAssignment.created_at.desc())
        )
        if not include_inactive:
            query = query.where(RoleAssignment.is_active.is_(True))
        result = await db.execute(query)
        return list(result.scalars().all())

    async def list_currently_valid(self, db: AsyncSession, user_id: UUID, now: datetime) -> list[RoleAssignment]:
        """현재 유효한 할당 목록.

        Assignments satisfying active ∧ approved ∧ valid_from <= now < valid_until.
        Order is unspecified.
        """
        result = await db.execute(
            select(RoleAssignment).where(
                RoleAssignment.user_id == user_id,
                RoleAssignment.is_active.is_(True),
                RoleAssignment.approval_status == "approved",
                RoleAssignment.valid_from <= now,
                or_(RoleAssignment.valid_until.is_(None), RoleAssignment.valid_until > now),
            )
        )
        return list(result.scalars().all())

    def holders_query(self, role_id: UUID, include_inactive: bool = False) -> Select:
        """역할 보유 할당 조회 쿼리 (페이지네이션용 Select)."""
        query: Select = (
            select(RoleAssignment)
            .where(RoleAssignment.role_id == role_id)
            .order_by(RoleAssignment.created_at.desc(), RoleAssignment.id)
        )
        if not include_inactive:
            query = query.where(RoleAssignment.is_active.is_(True))
        return query

    async def role_stats(
        self, db: AsyncSession, role_id: UUID, now: datetime
    ) -> tuple[int, int, datetime | None]:
        """역할 통계 재계산 — (total_users, active_users, last_assigned_at).

        Derived from role_assignments; ``active_users`` counts every
        assignment with is_active set, pending or approved, whose
        valid_until has not passed at ``now`` (swept or not).
        """
        holding = and_(
            RoleAssignment.is_active.is_(True),
            or_(RoleAssignment.valid_until.is_(None), RoleAssignment.valid_until > now),
        )
        result = await db.execute(
            select(
                func.count(RoleAssignment.id),
                func.sum(case((holding, 1), else_=0)),
                func.max(RoleAssignment.created_at),
            ).where(RoleAssignment.role_id == role_id)
        )
        total, active, last_assigned_at = result.one()
        return int(total or 0), int(active or 0), last_assigned_at

    async def list_primary(self, db: AsyncSession, user_id: UUID) -> list[RoleAssignment]:
        """사용자의 primary 할당 목록."""
        result = await db.execute(
            select(RoleAssignment).where(
                RoleAssignment.user_id == user_id,
                RoleAssignment.is_primary.is_(True),
            )
        )
        return list(result.scalars().all())

    async def expired_candidate_ids(
        self, db: AsyncSession, now: datetime, role_id: UUID | None = None
    ) -> list[UUID]:
        """유효 기간이 지난 활성 할당 id 목록 (Active assignments whose valid_until has passed).

        ``role_id`` narrows the candidates to one role.
        """
        query: Select = select(RoleAssignment.id).where(
            RoleAssignment.is_active.is_(True),
            RoleAssignment.valid_until.is_not(None),
            RoleAssignment.valid_until <= now,
        )
        if role_id is not None:
            query = query.where(RoleAssignment.role_id == role_id)
        result = await db.execute(query)
        return list(result.scalars().all())

    async def expire(self, db: AsyncSession, assignment_id: UUID, now: datetime) -> bool:
        """조건부 만료 처리 — 아직 활성이고 만료된 경우에만 비활성화.

        Conditional UPDATE that deactivates the assignment only while it is
        still active and past ``valid_until``. Returns whether this call
        performed the transition, so concurrent sweeps expire each row once.
        """
        result = await db.execute(
            update(RoleAssignment)
            .where(
                RoleAssignment.id == assignment_id,
                RoleAssignment.is_active.is_(True),
                RoleAssignment.valid_until.is_not(None),
                RoleAssignment.valid_until <= now,
            )
            .values(is_active=False, is_primary=False, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def get_override(
        self,
        db: AsyncSession,
        assignment_id: UUID,
        permission_id: UUID,
        effect: str,
    ) -> AssignmentOverride | None:
        """(assignment, permission, effect) 오버라이드 조회."""
        result = await db.execute(
            select(AssignmentOverride).where(
                AssignmentOverride.assignment_id == assignment_id,
                AssignmentOverride.permission_id == permission_id,
                AssignmentOverride.effect == effect,
            )
        )
        return result.scalar_one_or_none()

    async def record_usage(self, db: AsyncSession, assignment_ids: list[UUID], now: datetime) -> int:
        """사용 통계 갱신 — usage_count 증가, last_used_at 기록."""
        if not assignment_ids:
            return 0
        result = await db.execute(
            update(RoleAssignment)
            .where(RoleAssignment.id.in_(assignment_ids))
            .values(usage_count=RoleAssignment.usage_count + 1, last_used_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def list_for_role(self, db: AsyncSession, role_id: UUID) -> list[RoleAssignment]:
        """역할의 모든 할당 (비활성 포함)."""
        result = await db.execute(select(RoleAssignment).where(RoleAssignment.role_id == role_id))
        return list(result.scalars().all())


# 싱글턴 인스턴스 — Singleton instance
assignment_repository: AssignmentRepository = AssignmentRepository()
