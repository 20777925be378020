"""역할 할당 관련 SQLAlchemy ORM 모델 정의.

Role assignment SQLAlchemy ORM model definitions.
An assignment links one user to one role with its own scope restriction,
validity window, approval state, per-assignment permission overrides and a
chronological history log.

Tables:
    - role_assignments: 사용자-역할 할당 (User ↔ role links)
    - assignment_overrides: 할당별 추가 권한/제한 권한 (Per-assignment grants and restrictions)
    - assignment_history: 상태 전이 이력 (State-transition log)

Constraints:
    uq_assignment_active_user_role: 활성 상태의 (user, role) 고유 (Unique while active)
    uq_assignment_primary_user: 사용자당 primary 할당 최대 1개 (At most one primary per user)
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rbac_core.database import Base
from rbac_core.models.types import UTCDateTime, utcnow

# 승인 상태 — Approval states
APPROVAL_STATUSES: tuple[str, ...] = ("pending", "approved", "rejected", "revoked")

# 이력 액션 — History actions
HISTORY_ACTIONS: tuple[str, ...] = ("assigned", "modified", "suspended", "reactivated", "revoked", "expired")

# 오버라이드 효과 — Override effects
OVERRIDE_EFFECTS: tuple[str, ...] = ("grant", "restrict")


class RoleAssignment(Base):
    """사용자-역할 할당 모델.

    Currently valid iff is_active, approval_status == "approved" and
    valid_from <= now < valid_until (valid_until None = open-ended).

    Attributes:
        user_id: 대상 사용자 FK (Assignee)
        role_id: 역할 FK (Assigned role)
        assigned_by: 할당한 사용자 (Actor who created the assignment)
        scope_regions / scope_projects / scope_schemes: 범위 제한 id 목록, 비어 있으면 무제한
            (Scope restriction id lists; empty = unrestricted for that kind)
        custom_restrictions: 자유 형식 제한 (Free-form restrictions, recorded only)
        valid_from / valid_until: 유효 기간 (Validity window)
        approval_status: pending | approved | rejected | revoked
        delegated_from_*: 위임 메타데이터 (Delegation metadata)
        last_used_at / usage_count: 사용 통계 (Usage statistics, explicit updates only)
    """

    __tablename__ = "role_assignments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False)
    assigned_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id"), nullable=True)
    assignment_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # 범위 제한 — Scope restriction
    scope_regions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    scope_projects: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    scope_schemes: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    custom_restrictions: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    # 유효 기간 — Validity window
    valid_from: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    valid_until: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # 상태 플래그 — Status flags
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_temporary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # 승인 — Approval workflow
    approval_status: Mapped[str] = mapped_column(String(10), nullable=False, default="approved")
    approved_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    approval_comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    # 위임 — Delegation metadata
    delegated_from_user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    delegated_from_role_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    delegation_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    delegation_expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # 사용 통계 — Usage statistics
    last_used_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index(
            "uq_assignment_active_user_role",
            "user_id",
            "role_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
        Index(
            "uq_assignment_primary_user",
            "user_id",
            unique=True,
            postgresql_where=text("is_primary"),
            sqlite_where=text("is_primary"),
        ),
        Index("idx_assignment_user_active", "user_id", "is_active"),
        Index("idx_assignment_role_active", "role_id", "is_active"),
        Index("idx_assignment_validity", "valid_from", "valid_until"),
    )

    overrides = relationship(
        "AssignmentOverride",
        back_populates="assignment",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    history = relationship(
        "AssignmentHistory",
        back_populates="assignment",
        cascade="all, delete-orphan",
        order_by="AssignmentHistory.seq",
        lazy="selectin",
    )

    def is_currently_valid(self, now: datetime) -> bool:
        """현재 유효한 할당인지 확인 (active ∧ approved ∧ now ∈ [valid_from, valid_until))."""
        return (
            self.is_active
            and self.approval_status == "approved"
            and self.valid_from <= now
            and (self.valid_until is None or self.valid_until > now)
        )

    def is_expired(self, now: datetime) -> bool:
        """유효 기간이 지났는지 확인 (valid_until has passed)."""
        return self.valid_until is not None and self.valid_until <= now


class AssignmentOverride(Base):
    """할당별 권한 오버라이드.

    Per-assignment grant (``effect="grant"``) or restriction
    (``effect="restrict"``). Unique per (assignment, permission, effect) so
    re-adding replaces the previous entry.

    Attributes:
        actor_id: 부여/제한한 사용자 (grantedBy / restrictedBy)
        expires_at: 만료 시각, None이면 무기한 (Independent expiry)
    """

    __tablename__ = "assignment_overrides"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    assignment_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("role_assignments.id", ondelete="CASCADE"), nullable=False)
    permission_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False)
    effect: Mapped[str] = mapped_column(String(10), nullable=False)
    actor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("assignment_id", "permission_id", "effect", name="uq_assignment_override"),
    )

    assignment = relationship("RoleAssignment", back_populates="overrides")

    def is_in_force(self, now: datetime) -> bool:
        return self.expires_at is None or self.expires_at > now


class AssignmentHistory(Base):
    """할당 상태 전이 이력.

    One state-transition event. ``seq`` keeps the log in append order even
    when timestamps collide.
    """

    __tablename__ = "assignment_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    assignment_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("role_assignments.id", ondelete="CASCADE"), nullable=False)
    seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    performed_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    performed_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    assignment = relationship("RoleAssignment", back_populates="history")
