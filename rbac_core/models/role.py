"""역할 관련 SQLAlchemy ORM 모델 정의.

Role SQLAlchemy ORM model definitions.
Roles carry direct permission grants, parent roles to inherit from, and the
set of roles allowed to assign them. All edges are stored as id → id rows.

Tables:
    - roles: 역할 정의 (Role definitions, level 0 = highest)
    - role_permissions: 역할-권한 매핑 (Direct grants)
    - role_inheritance: 역할 상속 간선 (role → parent role)
    - role_assigners: 역할을 부여할 수 있는 역할 (Roles allowed to assign a role)
"""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rbac_core.database import Base
from rbac_core.models.types import UTCDateTime, utcnow


class Role(Base):
    """역할 모델.

    Role model — a named bundle of permissions with inheritance.
    System roles are seeded once and are neither modifiable nor deletable.

    Attributes:
        id: 고유 식별자 UUID (Unique identifier)
        name: 역할 이름, 전역 고유 (Unique role name, e.g. "district_admin")
        type: system | custom
        level: 서열 (Ordinal rank, 0 = highest)
        category: admin / coordinator / staff / beneficiary / external
        allowed_scope_levels: 이 역할이 다룰 수 있는 범위 레벨 (Scope levels this role may act at)
        default_scope_level: 기본 범위 레벨 (Default scope level)
        allow_multiple_scopes: 복수 범위 허용 여부 (Whether an assignment may carry several scope ids)
        max_scopes: 최대 범위 개수 (Upper bound on scope ids per assignment)
        max_users: 최대 보유자 수, None이면 무제한 (Max concurrent holders, None = unlimited)
        requires_approval: 부여 시 승인 필요 여부 (Assignment starts pending when True)
        total_users / active_users / last_assigned_at: 할당 테이블에서 재계산되는 통계
            (Statistics recomputed from role_assignments in the mutating transaction)
    """

    __tablename__ = "roles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(10), nullable=False, default="custom")
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # 범위 설정 — Scope configuration
    allowed_scope_levels: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    default_scope_level: Mapped[str | None] = mapped_column(String(20), nullable=True)
    allow_multiple_scopes: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    max_scopes: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # 제약 — Constraints
    max_users: Mapped[int | None] = mapped_column(Integer, nullable=True)
    requires_approval: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_deletable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_modifiable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # 통계 — Statistics
    total_users: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    active_users: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_assigned_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    updated_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    role_permissions = relationship("RolePermission", cascade="all, delete-orphan", lazy="selectin")
    parents = relationship(
        "RoleInheritance",
        foreign_keys="RoleInheritance.role_id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    assigners = relationship(
        "RoleAssigner",
        foreign_keys="RoleAssigner.role_id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class RolePermission(Base):
    """역할-권한 매핑 모델 (Direct permission grant)."""

    __tablename__ = "role_permissions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    role_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False)
    permission_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        UniqueConstraint("role_id", "permission_id", name="uq_role_permission"),
    )


class RoleInheritance(Base):
    """역할 상속 간선 (role inherits every permission of parent)."""

    __tablename__ = "role_inheritance"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    role_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False)
    parent_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        UniqueConstraint("role_id", "parent_id", name="uq_role_inheritance"),
    )


class RoleAssigner(Base):
    """역할 부여 가능 역할 (assigner_role may assign role when approval is required)."""

    __tablename__ = "role_assigners"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    role_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False)
    assigner_role_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        UniqueConstraint("role_id", "assigner_role_id", name="uq_role_assigner"),
    )
