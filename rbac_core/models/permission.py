"""Permission 및 PermissionDependency SQLAlchemy ORM 모델 정의.

Permission catalog tables.

Tables:
    - permissions: 글로벌 권한 목록 (module.action.scope 형식의 고유 이름)
    - permission_dependencies: 권한 간 의존 관계 (requires / conflicts / implies 간선)
"""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rbac_core.database import Base
from rbac_core.models.types import UTCDateTime, utcnow

# 의존 관계 종류 — Dependency edge kinds
DEPENDENCY_KINDS: tuple[str, ...] = ("requires", "conflicts", "implies")


class Permission(Base):
    """권한 모델 — 시스템 전체 권한 정의.

    Attributes:
        id: 고유 식별자 UUID
        name: 권한 이름, 전역 고유 (e.g. "beneficiaries.read.regional")
        module: 모듈명 (e.g. "beneficiaries")
        category: 분류 (create/read/update/delete/approve/manage/...)
        resource: 리소스명 (e.g. "beneficiary")
        action: 액션명 (e.g. "read")
        scope: 범위 등급 (global/regional/project/scheme/own/subordinate)
        security_level: 보안 등급 (public < internal < confidential < restricted < top_secret)
        type: system | custom
        is_active: 활성 여부 — 비활성화만 가능, 물리 삭제 없음 (soft-disable only)
        audit_required: 감사 필요 여부
        conditions: 조건 목록 JSON (tagged union, kind 필드로 구분)
    """

    __tablename__ = "permissions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(150), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    module: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    resource: Mapped[str] = mapped_column(String(50), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    scope: Mapped[str] = mapped_column(String(20), nullable=False)
    security_level: Mapped[str] = mapped_column(String(20), nullable=False, default="internal")
    type: Mapped[str] = mapped_column(String(10), nullable=False, default="custom")
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    audit_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    conditions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    updated_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    dependencies = relationship(
        "PermissionDependency",
        foreign_keys="PermissionDependency.permission_id",
        back_populates="permission",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class PermissionDependency(Base):
    """권한 의존 간선.

    One directed edge ``permission --kind--> depends_on``.

    Attributes:
        permission_id: 출발 권한 FK
        depends_on_id: 대상 권한 FK
        kind: requires | conflicts | implies
    """

    __tablename__ = "permission_dependencies"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    permission_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False)
    depends_on_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False)
    kind: Mapped[str] = mapped_column(String(10), nullable=False)

    __table_args__ = (
        UniqueConstraint("permission_id", "depends_on_id", "kind", name="uq_permission_dependency"),
    )

    permission = relationship("Permission", foreign_keys=[permission_id], back_populates="dependencies")
