"""사용자 SQLAlchemy ORM 모델 정의.

User SQLAlchemy ORM model definition.
Authentication lives outside this service; the table only anchors role
assignments and actor references.

Tables:
    - users: 사용자 계정 (User accounts)
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from rbac_core.database import Base
from rbac_core.models.types import UTCDateTime, utcnow


class User(Base):
    """사용자 모델.

    User model — the subject of role assignments.

    Attributes:
        id: 고유 식별자 UUID (Unique identifier)
        name: 표시 이름 (Display name)
        email: 이메일 (Email address, optional)
        is_active: 활성 상태 (Inactive users are never authorized)
        created_at: 생성 일시 UTC (Creation timestamp)
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
