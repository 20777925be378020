"""권한 카탈로그 관련 Pydantic 요청/응답 스키마 정의.

Permission catalog Pydantic request/response schema definitions.
Dependency edges (requires / conflicts / implies) are referenced by
permission name at this boundary; the catalog stores them as id → id rows.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from rbac_core.schemas.conditions import Condition

# 보안 등급 — 낮은 순서 (Ordinal, lowest first)
SECURITY_LEVELS: tuple[str, ...] = ("public", "internal", "confidential", "restricted", "top_secret")

SecurityLevel = Literal["public", "internal", "confidential", "restricted", "top_secret"]
PermissionScope = Literal["global", "regional", "project", "scheme", "own", "subordinate"]
PermissionCategory = Literal[
    "create", "read", "update", "delete", "approve", "manage", "configure",
    "export", "send", "verify", "debug", "monitor", "schedule", "cancel",
]

# module.action[.scope] 형식 — Dotted permission name
PERMISSION_NAME_PATTERN: str = r"^[a-z][a-z0-9_]*(\.[a-z0-9_]+)+$"


class PermissionDependencies(BaseModel):
    """권한 의존 관계 (이름 기준).

    Dependency edges by permission name.

    Attributes:
        requires: 선행 필요 권한 (Prerequisites, must be acyclic)
        conflicts: 상호 배타 권한 (Mutually exclusive permissions)
        implies: 자동 부여 권한 (Auto-granted permissions)
    """

    requires: list[str] = Field(default_factory=list)
    conflicts: list[str] = Field(default_factory=list)
    implies: list[str] = Field(default_factory=list)


class PermissionCreate(BaseModel):
    """권한 등록 요청 스키마.

    Permission registration request schema.
    """

    name: str = Field(pattern=PERMISSION_NAME_PATTERN, max_length=100)
    display_name: str = Field(min_length=1, max_length=150)
    description: str | None = Field(default=None, max_length=500)
    module: str = Field(min_length=1, max_length=50)
    category: PermissionCategory
    resource: str = Field(min_length=1, max_length=50)
    action: str = Field(min_length=1, max_length=50)
    scope: PermissionScope
    security_level: SecurityLevel = "internal"
    type: Literal["system", "custom"] = "custom"
    priority: int = 0
    audit_required: bool = False
    conditions: list[Condition] = Field(default_factory=list)
    dependencies: PermissionDependencies = Field(default_factory=PermissionDependencies)


class PermissionUpdate(BaseModel):
    """권한 수정 요청 스키마 (부분 업데이트).

    Permission update request schema (partial update).
    Name, module, resource and action are immutable once registered.
    """

    display_name: str | None = Field(default=None, min_length=1, max_length=150)
    description: str | None = Field(default=None, max_length=500)
    category: PermissionCategory | None = None
    scope: PermissionScope | None = None
    security_level: SecurityLevel | None = None
    priority: int | None = None
    is_active: bool | None = None
    audit_required: bool | None = None
    conditions: list[Condition] | None = None
    dependencies: PermissionDependencies | None = None


class PermissionResponse(BaseModel):
    """권한 응답 스키마.

    Permission response schema returned from API.
    """

    id: str  # 권한 UUID 문자열 (Permission UUID as string)
    name: str
    display_name: str
    description: str | None
    module: str
    category: str
    resource: str
    action: str
    scope: str
    security_level: str
    type: str
    priority: int
    is_active: bool
    audit_required: bool
    conditions: list[dict]
    dependencies: PermissionDependencies
    created_at: datetime
    updated_at: datetime
