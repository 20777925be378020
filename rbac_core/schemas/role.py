"""역할 관련 Pydantic 요청/응답 스키마 정의.

Role Pydantic request/response schema definitions.
Permissions, parent roles and assigner roles are referenced by name.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

RoleCategory = Literal["admin", "coordinator", "staff", "beneficiary", "external"]
ScopeLevel = Literal["super", "state", "district", "area", "unit", "project", "scheme"]


class ScopeConfig(BaseModel):
    """역할 범위 설정.

    Scope configuration of a role.

    Attributes:
        allowed_scope_levels: 허용 범위 레벨 (Scope levels this role may act at)
        default_scope_level: 기본 범위 레벨 (Default scope level)
        allow_multiple_scopes: 복수 범위 허용 (Several scope ids per assignment)
        max_scopes: 할당당 최대 범위 id 수 (Max scope ids per assignment)
    """

    allowed_scope_levels: list[ScopeLevel] = Field(default_factory=list)
    default_scope_level: ScopeLevel | None = None
    allow_multiple_scopes: bool = False
    max_scopes: int = Field(default=1, ge=1)


class RoleConstraints(BaseModel):
    """역할 제약 조건.

    Role constraints.

    Attributes:
        max_users: 최대 보유자 수, None이면 무제한 (Max concurrent holders, None = unlimited)
        requires_approval: 부여 시 승인 필요 (Assignments start pending)
        assignable_by: 이 역할을 부여할 수 있는 역할 이름 (Names of roles allowed to assign)
    """

    max_users: int | None = Field(default=None, ge=1)
    requires_approval: bool = False
    assignable_by: list[str] = Field(default_factory=list)
    is_deletable: bool = True
    is_modifiable: bool = True


class RoleCreate(BaseModel):
    """역할 생성 요청 스키마.

    Role creation request schema.
    """

    name: str = Field(pattern=r"^[a-z][a-z0-9_]*$", max_length=50)
    display_name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    type: Literal["system", "custom"] = "custom"
    level: int = Field(ge=0, le=10)
    category: RoleCategory
    is_default: bool = False
    permissions: list[str] = Field(default_factory=list)  # 직접 권한 이름 (Direct permission names)
    inherits_from: list[str] = Field(default_factory=list)  # 부모 역할 이름 (Parent role names)
    scope_config: ScopeConfig = Field(default_factory=ScopeConfig)
    constraints: RoleConstraints = Field(default_factory=RoleConstraints)


class RoleUpdate(BaseModel):
    """역할 수정 요청 스키마 (부분 업데이트).

    Role update request schema (partial update). System roles reject updates.
    """

    display_name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    level: int | None = Field(default=None, ge=0, le=10)
    category: RoleCategory | None = None
    is_active: bool | None = None
    is_default: bool | None = None
    permissions: list[str] | None = None
    inherits_from: list[str] | None = None
    scope_config: ScopeConfig | None = None
    constraints: RoleConstraints | None = None


class RoleStats(BaseModel):
    """역할 통계 (Statistics recomputed from assignments)."""

    total_users: int
    active_users: int
    last_assigned_at: datetime | None


class RoleResponse(BaseModel):
    """역할 응답 스키마.

    Role response schema returned from API.
    """

    id: str  # 역할 UUID 문자열 (Role UUID as string)
    name: str
    display_name: str
    description: str | None
    type: str
    level: int
    category: str
    is_active: bool
    is_default: bool
    permissions: list[str]
    inherits_from: list[str]
    scope_config: ScopeConfig
    constraints: RoleConstraints
    stats: RoleStats
    created_at: datetime
    updated_at: datetime


class RoleHierarchyLevel(BaseModel):
    """레벨별 역할 묶음 (Active roles sharing one level)."""

    level: int
    roles: list[RoleResponse]
