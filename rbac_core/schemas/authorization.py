"""권한 검사 관련 Pydantic 스키마 정의.

Authorization query schemas: evaluation context, resource tags, check
results and the diagnostic explanation returned by ``explain``.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

ScopeKind = Literal["region", "project", "scheme"]


class AccessContext(BaseModel):
    """권한 검사 컨텍스트.

    Evaluation context for condition checks.

    Attributes:
        timestamp: 평가 시각, None이면 현재 시각 (Subject timestamp, defaults to now)
        source_ip: 요청 IP (Source IP address, optional)
    """

    timestamp: datetime | None = None
    source_ip: str | None = None


class ResourceTag(BaseModel):
    """리소스 범위 태그 (One region / project / scheme identifier on a resource)."""

    kind: ScopeKind
    id: str = Field(min_length=1)

    model_config = {"frozen": True}


class PermissionCheckResult(BaseModel):
    """권한 검사 결과.

    Outcome of a permission check. ``allowed`` is False on every failure
    path, with ``reason`` saying why.
    """

    allowed: bool
    permission: str
    reason: str | None = None
    requires_approval: bool = False
    audit_required: bool = False


class CheckPermissionRequest(BaseModel):
    """권한 검사 요청 스키마."""

    permission: str
    context: AccessContext = Field(default_factory=AccessContext)
    resource: list[ResourceTag] | None = None


class PermissionListCheckRequest(BaseModel):
    """복수 권한 검사 요청 스키마 (has_any / has_all)."""

    permissions: list[str] = Field(min_length=1)
    context: AccessContext = Field(default_factory=AccessContext)


class PermissionListCheckResult(BaseModel):
    """복수 권한 검사 결과 (missing lists the names not held)."""

    allowed: bool
    missing: list[str]


class ResourceAccessRequest(BaseModel):
    """리소스 범위 접근 검사 요청 스키마."""

    resource: list[ResourceTag]


class AssignmentExplanation(BaseModel):
    """할당 하나가 권한에 기여하는 방식.

    How one assignment contributes to (or blocks) a permission.

    Attributes:
        outcome: granted | restricted | not_granted | not_valid
        source: role | inherited | implied | override (권한 출처)
        via_role: 권한을 제공한 역할 이름 (Role that supplied the permission)
    """

    assignment_id: str
    role_name: str
    outcome: Literal["granted", "restricted", "not_granted", "not_valid"]
    source: Literal["role", "inherited", "implied", "override"] | None = None
    via_role: str | None = None
    detail: str | None = None


class PermissionExplanation(BaseModel):
    """권한 판정 설명 — "왜 거부되었는가" 지원용.

    Diagnostic explanation of a permission decision.
    """

    permission: str
    allowed: bool
    reason: str | None
    assignments: list[AssignmentExplanation]


class UserScope(BaseModel):
    """유효 할당 전체의 범위 합집합.

    Union of scope ids across the user's currently valid assignments.
    ``unrestricted`` lists the kinds for which some valid assignment carries
    no restriction at all.
    """

    regions: list[str]
    projects: list[str]
    schemes: list[str]
    unrestricted: list[ScopeKind]


class EffectivePermissionsResponse(BaseModel):
    """사용자 유효 권한 목록 응답."""

    user_id: str
    permissions: list[str]


class SweepResult(BaseModel):
    """만료 스윕 결과 (Number of assignments expired by this pass)."""

    expired: int
