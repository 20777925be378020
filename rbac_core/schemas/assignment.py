"""역할 할당 관련 Pydantic 요청/응답 스키마 정의.

Role assignment Pydantic request/response schema definitions.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class AssignmentScope(BaseModel):
    """할당 범위 제한 — 종류별 id 목록이 비어 있으면 무제한.

    Scope restriction of an assignment. An empty list leaves that kind
    unrestricted.
    """

    regions: list[str] = Field(default_factory=list)
    projects: list[str] = Field(default_factory=list)
    schemes: list[str] = Field(default_factory=list)
    custom_restrictions: dict[str, Any] = Field(default_factory=dict)  # 기록만 함 (Recorded, not evaluated)

    def total_ids(self) -> int:
        return len(self.regions) + len(self.projects) + len(self.schemes)


class DelegationInfo(BaseModel):
    """위임 메타데이터 (Delegation metadata, recorded not evaluated)."""

    from_user_id: UUID | None = None
    from_role_id: UUID | None = None
    reason: str | None = Field(default=None, max_length=500)
    expires_at: datetime | None = None


class AssignOptions(BaseModel):
    """역할 부여 옵션.

    Options for ``assign``.

    Attributes:
        scope: 범위 제한 (Scope restriction)
        valid_from: 유효 시작, None이면 현재 (Defaults to now)
        valid_until: 유효 종료, None이면 무기한 (Open-ended when None)
        is_primary: primary 할당 여부, 기존 primary는 해제됨 (Demotes any other primary)
        is_temporary: 임시 할당 표시 (Temporary flag)
        reason: 부여 사유 (Assignment reason)
        delegation: 위임 정보 (Delegation metadata)
    """

    scope: AssignmentScope = Field(default_factory=AssignmentScope)
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    is_primary: bool = False
    is_temporary: bool = False
    reason: str | None = Field(default=None, max_length=500)
    delegation: DelegationInfo | None = None

    @model_validator(mode="after")
    def window_ordered(self) -> "AssignOptions":
        if self.valid_from and self.valid_until and self.valid_until <= self.valid_from:
            raise ValueError("valid_until must be after valid_from")
        return self


class AssignRequest(AssignOptions):
    """역할 부여 요청 스키마 (Assign request)."""

    role_id: UUID


class TransitionRequest(BaseModel):
    """상태 전이 요청 스키마 — revoke / suspend / reactivate / approve / reject."""

    reason: str | None = Field(default=None, max_length=500)


class OverrideRequest(BaseModel):
    """할당별 추가 권한 / 제한 요청 스키마.

    Per-assignment grant or restriction request schema.
    """

    permission: str  # 권한 이름 (Permission name)
    reason: str | None = Field(default=None, max_length=500)
    expires_at: datetime | None = None


class OverrideResponse(BaseModel):
    """오버라이드 응답 스키마."""

    permission: str
    effect: str
    actor_id: str | None
    reason: str | None
    created_at: datetime
    expires_at: datetime | None


class HistoryEntryResponse(BaseModel):
    """할당 이력 응답 스키마."""

    seq: int
    action: str
    performed_by: str | None
    performed_at: datetime
    reason: str | None
    details: dict | None


class AssignmentResponse(BaseModel):
    """할당 응답 스키마.

    Role assignment response schema returned from API.
    """

    id: str
    user_id: str
    role_id: str
    role_name: str | None
    assigned_by: str | None
    assignment_reason: str | None
    scope: AssignmentScope
    valid_from: datetime
    valid_until: datetime | None
    is_active: bool
    is_primary: bool
    is_temporary: bool
    approval_status: str
    approved_by: str | None
    approved_at: datetime | None
    approval_comments: str | None
    delegation: DelegationInfo | None
    last_used_at: datetime | None
    usage_count: int
    additional_permissions: list[OverrideResponse]
    restricted_permissions: list[OverrideResponse]
    history: list[HistoryEntryResponse]
    created_at: datetime
