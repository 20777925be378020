"""권한 판정 라우터 — 유효 권한, 권한 검사, 설명, 범위.

Authorization Router — effective permissions, point checks, the "why was I
denied" explanation and the user's scope. A user may always query their
own authorization; querying another user needs ``users.read.regional``.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from rbac_core.api.deps import get_current_user, request_context
from rbac_core.database import get_db
from rbac_core.models.user import User
from rbac_core.schemas.authorization import (
    CheckPermissionRequest,
    EffectivePermissionsResponse,
    PermissionCheckResult,
    PermissionExplanation,
    PermissionListCheckRequest,
    PermissionListCheckResult,
    ResourceAccessRequest,
    UserScope,
)
from rbac_core.services.permission_resolver import permission_resolver

router: APIRouter = APIRouter()

# 다른 사용자 조회에 필요한 권한 — Needed to query someone else
READ_OTHERS_PERMISSION: str = "users.read.regional"


async def _ensure_can_inspect(db: AsyncSession, request: Request, current_user: User, user_id: UUID) -> None:
    """본인 또는 조회 권한 보유자만 허용 (Self, or holder of the read permission)."""
    if current_user.id == user_id:
        return
    result: PermissionCheckResult = await permission_resolver.check_permission(
        db, current_user.id, READ_OTHERS_PERMISSION, request_context(request)
    )
    if not result.allowed:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Permission {READ_OTHERS_PERMISSION} denied: {result.reason}",
        )


@router.get("/{user_id}/permissions", response_model=EffectivePermissionsResponse)
async def effective_permissions(
    user_id: UUID,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> EffectivePermissionsResponse:
    """사용자의 유효 권한 목록을 조회합니다."""
    await _ensure_can_inspect(db, request, current_user, user_id)
    names: set[str] = await permission_resolver.effective_permissions(db, user_id)
    return EffectivePermissionsResponse(user_id=str(user_id), permissions=sorted(names))


@router.post("/{user_id}/check-permission", response_model=PermissionCheckResult)
async def check_permission(
    user_id: UUID,
    data: CheckPermissionRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> PermissionCheckResult:
    """권한을 검사합니다 (resource가 있으면 범위 포함)."""
    await _ensure_can_inspect(db, request, current_user, user_id)
    context = data.context
    if context.source_ip is None and context.timestamp is None:
        context = request_context(request)
    return await permission_resolver.check_permission(db, user_id, data.permission, context, resource=data.resource)


@router.post("/{user_id}/check-permissions/any", response_model=PermissionListCheckResult)
async def check_any_permission(
    user_id: UUID,
    data: PermissionListCheckRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> PermissionListCheckResult:
    """권한 중 하나라도 있는지 검사합니다."""
    await _ensure_can_inspect(db, request, current_user, user_id)
    return await permission_resolver.has_any_permission(db, user_id, data.permissions, data.context)


@router.post("/{user_id}/check-permissions/all", response_model=PermissionListCheckResult)
async def check_all_permissions(
    user_id: UUID,
    data: PermissionListCheckRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> PermissionListCheckResult:
    """모든 권한이 있는지 검사합니다."""
    await _ensure_can_inspect(db, request, current_user, user_id)
    return await permission_resolver.has_all_permissions(db, user_id, data.permissions, data.context)


@router.post("/{user_id}/resource-access", response_model=dict[str, bool])
async def resource_access(
    user_id: UUID,
    data: ResourceAccessRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> dict[str, bool]:
    """리소스가 사용자의 할당 범위 안에 있는지 검사합니다."""
    await _ensure_can_inspect(db, request, current_user, user_id)
    return {"allowed": await permission_resolver.resource_accessible(db, user_id, data.resource)}


@router.get("/{user_id}/explain", response_model=PermissionExplanation)
async def explain_permission(
    user_id: UUID,
    permission: str,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> PermissionExplanation:
    """권한 판정 근거를 할당별로 설명합니다."""
    await _ensure_can_inspect(db, request, current_user, user_id)
    return await permission_resolver.explain(db, user_id, permission, request_context(request))


@router.get("/{user_id}/scope", response_model=UserScope)
async def user_scope(
    user_id: UUID,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
) -> UserScope:
    """유효 할당 전체의 범위 합집합을 조회합니다."""
    await _ensure_can_inspect(db, request, current_user, user_id)
    return await permission_resolver.user_scope(db, user_id)
