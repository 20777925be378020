"""권한 카탈로그 라우터.

Permission Catalog Router — list, read, register, update and deactivate
permission definitions. Permissions are addressed by name.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rbac_core.api.deps import require_permission
from rbac_core.database import get_db
from rbac_core.models.permission import Permission
from rbac_core.models.user import User
from rbac_core.schemas.permission import PermissionCreate, PermissionResponse, PermissionUpdate, SecurityLevel
from rbac_core.services.permission_catalog import permission_catalog

router: APIRouter = APIRouter()


@router.get("", response_model=list[PermissionResponse])
async def list_permissions(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("permissions.read"))],
    module: str | None = None,
    security_level: SecurityLevel | None = None,
    include_inactive: bool = False,
) -> list[PermissionResponse]:
    """권한 목록을 조회합니다 (module 또는 security_level 필터)."""
    if module is not None:
        permissions: list[Permission] = await permission_catalog.list_by_module(db, module, include_inactive)
    elif security_level is not None:
        permissions = await permission_catalog.list_by_security_level(db, security_level, include_inactive)
    else:
        permissions = await permission_catalog.list_all(db, include_inactive)
    return [await permission_catalog.to_response(db, p) for p in permissions]


@router.get("/{name}", response_model=PermissionResponse)
async def get_permission(
    name: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("permissions.read"))],
    include_inactive: bool = False,
) -> PermissionResponse:
    """권한 상세를 조회합니다."""
    permission: Permission = await permission_catalog.get(db, name, include_inactive=include_inactive)
    return await permission_catalog.to_response(db, permission)


@router.get("/{name}/implied", response_model=list[str])
async def implied_permissions(
    name: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("permissions.read"))],
) -> list[str]:
    """implies 간선으로 자동 부여되는 권한 목록."""
    return sorted(await permission_catalog.implied_closure(db, name))


@router.post("", response_model=PermissionResponse, status_code=201)
async def register_permission(
    data: PermissionCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("permissions.manage"))],
) -> PermissionResponse:
    """새 권한을 등록합니다."""
    permission: Permission = await permission_catalog.register(db, data, actor_id=current_user.id)
    result: PermissionResponse = await permission_catalog.to_response(db, permission)
    await db.commit()
    return result


@router.put("/{name}", response_model=PermissionResponse)
async def update_permission(
    name: str,
    data: PermissionUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("permissions.manage"))],
) -> PermissionResponse:
    """권한 정의를 수정합니다."""
    permission: Permission = await permission_catalog.update(db, name, data, actor_id=current_user.id)
    result: PermissionResponse = await permission_catalog.to_response(db, permission)
    await db.commit()
    return result


@router.delete("/{name}", response_model=PermissionResponse)
async def deactivate_permission(
    name: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("permissions.manage"))],
) -> PermissionResponse:
    """권한을 비활성화합니다 (물리 삭제 없음)."""
    permission: Permission = await permission_catalog.deactivate(db, name, actor_id=current_user.id)
    result: PermissionResponse = await permission_catalog.to_response(db, permission)
    await db.commit()
    return result
