"""역할 라우터 — 역할 CRUD, 계층, 보유자 엔드포인트.

Role Router — role CRUD, hierarchy and holder endpoints.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from rbac_core.api.deps import require_permission
from rbac_core.database import get_db
from rbac_core.models.role import Role
from rbac_core.models.user import User
from rbac_core.schemas.role import RoleCategory, RoleCreate, RoleHierarchyLevel, RoleResponse, RoleUpdate
from rbac_core.services.assignment_store import assignment_store
from rbac_core.services.role_graph import role_graph
from rbac_core.utils.pagination import Page

router: APIRouter = APIRouter()


@router.get("", response_model=list[RoleResponse])
async def list_roles(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("roles.read"))],
    include_inactive: bool = False,
    category: RoleCategory | None = None,
) -> list[RoleResponse]:
    """역할 목록을 조회합니다 (level, name 순)."""
    roles: list[Role] = (
        await role_graph.roles_by_category(db, category)
        if category is not None
        else await role_graph.list_roles(db, include_inactive=include_inactive)
    )
    return [await role_graph.to_response(db, role) for role in roles]


@router.get("/hierarchy", response_model=list[RoleHierarchyLevel])
async def role_hierarchy(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("roles.read"))],
) -> list[RoleHierarchyLevel]:
    """레벨별 역할 계층을 조회합니다."""
    return await role_graph.hierarchy(db)


@router.get("/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("roles.read"))],
) -> RoleResponse:
    """역할 상세를 조회합니다."""
    return await role_graph.to_response(db, await role_graph.get_role(db, role_id))


@router.get("/{role_id}/effective-permissions", response_model=list[str])
async def role_effective_permissions(
    role_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("roles.read"))],
) -> list[str]:
    """상속을 포함한 역할의 전체 권한 이름 목록."""
    return sorted(await role_graph.effective_permissions(db, role_id))


@router.get("/{role_id}/holders", response_model=Page)
async def role_holders(
    role_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("roles.read"))],
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    include_inactive: bool = False,
) -> Page:
    """역할 보유 할당 목록을 조회합니다 (페이지네이션)."""
    return await assignment_store.holders_of(db, role_id, page, per_page, include_inactive=include_inactive)


@router.post("", response_model=RoleResponse, status_code=201)
async def create_role(
    data: RoleCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("roles.create"))],
) -> RoleResponse:
    """새 역할을 생성합니다."""
    role: Role = await role_graph.create_role(db, data, actor_id=current_user.id)
    result: RoleResponse = await role_graph.to_response(db, role)
    await db.commit()
    return result


@router.put("/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: UUID,
    data: RoleUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("roles.update"))],
) -> RoleResponse:
    """역할 정의를 수정합니다 (시스템 역할은 403)."""
    role: Role = await role_graph.update_role(db, role_id, data, actor_id=current_user.id)
    result: RoleResponse = await role_graph.to_response(db, role)
    await db.commit()
    return result


@router.delete("/{role_id}", status_code=204)
async def delete_role(
    role_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("roles.delete"))],
) -> None:
    """역할을 삭제합니다 (활성 할당이 있으면 409)."""
    await role_graph.delete_role(db, role_id, actor_id=current_user.id)
    await db.commit()
