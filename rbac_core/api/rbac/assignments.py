"""역할 할당 라우터 — 부여, 상태 전이, 승인, 오버라이드.

Assignment Router — assign / revoke / suspend / reactivate a user's role,
approve or reject pending assignments, and manage per-assignment grants
and restrictions.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rbac_core.api.deps import require_permission
from rbac_core.database import get_db
from rbac_core.models.assignment import RoleAssignment
from rbac_core.models.user import User
from rbac_core.schemas.assignment import AssignmentResponse, AssignRequest, OverrideRequest, TransitionRequest
from rbac_core.services.assignment_store import assignment_store

router: APIRouter = APIRouter()


async def _respond(db: AsyncSession, assignment: RoleAssignment) -> AssignmentResponse:
    result: AssignmentResponse = await assignment_store.to_response(db, assignment)
    await db.commit()
    return result


# ---------------------------------------------------------------------------
# 사용자 기준 — /users/{user_id}/roles
# ---------------------------------------------------------------------------


@router.get("/users/{user_id}/roles", response_model=list[AssignmentResponse])
async def list_user_assignments(
    user_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("users.read.regional"))],
    include_inactive: bool = False,
) -> list[AssignmentResponse]:
    """사용자의 역할 할당 목록을 조회합니다."""
    assignments = await assignment_store.assignments_for(db, user_id, include_inactive=include_inactive)
    return [await assignment_store.to_response(db, a) for a in assignments]


@router.post("/users/{user_id}/roles", response_model=AssignmentResponse, status_code=201)
async def assign_role(
    user_id: UUID,
    data: AssignRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("roles.assign"))],
) -> AssignmentResponse:
    """사용자에게 역할을 부여합니다 (승인 필요 역할은 pending)."""
    assignment: RoleAssignment = await assignment_store.assign(
        db, user_id, data.role_id, current_user.id, data
    )
    return await _respond(db, assignment)


@router.delete("/users/{user_id}/roles/{role_id}", response_model=AssignmentResponse)
async def revoke_role(
    user_id: UUID,
    role_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("roles.assign"))],
    reason: str | None = None,
) -> AssignmentResponse:
    """역할 할당을 회수합니다."""
    assignment: RoleAssignment = await assignment_store.revoke(db, user_id, role_id, current_user.id, reason)
    return await _respond(db, assignment)


@router.post("/users/{user_id}/roles/{role_id}/suspend", response_model=AssignmentResponse)
async def suspend_role(
    user_id: UUID,
    role_id: UUID,
    data: TransitionRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("roles.assign"))],
) -> AssignmentResponse:
    """역할 할당을 일시 정지합니다."""
    assignment: RoleAssignment = await assignment_store.suspend(db, user_id, role_id, current_user.id, data.reason)
    return await _respond(db, assignment)


@router.post("/users/{user_id}/roles/{role_id}/reactivate", response_model=AssignmentResponse)
async def reactivate_role(
    user_id: UUID,
    role_id: UUID,
    data: TransitionRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("roles.assign"))],
) -> AssignmentResponse:
    """정지된 역할 할당을 재활성화합니다."""
    assignment: RoleAssignment = await assignment_store.reactivate(
        db, user_id, role_id, current_user.id, data.reason
    )
    return await _respond(db, assignment)


# ---------------------------------------------------------------------------
# 할당 기준 — /assignments/{assignment_id}
# ---------------------------------------------------------------------------


@router.get("/assignments/{assignment_id}", response_model=AssignmentResponse)
async def get_assignment(
    assignment_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("users.read.regional"))],
) -> AssignmentResponse:
    """할당 상세와 이력을 조회합니다."""
    return await assignment_store.to_response(db, await assignment_store.get_assignment(db, assignment_id))


@router.post("/assignments/{assignment_id}/approve", response_model=AssignmentResponse)
async def approve_assignment(
    assignment_id: UUID,
    data: TransitionRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("roles.assign"))],
) -> AssignmentResponse:
    """대기 중인 할당을 승인합니다."""
    assignment: RoleAssignment = await assignment_store.approve(db, assignment_id, current_user.id, data.reason)
    return await _respond(db, assignment)


@router.post("/assignments/{assignment_id}/reject", response_model=AssignmentResponse)
async def reject_assignment(
    assignment_id: UUID,
    data: TransitionRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("roles.assign"))],
) -> AssignmentResponse:
    """대기 중인 할당을 거절합니다."""
    assignment: RoleAssignment = await assignment_store.reject(db, assignment_id, current_user.id, data.reason)
    return await _respond(db, assignment)


@router.post("/assignments/{assignment_id}/permissions", response_model=AssignmentResponse)
async def add_assignment_permission(
    assignment_id: UUID,
    data: OverrideRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("roles.assign"))],
) -> AssignmentResponse:
    """할당에 추가 권한을 부여합니다 (재추가 시 교체)."""
    await assignment_store.add_override_permission(
        db, assignment_id, data.permission, current_user.id, data.reason, data.expires_at
    )
    return await _respond(db, await assignment_store.get_assignment(db, assignment_id))


@router.delete("/assignments/{assignment_id}/permissions/{name}", response_model=AssignmentResponse)
async def remove_assignment_permission(
    assignment_id: UUID,
    name: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("roles.assign"))],
) -> AssignmentResponse:
    """할당의 추가 권한을 제거합니다."""
    await assignment_store.remove_override_permission(db, assignment_id, name, current_user.id)
    return await _respond(db, await assignment_store.get_assignment(db, assignment_id))


@router.post("/assignments/{assignment_id}/restrictions", response_model=AssignmentResponse)
async def add_assignment_restriction(
    assignment_id: UUID,
    data: OverrideRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("roles.assign"))],
) -> AssignmentResponse:
    """할당에서 권한을 제한합니다 (재추가 시 교체)."""
    await assignment_store.add_restriction(
        db, assignment_id, data.permission, current_user.id, data.reason, data.expires_at
    )
    return await _respond(db, await assignment_store.get_assignment(db, assignment_id))


@router.delete("/assignments/{assignment_id}/restrictions/{name}", response_model=AssignmentResponse)
async def remove_assignment_restriction(
    assignment_id: UUID,
    name: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("roles.assign"))],
) -> AssignmentResponse:
    """할당의 권한 제한을 해제합니다."""
    await assignment_store.remove_restriction(db, assignment_id, name, current_user.id)
    return await _respond(db, await assignment_store.get_assignment(db, assignment_id))
