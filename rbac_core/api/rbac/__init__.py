"""RBAC 관리 API 라우터 패키지 — 모든 RBAC 엔드포인트 통합.

RBAC admin API Router package — aggregates every RBAC endpoint into a
single router mounted at ``/api/v1/rbac``.

Included routers:
    - roles: 역할 관리 (Role management)
    - permissions: 권한 카탈로그 (Permission catalog)
    - assignments: 사용자 역할 할당 (User role assignments, approvals, overrides)
    - authorization: 권한 판정 조회 (Effective permissions, checks, explain, scope)
    - maintenance: 만료 스윕, 시드 (Expiry sweep, seeding)
"""

from fastapi import APIRouter

from rbac_core.api.rbac.assignments import router as assignments_router
from rbac_core.api.rbac.authorization import router as authorization_router
from rbac_core.api.rbac.maintenance import router as maintenance_router
from rbac_core.api.rbac.permissions import router as permissions_router
from rbac_core.api.rbac.roles import router as roles_router

rbac_router: APIRouter = APIRouter()

rbac_router.include_router(roles_router, prefix="/roles", tags=["Roles"])
rbac_router.include_router(permissions_router, prefix="/permissions", tags=["Permissions"])
# 할당: /users/{user_id}/roles 및 /assignments/{assignment_id} (Both prefixes live in one router)
rbac_router.include_router(assignments_router, tags=["Assignments"])
rbac_router.include_router(authorization_router, prefix="/authorization", tags=["Authorization"])
rbac_router.include_router(maintenance_router, prefix="/maintenance", tags=["Maintenance"])
