"""SQLAlchemy ORM 모델 패키지 — 모든 도메인 모델의 중앙 임포트 지점.

SQLAlchemy ORM models package — Central import point for all domain models.
Importing from this package registers every model with the metadata.

Modules:
    user: 사용자 (Users)
    permission: 권한 및 의존 간선 (Permissions and dependency edges)
    role: 역할, 직접 권한, 상속, 부여 가능 역할 (Roles, grants, inheritance, assigners)
    assignment: 할당, 오버라이드, 이력 (Assignments, overrides, history)
"""

from rbac_core.models.user import User
from rbac_core.models.permission import Permission, PermissionDependency
from rbac_core.models.role import Role, RolePermission, RoleInheritance, RoleAssigner
from rbac_core.models.assignment import RoleAssignment, AssignmentOverride, AssignmentHistory

__all__ = [
    "User",
    "Permission", "PermissionDependency",
    "Role", "RolePermission", "RoleInheritance", "RoleAssigner",
    "RoleAssignment", "AssignmentOverride", "AssignmentHistory",
]
