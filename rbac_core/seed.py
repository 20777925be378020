"""RBAC 초기 데이터 시드 — 시스템 권한, 시스템 역할, 최초 super admin.

Seed script — registers the system permission catalog and role hierarchy
and bootstraps the first super administrator.

Usage:
    python -m rbac_core.seed

Creates:
    - 시스템 권한 카탈로그 (System permission catalog: users, roles, permissions, reports, system)
    - 역할 계층: super_admin(0) → state_admin(1) → district_admin(2) → area_admin(3),
      project_coordinator(5), field_staff(6)
    - super_admin 역할은 모든 시드 권한을 명시적으로 보유 (No name-based bypass)
"""

import asyncio
import logging
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from rbac_core.database import async_session, create_tables
from rbac_core.models.assignment import RoleAssignment
from rbac_core.models.role import Role
from rbac_core.models.user import User
from rbac_core.repositories.permission_repository import permission_repository
from rbac_core.repositories.role_repository import role_repository
from rbac_core.schemas.assignment import AssignOptions
from rbac_core.schemas.permission import PermissionCreate
from rbac_core.schemas.role import RoleConstraints, RoleCreate, ScopeConfig
from rbac_core.services.assignment_store import assignment_store
from rbac_core.services.definition_cache import definition_cache
from rbac_core.services.permission_catalog import permission_catalog
from rbac_core.services.role_graph import role_graph
from rbac_core.utils.exceptions import NotFoundError

logger = logging.getLogger(__name__)

SUPER_ADMIN_ROLE: str = "super_admin"

# (name, display_name, category, scope, security_level, audit_required)
SYSTEM_PERMISSIONS: list[tuple[str, str, str, str, str, bool]] = [
    ("users.create", "Create Users", "create", "regional", "internal", False),
    ("users.read.regional", "View Regional Users", "read", "regional", "internal", False),
    ("users.read.all", "View All Users", "read", "global", "confidential", False),
    ("users.read.own", "View Own Profile", "read", "own", "public", False),
    ("users.update.regional", "Update Regional Users", "update", "regional", "internal", False),
    ("users.update.own", "Update Own Profile", "update", "own", "public", False),
    ("users.delete", "Delete Users", "delete", "regional", "restricted", True),
    ("roles.create", "Create Roles", "create", "global", "restricted", False),
    ("roles.read", "View Roles", "read", "global", "internal", False),
    ("roles.update", "Update Roles", "update", "global", "restricted", False),
    ("roles.delete", "Delete Roles", "delete", "global", "restricted", True),
    ("roles.assign", "Assign Roles", "manage", "regional", "confidential", True),
    ("permissions.read", "View Permissions", "read", "global", "internal", False),
    ("permissions.manage", "Manage Permissions", "manage", "global", "top_secret", True),
    ("reports.read.regional", "View Regional Reports", "read", "regional", "internal", False),
    ("reports.export", "Export Reports", "export", "regional", "confidential", True),
    ("audit.read", "View Audit Logs", "read", "global", "restricted", False),
    ("system.monitor", "Monitor System", "monitor", "global", "restricted", False),
    ("system.maintenance", "Run Maintenance", "manage", "global", "restricted", True),
]

# 의존 관계 (name → requires / implies)
SYSTEM_DEPENDENCIES: dict[str, dict[str, list[str]]] = {
    "roles.assign": {"requires": ["roles.read"]},
    "roles.update": {"requires": ["roles.read"]},
    "permissions.manage": {"implies": ["permissions.read"]},
    "users.read.all": {"implies": ["users.read.regional"]},
    "reports.export": {"requires": ["reports.read.regional"]},
}

SYSTEM_ROLES: list[RoleCreate] = [
    RoleCreate(
        name=SUPER_ADMIN_ROLE,
        display_name="Super Administrator",
        description="Complete system access",
        type="system",
        level=0,
        category="admin",
        scope_config=ScopeConfig(allowed_scope_levels=["super"], default_scope_level="super"),
        constraints=RoleConstraints(max_users=5, requires_approval=True, assignable_by=[SUPER_ADMIN_ROLE]),
    ),
    RoleCreate(
        name="state_admin",
        display_name="State Administrator",
        description="State-level administrative access",
        level=1,
        category="admin",
        permissions=[
            "users.create", "users.read.all", "users.update.regional", "users.delete",
            "roles.create", "roles.read", "roles.update", "roles.delete", "roles.assign",
            "permissions.read", "reports.read.regional", "reports.export", "audit.read",
        ],
        scope_config=ScopeConfig(
            allowed_scope_levels=["state", "district", "area", "unit"], default_scope_level="state"
        ),
        constraints=RoleConstraints(
            max_users=10, requires_approval=True, assignable_by=[SUPER_ADMIN_ROLE], is_deletable=False
        ),
    ),
    RoleCreate(
        name="district_admin",
        display_name="District Administrator",
        description="District-level administrative access",
        level=2,
        category="admin",
        permissions=["users.create", "users.read.regional", "users.update.regional", "roles.read", "roles.assign",
                     "reports.read.regional", "reports.export"],
        scope_config=ScopeConfig(
            allowed_scope_levels=["district", "area", "unit"],
            default_scope_level="district",
            allow_multiple_scopes=True,
            max_scopes=5,
        ),
        constraints=RoleConstraints(
            max_users=50, requires_approval=True, assignable_by=[SUPER_ADMIN_ROLE, "state_admin"]
        ),
    ),
    RoleCreate(
        name="area_admin",
        display_name="Area Administrator",
        description="Area-level administrative access",
        level=3,
        category="admin",
        permissions=["users.read.regional", "roles.read", "reports.read.regional"],
        scope_config=ScopeConfig(
            allowed_scope_levels=["area", "unit"],
            default_scope_level="area",
            allow_multiple_scopes=True,
            max_scopes=10,
        ),
        constraints=RoleConstraints(max_users=100),
    ),
    RoleCreate(
        name="project_coordinator",
        display_name="Project Coordinator",
        description="Project-specific coordination and management",
        level=5,
        category="coordinator",
        permissions=["users.read.regional", "reports.read.regional"],
        scope_config=ScopeConfig(
            allowed_scope_levels=["project"], default_scope_level="project", allow_multiple_scopes=True, max_scopes=10
        ),
        constraints=RoleConstraints(max_users=200),
    ),
    RoleCreate(
        name="field_staff",
        display_name="Field Staff",
        description="Field-level data collection",
        level=6,
        category="staff",
        is_default=True,
        permissions=["users.read.own", "users.update.own"],
        scope_config=ScopeConfig(
            allowed_scope_levels=["unit"], default_scope_level="unit", allow_multiple_scopes=True, max_scopes=5
        ),
    ),
]


async def seed_rbac(db: AsyncSession) -> dict[str, int]:
    """시스템 권한과 역할을 등록합니다 (멱등).

    Register every missing system permission and role. Existing entries are
    left untouched, except that ``super_admin`` is topped up with any seeded
    permission it does not hold yet.

    Returns:
        dict[str, int]: {"permissions": 새로 등록한 권한 수, "roles": 새로 만든 역할 수}
    """
    created_permissions: int = 0
    for name, display_name, category, scope, security_level, audit in SYSTEM_PERMISSIONS:
        if await permission_repository.get_by_name(db, name) is not None:
            continue
        module, action = name.split(".")[0], name.split(".")[1]
        await permission_catalog.register(
            db,
            PermissionCreate(
                name=name,
                display_name=display_name,
                module=module,
                category=category,
                resource=module.rstrip("s"),
                action=action,
                scope=scope,
                security_level=security_level,
                type="system",
                audit_required=audit,
                dependencies=SYSTEM_DEPENDENCIES.get(name, {}),
            ),
        )
        created_permissions += 1

    created_roles: int = 0
    for definition in SYSTEM_ROLES:
        if await role_repository.get_by_name(db, definition.name) is not None:
            continue
        if definition.name == SUPER_ADMIN_ROLE:
            definition = definition.model_copy(update={"permissions": [p[0] for p in SYSTEM_PERMISSIONS]})
        await role_graph.create_role(db, definition)
        created_roles += 1

    # 시스템 역할은 API로 수정 불가 — 시드에서만 권한 보충
    super_admin: Role | None = await role_repository.get_by_name(db, SUPER_ADMIN_ROLE)
    if super_admin is not None:
        seeded = await permission_repository.get_by_names(db, [p[0] for p in SYSTEM_PERMISSIONS])
        held: set[UUID] = {rp.permission_id for rp in super_admin.role_permissions}
        if any(p.id not in held for p in seeded):
            await role_repository.set_permissions(db, super_admin, sorted(held | {p.id for p in seeded}, key=str))
            definition_cache.invalidate_on_commit(db)

    logger.info("Seeded %d permission(s) and %d role(s)", created_permissions, created_roles)
    return {"permissions": created_permissions, "roles": created_roles}


async def bootstrap_super_admin(db: AsyncSession, user_id: UUID) -> RoleAssignment:
    """최초 super admin 할당을 생성합니다 (할당자 검사 없이 바로 승인).

    Create the first, already approved super_admin assignment for
    ``user_id``. The assigner check is skipped because nobody can hold the
    assigning role yet.
    """
    role: Role | None = await role_repository.get_by_name(db, SUPER_ADMIN_ROLE)
    if role is None:
        await seed_rbac(db)
        role = await role_repository.get_by_name(db, SUPER_ADMIN_ROLE)
    if role is None:
        raise NotFoundError(f"Role not found: {SUPER_ADMIN_ROLE}")

    assignment: RoleAssignment = await assignment_store.assign(
        db,
        user_id,
        role.id,
        None,
        AssignOptions(is_primary=True, reason="Initial super administrator"),
        check_assigner=False,
    )
    logger.info("Bootstrapped super admin %s", user_id)
    return assignment


async def seed() -> None:
    """테이블을 만들고 시드 후 관리자 계정을 생성합니다.

    Idempotent: 이미 super admin 할당이 있으면 건너뜁니다.
    """
    await create_tables()

    async with async_session() as db:
        await seed_rbac(db)
        role: Role | None = await role_repository.get_by_name(db, SUPER_ADMIN_ROLE)
        if role is not None and role.active_users > 0:
            await db.commit()
            print("Already seeded. Skipping super admin bootstrap.")
            return

        admin = User(id=uuid4(), name="System Admin", email="admin@example.org", is_active=True)
        db.add(admin)
        await db.flush()
        await bootstrap_super_admin(db, admin.id)
        await db.commit()
        print(f"Seeded: super admin user={admin.id}")


if __name__ == "__main__":
    asyncio.run(seed())
