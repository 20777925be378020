"""테스트 인프라 — 인메모리 SQLite DB, 세션, httpx 클라이언트 픽스처.

Test infrastructure — in-memory SQLite (aiosqlite) database, session and
httpx client fixtures. Every test gets a fresh database and an empty
definition cache.
"""

from collections.abc import AsyncGenerator
from uuid import UUID

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from rbac_core.database import create_tables, get_db
from rbac_core.main import app
from rbac_core.models.assignment import RoleAssignment
from rbac_core.models.permission import Permission
from rbac_core.models.role import Role
from rbac_core.models.user import User
from rbac_core.schemas.assignment import AssignOptions
from rbac_core.schemas.permission import PermissionCreate, PermissionDependencies
from rbac_core.schemas.role import RoleConstraints, RoleCreate, ScopeConfig
from rbac_core.seed import bootstrap_super_admin, seed_rbac
from rbac_core.services.assignment_store import assignment_store
from rbac_core.services.definition_cache import definition_cache
from rbac_core.services.permission_catalog import permission_catalog
from rbac_core.services.role_graph import role_graph
from rbac_core.utils.jwt import create_access_token

TEST_DATABASE_URL = "sqlite+aiosqlite://"


# ---------------------------------------------------------------------------
# Function-scoped: 엔진, 세션, 클라이언트
# ---------------------------------------------------------------------------
@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """테스트마다 새 인메모리 DB 엔진을 만들고 스키마를 생성합니다."""
    eng = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite 트랜잭션 처리 보정 — SQLAlchemy가 BEGIN을 직접 발행
    @event.listens_for(eng.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(eng.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    await create_tables(eng)

    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def db(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """각 테스트에 격리된 DB 세션을 제공합니다."""
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """테스트 DB에 바인딩된 세션 팩토리 (For code that opens its own sessions)."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def client(db: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """FastAPI 테스트 클라이언트 — DB 세션을 오버라이드합니다."""
    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db

    app.dependency_overrides[get_db] = _override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def fresh_definition_cache():
    """정의 캐시는 프로세스 전역 — 테스트 사이에 비웁니다."""
    definition_cache.invalidate()
    yield
    definition_cache.invalidate()


# ---------------------------------------------------------------------------
# 헬퍼: 테스트용 데이터 생성
# ---------------------------------------------------------------------------
async def make_user(db: AsyncSession, name: str, is_active: bool = True) -> User:
    """테스트 사용자를 생성합니다."""
    user = User(name=name, email=f"{name.lower().replace(' ', '.')}@test.com", is_active=is_active)
    db.add(user)
    await db.flush()
    await db.refresh(user)
    return user


async def make_permission(
    db: AsyncSession,
    name: str,
    requires: list[str] | None = None,
    implies: list[str] | None = None,
    conflicts: list[str] | None = None,
    **fields,
) -> Permission:
    """module.action 형식 이름으로 권한을 등록합니다."""
    parts = name.split(".")
    data = PermissionCreate(
        name=name,
        display_name=fields.pop("display_name", name),
        module=parts[0],
        category=fields.pop("category", "read"),
        resource=parts[0],
        action=parts[1],
        scope=fields.pop("scope", "global"),
        dependencies=PermissionDependencies(
            requires=requires or [], implies=implies or [], conflicts=conflicts or []
        ),
        **fields,
    )
    return await permission_catalog.register(db, data)


async def make_role(
    db: AsyncSession,
    name: str,
    permissions: list[str] | None = None,
    inherits_from: list[str] | None = None,
    level: int = 5,
    scope_config: ScopeConfig | None = None,
    constraints: RoleConstraints | None = None,
    **fields,
) -> Role:
    """역할을 생성합니다."""
    data = RoleCreate(
        name=name,
        display_name=fields.pop("display_name", name.replace("_", " ").title()),
        level=level,
        category=fields.pop("category", "staff"),
        permissions=permissions or [],
        inherits_from=inherits_from or [],
        scope_config=scope_config or ScopeConfig(),
        constraints=constraints or RoleConstraints(),
        **fields,
    )
    return await role_graph.create_role(db, data)


async def grant(
    db: AsyncSession,
    user: User,
    role: Role,
    options: AssignOptions | None = None,
) -> RoleAssignment:
    """할당자 검사 없이 역할을 부여합니다 (Approved assignment for test setup)."""
    return await assignment_store.assign(db, user.id, role.id, None, options, check_assigner=False)


# ---------------------------------------------------------------------------
# 픽스처: 사용자, 시드, 토큰
# ---------------------------------------------------------------------------
@pytest_asyncio.fixture
async def admin_user(db: AsyncSession) -> User:
    """관리자 사용자를 생성합니다."""
    return await make_user(db, "Test Admin")


@pytest_asyncio.fixture
async def member_user(db: AsyncSession) -> User:
    """일반 사용자를 생성합니다."""
    return await make_user(db, "Test Member")


@pytest_asyncio.fixture
async def catalog(db: AsyncSession) -> dict[str, int]:
    """시스템 권한/역할을 시드합니다."""
    created = await seed_rbac(db)
    await db.commit()
    return created


@pytest_asyncio.fixture
async def super_admin(db: AsyncSession, catalog, admin_user: User) -> RoleAssignment:
    """admin_user에게 super_admin을 부여합니다."""
    assignment = await bootstrap_super_admin(db, admin_user.id)
    await db.commit()
    return assignment


def make_token(user: User | UUID) -> str:
    """테스트용 JWT 액세스 토큰을 생성합니다."""
    user_id = user if isinstance(user, UUID) else user.id
    return create_access_token({"sub": str(user_id)})


@pytest.fixture
def admin_token(admin_user: User, super_admin) -> str:
    return make_token(admin_user)


@pytest.fixture
def member_token(member_user: User) -> str:
    return make_token(member_user)


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
