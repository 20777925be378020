"""데이터베이스 엔진 및 세션 설정 모듈.

Async SQLAlchemy engine, session factory and declarative base for the RBAC
tables. The URL comes from ``settings.DATABASE_URL``; PostgreSQL via asyncpg
in production.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from rbac_core.config import settings

# pool_pre_ping: 풀에서 꺼낸 연결을 사용 전 확인 (Validate pooled connections before use)
engine: AsyncEngine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

# expire_on_commit=False — 커밋 후 응답 직렬화 시 lazy load 방지
async_session: async_sessionmaker[AsyncSession] = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """RBAC ORM 모델 공통 베이스 (Declarative base for every RBAC table)."""


async def create_tables(bind: AsyncEngine | None = None) -> None:
    """등록된 모든 RBAC 테이블을 생성합니다 (이미 있으면 건너뜀).

    Create every table registered on ``Base.metadata``. Existing tables are
    left alone.
    """
    import rbac_core.models  # noqa: F401 — register all models with metadata

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """요청 단위 DB 세션을 제공합니다.

    FastAPI dependency yielding one session per request. Routers commit
    explicitly; anything left uncommitted is rolled back when the session
    closes.
    """
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()
