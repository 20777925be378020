"""기본 레포지토리 — 모든 RBAC 레포지토리의 부모 클래스.

Base repository shared by the permission, role, assignment and user
repositories. Inserts stay in the services (they build the full object
graph before flushing); this class covers lookup, partial update, delete
and paginated reads.

Usage:
    class RoleRepository(BaseRepository[Role]):
        def __init__(self) -> None:
            super().__init__(Role)
"""

from typing import Any, Generic, Sequence, TypeVar
from uuid import UUID

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from rbac_core.database import Base
from rbac_core.utils.pagination import paginate

# 제네릭 타입 변수 — SQLAlchemy 모델 (Generic type variable for a mapped model)
ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """제네릭 레포지토리.

    Attributes:
        model: SQLAlchemy 모델 클래스 (The SQLAlchemy model class)
    """

    def __init__(self, model: type[ModelType]) -> None:
        self.model: type[ModelType] = model

    async def get_by_id(self, db: AsyncSession, record_id: UUID) -> ModelType | None:
        """ID로 단일 레코드를 조회합니다 (None if missing)."""
        result = await db.execute(select(self.model).where(self.model.id == record_id))
        return result.scalar_one_or_none()

    async def get_paginated(
        self,
        db: AsyncSession,
        query: Select,
        page: int = 1,
        per_page: int = 20,
    ) -> tuple[Sequence[ModelType], int]:
        """쿼리 결과의 한 페이지와 전체 개수를 반환합니다.

        Returns:
            tuple[Sequence[ModelType], int]: (레코드 목록, 전체 개수)
        """
        return await paginate(db, query, page, per_page)

    async def update(
        self,
        db: AsyncSession,
        db_obj: ModelType,
        update_data: dict[str, Any],
    ) -> ModelType:
        """로드된 레코드에 변경 사항을 적용하고 flush합니다.

        Apply ``update_data`` to an already-loaded record. Keys that are not
        mapped attributes are ignored; None values are written as-is so a
        caller can clear a nullable column.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            db_obj: 수정할 레코드 (Loaded record to modify)
            update_data: 필드 → 값 (Fields to write)
        """
        for field, value in update_data.items():
            if hasattr(db_obj, field):
                setattr(db_obj, field, value)

        await db.flush()
        await db.refresh(db_obj)
        return db_obj

    async def delete(self, db: AsyncSession, db_obj: ModelType) -> None:
        """레코드를 삭제합니다 (Delete a loaded record and flush)."""
        await db.delete(db_obj)
        await db.flush()
