"""페이지네이션 유틸리티 — 역할 보유자 목록 등 페이지 단위 조회.

Offset pagination for async SQLAlchemy queries and the ``Page`` envelope
returned by paginated endpoints (role holders).
"""

import math
from typing import Any, Sequence

from pydantic import BaseModel
from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession


class Page(BaseModel):
    """페이지 응답 모델.

    Attributes:
        items: 현재 페이지 항목 (Items on this page)
        total: 전체 항목 수 (Total across all pages)
        page: 1부터 시작하는 페이지 번호 (1-based page number)
        per_page: 페이지 크기 (Page size)
        pages: 전체 페이지 수 (ceil(total / per_page))
    """

    items: list[Any]
    total: int
    page: int
    per_page: int
    pages: int

    @classmethod
    def build(cls, items: list[Any], total: int, page: int, per_page: int) -> "Page":
        pages: int = math.ceil(total / per_page) if per_page > 0 else 0
        return cls(items=items, total=total, page=page, per_page=per_page, pages=pages)


async def paginate(
    db: AsyncSession,
    query: Select[Any],
    page: int = 1,
    per_page: int = 20,
) -> tuple[Sequence[Any], int]:
    """쿼리의 한 페이지와 전체 개수를 조회합니다.

    The query should carry its own ORDER BY; pages are stable only when the
    ordering is total. Page numbers below 1 are treated as 1.

    Returns:
        tuple[Sequence[Any], int]: (항목 목록, 전체 개수)
    """
    total: int = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
    offset: int = (max(page, 1) - 1) * per_page
    items: Sequence[Any] = (await db.execute(query.offset(offset).limit(per_page))).scalars().all()
    return items, total
