"""유지보수 라우터 — 만료 스윕, 시드 초기화.

Maintenance Router — run the assignment expiry sweep on demand and
(re)seed the system catalog.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rbac_core.api.deps import require_permission
from rbac_core.database import get_db
from rbac_core.models.user import User
from rbac_core.schemas.authorization import SweepResult
from rbac_core.seed import seed_rbac
from rbac_core.services.assignment_store import assignment_store

router: APIRouter = APIRouter()


@router.post("/sweep", response_model=SweepResult)
async def sweep_expired(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("system.maintenance"))],
) -> SweepResult:
    """유효 기간이 지난 할당을 만료 처리합니다."""
    expired: int = await assignment_store.sweep_expired(db)
    await db.commit()
    return SweepResult(expired=expired)


@router.post("/initialize", response_model=dict[str, int])
async def initialize_catalog(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(require_permission("system.maintenance"))],
) -> dict[str, int]:
    """누락된 시스템 권한/역할을 등록합니다 (멱등)."""
    created: dict[str, int] = await seed_rbac(db)
    await db.commit()
    return created
