"""역할 할당 만료 스윕 백그라운드 작업.

Background job that periodically expires role assignments whose validity
window has passed. Each pass runs ``assignment_store.sweep_expired`` in its
own session and transaction; a failed pass is logged and the loop keeps
going. Started and stopped from the FastAPI lifespan.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from rbac_core.config import settings
from rbac_core.database import async_session
from rbac_core.services.assignment_store import assignment_store

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """주기적 만료 스윕 스케줄러.

    Args:
        interval_seconds: 스윕 주기 (Seconds between passes, defaults to settings)
        session_factory: 세션 팩토리 (Session factory, defaults to the app's)
    """

    def __init__(
        self,
        interval_seconds: float | None = None,
        session_factory: Callable[[], Any] | None = None,
    ) -> None:
        self.interval_seconds: float = (
            settings.RBAC_SWEEP_INTERVAL_SECONDS if interval_seconds is None else interval_seconds
        )
        self._session_factory = session_factory or async_session
        self._task: asyncio.Task | None = None
        self.passes: int = 0
        self.failures: int = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        """스윕 1회 실행 — 자체 세션에서 커밋합니다.

        Returns:
            int: 만료 처리한 할당 수 (Assignments expired by this pass)
        """
        db: AsyncSession
        async with self._session_factory() as db:
            try:
                expired: int = await assignment_store.sweep_expired(db)
                await db.commit()
            except Exception:
                await db.rollback()
                raise
        self.passes += 1
        return expired

    async def _loop(self) -> None:
        logger.info("Expiry sweeper started (interval: %.0fs)", self.interval_seconds)
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                self.failures += 1
                logger.exception("Expiry sweep failed")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        """백그라운드 루프를 시작합니다 (이미 실행 중이면 무시)."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        """백그라운드 루프를 취소하고 종료를 기다립니다."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            logger.info("Expiry sweeper stopped")
        self._task = None


expiry_sweeper: ExpirySweeper = ExpirySweeper()
