"""FastAPI 애플리케이션 엔트리포인트 — 미들웨어, 라우터, 백그라운드 작업 등록.

FastAPI application entry point — middleware and router registration plus
the periodic assignment expiry sweep.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rbac_core.api.rbac import rbac_router
from rbac_core.config import settings
from rbac_core.jobs.expiry_sweeper import expiry_sweeper
from rbac_core.middleware.axiom_logging import AxiomLoggingMiddleware

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """만료 스윕 시작/종료 (Start and stop the expiry sweeper)."""
    if settings.RBAC_SWEEP_ENABLED:
        expiry_sweeper.start()
    else:
        logger.info("Expiry sweeper disabled via config")
    yield
    await expiry_sweeper.stop()


app: FastAPI = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Axiom API 로깅 미들웨어 — CORS보다 먼저 등록하여 모든 요청을 캡처
app.add_middleware(AxiomLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """서버 상태 확인 엔드포인트.

    Health check endpoint for load balancers and monitoring.
    """
    return {"status": "ok"}


app.include_router(rbac_router, prefix="/api/v1/rbac")
