"""Axiom API 로깅 미들웨어.

Axiom API logging middleware for the RBAC admin surface.
Sends one structured event per request: method, path, parameters, masked
body, status, duration, client IP, the acting user id claimed by the bearer
token and, for 4xx/5xx responses, the error detail. Authorization denials
(403) are flagged so they can be queried separately.
Pass-through when Axiom is not configured.
"""

import json
import logging
import re
import time
from typing import Any

import jwt
from axiom_py import Client as AxiomClient
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from rbac_core.config import settings

logger = logging.getLogger(__name__)

# 마스킹 대상 필드 패턴 — Fields to mask in request bodies and params
_SENSITIVE_KEYS = re.compile(
    r"(password|passwd|secret|token|authorization|api_key|apikey|credential)",
    re.IGNORECASE,
)

# 로깅 제외 경로 — Paths excluded from logging
_SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}

_MAX_DETAIL: int = 500


def _mask(data: Any, depth: int = 0) -> Any:
    """민감 필드 재귀 마스킹 (Recursively mask sensitive keys, capped depth and list size)."""
    if depth > 5:
        return "..."
    if isinstance(data, dict):
        return {k: "***" if _SENSITIVE_KEYS.search(str(k)) else _mask(v, depth + 1) for k, v in data.items()}
    if isinstance(data, list):
        return [_mask(item, depth + 1) for item in data[:20]]
    if isinstance(data, str) and len(data) > 2000:
        return data[:2000] + "...(truncated)"
    return data


def _claimed_actor(request: Request) -> str | None:
    """Bearer 토큰의 sub 클레임 — 서명 검증 없이 로깅 용도로만 사용."""
    header: str = request.headers.get("authorization", "")
    if not header.lower().startswith("bearer "):
        return None
    try:
        claims: dict = jwt.decode(header[7:], options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return None
    sub = claims.get("sub")
    return str(sub) if sub is not None else None


async def _error_detail(response: Response) -> tuple[Response, str]:
    """오류 응답 본문에서 detail을 추출하고 소비한 본문으로 응답을 재구성합니다."""
    body: bytes = b""
    async for chunk in response.body_iterator:  # type: ignore[attr-defined]
        body += chunk if isinstance(chunk, bytes) else chunk.encode("utf-8")
    try:
        payload = json.loads(body)
        detail = payload.get("detail", payload) if isinstance(payload, dict) else payload
        text: str = detail if isinstance(detail, str) else json.dumps(detail, default=str)
    except (json.JSONDecodeError, UnicodeDecodeError):
        text = body.decode("utf-8", errors="replace")
    rebuilt = Response(
        content=body,
        status_code=response.status_code,
        headers=dict(response.headers),
        media_type=response.media_type,
    )
    return rebuilt, text[:_MAX_DETAIL]


class AxiomLoggingMiddleware(BaseHTTPMiddleware):
    """모든 RBAC API 요청/응답을 Axiom에 로깅하는 미들웨어."""

    def __init__(self, app: Any) -> None:
        super().__init__(app)
        self._client: AxiomClient | None = None
        self._dataset: str = settings.AXIOM_DATASET
        if settings.AXIOM_API_TOKEN and settings.AXIOM_DATASET:
            self._client = AxiomClient(token=settings.AXIOM_API_TOKEN)

    def _ingest(self, event: dict[str, Any]) -> None:
        if self._client is None:
            return
        try:
            self._client.ingest_events(self._dataset, [event])
        except Exception as exc:
            # 로깅 실패가 요청 처리에 영향주지 않도록 — Log sink failures never fail the request
            logger.warning("Axiom ingest failed: %s", exc)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in _SKIP_PATHS or self._client is None:
            return await call_next(request)

        start_time: float = time.perf_counter()
        event: dict[str, Any] = {
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None,
            "actor_id": _claimed_actor(request),
        }
        if request.query_params:
            event["query_params"] = _mask(dict(request.query_params))

        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            try:
                raw: bytes = await request.body()
                if raw:
                    event["request_body"] = _mask(json.loads(raw))
            except (json.JSONDecodeError, UnicodeDecodeError):
                event["request_body"] = "(non-json body)"

        status_code: int = 500
        try:
            response: Response = await call_next(request)
            status_code = response.status_code
            if status_code >= 400:
                response, event["error"] = await _error_detail(response)
            if status_code == 403:
                event["authorization_denied"] = True
            return response
        except Exception as exc:
            event["error"] = f"{type(exc).__name__}: {str(exc)[:300]}"
            raise
        finally:
            event["status_code"] = status_code
            event["duration_ms"] = round((time.perf_counter() - start_time) * 1000, 2)
            self._ingest(event)
