"""멱등 작업 재시도 정책.

Retry policy for idempotent operations.
Only DependencyError is retried, with exponential backoff. Connectivity
failures raised by SQLAlchemy are translated into DependencyError first so
callers see a single error kind. When the wrapped coroutine received an
AsyncSession, the session is rolled back before the next attempt so the
retry starts from a clean transaction.
"""

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from rbac_core.config import settings
from rbac_core.utils.exceptions import DependencyError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _find_session(args: tuple[Any, ...], kwargs: dict[str, Any]) -> AsyncSession | None:
    for value in (*args, *kwargs.values()):
        if isinstance(value, AsyncSession):
            return value
    return None


async def call_with_retry(fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
    """DependencyError 발생 시 지수 백오프로 재시도합니다.

    Await ``fn(*args, **kwargs)``, retrying on DependencyError with
    exponential backoff. The last DependencyError is re-raised once the
    attempt budget is spent.

    Raises:
        DependencyError: 재시도 한도 초과 (Retry budget exhausted)
    """
    session: AsyncSession | None = _find_session(args, kwargs)

    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type(DependencyError),
        stop=stop_after_attempt(max(1, settings.RBAC_RETRY_ATTEMPTS)),
        wait=wait_exponential(
            multiplier=settings.RBAC_RETRY_BACKOFF_SECONDS,
            max=settings.RBAC_RETRY_MAX_BACKOFF_SECONDS,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            try:
                return await fn(*args, **kwargs)
            except IntegrityError:
                raise
            except DBAPIError as exc:
                if session is not None:
                    await session.rollback()
                raise DependencyError(f"Datastore unavailable: {exc.__class__.__name__}") from exc
    raise DependencyError()  # pragma: no cover


def idempotent(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """멱등 코루틴에 재시도 정책을 적용하는 데코레이터.

    Decorator applying ``call_with_retry`` to an idempotent coroutine.
    Never use it on non-idempotent mutations such as ``assign``.
    """

    @functools.wraps(fn)
    async def _wrapper(*args: Any, **kwargs: Any) -> T:
        return await call_with_retry(fn, *args, **kwargs)

    return _wrapper
