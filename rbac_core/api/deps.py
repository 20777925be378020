"""FastAPI 의존성 주입 모듈 — 행위자 식별 및 권한 검사.

FastAPI dependency injection module — actor identity and authorization.

Authentication Flow:
    1. 클라이언트가 Authorization: Bearer <token> 헤더를 전송
       (Client sends Authorization: Bearer <token> header)
    2. decode_token()이 JWT를 검증하고 "sub"로 사용자를 조회
       (decode_token verifies the JWT; "sub" identifies the user)
    3. 사용자 활성 상태를 확인 (User active status is verified)

Authorization Flow (require_permission):
    1. get_current_user로 행위자 식별 (Actor identified via get_current_user)
    2. 요청 IP와 현재 시각을 컨텍스트로 permission_resolver 검사
       (Resolver check with request IP and timestamp as context)
    3. 거부되면 403 Forbidden (Denied → 403 with the denial reason)
"""

from typing import Annotated, Awaitable, Callable
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from rbac_core.database import get_db
from rbac_core.models.types import utcnow
from rbac_core.models.user import User
from rbac_core.repositories.user_repository import user_repository
from rbac_core.schemas.authorization import AccessContext, PermissionCheckResult
from rbac_core.services.permission_resolver import permission_resolver
from rbac_core.utils.jwt import decode_token

# HTTP Bearer 토큰 추출기 (Extracts JWT token from Authorization: Bearer <token> header)
security: HTTPBearer = HTTPBearer()


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """JWT 토큰에서 현재 행위자를 추출합니다.

    Raises:
        HTTPException(401): 토큰이 유효하지 않거나 만료됨 (Invalid or expired token)
        HTTPException(401): 사용자를 찾을 수 없거나 비활성 (User not found or inactive)
    """
    try:
        payload: dict = decode_token(credentials.credentials)
        if payload.get("type") != "access":
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token type")
        user_id: str | None = payload.get("sub")
        if user_id is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
        actor_id: UUID = UUID(user_id)
    except HTTPException:
        raise
    except (jwt.ExpiredSignatureError, jwt.InvalidTokenError, KeyError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

    user: User | None = await user_repository.get_by_id(db, actor_id)
    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")
    return user


def request_context(request: Request) -> AccessContext:
    """요청에서 권한 검사 컨텍스트를 만듭니다 (Request IP + current time)."""
    source_ip: str | None = request.client.host if request.client else None
    return AccessContext(timestamp=utcnow(), source_ip=source_ip)


def require_permission(name: str) -> Callable[..., Awaitable[User]]:
    """권한 기반 접근 제어 의존성 팩토리.

    Dependency factory enforcing that the acting user holds ``name``.

    Args:
        name: 필요한 권한 이름 (Required permission name)

    Returns:
        FastAPI 의존성 함수 — 행위자 반환 또는 403 발생
        (FastAPI dependency returning the actor or raising 403)
    """

    async def _check(
        request: Request,
        current_user: Annotated[User, Depends(get_current_user)],
        db: Annotated[AsyncSession, Depends(get_db)],
    ) -> User:
        result: PermissionCheckResult = await permission_resolver.check_permission(
            db, current_user.id, name, request_context(request)
        )
        if not result.allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission {name} denied: {result.reason}",
            )
        return current_user

    return _check
