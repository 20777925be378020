"""커스텀 HTTP 예외 클래스 모듈.

Custom HTTP exception classes module.
Every authorization-engine error is an HTTPException subclass so the API
layer can surface it without translation, while services and tests can
still catch the specific kind.

Usage:
    from rbac_core.utils.exceptions import NotFoundError, ConflictError
    raise NotFoundError("Role not found")
    raise ConflictError("User already holds this role")
"""

from fastapi import HTTPException, status


class RBACError(HTTPException):
    """권한 엔진 예외의 공통 부모 클래스.

    Common base for all authorization-engine errors.
    """


class ValidationError(RBACError):
    """400 Bad Request — 잘못된 입력, 순환 참조, 중복 이름, 잘못된 상태 전이.

    Malformed input, a cycle in requires/inheritsFrom, a duplicate
    permission/role name, or an invalid assignment state transition.
    Never retried automatically.
    """

    def __init__(self, detail: str = "Invalid request") -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class AuthorizationError(RBACError):
    """403 Forbidden — 할당자에게 역할 부여 권한이 없을 때.

    The acting user lacks the capability for the operation
    (e.g. assigning a role they are not listed as an assigner for).
    """

    def __init__(self, detail: str = "Insufficient permissions") -> None:
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class NotFoundError(RBACError):
    """404 Not Found — 참조된 사용자/역할/권한/할당이 없을 때.

    Raised when a referenced user, role, permission or assignment does not exist.
    """

    def __init__(self, detail: str = "Resource not found") -> None:
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ConflictError(RBACError):
    """409 Conflict — 중복 할당, 정원 초과, 삭제 차단.

    Duplicate active (user, role) assignment, role at capacity, or role
    deletion blocked by active assignments. The caller decides whether to
    retry after resolving the conflict.
    """

    def __init__(self, detail: str = "Resource already exists") -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class DependencyError(RBACError):
    """503 Service Unavailable — 데이터스토어 장애 또는 트랜잭션 중단.

    Datastore unavailable, transaction aborted, or deadline exceeded.
    The only error kind eligible for automatic retry, and only around
    idempotent operations.
    """

    def __init__(self, detail: str = "Datastore unavailable") -> None:
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)
