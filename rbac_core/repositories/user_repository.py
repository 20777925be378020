"""사용자 레포지토리 — 할당 대상 사용자 조회.

User Repository — lookups for users that anchor role assignments.
"""

from rbac_core.models.user import User
from rbac_core.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """사용자 테이블에 대한 데이터베이스 쿼리를 담당하는 레포지토리."""

    def __init__(self) -> None:
        super().__init__(User)


# 싱글턴 인스턴스 — Singleton instance
user_repository: UserRepository = UserRepository()
