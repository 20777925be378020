"""Permission 레포지토리 — 권한 및 의존 간선 쿼리.

Permission Repository — queries for permissions and their dependency edges.
"""

from uuid import UUID

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from rbac_core.models.permission import Permission, PermissionDependency
from rbac_core.repositories.base import BaseRepository


class PermissionRepository(BaseRepository[Permission]):
    """permissions / permission_dependencies 테이블 쿼리."""

    def __init__(self) -> None:
        super().__init__(Permission)

    async def get_by_name(self, db: AsyncSession, name: str) -> Permission | None:
        """name으로 단일 permission 조회."""
        result = await db.execute(select(Permission).where(Permission.name == name))
        return result.scalar_one_or_none()

    async def get_by_names(self, db: AsyncSession, names: list[str]) -> list[Permission]:
        """이름 목록에 해당하는 permission 조회 (없는 이름은 결과에서 빠짐)."""
        if not names:
            return []
        result = await db.execute(select(Permission).where(Permission.name.in_(names)))
        return list(result.scalars().all())

    async def list_filtered(
        self,
        db: AsyncSession,
        module: str | None = None,
        security_level: str | None = None,
        include_inactive: bool = False,
    ) -> list[Permission]:
        """모듈/보안 등급 필터로 permission 목록 조회.

        Module listings sort by (category, name); security-level listings
        by (module, category); the full listing by (module, name).
        """
        query: Select = select(Permission)
        if module is not None:
            query = query.where(Permission.module == module).order_by(Permission.category, Permission.name)
        elif security_level is not None:
            query = query.where(Permission.security_level == security_level).order_by(
                Permission.module, Permission.category, Permission.name
            )
        else:
            query = query.order_by(Permission.module, Permission.name)
        if not include_inactive:
            query = query.where(Permission.is_active.is_(True))
        result = await db.execute(query)
        return list(result.scalars().all())

    async def requires_edges(self, db: AsyncSession) -> dict[UUID, set[UUID]]:
        """전체 requires 간선을 인접 집합으로 반환 (permission_id → depends_on ids)."""
        result = await db.execute(
            select(PermissionDependency.permission_id, PermissionDependency.depends_on_id).where(
                PermissionDependency.kind == "requires"
            )
        )
        edges: dict[UUID, set[UUID]] = {}
        for permission_id, depends_on_id in result.all():
            edges.setdefault(permission_id, set()).add(depends_on_id)
        return edges

    async def set_dependencies(
        self,
        db: AsyncSession,
        permission: Permission,
        kind: str,
        target_ids: list[UUID],
    ) -> None:
        """한 종류의 의존 간선을 일괄 교체 (기존 삭제 → 새로 삽입)."""
        for edge in [d for d in permission.dependencies if d.kind == kind]:
            permission.dependencies.remove(edge)
        await db.flush()

        for target_id in dict.fromkeys(target_ids):
            permission.dependencies.append(
                PermissionDependency(permission_id=permission.id, depends_on_id=target_id, kind=kind)
            )
        await db.flush()


# 싱글턴 인스턴스
permission_repository: PermissionRepository = PermissionRepository()
