"""역할 레포지토리 — 역할 및 역할 간선 쿼리.

Role Repository — queries for roles and their permission, inheritance and
assigner edges. Extends BaseRepository with Role-specific operations.
"""

from uuid import UUID

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from rbac_core.models.role import Role, RoleAssigner, RoleInheritance, RolePermission
from rbac_core.repositories.base import BaseRepository


class RoleRepository(BaseRepository[Role]):
    """역할 테이블에 대한 데이터베이스 쿼리를 담당하는 레포지토리.

    Repository handling database queries for the roles table and the
    role_permissions / role_inheritance / role_assigners edge tables.
    """

    def __init__(self) -> None:
        super().__init__(Role)

    async def get_by_name(self, db: AsyncSession, name: str) -> Role | None:
        """이름으로 역할 조회 (Role by unique name)."""
        result = await db.execute(select(Role).where(Role.name == name))
        return result.scalar_one_or_none()

    async def get_for_update(self, db: AsyncSession, role_id: UUID) -> Role | None:
        """행 잠금과 함께 역할 조회 — 같은 역할에 대한 할당 변경을 직렬화.

        Load the role with a row lock (SELECT ... FOR UPDATE) so concurrent
        assignment mutations of one role serialize on its statistics.
        """
        result = await db.execute(
            select(Role).where(Role.id == role_id).with_for_update()
        )
        return result.scalar_one_or_none()

    async def get_by_names(self, db: AsyncSession, names: list[str]) -> list[Role]:
        """이름 목록에 해당하는 역할 조회."""
        if not names:
            return []
        result = await db.execute(select(Role).where(Role.name.in_(names)))
        return list(result.scalars().all())

    async def list_roles(
        self,
        db: AsyncSession,
        include_inactive: bool = False,
        category: str | None = None,
    ) -> list[Role]:
        """역할 목록을 레벨, 이름 순으로 조회합니다.

        List roles ordered by level then name.

        Args:
            db: 비동기 데이터베이스 세션 (Async database session)
            include_inactive: 비활성 역할 포함 여부 (Include inactive roles)
            category: 카테고리 필터 (Optional category filter)

        Returns:
            list[Role]: 역할 목록 (List of roles)
        """
        query: Select = select(Role).order_by(Role.level, Role.name)
        if not include_inactive:
            query = query.where(Role.is_active.is_(True))
        if category is not None:
            query = query.where(Role.category == category)
        result = await db.execute(query)
        return list(result.scalars().all())

    async def inheritance_edges(self, db: AsyncSession) -> dict[UUID, set[UUID]]:
        """전체 상속 간선을 인접 집합으로 반환 (role_id → parent ids)."""
        result = await db.execute(select(RoleInheritance.role_id, RoleInheritance.parent_id))
        edges: dict[UUID, set[UUID]] = {}
        for role_id, parent_id in result.all():
            edges.setdefault(role_id, set()).add(parent_id)
        return edges

    async def detach_references(self, db: AsyncSession, role_id: UUID) -> None:
        """다른 역할이 이 역할을 부모 또는 부여 역할로 참조하는 간선을 삭제합니다.

        Remove edges in other roles that point at ``role_id`` (as parent or
        as assigner) ahead of a physical delete.
        """
        children = await db.execute(
            select(Role).join(RoleInheritance, RoleInheritance.role_id == Role.id).where(RoleInheritance.parent_id == role_id)
        )
        for child in children.scalars().unique():
            for edge in [e for e in child.parents if e.parent_id == role_id]:
                child.parents.remove(edge)

        assigned = await db.execute(
            select(Role).join(RoleAssigner, RoleAssigner.role_id == Role.id).where(RoleAssigner.assigner_role_id == role_id)
        )
        for other in assigned.scalars().unique():
            for edge in [e for e in other.assigners if e.assigner_role_id == role_id]:
                other.assigners.remove(edge)
        await db.flush()

    async def set_permissions(self, db: AsyncSession, role: Role, permission_ids: list[UUID]) -> None:
        """역할의 직접 권한을 일괄 교체 (기존 삭제 → 새로 삽입)."""
        role.role_permissions.clear()
        await db.flush()
        for permission_id in dict.fromkeys(permission_ids):
            role.role_permissions.append(RolePermission(role_id=role.id, permission_id=permission_id))
        await db.flush()

    async def set_parents(self, db: AsyncSession, role: Role, parent_ids: list[UUID]) -> None:
        """역할의 부모 역할을 일괄 교체."""
        role.parents.clear()
        await db.flush()
        for parent_id in dict.fromkeys(parent_ids):
            role.parents.append(RoleInheritance(role_id=role.id, parent_id=parent_id))
        await db.flush()

    async def set_assigners(self, db: AsyncSession, role: Role, assigner_ids: list[UUID]) -> None:
        """역할을 부여할 수 있는 역할 목록을 일괄 교체."""
        role.assigners.clear()
        await db.flush()
        for assigner_id in dict.fromkeys(assigner_ids):
            role.assigners.append(RoleAssigner(role_id=role.id, assigner_role_id=assigner_id))
        await db.flush()


# 싱글턴 인스턴스 — Singleton instance
role_repository: RoleRepository = RoleRepository()
