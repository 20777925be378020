"""역할 할당 저장소 테스트.

Assignment store tests — assignment validation, the approval and activity
state machine, overrides, the expiry sweep and usage statistics.
"""

from datetime import timedelta

import pydantic
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from rbac_core.models.types import utcnow
from rbac_core.schemas.assignment import AssignmentScope, AssignOptions, DelegationInfo
from rbac_core.schemas.role import RoleConstraints, ScopeConfig
from rbac_core.services.assignment_store import assignment_state, assignment_store
from rbac_core.services.role_graph import role_graph
from rbac_core.utils.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from tests.conftest import grant, make_permission, make_role, make_user


def actions(assignment) -> list[str]:
    return [entry.action for entry in assignment.history]


class TestAssign:
    """역할 부여 테스트."""

    async def test_assign_role(self, db: AsyncSession, admin_user, member_user):
        role = await make_role(db, "analyst")
        assignment = await assignment_store.assign(
            db, member_user.id, role.id, admin_user.id, AssignOptions(reason="Quarterly review")
        )
        assert assignment.approval_status == "approved"
        assert assignment.is_active is True
        assert assignment.approved_by == admin_user.id
        assert actions(assignment) == ["assigned"]
        assert assignment.history[0].reason == "Quarterly review"
        assert assignment_state(assignment, utcnow()) == "active"

    async def test_duplicate_active_assignment_conflicts(self, db: AsyncSession, member_user):
        role = await make_role(db, "analyst")
        await grant(db, member_user, role)
        with pytest.raises(ConflictError):
            await grant(db, member_user, role)

    async def test_unknown_user_and_role(self, db: AsyncSession, member_user):
        import uuid

        role = await make_role(db, "analyst")
        with pytest.raises(NotFoundError):
            await assignment_store.assign(db, uuid.uuid4(), role.id, None)
        with pytest.raises(NotFoundError):
            await assignment_store.assign(db, member_user.id, uuid.uuid4(), None)

    async def test_inactive_user_rejected(self, db: AsyncSession):
        role = await make_role(db, "analyst")
        dormant = await make_user(db, "Dormant", is_active=False)
        with pytest.raises(ValidationError):
            await grant(db, dormant, role)

    async def test_capacity_enforced(self, db: AsyncSession, admin_user, member_user):
        role = await make_role(db, "solo", constraints=RoleConstraints(max_users=1))
        await grant(db, admin_user, role)
        with pytest.raises(ConflictError, match="maximum"):
            await grant(db, member_user, role)

    async def test_capacity_freed_by_revoke(self, db: AsyncSession, admin_user, member_user):
        role = await make_role(db, "solo", constraints=RoleConstraints(max_users=1))
        await grant(db, admin_user, role)
        await assignment_store.revoke(db, admin_user.id, role.id, None)
        assignment = await grant(db, member_user, role)
        assert assignment.is_active is True

    async def test_window_must_be_ordered(self, db: AsyncSession, member_user):
        role = await make_role(db, "analyst")
        start = utcnow() + timedelta(days=2)
        with pytest.raises(pydantic.ValidationError):
            AssignOptions(valid_from=start, valid_until=start - timedelta(days=1))
        with pytest.raises(ValidationError):
            await grant(db, member_user, role, AssignOptions(valid_until=utcnow() - timedelta(days=1)))

    async def test_delegation_recorded(self, db: AsyncSession, admin_user, member_user):
        role = await make_role(db, "analyst")
        assignment = await grant(
            db,
            member_user,
            role,
            AssignOptions(delegation=DelegationInfo(from_user_id=admin_user.id, reason="Leave cover")),
        )
        response = await assignment_store.to_response(db, assignment)
        assert response.delegation is not None
        assert response.delegation.from_user_id == admin_user.id
        assert response.delegation.reason == "Leave cover"


class TestScopeValidation:
    """할당 범위 검증 테스트."""

    async def test_single_scope_role_rejects_many(self, db: AsyncSession, member_user):
        role = await make_role(db, "local")
        with pytest.raises(ValidationError, match="multiple"):
            await grant(db, member_user, role, AssignOptions(scope=AssignmentScope(regions=["north", "south"])))

    async def test_max_scopes_enforced(self, db: AsyncSession, member_user):
        role = await make_role(db, "regional", scope_config=ScopeConfig(allow_multiple_scopes=True, max_scopes=2))
        with pytest.raises(ValidationError, match="at most 2"):
            await grant(
                db, member_user, role, AssignOptions(scope=AssignmentScope(regions=["a", "b"], projects=["p"]))
            )
        assignment = await grant(db, member_user, role, AssignOptions(scope=AssignmentScope(regions=["a", "b"])))
        assert assignment.scope_regions == ["a", "b"]


class TestPrimary:
    """primary 할당 테스트 — 사용자당 최대 1개."""

    async def test_new_primary_demotes_previous(self, db: AsyncSession, member_user):
        first_role = await make_role(db, "first")
        second_role = await make_role(db, "second")
        first = await grant(db, member_user, first_role, AssignOptions(is_primary=True))
        second = await grant(db, member_user, second_role, AssignOptions(is_primary=True))

        assert first.is_primary is False
        assert second.is_primary is True


class TestApproval:
    """승인 워크플로 테스트."""

    async def _approval_role(self, db: AsyncSession):
        approver_role = await make_role(db, "approver", level=1)
        guarded = await make_role(
            db,
            "guarded",
            level=2,
            constraints=RoleConstraints(requires_approval=True, assignable_by=["approver"]),
        )
        return approver_role, guarded

    async def test_assigner_without_assigning_role_rejected(self, db: AsyncSession, admin_user, member_user):
        _, guarded = await self._approval_role(db)
        with pytest.raises(AuthorizationError):
            await assignment_store.assign(db, member_user.id, guarded.id, admin_user.id)

    async def test_pending_until_approved(self, db: AsyncSession, admin_user, member_user):
        approver_role, guarded = await self._approval_role(db)
        await grant(db, admin_user, approver_role)

        assignment = await assignment_store.assign(db, member_user.id, guarded.id, admin_user.id)
        assert assignment.approval_status == "pending"
        assert assignment_state(assignment, utcnow()) == "pending"
        assert await assignment_store.active_assignments_for(db, member_user.id) == []

        approved = await assignment_store.approve(db, assignment.id, admin_user.id, "Looks right")
        assert approved.approval_status == "approved"
        assert approved.approval_comments == "Looks right"
        assert [a.id for a in await assignment_store.active_assignments_for(db, member_user.id)] == [assignment.id]
        assert actions(approved) == ["assigned", "modified"]

    async def test_reject_is_terminal(self, db: AsyncSession, admin_user, member_user):
        approver_role, guarded = await self._approval_role(db)
        await grant(db, admin_user, approver_role)
        assignment = await assignment_store.assign(db, member_user.id, guarded.id, admin_user.id)

        rejected = await assignment_store.reject(db, assignment.id, admin_user.id, "Not needed")
        assert rejected.approval_status == "rejected"
        assert rejected.is_active is False
        with pytest.raises(ValidationError):
            await assignment_store.approve(db, assignment.id, admin_user.id)

    async def test_approver_must_be_assigner(self, db: AsyncSession, admin_user, member_user):
        approver_role, guarded = await self._approval_role(db)
        await grant(db, admin_user, approver_role)
        outsider = await make_user(db, "Outsider")
        assignment = await assignment_store.assign(db, member_user.id, guarded.id, admin_user.id)

        with pytest.raises(AuthorizationError):
            await assignment_store.approve(db, assignment.id, outsider.id)


class TestTransitions:
    """상태 전이 테스트 — revoke / suspend / reactivate."""

    async def test_suspend_and_reactivate(self, db: AsyncSession, admin_user, member_user):
        role = await make_role(db, "analyst")
        await grant(db, member_user, role)

        suspended = await assignment_store.suspend(db, member_user.id, role.id, admin_user.id, "Investigation")
        assert suspended.is_active is False
        assert assignment_state(suspended, utcnow()) == "suspended"

        reactivated = await assignment_store.reactivate(db, member_user.id, role.id, admin_user.id)
        assert reactivated.is_active is True
        assert actions(reactivated) == ["assigned", "suspended", "reactivated"]
        assert [h.seq for h in reactivated.history] == [1, 2, 3]

    async def test_reactivate_requires_suspended(self, db: AsyncSession, member_user):
        role = await make_role(db, "analyst")
        await grant(db, member_user, role)
        with pytest.raises(ValidationError):
            await assignment_store.reactivate(db, member_user.id, role.id, None)

    async def test_revoke_from_suspended(self, db: AsyncSession, member_user):
        role = await make_role(db, "analyst")
        await grant(db, member_user, role)
        await assignment_store.suspend(db, member_user.id, role.id, None)

        revoked = await assignment_store.revoke(db, member_user.id, role.id, None, "Left team")
        assert revoked.approval_status == "revoked"
        assert actions(revoked)[-1] == "revoked"
        with pytest.raises(ValidationError):
            await assignment_store.revoke(db, member_user.id, role.id, None)

    async def test_revoke_missing_assignment(self, db: AsyncSession, member_user):
        role = await make_role(db, "analyst")
        with pytest.raises(NotFoundError):
            await assignment_store.revoke(db, member_user.id, role.id, None)

    async def test_reassign_after_revoke(self, db: AsyncSession, member_user):
        role = await make_role(db, "analyst")
        await grant(db, member_user, role)
        await assignment_store.revoke(db, member_user.id, role.id, None)
        again = await grant(db, member_user, role)
        assert again.is_active is True
        history = await assignment_store.assignments_for(db, member_user.id, include_inactive=True)
        assert len(history) == 2


class TestOverrides:
    """할당별 추가 권한 / 제한 테스트."""

    async def test_override_upsert_replaces_entry(self, db: AsyncSession, admin_user, member_user):
        await make_permission(db, "docs.read")
        role = await make_role(db, "analyst")
        assignment = await grant(db, member_user, role)

        await assignment_store.add_override_permission(db, assignment.id, "docs.read", admin_user.id, "first")
        await assignment_store.add_override_permission(db, assignment.id, "docs.read", admin_user.id, "second")

        grants = [o for o in assignment.overrides if o.effect == "grant"]
        assert len(grants) == 1
        assert grants[0].reason == "second"

    async def test_restriction_and_removal(self, db: AsyncSession, member_user):
        await make_permission(db, "docs.read")
        role = await make_role(db, "analyst", permissions=["docs.read"])
        assignment = await grant(db, member_user, role)

        await assignment_store.add_restriction(db, assignment.id, "docs.read", None)
        response = await assignment_store.to_response(db, assignment)
        assert [o.permission for o in response.restricted_permissions] == ["docs.read"]

        await assignment_store.remove_restriction(db, assignment.id, "docs.read", None)
        assert assignment.overrides == []
        with pytest.raises(NotFoundError):
            await assignment_store.remove_restriction(db, assignment.id, "docs.read", None)

    async def test_override_expiry_must_be_future(self, db: AsyncSession, member_user):
        await make_permission(db, "docs.read")
        role = await make_role(db, "analyst")
        assignment = await grant(db, member_user, role)
        with pytest.raises(ValidationError):
            await assignment_store.add_override_permission(
                db, assignment.id, "docs.read", None, expires_at=utcnow() - timedelta(hours=1)
            )

    async def test_unknown_permission_override(self, db: AsyncSession, member_user):
        role = await make_role(db, "analyst")
        assignment = await grant(db, member_user, role)
        with pytest.raises(NotFoundError):
            await assignment_store.add_restriction(db, assignment.id, "ghost.perm", None)


class TestExpirySweep:
    """만료 스윕 테스트."""

    async def test_sweep_expires_once(self, db: AsyncSession, admin_user, member_user):
        role = await make_role(db, "contractor")
        now = utcnow()
        await grant(db, admin_user, role)
        expiring = await grant(
            db,
            member_user,
            role,
            AssignOptions(valid_from=now - timedelta(days=10), valid_until=now - timedelta(days=1)),
        )

        assert await assignment_store.sweep_expired(db) == 1
        assert expiring.is_active is False
        assert actions(expiring)[-1] == "expired"
        assert assignment_state(expiring, utcnow()) == "expired"
        assert role.active_users == 1

        assert await assignment_store.sweep_expired(db) == 0
        assert actions(expiring).count("expired") == 1

    async def test_sweep_with_future_clock(self, db: AsyncSession, member_user):
        role = await make_role(db, "contractor")
        await grant(db, member_user, role, AssignOptions(valid_until=utcnow() + timedelta(days=1)))

        assert await assignment_store.sweep_expired(db) == 0
        assert await assignment_store.sweep_expired(db, now=utcnow() + timedelta(days=2)) == 1


class TestLapsedBeforeSweep:
    """스윕 전 만료 할당 테스트 — 유효 기간이 지났지만 아직 비활성화되지 않은 할당."""

    async def _lapsed(self, db: AsyncSession, user, role):
        now = utcnow()
        return await grant(
            db, user, role, AssignOptions(valid_from=now - timedelta(days=10), valid_until=now - timedelta(days=1))
        )

    async def test_lapsed_holder_releases_capacity(self, db: AsyncSession, admin_user, member_user):
        role = await make_role(db, "contractor", constraints=RoleConstraints(max_users=1))
        lapsed = await self._lapsed(db, admin_user, role)
        assert lapsed.is_active is True
        assert role.active_users == 0

        assignment = await grant(db, member_user, role)
        assert assignment.is_active is True
        assert lapsed.is_active is False
        assert actions(lapsed)[-1] == "expired"
        assert role.active_users == 1

    async def test_same_pair_can_be_reassigned(self, db: AsyncSession, member_user):
        role = await make_role(db, "contractor", constraints=RoleConstraints(max_users=1))
        lapsed = await self._lapsed(db, member_user, role)

        renewed = await grant(db, member_user, role)
        assert renewed.id != lapsed.id
        assert renewed.is_active is True
        assert assignment_state(lapsed, utcnow()) == "expired"

    async def test_lapsed_assignment_can_be_revoked(self, db: AsyncSession, member_user):
        role = await make_role(db, "contractor")
        await self._lapsed(db, member_user, role)

        revoked = await assignment_store.revoke(db, member_user.id, role.id, None, "Contract ended")
        assert revoked.is_active is False
        assert revoked.approval_status == "revoked"
        assert revoked.history[-1].details == {"previous_state": "expired"}
        assert role.active_users == 0

    async def test_reactivate_ignores_lapsed_holders(self, db: AsyncSession, admin_user, member_user):
        role = await make_role(db, "contractor", constraints=RoleConstraints(max_users=1))
        await grant(db, member_user, role)
        await assignment_store.suspend(db, member_user.id, role.id, None)
        await self._lapsed(db, admin_user, role)

        reactivated = await assignment_store.reactivate(db, member_user.id, role.id, None)
        assert reactivated.is_active is True
        assert role.active_users == 1

    async def test_lapsed_assignment_does_not_block_role_delete(self, db: AsyncSession, member_user):
        role = await make_role(db, "contractor")
        await self._lapsed(db, member_user, role)

        await role_graph.delete_role(db, role.id)
        with pytest.raises(NotFoundError):
            await role_graph.get_role(db, role.id)


class TestReadsAndUsage:
    """조회와 사용 통계 테스트."""

    async def test_holders_paginated(self, db: AsyncSession, admin_user, member_user):
        role = await make_role(db, "analyst")
        await grant(db, admin_user, role)
        await grant(db, member_user, role)

        page = await assignment_store.holders_of(db, role.id, page=1, per_page=1)
        assert page.total == 2
        assert page.pages == 2
        assert len(page.items) == 1

    async def test_assignments_for_unknown_user(self, db: AsyncSession):
        import uuid

        with pytest.raises(NotFoundError):
            await assignment_store.assignments_for(db, uuid.uuid4())

    async def test_record_usage(self, db: AsyncSession, member_user):
        role = await make_role(db, "analyst")
        assignment = await grant(db, member_user, role)

        assert await assignment_store.record_usage(db, [assignment.id]) == 1
        assert await assignment_store.record_usage(db, [assignment.id]) == 1
        assert assignment.usage_count == 2
        assert assignment.last_used_at is not None
