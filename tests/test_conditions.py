"""권한 조건 검사 테스트.

Condition validation tests — time window, weekdays, IP allow/block lists
and the approval flag.
"""

from datetime import datetime, timezone

import pydantic
import pytest

from rbac_core.models.permission import Permission
from rbac_core.schemas.authorization import AccessContext
from rbac_core.schemas.conditions import ConditionSet, TimeWindowCondition
from rbac_core.services.permission_catalog import permission_catalog

# 2024-01-08은 월요일, 2024-01-06은 토요일
MONDAY_10 = datetime(2024, 1, 8, 10, 0, tzinfo=timezone.utc)
MONDAY_22 = datetime(2024, 1, 8, 22, 0, tzinfo=timezone.utc)
SATURDAY_10 = datetime(2024, 1, 6, 10, 0, tzinfo=timezone.utc)


def permission_with(*conditions: dict) -> Permission:
    """저장하지 않은 권한 객체에 조건을 설정합니다."""
    return Permission(name="reports.view", conditions=list(conditions))


def check(permission: Permission, timestamp: datetime = MONDAY_10, source_ip: str | None = None):
    return permission_catalog.validate_conditions(
        permission, AccessContext(timestamp=timestamp, source_ip=source_ip)
    )


class TestTimeWindow:
    """허용 시간대 조건 테스트."""

    def test_inside_window(self):
        verdict = check(permission_with({"kind": "time_window", "start": 9, "end": 17}))
        assert verdict.valid is True
        assert verdict.reason is None

    def test_outside_window(self):
        verdict = check(permission_with({"kind": "time_window", "start": 9, "end": 17}), MONDAY_22)
        assert verdict.valid is False
        assert verdict.reason == "Outside allowed hours"

    def test_end_hour_is_inclusive(self):
        stamp = datetime(2024, 1, 8, 17, 59, tzinfo=timezone.utc)
        assert check(permission_with({"kind": "time_window", "start": 9, "end": 17}), stamp).valid is True

    def test_window_uses_condition_timezone(self):
        """Asia/Kolkata (UTC+5:30) 기준으로 시각을 변환."""
        permission = permission_with({"kind": "time_window", "start": 9, "end": 17, "timezone": "Asia/Kolkata"})
        assert check(permission, datetime(2024, 1, 8, 5, 0, tzinfo=timezone.utc)).valid is True
        assert check(permission, datetime(2024, 1, 8, 13, 0, tzinfo=timezone.utc)).valid is False

    def test_naive_timestamp_is_local_time(self):
        permission = permission_with({"kind": "time_window", "start": 9, "end": 17, "timezone": "Asia/Kolkata"})
        assert check(permission, datetime(2024, 1, 8, 10, 0)).valid is True

    def test_unknown_timezone_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            TimeWindowCondition(start=9, end=17, timezone="Mars/Olympus")

    def test_window_past_midnight_rejected(self):
        """22시 → 6시처럼 자정을 넘는 구간은 어떤 시각에도 만족할 수 없으므로 거부."""
        with pytest.raises(pydantic.ValidationError, match="start hour"):
            TimeWindowCondition(start=22, end=6)
        assert TimeWindowCondition(start=6, end=6).end == 6


class TestWeekdays:
    """허용 요일 조건 테스트."""

    def test_allowed_day(self):
        permission = permission_with({"kind": "weekdays", "days": ["monday", "tuesday"]})
        assert check(permission, MONDAY_10).valid is True

    def test_disallowed_day(self):
        permission = permission_with({"kind": "weekdays", "days": ["monday", "tuesday"]})
        verdict = check(permission, SATURDAY_10)
        assert verdict.valid is False
        assert verdict.reason == "Outside allowed days"


class TestIPConditions:
    """IP 허용/차단 조건 테스트."""

    IP_RULE = {"kind": "ip", "allowed": ["10.0.0.0/8", "192.168.1.0/24"], "blocked": ["10.9.0.0/16"]}

    def test_allowed_network(self):
        assert check(permission_with(self.IP_RULE), source_ip="192.168.1.20").valid is True

    def test_block_list_wins_over_allow_list(self):
        verdict = check(permission_with(self.IP_RULE), source_ip="10.9.1.1")
        assert verdict.valid is False
        assert verdict.reason == "IP address blocked"

    def test_address_outside_allow_list(self):
        verdict = check(permission_with(self.IP_RULE), source_ip="172.16.0.1")
        assert verdict.reason == "IP address not allowed"

    def test_missing_source_ip_with_allow_list(self):
        verdict = check(permission_with(self.IP_RULE))
        assert verdict.valid is False
        assert verdict.reason == "Source IP unavailable"

    def test_block_list_only_allows_unknown_ip(self):
        permission = permission_with({"kind": "ip", "blocked": ["203.0.113.7"]})
        assert check(permission).valid is True
        assert check(permission, source_ip="203.0.113.7").reason == "IP address blocked"

    def test_invalid_network_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            ConditionSet(conditions=[{"kind": "ip", "allowed": ["not-an-ip"]}])


class TestEvaluationOrder:
    """조건 평가 순서와 승인 플래그 테스트."""

    def test_no_conditions_is_valid(self):
        verdict = check(permission_with())
        assert verdict.valid is True
        assert verdict.requires_approval is False

    def test_time_window_reported_before_ip(self):
        permission = permission_with(
            {"kind": "time_window", "start": 9, "end": 17},
            {"kind": "ip", "allowed": ["10.0.0.0/8"]},
        )
        assert check(permission, MONDAY_22, source_ip="172.16.0.1").reason == "Outside allowed hours"

    def test_approval_flag_never_denies(self):
        verdict = check(permission_with({"kind": "approval", "level": 2}))
        assert verdict.valid is True
        assert verdict.requires_approval is True

    def test_one_condition_per_kind(self):
        with pytest.raises(pydantic.ValidationError):
            ConditionSet(
                conditions=[
                    {"kind": "weekdays", "days": ["monday"]},
                    {"kind": "weekdays", "days": ["friday"]},
                ]
            )
