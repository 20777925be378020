"""권한 조건 스키마 — kind로 구분되는 tagged union.

Permission condition schemas, a discriminated union on ``kind``:

    - time_window: 허용 시간대 [start, end] (Hour window, inclusive)
    - weekdays: 허용 요일 (Allowed weekdays)
    - ip: IP 허용/차단 목록 (IP allow/deny lists, addresses or CIDR networks)
    - approval: 승인 필요 표시 (Approval requirement, surfaced but never denies)

Each condition returns a denial reason, or None when it passes.
"""

import ipaddress
from datetime import datetime
from typing import Annotated, Literal, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator

Weekday = Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

# datetime.weekday() 순서 — Monday=0 ~ Sunday=6
WEEKDAYS: tuple[str, ...] = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def _known_timezone(value: str | None) -> str | None:
    if value is not None:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
    return value


def _local(timestamp: datetime, tz_name: str) -> datetime:
    # naive 타임스탬프는 이미 조건의 현지 시각으로 간주
    if timestamp.tzinfo is None:
        return timestamp
    return timestamp.astimezone(ZoneInfo(tz_name))


class TimeWindowCondition(BaseModel):
    """허용 시간대 조건 — 현지 시각의 hour가 [start, end]에 있어야 함."""

    kind: Literal["time_window"] = "time_window"
    start: int = Field(ge=0, le=23)
    end: int = Field(ge=0, le=23)
    timezone: str | None = None  # None이면 RBAC_DEFAULT_TIMEZONE 사용

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, value: str | None) -> str | None:
        return _known_timezone(value)

    # 자정을 넘는 구간(22 → 6)은 지원하지 않음 — windows never wrap past midnight
    @model_validator(mode="after")
    def ordered_hours(self) -> "TimeWindowCondition":
        if self.start > self.end:
            raise ValueError("start hour must not be after end hour")
        return self

    def check(self, timestamp: datetime, default_tz: str) -> str | None:
        hour: int = _local(timestamp, self.timezone or default_tz).hour
        if hour < self.start or hour > self.end:
            return "Outside allowed hours"
        return None


class WeekdayCondition(BaseModel):
    """허용 요일 조건."""

    kind: Literal["weekdays"] = "weekdays"
    days: list[Weekday] = Field(min_length=1)
    timezone: str | None = None

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, value: str | None) -> str | None:
        return _known_timezone(value)

    def check(self, timestamp: datetime, default_tz: str) -> str | None:
        day: str = WEEKDAYS[_local(timestamp, self.timezone or default_tz).weekday()]
        if day not in self.days:
            return "Outside allowed days"
        return None


class IPCondition(BaseModel):
    """IP 허용/차단 조건 — 차단 목록이 항상 우선.

    Entries are single addresses or CIDR networks. The block list always
    wins; a non-empty allow list denies any address it does not match,
    including a missing source address.
    """

    kind: Literal["ip"] = "ip"
    allowed: list[str] = Field(default_factory=list)
    blocked: list[str] = Field(default_factory=list)

    @field_validator("allowed", "blocked")
    @classmethod
    def valid_networks(cls, values: list[str]) -> list[str]:
        for value in values:
            ipaddress.ip_network(value, strict=False)
        return values

    @staticmethod
    def _matches(address: str, entries: list[str]) -> bool:
        try:
            ip = ipaddress.ip_address(address)
        except ValueError:
            return False
        for entry in entries:
            network = ipaddress.ip_network(entry, strict=False)
            if ip.version == network.version and ip in network:
                return True
        return False

    def check_blocked(self, source_ip: str | None) -> str | None:
        if source_ip and self.blocked and self._matches(source_ip, self.blocked):
            return "IP address blocked"
        return None

    def check_allowed(self, source_ip: str | None) -> str | None:
        if not self.allowed:
            return None
        if not source_ip:
            return "Source IP unavailable"
        if not self._matches(source_ip, self.allowed):
            return "IP address not allowed"
        return None


class ApprovalCondition(BaseModel):
    """승인 필요 조건 — 거부하지 않고 결과에 표시만 함."""

    kind: Literal["approval"] = "approval"
    required: bool = True
    level: int | None = Field(default=None, ge=1, le=5)


Condition = Annotated[
    Union[TimeWindowCondition, WeekdayCondition, IPCondition, ApprovalCondition],
    Field(discriminator="kind"),
]

condition_list_adapter: TypeAdapter[list[Condition]] = TypeAdapter(list[Condition])


class ConditionSet(BaseModel):
    """권한에 설정된 조건 묶음 — 종류별 최대 1개.

    The conditions configured on one permission, at most one per kind.
    """

    conditions: list[Condition] = Field(default_factory=list)

    @model_validator(mode="after")
    def one_per_kind(self) -> "ConditionSet":
        kinds = [c.kind for c in self.conditions]
        if len(kinds) != len(set(kinds)):
            raise ValueError("Each condition kind may appear at most once")
        return self

    def first(self, kind: str):
        for condition in self.conditions:
            if condition.kind == kind:
                return condition
        return None


def parse_conditions(raw: list | None) -> ConditionSet:
    """JSON 컬럼 값을 ConditionSet으로 변환합니다 (Parse stored JSON into a ConditionSet)."""
    return ConditionSet(conditions=condition_list_adapter.validate_python(raw or []))


def dump_conditions(conditions: list) -> list[dict]:
    """ConditionSet을 JSON 컬럼 값으로 변환합니다 (Serialize conditions for storage)."""
    return condition_list_adapter.dump_python(list(conditions), mode="json")


class ConditionVerdict(BaseModel):
    """조건 검사 결과 (Outcome of validating a permission's conditions)."""

    valid: bool
    reason: str | None = None
    requires_approval: bool = False
