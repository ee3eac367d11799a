"""Alarm state record - the entity mutated by each evaluation tick."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any


class AlarmState(str, Enum):
    OK = "OK"
    ALARM = "ALARM"
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"


class ComparisonOperator(str, Enum):
    GREATER_THAN_OR_EQUAL = "GreaterThanOrEqualToThreshold"
    GREATER_THAN = "GreaterThanThreshold"
    LESS_THAN = "LessThanThreshold"
    LESS_THAN_OR_EQUAL = "LessThanOrEqualToThreshold"

    def is_breaching(self, value: float, threshold: float) -> bool:
        if self is ComparisonOperator.GREATER_THAN_OR_EQUAL:
            return value >= threshold
        if self is ComparisonOperator.GREATER_THAN:
            return value > threshold
        if self is ComparisonOperator.LESS_THAN:
            return value < threshold
        return value <= threshold


class MissingDataPolicy(str, Enum):
    """What an evaluation period without datapoints does to the alarm."""
    NOT_BREACHING = "notBreaching"  # hold current state
    IGNORE = "ignore"  # hold current state
    BREACHING = "breaching"  # counts as a breach
    MISSING = "missing"  # INSUFFICIENT_DATA


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AlarmRecord:
    """Breach status of the aggregate change counter."""

    alarm_name: str
    state: AlarmState = AlarmState.INSUFFICIENT_DATA
    value: int = 0  # sum over the last evaluated period
    state_reason: str = "Unchecked: initial alarm creation"

    last_evaluated: Optional[datetime] = None
    last_period_start: Optional[datetime] = None
    state_updated_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        if self.value < 0:
            raise ValueError(f"Alarm value must be non-negative, got {self.value}")

    def has_evaluated(self, period_start: datetime) -> bool:
        """True when this period (or a later one) was already evaluated."""
        return self.last_period_start is not None and period_start <= self.last_period_start

    def to_dynamodb_item(self) -> Dict[str, Any]:
        """Convert to DynamoDB item format"""
        return {
            "PK": f"ALARM#{self.alarm_name}",
            "alarm_name": self.alarm_name,
            "state": self.state.value,
            "value": self.value,
            "state_reason": self.state_reason,
            "last_evaluated": self.last_evaluated.isoformat() if self.last_evaluated else None,
            "last_period_start": self.last_period_start.isoformat() if self.last_period_start else None,
            "state_updated_at": self.state_updated_at.isoformat(),
        }

    @classmethod
    def from_dynamodb_item(cls, item: Dict[str, Any]) -> "AlarmRecord":
        """Create AlarmRecord from DynamoDB item"""
        return cls(
            alarm_name=item["alarm_name"],
            state=AlarmState(item["state"]),
            # boto3 hands numbers back as Decimal
            value=int(item.get("value", 0)),
            state_reason=item.get("state_reason", ""),
            last_evaluated=_parse_optional(item.get("last_evaluated")),
            last_period_start=_parse_optional(item.get("last_period_start")),
            state_updated_at=_parse_optional(item.get("state_updated_at")) or _utcnow(),
        )


def _parse_optional(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None
