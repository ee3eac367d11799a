"""Alert formatter: renders an audit event into a human-readable notification."""
import json
import logging
from typing import Any, Optional

from wafwatch.models.alarm import AlarmRecord, AlarmState
from wafwatch.models.alert import AlertMessage, FormatResult, UNKNOWN, sanitize_subject
from wafwatch.models.event import (
    AuditEvent,
    IAMUserIdentity,
    AssumedRoleIdentity,
    RootIdentity,
    OtherIdentity,
    UserIdentity,
)

logger = logging.getLogger(__name__)


def _or_unknown(value: Any) -> str:
    if value is None or value == "":
        return UNKNOWN
    return str(value)


def resolve_actor(identity: UserIdentity) -> str:
    """Human-readable actor for the identity variant."""
    if isinstance(identity, IAMUserIdentity):
        return f"IAM User: {_or_unknown(identity.user_name)}"
    if isinstance(identity, AssumedRoleIdentity):
        return f"Role: {_or_unknown(identity.session_issuer_user_name)}"
    if isinstance(identity, RootIdentity):
        return "Root Account"
    if isinstance(identity, OtherIdentity):
        return f"{_or_unknown(identity.identity_type)}: {_or_unknown(identity.principal_id)}"
    return f"{UNKNOWN}: {UNKNOWN}"


class AlertFormatter:
    """Stateless; one instance can serve concurrent invocations."""

    def __init__(self, resource_name_field: str = "name", title: str = "WAF Configuration Change Detected"):
        self.resource_name_field = resource_name_field
        self.title = title

    def format(self, event: AuditEvent) -> FormatResult:
        """Render the event. Never raises; failures come back as a failed result."""
        try:
            return FormatResult.ok(self._render(event))
        except Exception as e:
            logger.error(f"Failed to format alert for event {getattr(event, 'event_id', None)}: {str(e)}",
                         exc_info=True)
            return FormatResult.failed(str(e))

    def _render(self, event: AuditEvent) -> AlertMessage:
        action = _or_unknown(event.event_name)
        actor = resolve_actor(event.user_identity)

        request_parameters = json.dumps(event.request_parameters or {}, indent=2, sort_keys=True, default=str)

        lines = [
            self.title,
            "=" * len(self.title),
            "",
            f"Action: {action}",
            f"Time: {_or_unknown(event.event_time)}",
            f"Actor: {actor}",
            f"Source IP: {_or_unknown(event.source_ip_address)}",
            f"User Agent: {_or_unknown(event.user_agent)}",
            f"Web ACL: {_or_unknown(event.resource_name(self.resource_name_field))}",
            f"Account: {_or_unknown(event.recipient_account_id)}",
            f"Region: {_or_unknown(event.aws_region)}",
            f"Event ID: {_or_unknown(event.event_id)}",
            "",
            "Request Parameters:",
            request_parameters,
        ]

        return AlertMessage(
            subject=sanitize_subject(f"WAF Alert: {action} by {actor}"),
            body="\n".join(lines)
        )


def format_alarm_notification(record: AlarmRecord, previous_state: AlarmState,
                              threshold: float, period_seconds: int,
                              region: Optional[str] = None) -> AlertMessage:
    """Message sent when the threshold alarm changes state."""
    location = f" in {region}" if region else ""
    subject = f'{record.state.value}: "{record.alarm_name}"{location}'

    lines = [
        f"Alarm Name: {record.alarm_name}",
        f"New State: {record.state.value}",
        f"Previous State: {previous_state.value}",
        f"Reason: {record.state_reason}",
        f"Changes In Period: {record.value}",
        f"Threshold: {threshold:g}",
        f"Period: {period_seconds} seconds",
        f"Period Start: {record.last_period_start.isoformat() if record.last_period_start else UNKNOWN}",
        f"Evaluated At: {record.last_evaluated.isoformat() if record.last_evaluated else UNKNOWN}",
        "",
        "Review the CloudTrail event history for the Web ACL changes in this period.",
    ]

    return AlertMessage(subject=sanitize_subject(subject), body="\n".join(lines))
