"""Audit event models for CloudTrail records delivered by log stream or EventBridge."""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Optional, Union


class IdentityType(str, Enum):
    IAM_USER = "IAMUser"
    ASSUMED_ROLE = "AssumedRole"
    ROOT = "Root"


@dataclass(frozen=True)
class IAMUserIdentity:
    user_name: Optional[str] = None


@dataclass(frozen=True)
class AssumedRoleIdentity:
    session_issuer_user_name: Optional[str] = None


@dataclass(frozen=True)
class RootIdentity:
    pass


@dataclass(frozen=True)
class OtherIdentity:
    """Any identity type without a dedicated variant (AWSService, FederatedUser, ...)."""
    identity_type: Optional[str] = None
    principal_id: Optional[str] = None


UserIdentity = Union[IAMUserIdentity, AssumedRoleIdentity, RootIdentity, OtherIdentity]


def parse_user_identity(data: Optional[Dict[str, Any]]) -> UserIdentity:
    """Select the identity variant from the CloudTrail ``userIdentity`` block."""
    if not isinstance(data, dict):
        return OtherIdentity()

    identity_type = data.get("type")

    if identity_type == IdentityType.IAM_USER.value:
        return IAMUserIdentity(user_name=data.get("userName"))

    if identity_type == IdentityType.ASSUMED_ROLE.value:
        session_context = data.get("sessionContext") or {}
        issuer = session_context.get("sessionIssuer") or {}
        return AssumedRoleIdentity(session_issuer_user_name=issuer.get("userName"))

    if identity_type == IdentityType.ROOT.value:
        return RootIdentity()

    return OtherIdentity(
        identity_type=identity_type,
        principal_id=data.get("principalId"),
    )


def parse_event_time(value: Optional[str]) -> Optional[datetime]:
    """Parse a CloudTrail timestamp (``2024-01-15T10:30:00Z``), None if unparseable."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class AuditEvent:
    """One API call against the monitored resource, as recorded by CloudTrail."""
    event_source: Optional[str]
    event_name: Optional[str]
    event_time: Optional[str] = None
    source_ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    user_identity: UserIdentity = field(default_factory=OtherIdentity)
    request_parameters: Dict[str, Any] = field(default_factory=dict)
    aws_region: Optional[str] = None
    recipient_account_id: Optional[str] = None
    event_id: Optional[str] = None
    event_type: Optional[str] = None

    # Original record, kept for logging and re-rendering
    raw_event: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def occurred_at(self) -> Optional[datetime]:
        return parse_event_time(self.event_time)

    @classmethod
    def from_cloudtrail(cls, record: Dict[str, Any]) -> "AuditEvent":
        """Create from a bare CloudTrail record (one log line parsed as JSON)."""
        request_parameters = record.get("requestParameters")
        if not isinstance(request_parameters, dict):
            request_parameters = {}

        return cls(
            event_source=record.get("eventSource"),
            event_name=record.get("eventName"),
            event_time=record.get("eventTime"),
            source_ip_address=record.get("sourceIPAddress"),
            user_agent=record.get("userAgent"),
            user_identity=parse_user_identity(record.get("userIdentity")),
            request_parameters=request_parameters,
            aws_region=record.get("awsRegion"),
            recipient_account_id=record.get("recipientAccountId"),
            event_id=record.get("eventID"),
            event_type=record.get("eventType"),
            raw_event=record,
        )

    @classmethod
    def from_eventbridge(cls, event: Dict[str, Any]) -> "AuditEvent":
        """Create from an EventBridge "AWS API Call via CloudTrail" envelope."""
        detail = event.get("detail")
        if not isinstance(detail, dict):
            # Direct invocations sometimes pass the record itself
            detail = event

        audit_event = cls.from_cloudtrail(detail)

        # The envelope carries region/account even when the detail omits them
        if audit_event.aws_region is None and event.get("region"):
            audit_event = replace(audit_event, aws_region=event["region"])
        if audit_event.recipient_account_id is None and event.get("account"):
            audit_event = replace(audit_event, recipient_account_id=event["account"])

        return audit_event

    def resource_name(self, field_name: str = "name") -> Optional[str]:
        """Target resource name from the request parameters."""
        value = self.request_parameters.get(field_name)
        return value if isinstance(value, str) else None
