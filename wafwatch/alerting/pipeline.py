"""Event-bus path: match, format and publish one audit event."""
from typing import Dict, Any
import logging

from wafwatch.config.settings import MonitorConfig
from wafwatch.detection.matcher import EventMatcher
from wafwatch.models.event import AuditEvent
from wafwatch.notification.sink import NotificationSink, SNSNotificationSink

from .formatter import AlertFormatter

logger = logging.getLogger(__name__)

STATUS_PUBLISHED = "PUBLISHED"
STATUS_IGNORED = "IGNORED"
STATUS_FORMAT_FAILED = "FORMAT_FAILED"
STATUS_PUBLISH_FAILED = "PUBLISH_FAILED"


class AlertPipeline:
    """Handles each event independently; holds no per-event state."""

    def __init__(self, matcher: EventMatcher, formatter: AlertFormatter, sink: NotificationSink):
        self.matcher = matcher
        self.formatter = formatter
        self.sink = sink

    def process(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """Process one EventBridge event (or bare CloudTrail record)."""
        audit_event = AuditEvent.from_eventbridge(event)
        response = {
            "event_id": audit_event.event_id,
            "event_name": audit_event.event_name,
        }

        rule = self.matcher.matching_rule(audit_event)
        if rule is None:
            logger.info(f"Event {audit_event.event_id} ({audit_event.event_name}) does not match any rule")
            response["status"] = STATUS_IGNORED
            return response

        result = self.formatter.format(audit_event)
        if not result.success:
            response["status"] = STATUS_FORMAT_FAILED
            response["error"] = result.error
            return response

        publish_result = self.sink.publish_alert(result.message)
        response["subject"] = result.message.subject
        response["publish_result"] = publish_result.to_dict()
        response["status"] = STATUS_PUBLISHED if publish_result.success else STATUS_PUBLISH_FAILED
        return response


def build_pipeline(config: MonitorConfig, clients) -> AlertPipeline:
    """Wire a pipeline from configuration and client handles."""
    sink = SNSNotificationSink(clients.get_sns_client(), config.require_topic_arn())
    resource_fields = {rule.resource_name_field for rule in config.rules}
    formatter = AlertFormatter(resource_name_field=sorted(resource_fields)[0])
    return AlertPipeline(EventMatcher(config.rules), formatter, sink)
