"""Notification sinks: publish a subject and body to a pub/sub topic."""
from abc import ABC, abstractmethod
from typing import Dict, Any, List
import logging

from botocore.exceptions import BotoCoreError, ClientError

from wafwatch.exceptions import PublishError
from wafwatch.models.alert import AlertMessage, PublishResult, sanitize_subject

logger = logging.getLogger(__name__)


class NotificationSink(ABC):
    """Abstract base class for notification sinks."""

    @abstractmethod
    def publish(self, subject: str, body: str) -> PublishResult:
        """Publish one message. Failures are returned, not raised."""
        pass

    def publish_alert(self, message: AlertMessage) -> PublishResult:
        return self.publish(message.subject, message.body)

    def publish_or_raise(self, subject: str, body: str) -> PublishResult:
        """Publish and raise PublishError on failure, for callers that must abort."""
        result = self.publish(subject, body)
        if not result.success:
            raise PublishError(result.error or "Publish failed")
        return result


class SNSNotificationSink(NotificationSink):
    """Publishes to an SNS topic; SNS fans out to the confirmed subscribers."""

    def __init__(self, sns_client, topic_arn: str):
        self.sns_client = sns_client
        self.topic_arn = topic_arn

    def publish(self, subject: str, body: str) -> PublishResult:
        subject = sanitize_subject(subject)
        logger.info(f"Publishing to {self.topic_arn}: {subject}")

        try:
            response = self.sns_client.publish(
                TopicArn=self.topic_arn,
                Subject=subject,
                Message=body
            )
        except (ClientError, BotoCoreError) as e:
            # Single attempt; the CloudTrail record stays the durable source of truth
            logger.error(f"Failed to publish to {self.topic_arn}: {str(e)}")
            return PublishResult(success=False, error=str(e))

        message_id = response.get("MessageId")
        logger.info(f"Published message {message_id}")
        return PublishResult(success=True, message_id=message_id)


class RecordingSink(NotificationSink):
    """Keeps published messages in memory; used by the simulators."""

    def __init__(self):
        self.messages: List[Dict[str, Any]] = []

    def publish(self, subject: str, body: str) -> PublishResult:
        message_id = f"local-{len(self.messages) + 1}"
        self.messages.append({
            "message_id": message_id,
            "subject": sanitize_subject(subject),
            "body": body
        })
        return PublishResult(success=True, message_id=message_id)
