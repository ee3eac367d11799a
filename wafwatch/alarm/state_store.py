"""Persistence for the alarm record between scheduled evaluations."""
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

from botocore.exceptions import ClientError

from wafwatch.models.alarm import AlarmRecord

logger = logging.getLogger(__name__)


class AlarmStateStore(ABC):

    @abstractmethod
    def load(self, alarm_name: str) -> Optional[AlarmRecord]:
        pass

    @abstractmethod
    def save(self, record: AlarmRecord) -> None:
        pass

    def load_or_create(self, alarm_name: str) -> AlarmRecord:
        """Existing record, or a fresh one in INSUFFICIENT_DATA."""
        record = self.load(alarm_name)
        if record is None:
            logger.info(f"No stored state for alarm {alarm_name}, starting in INSUFFICIENT_DATA")
            record = AlarmRecord(alarm_name=alarm_name)
        return record


class InMemoryAlarmStateStore(AlarmStateStore):

    def __init__(self):
        self._items: Dict[str, dict] = {}

    def load(self, alarm_name: str) -> Optional[AlarmRecord]:
        item = self._items.get(alarm_name)
        return AlarmRecord.from_dynamodb_item(item) if item else None

    def save(self, record: AlarmRecord) -> None:
        self._items[record.alarm_name] = record.to_dynamodb_item()


class DynamoDBAlarmStateStore(AlarmStateStore):
    """Stores one item per alarm, keyed ``ALARM#<name>``."""

    def __init__(self, table):
        self.table = table  # boto3 DynamoDB Table resource

    def load(self, alarm_name: str) -> Optional[AlarmRecord]:
        try:
            response = self.table.get_item(Key={"PK": f"ALARM#{alarm_name}"})
        except ClientError as e:
            logger.error(f"Failed to load alarm state for {alarm_name}: {str(e)}")
            raise
        item = response.get("Item")
        return AlarmRecord.from_dynamodb_item(item) if item else None

    def save(self, record: AlarmRecord) -> None:
        self.table.put_item(Item=record.to_dynamodb_item())
