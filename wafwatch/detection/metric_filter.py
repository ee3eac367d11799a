"""Metric filter: turns matching log lines into counter increments."""
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Iterable, Optional, Union

from wafwatch.metrics.store import MetricPublisher

from .filter_pattern import FilterPattern

logger = logging.getLogger(__name__)


class MetricFilter:
    """Evaluates every log line against a filter pattern and counts the matches."""

    def __init__(self, pattern: Union[str, FilterPattern], publisher: MetricPublisher,
                 metric_value: float = 1):
        self.pattern = pattern if isinstance(pattern, FilterPattern) else FilterPattern(pattern)
        self.publisher = publisher
        self.metric_value = metric_value

    def process(self, log_line: str, timestamp: Optional[datetime] = None) -> bool:
        """Increment the counter once if the line matches. Returns whether it matched."""
        if not self.pattern.matches_line(log_line):
            return False

        timestamp = timestamp or datetime.now(timezone.utc)
        self.publisher.put(self.metric_value, timestamp)
        return True

    def process_batch(self, log_events: Iterable[Dict[str, Any]]) -> int:
        """Process a CloudWatch Logs subscription batch; returns the number of matches."""
        matched = 0
        for log_event in log_events:
            timestamp = _from_epoch_millis(log_event.get("timestamp"))
            if self.process(log_event.get("message", ""), timestamp):
                matched += 1
        logger.info(f"Metric filter matched {matched} log event(s)")
        return matched


def _from_epoch_millis(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
