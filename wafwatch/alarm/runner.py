"""Periodic driver for the threshold evaluator."""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from wafwatch.metrics.store import MetricSource

from .evaluator import ThresholdEvaluator, TransitionResult
from .state_store import AlarmStateStore

logger = logging.getLogger(__name__)


def period_bounds(now: datetime, period_seconds: int) -> Tuple[datetime, datetime]:
    """Start and end of the last complete period before ``now`` (aligned to the epoch)."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    epoch_seconds = int(now.timestamp())
    end = datetime.fromtimestamp(epoch_seconds - epoch_seconds % period_seconds, tz=timezone.utc)
    return end - timedelta(seconds=period_seconds), end


class AlarmRunner:
    """Reads the period sum, evaluates it, and persists the alarm record."""

    def __init__(self, alarm_name: str, evaluator: ThresholdEvaluator,
                 metric_source: MetricSource, state_store: AlarmStateStore):
        self.alarm_name = alarm_name
        self.evaluator = evaluator
        self.metric_source = metric_source
        self.state_store = state_store

    def tick(self, now: Optional[datetime] = None) -> TransitionResult:
        now = now or datetime.now(timezone.utc)
        start, end = period_bounds(now, self.evaluator.config.period_seconds)

        record = self.state_store.load_or_create(self.alarm_name)
        period_sum = self.metric_source.get_sum(start, end)
        logger.info(f"Alarm {self.alarm_name}: period {start.isoformat()} - {end.isoformat()} sum={period_sum}")

        result = self.evaluator.evaluate(record, start, period_sum, now=now)
        if result.success:
            self.state_store.save(record)
        return result
