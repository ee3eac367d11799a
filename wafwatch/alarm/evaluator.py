"""Threshold evaluator: the alarm state machine for the change counter."""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional, Callable, List
import logging

from wafwatch.alerting.formatter import format_alarm_notification
from wafwatch.config.settings import ThresholdConfig
from wafwatch.models.alarm import AlarmRecord, AlarmState, MissingDataPolicy
from wafwatch.models.alert import AlertMessage, PublishResult
from wafwatch.notification.sink import NotificationSink

logger = logging.getLogger(__name__)


class TransitionResult:
    """Result of evaluating one period."""

    def __init__(self, success: bool, new_state: AlarmState, message: str = "",
                 transitioned: bool = False, notification: Optional[AlertMessage] = None,
                 publish_result: Optional[PublishResult] = None):
        self.success = success
        self.new_state = new_state
        self.message = message
        self.transitioned = transitioned
        self.notification = notification
        self.publish_result = publish_result

    @property
    def notified(self) -> bool:
        return self.publish_result is not None and self.publish_result.success

    def to_dict(self):
        return {
            "success": self.success,
            "state": self.new_state.value,
            "message": self.message,
            "transitioned": self.transitioned,
            "notification": self.notification.to_dict() if self.notification else None,
            "publish_result": self.publish_result.to_dict() if self.publish_result else None,
        }

    def __repr__(self):
        return (f"TransitionResult(success={self.success}, state={self.new_state}, "
                f"transitioned={self.transitioned}, message={self.message})")


@dataclass
class StateTransition:
    """Defines a valid state transition."""
    from_state: AlarmState
    to_state: AlarmState
    should_notify: Callable[[ThresholdConfig], bool]
    description: str


class ThresholdEvaluator:
    """Evaluates the counter once per period and drives OK / ALARM / INSUFFICIENT_DATA."""

    def __init__(self, config: ThresholdConfig, sink: Optional[NotificationSink] = None,
                 region: Optional[str] = None):
        self.config = config
        self.sink = sink
        self.region = region
        self.transitions = self._initialize_transitions()

    def _initialize_transitions(self) -> Dict[str, StateTransition]:
        """Initialize all valid state transitions."""
        transitions = [
            StateTransition(
                from_state=AlarmState.INSUFFICIENT_DATA,
                to_state=AlarmState.ALARM,
                should_notify=lambda c: True,
                description="First evaluated period breached the threshold"
            ),
            StateTransition(
                from_state=AlarmState.OK,
                to_state=AlarmState.ALARM,
                should_notify=lambda c: True,
                description="Period breached the threshold"
            ),
            StateTransition(
                from_state=AlarmState.INSUFFICIENT_DATA,
                to_state=AlarmState.OK,
                should_notify=lambda c: False,
                description="First evaluated period below the threshold"
            ),
            StateTransition(
                from_state=AlarmState.ALARM,
                to_state=AlarmState.OK,
                should_notify=lambda c: c.notify_on_ok,
                description="Period below the threshold, alarm cleared"
            ),
            # Only reachable with the "missing" policy
            StateTransition(
                from_state=AlarmState.OK,
                to_state=AlarmState.INSUFFICIENT_DATA,
                should_notify=lambda c: False,
                description="No datapoints in period"
            ),
            StateTransition(
                from_state=AlarmState.ALARM,
                to_state=AlarmState.INSUFFICIENT_DATA,
                should_notify=lambda c: False,
                description="No datapoints in period"
            ),
        ]

        transition_map = {}
        for transition in transitions:
            key = f"{transition.from_state.value}->{transition.to_state.value}"
            transition_map[key] = transition
        return transition_map

    def evaluate(self, record: AlarmRecord, period_start: datetime, period_sum: Optional[float],
                 now: Optional[datetime] = None) -> TransitionResult:
        """Evaluate one period. ``period_sum`` is None when the period had no datapoints.

        Mutates ``record`` in place. Re-evaluating a period that was already
        evaluated is a no-op, so a period can notify at most once.
        """
        now = now or datetime.now(timezone.utc)

        if record.has_evaluated(period_start):
            return TransitionResult(
                success=False,
                new_state=record.state,
                message=f"Period starting {period_start.isoformat()} was already evaluated"
            )

        target_state, reason = self._determine_target_state(record, period_sum)

        record.value = int(period_sum) if period_sum is not None else 0
        record.last_evaluated = now
        record.last_period_start = period_start

        if target_state == record.state:
            logger.info(f"Alarm {record.alarm_name} stays {record.state.value}: {reason}")
            return TransitionResult(success=True, new_state=record.state, message=reason)

        transition_key = f"{record.state.value}->{target_state.value}"
        transition = self.transitions.get(transition_key)
        if transition is None:
            return TransitionResult(
                success=False,
                new_state=record.state,
                message=f"No valid transition from {record.state} to {target_state}"
            )

        previous_state = record.state
        record.state = target_state
        record.state_reason = reason
        record.state_updated_at = now
        logger.info(f"Alarm {record.alarm_name} {previous_state.value} -> {target_state.value}: {reason}")

        notification = None
        publish_result = None
        if transition.should_notify(self.config):
            notification = format_alarm_notification(
                record, previous_state,
                threshold=self.config.threshold,
                period_seconds=self.config.period_seconds,
                region=self.region,
            )
            if self.sink is not None:
                publish_result = self.sink.publish_alert(notification)
                if not publish_result.success:
                    # The state change stands; the notification is best effort
                    logger.error(f"Alarm notification for {record.alarm_name} failed: {publish_result.error}")

        return TransitionResult(
            success=True,
            new_state=target_state,
            message=transition.description,
            transitioned=True,
            notification=notification,
            publish_result=publish_result
        )

    def _determine_target_state(self, record: AlarmRecord, period_sum: Optional[float]):
        """Target state and reason for the period."""
        threshold = self.config.threshold
        operator = self.config.comparison_operator

        if period_sum is None:
            policy = self.config.missing_data
            if policy == MissingDataPolicy.BREACHING:
                return AlarmState.ALARM, "No datapoints in period, treated as breaching"
            if policy == MissingDataPolicy.MISSING:
                return AlarmState.INSUFFICIENT_DATA, "No datapoints in period"
            # notBreaching / ignore: a gap in the log pipeline is not an all-clear
            return record.state, "No datapoints in period, state held"

        if operator.is_breaching(period_sum, threshold):
            return AlarmState.ALARM, (
                f"Threshold crossed: {period_sum:g} change(s) in period ({operator.value} {threshold:g})"
            )
        return AlarmState.OK, (
            f"Threshold not crossed: {period_sum:g} change(s) in period ({operator.value} {threshold:g})"
        )

    def get_valid_transitions(self, current_state: AlarmState) -> List[AlarmState]:
        """Get all valid transitions from a given state."""
        return [
            transition.to_state
            for transition in self.transitions.values()
            if transition.from_state == current_state
        ]
