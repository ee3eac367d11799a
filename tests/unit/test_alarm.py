"""Unit tests for the threshold evaluator, runner and alarm state stores."""
from datetime import datetime, timedelta, timezone

import pytest
from botocore.exceptions import ClientError
from freezegun import freeze_time

from wafwatch.alarm.evaluator import ThresholdEvaluator
from wafwatch.alarm.runner import AlarmRunner, period_bounds
from wafwatch.alarm.state_store import InMemoryAlarmStateStore, DynamoDBAlarmStateStore
from wafwatch.config.settings import ThresholdConfig
from wafwatch.metrics.store import InMemoryMetricStore
from wafwatch.models.alarm import AlarmRecord, AlarmState, MissingDataPolicy
from wafwatch.notification.sink import RecordingSink
from simulation.aws_mock import MockAWSClients

ALARM_NAME = "waf-config-change-alarm"
PERIOD_START = datetime(2024, 6, 12, 14, 0, tzinfo=timezone.utc)
FIVE_MINUTES = timedelta(minutes=5)


def _evaluator(sink=None, **threshold_kwargs):
    return ThresholdEvaluator(ThresholdConfig(**threshold_kwargs), sink=sink, region="us-east-1")


def _evaluate_periods(evaluator, record, sums):
    """Evaluate consecutive periods starting at PERIOD_START."""
    results = []
    for index, period_sum in enumerate(sums):
        period_start = PERIOD_START + index * FIVE_MINUTES
        results.append(evaluator.evaluate(record, period_start, period_sum, now=period_start + FIVE_MINUTES))
    return results


def test_three_events_one_transition_one_publish():
    """Three matches in one period with threshold 1: a single ALARM transition and publish."""
    sink = RecordingSink()
    evaluator = _evaluator(sink)
    record = AlarmRecord(alarm_name=ALARM_NAME)

    result = evaluator.evaluate(record, PERIOD_START, 3, now=PERIOD_START + FIVE_MINUTES)

    assert result.success
    assert result.transitioned
    assert result.notified
    assert result.new_state == AlarmState.ALARM
    assert record.state == AlarmState.ALARM
    assert record.value == 3
    assert len(sink.messages) == 1
    assert sink.messages[0]["subject"] == f'ALARM: "{ALARM_NAME}" in us-east-1'
    assert "Changes In Period: 3" in sink.messages[0]["body"]
    assert "Previous State: INSUFFICIENT_DATA" in sink.messages[0]["body"]


def test_empty_period_after_alarm_holds_alarm():
    """With notBreaching, a period with no datapoints leaves ALARM in place."""
    sink = RecordingSink()
    evaluator = _evaluator(sink, missing_data=MissingDataPolicy.NOT_BREACHING)
    record = AlarmRecord(alarm_name=ALARM_NAME)

    results = _evaluate_periods(evaluator, record, [2, None, None])

    assert [r.new_state for r in results] == [AlarmState.ALARM] * 3
    assert [r.transitioned for r in results] == [True, False, False]
    assert record.state == AlarmState.ALARM
    assert record.value == 0
    assert len(sink.messages) == 1


def test_alarm_clears_on_non_breaching_period():
    sink = RecordingSink()
    evaluator = _evaluator(sink)
    record = AlarmRecord(alarm_name=ALARM_NAME)

    results = _evaluate_periods(evaluator, record, [1, None, 0])

    assert results[2].transitioned
    assert record.state == AlarmState.OK
    # OK notifications are off by default
    assert results[2].notification is None
    assert len(sink.messages) == 1


def test_notify_on_ok():
    sink = RecordingSink()
    evaluator = _evaluator(sink, notify_on_ok=True)
    record = AlarmRecord(alarm_name=ALARM_NAME)

    _evaluate_periods(evaluator, record, [1, 0])

    assert [m["subject"].split(":")[0] for m in sink.messages] == ["ALARM", "OK"]


def test_staying_in_alarm_does_not_renotify():
    sink = RecordingSink()
    evaluator = _evaluator(sink)
    record = AlarmRecord(alarm_name=ALARM_NAME)

    results = _evaluate_periods(evaluator, record, [1, 4, 2])

    assert all(r.new_state == AlarmState.ALARM for r in results)
    assert [r.notified for r in results] == [True, False, False]
    assert len(sink.messages) == 1


def test_period_is_evaluated_once():
    sink = RecordingSink()
    evaluator = _evaluator(sink)
    record = AlarmRecord(alarm_name=ALARM_NAME)

    first = evaluator.evaluate(record, PERIOD_START, 3)
    again = evaluator.evaluate(record, PERIOD_START, 3)
    earlier = evaluator.evaluate(record, PERIOD_START - FIVE_MINUTES, 0)

    assert first.success
    assert not again.success
    assert not earlier.success
    assert "already evaluated" in again.message
    assert record.state == AlarmState.ALARM
    assert len(sink.messages) == 1


def test_first_quiet_period_goes_ok_without_notification():
    sink = RecordingSink()
    evaluator = _evaluator(sink)
    record = AlarmRecord(alarm_name=ALARM_NAME)

    result = evaluator.evaluate(record, PERIOD_START, 0)

    assert result.transitioned
    assert record.state == AlarmState.OK
    assert sink.messages == []


def test_no_data_before_first_datapoint_stays_insufficient():
    evaluator = _evaluator(RecordingSink())
    record = AlarmRecord(alarm_name=ALARM_NAME)

    result = evaluator.evaluate(record, PERIOD_START, None)

    assert result.success
    assert not result.transitioned
    assert record.state == AlarmState.INSUFFICIENT_DATA


@pytest.mark.parametrize("policy,expected", [
    (MissingDataPolicy.NOT_BREACHING, AlarmState.OK),
    (MissingDataPolicy.IGNORE, AlarmState.OK),
    (MissingDataPolicy.BREACHING, AlarmState.ALARM),
    (MissingDataPolicy.MISSING, AlarmState.INSUFFICIENT_DATA),
])
def test_missing_data_policies(policy, expected):
    evaluator = _evaluator(RecordingSink(), missing_data=policy)
    record = AlarmRecord(alarm_name=ALARM_NAME)

    _evaluate_periods(evaluator, record, [0, None])

    assert record.state == expected


def test_threshold_boundary():
    """GreaterThanOrEqualToThreshold: the threshold value itself breaches."""
    evaluator = _evaluator(RecordingSink(), threshold=2)

    record = AlarmRecord(alarm_name=ALARM_NAME)
    evaluator.evaluate(record, PERIOD_START, 1)
    assert record.state == AlarmState.OK

    evaluator.evaluate(record, PERIOD_START + FIVE_MINUTES, 2)
    assert record.state == AlarmState.ALARM


def test_failed_publish_keeps_state_change(mocker):
    sink = RecordingSink()
    mocker.patch.object(sink, "publish_alert",
                        return_value=mocker.Mock(success=False, error="throttled"))
    evaluator = _evaluator(sink)
    record = AlarmRecord(alarm_name=ALARM_NAME)

    result = evaluator.evaluate(record, PERIOD_START, 1)

    assert result.success
    assert result.transitioned
    assert not result.notified
    assert record.state == AlarmState.ALARM


def test_evaluator_without_sink_still_builds_notification():
    evaluator = _evaluator()
    record = AlarmRecord(alarm_name=ALARM_NAME)

    result = evaluator.evaluate(record, PERIOD_START, 1)

    assert result.notification is not None
    assert result.publish_result is None
    assert result.to_dict()["state"] == "ALARM"


def test_valid_transitions():
    evaluator = _evaluator()

    assert set(evaluator.get_valid_transitions(AlarmState.INSUFFICIENT_DATA)) == {AlarmState.ALARM, AlarmState.OK}
    assert set(evaluator.get_valid_transitions(AlarmState.ALARM)) == {AlarmState.OK, AlarmState.INSUFFICIENT_DATA}
    assert set(evaluator.get_valid_transitions(AlarmState.OK)) == {AlarmState.ALARM, AlarmState.INSUFFICIENT_DATA}


def test_period_bounds():
    now = datetime(2024, 6, 12, 14, 7, 12, tzinfo=timezone.utc)
    assert period_bounds(now, 300) == (PERIOD_START, PERIOD_START + FIVE_MINUTES)

    # A tick exactly on the boundary evaluates the period that just closed
    boundary = datetime(2024, 6, 12, 14, 5, tzinfo=timezone.utc)
    assert period_bounds(boundary, 300) == (PERIOD_START, PERIOD_START + FIVE_MINUTES)

    naive = datetime(2024, 6, 12, 14, 7, 12)
    assert period_bounds(naive, 60)[1] == datetime(2024, 6, 12, 14, 7, tzinfo=timezone.utc)


def test_runner_scenario():
    store = InMemoryMetricStore()
    sink = RecordingSink()
    state_store = InMemoryAlarmStateStore()
    runner = AlarmRunner(ALARM_NAME, _evaluator(sink), store, state_store)

    for second in (5, 40, 200):
        store.put(1, PERIOD_START + timedelta(seconds=second))

    with freeze_time("2024-06-12 14:06:00"):
        first = runner.tick()
    with freeze_time("2024-06-12 14:07:30"):
        repeat = runner.tick()
    quiet = runner.tick(datetime(2024, 6, 12, 14, 11, tzinfo=timezone.utc))

    assert first.transitioned and first.notified
    assert not repeat.success
    assert quiet.success and not quiet.transitioned

    record = state_store.load(ALARM_NAME)
    assert record.state == AlarmState.ALARM
    assert record.last_period_start == PERIOD_START + FIVE_MINUTES
    assert len(sink.messages) == 1


def test_dynamodb_state_store():
    clients = MockAWSClients()
    state_store = DynamoDBAlarmStateStore(clients.get_dynamodb_table("waf-watch-alarm-state"))

    assert state_store.load(ALARM_NAME) is None
    record = state_store.load_or_create(ALARM_NAME)
    assert record.state == AlarmState.INSUFFICIENT_DATA

    record.state = AlarmState.ALARM
    record.last_period_start = PERIOD_START
    state_store.save(record)

    loaded = state_store.load(ALARM_NAME)
    assert loaded.state == AlarmState.ALARM
    assert loaded.last_period_start == PERIOD_START
    assert clients.get_logs("dynamodb", "GetItem")[0]["parameters"] == {"Key": {"PK": f"ALARM#{ALARM_NAME}"}}


def test_dynamodb_state_store_propagates_errors():
    clients = MockAWSClients(fail_operations={"dynamodb.GetItem"})
    state_store = DynamoDBAlarmStateStore(clients.get_dynamodb_table("waf-watch-alarm-state"))

    with pytest.raises(ClientError):
        state_store.load(ALARM_NAME)
