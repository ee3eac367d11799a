"""End-to-end runs of the local simulators against the sample events."""
from simulation.alarm_simulator import AlarmSimulator, parse_periods
from simulation.event_simulator import EventSimulator
from wafwatch.config.settings import ThresholdConfig
from wafwatch.models.alarm import MissingDataPolicy
from conftest import EVENTS_DIR


def test_parse_periods():
    assert parse_periods("3,-,0,2") == [3, None, 0, 2]
    assert parse_periods(" 1 , - ,") == [1, None]


def test_event_simulation_both_paths():
    simulator = EventSimulator(verbose=False)
    results = simulator.run_simulation(str(EVENTS_DIR))

    by_file = {r["file"]: r for r in results["events"]}
    assert by_file["waf_update_web_acl.json"]["event_bus"]["status"] == "PUBLISHED"
    assert by_file["waf_update_other_acl.json"]["event_bus"]["status"] == "IGNORED"
    assert by_file["s3_put_bucket_policy.json"]["event_bus"]["status"] == "IGNORED"

    # Both paths select the same events
    for result in results["events"]:
        assert result["metric_counted"] == (result["event_bus"]["status"] == "PUBLISHED"), result["file"]

    subjects = [log["parameters"]["Subject"] for log in simulator.aws_client.get_logs("sns", "Publish")]
    assert "WAF Alert: UpdateWebACL by IAM User: alice" in subjects
    assert "WAF Alert: DeleteWebACL by Role: github-actions-deploy" in subjects
    assert "WAF Alert: CreateWebACL by Root Account" in subjects

    # The alarm fires once and holds through the quiet periods that follow
    alarm_notifications = [r for r in results["alarm"] if r["publish_result"]]
    assert len(alarm_notifications) == 1
    assert alarm_notifications[0]["state"] == "ALARM"
    assert results["alarm"][-1]["state"] == "ALARM"
    assert len(subjects) == 4


def test_event_simulation_missing_directory(tmp_path):
    simulator = EventSimulator(verbose=False)
    assert simulator.run_simulation(str(tmp_path / "absent")) == {"events": [], "alarm": []}


def test_alarm_simulation_default_sequence():
    simulator = AlarmSimulator(ThresholdConfig())
    rows = simulator.run(parse_periods("3,-,0,-,2"))

    assert [row["state"] for row in rows] == ["ALARM", "ALARM", "OK", "OK", "ALARM"]
    assert [row["notified"] for row in rows] == [True, False, False, False, True]
    assert len(simulator.sink.messages) == 2


def test_alarm_simulation_breaching_policy():
    simulator = AlarmSimulator(ThresholdConfig(missing_data=MissingDataPolicy.BREACHING, notify_on_ok=True))
    rows = simulator.run([0, None, 0])

    assert [row["state"] for row in rows] == ["OK", "ALARM", "OK"]
    assert [m["subject"].split(":")[0] for m in simulator.sink.messages] == ["ALARM", "OK"]
