"""Unit tests for configuration loading."""
import json
from pathlib import Path

import pytest

from wafwatch.config.settings import load_config, ThresholdConfig, MonitorConfig, CONFIG_PATH_ENV
from wafwatch.exceptions import ConfigurationError
from wafwatch.models.alarm import ComparisonOperator, MissingDataPolicy
from conftest import TOPIC_ARN

CONFIG_FILE = Path(__file__).resolve().parents[2] / "config" / "waf_monitor.yaml"


def test_defaults():
    config = load_config(environ={})

    assert len(config.rules) == 1
    rule = config.rules[0]
    assert rule.service_filter == "wafv2.amazonaws.com"
    assert rule.action_filter == frozenset({"CreateWebACL", "UpdateWebACL", "DeleteWebACL"})
    assert rule.resource_name_filter == "MyWebACL-TF"

    assert config.threshold == ThresholdConfig()
    assert config.threshold.threshold == 1
    assert config.threshold.period_seconds == 300
    assert config.threshold.comparison_operator == ComparisonOperator.GREATER_THAN_OR_EQUAL
    assert config.threshold.missing_data == MissingDataPolicy.NOT_BREACHING
    assert config.metric_namespace == "WAFMonitoring"
    assert config.metric_name == "WebACLChanges"
    assert config.sns_topic_arn is None

    with pytest.raises(ConfigurationError):
        config.require_topic_arn()


def test_load_yaml_file():
    config = load_config(str(CONFIG_FILE), environ={})

    assert config.require_topic_arn() == TOPIC_ARN
    assert config.state_table_name == "waf-watch-alarm-state"
    assert config.region == "us-east-1"


def test_config_path_from_environment():
    config = load_config(environ={CONFIG_PATH_ENV: str(CONFIG_FILE)})
    assert config.sns_topic_arn == TOPIC_ARN


def test_load_json_file(tmp_path):
    config_file = tmp_path / "monitor.json"
    config_file.write_text(json.dumps({
        "alarm": {"threshold": 5, "period_seconds": 600},
        "notification": {"topic_arn": TOPIC_ARN},
    }))

    config = load_config(str(config_file), environ={})

    assert config.threshold.threshold == 5
    assert config.threshold.period_seconds == 600
    # Sections not in the file keep their defaults
    assert config.threshold.missing_data == MissingDataPolicy.NOT_BREACHING
    assert config.rules[0].resource_name_filter == "MyWebACL-TF"


def test_environment_overrides_file():
    config = load_config(str(CONFIG_FILE), environ={
        "WEB_ACL_NAME": "ProdACL",
        "ALARM_THRESHOLD": "3",
        "ALARM_PERIOD_SECONDS": "900",
        "TREAT_MISSING_DATA": "missing",
        "NOTIFY_ON_OK": "true",
        "SNS_TOPIC_ARN": "arn:aws:sns:eu-west-1:210987654321:other-topic",
        "AWS_REGION": "eu-west-1",
    })

    assert config.rules[0].resource_name_filter == "ProdACL"
    assert config.rules[0].action_filter == frozenset({"CreateWebACL", "UpdateWebACL", "DeleteWebACL"})
    assert config.threshold.threshold == 3
    assert config.threshold.period_seconds == 900
    assert config.threshold.missing_data == MissingDataPolicy.MISSING
    assert config.threshold.notify_on_ok
    assert config.sns_topic_arn == "arn:aws:sns:eu-west-1:210987654321:other-topic"
    assert config.region == "eu-west-1"


def test_match_rules_from_environment():
    rules = [{"service": "wafv2.amazonaws.com", "actions": ["DeleteWebACL"], "resource_name": "EdgeACL"}]
    config = load_config(environ={"MATCH_RULES": json.dumps(rules)})

    assert len(config.rules) == 1
    assert config.rules[0].action_filter == frozenset({"DeleteWebACL"})
    assert config.rules[0].resource_name_filter == "EdgeACL"


@pytest.mark.parametrize("environ", [
    {"ALARM_THRESHOLD": "abc"},
    {"ALARM_THRESHOLD": "-1"},
    {"ALARM_PERIOD_SECONDS": "90"},
    {"ALARM_COMPARISON_OPERATOR": "Sometimes"},
    {"TREAT_MISSING_DATA": "sometimes"},
    {"SNS_TOPIC_ARN": "not-an-arn"},
    {"MATCH_RULES": "[not json"},
    {"MATCH_RULES": "[]"},
    {"MATCH_RULES": '[{"service": "wafv2.amazonaws.com"}]'},
])
def test_invalid_configuration(environ):
    with pytest.raises(ConfigurationError):
        load_config(environ=environ)


@pytest.mark.parametrize("alarm_yaml", [
    "alarm:\n  threshold:\n",
    "alarm:\n  period_seconds:\n",
    "alarm:\n  threshold: [1, 2]\n",
])
def test_empty_or_wrong_typed_alarm_values(tmp_path, alarm_yaml):
    config_file = tmp_path / "monitor.yaml"
    config_file.write_text(alarm_yaml)

    with pytest.raises(ConfigurationError):
        load_config(str(config_file), environ={})


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigurationError):
        load_config(str(tmp_path / "absent.yaml"), environ={})


def test_config_file_must_be_mapping(tmp_path):
    config_file = tmp_path / "list.yaml"
    config_file.write_text("- one\n- two\n")

    with pytest.raises(ConfigurationError):
        load_config(str(config_file), environ={})


def test_monitor_config_requires_rules():
    with pytest.raises(ConfigurationError):
        MonitorConfig(rules=[])
