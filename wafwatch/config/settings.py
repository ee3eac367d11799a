"""Monitor configuration: match rules, alarm threshold and AWS wiring.

Values come from a YAML or JSON file (``WAFWATCH_CONFIG``) and are then
overridden by environment variables, which is how the Lambda functions are
configured. Everything is validated once at startup.
"""
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, List, Mapping, Optional

import yaml

from wafwatch.detection.rules import MatchRule
from wafwatch.exceptions import ConfigurationError
from wafwatch.models.alarm import ComparisonOperator, MissingDataPolicy

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "WAFWATCH_CONFIG"

WAF_EVENT_SOURCE = "wafv2.amazonaws.com"
WEB_ACL_ACTIONS = ["CreateWebACL", "UpdateWebACL", "DeleteWebACL"]

DEFAULT_CONFIG: Dict[str, Any] = {
    "rules": [
        {
            "service": WAF_EVENT_SOURCE,
            "actions": WEB_ACL_ACTIONS,
            "resource_name": "MyWebACL-TF",
        }
    ],
    "alarm": {
        "name": "waf-config-change-alarm",
        "threshold": 1,
        "period_seconds": 300,
        "comparison_operator": ComparisonOperator.GREATER_THAN_OR_EQUAL.value,
        "treat_missing_data": MissingDataPolicy.NOT_BREACHING.value,
        "notify_on_ok": False,
    },
    "metric": {
        "namespace": "WAFMonitoring",
        "name": "WebACLChanges",
    },
    "notification": {
        "topic_arn": None,
    },
    "state_table": None,
    "region": None,
}


@dataclass(frozen=True)
class ThresholdConfig:
    """Threshold count, evaluation period and missing-data policy."""
    threshold: float = 1
    period_seconds: int = 300
    comparison_operator: ComparisonOperator = ComparisonOperator.GREATER_THAN_OR_EQUAL
    missing_data: MissingDataPolicy = MissingDataPolicy.NOT_BREACHING
    notify_on_ok: bool = False

    def __post_init__(self):
        if self.threshold < 0:
            raise ConfigurationError(f"Alarm threshold must be non-negative, got {self.threshold}")
        if self.period_seconds < 60 or self.period_seconds % 60:
            raise ConfigurationError(
                f"Alarm period must be a positive multiple of 60 seconds, got {self.period_seconds}"
            )


@dataclass(frozen=True)
class MonitorConfig:
    rules: List[MatchRule]
    threshold: ThresholdConfig = field(default_factory=ThresholdConfig)
    alarm_name: str = "waf-config-change-alarm"
    metric_namespace: str = "WAFMonitoring"
    metric_name: str = "WebACLChanges"
    sns_topic_arn: Optional[str] = None
    state_table_name: Optional[str] = None
    region: Optional[str] = None

    def __post_init__(self):
        if not self.rules:
            raise ConfigurationError("At least one match rule is required")
        if not self.alarm_name:
            raise ConfigurationError("Alarm name must not be empty")
        if self.sns_topic_arn is not None and not self.sns_topic_arn.startswith("arn:"):
            raise ConfigurationError(f"SNS topic ARN looks invalid: {self.sns_topic_arn}")

    def require_topic_arn(self) -> str:
        if not self.sns_topic_arn:
            raise ConfigurationError("SNS_TOPIC_ARN is not configured")
        return self.sns_topic_arn

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MonitorConfig":
        """Create MonitorConfig from a (merged) configuration mapping."""
        alarm = data.get("alarm") or {}
        metric = data.get("metric") or {}
        notification = data.get("notification") or {}

        try:
            threshold = ThresholdConfig(
                threshold=float(alarm.get("threshold", 1)),
                period_seconds=int(alarm.get("period_seconds", 300)),
                comparison_operator=ComparisonOperator(
                    alarm.get("comparison_operator", ComparisonOperator.GREATER_THAN_OR_EQUAL.value)
                ),
                missing_data=MissingDataPolicy(
                    alarm.get("treat_missing_data", MissingDataPolicy.NOT_BREACHING.value)
                ),
                notify_on_ok=_as_bool(alarm.get("notify_on_ok", False)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid alarm configuration: {e}") from e

        rules = data.get("rules")
        if not isinstance(rules, list):
            raise ConfigurationError("'rules' must be a list")

        return cls(
            rules=[MatchRule.from_dict(rule) for rule in rules],
            threshold=threshold,
            alarm_name=alarm.get("name", "waf-config-change-alarm"),
            metric_namespace=metric.get("namespace", "WAFMonitoring"),
            metric_name=metric.get("name", "WebACLChanges"),
            sns_topic_arn=notification.get("topic_arn"),
            state_table_name=data.get("state_table"),
            region=data.get("region"),
        )


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _deep_merge(base: Dict[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")

    with open(path, "r") as f:
        if path.suffix == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return data


def _environment_overrides(environ: Mapping[str, str], rules: List[Dict[str, Any]]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    alarm: Dict[str, Any] = {}
    metric: Dict[str, Any] = {}

    if environ.get("MATCH_RULES"):
        try:
            overrides["rules"] = json.loads(environ["MATCH_RULES"])
        except ValueError as e:
            raise ConfigurationError(f"MATCH_RULES is not valid JSON: {e}") from e
    elif environ.get("WEB_ACL_NAME"):
        # Retarget the configured rules at a different Web ACL
        overrides["rules"] = [dict(rule, resource_name=environ["WEB_ACL_NAME"]) for rule in rules]

    if environ.get("ALARM_NAME"):
        alarm["name"] = environ["ALARM_NAME"]
    if environ.get("ALARM_THRESHOLD"):
        alarm["threshold"] = environ["ALARM_THRESHOLD"]
    if environ.get("ALARM_PERIOD_SECONDS"):
        alarm["period_seconds"] = environ["ALARM_PERIOD_SECONDS"]
    if environ.get("ALARM_COMPARISON_OPERATOR"):
        alarm["comparison_operator"] = environ["ALARM_COMPARISON_OPERATOR"]
    if environ.get("TREAT_MISSING_DATA"):
        alarm["treat_missing_data"] = environ["TREAT_MISSING_DATA"]
    if environ.get("NOTIFY_ON_OK"):
        alarm["notify_on_ok"] = environ["NOTIFY_ON_OK"]
    if environ.get("METRIC_NAMESPACE"):
        metric["namespace"] = environ["METRIC_NAMESPACE"]
    if environ.get("METRIC_NAME"):
        metric["name"] = environ["METRIC_NAME"]

    if alarm:
        overrides["alarm"] = alarm
    if metric:
        overrides["metric"] = metric
    if environ.get("SNS_TOPIC_ARN"):
        overrides["notification"] = {"topic_arn": environ["SNS_TOPIC_ARN"]}
    if environ.get("ALARM_STATE_TABLE"):
        overrides["state_table"] = environ["ALARM_STATE_TABLE"]
    if environ.get("AWS_REGION"):
        overrides["region"] = environ["AWS_REGION"]

    return overrides


def load_config(path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> MonitorConfig:
    """Load defaults, then the config file, then environment overrides; validate."""
    environ = os.environ if environ is None else environ
    data = DEFAULT_CONFIG

    config_path = path or environ.get(CONFIG_PATH_ENV)
    if config_path:
        data = _deep_merge(data, _read_config_file(Path(config_path)))
        logger.info(f"Loaded configuration from {config_path}")

    data = _deep_merge(data, _environment_overrides(environ, data.get("rules") or []))

    config = MonitorConfig.from_dict(data)
    logger.info(
        f"Monitoring {len(config.rules)} rule(s); alarm {config.alarm_name} "
        f"threshold={config.threshold.threshold} period={config.threshold.period_seconds}s "
        f"missing_data={config.threshold.missing_data.value}"
    )
    return config
