"""Match rule definitions and their rendering into AWS filter patterns."""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, List, FrozenSet, Iterable

import yaml

from wafwatch.exceptions import ConfigurationError
from wafwatch.models.event import AuditEvent

CLOUDTRAIL_DETAIL_TYPE = "AWS API Call via CloudTrail"
WILDCARD = "*"


@dataclass(frozen=True)
class MatchRule:
    """Predicate over audit events: service AND action (any of) AND resource name."""
    service_filter: str
    action_filter: FrozenSet[str]
    resource_name_filter: str
    resource_name_field: str = "name"

    def __post_init__(self):
        if not self.service_filter:
            raise ConfigurationError("Match rule needs a service filter")
        if not self.action_filter:
            raise ConfigurationError("Match rule needs at least one action")
        if not self.resource_name_filter:
            raise ConfigurationError("Match rule needs a resource name filter")
        if not self.resource_name_field:
            raise ConfigurationError("Match rule needs a resource name field")

        # Accept any iterable of names from callers, store a frozenset
        if not isinstance(self.action_filter, frozenset):
            object.__setattr__(self, "action_filter", frozenset(self.action_filter))

        # Filter patterns cannot escape "*", so a literal value must not contain one
        for value in (self.service_filter, self.resource_name_filter, *self.action_filter):
            if WILDCARD in value:
                raise ConfigurationError(f"Match rule values are exact; {value!r} contains {WILDCARD!r}")

    def matches(self, event: AuditEvent) -> bool:
        """Case-sensitive exact match on all three filters."""
        if event.event_source != self.service_filter:
            return False
        if event.event_name not in self.action_filter:
            return False
        return event.request_parameters.get(self.resource_name_field) == self.resource_name_filter

    @property
    def event_bus_source(self) -> str:
        """EventBridge ``source`` for the service, e.g. ``aws.wafv2``."""
        service = self.service_filter.split(".", 1)[0]
        return f"aws.{service}"

    def to_metric_filter_pattern(self) -> str:
        """Render as a CloudWatch Logs JSON filter pattern."""
        actions = " || ".join(
            f"($.eventName = {json.dumps(action)})" for action in sorted(self.action_filter)
        )
        return (
            "{ "
            f"($.eventSource = {json.dumps(self.service_filter)}) && "
            f"({actions}) && "
            f"($.requestParameters.{self.resource_name_field} = {json.dumps(self.resource_name_filter)})"
            " }"
        )

    def to_event_pattern(self) -> Dict[str, Any]:
        """Render as an EventBridge event pattern."""
        return {
            "source": [self.event_bus_source],
            "detail-type": [CLOUDTRAIL_DETAIL_TYPE],
            "detail": {
                "eventSource": [self.service_filter],
                "eventName": sorted(self.action_filter),
                "requestParameters": {
                    self.resource_name_field: [self.resource_name_filter]
                },
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MatchRule":
        """Create MatchRule from dictionary."""
        try:
            actions = data["actions"]
            if isinstance(actions, str):
                raise ConfigurationError("'actions' must be a list of action names")
            return cls(
                service_filter=data["service"],
                action_filter=frozenset(actions),
                resource_name_filter=data["resource_name"],
                resource_name_field=data.get("resource_name_field", "name"),
            )
        except KeyError as e:
            raise ConfigurationError(f"Match rule is missing required key {e}") from e
        except TypeError as e:
            raise ConfigurationError(f"Match rule is malformed: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "service": self.service_filter,
            "actions": sorted(self.action_filter),
            "resource_name": self.resource_name_filter,
            "resource_name_field": self.resource_name_field,
        }


def combined_metric_filter_pattern(rules: Iterable[MatchRule]) -> str:
    """One filter pattern that matches when any rule matches."""
    patterns = [rule.to_metric_filter_pattern() for rule in rules]
    if not patterns:
        raise ConfigurationError("At least one match rule is required")
    if len(patterns) == 1:
        return patterns[0]
    # Strip the outer braces of each rule and OR the bodies together
    bodies = [f"({pattern[2:-2]})" for pattern in patterns]
    return "{ " + " || ".join(bodies) + " }"


def load_rules_file(path: Path) -> List[MatchRule]:
    """Load match rules from a .json or .yaml file (a list, or a mapping with ``rules``)."""
    with open(path, "r") as f:
        if path.suffix == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)

    if isinstance(data, dict):
        data = data.get("rules", [])
    if not isinstance(data, list):
        raise ConfigurationError(f"Rules file {path} must contain a list of rules")

    return [MatchRule.from_dict(rule_data) for rule_data in data]
