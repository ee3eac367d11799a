"""Shared pytest fixtures."""
import json
from pathlib import Path

import pytest

from wafwatch.detection.rules import MatchRule

EVENTS_DIR = Path(__file__).parent / "events" / "cloudtrail"
TOPIC_ARN = "arn:aws:sns:us-east-1:123456789012:waf-config-alerts"


def load_event(name: str) -> dict:
    with open(EVENTS_DIR / name, "r") as f:
        return json.load(f)


@pytest.fixture
def waf_rule():
    return MatchRule(
        service_filter="wafv2.amazonaws.com",
        action_filter=frozenset({"CreateWebACL", "UpdateWebACL", "DeleteWebACL"}),
        resource_name_filter="MyWebACL-TF",
    )


@pytest.fixture
def update_event():
    """UpdateWebACL on MyWebACL-TF by IAM user alice."""
    return load_event("waf_update_web_acl.json")


@pytest.fixture
def other_acl_event():
    return load_event("waf_update_other_acl.json")
