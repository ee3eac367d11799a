"""Event matcher for WAF Web ACL changes."""

import json
import logging
from typing import Optional, List, Iterable

from wafwatch.exceptions import ConfigurationError
from wafwatch.models.event import AuditEvent

from .rules import MatchRule

logger = logging.getLogger(__name__)


class EventMatcher:
    """Selects audit events that hit any configured match rule."""

    def __init__(self, rules: Iterable[MatchRule]):
        self.rules: List[MatchRule] = list(rules)
        if not self.rules:
            raise ConfigurationError("EventMatcher needs at least one match rule")

    def matching_rule(self, event: AuditEvent) -> Optional[MatchRule]:
        """First rule whose three filters all match, or None."""
        for rule in self.rules:
            if rule.matches(event):
                return rule
        return None

    def matches(self, event: AuditEvent) -> bool:
        return self.matching_rule(event) is not None

    def matches_log_line(self, line: str) -> bool:
        """Match a raw CloudTrail log line; malformed lines never match."""
        try:
            record = json.loads(line)
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping log line that is not valid JSON: {e}")
            return False

        if not isinstance(record, dict):
            logger.warning("Skipping log line that is not a JSON object")
            return False

        return self.matches(AuditEvent.from_cloudtrail(record))
