"""Replays per-period change counts through the alarm state machine."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Any, List, Optional

# Ensure project root is in sys.path BEFORE any wafwatch imports
PROJECT_ROOT = Path(__file__).parent.parent.resolve()
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from wafwatch.alarm.evaluator import ThresholdEvaluator
from wafwatch.alarm.runner import AlarmRunner
from wafwatch.alarm.state_store import InMemoryAlarmStateStore
from wafwatch.config.settings import ThresholdConfig
from wafwatch.metrics.store import InMemoryMetricStore
from wafwatch.models.alarm import MissingDataPolicy
from wafwatch.notification.sink import RecordingSink

START = datetime(2024, 6, 12, 14, 0, tzinfo=timezone.utc)


def parse_periods(value: str) -> List[Optional[int]]:
    """``"3,-,0,2"`` -> ``[3, None, 0, 2]``; ``-`` marks a period without datapoints."""
    return [None if part.strip() == "-" else int(part) for part in value.split(",") if part.strip()]


class AlarmSimulator:

    def __init__(self, threshold: ThresholdConfig, alarm_name: str = "waf-config-change-alarm"):
        self.threshold = threshold
        self.sink = RecordingSink()
        self.metrics = InMemoryMetricStore()
        self.runner = AlarmRunner(
            alarm_name,
            ThresholdEvaluator(threshold, sink=self.sink),
            self.metrics,
            InMemoryAlarmStateStore()
        )

    def run(self, periods: List[Optional[int]], start: datetime = START) -> List[Dict[str, Any]]:
        period = timedelta(seconds=self.threshold.period_seconds)
        results = []

        for index, count in enumerate(periods):
            period_start = start + index * period
            # A zero count still records a datapoint; None records nothing
            if count is not None:
                if count == 0:
                    self.metrics.put(0, period_start)
                for offset in range(count):
                    self.metrics.put(1, period_start + timedelta(seconds=offset))

            result = self.runner.tick(period_start + period)
            results.append({
                "period": index,
                "count": count,
                "state": result.new_state.value,
                "transitioned": result.transitioned,
                "notified": result.notified
            })
        return results


def main():
    import argparse

    parser = argparse.ArgumentParser(description="WAF Watch Alarm Simulator")
    parser.add_argument("--periods", default="3,-,0,-,2",
                        help="Comma-separated change counts per period, '-' for no data")
    parser.add_argument("--threshold", type=float, default=1)
    parser.add_argument("--period-seconds", type=int, default=300)
    parser.add_argument("--treat-missing-data", default=MissingDataPolicy.NOT_BREACHING.value,
                        choices=[policy.value for policy in MissingDataPolicy])
    parser.add_argument("--notify-on-ok", action="store_true")

    args = parser.parse_args()

    simulator = AlarmSimulator(ThresholdConfig(
        threshold=args.threshold,
        period_seconds=args.period_seconds,
        missing_data=MissingDataPolicy(args.treat_missing_data),
        notify_on_ok=args.notify_on_ok
    ))

    print("⏰ Alarm simulation")
    print("-" * 40)
    for row in simulator.run(parse_periods(args.periods)):
        count = "no data" if row["count"] is None else row["count"]
        marker = " 📢" if row["notified"] else ""
        print(f"Period {row['period']}: {count} -> {row['state']}{marker}")

    print(f"\nNotifications sent: {len(simulator.sink.messages)}")
    for message in simulator.sink.messages:
        print(f" - {message['subject']}")


if __name__ == "__main__":
    main()
