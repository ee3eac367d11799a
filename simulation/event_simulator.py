"""Event simulation harness for local testing."""

import json
import sys
from datetime import timedelta
from pathlib import Path
from typing import List, Dict, Any, Optional

# =============================================================================
# Ensure project root is in sys.path BEFORE any wafwatch imports
# =============================================================================
PROJECT_ROOT = Path(__file__).parent.parent.resolve()
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Now safe to import from wafwatch
from wafwatch.alarm.handler import build_runner
from wafwatch.alarm.runner import period_bounds
from wafwatch.alerting.pipeline import build_pipeline
from wafwatch.config.settings import load_config
from wafwatch.detection.handler import build_metric_filter
from wafwatch.models.event import AuditEvent
from simulation.aws_mock import MockAWSClients

DEFAULT_CONFIG = PROJECT_ROOT / "config" / "waf_monitor.yaml"
DEFAULT_EVENTS_DIR = PROJECT_ROOT / "events" / "cloudtrail"


class EventSimulator:
    """Replays CloudTrail events through both notification paths with mock AWS clients."""

    def __init__(self, config_path: Optional[str] = None, mode: str = "dry_run", verbose: bool = True):
        self.mode = mode
        self.verbose = verbose
        # Only the file is used; the local environment must not leak into a simulation
        self.config = load_config(str(config_path or DEFAULT_CONFIG), environ={})
        self.aws_client = MockAWSClients(mode=mode)

        self.pipeline = build_pipeline(self.config, self.aws_client)
        self.metric_filter = build_metric_filter(self.config, self.aws_client)
        self.alarm_runner = build_runner(self.config, self.aws_client)

    def _print(self, message: str = ""):
        if self.verbose:
            print(message)

    def process_event_file(self, event_file_path: str) -> Dict[str, Any]:
        """Process an event from a file through both paths."""
        self._print(f"\n🔍 Processing event file: {event_file_path}")

        with open(event_file_path, 'r') as f:
            event_data = json.load(f)

        event = AuditEvent.from_eventbridge(event_data)
        self._print(f" Event: {event.event_name} on {event.event_source}")

        # Event-bus path
        result = self.pipeline.process(event_data)
        self._print(f" 📢 Event-bus path: {result['status']}")
        if result.get("subject"):
            self._print(f" Subject: {result['subject']}")

        # Log-filter path: the CloudTrail record is one log line
        log_line = json.dumps(event_data.get("detail", event_data))
        counted = self.metric_filter.process(log_line, event.occurred_at)
        self._print(f" 📈 Log-filter path: {'counted' if counted else 'not counted'}")

        return {
            "file": Path(event_file_path).name,
            "event_bus": result,
            "metric_counted": counted,
            "occurred_at": event.occurred_at
        }

    def run_simulation(self, events_dir: Optional[str] = None) -> Dict[str, Any]:
        """Run simulation on all event files in a directory, then evaluate the alarm."""
        events_path = Path(events_dir) if events_dir else DEFAULT_EVENTS_DIR

        if not events_path.exists():
            self._print(f"❌ Events directory not found: {events_path}")
            return {"events": [], "alarm": []}

        self._print("🚀 Starting WAF Watch Simulation")
        self._print("=" * 50)

        results = [self.process_event_file(str(event_file)) for event_file in sorted(events_path.glob("*.json"))]
        alarm_results = self._evaluate_alarm(results)

        published = [r for r in results if r["event_bus"]["status"] == "PUBLISHED"]
        counted = [r for r in results if r["metric_counted"]]

        self._print("\n" + "=" * 50)
        self._print("📊 Simulation Summary")
        self._print(f" Total events processed: {len(results)}")
        self._print(f" Alerts published (event-bus path): {len(published)}")
        self._print(f" Changes counted (log-filter path): {len(counted)}")
        self._print(f" Alarm notifications: {sum(1 for r in alarm_results if r['publish_result'])}")

        self._print(f"\n🔧 AWS API Intent Logs ({self.mode} mode):")
        self._print("-" * 30)
        for i, log in enumerate(self.aws_client.get_logs("sns", "Publish"), 1):
            self._print(f"{i}. sns.Publish: {log['parameters']['Subject']}")

        return {"events": results, "alarm": alarm_results}

    def _evaluate_alarm(self, results: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Tick the alarm once per period from the first to one past the last event."""
        times = [r["occurred_at"] for r in results if r["occurred_at"] is not None]
        if not times:
            return []

        period = timedelta(seconds=self.config.threshold.period_seconds)
        first_start, _ = period_bounds(min(times), self.config.threshold.period_seconds)
        last_start, _ = period_bounds(max(times), self.config.threshold.period_seconds)

        alarm_results = []
        tick = first_start + 2 * period
        while tick <= last_start + 3 * period:
            result = self.alarm_runner.tick(tick)
            if result.transitioned:
                self._print(f" ⏰ {tick.isoformat()}: alarm -> {result.new_state.value}")
            alarm_results.append(result.to_dict())
            tick += period
        return alarm_results


def main():
    """Main entry point for simulation."""
    import argparse

    parser = argparse.ArgumentParser(description="WAF Watch Event Simulator")
    parser.add_argument("--mode", choices=["dry_run", "intent_only"],
                        default="dry_run", help="Execution mode")
    parser.add_argument("--config", help="Configuration file (YAML or JSON)")
    parser.add_argument("--event-file", help="Process single event file")
    parser.add_argument("--events-dir", help="Directory containing event files")

    args = parser.parse_args()

    simulator = EventSimulator(config_path=args.config, mode=args.mode)

    if args.event_file:
        results = simulator.process_event_file(args.event_file)
    else:
        results = simulator.run_simulation(args.events_dir)

    output_file = "simulation_results.json"
    with open(output_file, 'w') as f:
        json.dump(results, f, indent=2, default=str)
    print(f"\n💾 Results saved to: {output_file}")


if __name__ == "__main__":
    main()
