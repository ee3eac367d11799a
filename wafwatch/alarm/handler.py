"""Lambda handler for the scheduled threshold evaluation."""
import json
import logging
import os
from datetime import datetime, timezone
from functools import lru_cache
from typing import Dict, Any

from wafwatch.clients import AWSClients
from wafwatch.config.settings import load_config, MonitorConfig
from wafwatch.exceptions import ConfigurationError
from wafwatch.metrics.store import CloudWatchMetrics
from wafwatch.models.event import parse_event_time
from wafwatch.notification.sink import SNSNotificationSink

from .evaluator import ThresholdEvaluator
from .runner import AlarmRunner
from .state_store import DynamoDBAlarmStateStore

logger = logging.getLogger()
logger.setLevel(os.getenv("LOG_LEVEL", "INFO"))


def build_runner(config: MonitorConfig, clients) -> AlarmRunner:
    if not config.state_table_name:
        raise ConfigurationError("ALARM_STATE_TABLE is required for scheduled evaluation")

    sink = SNSNotificationSink(clients.get_sns_client(), config.require_topic_arn())
    evaluator = ThresholdEvaluator(config.threshold, sink=sink, region=config.region)
    metric_source = CloudWatchMetrics(
        clients.get_cloudwatch_client(),
        namespace=config.metric_namespace,
        metric_name=config.metric_name
    )
    state_store = DynamoDBAlarmStateStore(clients.get_dynamodb_table(config.state_table_name))

    return AlarmRunner(config.alarm_name, evaluator, metric_source, state_store)


@lru_cache(maxsize=1)
def get_runner() -> AlarmRunner:
    config = load_config()
    return build_runner(config, AWSClients(region=config.region))


def lambda_handler(event: Dict[str, Any], context) -> Dict[str, Any]:
    """Evaluate the last complete period. Triggered by an EventBridge schedule."""
    logger.info(f"Received event: {json.dumps(event, default=str)}")

    # Scheduled events carry the trigger time; evaluate relative to it
    now = parse_event_time(event.get("time"))

    try:
        result = get_runner().tick(now)
    except Exception as e:
        logger.error(f"Alarm evaluation failed: {str(e)}", exc_info=True)
        return {
            "statusCode": 500,
            "body": json.dumps({
                "error": str(e),
                "message": "Alarm evaluation failed"
            })
        }

    return {
        "statusCode": 200,
        "body": json.dumps({
            "result": result.to_dict(),
            "timestamp": (now or datetime.now(timezone.utc)).isoformat()
        }, default=str)
    }
