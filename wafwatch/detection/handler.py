"""Lambda handler for the CloudWatch Logs subscription (log-filter path)."""
import base64
import gzip
import json
import logging
import os
from functools import lru_cache
from typing import Dict, Any

from wafwatch.clients import AWSClients
from wafwatch.config.settings import load_config, MonitorConfig
from wafwatch.metrics.store import CloudWatchMetrics

from .metric_filter import MetricFilter
from .rules import combined_metric_filter_pattern

logger = logging.getLogger()
logger.setLevel(os.getenv("LOG_LEVEL", "INFO"))


def decode_subscription_payload(event: Dict[str, Any]) -> Dict[str, Any]:
    """Decode the base64 + gzip ``awslogs.data`` blob."""
    compressed = base64.b64decode(event["awslogs"]["data"])
    return json.loads(gzip.decompress(compressed))


def build_metric_filter(config: MonitorConfig, clients) -> MetricFilter:
    publisher = CloudWatchMetrics(
        clients.get_cloudwatch_client(),
        namespace=config.metric_namespace,
        metric_name=config.metric_name
    )
    return MetricFilter(combined_metric_filter_pattern(config.rules), publisher)


@lru_cache(maxsize=1)
def get_metric_filter() -> MetricFilter:
    config = load_config()
    return build_metric_filter(config, AWSClients(region=config.region))


def lambda_handler(event: Dict[str, Any], context) -> Dict[str, Any]:
    """Count matching CloudTrail log lines from one subscription batch."""
    try:
        payload = decode_subscription_payload(event)
    except (KeyError, TypeError, ValueError, OSError) as e:
        logger.error(f"Invalid CloudWatch Logs payload: {str(e)}")
        return {
            "statusCode": 400,
            "body": json.dumps({"error": f"Invalid CloudWatch Logs payload: {e}"})
        }

    if not isinstance(payload, dict):
        logger.error(f"CloudWatch Logs payload is not a JSON object: {type(payload).__name__}")
        return {
            "statusCode": 400,
            "body": json.dumps({"error": "Invalid CloudWatch Logs payload: expected a JSON object"})
        }

    if payload.get("messageType") == "CONTROL_MESSAGE":
        return {"statusCode": 200, "body": json.dumps({"matched": 0})}

    log_events = payload.get("logEvents", [])
    logger.info(f"Received {len(log_events)} log event(s) from {payload.get('logGroup')}")

    try:
        matched = get_metric_filter().process_batch(log_events)
    except Exception as e:
        logger.error(f"Error processing log events: {str(e)}", exc_info=True)
        return {
            "statusCode": 500,
            "body": json.dumps({"error": str(e), "message": "Failed to process log events"})
        }

    return {
        "statusCode": 200,
        "body": json.dumps({"log_events": len(log_events), "matched": matched})
    }
