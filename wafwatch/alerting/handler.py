"""Lambda handler for the EventBridge alert formatter."""
import json
import logging
import os
from functools import lru_cache
from typing import Dict, Any

from wafwatch.clients import AWSClients
from wafwatch.config.settings import load_config

from .pipeline import AlertPipeline, build_pipeline, STATUS_PUBLISHED, STATUS_IGNORED

logger = logging.getLogger()
logger.setLevel(os.getenv("LOG_LEVEL", "INFO"))


@lru_cache(maxsize=1)
def get_pipeline() -> AlertPipeline:
    """Pipeline for this process; built on first use and reused by warm invocations."""
    config = load_config()
    clients = AWSClients(region=config.region)
    return build_pipeline(config, clients)


def lambda_handler(event: Dict[str, Any], context) -> Dict[str, Any]:
    """Format and publish one WAF change event.

    Never raises: an error response is returned instead, so the invoker does not
    retry. The CloudTrail record remains available if the notification is lost.
    """
    logger.info(f"Received event: {json.dumps(event, default=str)}")

    try:
        result = get_pipeline().process(event)
    except Exception as e:
        logger.error(f"Error processing event: {str(e)}", exc_info=True)
        return {
            "statusCode": 500,
            "body": json.dumps({
                "error": str(e),
                "message": "Failed to process event"
            })
        }

    status_code = 200 if result["status"] in (STATUS_PUBLISHED, STATUS_IGNORED) else 500
    logger.info(f"Event {result.get('event_id')} finished with status {result['status']}")

    return {
        "statusCode": status_code,
        "body": json.dumps(result, default=str)
    }
