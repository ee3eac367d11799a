"""Mock AWS SDK for local simulation and intent logging."""
from typing import Dict, Any, Optional, Iterable, List
from datetime import datetime, timezone
import json

from botocore.exceptions import ClientError


class MockAWSClients:
    """Mock AWS service clients that log intent instead of making calls"""

    def __init__(self, mode: str = "dry_run", fail_operations: Optional[Iterable[str]] = None,
                 verbose: bool = False):
        self.mode = mode  # "dry_run", "intent_only"
        self.fail_operations = set(fail_operations or [])  # e.g. {"sns.Publish"}
        self.verbose = verbose
        self.logs: List[Dict[str, Any]] = []
        self.metric_data: List[Dict[str, Any]] = []
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def log_intent(self, service: str, operation: str, params: Dict[str, Any]):
        """Log API call intent"""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": service,
            "operation": operation,
            "parameters": params,
            "mode": self.mode,
            "intent": "This API call would be made in production"
        }
        self.logs.append(log_entry)
        if self.verbose:
            print(f"[MOCK AWS] {service}.{operation} called with params: {json.dumps(params, default=str)}")

        if f"{service}.{operation}" in self.fail_operations:
            raise ClientError(
                {"Error": {"Code": "InternalError", "Message": f"Simulated {operation} failure"}},
                operation
            )

        return {"ResponseMetadata": {"HTTPStatusCode": 200}}

    def get_sns_client(self):
        """Mock SNS client"""
        class MockSNSClient:
            def __init__(self, parent):
                self.parent = parent

            def publish(self, **kwargs):
                response = self.parent.log_intent("sns", "Publish", kwargs)
                response["MessageId"] = f"mock-message-{len(self.parent.get_logs('sns', 'Publish'))}"
                return response

        return MockSNSClient(self)

    def get_cloudwatch_client(self):
        """Mock CloudWatch client backed by an in-memory list of datapoints"""
        class MockCloudWatchClient:
            def __init__(self, parent):
                self.parent = parent

            def put_metric_data(self, **kwargs):
                response = self.parent.log_intent("cloudwatch", "PutMetricData", kwargs)
                for datum in kwargs.get("MetricData", []):
                    self.parent.metric_data.append(dict(datum, Namespace=kwargs["Namespace"]))
                return response

            def get_metric_statistics(self, **kwargs):
                self.parent.log_intent("cloudwatch", "GetMetricStatistics", kwargs)
                values = [
                    datum["Value"] for datum in self.parent.metric_data
                    if datum["Namespace"] == kwargs["Namespace"]
                    and datum["MetricName"] == kwargs["MetricName"]
                    and kwargs["StartTime"] <= datum["Timestamp"] < kwargs["EndTime"]
                ]
                if not values:
                    return {"Datapoints": [], "Label": kwargs["MetricName"]}
                return {
                    "Datapoints": [{
                        "Timestamp": kwargs["StartTime"],
                        "Sum": float(sum(values)),
                        "Unit": "Count"
                    }],
                    "Label": kwargs["MetricName"]
                }

        return MockCloudWatchClient(self)

    def get_dynamodb_table(self, table_name: str):
        """Mock DynamoDB Table resource keyed on PK"""
        items = self.tables.setdefault(table_name, {})

        class MockTable:
            def __init__(self, parent):
                self.parent = parent
                self.name = table_name

            def get_item(self, **kwargs):
                self.parent.log_intent("dynamodb", "GetItem", kwargs)
                item = items.get(kwargs["Key"]["PK"])
                return {"Item": dict(item)} if item else {}

            def put_item(self, **kwargs):
                response = self.parent.log_intent("dynamodb", "PutItem", kwargs)
                items[kwargs["Item"]["PK"]] = dict(kwargs["Item"])
                return response

        return MockTable(self)

    def get_logs(self, service: Optional[str] = None, operation: Optional[str] = None) -> list:
        """Get logged intents, optionally filtered by service and operation"""
        return [
            log for log in self.logs
            if (service is None or log["service"] == service)
            and (operation is None or log["operation"] == operation)
        ]

    def clear_logs(self):
        """Clear intent logs"""
        self.logs = []
