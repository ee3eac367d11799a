"""Counter storage for matched-event increments."""
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Any, List, Optional, Tuple

logger = logging.getLogger(__name__)


class MetricPublisher(ABC):
    """Receives counter increments from the metric filter."""

    @abstractmethod
    def put(self, value: float, timestamp: datetime) -> None:
        pass


class MetricSource(ABC):
    """Read side used by the threshold evaluator."""

    @abstractmethod
    def get_sum(self, start: datetime, end: datetime) -> Optional[float]:
        """Sum of datapoints in [start, end), or None when there are no datapoints."""
        pass


class InMemoryMetricStore(MetricPublisher, MetricSource):
    """Process-local counter for simulation and tests."""

    def __init__(self):
        self._datapoints: List[Tuple[datetime, float]] = []
        self._lock = threading.Lock()

    def put(self, value: float, timestamp: datetime) -> None:
        with self._lock:
            self._datapoints.append((timestamp, value))

    def get_sum(self, start: datetime, end: datetime) -> Optional[float]:
        with self._lock:
            values = [value for timestamp, value in self._datapoints if start <= timestamp < end]
        return sum(values) if values else None

    def clear(self):
        with self._lock:
            self._datapoints = []


class CloudWatchMetrics(MetricPublisher, MetricSource):
    """Custom CloudWatch metric backed counter."""

    def __init__(self, cloudwatch_client, namespace: str, metric_name: str,
                 dimensions: Optional[Dict[str, str]] = None):
        self.cloudwatch_client = cloudwatch_client
        self.namespace = namespace
        self.metric_name = metric_name
        self.dimensions = [
            {"Name": name, "Value": value} for name, value in (dimensions or {}).items()
        ]

    def put(self, value: float, timestamp: datetime) -> None:
        logger.debug(f"Publishing {self.namespace}/{self.metric_name} += {value}")
        self.cloudwatch_client.put_metric_data(
            Namespace=self.namespace,
            MetricData=[{
                "MetricName": self.metric_name,
                "Dimensions": self.dimensions,
                "Timestamp": timestamp,
                "Value": value,
                "Unit": "Count"
            }]
        )

    def get_sum(self, start: datetime, end: datetime) -> Optional[float]:
        period = max(60, int((end - start).total_seconds()))
        response = self.cloudwatch_client.get_metric_statistics(
            Namespace=self.namespace,
            MetricName=self.metric_name,
            Dimensions=self.dimensions,
            StartTime=start,
            EndTime=end,
            Period=period,
            Statistics=["Sum"]
        )
        datapoints: List[Dict[str, Any]] = response.get("Datapoints", [])
        if not datapoints:
            return None
        return sum(point.get("Sum", 0) for point in datapoints)
