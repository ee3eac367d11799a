"""Explicitly constructed AWS client handles."""
from typing import Optional

import boto3


class AWSClients:
    """boto3 clients for one region, created once per process and passed down.

    Same accessor names as ``simulation.aws_mock.MockAWSClients`` so either can
    be handed to the pipeline builders.
    """

    def __init__(self, region: Optional[str] = None, session: Optional[boto3.session.Session] = None):
        self.session = session or boto3.session.Session(region_name=region)
        self._sns = None
        self._cloudwatch = None
        self._dynamodb = None

    def get_sns_client(self):
        if self._sns is None:
            self._sns = self.session.client("sns")
        return self._sns

    def get_cloudwatch_client(self):
        if self._cloudwatch is None:
            self._cloudwatch = self.session.client("cloudwatch")
        return self._cloudwatch

    def get_dynamodb_table(self, table_name: str):
        if self._dynamodb is None:
            self._dynamodb = self.session.resource("dynamodb")
        return self._dynamodb.Table(table_name)
