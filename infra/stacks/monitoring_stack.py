"""WAF change monitoring stack: Web ACL, audit trail, alarm path and alert path.

The ``evaluator_mode`` context picks the alarm path: ``native`` uses a CloudWatch
metric filter and alarm, ``lambda`` runs the wafwatch detection and alarm handlers.
"""
import json
from pathlib import Path

from aws_cdk import (
    Stack,
    Duration,
    RemovalPolicy,
    BundlingOptions,
    aws_cloudtrail as cloudtrail,
    aws_cloudwatch as cloudwatch,
    aws_cloudwatch_actions as cloudwatch_actions,
    aws_dynamodb as dynamodb,
    aws_events as events,
    aws_events_targets as targets,
    aws_iam as iam,
    aws_lambda as lambda_,
    aws_logs as logs,
    aws_logs_destinations as logs_destinations,
    aws_s3 as s3,
    aws_sns as sns,
    aws_sns_subscriptions as subscriptions,
    aws_wafv2 as wafv2,
    CfnOutput,
)
from constructs import Construct

from wafwatch.config.settings import MonitorConfig
from wafwatch.exceptions import ConfigurationError
from wafwatch.detection.rules import combined_metric_filter_pattern
from wafwatch.models.alarm import ComparisonOperator, MissingDataPolicy

PROJECT_ROOT = Path(__file__).resolve().parents[2]

EVALUATOR_MODES = ("native", "lambda")

COMPARISON_OPERATORS = {
    ComparisonOperator.GREATER_THAN_OR_EQUAL: cloudwatch.ComparisonOperator.GREATER_THAN_OR_EQUAL_TO_THRESHOLD,
    ComparisonOperator.GREATER_THAN: cloudwatch.ComparisonOperator.GREATER_THAN_THRESHOLD,
    ComparisonOperator.LESS_THAN: cloudwatch.ComparisonOperator.LESS_THAN_THRESHOLD,
    ComparisonOperator.LESS_THAN_OR_EQUAL: cloudwatch.ComparisonOperator.LESS_THAN_OR_EQUAL_TO_THRESHOLD,
}

TREAT_MISSING_DATA = {
    MissingDataPolicy.NOT_BREACHING: cloudwatch.TreatMissingData.NOT_BREACHING,
    MissingDataPolicy.BREACHING: cloudwatch.TreatMissingData.BREACHING,
    MissingDataPolicy.IGNORE: cloudwatch.TreatMissingData.IGNORE,
    MissingDataPolicy.MISSING: cloudwatch.TreatMissingData.MISSING,
}


class MonitoringStack(Stack):
    """Detects and alerts on changes to the monitored Web ACL."""

    def __init__(self, scope: Construct, construct_id: str,
                 config: MonitorConfig, alert_email: str, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # Get context
        environment = self.node.try_get_context("environment") or "dev"
        retention_days = int(self.node.try_get_context("retention_days") or 90)
        enable_formatter = str(self.node.try_get_context("enable_alert_formatter") or "true").lower() == "true"
        bundle_lambda = str(self.node.try_get_context("bundle_lambda") or "true").lower() == "true"
        evaluator_mode = str(self.node.try_get_context("evaluator_mode") or "native").lower()
        if evaluator_mode not in EVALUATOR_MODES:
            raise ConfigurationError(
                f"evaluator_mode must be one of {', '.join(EVALUATOR_MODES)}, got {evaluator_mode!r}"
            )

        web_acl_name = config.rules[0].resource_name_filter

        # --- Monitored Web ACL ---
        web_acl = wafv2.CfnWebACL(
            self, "WebACL",
            name=web_acl_name,
            scope="REGIONAL",
            default_action=wafv2.CfnWebACL.DefaultActionProperty(
                allow=wafv2.CfnWebACL.AllowActionProperty()
            ),
            visibility_config=wafv2.CfnWebACL.VisibilityConfigProperty(
                cloud_watch_metrics_enabled=True,
                metric_name=web_acl_name,
                sampled_requests_enabled=True,
            ),
            rules=[
                wafv2.CfnWebACL.RuleProperty(
                    name="AWSManagedRulesCommonRuleSet",
                    priority=1,
                    override_action=wafv2.CfnWebACL.OverrideActionProperty(none={}),
                    statement=wafv2.CfnWebACL.StatementProperty(
                        managed_rule_group_statement=wafv2.CfnWebACL.ManagedRuleGroupStatementProperty(
                            vendor_name="AWS",
                            name="AWSManagedRulesCommonRuleSet",
                        )
                    ),
                    visibility_config=wafv2.CfnWebACL.VisibilityConfigProperty(
                        cloud_watch_metrics_enabled=True,
                        metric_name=f"{web_acl_name}-common",
                        sampled_requests_enabled=True,
                    ),
                ),
            ],
        )

        # --- Notification sink ---
        alert_topic = sns.Topic(
            self, "AlertTopic",
            topic_name=f"waf-config-alerts-{environment}",
            display_name="WAF Configuration Alerts",
        )
        # Unconfirmed subscriptions receive nothing until confirmed from the email
        alert_topic.add_subscription(subscriptions.EmailSubscription(alert_email))

        # --- Audit trail delivered to CloudWatch Logs ---
        trail_bucket = s3.Bucket(
            self, "TrailBucket",
            encryption=s3.BucketEncryption.S3_MANAGED,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            enforce_ssl=True,
            removal_policy=RemovalPolicy.RETAIN if environment == "prod" else RemovalPolicy.DESTROY,
            auto_delete_objects=environment != "prod",
            lifecycle_rules=[s3.LifecycleRule(expiration=Duration.days(retention_days))],
        )

        trail_log_group = logs.LogGroup(
            self, "TrailLogGroup",
            log_group_name=f"/aws/cloudtrail/waf-monitoring-{environment}",
            retention=logs.RetentionDays.THREE_MONTHS,
            removal_policy=RemovalPolicy.DESTROY,
        )

        trail = cloudtrail.Trail(
            self, "AuditTrail",
            trail_name=f"waf-monitoring-{environment}",
            bucket=trail_bucket,
            send_to_cloud_watch_logs=True,
            cloud_watch_log_group=trail_log_group,
            include_global_service_events=True,
            is_multi_region_trail=False,
            enable_file_validation=True,
        )

        self.detection_function = None
        self.evaluator_function = None

        # --- Log-filter path ---
        filter_pattern = logs.FilterPattern.literal(combined_metric_filter_pattern(config.rules))
        if evaluator_mode == "native":
            change_alarm = self._native_alarm(config, trail_log_group, filter_pattern, alert_topic, web_acl_name)
            state_table = None
        else:
            change_alarm = None
            state_table = self._lambda_evaluator(config, trail_log_group, filter_pattern, alert_topic,
                                                 environment, bundle_lambda)

        # --- Event-bus path: rule -> formatter Lambda -> topic ---
        formatter_function = None
        if enable_formatter:
            formatter_function = self._function(
                "AlertFormatterFunction", f"waf-alert-formatter-{environment}",
                "wafwatch.alerting.handler.lambda_handler", bundle_lambda,
                environment={
                    "SNS_TOPIC_ARN": alert_topic.topic_arn,
                    "MATCH_RULES": _match_rules_json(config),
                    "LOG_LEVEL": "INFO",
                },
            )
            alert_topic.grant_publish(formatter_function)

            for index, rule in enumerate(config.rules):
                pattern = rule.to_event_pattern()
                event_rule = events.Rule(
                    self, f"WebACLChangeRule{index}",
                    description=f"WAF changes to {rule.resource_name_filter}",
                    event_pattern=events.EventPattern(
                        source=pattern["source"],
                        detail_type=pattern["detail-type"],
                        detail=pattern["detail"],
                    ),
                )
                # One delivery attempt; the audit trail keeps the record regardless
                event_rule.add_target(targets.LambdaFunction(formatter_function, retry_attempts=0))

        # Store references
        self.web_acl = web_acl
        self.alert_topic = alert_topic
        self.trail = trail
        self.trail_log_group = trail_log_group
        self.change_alarm = change_alarm
        self.state_table = state_table
        self.formatter_function = formatter_function

        # Outputs
        CfnOutput(self, "WebACLArn", value=web_acl.attr_arn, description="Monitored Web ACL ARN")
        CfnOutput(self, "AlertTopicArn", value=alert_topic.topic_arn, description="Alert SNS topic ARN")
        CfnOutput(self, "TrailLogGroupName", value=trail_log_group.log_group_name,
                  description="CloudTrail log group")
        if change_alarm is not None:
            CfnOutput(self, "ChangeAlarmName", value=change_alarm.alarm_name,
                      description="Web ACL change alarm")
        if state_table is not None:
            CfnOutput(self, "AlarmStateTableName", value=state_table.table_name,
                      description="Alarm state table")

    def _package_code(self, bundle: bool) -> lambda_.Code:
        """Lambda asset with the wafwatch package (and PyYAML when bundled)."""
        exclude = ["cdk.out", "infra", "tests", "simulation", "events", "*.md", ".git", "**/__pycache__"]
        if not bundle:
            return lambda_.Code.from_asset(str(PROJECT_ROOT), exclude=exclude)

        return lambda_.Code.from_asset(
            str(PROJECT_ROOT),
            exclude=exclude,
            bundling=BundlingOptions(
                image=lambda_.Runtime.PYTHON_3_12.bundling_image,
                command=[
                    "bash", "-c",
                    "pip install --no-cache-dir pyyaml -t /asset-output && cp -r wafwatch /asset-output/",
                ],
            ),
        )

    def _function(self, construct_id: str, function_name: str, handler: str, bundle: bool,
                  environment: dict) -> lambda_.Function:
        return lambda_.Function(
            self, construct_id,
            function_name=function_name,
            runtime=lambda_.Runtime.PYTHON_3_12,
            handler=handler,
            code=self._package_code(bundle),
            timeout=Duration.seconds(30),
            memory_size=128,
            environment=environment,
            log_retention=logs.RetentionDays.ONE_MONTH,
        )

    def _native_alarm(self, config: MonitorConfig, trail_log_group: logs.LogGroup,
                      filter_pattern: logs.IFilterPattern, alert_topic: sns.Topic,
                      web_acl_name: str) -> cloudwatch.Alarm:
        """CloudWatch metric filter and alarm publishing straight to the topic."""
        metric_filter = logs.MetricFilter(
            self, "WebACLChangeFilter",
            log_group=trail_log_group,
            filter_pattern=filter_pattern,
            metric_namespace=config.metric_namespace,
            metric_name=config.metric_name,
            metric_value="1",
        )

        change_alarm = cloudwatch.Alarm(
            self, "WebACLChangeAlarm",
            alarm_name=config.alarm_name,
            alarm_description=f"Changes to Web ACL {web_acl_name}",
            metric=metric_filter.metric(
                statistic="Sum",
                period=Duration.seconds(config.threshold.period_seconds),
            ),
            threshold=config.threshold.threshold,
            evaluation_periods=1,
            comparison_operator=COMPARISON_OPERATORS[config.threshold.comparison_operator],
            treat_missing_data=TREAT_MISSING_DATA[config.threshold.missing_data],
        )
        change_alarm.add_alarm_action(cloudwatch_actions.SnsAction(alert_topic))
        if config.threshold.notify_on_ok:
            change_alarm.add_ok_action(cloudwatch_actions.SnsAction(alert_topic))
        return change_alarm

    def _lambda_evaluator(self, config: MonitorConfig, trail_log_group: logs.LogGroup,
                          filter_pattern: logs.IFilterPattern, alert_topic: sns.Topic,
                          environment: str, bundle: bool) -> dynamodb.Table:
        """
        Subscription Lambda counting matches, plus a scheduled Lambda evaluating
        the alarm with its record kept in DynamoDB.
        """
        state_table = dynamodb.Table(
            self, "AlarmStateTable",
            table_name=config.state_table_name or f"waf-watch-alarm-state-{environment}",
            partition_key=dynamodb.Attribute(name="PK", type=dynamodb.AttributeType.STRING),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            removal_policy=RemovalPolicy.RETAIN if environment == "prod" else RemovalPolicy.DESTROY,
        )

        metric_environment = {
            "MATCH_RULES": _match_rules_json(config),
            "METRIC_NAMESPACE": config.metric_namespace,
            "METRIC_NAME": config.metric_name,
            "LOG_LEVEL": "INFO",
        }

        detection_function = self._function(
            "ChangeDetectionFunction", f"waf-change-detection-{environment}",
            "wafwatch.detection.handler.lambda_handler", bundle,
            environment=metric_environment,
        )
        cloudwatch.Metric.grant_put_metric_data(detection_function)

        logs.SubscriptionFilter(
            self, "WebACLChangeSubscription",
            log_group=trail_log_group,
            destination=logs_destinations.LambdaDestination(detection_function),
            filter_pattern=filter_pattern,
        )

        evaluator_function = self._function(
            "AlarmEvaluatorFunction", f"waf-alarm-evaluator-{environment}",
            "wafwatch.alarm.handler.lambda_handler", bundle,
            environment={
                **metric_environment,
                "SNS_TOPIC_ARN": alert_topic.topic_arn,
                "ALARM_STATE_TABLE": state_table.table_name,
                "ALARM_NAME": config.alarm_name,
                "ALARM_THRESHOLD": str(config.threshold.threshold),
                "ALARM_PERIOD_SECONDS": str(config.threshold.period_seconds),
                "ALARM_COMPARISON_OPERATOR": config.threshold.comparison_operator.value,
                "TREAT_MISSING_DATA": config.threshold.missing_data.value,
                "NOTIFY_ON_OK": str(config.threshold.notify_on_ok).lower(),
            },
        )
        state_table.grant_read_write_data(evaluator_function)
        alert_topic.grant_publish(evaluator_function)
        evaluator_function.add_to_role_policy(iam.PolicyStatement(
            actions=["cloudwatch:GetMetricStatistics"],
            resources=["*"],
        ))

        # One evaluation per alarm period
        schedule = events.Rule(
            self, "AlarmEvaluationSchedule",
            description=f"Evaluate {config.alarm_name} every period",
            schedule=events.Schedule.rate(Duration.minutes(config.threshold.period_seconds // 60)),
        )
        schedule.add_target(targets.LambdaFunction(evaluator_function, retry_attempts=0))

        self.detection_function = detection_function
        self.evaluator_function = evaluator_function
        return state_table


def _match_rules_json(config: MonitorConfig) -> str:
    return json.dumps([rule.to_dict() for rule in config.rules])
