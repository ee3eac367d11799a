"""WAF Watch CDK application."""
import os
import sys
from pathlib import Path

from aws_cdk import App, Environment

# The stacks render their patterns from wafwatch configuration
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from wafwatch.config.settings import load_config
from stacks.monitoring_stack import MonitoringStack
from stacks.cicd_stack import CiCdStack

app = App()

# Get context values
account = app.node.try_get_context("account") or os.environ.get("CDK_DEFAULT_ACCOUNT", "123456789012")
region = app.node.try_get_context("region") or os.environ.get("CDK_DEFAULT_REGION", "us-east-1")
environment = app.node.try_get_context("environment") or "dev"
alert_email = app.node.try_get_context("alert_email") or os.environ.get("ALERT_EMAIL", "security@example.com")
github_repository = app.node.try_get_context("github_repository")
config_path = app.node.try_get_context("config") or str(PROJECT_ROOT / "config" / "waf_monitor.yaml")

env = Environment(account=account, region=region)
config = load_config(config_path)

print(f"Deploying WAF Watch to {account}/{region} in {environment} environment")

monitoring_stack = MonitoringStack(
    app, f"WafWatchMonitoring-{environment}",
    config=config,
    alert_email=alert_email,
    env=env,
    description="WAF Web ACL change detection and alerting"
)

stacks = [monitoring_stack]

if github_repository:
    cicd_stack = CiCdStack(
        app, f"WafWatchCiCd-{environment}",
        github_repository=github_repository,
        branch=app.node.try_get_context("github_branch") or "main",
        env=env,
        description="GitHub Actions OIDC deploy role for WAF Watch"
    )
    stacks.append(cicd_stack)

# Add tags to all resources
for stack in stacks:
    tags = stack.tags
    tags.set_tag("Project", "WafWatch")
    tags.set_tag("Environment", environment)
    tags.set_tag("ManagedBy", "CDK")
    tags.set_tag("SecurityTool", "true")

app.synth()
