"""CI/CD access: GitHub Actions deploys through OIDC, no long-lived keys."""
from aws_cdk import (
    Stack,
    Duration,
    aws_iam as iam,
    CfnOutput,
)
from constructs import Construct

GITHUB_OIDC_URL = "https://token.actions.githubusercontent.com"
GITHUB_OIDC_HOST = "token.actions.githubusercontent.com"


class CiCdStack(Stack):
    """OIDC provider and deploy role for a single GitHub repository."""

    def __init__(self, scope: Construct, construct_id: str,
                 github_repository: str, branch: str = "main", **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        environment = self.node.try_get_context("environment") or "dev"

        provider = iam.OpenIdConnectProvider(
            self, "GitHubOidcProvider",
            url=GITHUB_OIDC_URL,
            client_ids=["sts.amazonaws.com"],
        )

        deploy_role = iam.Role(
            self, "GitHubDeployRole",
            role_name=f"waf-watch-github-deploy-{environment}",
            description=f"Assumed by GitHub Actions in {github_repository}",
            max_session_duration=Duration.hours(1),
            assumed_by=iam.WebIdentityPrincipal(
                provider.open_id_connect_provider_arn,
                conditions={
                    "StringEquals": {
                        f"{GITHUB_OIDC_HOST}:aud": "sts.amazonaws.com",
                    },
                    "StringLike": {
                        f"{GITHUB_OIDC_HOST}:sub": f"repo:{github_repository}:ref:refs/heads/{branch}",
                    },
                },
            ),
        )

        # CDK deployments go through the bootstrap roles
        deploy_role.add_to_policy(
            iam.PolicyStatement(
                actions=["sts:AssumeRole"],
                resources=[f"arn:aws:iam::{self.account}:role/cdk-*"],
            )
        )

        deploy_role.add_to_policy(
            iam.PolicyStatement(
                actions=[
                    "cloudformation:DescribeStacks",
                    "cloudformation:DescribeStackEvents",
                    "cloudformation:GetTemplate",
                ],
                resources=["*"],
            )
        )

        self.provider = provider
        self.deploy_role = deploy_role

        CfnOutput(self, "DeployRoleArn", value=deploy_role.role_arn,
                  description="Role for aws-actions/configure-aws-credentials")
