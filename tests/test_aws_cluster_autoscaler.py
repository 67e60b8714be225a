import json

import pulumi

import eks_hybrid
import eks_hybrid.aws_iam
import eks_hybrid.pulumi_resources.aws_cluster_autoscaler
import eks_hybrid.pulumi_resources.aws_eks_cluster
from conftest import ACCOUNT_ID, OIDC_ISSUER_URL


def _build(config: eks_hybrid.DeploymentConfig) -> None:
    @pulumi.runtime.test
    def build():
        cluster = eks_hybrid.pulumi_resources.aws_eks_cluster.AWSEKSCluster(
            spec=config.cluster,
            vpc_id="vpc-1234",
            subnet_ids=["subnet-a", "subnet-b"],
            instance_roles={},
            tags={},
        )
        eks_hybrid.pulumi_resources.aws_cluster_autoscaler.AWSClusterAutoscalerIAM(
            cluster=cluster,
            tags={"team": "platform"},
        )

    build()


def test_role_trusts_the_cluster_autoscaler_service_account(
    recording_mocks, deployment_config: eks_hybrid.DeploymentConfig
):
    _build(deployment_config)

    role = recording_mocks.named("AmazonEKSClusterAutoscalerRole", "aws:iam/role:Role")
    assert role.inputs["name"] == "AmazonEKSClusterAutoscalerRole"

    (statement,) = json.loads(role.inputs["assumeRolePolicy"])["Statement"]
    assert statement["Action"] == "sts:AssumeRoleWithWebIdentity"
    assert statement["Principal"] == {
        "Federated": f"arn:aws:iam::{ACCOUNT_ID}:oidc-provider/oidc.eks.mp-north-4.amazonaws.com/id/5EC0FFEE"
    }
    assert statement["Condition"]["StringEquals"] == {
        "oidc.eks.mp-north-4.amazonaws.com/id/5EC0FFEE:sub": "system:serviceaccount:kube-system:cluster-autoscaler"
    }


def test_policy(recording_mocks, deployment_config: eks_hybrid.DeploymentConfig):
    _build(deployment_config)

    policy = recording_mocks.named("AmazonEKSClusterAutoscalerPolicy", "aws:iam/policy:Policy")
    assert policy.inputs["name"] == "AmazonEKSClusterAutoscalerPolicy"
    assert policy.inputs["path"] == "/"
    assert json.loads(policy.inputs["policy"]) == eks_hybrid.aws_iam.build_cluster_autoscaler_policy()

    attachment = recording_mocks.named("AmazonEKSClusterAutoscalerRole-policy")
    assert attachment.inputs["role"] == "AmazonEKSClusterAutoscalerRole"
    assert attachment.inputs["policyArn"] == f"arn:aws:mock::{ACCOUNT_ID}:AmazonEKSClusterAutoscalerPolicy"


def test_identity_provider_config(recording_mocks, deployment_config: eks_hybrid.DeploymentConfig):
    _build(deployment_config)

    config = recording_mocks.named("oidcProviderConfig", "aws:eks/identityProviderConfig:IdentityProviderConfig")
    assert config.inputs["clusterName"] == "bologna01"
    assert config.inputs["oidc"] == {
        "clientId": "sts.amazonaws.com",
        "identityProviderConfigName": "oidcProviderConfig",
        "issuerUrl": OIDC_ISSUER_URL,
    }
    assert config.inputs["tags"] == {"team": "platform"}
