"""Shared pytest fixtures for eks-hybrid tests.

This module provides common fixtures used across test files:
- deployment_spec: A plain configuration mapping, as it would be read from stack config or YAML
- deployment_config: The parsed DeploymentConfig for deployment_spec
- recording_mocks: Pulumi mocks that record every declared resource
"""

import copy
import typing

import pulumi
import pytest

import eks_hybrid
import eks_hybrid.config

ACCOUNT_ID = "123456789012"
CLUSTER_SECURITY_GROUP_ID = "sg-0c1u5t3r"
OIDC_ISSUER_URL = "https://oidc.eks.mp-north-4.amazonaws.com/id/5EC0FFEE"
WINDOWS_AMI_ID = "ami-0w1nd0w5"

DEPLOYMENT_SPEC: dict[str, typing.Any] = {
    "region": "mp-north-4",
    "network": {
        "name": "bologna01",
        "cidrBlock": "10.10.0.0/16",
        "privateSubnets": ["10.10.0.0/19", "10.10.32.0/19", "10.10.64.0/19"],
        "privateSubnetsAZ": ["mp-north-4a", "mp-north-4b", "mp-north-4c"],
        "publicSubnets": ["10.10.128.0/22", "10.10.132.0/22"],
        "publicSubnetsAZ": ["mp-north-4a", "mp-north-4b"],
        "natGatewayPerAZ": False,
        "tags": {"team": "platform"},
    },
    "cluster": {
        "name": "bologna01",
        "version": "1.29",
        "tags": {"team": "platform"},
        "linuxNodegroups": {
            "linux": {
                "name": "bologna01-linux",
                "instanceType": "m5.large",
                "amiType": "AL2_x86_64",
                "diskSize": "20",
                "desiredSize": "2",
                "minSize": "1",
                "maxSize": "3",
                "sshKey": "bologna01",
            },
        },
        "windowsNodegroups": {
            "windows": {
                "name": "bologna01-windows",
                "instanceType": "m5.xlarge",
                "diskSize": "50",
                "desiredSize": "1",
                "minSize": "1",
                "maxSize": "2",
                "sshKey": "bologna01",
            },
        },
    },
}


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def deployment_spec() -> dict[str, typing.Any]:
    """A fresh copy of the sample configuration, safe to modify in a test."""
    return copy.deepcopy(DEPLOYMENT_SPEC)


@pytest.fixture
def deployment_config(deployment_spec: dict[str, typing.Any]) -> eks_hybrid.DeploymentConfig:
    return eks_hybrid.config.from_spec(deployment_spec)


# ============================================================================
# Pulumi Mock Fixtures
# ============================================================================


class RecordedResource(typing.NamedTuple):
    typ: str
    name: str
    inputs: dict[str, typing.Any]


class RecordingPulumiMocks(pulumi.runtime.Mocks):
    """Pulumi mocks that echo inputs back as outputs and remember every resource declared.

    Resource names are used as IDs. The invokes used by the components are answered with fixed values,
    and an EKS cluster reports an OIDC issuer and a cluster security group.
    """

    def __init__(self):
        self.resources: list[RecordedResource] = []

    def new_resource(self, args: pulumi.runtime.MockResourceArgs) -> tuple[str | None, dict[typing.Any, typing.Any]]:
        self.resources.append(RecordedResource(args.typ, args.name, dict(args.inputs)))

        outputs = dict(args.inputs) | {"arn": f"arn:aws:mock::{ACCOUNT_ID}:{args.name}"}

        if args.typ == "aws:eks/cluster:Cluster":
            outputs["identities"] = [{"oidcs": [{"issuer": OIDC_ISSUER_URL}]}]
            outputs["vpcConfig"] = dict(args.inputs.get("vpcConfig", {})) | {
                "clusterSecurityGroupId": CLUSTER_SECURITY_GROUP_ID
            }

        return f"{args.name}-id", outputs

    def call(
        self, args: pulumi.runtime.MockCallArgs
    ) -> dict[typing.Any, typing.Any] | tuple[dict[typing.Any, typing.Any], list[tuple[str, str]] | None]:
        if args.token == "aws:index/getCallerIdentity:getCallerIdentity":
            return {
                "accountId": ACCOUNT_ID,
                "arn": f"arn:aws:iam::{ACCOUNT_ID}:user/tester",
                "id": ACCOUNT_ID,
                "userId": "AIDATESTER",
            }

        if args.token == "aws:ssm/getParameter:getParameter":
            return {
                "arn": f"arn:aws:ssm:mp-north-4:{ACCOUNT_ID}:parameter{args.args['name']}",
                "id": args.args["name"],
                "name": args.args["name"],
                "type": "String",
                "value": WINDOWS_AMI_ID,
                "version": 1,
            }

        return {}

    def of_type(self, typ: str) -> list[RecordedResource]:
        return [r for r in self.resources if r.typ == typ]

    def named(self, name: str, typ: str | None = None) -> RecordedResource:
        matches = [r for r in self.resources if r.name == name and typ in (None, r.typ)]
        assert len(matches) == 1, f"expected exactly one resource named {name!r}, got {len(matches)}"
        return matches[0]


@pytest.fixture
def recording_mocks() -> RecordingPulumiMocks:
    """Install and return a fresh RecordingPulumiMocks.

    Usage:
        def test_my_resource(recording_mocks):
            @pulumi.runtime.test
            def build():
                MyComponent(...)

            build()
            assert recording_mocks.of_type("aws:ec2/vpc:Vpc")
    """
    mocks = RecordingPulumiMocks()
    pulumi.runtime.set_mocks(mocks, preview=False)
    return mocks
