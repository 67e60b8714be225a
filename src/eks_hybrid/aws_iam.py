from __future__ import annotations

import typing

import eks_hybrid

CLUSTER_AUTOSCALER_ACTIONS = [
    "autoscaling:DescribeAutoScalingGroups",
    "autoscaling:DescribeAutoScalingInstances",
    "autoscaling:DescribeLaunchConfigurations",
    "autoscaling:DescribeTags",
    "autoscaling:SetDesiredCapacity",
    "autoscaling:TerminateInstanceInAutoScalingGroup",
    "ec2:DescribeLaunchTemplateVersions",
    "ec2:DescribeInstanceTypes",
]


def build_service_assume_role_policy(service: str, version: str = "2012-10-17") -> dict[str, typing.Any]:
    """
    :param service: The service principal allowed to assume the role, eg: eks.amazonaws.com
    :return: a trust policy document
    """
    return {
        "Version": version,
        "Statement": [
            {
                "Sid": "",
                "Effect": "Allow",
                "Principal": {"Service": service},
                "Action": "sts:AssumeRole",
            }
        ],
    }


def service_account_subject(namespace: str, name: str) -> str:
    return f"system:serviceaccount:{namespace}:{name}"


def build_irsa_role_assume_role_policy(
    oidc_provider_arn: str,
    oidc_url_tail: str,
    service_accounts: list[str],
) -> dict[str, typing.Any]:
    """
    Trust policy for a role assumable through web identity federation by the given service account subjects.
    """
    subject: str | list[str] = service_accounts[0] if len(service_accounts) == 1 else service_accounts

    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Action": "sts:AssumeRoleWithWebIdentity",
                "Effect": "Allow",
                "Principal": {
                    "Federated": oidc_provider_arn,
                },
                "Condition": {
                    "StringEquals": {
                        f"{oidc_url_tail}:sub": subject,
                    },
                },
            }
        ],
    }


def build_cluster_autoscaler_assume_role_policy(oidc_provider_arn: str, oidc_url_tail: str) -> dict[str, typing.Any]:
    return build_irsa_role_assume_role_policy(
        oidc_provider_arn,
        oidc_url_tail,
        [
            service_account_subject(
                eks_hybrid.KUBE_SYSTEM_NAMESPACE,
                eks_hybrid.CLUSTER_AUTOSCALER_SERVICE_ACCOUNT,
            )
        ],
    )


def build_cluster_autoscaler_policy() -> dict[str, typing.Any]:
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Action": CLUSTER_AUTOSCALER_ACTIONS,
                "Effect": "Allow",
                "Resource": "*",
            }
        ],
    }
