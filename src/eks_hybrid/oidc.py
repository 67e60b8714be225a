"""
OIDC-related functions for wiring a cluster's identity-token issuer into IAM.

The issuer URL is only known once the EKS control plane exists, so these are meant to be
called from inside `Output.apply` on the cluster's `identities`.
"""

from __future__ import annotations

import typing

import eks_hybrid


def issuer_url_from_identities(identities: typing.Sequence[typing.Any] | None) -> str:
    """
    :param identities: the `identities` attribute of an `aws.eks.Cluster`
    :return: the issuer URL of the cluster's OIDC identity
    """
    if not identities:
        msg = "EKS cluster has no identities; cannot determine the OIDC issuer"
        raise eks_hybrid.DependencyError(msg)

    oidcs = identities[0]["oidcs"]
    if not oidcs or not oidcs[0]["issuer"]:
        msg = "EKS cluster identity has no OIDC issuer"
        raise eks_hybrid.DependencyError(msg)

    return oidcs[0]["issuer"]


def issuer_host(url: str) -> str:
    """`https://oidc.eks.us-east-1.amazonaws.com/id/ABC` -> `oidc.eks.us-east-1.amazonaws.com/id/ABC`"""
    return url.split("//", 1)[1] if "//" in url else url


def oidc_provider_arn(account_id: str, url: str) -> str:
    return f"arn:aws:iam::{account_id}:oidc-provider/{issuer_host(url)}"

