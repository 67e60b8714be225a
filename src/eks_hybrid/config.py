from __future__ import annotations

import copy
import os
import pathlib
import typing

import deepmerge  # type: ignore
import pulumi
import yaml

import eks_hybrid

CONFIG_FILE_ENV = "EKS_HYBRID_CONFIG"

DEFAULT_SPEC: dict[str, typing.Any] = {
    "network": {
        "nat_gateway_per_az": False,
        "tags": {},
    },
    "cluster": {
        "tags": {},
        "linux_node_groups": {},
        "windows_node_groups": {},
    },
}


def _first_object(cfg: pulumi.Config, *keys: str) -> typing.Any:
    for key in keys:
        value = cfg.get_object(key)
        if value is not None:
            return value

    return None


def from_spec(spec: typing.Mapping[str, typing.Any]) -> eks_hybrid.DeploymentConfig:
    """
    Build a DeploymentConfig from a plain mapping with `region`, `network` and `cluster` sections.
    Defaults are merged underneath the given sections before parsing.
    """
    merged = copy.deepcopy(DEFAULT_SPEC)
    deepmerge.always_merger.merge(merged, {eks_hybrid.normalize_key(k): v for k, v in spec.items()})

    unknown = sorted(set(merged) - {"region", "network", "cluster"})
    if unknown:
        msg = f"Unknown top-level configuration sections: {unknown}"
        raise eks_hybrid.ConfigurationError(msg)

    if not merged.get("region"):
        msg = "Missing required configuration 'region'"
        raise eks_hybrid.ConfigurationError(msg)

    return eks_hybrid.DeploymentConfig(
        region=merged["region"],
        network=eks_hybrid.NetworkTopology.from_dict(merged["network"]),
        cluster=eks_hybrid.ClusterSpec.from_dict(merged["cluster"]),
    )


def from_stack_config(
    cfg: pulumi.Config | None = None,
    aws_cfg: pulumi.Config | None = None,
) -> eks_hybrid.DeploymentConfig:
    """
    Read the deployment from Pulumi stack configuration:

        eks-hybrid:region: us-east-1
        eks-hybrid:vpc: {name: ..., cidrBlock: ..., privateSubnets: [...], ...}
        eks-hybrid:eks: {name: ..., version: ..., linuxNodegroups: {...}, windowsNodegroups: {...}}

    `region` falls back to `aws:region`. The capitalized `Vpc` / `Eks` keys are accepted as well.
    """
    cfg = cfg or pulumi.Config()
    aws_cfg = aws_cfg or pulumi.Config("aws")

    network = _first_object(cfg, "vpc", "Vpc")
    if network is None:
        msg = "Missing required stack configuration object 'vpc'"
        raise eks_hybrid.ConfigurationError(msg)

    cluster = _first_object(cfg, "eks", "Eks")
    if cluster is None:
        msg = "Missing required stack configuration object 'eks'"
        raise eks_hybrid.ConfigurationError(msg)

    return from_spec(
        {
            "region": cfg.get("region") or aws_cfg.get("region"),
            "network": network,
            "cluster": cluster,
        }
    )


def from_yaml(path: pathlib.Path) -> eks_hybrid.DeploymentConfig:
    """Read the deployment from a YAML document whose `spec` mapping holds the sections."""
    if not path.exists():
        msg = f"Configuration file {str(path)!r} does not exist"
        raise eks_hybrid.ConfigurationError(msg)

    cfg_dict = yaml.safe_load(path.read_text()) or {}

    if not isinstance(cfg_dict.get("spec"), dict):
        msg = f"Configuration file {str(path)!r} has no 'spec' mapping"
        raise eks_hybrid.ConfigurationError(msg)

    return from_spec(cfg_dict["spec"])


def load() -> eks_hybrid.DeploymentConfig:
    if CONFIG_FILE_ENV in os.environ:
        path = pathlib.Path(os.environ[CONFIG_FILE_ENV])
        pulumi.log.info(f"Loading deployment configuration from {path}")
        return from_yaml(path)

    return from_stack_config()
