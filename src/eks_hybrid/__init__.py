from __future__ import annotations

import dataclasses
import enum
import ipaddress
import re
import typing

ANYWHERE = "0.0.0.0/0"
KUBELET_PORT = 10250
KUBE_SYSTEM_NAMESPACE = "kube-system"
LATEST_LAUNCH_TEMPLATE_VERSION = "$Latest"
OIDC_CLIENT_ID = "sts.amazonaws.com"
WINDOWS_ASG_NAME_TAG = "windows-autoscaling-nodegroup"

CLUSTER_AUTOSCALER_SERVICE_ACCOUNT = "cluster-autoscaler"
CLUSTER_AUTOSCALER_POLICY_NAME = "AmazonEKSClusterAutoscalerPolicy"
CLUSTER_AUTOSCALER_ROLE_NAME = "AmazonEKSClusterAutoscalerRole"
IDENTITY_PROVIDER_CONFIG_NAME = "oidcProviderConfig"

WINDOWS_AMI_PARAMETER = (
    "/aws/service/ami-windows-latest/Windows_Server-2019-English-Core-EKS_Optimized-{version}/image_id"
)

CAMEL_CASE_BOUNDARY_REGEX = re.compile("(?<=[a-z0-9])([A-Z])")


class ConfigurationError(ValueError):
    """A required configuration field is missing or malformed."""


class DependencyError(RuntimeError):
    """A value produced by another resource never resolved to something usable."""


class ManagedPolicies(enum.StrEnum):
    EKS_SERVICE = "arn:aws:iam::aws:policy/AmazonEKSServicePolicy"
    EKS_CLUSTER = "arn:aws:iam::aws:policy/AmazonEKSClusterPolicy"
    EKS_VPC_RESOURCE_CONTROLLER = "arn:aws:iam::aws:policy/AmazonEKSVPCResourceController"
    EKS_WORKER_NODE = "arn:aws:iam::aws:policy/AmazonEKSWorkerNodePolicy"
    EKS_CNI = "arn:aws:iam::aws:policy/AmazonEKS_CNI_Policy"
    EC2_CONTAINER_REGISTRY_READ_ONLY = "arn:aws:iam::aws:policy/AmazonEC2ContainerRegistryReadOnly"
    SSM_MANAGED_INSTANCE_CORE = "arn:aws:iam::aws:policy/AmazonSSMManagedInstanceCore"


CLUSTER_ROLE_POLICIES = (
    ManagedPolicies.EKS_SERVICE,
    ManagedPolicies.EKS_CLUSTER,
    ManagedPolicies.EKS_VPC_RESOURCE_CONTROLLER,
)

NODE_ROLE_POLICIES = (
    ManagedPolicies.EKS_WORKER_NODE,
    ManagedPolicies.EKS_CNI,
    ManagedPolicies.EC2_CONTAINER_REGISTRY_READ_ONLY,
    ManagedPolicies.SSM_MANAGED_INSTANCE_CORE,
)


class NodeOS(enum.StrEnum):
    LINUX = "linux"
    WINDOWS = "windows"

    @property
    def access_entry_type(self) -> str:
        return f"EC2_{self.name}"


class TagKeys(enum.StrEnum):
    CLUSTER_AUTOSCALER_ENABLED = "k8s.io/cluster-autoscaler/enabled"
    CLUSTER_AUTOSCALER_PREFIX = "k8s.io/cluster-autoscaler/"
    KUBERNETES_CLUSTER_PREFIX = "kubernetes.io/cluster/"


class Privacy(enum.StrEnum):
    PRIVATE = "private"
    PUBLIC = "public"


def autoscaler_discovery_tags(cluster_name: str) -> dict[str, str]:
    """Tags the cluster autoscaler uses to discover the node groups it owns."""
    return {
        f"{TagKeys.CLUSTER_AUTOSCALER_PREFIX}{cluster_name}": "owned",
        str(TagKeys.CLUSTER_AUTOSCALER_ENABLED): "true",
    }


def normalize_key(key: str) -> str:
    """
    Normalize a configuration key to snake_case, so that stack configuration written as
    `privateSubnetsAZ`, `private-subnets-az` or `private_subnets_az` all land on the same field.
    """
    return CAMEL_CASE_BOUNDARY_REGEX.sub(r"_\1", key).replace("-", "_").lower()


def normalize_keys(
    spec: typing.Mapping[str, typing.Any],
    owner: str,
    fields: typing.Iterable[str],
    aliases: typing.Mapping[str, str] | None = None,
) -> dict[str, typing.Any]:
    aliases = aliases or {}
    allowed = set(fields)
    normalized: dict[str, typing.Any] = {}

    for key, value in spec.items():
        field = normalize_key(str(key))
        field = aliases.get(field, field)

        if field not in allowed:
            msg = f"Unknown key {key!r} in {owner} configuration"
            raise ConfigurationError(msg)

        normalized[field] = value

    return normalized


def parse_int(value: typing.Any, field: str, owner: str) -> int:
    if isinstance(value, bool):
        msg = f"{owner}: {field} must be an integer, got {value!r}"
        raise ConfigurationError(msg)

    try:
        return int(value)
    except (TypeError, ValueError) as e:
        msg = f"{owner}: {field} must be an integer, got {value!r}"
        raise ConfigurationError(msg) from e


def parse_bool(value: typing.Any, field: str, owner: str) -> bool:
    if isinstance(value, bool):
        return value

    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"

    msg = f"{owner}: {field} must be a boolean, got {value!r}"
    raise ConfigurationError(msg)


def _require(spec: typing.Mapping[str, typing.Any], field: str, owner: str) -> typing.Any:
    if spec.get(field) in (None, ""):
        msg = f"{owner}: missing required field {field!r}"
        raise ConfigurationError(msg)

    return spec[field]


@dataclasses.dataclass(frozen=True)
class SubnetPlacement:
    cidr_block: str
    availability_zone: str


@dataclasses.dataclass(frozen=True)
class NetworkTopology:
    name: str
    cidr_block: str
    private_subnets: tuple[str, ...]
    private_subnets_az: tuple[str, ...]
    public_subnets: tuple[str, ...]
    public_subnets_az: tuple[str, ...]
    nat_gateway_per_az: bool = False
    tags: typing.Mapping[str, str] = dataclasses.field(default_factory=dict)

    def __post_init__(self):
        owner = f"network {self.name!r}"

        for privacy in Privacy:
            cidrs = getattr(self, f"{privacy}_subnets")
            azs = getattr(self, f"{privacy}_subnets_az")
            if len(cidrs) != len(azs):
                msg = (
                    f"{owner}: {len(cidrs)} {privacy} subnet CIDRs but {len(azs)} {privacy} availability zones; "
                    "every subnet needs exactly one availability zone"
                )
                raise ConfigurationError(msg)

        # the single NAT gateway is placed in the first public subnet
        if len(self.public_subnets) == 0:
            msg = f"{owner}: at least one public subnet is required to host a NAT gateway"
            raise ConfigurationError(msg)

        vpc_network = _parse_network(self.cidr_block, "cidr_block", owner)
        for privacy in Privacy:
            for cidr in getattr(self, f"{privacy}_subnets"):
                subnet = _parse_network(cidr, f"{privacy} subnet", owner)
                if not subnet.subnet_of(vpc_network):
                    msg = f"{owner}: {privacy} subnet {cidr} is not within the VPC CIDR {self.cidr_block}"
                    raise ConfigurationError(msg)

    @classmethod
    def from_dict(cls, spec: typing.Mapping[str, typing.Any]) -> NetworkTopology:
        fields = [f.name for f in dataclasses.fields(cls)]
        spec = normalize_keys(spec, "network", fields)
        owner = f"network {spec.get('name', '')!r}"

        return cls(
            name=_require(spec, "name", owner),
            cidr_block=_require(spec, "cidr_block", owner),
            private_subnets=tuple(spec.get("private_subnets") or ()),
            private_subnets_az=tuple(spec.get("private_subnets_az") or ()),
            public_subnets=tuple(spec.get("public_subnets") or ()),
            public_subnets_az=tuple(spec.get("public_subnets_az") or ()),
            nat_gateway_per_az=parse_bool(spec.get("nat_gateway_per_az", False), "nat_gateway_per_az", owner),
            tags=dict(spec.get("tags") or {}),
        )

    def placements(self, privacy: Privacy) -> list[SubnetPlacement]:
        return [
            SubnetPlacement(cidr_block=cidr, availability_zone=az)
            for cidr, az in zip(
                getattr(self, f"{privacy}_subnets"),
                getattr(self, f"{privacy}_subnets_az"),
                strict=True,
            )
        ]

    @property
    def nat_gateway_count(self) -> int:
        return len(self.public_subnets_az) if self.nat_gateway_per_az else 1


def _parse_network(cidr: str, field: str, owner: str) -> ipaddress.IPv4Network:
    try:
        network = ipaddress.ip_network(cidr)
    except ValueError as e:
        msg = f"{owner}: {field} {cidr!r} is not a valid CIDR block"
        raise ConfigurationError(msg) from e

    if not isinstance(network, ipaddress.IPv4Network):
        msg = f"{owner}: {field} {cidr!r} must be an IPv4 CIDR block"
        raise ConfigurationError(msg)

    return network


@dataclasses.dataclass(frozen=True)
class NodeGroupSpec:
    name: str
    instance_type: str
    disk_size: int
    desired_size: int
    min_size: int
    max_size: int
    ssh_key: str
    ami_type: str = "AL2_x86_64"

    def __post_init__(self):
        if not self.min_size <= self.desired_size <= self.max_size:
            msg = (
                f"node group {self.name!r}: scaling bounds must satisfy min <= desired <= max, "
                f"got min={self.min_size} desired={self.desired_size} max={self.max_size}"
            )
            raise ConfigurationError(msg)

    @classmethod
    def from_dict(cls, key: str, spec: typing.Mapping[str, typing.Any]) -> NodeGroupSpec:
        fields = [f.name for f in dataclasses.fields(cls)]
        spec = normalize_keys(spec, f"node group {key!r}", fields)
        name = spec.get("name") or key
        owner = f"node group {name!r}"

        kwargs: dict[str, typing.Any] = {
            "name": name,
            "instance_type": _require(spec, "instance_type", owner),
            "ssh_key": _require(spec, "ssh_key", owner),
        }
        for field in ("disk_size", "desired_size", "min_size", "max_size"):
            kwargs[field] = parse_int(_require(spec, field, owner), field, owner)

        if spec.get("ami_type"):
            kwargs["ami_type"] = spec["ami_type"]

        return cls(**kwargs)


@dataclasses.dataclass(frozen=True)
class ClusterSpec:
    name: str
    version: str
    tags: typing.Mapping[str, str] = dataclasses.field(default_factory=dict)
    linux_node_groups: typing.Mapping[str, NodeGroupSpec] = dataclasses.field(default_factory=dict)
    windows_node_groups: typing.Mapping[str, NodeGroupSpec] = dataclasses.field(default_factory=dict)

    def __post_init__(self):
        owner = f"cluster {self.name!r}"

        if self.windows_node_groups and not self.linux_node_groups:
            msg = (
                f"{owner}: Windows node groups require at least one Linux node group, "
                "which hosts the cluster system pods the Windows nodes join through"
            )
            raise ConfigurationError(msg)

        names = [group.name for group in self.node_groups]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            msg = f"{owner}: node group names must be unique, duplicated: {duplicates}"
            raise ConfigurationError(msg)

    @classmethod
    def from_dict(cls, spec: typing.Mapping[str, typing.Any]) -> ClusterSpec:
        fields = [f.name for f in dataclasses.fields(cls)]
        spec = normalize_keys(
            spec,
            "cluster",
            fields,
            aliases={"linux_nodegroups": "linux_node_groups", "windows_nodegroups": "windows_node_groups"},
        )
        owner = f"cluster {spec.get('name', '')!r}"

        return cls(
            name=_require(spec, "name", owner),
            version=str(_require(spec, "version", owner)),
            tags=dict(spec.get("tags") or {}),
            linux_node_groups={
                key: NodeGroupSpec.from_dict(key, group) for key, group in (spec.get("linux_node_groups") or {}).items()
            },
            windows_node_groups={
                key: NodeGroupSpec.from_dict(key, group)
                for key, group in (spec.get("windows_node_groups") or {}).items()
            },
        )

    @property
    def node_groups(self) -> list[NodeGroupSpec]:
        return [*self.linux_node_groups.values(), *self.windows_node_groups.values()]


@dataclasses.dataclass(frozen=True)
class DeploymentConfig:
    region: str
    network: NetworkTopology
    cluster: ClusterSpec
