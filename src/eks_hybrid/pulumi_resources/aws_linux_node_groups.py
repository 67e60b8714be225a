import re
import typing

import pulumi
import pulumi_aws as aws

import eks_hybrid
import eks_hybrid.pulumi_resources
import eks_hybrid.pulumi_resources.aws_eks_cluster
import eks_hybrid.pulumi_resources.aws_node_role

SMALL_INSTANCE_TYPE_REGEX = re.compile(".*(nano|micro|small|medium)$")


def instance_type_check(group: eks_hybrid.NodeGroupSpec) -> None:
    if SMALL_INSTANCE_TYPE_REGEX.match(group.instance_type):
        pulumi.log.warn(
            f"Recommend using at least a large instance for nodes, but node group {group.name} "
            f"got instance type: {group.instance_type}"
        )


class AWSLinuxNodeGroups(pulumi.ComponentResource):
    """
    Managed EKS node groups for the Linux node group specs, one per entry, all placed in the given subnets.

    The autoscaler discovery tags are merged into the tag set before each node group is declared. The
    resulting tag set is exposed as `tags` so that everything declared afterwards carries the same tags.

    :param cluster: The cluster the node groups join
    :param roles: The node role of each group, keyed like `groups`. Created before the cluster so that the
    cluster can grant them access; each node group is declared after the access entry for its role, which
    the cluster keys by node group name
    :param subnet_ids: The subnets to launch nodes within
    :param groups: The node group specs
    :param tags: Tags to attach to child resources
    """

    cluster: eks_hybrid.pulumi_resources.aws_eks_cluster.AWSEKSCluster
    tags: dict[str, str]
    node_groups: dict[str, aws.eks.NodeGroup]

    def __init__(
        self,
        cluster: eks_hybrid.pulumi_resources.aws_eks_cluster.AWSEKSCluster,
        roles: dict[str, eks_hybrid.pulumi_resources.aws_node_role.AWSNodeRole],
        subnet_ids: eks_hybrid.pulumi_resources.SubnetIds,
        groups: typing.Mapping[str, eks_hybrid.NodeGroupSpec],
        tags: dict[str, str],
        *args,
        **kwargs,
    ):
        self.cluster = cluster
        self.tags = dict(tags)
        self.node_groups = {}

        super().__init__(
            eks_hybrid.pulumi_resources.component_type(self), f"{cluster.name}-linux-node-groups", *args, **kwargs
        )

        for key, group in groups.items():
            if key not in roles:
                msg = f"No node role was created for Linux node group {group.name!r}"
                pulumi.error(msg, self)
                raise ValueError(msg)

            instance_type_check(group)

            access_entry = cluster.access_entries.get(group.name)
            if access_entry is None:
                msg = f"Node role of Linux node group {group.name!r} has no access entry on cluster {cluster.name}"
                pulumi.error(msg, self)
                raise ValueError(msg)

            self.tags = self.tags | eks_hybrid.autoscaler_discovery_tags(cluster.name)

            self.node_groups[key] = aws.eks.NodeGroup(
                group.name,
                cluster_name=cluster.eks.name,
                node_group_name=group.name,
                node_role_arn=roles[key].arn,
                subnet_ids=subnet_ids,  # type: ignore
                instance_types=[group.instance_type],
                ami_type=group.ami_type,
                disk_size=group.disk_size,
                scaling_config=aws.eks.NodeGroupScalingConfigArgs(
                    desired_size=group.desired_size,
                    min_size=group.min_size,
                    max_size=group.max_size,
                ),
                remote_access=aws.eks.NodeGroupRemoteAccessArgs(
                    ec2_ssh_key=group.ssh_key,
                ),
                tags=self.tags,
                opts=pulumi.ResourceOptions(parent=self, depends_on=[*roles[key].attachments, access_entry]),
            )

        self.register_outputs({"node_group_names": [ng.node_group_name for ng in self.node_groups.values()]})

    @property
    def first_node_group(self) -> aws.eks.NodeGroup:
        """The node group Windows launch templates are ordered after."""
        if not self.node_groups:
            msg = f"Cluster {self.cluster.name} has no Linux node group"
            raise eks_hybrid.ConfigurationError(msg)

        return next(iter(self.node_groups.values()))
