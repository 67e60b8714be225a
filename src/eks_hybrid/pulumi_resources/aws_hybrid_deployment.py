import typing

import pulumi

import eks_hybrid
import eks_hybrid.config
import eks_hybrid.pulumi_resources
import eks_hybrid.pulumi_resources.aws_cluster_autoscaler
import eks_hybrid.pulumi_resources.aws_eks_cluster
import eks_hybrid.pulumi_resources.aws_linux_node_groups
import eks_hybrid.pulumi_resources.aws_node_role
import eks_hybrid.pulumi_resources.aws_vpc
import eks_hybrid.pulumi_resources.aws_windows_node_groups


class AWSHybridDeployment(pulumi.ComponentResource):
    """
    A VPC and an EKS cluster running Linux and Windows node groups side by side.

    Declaration order matters where one resource must exist before another is declared:
      - the Linux node roles exist before the cluster, which grants them access at creation
      - the Windows launch templates are ordered after the first Linux node group
      - the cluster autoscaler role is trusted by the issuer of the created cluster
    """

    config: eks_hybrid.DeploymentConfig

    vpc: eks_hybrid.pulumi_resources.aws_vpc.AWSVpc
    linux_node_roles: dict[str, eks_hybrid.pulumi_resources.aws_node_role.AWSNodeRole]
    cluster: eks_hybrid.pulumi_resources.aws_eks_cluster.AWSEKSCluster
    linux_node_groups: eks_hybrid.pulumi_resources.aws_linux_node_groups.AWSLinuxNodeGroups
    windows_node_groups: eks_hybrid.pulumi_resources.aws_windows_node_groups.AWSWindowsNodeGroups | None
    cluster_autoscaler: eks_hybrid.pulumi_resources.aws_cluster_autoscaler.AWSClusterAutoscalerIAM
    outputs: dict[str, typing.Any]

    @classmethod
    def autoload(cls) -> "AWSHybridDeployment":
        return cls(config=eks_hybrid.config.load())

    def __init__(
        self,
        config: eks_hybrid.DeploymentConfig,
        *args,
        **kwargs,
    ):
        super().__init__(
            eks_hybrid.pulumi_resources.component_type(self),
            config.cluster.name,
            *args,
            **kwargs,
        )

        self.config = config
        spec = config.cluster
        tags = dict(spec.tags)

        self.vpc = eks_hybrid.pulumi_resources.aws_vpc.AWSVpc(
            config.network.name,
            config.network,
            config.region,
            opts=pulumi.ResourceOptions(parent=self),
        )

        self.linux_node_roles = {
            key: eks_hybrid.pulumi_resources.aws_node_role.AWSNodeRole(
                group.name,
                tags,
                description=f"Role used by the {group.name} node group of the {spec.name} EKS cluster",
                opts=pulumi.ResourceOptions(parent=self),
            )
            for key, group in spec.linux_node_groups.items()
        }

        self.cluster = eks_hybrid.pulumi_resources.aws_eks_cluster.AWSEKSCluster(
            spec=spec,
            vpc_id=self.vpc.vpc.id,
            subnet_ids=self.vpc.private_subnet_ids,
            instance_roles={role.name: role.role for role in self.linux_node_roles.values()},
            tags=tags,
            opts=pulumi.ResourceOptions(parent=self),
        )

        self.linux_node_groups = eks_hybrid.pulumi_resources.aws_linux_node_groups.AWSLinuxNodeGroups(
            cluster=self.cluster,
            roles=self.linux_node_roles,
            subnet_ids=self.vpc.private_subnet_ids,
            groups=spec.linux_node_groups,
            tags=tags,
            opts=pulumi.ResourceOptions(parent=self),
        )

        self.windows_node_groups = None
        if spec.windows_node_groups:
            self.windows_node_groups = eks_hybrid.pulumi_resources.aws_windows_node_groups.AWSWindowsNodeGroups(
                cluster=self.cluster,
                vpc_id=self.vpc.vpc.id,
                subnet_ids=self.vpc.private_subnet_ids,
                groups=spec.windows_node_groups,
                region=config.region,
                first_linux_node_group=self.linux_node_groups.first_node_group,
                tags=self.linux_node_groups.tags,
                opts=pulumi.ResourceOptions(parent=self),
            )

        self.cluster_autoscaler = eks_hybrid.pulumi_resources.aws_cluster_autoscaler.AWSClusterAutoscalerIAM(
            cluster=self.cluster,
            tags=self.linux_node_groups.tags,
            opts=pulumi.ResourceOptions(parent=self),
        )

        self.outputs = eks_hybrid.pulumi_resources.aws_vpc.vpc_exports(self.vpc)

        for role in self.linux_node_roles.values():
            self.outputs[f"{role.name}-role-arn"] = role.arn

        if self.windows_node_groups is not None:
            for role in self.windows_node_groups.roles.values():
                self.outputs[f"{role.name}-role-arn"] = role.arn

        self.outputs["autoScalerRoleArn"] = self.cluster_autoscaler.role.arn

        for key, value in self.outputs.items():
            pulumi.export(key, value)

        self.register_outputs(self.outputs)
