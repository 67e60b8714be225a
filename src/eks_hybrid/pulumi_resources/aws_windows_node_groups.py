import typing

import pulumi
import pulumi_aws as aws

import eks_hybrid
import eks_hybrid.pulumi_resources
import eks_hybrid.pulumi_resources.aws_eks_cluster
import eks_hybrid.pulumi_resources.aws_linux_node_groups
import eks_hybrid.pulumi_resources.aws_node_role
import eks_hybrid.userdata


def windows_ami_id(version: str, opts: pulumi.InvokeOptions | None = None) -> str:
    """The latest EKS-optimized Windows Server 2019 Core image for the given Kubernetes version."""
    parameter = aws.ssm.get_parameter(name=eks_hybrid.WINDOWS_AMI_PARAMETER.format(version=version), opts=opts)
    if not parameter.value:
        msg = f"No EKS-optimized Windows image is published for Kubernetes {version}"
        raise eks_hybrid.DependencyError(msg)

    return parameter.value


def autoscaling_group_tags(cluster_name: str) -> list[aws.autoscaling.GroupTagArgs]:
    tags = {
        "Name": eks_hybrid.WINDOWS_ASG_NAME_TAG,
        f"{eks_hybrid.TagKeys.KUBERNETES_CLUSTER_PREFIX}{cluster_name}": "owned",
    } | eks_hybrid.autoscaler_discovery_tags(cluster_name)

    return [aws.autoscaling.GroupTagArgs(key=k, value=v, propagate_at_launch=True) for k, v in tags.items()]


class AWSWindowsNodeGroups(pulumi.ComponentResource):
    """
    Self-managed Windows nodes: EKS has no managed node groups for Windows, so each group is an auto
    scaling group over a launch template whose user data runs the EKS bootstrap script.

    Every launch template is declared after `first_linux_node_group`; the Windows nodes rely on system
    pods (CoreDNS, the VPC resource controller) that only run on Linux nodes.
    """

    cluster: eks_hybrid.pulumi_resources.aws_eks_cluster.AWSEKSCluster
    image_id: str
    tags: dict[str, str]

    security_groups: dict[str, aws.ec2.SecurityGroup]
    roles: dict[str, eks_hybrid.pulumi_resources.aws_node_role.AWSNodeRole]
    launch_templates: dict[str, aws.ec2.LaunchTemplate]
    autoscaling_groups: dict[str, aws.autoscaling.Group]

    def __init__(
        self,
        cluster: eks_hybrid.pulumi_resources.aws_eks_cluster.AWSEKSCluster,
        vpc_id: pulumi.Input[str],
        subnet_ids: eks_hybrid.pulumi_resources.SubnetIds,
        groups: typing.Mapping[str, eks_hybrid.NodeGroupSpec],
        region: str,
        first_linux_node_group: aws.eks.NodeGroup,
        tags: dict[str, str],
        *args,
        **kwargs,
    ):
        """
        :param cluster: The cluster the nodes join
        :param vpc_id: The VPC the node security groups are created in
        :param subnet_ids: The subnets to launch nodes within
        :param groups: The Windows node group specs
        :param region: The AWS region, passed to the bootstrap script
        :param first_linux_node_group: The node group launch templates are ordered after
        :param tags: Tags to attach to child resources, as threaded from the Linux node groups
        :param opts: Optional. Resource options
        """
        self.cluster = cluster
        self.region = region
        self.tags = tags

        self.security_groups = {}
        self.roles = {}
        self.launch_templates = {}
        self.autoscaling_groups = {}

        super().__init__(
            eks_hybrid.pulumi_resources.component_type(self), f"{cluster.name}-windows-node-groups", *args, **kwargs
        )

        self.image_id = windows_ami_id(cluster.spec.version, opts=pulumi.InvokeOptions(parent=self))
        pulumi.log.info(f"Using Windows image {self.image_id} for Kubernetes {cluster.spec.version}", self)

        user_data = cluster.eks.name.apply(lambda name: eks_hybrid.userdata.render_windows_bootstrap(name, region))

        for key, group in groups.items():
            eks_hybrid.pulumi_resources.aws_linux_node_groups.instance_type_check(group)

            sg = self._define_security_group(group, vpc_id)
            self.security_groups[key] = sg

            role = eks_hybrid.pulumi_resources.aws_node_role.AWSNodeRole(
                group.name,
                self.tags,
                description=f"Role used by the {group.name} Windows node group of the {cluster.name} EKS cluster",
                with_instance_profile=True,
                opts=pulumi.ResourceOptions(parent=self),
            )
            self.roles[key] = role
            cluster.with_instance_role(group.name, role.role, eks_hybrid.NodeOS.WINDOWS)

            self.launch_templates[key] = self._define_launch_template(
                group, sg, role, user_data, first_linux_node_group
            )

            self.autoscaling_groups[key] = aws.autoscaling.Group(
                group.name,
                name=group.name,
                desired_capacity=group.desired_size,
                min_size=group.min_size,
                max_size=group.max_size,
                launch_template=aws.autoscaling.GroupLaunchTemplateArgs(
                    id=self.launch_templates[key].id,
                    version=eks_hybrid.LATEST_LAUNCH_TEMPLATE_VERSION,
                ),
                vpc_zone_identifiers=subnet_ids,
                instance_refresh=aws.autoscaling.GroupInstanceRefreshArgs(strategy="Rolling"),
                tags=autoscaling_group_tags(cluster.name),
                opts=pulumi.ResourceOptions(parent=self),
            )

        self.register_outputs(
            {
                "image_id": self.image_id,
                "autoscaling_group_names": [asg.name for asg in self.autoscaling_groups.values()],
            }
        )

    def _define_security_group(
        self,
        group: eks_hybrid.NodeGroupSpec,
        vpc_id: pulumi.Input[str],
    ) -> aws.ec2.SecurityGroup:
        cluster_sg_id = self.cluster.cluster_security_group_id

        sg = aws.ec2.SecurityGroup(
            f"{group.name}-sg",
            name=f"{group.name}-sg",
            description="Windows nodegroup, Allow inbound from itself and eks cluster on port 10250",
            vpc_id=vpc_id,
            egress=[
                aws.ec2.SecurityGroupEgressArgs(
                    protocol="-1",
                    from_port=0,
                    to_port=0,
                    cidr_blocks=[eks_hybrid.ANYWHERE],
                )
            ],
            ingress=[
                aws.ec2.SecurityGroupIngressArgs(
                    protocol="-1",
                    from_port=0,
                    to_port=0,
                    self=True,
                ),
                aws.ec2.SecurityGroupIngressArgs(
                    protocol="tcp",
                    from_port=eks_hybrid.KUBELET_PORT,
                    to_port=eks_hybrid.KUBELET_PORT,
                    security_groups=[cluster_sg_id],
                ),
            ],
            tags=self.tags | {"Name": f"{group.name}-sg"},
            opts=pulumi.ResourceOptions(parent=self),
        )

        # the cluster security group must accept traffic back from the Windows nodes
        aws.ec2.SecurityGroupRule(
            f"{group.name}-sg-inbound-in-cluster-sg",
            type="ingress",
            protocol="-1",
            from_port=0,
            to_port=0,
            security_group_id=cluster_sg_id,
            source_security_group_id=sg.id,
            opts=pulumi.ResourceOptions(parent=sg, depends_on=[self.cluster.eks]),
        )

        return sg

    def _define_launch_template(
        self,
        group: eks_hybrid.NodeGroupSpec,
        sg: aws.ec2.SecurityGroup,
        role: eks_hybrid.pulumi_resources.aws_node_role.AWSNodeRole,
        user_data: pulumi.Output[str],
        first_linux_node_group: aws.eks.NodeGroup,
    ) -> aws.ec2.LaunchTemplate:
        return aws.ec2.LaunchTemplate(
            f"{group.name}-launch-template",
            name=f"{group.name}-launch-template",
            image_id=self.image_id,
            instance_type=group.instance_type,
            key_name=group.ssh_key,
            iam_instance_profile=aws.ec2.LaunchTemplateIamInstanceProfileArgs(
                name=role.instance_profile.name,  # type: ignore
            ),
            vpc_security_group_ids=[sg.id],
            user_data=user_data,
            block_device_mappings=[
                aws.ec2.LaunchTemplateBlockDeviceMappingArgs(
                    device_name="/dev/sda1",
                    ebs=aws.ec2.LaunchTemplateBlockDeviceMappingEbsArgs(
                        volume_size=group.disk_size,
                        volume_type="gp2",
                        delete_on_termination="true",
                    ),
                )
            ],
            metadata_options=aws.ec2.LaunchTemplateMetadataOptionsArgs(
                http_endpoint="enabled",
                http_tokens="optional",
                http_put_response_hop_limit=2,
                instance_metadata_tags="disabled",
            ),
            tag_specifications=[
                aws.ec2.LaunchTemplateTagSpecificationArgs(
                    resource_type="instance",
                    tags=self.tags,
                )
            ],
            tags=self.tags | {"Name": f"{group.name}-launch-template"},
            opts=pulumi.ResourceOptions(parent=self, depends_on=[first_linux_node_group]),
        )
