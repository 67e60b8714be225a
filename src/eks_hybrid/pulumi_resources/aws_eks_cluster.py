import json

import pulumi
import pulumi_aws as aws

import eks_hybrid
import eks_hybrid.aws_iam
import eks_hybrid.oidc
import eks_hybrid.pulumi_resources


class AWSEKSCluster(pulumi.ComponentResource):
    """
    Create an EKS control plane with no node group of its own. Node groups are added afterwards by
    AWSLinuxNodeGroups / AWSWindowsNodeGroups.

    Example usage:
      ```
      roles = {key: AWSNodeRole(group.name, tags) for key, group in spec.linux_node_groups.items()}
      cluster = AWSEKSCluster(
          spec=spec,
          vpc_id=vpc.vpc.id,
          subnet_ids=vpc.private_subnet_ids,
          instance_roles={key: r.role for key, r in roles.items()},
          tags=tags,
      ).with_instance_role("win", windows_role, NodeOS.WINDOWS)
      ```

    :param spec: The cluster configuration
    :param vpc_id: The VPC the cluster lives in
    :param subnet_ids: The subnet ids used for the EKS control plane
    :param instance_roles: Node roles granted access to join the cluster as Linux nodes. They must exist
    before the cluster is declared, which is why they are constructor arguments
    :param tags: Tags to attach to child resources
    :param opts: Optional. Resource options
    """

    name: str
    spec: eks_hybrid.ClusterSpec

    eks_role: aws.iam.Role
    eks_role_policies: list[aws.iam.RolePolicyAttachment]
    eks: aws.eks.Cluster
    oidc_provider: aws.iam.OpenIdConnectProvider
    access_entries: dict[str, aws.eks.AccessEntry]
    cluster_subnet_ids: eks_hybrid.pulumi_resources.SubnetIds

    def __init__(
        self,
        spec: eks_hybrid.ClusterSpec,
        vpc_id: pulumi.Input[str],
        subnet_ids: eks_hybrid.pulumi_resources.SubnetIds,
        instance_roles: dict[str, aws.iam.Role],
        tags: dict[str, str],
        *args,
        **kwargs,
    ):
        self.name = spec.name
        self.spec = spec
        self.vpc_id = vpc_id
        self.tags = tags
        self.cluster_subnet_ids = subnet_ids
        self.access_entries = {}

        super().__init__(eks_hybrid.pulumi_resources.component_type(self), self.name, *args, **kwargs)

        self.eks_role = aws.iam.Role(
            f"{self.name}-eks-role",
            name=f"{self.name}-eks-role",
            assume_role_policy=json.dumps(
                eks_hybrid.aws_iam.build_service_assume_role_policy("eks.amazonaws.com", version="2008-10-17")
            ),
            tags=self.tags | {"Name": f"{self.name}-eks-role"},
            opts=pulumi.ResourceOptions(parent=self),
        )

        self.eks_role_policies = [
            aws.iam.RolePolicyAttachment(
                f"{self.name}-eks-{policy.split('/')[-1]}",
                role=self.eks_role.name,
                policy_arn=str(policy),
                opts=pulumi.ResourceOptions(parent=self.eks_role),
            )
            for policy in eks_hybrid.CLUSTER_ROLE_POLICIES
        ]

        pulumi.log.info(f"Creating cluster {self.name} with API_AND_CONFIG_MAP authentication mode")

        # public endpoint open to anywhere; restrict public_access_cidrs to harden
        self.eks = aws.eks.Cluster(
            self.name,
            name=self.name,
            role_arn=self.eks_role.arn,
            version=spec.version,
            vpc_config=aws.eks.ClusterVpcConfigArgs(
                subnet_ids=subnet_ids,
                endpoint_private_access=False,
                endpoint_public_access=True,
                public_access_cidrs=[eks_hybrid.ANYWHERE],
            ),
            access_config=aws.eks.ClusterAccessConfigArgs(
                authentication_mode="API_AND_CONFIG_MAP",
            ),
            tags=self.tags | {"Name": self.name},
            opts=pulumi.ResourceOptions(parent=self, depends_on=self.eks_role_policies),
        )

        self.with_oidc_provider()

        for key, role in instance_roles.items():
            self.with_instance_role(key, role, eks_hybrid.NodeOS.LINUX)

        self.register_outputs(
            {
                "cluster_name": self.eks.name,
                "cluster_arn": self.eks.arn,
                "vpc_id": self.vpc_id,
                "oidc_issuer_url": self.oidc_issuer_url,
            }
        )

    @property
    def cluster_name(self) -> pulumi.Output[str]:
        return self.eks.name

    @property
    def oidc_issuer_url(self) -> pulumi.Output[str]:
        """Resolves once the control plane exists; a cluster without an OIDC identity raises DependencyError."""
        return self.eks.identities.apply(eks_hybrid.oidc.issuer_url_from_identities)

    @property
    def cluster_security_group_id(self) -> pulumi.Output[str]:
        return self.eks.vpc_config.cluster_security_group_id

    def with_oidc_provider(self):
        """
        Register the cluster's token issuer as an IAM identity provider, so service accounts can assume
        roles through web identity federation.

        :return: self
        """
        self.oidc_provider = aws.iam.OpenIdConnectProvider(
            f"{self.name}-oidc-provider",
            url=self.oidc_issuer_url,
            client_id_lists=[eks_hybrid.OIDC_CLIENT_ID],
            tags=self.tags | {"Name": f"{self.name}-oidc-provider"},
            opts=pulumi.ResourceOptions(parent=self.eks),
        )

        return self

    def with_instance_role(self, name: str, role: aws.iam.Role, node_os: eks_hybrid.NodeOS):
        """
        Allow instances running with `role` to join the cluster as nodes of the given operating system.

        :param name: A key for the access entry, unique within the cluster
        :param role: The instance role
        :param node_os: Linux or Windows. Determines the access entry type (EC2_LINUX / EC2_WINDOWS)
        :return: self
        """
        if name in self.access_entries:
            msg = f"An access entry named {name!r} already exists on cluster {self.name}"
            pulumi.error(msg, self)
            raise ValueError(msg)

        self.access_entries[name] = aws.eks.AccessEntry(
            f"{self.name}-{name}-access-entry",
            cluster_name=self.eks.name,
            principal_arn=role.arn,
            type=node_os.access_entry_type,
            tags=self.tags,
            opts=pulumi.ResourceOptions(parent=self.eks),
        )

        return self
