import json

import pulumi
import pulumi_aws as aws

import eks_hybrid
import eks_hybrid.aws_iam
import eks_hybrid.pulumi_resources


class AWSNodeRole(pulumi.ComponentResource):
    """
    The IAM role assumed by the EC2 instances of one node group, with the managed policies a worker
    node needs to join the cluster, run the VPC CNI, pull from ECR and be reachable through SSM.

    :param name: The node group name. The role is named `<name>-role`
    :param tags: Tags to attach to child resources
    :param with_instance_profile: Optional. Also create `<name>-instance-profile`, needed when instances
    are launched from a launch template rather than by a managed node group
    """

    name: str
    role: aws.iam.Role
    policy_attachments: dict[eks_hybrid.ManagedPolicies, aws.iam.RolePolicyAttachment]
    instance_profile: aws.iam.InstanceProfile | None

    def __init__(
        self,
        name: str,
        tags: dict[str, str],
        *args,
        description: str = "",
        with_instance_profile: bool = False,
        **kwargs,
    ):
        self.name = name
        self.tags = tags

        super().__init__(eks_hybrid.pulumi_resources.component_type(self), self.name, *args, **kwargs)

        self.role = aws.iam.Role(
            f"{self.name}-role",
            name=f"{self.name}-role",
            description=description or f"Role used by the {self.name} node group",
            assume_role_policy=json.dumps(eks_hybrid.aws_iam.build_service_assume_role_policy("ec2.amazonaws.com")),
            tags=self.tags | {"Name": f"{self.name}-role"},
            opts=pulumi.ResourceOptions(parent=self),
        )

        self.policy_attachments = {}
        for policy in eks_hybrid.NODE_ROLE_POLICIES:
            policy_name = policy.split("/")[-1]
            self.policy_attachments[policy] = aws.iam.RolePolicyAttachment(
                f"{self.name}-{policy_name}",
                role=self.role.name,
                policy_arn=str(policy),
                opts=pulumi.ResourceOptions(parent=self.role),
            )

        self.instance_profile = None
        if with_instance_profile:
            self.instance_profile = aws.iam.InstanceProfile(
                f"{self.name}-instance-profile",
                name=f"{self.name}-instance-profile",
                role=self.role.name,
                tags=self.tags | {"Name": f"{self.name}-instance-profile"},
                opts=pulumi.ResourceOptions(parent=self.role),
            )

        self.register_outputs({"role_arn": self.role.arn})

    @property
    def arn(self) -> pulumi.Output[str]:
        return self.role.arn

    @property
    def attachments(self) -> list[aws.iam.RolePolicyAttachment]:
        return list(self.policy_attachments.values())
