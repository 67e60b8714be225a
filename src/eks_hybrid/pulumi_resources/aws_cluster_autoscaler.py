import json

import pulumi
import pulumi_aws as aws

import eks_hybrid
import eks_hybrid.aws_iam
import eks_hybrid.oidc
import eks_hybrid.pulumi_resources
import eks_hybrid.pulumi_resources.aws_eks_cluster


class AWSClusterAutoscalerIAM(pulumi.ComponentResource):
    """
    IAM wiring for the Kubernetes cluster autoscaler: a policy allowing it to inspect and resize the node
    groups' auto scaling groups, and a role the `kube-system/cluster-autoscaler` service account assumes
    through the cluster's OIDC issuer.

    The issuer is only known once the control plane exists, so the trust policy is built inside
    `Output.apply` on the issuer URL.
    """

    cluster: eks_hybrid.pulumi_resources.aws_eks_cluster.AWSEKSCluster
    account_id: str

    identity_provider_config: aws.eks.IdentityProviderConfig
    policy: aws.iam.Policy
    role: aws.iam.Role
    policy_attachment: aws.iam.RolePolicyAttachment

    def __init__(
        self,
        cluster: eks_hybrid.pulumi_resources.aws_eks_cluster.AWSEKSCluster,
        tags: dict[str, str],
        *args,
        **kwargs,
    ):
        self.cluster = cluster
        self.tags = tags

        super().__init__(
            eks_hybrid.pulumi_resources.component_type(self), f"{cluster.name}-cluster-autoscaler", *args, **kwargs
        )

        self.account_id = aws.get_caller_identity(opts=pulumi.InvokeOptions(parent=self)).account_id

        self.identity_provider_config = aws.eks.IdentityProviderConfig(
            eks_hybrid.IDENTITY_PROVIDER_CONFIG_NAME,
            cluster_name=cluster.eks.name,
            oidc=aws.eks.IdentityProviderConfigOidcArgs(
                client_id=cluster.oidc_provider.client_id_lists.apply(lambda client_ids: client_ids[0]),
                identity_provider_config_name=eks_hybrid.IDENTITY_PROVIDER_CONFIG_NAME,
                issuer_url=cluster.oidc_issuer_url,
            ),
            tags=self.tags,
            opts=pulumi.ResourceOptions(parent=self),
        )

        self.policy = aws.iam.Policy(
            eks_hybrid.CLUSTER_AUTOSCALER_POLICY_NAME,
            name=eks_hybrid.CLUSTER_AUTOSCALER_POLICY_NAME,
            description="Policy for the Kubernetes AutoScaler",
            path="/",
            policy=json.dumps(eks_hybrid.aws_iam.build_cluster_autoscaler_policy()),
            tags=self.tags,
            opts=pulumi.ResourceOptions(parent=self),
        )

        self.role = aws.iam.Role(
            eks_hybrid.CLUSTER_AUTOSCALER_ROLE_NAME,
            name=eks_hybrid.CLUSTER_AUTOSCALER_ROLE_NAME,
            assume_role_policy=cluster.oidc_issuer_url.apply(self._assume_role_policy),
            tags=self.tags,
            opts=pulumi.ResourceOptions(parent=self, depends_on=[cluster.oidc_provider]),
        )

        self.policy_attachment = aws.iam.RolePolicyAttachment(
            f"{eks_hybrid.CLUSTER_AUTOSCALER_ROLE_NAME}-policy",
            role=self.role.name,
            policy_arn=self.policy.arn,
            opts=pulumi.ResourceOptions(parent=self.role),
        )

        self.register_outputs({"role_arn": self.role.arn})

    def _assume_role_policy(self, issuer_url: str) -> str:
        return json.dumps(
            eks_hybrid.aws_iam.build_cluster_autoscaler_assume_role_policy(
                eks_hybrid.oidc.oidc_provider_arn(self.account_id, issuer_url),
                eks_hybrid.oidc.issuer_host(issuer_url),
            )
        )
