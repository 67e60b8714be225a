import eks_hybrid.pulumi_resources.aws_hybrid_deployment

eks_hybrid.pulumi_resources.aws_hybrid_deployment.AWSHybridDeployment.autoload()
