import collections
import typing
import warnings

import pulumi
import pulumi_aws as aws

import eks_hybrid
import eks_hybrid.pulumi_resources


class AWSVpc(pulumi.ComponentResource):
    """
    A VPC with private subnets egressing through NAT gateways and public subnets routed through an
    internet gateway, plus an S3 gateway endpoint on every route table.

    Private subnet `i` is associated with private route table `i`. When there are fewer route tables
    than private subnets (a single NAT gateway, or fewer public AZs than private subnets) the remaining
    private subnets fall back to the first route table.
    """

    name: str
    topology: eks_hybrid.NetworkTopology
    region: str

    vpc: aws.ec2.Vpc
    internet_gateway: aws.ec2.InternetGateway
    subnets: dict[str, list[aws.ec2.Subnet]]
    eips: list[aws.ec2.Eip]
    nat_gateways: list[aws.ec2.NatGateway]
    private_route_tables: list[aws.ec2.RouteTable]
    private_route_table_associations: dict[int, int]
    public_route_table: aws.ec2.RouteTable
    s3_endpoint: aws.ec2.VpcEndpoint

    def __init__(
        self,
        name: str,
        topology: eks_hybrid.NetworkTopology,
        region: str,
        tags: dict[str, str] | None = None,
        *args,
        **kwargs,
    ):
        """
        :param name: the name of the VPC, used as the prefix of every child resource and Name tag
        :param topology: the validated network layout
        :param region: the AWS region, used to address the S3 gateway endpoint service
        :param tags: the tags to apply to all the resources, merged over the topology tags
        :param opts: the options to use for this resource
        """
        self.name = name
        self.topology = topology
        self.region = region
        self.tags: dict[str, str] = dict(topology.tags) | (tags or {})

        super().__init__(eks_hybrid.pulumi_resources.component_type(self), self.name, *args, **kwargs)

        if len(set(topology.private_subnets_az)) == 1:
            warnings.warn(
                "Using a single availability zone for private subnets is not recommended for production workloads",
                stacklevel=2,
            )

        self.vpc = aws.ec2.Vpc(
            f"{self.name}-vpc",
            cidr_block=topology.cidr_block,
            enable_dns_hostnames=True,
            enable_dns_support=True,
            tags=self.tags | {"Name": f"{self.name}-vpc"},
            opts=pulumi.ResourceOptions(parent=self),
        )

        self.internet_gateway = aws.ec2.InternetGateway(
            f"{self.name}-igw",
            vpc_id=self.vpc.id,
            tags=self.tags | {"Name": f"{self.name}-igw"},
            opts=pulumi.ResourceOptions(parent=self.vpc),
        )

        self.subnets = collections.defaultdict(list)
        for privacy in eks_hybrid.Privacy:
            for i, placement in enumerate(topology.placements(privacy)):
                subnet_name = f"{self.name}-{privacy}-subnet-0{i}"
                self.subnets[privacy].append(
                    aws.ec2.Subnet(
                        subnet_name,
                        vpc_id=self.vpc.id,
                        cidr_block=placement.cidr_block,
                        availability_zone=placement.availability_zone,
                        map_public_ip_on_launch=False,
                        tags=self.tags | {"Name": subnet_name},
                        opts=pulumi.ResourceOptions(parent=self.vpc),
                    )
                )

        self._define_nat_gateways()
        self._define_private_routing()
        self._define_public_routing()
        self._define_s3_endpoint()

        self.register_outputs(
            {
                "vpc_id": self.vpc.id,
                "internet_gateway_id": self.internet_gateway.id,
                "private_subnet_ids": self.private_subnet_ids,
                "public_subnet_ids": self.public_subnet_ids,
                "nat_gateway_ids": [ng.id for ng in self.nat_gateways],
                "private_route_table_associations": {
                    str(subnet): rt for subnet, rt in self.private_route_table_associations.items()
                },
            }
        )

    @property
    def private_subnet_ids(self) -> list[pulumi.Output[str]]:
        return [subnet.id for subnet in self.subnets[eks_hybrid.Privacy.PRIVATE]]

    @property
    def public_subnet_ids(self) -> list[pulumi.Output[str]]:
        return [subnet.id for subnet in self.subnets[eks_hybrid.Privacy.PUBLIC]]

    def _define_nat_gateways(self) -> None:
        """One NAT gateway in the first public subnet, or one per public subnet AZ."""
        self.eips = []
        self.nat_gateways = []

        per_az = self.topology.nat_gateway_per_az
        for i in range(self.topology.nat_gateway_count):
            suffix = f"-{i}" if per_az else ""

            eip = aws.ec2.Eip(
                f"{self.name}-eip{suffix}",
                domain="vpc",
                tags=self.tags | {"Name": f"{self.name}-eip{suffix}"},
                opts=pulumi.ResourceOptions(parent=self.vpc),
            )

            ng = aws.ec2.NatGateway(
                f"{self.name}-nat-gateway{suffix}",
                subnet_id=self.subnets[eks_hybrid.Privacy.PUBLIC][i].id,
                allocation_id=eip.id,
                tags=self.tags | {"Name": f"{self.name}-nat-gateway{suffix}"},
                opts=pulumi.ResourceOptions(
                    parent=self.vpc,
                    depends_on=[self.internet_gateway],
                ),
            )

            self.eips.append(eip)
            self.nat_gateways.append(ng)

    def _define_private_routing(self) -> None:
        self.private_route_tables = []
        for i, ng in enumerate(self.nat_gateways):
            rt_name = f"{self.name}-private-rt-0{i}"

            private_rt = aws.ec2.RouteTable(
                rt_name,
                vpc_id=self.vpc.id,
                tags=self.tags | {"Name": rt_name},
                opts=pulumi.ResourceOptions(parent=self.vpc),
            )

            aws.ec2.Route(
                rt_name,
                route_table_id=private_rt.id,
                nat_gateway_id=ng.id,
                destination_cidr_block=eks_hybrid.ANYWHERE,
                opts=pulumi.ResourceOptions(parent=private_rt),
            )

            self.private_route_tables.append(private_rt)

        self.private_route_table_associations = private_route_table_indexes(
            len(self.subnets[eks_hybrid.Privacy.PRIVATE]),
            len(self.private_route_tables),
        )

        fallbacks = [i for i, rt in self.private_route_table_associations.items() if rt != i]
        if fallbacks and self.topology.nat_gateway_per_az:
            warnings.warn(
                f"{self.name}: {len(fallbacks)} private subnet(s) have no NAT gateway of their own and are routed "
                "through the first private route table",
                stacklevel=2,
            )

        for i, subnet in enumerate(self.subnets[eks_hybrid.Privacy.PRIVATE]):
            route_table = self.private_route_tables[self.private_route_table_associations[i]]
            aws.ec2.RouteTableAssociation(
                f"{self.name}-private-subnet-rt-assoc-0{i}",
                subnet_id=subnet.id,
                route_table_id=route_table.id,
                opts=pulumi.ResourceOptions(parent=route_table),
            )

    def _define_public_routing(self) -> None:
        self.public_route_table = aws.ec2.RouteTable(
            f"{self.name}-public-rt",
            vpc_id=self.vpc.id,
            tags=self.tags | {"Name": f"{self.name}-public-rt"},
            opts=pulumi.ResourceOptions(parent=self.vpc),
        )

        aws.ec2.Route(
            f"{self.name}-public-rt",
            route_table_id=self.public_route_table.id,
            gateway_id=self.internet_gateway.id,
            destination_cidr_block=eks_hybrid.ANYWHERE,
            opts=pulumi.ResourceOptions(parent=self.public_route_table),
        )

        for i, subnet in enumerate(self.subnets[eks_hybrid.Privacy.PUBLIC]):
            aws.ec2.RouteTableAssociation(
                f"{self.name}-public-subnet-rt-assoc-0{i}",
                subnet_id=subnet.id,
                route_table_id=self.public_route_table.id,
                opts=pulumi.ResourceOptions(parent=self.public_route_table),
            )

    def _define_s3_endpoint(self) -> None:
        route_table_ids = [rt.id for rt in self.private_route_tables]
        route_table_ids.append(self.public_route_table.id)

        self.s3_endpoint = aws.ec2.VpcEndpoint(
            f"{self.name}-vpc-s3-endpoint",
            service_name=f"com.amazonaws.{self.region}.s3",
            vpc_endpoint_type="Gateway",
            vpc_id=self.vpc.id,
            route_table_ids=route_table_ids,
            tags=self.tags | {"Name": f"{self.name}-vpc-s3-endpoint"},
            opts=pulumi.ResourceOptions(parent=self.vpc),
        )


def private_route_table_indexes(subnet_count: int, route_table_count: int) -> dict[int, int]:
    """
    :return: private subnet index -> private route table index. Subnets without a route table of their
    own are bound to the first one.
    """
    if route_table_count == 0:
        msg = "at least one private route table is required"
        raise eks_hybrid.ConfigurationError(msg)

    return {i: i if i < route_table_count else 0 for i in range(subnet_count)}


def vpc_exports(vpc: AWSVpc) -> dict[str, typing.Any]:
    """The stack outputs describing the network, keyed by their exported names."""
    exports: dict[str, typing.Any] = {
        "vpc": vpc.vpc.id,
        "igw-id": vpc.internet_gateway.id,
    }
    for privacy in eks_hybrid.Privacy:
        for i, subnet in enumerate(vpc.subnets[privacy]):
            exports[f"{privacy}-subnet-0{i}"] = subnet.id

    return exports
