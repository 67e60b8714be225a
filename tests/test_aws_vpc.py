import dataclasses

import pulumi
import pytest

import eks_hybrid
import eks_hybrid.pulumi_resources.aws_vpc


def _build(topology: eks_hybrid.NetworkTopology, region: str = "mp-north-4") -> None:
    @pulumi.runtime.test
    def build():
        eks_hybrid.pulumi_resources.aws_vpc.AWSVpc(topology.name, topology, region)

    build()


def test_private_route_table_indexes_falls_back_to_first():
    assert eks_hybrid.pulumi_resources.aws_vpc.private_route_table_indexes(3, 1) == {0: 0, 1: 0, 2: 0}
    assert eks_hybrid.pulumi_resources.aws_vpc.private_route_table_indexes(3, 2) == {0: 0, 1: 1, 2: 0}
    assert eks_hybrid.pulumi_resources.aws_vpc.private_route_table_indexes(2, 2) == {0: 0, 1: 1}


def test_private_route_table_indexes_requires_a_route_table():
    with pytest.raises(eks_hybrid.ConfigurationError):
        eks_hybrid.pulumi_resources.aws_vpc.private_route_table_indexes(2, 0)


def test_define_aws_vpc(recording_mocks, deployment_config: eks_hybrid.DeploymentConfig):
    _build(deployment_config.network)

    vpc = recording_mocks.named("bologna01-vpc", "aws:ec2/vpc:Vpc")
    assert vpc.inputs["cidrBlock"] == "10.10.0.0/16"
    assert vpc.inputs["enableDnsHostnames"] is True
    assert vpc.inputs["enableDnsSupport"] is True
    assert vpc.inputs["tags"] == {"team": "platform", "Name": "bologna01-vpc"}

    assert len(recording_mocks.of_type("aws:ec2/internetGateway:InternetGateway")) == 1

    subnets = {r.name: r.inputs for r in recording_mocks.of_type("aws:ec2/subnet:Subnet")}
    assert sorted(subnets) == [
        "bologna01-private-subnet-00",
        "bologna01-private-subnet-01",
        "bologna01-private-subnet-02",
        "bologna01-public-subnet-00",
        "bologna01-public-subnet-01",
    ]
    assert subnets["bologna01-private-subnet-02"]["availabilityZone"] == "mp-north-4c"
    assert subnets["bologna01-public-subnet-01"]["cidrBlock"] == "10.10.132.0/22"
    assert all(s["mapPublicIpOnLaunch"] is False for s in subnets.values())
    assert subnets["bologna01-public-subnet-00"]["tags"]["Name"] == "bologna01-public-subnet-00"


def test_single_nat_gateway(recording_mocks, deployment_config: eks_hybrid.DeploymentConfig):
    _build(deployment_config.network)

    nat_gateways = recording_mocks.of_type("aws:ec2/natGateway:NatGateway")
    assert [ng.name for ng in nat_gateways] == ["bologna01-nat-gateway"]
    assert nat_gateways[0].inputs["subnetId"] == "bologna01-public-subnet-00-id"
    assert nat_gateways[0].inputs["allocationId"] == "bologna01-eip-id"

    eips = recording_mocks.of_type("aws:ec2/eip:Eip")
    assert [eip.name for eip in eips] == ["bologna01-eip"]
    assert eips[0].inputs["domain"] == "vpc"


def test_nat_gateway_per_az(recording_mocks, deployment_config: eks_hybrid.DeploymentConfig):
    topology = dataclasses.replace(deployment_config.network, nat_gateway_per_az=True)

    with pytest.warns(UserWarning, match="routed through the first private route table"):
        _build(topology)

    nat_gateways = {r.name: r.inputs for r in recording_mocks.of_type("aws:ec2/natGateway:NatGateway")}
    assert len(nat_gateways) == len(topology.public_subnets_az)
    assert nat_gateways["bologna01-nat-gateway-1"]["subnetId"] == "bologna01-public-subnet-01-id"
    assert nat_gateways["bologna01-nat-gateway-1"]["allocationId"] == "bologna01-eip-1-id"

    route_tables = [r.name for r in recording_mocks.of_type("aws:ec2/routeTable:RouteTable")]
    assert sorted(route_tables) == ["bologna01-private-rt-00", "bologna01-private-rt-01", "bologna01-public-rt"]


def test_private_route_table_associations(recording_mocks, deployment_config: eks_hybrid.DeploymentConfig):
    topology = dataclasses.replace(deployment_config.network, nat_gateway_per_az=True)

    with pytest.warns(UserWarning):
        _build(topology)

    associations = {
        r.inputs["subnetId"]: r.inputs["routeTableId"]
        for r in recording_mocks.of_type("aws:ec2/routeTableAssociation:RouteTableAssociation")
        if "private" in r.name
    }
    assert len(associations) == len(topology.private_subnets)
    assert associations == {
        "bologna01-private-subnet-00-id": "bologna01-private-rt-00-id",
        "bologna01-private-subnet-01-id": "bologna01-private-rt-01-id",
        "bologna01-private-subnet-02-id": "bologna01-private-rt-00-id",
    }


def test_routes(recording_mocks, deployment_config: eks_hybrid.DeploymentConfig):
    _build(deployment_config.network)

    routes = {r.name: r.inputs for r in recording_mocks.of_type("aws:ec2/route:Route")}
    assert routes["bologna01-private-rt-00"]["natGatewayId"] == "bologna01-nat-gateway-id"
    assert routes["bologna01-private-rt-00"]["destinationCidrBlock"] == "0.0.0.0/0"
    assert routes["bologna01-public-rt"]["gatewayId"] == "bologna01-igw-id"

    public_associations = [
        r.inputs
        for r in recording_mocks.of_type("aws:ec2/routeTableAssociation:RouteTableAssociation")
        if "public" in r.name
    ]
    assert len(public_associations) == 2
    assert all(a["routeTableId"] == "bologna01-public-rt-id" for a in public_associations)


def test_s3_endpoint_on_every_route_table(recording_mocks, deployment_config: eks_hybrid.DeploymentConfig):
    _build(deployment_config.network)

    endpoint = recording_mocks.named("bologna01-vpc-s3-endpoint")
    assert endpoint.inputs["serviceName"] == "com.amazonaws.mp-north-4.s3"
    assert endpoint.inputs["vpcEndpointType"] == "Gateway"
    assert sorted(endpoint.inputs["routeTableIds"]) == ["bologna01-private-rt-00-id", "bologna01-public-rt-id"]


def test_one_private_one_public_subnet(recording_mocks):
    topology = eks_hybrid.NetworkTopology(
        name="tiny",
        cidr_block="10.0.0.0/16",
        private_subnets=("10.0.1.0/24",),
        private_subnets_az=("mp-north-4a",),
        public_subnets=("10.0.2.0/24",),
        public_subnets_az=("mp-north-4a",),
    )

    with pytest.warns(UserWarning, match="single availability zone"):
        _build(topology)

    assert len(recording_mocks.of_type("aws:ec2/natGateway:NatGateway")) == 1
    assert sorted(r.name for r in recording_mocks.of_type("aws:ec2/routeTable:RouteTable")) == [
        "tiny-private-rt-00",
        "tiny-public-rt",
    ]

    association = recording_mocks.named("tiny-private-subnet-rt-assoc-00")
    assert association.inputs["subnetId"] == "tiny-private-subnet-00-id"
    assert association.inputs["routeTableId"] == "tiny-private-rt-00-id"
