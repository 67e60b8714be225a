import typing

import pulumi

SubnetIds = list[str] | list[pulumi.Output[str]]

COMPONENT_TYPE_PREFIX = "eks-hybrid"


def component_type(component: typing.Any) -> str:
    return f"{COMPONENT_TYPE_PREFIX}:{component.__class__.__name__}"
