"""Network discovery and security groups."""

from __future__ import annotations

from dataclasses import dataclass

from stackdeck.deploy.scheduler import TaskContext
from stackdeck.deploy.tasks.base import VPC, DeploymentEnv, require
from stackdeck.lib.errors import DeploymentError
from stackdeck.lib.logging_config import get_logger
from stackdeck.models.resources import ResourceKind, ResourceRecord, resource_key
from stackdeck.models.specs import IngressRule, SecurityGroupSpec, make_spec

logger = get_logger(__name__)

DEFAULT_NETWORK = "default"


@dataclass(frozen=True)
class SecurityGroupTemplate:
    """Name, description and open TCP port ranges of a security group."""

    name: str
    description: str
    ports: tuple[tuple[int, int], ...]

    def ingress(self) -> list[IngressRule]:
        return [IngressRule(from_port=low, to_port=high) for low, high in self.ports]


DATABASE_GROUP = SecurityGroupTemplate(
    "DatabaseGroup", "For connecting to databases", ((5432, 5432),)
)
BALANCER_GROUP = SecurityGroupTemplate(
    "BalancerGroup", "For the load balancer", ((80, 80), (443, 443))
)
CLUSTER_GROUP = SecurityGroupTemplate(
    "ECSGroup", "For the ECS cluster", ((80, 80), (22, 22), (1024, 65535))
)


async def discover_vpc(env: DeploymentEnv, ctx: TaskContext) -> ResourceRecord:
    """Record the account's default VPC."""
    recorded = env.store.get(resource_key(ResourceKind.VPC, DEFAULT_NETWORK))
    if recorded is not None:
        return recorded

    vpc = await env.control_plane.describe_default_vpc()
    if vpc is None:
        raise DeploymentError(
            operation="network",
            message="No default VPC found in this region. Create one first.",
        )
    logger.info(f"Using default VPC {vpc.id}")
    return await env.reconciler.checkpoint(
        ResourceRecord(
            kind=ResourceKind.VPC, logical_name=DEFAULT_NETWORK, external_id=vpc.id
        )
    )


async def discover_subnets(env: DeploymentEnv, ctx: TaskContext) -> ResourceRecord:
    """Record one subnet per availability zone of the default VPC."""
    recorded = env.store.get(resource_key(ResourceKind.SUBNETS, DEFAULT_NETWORK))
    if recorded is not None:
        return recorded

    vpc: ResourceRecord = require(ctx, VPC)
    by_zone: dict[str, str] = {}
    for subnet in await env.control_plane.describe_subnets(vpc.external_id):
        by_zone.setdefault(subnet.availability_zone, subnet.id)
    if len(by_zone) < 2:
        raise DeploymentError(
            operation="network",
            message=(
                f"VPC {vpc.external_id} has subnets in {len(by_zone)} availability "
                "zone(s); the load balancer needs at least two"
            ),
        )

    subnet_ids = [by_zone[zone] for zone in sorted(by_zone)]
    return await env.reconciler.checkpoint(
        ResourceRecord(
            kind=ResourceKind.SUBNETS,
            logical_name=DEFAULT_NETWORK,
            external_id=",".join(subnet_ids),
            attributes={"subnet_ids": subnet_ids, "zones": sorted(by_zone)},
            depends_on=[vpc.key],
        )
    )


async def provision_security_group(
    env: DeploymentEnv, ctx: TaskContext, template: SecurityGroupTemplate
) -> ResourceRecord:
    """Reconcile a security group with its ingress rules."""
    vpc: ResourceRecord = require(ctx, VPC)
    spec = make_spec(
        SecurityGroupSpec,
        name=template.name,
        description=template.description,
        vpc_id=vpc.external_id,
        ingress=template.ingress(),
    )
    return await env.reconciler.reconcile(
        ResourceKind.SECURITY_GROUP, template.name, spec, depends_on=[vpc.key]
    )
