"""Application load balancer in front of the API service."""

from __future__ import annotations

import re

from stackdeck.deploy.handlers import LoadBalancerHandler
from stackdeck.deploy.poller import ProbeResult, ResourceRef
from stackdeck.deploy.scheduler import TaskContext
from stackdeck.deploy.tasks.base import (
    CLUSTER,
    LOAD_BALANCER,
    SG_BALANCER,
    SUBNETS,
    TARGET_GROUP,
    VPC,
    DeploymentEnv,
    require,
)
from stackdeck.lib.logging_config import get_logger
from stackdeck.models.resources import ResourceKind, ResourceRecord, ResourceStatus
from stackdeck.models.specs import (
    ListenerSpec,
    LoadBalancerSpec,
    TargetGroupSpec,
    make_spec,
)

logger = get_logger(__name__)

ELB_NAME_LIMIT = 32

_INVALID_ELB_CHARS = re.compile(r"[^A-Za-z0-9-]")


def elb_name(base: str, suffix: str) -> str:
    """Load balancer or target group name: ``base`` + ``suffix`` in 32 chars.

    Example:
        >>> elb_name("My Study", "Balancer")
        'MyStudyBalancer'
    """
    cleaned = _INVALID_ELB_CHARS.sub("", base).strip("-")
    return f"{cleaned[: ELB_NAME_LIMIT - len(suffix)]}{suffix}"


def balancer_name(env: DeploymentEnv) -> str:
    return elb_name(env.identity.cluster_name or env.identity.name, "Balancer")


async def provision_target_group(
    env: DeploymentEnv, ctx: TaskContext
) -> ResourceRecord:
    """Target group the API tasks register into."""
    vpc: ResourceRecord = require(ctx, VPC)
    name = elb_name(env.identity.cluster_name or env.identity.name, "Targets")
    spec = make_spec(
        TargetGroupSpec,
        name=name,
        vpc_id=vpc.external_id,
        port=env.project.services.api_port,
    )
    return await env.reconciler.reconcile(
        ResourceKind.TARGET_GROUP, name, spec, depends_on=[vpc.key]
    )


async def provision_load_balancer(
    env: DeploymentEnv, ctx: TaskContext
) -> ResourceRecord:
    """Create or adopt the load balancer and wait until it is active."""
    group: ResourceRecord = require(ctx, SG_BALANCER)
    subnets: ResourceRecord = require(ctx, SUBNETS)
    cluster: ResourceRecord = require(ctx, CLUSTER)
    name = balancer_name(env)
    spec = make_spec(
        LoadBalancerSpec,
        name=name,
        subnet_ids=subnets.attributes["subnet_ids"],
        security_group_ids=[group.external_id],
    )
    record = await env.reconciler.reconcile(
        ResourceKind.LOAD_BALANCER,
        name,
        spec,
        depends_on=[group.key, subnets.key, cluster.key],
    )
    if record.status is not ResourceStatus.CREATING:
        return record

    async def probe() -> ProbeResult:
        balancers = await env.control_plane.describe_load_balancers(name)
        current = next((lb for lb in balancers if lb.name == name), None)
        if current is None:
            return ProbeResult.pending("not visible yet")
        if current.state == "failed":
            return ProbeResult.failed(current.state)
        if current.state != "active":
            return ProbeResult.pending(current.state)
        ready = LoadBalancerHandler.to_record(record.logical_name, current)
        return ProbeResult.ready(
            ready.model_copy(update={"depends_on": record.depends_on}),
            current.state,
        )

    ready = await env.poller.wait_until_ready(
        ResourceRef(ResourceKind.LOAD_BALANCER.value, name),
        probe,
        cancel_token=ctx.cancel_token,
    )
    return await env.reconciler.checkpoint(ready) if ready else record


async def provision_listener(
    env: DeploymentEnv, ctx: TaskContext, protocol: str
) -> ResourceRecord:
    """Forward ``protocol`` traffic on the load balancer to the target group."""
    balancer: ResourceRecord = require(ctx, LOAD_BALANCER)
    targets: ResourceRecord = require(ctx, TARGET_GROUP)
    https = protocol == "HTTPS"
    spec = make_spec(
        ListenerSpec,
        load_balancer_arn=balancer.external_id,
        target_group_arn=targets.external_id,
        protocol=protocol,
        port=443 if https else 80,
        certificate_arn=env.identity.certificate_arn if https else None,
    )
    return await env.reconciler.reconcile(
        ResourceKind.LISTENER,
        f"{balancer.logical_name}-{protocol.lower()}",
        spec,
        depends_on=[balancer.key, targets.key],
    )
