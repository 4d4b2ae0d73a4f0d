"""Custom domain binding.

Each alias record change is prepared by its own task so the four site
records fan out from the distribution; one batch task joins them and
submits a single atomic change against the hosted zone.
"""

from __future__ import annotations

from stackdeck.deploy.control_plane.base import (
    CLOUDFRONT_HOSTED_ZONE_ID,
    GLOBAL_REGION,
    HostedZone,
)
from stackdeck.deploy.scheduler import TaskContext
from stackdeck.deploy.tasks.base import (
    DNS_ZONE,
    LOAD_BALANCER,
    SITE_DISTRIBUTION,
    DeploymentEnv,
    require,
)
from stackdeck.lib.errors import DeploymentError
from stackdeck.lib.logging_config import get_logger
from stackdeck.models.resources import ResourceKind, ResourceRecord
from stackdeck.models.specs import ChangeBatchSpec, RecordSetChange, make_spec

logger = get_logger(__name__)

SITE_HOSTS = ("apex", "www")
RECORD_TYPES = ("A", "AAAA")
API_HOST = "api"


def host_name(domain: str, host: str) -> str:
    """Fully qualified record name for ``host`` under ``domain``."""
    return domain if host == "apex" else f"{host}.{domain}"


async def resolve_certificate(env: DeploymentEnv, ctx: TaskContext) -> str | None:
    """Confirm the custom domain and its certificate belong to the account.

    The domain must be registered through Route 53, and the certificate must
    be issued in the global region where the CDN looks it up. Returns None
    for the default domain, which is served without one.
    """
    identity = env.identity
    if not identity.uses_custom_domain:
        logger.info("Default domain in use, no certificate needed")
        return None

    registered = await env.control_plane.list_domains()
    if identity.domain not in registered:
        raise DeploymentError(
            operation="certificate",
            message=(
                f"Domain {identity.domain} is not registered in this account. "
                f"Registered: {', '.join(registered) or 'none'}"
            ),
        )

    certificates = await env.control_plane.list_certificates(region=GLOBAL_REGION)
    for certificate in certificates:
        if certificate.arn == identity.certificate_arn:
            logger.info(
                f"Using certificate {certificate.arn} ({certificate.domain_name})"
            )
            return certificate.arn
    known = ", ".join(c.domain_name for c in certificates) or "none"
    raise DeploymentError(
        operation="certificate",
        message=(
            f"Certificate {identity.certificate_arn} not found in "
            f"{GLOBAL_REGION}. Available: {known}"
        ),
    )


async def lookup_hosted_zone(env: DeploymentEnv, ctx: TaskContext) -> HostedZone:
    """Hosted zone serving the custom domain."""
    zone = await env.control_plane.find_hosted_zone(env.identity.domain)
    if zone is None:
        raise DeploymentError(
            operation="dns",
            message=f"No hosted zone found for {env.identity.domain}",
        )
    return zone


async def prepare_site_record(
    env: DeploymentEnv, ctx: TaskContext, host: str, record_type: str
) -> RecordSetChange:
    """Alias record pointing ``host`` at the CDN distribution."""
    distribution: ResourceRecord = require(ctx, SITE_DISTRIBUTION)
    return RecordSetChange(
        name=host_name(env.identity.domain, host),
        type=record_type,
        alias_dns_name=distribution.attributes["domain_name"],
        alias_hosted_zone_id=CLOUDFRONT_HOSTED_ZONE_ID,
    )


async def prepare_api_record(env: DeploymentEnv, ctx: TaskContext) -> RecordSetChange:
    """Alias record pointing ``api.<domain>`` at the load balancer."""
    balancer: ResourceRecord = require(ctx, LOAD_BALANCER)
    return RecordSetChange(
        name=host_name(env.identity.domain, API_HOST),
        type="A",
        alias_dns_name=balancer.attributes["dns_name"],
        alias_hosted_zone_id=balancer.attributes["hosted_zone_id"],
    )


async def submit_change_batch(env: DeploymentEnv, ctx: TaskContext) -> ResourceRecord:
    """Join every prepared record change into one batch and submit it."""
    zone: HostedZone = require(ctx, DNS_ZONE)
    distribution: ResourceRecord = require(ctx, SITE_DISTRIBUTION)
    balancer: ResourceRecord = require(ctx, LOAD_BALANCER)
    changes = [
        ctx.results[task_id]
        for task_id in sorted(ctx.results)
        if isinstance(ctx.results[task_id], RecordSetChange)
    ]
    spec = make_spec(
        ChangeBatchSpec,
        hosted_zone_id=zone.id,
        changes=changes,
        comment=f"stackdeck records for {env.identity.domain}",
    )
    return await env.reconciler.reconcile(
        ResourceKind.RECORD_SET,
        env.identity.domain,
        spec,
        depends_on=[distribution.key, balancer.key],
    )


async def skip_dns(env: DeploymentEnv, ctx: TaskContext) -> None:
    """Default domain: nothing to bind."""
    logger.info("Default domain in use, skipping DNS records")
    return None
