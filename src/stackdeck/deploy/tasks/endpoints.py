"""Final step of a deployment: record the public endpoints."""

from __future__ import annotations

from stackdeck.deploy.scheduler import TaskContext
from stackdeck.deploy.tasks.base import (
    LOAD_BALANCER,
    SITE_DISTRIBUTION,
    DeploymentEnv,
    require,
)
from stackdeck.deploy.tasks.dns import API_HOST, host_name
from stackdeck.lib.logging_config import get_logger
from stackdeck.models.resources import ResourceRecord

logger = get_logger(__name__)


def public_urls(
    env: DeploymentEnv, distribution: ResourceRecord, balancer: ResourceRecord
) -> tuple[str, str]:
    """Site and API URLs, on the custom domain when one is bound."""
    identity = env.identity
    if identity.uses_custom_domain:
        return (
            f"https://{identity.domain}",
            f"https://{host_name(identity.domain, API_HOST)}",
        )
    return (
        f"https://{distribution.attributes['domain_name']}",
        f"http://{balancer.attributes['dns_name']}",
    )


async def record_endpoints(env: DeploymentEnv, ctx: TaskContext) -> dict[str, str]:
    """Persist the project identity and public URLs into the descriptor."""
    distribution: ResourceRecord = require(ctx, SITE_DISTRIBUTION)
    balancer: ResourceRecord = require(ctx, LOAD_BALANCER)
    site_url, api_url = public_urls(env, distribution, balancer)
    await env.store.merge_and_persist(
        project=env.identity, site_url=site_url, api_url=api_url
    )
    logger.info(f"Site available at {site_url}")
    logger.info(f"API available at {api_url}")
    return {"site_url": site_url, "api_url": api_url}
