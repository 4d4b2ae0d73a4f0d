"""Publish service images to the container registry."""

from __future__ import annotations

from stackdeck.deploy.builder import get_oci_labels
from stackdeck.deploy.scheduler import TaskContext
from stackdeck.deploy.tasks.base import DeploymentEnv
from stackdeck.lib.logging_config import get_logger
from stackdeck.models.resources import ResourceKind, ResourceRecord, resource_key
from stackdeck.models.topology import ComposeService

logger = get_logger(__name__)

API_SERVICE = "api"


def _published(env: DeploymentEnv, service: str) -> ResourceRecord | None:
    """Image already recorded for ``service``; None on redeploy."""
    if env.redeploy:
        return None
    record = env.store.get(resource_key(ResourceKind.IMAGE, service))
    if record is not None:
        logger.info(f"Image for {service} already published as {record.external_id}")
    return record


async def _record_image(
    env: DeploymentEnv, service: str, digest: str | None
) -> ResourceRecord:
    publisher = env.publisher
    return await env.reconciler.checkpoint(
        ResourceRecord(
            kind=ResourceKind.IMAGE,
            logical_name=service,
            external_id=f"{publisher.registry_id}/{service}",
            attributes={
                "image": publisher.image_ref(service),
                "tag": publisher.tag_name,
                "digest": digest,
            },
        )
    )


async def publish_api(env: DeploymentEnv, ctx: TaskContext) -> ResourceRecord:
    """Build the API image from its context directory and push it."""
    recorded = _published(env, API_SERVICE)
    if recorded is not None:
        return recorded
    context = env.project_root / env.project.services.api_context
    labels = get_oci_labels(env.identity.name, API_SERVICE, env.publisher.tag_name)
    result = await env.publisher.build(API_SERVICE, context, labels=labels)
    for line in result.log_lines:
        logger.debug(line)
    pushed = await env.publisher.push(API_SERVICE)
    return await _record_image(env, API_SERVICE, pushed.digest)


async def publish_worker(
    env: DeploymentEnv, ctx: TaskContext, service: ComposeService
) -> ResourceRecord:
    """Tag a worker image built by compose and push it."""
    recorded = _published(env, service.name)
    if recorded is not None:
        return recorded
    await env.publisher.tag(service.image or service.name, service.name)
    pushed = await env.publisher.push(service.name)
    return await _record_image(env, service.name, pushed.digest)
