"""Static site: website bucket, content upload and CDN distribution."""

from __future__ import annotations

from stackdeck.deploy.scheduler import TaskContext
from stackdeck.deploy.tasks.base import SITE_BUCKET, DeploymentEnv, require
from stackdeck.lib.errors import DeploymentError
from stackdeck.lib.logging_config import get_logger
from stackdeck.models.resources import ResourceKind, ResourceRecord
from stackdeck.models.specs import BucketSpec, DistributionSpec, make_spec

logger = get_logger(__name__)


async def provision_bucket(env: DeploymentEnv, ctx: TaskContext) -> ResourceRecord:
    """Public website bucket named after the project's external name."""
    name = env.identity.aws_name
    spec = make_spec(BucketSpec, name=name)
    return await env.reconciler.reconcile(ResourceKind.BUCKET, name, spec)


async def sync_site(env: DeploymentEnv, ctx: TaskContext) -> int:
    """Upload the built front end into the bucket.

    Raises:
        DeploymentError: If the build directory does not exist
    """
    bucket: ResourceRecord = require(ctx, SITE_BUCKET)
    directory = env.project_root / env.project.site_dir
    if not directory.is_dir():
        raise DeploymentError(
            operation="site",
            message=f"Site build directory not found: {directory}. Build it first.",
        )
    count = await env.control_plane.sync_directory(bucket.external_id, directory)
    logger.info(f"Uploaded {count} files to s3://{bucket.external_id}")
    return count


async def provision_distribution(
    env: DeploymentEnv, ctx: TaskContext
) -> ResourceRecord:
    """CDN distribution serving the bucket, aliased to the custom domain."""
    bucket: ResourceRecord = require(ctx, SITE_BUCKET)
    identity = env.identity
    aliases: list[str] = []
    certificate_arn = None
    if identity.uses_custom_domain:
        aliases = [identity.domain, f"www.{identity.domain}"]
        certificate_arn = identity.certificate_arn
    spec = make_spec(
        DistributionSpec,
        origin_id=identity.aws_name,
        origin_domain=bucket.attributes["origin_domain"],
        aliases=aliases,
        certificate_arn=certificate_arn,
        comment=f"{identity.name} static site",
    )
    return await env.reconciler.reconcile(
        ResourceKind.DISTRIBUTION, identity.aws_name, spec, depends_on=[bucket.key]
    )
