"""Production PostgreSQL databases."""

from __future__ import annotations

import re

from stackdeck.deploy.control_plane.base import DatabaseInstance
from stackdeck.deploy.handlers import DatabaseHandler
from stackdeck.deploy.poller import ProbeResult, ResourceRef
from stackdeck.deploy.scheduler import TaskContext
from stackdeck.deploy.tasks.base import SG_DATABASE, DeploymentEnv, require
from stackdeck.lib.errors import DeploymentError
from stackdeck.lib.logging_config import get_logger
from stackdeck.models.resources import (
    DatabaseInfo,
    ResourceKind,
    ResourceRecord,
    ResourceStatus,
)
from stackdeck.models.specs import DatabaseSpec, make_spec

logger = get_logger(__name__)

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


def database_name(project_name: str, role: str) -> str:
    """PostgreSQL database name for a role: alphanumerics only."""
    name = _NON_ALNUM.sub("", f"{project_name}{role}")
    if not name or not name[0].isalpha():
        name = f"db{name}"
    return name[:63]


def database_identifier(project_name: str, role: str) -> str:
    """Instance identifier: the database name in lower case."""
    return database_name(project_name, role).lower()


def database_info(record: ResourceRecord) -> DatabaseInfo:
    """Connection details of a ready database record.

    Raises:
        DeploymentError: If the record was adopted without known credentials
            or has no endpoint yet
    """
    attrs = record.attributes
    if not attrs.get("password"):
        raise DeploymentError(
            operation="databases",
            message=(
                f"Database '{record.logical_name}' ({record.external_id}) was "
                "adopted and its master password is unknown"
            ),
        )
    if not attrs.get("host"):
        raise DeploymentError(
            operation="databases",
            message=f"Database '{record.logical_name}' has no endpoint yet",
        )
    return DatabaseInfo.from_record(record)


async def provision_database(
    env: DeploymentEnv, ctx: TaskContext, role: str
) -> ResourceRecord:
    """Create or adopt the database for ``role`` and wait until it is available.

    The generated master password is checkpointed before the instance is
    requested, so an instance whose create call was accepted but not
    acknowledged is adopted with its credentials. The record is checkpointed
    as soon as the instance is requested and again once its endpoint is
    known, so an interrupted run resumes at the wait.
    """
    group: ResourceRecord = require(ctx, SG_DATABASE)
    settings = env.project.databases
    identifier = database_identifier(env.identity.name, role)
    password = env.store.pending_secret(identifier) or env.secret_factory()
    spec = make_spec(
        DatabaseSpec,
        identifier=identifier,
        db_name=database_name(env.identity.name, role),
        role=role,
        instance_class=settings.instance_class,
        allocated_storage=settings.allocated_storage,
        master_username=settings.master_username,
        master_password=password,
        port=settings.port,
        security_group_ids=[group.external_id],
    )

    async def checkpoint_password() -> None:
        await env.store.merge_and_persist(pending_secrets={identifier: password})

    record = await env.reconciler.reconcile(
        ResourceKind.DATABASE,
        role,
        spec,
        depends_on=[group.key],
        before_create=checkpoint_password,
    )

    known = env.store.pending_secret(identifier)
    if not record.attributes.get("password") and known:
        logger.info(f"Recovered checkpointed credentials for {identifier}")
        record = await env.reconciler.checkpoint(
            record.model_copy(
                update={"attributes": {**record.attributes, "password": known}}
            )
        )

    if record.status is ResourceStatus.CREATING:
        record = await _wait_for_database(env, ctx, record, spec)

    try:
        info = database_info(record)
    except DeploymentError as exc:
        logger.warning(f"Not recording production credentials: {exc.message}")
    else:
        await env.store.merge_and_persist(production_dbs={role: info})
    return record


async def _wait_for_database(
    env: DeploymentEnv, ctx: TaskContext, record: ResourceRecord, spec: DatabaseSpec
) -> ResourceRecord:
    logger.info(
        f"Waiting for database {record.external_id} to become available "
        f"(this usually takes several minutes)"
    )
    password = record.attributes.get("password")

    async def probe() -> ProbeResult:
        instances = await env.control_plane.describe_databases(record.external_id)
        instance: DatabaseInstance | None = next(
            (i for i in instances if i.identifier == record.external_id), None
        )
        if instance is None:
            return ProbeResult.pending("not visible yet")
        if instance.is_failed:
            return ProbeResult.failed(instance.status)
        if not instance.is_available:
            return ProbeResult.pending(instance.status)
        ready = DatabaseHandler.to_record(
            record.logical_name, instance, spec, password
        )
        return ProbeResult.ready(
            ready.model_copy(update={"depends_on": record.depends_on}),
            instance.status,
        )

    ready = await env.poller.wait_until_ready(
        ResourceRef(ResourceKind.DATABASE.value, record.logical_name),
        probe,
        cancel_token=ctx.cancel_token,
    )
    if ready is None:
        return record
    return await env.reconciler.checkpoint(ready)
