"""Task graphs for the init and update commands.

The graph is built once per command from the project configuration and
its service topology. Worker services fan out into sibling publish and
task-definition tasks that join at ``taskdefs:ready``; with a custom domain
the DNS subtree fans out into one task per alias record and joins at the
change batch.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable
from functools import partial
from pathlib import Path
from typing import Any

from stackdeck.deploy.builder import ImagePublisher, generate_tag
from stackdeck.deploy.control_plane.base import ControlPlaneClient
from stackdeck.deploy.handlers import create_handlers
from stackdeck.deploy.poller import ReadinessPoller
from stackdeck.deploy.reconciler import ResourceReconciler
from stackdeck.deploy.scheduler import TaskGraph, TaskNode
from stackdeck.deploy.state import StateStore
from stackdeck.deploy.tasks import balancer, cluster, databases, dns, migrations
from stackdeck.deploy.tasks import endpoints, network, registry, site
from stackdeck.deploy.tasks.base import (
    CERTIFICATE,
    CLUSTER,
    CONTAINERS_READY,
    DNS_API_RECORD,
    DNS_BATCH,
    DNS_SKIP,
    DNS_ZONE,
    ENDPOINTS,
    LISTENER_HTTP,
    LISTENER_HTTPS,
    LOAD_BALANCER,
    MAIN_ROLE,
    MESSAGE_QUEUE,
    MIGRATIONS,
    SG_BALANCER,
    SG_CLUSTER,
    SG_DATABASE,
    SITE_BUCKET,
    SITE_DISTRIBUTION,
    SITE_SYNC,
    SUBNETS,
    TARGET_GROUP,
    TRANSACTION_ROLE,
    TRANSACTIONS_SETUP,
    VPC,
    DeploymentEnv,
    database_task,
    publish_task,
    record_task,
    taskdef_task,
)
from stackdeck.lib.errors import ConfigError
from stackdeck.lib.logging_config import get_logger
from stackdeck.models.descriptor import (
    DeploymentDescriptor,
    ProjectIdentity,
    generate_aws_name,
)
from stackdeck.models.project import ProjectConfig
from stackdeck.models.resources import ResourceKind
from stackdeck.models.topology import ServiceTopology

logger = get_logger(__name__)

REQUIRED_ROLES = (MAIN_ROLE, TRANSACTION_ROLE)


def identity_for(
    project: ProjectConfig,
    descriptor: DeploymentDescriptor,
    require_existing: bool = False,
) -> ProjectIdentity:
    """Project identity for a run.

    The identity recorded by the first init is reused so the external names
    stay stable across runs; settings that may legitimately change (profile,
    region, domain, certificate, registry) are refreshed from the project.

    Raises:
        ConfigError: If ``require_existing`` and nothing was deployed yet
    """
    recorded = descriptor.project
    if recorded is None:
        if require_existing:
            raise ConfigError(
                field="deployment_state",
                message="No deployment found. Run `stackdeck aws init` first.",
            )
        return ProjectIdentity(
            name=project.name,
            aws_name=generate_aws_name(project.name),
            profile=project.aws.profile,
            region=project.aws.region,
            registry_id=project.registry.id,
            domain=project.aws.domain,
            certificate_arn=project.aws.certificate_arn,
        )
    return recorded.model_copy(
        update={
            "profile": project.aws.profile,
            "region": project.aws.region,
            "registry_id": project.registry.id,
            "domain": project.aws.domain,
            "certificate_arn": project.aws.certificate_arn,
        }
    )


def create_environment(
    project: ProjectConfig,
    topology: ServiceTopology,
    project_root: Path,
    store: StateStore,
    control_plane: ControlPlaneClient,
    identity: ProjectIdentity,
    publisher: ImagePublisher | None = None,
    **overrides: Any,
) -> DeploymentEnv:
    """Wire the collaborators every task needs.

    Args:
        project: Parsed project configuration
        topology: Compose service topology
        project_root: Directory holding stackdeck.yaml
        store: Loaded descriptor store
        control_plane: Cloud control-plane client
        identity: Project identity for this run
        publisher: Image publisher, one tagging per the registry strategy
            when None
        **overrides: Extra DeploymentEnv fields such as ``redeploy``
    """
    poller = ReadinessPoller(
        interval=project.polling.interval, max_attempts=project.polling.max_attempts
    )
    reconciler = ResourceReconciler(
        store,
        create_handlers(control_plane, poller),
        max_retries=project.max_retries,
        retry_backoff=project.retry_backoff,
    )
    if publisher is None:
        tag = generate_tag(project.registry.tag_strategy, project.registry.custom_tag)
        publisher = ImagePublisher(
            identity.registry_id, tag=tag, platform=project.services.platform
        )
    return DeploymentEnv(
        project=project,
        identity=identity,
        topology=topology,
        reconciler=reconciler,
        control_plane=control_plane,
        poller=poller,
        publisher=publisher,
        project_root=project_root,
        **overrides,
    )


class _PlanBuilder:
    """Adds nodes bound to one environment."""

    def __init__(self, env: DeploymentEnv) -> None:
        self.env = env
        self.graph = TaskGraph()

    def add(
        self,
        task_id: str,
        action: Any,
        dependencies: Iterable[str] = (),
        kind: ResourceKind | str = "task",
        **kwargs: Any,
    ) -> str:
        kind_name = kind.value if isinstance(kind, ResourceKind) else kind
        self.graph.add(
            TaskNode(
                id=task_id,
                action=partial(action, self.env, **kwargs),
                dependencies=frozenset(dependencies),
                kind=kind_name,
            )
        )
        return task_id


def _check_roles(project: ProjectConfig) -> None:
    missing = [role for role in REQUIRED_ROLES if role not in project.databases.roles]
    if missing:
        raise ConfigError(
            field="databases.roles",
            message=f"Required database roles missing: {', '.join(missing)}",
        )


def _add_site(plan: _PlanBuilder) -> list[str]:
    plan.add(SITE_BUCKET, site.provision_bucket, kind=ResourceKind.BUCKET)
    plan.add(SITE_SYNC, site.sync_site, [SITE_BUCKET], kind="sync")
    plan.add(
        SITE_DISTRIBUTION,
        site.provision_distribution,
        [SITE_BUCKET],
        kind=ResourceKind.DISTRIBUTION,
    )
    return [SITE_SYNC, SITE_DISTRIBUTION]


def _add_network(plan: _PlanBuilder) -> None:
    plan.add(VPC, network.discover_vpc, kind=ResourceKind.VPC)
    plan.add(SUBNETS, network.discover_subnets, [VPC], kind=ResourceKind.SUBNETS)
    for task_id, template in (
        (SG_DATABASE, network.DATABASE_GROUP),
        (SG_BALANCER, network.BALANCER_GROUP),
        (SG_CLUSTER, network.CLUSTER_GROUP),
    ):
        plan.add(
            task_id,
            network.provision_security_group,
            [VPC],
            kind=ResourceKind.SECURITY_GROUP,
            template=template,
        )


def _add_databases(plan: _PlanBuilder) -> list[str]:
    for role in plan.env.project.databases.roles:
        plan.add(
            database_task(role),
            databases.provision_database,
            [SG_DATABASE],
            kind=ResourceKind.DATABASE,
            role=role,
        )
    plan.add(
        MIGRATIONS,
        migrations.run_migrations,
        [database_task(MAIN_ROLE), database_task(TRANSACTION_ROLE)],
        kind="migrations",
    )
    plan.add(
        TRANSACTIONS_SETUP,
        migrations.setup_transactions,
        [database_task(TRANSACTION_ROLE)],
        kind="migrations",
    )
    return [MIGRATIONS, TRANSACTIONS_SETUP]


def _add_containers(plan: _PlanBuilder) -> list[str]:
    workers = plan.env.topology.workers
    plan.add(
        publish_task(registry.API_SERVICE),
        registry.publish_api,
        kind=ResourceKind.IMAGE,
    )
    for service in workers:
        plan.add(
            publish_task(service.name),
            registry.publish_worker,
            kind=ResourceKind.IMAGE,
            service=service,
        )

    plan.add(
        CLUSTER, cluster.provision_cluster, [SG_CLUSTER], kind=ResourceKind.CLUSTER
    )
    plan.add(
        MESSAGE_QUEUE,
        cluster.register_message_queue,
        [CLUSTER],
        kind=ResourceKind.TASK_DEFINITION,
    )
    registered = [MESSAGE_QUEUE]
    registered.append(
        plan.add(
            taskdef_task(registry.API_SERVICE),
            cluster.register_api,
            [CLUSTER, MESSAGE_QUEUE, publish_task(registry.API_SERVICE)],
            kind=ResourceKind.TASK_DEFINITION,
        )
    )
    for service in workers:
        registered.append(
            plan.add(
                taskdef_task(service.name),
                cluster.register_worker,
                [
                    CLUSTER,
                    MESSAGE_QUEUE,
                    publish_task(service.name),
                    database_task(MAIN_ROLE),
                    database_task(TRANSACTION_ROLE),
                ],
                kind=ResourceKind.TASK_DEFINITION,
                service=service,
            )
        )
    plan.add(CONTAINERS_READY, cluster.containers_ready, registered, kind="join")
    return [CONTAINERS_READY]


def _add_balancer(plan: _PlanBuilder) -> list[str]:
    plan.add(
        TARGET_GROUP,
        balancer.provision_target_group,
        [VPC],
        kind=ResourceKind.TARGET_GROUP,
    )
    plan.add(
        LOAD_BALANCER,
        balancer.provision_load_balancer,
        [SG_BALANCER, SUBNETS, CLUSTER],
        kind=ResourceKind.LOAD_BALANCER,
    )
    listeners = [
        plan.add(
            LISTENER_HTTP,
            balancer.provision_listener,
            [LOAD_BALANCER, TARGET_GROUP],
            kind=ResourceKind.LISTENER,
            protocol="HTTP",
        )
    ]
    if plan.env.identity.certificate_arn:
        listeners.append(
            plan.add(
                LISTENER_HTTPS,
                balancer.provision_listener,
                [LOAD_BALANCER, TARGET_GROUP, CERTIFICATE],
                kind=ResourceKind.LISTENER,
                protocol="HTTPS",
            )
        )
    return listeners


def _add_dns(plan: _PlanBuilder) -> list[str]:
    if not plan.env.identity.uses_custom_domain:
        return [plan.add(DNS_SKIP, dns.skip_dns, [CERTIFICATE], kind="dns")]

    plan.add(DNS_ZONE, dns.lookup_hosted_zone, [CERTIFICATE], kind="dns")
    changes = [
        plan.add(
            record_task(host, record_type),
            dns.prepare_site_record,
            [SITE_DISTRIBUTION, CERTIFICATE],
            kind="dns",
            host=host,
            record_type=record_type,
        )
        for host in dns.SITE_HOSTS
        for record_type in dns.RECORD_TYPES
    ]
    changes.append(
        plan.add(DNS_API_RECORD, dns.prepare_api_record, [LOAD_BALANCER], kind="dns")
    )
    plan.add(
        DNS_BATCH,
        dns.submit_change_batch,
        [DNS_ZONE, SITE_DISTRIBUTION, LOAD_BALANCER, *changes],
        kind=ResourceKind.RECORD_SET,
    )
    return [DNS_BATCH]


def build_init_plan(env: DeploymentEnv) -> TaskGraph:
    """Full provisioning graph.

    Raises:
        ConfigError: If a required database role is not configured, or the
            graph is invalid
    """
    _check_roles(env.project)
    plan = _PlanBuilder(env)
    plan.add(CERTIFICATE, dns.resolve_certificate, kind="certificate")
    finals = _add_site(plan)
    _add_network(plan)
    finals += _add_databases(plan)
    finals += _add_containers(plan)
    finals += _add_balancer(plan)
    finals += _add_dns(plan)
    plan.add(
        ENDPOINTS,
        endpoints.record_endpoints,
        [SITE_DISTRIBUTION, LOAD_BALANCER, *finals],
        kind="endpoints",
    )
    order = plan.graph.validate()
    logger.debug(f"Init plan with {len(order)} tasks: {', '.join(order)}")
    return plan.graph


def build_update_plan(env: DeploymentEnv) -> TaskGraph:
    """Redeploy graph: republish images and register new task revisions.

    Recorded resources short-circuit in the reconciler, so only the images,
    the task definitions and any resource missing from the descriptor cause
    control-plane writes.
    """
    return build_init_plan(dataclasses.replace(env, redeploy=True))
