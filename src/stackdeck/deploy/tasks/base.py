"""Shared plumbing for resource tasks.

Tasks are plain coroutine functions taking a ``DeploymentEnv`` and the
scheduler's ``TaskContext``. Plans bind the environment with
``functools.partial`` and wire the dependency edges; a task reads the
outputs of its dependencies from ``ctx.results`` under the ids below.
"""

from __future__ import annotations

import secrets
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from stackdeck.deploy.builder import ImagePublisher
from stackdeck.deploy.control_plane.base import ControlPlaneClient
from stackdeck.deploy.poller import ReadinessPoller
from stackdeck.deploy.reconciler import ResourceReconciler
from stackdeck.deploy.scheduler import TaskContext
from stackdeck.deploy.state import StateStore
from stackdeck.lib.errors import DeploymentError
from stackdeck.models.descriptor import ProjectIdentity
from stackdeck.models.project import ProjectConfig
from stackdeck.models.topology import ServiceTopology

CERTIFICATE = "certificate"
VPC = "network:vpc"
SUBNETS = "network:subnets"
SG_DATABASE = "sg:database"
SG_BALANCER = "sg:balancer"
SG_CLUSTER = "sg:cluster"
SITE_BUCKET = "site:bucket"
SITE_SYNC = "site:sync"
SITE_DISTRIBUTION = "site:distribution"
CLUSTER = "cluster"
MESSAGE_QUEUE = "taskdef:message-queue"
CONTAINERS_READY = "taskdefs:ready"
TARGET_GROUP = "lb:target-group"
LOAD_BALANCER = "lb:balancer"
LISTENER_HTTP = "lb:listener:http"
LISTENER_HTTPS = "lb:listener:https"
DNS_ZONE = "dns:zone"
DNS_API_RECORD = "dns:record:api"
DNS_BATCH = "dns:batch"
DNS_SKIP = "dns:skip"
MIGRATIONS = "migrations:main"
TRANSACTIONS_SETUP = "migrations:transactions"
ENDPOINTS = "endpoints"

MAIN_ROLE = "Main"
TRANSACTION_ROLE = "Transaction"


def database_task(role: str) -> str:
    return f"db:{role}"


def publish_task(service: str) -> str:
    return f"publish:{service}"


def taskdef_task(service: str) -> str:
    return f"taskdef:{service}"


def record_task(host: str, record_type: str) -> str:
    return f"dns:record:{host}-{record_type}"


def generate_secret() -> str:
    """Random credential for databases and the message broker."""
    return secrets.token_urlsafe(18)


@dataclass
class DeploymentEnv:
    """Everything a task needs besides its dependency outputs.

    Attributes:
        project: Parsed stackdeck.yaml
        identity: Project identity persisted in the descriptor
        topology: Compose services, used for the worker fan-out
        reconciler: Get-or-adopt-or-create entry point
        control_plane: Cloud control-plane client
        poller: Readiness poller for asynchronously provisioned resources
        publisher: Container image publisher
        project_root: Directory holding stackdeck.yaml
        redeploy: Register fresh task definition revisions even when recorded
        secret_factory: Credential generator, injectable for tests
    """

    project: ProjectConfig
    identity: ProjectIdentity
    topology: ServiceTopology
    reconciler: ResourceReconciler
    control_plane: ControlPlaneClient
    poller: ReadinessPoller
    publisher: ImagePublisher
    project_root: Path
    redeploy: bool = False
    secret_factory: Callable[[], str] = field(default=generate_secret)

    @property
    def store(self) -> StateStore:
        return self.reconciler.store


def require(ctx: TaskContext, task_id: str) -> Any:
    """Output of dependency ``task_id``.

    Raises:
        DeploymentError: If the dependency produced no output
    """
    value = ctx.results.get(task_id)
    if value is None:
        raise DeploymentError(
            operation=ctx.task_id,
            message=f"Dependency '{task_id}' produced no output",
        )
    return value
