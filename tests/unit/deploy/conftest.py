"""Shared fixtures for deployment engine tests.

``FakeControlPlane`` keeps every resource in memory, records each call by
method name, and supports injected latency and queued failures so the
scheduler, reconciler and task library can be exercised without AWS.
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from stackdeck.deploy.builder import ImagePublisher, PushResult
from stackdeck.deploy.control_plane.base import (
    Bucket,
    Certificate,
    ChangeInfo,
    Cluster,
    ControlPlaneClient,
    DatabaseInstance,
    Distribution,
    HostedZone,
    Listener,
    LoadBalancer,
    SecurityGroup,
    Subnet,
    TargetGroup,
    TaskDefinition,
    Vpc,
)
from stackdeck.deploy.handlers import create_handlers
from stackdeck.deploy.plans import create_environment, identity_for
from stackdeck.deploy.poller import ReadinessPoller
from stackdeck.deploy.reconciler import ResourceReconciler
from stackdeck.deploy.state import StateStore
from stackdeck.deploy.tasks.base import DeploymentEnv
from stackdeck.lib.errors import ResourceConflict, ResourceNotFoundError
from stackdeck.models.descriptor import DeploymentDescriptor
from stackdeck.models.project import ProjectConfig
from stackdeck.models.specs import (
    BucketSpec,
    ChangeBatchSpec,
    ClusterSpec,
    DatabaseSpec,
    DistributionSpec,
    IngressRule,
    ListenerSpec,
    LoadBalancerSpec,
    SecurityGroupSpec,
    TargetGroupSpec,
    TaskDefinitionSpec,
)
from stackdeck.models.topology import ComposeService, ServiceTopology

CERTIFICATE_ARN = "arn:aws:acm:us-east-1:123456789012:certificate/abc-123"


class FakeControlPlane(ControlPlaneClient):
    """In-memory control plane.

    Attributes:
        calls: Method names in call order
        latency: Seconds (or a callable returning seconds) awaited per call
        database_pending_probes: Describe calls a new database stays creating
        balancer_pending_probes: Describe calls a new load balancer stays
            provisioning
    """

    def __init__(self, latency: float | Callable[[], float] = 0.0) -> None:
        self.calls: list[str] = []
        self.latency = latency
        self.failures: dict[str, list[BaseException]] = {}
        self.database_pending_probes = 0
        self.balancer_pending_probes = 0
        self._ids = itertools.count(1)

        self.buckets: dict[str, int] = {}
        self.distributions: dict[str, Distribution] = {}
        self.security_groups: dict[str, SecurityGroup] = {}
        self.ingress: dict[str, list[IngressRule]] = {}
        self.vpc: Vpc | None = Vpc(id="vpc-1", is_default=True)
        self.subnets = [
            Subnet(id="subnet-a", availability_zone="us-east-1a", vpc_id="vpc-1"),
            Subnet(id="subnet-b", availability_zone="us-east-1b", vpc_id="vpc-1"),
            Subnet(id="subnet-c", availability_zone="us-east-1a", vpc_id="vpc-1"),
        ]
        self.databases: dict[str, DatabaseInstance] = {}
        self._database_probes: dict[str, int] = {}
        self.clusters: dict[str, Cluster] = {}
        self.task_definitions: dict[str, TaskDefinition] = {}
        self.registered: list[TaskDefinitionSpec] = []
        self.deregistered: list[str] = []
        self.load_balancers: dict[str, LoadBalancer] = {}
        self._balancer_probes: dict[str, int] = {}
        self.target_groups: dict[str, TargetGroup] = {}
        self.listeners: dict[str, Listener] = {}
        self.hosted_zones: dict[str, HostedZone] = {
            "example.org": HostedZone(id="Z123", name="example.org.")
        }
        self.change_batches: list[ChangeBatchSpec] = []
        self.certificates = [
            Certificate(domain_name="example.org", arn=CERTIFICATE_ARN)
        ]
        self.certificate_regions: list[str | None] = []
        self.registered_domains = ["example.org"]

    def fail_next(self, method: str, *errors: BaseException) -> None:
        """Queue errors raised by the next calls of ``method``."""
        self.failures.setdefault(method, []).extend(errors)

    def count(self, method: str) -> int:
        return self.calls.count(method)

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    async def _call(self, method: str) -> None:
        self.calls.append(method)
        delay = self.latency() if callable(self.latency) else self.latency
        await asyncio.sleep(delay)
        queued = self.failures.get(method)
        if queued:
            raise queued.pop(0)

    # Static site storage

    async def list_buckets(self) -> list[Bucket]:
        await self._call("list_buckets")
        return [Bucket(name=name) for name in self.buckets]

    async def create_bucket(self, spec: BucketSpec) -> Bucket:
        await self._call("create_bucket")
        if spec.name in self.buckets:
            raise ResourceConflict(f"BucketAlreadyOwnedByYou: {spec.name}")
        self.buckets[spec.name] = 0
        return Bucket(name=spec.name)

    async def configure_website(self, spec: BucketSpec) -> None:
        await self._call("configure_website")

    async def put_bucket_policy(self, bucket: str, policy: dict[str, Any]) -> None:
        await self._call("put_bucket_policy")

    async def sync_directory(self, bucket: str, directory: Path) -> int:
        await self._call("sync_directory")
        count = sum(1 for path in directory.rglob("*") if path.is_file())
        self.buckets[bucket] = count
        return count

    async def delete_bucket(self, bucket: str) -> None:
        await self._call("delete_bucket")
        if self.buckets.pop(bucket, None) is None:
            raise ResourceNotFoundError(f"NoSuchBucket: {bucket}")

    # CDN

    async def list_distributions(self) -> list[Distribution]:
        await self._call("list_distributions")
        return list(self.distributions.values())

    async def create_distribution(self, spec: DistributionSpec) -> Distribution:
        await self._call("create_distribution")
        dist_id = self._next_id("E")
        dist = Distribution(
            id=dist_id,
            arn=f"arn:aws:cloudfront::123456789012:distribution/{dist_id}",
            domain_name=f"{dist_id.lower()}.cloudfront.net",
            origin_id=spec.origin_id,
            status="InProgress",
            enabled=True,
            etag="ETAG1",
        )
        self.distributions[dist_id] = dist
        return dist

    async def get_distribution(self, distribution_id: str) -> Distribution | None:
        await self._call("get_distribution")
        return self.distributions.get(distribution_id)

    async def disable_distribution(self, distribution_id: str) -> Distribution:
        await self._call("disable_distribution")
        current = self.distributions[distribution_id]
        disabled = Distribution(
            id=current.id,
            arn=current.arn,
            domain_name=current.domain_name,
            origin_id=current.origin_id,
            status="Deployed",
            enabled=False,
            etag="ETAG2",
        )
        self.distributions[distribution_id] = disabled
        return disabled

    async def delete_distribution(self, distribution_id: str, etag: str) -> None:
        await self._call("delete_distribution")
        if self.distributions.pop(distribution_id, None) is None:
            raise ResourceNotFoundError(f"NoSuchDistribution: {distribution_id}")

    # Network

    async def list_security_groups(self) -> list[SecurityGroup]:
        await self._call("list_security_groups")
        return list(self.security_groups.values())

    async def create_security_group(self, spec: SecurityGroupSpec) -> SecurityGroup:
        await self._call("create_security_group")
        if any(g.name == spec.name for g in self.security_groups.values()):
            raise ResourceConflict(f"InvalidGroup.Duplicate: {spec.name}")
        group = SecurityGroup(
            id=self._next_id("sg"), name=spec.name, vpc_id=spec.vpc_id
        )
        self.security_groups[group.id] = group
        return group

    async def authorize_ingress(self, group_id: str, rules: list[IngressRule]) -> None:
        await self._call("authorize_ingress")
        opened = self.ingress.setdefault(group_id, [])
        opened.extend(rule for rule in rules if rule not in opened)

    async def delete_security_group(self, group_id: str) -> None:
        await self._call("delete_security_group")
        if self.security_groups.pop(group_id, None) is None:
            raise ResourceNotFoundError(f"InvalidGroup.NotFound: {group_id}")

    async def describe_default_vpc(self) -> Vpc | None:
        await self._call("describe_default_vpc")
        return self.vpc

    async def describe_subnets(self, vpc_id: str) -> list[Subnet]:
        await self._call("describe_subnets")
        return [s for s in self.subnets if s.vpc_id == vpc_id]

    # Databases

    async def describe_databases(
        self, identifier: str | None = None
    ) -> list[DatabaseInstance]:
        await self._call("describe_databases")
        found = [
            db
            for db in self.databases.values()
            if identifier is None or db.identifier == identifier
        ]
        result = []
        for db in found:
            if db.status == "creating":
                remaining = self._database_probes.get(db.identifier, 0)
                if remaining > 0:
                    self._database_probes[db.identifier] = remaining - 1
                else:
                    db = DatabaseInstance(
                        identifier=db.identifier,
                        status="available",
                        arn=db.arn,
                        host=f"{db.identifier}.db.internal",
                        port=db.port,
                        db_name=db.db_name,
                        master_username=db.master_username,
                    )
                    self.databases[db.identifier] = db
            elif db.status == "deleting":
                del self.databases[db.identifier]
                continue
            result.append(db)
        return result

    async def create_database(self, spec: DatabaseSpec) -> DatabaseInstance:
        await self._call("create_database")
        if spec.identifier in self.databases:
            raise ResourceConflict(f"DBInstanceAlreadyExists: {spec.identifier}")
        db = DatabaseInstance(
            identifier=spec.identifier,
            status="creating",
            arn=f"arn:aws:rds:us-east-1:123456789012:db:{spec.identifier}",
            port=spec.port,
            db_name=spec.db_name,
            master_username=spec.master_username,
        )
        self.databases[spec.identifier] = db
        self._database_probes[spec.identifier] = self.database_pending_probes
        return db

    async def delete_database(self, identifier: str) -> None:
        await self._call("delete_database")
        current = self.databases.get(identifier)
        if current is None:
            raise ResourceNotFoundError(f"DBInstanceNotFound: {identifier}")
        self.databases[identifier] = DatabaseInstance(
            identifier=identifier, status="deleting", arn=current.arn
        )

    # Containers

    async def describe_cluster(self, name: str) -> Cluster | None:
        await self._call("describe_cluster")
        return self.clusters.get(name)

    async def create_cluster(self, spec: ClusterSpec) -> Cluster:
        await self._call("create_cluster")
        cluster = Cluster(
            name=spec.name,
            arn=f"arn:aws:ecs:us-east-1:123456789012:cluster/{spec.name}",
            status="ACTIVE",
        )
        self.clusters[spec.name] = cluster
        return cluster

    async def delete_cluster(self, name: str) -> None:
        await self._call("delete_cluster")
        if self.clusters.pop(name, None) is None:
            raise ResourceNotFoundError(f"ClusterNotFoundException: {name}")

    async def describe_task_definition(self, family: str) -> TaskDefinition | None:
        await self._call("describe_task_definition")
        return self.task_definitions.get(family)

    async def register_task_definition(
        self, spec: TaskDefinitionSpec
    ) -> TaskDefinition:
        await self._call("register_task_definition")
        previous = self.task_definitions.get(spec.family)
        revision = previous.revision + 1 if previous else 1
        definition = TaskDefinition(
            family=spec.family,
            arn=(
                "arn:aws:ecs:us-east-1:123456789012:task-definition/"
                f"{spec.family}:{revision}"
            ),
            revision=revision,
        )
        self.task_definitions[spec.family] = definition
        self.registered.append(spec)
        return definition

    async def deregister_task_definition(self, arn: str) -> None:
        await self._call("deregister_task_definition")
        self.deregistered.append(arn)

    # Load balancing

    async def describe_load_balancers(
        self, name: str | None = None
    ) -> list[LoadBalancer]:
        await self._call("describe_load_balancers")
        result = []
        for lb in list(self.load_balancers.values()):
            if name is not None and lb.name != name:
                continue
            if lb.state == "provisioning":
                remaining = self._balancer_probes.get(lb.name, 0)
                if remaining > 0:
                    self._balancer_probes[lb.name] = remaining - 1
                else:
                    lb = LoadBalancer(
                        name=lb.name,
                        arn=lb.arn,
                        dns_name=lb.dns_name,
                        hosted_zone_id=lb.hosted_zone_id,
                        state="active",
                    )
                    self.load_balancers[lb.arn] = lb
            result.append(lb)
        return result

    async def create_load_balancer(self, spec: LoadBalancerSpec) -> LoadBalancer:
        await self._call("create_load_balancer")
        if any(lb.name == spec.name for lb in self.load_balancers.values()):
            raise ResourceConflict(f"DuplicateLoadBalancerName: {spec.name}")
        arn = f"arn:aws:elasticloadbalancing:us-east-1:1:loadbalancer/{spec.name}"
        lb = LoadBalancer(
            name=spec.name,
            arn=arn,
            dns_name=f"{spec.name.lower()}.elb.amazonaws.com",
            hosted_zone_id="ZELB",
            state="provisioning",
        )
        self.load_balancers[arn] = lb
        self._balancer_probes[spec.name] = self.balancer_pending_probes
        return lb

    async def delete_load_balancer(self, arn: str) -> None:
        await self._call("delete_load_balancer")
        if self.load_balancers.pop(arn, None) is None:
            raise ResourceNotFoundError(f"LoadBalancerNotFound: {arn}")

    async def describe_target_groups(
        self, name: str | None = None
    ) -> list[TargetGroup]:
        await self._call("describe_target_groups")
        return [
            g for g in self.target_groups.values() if name is None or g.name == name
        ]

    async def create_target_group(self, spec: TargetGroupSpec) -> TargetGroup:
        await self._call("create_target_group")
        group = TargetGroup(
            name=spec.name,
            arn=f"arn:aws:elasticloadbalancing:us-east-1:1:targetgroup/{spec.name}",
        )
        self.target_groups[group.arn] = group
        return group

    async def delete_target_group(self, arn: str) -> None:
        await self._call("delete_target_group")
        if self.target_groups.pop(arn, None) is None:
            raise ResourceNotFoundError(f"TargetGroupNotFound: {arn}")

    async def describe_listeners(self, load_balancer_arn: str) -> list[Listener]:
        await self._call("describe_listeners")
        return [
            listener
            for listener in self.listeners.values()
            if listener.load_balancer_arn == load_balancer_arn
        ]

    async def create_listener(self, spec: ListenerSpec) -> Listener:
        await self._call("create_listener")
        listener = Listener(
            arn=self._next_id("listener"),
            load_balancer_arn=spec.load_balancer_arn,
            protocol=spec.protocol,
            port=spec.port,
        )
        self.listeners[listener.arn] = listener
        return listener

    async def delete_listener(self, arn: str) -> None:
        await self._call("delete_listener")
        if self.listeners.pop(arn, None) is None:
            raise ResourceNotFoundError(f"ListenerNotFound: {arn}")

    # DNS and certificates

    async def find_hosted_zone(self, domain: str) -> HostedZone | None:
        await self._call("find_hosted_zone")
        return self.hosted_zones.get(domain)

    async def change_resource_record_sets(self, spec: ChangeBatchSpec) -> ChangeInfo:
        await self._call("change_resource_record_sets")
        self.change_batches.append(spec)
        return ChangeInfo(id=self._next_id("change"), status="PENDING")

    async def list_certificates(self, region: str | None = None) -> list[Certificate]:
        await self._call("list_certificates")
        self.certificate_regions.append(region)
        return list(self.certificates)

    async def list_domains(self) -> list[str]:
        await self._call("list_domains")
        return list(self.registered_domains)


class RecordingSleep:
    """Sleep replacement that records delays and returns immediately."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture
def fake_cloud() -> FakeControlPlane:
    """In-memory control plane with no latency."""
    return FakeControlPlane()


@pytest.fixture
def fake_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def store(tmp_path: Path) -> StateStore:
    """Descriptor store backed by a file in a temporary directory."""
    state = StateStore(tmp_path / ".stackdeck" / "deployment.json")
    state.load()
    return state


@pytest.fixture
def fast_poller(fake_sleep: RecordingSleep) -> ReadinessPoller:
    return ReadinessPoller(interval=1.0, max_attempts=5, sleep=fake_sleep)


@pytest.fixture
def reconciler(
    store: StateStore,
    fake_cloud: FakeControlPlane,
    fast_poller: ReadinessPoller,
    fake_sleep: RecordingSleep,
) -> ResourceReconciler:
    """Reconciler with every handler registered against the fake cloud."""
    return ResourceReconciler(
        store,
        create_handlers(fake_cloud, fast_poller),
        max_retries=2,
        retry_backoff=1.0,
        sleep=fake_sleep,
    )


@pytest.fixture
def project_config() -> ProjectConfig:
    """Minimal project on the default domain."""
    return ProjectConfig(
        name="My Study",
        registry={"id": "mylab"},
        aws={"profile": "default", "region": "us-east-1"},
        polling={"interval": 1, "max_attempts": 5},
        max_retries=1,
        retry_backoff=0,
    )


@pytest.fixture
def custom_domain_config(project_config: ProjectConfig) -> ProjectConfig:
    """Same project bound to example.org with a certificate."""
    data = project_config.model_dump()
    data["aws"].update(domain="example.org", certificate_arn=CERTIFICATE_ARN)
    return ProjectConfig(**data)


@pytest.fixture
def mock_publisher() -> MagicMock:
    """Image publisher that never touches Docker."""
    publisher = MagicMock(spec=ImagePublisher)
    publisher.registry_id = "mylab"
    publisher.tag_name = "latest"
    publisher.image_ref.side_effect = lambda service: f"mylab/{service}:latest"
    publisher.build = AsyncMock(return_value=MagicMock(log_lines=["Step 1/1"]))
    publisher.tag = AsyncMock(return_value="mylab/worker:latest")
    publisher.push = AsyncMock(
        side_effect=lambda service: PushResult(
            image=f"mylab/{service}:latest", digest="sha256:abc"
        )
    )
    return publisher


@pytest.fixture
def site_root(tmp_path: Path) -> Path:
    """Project root with a built front end."""
    build = tmp_path / "front-end" / "build"
    build.mkdir(parents=True)
    (build / "index.html").write_text("<html></html>")
    (build / "app.js").write_text("console.log('hi')")
    return tmp_path


def make_topology(worker_count: int) -> ServiceTopology:
    """Topology with ``worker_count`` workers and one non-worker service."""
    services = [ComposeService(name="message-queue", image="rabbitmq:3")]
    services += [
        ComposeService(
            name=f"exp{i}_worker",
            image=f"exp{i}_worker",
            labels={"isPushkinWorker": True},
        )
        for i in range(worker_count)
    ]
    return ServiceTopology(services=services)


@pytest.fixture
def make_env(
    store: StateStore,
    fake_cloud: FakeControlPlane,
    mock_publisher: MagicMock,
    site_root: Path,
    fake_sleep: RecordingSleep,
) -> Callable[..., DeploymentEnv]:
    """Factory for a deployment environment wired to the fakes."""

    def _make(
        project: ProjectConfig,
        workers: int = 1,
        descriptor: DeploymentDescriptor | None = None,
        **overrides: Any,
    ) -> DeploymentEnv:
        identity = identity_for(project, descriptor or store.snapshot())
        env = create_environment(
            project,
            make_topology(workers),
            site_root,
            store,
            fake_cloud,
            identity,
            publisher=mock_publisher,
            **overrides,
        )
        env.poller._sleep = fake_sleep
        env.reconciler._sleep = fake_sleep
        return env

    return _make
