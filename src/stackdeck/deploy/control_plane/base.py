"""Base interface for cloud control-plane clients.

The orchestration core only talks to this interface, so tests can inject an
in-memory fake with controllable latency and failures, and any SDK- or
CLI-backed adapter can stand in for the AWS one.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

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

# Route 53 hosted zone id used for every CloudFront alias target
CLOUDFRONT_HOSTED_ZONE_ID = "Z2FDTNDATAQYW2"

# Home region of global services; CloudFront only accepts ACM certificates
# issued here
GLOBAL_REGION = "us-east-1"


@dataclass(frozen=True)
class Bucket:
    name: str


@dataclass(frozen=True)
class Distribution:
    id: str
    arn: str
    domain_name: str
    origin_id: str | None
    status: str
    enabled: bool = True
    etag: str | None = None


@dataclass(frozen=True)
class SecurityGroup:
    id: str
    name: str
    vpc_id: str | None = None


@dataclass(frozen=True)
class Vpc:
    id: str
    is_default: bool = False


@dataclass(frozen=True)
class Subnet:
    id: str
    availability_zone: str
    vpc_id: str | None = None


@dataclass(frozen=True)
class DatabaseInstance:
    identifier: str
    status: str
    arn: str | None = None
    host: str | None = None
    port: int | None = None
    db_name: str | None = None
    master_username: str | None = None

    @property
    def is_available(self) -> bool:
        return self.status == "available" and self.host is not None

    @property
    def is_failed(self) -> bool:
        return self.status in ("failed", "incompatible-parameters", "storage-full")


@dataclass(frozen=True)
class Cluster:
    name: str
    arn: str
    status: str


@dataclass(frozen=True)
class TaskDefinition:
    family: str
    arn: str
    revision: int


@dataclass(frozen=True)
class LoadBalancer:
    name: str
    arn: str
    dns_name: str
    hosted_zone_id: str
    state: str = "provisioning"


@dataclass(frozen=True)
class TargetGroup:
    name: str
    arn: str


@dataclass(frozen=True)
class Listener:
    arn: str
    load_balancer_arn: str
    protocol: str
    port: int


@dataclass(frozen=True)
class HostedZone:
    id: str
    name: str


@dataclass(frozen=True)
class Certificate:
    domain_name: str
    arn: str


@dataclass(frozen=True)
class ChangeInfo:
    id: str
    status: str
    extra: dict[str, Any] = field(default_factory=dict)


class ControlPlaneClient(ABC):
    """Abstract asynchronous cloud control-plane client.

    Implementations translate provider failures into the StackDeck error
    taxonomy: TransientControlPlaneError, ResourceConflict, ValidationError
    and DeploymentError. Lookups of a single missing resource return None
    or an empty list rather than raising.
    """

    async def close(self) -> None:  # noqa: B027
        """Release any held connections."""

    async def __aenter__(self) -> ControlPlaneClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # Static site storage

    @abstractmethod
    async def list_buckets(self) -> list[Bucket]:
        """List buckets owned by the account."""

    @abstractmethod
    async def create_bucket(self, spec: BucketSpec) -> Bucket:
        """Create a bucket."""

    @abstractmethod
    async def configure_website(self, spec: BucketSpec) -> None:
        """Enable static website hosting on a bucket."""

    @abstractmethod
    async def put_bucket_policy(self, bucket: str, policy: dict[str, Any]) -> None:
        """Attach a bucket policy."""

    @abstractmethod
    async def sync_directory(self, bucket: str, directory: Path) -> int:
        """Upload every file under ``directory``; return the file count."""

    @abstractmethod
    async def delete_bucket(self, bucket: str) -> None:
        """Empty and delete a bucket."""

    # CDN

    @abstractmethod
    async def list_distributions(self) -> list[Distribution]:
        """List CDN distributions."""

    @abstractmethod
    async def create_distribution(self, spec: DistributionSpec) -> Distribution:
        """Create a CDN distribution."""

    @abstractmethod
    async def get_distribution(self, distribution_id: str) -> Distribution | None:
        """Describe one distribution, including its current ETag."""

    @abstractmethod
    async def disable_distribution(self, distribution_id: str) -> Distribution:
        """Disable a distribution so it can be deleted once deployed."""

    @abstractmethod
    async def delete_distribution(self, distribution_id: str, etag: str) -> None:
        """Delete a disabled distribution."""

    # Network

    @abstractmethod
    async def list_security_groups(self) -> list[SecurityGroup]:
        """List security groups."""

    @abstractmethod
    async def create_security_group(self, spec: SecurityGroupSpec) -> SecurityGroup:
        """Create a security group (without ingress rules)."""

    @abstractmethod
    async def authorize_ingress(self, group_id: str, rules: list[IngressRule]) -> None:
        """Open inbound rules; rules that already exist are ignored."""

    @abstractmethod
    async def delete_security_group(self, group_id: str) -> None:
        """Delete a security group."""

    @abstractmethod
    async def describe_default_vpc(self) -> Vpc | None:
        """Return the account's default VPC."""

    @abstractmethod
    async def describe_subnets(self, vpc_id: str) -> list[Subnet]:
        """List subnets of a VPC."""

    # Databases

    @abstractmethod
    async def describe_databases(
        self, identifier: str | None = None
    ) -> list[DatabaseInstance]:
        """List database instances, or the one with ``identifier``."""

    @abstractmethod
    async def create_database(self, spec: DatabaseSpec) -> DatabaseInstance:
        """Start creating a database instance; it becomes available later."""

    @abstractmethod
    async def delete_database(self, identifier: str) -> None:
        """Start deleting a database instance without a final snapshot."""

    # Containers

    @abstractmethod
    async def describe_cluster(self, name: str) -> Cluster | None:
        """Describe a cluster by name."""

    @abstractmethod
    async def create_cluster(self, spec: ClusterSpec) -> Cluster:
        """Create a cluster."""

    @abstractmethod
    async def delete_cluster(self, name: str) -> None:
        """Delete a cluster."""

    @abstractmethod
    async def describe_task_definition(self, family: str) -> TaskDefinition | None:
        """Return the latest active revision of a task definition family."""

    @abstractmethod
    async def register_task_definition(
        self, spec: TaskDefinitionSpec
    ) -> TaskDefinition:
        """Register a new task definition revision."""

    @abstractmethod
    async def deregister_task_definition(self, arn: str) -> None:
        """Deregister a task definition revision."""

    # Load balancing

    @abstractmethod
    async def describe_load_balancers(
        self, name: str | None = None
    ) -> list[LoadBalancer]:
        """List load balancers, or the one called ``name``."""

    @abstractmethod
    async def create_load_balancer(self, spec: LoadBalancerSpec) -> LoadBalancer:
        """Create an application load balancer."""

    @abstractmethod
    async def delete_load_balancer(self, arn: str) -> None:
        """Delete a load balancer."""

    @abstractmethod
    async def describe_target_groups(
        self, name: str | None = None
    ) -> list[TargetGroup]:
        """List target groups, or the one called ``name``."""

    @abstractmethod
    async def create_target_group(self, spec: TargetGroupSpec) -> TargetGroup:
        """Create a target group."""

    @abstractmethod
    async def delete_target_group(self, arn: str) -> None:
        """Delete a target group."""

    @abstractmethod
    async def describe_listeners(self, load_balancer_arn: str) -> list[Listener]:
        """List the listeners of a load balancer."""

    @abstractmethod
    async def create_listener(self, spec: ListenerSpec) -> Listener:
        """Create a listener."""

    @abstractmethod
    async def delete_listener(self, arn: str) -> None:
        """Delete a listener."""

    # DNS and certificates

    @abstractmethod
    async def find_hosted_zone(self, domain: str) -> HostedZone | None:
        """Return the hosted zone serving ``domain``."""

    @abstractmethod
    async def change_resource_record_sets(self, spec: ChangeBatchSpec) -> ChangeInfo:
        """Submit an atomic change batch."""

    @abstractmethod
    async def list_certificates(self, region: str | None = None) -> list[Certificate]:
        """List issued certificates in ``region``, the client region when None."""

    @abstractmethod
    async def list_domains(self) -> list[str]:
        """List registered domains."""
