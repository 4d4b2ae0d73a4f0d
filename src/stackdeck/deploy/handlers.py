"""Resource handlers for each managed resource kind.

A handler knows how to find a resource by its logical name using the
provider's own naming convention, how to create it from a typed spec, and
how to delete it. Handlers are stateless apart from the control-plane client
and the poller used by deletions that must wait.
"""

from __future__ import annotations

from typing import Any

from stackdeck.deploy.control_plane.base import (
    Cluster,
    ControlPlaneClient,
    DatabaseInstance,
    Distribution,
    LoadBalancer,
)
from stackdeck.deploy.poller import ProbeResult, ReadinessPoller, ResourceRef
from stackdeck.deploy.reconciler import ResourceHandler
from stackdeck.lib.errors import ResourceNotFoundError
from stackdeck.models.resources import ResourceKind, ResourceRecord, ResourceStatus
from stackdeck.models.specs import (
    BucketSpec,
    ChangeBatchSpec,
    ClusterSpec,
    DatabaseSpec,
    DistributionSpec,
    ListenerSpec,
    LoadBalancerSpec,
    RecordSetChange,
    SecurityGroupSpec,
    TargetGroupSpec,
    TaskDefinitionSpec,
)


def public_read_policy(bucket: str) -> dict[str, Any]:
    """Bucket policy granting anonymous read access to every object."""
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Sid": "PublicReadGetObject",
                "Effect": "Allow",
                "Principal": "*",
                "Action": "s3:GetObject",
                "Resource": f"arn:aws:s3:::{bucket}/*",
            }
        ],
    }


def _record(
    kind: ResourceKind,
    logical_name: str,
    external_id: str,
    status: ResourceStatus = ResourceStatus.AVAILABLE,
    **attributes: Any,
) -> ResourceRecord:
    return ResourceRecord(
        kind=kind,
        logical_name=logical_name,
        external_id=external_id,
        status=status,
        attributes=attributes,
    )


class _Handler(ResourceHandler):
    def __init__(
        self, control_plane: ControlPlaneClient, poller: ReadinessPoller | None = None
    ) -> None:
        self.control_plane = control_plane
        self.poller = poller or ReadinessPoller()


class BucketHandler(_Handler):
    """Static website bucket, matched by bucket name."""

    kind = ResourceKind.BUCKET

    @staticmethod
    def _to_record(logical_name: str, name: str) -> ResourceRecord:
        return _record(
            ResourceKind.BUCKET,
            logical_name,
            name,
            bucket=name,
            origin_domain=f"{name}.s3.amazonaws.com",
        )

    async def find(self, logical_name: str, spec: BucketSpec) -> ResourceRecord | None:
        for bucket in await self.control_plane.list_buckets():
            if bucket.name == spec.name:
                return self._to_record(logical_name, bucket.name)
        return None

    async def create(self, logical_name: str, spec: BucketSpec) -> ResourceRecord:
        bucket = await self.control_plane.create_bucket(spec)
        return self._to_record(logical_name, bucket.name)

    async def converge(
        self, record: ResourceRecord, spec: BucketSpec
    ) -> ResourceRecord:
        """Website hosting and the public read policy, both plain PUTs."""
        await self.control_plane.configure_website(spec)
        if spec.public_read:
            await self.control_plane.put_bucket_policy(
                record.external_id, public_read_policy(record.external_id)
            )
        return record

    async def delete(self, record: ResourceRecord) -> None:
        await self.control_plane.delete_bucket(record.external_id)


class DistributionHandler(_Handler):
    """CDN distribution, matched by the id of its first origin."""

    kind = ResourceKind.DISTRIBUTION

    @staticmethod
    def _to_record(logical_name: str, dist: Distribution) -> ResourceRecord:
        return _record(
            ResourceKind.DISTRIBUTION,
            logical_name,
            dist.id,
            arn=dist.arn,
            domain_name=dist.domain_name,
            origin_id=dist.origin_id,
        )

    async def find(
        self, logical_name: str, spec: DistributionSpec
    ) -> ResourceRecord | None:
        for dist in await self.control_plane.list_distributions():
            if dist.origin_id == spec.origin_id:
                return self._to_record(logical_name, dist)
        return None

    async def create(self, logical_name: str, spec: DistributionSpec) -> ResourceRecord:
        dist = await self.control_plane.create_distribution(spec)
        return self._to_record(logical_name, dist)

    async def delete(self, record: ResourceRecord) -> None:
        """Disable, wait for the change to deploy, then delete."""
        dist_id = record.external_id
        current = await self.control_plane.get_distribution(dist_id)
        if current is None:
            raise ResourceNotFoundError(f"Distribution {dist_id} not found")
        if current.enabled:
            await self.control_plane.disable_distribution(dist_id)

        async def probe() -> ProbeResult:
            dist = await self.control_plane.get_distribution(dist_id)
            if dist is None:
                return ProbeResult.ready(detail="gone")
            if dist.status == "Deployed" and not dist.enabled:
                return ProbeResult.ready(detail=dist.status)
            return ProbeResult.pending(dist.status)

        await self.poller.wait_until_ready(
            ResourceRef(self.kind.value, record.logical_name), probe
        )
        latest = await self.control_plane.get_distribution(dist_id)
        if latest is None:
            return
        await self.control_plane.delete_distribution(dist_id, latest.etag or "")


class SecurityGroupHandler(_Handler):
    """Security group, matched by group name."""

    kind = ResourceKind.SECURITY_GROUP

    async def find(
        self, logical_name: str, spec: SecurityGroupSpec
    ) -> ResourceRecord | None:
        for group in await self.control_plane.list_security_groups():
            if group.name != spec.name:
                continue
            if spec.vpc_id and group.vpc_id and group.vpc_id != spec.vpc_id:
                continue
            return _record(
                self.kind, logical_name, group.id, group_name=group.name
            )
        return None

    async def create(
        self, logical_name: str, spec: SecurityGroupSpec
    ) -> ResourceRecord:
        group = await self.control_plane.create_security_group(spec)
        return _record(self.kind, logical_name, group.id, group_name=group.name)

    async def converge(
        self, record: ResourceRecord, spec: SecurityGroupSpec
    ) -> ResourceRecord:
        """Open the ingress rules; rules already open are skipped."""
        if spec.ingress:
            await self.control_plane.authorize_ingress(
                record.external_id, list(spec.ingress)
            )
        return record

    async def delete(self, record: ResourceRecord) -> None:
        await self.control_plane.delete_security_group(record.external_id)


class DatabaseHandler(_Handler):
    """Managed database instance, matched by instance identifier.

    A created database is recorded while still provisioning, together with
    the generated master password, so a resumed run can finish waiting on it.
    An adopted database has no known password.
    """

    kind = ResourceKind.DATABASE

    @staticmethod
    def to_record(
        logical_name: str,
        instance: DatabaseInstance,
        spec: DatabaseSpec,
        password: str | None,
    ) -> ResourceRecord:
        status = (
            ResourceStatus.AVAILABLE
            if instance.is_available
            else ResourceStatus.CREATING
        )
        return _record(
            ResourceKind.DATABASE,
            logical_name,
            instance.identifier,
            status,
            role=spec.role,
            db_name=instance.db_name or spec.db_name,
            user=instance.master_username or spec.master_username,
            password=password,
            host=instance.host,
            port=instance.port or spec.port,
            arn=instance.arn,
        )

    async def find(
        self, logical_name: str, spec: DatabaseSpec
    ) -> ResourceRecord | None:
        for instance in await self.control_plane.describe_databases(spec.identifier):
            if instance.identifier == spec.identifier:
                return self.to_record(logical_name, instance, spec, password=None)
        return None

    async def create(self, logical_name: str, spec: DatabaseSpec) -> ResourceRecord:
        instance = await self.control_plane.create_database(spec)
        return self.to_record(logical_name, instance, spec, spec.master_password)

    async def delete(self, record: ResourceRecord) -> None:
        """Delete without a final snapshot and wait until the instance is gone."""
        identifier = record.external_id
        await self.control_plane.delete_database(identifier)

        async def probe() -> ProbeResult:
            remaining = await self.control_plane.describe_databases(identifier)
            if not remaining:
                return ProbeResult.ready(detail="deleted")
            return ProbeResult.pending(remaining[0].status)

        await self.poller.wait_until_ready(
            ResourceRef(self.kind.value, record.logical_name), probe
        )


class ClusterHandler(_Handler):
    """Container cluster, matched by cluster name."""

    kind = ResourceKind.CLUSTER

    @staticmethod
    def to_record(logical_name: str, cluster: Cluster) -> ResourceRecord:
        status = (
            ResourceStatus.AVAILABLE
            if cluster.status == "ACTIVE"
            else ResourceStatus.CREATING
        )
        return _record(
            ResourceKind.CLUSTER,
            logical_name,
            cluster.arn,
            status,
            name=cluster.name,
        )

    async def find(self, logical_name: str, spec: ClusterSpec) -> ResourceRecord | None:
        cluster = await self.control_plane.describe_cluster(spec.name)
        return self.to_record(logical_name, cluster) if cluster else None

    async def create(self, logical_name: str, spec: ClusterSpec) -> ResourceRecord:
        cluster = await self.control_plane.create_cluster(spec)
        return self.to_record(logical_name, cluster)

    async def delete(self, record: ResourceRecord) -> None:
        await self.control_plane.delete_cluster(
            record.attributes.get("name", record.logical_name)
        )


class TaskDefinitionHandler(_Handler):
    """Task definition family.

    The external id is the family name; each registration refreshes the
    recorded revision ARN.
    """

    kind = ResourceKind.TASK_DEFINITION

    async def find(
        self, logical_name: str, spec: TaskDefinitionSpec
    ) -> ResourceRecord | None:
        definition = await self.control_plane.describe_task_definition(spec.family)
        if definition is None:
            return None
        return _record(
            self.kind,
            logical_name,
            definition.family,
            arn=definition.arn,
            revision=definition.revision,
        )

    async def create(
        self, logical_name: str, spec: TaskDefinitionSpec
    ) -> ResourceRecord:
        definition = await self.control_plane.register_task_definition(spec)
        return _record(
            self.kind,
            logical_name,
            definition.family,
            arn=definition.arn,
            revision=definition.revision,
            images=[c.image for c in spec.containers],
        )

    async def delete(self, record: ResourceRecord) -> None:
        arn = record.attributes.get("arn")
        if not arn:
            raise ResourceNotFoundError(f"No revision recorded for {record.key}")
        await self.control_plane.deregister_task_definition(arn)


class LoadBalancerHandler(_Handler):
    """Application load balancer, matched by name."""

    kind = ResourceKind.LOAD_BALANCER

    @staticmethod
    def to_record(logical_name: str, lb: LoadBalancer) -> ResourceRecord:
        status = (
            ResourceStatus.AVAILABLE
            if lb.state == "active"
            else ResourceStatus.CREATING
        )
        return _record(
            ResourceKind.LOAD_BALANCER,
            logical_name,
            lb.arn,
            status,
            name=lb.name,
            dns_name=lb.dns_name,
            hosted_zone_id=lb.hosted_zone_id,
        )

    async def find(
        self, logical_name: str, spec: LoadBalancerSpec
    ) -> ResourceRecord | None:
        for lb in await self.control_plane.describe_load_balancers(spec.name):
            if lb.name == spec.name:
                return self.to_record(logical_name, lb)
        return None

    async def create(
        self, logical_name: str, spec: LoadBalancerSpec
    ) -> ResourceRecord:
        lb = await self.control_plane.create_load_balancer(spec)
        return self.to_record(logical_name, lb)

    async def delete(self, record: ResourceRecord) -> None:
        """Delete and wait until the load balancer no longer exists."""
        await self.control_plane.delete_load_balancer(record.external_id)
        name = record.attributes.get("name", record.logical_name)

        async def probe() -> ProbeResult:
            remaining = await self.control_plane.describe_load_balancers(name)
            if not remaining:
                return ProbeResult.ready(detail="deleted")
            return ProbeResult.pending(remaining[0].state)

        await self.poller.wait_until_ready(
            ResourceRef(self.kind.value, record.logical_name), probe
        )


class TargetGroupHandler(_Handler):
    """Load balancer target group, matched by name."""

    kind = ResourceKind.TARGET_GROUP

    async def find(
        self, logical_name: str, spec: TargetGroupSpec
    ) -> ResourceRecord | None:
        for group in await self.control_plane.describe_target_groups(spec.name):
            if group.name == spec.name:
                return _record(self.kind, logical_name, group.arn, name=group.name)
        return None

    async def create(self, logical_name: str, spec: TargetGroupSpec) -> ResourceRecord:
        group = await self.control_plane.create_target_group(spec)
        return _record(self.kind, logical_name, group.arn, name=group.name)

    async def delete(self, record: ResourceRecord) -> None:
        await self.control_plane.delete_target_group(record.external_id)


class ListenerHandler(_Handler):
    """Load balancer listener, matched by port on its load balancer."""

    kind = ResourceKind.LISTENER

    async def find(
        self, logical_name: str, spec: ListenerSpec
    ) -> ResourceRecord | None:
        listeners = await self.control_plane.describe_listeners(spec.load_balancer_arn)
        for listener in listeners:
            if listener.port == spec.port:
                return _record(
                    self.kind,
                    logical_name,
                    listener.arn,
                    protocol=listener.protocol,
                    port=listener.port,
                )
        return None

    async def create(self, logical_name: str, spec: ListenerSpec) -> ResourceRecord:
        listener = await self.control_plane.create_listener(spec)
        return _record(
            self.kind,
            logical_name,
            listener.arn,
            protocol=listener.protocol,
            port=listener.port,
        )

    async def delete(self, record: ResourceRecord) -> None:
        await self.control_plane.delete_listener(record.external_id)


class RecordSetHandler(_Handler):
    """Alias record batch in a hosted zone.

    Submissions are UPSERTs, so there is nothing to adopt: re-submitting an
    unrecorded batch converges on the same records. The applied changes are
    kept in the record so teardown can submit the matching DELETE batch.
    """

    kind = ResourceKind.RECORD_SET

    async def find(
        self, logical_name: str, spec: ChangeBatchSpec
    ) -> ResourceRecord | None:
        return None

    async def create(self, logical_name: str, spec: ChangeBatchSpec) -> ResourceRecord:
        info = await self.control_plane.change_resource_record_sets(spec)
        return _record(
            self.kind,
            logical_name,
            f"{spec.hosted_zone_id}/{logical_name}",
            hosted_zone_id=spec.hosted_zone_id,
            change_id=info.id,
            changes=[change.model_dump(mode="json") for change in spec.changes],
        )

    async def delete(self, record: ResourceRecord) -> None:
        changes = [
            RecordSetChange(**{**change, "action": "DELETE"})
            for change in record.attributes.get("changes", [])
        ]
        if not changes:
            raise ResourceNotFoundError(f"No record changes stored for {record.key}")
        await self.control_plane.change_resource_record_sets(
            ChangeBatchSpec(
                hosted_zone_id=record.attributes["hosted_zone_id"],
                changes=changes,
                comment=f"stackdeck teardown of {record.logical_name}",
            )
        )


HANDLER_TYPES: tuple[type[_Handler], ...] = (
    BucketHandler,
    DistributionHandler,
    SecurityGroupHandler,
    DatabaseHandler,
    ClusterHandler,
    TaskDefinitionHandler,
    LoadBalancerHandler,
    TargetGroupHandler,
    ListenerHandler,
    RecordSetHandler,
)


def create_handlers(
    control_plane: ControlPlaneClient, poller: ReadinessPoller | None = None
) -> list[ResourceHandler]:
    """Instantiate one handler per managed resource kind."""
    return [handler_type(control_plane, poller) for handler_type in HANDLER_TYPES]
