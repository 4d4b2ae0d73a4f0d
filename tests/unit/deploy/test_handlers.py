"""Unit tests for the per-kind resource handlers."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from stackdeck.deploy.handlers import (
    HANDLER_TYPES,
    BucketHandler,
    DatabaseHandler,
    DistributionHandler,
    ListenerHandler,
    LoadBalancerHandler,
    RecordSetHandler,
    SecurityGroupHandler,
    TaskDefinitionHandler,
    create_handlers,
    public_read_policy,
)
from stackdeck.deploy.poller import ReadinessPoller
from stackdeck.lib.errors import ResourceNotFoundError
from stackdeck.models.resources import ResourceKind, ResourceRecord, ResourceStatus
from stackdeck.models.specs import (
    BucketSpec,
    ChangeBatchSpec,
    DatabaseSpec,
    DistributionSpec,
    IngressRule,
    ListenerSpec,
    LoadBalancerSpec,
    RecordSetChange,
    SecurityGroupSpec,
)

if TYPE_CHECKING:
    from tests.unit.deploy.conftest import FakeControlPlane


def _db_spec(identifier: str = "mystudymain") -> DatabaseSpec:
    return DatabaseSpec(
        identifier=identifier,
        db_name="MyStudyMain",
        role="Main",
        master_password="generated-secret",
    )


class TestHandlerRegistry:
    """Tests for handler construction."""

    def test_one_handler_per_managed_kind(
        self, fake_cloud: FakeControlPlane
    ) -> None:
        """Every kind created in the control plane has exactly one handler."""
        kinds = [handler.kind for handler in create_handlers(fake_cloud)]

        assert len(kinds) == len(set(kinds)) == len(HANDLER_TYPES)
        assert ResourceKind.VPC not in kinds
        assert ResourceKind.IMAGE not in kinds

    def test_public_read_policy_targets_objects(self) -> None:
        """The policy grants read access to every object in the bucket."""
        statement = public_read_policy("proj-site")["Statement"][0]

        assert statement["Action"] == "s3:GetObject"
        assert statement["Resource"] == "arn:aws:s3:::proj-site/*"


class TestBucketHandler:
    """Tests for website buckets."""

    @pytest.mark.asyncio
    async def test_create_only_creates(self, fake_cloud: FakeControlPlane) -> None:
        """Creation is a single call; configuration happens in converge."""
        handler = BucketHandler(fake_cloud)

        record = await handler.create("proj-site", BucketSpec(name="proj-site"))

        assert fake_cloud.calls == ["create_bucket"]
        assert record.attributes["origin_domain"] == "proj-site.s3.amazonaws.com"

    @pytest.mark.asyncio
    async def test_converge_configures_website_and_policy(
        self, fake_cloud: FakeControlPlane
    ) -> None:
        """A bucket is configured for static hosting and public read."""
        handler = BucketHandler(fake_cloud)
        spec = BucketSpec(name="proj-site")
        record = await handler.create("proj-site", spec)

        converged = await handler.converge(record, spec)

        assert fake_cloud.calls == [
            "create_bucket",
            "configure_website",
            "put_bucket_policy",
        ]
        assert converged == record

    @pytest.mark.asyncio
    async def test_private_bucket_has_no_policy(
        self, fake_cloud: FakeControlPlane
    ) -> None:
        """Buckets without public read get no policy."""
        handler = BucketHandler(fake_cloud)
        spec = BucketSpec(name="private-bucket", public_read=False)
        record = await handler.create("private-bucket", spec)

        await handler.converge(record, spec)

        assert "configure_website" in fake_cloud.calls
        assert "put_bucket_policy" not in fake_cloud.calls

    @pytest.mark.asyncio
    async def test_find_matches_name(self, fake_cloud: FakeControlPlane) -> None:
        """Only a bucket with the exact name is found."""
        fake_cloud.buckets = {"proj-site-old": 0}
        handler = BucketHandler(fake_cloud)

        assert await handler.find("proj-site", BucketSpec(name="proj-site")) is None


class TestDistributionHandler:
    """Tests for CDN distributions."""

    @pytest.mark.asyncio
    async def test_find_matches_origin(self, fake_cloud: FakeControlPlane) -> None:
        """Distributions are matched by origin id."""
        handler = DistributionHandler(fake_cloud)
        spec = DistributionSpec(
            origin_id="proj-site", origin_domain="proj-site.s3.amazonaws.com"
        )
        created = await handler.create("proj-site", spec)

        found = await handler.find("proj-site", spec)

        assert found is not None
        assert found.external_id == created.external_id
        assert found.attributes["domain_name"].endswith(".cloudfront.net")

    @pytest.mark.asyncio
    async def test_delete_disables_first(
        self, fake_cloud: FakeControlPlane, fast_poller: ReadinessPoller
    ) -> None:
        """An enabled distribution is disabled and deleted with the new etag."""
        handler = DistributionHandler(fake_cloud, fast_poller)
        record = await handler.create(
            "proj-site",
            DistributionSpec(origin_id="proj-site", origin_domain="o.example"),
        )
        fake_cloud.calls.clear()

        await handler.delete(record)

        assert fake_cloud.calls[:2] == ["get_distribution", "disable_distribution"]
        assert fake_cloud.calls[-1] == "delete_distribution"
        assert fake_cloud.distributions == {}

    @pytest.mark.asyncio
    async def test_delete_missing_raises_not_found(
        self, fake_cloud: FakeControlPlane
    ) -> None:
        """A distribution that no longer exists is reported as not found."""
        record = ResourceRecord(
            kind=ResourceKind.DISTRIBUTION, logical_name="s", external_id="E404"
        )

        with pytest.raises(ResourceNotFoundError):
            await DistributionHandler(fake_cloud).delete(record)


class TestSecurityGroupHandler:
    """Tests for security groups."""

    @pytest.mark.asyncio
    async def test_converge_authorizes_ingress_once(
        self, fake_cloud: FakeControlPlane
    ) -> None:
        """Ingress rules are applied to the group and survive a repeat."""
        spec = SecurityGroupSpec(
            name="DatabaseGroup",
            description="db",
            vpc_id="vpc-1",
            ingress=[IngressRule(from_port=5432, to_port=5432)],
        )

        handler = SecurityGroupHandler(fake_cloud)
        record = await handler.create("DatabaseGroup", spec)
        assert fake_cloud.ingress == {}

        await handler.converge(record, spec)
        await handler.converge(record, spec)

        assert [r.from_port for r in fake_cloud.ingress[record.external_id]] == [5432]
        assert record.attributes["group_name"] == "DatabaseGroup"

    @pytest.mark.asyncio
    async def test_group_in_other_vpc_is_ignored(
        self, fake_cloud: FakeControlPlane
    ) -> None:
        """A same-named group in another VPC is not adopted."""
        handler = SecurityGroupHandler(fake_cloud)
        await handler.create(
            "ECSGroup", SecurityGroupSpec(name="ECSGroup", description="x", vpc_id="v2")
        )

        found = await handler.find(
            "ECSGroup",
            SecurityGroupSpec(name="ECSGroup", description="x", vpc_id="vpc-1"),
        )

        assert found is None


class TestDatabaseHandler:
    """Tests for database instances."""

    @pytest.mark.asyncio
    async def test_created_record_keeps_password(
        self, fake_cloud: FakeControlPlane
    ) -> None:
        """A created database records the generated password while creating."""
        record = await DatabaseHandler(fake_cloud).create("Main", _db_spec())

        assert record.status is ResourceStatus.CREATING
        assert record.attributes["password"] == "generated-secret"
        assert record.attributes["host"] is None

    @pytest.mark.asyncio
    async def test_found_record_has_no_password(
        self, fake_cloud: FakeControlPlane
    ) -> None:
        """A discovered database has unknown credentials."""
        handler = DatabaseHandler(fake_cloud)
        await handler.create("Main", _db_spec())

        found = await handler.find("Main", _db_spec())

        assert found is not None
        assert found.attributes["password"] is None
        assert found.attributes["host"] == "mystudymain.db.internal"

    @pytest.mark.asyncio
    async def test_delete_waits_until_gone(
        self, fake_cloud: FakeControlPlane, fast_poller: ReadinessPoller
    ) -> None:
        """Deletion returns once the instance has disappeared."""
        handler = DatabaseHandler(fake_cloud, fast_poller)
        record = await handler.create("Main", _db_spec())

        await handler.delete(record)

        assert fake_cloud.databases == {}


class TestTaskDefinitionHandler:
    """Tests for task definitions."""

    @pytest.mark.asyncio
    async def test_delete_without_revision_is_not_found(
        self, fake_cloud: FakeControlPlane
    ) -> None:
        """A record without a revision ARN cannot be deregistered."""
        record = ResourceRecord(
            kind=ResourceKind.TASK_DEFINITION,
            logical_name="api",
            external_id="MyStudy-api",
        )

        with pytest.raises(ResourceNotFoundError, match="No revision"):
            await TaskDefinitionHandler(fake_cloud).delete(record)

        assert fake_cloud.deregistered == []


class TestLoadBalancerHandlers:
    """Tests for load balancers and listeners."""

    @pytest.mark.asyncio
    async def test_new_balancer_is_creating(
        self, fake_cloud: FakeControlPlane
    ) -> None:
        """A provisioning balancer is recorded as creating."""
        spec = LoadBalancerSpec(
            name="MyStudyBalancer",
            subnet_ids=["subnet-a", "subnet-b"],
            security_group_ids=["sg-1"],
        )

        record = await LoadBalancerHandler(fake_cloud).create("MyStudyBalancer", spec)

        assert record.status is ResourceStatus.CREATING
        assert record.attributes["hosted_zone_id"] == "ZELB"

    @pytest.mark.asyncio
    async def test_listener_matched_by_port(
        self, fake_cloud: FakeControlPlane
    ) -> None:
        """Listeners on the same balancer are told apart by port."""
        handler = ListenerHandler(fake_cloud)
        http = ListenerSpec(load_balancer_arn="arn:lb", target_group_arn="arn:tg")
        https = ListenerSpec(
            load_balancer_arn="arn:lb",
            target_group_arn="arn:tg",
            protocol="HTTPS",
            port=443,
        )
        await handler.create("lb-http", http)

        assert await handler.find("lb-https", https) is None
        found = await handler.find("lb-http", http)
        assert found is not None
        assert found.attributes["port"] == 80


class TestRecordSetHandler:
    """Tests for DNS change batches."""

    @pytest.mark.asyncio
    async def test_delete_submits_matching_batch(
        self, fake_cloud: FakeControlPlane
    ) -> None:
        """Teardown deletes exactly the records that were upserted."""
        handler = RecordSetHandler(fake_cloud)
        spec = ChangeBatchSpec(
            hosted_zone_id="Z123",
            changes=[
                RecordSetChange(
                    name="example.org",
                    type="A",
                    alias_dns_name="d1.cloudfront.net",
                    alias_hosted_zone_id="Z2FDTNDATAQYW2",
                )
            ],
        )
        record = await handler.create("example.org", spec)

        await handler.delete(record)

        upsert, delete = fake_cloud.change_batches
        assert record.external_id == "Z123/example.org"
        assert [c.action for c in upsert.changes] == ["UPSERT"]
        assert [c.action for c in delete.changes] == ["DELETE"]
        assert delete.changes[0].name == "example.org"

    @pytest.mark.asyncio
    async def test_nothing_to_adopt(self, fake_cloud: FakeControlPlane) -> None:
        """Record batches are never discovered."""
        spec = ChangeBatchSpec(
            hosted_zone_id="Z123",
            changes=[
                RecordSetChange(
                    name="a", type="A", alias_dns_name="b", alias_hosted_zone_id="c"
                )
            ],
        )

        assert await RecordSetHandler(fake_cloud).find("a", spec) is None
        assert fake_cloud.calls == []
