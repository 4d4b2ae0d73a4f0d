"""AWS control-plane client implementation on aioboto3."""

from __future__ import annotations

import asyncio
import json
import mimetypes
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

from stackdeck.deploy.control_plane.base import (
    GLOBAL_REGION,
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
from stackdeck.lib.errors import (
    CloudSDKNotInstalledError,
    ControlPlaneError,
    ResourceConflict,
    ResourceNotFoundError,
    TransientControlPlaneError,
    ValidationError,
)
from stackdeck.lib.logging_config import get_logger
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

if TYPE_CHECKING:
    import aioboto3

logger = get_logger(__name__)

TRANSIENT_ERROR_CODES = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "RequestLimitExceeded",
        "TooManyRequestsException",
        "PriorRequestNotComplete",
        "RequestTimeout",
        "ServiceUnavailable",
        "InternalError",
        "InternalFailure",
    }
)

CONFLICT_ERROR_CODES = frozenset(
    {
        "BucketAlreadyOwnedByYou",
        "BucketAlreadyExists",
        "DistributionAlreadyExists",
        "CNAMEAlreadyExists",
        "InvalidGroup.Duplicate",
        "InvalidPermission.Duplicate",
        "DBInstanceAlreadyExists",
        "DuplicateLoadBalancerName",
        "DuplicateTargetGroupName",
        "DuplicateListener",
    }
)

VALIDATION_ERROR_CODES = frozenset(
    {
        "ValidationError",
        "InvalidParameterValue",
        "InvalidParameterCombination",
        "InvalidParameter",
        "InvalidArgument",
        "InvalidBucketName",
        "InvalidInput",
        "MalformedPolicy",
        "InvalidViewerCertificate",
    }
)

NOT_FOUND_ERROR_CODES = frozenset(
    {
        "NoSuchBucket",
        "NoSuchDistribution",
        "InvalidGroup.NotFound",
        "DBInstanceNotFound",
        "DBInstanceNotFoundFault",
        "LoadBalancerNotFound",
        "TargetGroupNotFound",
        "ListenerNotFound",
        "ClusterNotFoundException",
    }
)


def _site_files(directory: Path) -> list[Path]:
    return [p for p in sorted(directory.rglob("*")) if p.is_file()]


def translate_client_error(exc: Exception, operation: str) -> ControlPlaneError:
    """Map a botocore exception onto the StackDeck error taxonomy."""
    from botocore.exceptions import (
        ClientError,
        ConnectionClosedError,
        EndpointConnectionError,
        ReadTimeoutError,
    )

    transport_errors = (
        EndpointConnectionError,
        ConnectionClosedError,
        ReadTimeoutError,
    )
    if isinstance(exc, transport_errors):
        return TransientControlPlaneError(str(exc), operation=operation)

    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        code = error.get("Code", "Unknown")
        message = f"{code}: {error.get('Message', str(exc))}"
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        if code in TRANSIENT_ERROR_CODES or status >= 500:
            return TransientControlPlaneError(message, operation=operation)
        if code in CONFLICT_ERROR_CODES:
            return ResourceConflict(message, operation=operation)
        if code in VALIDATION_ERROR_CODES:
            return ValidationError(message, operation=operation)
        if code in NOT_FOUND_ERROR_CODES:
            return ResourceNotFoundError(message, operation=operation)
        return ControlPlaneError(message, operation=operation)

    return ControlPlaneError(f"{type(exc).__name__}: {exc}", operation=operation)


class AwsControlPlane(ControlPlaneClient):
    """Drive the AWS control plane through aioboto3 clients."""

    def __init__(self, profile: str | None = None, region: str | None = None) -> None:
        """Initialize the AWS client.

        Args:
            profile: Named profile from the shared AWS config
            region: Region override, profile default when None

        Raises:
            CloudSDKNotInstalledError: If aioboto3 is not installed
        """
        try:
            import aioboto3
        except ImportError as exc:
            raise CloudSDKNotInstalledError(
                provider="aws", sdk_name="aioboto3"
            ) from exc

        self._session: aioboto3.Session = aioboto3.Session(
            profile_name=profile, region_name=region
        )
        self.profile = profile
        self._region = region

    @property
    def region(self) -> str:
        """Effective region for regional services."""
        return self._region or self._session.region_name or "us-east-1"

    @asynccontextmanager
    async def _call(
        self, service: str, operation: str, region: str | None = None
    ) -> AsyncIterator[Any]:
        """Open a service client and translate botocore failures."""
        from botocore.exceptions import BotoCoreError, ClientError

        if region is None:
            region = GLOBAL_REGION if service == "route53domains" else self.region
        try:
            async with self._session.client(service, region_name=region) as client:
                yield client
        except (ClientError, BotoCoreError) as exc:
            raise translate_client_error(exc, operation) from exc

    # Static site storage

    async def list_buckets(self) -> list[Bucket]:
        async with self._call("s3", "list_buckets") as s3:
            response = await s3.list_buckets()
        return [Bucket(name=b["Name"]) for b in response.get("Buckets", [])]

    async def create_bucket(self, spec: BucketSpec) -> Bucket:
        kwargs: dict[str, Any] = {"Bucket": spec.name}
        if self.region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        async with self._call("s3", "create_bucket") as s3:
            await s3.create_bucket(**kwargs)
        return Bucket(name=spec.name)

    async def configure_website(self, spec: BucketSpec) -> None:
        async with self._call("s3", "configure_website") as s3:
            if spec.public_read:
                await s3.put_public_access_block(
                    Bucket=spec.name,
                    PublicAccessBlockConfiguration={
                        "BlockPublicAcls": False,
                        "IgnorePublicAcls": False,
                        "BlockPublicPolicy": False,
                        "RestrictPublicBuckets": False,
                    },
                )
            await s3.put_bucket_website(
                Bucket=spec.name,
                WebsiteConfiguration={
                    "IndexDocument": {"Suffix": spec.index_document},
                    "ErrorDocument": {"Key": spec.error_document},
                },
            )

    async def put_bucket_policy(self, bucket: str, policy: dict[str, Any]) -> None:
        async with self._call("s3", "put_bucket_policy") as s3:
            await s3.put_bucket_policy(Bucket=bucket, Policy=json.dumps(policy))

    async def sync_directory(self, bucket: str, directory: Path) -> int:
        files = await asyncio.to_thread(_site_files, directory)
        async with self._call("s3", "sync_directory") as s3:
            for path in files:
                key = path.relative_to(directory).as_posix()
                content_type = mimetypes.guess_type(path.name)[0]
                body = await asyncio.to_thread(path.read_bytes)
                await s3.put_object(
                    Bucket=bucket,
                    Key=key,
                    Body=body,
                    ContentType=content_type or "application/octet-stream",
                )
        logger.debug(f"Uploaded {len(files)} files from {directory} to {bucket}")
        return len(files)

    async def delete_bucket(self, bucket: str) -> None:
        async with self._call("s3", "delete_bucket") as s3:
            paginator = s3.get_paginator("list_objects_v2")
            async for page in paginator.paginate(Bucket=bucket):
                objects = [{"Key": o["Key"]} for o in page.get("Contents", [])]
                if objects:
                    await s3.delete_objects(Bucket=bucket, Delete={"Objects": objects})
            await s3.delete_bucket(Bucket=bucket)

    # CDN

    @staticmethod
    def _distribution(data: dict[str, Any], etag: str | None = None) -> Distribution:
        config = data.get("DistributionConfig", data)
        origins = config.get("Origins", {}).get("Items") or []
        return Distribution(
            id=data["Id"],
            arn=data.get("ARN", ""),
            domain_name=data.get("DomainName", ""),
            origin_id=origins[0].get("Id") if origins else None,
            status=data.get("Status", "Unknown"),
            enabled=bool(config.get("Enabled", True)),
            etag=etag,
        )

    async def list_distributions(self) -> list[Distribution]:
        distributions: list[Distribution] = []
        async with self._call("cloudfront", "list_distributions") as cloudfront:
            paginator = cloudfront.get_paginator("list_distributions")
            async for page in paginator.paginate():
                for item in page.get("DistributionList", {}).get("Items") or []:
                    distributions.append(self._distribution(item))
        return distributions

    async def create_distribution(self, spec: DistributionSpec) -> Distribution:
        viewer_certificate: dict[str, Any] = {"CloudFrontDefaultCertificate": True}
        if spec.certificate_arn:
            viewer_certificate = {
                "CloudFrontDefaultCertificate": False,
                "ACMCertificateArn": spec.certificate_arn,
                "SSLSupportMethod": "sni-only",
                "MinimumProtocolVersion": "TLSv1.2_2019",
            }
        config = {
            "CallerReference": spec.origin_id,
            "Aliases": {"Quantity": len(spec.aliases), "Items": spec.aliases},
            "DefaultRootObject": spec.default_root_object,
            "Origins": {
                "Quantity": 1,
                "Items": [
                    {
                        "Id": spec.origin_id,
                        "DomainName": spec.origin_domain,
                        "S3OriginConfig": {"OriginAccessIdentity": ""},
                    }
                ],
            },
            "DefaultCacheBehavior": {
                "TargetOriginId": spec.origin_id,
                "ViewerProtocolPolicy": "redirect-to-https",
                "ForwardedValues": {
                    "QueryString": False,
                    "Cookies": {"Forward": "none"},
                },
                "TrustedSigners": {"Enabled": False, "Quantity": 0},
                "MinTTL": 0,
            },
            "Comment": spec.comment,
            "Enabled": True,
            "ViewerCertificate": viewer_certificate,
        }
        async with self._call("cloudfront", "create_distribution") as cloudfront:
            response = await cloudfront.create_distribution(DistributionConfig=config)
        return self._distribution(response["Distribution"], response.get("ETag"))

    async def get_distribution(self, distribution_id: str) -> Distribution | None:
        try:
            async with self._call("cloudfront", "get_distribution") as cloudfront:
                response = await cloudfront.get_distribution(Id=distribution_id)
        except ResourceNotFoundError:
            return None
        return self._distribution(response["Distribution"], response.get("ETag"))

    async def disable_distribution(self, distribution_id: str) -> Distribution:
        async with self._call("cloudfront", "disable_distribution") as cloudfront:
            current = await cloudfront.get_distribution_config(Id=distribution_id)
            config = current["DistributionConfig"]
            if not config.get("Enabled", True):
                response = await cloudfront.get_distribution(Id=distribution_id)
            else:
                config["Enabled"] = False
                response = await cloudfront.update_distribution(
                    Id=distribution_id,
                    IfMatch=current["ETag"],
                    DistributionConfig=config,
                )
        return self._distribution(response["Distribution"], response.get("ETag"))

    async def delete_distribution(self, distribution_id: str, etag: str) -> None:
        async with self._call("cloudfront", "delete_distribution") as cloudfront:
            await cloudfront.delete_distribution(Id=distribution_id, IfMatch=etag)

    # Network

    async def list_security_groups(self) -> list[SecurityGroup]:
        async with self._call("ec2", "list_security_groups") as ec2:
            response = await ec2.describe_security_groups()
        return [
            SecurityGroup(id=g["GroupId"], name=g["GroupName"], vpc_id=g.get("VpcId"))
            for g in response.get("SecurityGroups", [])
        ]

    async def create_security_group(self, spec: SecurityGroupSpec) -> SecurityGroup:
        kwargs: dict[str, Any] = {
            "GroupName": spec.name,
            "Description": spec.description,
        }
        if spec.vpc_id:
            kwargs["VpcId"] = spec.vpc_id
        async with self._call("ec2", "create_security_group") as ec2:
            response = await ec2.create_security_group(**kwargs)
        return SecurityGroup(id=response["GroupId"], name=spec.name, vpc_id=spec.vpc_id)

    async def authorize_ingress(self, group_id: str, rules: list[IngressRule]) -> None:
        for rule in rules:
            permission: dict[str, Any] = {
                "IpProtocol": rule.protocol,
                "FromPort": rule.from_port,
                "ToPort": rule.to_port,
                "IpRanges": [{"CidrIp": rule.cidr_ipv4}],
            }
            if rule.cidr_ipv6:
                permission["Ipv6Ranges"] = [{"CidrIpv6": rule.cidr_ipv6}]
            try:
                async with self._call("ec2", "authorize_ingress") as ec2:
                    await ec2.authorize_security_group_ingress(
                        GroupId=group_id, IpPermissions=[permission]
                    )
            except ResourceConflict:
                logger.debug(
                    f"Ingress {rule.from_port}-{rule.to_port} "
                    f"already open on {group_id}"
                )

    async def delete_security_group(self, group_id: str) -> None:
        async with self._call("ec2", "delete_security_group") as ec2:
            await ec2.delete_security_group(GroupId=group_id)

    async def describe_default_vpc(self) -> Vpc | None:
        async with self._call("ec2", "describe_vpcs") as ec2:
            response = await ec2.describe_vpcs(
                Filters=[{"Name": "isDefault", "Values": ["true"]}]
            )
        for vpc in response.get("Vpcs", []):
            if vpc.get("IsDefault"):
                return Vpc(id=vpc["VpcId"], is_default=True)
        return None

    async def describe_subnets(self, vpc_id: str) -> list[Subnet]:
        async with self._call("ec2", "describe_subnets") as ec2:
            response = await ec2.describe_subnets(
                Filters=[{"Name": "vpc-id", "Values": [vpc_id]}]
            )
        return [
            Subnet(
                id=s["SubnetId"],
                availability_zone=s["AvailabilityZone"],
                vpc_id=s.get("VpcId"),
            )
            for s in response.get("Subnets", [])
        ]

    # Databases

    @staticmethod
    def _database(data: dict[str, Any]) -> DatabaseInstance:
        endpoint = data.get("Endpoint") or {}
        return DatabaseInstance(
            identifier=data["DBInstanceIdentifier"],
            status=data.get("DBInstanceStatus", "unknown"),
            arn=data.get("DBInstanceArn"),
            host=endpoint.get("Address"),
            port=endpoint.get("Port"),
            db_name=data.get("DBName"),
            master_username=data.get("MasterUsername"),
        )

    async def describe_databases(
        self, identifier: str | None = None
    ) -> list[DatabaseInstance]:
        kwargs = {"DBInstanceIdentifier": identifier} if identifier else {}
        instances: list[DatabaseInstance] = []
        try:
            async with self._call("rds", "describe_databases") as rds:
                paginator = rds.get_paginator("describe_db_instances")
                async for page in paginator.paginate(**kwargs):
                    for data in page.get("DBInstances", []):
                        instances.append(self._database(data))
        except ResourceNotFoundError:
            return []
        return instances

    async def create_database(self, spec: DatabaseSpec) -> DatabaseInstance:
        async with self._call("rds", "create_database") as rds:
            response = await rds.create_db_instance(
                DBName=spec.db_name,
                DBInstanceIdentifier=spec.identifier,
                AllocatedStorage=spec.allocated_storage,
                DBInstanceClass=spec.instance_class,
                Engine=spec.engine,
                MasterUsername=spec.master_username,
                MasterUserPassword=spec.master_password,
                VpcSecurityGroupIds=spec.security_group_ids,
                Port=spec.port,
                PubliclyAccessible=spec.publicly_accessible,
                Tags=[{"Key": "stackdeck:role", "Value": spec.role}],
            )
        return self._database(response["DBInstance"])

    async def delete_database(self, identifier: str) -> None:
        async with self._call("rds", "delete_database") as rds:
            await rds.delete_db_instance(
                DBInstanceIdentifier=identifier,
                SkipFinalSnapshot=True,
                DeleteAutomatedBackups=True,
            )

    # Containers

    async def describe_cluster(self, name: str) -> Cluster | None:
        async with self._call("ecs", "describe_cluster") as ecs:
            response = await ecs.describe_clusters(clusters=[name])
        for cluster in response.get("clusters", []):
            if cluster.get("status") != "INACTIVE":
                return Cluster(
                    name=cluster["clusterName"],
                    arn=cluster["clusterArn"],
                    status=cluster["status"],
                )
        return None

    async def create_cluster(self, spec: ClusterSpec) -> Cluster:
        async with self._call("ecs", "create_cluster") as ecs:
            response = await ecs.create_cluster(
                clusterName=spec.name, capacityProviders=spec.capacity_providers
            )
        cluster = response["cluster"]
        return Cluster(
            name=cluster["clusterName"],
            arn=cluster["clusterArn"],
            status=cluster.get("status", "PROVISIONING"),
        )

    async def delete_cluster(self, name: str) -> None:
        async with self._call("ecs", "delete_cluster") as ecs:
            await ecs.delete_cluster(cluster=name)

    async def describe_task_definition(self, family: str) -> TaskDefinition | None:
        from botocore.exceptions import ClientError

        try:
            async with self._session.client("ecs", region_name=self.region) as ecs:
                response = await ecs.describe_task_definition(taskDefinition=family)
        except ClientError as exc:
            # ECS reports a missing family as a generic ClientException
            if exc.response.get("Error", {}).get("Code") == "ClientException":
                return None
            raise translate_client_error(exc, "describe_task_definition") from exc
        definition = response["taskDefinition"]
        if definition.get("status") == "INACTIVE":
            return None
        return TaskDefinition(
            family=definition["family"],
            arn=definition["taskDefinitionArn"],
            revision=definition["revision"],
        )

    async def register_task_definition(
        self, spec: TaskDefinitionSpec
    ) -> TaskDefinition:
        containers = []
        for container in spec.containers:
            definition: dict[str, Any] = {
                "name": container.name,
                "image": container.image,
                "memory": container.memory,
                "essential": container.essential,
                "environment": [
                    {"name": k, "value": v} for k, v in container.environment.items()
                ],
                "portMappings": [{"containerPort": p} for p in container.port_mappings],
            }
            if container.command:
                definition["command"] = container.command
            containers.append(definition)

        async with self._call("ecs", "register_task_definition") as ecs:
            response = await ecs.register_task_definition(
                family=spec.family,
                containerDefinitions=containers,
                networkMode=spec.network_mode,
                requiresCompatibilities=spec.requires_compatibilities,
                cpu=spec.cpu,
                memory=spec.memory,
            )
        definition = response["taskDefinition"]
        return TaskDefinition(
            family=definition["family"],
            arn=definition["taskDefinitionArn"],
            revision=definition["revision"],
        )

    async def deregister_task_definition(self, arn: str) -> None:
        async with self._call("ecs", "deregister_task_definition") as ecs:
            await ecs.deregister_task_definition(taskDefinition=arn)

    # Load balancing

    async def describe_load_balancers(
        self, name: str | None = None
    ) -> list[LoadBalancer]:
        kwargs = {"Names": [name]} if name else {}
        try:
            async with self._call("elbv2", "describe_load_balancers") as elb:
                response = await elb.describe_load_balancers(**kwargs)
        except ResourceNotFoundError:
            return []
        return [
            LoadBalancer(
                name=lb["LoadBalancerName"],
                arn=lb["LoadBalancerArn"],
                dns_name=lb["DNSName"],
                hosted_zone_id=lb["CanonicalHostedZoneId"],
                state=lb.get("State", {}).get("Code", "unknown"),
            )
            for lb in response.get("LoadBalancers", [])
        ]

    async def create_load_balancer(self, spec: LoadBalancerSpec) -> LoadBalancer:
        async with self._call("elbv2", "create_load_balancer") as elb:
            response = await elb.create_load_balancer(
                Name=spec.name,
                Subnets=spec.subnet_ids,
                SecurityGroups=spec.security_group_ids,
                Scheme=spec.scheme,
                Type="application",
            )
        lb = response["LoadBalancers"][0]
        return LoadBalancer(
            name=lb["LoadBalancerName"],
            arn=lb["LoadBalancerArn"],
            dns_name=lb["DNSName"],
            hosted_zone_id=lb["CanonicalHostedZoneId"],
            state=lb.get("State", {}).get("Code", "provisioning"),
        )

    async def delete_load_balancer(self, arn: str) -> None:
        async with self._call("elbv2", "delete_load_balancer") as elb:
            await elb.delete_load_balancer(LoadBalancerArn=arn)

    async def describe_target_groups(
        self, name: str | None = None
    ) -> list[TargetGroup]:
        kwargs = {"Names": [name]} if name else {}
        try:
            async with self._call("elbv2", "describe_target_groups") as elb:
                response = await elb.describe_target_groups(**kwargs)
        except ResourceNotFoundError:
            return []
        return [
            TargetGroup(name=tg["TargetGroupName"], arn=tg["TargetGroupArn"])
            for tg in response.get("TargetGroups", [])
        ]

    async def create_target_group(self, spec: TargetGroupSpec) -> TargetGroup:
        async with self._call("elbv2", "create_target_group") as elb:
            response = await elb.create_target_group(
                Name=spec.name,
                Protocol=spec.protocol,
                Port=spec.port,
                VpcId=spec.vpc_id,
                TargetType=spec.target_type,
                HealthCheckPath=spec.health_check_path,
            )
        tg = response["TargetGroups"][0]
        return TargetGroup(name=tg["TargetGroupName"], arn=tg["TargetGroupArn"])

    async def delete_target_group(self, arn: str) -> None:
        async with self._call("elbv2", "delete_target_group") as elb:
            await elb.delete_target_group(TargetGroupArn=arn)

    async def describe_listeners(self, load_balancer_arn: str) -> list[Listener]:
        try:
            async with self._call("elbv2", "describe_listeners") as elb:
                response = await elb.describe_listeners(
                    LoadBalancerArn=load_balancer_arn
                )
        except ResourceNotFoundError:
            return []
        return [
            Listener(
                arn=listener["ListenerArn"],
                load_balancer_arn=listener["LoadBalancerArn"],
                protocol=listener["Protocol"],
                port=listener["Port"],
            )
            for listener in response.get("Listeners", [])
        ]

    async def create_listener(self, spec: ListenerSpec) -> Listener:
        kwargs: dict[str, Any] = {
            "LoadBalancerArn": spec.load_balancer_arn,
            "Protocol": spec.protocol,
            "Port": spec.port,
            "DefaultActions": [
                {"Type": "forward", "TargetGroupArn": spec.target_group_arn}
            ],
        }
        if spec.certificate_arn:
            kwargs["Certificates"] = [{"CertificateArn": spec.certificate_arn}]
        async with self._call("elbv2", "create_listener") as elb:
            response = await elb.create_listener(**kwargs)
        listener = response["Listeners"][0]
        return Listener(
            arn=listener["ListenerArn"],
            load_balancer_arn=listener["LoadBalancerArn"],
            protocol=listener["Protocol"],
            port=listener["Port"],
        )

    async def delete_listener(self, arn: str) -> None:
        async with self._call("elbv2", "delete_listener") as elb:
            await elb.delete_listener(ListenerArn=arn)

    # DNS and certificates

    async def find_hosted_zone(self, domain: str) -> HostedZone | None:
        async with self._call("route53", "find_hosted_zone") as route53:
            response = await route53.list_hosted_zones_by_name(DNSName=domain)
        wanted = domain.rstrip(".") + "."
        for zone in response.get("HostedZones", []):
            if zone["Name"] == wanted:
                return HostedZone(
                    id=zone["Id"].split("/hostedzone/")[-1], name=zone["Name"]
                )
        return None

    async def change_resource_record_sets(self, spec: ChangeBatchSpec) -> ChangeInfo:
        async with self._call("route53", "change_resource_record_sets") as route53:
            response = await route53.change_resource_record_sets(
                HostedZoneId=spec.hosted_zone_id,
                ChangeBatch={
                    "Comment": spec.comment,
                    "Changes": [change.to_route53() for change in spec.changes],
                },
            )
        info = response["ChangeInfo"]
        return ChangeInfo(id=info["Id"], status=info["Status"])

    async def list_certificates(self, region: str | None = None) -> list[Certificate]:
        async with self._call("acm", "list_certificates", region) as acm:
            response = await acm.list_certificates(CertificateStatuses=["ISSUED"])
        return [
            Certificate(domain_name=c["DomainName"], arn=c["CertificateArn"])
            for c in response.get("CertificateSummaryList", [])
        ]

    async def list_domains(self) -> list[str]:
        async with self._call("route53domains", "list_domains") as domains:
            response = await domains.list_domains()
        return [d["DomainName"] for d in response.get("Domains", [])]
