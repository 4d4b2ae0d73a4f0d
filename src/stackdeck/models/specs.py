"""Typed desired-state specs for each resource kind.

Every create call takes one of these models instead of a hand-built request
string. The ``kind`` literal tags the variant so a spec can never be handed
to the wrong resource handler.
"""

from __future__ import annotations

import re
from typing import Annotated, Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from stackdeck.lib.errors import ValidationError

BUCKET_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9.-]{1,61}[a-z0-9]$")
ELB_NAME_PATTERN = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,30}[A-Za-z0-9])?$")
DB_IDENTIFIER_PATTERN = re.compile(r"^[a-z][a-z0-9-]{0,62}$")


class _Spec(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class BucketSpec(_Spec):
    """S3 bucket hosting the static site."""

    kind: Literal["bucket"] = "bucket"
    name: str
    index_document: str = "index.html"
    error_document: str = "index.html"
    public_read: bool = True

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate S3 bucket naming rules."""
        if not BUCKET_NAME_PATTERN.match(v):
            raise ValueError(f"Invalid bucket name: {v}")
        return v


class DistributionSpec(_Spec):
    """CloudFront distribution in front of the site bucket."""

    kind: Literal["distribution"] = "distribution"
    origin_id: str
    origin_domain: str
    aliases: list[str] = Field(default_factory=list)
    certificate_arn: str | None = None
    default_root_object: str = "index.html"
    comment: str = ""

    @field_validator("certificate_arn")
    @classmethod
    def validate_certificate(cls, v: str | None) -> str | None:
        """Certificates must be ACM ARNs."""
        if v is not None and not v.startswith("arn:aws:acm:"):
            raise ValueError(f"Invalid ACM certificate ARN: {v}")
        return v


class IngressRule(_Spec):
    """Inbound rule opened on a security group."""

    protocol: str = "tcp"
    from_port: int = Field(..., ge=0, le=65535)
    to_port: int = Field(..., ge=0, le=65535)
    cidr_ipv4: str = "0.0.0.0/0"
    cidr_ipv6: str | None = "::/0"


class SecurityGroupSpec(_Spec):
    """EC2 security group."""

    kind: Literal["security_group"] = "security_group"
    name: str
    description: str
    vpc_id: str | None = None
    ingress: list[IngressRule] = Field(default_factory=list)


class DatabaseSpec(_Spec):
    """Managed PostgreSQL instance."""

    kind: Literal["database"] = "database"
    identifier: str
    db_name: str
    role: str
    engine: str = "postgres"
    instance_class: str = "db.t3.micro"
    allocated_storage: int = Field(default=20, ge=20)
    master_username: str = "postgres"
    master_password: str = Field(..., min_length=8)
    port: int = 5432
    security_group_ids: list[str] = Field(default_factory=list)
    publicly_accessible: bool = True

    @field_validator("identifier")
    @classmethod
    def validate_identifier(cls, v: str) -> str:
        """RDS identifiers are lower case, start with a letter."""
        if not DB_IDENTIFIER_PATTERN.match(v):
            raise ValueError(f"Invalid database identifier: {v}")
        return v


class ClusterSpec(_Spec):
    """ECS cluster."""

    kind: Literal["cluster"] = "cluster"
    name: str
    capacity_providers: list[str] = Field(default_factory=lambda: ["FARGATE"])


class ContainerSpec(_Spec):
    """One container within a task definition."""

    name: str
    image: str
    memory: int = 512
    environment: dict[str, str] = Field(default_factory=dict)
    command: list[str] | None = None
    port_mappings: list[int] = Field(default_factory=list)
    essential: bool = True


class TaskDefinitionSpec(_Spec):
    """ECS task definition registered for a service."""

    kind: Literal["task_definition"] = "task_definition"
    family: str
    containers: list[ContainerSpec] = Field(..., min_length=1)
    cpu: str = "256"
    memory: str = "512"
    network_mode: str = "awsvpc"
    requires_compatibilities: list[str] = Field(default_factory=lambda: ["FARGATE"])


class LoadBalancerSpec(_Spec):
    """Internet-facing application load balancer."""

    kind: Literal["load_balancer"] = "load_balancer"
    name: str
    subnet_ids: list[str] = Field(..., min_length=2)
    security_group_ids: list[str] = Field(..., min_length=1)
    scheme: str = "internet-facing"

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """ELB names: up to 32 alphanumerics or hyphens."""
        if not ELB_NAME_PATTERN.match(v):
            raise ValueError(f"Invalid load balancer name: {v}")
        return v


class TargetGroupSpec(_Spec):
    """Target group the load balancer forwards to."""

    kind: Literal["target_group"] = "target_group"
    name: str
    vpc_id: str
    protocol: str = "HTTP"
    port: int = 80
    target_type: str = "ip"
    health_check_path: str = "/"

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Target group names follow the ELB naming rules."""
        if not ELB_NAME_PATTERN.match(v):
            raise ValueError(f"Invalid target group name: {v}")
        return v


class ListenerSpec(_Spec):
    """Load balancer listener forwarding to a target group."""

    kind: Literal["listener"] = "listener"
    load_balancer_arn: str
    target_group_arn: str
    protocol: Literal["HTTP", "HTTPS"] = "HTTP"
    port: int = 80
    certificate_arn: str | None = None

    @field_validator("certificate_arn")
    @classmethod
    def validate_certificate(cls, v: str | None) -> str | None:
        """Certificates must be ACM ARNs."""
        if v is not None and not v.startswith("arn:aws:acm:"):
            raise ValueError(f"Invalid ACM certificate ARN: {v}")
        return v


class RecordSetChange(_Spec):
    """A single alias record change in a Route 53 change batch."""

    action: Literal["UPSERT", "DELETE", "CREATE"] = "UPSERT"
    name: str
    type: Literal["A", "AAAA"]
    alias_dns_name: str
    alias_hosted_zone_id: str
    evaluate_target_health: bool = False

    def to_route53(self) -> dict[str, Any]:
        """Render the change in the Route 53 ChangeBatch shape."""
        return {
            "Action": self.action,
            "ResourceRecordSet": {
                "Name": self.name,
                "Type": self.type,
                "AliasTarget": {
                    "HostedZoneId": self.alias_hosted_zone_id,
                    "DNSName": self.alias_dns_name,
                    "EvaluateTargetHealth": self.evaluate_target_health,
                },
            },
        }


class ChangeBatchSpec(_Spec):
    """An atomic batch of record changes against one hosted zone."""

    kind: Literal["record_set"] = "record_set"
    hosted_zone_id: str
    changes: list[RecordSetChange] = Field(..., min_length=1)
    comment: str = ""


ResourceSpec = Annotated[
    BucketSpec
    | DistributionSpec
    | SecurityGroupSpec
    | DatabaseSpec
    | ClusterSpec
    | TaskDefinitionSpec
    | LoadBalancerSpec
    | TargetGroupSpec
    | ListenerSpec
    | ChangeBatchSpec,
    Field(discriminator="kind"),
]

SpecT = TypeVar("SpecT", bound=_Spec)


def make_spec(spec_cls: type[SpecT], **fields: Any) -> SpecT:
    """Build a spec, turning schema violations into a fatal ValidationError.

    Args:
        spec_cls: Spec model class
        **fields: Field values

    Returns:
        The validated spec

    Raises:
        ValidationError: If the fields do not satisfy the spec schema
    """
    try:
        return spec_cls(**fields)
    except PydanticValidationError as exc:
        kind_field = spec_cls.model_fields.get("kind")
        kind = kind_field.default if kind_field else None
        raise ValidationError(
            f"Invalid {spec_cls.__name__}: {exc}",
            operation="validate",
            kind=kind,
        ) from exc
