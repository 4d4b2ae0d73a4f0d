"""Resource records persisted in the deployment descriptor."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ResourceKind(str, Enum):
    """Kinds of cloud resources managed by StackDeck."""

    BUCKET = "bucket"
    DISTRIBUTION = "distribution"
    SECURITY_GROUP = "security_group"
    VPC = "vpc"
    SUBNETS = "subnets"
    DATABASE = "database"
    CLUSTER = "cluster"
    TASK_DEFINITION = "task_definition"
    LOAD_BALANCER = "load_balancer"
    TARGET_GROUP = "target_group"
    LISTENER = "listener"
    RECORD_SET = "record_set"
    IMAGE = "image"


# Kinds that are discovered or published rather than created in the
# control plane, so teardown only drops them from the descriptor.
UNMANAGED_KINDS = frozenset(
    {ResourceKind.VPC, ResourceKind.SUBNETS, ResourceKind.IMAGE}
)


def resource_key(kind: ResourceKind | str, logical_name: str) -> str:
    """Return the descriptor key for a (kind, logical name) pair."""
    kind_value = kind.value if isinstance(kind, ResourceKind) else kind
    return f"{kind_value}:{logical_name}"


class ResourceStatus(str, Enum):
    """Lifecycle status of a recorded resource."""

    CREATING = "creating"
    AVAILABLE = "available"
    ADOPTED = "adopted"
    DELETING = "deleting"


class ResourceRecord(BaseModel):
    """A single resource known to the deployment.

    Once a record is present in the descriptor it is authoritative: the
    reconciler returns it as-is instead of asking the provider again.
    """

    model_config = ConfigDict(extra="forbid")

    kind: ResourceKind = Field(..., description="Resource kind")
    logical_name: str = Field(..., description="Deployment-scoped name")
    external_id: str = Field(..., description="Provider identifier (id or ARN)")
    status: ResourceStatus = Field(
        default=ResourceStatus.AVAILABLE, description="Lifecycle status"
    )
    attributes: dict[str, Any] = Field(
        default_factory=dict,
        description="Provider attributes such as endpoint, port, credentials",
    )
    depends_on: list[str] = Field(
        default_factory=list,
        description="Descriptor keys of the resources this one was built on",
    )
    created_at: datetime | None = Field(default=None)
    updated_at: datetime | None = Field(default=None)

    @property
    def key(self) -> str:
        """Descriptor key for this record."""
        return resource_key(self.kind, self.logical_name)


class DatabaseInfo(BaseModel):
    """Connection details for a production database.

    Serialized with the field names external tooling (the migration runner)
    reads: name, host, user, pass, port.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    type: str = Field(..., description="Database role, e.g. Main or Transaction")
    name: str = Field(..., description="Database name")
    host: str = Field(..., description="Endpoint address")
    user: str = Field(..., description="Master user name")
    password: str = Field(..., alias="pass", description="Master user password")
    port: int = Field(default=5432, description="Endpoint port")

    @property
    def url(self) -> str:
        """PostgreSQL connection URL."""
        return (
            f"postgres://{self.user}:{self.password}@{self.host}:{self.port}/"
            f"{self.name}"
        )

    @classmethod
    def from_record(cls, record: ResourceRecord) -> DatabaseInfo:
        """Build connection info from a database resource record."""
        attrs = record.attributes
        return cls(
            type=attrs.get("role", record.logical_name),
            name=attrs["db_name"],
            host=attrs["host"],
            user=attrs["user"],
            password=attrs["password"],
            port=int(attrs.get("port", 5432)),
        )
