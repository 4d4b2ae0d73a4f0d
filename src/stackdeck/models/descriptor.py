"""Deployment descriptor models.

The descriptor is the single persisted record of a deployment: who the
project is, and which cloud resources belong to it.
"""

from __future__ import annotations

import re
import uuid

from pydantic import BaseModel, ConfigDict, Field, model_validator

from stackdeck.models.resources import (
    DatabaseInfo,
    ResourceKind,
    ResourceRecord,
    resource_key,
)

DEFAULT_DOMAIN = "default"

_NON_WORD = re.compile(r"[^\w\s]")


def normalize_cluster_name(project_name: str) -> str:
    """Derive the cluster name: punctuation and spaces removed."""
    return _NON_WORD.sub("", project_name).replace(" ", "")


def generate_aws_name(project_name: str, suffix: str | None = None) -> str:
    """Derive a globally unique, lower-case external name for a project.

    Args:
        project_name: Human project name
        suffix: Unique suffix, a fresh uuid4 when omitted

    Returns:
        Normalized name usable for buckets and distribution origins
    """
    base = _NON_WORD.sub("", project_name).replace(" ", "-")
    return f"{base}{suffix or uuid.uuid4()}".lower()


class ProjectIdentity(BaseModel):
    """Identity block of a deployment."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., description="Logical project name")
    aws_name: str = Field(..., description="Normalized external name")
    profile: str = Field(default="default", description="AWS profile to use")
    region: str | None = Field(default=None, description="AWS region")
    registry_id: str = Field(..., description="Container registry namespace")
    domain: str = Field(default=DEFAULT_DOMAIN, description="Custom domain")
    certificate_arn: str | None = Field(
        default=None, description="ACM certificate for HTTPS"
    )
    cluster_name: str | None = Field(
        default=None, description="ECS cluster name, derived from name"
    )

    @model_validator(mode="after")
    def derive_cluster_name(self) -> "ProjectIdentity":
        """Fill in the cluster name from the project name."""
        if not self.cluster_name:
            self.cluster_name = normalize_cluster_name(self.name)
        return self

    @property
    def uses_custom_domain(self) -> bool:
        """Whether DNS records should be managed."""
        return bool(self.domain) and self.domain != DEFAULT_DOMAIN


class DeploymentDescriptor(BaseModel):
    """Persisted deployment descriptor."""

    model_config = ConfigDict(extra="forbid")

    version: str = Field(default="1.0", description="Descriptor format version")
    revision: int = Field(
        default=0, description="Incremented on every persisted write"
    )
    project: ProjectIdentity | None = Field(default=None)
    resources: dict[str, ResourceRecord] = Field(
        default_factory=dict, description="Resource records keyed by kind:name"
    )
    production_dbs: dict[str, DatabaseInfo] = Field(
        default_factory=dict, description="Production databases keyed by role"
    )
    pending_secrets: dict[str, str] = Field(
        default_factory=dict,
        description="Generated master passwords keyed by database identifier",
    )
    site_url: str | None = Field(default=None, description="Public site URL")
    api_url: str | None = Field(default=None, description="Public API endpoint")

    def get(self, kind: ResourceKind, logical_name: str) -> ResourceRecord | None:
        """Return the record for a kind and logical name, if present."""
        return self.resources.get(resource_key(kind, logical_name))

    def of_kind(self, kind: ResourceKind) -> list[ResourceRecord]:
        """Return all records of a kind."""
        return [r for r in self.resources.values() if r.kind == kind]

    @property
    def cluster_name(self) -> str | None:
        """Derived cluster name, when the project identity is known."""
        return self.project.cluster_name if self.project else None
