"""Pydantic models for the project configuration file (stackdeck.yaml).

This module defines the configuration schema for a StackDeck project,
including the container registry, AWS account settings, databases and
readiness polling bounds.
"""

import re
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from stackdeck.models.descriptor import DEFAULT_DOMAIN


class TagStrategy(str, Enum):
    """Strategy for generating container image tags."""

    GIT_SHA = "git_sha"
    GIT_TAG = "git_tag"
    LATEST = "latest"
    CUSTOM = "custom"


# Regex patterns for validation
AWS_REGION_PATTERN = re.compile(r"^[a-z]{2}(-gov)?-[a-z]+-\d$")
ACM_ARN_PATTERN = re.compile(r"^arn:aws:acm:[a-z0-9-]+:\d{12}:certificate/[\w-]+$")
REGISTRY_ID_PATTERN = re.compile(r"^[a-z0-9][a-z0-9._/-]*[a-z0-9]$|^[a-z0-9]$")


class RegistryConfig(BaseModel):
    """Container registry configuration.

    Attributes:
        id: Registry namespace images are pushed under (e.g., a Docker Hub user)
        tag_strategy: Strategy for generating image tags
        custom_tag: Custom tag when tag_strategy is CUSTOM
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., description="Registry namespace (e.g., dockerhub user)")
    tag_strategy: TagStrategy = Field(
        default=TagStrategy.LATEST, description="Strategy for generating image tags"
    )
    custom_tag: str | None = Field(
        default=None, description="Custom tag when tag_strategy is CUSTOM"
    )

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Validate registry namespace pattern."""
        if not REGISTRY_ID_PATTERN.match(v):
            raise ValueError(
                f"Invalid registry id: {v}. "
                "Must contain only lowercase letters, numbers, '.', '_', '/', '-'"
            )
        return v

    @model_validator(mode="after")
    def validate_custom_tag(self) -> "RegistryConfig":
        """Validate that custom_tag is provided when tag_strategy is CUSTOM."""
        if self.tag_strategy == TagStrategy.CUSTOM and not self.custom_tag:
            raise ValueError("custom_tag is required when tag_strategy is 'custom'")
        return self


class AwsSettings(BaseModel):
    """AWS account settings.

    Attributes:
        profile: Named AWS profile used for every control-plane call
        region: AWS region (profile default when unset)
        domain: Custom domain, or "default" to use generated endpoints
        certificate_arn: ACM certificate for HTTPS listeners and the CDN
    """

    model_config = ConfigDict(extra="forbid")

    profile: str = Field(default="default", description="AWS profile name")
    region: str | None = Field(default=None, description="AWS region")
    domain: str = Field(default=DEFAULT_DOMAIN, description="Custom domain")
    certificate_arn: str | None = Field(
        default=None, description="ACM certificate ARN"
    )

    @field_validator("region")
    @classmethod
    def validate_region(cls, v: str | None) -> str | None:
        """Validate AWS region format."""
        if v is not None and not AWS_REGION_PATTERN.match(v):
            raise ValueError(f"Invalid AWS region: {v}")
        return v

    @field_validator("certificate_arn")
    @classmethod
    def validate_certificate_arn(cls, v: str | None) -> str | None:
        """Validate ACM certificate ARN format."""
        if v is not None and not ACM_ARN_PATTERN.match(v):
            raise ValueError(f"Invalid ACM certificate ARN: {v}")
        return v

    @model_validator(mode="after")
    def validate_domain_certificate(self) -> "AwsSettings":
        """A custom domain needs a certificate to serve HTTPS."""
        if self.domain != DEFAULT_DOMAIN and not self.certificate_arn:
            raise ValueError("certificate_arn is required when a custom domain is set")
        return self


class DatabaseSettings(BaseModel):
    """Settings shared by the production databases."""

    model_config = ConfigDict(extra="forbid")

    roles: list[str] = Field(
        default_factory=lambda: ["Main", "Transaction"],
        description="Database roles to provision",
    )
    instance_class: str = Field(default="db.t3.micro")
    allocated_storage: int = Field(default=20, ge=20)
    master_username: str = Field(default="postgres")
    port: Annotated[int, Field(ge=1, le=65535)] = Field(default=5432)


class ServiceSettings(BaseModel):
    """Container settings for the API and worker services."""

    model_config = ConfigDict(extra="forbid")

    api_context: str = Field(default="api", description="Docker build context")
    api_port: Annotated[int, Field(ge=1, le=65535)] = Field(default=80)
    api_memory: int = Field(default=512, ge=128)
    worker_memory: int = Field(default=512, ge=128)
    worker_command: list[str] | None = Field(default=None)
    worker_label: str = Field(
        default="isPushkinWorker",
        description="Compose label marking a service as a worker",
    )
    platform: str = Field(default="linux/amd64")


class PollingSettings(BaseModel):
    """Readiness polling bounds for asynchronously provisioned resources."""

    model_config = ConfigDict(extra="forbid")

    interval: float = Field(default=30.0, gt=0, description="Seconds between probes")
    max_attempts: int = Field(default=60, ge=1, description="Probe attempts")


class MigrationSettings(BaseModel):
    """External migration runner commands.

    Both commands are optional. They run with MAIN_DATABASE_URL and
    TRANSACTION_DATABASE_URL in their environment.
    """

    model_config = ConfigDict(extra="forbid")

    command: list[str] | None = Field(default=None)
    transactions_command: list[str] | None = Field(default=None)


class ProjectConfig(BaseModel):
    """Main project configuration model (stackdeck.yaml)."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, description="Project name")
    registry: RegistryConfig = Field(..., description="Container registry")
    aws: AwsSettings = Field(default_factory=AwsSettings)
    databases: DatabaseSettings = Field(default_factory=DatabaseSettings)
    services: ServiceSettings = Field(default_factory=ServiceSettings)
    polling: PollingSettings = Field(default_factory=PollingSettings)
    migrations: MigrationSettings = Field(default_factory=MigrationSettings)
    compose_file: str = Field(
        default="docker-compose.dev.yml", description="Compose file with services"
    )
    site_dir: str = Field(
        default="front-end/build", description="Built static site directory"
    )
    state_path: str = Field(
        default=".stackdeck/deployment.json", description="Descriptor location"
    )
    max_retries: int = Field(
        default=3, ge=0, description="Retries for transient control-plane errors"
    )
    retry_backoff: float = Field(default=2.0, ge=0)
