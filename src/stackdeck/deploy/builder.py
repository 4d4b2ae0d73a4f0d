"""Container image build and publish for StackDeck services.

This module builds the API image, tags worker images under the registry
namespace, and pushes them using the Docker SDK. ``ImagePublisher`` wraps the
blocking SDK calls so they run off the event loop.
"""

from __future__ import annotations

import asyncio
import subprocess  # nosec B404
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

import docker
from docker.errors import APIError, BuildError, DockerException, ImageNotFound

from stackdeck.lib.errors import DeploymentError, DockerNotAvailableError
from stackdeck.lib.logging_config import get_logger
from stackdeck.models.project import TagStrategy

if TYPE_CHECKING:
    from docker.models.images import Image

logger = get_logger(__name__)


@dataclass
class BuildResult:
    """Result of a container image build operation.

    Attributes:
        image_id: The SHA256 ID of the built image
        image_name: The repository/image name
        tag: The image tag
        full_name: Full image reference (name:tag)
        log_lines: Build log output lines
    """

    image_id: str
    image_name: str
    tag: str
    full_name: str
    log_lines: list[str] = field(default_factory=list)

    @classmethod
    def from_image(
        cls,
        image: Image,
        image_name: str,
        tag: str,
        log_lines: list[str] | None = None,
    ) -> BuildResult:
        """Create BuildResult from a Docker image object."""
        return cls(
            image_id=image.id or "",
            image_name=image_name,
            tag=tag,
            full_name=f"{image_name}:{tag}",
            log_lines=log_lines or [],
        )


@dataclass(frozen=True)
class PushResult:
    """A pushed image reference.

    Attributes:
        image: Full image reference (name:tag)
        digest: Registry digest reported by the push, if any
    """

    image: str
    digest: str | None = None


def generate_tag(strategy: TagStrategy, custom_tag: str | None = None) -> str:
    """Generate an image tag based on the specified strategy.

    Args:
        strategy: Tag generation strategy (git_sha, git_tag, latest, custom)
        custom_tag: Custom tag value when strategy is CUSTOM

    Returns:
        Generated tag string

    Raises:
        ValueError: If custom strategy is used without providing custom_tag
        DeploymentError: If git commands fail (not in repo, no tags, etc.)

    Example:
        >>> generate_tag(TagStrategy.LATEST)
        'latest'
    """
    if strategy == TagStrategy.LATEST:
        return "latest"

    if strategy == TagStrategy.CUSTOM:
        if not custom_tag:
            raise ValueError("custom_tag is required when using CUSTOM strategy")
        return custom_tag

    if strategy == TagStrategy.GIT_SHA:
        result = subprocess.run(  # noqa: S603  # nosec B603 B607
            ["git", "rev-parse", "HEAD"],  # noqa: S607
            capture_output=True,
            text=True,
        )
        if result.returncode != 0:
            raise DeploymentError(
                operation="tag_generation",
                message="Failed to get git SHA: not a git repository",
            )
        return result.stdout.strip()[:7]

    if strategy == TagStrategy.GIT_TAG:
        result = subprocess.run(  # noqa: S603  # nosec B603 B607
            ["git", "describe", "--tags", "--abbrev=0"],  # noqa: S607
            capture_output=True,
            text=True,
        )
        if result.returncode != 0:
            raise DeploymentError(
                operation="tag_generation",
                message="No git tags found. Create a tag first: git tag v1.0.0",
            )
        return result.stdout.strip()

    raise ValueError(f"Unknown tag strategy: {strategy}")


def get_oci_labels(project_name: str, service: str, version: str) -> dict[str, str]:
    """Generate OCI-compliant labels for a service image.

    Example:
        >>> get_oci_labels("My Study", "api", "latest")["com.stackdeck.service"]
        'api'
    """
    return {
        "org.opencontainers.image.title": f"{project_name} {service}",
        "org.opencontainers.image.version": version,
        "org.opencontainers.image.created": datetime.now(timezone.utc).isoformat(),
        "com.stackdeck.managed": "true",
        "com.stackdeck.service": service,
    }


class ContainerBuilder:
    """Blocking Docker SDK operations: build, tag and push.

    Example:
        >>> builder = ContainerBuilder()
        >>> result = builder.build("./api", image_name="mylab/api", tag="latest")
        >>> builder.push("mylab/api", "latest").image
        'mylab/api:latest'
    """

    def __init__(self) -> None:
        """Connect to the Docker daemon using the environment configuration.

        Raises:
            DockerNotAvailableError: If Docker daemon is not available
        """
        try:
            self.client = docker.from_env()  # type: ignore[attr-defined]
        except DockerException as e:
            raise DockerNotAvailableError(operation="init") from e

    def build(
        self,
        build_context: str | Path,
        image_name: str,
        tag: str,
        labels: dict[str, str] | None = None,
        dockerfile: str = "Dockerfile",
        platform: str = "linux/amd64",
        **build_kwargs: Any,
    ) -> BuildResult:
        """Build a container image from the specified context.

        Raises:
            DeploymentError: If build context doesn't exist or build fails
        """
        context_path = Path(build_context)
        if not context_path.exists():
            raise DeploymentError(
                operation="build",
                message=f"Build context not found: {build_context}",
            )

        try:
            image, build_logs = self.client.images.build(
                path=str(context_path),
                tag=f"{image_name}:{tag}",
                dockerfile=dockerfile,
                labels=labels or {},
                rm=True,
                platform=platform,
                **build_kwargs,
            )
        except BuildError as e:
            raise DeploymentError(
                operation="build",
                message=f"Docker build failed: {e.msg}",
            ) from e
        except DockerException as e:
            raise DeploymentError(
                operation="build",
                message=f"Docker error during build: {e}",
            ) from e

        log_lines: list[str] = []
        for log_entry in build_logs:
            if isinstance(log_entry, dict):
                if isinstance(log_entry.get("stream"), str):
                    log_lines.append(log_entry["stream"].rstrip("\n"))
                elif "error" in log_entry:
                    log_lines.append(f"ERROR: {log_entry['error']}")

        return BuildResult.from_image(
            image=image, image_name=image_name, tag=tag, log_lines=log_lines
        )

    def tag(self, source: str, repository: str, tag: str) -> str:
        """Tag a local image as ``repository:tag``.

        Raises:
            DeploymentError: If the source image does not exist locally
        """
        try:
            image = self.client.images.get(source)
            image.tag(repository, tag=tag)
        except ImageNotFound as e:
            raise DeploymentError(
                operation="tag",
                message=f"Local image '{source}' not found. Build it first.",
            ) from e
        except APIError as e:
            raise DeploymentError(
                operation="tag", message=f"Failed to tag {source}: {e}"
            ) from e
        return f"{repository}:{tag}"

    def push(self, repository: str, tag: str) -> PushResult:
        """Push ``repository:tag`` to its registry.

        Registry credentials come from the local Docker configuration.

        Raises:
            DeploymentError: If the daemon reports a push error
        """
        digest = None
        try:
            for entry in self.client.images.push(
                repository, tag=tag, stream=True, decode=True
            ):
                if "error" in entry:
                    raise DeploymentError(
                        operation="push",
                        message=(
                            f"Push of {repository}:{tag} failed: {entry['error']}"
                        ),
                    )
                aux = entry.get("aux") or {}
                digest = aux.get("Digest", digest)
        except APIError as e:
            raise DeploymentError(
                operation="push", message=f"Docker error during push: {e}"
            ) from e
        return PushResult(image=f"{repository}:{tag}", digest=digest)


class ImagePublisher:
    """Async facade over ContainerBuilder for the deployment tasks.

    Attributes:
        registry_id: Registry namespace images are published under
        tag: Tag applied to every published image
    """

    def __init__(
        self,
        registry_id: str,
        tag: str = "latest",
        builder: ContainerBuilder | None = None,
        platform: str = "linux/amd64",
    ) -> None:
        self.registry_id = registry_id
        self.tag_name = tag
        self.platform = platform
        self._builder = builder

    @property
    def builder(self) -> ContainerBuilder:
        """Docker builder, connected on first use."""
        if self._builder is None:
            self._builder = ContainerBuilder()
        return self._builder

    def image_ref(self, service: str) -> str:
        """Registry reference a service image is published as."""
        return f"{self.registry_id}/{service}:{self.tag_name}"

    async def build(
        self, service: str, context: Path, labels: dict[str, str] | None = None
    ) -> BuildResult:
        """Build a service image under the registry namespace."""
        logger.info(f"Building {self.image_ref(service)} from {context}")
        return await asyncio.to_thread(
            self.builder.build,
            context,
            f"{self.registry_id}/{service}",
            self.tag_name,
            labels=labels,
            platform=self.platform,
        )

    async def tag(self, source: str, service: str) -> str:
        """Tag a locally built image under the registry namespace."""
        return await asyncio.to_thread(
            self.builder.tag, source, f"{self.registry_id}/{service}", self.tag_name
        )

    async def push(self, service: str) -> PushResult:
        """Push a service image."""
        logger.info(f"Pushing {self.image_ref(service)}")
        return await asyncio.to_thread(
            self.builder.push, f"{self.registry_id}/{service}", self.tag_name
        )
