"""Custom exception hierarchy for StackDeck configuration and deployments."""

from __future__ import annotations

import builtins


class StackDeckError(Exception):
    """Base exception for all StackDeck errors.

    All StackDeck-specific exceptions inherit from this class, enabling
    centralized exception handling in the CLI.
    """

    pass


class ConfigError(StackDeckError):
    """Exception raised for configuration errors.

    Attributes:
        field: The configuration field that caused the error
        message: Human-readable error message describing the issue
    """

    def __init__(self, field: str, message: str) -> None:
        """Initialize ConfigError with field and message.

        Args:
            field: Configuration field name where error occurred
            message: Descriptive error message
        """
        self.field = field
        self.message = message
        super().__init__(f"Configuration error in '{field}': {message}")


class DeploymentError(StackDeckError):
    """Exception raised when a deployment operation fails.

    Attributes:
        operation: The deployment operation that failed (init, teardown, ...)
        message: Human-readable error message
    """

    def __init__(self, operation: str, message: str) -> None:
        """Initialize DeploymentError with operation and message.

        Args:
            operation: Name of the failing operation
            message: Descriptive error message
        """
        self.operation = operation
        self.message = message
        super().__init__(f"Deployment {operation} failed: {message}")


class ControlPlaneError(DeploymentError):
    """Base exception for failures reported by the cloud control plane.

    Carries the resource kind and logical name once the reconciler or
    poller has attached them, so the scheduler can report which resource
    a task failed on.

    Attributes:
        kind: Resource kind the failing call targeted, if known
        logical_name: Logical name of the resource, if known
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str = "control_plane",
        kind: str | None = None,
        logical_name: str | None = None,
    ) -> None:
        """Initialize a control-plane error with optional resource context."""
        self.kind = kind
        self.logical_name = logical_name
        super().__init__(operation=operation, message=message)

    def with_context(self, kind: str, logical_name: str) -> ControlPlaneError:
        """Attach resource context unless a more specific one is already set."""
        if self.kind is None:
            self.kind = kind
        if self.logical_name is None:
            self.logical_name = logical_name
        return self

    def __str__(self) -> str:
        if self.kind and self.logical_name:
            return f"{self.kind} '{self.logical_name}': {self.message}"
        return self.message


class TransientControlPlaneError(ControlPlaneError):
    """Rate limiting or transport failure. The call may be retried."""

    pass


class ResourceConflict(ControlPlaneError):
    """The resource already exists at the provider but is not recorded locally."""

    pass


class ResourceNotFoundError(ControlPlaneError):
    """The targeted resource does not exist at the provider."""

    pass


class ValidationError(ControlPlaneError):
    """The desired resource spec is malformed. Never retried."""

    pass


class ProvisioningFailedError(ControlPlaneError):
    """The provider reports that the resource entered a failed state."""

    pass


class ReadinessTimeoutError(ControlPlaneError, builtins.TimeoutError):
    """A resource did not become ready within the polling bound.

    Distinct from ProvisioningFailedError: the resource may still finish,
    so re-running the command later is the remedy.

    Attributes:
        attempts: Number of probe attempts made before giving up
    """

    def __init__(self, message: str, *, attempts: int, **kwargs: str | None) -> None:
        """Initialize with the number of probe attempts made."""
        self.attempts = attempts
        super().__init__(message, operation="wait", **kwargs)


class WaitCancelledError(ControlPlaneError):
    """A readiness wait was cancelled explicitly before it completed."""

    pass


class StateStoreConflict(DeploymentError):
    """A concurrent write to the deployment descriptor could not be merged.

    Attributes:
        key: Descriptor key involved in the conflict, if any
    """

    def __init__(self, message: str, key: str | None = None) -> None:
        """Initialize with the conflicting descriptor key."""
        self.key = key
        super().__init__(operation="state", message=message)


class DockerNotAvailableError(DeploymentError):
    """Docker daemon is not reachable."""

    def __init__(self, operation: str = "build") -> None:
        """Create an error with guidance for starting Docker."""
        super().__init__(
            operation=operation,
            message=(
                "Docker is not available. Ensure the Docker daemon is running "
                "and accessible (try: docker info)."
            ),
        )


class CloudSDKNotInstalledError(DeploymentError):
    """A cloud provider SDK required for deployment is not installed."""

    def __init__(self, provider: str, sdk_name: str) -> None:
        """Create an error naming the missing SDK package."""
        self.provider = provider
        self.sdk_name = sdk_name
        super().__init__(
            operation="deploy",
            message=(
                f"The {provider} SDK is not installed. "
                f"Install it with: pip install {sdk_name}"
            ),
        )
