"""Cloud control-plane clients."""

from stackdeck.deploy.control_plane.base import ControlPlaneClient
from stackdeck.models.project import AwsSettings


def create_control_plane(settings: AwsSettings) -> ControlPlaneClient:
    """Create the control-plane client for the configured account.

    Args:
        settings: AWS account settings from stackdeck.yaml

    Returns:
        Control-plane client instance

    Raises:
        CloudSDKNotInstalledError: If aioboto3 is not installed
    """
    from stackdeck.deploy.control_plane.aws import AwsControlPlane

    return AwsControlPlane(profile=settings.profile, region=settings.region)


__all__ = ["ControlPlaneClient", "create_control_plane"]
