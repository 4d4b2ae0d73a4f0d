"""Resource task library used by the deployment plans."""

from stackdeck.deploy.tasks.base import DeploymentEnv, generate_secret

__all__ = ["DeploymentEnv", "generate_secret"]
