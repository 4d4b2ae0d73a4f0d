"""StackDeck - provision and tear down multi-tier AWS deployments.

StackDeck drives the AWS control plane to build a project's static site,
databases, container cluster, load balancer and DNS records from one
configuration file, and records everything it created in a resumable
deployment descriptor.

Main features:
- Idempotent get-or-adopt-or-create reconciliation of every resource
- Concurrent, dependency-ordered provisioning with failure isolation
- Resumable runs from a checkpointed descriptor
- Teardown in reverse dependency order
"""

from stackdeck.config.loader import ProjectLoader
from stackdeck.lib.errors import ConfigError, DeploymentError, StackDeckError

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ConfigError",
    "DeploymentError",
    "ProjectLoader",
    "StackDeckError",
]
