"""Configuration loader for StackDeck projects.

This module provides the ProjectLoader class for locating a project root,
loading and validating ``stackdeck.yaml``, and reading the compose file that
describes the project's services.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from stackdeck.lib.errors import ConfigError
from stackdeck.models.project import ProjectConfig
from stackdeck.models.topology import ServiceTopology

logger = logging.getLogger(__name__)

PROJECT_FILE = "stackdeck.yaml"

# Environment variable to config path mapping
ENV_VAR_MAP = {
    ("aws", "profile"): "STACKDECK_PROFILE",
    ("aws", "region"): "STACKDECK_REGION",
    ("registry", "id"): "STACKDECK_REGISTRY_ID",
    ("state_path",): "STACKDECK_STATE_PATH",
}

_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


def substitute_env_vars(text: str, env: os._Environ[str] | dict[str, str]) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` references in raw YAML text.

    Raises:
        ConfigError: If a referenced variable is unset and has no default
    """

    def _replace(match: re.Match[str]) -> str:
        name, default = match.group(1), match.group(2)
        if name in env:
            return env[name]
        if default is not None:
            return default
        raise ConfigError(name, f"Environment variable '{name}' is not set")

    return _ENV_PATTERN.sub(_replace, text)


def format_validation_errors(exc: PydanticValidationError) -> str:
    """Render pydantic errors as one ``field: message`` line per error."""
    lines = []
    for error in exc.errors():
        loc = ".".join(str(part) for part in error.get("loc", ())) or "unknown"
        lines.append(f"  {loc}: {error.get('msg', 'invalid value')}")
    return "\n".join(lines)


def _apply_env_overrides(
    data: dict[str, Any], env: os._Environ[str] | dict[str, str]
) -> None:
    for path, env_name in ENV_VAR_MAP.items():
        value = env.get(env_name)
        if not value:
            continue
        target = data
        for part in path[:-1]:
            target = target.setdefault(part, {})
        target[path[-1]] = value
        logger.debug(f"Using {env_name} for {'.'.join(path)}")


class ProjectLoader:
    """Loads and validates StackDeck project configuration.

    Configuration precedence (highest to lowest):
    1. Environment variables listed in ENV_VAR_MAP
    2. stackdeck.yaml
    3. Model defaults
    """

    def __init__(self, env: os._Environ[str] | dict[str, str] | None = None) -> None:
        """Initialize the loader.

        Args:
            env: Environment mapping, defaults to os.environ
        """
        self._env = env if env is not None else os.environ

    @staticmethod
    def find_project_root(start: Path | None = None) -> Path:
        """Walk up from ``start`` until a directory holding stackdeck.yaml is found.

        Raises:
            ConfigError: If no project file exists in start or its parents
        """
        current = (start or Path.cwd()).resolve()
        for candidate in (current, *current.parents):
            if (candidate / PROJECT_FILE).is_file():
                return candidate
        raise ConfigError(
            "project",
            f"No {PROJECT_FILE} found in {current} or any parent directory",
        )

    def read_yaml(self, path: Path) -> dict[str, Any]:
        """Read a YAML mapping with environment variable substitution.

        Raises:
            ConfigError: If the file is missing, unparsable or not a mapping
        """
        try:
            raw_text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(
                str(path), f"Unable to read {path}: {e.strerror or e}"
            ) from e

        try:
            content = yaml.safe_load(substitute_env_vars(raw_text, self._env))
        except yaml.YAMLError as e:
            raise ConfigError(
                "yaml_parse", f"Failed to parse YAML file {path}: {e}"
            ) from e

        if content is None:
            return {}
        if not isinstance(content, dict):
            raise ConfigError(str(path), "Expected a mapping at the top level")
        return content

    def load_project(self, root: Path) -> ProjectConfig:
        """Load and validate stackdeck.yaml from a project root.

        Raises:
            ConfigError: If the file is missing or invalid
        """
        path = root / PROJECT_FILE
        data = self.read_yaml(path)
        _apply_env_overrides(data, self._env)

        try:
            return ProjectConfig(**data)
        except PydanticValidationError as e:
            raise ConfigError(
                "project_validation",
                f"Invalid project configuration in {path}:\n"
                f"{format_validation_errors(e)}",
            ) from e

    def load_topology(self, root: Path, project: ProjectConfig) -> ServiceTopology:
        """Load the compose file named by the project configuration.

        A missing compose file yields an empty topology: the project simply
        has no worker services.
        """
        path = root / project.compose_file
        if not path.exists():
            logger.warning(f"Compose file {path} not found, assuming no workers")
            return ServiceTopology(worker_label=project.services.worker_label)

        topology = ServiceTopology.from_compose(
            self.read_yaml(path), worker_label=project.services.worker_label
        )
        logger.debug(
            f"Loaded {len(topology.services)} services, "
            f"{len(topology.workers)} workers from {path}"
        )
        return topology
