"""Tests for project discovery and stackdeck.yaml loading."""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from stackdeck.config.loader import (
    PROJECT_FILE,
    ProjectLoader,
    substitute_env_vars,
)
from stackdeck.lib.errors import ConfigError
from stackdeck.models.project import TagStrategy


class TestFindProjectRoot:
    """Tests for walking up to the project root."""

    def test_finds_root_from_subdirectory(self, temp_dir: Path) -> None:
        """The nearest ancestor holding stackdeck.yaml is the root."""
        (temp_dir / PROJECT_FILE).write_text("name: x\n")
        nested = temp_dir / "api" / "src"
        nested.mkdir(parents=True)

        assert ProjectLoader.find_project_root(nested) == temp_dir.resolve()

    def test_missing_project_file(self, temp_dir: Path) -> None:
        """Outside a project the lookup fails with guidance."""
        with pytest.raises(ConfigError, match="No stackdeck.yaml found"):
            ProjectLoader.find_project_root(temp_dir)


class TestSubstituteEnvVars:
    """Tests for ${VAR} substitution."""

    def test_set_variable_and_default(self) -> None:
        """Set variables are used and defaults fill the rest."""
        text = "id: ${REGISTRY}\nregion: ${REGION:-us-east-1}\n"

        result = substitute_env_vars(text, {"REGISTRY": "mylab"})

        assert result == "id: mylab\nregion: us-east-1\n"

    def test_unset_variable_raises(self) -> None:
        """A variable without a default must be set."""
        with pytest.raises(ConfigError) as exc_info:
            substitute_env_vars("id: ${REGISTRY}", {})

        assert exc_info.value.field == "REGISTRY"


class TestLoadProject:
    """Tests for ProjectLoader.load_project."""

    def test_minimal_project_defaults(
        self,
        write_project: Callable[..., Path],
        minimal_project: dict[str, Any],
    ) -> None:
        """Defaults cover everything but the name and registry."""
        root = write_project(minimal_project)

        project = ProjectLoader(env={}).load_project(root)

        assert project.name == "My Study"
        assert project.registry.tag_strategy is TagStrategy.LATEST
        assert project.aws.domain == "default"
        assert project.databases.roles == ["Main", "Transaction"]
        assert project.polling.max_attempts == 60

    def test_env_overrides_take_precedence(
        self,
        write_project: Callable[..., Path],
        minimal_project: dict[str, Any],
    ) -> None:
        """Listed environment variables override the file."""
        root = write_project(minimal_project)
        env = {"STACKDECK_PROFILE": "lab", "STACKDECK_REGION": "eu-west-1"}

        project = ProjectLoader(env=env).load_project(root)

        assert project.aws.profile == "lab"
        assert project.aws.region == "eu-west-1"

    def test_validation_errors_are_listed(
        self,
        write_project: Callable[..., Path],
        minimal_project: dict[str, Any],
    ) -> None:
        """Schema errors are reported per field."""
        minimal_project["aws"] = {"domain": "example.org"}
        minimal_project["registry"] = {"id": "MyLab"}
        root = write_project(minimal_project)

        with pytest.raises(ConfigError) as exc_info:
            ProjectLoader(env={}).load_project(root)

        message = exc_info.value.message
        assert "registry.id" in message
        assert "certificate_arn is required" in message

    def test_unparsable_yaml(self, temp_dir: Path) -> None:
        """Broken YAML is a configuration error."""
        (temp_dir / PROJECT_FILE).write_text("name: [unclosed\n")

        with pytest.raises(ConfigError, match="Failed to parse YAML"):
            ProjectLoader(env={}).load_project(temp_dir)

    def test_non_mapping_yaml(self, temp_dir: Path) -> None:
        """The top level must be a mapping."""
        (temp_dir / PROJECT_FILE).write_text("- a\n- b\n")

        with pytest.raises(ConfigError, match="Expected a mapping"):
            ProjectLoader(env={}).load_project(temp_dir)


class TestLoadTopology:
    """Tests for reading worker services from the compose file."""

    def test_workers_from_compose(
        self,
        write_project: Callable[..., Path],
        minimal_project: dict[str, Any],
    ) -> None:
        """Labelled services are workers, in both compose label styles."""
        compose = {
            "services": {
                "message-queue": {"image": "rabbitmq:3"},
                "exp1_worker": {
                    "image": "exp1",
                    "labels": {"isPushkinWorker": True},
                    "environment": ["EXPERIMENT=exp1", "EMPTY"],
                },
                "exp2_worker": {"labels": ["isPushkinWorker=true"]},
            }
        }
        root = write_project(minimal_project, compose)
        loader = ProjectLoader(env={})

        topology = loader.load_topology(root, loader.load_project(root))

        assert [w.name for w in topology.workers] == ["exp1_worker", "exp2_worker"]
        assert topology.workers[0].environment == {"EXPERIMENT": "exp1", "EMPTY": ""}
        assert topology.workers[0].experiment == "exp1"

    def test_missing_compose_means_no_workers(
        self,
        write_project: Callable[..., Path],
        minimal_project: dict[str, Any],
    ) -> None:
        """A project without a compose file has no workers."""
        root = write_project(minimal_project)
        loader = ProjectLoader(env={})

        topology = loader.load_topology(root, loader.load_project(root))

        assert topology.workers == []
