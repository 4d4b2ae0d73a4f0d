"""Pytest configuration and shared fixtures for StackDeck tests."""

import os
import shutil
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest
import yaml


@pytest.fixture
def temp_dir() -> Generator[Path]:
    """Create a temporary directory for test file operations.

    Yields:
        Path to temporary directory

    Cleanup:
        Automatically removes directory after test
    """
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def isolated_env() -> Generator[dict[str, str]]:
    """Provide isolated environment variables for testing.

    Saves current environment and restores after test.

    Yields:
        Dictionary of original environment variables
    """
    original_env = os.environ.copy()
    yield original_env
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def write_project(temp_dir: Path) -> Callable[..., Path]:
    """Factory writing stackdeck.yaml (and optionally a compose file).

    Returns:
        Callable taking the project mapping and an optional compose mapping,
        returning the project root
    """

    def _write(
        project: dict[str, Any], compose: dict[str, Any] | None = None
    ) -> Path:
        (temp_dir / "stackdeck.yaml").write_text(yaml.safe_dump(project))
        if compose is not None:
            (temp_dir / "docker-compose.dev.yml").write_text(yaml.safe_dump(compose))
        return temp_dir

    return _write


@pytest.fixture
def minimal_project() -> dict[str, Any]:
    """Smallest valid stackdeck.yaml content."""
    return {"name": "My Study", "registry": {"id": "mylab"}}
