"""Deployment descriptor persistence.

The descriptor is the only mutable state shared between concurrently running
tasks. Every mutation goes through ``StateStore``, which serializes writers
with an asyncio lock and guards against other processes with a
compare-and-swap on the descriptor revision. Callers only ever receive
copies of the descriptor.
"""

from __future__ import annotations

import asyncio
import json
import os
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from stackdeck.lib.errors import DeploymentError, StateStoreConflict
from stackdeck.lib.logging_config import get_logger
from stackdeck.models.descriptor import DeploymentDescriptor, ProjectIdentity
from stackdeck.models.resources import DatabaseInfo, ResourceRecord

logger = get_logger(__name__)

STATE_VERSION = "1.0"


def get_state_path(
    project_root: Path, relative: str = ".stackdeck/deployment.json"
) -> Path:
    """Return the descriptor file path for a project."""
    return project_root / relative


def load_descriptor(state_path: Path) -> DeploymentDescriptor:
    """Load a deployment descriptor from disk.

    A missing or empty file yields an empty descriptor.

    Raises:
        DeploymentError: If the file cannot be read or is malformed
    """
    if not state_path.exists():
        return DeploymentDescriptor(version=STATE_VERSION)

    try:
        content = state_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise DeploymentError(
            operation="state",
            message=f"Failed to read deployment descriptor at {state_path}: {exc}",
        ) from exc

    if not content.strip():
        return DeploymentDescriptor(version=STATE_VERSION)

    try:
        return DeploymentDescriptor.model_validate_json(content)
    except ValidationError as exc:
        raise DeploymentError(
            operation="state",
            message=f"Invalid deployment descriptor format in {state_path}: {exc}",
        ) from exc


def save_descriptor(state_path: Path, descriptor: DeploymentDescriptor) -> None:
    """Atomically write a descriptor to disk (temp file + rename)."""
    tmp_path = state_path.with_suffix(state_path.suffix + ".tmp")
    try:
        state_path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(
            descriptor.model_dump(mode="json", by_alias=True),
            indent=2,
            sort_keys=True,
        )
        tmp_path.write_text(payload, encoding="utf-8")
        os.replace(tmp_path, state_path)
    except OSError as exc:
        raise DeploymentError(
            operation="state",
            message=f"Failed to write deployment descriptor to {state_path}: {exc}",
        ) from exc


def merge_records(
    descriptor: DeploymentDescriptor, records: Iterable[ResourceRecord]
) -> None:
    """Merge records into a descriptor in place.

    New keys are inserted. A key already present for the same external id is
    refreshed (status, attributes, dependencies); its created_at is kept.

    Raises:
        StateStoreConflict: If a key is already recorded for a different
            external id
    """
    now = datetime.now(timezone.utc)
    for record in records:
        existing = descriptor.resources.get(record.key)
        if existing is not None and existing.external_id != record.external_id:
            raise StateStoreConflict(
                f"{record.key} is already recorded as {existing.external_id}, "
                f"refusing to replace it with {record.external_id}",
                key=record.key,
            )
        created_at = record.created_at or (existing.created_at if existing else None)
        descriptor.resources[record.key] = record.model_copy(
            update={"created_at": created_at or now, "updated_at": now}
        )


class StateStore:
    """Single-writer store for the deployment descriptor.

    Example:
        >>> store = StateStore(Path(".stackdeck/deployment.json"))
        >>> descriptor = store.load()
        >>> await store.merge_and_persist(records=[record])
    """

    def __init__(self, path: Path, max_merge_attempts: int = 3) -> None:
        """Initialize the store.

        Args:
            path: Descriptor file location
            max_merge_attempts: Re-merge attempts when another process wrote
                the file between our read and our write
        """
        self.path = path
        self.max_merge_attempts = max_merge_attempts
        self._lock = asyncio.Lock()
        self._descriptor = DeploymentDescriptor(version=STATE_VERSION)
        self._loaded = False

    def load(self) -> DeploymentDescriptor:
        """Read the descriptor from disk and return a copy of it."""
        self._descriptor = load_descriptor(self.path)
        self._loaded = True
        logger.debug(
            f"Loaded descriptor revision {self._descriptor.revision} with "
            f"{len(self._descriptor.resources)} resources from {self.path}"
        )
        return self.snapshot()

    def snapshot(self) -> DeploymentDescriptor:
        """Return an independent copy of the current descriptor."""
        if not self._loaded:
            self.load()
        return self._descriptor.model_copy(deep=True)

    def get(self, key: str) -> ResourceRecord | None:
        """Return a copy of the record stored under ``key``."""
        if not self._loaded:
            self.load()
        record = self._descriptor.resources.get(key)
        return record.model_copy(deep=True) if record else None

    def pending_secret(self, identifier: str) -> str | None:
        """Return the password checkpointed for a database identifier."""
        if not self._loaded:
            self.load()
        return self._descriptor.pending_secrets.get(identifier)

    async def merge_and_persist(
        self,
        records: Iterable[ResourceRecord] = (),
        production_dbs: dict[str, DatabaseInfo] | None = None,
        pending_secrets: dict[str, str] | None = None,
        project: ProjectIdentity | None = None,
        site_url: str | None = None,
        api_url: str | None = None,
    ) -> DeploymentDescriptor:
        """Merge an update into the descriptor and persist it.

        Returns:
            A copy of the descriptor as written

        Raises:
            StateStoreConflict: If the update conflicts with recorded data, or
                the file kept changing underneath us
        """
        records = list(records)

        def _apply(descriptor: DeploymentDescriptor) -> None:
            merge_records(descriptor, records)
            if production_dbs:
                descriptor.production_dbs.update(production_dbs)
            if pending_secrets:
                descriptor.pending_secrets.update(pending_secrets)
            if project is not None:
                descriptor.project = project
            if site_url is not None:
                descriptor.site_url = site_url
            if api_url is not None:
                descriptor.api_url = api_url

        return await self._write(_apply)

    async def remove(self, keys: Iterable[str]) -> DeploymentDescriptor:
        """Drop records from the descriptor (teardown direction)."""
        keys = list(keys)

        def _apply(descriptor: DeploymentDescriptor) -> None:
            for key in keys:
                record = descriptor.resources.pop(key, None)
                if record is not None and record.attributes.get("role"):
                    descriptor.production_dbs.pop(record.attributes["role"], None)
                    descriptor.pending_secrets.pop(record.external_id, None)

        return await self._write(_apply)

    async def _write(
        self, apply: Callable[[DeploymentDescriptor], None]
    ) -> DeploymentDescriptor:
        async with self._lock:
            if not self._loaded:
                self.load()

            for attempt in range(1, self.max_merge_attempts + 1):
                on_disk = load_descriptor(self.path)
                if on_disk.revision != self._descriptor.revision:
                    # Another process wrote since we last read; merge onto theirs
                    logger.warning(
                        f"Descriptor revision moved from {self._descriptor.revision} "
                        f"to {on_disk.revision}, re-merging (attempt {attempt})"
                    )
                    self._descriptor = on_disk

                candidate = self._descriptor.model_copy(deep=True)
                apply(candidate)
                candidate.revision = self._descriptor.revision + 1

                # Re-check right before writing; the write itself is atomic
                if load_descriptor(self.path).revision != self._descriptor.revision:
                    continue
                save_descriptor(self.path, candidate)
                self._descriptor = candidate
                return candidate.model_copy(deep=True)

            raise StateStoreConflict(
                f"Descriptor at {self.path} changed concurrently "
                f"{self.max_merge_attempts} times, giving up"
            )
