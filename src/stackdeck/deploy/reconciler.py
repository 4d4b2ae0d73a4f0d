"""Idempotent get-or-adopt-or-create for cloud resources.

Every resource task goes through ``ResourceReconciler.reconcile``:

1. A key already in the descriptor is returned as-is, with no control-plane
   call at all.
2. Otherwise the kind's handler looks for a provider resource matching the
   logical name; a match is adopted.
3. Otherwise the handler creates the resource.

An adopted or created resource then goes through the handler's converge
step, retried on its own, so a create interrupted before its follow-up
configuration is finished by whichever run adopts it. The record is
persisted only after that step succeeds.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

from stackdeck.deploy.state import StateStore
from stackdeck.lib.errors import (
    ControlPlaneError,
    DeploymentError,
    ResourceConflict,
    ResourceNotFoundError,
    TransientControlPlaneError,
    ValidationError,
)
from stackdeck.lib.logging_config import get_logger, log_retry
from stackdeck.models.resources import (
    UNMANAGED_KINDS,
    ResourceKind,
    ResourceRecord,
    ResourceStatus,
    resource_key,
)

logger = get_logger(__name__)

T = TypeVar("T")


class ResourceHandler(ABC):
    """Provider operations for one resource kind.

    Handlers only talk to the control plane. Persistence, retries and error
    context belong to the reconciler.
    """

    kind: ResourceKind

    @abstractmethod
    async def find(self, logical_name: str, spec: Any) -> ResourceRecord | None:
        """Return the provider resource matching ``logical_name``, if any."""

    @abstractmethod
    async def create(self, logical_name: str, spec: Any) -> ResourceRecord:
        """Create the resource described by ``spec``.

        Raises:
            ResourceConflict: If the provider already has it
        """

    async def converge(self, record: ResourceRecord, spec: Any) -> ResourceRecord:
        """Apply the configuration that follows creation.

        Runs after every create and every adoption, so each call made here
        must be safe to repeat on an already configured resource.
        """
        return record

    @abstractmethod
    async def delete(self, record: ResourceRecord) -> None:
        """Delete the resource behind ``record``.

        Raises:
            ResourceNotFoundError: If it is already gone
        """


class ResourceReconciler:
    """Map desired resources onto existing or newly created ones.

    Attributes:
        store: Descriptor store consulted and updated on every call
        max_retries: Retries of a transient control-plane error per call
        retry_backoff: Linear backoff step in seconds
    """

    def __init__(
        self,
        store: StateStore,
        handlers: Iterable[ResourceHandler] = (),
        max_retries: int = 3,
        retry_backoff: float = 2.0,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self._sleep = sleep
        self._handlers: dict[ResourceKind, ResourceHandler] = {}
        for handler in handlers:
            self.register(handler)

    def register(self, handler: ResourceHandler) -> None:
        """Register the handler for its kind, replacing any previous one."""
        self._handlers[handler.kind] = handler

    def handler_for(self, kind: ResourceKind) -> ResourceHandler:
        """Return the handler registered for ``kind``.

        Raises:
            DeploymentError: If no handler is registered
        """
        try:
            return self._handlers[kind]
        except KeyError:
            raise DeploymentError(
                operation="reconcile",
                message=f"No resource handler registered for kind '{kind.value}'",
            ) from None

    async def reconcile(
        self,
        kind: ResourceKind,
        logical_name: str,
        desired_spec: Any,
        depends_on: Iterable[str] = (),
        refresh: bool = False,
        before_create: Callable[[], Awaitable[object]] | None = None,
    ) -> ResourceRecord:
        """Return the resource for ``(kind, logical_name)``, creating it if needed.

        Args:
            kind: Resource kind
            logical_name: Deployment-scoped name
            desired_spec: Typed spec whose ``kind`` tag must match ``kind``
            depends_on: Descriptor keys this resource is built on
            refresh: Issue the create call even when recorded, for versioned
                kinds such as task definitions whose external id is stable
            before_create: Awaited once before the first create call, to
                checkpoint anything the provider will not return later

        Returns:
            The stored, adopted or created record

        Raises:
            ValidationError: If the spec is malformed or of the wrong kind
            TransientControlPlaneError: If retries were exhausted
            ControlPlaneError: For any other provider failure
        """
        key = resource_key(kind, logical_name)
        existing = self.store.get(key)
        if existing is not None and not refresh:
            logger.debug(f"{key} already recorded as {existing.external_id}")
            return existing

        self._check_spec(kind, logical_name, desired_spec)
        handler = self.handler_for(kind)

        try:
            record: ResourceRecord | None = None
            if not refresh:
                record = await self._with_retry(
                    f"find {key}", lambda: handler.find(logical_name, desired_spec)
                )
            adopted = record is not None
            if record is None:
                if before_create is not None:
                    await before_create()
                try:
                    record = await self._with_retry(
                        f"create {key}",
                        lambda: handler.create(logical_name, desired_spec),
                    )
                except ResourceConflict:
                    logger.info(f"{key} already exists at the provider, adopting it")
                    record = await self._with_retry(
                        f"find {key}", lambda: handler.find(logical_name, desired_spec)
                    )
                    if record is None:
                        raise
                    adopted = True
            found = record
            record = await self._with_retry(
                f"configure {key}", lambda: handler.converge(found, desired_spec)
            )
        except ControlPlaneError as exc:
            raise exc.with_context(kind.value, logical_name)

        updates: dict[str, Any] = {"depends_on": list(depends_on)}
        if adopted and record.status is ResourceStatus.AVAILABLE:
            updates["status"] = ResourceStatus.ADOPTED
        record = record.model_copy(update=updates)

        await self.store.merge_and_persist(records=[record])
        verb = "Adopted" if adopted else "Created"
        logger.info(f"{verb} {kind.value} '{logical_name}' ({record.external_id})")
        return record

    async def checkpoint(self, record: ResourceRecord) -> ResourceRecord:
        """Persist a refreshed or discovered record.

        Used after a readiness wait fills in endpoint attributes, and for
        kinds that are discovered or published rather than created.
        """
        await self.store.merge_and_persist(records=[record])
        return record

    async def release(self, record: ResourceRecord) -> None:
        """Delete a recorded resource and drop it from the descriptor.

        A resource that is already gone at the provider counts as deleted.
        """
        if record.kind not in UNMANAGED_KINDS:
            handler = self.handler_for(record.kind)
            try:
                await self._with_retry(
                    f"delete {record.key}", lambda: handler.delete(record)
                )
            except ResourceNotFoundError:
                logger.info(f"{record.key} was already deleted")
            except ControlPlaneError as exc:
                raise exc.with_context(record.kind.value, record.logical_name)
            else:
                logger.info(
                    f"Deleted {record.kind.value} '{record.logical_name}' "
                    f"({record.external_id})"
                )
        await self.store.remove([record.key])

    async def _with_retry(
        self, operation: str, call: Callable[[], Awaitable[T]]
    ) -> T:
        attempts = self.max_retries + 1
        attempt = 0
        while True:
            attempt += 1
            try:
                return await call()
            except TransientControlPlaneError as exc:
                if attempt >= attempts:
                    logger.error(f"{operation} failed after {attempts} attempts")
                    raise
                delay = self.retry_backoff * attempt
                log_retry(
                    logger,
                    operation,
                    attempt=attempt,
                    max_attempts=attempts,
                    delay=delay,
                    error=exc,
                )
                await self._sleep(delay)

    @staticmethod
    def _check_spec(kind: ResourceKind, logical_name: str, spec: Any) -> None:
        spec_kind = getattr(spec, "kind", None)
        if spec_kind != kind.value:
            raise ValidationError(
                f"Spec of kind '{spec_kind}' cannot describe a {kind.value}",
                operation="validate",
                kind=kind.value,
                logical_name=logical_name,
            )
