"""Bounded, cancellable readiness polling.

Resources such as databases and load balancers keep provisioning after their
create call returns. ``ReadinessPoller`` suspends the calling task until a
probe reports the resource ready, without blocking any other task, and tells
a timeout (the resource may still finish) apart from a provider-reported
failure.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple

from stackdeck.lib.errors import (
    ControlPlaneError,
    ProvisioningFailedError,
    ReadinessTimeoutError,
    TransientControlPlaneError,
    WaitCancelledError,
)
from stackdeck.lib.logging_config import get_logger
from stackdeck.models.resources import ResourceRecord

logger = get_logger(__name__)


class ProbeState(str, Enum):
    """What a single probe observed."""

    READY = "ready"
    PENDING = "pending"
    FAILED = "failed"


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one readiness probe.

    Attributes:
        state: Observed readiness
        record: Refreshed record when ready (None for deletions)
        detail: Provider status text, used in logs and errors
    """

    state: ProbeState
    record: ResourceRecord | None = None
    detail: str = ""

    @classmethod
    def ready(
        cls, record: ResourceRecord | None = None, detail: str = ""
    ) -> ProbeResult:
        return cls(ProbeState.READY, record, detail)

    @classmethod
    def pending(cls, detail: str = "") -> ProbeResult:
        return cls(ProbeState.PENDING, None, detail)

    @classmethod
    def failed(cls, detail: str) -> ProbeResult:
        return cls(ProbeState.FAILED, None, detail)


class ResourceRef(NamedTuple):
    """Identifies the resource being waited on."""

    kind: str
    logical_name: str

    def __str__(self) -> str:
        return f"{self.kind} '{self.logical_name}'"


Probe = Callable[[], Awaitable[ProbeResult]]
Sleep = Callable[[float], Awaitable[object]]


class ReadinessPoller:
    """Poll a probe at a fixed interval until it reports ready.

    Example:
        >>> poller = ReadinessPoller(interval=30, max_attempts=60)
        >>> record = await poller.wait_until_ready(
        ...     ResourceRef("database", "Main"), probe, cancel_token=token
        ... )
    """

    def __init__(
        self,
        interval: float = 30.0,
        max_attempts: int = 60,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize the poller.

        Args:
            interval: Seconds between probe attempts
            max_attempts: Probe attempts before giving up
            sleep: Sleep coroutine, injectable for tests

        Raises:
            ValueError: If the bounds are not positive
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if interval < 0:
            raise ValueError("interval must not be negative")
        self.interval = interval
        self.max_attempts = max_attempts
        self._sleep = sleep

    async def wait_until_ready(
        self,
        resource_ref: ResourceRef,
        probe: Probe,
        cancel_token: asyncio.Event | None = None,
    ) -> ResourceRecord | None:
        """Suspend until ``probe`` reports the resource ready.

        The first probe runs immediately; later probes follow ``interval``
        seconds apart. A probe that raises TransientControlPlaneError counts
        as a pending attempt.

        Returns:
            The record carried by the ready probe result

        Raises:
            ProvisioningFailedError: If a probe reports a failed state
            ReadinessTimeoutError: If max_attempts probes never saw ready
            WaitCancelledError: If cancel_token was set while waiting
        """
        kind, name = resource_ref
        detail = ""
        for attempt in range(1, self.max_attempts + 1):
            self._raise_if_cancelled(resource_ref, cancel_token)

            try:
                result = await probe()
            except TransientControlPlaneError as exc:
                result = ProbeResult.pending(f"transient error: {exc.message}")
            except ControlPlaneError as exc:
                raise exc.with_context(kind, name)

            if result.state is ProbeState.READY:
                logger.debug(f"{resource_ref} ready after {attempt} probe(s)")
                return result.record
            if result.state is ProbeState.FAILED:
                raise ProvisioningFailedError(
                    f"Provisioning failed: {result.detail or 'failed state'}",
                    operation="wait",
                    kind=kind,
                    logical_name=name,
                )

            detail = result.detail
            logger.debug(
                f"{resource_ref} not ready ({detail or 'pending'}), "
                f"attempt {attempt}/{self.max_attempts}"
            )
            if attempt < self.max_attempts:
                await self._pause(cancel_token)

        raise ReadinessTimeoutError(
            f"Not ready after {self.max_attempts} attempts "
            f"({self.max_attempts * self.interval:.0f}s)"
            + (f", last status: {detail}" if detail else ""),
            attempts=self.max_attempts,
            kind=kind,
            logical_name=name,
        )

    async def _pause(self, cancel_token: asyncio.Event | None) -> None:
        if cancel_token is None:
            await self._sleep(self.interval)
            return

        sleeper = asyncio.ensure_future(self._sleep(self.interval))
        canceller = asyncio.ensure_future(cancel_token.wait())
        try:
            await asyncio.wait(
                {sleeper, canceller}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for pending in (sleeper, canceller):
                pending.cancel()

    @staticmethod
    def _raise_if_cancelled(
        resource_ref: ResourceRef, cancel_token: asyncio.Event | None
    ) -> None:
        if cancel_token is not None and cancel_token.is_set():
            raise WaitCancelledError(
                "Wait cancelled",
                operation="wait",
                kind=resource_ref.kind,
                logical_name=resource_ref.logical_name,
            )


async def wait_until_ready(
    resource_ref: ResourceRef,
    probe: Probe,
    interval: float,
    max_attempts: int,
    cancel_token: asyncio.Event | None = None,
) -> ResourceRecord | None:
    """Wait on a single resource without keeping a poller around."""
    poller = ReadinessPoller(interval=interval, max_attempts=max_attempts)
    return await poller.wait_until_ready(resource_ref, probe, cancel_token)
