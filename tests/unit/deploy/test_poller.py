"""Unit tests for the readiness poller."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from stackdeck.deploy.poller import ProbeResult, ReadinessPoller, ResourceRef
from stackdeck.lib.errors import (
    ProvisioningFailedError,
    ReadinessTimeoutError,
    ResourceNotFoundError,
    TransientControlPlaneError,
    WaitCancelledError,
)
from stackdeck.models.resources import ResourceKind, ResourceRecord

if TYPE_CHECKING:
    from tests.unit.deploy.conftest import RecordingSleep

REF = ResourceRef("database", "Main")


def _ready_record() -> ResourceRecord:
    return ResourceRecord(
        kind=ResourceKind.DATABASE,
        logical_name="Main",
        external_id="mystudymain",
        attributes={"host": "mystudymain.db.internal"},
    )


class ScriptedProbe:
    """Probe returning queued results, repeating the last one."""

    def __init__(self, *results: ProbeResult | BaseException) -> None:
        self.results = list(results)
        self.calls = 0

    async def __call__(self) -> ProbeResult:
        self.calls += 1
        result = self.results[0] if len(self.results) == 1 else self.results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result


class TestWaitUntilReady:
    """Tests for ReadinessPoller.wait_until_ready."""

    @pytest.mark.asyncio
    async def test_ready_on_fifth_probe(self, fake_sleep: RecordingSleep) -> None:
        """Four pending probes then ready: five probes, four pauses."""
        poller = ReadinessPoller(interval=3, max_attempts=30, sleep=fake_sleep)
        probe = ScriptedProbe(
            *[ProbeResult.pending("creating") for _ in range(4)],
            ProbeResult.ready(_ready_record(), "available"),
        )

        record = await poller.wait_until_ready(REF, probe, asyncio.Event())

        assert probe.calls == 5
        assert fake_sleep.delays == [3, 3, 3, 3]
        assert record.attributes["host"] == "mystudymain.db.internal"

    @pytest.mark.asyncio
    async def test_ready_immediately_does_not_sleep(
        self, fake_sleep: RecordingSleep
    ) -> None:
        """The first probe runs without a pause."""
        poller = ReadinessPoller(interval=30, max_attempts=3, sleep=fake_sleep)

        await poller.wait_until_ready(REF, ScriptedProbe(ProbeResult.ready()))

        assert fake_sleep.delays == []

    @pytest.mark.asyncio
    async def test_timeout_after_max_attempts(self, fake_sleep: RecordingSleep) -> None:
        """A resource that never becomes ready times out with context."""
        poller = ReadinessPoller(interval=3, max_attempts=4, sleep=fake_sleep)
        probe = ScriptedProbe(ProbeResult.pending("backing-up"))

        with pytest.raises(ReadinessTimeoutError) as exc_info:
            await poller.wait_until_ready(REF, probe)

        error = exc_info.value
        assert probe.calls == 4
        assert error.attempts == 4
        assert error.kind == "database"
        assert error.logical_name == "Main"
        assert "backing-up" in str(error)
        assert isinstance(error, TimeoutError)

    @pytest.mark.asyncio
    async def test_failed_state_is_not_a_timeout(
        self, fake_sleep: RecordingSleep
    ) -> None:
        """A provider-reported failure stops polling at once."""
        poller = ReadinessPoller(interval=3, max_attempts=30, sleep=fake_sleep)
        probe = ScriptedProbe(
            ProbeResult.pending("creating"), ProbeResult.failed("storage-full")
        )

        with pytest.raises(ProvisioningFailedError, match="storage-full"):
            await poller.wait_until_ready(REF, probe)

        assert probe.calls == 2

    @pytest.mark.asyncio
    async def test_transient_probe_error_counts_as_pending(
        self, fake_sleep: RecordingSleep
    ) -> None:
        """A throttled probe is retried on the next interval."""
        poller = ReadinessPoller(interval=1, max_attempts=5, sleep=fake_sleep)
        probe = ScriptedProbe(
            TransientControlPlaneError("Throttling"), ProbeResult.ready()
        )

        await poller.wait_until_ready(REF, probe)

        assert probe.calls == 2

    @pytest.mark.asyncio
    async def test_other_probe_error_propagates(
        self, fake_sleep: RecordingSleep
    ) -> None:
        """Non-transient probe errors are not swallowed."""
        poller = ReadinessPoller(interval=1, max_attempts=5, sleep=fake_sleep)
        probe = ScriptedProbe(ResourceNotFoundError("DBInstanceNotFound"))

        with pytest.raises(ResourceNotFoundError) as exc_info:
            await poller.wait_until_ready(REF, probe)

        assert exc_info.value.logical_name == "Main"

    @pytest.mark.asyncio
    async def test_cancel_before_first_probe(self, fake_sleep: RecordingSleep) -> None:
        """A set token cancels before any probe runs."""
        poller = ReadinessPoller(interval=1, max_attempts=5, sleep=fake_sleep)
        token = asyncio.Event()
        token.set()
        probe = ScriptedProbe(ProbeResult.ready())

        with pytest.raises(WaitCancelledError):
            await poller.wait_until_ready(REF, probe, token)

        assert probe.calls == 0

    @pytest.mark.asyncio
    async def test_cancel_interrupts_pause(self) -> None:
        """Setting the token wakes a waiter sleeping between probes."""
        poller = ReadinessPoller(interval=3600, max_attempts=5)
        token = asyncio.Event()
        probe = ScriptedProbe(ProbeResult.pending("creating"))

        waiter = asyncio.ensure_future(poller.wait_until_ready(REF, probe, token))
        await asyncio.sleep(0.01)
        token.set()

        with pytest.raises(WaitCancelledError):
            await asyncio.wait_for(waiter, timeout=1)
        assert probe.calls == 1

    @pytest.mark.asyncio
    async def test_waits_do_not_block_each_other(self) -> None:
        """Two concurrent waits take about as long as one."""
        poller = ReadinessPoller(interval=0.05, max_attempts=10)

        def probe_ready_after(polls: int) -> ScriptedProbe:
            return ScriptedProbe(
                *[ProbeResult.pending() for _ in range(polls - 1)],
                ProbeResult.ready(),
            )

        loop = asyncio.get_running_loop()
        started = loop.time()
        await asyncio.gather(
            poller.wait_until_ready(REF, probe_ready_after(3)),
            poller.wait_until_ready(
                ResourceRef("load_balancer", "lb"), probe_ready_after(3)
            ),
        )

        assert loop.time() - started < 0.25


class TestPollerValidation:
    """Tests for poller construction bounds."""

    def test_rejects_zero_attempts(self) -> None:
        """At least one probe must be allowed."""
        with pytest.raises(ValueError, match="max_attempts"):
            ReadinessPoller(interval=1, max_attempts=0)

    def test_rejects_negative_interval(self) -> None:
        """The interval cannot be negative."""
        with pytest.raises(ValueError, match="interval"):
            ReadinessPoller(interval=-1, max_attempts=1)

    def test_resource_ref_str(self) -> None:
        """References render as kind and quoted name."""
        assert str(REF) == "database 'Main'"
