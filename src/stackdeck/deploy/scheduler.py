"""Dependency-aware concurrent task scheduler.

A command is expressed as a ``TaskGraph``: nodes carry an async action and
the ids of the nodes they depend on. ``Scheduler.run`` starts every node
whose dependencies have all succeeded, runs independent nodes concurrently,
and passes each node the outputs of its direct dependencies. When a node
fails, its transitive dependents are skipped while unrelated branches keep
running to completion.
"""

from __future__ import annotations

import asyncio
import itertools
import time
from collections.abc import Awaitable, Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from stackdeck.lib.errors import ConfigError, DeploymentError
from stackdeck.lib.logging_config import get_logger

logger = get_logger(__name__)


class TaskState(str, Enum):
    """Runtime state of a task within one run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class TaskContext:
    """What a running task can see.

    Attributes:
        task_id: Id of the running task
        results: Outputs of the task's direct dependencies, keyed by task id
        cancel_token: Set when waiters should give up; pass it to pollers
    """

    task_id: str
    results: Mapping[str, Any]
    cancel_token: asyncio.Event


TaskAction = Callable[[TaskContext], Awaitable[Any]]


@dataclass(frozen=True)
class TaskNode:
    """A node of the task graph.

    Attributes:
        id: Unique task id within the graph
        action: Coroutine function run with a TaskContext
        dependencies: Ids of the tasks that must succeed first
        kind: Resource kind or step name, for logs and grouping
    """

    id: str
    action: TaskAction
    dependencies: frozenset[str] = field(default_factory=frozenset)
    kind: str = "task"

    def __post_init__(self) -> None:
        # Normalize any iterable of ids
        object.__setattr__(self, "dependencies", frozenset(self.dependencies))


@dataclass
class TaskOutcome:
    """Final (or current) result of a task.

    ``start_order`` and ``finish_order`` come from one counter shared by the
    whole run, so they totally order every start and finish event.
    """

    task_id: str
    state: TaskState = TaskState.PENDING
    output: Any = None
    error: BaseException | None = None
    started_at: float | None = None
    finished_at: float | None = None
    start_order: int | None = None
    finish_order: int | None = None
    skipped_because: str | None = None

    @property
    def duration(self) -> float | None:
        """Seconds spent running, if the task ran."""
        if self.started_at is None or self.finished_at is None:
            return None
        return self.finished_at - self.started_at


class TaskGraph:
    """Acyclic graph of task nodes.

    Example:
        >>> graph = TaskGraph()
        >>> graph.add(TaskNode("sg:database", create_group))
        >>> graph.add(TaskNode("db:Main", create_db, {"sg:database"}))
        >>> graph.validate()
        ['sg:database', 'db:Main']
    """

    def __init__(self, nodes: Iterable[TaskNode] = ()) -> None:
        self._nodes: dict[str, TaskNode] = {}
        for node in nodes:
            self.add(node)

    def add(self, node: TaskNode) -> TaskNode:
        """Add a node.

        Raises:
            ConfigError: If a node with the same id exists
        """
        if node.id in self._nodes:
            raise ConfigError("task_graph", f"Duplicate task id '{node.id}'")
        self._nodes[node.id] = node
        return node

    def get(self, task_id: str) -> TaskNode:
        return self._nodes[task_id]

    @property
    def nodes(self) -> dict[str, TaskNode]:
        """Copy of the id to node mapping, in insertion order."""
        return dict(self._nodes)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._nodes

    def __iter__(self) -> Iterator[TaskNode]:
        return iter(list(self._nodes.values()))

    def __len__(self) -> int:
        return len(self._nodes)

    def children(self) -> dict[str, set[str]]:
        """Direct dependents of every node."""
        children: dict[str, set[str]] = {task_id: set() for task_id in self._nodes}
        for node in self._nodes.values():
            for dep in node.dependencies:
                if dep in children:
                    children[dep].add(node.id)
        return children

    def dependents(self, task_id: str) -> set[str]:
        """Transitive dependents of ``task_id``."""
        children = self.children()
        found: set[str] = set()
        stack = list(children.get(task_id, ()))
        while stack:
            current = stack.pop()
            if current in found:
                continue
            found.add(current)
            stack.extend(children[current])
        return found

    def validate(self) -> list[str]:
        """Check the graph and return its ids in a dependency-respecting order.

        Raises:
            ConfigError: If a dependency names an unknown task, or the graph
                contains a cycle
        """
        for node in self._nodes.values():
            unknown = sorted(node.dependencies - self._nodes.keys())
            if unknown:
                raise ConfigError(
                    "task_graph",
                    f"Task '{node.id}' depends on unknown task(s): "
                    f"{', '.join(unknown)}",
                )

        remaining = {task_id: len(n.dependencies) for task_id, n in self._nodes.items()}
        children = self.children()
        ready = [task_id for task_id, count in remaining.items() if count == 0]
        order: list[str] = []
        while ready:
            current = ready.pop(0)
            order.append(current)
            for child in sorted(children[current]):
                remaining[child] -= 1
                if remaining[child] == 0:
                    ready.append(child)

        if len(order) != len(self._nodes):
            cycle = self._find_cycle({t for t, c in remaining.items() if c > 0})
            raise ConfigError(
                "task_graph", f"Dependency cycle detected: {' -> '.join(cycle)}"
            )
        return order

    def reversed(
        self, action_for: Callable[[TaskNode], TaskAction] | None = None
    ) -> TaskGraph:
        """Mirror-image graph: every edge flipped.

        Args:
            action_for: Maps each node to the action of its mirror node, for
                example its deletion; the original action is kept when None
        """
        children = self.children()
        return TaskGraph(
            TaskNode(
                id=node.id,
                action=action_for(node) if action_for else node.action,
                dependencies=frozenset(children[node.id]),
                kind=node.kind,
            )
            for node in self._nodes.values()
        )

    def _find_cycle(self, candidates: set[str]) -> list[str]:
        visiting: list[str] = []
        visited: set[str] = set()

        def visit(task_id: str) -> list[str] | None:
            if task_id in visiting:
                return visiting[visiting.index(task_id) :] + [task_id]
            if task_id in visited:
                return None
            visiting.append(task_id)
            for dep in sorted(self._nodes[task_id].dependencies & candidates):
                cycle = visit(dep)
                if cycle:
                    return cycle
            visiting.pop()
            visited.add(task_id)
            return None

        for task_id in sorted(candidates):
            cycle = visit(task_id)
            if cycle:
                return cycle
        return sorted(candidates)


@dataclass
class RunResult:
    """Aggregate result of one scheduler run."""

    outcomes: dict[str, TaskOutcome]

    def _with_state(self, state: TaskState) -> list[str]:
        return [t for t, outcome in self.outcomes.items() if outcome.state is state]

    @property
    def succeeded(self) -> list[str]:
        return self._with_state(TaskState.SUCCEEDED)

    @property
    def failed(self) -> list[str]:
        return self._with_state(TaskState.FAILED)

    @property
    def skipped(self) -> list[str]:
        return self._with_state(TaskState.SKIPPED)

    @property
    def ok(self) -> bool:
        """True when every task succeeded."""
        return all(o.state is TaskState.SUCCEEDED for o in self.outcomes.values())

    @property
    def errors(self) -> dict[str, BaseException]:
        """Errors of failed tasks, keyed by task id."""
        return {
            task_id: outcome.error
            for task_id, outcome in self.outcomes.items()
            if outcome.error is not None
        }

    def output(self, task_id: str) -> Any:
        """Output of a succeeded task.

        Raises:
            KeyError: If the task is not part of the run
            DeploymentError: If the task did not succeed
        """
        outcome = self.outcomes[task_id]
        if outcome.state is not TaskState.SUCCEEDED:
            raise DeploymentError(
                operation="run",
                message=f"Task '{task_id}' has no output ({outcome.state.value})",
            )
        return outcome.output


class Scheduler:
    """Run a task graph with as much concurrency as its edges allow."""

    def __init__(
        self,
        max_concurrency: int | None = None,
        cancel_waiters_on_failure: bool = False,
    ) -> None:
        """Initialize the scheduler.

        Args:
            max_concurrency: Upper bound on concurrently running actions,
                unbounded when None
            cancel_waiters_on_failure: Set the shared cancel token as soon as
                any task fails, so in-flight readiness waits stop early
        """
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.max_concurrency = max_concurrency
        self.cancel_waiters_on_failure = cancel_waiters_on_failure

    async def run(self, graph: TaskGraph) -> RunResult:
        """Execute every node of ``graph`` and report each one's final state.

        Cancelling the coroutine running this method cancels every
        in-flight task and waits for them before re-raising.

        Raises:
            ConfigError: If the graph is invalid
        """
        order = graph.validate()
        nodes = graph.nodes
        children = graph.children()
        outcomes = {task_id: TaskOutcome(task_id) for task_id in order}
        unmet = {task_id: set(nodes[task_id].dependencies) for task_id in order}
        cancel_token = asyncio.Event()
        semaphore = (
            asyncio.Semaphore(self.max_concurrency) if self.max_concurrency else None
        )
        counter = itertools.count()
        launched: set[str] = set()
        running: dict[asyncio.Task[None], str] = {}

        async def execute(node: TaskNode) -> None:
            outcome = outcomes[node.id]
            context = TaskContext(
                task_id=node.id,
                results={dep: outcomes[dep].output for dep in node.dependencies},
                cancel_token=cancel_token,
            )
            if semaphore is None:
                await run_action(node, outcome, context)
            else:
                async with semaphore:
                    await run_action(node, outcome, context)

        async def run_action(
            node: TaskNode, outcome: TaskOutcome, context: TaskContext
        ) -> None:
            outcome.state = TaskState.RUNNING
            outcome.started_at = time.monotonic()
            outcome.start_order = next(counter)
            logger.debug(f"Starting task {node.id}")
            try:
                outcome.output = await node.action(context)
            except asyncio.CancelledError:
                outcome.state = TaskState.FAILED
                outcome.error = DeploymentError(
                    operation="run", message=f"Task '{node.id}' was cancelled"
                )
                raise
            except Exception as exc:
                outcome.state = TaskState.FAILED
                outcome.error = exc
                logger.error(f"Task {node.id} failed: {exc}")
            else:
                outcome.state = TaskState.SUCCEEDED
                logger.debug(f"Task {node.id} succeeded")
            finally:
                outcome.finished_at = time.monotonic()
                outcome.finish_order = next(counter)

        def launch_ready() -> None:
            for task_id in order:
                if task_id in launched or unmet[task_id]:
                    continue
                if outcomes[task_id].state is not TaskState.PENDING:
                    continue
                launched.add(task_id)
                task = asyncio.ensure_future(execute(nodes[task_id]))
                running[task] = task_id

        def skip_dependents(failed_id: str) -> None:
            for dependent in graph.dependents(failed_id):
                outcome = outcomes[dependent]
                if outcome.state is TaskState.PENDING:
                    outcome.state = TaskState.SKIPPED
                    outcome.skipped_because = failed_id
                    logger.info(f"Skipping {dependent}: dependency {failed_id} failed")

        try:
            launch_ready()
            while running:
                done, _ = await asyncio.wait(
                    running.keys(), return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    task_id = running.pop(task)
                    if outcomes[task_id].state is TaskState.SUCCEEDED:
                        for child in children[task_id]:
                            unmet[child].discard(task_id)
                        continue
                    if outcomes[task_id].state is not TaskState.FAILED:
                        # Cancelled before the action ever started
                        outcomes[task_id].state = TaskState.FAILED
                        outcomes[task_id].error = DeploymentError(
                            operation="run", message=f"Task '{task_id}' was cancelled"
                        )
                    skip_dependents(task_id)
                    if self.cancel_waiters_on_failure:
                        cancel_token.set()
                launch_ready()
        except asyncio.CancelledError:
            cancel_token.set()
            for task in running:
                task.cancel()
            await asyncio.gather(*running, return_exceptions=True)
            raise

        result = RunResult(outcomes)
        logger.info(
            f"Run finished: {len(result.succeeded)} succeeded, "
            f"{len(result.failed)} failed, {len(result.skipped)} skipped"
        )
        return result
