"""Teardown as the mirror image of the creation graph.

Every recorded resource becomes one node whose creation dependencies are
the ``depends_on`` keys it was recorded with. Reversing that graph yields
the deletion order: a resource is released only after every resource built
on top of it has been released.
"""

from __future__ import annotations

from stackdeck.deploy.reconciler import ResourceReconciler
from stackdeck.deploy.scheduler import TaskAction, TaskContext, TaskGraph, TaskNode
from stackdeck.lib.logging_config import get_logger
from stackdeck.models.descriptor import DeploymentDescriptor
from stackdeck.models.resources import ResourceRecord

logger = get_logger(__name__)


def creation_graph(descriptor: DeploymentDescriptor) -> TaskGraph:
    """Rebuild the creation order of the recorded resources.

    Dependencies on keys that are no longer recorded are dropped.
    """

    async def noop(ctx: TaskContext) -> None:
        return None

    resources = descriptor.resources
    return TaskGraph(
        TaskNode(
            id=key,
            action=noop,
            dependencies=frozenset(d for d in record.depends_on if d in resources),
            kind=record.kind.value,
        )
        for key, record in resources.items()
    )


def _release_action(
    reconciler: ResourceReconciler, record: ResourceRecord
) -> TaskAction:
    async def release(ctx: TaskContext) -> str:
        await reconciler.release(record)
        return record.external_id

    return release


def build_teardown_plan(
    descriptor: DeploymentDescriptor, reconciler: ResourceReconciler
) -> TaskGraph:
    """Deletion graph for every resource in ``descriptor``.

    Raises:
        ConfigError: If the recorded dependencies form a cycle
    """
    graph = creation_graph(descriptor).reversed(
        action_for=lambda node: _release_action(
            reconciler, descriptor.resources[node.id]
        )
    )
    order = graph.validate()
    logger.debug(f"Teardown order: {', '.join(order)}")
    return graph
