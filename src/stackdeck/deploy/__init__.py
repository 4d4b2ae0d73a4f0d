"""StackDeck deployment engine.

This package provides the orchestration core: the resource reconciler, the
dependency scheduler, the readiness poller, the descriptor store, and the
init, update and teardown plans built on top of them.
"""

from stackdeck.deploy.plans import build_init_plan, build_update_plan
from stackdeck.deploy.poller import ReadinessPoller, wait_until_ready
from stackdeck.deploy.reconciler import ResourceReconciler
from stackdeck.deploy.scheduler import RunResult, Scheduler, TaskGraph, TaskNode
from stackdeck.deploy.state import StateStore
from stackdeck.deploy.teardown import build_teardown_plan

__all__ = [
    "ReadinessPoller",
    "ResourceReconciler",
    "RunResult",
    "Scheduler",
    "StateStore",
    "TaskGraph",
    "TaskNode",
    "build_init_plan",
    "build_teardown_plan",
    "build_update_plan",
    "wait_until_ready",
]
