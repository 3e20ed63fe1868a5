"""Revision and replica state classification.

Pure functions over SDK model objects, no network access. The readiness
poller is a loop around these.

Revision lifecycle:
https://learn.microsoft.com/azure/container-apps/revisions#lifecycle
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from typing import Any

from .models import ReplicaStatus

STATUS_PREFIX = "Waiting for revision to be ready"


class RevisionRunningState(str, Enum):
    """Revision running states reported by the control plane."""

    PROCESSING = "Processing"
    UNKNOWN = "Unknown"
    RUNNING = "Running"
    FAILED = "Failed"
    STOPPED = "Stopped"
    DEGRADED = "Degraded"
    # Newer api-versions
    ACTIVATING = "Activating"
    DEPROVISIONING = "Deprovisioning"
    DEPROVISIONED = "Deprovisioned"


class ReplicaRunningState(str, Enum):
    """Replica running states."""

    RUNNING = "Running"
    NOT_RUNNING = "NotRunning"
    UNKNOWN = "Unknown"


class Outcome(str, Enum):
    """Classification of a revision running state."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


FAILED_STATES: frozenset[RevisionRunningState] = frozenset({
    RevisionRunningState.FAILED,
    RevisionRunningState.STOPPED,
    RevisionRunningState.DEGRADED,
})


def enum_value(value: Any) -> str | None:
    """String value of an SDK enum member or raw string, None when unset."""
    if value is None:
        return None
    return value.value if isinstance(value, Enum) else str(value)


def parse_running_state(state: Any) -> RevisionRunningState | None:
    """Map an SDK enum member or raw string to RevisionRunningState.

    Returns None for values this package does not know about.
    """
    value = enum_value(state)
    if value is None:
        return None
    for member in RevisionRunningState:
        if member.value.lower() == value.lower():
            return member
    return None


def classify_running_state(state: Any) -> Outcome:
    """Classify a revision running state as pending, succeeded or failed.

    Unknown or missing states are pending: the poller keeps waiting.
    """
    parsed = parse_running_state(state)
    if parsed is RevisionRunningState.RUNNING:
        return Outcome.SUCCEEDED
    if parsed in FAILED_STATES:
        return Outcome.FAILED
    return Outcome.PENDING


def is_replica_running(replica: Any) -> bool:
    value = enum_value(getattr(replica, "running_state", None))
    return value is not None and value.lower() == ReplicaRunningState.RUNNING.value.lower()


def is_replica_ready(replica: Any) -> bool:
    """True when every container of the replica reports ready.

    A container with no ready flag counts as not ready.
    """
    containers = getattr(replica, "containers", None) or []
    return all(getattr(c, "ready", None) is True for c in containers)


def count_replicas(replicas: Iterable[Any]) -> ReplicaStatus:
    """Count running and ready replicas."""
    total = running = ready = 0
    for replica in replicas:
        total += 1
        if is_replica_running(replica):
            running += 1
        if is_replica_ready(replica):
            ready += 1
    return ReplicaStatus(total=total, running=running, ready=ready)


def format_status(status: ReplicaStatus, prefix: str = STATUS_PREFIX) -> str:
    return (
        f"{prefix}: {status.running}/{status.total} replicas running, "
        f"{status.ready}/{status.total} replicas ready"
    )
