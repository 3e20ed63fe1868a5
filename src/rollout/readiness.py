"""Readiness polling for container app revisions.

After an update the control plane creates the revision asynchronously.
ReadinessPoller watches the revision's running state until it is Running
(success) or Failed/Stopped/Degraded (failure), and reports replica
progress in between. There is no retry limit: a revision that never
settles is waited on until the caller cancels the task.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from azure.core.exceptions import AzureError

from .clients import ClientFactory
from .config import Config
from .errors import OperationError, RevisionFailedError, RevisionInactiveError
from .models import ReplicaStatus
from .operations import run_blocking
from .states import (
    STATUS_PREFIX,
    Outcome,
    classify_running_state,
    count_replicas,
    format_status,
    parse_running_state,
)

logger = logging.getLogger(__name__)

TROUBLESHOOTING_URL = "https://learn.microsoft.com/azure/container-apps/troubleshooting"

ProgressCallback = Callable[[str], None]
Sleeper = Callable[[float], Awaitable[Any]]


class ProgressReporter:
    """Forwards status lines to a callback, dropping consecutive repeats."""

    def __init__(self, callback: ProgressCallback | None) -> None:
        self._callback = callback
        self._last: str | None = None

    @property
    def last(self) -> str | None:
        return self._last

    def report(self, status: str) -> bool:
        """Emit ``status`` unless it equals the previous one.

        Returns:
            True if the callback was invoked.
        """
        if status == self._last:
            return False
        self._last = status
        if self._callback is not None:
            self._callback(status)
        return True


def revision_management_url(
    config: Config, subscription_id: str, resource_group: str, app_name: str
) -> str:
    """Portal link to the app's revision management blade.

    In demo mode a plain description is returned instead of a link.
    """
    if config.demo_mode:
        return f"Revision Management for {app_name} in Azure Portal"
    return (
        f"{config.portal_url}/#@/resource/subscriptions/{subscription_id}"
        f"/resourceGroups/{resource_group}/providers/Microsoft.App/containerApps/{app_name}"
        "/revisionManagement"
    )


def build_log_suggestion(management_url: str, revision_name: str) -> str:
    return (
        "To view logs:"
        f"\n1. Visit {management_url}"
        f"\n2. Click on revision '{revision_name}'"
        "\n3. View console and system logs"
        f"\nFor more troubleshooting information, visit {TROUBLESHOOTING_URL}"
    )


def _capture_running_state_details(pipeline_response: Any, deserialized: Any, headers: Any) -> Any:
    """``cls`` hook for get_revision that also returns runningStateDetails.

    Older api-versions of the SDK models do not expose the field, so it is
    read from the raw response body.
    """
    details = getattr(deserialized, "running_state_details", None)
    if not details:
        try:
            body = pipeline_response.http_response.json()
        except (AttributeError, ValueError):
            body = None
        if isinstance(body, dict):
            properties = body.get("properties")
            if isinstance(properties, dict):
                details = properties.get("runningStateDetails")
    return deserialized, details or None


class ReadinessPoller:
    """Polls a revision until it reaches a terminal running state."""

    def __init__(
        self,
        factory: ClientFactory,
        config: Config,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._factory = factory
        self._config = config
        self._sleep = sleep

    def interval_for(self, iteration: int) -> float:
        """Sleep duration after the given (1-based) poll iteration."""
        if iteration <= self._config.poll_step_up_after:
            return self._config.initial_poll_interval_seconds
        return self._config.extended_poll_interval_seconds

    async def await_ready(
        self,
        subscription_id: str,
        resource_group: str,
        app_name: str,
        revision_name: str,
        progress: ProgressCallback | None = None,
    ) -> None:
        """Block until the revision is Running.

        Raises:
            RevisionInactiveError: If the revision is not active.
            RevisionFailedError: If the revision is Failed, Stopped or Degraded.
            OperationError: If a status request fails.
            asyncio.CancelledError: If the calling task is cancelled.
        """
        reporter = ProgressReporter(progress)
        reporter.report(STATUS_PREFIX)

        revisions = self._factory.revisions(subscription_id)
        replicas = self._factory.replicas(subscription_id)

        logger.info(
            "Waiting for revision",
            extra={"app_name": app_name, "revision_name": revision_name},
        )

        iteration = 0
        while True:
            iteration += 1

            try:
                revision, details = await run_blocking(
                    revisions.get_revision,
                    resource_group,
                    app_name,
                    revision_name,
                    cls=_capture_running_state_details,
                )
            except AzureError as e:
                raise OperationError(f"getting revision '{revision_name}'", e) from e

            if revision.active is False:
                raise RevisionInactiveError(
                    revision_name,
                    "Check which revision is active in "
                    + revision_management_url(
                        self._config, subscription_id, resource_group, app_name
                    ),
                )

            outcome = classify_running_state(revision.running_state)
            if outcome is Outcome.FAILED:
                state = parse_running_state(revision.running_state)
                state_name = state.value if state is not None else str(revision.running_state)
                logger.error(
                    "Revision reached a failed state",
                    extra={
                        "revision_name": revision_name,
                        "running_state": state_name,
                        "details": details,
                    },
                )
                raise RevisionFailedError(
                    revision_name,
                    state_name,
                    build_log_suggestion(
                        revision_management_url(
                            self._config, subscription_id, resource_group, app_name
                        ),
                        revision_name,
                    ),
                    details=details,
                )

            if outcome is Outcome.SUCCEEDED:
                logger.info(
                    "Revision is running",
                    extra={"revision_name": revision_name, "polls": iteration},
                )
                return

            status = await self._replica_status(replicas, resource_group, app_name, revision_name)
            reporter.report(format_status(status))

            await self._sleep(self.interval_for(iteration))

    async def _replica_status(
        self, replicas: Any, resource_group: str, app_name: str, revision_name: str
    ) -> ReplicaStatus:
        try:
            collection = await run_blocking(
                replicas.list_replicas, resource_group, app_name, revision_name
            )
        except AzureError as e:
            raise OperationError("listing replicas", e) from e

        return count_replicas(collection.value or [])
