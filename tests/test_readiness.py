"""Tests for the revision readiness poller."""

from __future__ import annotations

import asyncio

import pytest
from azure_mock import MockAzureContext, ReplicaSnapshot
from conftest import RESOURCE_GROUP, SUBSCRIPTION_ID, RecordingSleep

from rollout.clients import ClientFactory
from rollout.config import Config
from rollout.errors import OperationError, RevisionFailedError, RevisionInactiveError
from rollout.readiness import (
    ProgressReporter,
    ReadinessPoller,
    build_log_suggestion,
    revision_management_url,
)

APP = "api"
REVISION = "api--v2"

NOT_READY = [ReplicaSnapshot(running=True, containers_ready=(False,))]
HALF_READY = [
    ReplicaSnapshot(running=True, containers_ready=(True,)),
    ReplicaSnapshot(running=False, containers_ready=(False,)),
]


class TestProgressReporter:
    """Tests for ProgressReporter."""

    def test_consecutive_duplicates_dropped(self) -> None:
        seen: list[str] = []
        reporter = ProgressReporter(seen.append)

        assert reporter.report("a") is True
        assert reporter.report("a") is False
        assert reporter.report("b") is True
        assert reporter.report("a") is True

        assert seen == ["a", "b", "a"]
        assert reporter.last == "a"

    def test_no_callback(self) -> None:
        reporter = ProgressReporter(None)

        assert reporter.report("a") is True
        assert reporter.last == "a"


class TestManagementUrl:
    """Tests for portal links in suggestions."""

    def test_portal_link(self) -> None:
        url = revision_management_url(Config(), SUBSCRIPTION_ID, RESOURCE_GROUP, APP)

        assert url == (
            f"https://portal.azure.com/#@/resource/subscriptions/{SUBSCRIPTION_ID}"
            f"/resourceGroups/{RESOURCE_GROUP}/providers/Microsoft.App/containerApps/{APP}"
            "/revisionManagement"
        )

    def test_demo_mode_text(self) -> None:
        url = revision_management_url(
            Config(demo_mode=True), SUBSCRIPTION_ID, RESOURCE_GROUP, APP
        )

        assert url == "Revision Management for api in Azure Portal"

    def test_log_suggestion_mentions_revision(self) -> None:
        suggestion = build_log_suggestion("https://portal/x", REVISION)

        assert "1. Visit https://portal/x" in suggestion
        assert f"2. Click on revision '{REVISION}'" in suggestion
        assert "troubleshooting" in suggestion


class TestReadinessPoller:
    """Tests for ReadinessPoller.await_ready."""

    @pytest.fixture
    def poller(
        self, factory: ClientFactory, config: Config, sleeper: RecordingSleep
    ) -> ReadinessPoller:
        return ReadinessPoller(factory, config, sleep=sleeper)

    @pytest.mark.asyncio
    async def test_running_immediately(
        self, azure: MockAzureContext, poller: ReadinessPoller, sleeper: RecordingSleep
    ) -> None:
        """Test that a Running revision returns after the first poll."""
        azure.state.script(REVISION, states=["Running"])
        progress: list[str] = []

        await poller.await_ready(SUBSCRIPTION_ID, RESOURCE_GROUP, APP, REVISION, progress.append)

        assert progress == ["Waiting for revision to be ready"]
        assert sleeper.durations == []
        assert azure.state.revision_polls[REVISION] == 1

    @pytest.mark.asyncio
    async def test_reports_replica_progress(
        self, azure: MockAzureContext, poller: ReadinessPoller, sleeper: RecordingSleep
    ) -> None:
        """Test progress lines while the revision is processing."""
        azure.state.script(
            REVISION,
            states=["Processing", "Processing", "Processing", "Running"],
            replicas=[NOT_READY, NOT_READY, HALF_READY],
        )
        progress: list[str] = []

        await poller.await_ready(SUBSCRIPTION_ID, RESOURCE_GROUP, APP, REVISION, progress.append)

        assert progress == [
            "Waiting for revision to be ready",
            "Waiting for revision to be ready: 1/1 replicas running, 0/1 replicas ready",
            "Waiting for revision to be ready: 1/2 replicas running, 1/2 replicas ready",
        ]
        assert sleeper.durations == [3.0, 3.0, 3.0]

    @pytest.mark.asyncio
    async def test_interval_steps_up_after_twenty_polls(
        self, azure: MockAzureContext, poller: ReadinessPoller, sleeper: RecordingSleep
    ) -> None:
        """Test that polls 1-20 sleep 3s and later polls sleep 10s."""
        azure.state.script(REVISION, states=["Processing"] * 25 + ["Running"])

        await poller.await_ready(SUBSCRIPTION_ID, RESOURCE_GROUP, APP, REVISION)

        assert sleeper.durations == [3.0] * 20 + [10.0] * 5

    @pytest.mark.asyncio
    async def test_unknown_state_keeps_waiting(
        self, azure: MockAzureContext, poller: ReadinessPoller
    ) -> None:
        azure.state.script(REVISION, states=["Unknown", "Activating", "Running"])

        await poller.await_ready(SUBSCRIPTION_ID, RESOURCE_GROUP, APP, REVISION)

        assert azure.state.revision_polls[REVISION] == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("state", ["Failed", "Stopped", "Degraded"])
    async def test_failed_state(
        self, azure: MockAzureContext, poller: ReadinessPoller, state: str
    ) -> None:
        """Test that terminal negative states raise with a log suggestion."""
        azure.state.script(REVISION, states=["Processing", state])

        with pytest.raises(RevisionFailedError) as exc_info:
            await poller.await_ready(SUBSCRIPTION_ID, RESOURCE_GROUP, APP, REVISION)

        error = exc_info.value
        assert str(error) == f"revision '{REVISION}' is in a {state} state"
        assert error.running_state == state
        assert "To view logs:" in error.suggestion
        assert "revisionManagement" in error.suggestion

    @pytest.mark.asyncio
    async def test_failed_state_includes_details(
        self, azure: MockAzureContext, poller: ReadinessPoller
    ) -> None:
        """Test that runningStateDetails from the raw response is surfaced."""
        azure.state.script(
            REVISION,
            states=["Failed"],
            running_state_details="Container 'api' crashed: exit code 1",
        )

        with pytest.raises(RevisionFailedError) as exc_info:
            await poller.await_ready(SUBSCRIPTION_ID, RESOURCE_GROUP, APP, REVISION)

        assert str(exc_info.value) == (
            f"revision '{REVISION}' is in a Failed state, Container 'api' crashed: exit code 1"
        )
        assert exc_info.value.details == "Container 'api' crashed: exit code 1"

    @pytest.mark.asyncio
    async def test_failed_state_demo_mode(
        self, azure: MockAzureContext, factory: ClientFactory, sleeper: RecordingSleep
    ) -> None:
        poller = ReadinessPoller(factory, Config(demo_mode=True), sleep=sleeper)
        azure.state.script(REVISION, states=["Failed"])

        with pytest.raises(RevisionFailedError) as exc_info:
            await poller.await_ready(SUBSCRIPTION_ID, RESOURCE_GROUP, APP, REVISION)

        assert "Revision Management for api in Azure Portal" in exc_info.value.suggestion
        assert "https://" not in exc_info.value.suggestion.split("troubleshooting")[0]

    @pytest.mark.asyncio
    async def test_inactive_revision(
        self, azure: MockAzureContext, poller: ReadinessPoller
    ) -> None:
        """Test that an inactive revision fails before its state is considered."""
        azure.state.script(REVISION, states=["Running"], active=[False])

        with pytest.raises(RevisionInactiveError) as exc_info:
            await poller.await_ready(SUBSCRIPTION_ID, RESOURCE_GROUP, APP, REVISION)

        assert str(exc_info.value) == f"revision '{REVISION}' is not active"
        assert exc_info.value.suggestion.startswith("Check which revision is active in https://")

    @pytest.mark.asyncio
    async def test_revision_deactivated_while_waiting(
        self, azure: MockAzureContext, poller: ReadinessPoller
    ) -> None:
        azure.state.script(REVISION, states=["Processing"], active=[True, True, False])

        with pytest.raises(RevisionInactiveError):
            await poller.await_ready(SUBSCRIPTION_ID, RESOURCE_GROUP, APP, REVISION)

        assert azure.state.revision_polls[REVISION] == 3

    @pytest.mark.asyncio
    async def test_get_revision_failure(
        self, azure: MockAzureContext, poller: ReadinessPoller
    ) -> None:
        azure.state.script(REVISION)
        azure.state.fail("get_revision")

        with pytest.raises(OperationError) as exc_info:
            await poller.await_ready(SUBSCRIPTION_ID, RESOURCE_GROUP, APP, REVISION)

        assert str(exc_info.value).startswith(f"getting revision '{REVISION}':")

    @pytest.mark.asyncio
    async def test_list_replicas_failure(
        self, azure: MockAzureContext, poller: ReadinessPoller
    ) -> None:
        azure.state.script(REVISION, states=["Processing"])
        azure.state.fail("list_replicas")

        with pytest.raises(OperationError) as exc_info:
            await poller.await_ready(SUBSCRIPTION_ID, RESOURCE_GROUP, APP, REVISION)

        assert exc_info.value.context == "listing replicas"

    @pytest.mark.asyncio
    async def test_cancellation_propagates(
        self, azure: MockAzureContext, factory: ClientFactory
    ) -> None:
        """Test that cancelling the task interrupts a pending sleep."""
        config = Config(initial_poll_interval_seconds=300, extended_poll_interval_seconds=300)
        poller = ReadinessPoller(factory, config)
        azure.state.script(REVISION, states=["Processing"])

        task = asyncio.create_task(
            poller.await_ready(SUBSCRIPTION_ID, RESOURCE_GROUP, APP, REVISION)
        )
        while azure.state.replica_polls.get(REVISION, 0) < 1:
            await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await asyncio.wait_for(task, timeout=5)

        assert azure.state.revision_polls[REVISION] == 1
