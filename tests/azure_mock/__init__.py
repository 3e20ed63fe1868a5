"""Azure Container Apps mock for integration testing.

This module provides a mock implementation of the Container Apps management
API that enables integration testing without actual Azure connectivity.

Key Features:
- In-memory state for apps, revisions, replicas and secrets
- Real azure-mgmt-appcontainers model objects in responses
- Scripted revision running states and replica readiness per revision
- Requests passed through per-call pipeline policies before recording
- Error injection for calls and long-running operations

Usage:
    from azure_mock import MockAzureContext

    with MockAzureContext() as ctx:
        ctx.state.add_app("rg", app)
        ctx.state.script("api--v2", states=["Processing", "Running"])

        # rollout code here uses the mocked SDK

        assert ctx.state.requests[-1].api_version == "2024-03-01"
"""

from .container_apps import (
    DEFAULT_API_VERSION,
    MockContainerAppsClient,
    MockContainerAppsState,
    MockPoller,
    RecordedRequest,
    ReplicaSnapshot,
    RevisionScript,
    build_container_app,
)
from .context import MockAzureContext, mock_azure_context
from .credential import MockTokenCredential

__all__ = [
    "DEFAULT_API_VERSION",
    "MockAzureContext",
    "MockContainerAppsClient",
    "MockContainerAppsState",
    "MockPoller",
    "MockTokenCredential",
    "RecordedRequest",
    "ReplicaSnapshot",
    "RevisionScript",
    "build_container_app",
    "mock_azure_context",
]
