"""Control-plane client factory.

Builds authenticated Container Apps management clients for a subscription
and exposes the three operation groups the orchestrator needs: the app
resource, its revisions, and revision replicas.

Clients without extra policies are cached per subscription. A request that
needs a per-call policy (see policies.ApiVersionOverridePolicy) always gets
a dedicated client so the policy never reaches unrelated requests.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from azure.core.pipeline.policies import HTTPPolicy, SansIOHTTPPolicy
from azure.mgmt.appcontainers import ContainerAppsAPIClient

from .config import Config
from .credentials import SubscriptionCredentialProvider

logger = logging.getLogger(__name__)

USER_AGENT = "containerapp-rollout/0.1.0"

Policy = HTTPPolicy | SansIOHTTPPolicy


class ClientFactory:
    """Creates Container Apps clients scoped to a subscription."""

    def __init__(
        self,
        credential_provider: SubscriptionCredentialProvider,
        config: Config,
    ) -> None:
        self._credential_provider = credential_provider
        self._config = config
        self._clients: dict[str, ContainerAppsAPIClient] = {}

    def client(
        self,
        subscription_id: str,
        per_call_policies: Sequence[Policy] = (),
    ) -> ContainerAppsAPIClient:
        """Get a client for the subscription.

        Args:
            subscription_id: Target subscription.
            per_call_policies: Extra pipeline policies. When given, a new
                client is built and not cached.
        """
        if per_call_policies:
            logger.debug(
                "Creating dedicated client with per-call policies",
                extra={
                    "subscription_id": subscription_id,
                    "policies": [type(p).__name__ for p in per_call_policies],
                },
            )
            return self._create(subscription_id, per_call_policies=list(per_call_policies))

        cached = self._clients.get(subscription_id)
        if cached is None:
            cached = self._create(subscription_id)
            self._clients[subscription_id] = cached
        return cached

    def apps(self, subscription_id: str, per_call_policies: Sequence[Policy] = ()) -> Any:
        """Container apps operation group (get, create/update, update, list secrets)."""
        return self.client(subscription_id, per_call_policies).container_apps

    def revisions(self, subscription_id: str) -> Any:
        """Revisions operation group."""
        return self.client(subscription_id).container_apps_revisions

    def replicas(self, subscription_id: str) -> Any:
        """Revision replicas operation group."""
        return self.client(subscription_id).container_apps_revision_replicas

    def close(self) -> None:
        """Close all cached clients."""
        for client in self._clients.values():
            client.close()
        self._clients.clear()

    def _create(self, subscription_id: str, **kwargs: Any) -> ContainerAppsAPIClient:
        credential = self._credential_provider.credential_for_subscription(subscription_id)
        return ContainerAppsAPIClient(
            credential=credential,
            subscription_id=subscription_id,
            base_url=self._config.management_endpoint,
            user_agent=USER_AGENT,
            **kwargs,
        )
