"""Secret carry-forward for container app updates.

Reading a container app returns its secrets without values, and an update
that sends value-less secrets clears them. Before any update built from a
read app, the secret list is replaced with the full entries from the
list-secrets endpoint.
"""

from __future__ import annotations

import logging
from typing import Any

from azure.core.exceptions import AzureError
from azure.mgmt.appcontainers.models import ContainerApp, Secret

from .clients import ClientFactory
from .errors import OperationError
from .operations import run_blocking

logger = logging.getLogger(__name__)


async def list_secrets(
    factory: ClientFactory, subscription_id: str, resource_group: str, app_name: str
) -> list[Any]:
    """List the app's secrets including their values.

    Raises:
        OperationError: If the request fails.
    """
    apps = factory.apps(subscription_id)
    try:
        collection = await run_blocking(apps.list_secrets, resource_group, app_name)
    except AzureError as e:
        raise OperationError("listing secrets", e) from e
    return list(collection.value or [])


class SecretSynchronizer:
    """Restores secret values on a container app before it is updated."""

    def __init__(self, factory: ClientFactory) -> None:
        self._factory = factory

    async def sync(
        self,
        subscription_id: str,
        resource_group: str,
        app_name: str,
        app: ContainerApp,
    ) -> ContainerApp:
        """Replace the app's secret configuration with full secret entries.

        No request is made when the app has no secrets.
        """
        configuration = app.configuration
        if configuration is None or not configuration.secrets:
            return app

        secrets = await list_secrets(self._factory, subscription_id, resource_group, app_name)

        configuration.secrets = [
            Secret(
                name=s.name,
                value=s.value,
                identity=s.identity,
                key_vault_url=s.key_vault_url,
            )
            for s in secrets
        ]

        logger.debug(
            "Synchronized secrets",
            extra={"app_name": app_name, "secret_count": len(configuration.secrets)},
        )
        return app
