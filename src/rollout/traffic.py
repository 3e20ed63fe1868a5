"""Traffic weight management for multi-revision apps."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from azure.mgmt.appcontainers.models import ContainerApp, TrafficWeight

from .errors import OperationError

logger = logging.getLogger(__name__)

FULL_WEIGHT = 100

AppUpdater = Callable[[str, str, str, ContainerApp], Awaitable[None]]


class TrafficWeightManager:
    """Points all ingress traffic at a single revision.

    Any existing split is discarded; gradual shifting is not supported.
    """

    def __init__(self, update_app: AppUpdater) -> None:
        self._update_app = update_app

    async def set_traffic(
        self,
        subscription_id: str,
        resource_group: str,
        app_name: str,
        app: ContainerApp,
        revision_name: str,
    ) -> None:
        """Route 100% of traffic to ``revision_name`` and apply the update.

        Raises:
            OperationError: If the app has no ingress or the update fails.
        """
        ingress = app.configuration.ingress if app.configuration is not None else None
        if ingress is None:
            raise OperationError(f"container app '{app_name}' has no ingress configured")

        ingress.traffic = [TrafficWeight(revision_name=revision_name, weight=FULL_WEIGHT)]

        logger.info(
            "Shifting traffic",
            extra={"app_name": app_name, "revision_name": revision_name, "weight": FULL_WEIGHT},
        )

        try:
            await self._update_app(subscription_id, resource_group, app_name, app)
        except OperationError as e:
            raise OperationError("updating traffic weights", e) from e
