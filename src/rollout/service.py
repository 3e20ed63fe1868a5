"""Container app rollout orchestration.

ContainerAppService is the entry point for callers. Each operation runs as
one sequence of steps against the control plane:

deploy_yaml:
1. Parse the manifest; an ``api-version`` key switches to the override path
2. Submit create-or-update and wait for the operation to finish
3. Wait for the resulting latest revision to be running

add_revision:
1. Read the app and its latest revision
2. Clone the revision template with a new suffix and image
3. Restore secret values, update the app and wait for the operation
4. Wait for the new revision to be running
5. In multiple-revision mode, move all traffic to the new revision

Application objects are always fetched right before they are mutated; the
control plane is the only source of truth.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from collections.abc import Callable
from typing import Any

from azure.core.exceptions import AzureError
from azure.mgmt.appcontainers.models import ContainerApp

from .clients import ClientFactory
from .config import Config
from .errors import OperationError
from .manifest import Manifest
from .models import IngressConfiguration
from .operations import run_blocking, wait_for_operation
from .policies import ApiVersionOverridePolicy
from .readiness import ProgressCallback, ReadinessPoller, Sleeper
from .secret_sync import SecretSynchronizer, list_secrets
from .states import enum_value
from .traffic import TrafficWeightManager

logger = logging.getLogger(__name__)

# Revision suffix marker, see
# https://learn.microsoft.com/azure/container-apps/revisions#name-suffix
REVISION_SUFFIX_PREFIX = "azd"

MULTIPLE_REVISIONS_MODE = "multiple"


def new_revision_suffix(now: float) -> str:
    """Revision suffix derived from a Unix timestamp (whole seconds)."""
    return f"{REVISION_SUFFIX_PREFIX}-{int(now)}"


def revision_name(app_name: str, suffix: str) -> str:
    """Revision names are always ``{app}--{suffix}``."""
    return f"{app_name}--{suffix}"


class ContainerAppService:
    """Deploys and rolls out revisions of Azure Container Apps."""

    def __init__(
        self,
        factory: ClientFactory,
        config: Config,
        clock: Callable[[], float] = time.time,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._factory = factory
        self._config = config
        self._clock = clock
        self._poller = ReadinessPoller(factory, config, sleep=sleep)
        self._secrets = SecretSynchronizer(factory)
        self._traffic = TrafficWeightManager(self._update_app)

    @property
    def config(self) -> Config:
        return self._config

    async def get_ingress_configuration(
        self, subscription_id: str, resource_group: str, app_name: str
    ) -> IngressConfiguration:
        """Public hostnames of the app; empty when ingress has no FQDN."""
        try:
            app = await self._get_app(subscription_id, resource_group, app_name)
        except OperationError as e:
            raise OperationError("failed retrieving container app properties", e) from e

        ingress = app.configuration.ingress if app.configuration is not None else None
        if ingress is None or not ingress.fqdn:
            return IngressConfiguration(host_names=[])

        return IngressConfiguration(host_names=[ingress.fqdn])

    async def list_secrets(
        self, subscription_id: str, resource_group: str, app_name: str
    ) -> list[Any]:
        """Secrets of the app including values."""
        return await list_secrets(self._factory, subscription_id, resource_group, app_name)

    async def deploy_yaml(
        self,
        subscription_id: str,
        resource_group: str,
        app_name: str,
        manifest_bytes: bytes,
        progress: ProgressCallback | None = None,
    ) -> None:
        """Create or update the app from a YAML manifest and wait until it runs.

        Raises:
            ManifestError: If the manifest cannot be parsed or serialized.
            OperationError: If submitting or completing the operation fails.
            ErrorWithSuggestion: If the new revision fails or is inactive.
        """
        manifest = Manifest.parse(manifest_bytes, max_size=self._config.max_manifest_size_bytes)
        api_version = manifest.api_version

        logger.info(
            "Applying manifest",
            extra={
                "subscription_id": subscription_id,
                "resource_group": resource_group,
                "app_name": app_name,
                "api_version": api_version or "default",
            },
        )

        if api_version is not None:
            result = await self._apply_with_api_version(
                subscription_id, resource_group, app_name, manifest, api_version
            )
        else:
            result = await self._apply(subscription_id, resource_group, app_name, manifest)

        latest_revision = getattr(result, "latest_revision_name", None)
        if not latest_revision:
            raise OperationError(f"container app '{app_name}' did not report a latest revision")

        await self._poller.await_ready(
            subscription_id, resource_group, app_name, latest_revision, progress
        )

    async def add_revision(
        self,
        subscription_id: str,
        resource_group: str,
        app_name: str,
        image_name: str,
        progress: ProgressCallback | None = None,
    ) -> str:
        """Roll out a new revision that only changes the container image.

        Only the first container of the template is updated.

        Returns:
            The name of the new revision.

        Raises:
            OperationError: If any read or update step fails.
            ErrorWithSuggestion: If the new revision fails or is inactive.
        """
        app = await self._get_app(subscription_id, resource_group, app_name)

        current_revision_name = app.latest_revision_name
        if not current_revision_name:
            raise OperationError(f"container app '{app_name}' has no latest revision")

        revisions = self._factory.revisions(subscription_id)
        try:
            current_revision = await run_blocking(
                revisions.get_revision, resource_group, app_name, current_revision_name
            )
        except AzureError as e:
            raise OperationError(f"getting revision '{current_revision_name}'", e) from e

        if current_revision.template is None or not current_revision.template.containers:
            raise OperationError(
                f"revision '{current_revision_name}' has no containers to update"
            )

        suffix = new_revision_suffix(self._clock())
        new_revision_name = revision_name(app_name, suffix)

        template = copy.deepcopy(current_revision.template)
        template.revision_suffix = suffix
        template.containers[0].image = image_name
        app.template = template

        logger.info(
            "Adding revision",
            extra={
                "app_name": app_name,
                "from_revision": current_revision_name,
                "revision_name": new_revision_name,
                "image": image_name,
                "container_count": len(template.containers),
            },
        )

        try:
            app = await self._secrets.sync(subscription_id, resource_group, app_name, app)
        except OperationError as e:
            raise OperationError("syncing secrets", e) from e

        try:
            await self._update_app(subscription_id, resource_group, app_name, app)
        except OperationError as e:
            raise OperationError("updating container app revision", e) from e

        await self._poller.await_ready(
            subscription_id, resource_group, app_name, new_revision_name, progress
        )

        mode = app.configuration.active_revisions_mode if app.configuration is not None else None
        if (enum_value(mode) or "").lower() == MULTIPLE_REVISIONS_MODE:
            try:
                await self._traffic.set_traffic(
                    subscription_id, resource_group, app_name, app, new_revision_name
                )
            except OperationError as e:
                raise OperationError("setting traffic weights", e) from e

        return new_revision_name

    async def _apply(
        self,
        subscription_id: str,
        resource_group: str,
        app_name: str,
        manifest: Manifest,
    ) -> Any:
        container_app = manifest.to_container_app()
        apps = self._factory.apps(subscription_id)

        try:
            poller = await run_blocking(
                apps.begin_create_or_update, resource_group, app_name, container_app
            )
        except AzureError as e:
            raise OperationError("applying manifest", e) from e

        return await self._wait(poller, "polling for container app update completion")

    async def _apply_with_api_version(
        self,
        subscription_id: str,
        resource_group: str,
        app_name: str,
        manifest: Manifest,
        api_version: str,
    ) -> Any:
        body = manifest.without_api_version().to_json_bytes()
        policy = ApiVersionOverridePolicy(api_version, body)

        # Dedicated client: the policy must not reach any other request.
        client = self._factory.client(subscription_id, per_call_policies=[policy])
        try:
            # The placeholder body is replaced by the policy on the wire.
            poller = await run_blocking(
                client.container_apps.begin_create_or_update,
                resource_group,
                app_name,
                ContainerApp(location=""),
            )
        except AzureError as e:
            client.close()
            raise OperationError("applying manifest", e) from e
        except BaseException:
            client.close()
            raise
        finally:
            # Operation polling goes through the same pipeline.
            policy.clear()

        try:
            return await self._wait(poller, "polling for container app update completion")
        finally:
            # A poller still running in the SDK thread keeps using the client.
            if poller.done():
                client.close()

    async def _get_app(
        self, subscription_id: str, resource_group: str, app_name: str
    ) -> ContainerApp:
        apps = self._factory.apps(subscription_id)
        try:
            return await run_blocking(apps.get, resource_group, app_name)
        except AzureError as e:
            raise OperationError("getting container app", e) from e

    async def _update_app(
        self,
        subscription_id: str,
        resource_group: str,
        app_name: str,
        app: ContainerApp,
    ) -> None:
        apps = self._factory.apps(subscription_id)
        try:
            poller = await run_blocking(apps.begin_update, resource_group, app_name, app)
        except AzureError as e:
            raise OperationError("begin updating container app", e) from e

        await self._wait(poller, "polling for container app update completion")

    async def _wait(self, poller: Any, context: str) -> Any:
        try:
            return await wait_for_operation(
                poller, self._config.operation_timeout_seconds, context
            )
        except AzureError as e:
            raise OperationError(context, e) from e
        except TimeoutError as e:
            raise OperationError(
                context, f"timed out after {self._config.operation_timeout_seconds}s"
            ) from e
