"""Credential acquisition for control-plane clients.

Credentials are an external collaborator: the rest of the package only
depends on SubscriptionCredentialProvider, which hands out an azure-core
TokenCredential for a given subscription.

The default provider prefers a user-assigned managed identity when one is
configured and otherwise falls back to DefaultAzureCredential (environment,
workload identity, managed identity, Azure CLI, ...).
"""

from __future__ import annotations

import logging
import re
from typing import Protocol

from azure.core.credentials import TokenCredential
from azure.identity import DefaultAzureCredential, ManagedIdentityCredential

logger = logging.getLogger(__name__)

VALID_SUBSCRIPTION_ID_PATTERN = r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"


class CredentialError(Exception):
    """Raised when no credential can be produced for a subscription."""

    pass


class SubscriptionCredentialProvider(Protocol):
    """Returns an authenticated credential scoped to a subscription."""

    def credential_for_subscription(self, subscription_id: str) -> TokenCredential: ...


def validate_subscription_id(subscription_id: str) -> None:
    """Validate subscription ID format at the boundary.

    Raises:
        CredentialError: If subscription_id is not a GUID.
    """
    if not subscription_id or not re.match(
        VALID_SUBSCRIPTION_ID_PATTERN, subscription_id.lower()
    ):
        raise CredentialError(
            f"Invalid subscription_id format: {subscription_id!r}. "
            "Must be a valid GUID (xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx)"
        )


class DefaultCredentialProvider:
    """Credential provider backed by azure-identity.

    A single credential instance is created lazily and shared by every
    subscription; azure-identity caches tokens per scope internally.
    """

    def __init__(self, managed_identity_client_id: str | None = None) -> None:
        self._client_id = managed_identity_client_id
        self._credential: TokenCredential | None = None

    def credential_for_subscription(self, subscription_id: str) -> TokenCredential:
        """Get a credential for the given subscription.

        Raises:
            CredentialError: If the subscription ID is malformed.
        """
        validate_subscription_id(subscription_id)

        if self._credential is None:
            self._credential = self._create_credential()

        return self._credential

    def _create_credential(self) -> TokenCredential:
        if self._client_id:
            logger.info(
                "Using user-assigned managed identity",
                extra={
                    "client_id": (
                        self._client_id[:8] + "..." if len(self._client_id) > 8 else self._client_id
                    )
                },
            )
            return ManagedIdentityCredential(client_id=self._client_id)

        logger.info("Using DefaultAzureCredential chain")
        return DefaultAzureCredential()

    def close(self) -> None:
        """Close the underlying credential, if one was created."""
        if self._credential is not None and hasattr(self._credential, "close"):
            self._credential.close()
        self._credential = None
