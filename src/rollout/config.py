"""Configuration management with validation.

All tunables of the rollout orchestrator are collected in a single frozen
dataclass. Values are validated at construction time so a bad environment
fails before any request reaches the control plane.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_PORTAL_URL_BASE = "https://portal.azure.com"
DEFAULT_MANAGEMENT_ENDPOINT = "https://management.azure.com"

# Readiness polling: 3s for the first 20 polls, 10s afterwards
DEFAULT_POLL_INTERVAL_SECONDS = 3.0
DEFAULT_EXTENDED_POLL_INTERVAL_SECONDS = 10.0
DEFAULT_POLL_STEP_UP_AFTER = 20
MAX_POLL_INTERVAL_SECONDS = 300.0

# Upper bound on waiting for a single create/update operation
DEFAULT_OPERATION_TIMEOUT_SECONDS = 1800
MIN_OPERATION_TIMEOUT_SECONDS = 30
MAX_OPERATION_TIMEOUT_SECONDS = 7200

MAX_MANIFEST_SIZE_BYTES = 1024 * 1024  # 1MB max manifest

VALID_URL_PATTERN = r"^https?://[^\s/$.?#][^\s]*$"


@dataclass(frozen=True)
class Config:
    """Rollout configuration, usually loaded from environment variables.

    Invalid configurations raise ConfigurationError immediately rather than
    failing halfway through a rollout.
    """

    # Endpoints
    portal_url_base: str = DEFAULT_PORTAL_URL_BASE
    management_endpoint: str = DEFAULT_MANAGEMENT_ENDPOINT

    # Replace portal links in error suggestions with plain text
    demo_mode: bool = False

    # Readiness polling
    initial_poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    extended_poll_interval_seconds: float = DEFAULT_EXTENDED_POLL_INTERVAL_SECONDS
    poll_step_up_after: int = DEFAULT_POLL_STEP_UP_AFTER

    # Long-running operations
    operation_timeout_seconds: int = DEFAULT_OPERATION_TIMEOUT_SECONDS

    # Input limits
    max_manifest_size_bytes: int = MAX_MANIFEST_SIZE_BYTES

    # Optional user-assigned managed identity for authentication
    managed_identity_client_id: str | None = None

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not re.match(VALID_URL_PATTERN, self.portal_url_base):
            errors.append(f"ROLLOUT_PORTAL_URL must be an http(s) URL: {self.portal_url_base}")

        if not re.match(VALID_URL_PATTERN, self.management_endpoint):
            errors.append(
                f"ROLLOUT_MANAGEMENT_ENDPOINT must be an http(s) URL: {self.management_endpoint}"
            )

        for name, value in (
            ("ROLLOUT_POLL_INTERVAL", self.initial_poll_interval_seconds),
            ("ROLLOUT_POLL_INTERVAL_EXTENDED", self.extended_poll_interval_seconds),
        ):
            if not (0 < value <= MAX_POLL_INTERVAL_SECONDS):
                errors.append(
                    f"{name} must be greater than 0 and at most {MAX_POLL_INTERVAL_SECONDS} seconds"
                )

        if self.poll_step_up_after < 0:
            errors.append("ROLLOUT_POLL_STEP_UP_AFTER must not be negative")

        if not (
            MIN_OPERATION_TIMEOUT_SECONDS
            <= self.operation_timeout_seconds
            <= MAX_OPERATION_TIMEOUT_SECONDS
        ):
            errors.append(
                f"ROLLOUT_OPERATION_TIMEOUT must be between {MIN_OPERATION_TIMEOUT_SECONDS} "
                f"and {MAX_OPERATION_TIMEOUT_SECONDS} seconds"
            )

        if self.max_manifest_size_bytes < 1:
            errors.append("max_manifest_size_bytes must be at least 1")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @property
    def portal_url(self) -> str:
        """Portal base URL without a trailing slash."""
        return self.portal_url_base.rstrip("/")

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            ROLLOUT_PORTAL_URL: Portal base URL used in error suggestions
                (default: https://portal.azure.com)
            ROLLOUT_MANAGEMENT_ENDPOINT: ARM endpoint (default: https://management.azure.com)
            ROLLOUT_DEMO_MODE: If "true", portal links are replaced by plain text
            ROLLOUT_POLL_INTERVAL: Initial readiness poll interval in seconds (default: 3)
            ROLLOUT_POLL_INTERVAL_EXTENDED: Poll interval after the step-up (default: 10)
            ROLLOUT_POLL_STEP_UP_AFTER: Polls before stepping up the interval (default: 20)
            ROLLOUT_OPERATION_TIMEOUT: Seconds to wait for one create/update (default: 1800)
            ROLLOUT_MANAGED_IDENTITY_CLIENT_ID: Client ID of a user-assigned managed
                identity; when unset DefaultAzureCredential is used
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_float(key: str, default: float) -> float:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return float(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be a number: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        return cls(
            portal_url_base=os.environ.get("ROLLOUT_PORTAL_URL", DEFAULT_PORTAL_URL_BASE),
            management_endpoint=os.environ.get(
                "ROLLOUT_MANAGEMENT_ENDPOINT", DEFAULT_MANAGEMENT_ENDPOINT
            ),
            demo_mode=get_bool("ROLLOUT_DEMO_MODE", False),
            initial_poll_interval_seconds=get_float(
                "ROLLOUT_POLL_INTERVAL", DEFAULT_POLL_INTERVAL_SECONDS
            ),
            extended_poll_interval_seconds=get_float(
                "ROLLOUT_POLL_INTERVAL_EXTENDED", DEFAULT_EXTENDED_POLL_INTERVAL_SECONDS
            ),
            poll_step_up_after=get_int("ROLLOUT_POLL_STEP_UP_AFTER", DEFAULT_POLL_STEP_UP_AFTER),
            operation_timeout_seconds=get_int(
                "ROLLOUT_OPERATION_TIMEOUT", DEFAULT_OPERATION_TIMEOUT_SECONDS
            ),
            managed_identity_client_id=(
                os.environ.get("ROLLOUT_MANAGED_IDENTITY_CLIENT_ID") or None
            ),
        )
