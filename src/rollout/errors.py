"""Error taxonomy for rollout operations.

Input errors (ManifestError) and remote failures (OperationError) are fatal
and never retried. Terminal revision states are reported through
ErrorWithSuggestion subclasses so callers can show remediation steps.
Cancellation is not represented here: asyncio.CancelledError propagates
untouched.
"""

from __future__ import annotations


class RolloutError(Exception):
    """Base class for all rollout failures."""

    pass


class ManifestError(RolloutError):
    """Raised when a deployment manifest cannot be parsed or serialized."""

    pass


class OperationError(RolloutError):
    """Raised when a control-plane request fails.

    The message carries the step that failed followed by the cause, e.g.
    ``getting container app: (ResourceNotFound) ...``.
    """

    def __init__(self, context: str, cause: BaseException | str | None = None) -> None:
        self.context = context
        message = f"{context}: {cause}" if cause is not None else context
        super().__init__(message)


class ErrorWithSuggestion(RolloutError):
    """An error paired with a human-readable remediation suggestion."""

    def __init__(self, message: str, suggestion: str) -> None:
        super().__init__(message)
        self.suggestion = suggestion


class RevisionFailedError(ErrorWithSuggestion):
    """Raised when a revision reaches a terminal negative running state."""

    def __init__(
        self,
        revision_name: str,
        running_state: str,
        suggestion: str,
        details: str | None = None,
    ) -> None:
        self.revision_name = revision_name
        self.running_state = running_state
        self.details = details
        suffix = f", {details}" if details else ""
        super().__init__(
            f"revision '{revision_name}' is in a {running_state} state{suffix}",
            suggestion,
        )


class RevisionInactiveError(ErrorWithSuggestion):
    """Raised when the revision being waited on is no longer active."""

    def __init__(self, revision_name: str, suggestion: str) -> None:
        self.revision_name = revision_name
        super().__init__(f"revision '{revision_name}' is not active", suggestion)
