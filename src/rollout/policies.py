"""Request pipeline policies for the Container Apps client.

The generated ContainerAppsAPIClient is pinned to one api-version and one
set of model classes. A manifest that targets a different api-version has
to be sent with that version on the query string and its own JSON body,
which the SDK offers no parameter for. ApiVersionOverridePolicy rewrites
the outgoing request in the pipeline instead.

The policy must be installed per call (``per_call_policies`` of a client
built for that single operation), never on a shared client.
"""

from __future__ import annotations

import logging
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from azure.core.pipeline import PipelineRequest
from azure.core.pipeline.policies import SansIOHTTPPolicy

logger = logging.getLogger(__name__)

API_VERSION_QUERY_PARAMETER = "api-version"


def replace_query_parameter(url: str, name: str, value: str) -> str:
    """Set ``name`` to ``value`` in the URL query, replacing existing values."""
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != name]
    query.append((name, value))
    return urlunsplit(parts._replace(query=urlencode(query)))


class ApiVersionOverridePolicy(SansIOHTTPPolicy):
    """Replaces the api-version and body of outgoing requests.

    While ``body`` is set, every request passing through the policy gets the
    configured api-version and the held JSON payload. Once ``clear()`` has
    been called requests are forwarded unchanged, so that operation polling
    issued through the same pipeline is not rewritten.
    """

    def __init__(self, api_version: str, body: bytes | None = None) -> None:
        if not api_version:
            raise ValueError("api_version must not be empty")
        self.api_version = api_version
        self.body = body

    @property
    def active(self) -> bool:
        return self.body is not None

    def clear(self) -> None:
        """Stop rewriting requests."""
        self.body = None

    def on_request(self, request: PipelineRequest) -> None:
        if self.body is None:
            return

        http_request = request.http_request
        http_request.url = replace_query_parameter(
            http_request.url, API_VERSION_QUERY_PARAMETER, self.api_version
        )

        logger.debug(
            "Overriding request body",
            extra={
                "api_version": self.api_version,
                "body": self.body.decode("utf-8", errors="replace"),
            },
        )

        http_request.set_bytes_body(self.body)
        http_request.headers["Content-Type"] = "application/json"
