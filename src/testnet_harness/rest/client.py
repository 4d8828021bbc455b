"""
REST client for the node under test.

Wraps the node's HTTP API in typed, blocking calls. Every failure, transport
or HTTP status, surfaces as a `RestError` so callers handle one exception type.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Final

import httpx
from pydantic import TypeAdapter, ValidationError

from testnet_harness.types import HarnessError
from testnet_harness.wire import Fragment

from .models import (
    AccountState,
    FragmentLog,
    FragmentsProcessingSummary,
    NodeState,
    NodeStats,
    NodeStatus,
)

logger = logging.getLogger(__name__)

API_PREFIX: Final = "/api/v0"
"""Path prefix of every node REST endpoint."""

DEFAULT_TIMEOUT: Final = 5.0
"""HTTP request timeout in seconds."""

_FRAGMENT_LOGS: Final = TypeAdapter(list[FragmentLog])


class RestError(HarnessError):
    """
    Error talking to the node REST API.

    Attributes:
        status_code: HTTP status, or None for transport failures.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


@dataclass(slots=True)
class NodeRestClient:
    """Blocking client for one node's REST API."""

    base_url: str
    """Node REST root, e.g. ``http://127.0.0.1:8443``."""

    timeout: float = DEFAULT_TIMEOUT
    """Per-request timeout in seconds."""

    _client: httpx.Client = field(init=False, repr=False)

    def __post_init__(self) -> None:
        root = self.base_url.rstrip("/") + API_PREFIX
        self._client = httpx.Client(base_url=root, timeout=self.timeout)

    def close(self) -> None:
        """Release the underlying connection pool."""
        self._client.close()

    def _request(self, method: str, path: str, **kwargs: object) -> httpx.Response:
        try:
            response = self._client.request(method, path, **kwargs)  # type: ignore[arg-type]
        except httpx.RequestError as exc:
            raise RestError(f"network error while calling {method} {path}: {exc}") from exc
        return response

    def _checked(self, method: str, path: str, **kwargs: object) -> httpx.Response:
        response = self._request(method, path, **kwargs)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise RestError(
                f"HTTP error {exc.response.status_code} on {method} {path}: "
                f"{exc.response.text[:200]}",
                status_code=exc.response.status_code,
            ) from exc
        return response

    def status(self, timeout: float | None = None) -> NodeState:
        """
        Current startup phase of the node.

        ``timeout`` replaces the client timeout for this request only.
        """
        extra = {} if timeout is None else {"timeout": timeout}
        response = self._checked("GET", "/status", **extra)
        try:
            return NodeStatus.model_validate_json(response.content).state
        except ValidationError as exc:
            raise RestError(f"status in an invalid format: {exc}") from exc

    def tip(self) -> str:
        """Hash of the node's current tip."""
        return self._checked("GET", "/tip").text.strip()

    def stats(self) -> NodeStats:
        """Node statistics including the last block height."""
        response = self._checked("GET", "/stats")
        try:
            return NodeStats.model_validate_json(response.content)
        except ValidationError as exc:
            raise RestError(f"node stats in an invalid format: {exc}") from exc

    def fragment_logs(self) -> dict[str, FragmentLog]:
        """Mempool logs keyed by fragment id."""
        response = self._checked("GET", "/fragment/logs")
        try:
            entries = _FRAGMENT_LOGS.validate_json(response.content)
        except ValidationError as exc:
            raise RestError(f"fragment logs in an invalid format: {exc}") from exc
        return {entry.fragment_id: entry for entry in entries}

    def send_fragment(self, fragment: Fragment) -> str:
        """
        Submit one fragment.

        Returns:
            The fragment id acknowledged by the node.
        """
        response = self._checked(
            "POST",
            "/fragment",
            content=fragment.encode_bytes(),
            headers={"Content-Type": "application/octet-stream"},
        )
        return response.text.strip()

    def send_fragment_batch(
        self, fragments: Sequence[Fragment], fail_fast: bool
    ) -> FragmentsProcessingSummary:
        """
        Submit several fragments at once.

        The node answers 400 with a summary when any fragment is rejected, so
        both 200 and 400 bodies are parsed as summaries.
        """
        payload = {
            "fail_fast": fail_fast,
            "fragments": [f.encode_bytes().hex() for f in fragments],
        }
        response = self._request("POST", "/fragment/batch", json=payload)
        if response.status_code not in (200, 400):
            raise RestError(
                f"HTTP error {response.status_code} on POST /fragment/batch: "
                f"{response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            return FragmentsProcessingSummary.model_validate_json(response.content)
        except ValidationError as exc:
            raise RestError(
                f"fragment batch summary in an invalid format: {exc}",
                status_code=response.status_code,
            ) from exc

    def shutdown(self) -> str:
        """
        Request a graceful stop.

        Returns:
            An empty string on success, the node's error message otherwise.
        """
        return self._checked("GET", "/shutdown").text.strip()

    def account_state(self, address: str) -> AccountState:
        """Balance and spending counter of an account."""
        response = self._checked("GET", f"/account/{address}")
        try:
            return AccountState.model_validate_json(response.content)
        except ValidationError as exc:
            raise RestError(f"account state in an invalid format: {exc}") from exc
