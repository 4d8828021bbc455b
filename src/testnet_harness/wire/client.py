"""
Blocking wire-protocol client.

Talks to a peer (a real node or the mock server) over the JSON/HTTP wire
protocol. Streaming answers are read line by line and collected into lists,
since every caller is a sequential test assertion.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Final, TypeVar

import httpx
from pydantic import BaseModel

from testnet_harness.types import HarnessError

from .messages import (
    Block,
    Fragment,
    HandshakeResponse,
    Header,
    MethodType,
    decode_ndjson,
    encode_ndjson,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

DEFAULT_TIMEOUT: Final = 10.0
"""Per-request timeout in seconds."""

CLIENT_RETRY_WAIT: Final = 0.5
"""Pause between tip polls in `WireClient.wait_for_chain_length`."""


class WireError(HarnessError):
    """Transport-level failure while talking to a peer."""


class InvalidRequest(WireError):
    """
    The peer rejected a request as malformed.

    Attributes:
        method: The RPC that was rejected.
    """

    def __init__(self, method: MethodType, message: str) -> None:
        self.method = method
        super().__init__(f"request failed with message '{message}'")


@dataclass(slots=True)
class WireClient:
    """Client for one peer's wire-protocol endpoint."""

    base_url: str
    """Peer URL, e.g. ``http://127.0.0.1:9001``."""

    timeout: float = DEFAULT_TIMEOUT
    """Per-request timeout in seconds."""

    _client: httpx.Client = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._client = httpx.Client(base_url=self.base_url.rstrip("/"), timeout=self.timeout)

    def close(self) -> None:
        """Release the underlying connection pool."""
        self._client.close()

    def __enter__(self) -> WireClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _raise_for_status(self, method: MethodType, response: httpx.Response) -> None:
        if response.status_code == 400:
            try:
                message = response.json().get("error", response.text)
            except ValueError:
                message = response.text
            raise InvalidRequest(method, message)
        if response.is_error:
            raise WireError(
                f"{method.value} failed with HTTP {response.status_code}: {response.text[:200]}"
            )

    def _unary(self, method: MethodType, payload: dict[str, Any], model: type[M]) -> M:
        try:
            response = self._client.post(method.path, json=payload)
        except httpx.RequestError as exc:
            raise WireError(f"{method.value}: network error: {exc}") from exc
        self._raise_for_status(method, response)
        return model.model_validate_json(response.content)

    def _stream(self, method: MethodType, payload: dict[str, Any], model: type[M]) -> list[M]:
        try:
            with self._client.stream("POST", method.path, json=payload) as response:
                if response.is_error:
                    response.read()
                    self._raise_for_status(method, response)
                return list(decode_ndjson(response.iter_lines(), model))
        except httpx.RequestError as exc:
            raise WireError(f"{method.value}: network error: {exc}") from exc

    def _upload(self, method: MethodType, messages: Sequence[BaseModel]) -> int:
        try:
            response = self._client.post(
                method.path,
                content=encode_ndjson(messages),
                headers={"Content-Type": "application/x-ndjson"},
            )
        except httpx.RequestError as exc:
            raise WireError(f"{method.value}: network error: {exc}") from exc
        self._raise_for_status(method, response)
        return int(response.json()["accepted"])

    def handshake(self, nonce: bytes = b"") -> HandshakeResponse:
        """Exchange a handshake; the answer carries version and genesis hash."""
        return self._unary(MethodType.HANDSHAKE, {"nonce": nonce.hex()}, HandshakeResponse)

    def genesis_block_hash(self) -> str:
        """Genesis hash advertised by the peer."""
        return self.handshake().block0

    def tip(self) -> Header:
        """Header of the peer's current tip."""
        return self._unary(MethodType.TIP, {}, Header)

    def pull_blocks(self, from_: Sequence[str], to: str) -> list[Block]:
        """Blocks after the first known checkpoint in ``from_`` up to ``to``."""
        return self._stream(MethodType.PULL_BLOCKS, {"from": list(from_), "to": to}, Block)

    def pull_blocks_to_tip(self, from_: Sequence[str]) -> list[Block]:
        """Blocks after the first known checkpoint in ``from_`` up to the tip."""
        return self._stream(MethodType.PULL_BLOCKS_TO_TIP, {"from": list(from_)}, Block)

    def pull_headers(self, from_: Sequence[str], to: str) -> list[Header]:
        """Headers after the first known checkpoint in ``from_`` up to ``to``."""
        return self._stream(MethodType.PULL_HEADERS, {"from": list(from_), "to": to}, Header)

    def get_headers(self, ids: Sequence[str]) -> list[Header]:
        """Headers with the given ids, in request order, skipping unknown ids."""
        return self._stream(MethodType.GET_HEADERS, {"ids": list(ids)}, Header)

    def get_blocks(self, ids: Sequence[str]) -> list[Block]:
        """Blocks with the given ids, in request order, skipping unknown ids."""
        return self._stream(MethodType.GET_BLOCKS, {"ids": list(ids)}, Block)

    def get_fragments(self, ids: Sequence[str]) -> list[Fragment]:
        """Fragments with the given ids, skipping unknown ids."""
        return self._stream(MethodType.GET_FRAGMENTS, {"ids": list(ids)}, Fragment)

    def upload_blocks(self, blocks: Sequence[Block]) -> int:
        """Push blocks to the peer; returns the number acknowledged."""
        return self._upload(MethodType.UPLOAD_BLOCKS, blocks)

    def push_headers(self, headers: Sequence[Header]) -> int:
        """Push headers to the peer; returns the number acknowledged."""
        return self._upload(MethodType.PUSH_HEADERS, headers)

    def wait_for_chain_length(self, length: int, timeout: float) -> None:
        """
        Block until the peer's tip reaches ``length``.

        Raises:
            WireError: If the chain does not grow enough before ``timeout``.
        """
        started = time.monotonic()
        while True:
            tip = self.tip()
            if tip.chain_length >= length:
                return
            if time.monotonic() - started > timeout:
                raise WireError(
                    f"timeout elapsed while waiting for chain length {length} "
                    f"(tip at {tip.chain_length})"
                )
            logger.debug("Chain length %d, waiting for %d", tip.chain_length, length)
            time.sleep(CLIENT_RETRY_WAIT)
