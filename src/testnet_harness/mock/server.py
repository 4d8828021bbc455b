"""
Mock peer speaking the node-to-node wire protocol.

The mock stands in for a network neighbour of the node under test. It serves
a fixed, configurable chain over the JSON/HTTP wire protocol and records
every call the node makes, so a test can assert on the node's behaviour
towards its peers (does it handshake, does it pull headers, does it reject a
genesis mismatch).

The aiohttp application runs in a dedicated event loop thread; the test thread
talks to it through `MockController`.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from collections.abc import Callable, Coroutine, Iterable
from dataclasses import dataclass, field
from typing import Any, Final, TypeVar

from aiohttp import web
from pydantic import BaseModel, Field, ValidationError, field_validator

from testnet_harness.metrics import generate_metrics, mock_calls
from testnet_harness.types import HexHash, NodeApiModel
from testnet_harness.wire import (
    Block,
    Fragment,
    HandshakeResponse,
    Header,
    MethodType,
    ProtocolVersion,
    WireClient,
    decode_ndjson,
)

from .call_log import CallLog, CallLogEntry
from .verifier import MockExitCode, MockVerifier

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

LOCALHOST: Final = "127.0.0.1"
"""Default listen interface."""

NDJSON: Final = "application/x-ndjson"
"""Content type of streamed answers and uploads."""

THREAD_CALL_TIMEOUT: Final = 10.0
"""Seconds the test thread waits for work scheduled on the server loop."""

_Handler = Callable[[web.Request], Coroutine[Any, Any, web.StreamResponse]]


class _HandshakeRequest(NodeApiModel):
    nonce: str = ""

    @field_validator("nonce")
    @classmethod
    def _check_hex(cls, value: str) -> str:
        bytes.fromhex(value)
        return value


class _PullRequest(NodeApiModel):
    from_: tuple[HexHash, ...] = Field(default=(), alias="from")
    to: HexHash


class _PullToTipRequest(NodeApiModel):
    from_: tuple[HexHash, ...] = Field(default=(), alias="from")


class _IdsRequest(NodeApiModel):
    ids: tuple[HexHash, ...]


def _bad_request(message: str) -> web.HTTPBadRequest:
    return web.HTTPBadRequest(
        text=json.dumps({"error": message}), content_type="application/json"
    )


@dataclass(slots=True)
class ProtocolMockServer:
    """
    The wire-protocol application and the chain it serves.

    All attributes are owned by the server's event loop. Other threads go
    through `MockController`, which schedules work on that loop.
    """

    genesis: Block
    """Block0 advertised in the handshake."""

    protocol_version: ProtocolVersion = ProtocolVersion.GENESIS_PRAOS
    """Version advertised in the handshake."""

    host: str = LOCALHOST
    port: int = 0
    """Listen port; 0 picks a free port at start."""

    tip: Block | None = None
    """Block whose header answers Tip; the genesis when unset."""

    blocks: dict[str, Block] = field(default_factory=dict)
    """Every block the mock knows, by id."""

    fragments: dict[str, Fragment] = field(default_factory=dict)
    """Fragments served by GetFragments, by id."""

    uploaded: list[Block] = field(default_factory=list)
    """Blocks received through UploadBlocks."""

    pushed_headers: list[Header] = field(default_factory=list)
    """Headers received through PushHeaders."""

    call_log: CallLog = field(default_factory=CallLog)
    """Every accepted inbound call."""

    _runner: web.AppRunner | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self.blocks.setdefault(self.genesis.id, self.genesis)

    @property
    def tip_block(self) -> Block:
        return self.tip if self.tip is not None else self.genesis

    # -------------------------------------------------------------------------
    # Server lifecycle
    # -------------------------------------------------------------------------

    def application(self) -> web.Application:
        """Build the aiohttp application with one route per RPC."""
        handlers: dict[MethodType, _Handler] = {
            MethodType.HANDSHAKE: self._handle_handshake,
            MethodType.TIP: self._handle_tip,
            MethodType.PULL_BLOCKS: self._handle_pull_blocks,
            MethodType.PULL_BLOCKS_TO_TIP: self._handle_pull_blocks_to_tip,
            MethodType.PULL_HEADERS: self._handle_pull_headers,
            MethodType.GET_HEADERS: self._handle_get_headers,
            MethodType.GET_BLOCKS: self._handle_get_blocks,
            MethodType.GET_FRAGMENTS: self._handle_get_fragments,
            MethodType.UPLOAD_BLOCKS: self._handle_upload_blocks,
            MethodType.PUSH_HEADERS: self._handle_push_headers,
        }
        app = web.Application()
        app.add_routes([web.post(method.path, handler) for method, handler in handlers.items()])
        app.add_routes([web.get("/metrics", _handle_metrics)])
        return app

    async def start(self) -> None:
        """Bind the listen socket and start serving."""
        self._runner = web.AppRunner(self.application())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()

        # Resolve an ephemeral port to the one actually bound.
        self.port = self._runner.addresses[0][1]
        logger.info("Mock peer listening on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Mock peer on %s:%d stopped", self.host, self.port)

    # -------------------------------------------------------------------------
    # Chain state
    # -------------------------------------------------------------------------

    async def set_tip(self, block: Block) -> None:
        self.blocks[block.id] = block
        self.tip = block

    async def add_blocks(self, blocks: Iterable[Block]) -> None:
        for block in blocks:
            self.blocks[block.id] = block

    def _path_to(self, block_id: str) -> list[Block]:
        """Blocks from the oldest known ancestor up to ``block_id``, ascending."""
        path: list[Block] = []
        current = self.blocks.get(block_id)
        while current is not None:
            path.append(current)
            current = self.blocks.get(current.header.parent_id)
        path.reverse()
        return path

    def _blocks_after_checkpoint(self, checkpoints: Iterable[str], to: str) -> list[Block]:
        # Without a known checkpoint the whole path is sent.
        path = self._path_to(to)
        positions = {block.id: i for i, block in enumerate(path)}
        for checkpoint in checkpoints:
            if checkpoint in positions:
                return path[positions[checkpoint] + 1 :]
        return path

    # -------------------------------------------------------------------------
    # Request plumbing
    # -------------------------------------------------------------------------

    def _accept(self, method: MethodType) -> CallLogEntry:
        entry = self.call_log.record(method)
        if entry is None:
            raise web.HTTPServiceUnavailable(text="mock peer is no longer accepting calls")
        mock_calls.labels(method=method.value).inc()
        logger.debug("Mock peer call #%d: %s", entry.ordinal, method.value)
        return entry

    async def _read(self, request: web.Request, model: type[M]) -> M:
        body = await request.read()
        try:
            return model.model_validate_json(body or b"{}")
        except ValidationError as exc:
            raise _bad_request(f"malformed {request.path} request: {exc}") from exc

    async def _read_stream(self, request: web.Request, model: type[M]) -> list[M]:
        body = await request.read()
        try:
            return list(decode_ndjson(body.splitlines(), model))
        except ValidationError as exc:
            raise _bad_request(f"malformed {request.path} stream: {exc}") from exc

    async def _stream(
        self, request: web.Request, messages: Iterable[BaseModel]
    ) -> web.StreamResponse:
        response = web.StreamResponse(headers={"Content-Type": NDJSON})
        await response.prepare(request)
        for message in messages:
            await response.write(message.model_dump_json().encode("utf-8") + b"\n")
        await response.write_eof()
        return response

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    async def _handle_handshake(self, request: web.Request) -> web.Response:
        self._accept(MethodType.HANDSHAKE)
        await self._read(request, _HandshakeRequest)
        answer = HandshakeResponse(version=self.protocol_version, block0=self.genesis.id)
        return web.json_response(text=answer.model_dump_json())

    async def _handle_tip(self, request: web.Request) -> web.Response:
        self._accept(MethodType.TIP)
        return web.json_response(text=self.tip_block.header.model_dump_json())

    async def _handle_pull_blocks(self, request: web.Request) -> web.StreamResponse:
        self._accept(MethodType.PULL_BLOCKS)
        pull = await self._read(request, _PullRequest)
        return await self._stream(request, self._blocks_after_checkpoint(pull.from_, pull.to))

    async def _handle_pull_blocks_to_tip(self, request: web.Request) -> web.StreamResponse:
        self._accept(MethodType.PULL_BLOCKS_TO_TIP)
        pull = await self._read(request, _PullToTipRequest)
        blocks = self._blocks_after_checkpoint(pull.from_, self.tip_block.id)
        return await self._stream(request, blocks)

    async def _handle_pull_headers(self, request: web.Request) -> web.StreamResponse:
        self._accept(MethodType.PULL_HEADERS)
        pull = await self._read(request, _PullRequest)
        blocks = self._blocks_after_checkpoint(pull.from_, pull.to)
        return await self._stream(request, (block.header for block in blocks))

    async def _handle_get_headers(self, request: web.Request) -> web.StreamResponse:
        self._accept(MethodType.GET_HEADERS)
        ids = (await self._read(request, _IdsRequest)).ids
        return await self._stream(
            request, (self.blocks[i].header for i in ids if i in self.blocks)
        )

    async def _handle_get_blocks(self, request: web.Request) -> web.StreamResponse:
        self._accept(MethodType.GET_BLOCKS)
        ids = (await self._read(request, _IdsRequest)).ids
        return await self._stream(request, (self.blocks[i] for i in ids if i in self.blocks))

    async def _handle_get_fragments(self, request: web.Request) -> web.StreamResponse:
        self._accept(MethodType.GET_FRAGMENTS)
        ids = (await self._read(request, _IdsRequest)).ids
        return await self._stream(
            request, (self.fragments[i] for i in ids if i in self.fragments)
        )

    async def _handle_upload_blocks(self, request: web.Request) -> web.Response:
        self._accept(MethodType.UPLOAD_BLOCKS)
        blocks = await self._read_stream(request, Block)
        self.uploaded.extend(blocks)
        return web.json_response({"accepted": len(blocks)})

    async def _handle_push_headers(self, request: web.Request) -> web.Response:
        self._accept(MethodType.PUSH_HEADERS)
        headers = await self._read_stream(request, Header)
        self.pushed_headers.extend(headers)
        return web.json_response({"accepted": len(headers)})


async def _handle_metrics(_request: web.Request) -> web.Response:
    """Handle Prometheus metrics endpoint."""
    return web.Response(
        body=generate_metrics(),
        content_type="text/plain",
        charset="utf-8",
    )


class _ServerThread(threading.Thread):
    """Thread that runs the mock peer in its own event loop."""

    def __init__(self, server: ProtocolMockServer) -> None:
        super().__init__(name="mock-peer", daemon=True)
        self.server = server
        self.loop: asyncio.AbstractEventLoop | None = None
        self.ready = threading.Event()
        self.error: Exception | None = None

    def run(self) -> None:
        try:
            self.loop = asyncio.new_event_loop()
            asyncio.set_event_loop(self.loop)

            self.loop.run_until_complete(self.server.start())
            self.ready.set()

            self.loop.run_forever()
            self.loop.run_until_complete(self.server.stop())
        except Exception as exc:
            self.error = exc
            self.ready.set()
        finally:
            if self.loop:
                self.loop.close()

    def call(self, coro: Coroutine[Any, Any, T]) -> T:
        """Run ``coro`` on the server loop and wait for its result."""
        assert self.loop is not None
        return asyncio.run_coroutine_threadsafe(coro, self.loop).result(THREAD_CALL_TIMEOUT)

    def stop(self) -> None:
        if self.loop is not None and self.loop.is_running():
            self.loop.call_soon_threadsafe(self.loop.stop)
        self.join(THREAD_CALL_TIMEOUT)


class MockController:
    """
    Test-thread handle on a running mock peer.

    Use as a context manager, or call `finish_and_verify` to end the session
    and evaluate the recorded calls.
    """

    def __init__(self, server: ProtocolMockServer) -> None:
        self.server = server
        self._thread = _ServerThread(server)

    def start(self) -> MockController:
        """Start serving and wait until the socket is bound."""
        self._thread.start()
        self._thread.ready.wait(THREAD_CALL_TIMEOUT)
        if self._thread.error is not None:
            raise self._thread.error
        return self

    @property
    def host(self) -> str:
        return self.server.host

    @property
    def port(self) -> int:
        return self.server.port

    @property
    def url(self) -> str:
        """Base URL of the wire-protocol endpoint."""
        return f"http://{self.host}:{self.port}"

    @property
    def address(self) -> str:
        """Multiaddress to list among a node's trusted peers."""
        return f"/ip4/{self.host}/tcp/{self.port}"

    def client(self) -> WireClient:
        """A wire client pointed at this mock, for tests that play the node's part."""
        return WireClient(self.url)

    def set_tip_block(self, block: Block) -> None:
        """Change the block advertised by Tip."""
        self._thread.call(self.server.set_tip(block))

    def add_blocks(self, blocks: Iterable[Block]) -> None:
        """Make blocks available to the pull and get methods."""
        self._thread.call(self.server.add_blocks(list(blocks)))

    def call_log(self) -> tuple[CallLogEntry, ...]:
        """Snapshot of the calls recorded so far."""
        return self.server.call_log.entries()

    def finish_and_verify(self, predicate: Callable[[MockVerifier], bool]) -> MockExitCode:
        """
        End the session and evaluate ``predicate`` over the final call log.

        Calls arriving after this point are refused and not recorded.
        """
        entries = self.server.call_log.close()
        self.stop()
        outcome = MockExitCode.SUCCESS if predicate(MockVerifier(entries)) else MockExitCode.FAILURE
        logger.info("Mock peer finished after %d calls: %s", len(entries), outcome.name)
        return outcome

    def stop(self) -> None:
        """Stop the server. Safe to call more than once."""
        if self._thread.is_alive():
            self._thread.stop()

    def __enter__(self) -> MockController:
        return self

    def __exit__(self, *exc: object) -> None:
        self.stop()


@dataclass(slots=True)
class MockBuilder:
    """Fluent configuration of a mock peer."""

    host: str = LOCALHOST
    port: int = 0
    protocol_version: ProtocolVersion = ProtocolVersion.GENESIS_PRAOS
    genesis: Block | None = None
    tip: Block | None = None
    chain: list[Block] = field(default_factory=list)
    fragments: list[Fragment] = field(default_factory=list)

    def with_host(self, host: str) -> MockBuilder:
        self.host = host
        return self

    def with_port(self, port: int) -> MockBuilder:
        self.port = port
        return self

    def with_protocol_version(self, version: ProtocolVersion) -> MockBuilder:
        self.protocol_version = version
        return self

    def with_genesis_block(self, block: Block) -> MockBuilder:
        self.genesis = block
        return self

    def with_tip_block(self, block: Block) -> MockBuilder:
        self.tip = block
        return self

    def with_chain(self, blocks: Iterable[Block]) -> MockBuilder:
        """Serve ``blocks``; the last one becomes the tip unless a tip is set."""
        self.chain.extend(blocks)
        return self

    def with_fragments(self, fragments: Iterable[Fragment]) -> MockBuilder:
        self.fragments.extend(fragments)
        return self

    def build(self) -> ProtocolMockServer:
        genesis = self.genesis or Block.genesis(version=self.protocol_version)
        tip = self.tip or (self.chain[-1] if self.chain else None)
        blocks = {block.id: block for block in self.chain}
        if tip is not None:
            blocks[tip.id] = tip
        return ProtocolMockServer(
            genesis=genesis,
            protocol_version=self.protocol_version,
            host=self.host,
            port=self.port,
            tip=tip,
            blocks=blocks,
            fragments={fragment.id: fragment for fragment in self.fragments},
        )

    def start(self) -> MockController:
        """Build the server and start it on a background thread."""
        return MockController(self.build()).start()
