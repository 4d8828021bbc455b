"""
Tests for the mock wire-protocol peer.

A `WireClient` plays the part of the node under test and calls the mock over
real sockets.
"""

from __future__ import annotations

from collections.abc import Generator

import httpx
import pytest

from testnet_harness.mock import (
    CallLog,
    MockBuilder,
    MockController,
    MockExitCode,
    MockVerifier,
)
from testnet_harness.mock.call_log import CallLogEntry
from testnet_harness.wire import (
    Block,
    Fragment,
    InvalidRequest,
    MethodType,
    ProtocolVersion,
    WireClient,
    WireError,
)

pytestmark = pytest.mark.timeout(30)


def build_chain(length: int) -> list[Block]:
    """Genesis followed by ``length`` empty blocks."""
    blocks = [Block.genesis()]
    for slot in range(1, length + 1):
        blocks.append(blocks[-1].child(epoch=0, slot=slot))
    return blocks


@pytest.fixture
def chain() -> list[Block]:
    return build_chain(5)


@pytest.fixture
def mock(chain: list[Block]) -> Generator[MockController, None, None]:
    """Provide a running mock serving a five-block chain."""
    controller = MockBuilder().with_genesis_block(chain[0]).with_chain(chain[1:]).start()
    with controller:
        yield controller


@pytest.fixture
def client(mock: MockController) -> Generator[WireClient, None, None]:
    with mock.client() as client:
        yield client


def entries(*methods: MethodType) -> tuple[CallLogEntry, ...]:
    return tuple(
        CallLogEntry(method=method, timestamp=float(i), ordinal=i)
        for i, method in enumerate(methods)
    )


class TestHandshake:
    """Tests for the handshake answer and its verification."""

    def test_answer_comes_from_configuration(
        self, mock: MockController, client: WireClient, chain: list[Block]
    ) -> None:
        """The handshake reports the configured version and genesis whatever the nonce."""
        first = client.handshake(b"\x01\x02")
        second = client.handshake(b"\xff" * 16)

        assert first == second
        assert first.block0 == chain[0].id
        assert first.version is ProtocolVersion.GENESIS_PRAOS

    def test_handshake_verified(self, mock: MockController, client: WireClient) -> None:
        """A session with a handshake passes the at-least-once check."""
        client.handshake()

        outcome = mock.finish_and_verify(
            lambda v: v.method_executed_at_least_once(MethodType.HANDSHAKE)
        )

        assert outcome is MockExitCode.SUCCESS

    def test_missing_handshake_fails(self, mock: MockController, client: WireClient) -> None:
        """A session without a handshake fails the at-least-once check."""
        client.tip()

        outcome = mock.finish_and_verify(
            lambda v: v.method_executed_at_least_once(MethodType.HANDSHAKE)
        )

        assert outcome is MockExitCode.FAILURE

    def test_malformed_nonce(self, mock: MockController) -> None:
        """A request the mock cannot parse is rejected as invalid and still recorded."""
        with httpx.Client(base_url=mock.url) as raw:
            response = raw.post(MethodType.HANDSHAKE.path, json={"nonce": "not hex"})

        assert response.status_code == 400
        assert "malformed" in response.json()["error"]
        assert [e.method for e in mock.call_log()] == [MethodType.HANDSHAKE]

    def test_bft_version(self) -> None:
        """The advertised version is configurable."""
        with MockBuilder().with_protocol_version(ProtocolVersion.BFT).start() as mock:
            with mock.client() as client:
                answer = client.handshake()

        assert answer.version is ProtocolVersion.BFT
        assert answer.block0 == Block.genesis(version=ProtocolVersion.BFT).id


class TestChainMethods:
    """Tests for tip, pulls and gets."""

    def test_tip(self, client: WireClient, chain: list[Block]) -> None:
        """The last block of the configured chain is the tip."""
        assert client.tip() == chain[-1].header

    def test_default_tip_is_genesis(self) -> None:
        """Without a chain the genesis answers Tip."""
        with MockBuilder().start() as mock, mock.client() as client:
            tip = client.tip()

        assert tip.chain_length == 0

    def test_set_tip(self, mock: MockController, client: WireClient, chain: list[Block]) -> None:
        """The tip can be moved while serving."""
        extra = chain[-1].child(epoch=0, slot=99)

        mock.set_tip_block(extra)

        assert client.tip() == extra.header

    def test_pull_blocks_to_tip(self, client: WireClient, chain: list[Block]) -> None:
        """Blocks after the first known checkpoint are streamed in ascending order."""
        blocks = client.pull_blocks_to_tip([chain[2].id])

        assert blocks == chain[3:]

    def test_pull_blocks_skips_unknown_checkpoints(
        self, client: WireClient, chain: list[Block]
    ) -> None:
        """Unknown checkpoints are passed over in favour of known ones."""
        unknown = "ab" * 32

        assert client.pull_blocks([unknown, chain[1].id], to=chain[3].id) == chain[2:4]

    def test_pull_without_known_checkpoint(self, client: WireClient, chain: list[Block]) -> None:
        """With no known checkpoint the whole path is streamed."""
        assert client.pull_blocks_to_tip(["cd" * 32]) == chain

    def test_pull_headers(self, client: WireClient, chain: list[Block]) -> None:
        """Headers follow the same range rules as blocks."""
        headers = client.pull_headers([chain[0].id], to=chain[2].id)

        assert headers == [chain[1].header, chain[2].header]

    def test_pulls_are_restartable(self, client: WireClient, chain: list[Block]) -> None:
        """The same request gives the same stream again."""
        assert client.pull_blocks_to_tip([chain[0].id]) == client.pull_blocks_to_tip(
            [chain[0].id]
        )

    def test_get_by_ids(self, client: WireClient, chain: list[Block]) -> None:
        """Known ids are answered in request order; unknown ones are skipped."""
        ids = [chain[4].id, "ef" * 32, chain[1].id]

        assert client.get_blocks(ids) == [chain[4], chain[1]]
        assert client.get_headers(ids) == [chain[4].header, chain[1].header]

    def test_get_fragments(self) -> None:
        """Configured fragments are served; others give an empty stream."""
        fragment = Fragment(sender="a", receiver="b", value=1, counter=0)

        with MockBuilder().with_fragments([fragment]).start() as mock, mock.client() as client:
            assert client.get_fragments([fragment.id]) == [fragment]
            assert client.get_fragments(["12" * 32]) == []

    def test_malformed_id(self, client: WireClient) -> None:
        """Ids that are not hashes are invalid requests."""
        with pytest.raises(InvalidRequest) as exc_info:
            client.get_blocks(["not-a-hash"])

        assert exc_info.value.method is MethodType.GET_BLOCKS
        assert "request failed with message" in str(exc_info.value)


class TestUploads:
    """Tests for blocks and headers pushed to the mock."""

    def test_upload_blocks(
        self, mock: MockController, client: WireClient, chain: list[Block]
    ) -> None:
        """Uploaded blocks are acknowledged and kept."""
        assert client.upload_blocks(chain[1:3]) == 2
        assert mock.server.uploaded == chain[1:3]

    def test_push_headers(
        self, mock: MockController, client: WireClient, chain: list[Block]
    ) -> None:
        """Pushed headers are acknowledged and kept."""
        headers = [block.header for block in chain]

        assert client.push_headers(headers) == len(headers)
        assert mock.server.pushed_headers == headers


class TestSession:
    """Tests for the end of a mock session."""

    def test_calls_after_finish_are_refused(self, mock: MockController) -> None:
        """Once finished, the call log is final."""
        with mock.client() as client:
            client.handshake()

        url = mock.url
        mock.finish_and_verify(lambda v: True)

        with WireClient(url, timeout=2.0) as late, pytest.raises(WireError):
            late.tip()
        assert len(mock.call_log()) == 1

    def test_refused_after_close_while_serving(self) -> None:
        """A closed log answers 503 even if the server is still up."""
        with MockBuilder().start() as mock, mock.client() as client:
            mock.server.call_log.close()

            with pytest.raises(WireError, match="503"):
                client.tip()

    def test_order_of_calls(self, mock: MockController, client: WireClient) -> None:
        """The verifier sees calls in arrival order."""
        client.handshake()
        client.tip()
        client.pull_headers([], to=client.tip().id)

        outcome = mock.finish_and_verify(
            lambda v: v.methods_executed_in_order(
                MethodType.HANDSHAKE, MethodType.TIP, MethodType.PULL_HEADERS
            )
            and v.method_executed_exactly(MethodType.TIP, 2)
            and v.method_never_executed(MethodType.UPLOAD_BLOCKS)
        )

        assert outcome is MockExitCode.SUCCESS

    def test_metrics_endpoint(self, mock: MockController, client: WireClient) -> None:
        """Served calls show up in the Prometheus output."""
        client.handshake()

        response = httpx.get(f"{mock.url}/metrics")

        assert response.status_code == 200
        assert 'harness_mock_calls_total{method="handshake"}' in response.text


class TestMockVerifier:
    """Tests for the call-log predicates."""

    def test_counts(self) -> None:
        """Methods are counted per type."""
        verifier = MockVerifier(entries(MethodType.TIP, MethodType.TIP, MethodType.HANDSHAKE))

        assert verifier.count(MethodType.TIP) == 2
        assert verifier.method_executed_exactly(MethodType.HANDSHAKE, 1)
        assert verifier.method_never_executed(MethodType.GET_BLOCKS)

    def test_order_is_a_subsequence(self) -> None:
        """Other calls may be interleaved between the ordered ones."""
        verifier = MockVerifier(
            entries(MethodType.HANDSHAKE, MethodType.TIP, MethodType.PULL_HEADERS)
        )

        assert verifier.methods_executed_in_order(MethodType.HANDSHAKE, MethodType.PULL_HEADERS)
        assert not verifier.methods_executed_in_order(
            MethodType.PULL_HEADERS, MethodType.HANDSHAKE
        )
        assert verifier.methods_executed_in_order()


class TestCallLog:
    """Tests for the shared call log."""

    def test_ordinals_follow_arrival(self) -> None:
        """Entries are numbered from zero in arrival order."""
        log = CallLog()
        log.record(MethodType.HANDSHAKE)
        log.record(MethodType.TIP)

        assert [e.ordinal for e in log.entries()] == [0, 1]

    def test_closed_log_refuses_entries(self) -> None:
        """Recording after close is a no-op."""
        log = CallLog()
        log.record(MethodType.TIP)
        final = log.close()

        assert log.record(MethodType.TIP) is None
        assert log.closed
        assert len(final) == len(log) == 1
