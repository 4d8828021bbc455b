"""Tests for wire-protocol messages and identifiers."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from testnet_harness.types import ZERO_HASH, blake2b_256
from testnet_harness.wire import (
    Block,
    Fragment,
    Header,
    MethodType,
    ProtocolVersion,
    canonical_json,
    decode_ndjson,
    encode_ndjson,
)


def fragment(counter: int = 0, signature: str = "") -> Fragment:
    return Fragment(
        sender="addr_a", receiver="addr_b", value=5, counter=counter, signature=signature
    )


class TestCanonicalJson:
    """Tests for the encoding identifiers are computed over."""

    def test_key_order_does_not_matter(self) -> None:
        """Keys are sorted and whitespace is dropped."""
        assert canonical_json({"b": 1, "a": [1, 2]}) == b'{"a":[1,2],"b":1}'

    def test_hash_helper(self) -> None:
        """Digests are 32 bytes rendered as lowercase hex."""
        digest = blake2b_256(b"abc")

        assert len(digest) == 64
        assert digest == digest.lower()


class TestFragment:
    """Tests for transfer fragments."""

    def test_id_covers_the_signature(self) -> None:
        """Two signatures over the same payload give two fragments."""
        unsigned = fragment()

        assert fragment(signature="aa").id != fragment(signature="bb").id
        assert fragment(signature="aa").signing_payload() == unsigned.signing_payload()

    def test_id_is_stable(self) -> None:
        """Equal fragments share an id."""
        assert fragment(counter=3).id == fragment(counter=3).id
        assert fragment(counter=3).id != fragment(counter=4).id

    def test_bytes_decode_back(self) -> None:
        """Submitted bytes decode to the same fragment."""
        original = fragment(counter=2, signature="ff")

        assert Fragment.decode_bytes(original.encode_bytes()) == original

    def test_malformed_bytes(self) -> None:
        """Garbage is not a fragment."""
        with pytest.raises(ValidationError):
            Fragment.decode_bytes(b"not json")


class TestBlocks:
    """Tests for headers and blocks."""

    def test_genesis(self) -> None:
        """Block0 has the zero parent and chain length zero."""
        genesis = Block.genesis()

        assert genesis.header.parent_id == ZERO_HASH
        assert genesis.header.chain_length == 0
        assert genesis.id == genesis.header.id

    def test_genesis_depends_on_version(self) -> None:
        """The consensus version is part of the genesis id."""
        assert (
            Block.genesis(version=ProtocolVersion.BFT).id
            != Block.genesis(version=ProtocolVersion.GENESIS_PRAOS).id
        )

    def test_child(self) -> None:
        """A child links to its parent and commits to its fragments."""
        genesis = Block.genesis()
        child = genesis.child(epoch=0, slot=1, fragments=(fragment(),))
        empty = genesis.child(epoch=0, slot=1)

        assert child.header.parent_id == genesis.id
        assert child.header.chain_length == 1
        assert child.header.version is genesis.header.version
        assert child.header.content_hash != empty.header.content_hash
        assert child.id != empty.id

    def test_header_rejects_malformed_hashes(self) -> None:
        """Identifiers must be 32-byte hex hashes."""
        with pytest.raises(ValidationError):
            Header(
                id="xyz",
                parent_id=ZERO_HASH,
                chain_length=0,
                epoch=0,
                slot=0,
                content_hash=ZERO_HASH,
            )

    def test_hashes_are_lowercased(self) -> None:
        """Uppercase hex is accepted and normalized."""
        header = Block.genesis().header
        shouted = Header.model_validate({**header.model_dump(), "id": header.id.upper()})

        assert shouted.id == header.id


class TestNdjson:
    """Tests for the streaming encoding."""

    def test_decode_skips_blank_lines(self) -> None:
        """Messages are one per line; blank lines are ignored."""
        blocks = [Block.genesis()]
        blocks.append(blocks[0].child(0, 1))
        lines = encode_ndjson(blocks).splitlines() + [b"", b"  "]

        assert list(decode_ndjson(lines, Block)) == blocks

    def test_method_paths(self) -> None:
        """Each method is served under its own path."""
        assert MethodType.PULL_BLOCKS_TO_TIP.path == "/pull_blocks_to_tip"
        assert len({method.path for method in MethodType}) == len(MethodType)
