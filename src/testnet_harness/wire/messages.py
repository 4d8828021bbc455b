"""
Wire-protocol messages exchanged between peers.

The node-to-node protocol is served as JSON over HTTP. Unary calls answer a
single JSON object; streaming calls answer newline-delimited JSON, one
message per line.

Identifiers are BLAKE2b-256 digests over a canonical JSON encoding
(sorted keys, no whitespace), so every participant derives the same id for
the same content.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator
from enum import Enum, IntEnum
from typing import Any, TypeVar

from pydantic import BaseModel

from testnet_harness.types import ZERO_HASH, HexHash, NodeApiModel, blake2b_256

M = TypeVar("M", bound=BaseModel)


def canonical_json(payload: Any) -> bytes:
    """Encode ``payload`` with sorted keys and no whitespace."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")


class ProtocolVersion(IntEnum):
    """Consensus protocol advertised during the handshake."""

    BFT = 0
    GENESIS_PRAOS = 1


class MethodType(Enum):
    """
    Wire-protocol RPC methods.

    Each value is the HTTP path segment the method is served under.
    """

    HANDSHAKE = "handshake"
    TIP = "tip"
    PULL_BLOCKS = "pull_blocks"
    PULL_BLOCKS_TO_TIP = "pull_blocks_to_tip"
    PULL_HEADERS = "pull_headers"
    GET_HEADERS = "get_headers"
    GET_BLOCKS = "get_blocks"
    GET_FRAGMENTS = "get_fragments"
    UPLOAD_BLOCKS = "upload_blocks"
    PUSH_HEADERS = "push_headers"

    @property
    def path(self) -> str:
        """HTTP path of this method."""
        return f"/{self.value}"


class Fragment(NodeApiModel):
    """
    A signed value transfer submitted to a node's mempool.

    Signing is delegated to the wallet's signer; the harness only carries the
    signature bytes.
    """

    sender: str
    """Address of the spending account."""

    receiver: str
    """Address of the receiving account."""

    value: int
    """Transferred amount."""

    counter: int
    """Spending counter of the sender at signing time."""

    signature: str = ""
    """Hex-encoded signature over the unsigned payload."""

    def signing_payload(self) -> bytes:
        """Bytes covered by the signature."""
        return canonical_json(self.model_dump(mode="json", exclude={"signature"}))

    def encode_bytes(self) -> bytes:
        """Serialize the fragment for submission."""
        return canonical_json(self.model_dump(mode="json"))

    @classmethod
    def decode_bytes(cls, data: bytes) -> Fragment:
        """Deserialize a fragment produced by `encode_bytes`."""
        return cls.model_validate_json(data)

    @property
    def id(self) -> str:
        """Fragment identifier: hash of the serialized fragment."""
        return blake2b_256(self.encode_bytes())


class Header(NodeApiModel):
    """Block header. The id is derived from the other fields."""

    id: HexHash
    """Header (and block) identifier."""

    parent_id: HexHash
    """Identifier of the parent block."""

    chain_length: int
    """Number of blocks between genesis and this block."""

    epoch: int
    """Epoch of the block date."""

    slot: int
    """Slot within the epoch."""

    content_hash: HexHash
    """Hash of the block contents."""

    version: ProtocolVersion = ProtocolVersion.GENESIS_PRAOS
    """Consensus protocol the block was produced under."""

    @classmethod
    def create(
        cls,
        *,
        parent_id: str,
        chain_length: int,
        epoch: int,
        slot: int,
        content_hash: str,
        version: ProtocolVersion = ProtocolVersion.GENESIS_PRAOS,
    ) -> Header:
        """Build a header and derive its id."""
        fields = {
            "parent_id": parent_id,
            "chain_length": chain_length,
            "epoch": epoch,
            "slot": slot,
            "content_hash": content_hash,
            "version": int(version),
        }
        return cls(id=blake2b_256(canonical_json(fields)), **fields)


class Block(NodeApiModel):
    """A header plus the fragments it includes."""

    header: Header
    fragments: tuple[Fragment, ...] = ()

    @property
    def id(self) -> str:
        """Block identifier (the header id)."""
        return self.header.id

    @staticmethod
    def _content_hash(fragments: Iterable[Fragment]) -> str:
        return blake2b_256(canonical_json([f.id for f in fragments]))

    @classmethod
    def genesis(
        cls,
        fragments: tuple[Fragment, ...] = (),
        version: ProtocolVersion = ProtocolVersion.GENESIS_PRAOS,
    ) -> Block:
        """Build a block0 with the given initial fragments."""
        header = Header.create(
            parent_id=ZERO_HASH,
            chain_length=0,
            epoch=0,
            slot=0,
            content_hash=cls._content_hash(fragments),
            version=version,
        )
        return cls(header=header, fragments=fragments)

    def child(self, epoch: int, slot: int, fragments: tuple[Fragment, ...] = ()) -> Block:
        """Build the next block on top of this one."""
        header = Header.create(
            parent_id=self.id,
            chain_length=self.header.chain_length + 1,
            epoch=epoch,
            slot=slot,
            content_hash=self._content_hash(fragments),
            version=self.header.version,
        )
        return Block(header=header, fragments=fragments)


class HandshakeResponse(NodeApiModel):
    """Answer to a handshake: protocol version and genesis block hash."""

    version: ProtocolVersion
    block0: HexHash


def encode_ndjson(messages: Iterable[BaseModel]) -> bytes:
    """Encode messages as newline-delimited JSON."""
    return b"".join(m.model_dump_json().encode("utf-8") + b"\n" for m in messages)


def decode_ndjson(lines: Iterable[str | bytes], model: type[M]) -> Iterator[M]:
    """Decode newline-delimited JSON lines into ``model`` instances, skipping blanks."""
    for line in lines:
        if line.strip():
            yield model.model_validate_json(line)
