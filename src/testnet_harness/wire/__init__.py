"""
Node-to-node wire protocol.

Message models shared by the mock peer and the blocking client.
"""

from .client import InvalidRequest, WireClient, WireError
from .messages import (
    Block,
    Fragment,
    HandshakeResponse,
    Header,
    MethodType,
    ProtocolVersion,
    canonical_json,
    decode_ndjson,
    encode_ndjson,
)

__all__ = [
    # Messages
    "Block",
    "Fragment",
    "HandshakeResponse",
    "Header",
    "MethodType",
    "ProtocolVersion",
    # Codec
    "canonical_json",
    "decode_ndjson",
    "encode_ndjson",
    # Client
    "InvalidRequest",
    "WireClient",
    "WireError",
]
