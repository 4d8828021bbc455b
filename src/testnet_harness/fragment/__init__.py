"""
Fragment submission and convergence tracking.

`FragmentSender` submits transfers through a node; `FragmentVerifier` polls
nodes until the transfer lands in a block, classifying failures as missing,
rejected or stuck pending.
"""

from .errors import (
    CannotSendFragmentBatch,
    FragmentConvergenceMismatch,
    FragmentError,
    FragmentIsPendingForTooLong,
    FragmentNotInMemPoolLogs,
    FragmentRejected,
)
from .records import (
    BlockPlacement,
    FragmentNode,
    FragmentOutcome,
    FragmentOutcomeKind,
    FragmentRecord,
    MemPoolCheck,
)
from .sender import FragmentSender
from .verifier import FragmentVerifier
from .wallet import Signer, Wallet

__all__ = [
    # Submission and polling
    "FragmentSender",
    "FragmentVerifier",
    # Records
    "BlockPlacement",
    "FragmentNode",
    "FragmentOutcome",
    "FragmentOutcomeKind",
    "FragmentRecord",
    "MemPoolCheck",
    # Wallets
    "Signer",
    "Wallet",
    # Errors
    "CannotSendFragmentBatch",
    "FragmentConvergenceMismatch",
    "FragmentError",
    "FragmentIsPendingForTooLong",
    "FragmentNotInMemPoolLogs",
    "FragmentRejected",
]
