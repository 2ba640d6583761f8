"""
Transaction Builder
===================
Turns an intent (payer + ordered instructions) into a single-use,
blockhash-bound versioned transaction envelope.

The builder never retries. A blockhash fetch failure propagates to the
wallet session, which owns the retry policy.

Architecture:
    WalletSession ─ intent ─→ TransactionBuilder.build()
                                    ↓ (getLatestBlockhash)
                              TransactionEnvelope
                                    ↓ envelope.sign(signer)
                              VersionedTransaction → LedgerClient
"""

from __future__ import annotations

import itertools
import threading
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from config.settings import Settings
from sniper.shared.system.logging import Logger


class EnvelopeReusedError(RuntimeError):
    """An envelope was submitted twice. Retries must rebuild."""


_sequence = itertools.count(1)
_sequence_lock = threading.Lock()


def _next_sequence() -> int:
    with _sequence_lock:
        return next(_sequence)


@dataclass
class TransactionEnvelope:
    """
    A fully constructed, time-bounded transaction ready to be signed.

    ``sequence`` is assigned monotonically across all builders in the
    process; ``built_at`` is the wall-clock construction time.
    """

    payer: Pubkey
    instructions: List[Instruction]
    blockhash: Hash
    last_valid_block_height: int
    message: MessageV0
    sequence: int = field(default_factory=_next_sequence)
    built_at: float = field(default_factory=time.time)
    submitted: bool = False

    def sign(self, signer) -> VersionedTransaction:
        """Sign for submission. Marks the envelope as used."""
        if self.submitted:
            raise EnvelopeReusedError(
                f"Envelope #{self.sequence} already submitted (blockhash {str(self.blockhash)[:8]}...)"
            )
        if signer.pubkey() != self.payer:
            raise ValueError("Signer does not match envelope payer")
        self.submitted = True
        return signer.sign_transaction(self.message)

    def __repr__(self) -> str:
        return (
            f"TransactionEnvelope(#{self.sequence}, {len(self.instructions)} ix, "
            f"blockhash={str(self.blockhash)[:8]}..., valid<= {self.last_valid_block_height})"
        )


class TransactionBuilder:
    """
    Builds versioned (v0) transaction envelopes against a fresh blockhash.

    Usage:
        builder = TransactionBuilder(ledger)
        envelope = await builder.build(payer, [ix], priority_fee=1200)
        tx = envelope.sign(signer)
    """

    def __init__(self, ledger, compute_unit_limit: int = Settings.COMPUTE_UNIT_LIMIT):
        self.ledger = ledger
        self.compute_unit_limit = compute_unit_limit

    def build_compute_budget_instructions(self, priority_fee: int) -> List[Instruction]:
        """[SetComputeUnitLimit, SetComputeUnitPrice] for the given fee (µLamports/CU)."""
        return [
            set_compute_unit_limit(self.compute_unit_limit),
            set_compute_unit_price(priority_fee),
        ]

    async def build(
        self,
        payer: Pubkey,
        instructions: Sequence[Instruction],
        priority_fee: Optional[int] = None,
    ) -> TransactionEnvelope:
        """
        Build an envelope bound to the blockhash fetched right now.

        Args:
            payer: Fee payer (the session's public key)
            instructions: Ordered, non-empty instruction list
            priority_fee: Optional compute unit price; adds budget instructions

        Raises:
            ValueError: empty instruction list
            LedgerError: blockhash fetch failed (not retried here)
        """
        if not instructions:
            raise ValueError("Cannot build a transaction with no instructions")

        ixs = list(instructions)
        if priority_fee:
            ixs = self.build_compute_budget_instructions(priority_fee) + ixs

        info = await self.ledger.get_latest_blockhash()

        message = MessageV0.try_compile(
            payer=payer,
            instructions=ixs,
            address_lookup_table_accounts=[],
            recent_blockhash=info.blockhash,
        )

        envelope = TransactionEnvelope(
            payer=payer,
            instructions=ixs,
            blockhash=info.blockhash,
            last_valid_block_height=info.last_valid_block_height,
            message=message,
        )
        Logger.debug(f"[BUILDER] Built {envelope!r}")
        return envelope
