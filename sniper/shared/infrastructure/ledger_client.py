"""
Ledger Client
=============
Async boundary to the Solana RPC node: blockhash retrieval, transaction
submission and confirmation polling.

Every failure is re-raised as ``LedgerError`` carrying the raw text the
error classifier inspects. No retries happen here; retry policy belongs to
the wallet session.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Optional

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed, Commitment
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction
from solders.transaction_status import TransactionConfirmationStatus

from config.settings import Settings
from sniper.shared.system.logging import Logger


class LedgerError(Exception):
    """Raised for any failed ledger call. ``str()`` is the raw remote text."""


# The errors below are raised locally. Their text is fixed: block heights and
# signatures stay in attributes so the classifier never matches digits in them.

class ConfirmationTimeout(LedgerError):
    """Confirmation was not observed inside the allowed window."""

    def __init__(self, signature: Optional[str] = None, timeout: Optional[float] = None):
        super().__init__("Transaction confirmation timed out")
        self.signature = signature
        self.timeout = timeout


class BlockhashExpired(LedgerError):
    """The envelope's blockhash expired before the signature was seen."""

    def __init__(self, block_height: int, last_valid_block_height: int):
        super().__init__("Blockhash expired before confirmation")
        self.block_height = block_height
        self.last_valid_block_height = last_valid_block_height


class TransactionFailed(LedgerError):
    """The transaction landed with an on-chain error."""

    def __init__(self, signature: str, err):
        super().__init__("Transaction failed on-chain")
        self.signature = signature
        self.err = err


@dataclass(frozen=True)
class BlockhashInfo:
    blockhash: Hash
    last_valid_block_height: int


_CONFIRMED_STATES = (
    TransactionConfirmationStatus.Confirmed,
    TransactionConfirmationStatus.Finalized,
)


def _error_text(label: str, e: Exception) -> str:
    text = f"{label} failed: {e}"
    cause = e.__cause__ or e.__context__
    if cause is not None and str(cause) not in text:
        text += f" ({cause})"
    return text


class LedgerClient:
    """
    Thin async wrapper over ``solana.rpc.async_api.AsyncClient``.

    Usage:
        ledger = LedgerClient(Settings.RPC_URL)
        info = await ledger.get_latest_blockhash()
        sig = await ledger.send_transaction(tx)
        await ledger.confirm_transaction(sig, info.last_valid_block_height)
    """

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        commitment: Commitment = Confirmed,
        client: Optional[AsyncClient] = None,
    ):
        self.rpc_url = rpc_url or Settings.RPC_URL
        self.commitment = commitment
        self.client = client if client is not None else AsyncClient(self.rpc_url, commitment=commitment)

    async def close(self) -> None:
        await self.client.close()

    # =========================================================================
    # BLOCKHASH
    # =========================================================================

    async def get_latest_blockhash(self) -> BlockhashInfo:
        try:
            resp = await self.client.get_latest_blockhash(self.commitment)
        except Exception as e:
            raise LedgerError(_error_text("getLatestBlockhash", e)) from e

        value = resp.value
        return BlockhashInfo(
            blockhash=value.blockhash,
            last_valid_block_height=value.last_valid_block_height,
        )

    async def get_block_height(self) -> int:
        try:
            resp = await self.client.get_block_height(self.commitment)
        except Exception as e:
            raise LedgerError(_error_text("getBlockHeight", e)) from e
        return resp.value

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    async def send_transaction(self, tx: VersionedTransaction) -> str:
        """Submit a signed transaction with preflight simulation. Returns the signature."""
        opts = TxOpts(skip_preflight=False, preflight_commitment=self.commitment)
        try:
            resp = await self.client.send_raw_transaction(bytes(tx), opts=opts)
        except Exception as e:
            raise LedgerError(_error_text("sendTransaction", e)) from e
        return str(resp.value)

    # =========================================================================
    # CONFIRMATION
    # =========================================================================

    async def confirm_transaction(
        self,
        signature: str,
        last_valid_block_height: Optional[int] = None,
        timeout: float = Settings.CONFIRMATION_TIMEOUT_S,
        poll_interval: float = Settings.CONFIRMATION_POLL_S,
    ) -> None:
        """
        Poll until the signature reaches ``confirmed``.

        Raises:
            LedgerError: the transaction landed with an error, or its
                blockhash expired before it was seen
            ConfirmationTimeout: nothing conclusive inside ``timeout``
        """
        sig = Signature.from_string(signature)
        deadline = time.monotonic() + timeout

        while True:
            try:
                resp = await self.client.get_signature_statuses([sig])
            except Exception as e:
                raise LedgerError(_error_text("getSignatureStatuses", e)) from e

            status = resp.value[0] if resp.value else None
            if status is not None:
                if status.err is not None:
                    Logger.warning(f"[LEDGER] {signature[:16]}... failed on-chain: {status.err}")
                    raise TransactionFailed(signature, status.err)
                if status.confirmation_status in _CONFIRMED_STATES:
                    return
            elif last_valid_block_height is not None:
                height = await self.get_block_height()
                if height > last_valid_block_height:
                    Logger.warning(
                        f"[LEDGER] {signature[:16]}... blockhash expired (height {height} > {last_valid_block_height})"
                    )
                    raise BlockhashExpired(height, last_valid_block_height)

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ConfirmationTimeout(signature, timeout)
            await asyncio.sleep(min(poll_interval, remaining))

    # =========================================================================
    # ACCOUNT READS (pool observer)
    # =========================================================================

    async def get_token_account_balance(self, account: str) -> float:
        try:
            resp = await self.client.get_token_account_balance(Pubkey.from_string(account), self.commitment)
        except Exception as e:
            raise LedgerError(_error_text("getTokenAccountBalance", e)) from e
        return float(resp.value.ui_amount_string)


def get_ledger_client(rpc_url: Optional[str] = None) -> LedgerClient:
    client = LedgerClient(rpc_url)
    Logger.info(f"[LEDGER] Connected to {client.rpc_url}")
    return client
