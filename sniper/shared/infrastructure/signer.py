"""
Signing Capability
==================
Boundary between the engine and wallet key material.

A ``Signer`` exposes a public key and a sign-transaction operation. The
engine never reads or persists the raw secret; ``KeypairSigner`` keeps the
solders ``Keypair`` private and hides it from ``repr``.
"""

from abc import ABC, abstractmethod
from typing import Iterable, List

import base58
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from sniper.shared.system.logging import Logger


class Signer(ABC):
    """Opaque signing capability owned by exactly one wallet session."""

    @abstractmethod
    def pubkey(self) -> Pubkey:
        ...

    @abstractmethod
    def sign_transaction(self, message: MessageV0) -> VersionedTransaction:
        ...

    @property
    def public_key(self) -> str:
        return str(self.pubkey())

    def short_key(self) -> str:
        key = self.public_key
        return f"{key[:4]}...{key[-4:]}"


class KeypairSigner(Signer):
    """Signer backed by an in-memory solders Keypair."""

    def __init__(self, keypair: Keypair):
        self._keypair = keypair

    @classmethod
    def from_base58(cls, secret: str) -> "KeypairSigner":
        secret_bytes = base58.b58decode(secret.strip())
        if len(secret_bytes) != 64:
            raise ValueError(f"expected 64 secret key bytes, got {len(secret_bytes)}")
        return cls(Keypair.from_bytes(secret_bytes))

    @classmethod
    def generate(cls) -> "KeypairSigner":
        return cls(Keypair())

    def pubkey(self) -> Pubkey:
        return self._keypair.pubkey()

    def sign_transaction(self, message: MessageV0) -> VersionedTransaction:
        return VersionedTransaction(message, [self._keypair])

    def export_base58(self) -> str:
        """Secret key as base58, for writing a freshly generated wallet to .env."""
        return base58.b58encode(bytes(self._keypair)).decode("ascii")

    def __repr__(self) -> str:
        return f"KeypairSigner({self.public_key})"


def load_signers(secrets: Iterable[str]) -> List[KeypairSigner]:
    """
    Build signers from base58 secret keys.

    Malformed keys are skipped with a warning. A key that appears twice is
    loaded once so no two sessions ever share a capability.
    """
    signers: List[KeypairSigner] = []
    seen = set()

    for index, secret in enumerate(secrets):
        if not secret or not secret.strip():
            continue
        try:
            signer = KeypairSigner.from_base58(secret)
        except Exception as e:
            Logger.warning(f"[REGISTRY] Skipping wallet #{index}: invalid key format ({type(e).__name__})")
            continue

        if signer.public_key in seen:
            Logger.warning(f"[REGISTRY] Duplicate wallet {signer.short_key()} ignored")
            continue

        seen.add(signer.public_key)
        signers.append(signer)

    return signers


def load_signers_from_env(raw: str = None) -> List[KeypairSigner]:
    """Read ``BOT_WALLET_KEYS`` (comma separated) and build signers."""
    if raw is None:
        from config.settings import Settings
        raw = Settings.BOT_WALLET_KEYS
    return load_signers(part for part in (raw or "").split(","))
