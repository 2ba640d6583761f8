"""
RPC Error Classifier
====================
Maps a raw failure from the ledger service onto a closed set of kinds.

The retry state machine in ``WalletSession`` uses the kind as its only
signal to choose between backoff, a single retry, or abandonment.

Precedence:
    RATE_LIMITED  >  SIMULATION_FAILED  >  UNKNOWN
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ErrorKind(Enum):
    """Classification of a ledger failure."""
    RATE_LIMITED = "RATE_LIMITED"          # Remote throttling, back off and retry
    SIMULATION_FAILED = "SIMULATION_FAILED"  # Action invalid now, never retry unchanged
    UNKNOWN = "UNKNOWN"                    # Retry once, conservatively


RATE_LIMIT_PHRASES = ("429", "rate limit", "too many requests")
SIMULATION_PHRASES = ("transaction simulation failed",)

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again in a few seconds."
SIMULATION_MESSAGE = (
    "Transaction simulation failed. You may have insufficient funds "
    "or the transaction is invalid."
)
UNKNOWN_MESSAGE = "Unknown RPC error occurred"


@dataclass(frozen=True)
class ClassifiedError:
    kind: ErrorKind
    message: str
    original: Optional[str] = None

    @property
    def is_rate_limit(self) -> bool:
        return self.kind is ErrorKind.RATE_LIMITED

    @property
    def is_simulation_failure(self) -> bool:
        return self.kind is ErrorKind.SIMULATION_FAILED

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


def _describe(error: Any) -> str:
    """Best-effort textual description; never raises."""
    if error is None:
        return ""
    if isinstance(error, str):
        return error
    try:
        text = str(error)
    except Exception:
        text = ""
    # Exceptions raised with no args stringify to "", fall back to args/class
    if not text:
        args = getattr(error, "args", None)
        if args:
            try:
                text = " ".join(str(a) for a in args)
            except Exception:
                text = ""
    return text


def classify_error(error: Any) -> ClassifiedError:
    """
    Classify an opaque error value.

    Args:
        error: Exception, RPC error payload, string, or anything else

    Returns:
        ClassifiedError with exactly one kind and a human readable message
    """
    text = _describe(error)
    lowered = text.lower()

    if any(phrase in lowered for phrase in RATE_LIMIT_PHRASES):
        return ClassifiedError(ErrorKind.RATE_LIMITED, RATE_LIMIT_MESSAGE, text)

    if any(phrase in lowered for phrase in SIMULATION_PHRASES):
        return ClassifiedError(ErrorKind.SIMULATION_FAILED, SIMULATION_MESSAGE, text)

    return ClassifiedError(ErrorKind.UNKNOWN, text.strip() or UNKNOWN_MESSAGE, text or None)
