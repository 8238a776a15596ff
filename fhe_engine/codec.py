"""
FHE Engine — Value Codec
==========================

Represents plaintext scores as opaque ciphertext and computes over that
ciphertext.

Ciphertext format:
    "FHE-" + base64(decimal string of the value)

The scheme is a *simulated* homomorphism: ``transform`` decodes, computes in
the plaintext domain and re-encodes, but the intermediate plaintext never
leaves the codec. Callers only ever hand in ciphertext and get ciphertext
back, so a genuine homomorphic backend can implement ``CiphertextCodec`` and
replace ``SimulatedFHECodec`` without touching them.

Operations:
    analyze   → value * 0.8 + noise, noise uniform in [0, 20)
    improve   → value * 1.15
    identity  → value (also used for any unknown operation name)
"""

from __future__ import annotations

import base64
import binascii
import logging
import math
import random
import re
from abc import ABC, abstractmethod
from typing import Callable, Optional

from fhe_engine.errors import FormatError

logger = logging.getLogger("fhe_engine.codec")

CIPHERTEXT_TAG = "FHE-"
ANALYZE_WEIGHT = 0.8
ANALYZE_NOISE_SPAN = 20.0
IMPROVE_FACTOR = 1.15

# Leading numeric prefix, the way a lenient float parser reads "72abc" as 72.
_NUMERIC_PREFIX = re.compile(
    r"^\s*([+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?))"
)

Operation = Callable[[float, random.Random], float]


# ─────────────────────────────────────────────────────────────────────────────
# Plaintext helpers
# ─────────────────────────────────────────────────────────────────────────────
def _decimal_string(value: float) -> str:
    """Shortest decimal text that reads back as exactly ``value``."""
    if math.isnan(value):
        raise FormatError("NaN has no ciphertext representation")
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return repr(value)


def _parse_number(text: str) -> Optional[float]:
    match = _NUMERIC_PREFIX.match(text)
    if not match:
        return None
    return float(match.group(1).replace("Infinity", "inf"))


# ─────────────────────────────────────────────────────────────────────────────
# Operations
# ─────────────────────────────────────────────────────────────────────────────
def _analyze(value: float, rng: random.Random) -> float:
    return value * ANALYZE_WEIGHT + rng.random() * ANALYZE_NOISE_SPAN


def _improve(value: float, rng: random.Random) -> float:
    return value * IMPROVE_FACTOR


def _identity(value: float, rng: random.Random) -> float:
    return value


OPERATIONS: dict[str, Operation] = {
    "analyze": _analyze,
    "improve": _improve,
    "identity": _identity,
}


# ─────────────────────────────────────────────────────────────────────────────
# Codecs
# ─────────────────────────────────────────────────────────────────────────────
class CiphertextCodec(ABC):
    """Contract every ciphertext backend honours."""

    @abstractmethod
    def encode(self, value: float) -> str: ...

    @abstractmethod
    def decode(self, ciphertext: str) -> float: ...

    @abstractmethod
    def transform(self, ciphertext: str, operation: str = "identity") -> str: ...


class SimulatedFHECodec(CiphertextCodec):
    """Reversible tagged-base64 codec with decode-compute-encode transforms.

    Not cryptographically secure: anyone holding a ciphertext can decode it.
    ``rng`` drives the analysis noise and can be seeded for reproducibility.
    """

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self.rng = rng or random.Random()

    def encode(self, value: float) -> str:
        text = _decimal_string(float(value))
        return CIPHERTEXT_TAG + base64.b64encode(text.encode("ascii")).decode("ascii")

    def decode(self, ciphertext: str) -> float:
        """Decode a ciphertext, accepting untagged legacy numeric strings."""
        if ciphertext.startswith(CIPHERTEXT_TAG):
            payload = ciphertext[len(CIPHERTEXT_TAG):]
            # Some writers strip the trailing "=" padding.
            payload += "=" * (-len(payload) % 4)
            try:
                text = base64.b64decode(payload, validate=True).decode("ascii")
            except (binascii.Error, UnicodeDecodeError) as exc:
                raise FormatError(f"Malformed ciphertext payload: {exc}") from exc
        else:
            text = ciphertext

        value = _parse_number(text)
        if value is None:
            raise FormatError(f"Ciphertext has no numeric interpretation: {ciphertext[:32]!r}")
        return value

    def transform(self, ciphertext: str, operation: str = "identity") -> str:
        func = OPERATIONS.get(operation)
        if func is None:
            logger.debug("Unknown operation %r — applying identity", operation)
            func = _identity
        return self.encode(func(self.decode(ciphertext), self.rng))


_default_codec = SimulatedFHECodec()


def encode(value: float) -> str:
    return _default_codec.encode(value)


def decode(ciphertext: str) -> float:
    return _default_codec.decode(ciphertext)


def transform(ciphertext: str, operation: str = "identity") -> str:
    return _default_codec.transform(ciphertext, operation)
