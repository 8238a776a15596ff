"""
Decryption — Signature Verifiers
==================================

Decide whether a wallet signature over a challenge message authorizes a
reveal.

    PermissiveVerifier        → accepts any signature (evidence of intent only)
    AlgorandSignatureVerifier → checks an ed25519 wallet signature over the
                                challenge bytes against an expected address
"""

from __future__ import annotations

import logging
from typing import Protocol

from algosdk import util

logger = logging.getLogger("decryption.verifier")


class SignatureVerifier(Protocol):
    def verify(self, message: str, signature: str) -> bool: ...


class PermissiveVerifier:
    """Accepts every signature without checking it against the challenge.

    Anyone able to produce *some* signature string can reveal a ciphertext;
    use AlgorandSignatureVerifier for a hardened deployment.
    """

    def verify(self, message: str, signature: str) -> bool:
        logger.warning("Accepting signature without verification (%d-char challenge)", len(message))
        return bool(signature)


class AlgorandSignatureVerifier:
    """Verifies signatures made with ``algosdk.util.sign_bytes``.

    Parameters
    ----------
    address : str
        Algorand address (58-char base32) expected to have signed.
    """

    def __init__(self, address: str) -> None:
        self.address = address

    def verify(self, message: str, signature: str) -> bool:
        try:
            valid = util.verify_bytes(message.encode("utf-8"), signature, self.address)
        except Exception as exc:
            logger.warning("Signature check for %s errored: %s", self.address[:12] + "…", exc)
            return False
        if not valid:
            logger.warning("Signature does not match %s", self.address[:12] + "…")
        return valid
