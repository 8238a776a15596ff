"""Decryption — Package."""

from decryption.protocol import (
    AuthorizationToken,
    ChallengeContext,
    DecryptionSession,
    DecryptionState,
    RevealedValue,
    Signer,
    format_challenge,
    generate_public_key,
)
from decryption.signer import AlgorandAccountSigner
from decryption.verifier import AlgorandSignatureVerifier, PermissiveVerifier

__all__ = [
    "AuthorizationToken",
    "ChallengeContext",
    "DecryptionSession",
    "DecryptionState",
    "RevealedValue",
    "Signer",
    "format_challenge",
    "generate_public_key",
    "AlgorandAccountSigner",
    "AlgorandSignatureVerifier",
    "PermissiveVerifier",
]
