"""
Decryption — Wallet Signers
=============================

Signers answer a challenge message with a wallet signature. The local
account signer covers scripts and tests that hold a mnemonic; browser
wallets sign on the client and post the signature to the backend instead.
"""

from __future__ import annotations

import asyncio
import logging

from algosdk import account, mnemonic, util

logger = logging.getLogger("decryption.signer")


class AlgorandAccountSigner:
    """Signs challenge bytes with an Algorand account's ed25519 key."""

    def __init__(self, private_key: str) -> None:
        self._private_key = private_key
        self.address = account.address_from_private_key(private_key)

    @classmethod
    def from_mnemonic(cls, phrase: str) -> "AlgorandAccountSigner":
        return cls(mnemonic.to_private_key(phrase))

    async def sign_message(self, message: str) -> str:
        logger.info("Signing %d-char challenge as %s", len(message), self.address[:12] + "…")
        return await asyncio.to_thread(util.sign_bytes, message.encode("utf-8"), self._private_key)
