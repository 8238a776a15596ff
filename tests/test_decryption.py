import asyncio

import pytest
from algosdk import account

from conftest import RejectingSigner, StaticSigner
from decryption.protocol import (
    AuthorizationToken,
    ChallengeContext,
    DecryptionSession,
    DecryptionState,
    format_challenge,
    generate_public_key,
)
from decryption.signer import AlgorandAccountSigner
from decryption.verifier import AlgorandSignatureVerifier, PermissiveVerifier
from fhe_engine.codec import SimulatedFHECodec
from fhe_engine.errors import SignatureRejectedError, UnauthorizedError

CONTEXT = ChallengeContext(
    public_key="0xabc123",
    contract_address="APPADDRESS",
    chain_id=416002,
    start_timestamp=1_700_000_000,
)


class BlockingSigner:
    def __init__(self) -> None:
        self.started = asyncio.Event()

    async def sign_message(self, message: str) -> str:
        self.started.set()
        await asyncio.Event().wait()
        return "never"


def _session(**kwargs) -> DecryptionSession:
    kwargs.setdefault("settle_seconds", 0)
    return DecryptionSession(CONTEXT, SimulatedFHECodec(), **kwargs)


def test_challenge_format() -> None:
    assert format_challenge(CONTEXT) == (
        "publickey:0xabc123\n"
        "contractAddresses:APPADDRESS\n"
        "contractsChainId:416002\n"
        "startTimestamp:1700000000\n"
        "durationDays:30"
    )


def test_public_key_material() -> None:
    key = generate_public_key()
    assert key.startswith("0x")
    assert len(key) == 2002
    int(key[2:], 16)
    assert generate_public_key() != key


def test_fresh_context_uses_clock() -> None:
    context = ChallengeContext.fresh("APP", 416002, clock=lambda: 1_234.7)
    assert context.start_timestamp == 1_234
    assert context.duration_days == 30
    assert len(context.public_key) == 2002


def test_full_flow_reveals_value() -> None:
    session = _session()
    signer = StaticSigner()
    revealed = asyncio.run(session.run(SimulatedFHECodec().encode(72), signer, "r1"))

    assert revealed.value == 72
    assert revealed.record_id == "r1"
    assert session.state is DecryptionState.AUTHORIZED
    assert signer.messages == [format_challenge(CONTEXT)]

    revealed.clear()
    assert revealed.cleared
    assert revealed.value is None


def test_reveal_without_token_is_unauthorized() -> None:
    session = _session()
    session.request_challenge()
    with pytest.raises(UnauthorizedError):
        asyncio.run(session.reveal(SimulatedFHECodec().encode(1), None))


def test_token_from_another_session_is_unauthorized() -> None:
    ours, theirs = _session(), _session()
    ours.request_challenge()
    ours.authorize("0xsig")
    theirs.request_challenge()
    foreign = theirs.authorize("0xsig")

    with pytest.raises(UnauthorizedError):
        asyncio.run(ours.reveal(SimulatedFHECodec().encode(1), foreign))

    forged = AuthorizationToken(session_id=ours.id, signature="0xsig", challenge="other")
    with pytest.raises(UnauthorizedError):
        asyncio.run(ours.reveal(SimulatedFHECodec().encode(1), forged))


def test_signer_rejection() -> None:
    session = _session()
    with pytest.raises(SignatureRejectedError):
        asyncio.run(session.run(SimulatedFHECodec().encode(1), RejectingSigner()))
    assert session.state is DecryptionState.REJECTED
    assert session.token is None


def test_empty_signature_is_rejected() -> None:
    session = _session()
    with pytest.raises(SignatureRejectedError):
        asyncio.run(session.run(SimulatedFHECodec().encode(1), StaticSigner(signature="")))
    assert session.state is DecryptionState.REJECTED


def test_cancel_while_awaiting_signature() -> None:
    session = _session()
    signer = BlockingSigner()

    async def scenario():
        session.request_challenge()
        waiting = asyncio.ensure_future(session.await_signature(signer))
        await signer.started.wait()
        assert session.cancel() is True
        with pytest.raises(SignatureRejectedError):
            await waiting

    asyncio.run(scenario())
    assert session.state is DecryptionState.CANCELLED
    assert session.cancel() is False


def test_cancelled_session_cannot_authorize() -> None:
    session = _session()
    session.request_challenge()
    session.cancel()
    with pytest.raises(SignatureRejectedError):
        session.authorize("0xsig")


def test_session_is_single_use() -> None:
    session = _session()
    asyncio.run(session.run(SimulatedFHECodec().encode(5), StaticSigner()))
    with pytest.raises(SignatureRejectedError):
        session.request_challenge()


def test_settle_delay_is_awaited(monkeypatch) -> None:
    delays = []

    async def fake_sleep(seconds):
        delays.append(seconds)

    monkeypatch.setattr("decryption.protocol.asyncio.sleep", fake_sleep)
    session = _session(settle_seconds=1.5)
    asyncio.run(session.run(SimulatedFHECodec().encode(5), StaticSigner()))
    assert delays == [1.5]


def test_permissive_verifier_accepts_any_non_empty_signature() -> None:
    verifier = PermissiveVerifier()
    assert verifier.verify("challenge", "anything")
    assert not verifier.verify("challenge", "")


def test_algorand_signature_round_trip() -> None:
    private_key, address = account.generate_account()
    _, stranger = account.generate_account()
    signer = AlgorandAccountSigner(private_key)
    assert signer.address == address

    challenge = format_challenge(CONTEXT)
    signature = asyncio.run(signer.sign_message(challenge))

    assert AlgorandSignatureVerifier(address).verify(challenge, signature)
    assert not AlgorandSignatureVerifier(stranger).verify(challenge, signature)
    assert not AlgorandSignatureVerifier(address).verify(challenge + "\n", signature)
    assert not AlgorandSignatureVerifier(address).verify(challenge, "not-base64!")


def test_hardened_session_rejects_foreign_signature() -> None:
    private_key, _ = account.generate_account()
    _, owner = account.generate_account()
    session = _session(verifier=AlgorandSignatureVerifier(owner))

    with pytest.raises(SignatureRejectedError):
        asyncio.run(session.run(SimulatedFHECodec().encode(5), AlgorandAccountSigner(private_key)))
    assert session.state is DecryptionState.REJECTED
