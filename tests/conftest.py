import random

import pytest

from fhe_engine.codec import SimulatedFHECodec
from lifecycle.engine import LifecycleEngine
from record_store.ledger import InMemoryLedger
from record_store.store import RecordStore


class StaticSigner:
    def __init__(self, signature: str = "0xsigned") -> None:
        self.signature = signature
        self.messages: list[str] = []

    async def sign_message(self, message: str) -> str:
        self.messages.append(message)
        return self.signature


class RejectingSigner:
    async def sign_message(self, message: str) -> str:
        raise RuntimeError("User rejected the request")


@pytest.fixture
def codec() -> SimulatedFHECodec:
    return SimulatedFHECodec(random.Random(7))


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger()


@pytest.fixture
def store(ledger: InMemoryLedger) -> RecordStore:
    return RecordStore(ledger)


@pytest.fixture
def engine(store: RecordStore, codec: SimulatedFHECodec) -> LifecycleEngine:
    return LifecycleEngine(store, codec)
