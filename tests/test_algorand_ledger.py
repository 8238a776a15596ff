import asyncio
from types import SimpleNamespace

import pytest
from algosdk.error import AlgodHTTPError

from fhe_engine.errors import StoreUnavailableError
from fhe_engine.models import RecordBlob
from record_store import algorand_ledger
from record_store.algorand_ledger import (
    CHUNK_SIZE,
    MAX_VALUE_BYTES,
    AlgorandLedger,
    _as_bytes,
    _is_retriable,
    box_mbr,
    chunk_box,
    connect,
    count_box,
    version_box,
)
from record_store.ledger import RECORD_KEYS, supports_versioning
from record_store.store import RecordStore


class FakeSend:
    def __init__(self, available=True, error=None):
        self.available = available
        self.error = error

    def is_available(self, send_params=None):
        if self.error:
            raise self.error
        return SimpleNamespace(abi_return=self.available)


def _ledger(**kwargs) -> AlgorandLedger:
    client = SimpleNamespace(send=FakeSend(**kwargs), app_address="APPADDR")
    return AlgorandLedger(algorand=None, client=client, sender="SENDER")


def test_connect_requires_app_id() -> None:
    with pytest.raises(StoreUnavailableError):
        connect(0)
    with pytest.raises(StoreUnavailableError):
        connect(None)


def test_is_versioned() -> None:
    assert supports_versioning(_ledger())


def test_retriable_errors() -> None:
    assert _is_retriable(Exception("TransactionPool.Remember: txn dead: round 100 outside of 1..50"))
    assert not _is_retriable(Exception("logic eval error: assert failed"))


def test_abi_bytes_conversion() -> None:
    assert _as_bytes(None) == b""
    assert _as_bytes(b"abc") == b"abc"
    assert _as_bytes([104, 105]) == b"hi"


def test_availability() -> None:
    assert asyncio.run(_ledger().is_available()) is True
    assert asyncio.run(_ledger(available=False).is_available()) is False
    assert asyncio.run(_ledger(error=ConnectionError("algod down")).is_available()) is False


def test_transient_errors_are_retried(monkeypatch) -> None:
    monkeypatch.setattr(algorand_ledger.time, "sleep", lambda _s: None)
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise Exception("txn dead")
        return "ok"

    assert _ledger()._with_retries("flaky", flaky) == "ok"
    assert len(calls) == 3


def test_permanent_errors_are_raised_at_once(monkeypatch) -> None:
    monkeypatch.setattr(algorand_ledger.time, "sleep", lambda _s: None)
    calls = []

    def broken():
        calls.append(1)
        raise ValueError("assert failed")

    with pytest.raises(ValueError):
        _ledger()._with_retries("broken", broken)
    assert len(calls) == 1


# ─────────────────────────────────────────────────────────────────────────────
# Box storage against a simulated chain
# ─────────────────────────────────────────────────────────────────────────────
def _uint(raw: bytes) -> int:
    return int.from_bytes(raw, "big")


class FakeChain:
    """One app's boxes, its account balance and the atomic group semantics."""

    BASE_BALANCE = 100_000

    def __init__(self) -> None:
        self.boxes: dict[bytes, bytes] = {}
        self.funded = 0
        self.payments: list[int] = []
        self.groups = 0
        self.app = SimpleNamespace(get_box_value=self.get_box_value, get_box_names=self.get_box_names)
        self.account = SimpleNamespace(get_information=self.get_information)
        self.send = SimpleNamespace(payment=self.payment)

    def locked(self, boxes: dict[bytes, bytes]) -> int:
        return sum(2_500 + 400 * (len(name) + len(value)) for name, value in boxes.items())

    def get_box_value(self, app_id, name):
        if name not in self.boxes:
            raise AlgodHTTPError("box not found", 404)
        return self.boxes[name]

    def get_box_names(self, app_id):
        return [SimpleNamespace(name_raw=name) for name in self.boxes]

    def get_information(self, address):
        return SimpleNamespace(
            amount=SimpleNamespace(micro_algo=self.BASE_BALANCE + self.funded),
            min_balance=SimpleNamespace(micro_algo=self.BASE_BALANCE + self.locked(self.boxes)),
        )

    def payment(self, params, send_params=None):
        self.payments.append(params.amount.micro_algo)
        self.funded += params.amount.micro_algo

    def apply(self, calls) -> None:
        assert len(calls) <= 16
        boxes = dict(self.boxes)
        for method, args in calls:
            if method == "write_chunk":
                key, index, chunk = args
                assert len(chunk) <= CHUNK_SIZE
                boxes[chunk_box(key, index)] = chunk
                continue
            key, count, expected, checked = args
            version = _uint(boxes.get(version_box(key), bytes(8)))
            if checked and version != expected:
                raise Exception("logic eval error: assert failed: version mismatch")
            for stale in range(count, _uint(boxes.get(count_box(key), bytes(8)))):
                boxes.pop(chunk_box(key, stale), None)
            boxes[count_box(key)] = count.to_bytes(8, "big")
            boxes[version_box(key)] = (version + 1).to_bytes(8, "big")
        if self.locked(boxes) > self.funded:
            raise Exception("balance below min")
        self.boxes = boxes
        self.groups += 1


class FakeGroup:
    def __init__(self, chain: FakeChain) -> None:
        self.chain = chain
        self.calls: list[tuple[str, tuple]] = []

    def write_chunk(self, args):
        self.calls.append(("write_chunk", args))

    def commit(self, args):
        self.calls.append(("commit", args))

    def send(self, send_params=None):
        self.chain.apply(self.calls)
        return SimpleNamespace(tx_ids=[f"TX{self.chain.groups}"])


def _chain_ledger() -> tuple[AlgorandLedger, FakeChain]:
    chain = FakeChain()
    client = SimpleNamespace(
        app_id=1001,
        app_address="APPADDR",
        send=FakeSend(),
        new_group=lambda: FakeGroup(chain),
    )
    return AlgorandLedger(algorand=chain, client=client, sender="SENDER"), chain


def test_record_store_scales_past_one_box() -> None:
    ledger, chain = _chain_ledger()
    counter = iter(range(1, 1_000))
    store = RecordStore(ledger, id_factory=lambda: f"1700000000{next(counter):03d}-rec")

    async def scenario():
        for n in range(120):
            await store.create_record(
                RecordBlob(score="FHE-NzI=", timestamp=n, owner="0xA", subject="Physics")
            )
        return await store.list_records()

    records = asyncio.run(scenario())

    assert len(records) == 120
    assert records[0].timestamp == 119
    assert _uint(chain.boxes[count_box(RECORD_KEYS)]) >= 2
    assert _uint(chain.boxes[version_box(RECORD_KEYS)]) == 120
    keys = asyncio.run(ledger.list_keys())
    assert RECORD_KEYS in keys
    assert len(keys) == 121


def test_losing_compare_and_set_leaves_value_untouched() -> None:
    ledger, chain = _chain_ledger()

    async def scenario():
        await ledger.set("k", b"x" * (CHUNK_SIZE * 3))
        value, version = await ledger.get_versioned("k")
        assert version == 1
        assert await ledger.compare_and_set("k", b"y" * 10, version + 5) is False
        assert await ledger.get("k") == value
        assert await ledger.compare_and_set("k", b"y" * 10, version) is True
        return await ledger.get_versioned("k")

    assert asyncio.run(scenario()) == (b"y" * 10, 2)
    assert chunk_box("k", 1) not in chain.boxes
    assert chunk_box("k", 2) not in chain.boxes


def test_missing_key_reads_empty_at_version_zero() -> None:
    ledger, _chain = _chain_ledger()
    assert asyncio.run(ledger.get("absent")) == b""
    assert asyncio.run(ledger.get_versioned("absent")) == (b"", 0)


def test_values_beyond_the_group_limit_are_refused() -> None:
    ledger, chain = _chain_ledger()
    with pytest.raises(StoreUnavailableError):
        asyncio.run(ledger.set("big", bytes(MAX_VALUE_BYTES + 1)))
    assert chain.boxes == {}
    assert chain.payments == []


def test_app_account_is_topped_up_only_by_the_growth() -> None:
    ledger, chain = _chain_ledger()
    small = b"a" * 100
    large = b"b" * (CHUNK_SIZE + 50)

    asyncio.run(ledger.set("k", small))
    assert chain.payments == [box_mbr("k", [small])]

    asyncio.run(ledger.set("k", b"c" * 100))
    assert len(chain.payments) == 1

    asyncio.run(ledger.set("k", large))
    assert chain.payments[1] == box_mbr("k", [large[:CHUNK_SIZE], large[CHUNK_SIZE:]]) - box_mbr("k", [small])
    assert chain.funded == chain.locked(chain.boxes)
