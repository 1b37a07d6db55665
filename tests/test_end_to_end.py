"""WagerEngine driving the real Ledger Service over HTTP, in process."""

from decimal import Decimal

import httpx
import pytest

from dicewager.core import events
from dicewager.core.balance_store import JsonFileBalanceStore
from dicewager.core.engine import WagerEngine, build_engine
from dicewager.core.ledger_client import LedgerClient

pytestmark = pytest.mark.asyncio


@pytest.fixture
async def ledger_client(app):
    async with LedgerClient(
        "http://ledger", transport=httpx.ASGITransport(app=app)
    ) as client:
        yield client


@pytest.fixture
def file_store(tmp_path):
    return JsonFileBalanceStore(tmp_path / "balance.json")


async def test_play_session(ledger_client, file_store, rng, recorder, emitter):
    engine = WagerEngine(file_store, ledger_client, emitter=emitter)
    assert await engine.start() == Decimal("1000")

    rng.faces = [5, 2]
    engine.set_bet_amount("100")
    engine.select_multiplier(2)
    await engine.roll()
    await engine.roll()

    assert engine.balance == Decimal("1100")
    assert file_store.load() == Decimal("1100")
    assert recorder.of_type(events.RollResolved) == [
        events.RollResolved(5, True, Decimal("300")),
        events.RollResolved(2, False, Decimal("-200")),
    ]

    history = await ledger_client.history()
    assert [t.type for t in history] == ["loss", "win", "open"]


async def test_stale_cache_is_corrected_on_start(ledger_client, file_store, ledger):
    file_store.save(Decimal("99999"))
    engine = WagerEngine(file_store, ledger_client)

    assert await engine.start() == Decimal("1000")
    assert file_store.load() == Decimal("1000")
    assert ledger.get_balance() == Decimal("1000")


async def test_server_refusal_leaves_balance_alone(ledger_client, file_store, ledger, recorder, emitter):
    engine = WagerEngine(file_store, ledger_client, emitter=emitter)
    await engine.start()
    # Spent from another device, the cache still says 1000
    with ledger.db.atomic() as cursor:
        ledger.db.set_balance(cursor, ledger.account_id, 5000)  # cents
    engine.set_bet_amount("100")

    assert await engine.roll() is None

    assert engine.balance == Decimal("1000")
    assert recorder.of_type(events.NetworkFailure)[0].context == "roll"
    assert "Insufficient balance" in recorder.events[-1].error


async def test_reset_through_the_service(ledger_client, file_store, rng):
    engine = WagerEngine(file_store, ledger_client)
    await engine.start()
    rng.faces = [1]
    engine.set_bet_amount("1000")
    await engine.roll()
    assert engine.balance == Decimal("0")
    assert engine.bet_amount == ""

    assert await engine.reset_balance() == Decimal("1000")
    assert file_store.load() == Decimal("1000")


async def test_unreachable_service_keeps_cache(file_store, recorder, emitter):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    file_store.save(Decimal("640"))
    async with LedgerClient("http://ledger", transport=httpx.MockTransport(refuse)) as client:
        engine = WagerEngine(file_store, client, emitter=emitter)
        assert await engine.start() == Decimal("640")

        engine.set_bet_amount("40")
        assert await engine.roll() is None

    assert file_store.load() == Decimal("640")
    assert recorder.events[-1].context == "roll"


async def test_build_engine_uses_configured_store(config, ledger_client):
    engine = build_engine(config, ledger=ledger_client)

    await engine.start()

    stored = JsonFileBalanceStore(config.paths.get_balance_store_path())
    assert stored.load() == Decimal("1000")
    assert engine.multipliers == (1, 2, 3)


async def test_hand_edited_negative_cache_does_not_break_start(ledger_client, file_store):
    file_store.save(Decimal("-5"))
    engine = WagerEngine(file_store, ledger_client)

    assert await engine.start() == Decimal("1000")
    assert file_store.load() == Decimal("1000")
