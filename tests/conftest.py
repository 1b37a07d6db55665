import os

# Must be set before dicewager.config builds the global settings
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient

from dicewager.config import AppConfig, PathsConfig, RateLimitConfig
from dicewager.core.balance_store import MemoryBalanceStore
from dicewager.core.database import LedgerDatabase
from dicewager.core.engine import WagerEngine
from dicewager.core.events import EventEmitter, EventRecorder
from dicewager.core.ledger import Ledger
from dicewager.main import create_app
from dicewager.routers.ledger import limiter
from tests.fakes import FakeLedger, ScriptedRNG


# ==================== Engine fixtures ====================

@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def emitter(recorder):
    emitter = EventEmitter()
    emitter.subscribe(recorder)
    return emitter


@pytest.fixture
def fake_ledger():
    return FakeLedger()


@pytest.fixture
def store():
    return MemoryBalanceStore()


@pytest.fixture
def engine(store, fake_ledger, emitter):
    return WagerEngine(store, fake_ledger, emitter=emitter, timeout=0.5)


# ==================== Ledger Service fixtures ====================

@pytest.fixture
def config(tmp_path):
    return AppConfig(
        paths=PathsConfig(
            database=str(tmp_path / "ledger.db"),
            balance_store=str(tmp_path / "balance.json"),
        ),
        rate_limit=RateLimitConfig(enabled=False),
    )


@pytest.fixture
def rng():
    return ScriptedRNG()


@pytest.fixture
def ledger(config, rng):
    db = LedgerDatabase(config.paths.get_db_path())
    yield Ledger(db, config.ledger, rng=rng)
    db.close()


@pytest.fixture
def app(config, ledger):
    limiter.enabled = False
    return create_app(config, ledger=ledger)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c
