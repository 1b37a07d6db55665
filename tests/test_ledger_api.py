import tempfile
import unittest
from pathlib import Path

from fastapi.testclient import TestClient

from dicewager.config import AppConfig, PathsConfig, settings
from dicewager.core.database import LedgerDatabase
from dicewager.core.ledger import Ledger
from dicewager.main import create_app
from dicewager.routers.ledger import limiter


def roll(client, amount, multiplier, key=None):
    headers = {"Idempotency-Key": key} if key else {}
    return client.post(
        "/roll-dice", json={"betAmount": amount, "multiplier": multiplier}, headers=headers
    )


# ==================== Balance ====================

def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_new_account_starts_at_1000(client):
    response = client.get("/balance")
    assert response.status_code == 200
    assert response.json() == {"balance": 1000.0}


def test_verify_balance_returns_authoritative_value(client):
    response = client.post("/verify-balance", json={"currentBalance": 5000})
    assert response.status_code == 200
    assert response.json()["balance"] == 1000.0

    # Never adopts what the client claimed
    assert client.get("/balance").json()["balance"] == 1000.0


def test_verify_balance_is_idempotent(client):
    first = client.post("/verify-balance", json={"currentBalance": 1000}).json()
    second = client.post("/verify-balance", json={"currentBalance": 1000}).json()
    assert first == second == {"balance": 1000.0}

    types = [t["type"] for t in client.get("/transactions").json()["transactions"]]
    assert types == ["open"]


def test_verify_balance_rejects_bad_body(client):
    assert client.post("/verify-balance", json={"currentBalance": -1}).status_code == 422
    assert client.post("/verify-balance", json={}).status_code == 422


def test_verify_balance_rejects_out_of_range_amount(client):
    response = client.post("/verify-balance", json={"currentBalance": 1e30})
    assert response.status_code == 422
    assert client.get("/balance").json()["balance"] == 1000.0


# ==================== Rolling ====================

def test_winning_roll_credits_amount_times_multiplier_plus_one(client, rng):
    rng.faces = [5]
    response = roll(client, 100, 2)

    assert response.status_code == 200
    assert response.json() == {
        "roll": 5,
        "isWin": True,
        "newBalance": 1300.0,
        "potentialWinnings": 300.0,
    }


def test_losing_roll_debits_amount_times_multiplier(client, rng):
    rng.faces = [4]
    body = roll(client, 100, 2).json()

    assert body["isWin"] is False
    assert body["newBalance"] == 800.0
    assert body["potentialWinnings"] == 300.0


def test_win_table(client, rng):
    # 1x wins on 4, 5 and 6
    rng.faces = [3, 4]
    assert roll(client, 10, 1).json()["isWin"] is False
    assert roll(client, 10, 1).json()["isWin"] is True
    # 3x only wins on a 6
    rng.faces = [5, 6]
    assert roll(client, 10, 3).json()["isWin"] is False
    assert roll(client, 10, 3).json()["isWin"] is True


def test_loss_never_takes_balance_below_zero(client, rng):
    rng.faces = [1]
    body = roll(client, 500, 3).json()

    assert body["newBalance"] == 0.0
    latest = client.get("/transactions", params={"limit": 1}).json()["transactions"][0]
    assert latest["amount"] == -1000.0
    assert latest["balanceAfter"] == 0.0


def test_bet_above_balance_is_refused(client, rng):
    response = roll(client, 1001, 1)

    assert response.status_code == 400
    assert response.json() == {"detail": "Insufficient balance"}
    assert rng.rolls == 0
    assert client.get("/balance").json()["balance"] == 1000.0


def test_unknown_multiplier_is_refused(client, rng):
    response = roll(client, 10, 5)
    assert response.status_code == 400
    assert "Multiplier" in response.json()["detail"]
    assert rng.rolls == 0


def test_malformed_bets_fail_validation(client):
    assert roll(client, 0, 1).status_code == 422
    assert roll(client, -10, 1).status_code == 422
    assert client.post("/roll-dice", json={"multiplier": 1}).status_code == 422


# ==================== Idempotency ====================

def test_repeated_key_replays_the_first_settlement(client, rng):
    rng.faces = [6]
    first = roll(client, 100, 1, key="retry-key-0001")
    second = roll(client, 100, 1, key="retry-key-0001")

    assert first.json() == second.json()
    assert rng.rolls == 1
    assert client.get("/balance").json()["balance"] == 1200.0


def test_different_keys_settle_separately(client, rng):
    rng.faces = [6, 6]
    roll(client, 100, 1, key="first-key-0001")
    roll(client, 100, 1, key="second-key-0002")

    assert rng.rolls == 2
    assert client.get("/balance").json()["balance"] == 1400.0


def test_malformed_key_is_refused(client, rng):
    response = roll(client, 100, 1, key="bad key!")
    assert response.status_code == 400
    assert rng.rolls == 0


def test_key_reused_for_a_different_bet_is_refused(client, rng):
    rng.faces = [6]
    first = roll(client, 100, 1, key="reused-key-0001")

    response = roll(client, 500, 3, key="reused-key-0001")

    assert response.status_code == 422
    assert "different bet" in response.json()["detail"]
    assert rng.rolls == 1
    assert client.get("/balance").json()["balance"] == first.json()["newBalance"]


def test_refused_bet_does_not_burn_its_key(client, rng):
    assert roll(client, 5000, 1, key="refused-key-01").status_code == 400

    rng.faces = [6]
    assert roll(client, 100, 1, key="refused-key-01").status_code == 200
    assert rng.rolls == 1


# ==================== Reset and history ====================

def test_reset_restores_starting_balance(client, rng):
    rng.faces = [1]
    roll(client, 100, 3)

    response = client.post("/reset-balance")

    assert response.status_code == 200
    assert response.json() == {"balance": 1000.0}
    latest = client.get("/transactions", params={"limit": 1}).json()["transactions"][0]
    assert latest["type"] == "reset"
    assert latest["amount"] == 300.0


def test_transactions_are_newest_first(client, rng):
    rng.faces = [6, 1]
    roll(client, 10, 1)
    roll(client, 10, 2)

    transactions = client.get("/transactions").json()["transactions"]

    assert [t["type"] for t in transactions] == ["loss", "win", "open"]
    assert [t["balanceAfter"] for t in transactions] == [1000.0, 1020.0, 1000.0]
    assert transactions[0]["roll"] == 1
    assert transactions[0]["betAmount"] == 10
    assert transactions[0]["multiplier"] == 2
    assert transactions[2]["roll"] is None


def test_transactions_limit_is_bounded(client):
    assert client.get("/transactions", params={"limit": 0}).status_code == 422
    assert client.get("/transactions", params={"limit": 201}).status_code == 422


def test_balance_survives_a_new_app(config, ledger, rng):
    rng.faces = [6]
    with TestClient(create_app(config, ledger=ledger)) as client:
        roll(client, 100, 1)

    reopened = Ledger(LedgerDatabase(config.paths.get_db_path()), config.ledger)
    with TestClient(create_app(config, ledger=reopened)) as client:
        assert client.get("/balance").json()["balance"] == 1200.0


# ==================== Rate limiting ====================

class TestLedgerRateLimit(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        config = AppConfig(
            paths=PathsConfig(database=str(Path(self.tmp.name) / "ledger.db"))
        )
        self.ledger = Ledger(LedgerDatabase(config.paths.get_db_path()), config.ledger)
        self.app = create_app(config, ledger=self.ledger)

        self._saved_limit = settings.rate_limit.api_requests
        settings.rate_limit.api_requests = "3/minute"
        limiter.enabled = True
        limiter.reset()

    def tearDown(self):
        settings.rate_limit.api_requests = self._saved_limit
        limiter.enabled = False
        limiter.reset()
        self.ledger.db.close()
        self.tmp.cleanup()

    def test_read_endpoints_are_rate_limited(self):
        with TestClient(self.app) as client:
            for i in range(3):
                response = client.get("/balance")
                self.assertEqual(response.status_code, 200, f"request {i + 1} should pass")

            response = client.get("/balance")
            self.assertEqual(response.status_code, 429)

    def test_health_is_not_rate_limited(self):
        with TestClient(self.app) as client:
            for _ in range(5):
                self.assertEqual(client.get("/health").status_code, 200)
