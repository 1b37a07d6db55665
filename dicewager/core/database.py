"""
SQLite storage for the Ledger Service.
Balances are kept as integer cents. Every money-moving write happens inside
`atomic()` so the balance, its transaction row and the idempotency record
commit together.
"""

import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional

import orjson

from dicewager.core.logger import get_logger

logger = get_logger("database")


class LedgerDatabase:
    """Thread-safe SQLite wrapper, one connection per thread."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._local = threading.local()
        self._write_lock = threading.RLock()
        self._schema_ready = False

    def _get_connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, "connection", None)
        if conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            # Autocommit mode; atomic() issues its own BEGIN/COMMIT
            conn = sqlite3.connect(
                str(self.db_path), check_same_thread=False, isolation_level=None
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA busy_timeout = 5000")
            self._local.connection = conn
        if not self._schema_ready:
            self._init_db(conn)
        return conn

    def _init_db(self, conn: sqlite3.Connection):
        with self._write_lock:
            if self._schema_ready:
                return
            logger.info(f"Initializing ledger database at {self.db_path}")
            cursor = conn.cursor()

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS accounts (
                    account_id TEXT PRIMARY KEY,
                    balance_cents INTEGER NOT NULL CHECK (balance_cents >= 0),
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS transactions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    account_id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    amount_cents INTEGER NOT NULL,
                    balance_after_cents INTEGER NOT NULL,
                    bet_amount INTEGER,
                    multiplier INTEGER,
                    roll INTEGER,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY (account_id) REFERENCES accounts(account_id)
                )
            """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS idempotency_keys (
                    key TEXT PRIMARY KEY,
                    account_id TEXT NOT NULL,
                    fingerprint TEXT NOT NULL,
                    response TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """
            )
            self._schema_ready = True

    def close(self):
        conn = getattr(self._local, "connection", None)
        if conn is not None:
            conn.close()
            self._local.connection = None

    @contextmanager
    def atomic(self) -> Iterator[sqlite3.Cursor]:
        """Serialized write transaction. Rolls back on any exception."""
        with self._write_lock:
            conn = self._get_connection()
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn.cursor()
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            else:
                conn.execute("COMMIT")

    # ==================== Accounts ====================

    def fetch_balance(self, cursor: sqlite3.Cursor, account_id: str) -> Optional[int]:
        cursor.execute(
            "SELECT balance_cents FROM accounts WHERE account_id = ?", (account_id,)
        )
        row = cursor.fetchone()
        return None if row is None else row["balance_cents"]

    def open_account(self, cursor: sqlite3.Cursor, account_id: str, balance_cents: int):
        now = datetime.now().isoformat()
        cursor.execute(
            """
            INSERT INTO accounts (account_id, balance_cents, created_at, updated_at)
            VALUES (?, ?, ?, ?)
        """,
            (account_id, balance_cents, now, now),
        )
        logger.info(f"Opened ledger account {account_id}")

    def set_balance(self, cursor: sqlite3.Cursor, account_id: str, balance_cents: int):
        cursor.execute(
            """
            UPDATE accounts SET balance_cents = ?, updated_at = ?
            WHERE account_id = ?
        """,
            (balance_cents, datetime.now().isoformat(), account_id),
        )

    def get_balance(self, account_id: str) -> Optional[int]:
        return self.fetch_balance(self._get_connection().cursor(), account_id)

    # ==================== Transactions ====================

    def log_transaction(
        self,
        cursor: sqlite3.Cursor,
        account_id: str,
        tx_type: str,
        amount_cents: int,
        balance_after_cents: int,
        bet_amount: int = None,
        multiplier: int = None,
        roll: int = None,
    ):
        cursor.execute(
            """
            INSERT INTO transactions
                (account_id, type, amount_cents, balance_after_cents,
                 bet_amount, multiplier, roll, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
            (
                account_id,
                tx_type,
                amount_cents,
                balance_after_cents,
                bet_amount,
                multiplier,
                roll,
                datetime.now().isoformat(),
            ),
        )

    def get_transactions(self, account_id: str, limit: int = 50) -> List[Dict]:
        """Most recent first."""
        cursor = self._get_connection().cursor()
        cursor.execute(
            """
            SELECT * FROM transactions WHERE account_id = ?
            ORDER BY id DESC LIMIT ?
        """,
            (account_id, limit),
        )
        return [dict(row) for row in cursor.fetchall()]

    # ==================== Idempotency ====================

    def get_idempotent_response(self, cursor: sqlite3.Cursor, key: str) -> Optional[Dict]:
        """{"fingerprint": ..., "response": ...} for a used key, else None."""
        cursor.execute(
            "SELECT fingerprint, response FROM idempotency_keys WHERE key = ?", (key,)
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return {"fingerprint": row["fingerprint"], "response": orjson.loads(row["response"])}

    def store_idempotent_response(
        self,
        cursor: sqlite3.Cursor,
        key: str,
        account_id: str,
        fingerprint: str,
        response: Dict,
    ):
        cursor.execute(
            """
            INSERT INTO idempotency_keys (key, account_id, fingerprint, response, created_at)
            VALUES (?, ?, ?, ?, ?)
        """,
            (
                key,
                account_id,
                fingerprint,
                orjson.dumps(response).decode("utf-8"),
                datetime.now().isoformat(),
            ),
        )
