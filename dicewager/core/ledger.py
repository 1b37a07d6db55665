"""
Authoritative settlement rules for the dice game.

The client's balance is never trusted: every bet is re-validated against the
stored balance, and verify_balance only reports what the book says.

Payout table (configurable in LedgerConfig):
- 1x wins on 4-6, 2x wins on 5-6, 3x wins on a 6.
- A win credits amount * (multiplier + 1).
- A loss debits amount * multiplier, floored so the balance never goes below zero.
"""

from decimal import Decimal
from typing import List, Optional

from dicewager.config import LedgerConfig
from dicewager.core.database import LedgerDatabase
from dicewager.core.exceptions import IdempotencyConflict, LedgerRejected
from dicewager.core.logger import get_logger
from dicewager.core.models import Settlement, TransactionRecord
from dicewager.core.money import from_cents, to_cents
from dicewager.core.rng import DiceRNG, rng as default_rng

logger = get_logger("ledger")


class Ledger:
    def __init__(self, db: LedgerDatabase, config: LedgerConfig, rng: DiceRNG = None):
        self.db = db
        self.config = config
        self.rng = rng or default_rng
        self.account_id = config.account_id

        missing = [m for m in config.multipliers if m not in config.win_faces]
        if missing:
            raise ValueError(f"No winning faces configured for multipliers {missing}")

    @property
    def starting_cents(self) -> int:
        return to_cents(self.config.starting_balance)

    def _balance_or_open(self, cursor) -> int:
        balance = self.db.fetch_balance(cursor, self.account_id)
        if balance is None:
            balance = self.starting_cents
            self.db.open_account(cursor, self.account_id, balance)
            self.db.log_transaction(cursor, self.account_id, "open", balance, balance)
        return balance

    # ==================== Queries ====================

    def get_balance(self) -> Decimal:
        with self.db.atomic() as cursor:
            return from_cents(self._balance_or_open(cursor))

    def verify_balance(self, client_balance: Decimal) -> Decimal:
        """Report the authoritative balance. The client's figure is only logged."""
        authoritative = self.get_balance()
        if client_balance != authoritative:
            logger.warning(
                f"Client balance {client_balance} disagrees with ledger {authoritative}",
                extra={"account_id": self.account_id},
            )
        return authoritative

    def history(self, limit: int = 50) -> List[TransactionRecord]:
        rows = self.db.get_transactions(self.account_id, limit=limit)
        return [
            TransactionRecord(
                id=row["id"],
                type=row["type"],
                amount=from_cents(row["amount_cents"]),
                balance_after=from_cents(row["balance_after_cents"]),
                bet_amount=row["bet_amount"],
                multiplier=row["multiplier"],
                roll=row["roll"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    # ==================== Money movement ====================

    def _check_bet(self, bet_amount: int, multiplier: int, balance_cents: int):
        if isinstance(bet_amount, bool) or not isinstance(bet_amount, int) or bet_amount <= 0:
            raise LedgerRejected("Bet amount must be a positive whole number")
        if multiplier not in self.config.multipliers:
            raise LedgerRejected(f"Multiplier must be one of {self.config.multipliers}")
        if bet_amount * 100 > balance_cents:
            raise LedgerRejected("Insufficient balance")

    def roll_dice(
        self, bet_amount: int, multiplier: int, idempotency_key: Optional[str] = None
    ) -> Settlement:
        """
        Resolve one bet atomically.

        A repeated idempotency key returns the first settlement unchanged,
        without rolling again or touching the balance. Reusing a key for a
        different amount or multiplier raises IdempotencyConflict.
        """
        fingerprint = f"{self.account_id}:{bet_amount}:{multiplier}"
        with self.db.atomic() as cursor:
            if idempotency_key:
                stored = self.db.get_idempotent_response(cursor, idempotency_key)
                if stored is not None:
                    if stored["fingerprint"] != fingerprint:
                        raise IdempotencyConflict(
                            "Idempotency-Key was already used for a different bet"
                        )
                    logger.info(f"Replaying settlement for key {idempotency_key}")
                    return Settlement.model_validate(stored["response"])

            balance = self._balance_or_open(cursor)
            self._check_bet(bet_amount, multiplier, balance)

            face = self.rng.roll_die()
            is_win = face in self.config.win_faces[multiplier]
            winnings = bet_amount * (multiplier + 1) * 100

            if is_win:
                delta = winnings
            else:
                delta = -min(bet_amount * multiplier * 100, balance)
            new_balance = balance + delta

            self.db.set_balance(cursor, self.account_id, new_balance)
            self.db.log_transaction(
                cursor,
                self.account_id,
                "win" if is_win else "loss",
                delta,
                new_balance,
                bet_amount=bet_amount,
                multiplier=multiplier,
                roll=face,
            )

            settlement = Settlement(
                roll=face,
                is_win=is_win,
                new_balance=from_cents(new_balance),
                potential_winnings=from_cents(winnings),
            )
            if idempotency_key:
                self.db.store_idempotent_response(
                    cursor,
                    idempotency_key,
                    self.account_id,
                    fingerprint,
                    settlement.model_dump(by_alias=True, mode="json"),
                )

        logger.info(
            f"Settled {bet_amount} at {multiplier}x: rolled {face}, "
            f"{'win' if is_win else 'loss'}, balance {settlement.new_balance}"
        )
        return settlement

    def reset_balance(self) -> Decimal:
        with self.db.atomic() as cursor:
            balance = self._balance_or_open(cursor)
            fresh = self.starting_cents
            self.db.set_balance(cursor, self.account_id, fresh)
            self.db.log_transaction(cursor, self.account_id, "reset", fresh - balance, fresh)
        logger.info(f"Balance reset to {from_cents(fresh)}")
        return from_cents(fresh)
