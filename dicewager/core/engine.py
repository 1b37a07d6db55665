"""
WagerEngine - the client-side owner of the player's balance.

The engine keeps a cached copy of the balance in a BalanceStore and treats
the Ledger Service as the only source of truth:

- On conflict the service wins; the cache is overwritten.
- When the service is unreachable the cache wins; the last persisted value
  is kept, never improved on.
- Money only moves through a Ledger Service round trip. The engine never
  adds or subtracts locally.

All money operations are single flight: while a roll or reset is pending a
second one is rejected, not queued.
"""

import asyncio
import re
import uuid
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Protocol, Tuple

from dicewager.config import AppConfig, settings
from dicewager.core import events
from dicewager.core.balance_store import BalanceStore, JsonFileBalanceStore
from dicewager.core.exceptions import (
    BalanceNotLoaded,
    BetInProgress,
    InsufficientBalance,
    InvalidAmount,
    InvalidMultiplier,
    LedgerError,
    NetworkFailure,
    ServiceError,
    WagerError,
)
from dicewager.core.ledger_client import LedgerClient
from dicewager.core.logger import get_logger
from dicewager.core.models import Settlement
from dicewager.core.money import floor_fraction, to_balance

logger = get_logger("engine")

_DIGITS = re.compile(r"[0-9]*")


class LedgerService(Protocol):
    async def verify_balance(self, client_balance: Decimal) -> Decimal: ...

    async def roll_dice(
        self, bet_amount: int, multiplier: int, idempotency_key: Optional[str] = None
    ) -> Settlement: ...

    async def reset_balance(self) -> Decimal: ...


class BetPhase(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    SUBMITTING = "submitting"


class BetResolution(str, Enum):
    SETTLED = "settled"
    REJECTED = "rejected"
    FAILED_NETWORK = "failed_network"


class WagerEngine:
    def __init__(
        self,
        store: BalanceStore,
        ledger: LedgerService,
        emitter: Optional[events.EventEmitter] = None,
        multipliers: Iterable[int] = (1, 2, 3),
        default_balance=1000,
        quick_bet_fractions: Iterable[float] = (0.25, 0.5, 0.75, 1.0),
        timeout: Optional[float] = 10.0,
    ):
        self._store = store
        self._ledger = ledger
        self.emitter = emitter or events.EventEmitter()
        self.multipliers: Tuple[int, ...] = tuple(multipliers)
        self.quick_bet_fractions: Tuple[float, ...] = tuple(quick_bet_fractions)
        self.default_balance = to_balance(default_balance)
        self.timeout = timeout

        self._balance: Optional[Decimal] = None
        self._started = False
        self._lock = asyncio.Lock()
        # (amount, multiplier, key) of a roll whose outcome never reached us
        self._unconfirmed: Optional[Tuple[int, int, str]] = None

        self.bet_amount = ""
        self.multiplier = self.multipliers[0]
        self.phase = BetPhase.IDLE
        self.last_resolution: Optional[BetResolution] = None

    # ==================== State ====================

    @property
    def balance(self) -> Decimal:
        if self._balance is None:
            raise RuntimeError("WagerEngine.start() has not been awaited yet")
        return self._balance

    @property
    def started(self) -> bool:
        return self._started

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def _set_balance(self, value) -> None:
        self._balance = to_balance(value)
        self._store.save(self._balance)

    async def _call(self, coro):
        """Await a ledger call under the engine deadline."""
        try:
            return await asyncio.wait_for(coro, self.timeout)
        except asyncio.TimeoutError as e:
            raise NetworkFailure(f"no answer from the ledger within {self.timeout}s") from e

    # ==================== Reconciliation ====================

    async def start(self) -> Decimal:
        """Reconcile once per session. Later calls return the current balance."""
        if self._started:
            return self.balance
        self._started = True
        return await self.reconcile()

    async def reconcile(self) -> Decimal:
        async with self._lock:
            cached = self._store.load()
            if cached is not None and cached < 0:
                logger.warning(f"Cached balance {cached} is negative, discarding it")
                cached = None
            if cached is None:
                logger.info(f"No cached balance, seeding with {self.default_balance}")
                self._set_balance(self.default_balance)
            else:
                self._balance = cached

            try:
                authoritative = await self._call(self._ledger.verify_balance(self._balance))
            except LedgerError as e:
                # Offline play continues on the last persisted value
                logger.warning(
                    f"Balance verification failed, keeping cached balance: {e}",
                    extra={"cached_balance": str(self._balance)},
                )
                return self._balance

            # The ledger has seen every roll up to now, nothing left to replay
            self._unconfirmed = None
            if authoritative != self._balance:
                logger.info(
                    f"Ledger corrected cached balance {self._balance} -> {authoritative}"
                )
                self._set_balance(authoritative)
            return self._balance

    # ==================== Bet input ====================

    def validate_bet(self, amount) -> int:
        """
        Pre-flight check of a bet amount against the cached balance.

        Only a UX guard: the Ledger Service re-validates every bet.

        Raises:
            InvalidAmount: empty, zero, negative or not digits only.
            InsufficientBalance: more than the cached balance.
            RuntimeError: called before start(), a programming error.
        """
        if amount is None or isinstance(amount, bool):
            raise InvalidAmount(amount)
        text = str(amount)
        if not text or not _DIGITS.fullmatch(text):
            raise InvalidAmount(text)
        value = int(text)
        if value <= 0:
            raise InvalidAmount(text)
        if value > self.balance:
            raise InsufficientBalance(value, self.balance)
        return value

    def set_bet_amount(self, value: str) -> bool:
        """Input filter for the bet field. Returns False when the edit is refused."""
        if self._balance is None or value is None or not _DIGITS.fullmatch(value):
            return False
        if value and int(value) > self.balance:
            return False
        self.bet_amount = value
        return True

    def quick_bet(self, fraction: float) -> int:
        if fraction not in self.quick_bet_fractions:
            raise ValueError(
                f"Quick bet fraction must be one of {list(self.quick_bet_fractions)}"
            )
        amount = floor_fraction(self.balance, fraction)
        self.bet_amount = str(amount)
        return amount

    def select_multiplier(self, multiplier: int) -> int:
        if multiplier not in self.multipliers:
            raise InvalidMultiplier(multiplier, self.multipliers)
        self.multiplier = multiplier
        return multiplier

    # ==================== Settlement ====================

    def _reject(self, reason: str) -> None:
        self.emitter.emit(events.BetRejected(reason))

    def _idempotency_key(self, amount: int, multiplier: int) -> str:
        # A retry of the exact same bet reuses the key so a settlement that
        # landed but never reached us is replayed instead of applied twice
        if self._unconfirmed and self._unconfirmed[:2] == (amount, multiplier):
            return self._unconfirmed[2]
        key = uuid.uuid4().hex
        self._unconfirmed = (amount, multiplier, key)
        return key

    async def roll(self) -> Optional[Settlement]:
        """
        Submit the pending bet to the Ledger Service.

        Returns the Settlement, or None when the bet was rejected locally or
        the ledger could not be reached. Every outcome is also emitted as an
        event.
        """
        if self._lock.locked():
            self._reject(str(BetInProgress()))
            return None
        if self._balance is None:
            self.last_resolution = BetResolution.REJECTED
            self._reject(str(BalanceNotLoaded()))
            return None

        async with self._lock:
            try:
                return await self._roll()
            finally:
                self.phase = BetPhase.IDLE

    async def _roll(self) -> Optional[Settlement]:
        self.phase = BetPhase.VALIDATING
        try:
            amount = self.validate_bet(self.bet_amount)
        except WagerError as e:
            self.last_resolution = BetResolution.REJECTED
            self._reject(str(e))
            return None

        multiplier = self.multiplier
        key = self._idempotency_key(amount, multiplier)

        self.phase = BetPhase.SUBMITTING
        try:
            settlement = await self._call(
                self._ledger.roll_dice(amount, multiplier, idempotency_key=key)
            )
        except LedgerError as e:
            if isinstance(e, ServiceError) and e.status_code and e.status_code < 500:
                # Refused outright, so nothing landed
                self._unconfirmed = None
            logger.error(
                f"Roll failed, balance left at {self._balance}: {e}",
                extra={"bet_amount": amount, "multiplier": multiplier},
            )
            self.last_resolution = BetResolution.FAILED_NETWORK
            self.emitter.emit(events.NetworkFailure("roll", str(e)))
            return None

        self._unconfirmed = None
        self._set_balance(settlement.new_balance)
        if settlement.new_balance == 0:
            self.bet_amount = ""

        if settlement.is_win:
            delta = settlement.potential_winnings
        else:
            delta = -to_balance(amount * multiplier)

        logger.info(
            f"Rolled {settlement.roll}: {'win' if settlement.is_win else 'loss'} {delta}, "
            f"balance {settlement.new_balance}"
        )
        self.last_resolution = BetResolution.SETTLED
        self.emitter.emit(events.RollResolved(settlement.roll, settlement.is_win, delta))
        return settlement

    # ==================== Reset ====================

    async def reset_balance(self) -> Optional[Decimal]:
        """Ask the ledger for a fresh balance. None when the request failed."""
        if self._lock.locked():
            self._reject(str(BetInProgress()))
            return None

        async with self._lock:
            try:
                fresh = await self._call(self._ledger.reset_balance())
            except LedgerError as e:
                logger.error(f"Balance reset failed: {e}")
                self.emitter.emit(events.NetworkFailure("reset", str(e)))
                return None

            self._unconfirmed = None
            self._started = True
            self._set_balance(fresh)
            self.bet_amount = ""
            logger.info(f"Balance reset to {fresh}")
            self.emitter.emit(events.BalanceReset(self._balance))
            return self._balance


def build_engine(
    config: AppConfig = None,
    store: BalanceStore = None,
    ledger: LedgerService = None,
    emitter: events.EventEmitter = None,
) -> WagerEngine:
    """Wire an engine from configuration. Explicit collaborators take precedence."""
    config = config or settings
    if store is None:
        store = JsonFileBalanceStore(
            config.paths.get_balance_store_path(), key=config.client.store_key
        )
    if ledger is None:
        ledger = LedgerClient(config.client.ledger_url, timeout=config.client.timeout_seconds)
    return WagerEngine(
        store,
        ledger,
        emitter=emitter,
        multipliers=config.ledger.multipliers,
        default_balance=config.client.default_balance,
        quick_bet_fractions=config.client.quick_bet_fractions,
        timeout=config.client.timeout_seconds,
    )
