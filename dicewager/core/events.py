"""
Outcome events surfaced to the presentation layer.
Delivery is fire-and-forget: the engine never waits on or reads back from a subscriber.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, List, Union

from dicewager.core.logger import get_logger

logger = get_logger("events")


@dataclass(frozen=True)
class BetRejected:
    reason: str


@dataclass(frozen=True)
class RollResolved:
    roll: int
    is_win: bool
    amount_delta: Decimal  # +winnings on a win, -(amount * multiplier) on a loss


@dataclass(frozen=True)
class NetworkFailure:
    context: str
    error: str = ""


@dataclass(frozen=True)
class BalanceReset:
    new_balance: Decimal


OutcomeEvent = Union[BetRejected, RollResolved, NetworkFailure, BalanceReset]
Listener = Callable[[OutcomeEvent], None]


class EventEmitter:
    """In-process fan-out of outcome events to registered listeners."""

    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it again."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: OutcomeEvent) -> None:
        for listener in tuple(self._listeners):
            try:
                listener(event)
            except Exception:
                # A broken toast must never undo or block a settlement
                logger.exception(f"Outcome listener failed on {type(event).__name__}")


class EventRecorder:
    """Listener that keeps every event it sees, in order."""

    def __init__(self):
        self.events: List[OutcomeEvent] = []

    def __call__(self, event: OutcomeEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type) -> list:
        return [e for e in self.events if isinstance(e, event_type)]

    def clear(self) -> None:
        self.events.clear()
