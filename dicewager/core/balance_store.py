"""
Client-side balance cache.

A BalanceStore is a dumb durable key-value surface: it remembers the last
balance the engine told it about and hands it back on the next run. It does
no validation; every trust decision lives in the WagerEngine.
"""

import os
from abc import ABC, abstractmethod
from decimal import Decimal
from pathlib import Path
from typing import Optional

import orjson

from dicewager.core.logger import get_logger
from dicewager.core.money import to_balance

logger = get_logger("balance_store")

DEFAULT_KEY = "diceGameBalance"


class BalanceStore(ABC):
    @abstractmethod
    def load(self) -> Optional[Decimal]:
        """Last persisted balance, or None on first run."""

    @abstractmethod
    def save(self, balance: Decimal) -> None:
        """Persist balance before returning."""


class MemoryBalanceStore(BalanceStore):
    """Process-local store. Nothing survives a restart."""

    def __init__(self, initial: Optional[Decimal] = None):
        self._value = None if initial is None else to_balance(initial)
        self.saves = 0

    def load(self) -> Optional[Decimal]:
        return self._value

    def save(self, balance: Decimal) -> None:
        self._value = to_balance(balance)
        self.saves += 1


class JsonFileBalanceStore(BalanceStore):
    """
    Stores the balance under one well-known key of a small JSON document.

    Other keys in the document are left alone so the file can be shared with
    other client preferences. Writes go to a sibling temp file which is
    fsynced and then atomically renamed over the target.
    """

    def __init__(self, path: Path, key: str = DEFAULT_KEY):
        self.path = Path(path)
        self.key = key

    def _read_document(self) -> dict:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return {}
        try:
            document = orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.warning(f"Balance cache at {self.path} is not valid JSON, ignoring it")
            return {}
        if not isinstance(document, dict):
            logger.warning(f"Balance cache at {self.path} is not an object, ignoring it")
            return {}
        return document

    def load(self) -> Optional[Decimal]:
        value = self._read_document().get(self.key)
        if value is None:
            return None
        try:
            return to_balance(value)
        except ValueError:
            logger.warning(f"Cached balance {value!r} is unreadable, treating as absent")
            return None

    def save(self, balance: Decimal) -> None:
        document = self._read_document()
        document[self.key] = str(to_balance(balance))

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "wb") as f:
            f.write(orjson.dumps(document, option=orjson.OPT_INDENT_2))
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, self.path)
