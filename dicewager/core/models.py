"""
Wire models shared by the Ledger Service and its client.
Field names are snake_case in Python and camelCase on the wire.
"""

from decimal import Decimal
from typing import Annotated, List, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, PlainSerializer

from dicewager.core.money import to_balance

IDEMPOTENCY_HEADER = "Idempotency-Key"

# Two-place Decimal in Python, plain JSON number on the wire
Money = Annotated[
    Decimal,
    BeforeValidator(to_balance),
    PlainSerializer(float, return_type=float, when_used="json"),
]


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


# ==================== Requests ====================

class VerifyBalanceRequest(WireModel):
    current_balance: Money = Field(alias="currentBalance", ge=0)


class RollRequest(WireModel):
    bet_amount: int = Field(alias="betAmount", gt=0)
    multiplier: int


# ==================== Responses ====================

class BalanceResponse(WireModel):
    balance: Money = Field(ge=0)


class Settlement(WireModel):
    """Authoritative outcome of one bet."""

    roll: int = Field(ge=1, le=6)
    is_win: bool = Field(alias="isWin")
    new_balance: Money = Field(alias="newBalance", ge=0)
    potential_winnings: Money = Field(alias="potentialWinnings", ge=0)


class TransactionRecord(WireModel):
    id: int
    type: str
    amount: Money
    balance_after: Money = Field(alias="balanceAfter")
    bet_amount: Optional[int] = Field(default=None, alias="betAmount")
    multiplier: Optional[int] = None
    roll: Optional[int] = None
    created_at: str = Field(alias="createdAt")


class TransactionsResponse(WireModel):
    transactions: List[TransactionRecord] = Field(default_factory=list)
