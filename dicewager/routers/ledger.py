from fastapi import APIRouter, Depends, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from dicewager.config import settings
from dicewager.core.idempotency import idempotency_key
from dicewager.core.ledger import Ledger
from dicewager.core.models import (
    BalanceResponse,
    RollRequest,
    Settlement,
    TransactionsResponse,
    VerifyBalanceRequest,
)

limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit.enabled)

router = APIRouter()


# ==================== Helpers ====================

def get_ledger(request: Request) -> Ledger:
    return request.app.state.ledger


def get_money_rate_limit() -> str:
    """Limit for rolls and resets."""
    return settings.rate_limit.money_requests


def get_api_rate_limit() -> str:
    """Limit for verification and read endpoints."""
    return settings.rate_limit.api_requests


# ==================== Ledger Endpoints ====================

@router.get("/health")
async def health():
    return {"status": "ok"}


@router.post("/verify-balance", response_model=BalanceResponse)
@limiter.limit(get_api_rate_limit)
async def verify_balance(
    request: Request, data: VerifyBalanceRequest, ledger: Ledger = Depends(get_ledger)
):
    balance = ledger.verify_balance(data.current_balance)
    return BalanceResponse(balance=balance)


@router.post("/roll-dice", response_model=Settlement)
@limiter.limit(get_money_rate_limit)
async def roll_dice(
    request: Request,
    data: RollRequest,
    ledger: Ledger = Depends(get_ledger),
    key: str = Depends(idempotency_key),
):
    return ledger.roll_dice(data.bet_amount, data.multiplier, idempotency_key=key)


@router.post("/reset-balance", response_model=BalanceResponse)
@limiter.limit(get_money_rate_limit)
async def reset_balance(request: Request, ledger: Ledger = Depends(get_ledger)):
    return BalanceResponse(balance=ledger.reset_balance())


@router.get("/balance", response_model=BalanceResponse)
@limiter.limit(get_api_rate_limit)
async def get_balance(request: Request, ledger: Ledger = Depends(get_ledger)):
    return BalanceResponse(balance=ledger.get_balance())


@router.get("/transactions", response_model=TransactionsResponse)
@limiter.limit(get_api_rate_limit)
async def get_transactions(
    request: Request,
    limit: int = Query(20, ge=1, le=200),
    ledger: Ledger = Depends(get_ledger),
):
    return TransactionsResponse(transactions=ledger.history(limit=limit))
