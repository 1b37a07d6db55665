"""
HTTP client for the authoritative Ledger Service.

Every transport problem (connect error, timeout, broken stream) is raised as
NetworkFailure; every answer that is not a well-formed 2xx body is raised as
ServiceError. Callers never see raw httpx or pydantic exceptions.
"""

from decimal import Decimal
from typing import List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from dicewager.core.exceptions import NetworkFailure, ServiceError
from dicewager.core.logger import get_logger
from dicewager.core.models import (
    IDEMPOTENCY_HEADER,
    BalanceResponse,
    RollRequest,
    Settlement,
    TransactionRecord,
    TransactionsResponse,
    VerifyBalanceRequest,
)

logger = get_logger("ledger_client")

M = TypeVar("M", bound=BaseModel)


class LedgerClient:
    """Async client for verify-balance, roll-dice and reset-balance."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def __aenter__(self) -> "LedgerClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        model: Type[M],
        json: dict = None,
        headers: dict = None,
        params: dict = None,
    ) -> M:
        try:
            response = await self._client.request(
                method, path, json=json, headers=headers, params=params
            )
        except httpx.TimeoutException as e:
            raise NetworkFailure(f"{path} timed out") from e
        except httpx.TransportError as e:
            raise NetworkFailure(f"{path} unreachable: {e}") from e

        if not response.is_success:
            raise ServiceError(
                f"{path} returned {response.status_code}: {_error_detail(response)}",
                status_code=response.status_code,
            )

        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            # ValueError covers a body that is not JSON at all
            raise ServiceError(
                f"{path} returned an unexpected body", status_code=response.status_code
            ) from e

    # ==================== Ledger operations ====================

    async def verify_balance(self, client_balance: Decimal) -> Decimal:
        body = VerifyBalanceRequest(current_balance=client_balance)
        result = await self._request(
            "POST",
            "/verify-balance",
            BalanceResponse,
            json=body.model_dump(by_alias=True, mode="json"),
        )
        return result.balance

    async def roll_dice(
        self, bet_amount: int, multiplier: int, idempotency_key: str = None
    ) -> Settlement:
        body = RollRequest(bet_amount=bet_amount, multiplier=multiplier)
        headers = {IDEMPOTENCY_HEADER: idempotency_key} if idempotency_key else None
        return await self._request(
            "POST",
            "/roll-dice",
            Settlement,
            json=body.model_dump(by_alias=True, mode="json"),
            headers=headers,
        )

    async def reset_balance(self) -> Decimal:
        result = await self._request("POST", "/reset-balance", BalanceResponse)
        return result.balance

    async def get_balance(self) -> Decimal:
        result = await self._request("GET", "/balance", BalanceResponse)
        return result.balance

    async def history(self, limit: int = 20) -> List[TransactionRecord]:
        result = await self._request(
            "GET", "/transactions", TransactionsResponse, params={"limit": limit}
        )
        return result.transactions


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and "detail" in body:
        return str(body["detail"])
    return str(body)[:200]
