"""
Idempotency-Key handling for money-moving requests.
"""

import re
from typing import Optional

from fastapi import HTTPException, Request

from dicewager.core.models import IDEMPOTENCY_HEADER

_KEY_PATTERN = re.compile(r"[A-Za-z0-9_\-]{8,128}")


def idempotency_key(request: Request) -> Optional[str]:
    """
    FastAPI dependency returning the request's Idempotency-Key, if any.

    The key itself is recorded by the ledger inside the settlement
    transaction, so a retried request gets the original settlement back.
    A missing header is allowed; the request is then simply not replay-safe.

    Raises:
        HTTPException(400): If the header is present but malformed.
    """
    key = request.headers.get(IDEMPOTENCY_HEADER)
    if key is None:
        return None
    if not _KEY_PATTERN.fullmatch(key):
        raise HTTPException(
            status_code=400,
            detail="Idempotency-Key must be 8-128 characters of letters, digits, '-' or '_'",
        )
    return key
