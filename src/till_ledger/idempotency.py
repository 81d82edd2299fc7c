from __future__ import annotations

import secrets
import string
import uuid
from dataclasses import dataclass
from datetime import datetime

_BASE36 = string.digits + string.ascii_lowercase

SALE_RECEIPT_PREFIX = "RCP"
REFUND_RECEIPT_PREFIX = "REF"


@dataclass(frozen=True)
class IdempotencyKeys:
    transaction_id: str
    idempotency_key: str


def new_idempotency_keys() -> IdempotencyKeys:
    return IdempotencyKeys(transaction_id=str(uuid.uuid4()), idempotency_key=str(uuid.uuid4()))


def resolve_idempotency_keys(transaction_id: str | None = None, idempotency_key: str | None = None) -> IdempotencyKeys:
    if transaction_id and idempotency_key:
        return IdempotencyKeys(transaction_id=transaction_id, idempotency_key=idempotency_key)
    generated = new_idempotency_keys()
    return IdempotencyKeys(
        transaction_id=transaction_id or generated.transaction_id,
        idempotency_key=idempotency_key or generated.idempotency_key,
    )


def idempotency_headers(keys: IdempotencyKeys) -> dict[str, str]:
    return {"Idempotency-Key": keys.idempotency_key}


def new_receipt_number(prefix: str, now: datetime) -> str:
    """``RCP-<epoch ms>-<5 base36 chars>``; assigned once per sale and reused for every print."""
    millis = int(now.timestamp() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(5))
    return f"{prefix}-{millis}-{suffix}"
