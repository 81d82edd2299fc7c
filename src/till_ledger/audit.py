from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

audit_logger = logging.getLogger("till_ledger.audit")


def log_ledger_action(
    action: str,
    *,
    outcome: str,
    shift_id: str | None = None,
    cashier_id: str | None = None,
    needs_manager_review: bool = False,
    trace_id: str | None = None,
    logger: logging.Logger | None = None,
    **fields: Any,
) -> dict[str, Any]:
    """Emit one JSON audit line for a ledger mutation and return the record."""
    record: dict[str, Any] = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "level": "WARNING" if needs_manager_review else "INFO",
        "action": action,
        "outcome": outcome,
        "shift_id": shift_id,
        "cashier_id": cashier_id,
        "needs_manager_review": needs_manager_review,
        "trace_id": trace_id,
        **fields,
    }
    target = logger or audit_logger
    level = logging.WARNING if needs_manager_review else logging.INFO
    target.log(level, json.dumps(record, default=str, sort_keys=True))
    return record
