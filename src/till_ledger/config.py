from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import InvalidOperation
from typing import Iterable

from dotenv import load_dotenv

from .money import to_minor


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class ClientConfig:
    env_name: str
    api_base_url: str
    connect_timeout_seconds: float = 5.0
    read_timeout_seconds: float = 15.0
    retries: int = 3
    retry_backoff_seconds: float = 0.3
    max_connections: int = 20
    verify_ssl: bool = True
    device_id: str | None = None

    @property
    def normalized_env(self) -> str:
        return self.env_name.lower().strip()


@dataclass(frozen=True)
class LedgerPolicy:
    """Timing and cash thresholds the ledger enforces. Money fields are pence."""

    early_start_minutes: int = 15
    late_start_minutes: int = 30
    max_minutes_past_schedule_end: int = 60
    overtime_warning_minutes: int = 15
    overtime_auto_end_minutes: int = 120
    unscheduled_auto_end_hours: int = 12
    refresh_interval_seconds: int = 30
    overtime_interval_seconds: int = 60
    time_change_threshold_seconds: float = 5.0
    max_starting_cash: int = 1_000_000
    starting_cash_warning: int = 500_000
    void_window_minutes: int = 30
    card_settlement_minutes: int = 60
    refund_window_days: int = 30
    receipt_print_attempts: int = 3
    receipt_retry_backoff_seconds: float = 0.5
    recent_transactions_limit: int = 50
    currency: str = "GBP"
    currency_symbol: str = "£"


def _require(values: dict[str, str | None], required: Iterable[str]) -> None:
    missing = [key for key in required if not values.get(key)]
    if missing:
        raise ConfigError(f"Missing required config values: {', '.join(missing)}")


def _coerce_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _read_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {name}: expected a number, got {raw!r}") from exc


def _read_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {name}: expected an integer, got {raw!r}") from exc


def _read_money(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return to_minor(raw.strip())
    except (InvalidOperation, ValueError) as exc:
        raise ConfigError(f"Invalid {name}: expected an amount, got {raw!r}") from exc


def _validate(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigError(message)


def load_config(env_file: str | None = None) -> ClientConfig:
    """Load API connection settings from the environment with optional .env override."""
    load_dotenv(env_file)

    env_name = (os.getenv("TILL_ENV") or "dev").strip()
    env_key = env_name.upper()

    api_base_url = (
        (os.getenv(f"TILL_API_BASE_URL_{env_key}") or "").strip()
        or (os.getenv("TILL_API_BASE_URL") or "").strip()
    )

    timeout_seconds = _read_float("TILL_TIMEOUT_SECONDS", "10")
    _validate(timeout_seconds > 0, f"Invalid TILL_TIMEOUT_SECONDS: expected > 0, got {timeout_seconds}")

    connect_timeout_seconds = _read_float("TILL_CONNECT_TIMEOUT_SECONDS", str(min(timeout_seconds, 5.0)))
    _validate(
        connect_timeout_seconds > 0,
        f"Invalid TILL_CONNECT_TIMEOUT_SECONDS: expected > 0, got {connect_timeout_seconds}",
    )

    read_timeout_seconds = _read_float(
        "TILL_READ_TIMEOUT_SECONDS",
        str(max(timeout_seconds, connect_timeout_seconds)),
    )
    _validate(
        read_timeout_seconds > 0,
        f"Invalid TILL_READ_TIMEOUT_SECONDS: expected > 0, got {read_timeout_seconds}",
    )

    retries = _read_int("TILL_RETRIES", "3")
    _validate(retries >= 0, f"Invalid TILL_RETRIES: expected >= 0, got {retries}")

    retry_backoff_seconds = _read_float("TILL_RETRY_BACKOFF_SECONDS", "0.3")
    _validate(
        retry_backoff_seconds >= 0,
        f"Invalid TILL_RETRY_BACKOFF_SECONDS: expected >= 0, got {retry_backoff_seconds}",
    )

    max_connections = _read_int("TILL_MAX_CONNECTIONS", "20")
    _validate(max_connections >= 1, f"Invalid TILL_MAX_CONNECTIONS: expected >= 1, got {max_connections}")

    verify_ssl = _coerce_bool(os.getenv("TILL_VERIFY_SSL"), True)
    device_id = (os.getenv("TILL_DEVICE_ID") or "").strip() or None

    _require({"TILL_API_BASE_URL": api_base_url}, ["TILL_API_BASE_URL"])

    return ClientConfig(
        env_name=env_name,
        api_base_url=api_base_url.rstrip("/"),
        connect_timeout_seconds=connect_timeout_seconds,
        read_timeout_seconds=read_timeout_seconds,
        retries=retries,
        retry_backoff_seconds=retry_backoff_seconds,
        max_connections=max_connections,
        verify_ssl=verify_ssl,
        device_id=device_id,
    )


def load_policy(env_file: str | None = None) -> LedgerPolicy:
    """Load ledger thresholds; every value falls back to the store defaults."""
    load_dotenv(env_file)
    defaults = LedgerPolicy()

    early = _read_int("TILL_EARLY_START_MINUTES", str(defaults.early_start_minutes))
    late = _read_int("TILL_LATE_START_MINUTES", str(defaults.late_start_minutes))
    _validate(early >= 0, f"Invalid TILL_EARLY_START_MINUTES: expected >= 0, got {early}")
    _validate(late >= 0, f"Invalid TILL_LATE_START_MINUTES: expected >= 0, got {late}")

    warning = _read_int("TILL_OVERTIME_WARNING_MINUTES", str(defaults.overtime_warning_minutes))
    auto_end = _read_int("TILL_OVERTIME_AUTO_END_MINUTES", str(defaults.overtime_auto_end_minutes))
    _validate(
        0 <= warning < auto_end,
        (
            "Invalid overtime thresholds: TILL_OVERTIME_WARNING_MINUTES must be >= 0 and below "
            f"TILL_OVERTIME_AUTO_END_MINUTES, got {warning} and {auto_end}"
        ),
    )

    refresh = _read_int("TILL_REFRESH_INTERVAL_SECONDS", str(defaults.refresh_interval_seconds))
    overtime_interval = _read_int("TILL_OVERTIME_INTERVAL_SECONDS", str(defaults.overtime_interval_seconds))
    _validate(refresh >= 1, f"Invalid TILL_REFRESH_INTERVAL_SECONDS: expected >= 1, got {refresh}")
    _validate(
        overtime_interval >= 1,
        f"Invalid TILL_OVERTIME_INTERVAL_SECONDS: expected >= 1, got {overtime_interval}",
    )

    max_starting_cash = _read_money("TILL_MAX_STARTING_CASH", "10000.00")
    starting_cash_warning = _read_money("TILL_STARTING_CASH_WARNING", "5000.00")
    _validate(
        0 <= starting_cash_warning <= max_starting_cash,
        "Invalid TILL_STARTING_CASH_WARNING: expected between 0 and TILL_MAX_STARTING_CASH",
    )

    attempts = _read_int("TILL_RECEIPT_PRINT_ATTEMPTS", str(defaults.receipt_print_attempts))
    _validate(attempts >= 1, f"Invalid TILL_RECEIPT_PRINT_ATTEMPTS: expected >= 1, got {attempts}")

    return LedgerPolicy(
        early_start_minutes=early,
        late_start_minutes=late,
        max_minutes_past_schedule_end=_read_int(
            "TILL_MAX_MINUTES_PAST_SCHEDULE_END", str(defaults.max_minutes_past_schedule_end)
        ),
        overtime_warning_minutes=warning,
        overtime_auto_end_minutes=auto_end,
        unscheduled_auto_end_hours=_read_int(
            "TILL_UNSCHEDULED_AUTO_END_HOURS", str(defaults.unscheduled_auto_end_hours)
        ),
        refresh_interval_seconds=refresh,
        overtime_interval_seconds=overtime_interval,
        time_change_threshold_seconds=_read_float(
            "TILL_TIME_CHANGE_THRESHOLD_SECONDS", str(defaults.time_change_threshold_seconds)
        ),
        max_starting_cash=max_starting_cash,
        starting_cash_warning=starting_cash_warning,
        void_window_minutes=_read_int("TILL_VOID_WINDOW_MINUTES", str(defaults.void_window_minutes)),
        card_settlement_minutes=_read_int("TILL_CARD_SETTLEMENT_MINUTES", str(defaults.card_settlement_minutes)),
        refund_window_days=_read_int("TILL_REFUND_WINDOW_DAYS", str(defaults.refund_window_days)),
        receipt_print_attempts=attempts,
        receipt_retry_backoff_seconds=_read_float(
            "TILL_RECEIPT_RETRY_BACKOFF_SECONDS", str(defaults.receipt_retry_backoff_seconds)
        ),
        recent_transactions_limit=_read_int(
            "TILL_RECENT_TRANSACTIONS_LIMIT", str(defaults.recent_transactions_limit)
        ),
        currency=(os.getenv("TILL_CURRENCY") or defaults.currency).strip().upper(),
        currency_symbol=os.getenv("TILL_CURRENCY_SYMBOL") or defaults.currency_symbol,
    )
