import os
from functools import lru_cache
from pathlib import Path
from typing import Optional


ROLLUP_STRATEGIES = ("recompute", "incremental")


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        csrf_secret: str,
        rollup_strategy: str,
        rollup_window_months: int,
        saga_compensate: bool,
        pin_validator_url: str,
        pin_timeout_secs: float,
        due_soon_days: int,
        log_level: str,
        owner_id: Optional[int],
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.csrf_secret = csrf_secret
        self.rollup_strategy = rollup_strategy
        self.rollup_window_months = rollup_window_months
        self.saga_compensate = saga_compensate
        self.pin_validator_url = pin_validator_url
        self.pin_timeout_secs = pin_timeout_secs
        self.due_soon_days = due_soon_days
        self.log_level = log_level
        self.owner_id = owner_id


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCES_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "finances.db"
    database_url = os.getenv("FINANCES_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINANCES_TIMEZONE", "America/Sao_Paulo")
    csrf_secret = os.getenv(
        "FINANCES_CSRF_SECRET",
        "5d1f0c4a9e7b2f68c3a1d0e9b8f7a6c5d4e3f2a1b0c9d8e7f6a5b4c3d2e1f0a9",
    )
    rollup_strategy = os.getenv("FINANCES_ROLLUP_STRATEGY", "recompute").lower()
    if rollup_strategy not in ROLLUP_STRATEGIES:
        raise ValueError(f"Unsupported rollup strategy: {rollup_strategy}")
    rollup_window_months = int(os.getenv("FINANCES_ROLLUP_WINDOW_MONTHS", "12"))
    saga_compensate = _env_bool("FINANCES_SAGA_COMPENSATE", False)
    pin_validator_url = os.getenv("FINANCES_PIN_VALIDATOR_URL", "")
    pin_timeout_secs = float(os.getenv("FINANCES_PIN_TIMEOUT_SECS", "5"))
    due_soon_days = int(os.getenv("FINANCES_DUE_SOON_DAYS", "3"))
    log_level = os.getenv("FINANCES_LOG_LEVEL", "INFO").upper()
    owner_raw = os.getenv("FINANCES_OWNER_ID", "1").strip()
    owner_id = int(owner_raw) if owner_raw else None
    return Settings(
        database_url=database_url,
        timezone=timezone,
        csrf_secret=csrf_secret,
        rollup_strategy=rollup_strategy,
        rollup_window_months=rollup_window_months,
        saga_compensate=saga_compensate,
        pin_validator_url=pin_validator_url,
        pin_timeout_secs=pin_timeout_secs,
        due_soon_days=due_soon_days,
        log_level=log_level,
        owner_id=owner_id,
    )
