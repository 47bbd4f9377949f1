"""
Configuration - Runtime settings from the environment.

    RPSLS_TIMEOUT_SECONDS   Deadline for joining and for revealing (300)
    RPSLS_POLL_INTERVAL     Seconds between reconciliation cycles (10.0)
    RPSLS_LEDGER_TIMEOUT    Bound on a single ledger read (10.0)
    RPSLS_STORE_DIR         Directory for the JSON game store (~/.rpsls)
    RPSLS_STORAGE_KEY       Document name inside the store (rps_game_data)
    RPSLS_ENV               development | production
    ALLOWED_ORIGINS         Comma-separated CORS origins (*)

Unparseable numbers fall back to the default with a warning.
"""

from __future__ import annotations
import logging
import os
from dataclasses import dataclass, field
from typing import Mapping

from .engine_core.reducer import DEFAULT_TIMEOUT_SECONDS
from .store.game_store import DEFAULT_STORAGE_KEY
from .sync.poller import DEFAULT_LEDGER_TIMEOUT, DEFAULT_POLL_INTERVAL

logger = logging.getLogger(__name__)


@dataclass
class Settings:
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    poll_interval: float = DEFAULT_POLL_INTERVAL
    ledger_timeout: float = DEFAULT_LEDGER_TIMEOUT
    store_dir: str = "~/.rpsls"
    storage_key: str = DEFAULT_STORAGE_KEY
    environment: str = "development"
    allowed_origins: list[str] = field(default_factory=lambda: ["*"])

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        defaults = cls()

        origins = [o.strip() for o in env.get("ALLOWED_ORIGINS", "*").split(",") if o.strip()]

        return cls(
            timeout_seconds=_number(env, "RPSLS_TIMEOUT_SECONDS", defaults.timeout_seconds, int),
            poll_interval=_number(env, "RPSLS_POLL_INTERVAL", defaults.poll_interval, float),
            ledger_timeout=_number(env, "RPSLS_LEDGER_TIMEOUT", defaults.ledger_timeout, float),
            store_dir=env.get("RPSLS_STORE_DIR", defaults.store_dir),
            storage_key=env.get("RPSLS_STORAGE_KEY", defaults.storage_key),
            environment=env.get("RPSLS_ENV", defaults.environment),
            allowed_origins=origins or ["*"],
        )


def _number(env: Mapping[str, str], key: str, default, kind):
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        value = kind(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not a valid %s", key, raw, kind.__name__)
        return default
    if value <= 0:
        logger.warning("Ignoring %s=%r: must be positive", key, raw)
        return default
    return value
