"""Runtime settings, read from the environment with command-line overrides."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from typing import Mapping

from pipeline import DEFAULT_BUDGET

DEFAULT_DB_URL = "sqlite:///budget.db"
LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppConfig:
    database_url: str = DEFAULT_DB_URL
    budget: float = DEFAULT_BUDGET
    secret_key: str = "dev-key-change-me"
    host: str = "127.0.0.1"
    port: int | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "AppConfig":
        env = os.environ if environ is None else environ
        return cls(
            database_url=env.get("BUDGET_DATABASE_URL") or DEFAULT_DB_URL,
            budget=_env_float(env, "BUDGET_TOTAL", DEFAULT_BUDGET),
            secret_key=env.get("FLASK_SECRET_KEY", "dev-key-change-me"),
            host=env.get("HOST", "127.0.0.1"),
            port=_env_port(env),
        )

    def with_overrides(self, **overrides) -> "AppConfig":
        """Apply command-line values; ``None`` means "not given"."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        LOGGER.warning("Ignoring %s=%r; expected a number", key, raw)
        return default


def _env_port(env: Mapping[str, str]) -> int | None:
    raw = env.get("PORT")
    if not raw:
        return None
    try:
        port = int(raw)
    except ValueError:
        return None
    if 0 <= port <= 65535:
        return port
    return None
