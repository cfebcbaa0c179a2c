from __future__ import annotations

import os
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field

from shared.db import get_conn_str


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


class IdentitySettings(BaseModel):
    """Runtime configuration for the identity reconciliation service."""

    database_url: str = Field(default_factory=get_conn_str)
    store_backend: Literal["postgres", "memory"] = Field(
        default_factory=lambda: os.getenv("CONTACT_STORE", "postgres").lower()
    )
    lock_timeout_ms: int = Field(default_factory=lambda: int(os.getenv("DB_LOCK_TIMEOUT_MS", "5000")))
    statement_timeout_ms: int = Field(default_factory=lambda: int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "15000")))
    auto_create_schema: bool = Field(default_factory=lambda: _env_flag("AUTO_CREATE_SCHEMA"))
    default_region: str | None = Field(default_factory=lambda: os.getenv("PHONE_DEFAULT_REGION") or None)
    service_name: str = Field(default_factory=lambda: os.getenv("SERVICE_NAME", "identity-service"))
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))


@lru_cache(maxsize=1)
def get_settings() -> IdentitySettings:
    return IdentitySettings()


__all__ = ["IdentitySettings", "get_settings"]
