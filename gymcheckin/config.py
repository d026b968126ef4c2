# gymcheckin/config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return str(raw).strip().lower() in {"1", "true", "yes"}


def _env_str(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return None
    return raw.strip() or None


def _env_float(name: str, default: float) -> float:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        print(f"[CONFIG] Ignoring invalid {name}={raw!r}, using {default}")
        return default


DEPLOYMENT_SERVER = "server"
DEPLOYMENT_LOCAL = "local"


@dataclass(frozen=True)
class Settings:
    """
    Process-wide configuration, read once at startup.

    `create_app()` builds every collaborator (database engine, repository,
    gateway, identity provider) from one of these and nothing reads the
    environment after that.
    """

    database_url: Optional[str] = None
    database_url_strict: bool = False
    sqlite_fallback_url: str = "sqlite:///./gymcheckin.dev.db"

    deployment_mode: str = DEPLOYMENT_SERVER
    local_store_path: Optional[str] = None

    skip_payment: bool = False
    line_pay_channel_id: Optional[str] = None
    line_pay_channel_secret: Optional[str] = None
    line_pay_sandbox: bool = False
    public_base_url: str = "http://localhost:8000"
    gateway_timeout_seconds: float = 10.0

    allow_development_bypass: bool = False
    identity_timeout_seconds: float = 5.0

    facility_timezone: Optional[str] = None

    @property
    def is_local(self) -> bool:
        return self.deployment_mode == DEPLOYMENT_LOCAL

    @property
    def payment_bypassed(self) -> bool:
        # Missing gateway credentials behave exactly like SKIP_PAYMENT=true.
        if self.is_local:
            return self.skip_payment
        return self.skip_payment or not self.line_pay_channel_id

    @classmethod
    def from_env(cls) -> "Settings":
        mode = (_env_str("DEPLOYMENT_MODE") or DEPLOYMENT_SERVER).lower()
        if mode not in {DEPLOYMENT_SERVER, DEPLOYMENT_LOCAL}:
            print(f"[CONFIG] Unknown DEPLOYMENT_MODE={mode!r}, using {DEPLOYMENT_SERVER!r}")
            mode = DEPLOYMENT_SERVER

        return cls(
            database_url=_env_str("DATABASE_URL"),
            database_url_strict=_env_flag("DATABASE_URL_STRICT"),
            sqlite_fallback_url=_env_str("SQLITE_FALLBACK_URL") or "sqlite:///./gymcheckin.dev.db",
            deployment_mode=mode,
            local_store_path=_env_str("LOCAL_STORE_PATH"),
            skip_payment=_env_flag("SKIP_PAYMENT"),
            line_pay_channel_id=_env_str("LINE_PAY_CHANNEL_ID"),
            line_pay_channel_secret=_env_str("LINE_PAY_CHANNEL_SECRET"),
            line_pay_sandbox=_env_flag("LINE_PAY_SANDBOX"),
            public_base_url=(_env_str("PUBLIC_BASE_URL") or "http://localhost:8000").rstrip("/"),
            gateway_timeout_seconds=_env_float("GATEWAY_TIMEOUT_SECONDS", 10.0),
            allow_development_bypass=_env_flag("ALLOW_DEV_BYPASS"),
            identity_timeout_seconds=_env_float("IDENTITY_TIMEOUT_SECONDS", 5.0),
            facility_timezone=_env_str("FACILITY_TIMEZONE"),
        )
