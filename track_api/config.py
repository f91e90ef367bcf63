import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Locate .env in the project root
env_path = Path(__file__).resolve().parent.parent / '.env'
load_dotenv(dotenv_path=env_path)

DEFAULT_ALLOWED_ORIGINS = [
    "https://armor.shop",
    "https://staging.armor.shop",
    "http://localhost:3000",
]

ANALYTICS_MODES = ("sync", "background")
ANALYTICS_BACKENDS = ("supabase", "memory", "none")


def _as_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


def _as_list(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    carrier_auth_header: Optional[str] = None
    carrier_base_url: str = "https://track.wareiq.com"
    carrier_timeout: Optional[float] = None
    allowed_origins: list[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS))
    analytics_mode: str = "sync"
    analytics_backend: str = "none"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    mask_mobile_mismatch: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        supabase_url = os.environ.get("SUPABASE_URL")
        supabase_key = os.environ.get("SUPABASE_KEY")

        backend = (os.environ.get("ANALYTICS_BACKEND") or "").strip().lower()
        if not backend:
            backend = "supabase" if supabase_url and supabase_key else "none"
        if backend not in ANALYTICS_BACKENDS:
            raise ValueError(f"Unsupported ANALYTICS_BACKEND: {backend}")

        mode = (os.environ.get("ANALYTICS_MODE") or "sync").strip().lower()
        if mode not in ANALYTICS_MODES:
            raise ValueError(f"Unsupported ANALYTICS_MODE: {mode}")

        timeout = os.environ.get("WAREIQ_TIMEOUT")
        origins = _as_list(os.environ.get("ALLOWED_ORIGINS")) or list(DEFAULT_ALLOWED_ORIGINS)

        return cls(
            carrier_auth_header=os.environ.get("WAREIQ_AUTH_HEADER") or None,
            carrier_base_url=os.environ.get("WAREIQ_BASE_URL", "https://track.wareiq.com").rstrip("/"),
            carrier_timeout=float(timeout) if timeout else None,
            allowed_origins=origins,
            analytics_mode=mode,
            analytics_backend=backend,
            supabase_url=supabase_url,
            supabase_key=supabase_key,
            mask_mobile_mismatch=_as_bool(os.environ.get("MASK_MOBILE_MISMATCH")),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )


def get_settings() -> Settings:
    """
    Reads the environment on every call.
    A missing carrier credential is reported per request, not at startup.
    """
    return Settings.from_env()
