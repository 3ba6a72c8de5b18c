"""Environment-backed configuration."""

import os
from typing import Optional

DEFAULT_PLATFORM_FEE_PERCENT = 5
DEFAULT_WEBSITE_URL = "http://localhost:3000"
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./ledger.db"


def get_database_url() -> str:
    """DATABASE_URL, with plain postgres URLs pointed at the asyncpg driver."""
    db_url = os.getenv("DATABASE_URL")
    if not db_url:
        return DEFAULT_DATABASE_URL
    for prefix in ("postgresql://", "postgres://"):
        if db_url.startswith(prefix):
            return "postgresql+asyncpg://" + db_url[len(prefix):]
    return db_url


def get_platform_fee_percent() -> float:
    """Percentage of every charge kept by the platform as an application fee."""
    value = os.getenv("PLATFORM_FEE_PERCENT")
    if not value:
        return DEFAULT_PLATFORM_FEE_PERCENT
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"PLATFORM_FEE_PERCENT must be numeric, got {value!r}")


def get_website_url() -> str:
    """Public website used to build the from/to links sent as gateway metadata."""
    return os.getenv("WEBSITE_URL", DEFAULT_WEBSITE_URL).rstrip("/")


def get_stripe_api_key() -> Optional[str]:
    return os.getenv("STRIPE_API_KEY") or None


def collective_url(slug: str) -> str:
    return f"{get_website_url()}/{slug}"


def get_api_key() -> Optional[str]:
    """Bearer key expected by the HTTP API."""
    return os.getenv("API_KEY") or None
