"""Application configuration.

Environment variables override all defaults. A `.env` file next to the
backend is loaded for local development.
"""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

# Load .env for local development; real environment variables win
_BACKEND_DIR = Path(__file__).resolve().parents[2]
load_dotenv(dotenv_path=_BACKEND_DIR / ".env", override=False)


def _int_env(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name, str(default))
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    # Inventory / order store
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./pharmacy.db")

    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    DEBUG: bool = ENVIRONMENT == "development"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # CORS (specific origins only, no wildcards)
    CORS_ORIGINS: List[str] = [
        o.strip()
        for o in os.getenv(
            "CORS_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if o.strip()
    ]

    # Run ledger: most recent N RunRecords, oldest evicted first
    RUN_HISTORY_LIMIT: int = _int_env("RUN_HISTORY_LIMIT", 200, minimum=1)

    # Conversations kept in memory; idle ones are dropped first when full
    CONVERSATION_LIMIT: int = _int_env("CONVERSATION_LIMIT", 1000, minimum=1)

    # Idle checkout expiry. 0 = sessions never expire.
    CHECKOUT_SESSION_TTL_SECONDS: int = _int_env("CHECKOUT_SESSION_TTL_SECONDS", 0)

    # Catalog snapshot is refetched when older than this
    CATALOG_MAX_AGE_SECONDS: int = _int_env("CATALOG_MAX_AGE_SECONDS", 60)

    # Policy gate: "local" (authoritative rules) or "remote" (policy service)
    DECISION_ENGINE: str = os.getenv("DECISION_ENGINE", "local").lower()
    REMOTE_POLICY_URL: str = os.getenv("REMOTE_POLICY_URL", "")
    REMOTE_POLICY_FALLBACK: bool = _bool_env("REMOTE_POLICY_FALLBACK", True)

    # Speech-to-text: "http" gateway or "groq" (Whisper)
    STT_PROVIDER: str = os.getenv("STT_PROVIDER", "http").lower()
    STT_API_URL: str = os.getenv(
        "STT_API_URL",
        "https://ibxdsy0e40.execute-api.ap-south-1.amazonaws.com/dev/audiototranscript-api",
    )

    # Groq API Key (Must be set via .env, never in code)
    GROQ_API_KEY: str = os.getenv("GROQ_API_KEY", "")
    GROQ_STT_MODEL: str = os.getenv("GROQ_STT_MODEL", "whisper-large-v3")

    # Invoice dispatch endpoint. Empty = invoices are prepared but not sent.
    INVOICE_EMAIL_URL: str = os.getenv("INVOICE_EMAIL_URL", "")

    # Upper bound for every outbound call (catalog, policy, STT, invoice)
    EXTERNAL_TIMEOUT_SECONDS: int = _int_env("EXTERNAL_TIMEOUT_SECONDS", 10)


def validate_settings(cfg) -> None:
    """Reject combinations that would only fail on the first request."""
    if cfg.DECISION_ENGINE not in ("local", "remote"):
        raise ValueError(f"DECISION_ENGINE must be 'local' or 'remote', got {cfg.DECISION_ENGINE!r}")
    if cfg.DECISION_ENGINE == "remote" and not cfg.REMOTE_POLICY_URL:
        raise ValueError("DECISION_ENGINE=remote requires REMOTE_POLICY_URL")
    if cfg.STT_PROVIDER not in ("http", "groq"):
        raise ValueError(f"STT_PROVIDER must be 'http' or 'groq', got {cfg.STT_PROVIDER!r}")
    if cfg.RUN_HISTORY_LIMIT < 1:
        raise ValueError(f"RUN_HISTORY_LIMIT must be >= 1, got {cfg.RUN_HISTORY_LIMIT}")
    if cfg.CONVERSATION_LIMIT < 1:
        raise ValueError(f"CONVERSATION_LIMIT must be >= 1, got {cfg.CONVERSATION_LIMIT}")


settings = Settings()
validate_settings(settings)
