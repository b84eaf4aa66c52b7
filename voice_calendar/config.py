"""Centralized configuration for the voice calendar assistant.

Secret resolution order (per variable):
  1. Environment variable / ``.env`` file  (local dev)
  2. AWS SSM Parameter Store SecureString  (when ``AWS_EXECUTION_ENV`` is set)

The SSM paths follow the convention ``/voice-calendar/<VARIABLE_NAME>``.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ── Feature flag: running on AWS? ────────────────────────────────────
_ON_AWS = bool(os.getenv("AWS_EXECUTION_ENV"))


# ── Secret resolution ────────────────────────────────────────────────

def _get_ssm_parameter(name: str) -> str | None:
    """Fetch a SecureString from SSM Parameter Store.

    Returns ``None`` if the parameter does not exist or boto3 is
    unavailable.  Errors are logged but never raised so that local-dev
    fallback still works.
    """
    try:
        import boto3  # noqa: PLC0415 - lazy import to avoid boto3 dep in tests

        ssm = boto3.client("ssm")
        resp = ssm.get_parameter(Name=f"/voice-calendar/{name}", WithDecryption=True)
        return resp["Parameter"]["Value"]
    except Exception:
        logger.debug("SSM lookup for %s failed (expected locally)", name)
        return None


def _require_env(name: str) -> str:
    """Return a config value from env-var or SSM, or raise a clear error."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    if _ON_AWS:
        ssm_value = _get_ssm_parameter(name)
        if ssm_value:
            return ssm_value

    raise OSError(
        f"Missing required configuration: {name}. "
        f"Set it in .env (local) or SSM Parameter Store /voice-calendar/{name} (AWS)."
    )


# ── Remote assistant ─────────────────────────────────────────────────
OPENAI_API_KEY: str = _require_env("OPENAI_API_KEY")

# The assistant is pinned to this low-cost model; a stored or remote
# assistant on any other model is deleted and recreated.
ASSISTANT_MODEL: str = os.getenv("ASSISTANT_MODEL", "gpt-4o-mini")
ASSISTANT_NAME: str = os.getenv("ASSISTANT_NAME", "Voice Calendar Assistant")

# ── Run orchestration ────────────────────────────────────────────────
RUN_POLL_INTERVAL_SECONDS: float = float(os.getenv("RUN_POLL_INTERVAL_SECONDS", "1.0"))
RUN_INITIAL_TIMEOUT_SECONDS: float = float(os.getenv("RUN_INITIAL_TIMEOUT_SECONDS", "30"))
# Tool execution (bulk cancellation in particular) eats into the budget
# after a tool-output submission, so this one is longer.
RUN_TOOL_TIMEOUT_SECONDS: float = float(os.getenv("RUN_TOOL_TIMEOUT_SECONDS", "60"))
RUN_CANCEL_GRACE_SECONDS: float = float(os.getenv("RUN_CANCEL_GRACE_SECONDS", "2.0"))
MAX_TOOL_ROUNDS: int = int(os.getenv("MAX_TOOL_ROUNDS", "5"))

# ── Google Calendar ──────────────────────────────────────────────────
GOOGLE_CALENDAR_BASE_URL: str = os.getenv(
    "GOOGLE_CALENDAR_BASE_URL", "https://www.googleapis.com/calendar/v3",
)
GOOGLE_CALENDAR_ID: str = os.getenv("GOOGLE_CALENDAR_ID", "primary")
CALENDAR_DELETE_BATCH_SIZE: int = int(os.getenv("CALENDAR_DELETE_BATCH_SIZE", "10"))

# ── Conversation state ───────────────────────────────────────────────
PENDING_CANCELLATION_TTL_MINUTES: int = int(os.getenv("PENDING_CANCELLATION_TTL_MINUTES", "15"))

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
CORS_ORIGINS: list[str] = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
).split(",")
