"""
ThemeSync Backend — Central Configuration

All environment variables and LLM settings live here.
Import `settings`, `LLM_CONFIG`, `log`, and `generate_error_code` from this module.
Do not read `os.environ` anywhere else.
"""

import uuid
from datetime import datetime, timezone

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All environment variables. Loaded from .env or the process environment."""

    # LLM Providers (both optional: a missing key is reported per request, not at startup)
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    llm_provider: str = "claude"      # "claude" | "openai" | "openai_sprint"

    # Storage
    storage_backend: str = "memory"   # "memory" | "supabase"
    supabase_url: str = ""
    supabase_service_key: str = ""

    # App
    environment: str = "development"  # "development" | "production"
    cors_origins: str = "http://localhost:5173"  # Comma-separated for multiple origins
    max_upload_bytes: int = 10 * 1024 * 1024
    default_project_name: str = "Research Analysis Project"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Shared instance: import this, never construct Settings again
settings = Settings()

DEFAULT_PROJECT_ID = 1


# ──────────────────────────────────────────────────────
# Logging Utilities
# ──────────────────────────────────────────────────────

def generate_error_code() -> str:
    """Generate a short, user-friendly error reference code.

    Format: 'TS-' followed by 6 uppercase hex characters.
    Example: 'TS-3F8A2C'

    The same code is logged on the backend AND returned in the error body,
    so a user can quote it and the team can grep logs for it.
    """
    return f"TS-{uuid.uuid4().hex[:6].upper()}"


def log(level: str, message: str, /, **context) -> None:
    """Structured print-based logger.

    Every log line follows the format:
        [ISO_TIMESTAMP] [LEVEL] message | key1=value1 key2=value2

    Args:
        level: One of "INFO", "WARN", "ERROR".
        message: Human-readable description of what happened.
        **context: Arbitrary key-value pairs. Include project_id / theme_id when available.

    Usage:
        log("INFO", "analysis started", project_id=1, transcript_type="testing_notes")
        log("ERROR", "llm call failed", provider="claude", error_code="TS-3F8A2C", error=str(e))
    """
    ts = datetime.now(timezone.utc).isoformat()
    ctx = " ".join(f"{k}={v}" for k, v in context.items())
    print(f"[{ts}] [{level}] {message} | {ctx}", flush=True)


# ──────────────────────────────────────────────────────
# LLM Configuration
# ──────────────────────────────────────────────────────

# One entry per service variant. A single attempt is made per call: no
# fallback chain, no retry, and no explicit timeout.
LLM_CONFIG = {
    "max_tokens": 4000,
    "providers": {
        # Cost-efficient smaller model for transcript analysis
        "claude": {
            "model": "anthropic/claude-3-haiku-20240307",
            "api_key_setting": "anthropic_api_key",
            "credential_name": "Anthropic API key",
            "temperature": None,
            "json_mode": False,
        },
        # Deterministic variant
        "openai": {
            "model": "openai/gpt-4o",
            "api_key_setting": "openai_api_key",
            "credential_name": "OpenAI API key",
            "temperature": 0.3,
            "json_mode": True,
        },
        # Creative variant used by the quick sprint synthesis flow
        "openai_sprint": {
            "model": "openai/gpt-4o",
            "api_key_setting": "openai_api_key",
            "credential_name": "OpenAI API key",
            "temperature": 0.7,
            "json_mode": True,
        },
    },
}
