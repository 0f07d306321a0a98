"""
ThemeSync Backend — LLM Interactions

Model calls via litellm (one attempt, no fallback, no retry) and the response
repair parser that recovers a themes JSON object from free-text output.
"""

import json
import re
import time

import litellm
from pydantic import ValidationError

from themesync.config import LLM_CONFIG, generate_error_code, log, settings
from themesync.errors import ConfigurationError, ExtractionError
from themesync.models import ExtractedTheme, ParsedThemes

litellm.suppress_debug_info = True
litellm.drop_params = True  # Prevent unsupported-param errors across providers

LOG_PREVIEW_CHARS = 500


# ─────────────────────────────────────────────────────────────────────────────
# Provider resolution
# ─────────────────────────────────────────────────────────────────────────────


def get_provider_config(provider: str | None = None) -> dict:
    """Return the LLM_CONFIG entry for `provider` (default: settings.llm_provider)."""
    name = provider or settings.llm_provider
    providers = LLM_CONFIG["providers"]
    if name not in providers:
        raise ConfigurationError(
            "AI analysis not available",
            f"Unknown LLM provider '{name}'. Use one of: {', '.join(providers)}",
        )
    return {"name": name, **providers[name]}


def require_api_key(provider: str | None = None) -> str:
    """
    Return the credential for a provider.

    Raises:
        ConfigurationError: If the key is not configured.
    """
    config = get_provider_config(provider)
    api_key = getattr(settings, config["api_key_setting"], "")
    if not api_key:
        raise ConfigurationError(
            "AI analysis not available",
            f"{config['credential_name']} not configured",
        )
    return api_key


# ─────────────────────────────────────────────────────────────────────────────
# Core call
# ─────────────────────────────────────────────────────────────────────────────


async def call_llm(messages: list[dict], provider: str | None = None, **context) -> str:
    """
    Call the configured model once and return its text content.

    Args:
        messages: Chat messages (system + user).
        provider: Provider variant key from LLM_CONFIG; defaults to settings.llm_provider.
        **context: Extra key-value pairs for log correlation.

    Returns:
        Raw response content string.

    Raises:
        ConfigurationError: If the provider's credential is missing.
        ExtractionError: If the call fails or returns no text. Carries the upstream message.
    """
    config = get_provider_config(provider)
    api_key = require_api_key(config["name"])

    completion_kwargs = {
        "model": config["model"],
        "messages": messages,
        "max_tokens": LLM_CONFIG["max_tokens"],
        "api_key": api_key,
    }
    if config["temperature"] is not None:
        completion_kwargs["temperature"] = config["temperature"]
    if config["json_mode"]:
        completion_kwargs["response_format"] = {"type": "json_object"}

    log("INFO", "llm call started", provider=config["name"], model=config["model"], **context)
    start = time.perf_counter()

    try:
        response = await litellm.acompletion(**completion_kwargs)
    except Exception as e:
        code = generate_error_code()
        log("ERROR", "llm call failed", provider=config["name"], error=str(e), error_code=code, **context)
        raise ExtractionError("AI analysis failed", str(e)) from e

    duration_ms = int((time.perf_counter() - start) * 1000)
    content = ""
    if response.choices:
        content = response.choices[0].message.content or ""

    tokens_used = None
    if hasattr(response, "usage") and response.usage:
        tokens_used = getattr(response.usage, "total_tokens", None)

    if not content:
        code = generate_error_code()
        log("ERROR", "llm returned empty content", provider=config["name"], error_code=code, **context)
        raise ExtractionError("AI analysis failed", "No text content received from the model")

    log(
        "INFO",
        "llm call succeeded",
        provider=config["name"],
        duration_ms=duration_ms,
        tokens_used=tokens_used,
        **context,
    )
    return content


# ─────────────────────────────────────────────────────────────────────────────
# Response repair
# ─────────────────────────────────────────────────────────────────────────────

_FENCE_RE = re.compile(r"```(?:json)?[ \t]*\n?(.*?)\n?```", re.DOTALL | re.IGNORECASE)
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_BARE_KEY_RE = re.compile(r"([{\[,]\s*)([A-Za-z_]\w*)\s*:")
_SINGLE_QUOTED_VALUE_RE = re.compile(r":\s*'([^']*)'")
_BLANK_LINES_RE = re.compile(r"\n\s*\n")


def extract_fenced_block(text: str) -> str:
    """Return the content of the first ``` / ```json block, or the text unchanged."""
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1)
    return text


def remove_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA_RE.sub(r"\1", text)


def quote_bare_keys(text: str) -> str:
    """`{title: "x"}` -> `{"title": "x"}`. Keys already in quotes are untouched."""
    return _BARE_KEY_RE.sub(r'\1"\2":', text)


def normalize_single_quotes(text: str) -> str:
    """`: 'value'` -> `: "value"`."""
    return _SINGLE_QUOTED_VALUE_RE.sub(r': "\1"', text)


def collapse_blank_lines(text: str) -> str:
    return _BLANK_LINES_RE.sub("\n", text)


def repair_json(text: str) -> str:
    """Apply every repair step in order. Best effort: valid JSON can be mangled."""
    repaired = extract_fenced_block(text)
    repaired = repaired.strip()
    repaired = remove_trailing_commas(repaired)
    repaired = quote_bare_keys(repaired)
    repaired = normalize_single_quotes(repaired)
    repaired = collapse_blank_lines(repaired)
    return repaired


def repair_and_parse(raw_text: str | None) -> ParsedThemes:
    """
    Recover {"themes": [...]} from a model response. Never raises.

    A top-level list is treated as the themes list. Individual themes that fail
    validation are dropped; the rest are kept. On total failure the raw and
    repaired text are logged and an empty result carrying the error is returned.
    """
    if not raw_text or not isinstance(raw_text, str):
        return ParsedThemes(themes=[], error="empty response")

    repaired = repair_json(raw_text)
    try:
        parsed = json.loads(repaired)
    except (json.JSONDecodeError, RecursionError) as e:
        log(
            "WARN",
            "llm response could not be parsed",
            error=str(e),
            raw_output=raw_text[:LOG_PREVIEW_CHARS],
            repaired_output=repaired[:LOG_PREVIEW_CHARS],
        )
        return ParsedThemes(themes=[], error=f"invalid JSON: {e}")

    if isinstance(parsed, list):
        parsed = {"themes": parsed}
    if not isinstance(parsed, dict) or not isinstance(parsed.get("themes"), list):
        log("WARN", "llm response has no themes list", raw_output=raw_text[:LOG_PREVIEW_CHARS])
        return ParsedThemes(themes=[], error="response has no themes list")

    themes = []
    for index, item in enumerate(parsed["themes"]):
        try:
            themes.append(ExtractedTheme.model_validate(item))
        except ValidationError as e:
            log("WARN", "dropping invalid theme from llm response", index=index, error=str(e)[:300])
    return ParsedThemes(themes=themes)


def parse_json_object(raw_text: str) -> dict | None:
    """Repair and parse any JSON object response. Returns None on failure."""
    try:
        parsed = json.loads(repair_json(raw_text or ""))
    except (json.JSONDecodeError, RecursionError):
        return None
    return parsed if isinstance(parsed, dict) else None
