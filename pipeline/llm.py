"""Shared model-call plumbing: errors, JSON decoding and cost tracking.

Every model call records token usage and estimated cost based on per-model
pricing, since each wasted generation attempt is real money. Use
reset_usage(), get_usage_log() and get_usage_summary() to read it back.

Response decoding is strict: the first well-formed JSON object in the model
text is validated against a pydantic model, and anything that does not fit
is reported as "no result" so callers can fall back to their documented
defaults.
"""

from __future__ import annotations

import json
import logging
import re
import threading
import time as _time
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

# ---------------------------------------------------------------------------
# Cost tracking
# ---------------------------------------------------------------------------

# Pricing per 1M tokens: { model_prefix: (input_$/1M, output_$/1M) }
# Models are matched longest-prefix-first, so "gpt-4o-mini" matches before "gpt-4o".
MODEL_PRICING: dict[str, tuple[float, float]] = {
    # Google
    "gemini-2.5-pro":   (1.25,  10.00),
    "gemini-2.5-flash": (0.30,   2.50),
    "gemini-2.0-flash": (0.10,   0.40),
    "gemini-1.5-pro":   (1.25,   5.00),
    "gemini-1.5-flash": (0.075,  0.30),
    # OpenAI
    "gpt-4o-mini":      (0.15,   0.60),
    "gpt-4o":           (2.50,  10.00),
    "gpt-4.1-mini":     (0.40,   1.60),
    "gpt-4.1":          (2.00,   8.00),
    # Anthropic
    "claude-opus-4":    (15.00,  75.00),
    "claude-sonnet-4":  (3.00,   15.00),
    "claude-3-5-haiku": (0.80,    4.00),
}

# Fallback pricing if a model isn't in the table (conservative estimate)
_FALLBACK_PRICING = (2.50, 10.00)

_usage_lock = threading.Lock()
_usage_log: list[dict[str, Any]] = []


def _get_pricing(model: str) -> tuple[float, float]:
    """Find pricing for a model by longest-prefix match."""
    best_match = ""
    for prefix in MODEL_PRICING:
        if model.startswith(prefix) and len(prefix) > len(best_match):
            best_match = prefix
    if best_match:
        return MODEL_PRICING[best_match]
    logger.warning("No pricing found for model '%s', using fallback $%.2f/$%.2f per 1M", model, *_FALLBACK_PRICING)
    return _FALLBACK_PRICING


def record_usage(
    provider: str,
    model: str,
    input_tokens: int,
    output_tokens: int,
    stage: str = "",
):
    """Record a single model call's token usage and cost."""
    in_price, out_price = _get_pricing(model)
    cost = (input_tokens * in_price + output_tokens * out_price) / 1_000_000
    entry = {
        "provider": provider,
        "model": model,
        "stage": stage,
        "input_tokens": int(input_tokens or 0),
        "output_tokens": int(output_tokens or 0),
        "cost": cost,
        "timestamp": _time.time(),
    }
    with _usage_lock:
        _usage_log.append(entry)
    logger.info(
        "Token usage: %s/%s [%s] in=%d out=%d cost=$%.4f",
        provider, model, stage or "-", entry["input_tokens"], entry["output_tokens"], cost,
    )


def reset_usage():
    """Clear all accumulated usage data."""
    with _usage_lock:
        _usage_log.clear()


def get_usage_log() -> list[dict[str, Any]]:
    """Return a copy of the full usage log."""
    with _usage_lock:
        return list(_usage_log)


def get_usage_summary() -> dict[str, Any]:
    """Return aggregated cost and token totals, with a per-stage breakdown."""
    with _usage_lock:
        entries = list(_usage_log)
    total_input = sum(e["input_tokens"] for e in entries)
    total_output = sum(e["output_tokens"] for e in entries)
    total_cost = sum(e["cost"] for e in entries)
    by_stage: dict[str, dict[str, Any]] = {}
    for e in entries:
        bucket = by_stage.setdefault(e.get("stage") or "unknown", {"calls": 0, "cost": 0.0})
        bucket["calls"] += 1
        bucket["cost"] = round(bucket["cost"] + e["cost"], 6)
    return {
        "total_input_tokens": total_input,
        "total_output_tokens": total_output,
        "total_tokens": total_input + total_output,
        "total_cost": round(total_cost, 4),
        "calls": len(entries),
        "by_stage": by_stage,
    }


# ---------------------------------------------------------------------------
# Error helpers
# ---------------------------------------------------------------------------

class LLMError(Exception):
    """Clean error from a model call with a human-readable message."""

    def __init__(self, message: str, provider: str = "", model: str = "", cause: Exception | None = None):
        self.provider = provider
        self.model = model
        self.cause = cause
        super().__init__(message)


def _extract_error_message(exc: Exception, provider: str, model: str) -> str:
    """Pull out a clean, human-readable error message from an API exception."""

    msg = str(exc)

    # OpenAI: extract the message from the JSON body
    try:
        from openai import AuthenticationError, BadRequestError, NotFoundError, PermissionDeniedError
        if isinstance(exc, BadRequestError):
            body = getattr(exc, "body", None)
            if isinstance(body, dict):
                inner = body.get("error", {})
                if isinstance(inner, dict):
                    msg = inner.get("message", msg)
            return f"[{provider}/{model}] Bad request: {msg}"
        if isinstance(exc, AuthenticationError):
            return f"[{provider}] Authentication failed. Check the OpenAI API key."
        if isinstance(exc, NotFoundError):
            return f"[{provider}] Model '{model}' not found."
        if isinstance(exc, PermissionDeniedError):
            return f"[{provider}] Permission denied. The API key may not have access to '{model}'."
    except ImportError:
        pass

    # Anthropic
    try:
        from anthropic import AuthenticationError as AnthropicAuth
        from anthropic import BadRequestError as AnthropicBadReq
        from anthropic import NotFoundError as AnthropicNotFound
        if isinstance(exc, AnthropicBadReq):
            return f"[{provider}/{model}] Bad request: {msg}"
        if isinstance(exc, AnthropicAuth):
            return f"[{provider}] Authentication failed. Check the Anthropic API key."
        if isinstance(exc, AnthropicNotFound):
            return f"[{provider}] Model '{model}' not found."
    except ImportError:
        pass

    # Google GenAI
    try:
        from google.genai import errors as genai_errors
        if isinstance(exc, genai_errors.APIError):
            code = getattr(exc, "code", "")
            status = getattr(exc, "status", "") or ""
            detail = getattr(exc, "message", "") or msg
            return f"[{provider}/{model}] API error {code} {status}: {detail}".replace("  ", " ")
    except ImportError:
        pass

    if isinstance(exc, ValidationError):
        n_errors = exc.error_count()
        return (
            f"[{provider}/{model}] Response JSON didn't match the expected schema "
            f"({n_errors} validation error{'s' if n_errors != 1 else ''})."
        )

    # Generic fallback: truncate very long messages
    if len(msg) > 300:
        msg = msg[:300] + "..."
    return f"[{provider}/{model}] {msg}"


# ---------------------------------------------------------------------------
# Response decoding
# ---------------------------------------------------------------------------

_FENCE_OPEN_RE = re.compile(r"^```\w*\n?")
_FENCE_CLOSE_RE = re.compile(r"\n?```\s*$")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


def _strip_fences(raw: str) -> str:
    cleaned = raw.strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_OPEN_RE.sub("", cleaned)
        cleaned = _FENCE_CLOSE_RE.sub("", cleaned)
    return cleaned.strip()


def extract_json_object(raw: Any) -> dict[str, Any] | None:
    """Return the first well-formed JSON object in model text, or None.

    Tolerates markdown fences, prose before/after the object and trailing
    commas.
    """
    text = str(raw or "").strip()
    if not text:
        return None
    cleaned = _strip_fences(text)

    for candidate in (cleaned, _TRAILING_COMMA_RE.sub(r"\1", cleaned)):
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    decoder = json.JSONDecoder()
    for source in (text, _TRAILING_COMMA_RE.sub(r"\1", text)):
        start = source.find("{")
        while start >= 0:
            try:
                parsed, _ = decoder.raw_decode(source, start)
            except json.JSONDecodeError:
                start = source.find("{", start + 1)
                continue
            if isinstance(parsed, dict):
                return parsed
            start = source.find("{", start + 1)
    return None


def decode_model_json(raw: Any, response_model: type[T], *, stage: str = "") -> T | None:
    """Validate model text against response_model. Returns None on any mismatch."""
    data = extract_json_object(raw)
    if data is None:
        snippet = str(raw or "")[:200] or "(empty response)"
        logger.warning("[%s] No JSON object in model response: %s", stage or response_model.__name__, snippet)
        return None
    try:
        return response_model.model_validate(data)
    except ValidationError as exc:
        for err in exc.errors():
            logger.warning(
                "[%s] Schema validation error: field=%s type=%s msg=%s",
                stage or response_model.__name__,
                " → ".join(str(loc) for loc in err["loc"]),
                err["type"],
                err["msg"],
            )
        return None
