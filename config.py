"""Engine configuration — vision providers, per-stage model assignments, locale."""

import os

from dotenv import load_dotenv

load_dotenv()

# ---------------------------------------------------------------------------
# Vision provider API keys
# ---------------------------------------------------------------------------
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY", "") or os.getenv("GEMINI_API_KEY", "")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")

# ---------------------------------------------------------------------------
# Model names (centralized so they're easy to update)
# ---------------------------------------------------------------------------
GOOGLE_FLASH = "gemini-2.5-flash"
GOOGLE_FRONTIER = "gemini-2.5-pro"
OPENAI_MINI = "gpt-4o-mini"
OPENAI_FRONTIER = "gpt-4o"
ANTHROPIC_FAST = "claude-sonnet-4-5"
ANTHROPIC_FRONTIER = "claude-opus-4-1"

# Provider used when credentials arrive as a bare API key.
DOP_VISION_PROVIDER = os.getenv("DOP_VISION_PROVIDER", "google")

# ---------------------------------------------------------------------------
# Per-stage model assignments
#
# The validator runs after every rendered scene, so it gets the cheap model.
# The retry adjudicator only runs on fixable failures and gets the strong one.
# Override via env: DOP_VALIDATOR_MODEL=gemini-2.0-flash
# ---------------------------------------------------------------------------
_STAGE_MODELS: dict[str, dict[str, str]] = {
    "raccord_validator": {
        "google": os.getenv("DOP_VALIDATOR_MODEL", GOOGLE_FLASH),
        "openai": os.getenv("DOP_VALIDATOR_OPENAI_MODEL", OPENAI_MINI),
        "anthropic": os.getenv("DOP_VALIDATOR_ANTHROPIC_MODEL", ANTHROPIC_FAST),
    },
    "retry_decision": {
        "google": os.getenv("DOP_DECISION_MODEL", GOOGLE_FRONTIER),
        "openai": os.getenv("DOP_DECISION_OPENAI_MODEL", OPENAI_FRONTIER),
        "anthropic": os.getenv("DOP_DECISION_ANTHROPIC_MODEL", ANTHROPIC_FRONTIER),
    },
}

DOP_LLM_CONFIG: dict[str, dict] = {
    # Continuity check between two consecutive frames: lenient, short JSON.
    "raccord_validator": {
        "temperature": 0.3,
        "max_tokens": 2_048,
    },
    # Failed-frame adjudication: deterministic, short JSON.
    "retry_decision": {
        "temperature": 0.2,
        "max_tokens": 1_024,
    },
}


def get_dop_llm_config(stage: str, provider: str | None = None) -> dict:
    """Return the model config for an engine stage on a given provider."""
    provider = provider or DOP_VISION_PROVIDER
    defaults = {
        "provider": provider,
        "model": _STAGE_MODELS.get(stage, {}).get(provider, GOOGLE_FLASH),
        "temperature": 0.3,
        "max_tokens": 2_048,
    }
    return {**defaults, **DOP_LLM_CONFIG.get(stage, {})}


# ---------------------------------------------------------------------------
# Engine behaviour
# ---------------------------------------------------------------------------
# Locale of insight messages and shot suggestions: "vi" (editor default) or "en".
DOP_LOCALE = os.getenv("DOP_LOCALE", "vi")

IMAGE_FETCH_TIMEOUT_SECONDS = float(os.getenv("IMAGE_FETCH_TIMEOUT_SECONDS", "15"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
