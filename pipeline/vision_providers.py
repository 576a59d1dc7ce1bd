"""Vision model adapters: one async call with ordered image parts, then instruction text.

Every adapter sends the images in the order given, followed by the
instruction text, and returns the raw response text. Failures surface as
LLMError; callers decide whether that means fail-open or fallback.
"""

from __future__ import annotations

import logging
from typing import Protocol

import config
from pipeline.image_data import ImageData
from pipeline.llm import LLMError, _extract_error_message, record_usage
from schemas.raccord import VisionCredentials

logger = logging.getLogger(__name__)

_JSON_ONLY_SYSTEM = (
    "You are a strict JSON-only film continuity reviewer. "
    "Return only one valid JSON object with the requested keys."
)


class VisionModelProvider(Protocol):
    name: str

    async def generate(
        self,
        *,
        images: list[ImageData],
        prompt: str,
        model_id: str,
        temperature: float,
        max_tokens: int,
        stage: str = "",
    ) -> str:
        """Return the model's text response for images followed by prompt."""


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

_ENV_KEYS = {
    "google": lambda: config.GOOGLE_API_KEY,
    "openai": lambda: config.OPENAI_API_KEY,
    "anthropic": lambda: config.ANTHROPIC_API_KEY,
}


def resolve_credentials(credentials: VisionCredentials | str | None) -> VisionCredentials | None:
    """Normalize caller credentials. Returns None when no usable key exists.

    - VisionCredentials: used as given.
    - str: a bare API key for the configured default provider ("" = missing).
    - None: the configured default provider's key from the environment.
    """
    if isinstance(credentials, VisionCredentials):
        return credentials if credentials.is_usable else None

    provider = str(config.DOP_VISION_PROVIDER or "google").strip().lower()
    if credentials is None:
        key_getter = _ENV_KEYS.get(provider)
        api_key = str(key_getter() or "") if key_getter else ""
    else:
        api_key = str(credentials)
    if not api_key.strip():
        return None
    return VisionCredentials(provider=provider, api_key=api_key.strip())


def resolve_model_id(credentials: VisionCredentials, stage: str) -> str:
    return credentials.model_id.strip() or config.get_dop_llm_config(stage, credentials.provider)["model"]


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------

def _google_thinking_budget(model: str) -> int | None:
    """Pro models cannot disable thinking; give them the minimum budget."""
    return 128 if "pro" in model.lower() else None


class GoogleVisionProvider:
    """Gemini multimodal adapter (google-genai async client)."""

    name = "google"

    def __init__(self, api_key: str):
        if not str(api_key or "").strip():
            raise LLMError("A Google API key is required for vision calls.", provider=self.name)
        from google import genai

        self._client = genai.Client(api_key=api_key)

    async def generate(
        self,
        *,
        images: list[ImageData],
        prompt: str,
        model_id: str,
        temperature: float,
        max_tokens: int,
        stage: str = "",
    ) -> str:
        from google.genai import types

        budget = _google_thinking_budget(model_id)
        cfg = types.GenerateContentConfig(
            system_instruction=_JSON_ONLY_SYSTEM,
            temperature=temperature,
            max_output_tokens=max_tokens + (budget or 0),
            response_mime_type="application/json",
            thinking_config=types.ThinkingConfig(thinking_budget=budget or 0),
        )
        contents = [types.Part.from_bytes(data=img.data, mime_type=img.mime_type) for img in images]
        contents.append(types.Part.from_text(text=prompt))

        try:
            response = await self._client.aio.models.generate_content(
                model=model_id,
                contents=contents,
                config=cfg,
            )
        except Exception as exc:
            raise LLMError(_extract_error_message(exc, self.name, model_id), self.name, model_id, exc) from exc

        raw = str(getattr(response, "text", "") or "").strip()
        meta = getattr(response, "usage_metadata", None)
        if meta:
            record_usage(
                self.name,
                model_id,
                getattr(meta, "prompt_token_count", 0) or 0,
                getattr(meta, "candidates_token_count", 0) or 0,
                stage=stage,
            )
        if not raw:
            raise LLMError(f"[{self.name}/{model_id}] Empty response.", self.name, model_id)
        logger.info("Google [%s]: %d chars", model_id, len(raw))
        return raw


class OpenAIVisionProvider:
    """OpenAI chat-completions multimodal adapter (async client)."""

    name = "openai"

    def __init__(self, api_key: str):
        if not str(api_key or "").strip():
            raise LLMError("An OpenAI API key is required for vision calls.", provider=self.name)
        from openai import AsyncOpenAI

        self._client = AsyncOpenAI(api_key=api_key)

    async def generate(
        self,
        *,
        images: list[ImageData],
        prompt: str,
        model_id: str,
        temperature: float,
        max_tokens: int,
        stage: str = "",
    ) -> str:
        content: list[dict] = [
            {"type": "image_url", "image_url": {"url": img.to_data_url()}} for img in images
        ]
        content.append({"type": "text", "text": prompt})

        try:
            response = await self._client.chat.completions.create(
                model=model_id,
                response_format={"type": "json_object"},
                temperature=temperature,
                max_completion_tokens=max_tokens,
                messages=[
                    {"role": "system", "content": _JSON_ONLY_SYSTEM},
                    {"role": "user", "content": content},
                ],
            )
        except Exception as exc:
            raise LLMError(_extract_error_message(exc, self.name, model_id), self.name, model_id, exc) from exc

        usage = getattr(response, "usage", None)
        if usage:
            record_usage(
                self.name, model_id, usage.prompt_tokens or 0, usage.completion_tokens or 0, stage=stage,
            )
        raw = ""
        if response.choices:
            raw = str(response.choices[0].message.content or "").strip()
        if not raw:
            raise LLMError(f"[{self.name}/{model_id}] Empty response.", self.name, model_id)
        logger.info("OpenAI [%s]: %d chars", model_id, len(raw))
        return raw


class AnthropicVisionProvider:
    """Anthropic messages multimodal adapter (async client)."""

    name = "anthropic"

    def __init__(self, api_key: str):
        if not str(api_key or "").strip():
            raise LLMError("An Anthropic API key is required for vision calls.", provider=self.name)
        from anthropic import AsyncAnthropic

        self._client = AsyncAnthropic(api_key=api_key)

    async def generate(
        self,
        *,
        images: list[ImageData],
        prompt: str,
        model_id: str,
        temperature: float,
        max_tokens: int,
        stage: str = "",
    ) -> str:
        content: list[dict] = [
            {
                "type": "image",
                "source": {"type": "base64", "media_type": img.mime_type, "data": img.to_base64()},
            }
            for img in images
        ]
        content.append({"type": "text", "text": prompt})

        try:
            response = await self._client.messages.create(
                model=model_id,
                max_tokens=max_tokens,
                temperature=temperature,
                system=_JSON_ONLY_SYSTEM,
                messages=[{"role": "user", "content": content}],
            )
        except Exception as exc:
            raise LLMError(_extract_error_message(exc, self.name, model_id), self.name, model_id, exc) from exc

        usage = getattr(response, "usage", None)
        if usage:
            record_usage(
                self.name, model_id, usage.input_tokens or 0, usage.output_tokens or 0, stage=stage,
            )
        blocks = response.content if isinstance(response.content, list) else []
        raw = "\n".join(
            str(getattr(block, "text", "") or "") for block in blocks if getattr(block, "type", "") == "text"
        ).strip()
        if not raw:
            raise LLMError(f"[{self.name}/{model_id}] Empty response.", self.name, model_id)
        logger.info("Anthropic [%s]: %d chars", model_id, len(raw))
        return raw


_PROVIDERS: dict[str, type] = {
    "google": GoogleVisionProvider,
    "openai": OpenAIVisionProvider,
    "anthropic": AnthropicVisionProvider,
}


def build_vision_provider(credentials: VisionCredentials) -> VisionModelProvider:
    """Instantiate the adapter for credentials.provider.

    Raises LLMError for unknown provider names or unusable keys.
    """
    provider_cls = _PROVIDERS.get(str(credentials.provider or "").strip().lower())
    if provider_cls is None:
        raise LLMError(f"Unknown vision provider '{credentials.provider}'.", provider=str(credentials.provider))
    return provider_cls(credentials.api_key)
