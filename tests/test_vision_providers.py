from __future__ import annotations

import asyncio
import unittest
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch

from pydantic import ValidationError

from pipeline import llm, vision_providers
from pipeline.image_data import ImageData
from pipeline.llm import LLMError
from pipeline.vision_providers import (
    AnthropicVisionProvider,
    GoogleVisionProvider,
    OpenAIVisionProvider,
    build_vision_provider,
    resolve_credentials,
    resolve_model_id,
)
from schemas.raccord import VisionCredentials

IMAGES = [ImageData(b"first", "image/png"), ImageData(b"second", "image/jpeg")]


def _run(provider, model_id="model-x"):
    return asyncio.run(provider.generate(
        images=IMAGES, prompt="Compare these shots", model_id=model_id, temperature=0.2, max_tokens=512, stage="test",
    ))


class ResolveCredentialsTests(unittest.TestCase):
    def test_empty_key_is_missing(self):
        self.assertIsNone(resolve_credentials(""))
        self.assertIsNone(resolve_credentials("   "))
        self.assertIsNone(resolve_credentials(VisionCredentials(provider="openai", api_key="")))

    def test_bare_key_maps_to_configured_provider(self):
        with patch.object(vision_providers.config, "DOP_VISION_PROVIDER", "openai"):
            creds = resolve_credentials(" sk-1 ")
        self.assertEqual(creds, VisionCredentials(provider="openai", api_key="sk-1"))

    def test_none_reads_environment_key(self):
        with patch.object(vision_providers.config, "DOP_VISION_PROVIDER", "google"), \
                patch.object(vision_providers.config, "GOOGLE_API_KEY", "g-env"):
            creds = resolve_credentials(None)
        self.assertEqual(creds.api_key, "g-env")
        with patch.object(vision_providers.config, "DOP_VISION_PROVIDER", "google"), \
                patch.object(vision_providers.config, "GOOGLE_API_KEY", ""):
            self.assertIsNone(resolve_credentials(None))

    def test_unknown_configured_provider_is_rejected(self):
        with patch.object(vision_providers.config, "DOP_VISION_PROVIDER", "groq"):
            with self.assertRaises(ValidationError):
                resolve_credentials("key")

    def test_model_id_override_and_stage_default(self):
        self.assertEqual(
            resolve_model_id(VisionCredentials(provider="openai", api_key="k", model_id="gpt-4.1"), "retry_decision"),
            "gpt-4.1",
        )
        with patch.dict(
            vision_providers.config._STAGE_MODELS["retry_decision"], {"openai": "gpt-4o"},
        ):
            self.assertEqual(
                resolve_model_id(VisionCredentials(provider="openai", api_key="k"), "retry_decision"), "gpt-4o",
            )


class BuildVisionProviderTests(unittest.TestCase):
    def test_unknown_provider_raises(self):
        creds = VisionCredentials.model_construct(provider="groq", api_key="k", model_id="")
        with self.assertRaises(LLMError):
            build_vision_provider(creds)

    def test_builds_matching_adapter(self):
        adapter_cls = Mock()
        with patch.dict(vision_providers._PROVIDERS, {"openai": adapter_cls}):
            adapter = build_vision_provider(VisionCredentials(provider="openai", api_key="sk"))
        adapter_cls.assert_called_once_with("sk")
        self.assertIs(adapter, adapter_cls.return_value)

    def test_adapter_requires_key(self):
        with self.assertRaises(LLMError):
            OpenAIVisionProvider("")


class AdapterPayloadTests(unittest.TestCase):
    def setUp(self):
        llm.reset_usage()
        self.addCleanup(llm.reset_usage)

    def test_openai_images_before_text_and_usage_recorded(self):
        provider = OpenAIVisionProvider("sk-test")
        response = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content='{"isValid": true}'))],
            usage=SimpleNamespace(prompt_tokens=100, completion_tokens=20),
        )
        create = AsyncMock(return_value=response)
        provider._client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))

        self.assertEqual(_run(provider, "gpt-4o-mini"), '{"isValid": true}')
        content = create.call_args.kwargs["messages"][1]["content"]
        self.assertEqual([part["type"] for part in content], ["image_url", "image_url", "text"])
        self.assertTrue(content[0]["image_url"]["url"].startswith("data:image/png;base64,"))
        self.assertTrue(content[1]["image_url"]["url"].startswith("data:image/jpeg;base64,"))
        self.assertEqual(llm.get_usage_log()[0]["stage"], "test")

    def test_openai_empty_response_raises(self):
        provider = OpenAIVisionProvider("sk-test")
        response = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=""))], usage=None)
        create = AsyncMock(return_value=response)
        provider._client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
        with self.assertRaises(LLMError):
            _run(provider)

    def test_anthropic_images_before_text(self):
        provider = AnthropicVisionProvider("sk-ant-test")
        response = SimpleNamespace(
            content=[SimpleNamespace(type="text", text='{"action": "skip"}')],
            usage=SimpleNamespace(input_tokens=50, output_tokens=10),
        )
        create = AsyncMock(return_value=response)
        provider._client = SimpleNamespace(messages=SimpleNamespace(create=create))

        self.assertEqual(_run(provider, "claude-sonnet-4-5"), '{"action": "skip"}')
        content = create.call_args.kwargs["messages"][0]["content"]
        self.assertEqual([part["type"] for part in content], ["image", "image", "text"])
        self.assertEqual(content[1]["source"]["media_type"], "image/jpeg")

    def test_anthropic_transport_error_becomes_llm_error(self):
        provider = AnthropicVisionProvider("sk-ant-test")
        create = AsyncMock(side_effect=RuntimeError("connection reset"))
        provider._client = SimpleNamespace(messages=SimpleNamespace(create=create))
        with self.assertRaises(LLMError) as ctx:
            _run(provider)
        self.assertIn("connection reset", str(ctx.exception))

    def test_google_images_before_text(self):
        provider = GoogleVisionProvider("g-test")
        response = SimpleNamespace(
            text='{"isValid": false}',
            usage_metadata=SimpleNamespace(prompt_token_count=300, candidates_token_count=40),
        )
        generate = AsyncMock(return_value=response)
        provider._client = Mock()
        provider._client.aio.models.generate_content = generate

        self.assertEqual(_run(provider, "gemini-2.5-flash"), '{"isValid": false}')
        contents = generate.call_args.kwargs["contents"]
        self.assertEqual(len(contents), 3)
        self.assertEqual(contents[0].inline_data.data, b"first")
        self.assertEqual(contents[1].inline_data.mime_type, "image/jpeg")
        self.assertEqual(contents[2].text, "Compare these shots")
        self.assertEqual(llm.get_usage_summary()["total_input_tokens"], 300)


if __name__ == "__main__":
    unittest.main()
