"""Provider clients behind one explicit gateway handle.

A ``ModelGateway`` is built once per process and passed into both AI stages.
Each call names its ``ModelSpec``; the provider is picked from the spec's tag.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Mapping, Protocol

from google import genai
from google.genai import types
from openai import AsyncOpenAI

from rolesift.exceptions import ConfigurationError, ProviderError, ProviderResponseError
from rolesift.settings import AISettings, ModelSpec

logger = logging.getLogger(__name__)

_HTML_PREFIXES = ("<!doctype", "<html")


class ChatProvider(Protocol):
    async def complete(self, model: str, system: str, user: str) -> str:
        """Return the raw text of a JSON-mode completion."""
        ...


class JsonCompleter(Protocol):
    async def complete_json(self, spec: ModelSpec, system: str, user: str) -> dict[str, Any]:
        ...


class OpenAIProvider:
    """OpenAI or any OpenAI-compatible endpoint, in JSON-object mode."""

    def __init__(self, api_key: str, base_url: str = "", timeout: float = 60.0) -> None:
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url or None, timeout=timeout)

    async def complete(self, model: str, system: str, user: str) -> str:
        completion = await self._client.chat.completions.create(
            model=model,
            temperature=0,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        )
        if not completion.choices:
            return "{}"
        return completion.choices[0].message.content or "{}"

    async def close(self) -> None:
        await self._client.close()


class GeminiProvider:
    """Google Gemini via the ``google-genai`` SDK with a JSON response MIME type."""

    def __init__(self, api_key: str) -> None:
        self._client = genai.Client(api_key=api_key)

    async def complete(self, model: str, system: str, user: str) -> str:
        response = await self._client.aio.models.generate_content(
            model=model,
            contents=user,
            config=types.GenerateContentConfig(
                system_instruction=system or None,
                response_mime_type="application/json",
                temperature=0,
            ),
        )
        return response.text or "{}"


def parse_json_object(text: str) -> dict[str, Any]:
    """Parse a model reply into a dict, rejecting HTML error pages and non-objects."""
    body = (text or "").strip()
    if body.lower().startswith(_HTML_PREFIXES):
        raise ProviderResponseError(
            "API returned HTML instead of JSON (likely rate-limited or blocked). "
            f"Response preview: {body[:100]}"
        )
    if body.startswith("```"):
        body = body.strip("`")
        if body.lower().startswith("json"):
            body = body[4:]
        body = body.strip()
    if not body:
        return {}
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError as exc:
        raise ProviderResponseError(f"Malformed JSON from model: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ProviderResponseError(f"Expected a JSON object, got {type(parsed).__name__}.")
    return parsed


class ModelGateway:
    """Routes each request to the provider named by its ``ModelSpec``."""

    def __init__(self, providers: Mapping[str, ChatProvider], timeout: float = 60.0) -> None:
        self._providers = dict(providers)
        self._timeout = timeout

    @classmethod
    def from_settings(cls, ai: AISettings) -> "ModelGateway":
        wanted = {spec.provider for spec in [*ai.title_models, *ai.detail_models]}
        providers: dict[str, ChatProvider] = {}
        if "openai" in wanted:
            if not ai.api_key:
                raise ConfigurationError("ai.api_key is required for openai models.")
            providers["openai"] = OpenAIProvider(ai.api_key, ai.base_url, ai.request_timeout_seconds)
        if "gemini" in wanted:
            if not ai.gemini_api_key:
                raise ConfigurationError("ai.gemini_api_key is required for gemini models.")
            providers["gemini"] = GeminiProvider(ai.gemini_api_key)
        logger.info("Model gateway ready (providers: %s).", ", ".join(sorted(providers)) or "none")
        return cls(providers, timeout=ai.request_timeout_seconds)

    async def complete_json(self, spec: ModelSpec, system: str, user: str) -> dict[str, Any]:
        provider = self._providers.get(spec.provider)
        if provider is None:
            raise ConfigurationError(f"No client configured for provider {spec.provider!r}.")
        try:
            text = await asyncio.wait_for(provider.complete(spec.model, system, user), self._timeout)
        except asyncio.TimeoutError as exc:
            raise ProviderError(f"{spec} timed out after {self._timeout:g}s.") from exc
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderError(f"{spec} request failed: {exc}") from exc
        return parse_json_object(text)

    async def aclose(self) -> None:
        for provider in self._providers.values():
            close = getattr(provider, "close", None)
            if close is not None:
                await close()
