"""HTTP clients for the hosted completion and vision providers.

Both clients make exactly one JSON-over-HTTPS call per request and turn every
failure into a single human-readable ``ProviderError`` message. There are no
retries.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import json
import logging
import re
from typing import Any, Protocol

import httpx

from .exceptions import CompletionError, VisionError
from .models import Message

LOGGER = logging.getLogger(__name__)

DATA_URL_PATTERN = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)

VISION_PROMPT = """Analyze this image and provide a detailed description in the following JSON format:

{
  "description": "detailed description of the image content, style, and composition",
  "objects": ["list", "of", "all", "visible", "objects", "and", "elements"],
  "colors": ["dominant", "colors", "and", "color", "palette"],
  "text_content": "any text, writing, or signage visible in the image",
  "emotions": ["emotions", "or", "mood", "conveyed", "by", "the", "image"],
  "actions": ["actions", "or", "activities", "happening", "in", "the", "image"],
  "context": "overall context, setting, and environment of the image"
}

Be extremely detailed and specific. Include lighting, perspective, quality, and any other relevant visual details. If no text is visible, set text_content to null. If no specific emotions are apparent, use empty array. Analyze every aspect of the image thoroughly."""


class CompletionClient(Protocol):
    async def complete(
        self, messages: Sequence[Mapping[str, str]], model: str
    ) -> Message: ...


class VisionClient(Protocol):
    async def describe(self, image_url: str, user_prompt: str = "") -> Any: ...


def _error_text(response: httpx.Response) -> str | None:
    """Pull a provider error message out of a failed response body."""
    try:
        payload = response.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, str) and error.strip():
        return error.strip()
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
    return None


def split_data_url(image_url: str) -> tuple[str, str]:
    """Return ``(mime_type, base64_data)``; bare base64 is assumed to be JPEG."""
    match = DATA_URL_PATTERN.match(image_url)
    if match:
        return match.group(1), match.group(2)
    return "image/jpeg", image_url


class OpenRouterCompletionClient:
    """Chat completion over OpenRouter's OpenAI-compatible endpoint."""

    def __init__(
        self,
        *,
        api_key: str,
        models: Mapping[str, str],
        base_url: str = "https://openrouter.ai/api/v1",
        referer: str = "http://localhost:3000",
        app_title: str = "AI Chatbot",
        timeout: float = 120,
        temperature: float = 0.7,
        max_tokens: int = 2048,
        top_p: float = 0.9,
        frequency_penalty: float = 0.5,
        presence_penalty: float = 0.3,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.models = dict(models)
        self.base_url = base_url.rstrip("/")
        self.referer = referer
        self.app_title = app_title
        self.timeout = timeout
        self.sampling: dict[str, Any] = {
            "temperature": temperature,
            "max_tokens": max_tokens,
            "top_p": top_p,
            "frequency_penalty": frequency_penalty,
            "presence_penalty": presence_penalty,
        }
        self._http_client = http_client

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        http_client: httpx.AsyncClient | None = None,
    ) -> OpenRouterCompletionClient:
        return cls(
            api_key=str(config["api_key"]),
            models=config["models"],
            base_url=str(config["base_url"]),
            referer=str(config["referer"]),
            app_title=str(config["app_title"]),
            timeout=float(config["timeout"]),
            temperature=float(config["temperature"]),
            max_tokens=int(config["max_tokens"]),
            top_p=float(config["top_p"]),
            frequency_penalty=float(config["frequency_penalty"]),
            presence_penalty=float(config["presence_penalty"]),
            http_client=http_client,
        )

    def build_payload(
        self, messages: Sequence[Mapping[str, str]], model: str
    ) -> dict[str, Any]:
        if not messages:
            raise CompletionError("Messages array is required and cannot be empty")
        provider_model = self.models.get(model)
        if provider_model is None:
            raise CompletionError(f"Unknown model {model!r}")
        return {
            "model": provider_model,
            "messages": [
                {"role": str(m["role"]), "content": str(m["content"])} for m in messages
            ],
            **self.sampling,
        }

    async def _post(self, url: str, **kwargs: Any) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.post(url, **kwargs)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(url, **kwargs)

    async def complete(
        self, messages: Sequence[Mapping[str, str]], model: str
    ) -> Message:
        """Send one completion request and return the assistant message."""
        payload = self.build_payload(messages, model)
        if not self.api_key:
            raise CompletionError("OpenRouter API key is not configured")

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
            "HTTP-Referer": self.referer,
            "X-Title": self.app_title,
        }
        LOGGER.info(
            "chat.provider.request",
            extra={
                "event": "chat.provider.request",
                "model": payload["model"],
                "message_count": len(payload["messages"]),
            },
        )
        try:
            response = await self._post(
                f"{self.base_url}/chat/completions", headers=headers, json=payload
            )
        except httpx.HTTPError as exc:
            LOGGER.warning(
                "chat.provider.transport_failed",
                extra={"event": "chat.provider.transport_failed", "error": str(exc)},
            )
            raise CompletionError(f"Connection error: {exc}") from exc

        if response.is_error:
            LOGGER.warning(
                "chat.provider.http_error",
                extra={
                    "event": "chat.provider.http_error",
                    "status": response.status_code,
                    "body": response.text[:500],
                },
            )
            raise CompletionError(
                _error_text(response)
                or f"OpenRouter API error: {response.status_code} {response.reason_phrase}"
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise CompletionError("Malformed response from OpenRouter") from exc

        message = None
        if isinstance(body, dict):
            choices = body.get("choices")
            if isinstance(choices, list) and choices and isinstance(choices[0], dict):
                message = choices[0].get("message")
        if not isinstance(message, dict):
            raise CompletionError("No response from assistant")
        content = message.get("content")
        if not isinstance(content, str):
            raise CompletionError("No response from assistant")
        return Message(role="assistant", content=content)


class GeminiVisionClient:
    """Image description via Gemini ``generateContent``."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str = "gemini-1.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta/models",
        timeout: float = 120,
        temperature: float = 0.1,
        max_output_tokens: int = 2000,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self._http_client = http_client

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        http_client: httpx.AsyncClient | None = None,
    ) -> GeminiVisionClient:
        return cls(
            api_key=str(config["api_key"]),
            model=str(config["model"]),
            base_url=str(config["base_url"]),
            timeout=float(config["timeout"]),
            temperature=float(config["temperature"]),
            max_output_tokens=int(config["max_output_tokens"]),
            http_client=http_client,
        )

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/{self.model}:generateContent"

    def build_payload(self, image_url: str, user_prompt: str = "") -> dict[str, Any]:
        mime_type, data = split_data_url(image_url)
        prompt = VISION_PROMPT
        hint = user_prompt.strip()
        if hint:
            prompt = f"{prompt}\n\nThe user's accompanying message, for context: {hint}"
        return {
            "contents": [
                {
                    "parts": [
                        {"text": prompt},
                        {"inline_data": {"mime_type": mime_type, "data": data}},
                    ]
                }
            ],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_output_tokens,
                "responseMimeType": "application/json",
            },
        }

    async def _post(self, url: str, **kwargs: Any) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.post(url, **kwargs)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(url, **kwargs)

    async def describe(self, image_url: str, user_prompt: str = "") -> dict[str, Any]:
        """Return a structured description of the image.

        A model answer that is not JSON is wrapped verbatim as the
        ``description`` field instead of being treated as a failure.
        """
        if not image_url:
            raise VisionError("Image URL is required")
        if not self.api_key:
            raise VisionError("Gemini API key is not configured")

        payload = self.build_payload(image_url, user_prompt)
        LOGGER.info(
            "vision.provider.request",
            extra={
                "event": "vision.provider.request",
                "model": self.model,
                "image_chars": len(image_url),
            },
        )
        try:
            response = await self._post(
                self.endpoint,
                params={"key": self.api_key},
                headers={"Content-Type": "application/json"},
                json=payload,
            )
        except httpx.HTTPError as exc:
            raise VisionError(f"Connection error: {exc}") from exc

        if response.is_error:
            LOGGER.warning(
                "vision.provider.http_error",
                extra={
                    "event": "vision.provider.http_error",
                    "status": response.status_code,
                    "body": response.text[:500],
                },
            )
            raise VisionError(
                f"Gemini vision model failed with status {response.status_code}"
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise VisionError("Malformed response from Gemini") from exc

        text = _candidate_text(body)
        if not text:
            raise VisionError("Failed to get image description from Gemini")

        try:
            parsed = json.loads(text)
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
        LOGGER.info(
            "vision.provider.non_json",
            extra={"event": "vision.provider.non_json", "chars": len(text)},
        )
        return {
            "description": text,
            "objects": [],
            "colors": [],
            "context": "Image description from Gemini",
        }


def _candidate_text(body: Any) -> str | None:
    """Return ``candidates[0].content.parts[0].text`` when present."""
    try:
        text = body["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    return text if isinstance(text, str) and text.strip() else None
