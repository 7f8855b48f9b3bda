"""
OpenAI-compatible chat completions client.

Used by the remote option provider. Works against any endpoint that speaks
the /chat/completions format and supports JSON-schema response formats.
Requires YISHI_PROVIDER_API_KEY.
"""

import json
import logging
import os
import urllib.error
import urllib.request

from .base import LLMClient, LLMResponse, Message

logger = logging.getLogger(__name__)


DEFAULT_API_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_MODEL = "gpt-4o-mini"

OPTION_SCHEMA = {
    "name": "ghost_comm_response",
    "schema": {
        "type": "object",
        "required": ["tone", "options"],
        "properties": {
            "tone": {"type": "string"},
            "options": {
                "type": "array",
                "minItems": 1,
                "maxItems": 4,
                "items": {
                    "type": "object",
                    "required": ["text", "category", "targets", "requires", "effect"],
                    "properties": {
                        "text": {"type": "string"},
                        "category": {
                            "type": "string",
                            "enum": ["soothe", "question", "exchange", "ritual", "accusation"],
                        },
                        "targets": {"type": "array", "items": {"type": "string"}},
                        "requires": {"type": "array", "items": {"type": "string"}},
                        "effect": {
                            "type": "string",
                            "enum": ["untie", "loosen", "calm", "exchange", "provoke"],
                        },
                        "hint": {"type": "string"},
                    },
                    "additionalProperties": False,
                },
            },
        },
        "additionalProperties": False,
    },
}


class ChatCompletionsClient(LLMClient):
    """
    Client for an OpenAI-compatible chat completions endpoint.

    No retries: a failed call surfaces as ConnectionError and the caller
    falls back to local generation.
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        model: str | None = None,
        timeout: int = 30,
        response_schema: dict | None = OPTION_SCHEMA,
    ):
        """
        Initialize the client.

        Args:
            api_key: API key (or use YISHI_PROVIDER_API_KEY env var)
            api_url: Full chat completions URL (or YISHI_PROVIDER_URL)
            model: Model name (or YISHI_PROVIDER_MODEL)
            timeout: Request timeout in seconds
            response_schema: JSON schema to request, or None for free text
        """
        self.api_key = api_key or os.environ.get("YISHI_PROVIDER_API_KEY")
        self.api_url = api_url or os.environ.get("YISHI_PROVIDER_URL") or DEFAULT_API_URL
        self._model = model or os.environ.get("YISHI_PROVIDER_MODEL") or DEFAULT_MODEL
        self.timeout = timeout
        self.response_schema = response_schema

    @property
    def model_name(self) -> str:
        return self._model

    def is_available(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    def _build_payload(
        self,
        messages: list[Message],
        system: str | None,
        temperature: float,
        max_tokens: int,
    ) -> dict:
        api_messages = []
        if system:
            api_messages.append({"role": "system", "content": system})
        for msg in messages:
            api_messages.append({"role": msg.role, "content": msg.content})

        payload = {
            "model": self._model,
            "messages": api_messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if self.response_schema:
            payload["response_format"] = {
                "type": "json_schema",
                "json_schema": self.response_schema,
            }
        return payload

    def _make_request(self, data: dict) -> dict:
        if not self.is_available():
            raise ConnectionError(
                "Provider API key not set. Set YISHI_PROVIDER_API_KEY or pass api_key."
            )

        req = urllib.request.Request(
            self.api_url,
            data=json.dumps(data).encode("utf-8"),
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            method="POST",
        )

        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                return json.loads(resp.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            error_body = e.read().decode("utf-8")
            raise ConnectionError(f"Provider API error {e.code}: {error_body}")
        except urllib.error.URLError as e:
            raise ConnectionError(f"Cannot connect to provider: {e}")

    def chat(
        self,
        messages: list[Message],
        system: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 2048,
    ) -> LLMResponse:
        """Send chat completion request."""
        response = self._make_request(self._build_payload(messages, system, temperature, max_tokens))

        try:
            choice = response["choices"][0]
            content = choice["message"].get("content") or ""
        except (KeyError, IndexError, TypeError) as e:
            raise ConnectionError(f"Malformed provider response: {e}")

        if not content:
            raise ConnectionError("Provider returned no content")

        logger.debug("Provider replied with %d chars", len(content))
        return LLMResponse(content=content, finish_reason=choice.get("finish_reason", "stop"))
