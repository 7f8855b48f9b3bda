"""LLM backend clients for the remote option provider."""

from .base import LLMClient, LLMResponse, Message
from .chat_completions import ChatCompletionsClient

__all__ = [
    "LLMClient",
    "LLMResponse",
    "Message",
    "ChatCompletionsClient",
    "MockLLMClient",
    "create_llm_client",
]


# -----------------------------------------------------------------------------
# Mock Client for Testing
# -----------------------------------------------------------------------------

class MockLLMClient(LLMClient):
    """
    Mock LLM client for testing.

    Allows configuring responses without actual API calls.
    """

    def __init__(
        self,
        responses: list[str] | None = None,
        model_name: str = "mock-model",
        available: bool = True,
    ):
        """
        Initialize mock client.

        Args:
            responses: List of responses to return in order.
                       Cycles through if more calls than responses.
            model_name: Name to report as model_name property.
            available: What is_available() reports.
        """
        self._responses = responses or ['{"tone": "", "options": []}']
        self._call_count = 0
        self._model_name = model_name
        self._available = available
        self.calls: list[dict] = []  # Record of all calls made

    @property
    def model_name(self) -> str:
        return self._model_name

    def is_available(self) -> bool:
        return self._available

    def chat(
        self,
        messages: list[Message],
        system: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 2048,
    ) -> LLMResponse:
        """Return next mock response."""
        self.calls.append({
            "method": "chat",
            "messages": messages,
            "system": system,
        })
        response_text = self._responses[self._call_count % len(self._responses)]
        self._call_count += 1
        return LLMResponse(content=response_text)


def create_llm_client(
    api_key: str | None = None,
    api_url: str | None = None,
    model: str | None = None,
) -> LLMClient | None:
    """
    Create the remote client, or None if no API key is configured.

    Returns:
        A ready client, or None so callers stay on local generation
    """
    client = ChatCompletionsClient(api_key=api_key, api_url=api_url, model=model)
    if not client.is_available():
        return None
    return client
