"""
LLM client wrapper for OpenAI-compatible chat completion endpoints.

Gemini, NVIDIA NIM and a LiteLLM proxy all expose the same
``/chat/completions`` contract, so a single client covers them.
"""

import logging
from typing import Optional, Dict, Any, List
import httpx

logger = logging.getLogger(__name__)


class LLMClientError(Exception):
    """Raised when the provider returns an error response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class LLMClient:
    """
    Async HTTP client for an OpenAI-compatible LLM endpoint.

    Provides a simple interface for LLM calls within workflows.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:4000/v1",
        api_key: str = "",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize LLM client.

        Args:
            base_url: Provider base URL including the API version prefix
            api_key: API key for authentication
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def chat_completion(
        self,
        messages: List[Dict[str, str]],
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 1024,
        **kwargs,
    ) -> Dict[str, Any]:
        """
        Create a chat completion.

        Args:
            messages: List of message dicts
            model: Model to use
            temperature: Sampling temperature
            max_tokens: Maximum output tokens
            **kwargs: Additional parameters

        Returns:
            Completion response dict
        """
        client = await self._get_client()

        response = await client.post(
            "/chat/completions",
            json={
                "model": model,
                "messages": messages,
                "temperature": temperature,
                "max_tokens": max_tokens,
                **kwargs,
            }
        )

        if response.status_code != 200:
            raise LLMClientError(
                f"LLM call failed: {response.status_code} - {response.text}",
                status_code=response.status_code,
            )

        return response.json()

    async def complete(self, prompt: str, model: str, **kwargs) -> str:
        """Send a single user prompt and return the assistant text."""
        data = await self.chat_completion(
            messages=[{"role": "user", "content": prompt}],
            model=model,
            **kwargs,
        )
        try:
            return data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise LLMClientError(f"Unexpected completion payload: {str(data)[:200]}")
