"""Completion client for the external question-answering service.

The portfolio core only needs text in, text out. ``CompletionClient`` is that
contract; ``AnthropicClient`` implements it over the Messages API with
httpx, retries and exponential backoff.
"""

import asyncio
from typing import Any, Dict, Optional, Protocol

import httpx
from httpx import HTTPStatusError, TimeoutException

from insurepulse.core.config import LLMSettings
from insurepulse.utils.exceptions import APIClientError, APITimeoutError
from insurepulse.utils.logging import get_logger

LOGGER = get_logger(__name__)


class CompletionClient(Protocol):
    """Anything that turns a prompt into a text answer."""

    async def generate_content(self, prompt: str, system_instruction: Optional[str] = None) -> str:
        ...


class BaseLLMClient:
    """Base client for LLM API interactions.

    Handles common logic for HTTP requests, retries, timeout management,
    and error logging.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: int = 60,
        max_retries: int = 3,
        retry_delay: int = 2
    ):
        """Initialize the LLM client.

        Args:
            api_key: API key for authentication
            base_url: Base URL for the API
            timeout: Request timeout in seconds
            max_retries: Maximum number of retries
            retry_delay: Base delay for exponential backoff
        """
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.logger = LOGGER

    def default_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def call_api(
        self,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """POST a JSON payload with retry logic.

        Args:
            payload: JSON payload
            headers: Additional headers

        Returns:
            Parsed JSON response

        Raises:
            APIClientError: If the API call fails after retries
            APITimeoutError: If the API call times out after retries
        """
        request_headers = self.default_headers()
        if headers:
            request_headers.update(headers)

        self.logger.debug(
            f"Calling LLM API: {self.base_url}",
            extra={"timeout": self.timeout}
        )

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for attempt in range(self.max_retries):
                try:
                    response = await client.post(self.base_url, headers=request_headers, json=payload)
                    response.raise_for_status()
                    return response.json()

                except HTTPStatusError as e:
                    await self._handle_http_error(e, attempt)

                except TimeoutException as e:
                    await self._handle_timeout_error(e, attempt)

                except httpx.HTTPError as e:
                    await self._handle_transport_error(e, attempt)

        raise APIClientError(f"Failed to call API {self.base_url} after {self.max_retries} attempts")

    async def _handle_http_error(self, error: HTTPStatusError, attempt: int):
        """Handle HTTP status errors."""
        status_code = error.response.status_code
        error_body = error.response.text

        self.logger.warning(
            f"API HTTP error (Attempt {attempt + 1}/{self.max_retries})",
            extra={
                "url": self.base_url,
                "status_code": status_code,
                "error_body": error_body[:500]
            }
        )

        # Don't retry on client errors (4xx) unless it's rate limiting (429)
        if 400 <= status_code < 500 and status_code != 429:
            raise APIClientError(f"API Client Error {status_code}: {error_body}") from error

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APIClientError(f"API HTTP Error {status_code} after retries") from error

    async def _handle_timeout_error(self, error: TimeoutException, attempt: int):
        """Handle timeout errors."""
        self.logger.warning(
            f"API Timeout (Attempt {attempt + 1}/{self.max_retries})",
            extra={"url": self.base_url}
        )

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APITimeoutError(f"API Timeout after {self.max_retries} attempts") from error

    async def _handle_transport_error(self, error: httpx.HTTPError, attempt: int):
        """Handle connection and protocol errors."""
        self.logger.warning(
            f"API transport error (Attempt {attempt + 1}/{self.max_retries})",
            extra={"url": self.base_url, "error": str(error)}
        )

        if attempt < self.max_retries - 1:
            await self._wait_before_retry(attempt)
        else:
            raise APIClientError(f"API Error: {str(error)}") from error

    async def _wait_before_retry(self, attempt: int):
        """Exponential backoff wait."""
        wait_time = self.retry_delay * (2 ** attempt)
        await asyncio.sleep(wait_time)


class AnthropicClient(BaseLLMClient):
    """Messages API client returning the joined text blocks of a reply."""

    def __init__(self, llm_settings: LLMSettings):
        super().__init__(
            api_key=llm_settings.api_key,
            base_url=llm_settings.api_url,
            timeout=llm_settings.timeout,
            max_retries=llm_settings.max_retries,
            retry_delay=llm_settings.retry_delay,
        )
        self.model = llm_settings.model
        self.max_tokens = llm_settings.max_tokens
        self.api_version = llm_settings.api_version

        LOGGER.info(f"Initialized Anthropic client with model {self.model}")

    def default_headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": self.api_version,
            "Content-Type": "application/json",
        }

    async def generate_content(self, prompt: str, system_instruction: Optional[str] = None) -> str:
        """Generate a text answer for ``prompt``.

        Args:
            prompt: User message content
            system_instruction: Optional system prompt

        Returns:
            Generated text (text blocks joined by newlines)

        Raises:
            APIClientError: If the request fails or the reply has no content list
        """
        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_instruction:
            payload["system"] = system_instruction

        response = await self.call_api(payload)

        content = response.get("content")
        if not isinstance(content, list):
            LOGGER.error(f"Unexpected completion response format: {response}")
            raise APIClientError("Invalid response format from completion service")

        text = "\n".join(
            block.get("text", "")
            for block in content
            if isinstance(block, dict) and block.get("type") == "text"
        )
        if not text:
            LOGGER.warning("Empty response from completion service")
        return text
