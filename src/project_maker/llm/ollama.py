"""
Ollama Gateway

Implementation of LLMGateway for a local Ollama server.
Uses aiohttp to talk to the /api/tags and /api/generate endpoints.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import aiohttp

from .base import (
    CancellationToken,
    ConnectivityError,
    GatewayError,
    GenerateRequest,
    LLMGateway,
    ModelInfo,
)

logger = logging.getLogger(__name__)


class OllamaGateway(LLMGateway):
    """
    Gateway for a local Ollama server.

    Requires Ollama to be running (default: http://localhost:11434)

    Example:
        gateway = OllamaGateway()
        if await gateway.is_available():
            text = await gateway.generate(GenerateRequest(model="llama3", prompt="Hi"))
    """

    # Models that work well for planning and command generation
    RECOMMENDED_MODELS = [
        {
            "name": "qwen2.5-coder:7b",
            "description": "Best balance of speed and quality for coding tasks",
            "size": "4.7GB",
        },
        {
            "name": "qwen2.5-coder:14b",
            "description": "Higher quality, slower generation",
            "size": "9GB",
        },
        {
            "name": "deepseek-coder-v2:16b",
            "description": "Excellent for complex project analysis",
            "size": "9GB",
        },
        {
            "name": "codellama:7b",
            "description": "Good alternative for code-focused tasks",
            "size": "3.8GB",
        },
        {
            "name": "llama3.2:3b",
            "description": "Fast, lightweight option for simple projects",
            "size": "2GB",
        },
    ]

    DEFAULT_BASE_URL = "http://localhost:11434"

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float = 300.0,
        availability_timeout: float = 5.0,
        session: aiohttp.ClientSession | None = None,
        **kwargs: Any
    ):
        """
        Initialize the Ollama gateway.

        Args:
            base_url: Ollama API URL (uses DEFAULT_BASE_URL if not provided)
            timeout: Request timeout in seconds (longer for local models)
            availability_timeout: Timeout for the availability probe
            session: Optional pre-built aiohttp session (not closed by close())
            **kwargs: Additional configuration
        """
        super().__init__(base_url or self.DEFAULT_BASE_URL, **kwargs)
        self.timeout = timeout
        self.availability_timeout = availability_timeout
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create an aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the session."""
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None

    def get_name(self) -> str:
        """Get the gateway name."""
        return "ollama"

    async def is_available(self) -> bool:
        """Probe /api/tags with a short timeout; any failure means unavailable."""
        session = await self._get_session()
        try:
            async with session.get(
                f"{self.base_url}/api/tags",
                timeout=aiohttp.ClientTimeout(total=self.availability_timeout),
            ) as response:
                return response.status == 200
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.debug("Ollama availability probe failed: %s", e)
            return False

    async def list_models(self) -> list[ModelInfo]:
        """
        List models available locally in Ollama.

        Returns:
            List of installed models
        """
        session = await self._get_session()
        url = f"{self.base_url}/api/tags"

        try:
            async with session.get(
                url, timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise GatewayError(
                        f"Failed to fetch models ({response.status}): {error_text}",
                        provider="ollama",
                        status_code=response.status,
                    )
                data = await response.json(content_type=None)
        except aiohttp.ClientConnectorError:
            raise self._connection_error()
        except asyncio.TimeoutError:
            raise self._timeout_error()
        except aiohttp.ClientError as e:
            raise ConnectivityError(f"Ollama request failed: {e}", provider="ollama")

        return [ModelInfo.from_dict(m) for m in data.get("models") or []]

    async def generate(self, request: GenerateRequest) -> str:
        """
        Send a non-streaming generate request.

        Args:
            request: Prompt, system instruction and options

        Returns:
            The complete response text
        """
        session = await self._get_session()

        try:
            async with session.post(
                f"{self.base_url}/api/generate",
                json=request.to_payload(stream=False),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                await self._raise_for_status(response)
                data = await response.json(content_type=None)
        except aiohttp.ClientConnectorError:
            raise self._connection_error()
        except asyncio.TimeoutError:
            raise self._timeout_error()
        except aiohttp.ClientError as e:
            raise ConnectivityError(f"Ollama request failed: {e}", provider="ollama")

        return data.get("response", "")

    async def generate_stream(
        self,
        request: GenerateRequest,
        cancel_token: CancellationToken | None = None,
    ) -> AsyncIterator[str]:
        """
        Send a streaming generate request and yield text as it arrives.

        The body is newline-delimited JSON. Records may span transport
        frames, so undecoded bytes are buffered until a newline arrives.
        Malformed records are skipped; a record with done=true ends the
        stream before EOF.

        Args:
            request: Prompt, system instruction and options
            cancel_token: Checked between chunks; raises GenerationCancelledError once set

        Yields:
            Non-empty text chunks
        """
        session = await self._get_session()

        try:
            async with session.post(
                f"{self.base_url}/api/generate",
                json=request.to_payload(stream=True),
                timeout=aiohttp.ClientTimeout(total=None, sock_read=self.timeout),
            ) as response:
                await self._raise_for_status(response)

                buffer = b""
                async for frame in response.content.iter_any():
                    if cancel_token:
                        cancel_token.raise_if_cancelled()
                    buffer += frame
                    *lines, buffer = buffer.split(b"\n")
                    for line in lines:
                        record = self._decode_record(line)
                        if record is None:
                            continue
                        text = record.get("response")
                        if text:
                            if cancel_token:
                                cancel_token.raise_if_cancelled()
                            yield text
                        if record.get("done"):
                            return

                # Trailing record without a newline terminator
                record = self._decode_record(buffer)
                if record and record.get("response"):
                    if cancel_token:
                        cancel_token.raise_if_cancelled()
                    yield record["response"]
        except aiohttp.ClientConnectorError:
            raise self._connection_error()
        except asyncio.TimeoutError:
            raise self._timeout_error()
        except aiohttp.ClientError as e:
            raise ConnectivityError(f"Ollama request failed: {e}", provider="ollama")

    @staticmethod
    def _decode_record(line: bytes) -> dict[str, Any] | None:
        line = line.strip()
        if not line:
            return None
        try:
            record = json.loads(line)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.debug("Skipping malformed stream record: %r", line[:200])
            return None
        return record if isinstance(record, dict) else None

    async def _raise_for_status(self, response: aiohttp.ClientResponse) -> None:
        if response.status == 200:
            return
        error_text = await response.text()
        raise GatewayError(
            f"Ollama request failed ({response.status}): {error_text or response.reason}",
            provider="ollama",
            status_code=response.status,
        )

    def _connection_error(self) -> ConnectivityError:
        return ConnectivityError(
            f"Cannot connect to Ollama at {self.base_url}. "
            "Make sure Ollama is running: ollama serve",
            provider="ollama",
        )

    def _timeout_error(self) -> ConnectivityError:
        return ConnectivityError(
            f"Request timed out after {self.timeout}s. "
            "The model may be loading or the request is too large.",
            provider="ollama",
        )
