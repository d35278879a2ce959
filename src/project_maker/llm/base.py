"""
LLM Gateway Base Classes

Defines the abstract interface for generation services, the request/response
types they exchange, and the error taxonomy raised at the network boundary.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any


@dataclass
class GenerateOptions:
    """
    Sampling options forwarded to the model.

    Attributes:
        temperature: Sampling temperature
        top_p: Nucleus sampling cutoff
        num_predict: Maximum number of tokens to generate
    """
    temperature: float | None = None
    top_p: float | None = None
    num_predict: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary, omitting unset options."""
        data = {
            "temperature": self.temperature,
            "top_p": self.top_p,
            "num_predict": self.num_predict,
        }
        return {key: value for key, value in data.items() if value is not None}


@dataclass
class GenerateRequest:
    """
    A single prompt sent to the generation service.

    Attributes:
        model: Model identifier
        prompt: User prompt
        system: Optional system instruction
        options: Optional sampling options
    """
    model: str
    prompt: str
    system: str | None = None
    options: GenerateOptions | None = None

    def to_payload(self, stream: bool) -> dict[str, Any]:
        """Build the JSON body for a generate call."""
        payload: dict[str, Any] = {
            "model": self.model,
            "prompt": self.prompt,
            "stream": stream,
        }
        if self.system:
            payload["system"] = self.system
        if self.options:
            options = self.options.to_dict()
            if options:
                payload["options"] = options
        return payload


@dataclass
class ModelInfo:
    """A model installed on the generation service."""
    name: str
    size: int = 0
    digest: str = ""
    modified_at: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ModelInfo":
        """Create from dictionary."""
        return cls(
            name=data.get("name", ""),
            size=data.get("size", 0) or 0,
            digest=data.get("digest", ""),
            modified_at=data.get("modified_at", ""),
        )


@dataclass
class CancellationToken:
    """
    Cooperative cancellation flag for streaming generation.

    The producer checks the flag between chunks; once set, no further
    chunks are handed to the consumer.
    """
    reason: str = "Generation cancelled"
    _cancelled: bool = field(default=False, repr=False)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        """Raise GenerationCancelledError if cancellation was requested."""
        if self._cancelled:
            raise GenerationCancelledError(self.reason)


class LLMGateway(ABC):
    """
    Abstract base class for generation services.

    Subclasses must implement:
    - is_available(): Lightweight capability probe, never raises
    - list_models(): Models installed on the service
    - generate(): Single request/response completion
    - generate_stream(): Incremental completion as an async iterator
    - get_name(): Return the gateway name
    """

    def __init__(self, base_url: str, **kwargs: Any):
        """
        Initialize the gateway.

        Args:
            base_url: Base URL for API requests (trailing slash is stripped)
            **kwargs: Additional gateway-specific configuration
        """
        self._base_url = base_url.rstrip("/")
        self.config = kwargs

    @property
    def base_url(self) -> str:
        return self._base_url

    def set_base_url(self, url: str) -> None:
        self._base_url = url.rstrip("/")

    @abstractmethod
    async def is_available(self) -> bool:
        """
        Check whether the service is reachable.

        Returns:
            True if the service answered the probe successfully
        """

    @abstractmethod
    async def list_models(self) -> list[ModelInfo]:
        """
        List installed models.

        Raises:
            GatewayError: If the service answers with a non-success status
            ConnectivityError: If the service cannot be reached
        """

    @abstractmethod
    async def generate(self, request: GenerateRequest) -> str:
        """
        Generate a full completion.

        Returns:
            The complete response text

        Raises:
            GatewayError: If the service answers with a non-success status
            ConnectivityError: If the service cannot be reached
        """

    @abstractmethod
    def generate_stream(
        self,
        request: GenerateRequest,
        cancel_token: CancellationToken | None = None,
    ) -> AsyncIterator[str]:
        """
        Generate a completion incrementally.

        Yields:
            Text chunks in arrival order

        Raises:
            GenerationCancelledError: If cancel_token was cancelled mid-stream
            GatewayError: If the service answers with a non-success status
        """

    @abstractmethod
    def get_name(self) -> str:
        """Get the name of this gateway (e.g. "ollama")."""

    async def close(self) -> None:
        """Release network resources held by the gateway."""


class LLMError(Exception):
    """Base exception for LLM-related errors."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
        response: dict[str, Any] | None = None
    ):
        """
        Initialize LLM error.

        Args:
            message: Error message
            provider: Name of the gateway that raised the error
            status_code: HTTP status code (if applicable)
            response: Raw response data (if available)
        """
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.response = response


class ConnectivityError(LLMError):
    """Raised when the service is unreachable or times out."""
    pass


class GatewayError(LLMError):
    """Raised when the service answers with a non-success HTTP status."""
    pass


class GenerationCancelledError(LLMError):
    """Raised when the consumer cancels a streaming generation."""
    pass
