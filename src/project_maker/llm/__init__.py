"""
Project Maker LLM Module

Provides the gateway abstraction over the local generation service and the
prompt builders/parsers used for feature generation and automation planning.
"""

from .base import (
    CancellationToken,
    ConnectivityError,
    GatewayError,
    GenerateOptions,
    GenerateRequest,
    GenerationCancelledError,
    LLMError,
    LLMGateway,
    ModelInfo,
)
from .ollama import OllamaGateway
from .prompts import ParseError

__all__ = [
    "CancellationToken",
    "ConnectivityError",
    "GatewayError",
    "GenerateOptions",
    "GenerateRequest",
    "GenerationCancelledError",
    "LLMError",
    "LLMGateway",
    "ModelInfo",
    "OllamaGateway",
    "ParseError",
]
