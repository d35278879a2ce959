"""
Feature Generation for Project Maker

Turns a free-text project description into a list of proposed features
using the generation service, and imports accepted proposals into the
Feature Store as one batch.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from ..llm.base import CancellationToken, GenerateOptions, GenerateRequest, LLMGateway, ModelInfo
from ..llm.prompts import (
    FEATURE_GENERATION_SYSTEM_PROMPT,
    build_feature_generation_prompt,
    parse_feature_generation_response,
)
from ..models import Feature, GeneratedFeature
from ..state.feature_store import FeatureStore

logger = logging.getLogger(__name__)

DEFAULT_GENERATION_OPTIONS = GenerateOptions(temperature=0.7, num_predict=4096)


class FeatureGenerator:
    """
    Generates feature proposals for a project.

    Errors from the gateway (GatewayError, ConnectivityError) and from
    parsing (ParseError) propagate to the caller so it can offer a retry.

    Example:
        generator = FeatureGenerator(gateway, store, model="llama3")
        proposals = await generator.generate("TodoApp", "A simple todo list app")
        features = await generator.import_features(project.id, proposals)
    """

    def __init__(
        self,
        gateway: LLMGateway,
        store: FeatureStore,
        model: str = "llama3",
        options: GenerateOptions | None = None,
    ):
        self.gateway = gateway
        self.store = store
        self.model = model
        self.options = options or DEFAULT_GENERATION_OPTIONS

    def _request(self, project_name: str, description: str) -> GenerateRequest:
        return GenerateRequest(
            model=self.model,
            prompt=build_feature_generation_prompt(project_name, description),
            system=FEATURE_GENERATION_SYSTEM_PROMPT,
            options=self.options,
        )

    async def check_connection(self) -> bool:
        return await self.gateway.is_available()

    async def list_models(self) -> list[ModelInfo]:
        return await self.gateway.list_models()

    async def generate(self, project_name: str, description: str) -> list[GeneratedFeature]:
        """
        Generate feature proposals in a single request.

        Raises:
            ParseError: If the response is not a valid feature list
        """
        logger.info("Generating features for project %s with %s", project_name, self.model)
        raw = await self.gateway.generate(self._request(project_name, description))
        features = parse_feature_generation_response(raw)
        logger.info("Generated %d features", len(features))
        return features

    async def generate_streaming(
        self,
        project_name: str,
        description: str,
        on_progress: Callable[[str], None] | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> list[GeneratedFeature]:
        """
        Generate feature proposals while streaming the response.

        Args:
            project_name: Project name embedded in the prompt
            description: Project description embedded in the prompt
            on_progress: Called with the cumulative response text after each chunk
            cancel_token: Cancels the stream between chunks

        Raises:
            GenerationCancelledError: If cancel_token was cancelled
            ParseError: If the completed response is not a valid feature list
        """
        request = self._request(project_name, description)
        response = ""
        async for chunk in self.gateway.generate_stream(request, cancel_token):
            response += chunk
            if on_progress:
                on_progress(response)
        return parse_feature_generation_response(response)

    async def import_features(
        self,
        project_id: str,
        generated: Sequence[GeneratedFeature],
    ) -> list[Feature]:
        """Persist accepted proposals into the backlog of a project."""
        return await self.store.create_batch(project_id, generated)
