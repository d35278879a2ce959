"""Tests for feature generation."""

import json
import logging

import pytest

from conftest import FakeGateway
from project_maker.core.generation import DEFAULT_GENERATION_OPTIONS, FeatureGenerator
from project_maker.llm.base import CancellationToken, GenerateOptions, GenerationCancelledError
from project_maker.llm.prompts import FEATURE_GENERATION_SYSTEM_PROMPT, ParseError
from project_maker.models import FeatureComplexity, FeatureStatus


TODO_FEATURES = json.dumps({"features": [
    {"title": "Project Setup", "description": "Scaffold with Vite", "estimatedComplexity": "low"},
    {"title": "Add Todos", "keyPoints": ["Input box", "Enter to submit"], "estimatedComplexity": "medium"},
    {"title": "Persist Todos", "dependencies": ["Add Todos"], "estimatedComplexity": "high"},
    {"title": "Filter Todos", "estimatedComplexity": "medium"},
    {"title": "Dark Mode", "estimatedComplexity": "low"},
]})


@pytest.fixture
def todo_gateway():
    return FakeGateway(response=TODO_FEATURES)


class TestFeatureGenerator:
    """Tests for FeatureGenerator."""

    @pytest.mark.asyncio
    async def test_generate(self, todo_gateway, feature_store):
        """Test a single-shot generation for the TodoApp scenario."""
        generator = FeatureGenerator(todo_gateway, feature_store, model="qwen2.5-coder:7b")

        features = await generator.generate("TodoApp", "A simple todo list app")

        assert [f.title for f in features][:2] == ["Project Setup", "Add Todos"]
        assert features[2].estimated_complexity == FeatureComplexity.HIGH
        request = todo_gateway.requests[0]
        assert request.model == "qwen2.5-coder:7b"
        assert request.system == FEATURE_GENERATION_SYSTEM_PROMPT
        assert request.options == DEFAULT_GENERATION_OPTIONS
        assert "TodoApp" in request.prompt
        assert "A simple todo list app" in request.prompt

    @pytest.mark.asyncio
    async def test_custom_options(self, todo_gateway, feature_store):
        """Test that explicit options replace the defaults."""
        options = GenerateOptions(temperature=0.1)
        generator = FeatureGenerator(todo_gateway, feature_store, options=options)

        await generator.generate("TodoApp", "A todo app")

        assert todo_gateway.requests[0].options is options

    @pytest.mark.asyncio
    async def test_parse_error_propagates(self, feature_store):
        """Test that unparseable output raises ParseError."""
        generator = FeatureGenerator(FakeGateway(response="Sure! Here are some ideas."), feature_store)

        with pytest.raises(ParseError):
            await generator.generate("TodoApp", "A todo app")

    @pytest.mark.asyncio
    async def test_parse_error_logged_once(self, feature_store, caplog):
        """Test that an unparseable response produces a single error record."""
        generator = FeatureGenerator(FakeGateway(response='[{"title": "Broken"'), feature_store)

        with caplog.at_level(logging.ERROR):
            with pytest.raises(ParseError):
                await generator.generate("TodoApp", "A todo app")

        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert len(errors) == 1
        assert '[{"title": "Broken"' in errors[0].getMessage()

    @pytest.mark.asyncio
    async def test_streaming_reports_cumulative_text(self, feature_store):
        """Test that progress receives the text accumulated so far."""
        chunks = [TODO_FEATURES[:20], TODO_FEATURES[20:60], TODO_FEATURES[60:]]
        generator = FeatureGenerator(FakeGateway(chunks=chunks), feature_store)
        progress = []

        features = await generator.generate_streaming("TodoApp", "A todo app", on_progress=progress.append)

        assert len(features) == 5
        assert progress == [TODO_FEATURES[:20], TODO_FEATURES[:60], TODO_FEATURES]

    @pytest.mark.asyncio
    async def test_streaming_cancelled(self, feature_store):
        """Test that a cancelled stream stops and raises."""
        generator = FeatureGenerator(FakeGateway(chunks=["{", '"features"', ": []}"]), feature_store)
        token = CancellationToken()
        progress = []

        def on_progress(text):
            progress.append(text)
            token.cancel()

        with pytest.raises(GenerationCancelledError):
            await generator.generate_streaming("TodoApp", "A todo app", on_progress, token)

        assert progress == ["{"]

    @pytest.mark.asyncio
    async def test_import_features(self, todo_gateway, feature_store, project):
        """Test importing proposals into the project backlog."""
        generator = FeatureGenerator(todo_gateway, feature_store)
        proposals = await generator.generate("TodoApp", "A todo app")

        features = await generator.import_features(project.id, proposals)

        assert len(features) == 5
        assert [f.order for f in features] == [1, 2, 3, 4, 5]
        backlog = feature_store.list_by_status(project.id, FeatureStatus.BACKLOG)
        assert [f.title for f in backlog] == [p.title for p in proposals]

    @pytest.mark.asyncio
    async def test_connection_and_models(self, feature_store):
        """Test delegation of availability and model listing."""
        generator = FeatureGenerator(FakeGateway(available=False), feature_store)

        assert await generator.check_connection() is False
        assert [m.name for m in await generator.list_models()] == ["llama3"]
