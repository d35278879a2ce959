"""Pytest configuration and fixtures for Project Maker tests."""

import asyncio
import json

import pytest
import pytest_asyncio

from project_maker.core.automation import AutomationConfig, AutomationOrchestrator
from project_maker.execution.shell import ScriptedShellExecutor
from project_maker.llm.base import LLMGateway, ModelInfo
from project_maker.state import Database, FeatureStore, ProjectStore


class FakeGateway(LLMGateway):
    """In-memory gateway returning canned responses."""

    def __init__(self, response: str = "", chunks=None, available: bool = True):
        super().__init__("http://fake-ollama")
        self.response = response
        self.chunks = list(chunks or [])
        self.available = available
        self.error: Exception | None = None
        self.requests = []
        self.gate: asyncio.Event | None = None
        self.entered: asyncio.Event | None = None

    def block(self) -> None:
        """Make generate() wait until release() is called."""
        self.gate = asyncio.Event()
        self.entered = asyncio.Event()

    def release(self) -> None:
        self.gate.set()

    async def is_available(self) -> bool:
        return self.available

    async def list_models(self):
        return [ModelInfo(name="llama3", size=4_000_000_000)]

    async def generate(self, request):
        self.requests.append(request)
        if self.entered is not None:
            self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.response

    async def generate_stream(self, request, cancel_token=None):
        self.requests.append(request)
        for chunk in self.chunks:
            if cancel_token:
                cancel_token.raise_if_cancelled()
            yield chunk

    def get_name(self) -> str:
        return "fake"


def plan(*steps) -> str:
    """Build a fenced automation plan answer from (step, command) pairs."""
    body = json.dumps([
        {"step": step, "command": command, "description": f"{step} description"}
        for step, command in steps
    ])
    return f"```json\n{body}\n```"


@pytest.fixture
def fake_gateway():
    """Gateway double with a one-step plan as its default answer."""
    return FakeGateway(response=plan(("Install", "npm install lucide-react")))


@pytest.fixture
def scripted_shell():
    """Shell double where every command succeeds."""
    return ScriptedShellExecutor()


@pytest_asyncio.fixture
async def db():
    """Initialized in-memory database."""
    database = Database()
    await database.init()
    yield database
    await database.close()


@pytest_asyncio.fixture
async def feature_store(db):
    return FeatureStore(db)


@pytest_asyncio.fixture
async def project_store(db):
    return ProjectStore(db)


@pytest_asyncio.fixture
async def project(project_store, tmp_path):
    """An active project rooted in a temporary directory."""
    return await project_store.create("TodoApp", str(tmp_path), "A simple todo list app")


@pytest_asyncio.fixture
async def orchestrator(feature_store, project_store, fake_gateway, scripted_shell):
    return AutomationOrchestrator(
        feature_store,
        project_store,
        fake_gateway,
        scripted_shell,
        AutomationConfig(model="llama3"),
    )
