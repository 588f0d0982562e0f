"""
Pytest Configuration and Fixtures.

Shared fixtures: a throwaway SQLite-backed progress store, a scripted text
model standing in for Gemini, and a gateway wired to both with no throttle.
"""
import json
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Add the backend source root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "backend"))

from getpath.ai_gateway import AIGateway  # noqa: E402
from getpath.db import Base  # noqa: E402
from getpath.rate_limit import RateLimiter  # noqa: E402
from getpath.schemas import UserSettings  # noqa: E402
from getpath.store import ProgressStore  # noqa: E402


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)


class ScriptedModel:
    """Text model double: returns queued replies in order and records prompts."""

    def __init__(self, replies=None, error=None):
        self.replies = list(replies or [])
        self.error = error
        self.prompts = []
        self.search_flags = []
        self.closed = 0

    def queue(self, reply):
        if not isinstance(reply, str):
            reply = json.dumps(reply)
        self.replies.append(reply)

    async def generate(self, prompt, *, use_search=False):
        self.prompts.append(prompt)
        self.search_flags.append(use_search)
        if self.error is not None:
            raise self.error
        return self.replies.pop(0)

    async def list_models(self):
        return [{"name": "models/scripted"}]

    async def aclose(self):
        self.closed += 1


@pytest.fixture
def store(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'getpath-test.db'}", future=True)
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
    yield ProgressStore(factory)
    engine.dispose()


@pytest.fixture
def model():
    return ScriptedModel()


@pytest.fixture
def gateway(model):
    return AIGateway(
        limiter=RateLimiter(0),
        model_factory=lambda api_key, name: model,
        server_api_key="server-key",
        default_model="gemini-test",
    )


@pytest.fixture
def user_settings():
    return UserSettings(api_key="user-key", model="gemini-test")


@pytest.fixture
def path_nodes():
    return [
        {"id": "node-1", "title": "Introduction", "description": "Basics of the topic.", "estimatedTime": "10 mins"},
        {"id": "node-2", "title": "Core Concepts", "description": "Deep dive into main ideas.", "estimatedTime": "20 mins"},
        {"id": "node-3", "title": "Advanced Techniques", "description": "Mastering complex skills.", "estimatedTime": "30 mins"},
    ]
