# tests/conftest.py

"""
Pytest Fixtures - shared scoring configuration, fake oracle clients and the
FastAPI test client.

The oracle is never called over the network: every test injects a fake chat
client that returns a canned reply or raises a canned error.
"""

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from ai_scorer import AIScoreClient
from config import OracleConfig, ScoringConfig
from orchestrator import ScoringOrchestrator


# =============================================================================
# FAKE ORACLE
# =============================================================================

class FakeCompletions:
    """Stands in for ``client.chat.completions`` of the OpenAI SDK."""

    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeChatClient:
    def __init__(self, reply=None, error=None):
        self.chat = SimpleNamespace(completions=FakeCompletions(reply=reply, error=error))
        self.closed = 0

    async def close(self):
        self.closed += 1

    @property
    def calls(self):
        return self.chat.completions.calls


WRITING_REPLY = """Here is my evaluation:
{"task_achievement": 6.5, "coherence": 7, "vocabulary": 6, "grammar": 6.5, "overall": 6.5,
 "feedback": "Clear position, develop the second argument further."}
Good luck!"""

SPEAKING_REPLY = """```json
{"fluency": 7, "vocabulary": 6.5, "grammar": 6.5, "pronunciation": 7, "overall": 7.0, "feedback": "Natural pace."}
```"""


# =============================================================================
# CONFIGURATION FIXTURES
# =============================================================================

@pytest.fixture
def scoring_config():
    """Scoring config with dummy keys for both providers."""
    deepseek = OracleConfig(name="deepseek", api_key="test-deepseek", base_url="http://deepseek.test", model="deepseek-chat")
    gemini = OracleConfig(name="gemini", api_key="test-gemini", base_url="http://gemini.test", model="gemini-test",
                          max_tokens=300)
    return ScoringConfig(writing=deepseek, speaking=gemini, questions=gemini)


@pytest.fixture
def make_client(scoring_config):
    """Build an AIScoreClient whose providers all answer with the given fake."""
    def _make(reply=None, error=None):
        fake = FakeChatClient(reply=reply, error=error)
        client = AIScoreClient(scoring_config, clients={"deepseek": fake, "gemini": fake})
        return client, fake
    return _make


@pytest.fixture
def failing_client(make_client):
    """Client whose oracle returns prose with no JSON in it."""
    client, _ = make_client(reply="I am unable to score this response right now.")
    return client


@pytest.fixture
def orchestrator(failing_client):
    return ScoringOrchestrator(failing_client)


# =============================================================================
# FASTAPI TEST CLIENT FIXTURE
# =============================================================================

@pytest.fixture
def api(monkeypatch, make_client):
    """TestClient with the database startup disabled and a fake oracle."""
    import database
    import app as app_module

    monkeypatch.setattr(database, "init_db", lambda: None)

    def _api(reply=None, error=None):
        client, fake = make_client(reply=reply, error=error)
        app_module.app.dependency_overrides[app_module.get_ai_client] = lambda: client
        return TestClient(app_module.app), fake

    yield _api
    app_module.app.dependency_overrides.clear()
