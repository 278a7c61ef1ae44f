from typing import Dict, List

import pytest
from fastapi.testclient import TestClient

from relaychat.completion import MockCompletionClient
from relaychat.config import Settings
from relaychat.main import create_app


class RecordingClient(MockCompletionClient):
    """Mock client that remembers every message sequence it was asked to complete."""

    def __init__(self) -> None:
        self.calls: List[List[Dict[str, str]]] = []

    async def complete(self, messages):
        self.calls.append(messages)
        return await super().complete(messages)


@pytest.fixture
def settings(tmp_path):
    static = tmp_path / "frontend"
    static.mkdir()
    (static / "login.html").write_text("<h1>login</h1>", encoding="utf-8")
    return Settings(
        debug_mock=True,
        data_dir=str(tmp_path / "db"),
        static_dir=str(static),
        prompt_path=str(tmp_path / "prompt.ini"),
        max_body_bytes=1024,
        recent_pairs=1,
    )


@pytest.fixture
def recorder():
    return RecordingClient()


@pytest.fixture
def app(settings, recorder):
    return create_app(settings, completion_client=recorder)


@pytest.fixture
def client(app):
    return TestClient(app)
