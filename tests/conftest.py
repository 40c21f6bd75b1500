import pytest
from fastapi.testclient import TestClient

import ai_client
import app as app_module
from config import Settings
from storage import RecordStore


class FakeResponse:

    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeOpenRouter:
    """Stands in for requests.post; answers per model and records every call.

    An answer is the completion text, an int HTTP status, or an exception to raise.
    Models without an answer get a 500.
    """

    def __init__(self):
        self.answers = {}
        self.calls = []

    def __call__(self, url, headers=None, json=None, timeout=None, **kw):
        self.calls.append({"url": url, "headers": headers, "json": json})
        answer = self.answers.get(json["model"], 500)
        if isinstance(answer, Exception):
            raise answer
        if isinstance(answer, int):
            return FakeResponse(answer, text="upstream down")
        return FakeResponse(200, {
            "choices": [{"message": {"role": "assistant", "content": answer}}],
            "model": json["model"],
            "usage": {"total_tokens": 3},
        })

    @property
    def models(self):
        return [c["json"]["model"] for c in self.calls]


@pytest.fixture
def settings(tmp_path):
    return Settings(
        openrouter_api_key="sk-test",
        default_models=["m/a", "m/b", "m/c", "m/d"],
        allowed_models=["m/a", "m/b", "m/c", "m/d", "m/fallback", "m/pinned"],
        fallback_model="m/fallback",
        deploy_delay=0,
        data_dir=str(tmp_path / "data"),
    )


@pytest.fixture
def store(settings):
    return RecordStore(settings.data_dir)


@pytest.fixture
def client(settings, store, monkeypatch):
    monkeypatch.setattr(app_module.app.state, "settings", settings)
    monkeypatch.setattr(app_module.app.state, "store", store)
    return TestClient(app_module.app)


@pytest.fixture
def openrouter(monkeypatch):
    fake = FakeOpenRouter()
    monkeypatch.setattr(ai_client.requests, "post", fake)
    return fake
