"""
Unit tests for the HTTP surface.

The app is built around an injected generator, so no model is loaded.
"""

import pytest
from fastapi.testclient import TestClient

from textgen_guard import TextGenerator
from textgen_guard.config import ServerConfig
from textgen_guard.exceptions import GeneratorBusyError
from textgen_guard.server import create_app

from conftest import FailingBackend, ScriptedBackend

CONTINUATION = " world. It was a sunny day."


@pytest.fixture
def generator(tokenizer, single_config):
    return TextGenerator(ScriptedBackend(tokenizer, CONTINUATION), single_config)


@pytest.fixture
def client(generator):
    with TestClient(create_app(generator=generator)) as client:
        yield client


class TestGenerateEndpoint:
    """Test POST /generate."""

    def test_single_completion(self, client):
        response = client.post("/generate", json={"prompt": "Hello", "generate_sentences": 1})

        assert response.status_code == 200
        assert response.json() == {"output": " world."}

    def test_unconstrained(self, client):
        response = client.post("/generate", json={"prompt": "Hello"})

        assert response.status_code == 200
        assert response.json() == {"output": CONTINUATION}

    def test_multiple_completions_returned_as_list(self, tokenizer):
        config = ServerConfig(num_beams=3, num_return_sequences=3, max_length=64)
        generator = TextGenerator(ScriptedBackend(tokenizer, CONTINUATION), config)

        with TestClient(create_app(generator=generator)) as client:
            response = client.post("/generate", json={"prompt": "Hello", "generate_sentences": 1})

        assert response.status_code == 200
        assert response.json() == [" world."] * 3

    def test_context_grounding(self, tokenizer, single_config):
        generator = TextGenerator(ScriptedBackend(tokenizer, " jumps over"), single_config)

        with TestClient(create_app(generator=generator)) as client:
            response = client.post("/generate", json={
                "prompt": "The fox",
                "context": ["the quick brown fox jumps"],
            })

        assert response.json() == {"output": " jumps"}

    def test_unknown_fields_ignored(self, client):
        response = client.post("/generate", json={"prompt": "Hello", "temperature": 0.7})

        assert response.status_code == 200

    @pytest.mark.parametrize("body", [
        {},
        {"prompt": ""},
        {"prompt": 42},
        {"prompt": "Hello", "generate_sentences": -1},
        {"prompt": "Hello", "generate_paragraphs": "two"},
        {"prompt": "Hello", "context": "not a list"},
    ])
    def test_invalid_body_rejected(self, client, generator, body):
        response = client.post("/generate", json=body)

        assert response.status_code == 422
        assert generator.backend.calls == []

    def test_malformed_json(self, client):
        response = client.post(
            "/generate",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 400

    def test_body_too_large(self, tokenizer):
        config = ServerConfig(num_beams=1, max_body_bytes=64)
        generator = TextGenerator(ScriptedBackend(tokenizer, CONTINUATION), config)

        with TestClient(create_app(generator=generator)) as client:
            response = client.post("/generate", json={"prompt": "x" * 200})

        assert response.status_code == 413
        assert generator.backend.calls == []

    def test_chunked_body_too_large(self, tokenizer):
        config = ServerConfig(num_beams=1, max_body_bytes=64)
        generator = TextGenerator(ScriptedBackend(tokenizer, CONTINUATION), config)
        chunks = [b'{"prompt": "'] + [b"x" * 32] * 8 + [b'"}']

        with TestClient(create_app(generator=generator)) as client:
            response = client.post(
                "/generate",
                content=iter(chunks),
                headers={"content-type": "application/json"},
            )

        assert response.status_code == 413
        assert generator.backend.calls == []

    def test_chunked_body_within_limit(self, client):
        chunks = [b'{"prompt": ', b'"Hello", ', b'"generate_sentences": 1}']
        response = client.post(
            "/generate",
            content=iter(chunks),
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json() == {"output": " world."}

    def test_busy(self, client, generator, monkeypatch):
        def busy(*args, **kwargs):
            raise GeneratorBusyError("Generator busy: 4 request(s) already waiting")

        monkeypatch.setattr(generator, "generate", busy)
        response = client.post("/generate", json={"prompt": "Hello"})

        assert response.status_code == 503
        assert "busy" in response.json()["detail"]

    def test_generation_failure(self, tokenizer, single_config):
        generator = TextGenerator(FailingBackend(tokenizer), single_config)

        with TestClient(create_app(generator=generator)) as client:
            response = client.post("/generate", json={"prompt": "Hello"})

        assert response.status_code == 500
        assert response.json() == {"detail": "Generation failed"}

    def test_model_not_loaded(self):
        # without entering the client context the lifespan never loads a model
        client = TestClient(create_app(ServerConfig()))
        response = client.post("/generate", json={"prompt": "Hello"})

        assert response.status_code == 503


class TestHealthEndpoint:
    """Test GET /health."""

    def test_health_ready(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["model_loaded"] is True
        assert data["model"] == "scripted"
        assert data["busy"] is False
        assert data["waiting"] == 0

    def test_health_loading(self):
        client = TestClient(create_app(ServerConfig(model_id="gpt2")))
        data = client.get("/health").json()

        assert data["status"] == "loading"
        assert data["model_loaded"] is False
        assert data["model"] == "gpt2"


def test_injected_generator_not_closed_at_shutdown(generator):
    with TestClient(create_app(generator=generator)) as client:
        client.get("/health")

    assert generator.backend.closed is False
