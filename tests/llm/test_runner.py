"""Tests for the generation backend runner."""

from __future__ import annotations

import io
import json
import subprocess
from urllib.error import HTTPError, URLError

import pytest

from docsite.config import LLMConfig
from docsite.errors import FatalBackendError, TransientBackendError
from docsite.llm.runner import LLMRunner


class FakeResponse:
    def __init__(self, payload):
        self._payload = payload

    def read(self):
        if isinstance(self._payload, bytes):
            return self._payload
        return json.dumps(self._payload).encode("utf-8")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


@pytest.fixture(autouse=True)
def _clear_backend_env(monkeypatch) -> None:
    for key in LLMRunner.ENV_MODEL_KEYS + LLMRunner.ENV_BASE_URL_KEYS + LLMRunner.ENV_API_KEY_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_llm_runner_constructs_request() -> None:
    captured = {}

    def fake_runner(request):
        captured["prompt"] = request.prompt
        captured["system"] = request.system
        captured["model"] = request.model
        captured["temperature"] = request.temperature
        captured["max_tokens"] = request.max_tokens
        captured["executable"] = request.executable
        captured["base_url"] = request.base_url
        captured["api_key"] = request.api_key
        captured["request_timeout"] = request.request_timeout
        return "response"

    runner = LLMRunner(
        model="custom-model",
        base_url=None,
        executable="claude",
        temperature=0.15,
        max_tokens=256,
        request_timeout=42.0,
        runner=fake_runner,
    )
    result = runner.run("Hello world", system="system message")

    assert result == "response"
    assert captured == {
        "prompt": "Hello world",
        "system": "system message",
        "model": "custom-model",
        "temperature": 0.15,
        "max_tokens": 256,
        "executable": "claude",
        "base_url": None,
        "api_key": None,
        "request_timeout": 42.0,
    }


def test_llm_runner_http_posts_payload(monkeypatch) -> None:
    captured = {}

    def fake_urlopen(request, timeout=None):
        captured["url"] = request.full_url
        captured["headers"] = {k.lower(): v for k, v in request.header_items()}
        captured["payload"] = json.loads(request.data.decode("utf-8"))
        captured["timeout"] = timeout
        return FakeResponse({"choices": [{"message": {"content": "# Overview\n\nWhales are mammals.\n"}}]})

    monkeypatch.setattr("docsite.llm.runner.urlopen", fake_urlopen)

    runner = LLMRunner(
        model="gpt-4o-mini",
        base_url="https://api.example.com/v1/",
        api_key="secret-key",
        temperature=0.05,
        max_tokens=128,
        request_timeout=25.0,
    )
    result = runner.run("Document the whales module.", system="Act like a technical writer.")

    assert result == "# Overview\n\nWhales are mammals."
    assert captured["url"] == "https://api.example.com/v1/chat/completions"
    headers = captured["headers"]
    assert headers["content-type"] == "application/json"
    assert headers["authorization"] == "Bearer secret-key"
    payload = captured["payload"]
    assert payload["model"] == "gpt-4o-mini"
    assert payload["messages"][0] == {"role": "system", "content": "Act like a technical writer."}
    assert payload["messages"][1] == {"role": "user", "content": "Document the whales module."}
    assert payload["temperature"] == 0.05
    assert payload["max_tokens"] == 128
    assert captured["timeout"] == 25.0


@pytest.mark.parametrize(
    ("code", "expected"),
    [
        (429, TransientBackendError),
        (503, TransientBackendError),
        (408, TransientBackendError),
        (400, FatalBackendError),
        (401, FatalBackendError),
        (404, FatalBackendError),
    ],
)
def test_http_status_codes_map_to_error_classes(monkeypatch, code, expected) -> None:
    def fake_urlopen(request, timeout=None):
        raise HTTPError(request.full_url, code, "error", {}, io.BytesIO(b'{"error": "details"}'))

    monkeypatch.setattr("docsite.llm.runner.urlopen", fake_urlopen)
    runner = LLMRunner(base_url="https://api.example.com/v1")

    with pytest.raises(expected) as excinfo:
        runner.run("prompt")

    assert str(code) in str(excinfo.value)
    assert "details" in str(excinfo.value)


@pytest.mark.parametrize(
    "response",
    [
        FakeResponse(b"<html>gateway</html>"),
        FakeResponse({"choices": []}),
        FakeResponse({"choices": [{"message": {"content": "   "}}]}),
    ],
    ids=["invalid-json", "no-choices", "blank-content"],
)
def test_unusable_http_responses_are_transient(monkeypatch, response) -> None:
    monkeypatch.setattr("docsite.llm.runner.urlopen", lambda request, timeout=None: response)

    with pytest.raises(TransientBackendError):
        LLMRunner(base_url="https://api.example.com/v1").run("prompt")


def test_connection_errors_are_transient(monkeypatch) -> None:
    def fake_urlopen(request, timeout=None):
        raise URLError("connection refused")

    monkeypatch.setattr("docsite.llm.runner.urlopen", fake_urlopen)

    with pytest.raises(TransientBackendError, match="connection refused"):
        LLMRunner(base_url="https://api.example.com/v1").run("prompt")


def test_http_runner_accepts_legacy_text_choice(monkeypatch) -> None:
    monkeypatch.setattr(
        "docsite.llm.runner.urlopen",
        lambda request, timeout=None: FakeResponse({"choices": [{"text": "plain"}]}),
    )

    assert LLMRunner(base_url="https://api.example.com/v1").run("prompt") == "plain"


def test_cli_runner_passes_prompt_on_stdin(monkeypatch) -> None:
    captured = {}

    def fake_run(args, **kwargs):
        captured["args"] = args
        captured.update(kwargs)
        return subprocess.CompletedProcess(args, 0, stdout="# Page\n\nBody\n", stderr="")

    monkeypatch.setattr("docsite.llm.runner.subprocess.run", fake_run)

    runner = LLMRunner(model="sonnet", base_url=None, request_timeout=30.0)
    result = runner.run("Write the page", system="Be concise")

    assert result == "# Page\n\nBody"
    assert captured["args"] == ["claude", "-p", "--model", "sonnet", "--append-system-prompt", "Be concise"]
    assert captured["input"] == "Write the page"
    assert captured["timeout"] == 30.0


@pytest.mark.parametrize(
    ("side_effect", "expected"),
    [
        (FileNotFoundError("claude"), FatalBackendError),
        (subprocess.TimeoutExpired(["claude"], 30), TransientBackendError),
    ],
)
def test_cli_runner_error_mapping(monkeypatch, side_effect, expected) -> None:
    def fake_run(args, **kwargs):
        raise side_effect

    monkeypatch.setattr("docsite.llm.runner.subprocess.run", fake_run)

    with pytest.raises(expected):
        LLMRunner(base_url=None).run("prompt")


def test_cli_runner_nonzero_exit_is_fatal(monkeypatch) -> None:
    monkeypatch.setattr(
        "docsite.llm.runner.subprocess.run",
        lambda args, **kwargs: subprocess.CompletedProcess(args, 2, stdout="", stderr="not logged in"),
    )

    with pytest.raises(FatalBackendError, match="not logged in"):
        LLMRunner(base_url=None).run("prompt")


def test_environment_supplies_http_settings(monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_BASE_URL", "https://env.example.com/v1/")
    monkeypatch.setenv("DOCSITE_LLM_MODEL", "env-model")
    monkeypatch.setenv("OPENAI_API_KEY", "env-key")

    runner = LLMRunner()

    assert runner.base_url == "https://env.example.com/v1"
    assert runner.model == "env-model"
    assert runner.api_key == "env-key"


def test_from_config_cli_runner_ignores_environment_base_url(monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_BASE_URL", "https://env.example.com/v1")

    runner = LLMRunner.from_config(LLMConfig(runner="cli", executable="my-cli", model="m"))

    assert runner.base_url is None
    assert runner.executable == "my-cli"
    assert runner.model == "m"


def test_from_config_http_requires_base_url() -> None:
    with pytest.raises(FatalBackendError):
        LLMRunner.from_config(LLMConfig(runner="http"))


def test_from_config_applies_http_settings() -> None:
    runner = LLMRunner.from_config(
        LLMConfig(base_url="https://api.example.com/v1", api_key="k", temperature=0.3, request_timeout=9.0)
    )

    assert runner.base_url == "https://api.example.com/v1"
    assert runner.api_key == "k"
    assert runner.temperature == 0.3
    assert runner.request_timeout == 9.0
