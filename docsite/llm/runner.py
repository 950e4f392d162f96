"""Adapters around generation backends (OpenAI-compatible HTTP or a CLI)."""

from __future__ import annotations

import json
import os
import socket
import subprocess
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from ..config import LLMConfig
from ..errors import FatalBackendError, TransientBackendError

_AUTO_BASE_URL = object()
_AUTO_API_KEY = object()

TRANSIENT_STATUS_CODES = frozenset({408, 425, 429, 500, 502, 503, 504})


class Backend(Protocol):
    """Anything that turns a prompt into generated text."""

    def run(self, prompt: str, *, system: str | None = None) -> str: ...


@dataclass
class LLMRequest:
    """Represents one inference request for the backend."""

    prompt: str
    system: Optional[str]
    model: Optional[str]
    temperature: Optional[float]
    max_tokens: Optional[int]
    executable: Optional[str]
    base_url: Optional[str]
    api_key: Optional[str]
    request_timeout: Optional[float]


class LLMRunner:
    """Executes prompts against the configured generation backend."""

    DEFAULT_EXECUTABLE = "claude"
    DEFAULT_TIMEOUT = 120.0
    ENV_MODEL_KEYS = ("DOCSITE_LLM_MODEL", "OPENAI_MODEL")
    ENV_BASE_URL_KEYS = ("DOCSITE_LLM_BASE_URL", "OPENAI_BASE_URL")
    ENV_API_KEY_KEYS = ("DOCSITE_LLM_API_KEY", "OPENAI_API_KEY")

    def __init__(
        self,
        model: str | None = None,
        *,
        base_url: str | None | object = _AUTO_BASE_URL,
        executable: str | None = None,
        temperature: Optional[float] = 0.2,
        max_tokens: Optional[int] = None,
        api_key: str | None | object = _AUTO_API_KEY,
        request_timeout: Optional[float] = DEFAULT_TIMEOUT,
        runner: Callable[[LLMRequest], str] | None = None,
    ) -> None:
        self.model = self._resolve_model(model)
        self.base_url = self._resolve_base_url(base_url)
        self.executable = executable or self.DEFAULT_EXECUTABLE
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.api_key = self._resolve_api_key(api_key)
        self.request_timeout = request_timeout
        if runner is not None:
            self._runner = runner
        else:
            self._runner = self._http_runner if self.base_url else self._cli_runner

    @classmethod
    def from_config(cls, config: LLMConfig | None) -> "LLMRunner":
        """Build a runner from the ``llm:`` section of ``.docsite.yml``."""
        if config is None:
            return cls()
        kwargs: dict[str, object] = {}
        if config.runner == "cli":
            kwargs["base_url"] = None
        elif config.base_url:
            kwargs["base_url"] = config.base_url
        if config.api_key:
            kwargs["api_key"] = config.api_key
        if config.temperature is not None:
            kwargs["temperature"] = config.temperature
        if config.request_timeout is not None:
            kwargs["request_timeout"] = config.request_timeout
        runner = cls(
            config.model,
            executable=config.executable,
            max_tokens=config.max_tokens,
            **kwargs,  # type: ignore[arg-type]
        )
        if config.runner == "http" and not runner.base_url:
            raise FatalBackendError("llm.runner is 'http' but no base_url is configured")
        return runner

    def run(self, prompt: str, *, system: str | None = None) -> str:
        """Send the prompt to the backend and return the response text."""
        request = LLMRequest(
            prompt=prompt,
            system=system,
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            executable=self.executable,
            base_url=self.base_url,
            api_key=self.api_key,
            request_timeout=self.request_timeout,
        )
        return self._runner(request)

    @staticmethod
    def _normalize_base_url(url: str) -> str:
        return url.rstrip("/")

    @staticmethod
    def _cli_runner(request: LLMRequest) -> str:
        args = [request.executable or LLMRunner.DEFAULT_EXECUTABLE, "-p"]
        if request.model:
            args.extend(["--model", request.model])
        if request.system:
            args.extend(["--append-system-prompt", request.system])
        try:
            completed = subprocess.run(
                args,
                input=request.prompt,
                capture_output=True,
                text=True,
                timeout=request.request_timeout,
            )
        except FileNotFoundError as exc:
            raise FatalBackendError(
                f"Unable to locate '{args[0]}'. Install it or configure llm.base_url."
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise TransientBackendError(
                f"'{args[0]}' did not answer within {request.request_timeout}s"
            ) from exc
        if completed.returncode != 0:
            raise FatalBackendError(
                f"'{args[0]}' failed with exit code {completed.returncode}: {completed.stderr.strip()}"
            )
        output = completed.stdout.strip()
        if not output:
            raise TransientBackendError(f"'{args[0]}' returned an empty response")
        return output

    @staticmethod
    def _http_runner(request: LLMRequest) -> str:
        if not request.base_url:
            raise FatalBackendError("HTTP runner requires a base_url to be configured.")
        endpoint = f"{request.base_url}/chat/completions"
        payload: dict[str, object] = {
            "messages": LLMRunner._build_messages(request.system, request.prompt),
        }
        if request.model:
            payload["model"] = request.model
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.max_tokens is not None:
            payload["max_tokens"] = request.max_tokens

        data = json.dumps(payload).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if request.api_key:
            headers["Authorization"] = f"Bearer {request.api_key}"

        http_request = Request(endpoint, data=data, headers=headers, method="POST")
        timeout = request.request_timeout or LLMRunner.DEFAULT_TIMEOUT

        try:
            with urlopen(http_request, timeout=timeout) as response:  # type: ignore[arg-type]
                raw = response.read()
        except HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="ignore") if hasattr(exc, "read") else ""
            message = detail.strip() or exc.reason
            error_cls = (
                TransientBackendError if exc.code in TRANSIENT_STATUS_CODES else FatalBackendError
            )
            raise error_cls(f"LLM HTTP runner failed with status {exc.code}: {message}") from exc
        except URLError as exc:
            raise TransientBackendError(f"LLM HTTP runner failed: {exc.reason}") from exc
        except (TimeoutError, socket.timeout) as exc:
            raise TransientBackendError(f"LLM HTTP runner timed out after {timeout}s") from exc

        try:
            response_payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise TransientBackendError("LLM HTTP runner returned invalid JSON") from exc

        content = LLMRunner._extract_content(response_payload)
        if not content.strip():
            raise TransientBackendError("LLM HTTP runner returned an empty response")
        return content.strip()

    @staticmethod
    def _build_messages(system: str | None, prompt: str) -> list[dict[str, str]]:
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return messages

    @staticmethod
    def _extract_content(payload: object) -> str:
        if not isinstance(payload, dict):
            return ""
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            return ""
        first = choices[0]
        if not isinstance(first, dict):
            return ""
        message = first.get("message")
        if isinstance(message, dict):
            content = message.get("content")
            if isinstance(content, str):
                return content
        text = first.get("text")
        if isinstance(text, str):
            return text
        return ""

    def _resolve_model(self, model: str | None) -> str | None:
        if model:
            return model
        return self._first_env_value(self.ENV_MODEL_KEYS)

    def _resolve_base_url(self, base_url: str | None | object) -> str | None:
        if base_url is None:
            return None
        if base_url is not _AUTO_BASE_URL:
            return self._normalize_base_url(str(base_url))
        env_value = self._first_env_value(self.ENV_BASE_URL_KEYS)
        if env_value:
            return self._normalize_base_url(env_value)
        return None

    def _resolve_api_key(self, api_key: str | None | object) -> str | None:
        if api_key is _AUTO_API_KEY:
            return self._first_env_value(self.ENV_API_KEY_KEYS)
        return api_key  # type: ignore[return-value]

    @staticmethod
    def _first_env_value(keys: Sequence[str]) -> str | None:
        for key in keys:
            value = os.getenv(key)
            if value:
                return value
        return None


__all__ = ["Backend", "LLMRequest", "LLMRunner", "TRANSIENT_STATUS_CODES"]
