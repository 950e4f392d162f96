"""Configuration loading for docsite (.docsite.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

CONFIG_FILENAME = ".docsite.yml"
STATE_DIRNAME = ".docsite"


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass
class LLMConfig:
    """Generation backend settings."""

    runner: Optional[str] = None
    model: Optional[str] = None
    executable: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    request_timeout: Optional[float] = None


@dataclass
class RetryConfig:
    """Bounded retry policy for transient backend failures."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0


@dataclass
class PlanConfig:
    """Phase 1 validation bounds."""

    max_attempts: int = 3
    max_depth: int = 3


@dataclass
class ContextConfig:
    """Prompt budget limits."""

    max_file_bytes: int = 24_000
    max_context_bytes: int = 120_000
    max_tree_entries: int = 1_500


@dataclass
class CleanupConfig:
    """Output reconciliation behaviour."""

    destructive: bool = False


@dataclass
class SiteConfig:
    """Template-variable overrides for the rendered site."""

    name: Optional[str] = None
    description: Optional[str] = None
    logo: Optional[str] = None


@dataclass
class DocsiteConfig:
    """Represents the settings defined in .docsite.yml."""

    root: Path
    output_dir: str = "docs"
    cache_path: str = f"{STATE_DIRNAME}/cache.json"
    ignore: List[str] = field(default_factory=list)
    concurrency: int = 4
    cancel_grace_period: float = 10.0
    retry: RetryConfig = field(default_factory=RetryConfig)
    plan: PlanConfig = field(default_factory=PlanConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    cleanup: CleanupConfig = field(default_factory=CleanupConfig)
    llm: Optional[LLMConfig] = None
    site: SiteConfig = field(default_factory=SiteConfig)

    @property
    def output_path(self) -> Path:
        return (self.root / self.output_dir).resolve()

    @property
    def cache_file(self) -> Path:
        return (self.root / self.cache_path).resolve()

    @property
    def state_dir(self) -> Path:
        return self.root / STATE_DIRNAME

    @property
    def plan_file(self) -> Path:
        return self.state_dir / "plan.json"


def load_config(config_path: Path) -> DocsiteConfig:
    """Load configuration from disk."""
    config_file = _resolve_config_path(Path(config_path))
    root = config_file.parent.resolve()

    if not config_file.exists():
        return DocsiteConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    config = DocsiteConfig(root=root)

    output_dir = _as_str(data.get("output_dir"))
    if output_dir:
        config.output_dir = output_dir
    cache_path = _as_str(data.get("cache_path"))
    if cache_path:
        config.cache_path = cache_path
    config.ignore = _as_str_list(data.get("ignore"))

    concurrency = _as_int(data.get("concurrency"))
    if concurrency is not None:
        if concurrency < 1:
            raise ConfigError("concurrency must be at least 1")
        config.concurrency = concurrency
    grace = _as_float(data.get("cancel_grace_period"))
    if grace is not None:
        config.cancel_grace_period = max(0.0, grace)

    retry_data = _as_dict(data.get("retry"))
    if retry_data:
        attempts = _as_int(retry_data.get("max_attempts"))
        if attempts is not None:
            if attempts < 1:
                raise ConfigError("retry.max_attempts must be at least 1")
            config.retry.max_attempts = attempts
        base_delay = _as_float(retry_data.get("base_delay"))
        if base_delay is not None:
            config.retry.base_delay = max(0.0, base_delay)
        max_delay = _as_float(retry_data.get("max_delay"))
        if max_delay is not None:
            config.retry.max_delay = max(0.0, max_delay)

    plan_data = _as_dict(data.get("plan"))
    if plan_data:
        attempts = _as_int(plan_data.get("max_attempts"))
        if attempts is not None:
            if attempts < 1:
                raise ConfigError("plan.max_attempts must be at least 1")
            config.plan.max_attempts = attempts
        depth = _as_int(plan_data.get("max_depth"))
        if depth is not None:
            if depth < 1:
                raise ConfigError("plan.max_depth must be at least 1")
            config.plan.max_depth = depth

    context_data = _as_dict(data.get("context"))
    if context_data:
        for name in ("max_file_bytes", "max_context_bytes", "max_tree_entries"):
            value = _as_int(context_data.get(name))
            if value is not None:
                setattr(config.context, name, max(0, value))

    cleanup_data = _as_dict(data.get("cleanup"))
    if cleanup_data:
        config.cleanup.destructive = _as_bool(cleanup_data.get("destructive")) or False

    llm_data = _as_dict(data.get("llm"))
    if llm_data:
        llm = LLMConfig(
            runner=_as_str(llm_data.get("runner")),
            model=_as_str(llm_data.get("model")),
            executable=_as_str(llm_data.get("executable")),
            temperature=_as_float(llm_data.get("temperature")),
            max_tokens=_as_int(llm_data.get("max_tokens")),
            base_url=_as_str(llm_data.get("base_url")),
            api_key=_as_str(llm_data.get("api_key")),
            request_timeout=_as_float(llm_data.get("request_timeout")),
        )
        if any(value is not None for value in vars(llm).values()):
            config.llm = llm

    site_data = _as_dict(data.get("site"))
    if site_data:
        config.site = SiteConfig(
            name=_as_str(site_data.get("name")),
            description=_as_str(site_data.get("description")),
            logo=_as_str(site_data.get("logo")),
        )

    return config


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return str(value).lower()
    return str(value) if isinstance(value, (str, int, float)) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1", "on"}:
            return True
        if lowered in {"false", "no", "0", "off"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []
