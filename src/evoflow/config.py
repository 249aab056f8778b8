"""
Configuration loader for EvoFlow.

Loads executor, circuit breaker and routing settings from:
1. Project-level: ./evoflow.toml or ./evoflow.yaml
2. User-level: ~/.evoflow/config.toml or ~/.evoflow/config.yaml
3. Environment variables (EVOFLOW_*), which override file values
4. .env files (automatically loaded from current directory)

Priority: Explicit params > Environment vars > Config file > Defaults

Example evoflow.toml:
    ```toml
    [executor]
    max_retries = 2
    timeout_per_tool_ms = 15000

    [circuit_breaker]
    failure_threshold = 3

    [routing]
    strategy = "CostOptimized"

    [routing.default_route]
    primary_provider = "azure_openai"
    primary_model = "gpt-4"
    cost_per_1k_tokens = 0.03

    [routing.routes.CodeGeneration]
    primary_provider = "ollama"
    primary_model = "qwen2.5-coder:7b"
    cost_per_1k_tokens = 0.0
    ```
"""

from __future__ import annotations

import os
import tomllib
import warnings
from pathlib import Path
from typing import Any, Callable

import yaml
from dotenv import load_dotenv

from evoflow.core.errors import ConfigurationError
from evoflow.llm.router import RouterOptions
from evoflow.llm.routing.routes import RoutingOptions
from evoflow.resilience.circuit_breaker import CircuitBreakerOptions
from evoflow.tools.executor import ToolExecutorOptions

# Auto-load .env file if it exists
load_dotenv()


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


# env var -> (section, key, parser)
ENV_OVERRIDES: dict[str, tuple[str, str, Callable[[str], Any]]] = {
    "EVOFLOW_MAX_RETRIES": ("executor", "max_retries", int),
    "EVOFLOW_INITIAL_RETRY_DELAY_MS": ("executor", "initial_retry_delay_ms", int),
    "EVOFLOW_MAX_RETRY_DELAY_MS": ("executor", "max_retry_delay_ms", int),
    "EVOFLOW_USE_EXPONENTIAL_BACKOFF": ("executor", "use_exponential_backoff", _parse_bool),
    "EVOFLOW_TIMEOUT_PER_TOOL_MS": ("executor", "timeout_per_tool_ms", int),
    "EVOFLOW_MAX_HISTORY_SIZE": ("executor", "max_history_size", int),
    "EVOFLOW_FAILURE_THRESHOLD": ("circuit_breaker", "failure_threshold", int),
    "EVOFLOW_OPEN_DURATION_SECONDS": ("circuit_breaker", "open_duration_seconds", float),
    "EVOFLOW_REQUEST_TIMEOUT_SECONDS": ("router", "request_timeout_seconds", float),
    "EVOFLOW_ENABLE_FALLBACK": ("router", "enable_fallback", _parse_bool),
    "EVOFLOW_ROUTING_STRATEGY": ("routing", "strategy", str),
}


def find_config_file() -> Path | None:
    """Find configuration file in standard locations.

    Checks in order:
    1. ./evoflow.toml
    2. ./evoflow.yaml
    3. ~/.evoflow/config.toml
    4. ~/.evoflow/config.yaml

    Returns:
        Path to config file or None if not found
    """
    candidates = [
        Path.cwd() / "evoflow.toml",
        Path.cwd() / "evoflow.yaml",
        Path.home() / ".evoflow" / "config.toml",
        Path.home() / ".evoflow" / "config.yaml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def load_toml(path: Path) -> dict[str, Any]:
    """Load TOML configuration file."""
    with open(path, "rb") as f:
        return tomllib.load(f)


def load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML configuration file."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Load configuration from file.

    Args:
        path: Explicit config file; discovered when omitted

    Returns:
        Configuration dictionary or empty dict if no config found
    """
    config_path = path or find_config_file()
    if not config_path:
        return {}

    try:
        if config_path.suffix == ".toml":
            return load_toml(config_path)
        if config_path.suffix in (".yaml", ".yml"):
            return load_yaml(config_path)
        return {}
    except (OSError, tomllib.TOMLDecodeError, yaml.YAMLError) as e:
        if path is not None:
            raise ConfigurationError(f"Failed to load config from {config_path}: {e}") from e
        # Don't fail on a discovered file, just warn
        warnings.warn(f"Failed to load config from {config_path}: {e}")
        return {}


def get_section(name: str, config: dict[str, Any] | None = None) -> dict[str, Any]:
    """Get one config section with environment overrides applied.

    Args:
        name: Section name (executor, circuit_breaker, router, routing)
        config: Parsed config; loaded from disk when omitted

    Returns:
        Section dictionary (a copy)
    """
    if config is None:
        config = load_config()
    section = dict(config.get(name) or {})

    for env_var, (target, key, parse) in ENV_OVERRIDES.items():
        if target != name:
            continue
        raw = os.environ.get(env_var)
        if raw is None or raw == "":
            continue
        try:
            section[key] = parse(raw)
        except ValueError as e:
            raise ConfigurationError(f"Invalid value for {env_var}: {e}") from e
    return section


def _build(cls: type, section: dict[str, Any], overrides: dict[str, Any]) -> Any:
    fields = cls.__dataclass_fields__
    unknown = sorted(set(overrides) - set(fields))
    if unknown:
        raise TypeError(f"Unknown {cls.__name__} option(s): {', '.join(unknown)}")
    values = {k: v for k, v in section.items() if k in fields}
    values.update(overrides)
    return cls(**values)


def load_executor_options(config: dict[str, Any] | None = None, **overrides: Any) -> ToolExecutorOptions:
    """Load and validate ``ToolExecutorOptions``."""
    options = _build(ToolExecutorOptions, get_section("executor", config), overrides)
    options.validate()
    return options


def load_circuit_breaker_options(
    config: dict[str, Any] | None = None, **overrides: Any
) -> CircuitBreakerOptions:
    """Load and validate ``CircuitBreakerOptions``."""
    options = _build(CircuitBreakerOptions, get_section("circuit_breaker", config), overrides)
    options.validate()
    return options


def load_router_options(config: dict[str, Any] | None = None, **overrides: Any) -> RouterOptions:
    """Load and validate ``RouterOptions``."""
    options = _build(RouterOptions, get_section("router", config), overrides)
    options.validate()
    return options


def load_routing_options(config: dict[str, Any] | None = None, **overrides: Any) -> RoutingOptions:
    """Load and validate ``RoutingOptions`` including the route table."""
    section = get_section("routing", config)
    section.update(overrides)
    options = RoutingOptions.from_dict(section)
    options.validate()
    return options
