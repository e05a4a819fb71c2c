import os
from dataclasses import dataclass, field
from pathlib import Path
import logging
from typing import Any, Dict, Optional

import yaml  # type: ignore
from dotenv import load_dotenv  # type: ignore

from parley.constants import (
    DEFAULT_AGENT_ID,
    DEFAULT_DIRECTIVE_INTERVAL,
    DEFAULT_SYSTEM_PROMPT,
    DIRECTIVE_SCAN_WINDOW,
    USER_SPEAKER_ID,
)
from parley.llm.backend_config import BackendConfig
from parley.utils.errors import ConfigError

logger = logging.getLogger(__name__)


def deep_merge_dicts(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            base[key] = deep_merge_dicts(dict(base.get(key, {})), value)
        else:
            base[key] = value
    return base


def _user_config_path() -> Path:
    if os.name == 'posix':  # Linux/macOS
        config_base = Path(os.environ.get('XDG_CONFIG_HOME', Path.home() / '.config'))
    else:  # Windows
        config_base = Path(os.environ.get('APPDATA', Path.home() / 'AppData' / 'Roaming'))
    return config_base / "parley" / "config.yml"


def _read_yaml(path: Path, label: str) -> Dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Error loading {label} config {path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Ignoring {label} config {path}: top level is not a mapping")
        return {}
    logger.debug(f"Loaded {label} config: {path}")
    return data


def load_config(cwd: Optional[Path] = None) -> Dict[str, Any]:
    """Load configuration by merging multiple locations with clear precedence.

    Precedence (lowest → highest):
      1. Package default (parley/config.yml)
      2. User config (~/.config/parley/config.yml or %APPDATA%/parley/config.yml)
      3. Project config (<cwd>/.parley/config.yml)
      4. Explicit override via PARLEY_CONFIG_PATH
      5. Individual PARLEY_* environment variables (see ``_apply_env_overrides``)

    A ``.env`` file in the working directory is loaded first so it can
    supply any of the environment variables above.
    """
    load_dotenv()

    merged: Dict[str, Any] = {}
    layers = [
        (Path(__file__).parent / "config.yml", "package default"),
        (_user_config_path(), "user"),
        ((cwd or Path.cwd()) / ".parley" / "config.yml", "project"),
    ]
    explicit = os.getenv("PARLEY_CONFIG_PATH")
    if explicit:
        explicit_path = Path(explicit).expanduser()
        if not explicit_path.exists():
            raise ConfigError(f"PARLEY_CONFIG_PATH points to a missing file: {explicit_path}")
        layers.append((explicit_path, "explicit"))

    for path, label in layers:
        if path.exists():
            merged = deep_merge_dicts(merged, _read_yaml(path, label))

    return _apply_env_overrides(merged)


def _apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    backend = dict(config.get("backend") or {})
    agent = dict(config.get("agent") or {})

    if os.getenv("PARLEY_BACKEND"):
        backend["provider"] = os.environ["PARLEY_BACKEND"]
    if os.getenv("PARLEY_API_BASE"):
        backend["api_base"] = os.environ["PARLEY_API_BASE"]
    if os.getenv("PARLEY_MODEL"):
        backend["model"] = os.environ["PARLEY_MODEL"]
    if os.getenv("PARLEY_TEMPERATURE"):
        try:
            backend["temperature"] = float(os.environ["PARLEY_TEMPERATURE"])
        except ValueError:
            raise ConfigError(f"PARLEY_TEMPERATURE is not a number: {os.environ['PARLEY_TEMPERATURE']!r}") from None
    if os.getenv("PARLEY_MAX_OUTPUT_TOKENS"):
        try:
            backend["max_output_tokens"] = int(os.environ["PARLEY_MAX_OUTPUT_TOKENS"])
        except ValueError:
            raise ConfigError(
                f"PARLEY_MAX_OUTPUT_TOKENS is not an integer: {os.environ['PARLEY_MAX_OUTPUT_TOKENS']!r}"
            ) from None
    if os.getenv("PARLEY_SYSTEM_PROMPT") is not None:
        agent["system_directive"] = os.environ["PARLEY_SYSTEM_PROMPT"]

    config["backend"] = backend
    config["agent"] = agent
    return config


@dataclass
class AgentSettings:
    """How an Agent builds its running prompt."""
    identity: str = DEFAULT_AGENT_ID
    system_directive: str = DEFAULT_SYSTEM_PROMPT
    user_speaker: str = USER_SPEAKER_ID
    prompt_format: str = "llama2"
    directive_policy: str = "recent_mention"
    directive_window: int = DIRECTIVE_SCAN_WINDOW
    directive_interval: int = DEFAULT_DIRECTIVE_INTERVAL

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "AgentSettings":
        data = dict(data or {})
        known = {f for f in cls.__dataclass_fields__}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown agent settings: {', '.join(sorted(unknown))}")
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class Settings:
    backend: BackendConfig = field(default_factory=BackendConfig)
    agent: AgentSettings = field(default_factory=AgentSettings)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Settings":
        data = data or {}
        return cls(
            backend=BackendConfig.from_dict(data.get("backend")),
            agent=AgentSettings.from_dict(data.get("agent")),
        )

    @classmethod
    def load(cls, cwd: Optional[Path] = None) -> "Settings":
        return cls.from_dict(load_config(cwd))
