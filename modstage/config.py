"""
Configuration management for modstage.

Two layers:
- ExecutionConfig: the immutable tunables for one orchestration run
  (attempt budget, retry delay, debug flag, concurrency). Constructed once
  and passed down explicitly; nothing below the orchestrator reads
  configuration from anywhere else.
- ModstageConfig: the settings file at $MODSTAGE_HOME/config.yaml
  (default ~/.config/modstage/config.yaml), which also names module
  directories, the entry point group and logging options.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from modstage.errors import ConfigError
from modstage.schemas import DEFAULT_PHASES, Phase, normalize_phases


DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_ENTRY_POINT_GROUP = "modstage.modules"

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class ExecutionConfig:
    """
    Tunables for one orchestration run.

    Attributes:
        max_attempts: Attempt budget per module per phase (>= 1)
        retry_delay: Seconds to wait between a failed attempt and the next (>= 0)
        debug: Log every attempt, not only failures and pass boundaries
        concurrent: Run each module's attempt sequence as its own task
            within a phase (the barrier between phases still holds)
    """
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    retry_delay: float = DEFAULT_RETRY_DELAY
    debug: bool = False
    concurrent: bool = False

    def __post_init__(self):
        if isinstance(self.max_attempts, bool) or not isinstance(self.max_attempts, int):
            raise ConfigError(f"max_attempts must be an integer, got {self.max_attempts!r}")
        if self.max_attempts < 1:
            raise ConfigError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if isinstance(self.retry_delay, bool) or not isinstance(self.retry_delay, (int, float)):
            raise ConfigError(f"retry_delay must be a number, got {self.retry_delay!r}")
        if self.retry_delay < 0:
            raise ConfigError(f"retry_delay must be >= 0, got {self.retry_delay}")

    def with_overrides(self, **overrides: Any) -> "ExecutionConfig":
        """Copy with the given fields replaced; None values are ignored."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_attempts": self.max_attempts,
            "retry_delay": self.retry_delay,
            "debug": self.debug,
            "concurrent": self.concurrent,
        }


@dataclass
class ModstageConfig:
    """Contents of the modstage settings file."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    retry_delay: float = DEFAULT_RETRY_DELAY
    debug: bool = False
    concurrent: bool = False
    phases: list[str] = field(default_factory=lambda: [p.name for p in DEFAULT_PHASES])
    module_dirs: list[str] = field(default_factory=list)
    entry_point_group: str = DEFAULT_ENTRY_POINT_GROUP
    log_level: str = "INFO"
    log_format: str = "structured"
    log_file: Optional[str] = None
    env_file: Optional[str] = None

    def execution(self) -> ExecutionConfig:
        """Build the immutable execution settings for one run."""
        return ExecutionConfig(
            max_attempts=self.max_attempts,
            retry_delay=self.retry_delay,
            debug=self.debug,
            concurrent=self.concurrent,
        )

    def phase_sequence(self) -> tuple[Phase, ...]:
        """Configured phases, in order."""
        try:
            return normalize_phases(self.phases)
        except ValueError as e:
            raise ConfigError(f"Invalid phases: {e}") from e

    def module_paths(self) -> list[Path]:
        return [Path(d).expanduser() for d in self.module_dirs]

    def log_file_path(self) -> Optional[Path]:
        return Path(self.log_file).expanduser() if self.log_file else None

    def validate(self) -> None:
        """
        Validate the whole configuration.

        Raises:
            ConfigError: If any value is out of range
        """
        self.execution()
        self.phase_sequence()
        if self.log_format not in ("structured", "pretty"):
            raise ConfigError(f"log_format must be 'structured' or 'pretty', got {self.log_format!r}")
        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigError(f"Unknown log_level: {self.log_level}")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ModstageConfig":
        known = set(cls.__dataclass_fields__)
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.__dataclass_fields__}


def get_modstage_home() -> Path:
    """Directory holding config.yaml; $MODSTAGE_HOME overrides the default."""
    home = os.environ.get("MODSTAGE_HOME")
    if home:
        return Path(home).expanduser()
    return Path("~/.config/modstage").expanduser()


def default_config() -> ModstageConfig:
    """Default settings, with environment overrides applied."""
    return _apply_env_overrides(ModstageConfig())


def _apply_env_overrides(config: ModstageConfig) -> ModstageConfig:
    """Apply MODSTAGE_MAX_ATTEMPTS / MODSTAGE_RETRY_DELAY / MODSTAGE_DEBUG."""
    try:
        if "MODSTAGE_MAX_ATTEMPTS" in os.environ:
            config.max_attempts = int(os.environ["MODSTAGE_MAX_ATTEMPTS"])
        if "MODSTAGE_RETRY_DELAY" in os.environ:
            config.retry_delay = float(os.environ["MODSTAGE_RETRY_DELAY"])
    except ValueError as e:
        raise ConfigError(f"Invalid environment override: {e}") from e
    if "MODSTAGE_DEBUG" in os.environ:
        config.debug = os.environ["MODSTAGE_DEBUG"].strip().lower() in _TRUE_VALUES
    return config


def load_config(config_path: Optional[Path] = None) -> ModstageConfig:
    """
    Load modstage configuration from YAML.

    Args:
        config_path: Path to config file. Defaults to $MODSTAGE_HOME/config.yaml

    Returns:
        ModstageConfig instance

    Raises:
        FileNotFoundError: If the config file does not exist
        ConfigError: If the config is invalid
    """
    if config_path is None:
        config_path = get_modstage_home() / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"modstage config.yaml not found at {config_path}")

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a mapping at the top level")

    config = ModstageConfig.from_dict(data)

    if config.env_file:
        env_path = Path(config.env_file).expanduser()
        if env_path.exists():
            load_dotenv(env_path)

    config = _apply_env_overrides(config)
    config.validate()
    return config
