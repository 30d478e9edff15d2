"""Runtime configuration for execution hosts and improvement cycles."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from agent_cycle.errors import ConfigurationError

VERSION_BUMPS: tuple[str, ...] = ("major", "minor", "patch")
LOG_LEVELS: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(slots=True)
class ExecutionSettings:
    """Per-execution scheduling and retry settings."""

    concurrency: int = 1
    validation_max_attempts: int = 3
    validation_retry_delay_seconds: float = 0.0


@dataclass(slots=True)
class CycleSettings:
    """Improvement-cycle controller settings."""

    safety_max_rounds: int = 50
    version_bump: str = "patch"
    history_dir: Path = Path(".agent_cycle/history")
    auto_save: bool = True


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    execution: ExecutionSettings = field(default_factory=ExecutionSettings)
    cycle: CycleSettings = field(default_factory=CycleSettings)
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment with defaults for local runs."""

        return cls(
            execution=ExecutionSettings(
                concurrency=_env_int("AGENT_CYCLE_CONCURRENCY", 1),
                validation_max_attempts=_env_int("AGENT_CYCLE_VALIDATION_MAX_ATTEMPTS", 3),
                validation_retry_delay_seconds=_env_float(
                    "AGENT_CYCLE_VALIDATION_RETRY_DELAY_SECONDS",
                    0.0,
                ),
            ),
            cycle=CycleSettings(
                safety_max_rounds=_env_int("AGENT_CYCLE_SAFETY_MAX_ROUNDS", 50),
                version_bump=os.getenv("AGENT_CYCLE_VERSION_BUMP", "patch").strip().lower(),
                history_dir=Path(os.getenv("AGENT_CYCLE_HISTORY_DIR", ".agent_cycle/history")),
                auto_save=_env_bool("AGENT_CYCLE_HISTORY_AUTOSAVE", default=True),
            ),
            log_level=os.getenv("AGENT_CYCLE_LOG_LEVEL", "WARNING").strip().upper(),
        )

    def validate(self) -> None:
        """Raise configuration error for values the engine cannot run with."""

        if self.execution.concurrency < 1:
            raise ConfigurationError(
                "AGENT_CYCLE_CONCURRENCY must be a positive integer.",
                context={"concurrency": self.execution.concurrency},
            )
        if self.execution.validation_max_attempts < 1:
            raise ConfigurationError(
                "AGENT_CYCLE_VALIDATION_MAX_ATTEMPTS must be a positive integer.",
                context={"max_attempts": self.execution.validation_max_attempts},
            )
        if self.execution.validation_retry_delay_seconds < 0:
            raise ConfigurationError(
                "AGENT_CYCLE_VALIDATION_RETRY_DELAY_SECONDS must be >= 0.",
                context={"retry_delay": self.execution.validation_retry_delay_seconds},
            )
        if self.cycle.safety_max_rounds < 1:
            raise ConfigurationError(
                "AGENT_CYCLE_SAFETY_MAX_ROUNDS must be a positive integer.",
                context={"safety_max_rounds": self.cycle.safety_max_rounds},
            )
        if self.cycle.version_bump not in VERSION_BUMPS:
            raise ConfigurationError(
                f"Unsupported AGENT_CYCLE_VERSION_BUMP: {self.cycle.version_bump!r}",
                context={"allowed": list(VERSION_BUMPS)},
            )
        if self.log_level not in LOG_LEVELS:
            raise ConfigurationError(
                f"Unsupported AGENT_CYCLE_LOG_LEVEL: {self.log_level!r}",
                context={"allowed": list(LOG_LEVELS)},
            )

    def configure_logging(self) -> None:
        """Apply the configured log level to the package logger."""

        if self.log_level not in LOG_LEVELS:
            raise ConfigurationError(
                f"Unsupported AGENT_CYCLE_LOG_LEVEL: {self.log_level!r}",
                context={"allowed": list(LOG_LEVELS)},
            )
        logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
        logging.getLogger("agent_cycle").setLevel(self.log_level)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ConfigurationError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError as error:
        raise ConfigurationError(f"Invalid float value for {name}: {value!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ConfigurationError(f"Invalid boolean value for {name}: {value!r}")
