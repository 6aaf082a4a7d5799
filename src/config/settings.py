# src/config/settings.py - v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for gate thresholds, validator switches and logging.
Every component accepts an optional Settings instance; None means defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Rules that may never be switched off through configuration.
_MANDATORY_RULES = frozenset({"R2_SELF_REFERENCE"})


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Gate ===
    gate_max_iterations: int = 8
    gate_min_acceptance_tests: int = 3

    # === Parser ===
    parser_default_platform: Literal["excel", "google_sheets"] = "excel"

    # === Formula validator ===
    validator_require_auto_expand: bool = False
    validator_open_range_min_digits: int = 2
    validator_disabled_rules: str = ""

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("validator_disabled_rules")
    @classmethod
    def normalize_disabled_rules(cls, v: str) -> str:  # noqa: N805
        """Rule ids are matched upper-case."""
        return ",".join(r.strip().upper() for r in v.split(",") if r.strip())

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules V-01 to V-04."""
        errors: list[str] = []

        # V-01
        if self.gate_max_iterations < 1:
            errors.append("GATE_MAX_ITERATIONS must be >= 1")

        # V-02
        if self.gate_min_acceptance_tests < 1:
            errors.append("GATE_MIN_ACCEPTANCE_TESTS must be >= 1")

        # V-03
        if self.validator_open_range_min_digits < 1:
            errors.append("VALIDATOR_OPEN_RANGE_MIN_DIGITS must be >= 1")

        # V-04
        blocked = _MANDATORY_RULES.intersection(self.validator_disabled_rules_list)
        if blocked:
            errors.append(
                f"VALIDATOR_DISABLED_RULES cannot disable {', '.join(sorted(blocked))}"
            )

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def validator_disabled_rules_list(self) -> list[str]:
        """Parse comma-separated disabled rule ids."""
        return [r for r in self.validator_disabled_rules.split(",") if r]


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or per-run config).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
