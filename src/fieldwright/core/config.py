# src/fieldwright/core/config.py
"""Configuration schema and loading for the validation engine.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction, so one EngineSettings
instance can be shared by every concurrent create() call.

Precedence for anything that can be set in more than one place:
    per-call CreateOptions > schema declaration > EngineSettings defaults
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from fieldwright.contracts.enums import ExecutionStrategy


class LoggingSettings(BaseModel):
    """Logging output configuration (see core.logging.configure_logging)."""

    model_config = {"frozen": True, "extra": "forbid"}

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    json_output: bool = False
    max_value_chars: int = Field(default=300, ge=20)

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class EngineSettings(BaseModel):
    """Engine-wide defaults.

    Example YAML:
        strategy: convergent
        max_iterations: 10
        max_retries: 2
        fail_fast: false
        logging:
          level: DEBUG
    """

    model_config = {"frozen": True, "extra": "forbid"}

    strategy: ExecutionStrategy = Field(
        default=ExecutionStrategy.CONVERGENT,
        description="Strategy for schemas that do not declare one",
    )
    max_iterations: int = Field(
        default=10,
        ge=1,
        description="Convergent iteration budget before a timeout error",
    )
    max_retries: int = Field(
        default=2,
        ge=1,
        description="Model handler attempts per AI stage before its last rejection stands",
    )
    oscillation_window: int = Field(
        default=6,
        ge=2,
        description="Per-field rolling value history used for oscillation detection",
    )
    fail_fast: bool = Field(
        default=False,
        description="Stop at the first field error instead of collecting all",
    )
    parallel_fields: bool = Field(
        default=False,
        description="Single-pass: run independent fields of one topological generation concurrently",
    )
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


class CreateOptions(BaseModel):
    """Per-call options for ValidationFactory.create().

    Attributes:
        context: Arbitrary caller data (candidate lists, lookup tables)
        strategy: Overrides the schema's declared strategy
        max_iterations: Overrides the convergent iteration budget
        max_retries: Overrides the AI retry budget
        ai_handler: Overrides the factory's model handler
        discriminators: Discriminator value -> schema, for union resolution
        fail_fast: Overrides error collection
    """

    model_config = {"frozen": True, "extra": "forbid", "arbitrary_types_allowed": True}

    context: Any = None
    strategy: ExecutionStrategy | None = None
    max_iterations: int | None = Field(default=None, ge=1)
    max_retries: int | None = Field(default=None, ge=1)
    ai_handler: Callable[..., Any] | None = None
    discriminators: Mapping[Any, Any] | None = None
    fail_fast: bool | None = None


@dataclass(frozen=True, slots=True)
class RunOptions:
    """Fully resolved options for one create() call."""

    strategy: ExecutionStrategy
    max_iterations: int
    max_retries: int
    oscillation_window: int
    fail_fast: bool
    parallel_fields: bool
    context: Any
    ai_handler: Callable[..., Any] | None


def resolve_run_options(
    settings: EngineSettings,
    options: CreateOptions,
    *,
    declared_strategy: ExecutionStrategy | None,
    factory_handler: Callable[..., Any] | None,
) -> RunOptions:
    """Apply per-call > schema > settings precedence."""
    strategy = options.strategy or declared_strategy or settings.strategy
    return RunOptions(
        strategy=strategy,
        max_iterations=options.max_iterations if options.max_iterations is not None else settings.max_iterations,
        max_retries=options.max_retries if options.max_retries is not None else settings.max_retries,
        oscillation_window=settings.oscillation_window,
        fail_fast=options.fail_fast if options.fail_fast is not None else settings.fail_fast,
        parallel_fields=settings.parallel_fields,
        context=options.context,
        ai_handler=options.ai_handler or factory_handler,
    )


def load_settings(config_path: Path) -> EngineSettings:
    """Load settings from a YAML/TOML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (FIELDWRIGHT_*) - highest priority
    2. Config file
    3. Defaults from the Pydantic schema - lowest priority

    Environment variable format: FIELDWRIGHT_LOGGING__LEVEL for nested keys.

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="FIELDWRIGHT",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    # Dynaconf returns uppercase keys; filter its internal settings
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k.lower(): v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}
    if "logging" in raw_config and isinstance(raw_config["logging"], Mapping):
        raw_config["logging"] = {k.lower(): v for k, v in raw_config["logging"].items()}

    return EngineSettings(**raw_config)
