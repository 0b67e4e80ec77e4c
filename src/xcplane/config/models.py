"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (XCPLANE__SECTION__KEY)
3. Global YAML (~/.config/xcplane/config.yaml)
4. Built-in defaults (this file)

Environment Variable Format:
    XCPLANE__<SECTION>__<KEY>=<VALUE>

Examples:
    XCPLANE__LOGGING__LEVEL=DEBUG
    XCPLANE__EXECUTION__BUILD_TIMEOUT_SEC=120
    XCPLANE__CACHE__RESPONSE_MAX_ENTRIES=200
    XCPLANE__PERSISTENCE__ENABLED=false
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from xcplane.config.constants import MAX_BUFFER_BYTES_LIMIT

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration."""

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v == "stderr":
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        XCPLANE__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="WARNING",
        description="Root log level. INFO logs every finished command, DEBUG every started one.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class ExecutionConfig(BaseModel):
    """Child process limits.

    Env vars:
        XCPLANE__EXECUTION__STREAM_TIMEOUT_SEC: Default streaming timeout
        XCPLANE__EXECUTION__COMMAND_TIMEOUT_SEC: Default argv command timeout
        XCPLANE__EXECUTION__MAX_BUFFER_BYTES: Default stdout cap
        XCPLANE__EXECUTION__BUILD_TIMEOUT_SEC: xcodebuild build/test timeout
        XCPLANE__EXECUTION__BUILD_MAX_BUFFER_BYTES: xcodebuild stdout cap
    """

    stream_timeout_sec: float = Field(
        default=60.0,
        description="Default timeout for streamed commands. On expiry the process is "
        "killed and the result is marked timed out.",
    )
    command_timeout_sec: float = Field(
        default=300.0,
        description="Default timeout for short argv commands (simctl boot/install).",
    )
    max_buffer_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Default stdout cap. Exceeding it kills the process with an error.",
    )
    build_timeout_sec: float = Field(
        default=55.0,
        description="xcodebuild timeout. Kept under typical client request limits. "
        "RISK: Too low aborts cold builds.",
    )
    build_max_buffer_bytes: int = Field(
        default=50 * 1024 * 1024,
        description="stdout cap for xcodebuild logs.",
    )

    @field_validator("max_buffer_bytes", "build_max_buffer_bytes")
    @classmethod
    def validate_buffer(cls, v: int) -> int:
        if not (0 < v <= MAX_BUFFER_BYTES_LIMIT):
            raise ValueError(f"Buffer must be 1-{MAX_BUFFER_BYTES_LIMIT} bytes, got {v}")
        return v

    @field_validator(
        "stream_timeout_sec", "command_timeout_sec", "build_timeout_sec"
    )
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Timeout must be positive, got {v}")
        return v


class CacheConfig(BaseModel):
    """In-memory cache bounds.

    Env vars:
        XCPLANE__CACHE__RESPONSE_MAX_AGE_SEC: Response expiry
        XCPLANE__CACHE__RESPONSE_MAX_ENTRIES: Response capacity
        XCPLANE__CACHE__BUILD_HISTORY_LIMIT: Outcomes kept per project
        XCPLANE__CACHE__SIMULATOR_TTL_SEC: Simulator listing staleness window
    """

    response_max_age_sec: float = Field(
        default=1800.0,
        description="Cached responses older than this (30 min) are unreachable.",
    )
    response_max_entries: int = Field(
        default=100,
        description="Max cached responses. Oldest are evicted first. "
        "TRADEOFF: Each entry holds a full build log in memory.",
    )
    build_history_limit: int = Field(
        default=20,
        description="Build outcomes retained per project for trend reporting.",
    )
    simulator_ttl_sec: float = Field(
        default=3600.0,
        description="Simulator listing is re-queried after this many seconds.",
    )

    @field_validator("response_max_entries", "build_history_limit")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Must be at least 1, got {v}")
        return v


class PersistenceConfig(BaseModel):
    """Best-effort disk persistence of cache state.

    Env vars:
        XCPLANE__PERSISTENCE__ENABLED: Enable/disable persistence
        XCPLANE__PERSISTENCE__STATE_DIR: Directory for <key>.json files
        XCPLANE__PERSISTENCE__DEBOUNCE_SEC: Save coalescing window
    """

    enabled: bool = Field(
        default=True,
        description="Persist caches across runs. Disable for ephemeral sessions.",
    )
    state_dir: str = Field(
        default="~/.cache/xcplane",
        description="Where cache state files live.",
    )
    debounce_sec: float = Field(
        default=1.0,
        description="Mutations within this window are written once.",
    )

    @property
    def state_path(self) -> Path:
        return Path(self.state_dir).expanduser()


class XcPlaneConfig(BaseModel):
    """Root configuration for xcplane.

    All settings can be configured via:
    1. Environment variables: XCPLANE__SECTION__KEY
    2. YAML config file (~/.config/xcplane/config.yaml)
    3. Direct kwargs to load_config()
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
