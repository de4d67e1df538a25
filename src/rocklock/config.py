"""Configuration settings for rocklock."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import (
    BaseSettings,
    CliImplicitFlag,
    SettingsConfigDict,
)

from .registry import DEFAULT_REGISTRY_URL
from .rocklock import APP_DIRS

GIB = 1024 * 1024 * 1024


class Settings(BaseSettings):
    """Settings for rocklock.

    Every setting can also be given as an environment variable prefixed with
    ``ROCKLOCK_`` (for example ``ROCKLOCK_CACHE_DIR``).
    """

    project: Path = Field(
        default=Path("."),
        description="""Project directory containing `package.yaml`; the
        lockfile is written next to it as `package.lock`.""",
    )
    registry_url: str = Field(
        default=DEFAULT_REGISTRY_URL,
        description="""Base URL of the LuaRocks-compatible repository.""",
    )
    cache_dir: Path = Field(
        default_factory=lambda: Path(APP_DIRS.user_cache_dir),
        description="""Directory holding cached metadata, sources and build
        artifacts.""",
    )
    max_concurrent_downloads: int = Field(
        default=10,
        gt=0,
        description="""Maximum number of packages downloaded at the same time.""",
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="""Seconds to wait for each registry request.""",
    )
    index_ttl: float = Field(
        default=24 * 60 * 60,
        ge=0,
        description="""Seconds a cached copy of the package index is reused
        before it is fetched again.""",
    )
    installed_runtime: str | None = Field(
        default=None,
        description="""Installed Lua version (e.g. `5.4`). When given, packages
        whose declared Lua version does not match are rejected.""",
    )
    update: CliImplicitFlag[bool] = Field(
        default=False,
        description="""Update the existing lockfile, reusing every entry whose
        version did not change.""",
    )
    production: CliImplicitFlag[bool] = Field(
        default=False,
        description="""Leave dev dependencies out of the lockfile.""",
    )
    verify: CliImplicitFlag[bool] = Field(
        default=False,
        description="""Verify the checksums in the existing lockfile against
        the cached source archives instead of locking.""",
    )
    verify_checksums: CliImplicitFlag[bool] = Field(
        default=True,
        description="""After locking, verify every checksum recorded in the
        new lockfile.""",
    )
    clean_cache: CliImplicitFlag[bool] = Field(
        default=False,
        description="""Evict old cache entries (see `--cache-max-age-days` and
        `--cache-max-size`) and exit.""",
    )
    cache_max_age_days: float = Field(
        default=30,
        ge=0,
        description="""Cache entries at least this many days old are evicted
        by `--clean-cache`.""",
    )
    cache_max_size: int = Field(
        default=GIB,
        ge=0,
        description="""Size budget in bytes for each cache sub-directory.""",
    )
    log_level: str = Field(default="info", description="Log level")
    log_file: Path | None = Field(
        default=None,
        description="""Also write log records, with timestamps, to this file.""",
    )
    version: CliImplicitFlag[bool] = Field(
        default=False,
        description="""Show the version of rocklock and exit.""",
    )

    model_config = SettingsConfigDict(
        env_prefix="ROCKLOCK_",
        cli_kebab_case=True,
        nested_model_default_partial_update=True,
    )
