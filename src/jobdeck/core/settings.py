"""jobdeck settings.

Configuration should be explicit, validated, and environment-driven.  All
fields can be set through ``JOBDECK_*`` environment variables, nested
sections with ``__`` (``JOBDECK_AUTH__USERNAME=admin``), a ``.env`` file, or
a YAML file passed to :func:`load_settings`.

Order of precedence (highest → lowest):
    1. Keyword arguments
    2. Environment variables
    3. ``.env`` file
    4. YAML file (``load_settings(path)`` only)
    5. Defaults below

Example YAML::

    auth:
      username: admin
      password: s3cret
      secret: a-long-random-signing-key
    scheduler:
      thread_pool_size: 4
    jobs:
      - type: myapp.jobs.SampleJob
        triggers:
          - name: every-minute
            cron_expression: "0 * * * * ?"

Tags:
    settings, configuration, pydantic, environment, yaml, jobdeck

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from jobdeck.core.errors import MissingConfigError


class AuthSettings(BaseModel):
    """The single configured identity and token parameters."""

    username: str = Field(default="", description="Dashboard username")
    password: str = Field(default="", description="Dashboard password")
    secret: str = Field(default="", description="HS256 signing secret; random per process when empty")
    issuer: str = Field(default="jobdeck", description="Token issuer (iss)")
    audience: str = Field(default="jobdeck-users", description="Token audience (aud)")
    token_expiry_minutes: int = Field(default=60, gt=0, description="Token lifetime")
    require_secret: bool = Field(
        default=False, description="Refuse to start without a configured secret"
    )


class SchedulerSettings(BaseModel):
    """Engine identity and resources."""

    name: str = Field(default="JobdeckScheduler", description="Scheduler name")
    instance_id: str = Field(default="NON_CLUSTERED", description="Scheduler instance id")
    thread_pool_size: int = Field(default=10, ge=1, description="Worker threads for job execution")
    timezone: str = Field(default="UTC", description="Timezone for cron evaluation")
    history_capacity: int = Field(default=100, ge=1, description="Execution records kept in memory")
    wait_for_jobs_on_stop: bool = Field(
        default=True, description="Wait for running jobs when the process stops"
    )


class TriggerConfig(BaseModel):
    """One configured trigger; every field falls back to a default."""

    name: str | None = None
    group: str | None = None
    cron_expression: str | None = None


class JobConfig(BaseModel):
    """One configured job, matched to a job class by ``type``."""

    type: str = Field(description="Job type; matched when it contains the class name")
    name: str | None = None
    group: str | None = None
    description: str | None = None
    durable: bool = False
    data: dict[str, Any] = Field(default_factory=dict)
    triggers: list[TriggerConfig] = Field(default_factory=list)


class JobdeckSettings(BaseSettings):
    """Settings for the jobdeck service."""

    model_config = SettingsConfigDict(
        env_prefix="JOBDECK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # ── Server ───────────────────────────────────────────────────────────
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8080, description="Bind port")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Log level")
    log_json: bool | None = Field(default=None, description="JSON logs; auto when unset")

    # ── API ──────────────────────────────────────────────────────────────
    api_prefix: str = Field(default="/api", description="URL prefix for all endpoints")
    cors_origins: list[str] = Field(default_factory=list, description="Allowed CORS origins")

    # ── Sections ─────────────────────────────────────────────────────────
    auth: AuthSettings = Field(default_factory=AuthSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    jobs: list[JobConfig] = Field(default_factory=list)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


def load_settings(path: str | Path | None = None, **overrides: Any) -> JobdeckSettings:
    """Build settings, layering the YAML file at *path* under env and .env.

    Raises:
        MissingConfigError: *path* is given but does not exist.
    """
    if path is None:
        return JobdeckSettings(**overrides)

    config_file = Path(path)
    if not config_file.is_file():
        raise MissingConfigError("config_file", f"Config file not found: {config_file}")

    class _FileSettings(JobdeckSettings):
        model_config = SettingsConfigDict(yaml_file=str(config_file))

    return _FileSettings(**overrides)


@lru_cache(maxsize=1)
def get_settings() -> JobdeckSettings:
    """Settings loaded once per process."""
    return JobdeckSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    get_settings.cache_clear()
