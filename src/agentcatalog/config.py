"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (AGENTCATALOG__REGISTRY__URL=https://...)
  2. agentcatalog.yaml      (searched in cwd, then the platform config dir)
  3. Hardcoded defaults

The config file is optional; every field has a default.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from agentcatalog.models.registry import Target

_DEFAULT_CONFIG_DIR = platformdirs.user_config_dir("agentcatalog")
_DEFAULT_REGISTRY_URL = "https://raw.githubusercontent.com/chameleon-nexus/agents-registry/main"
_DEFAULT_INSTALL_DIR = str(Path("~/.claude/agents").expanduser())


def _find_config_file() -> str | None:
    """Return the path of the first agentcatalog.yaml found, or None."""
    candidates = [
        Path("agentcatalog.yaml"),
        Path(_DEFAULT_CONFIG_DIR) / "agentcatalog.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class RegistrySettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    url: str = _DEFAULT_REGISTRY_URL
    cache_ttl_seconds: float = Field(default=300, gt=0)
    request_timeout_seconds: float = Field(default=30, gt=0)

    @field_validator("url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError("registry url must use http or https scheme")
        return v


class CacheSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sweep_interval_seconds: float = Field(default=300, gt=0)


class InstallSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    target: Target = Target.CLAUDE_CODE
    directory: str = _DEFAULT_INSTALL_DIR
    max_concurrency: int = Field(default=4, ge=1)

    @field_validator("directory")
    @classmethod
    def expand_home(cls, v: str) -> str:
        return str(Path(v).expanduser())


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "text"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: AGENTCATALOG__INSTALL__TARGET=codex
        env_prefix="AGENTCATALOG__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
        extra="forbid",
    )

    registry: RegistrySettings = RegistrySettings()
    cache: CacheSettings = CacheSettings()
    install: InstallSettings = InstallSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )
