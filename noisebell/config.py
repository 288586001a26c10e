"""Configuration management with Pydantic Settings + optional YAML."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import click
import yaml
from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from noisebell.errors import ConfigurationError


class WebhookConfig(BaseModel):
    bind: str = "127.0.0.1"
    port_start: int = Field(default=3000, ge=1, le=65535)
    port_span: int = Field(default=1000, ge=1)
    public_host: str = ""
    paths: list[str] = Field(default_factory=lambda: ["/", "/webhook"])

    @field_validator("paths")
    @classmethod
    def _normalize_paths(cls, paths: list[str]) -> list[str]:
        if not paths:
            raise ValueError("at least one webhook path is required")
        return [p if p.startswith("/") else f"/{p}" for p in paths]

    @property
    def advertised_host(self) -> str:
        return self.public_host or self.bind

    def callback_url(self, port: int) -> str:
        path = self.paths[0]
        return f"http://{self.advertised_host}:{port}{'' if path == '/' else path}"


class RegistrationConfig(BaseModel):
    retry_delay: float = Field(default=5.0, gt=0)
    timeout: float = Field(default=300.0, gt=0)
    request_timeout: float = Field(default=10.0, gt=0)
    description: str = ""
    # Keep serving webhooks when registration times out
    serve_on_failure: bool = True


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="NOISEBELL_",
        env_nested_delimiter="__",
        case_sensitive=False,
        populate_by_name=True,
    )

    server_url: str = Field(
        validation_alias=AliasChoices("server_url", "SERVER_URL", "NOISEBELL_SERVER_URL"),
    )
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    registration: RegistrationConfig = Field(default_factory=RegistrationConfig)
    log_level: str = "INFO"
    log_json: bool = False
    log_dir: str = ""

    @field_validator("server_url")
    @classmethod
    def _check_server_url(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value.startswith(("http://", "https://")):
            raise ValueError("server_url must be an http:// or https:// URL")
        return value

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment overrides values loaded from YAML
        return env_settings, init_settings, dotenv_settings, file_secret_settings


def get_config_dir() -> Path:
    """Directory holding the default config.yaml.

    NOISEBELL_CONFIG_DIR wins; otherwise the per-user application directory
    click resolves for this platform.
    """
    env = os.environ.get("NOISEBELL_CONFIG_DIR")
    if env:
        return Path(env)
    return Path(click.get_app_dir("noisebell"))


def _find_config_path(config_path: str | Path | None) -> Path | None:
    if config_path is None:
        config_path = os.environ.get("NOISEBELL_CONFIG")
    if config_path is None:
        default = get_config_dir() / "config.yaml"
        if default.exists():
            return default
        return None
    return Path(config_path)


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings from env vars, optionally overlaying a YAML config.

    Raises ConfigurationError when the result is invalid, most commonly
    because SERVER_URL is not set anywhere.
    """
    yaml_data: dict[str, Any] = {}

    path = _find_config_path(config_path)
    if path is not None:
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")
        with open(path) as f:
            yaml_data = yaml.safe_load(f) or {}
        if not isinstance(yaml_data, dict):
            raise ConfigurationError(f"Config file must contain a mapping: {path}")

    try:
        return Settings(**yaml_data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'settings'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration ({problems})") from e
