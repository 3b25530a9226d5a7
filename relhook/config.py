"""Configuration management with Pydantic Settings + optional YAML."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from relhook.utils.platform import get_config_dir

SUPPORTED_ALGORITHMS = ("sha1", "sha256", "sha512")


class WebhookConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    secret: str = ""
    signature_header: str = "X-Hub-Signature"
    algorithm: str = "sha1"

    @field_validator("algorithm")
    @classmethod
    def _check_algorithm(cls, value: str) -> str:
        value = value.lower()
        if value not in SUPPORTED_ALGORITHMS:
            raise ValueError(
                f"unsupported algorithm {value!r}, expected one of {', '.join(SUPPORTED_ALGORITHMS)}"
            )
        return value


class ServerConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    bind: str = "0.0.0.0"
    port: int = 8001
    path: str = "/"
    status_path: str = "/status"
    health_path: str = "/health"
    max_body_size: int = 25 * 1024 * 1024  # GitHub caps payloads at 25 MB
    strict_responses: bool = False  # differentiated status codes instead of a bare 200


class DeployConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    base_dir: str = ""
    mode: Literal["joined", "split"] = "joined"
    reset_command: str = "git reset --hard"
    fetch_command: str = "git fetch origin"
    checkout_base_command: str = "git checkout develop"
    checkout_tag_command: str = "git checkout tags/{tag}"
    install_command: str = "npm install"  # empty disables the stage
    deploy_command: str = "node_modules/gulp/bin/gulp.js deploy"
    timeout: int = 900
    exclusive: bool = True
    history_size: int = 20

    @field_validator("checkout_tag_command")
    @classmethod
    def _check_tag_placeholder(cls, value: str) -> str:
        if "{tag}" not in value:
            raise ValueError("checkout_tag_command must contain a {tag} placeholder")
        return value


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="RELHOOK_",
        env_nested_delimiter="__",
        case_sensitive=False,
        frozen=True,
    )

    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    deploy: DeployConfig = Field(default_factory=DeployConfig)
    audit_log: str = "output.log"
    log_level: str = "INFO"
    log_json: bool = False


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings from env vars, optionally overlaying a YAML config.

    Values present in the YAML file are passed as init values and therefore
    win over the matching environment variables.
    """
    yaml_data: dict[str, Any] = {}

    # Determine config file path
    if config_path is None:
        config_path = os.environ.get("RELHOOK_CONFIG")
    if config_path is None:
        default = get_config_dir() / "config.yaml"
        if default.exists():
            config_path = default

    # Load YAML if found
    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                yaml_data = yaml.safe_load(f) or {}

    return Settings(**yaml_data)
