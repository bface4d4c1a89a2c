from __future__ import annotations

import os
from enum import Enum
from pathlib import Path

import tomli as tomllib
from pydantic import BaseModel, Field, ValidationError, field_validator

from fapiclient.exchange.endpoints import LIVE_REST, TESTNET_REST


class Mode(str, Enum):
    DEMO = "DEMO"
    REAL = "REAL"


def _http_url(value: str) -> str:
    value = value.strip()
    if not value.startswith(("http://", "https://")):
        raise ValueError(f"expected an http(s) URL, got {value!r}")
    return value.rstrip("/")


class ClientConfig(BaseModel):
    """Connection identity of one client; shared read-only by all of its requests."""

    model_config = {"frozen": True}

    api_key: str = ""
    secret_key: str = Field(default="", repr=False)
    base_url: str = LIVE_REST
    timeout_seconds: float = Field(default=10.0, gt=0)

    @field_validator("base_url")
    @classmethod
    def _check_base_url(cls, value: str) -> str:
        return _http_url(value)


class Endpoints(BaseModel):
    rest_demo: str = TESTNET_REST
    rest_real: str = LIVE_REST

    @field_validator("rest_demo", "rest_real")
    @classmethod
    def _check_url(cls, value: str) -> str:
        return _http_url(value)


class APIConfig(BaseModel):
    demo_key_env: str = "BINANCE_TESTNET_API_KEY"
    demo_secret_env: str = "BINANCE_TESTNET_API_SECRET"
    real_key_env: str = "BINANCE_API_KEY"
    real_secret_env: str = "BINANCE_API_SECRET"


class AppConfig(BaseModel):
    mode: Mode = Mode.REAL
    log_level: str = "INFO"
    timeout_seconds: float = Field(default=10.0, gt=0)
    default_interval: str = "1m"
    default_limit: int = Field(default=500, ge=1, le=1500)
    endpoints: Endpoints = Field(default_factory=Endpoints)
    api: APIConfig = Field(default_factory=APIConfig)

    @property
    def rest_endpoint(self) -> str:
        return self.endpoints.rest_demo if self.mode == Mode.DEMO else self.endpoints.rest_real

    def client_config(self) -> ClientConfig:
        if self.mode == Mode.DEMO:
            key_env, secret_env = self.api.demo_key_env, self.api.demo_secret_env
        else:
            key_env, secret_env = self.api.real_key_env, self.api.real_secret_env
        return ClientConfig(
            api_key=os.environ.get(key_env, ""),
            secret_key=os.environ.get(secret_env, ""),
            base_url=self.rest_endpoint,
            timeout_seconds=self.timeout_seconds,
        )


def _load_env_file(path: Path = Path(".env")) -> None:
    if not path.exists():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        entry = line.strip()
        if not entry or entry.startswith("#") or "=" not in entry:
            continue
        key, value = entry.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip().strip('"').strip("'"))


def load_config(path: Path | str = "config.toml", env_file: Path | str = ".env") -> AppConfig:
    _load_env_file(Path(env_file))
    config_path = Path(path)
    if not config_path.exists():
        return AppConfig()
    with config_path.open("rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as exc:
            raise RuntimeError(f"Invalid config at {config_path}: {exc}") from exc
    try:
        return AppConfig.model_validate(data)
    except ValidationError as exc:
        raise RuntimeError(f"Invalid config at {config_path}: {exc}") from exc
