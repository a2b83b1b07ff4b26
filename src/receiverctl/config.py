from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from records_client.client import PoolLimits
from records_client.credentials import AuthConfig
from records_client.errors import ConfigurationError
from records_client.models import AuthMode, QuerySpec
from records_receiver.checkpoints import (
    CheckpointStore,
    FileCheckpointStore,
    InMemoryCheckpointStore,
)
from records_receiver.coordinator import RetryPolicy

_DURATION = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$")
_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0, None: 1.0}

_AUTH_ALIASES = {
    "plaintext": AuthMode.PLAINTEXT,
    "encrypted": AuthMode.ENCRYPTED,
    "iam-token": AuthMode.IAM_TOKEN,
    "iamrdsauth": AuthMode.IAM_TOKEN,
}

# wrapper keys accepted around the receiver block in YAML files
_RECEIVER_KEYS = ("sqlrecords", "mysqlrecords")


def parse_duration(v: Union[str, int, float]) -> float:
    """Parse ``10s``, ``500ms``, ``2m``, ``1h`` or a bare number of seconds."""
    if isinstance(v, (int, float)):
        return float(v)
    m = _DURATION.match(str(v))
    if not m:
        raise ValueError(f"invalid duration: {v!r}")
    return float(m.group(1)) * _UNITS[m.group(2)]


class ReceiverSettings(BaseSettings):
    """Receiver configuration. Keys follow the collector config file format."""

    # --- source / auth
    authentication_mode: str = "BasicAuth"
    password_type: str = "plaintext"
    dbhost: str = "localhost"
    dbport: int = 5432
    transport: str = "tcp"
    username: str = ""
    password: Optional[str] = None
    encrypt_secret_path: Optional[str] = None
    database: str = ""
    region: Optional[str] = None
    aws_certificate_path: Optional[str] = None
    app_name: str = "sqlrecords"
    connect_timeout: int = 10

    # --- queries & polling
    db_queries: list[QuerySpec] = Field(default_factory=list)
    collection_interval: float = 10.0
    setmaxnodatabaseworkers: int = 1
    shutdown_grace: float = 5.0

    # --- pool limits (non-positive means default)
    setconnmaxlifetimemins: float = 0
    setmaxopenconns: int = 0
    setmaxidleconns: int = 0

    # --- delivery
    retry_delay: float = 1.0
    max_retries: int = 3
    checkpoint_path: Optional[str] = None
    consumer: str = "log"
    http_endpoint: Optional[str] = None

    model_config = SettingsConfigDict(
        env_prefix="SQLRECORDS_",
        env_nested_delimiter="__",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("collection_interval", "retry_delay", "shutdown_grace", mode="before")
    @classmethod
    def _durations(cls, v):
        return parse_duration(v)

    @field_validator("transport")
    @classmethod
    def _transport(cls, v: str) -> str:
        v = v.lower()
        if v not in ("tcp", "unix"):
            raise ValueError("transport must be tcp or unix")
        return v

    @field_validator("consumer")
    @classmethod
    def _consumer(cls, v: str) -> str:
        v = v.lower()
        if v not in ("log", "http"):
            raise ValueError("consumer must be log or http")
        return v

    @model_validator(mode="after")
    def _check(self) -> "ReceiverSettings":
        _ = self.auth_mode  # validates the mode combination
        if not self.database:
            raise ValueError("database is required")
        if not self.username:
            raise ValueError("username is required")
        if self.collection_interval <= 0:
            raise ValueError("collection_interval must be > 0")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        ids = [q.query_id for q in self.db_queries]
        dupes = sorted({i for i in ids if ids.count(i) > 1})
        if dupes:
            raise ValueError(f"duplicate query ids: {', '.join(dupes)}")
        if self.consumer == "http" and not self.http_endpoint:
            raise ValueError("http consumer requires http_endpoint")
        return self

    @property
    def auth_mode(self) -> AuthMode:
        mode = self.authentication_mode.strip().lower()
        if mode in ("", "basicauth"):
            ptype = (self.password_type or "plaintext").strip().lower()
            if ptype not in ("plaintext", "encrypted"):
                raise ValueError(f"unsupported password_type: {self.password_type!r}")
            return AuthMode(ptype)
        if mode not in _AUTH_ALIASES:
            raise ValueError(f"unsupported authentication_mode: {self.authentication_mode!r}")
        return _AUTH_ALIASES[mode]

    # --------------------------- component configs

    def auth_config(self) -> AuthConfig:
        return AuthConfig(
            host=self.dbhost,
            port=self.dbport,
            database=self.database,
            username=self.username,
            transport=self.transport,
            auth_mode=self.auth_mode,
            password=self.password,
            encrypt_secret_path=self.encrypt_secret_path,
            region=self.region,
            aws_certificate_path=self.aws_certificate_path,
            app_name=self.app_name,
            connect_timeout=self.connect_timeout,
        )

    def pool_limits(self) -> PoolLimits:
        return PoolLimits(
            max_lifetime_min=self.setconnmaxlifetimemins,
            max_open=self.setmaxopenconns,
            max_idle=self.setmaxidleconns,
            open_timeout=float(self.connect_timeout),
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_retries=self.max_retries, retry_delay_sec=self.retry_delay)

    def checkpoint_store(self) -> CheckpointStore:
        if self.checkpoint_path:
            try:
                return FileCheckpointStore(self.checkpoint_path)
            except ValueError as e:
                raise ConfigurationError(str(e)) from e
        return InMemoryCheckpointStore()


def _unwrap(data: dict[str, Any]) -> dict[str, Any]:
    receivers = data.get("receivers")
    if isinstance(receivers, dict):
        data = receivers
    for key in _RECEIVER_KEYS:
        if isinstance(data.get(key), dict):
            return data[key]
    return data


def load_settings(path: Union[str, Path, None] = None, **overrides: Any) -> ReceiverSettings:
    """Load settings from a YAML file (plus env), raising ConfigurationError on problems."""
    data: dict[str, Any] = {}
    if path is not None:
        p = Path(path)
        try:
            raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"cannot read config file {p}: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigurationError(f"config file {p} must contain a mapping")
        data = _unwrap(raw)
    data.update(overrides)
    try:
        return ReceiverSettings(**data)
    except ValidationError as e:
        raise ConfigurationError(f"invalid configuration:\n{e}") from e


@lru_cache()
def get_settings() -> ReceiverSettings:
    return load_settings()
