from __future__ import annotations

import re
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator

_ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _validate_env_var_name(value: str) -> str:
    name = (value or "").strip()
    if not _ENV_NAME_RE.fullmatch(name):
        raise ValueError("must be a valid environment variable name")
    return name


PositiveInt = Annotated[int, Field(ge=1)]
NonNegativeFloat = Annotated[float, Field(ge=0.0)]


class ServerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    base_url: str = "https://bsky.social"
    access_token_env: str = "BSKY_ACCESS_TOKEN"
    repo: str | None = None
    timeout_seconds: float = Field(30.0, gt=0.0)

    @field_validator("base_url")
    @classmethod
    def _base_url_must_be_http(cls, v: str) -> str:
        url = (v or "").strip().rstrip("/")
        if not url.startswith(("http://", "https://")):
            raise ValueError("must start with http:// or https://")
        return url

    @field_validator("access_token_env")
    @classmethod
    def _access_token_env_must_be_valid(cls, v: str) -> str:
        return _validate_env_var_name(v)

    @field_validator("repo")
    @classmethod
    def _blank_repo_is_none(cls, v: str | None) -> str | None:
        repo = (v or "").strip()
        return repo or None


class ImagesConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    max_size_bytes: PositiveInt = 1_000_000
    scale_step: float = Field(0.9, gt=0.0, lt=1.0)
    max_rescale_rounds: PositiveInt = 40


class ConcurrencyConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    resolve_workers: PositiveInt = 4
    upload_workers: PositiveInt = 4


class RetryPolicyConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    max_attempts: PositiveInt = 3
    base_delay_seconds: NonNegativeFloat = 0.5
    max_delay_seconds: NonNegativeFloat = 8.0


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    server: ServerConfig = Field(default_factory=ServerConfig)
    images: ImagesConfig = Field(default_factory=ImagesConfig)
    concurrency: ConcurrencyConfig = Field(default_factory=ConcurrencyConfig)
    retry: RetryPolicyConfig = Field(default_factory=RetryPolicyConfig)
