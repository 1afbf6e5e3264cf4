from __future__ import annotations

import re
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator

_ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_COLLECTION_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")


def _validate_env_var_name(value: str) -> str:
    name = (value or "").strip()
    if not _ENV_NAME_RE.fullmatch(name):
        raise ValueError("must be a valid environment variable name")
    return name


def _validate_collection_name(value: str) -> str:
    name = (value or "").strip()
    if not _COLLECTION_RE.fullmatch(name):
        raise ValueError("must be a valid collection name")
    return name


PositiveFloat = Annotated[float, Field(gt=0)]
NonNegativeInt = Annotated[int, Field(ge=0)]


class BackendConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    server_url: str = "https://parseapi.back4app.com"
    application_id_env: str = "PARSE_APPLICATION_ID"
    rest_api_key_env: str = "PARSE_REST_API_KEY"
    session_token_env: str = "PARSE_SESSION_TOKEN"
    timeout_seconds: PositiveFloat = 30.0

    @field_validator("server_url")
    @classmethod
    def _server_url_must_be_http(cls, v: str) -> str:
        url = (v or "").strip().rstrip("/")
        if not url.startswith(("http://", "https://")):
            raise ValueError("must be an http(s) URL")
        return url

    @field_validator("application_id_env", "rest_api_key_env", "session_token_env")
    @classmethod
    def _env_names_must_be_valid(cls, v: str) -> str:
        return _validate_env_var_name(v)


class FeedConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    collection: str = "PhotoPost"
    sort_field: str = "createdAt"
    max_concurrent_fetches: NonNegativeInt = 0  # 0 disables the cap

    @field_validator("collection")
    @classmethod
    def _collection_must_be_valid(cls, v: str) -> str:
        return _validate_collection_name(v)

    @field_validator("sort_field")
    @classmethod
    def _sort_field_must_be_set(cls, v: str) -> str:
        field = (v or "").strip().lstrip("-")
        if not field:
            raise ValueError("must be a non-empty field name")
        return field


class SubmitConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    collection: str = "PhotoPost"
    file_name: str = "photo.jpg"
    jpeg_quality: int = Field(80, ge=1, le=95)
    idempotency_keys: bool = True

    @field_validator("collection")
    @classmethod
    def _collection_must_be_valid(cls, v: str) -> str:
        return _validate_collection_name(v)

    @field_validator("file_name")
    @classmethod
    def _file_name_must_be_set(cls, v: str) -> str:
        name = (v or "").strip()
        if not name or "/" in name:
            raise ValueError("must be a bare file name")
        return name


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    backend: BackendConfig = Field(default_factory=BackendConfig)
    feed: FeedConfig = Field(default_factory=FeedConfig)
    submit: SubmitConfig = Field(default_factory=SubmitConfig)
