"""Fleet API settings (conventional Pydantic v2)."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, ClassVar
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    DotEnvSettingsSource,
    EnvSettingsSource,
    SettingsConfigDict,
)

from fleet_api import __version__
from fleet_api.core.rbac.types import MissingContextPolicy

# ---- Defaults ---------------------------------------------------------------

DEFAULT_STORAGE_ROOT = Path("./data")
DEFAULT_DB_FILENAME = "fleet.sqlite"
DEFAULT_SQLITE_PATH = DEFAULT_STORAGE_ROOT / "db" / DEFAULT_DB_FILENAME
DEFAULT_CORS_ORIGINS = ["http://localhost:3000"]
DEFAULT_TIMEZONE = "Europe/Prague"

DEFAULT_BUSINESS_HOURS_START = 8
DEFAULT_BUSINESS_HOURS_END = 18
DEFAULT_ADMIN_APPROVAL_THRESHOLD = 5000.0


# ---- Helpers ----------------------------------------------------------------

def _list_from_env(value: Any, *, default: list[str]) -> list[str]:
    """JSON array or comma string; strip empties; dedupe preserving order."""
    if value in (None, "", []):
        items = list(default)
    elif isinstance(value, str):
        s = value.strip()
        if s.startswith("["):
            try:
                parsed = json.loads(s)
            except json.JSONDecodeError as exc:
                raise ValueError("Expected a JSON array") from exc
            if not isinstance(parsed, list):
                raise ValueError("Expected a JSON array")
            items = [str(x).strip() for x in parsed if str(x).strip()]
        else:
            items = [part.strip() for part in s.split(",") if part.strip()]
    elif isinstance(value, (list, tuple, set)):
        items = [str(x).strip() for x in value if str(x).strip()]
    else:
        raise TypeError("Expected a list or comma separated string")
    return list(dict.fromkeys(items))


def _resolve_path(value: Path | str) -> Path:
    return Path(value).expanduser().resolve()


_LENIENT_LIST_FIELDS = {"server_cors_origins"}


class _LenientEnvSettingsSource(EnvSettingsSource):
    """Environment source that preserves raw strings for list-like fields."""

    lenient_fields: ClassVar[set[str]] = _LENIENT_LIST_FIELDS

    def prepare_field_value(self, field_name: str, field, value: Any, value_is_complex: bool) -> Any:
        if field_name in self.lenient_fields and isinstance(value, str):
            return value
        return super().prepare_field_value(field_name, field, value, value_is_complex)


class _LenientDotEnvSettingsSource(DotEnvSettingsSource):
    """Dotenv source that preserves raw strings for list-like fields."""

    lenient_fields: ClassVar[set[str]] = _LENIENT_LIST_FIELDS

    def prepare_field_value(self, field_name: str, field, value: Any, value_is_complex: bool) -> Any:
        if field_name in self.lenient_fields and isinstance(value, str):
            return value
        return super().prepare_field_value(field_name, field, value, value_is_complex)


class Settings(BaseSettings):
    """FastAPI settings loaded from FLEET_* environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="FLEET_",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        env_source = _LenientEnvSettingsSource(
            settings_cls,
            case_sensitive=getattr(env_settings, "case_sensitive", None),
            env_prefix=getattr(env_settings, "env_prefix", None),
            env_ignore_empty=getattr(env_settings, "env_ignore_empty", None),
        )
        dotenv_source = _LenientDotEnvSettingsSource(
            settings_cls,
            env_file=getattr(dotenv_settings, "env_file", None),
            env_file_encoding=getattr(dotenv_settings, "env_file_encoding", None),
            case_sensitive=getattr(dotenv_settings, "case_sensitive", None),
            env_prefix=getattr(dotenv_settings, "env_prefix", None),
            env_ignore_empty=getattr(dotenv_settings, "env_ignore_empty", None),
        )
        return (init_settings, env_source, dotenv_source, file_secret_settings)

    # Core
    app_name: str = "Fleet API"
    app_version: str = __version__
    api_docs_enabled: bool = False
    docs_url: str = "/docs"
    redoc_url: str = "/redoc"
    openapi_url: str = "/openapi.json"
    logging_level: str = "INFO"

    # Server
    server_host: str = "127.0.0.1"
    server_port: int = Field(8000, ge=1, le=65535)
    server_cors_origins: list[str] = Field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))

    # Database
    database_dsn: str | None = None
    database_echo: bool = False
    database_create_tables: bool = True

    # Permissions
    timezone: str = DEFAULT_TIMEZONE
    business_hours_start: int = Field(DEFAULT_BUSINESS_HOURS_START, ge=0, le=23)
    business_hours_end: int = Field(DEFAULT_BUSINESS_HOURS_END, ge=1, le=24)
    admin_approval_threshold: float = Field(DEFAULT_ADMIN_APPROVAL_THRESHOLD, gt=0)
    missing_context_policy: MissingContextPolicy = MissingContextPolicy.SKIP
    currency_label: str = "Kč"

    # ---- Validators ----

    @field_validator("logging_level", mode="before")
    @classmethod
    def _v_log_level(cls, v: Any) -> str:
        s = ("" if v is None else str(v).strip()).upper()
        return s or "INFO"

    @field_validator("server_cors_origins", mode="before")
    @classmethod
    def _v_cors(cls, v: Any) -> list[str]:
        return _list_from_env(v, default=DEFAULT_CORS_ORIGINS)

    @field_validator("timezone", mode="before")
    @classmethod
    def _v_timezone(cls, v: Any) -> str:
        s = ("" if v is None else str(v).strip()) or DEFAULT_TIMEZONE
        try:
            ZoneInfo(s)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"FLEET_TIMEZONE is not a known time zone: {s!r}") from exc
        return s

    @field_validator("missing_context_policy", mode="before")
    @classmethod
    def _v_missing_context_policy(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    # ---- Finalize ----

    @model_validator(mode="after")
    def _finalize(self) -> Settings:
        if self.business_hours_start >= self.business_hours_end:
            raise ValueError(
                "FLEET_BUSINESS_HOURS_START must be earlier than FLEET_BUSINESS_HOURS_END"
            )

        if not self.database_dsn:
            sqlite = _resolve_path(DEFAULT_SQLITE_PATH)
            self.database_dsn = f"sqlite+aiosqlite:///{sqlite.as_posix()}"

        return self

    # ---- Convenience ----

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


@lru_cache(maxsize=1)
def _build_settings() -> Settings:
    return Settings()


def get_settings() -> Settings:
    return _build_settings()


def reload_settings() -> Settings:
    _build_settings.cache_clear()
    return _build_settings()


__all__ = [
    "DEFAULT_ADMIN_APPROVAL_THRESHOLD",
    "DEFAULT_BUSINESS_HOURS_END",
    "DEFAULT_BUSINESS_HOURS_START",
    "DEFAULT_DB_FILENAME",
    "Settings",
    "get_settings",
    "reload_settings",
]
