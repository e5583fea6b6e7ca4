"""Configuration loader for crowdshield services using Pydantic settings."""

from __future__ import annotations

import json
import os
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

ENV_VAR_NAME = "CROWDSHIELD_ENV"
DEFAULT_ENV = "local"
PROJECT_ROOT = Path(__file__).resolve().parents[3]
CONFIG_DIR = PROJECT_ROOT / "config"
DEFAULT_CONFIG_FILE = CONFIG_DIR / "settings.default.toml"
LOCAL_CONFIG_FILE = CONFIG_DIR / "settings.local.toml"
SETTINGS_FILE_ENV_VAR = "CROWDSHIELD_SETTINGS_FILE"


def _resolve_env(explicit_env: str | None = None) -> str:
    """Return the active environment name.

    Args:
        explicit_env: Environment value supplied directly by the caller.

    Returns:
        A stripped environment name, falling back to ``DEFAULT_ENV``.
    """

    env = explicit_env or os.getenv(ENV_VAR_NAME) or DEFAULT_ENV
    return env.strip()


def _env_file_candidates(env: str) -> list[Path]:
    """List candidate ``.env`` files used during settings resolution."""

    return [
        PROJECT_ROOT / ".env",
        PROJECT_ROOT / f".env.{env}",
        PROJECT_ROOT / ".env.local",
    ]


def _resolve_config_path(raw_path: str | None) -> Path | None:
    """Return an absolute config path from user input."""

    if not raw_path:
        return None
    candidate = Path(raw_path).expanduser()
    if not candidate.is_absolute():
        candidate = (PROJECT_ROOT / candidate).resolve()
    return candidate


def _config_file_priority(include_missing: bool = False) -> tuple[Path, ...]:
    """Return config files in descending precedence order."""

    ordered: list[Path] = []
    env_override = _resolve_config_path(os.getenv(SETTINGS_FILE_ENV_VAR))
    if env_override:
        ordered.append(env_override)
    ordered.append(LOCAL_CONFIG_FILE)
    ordered.append(DEFAULT_CONFIG_FILE)
    if include_missing:
        return tuple(ordered)
    return tuple(path for path in ordered if path.exists())


class TomlConfigSettingsSource(PydanticBaseSettingsSource):
    """Pydantic settings source that loads values from a TOML file."""

    def __init__(self, settings_cls: type[BaseSettings], path: Path) -> None:
        super().__init__(settings_cls)
        self.path = path
        self._data: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._data is not None:
            return self._data
        if not self.path.exists():
            self._data = {}
            return self._data
        try:
            with self.path.open("rb") as handle:
                self._data = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:  # pragma: no cover - invalid files surface immediately
            raise ValueError(f"Invalid TOML syntax in {self.path}") from exc
        return self._data

    def __call__(self) -> dict[str, Any]:  # pragma: no cover - trivial wrapper
        return self._load()

    def get_field_value(self, field_name: str, field):  # pragma: no cover - passthrough helper
        data = self._load()
        return data.get(field_name), field_name in data


def _read_env_value(*keys: str) -> str | None:
    """Return the first present environment variable from ``keys``."""

    for key in keys:
        value = os.getenv(key)
        if value is not None:
            return value
    return None


def _parse_list_override(raw: str) -> list[str]:
    """Accept either a JSON array or a comma separated string."""

    parsed: list[str] = []
    try:
        candidate = json.loads(raw)
        if isinstance(candidate, list):
            parsed = [str(item).strip() for item in candidate if str(item).strip()]
    except json.JSONDecodeError:
        pass
    if not parsed:
        parsed = [chunk.strip() for chunk in raw.split(",") if chunk.strip()]
    return parsed


class RuntimeSettings(BaseSettings):
    """Process-level runtime controls."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("LOG_LEVEL", "RUNTIME__LOG_LEVEL"),
    )


class APISettings(BaseSettings):
    """HTTP surface configuration."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    base_url: str = Field(
        default="http://127.0.0.1:8000",
        validation_alias=AliasChoices("API_URL", "API__BASE_URL"),
    )
    max_requests_per_minute: int = Field(
        default=60,
        validation_alias=AliasChoices("API_MAX_REQUESTS_PER_MINUTE", "API__MAX_REQUESTS_PER_MINUTE"),
    )


class StorageSettings(BaseSettings):
    """Relational store configuration."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    structured_backend: Literal["sqlite", "postgres"] = Field(
        default="sqlite",
        validation_alias=AliasChoices("STRUCTURED_BACKEND", "STORAGE__STRUCTURED_BACKEND"),
    )
    sqlite_path: Path = Field(
        default=PROJECT_ROOT / "data" / "crowdshield.db",
        validation_alias=AliasChoices("SQLITE_PATH", "STORAGE__SQLITE_PATH"),
    )
    database_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("STORAGE_DATABASE_URL", "STORAGE__DATABASE_URL"),
    )
    otp_backend: Literal["memory", "sql"] = Field(
        default="memory",
        validation_alias=AliasChoices("OTP_BACKEND", "STORAGE__OTP_BACKEND"),
    )


class ScoringSettings(BaseSettings):
    """Crowd risk scoring parameters."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    window_days: int = Field(
        default=30,
        validation_alias=AliasChoices("SCORING_WINDOW_DAYS", "SCORING__WINDOW_DAYS"),
    )
    base_points: int = Field(
        default=1,
        validation_alias=AliasChoices("SCORING_BASE_POINTS", "SCORING__BASE_POINTS"),
    )
    weighted_bonus: int = Field(
        default=2,
        validation_alias=AliasChoices("SCORING_WEIGHTED_BONUS", "SCORING__WEIGHTED_BONUS"),
    )
    weighted_categories: list[str] = Field(default_factory=lambda: ["Phishing", "Identity Theft"])
    suspicious_max_score: int = Field(
        default=5,
        validation_alias=AliasChoices("SCORING_SUSPICIOUS_MAX", "SCORING__SUSPICIOUS_MAX_SCORE"),
    )


class AlertSettings(BaseSettings):
    """Pending alert queues and notification fan-out."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    pending_capacity: int = Field(
        default=100,
        validation_alias=AliasChoices("ALERTS_PENDING_CAPACITY", "ALERTS__PENDING_CAPACITY"),
    )
    history_capacity: int = Field(
        default=500,
        validation_alias=AliasChoices("ALERTS_HISTORY_CAPACITY", "ALERTS__HISTORY_CAPACITY"),
    )
    entity_list_capacity: int = Field(
        default=500,
        validation_alias=AliasChoices("ALERTS_ENTITY_LIST_CAPACITY", "ALERTS__ENTITY_LIST_CAPACITY"),
    )
    escalation_levels: list[str] = Field(default_factory=lambda: ["high_risk"])
    dispatch_workers: int = Field(
        default=4,
        validation_alias=AliasChoices("ALERTS_DISPATCH_WORKERS", "ALERTS__DISPATCH_WORKERS"),
    )


class OTPSettings(BaseSettings):
    """One-time code issuance policy."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    code_length: int = Field(
        default=6,
        validation_alias=AliasChoices("OTP_CODE_LENGTH", "OTP__CODE_LENGTH"),
    )
    ttl_minutes: int = Field(
        default=15,
        validation_alias=AliasChoices("OTP_TTL_MINUTES", "OTP__TTL_MINUTES"),
    )
    cooldown_seconds: int = Field(
        default=60,
        validation_alias=AliasChoices("OTP_COOLDOWN_SECONDS", "OTP__COOLDOWN_SECONDS"),
    )
    max_attempts: int = Field(
        default=5,
        validation_alias=AliasChoices("OTP_MAX_ATTEMPTS", "OTP__MAX_ATTEMPTS"),
    )


class NotificationSettings(BaseSettings):
    """Secondary (email-class) notification channel."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    email_backend: Literal["resend", "log"] = Field(
        default="resend",
        validation_alias=AliasChoices("EMAIL_BACKEND", "NOTIFICATIONS__EMAIL_BACKEND"),
    )
    resend_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("RESEND_API_KEY", "NOTIFICATIONS__RESEND_API_KEY"),
    )
    from_email: str = Field(
        default="alerts@crowdshield.local",
        validation_alias=AliasChoices("RESEND_FROM_EMAIL", "NOTIFICATIONS__FROM_EMAIL"),
    )
    from_name: str = Field(
        default="CrowdShield Alerts",
        validation_alias=AliasChoices("RESEND_FROM_NAME", "NOTIFICATIONS__FROM_NAME"),
    )


class ObservabilitySettings(BaseSettings):
    """Logging and metrics configuration."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    structured_logging: bool = Field(
        default=True,
        validation_alias=AliasChoices("OBS_STRUCTURED_LOGGING", "OBSERVABILITY__STRUCTURED_LOGGING"),
    )
    statsd_host: str | None = Field(
        default=None,
        validation_alias=AliasChoices("OBS_STATSD_HOST", "OBSERVABILITY__STATSD_HOST"),
    )
    statsd_port: int = Field(
        default=8125,
        validation_alias=AliasChoices("OBS_STATSD_PORT", "OBSERVABILITY__STATSD_PORT"),
    )
    statsd_prefix: str = Field(
        default="crowdshield",
        validation_alias=AliasChoices("OBS_STATSD_PREFIX", "OBSERVABILITY__STATSD_PREFIX"),
    )
    service_name: str = Field(
        default="crowdshield-api",
        validation_alias=AliasChoices("OBS_SERVICE_NAME", "OBSERVABILITY__SERVICE_NAME"),
    )


class Settings(BaseSettings):
    """Top-level configuration model with nested sections for each subsystem."""

    env: str = Field(
        default_factory=lambda: _resolve_env(),
        validation_alias=AliasChoices("ENV", "ENVIRONMENT", "RUNTIME__ENV"),
    )
    project_root: Path = Field(default=PROJECT_ROOT)
    runtime: RuntimeSettings = Field(default_factory=RuntimeSettings)
    api: APISettings = Field(default_factory=APISettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)
    alerts: AlertSettings = Field(default_factory=AlertSettings)
    otp: OTPSettings = Field(default_factory=OTPSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)
    env_files: tuple[Path, ...] = Field(default_factory=tuple, exclude=True)
    config_files: tuple[Path, ...] = Field(default_factory=tuple, exclude=True)

    model_config = SettingsConfigDict(
        env_prefix="CROWDSHIELD_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        """Extend settings sources with TOML-based config files."""

        config_sources = [TomlConfigSettingsSource(settings_cls, path) for path in _config_file_priority()]
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            *config_sources,
            file_secret_settings,
        )

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        """Normalize relative paths once the model is initialised."""

        if not self.storage.sqlite_path.is_absolute():
            storage_update = {"sqlite_path": (self.project_root / self.storage.sqlite_path).resolve()}
            object.__setattr__(self, "storage", self.storage.model_copy(update=storage_update))

        return self

    @model_validator(mode="after")
    def _apply_environment_overrides(self) -> "Settings":
        """Force environment-specific defaults after basic resolution."""

        if self.env.lower() == "local":
            storage_update = {"structured_backend": "sqlite", "database_url": None}
            object.__setattr__(self, "storage", self.storage.model_copy(update=storage_update))

            notifications_update = {"email_backend": "log", "resend_api_key": None}
            object.__setattr__(
                self, "notifications", self.notifications.model_copy(update=notifications_update)
            )

            observability_update = {"structured_logging": False}
            object.__setattr__(
                self, "observability", self.observability.model_copy(update=observability_update)
            )

        escalation_override = _read_env_value(
            "CROWDSHIELD_ALERTS_ESCALATION_LEVELS",
            "ALERTS_ESCALATION_LEVELS",
        )
        if escalation_override:
            levels = [level.lower() for level in _parse_list_override(escalation_override)]
            object.__setattr__(self, "alerts", self.alerts.model_copy(update={"escalation_levels": levels}))

        weighted_override = _read_env_value(
            "CROWDSHIELD_SCORING_WEIGHTED_CATEGORIES",
            "SCORING_WEIGHTED_CATEGORIES",
        )
        if weighted_override:
            categories = _parse_list_override(weighted_override)
            object.__setattr__(
                self, "scoring", self.scoring.model_copy(update={"weighted_categories": categories})
            )

        return self


def _load_settings(env: str | None = None) -> Settings:
    """Load settings with optional environment override.

    Args:
        env: Environment name supplied programmatically.

    Returns:
        Fully parsed :class:`Settings` instance with env files applied.
    """

    resolved_env = _resolve_env(env)
    candidate_files = [path for path in _env_file_candidates(resolved_env) if path.exists()]
    config_files = _config_file_priority()
    return Settings(
        _env_file=[str(path) for path in candidate_files],
        _env_file_encoding="utf-8",
        env=resolved_env,
        env_files=tuple(candidate_files),
        config_files=config_files,
    )


@lru_cache(maxsize=1)
def get_settings(env: str | None = None) -> Settings:
    """Return cached settings for the requested environment."""

    return _load_settings(env)


def reload_settings(env: str | None = None) -> Settings:
    """Clear the cached settings and reload from disk."""

    get_settings.cache_clear()
    return get_settings(env)


__all__ = [
    "Settings",
    "get_settings",
    "reload_settings",
    "PROJECT_ROOT",
    "ENV_VAR_NAME",
]
