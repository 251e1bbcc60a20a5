from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

TELEMETRY_SINKS: frozenset[str] = frozenset({"none", "log"})
_PATH_FIELDS: tuple[str, ...] = ("kubeconfig", "log_dir")
_BOOLEAN_COERCION_FIELDS: tuple[str, ...] = ("telemetry_enabled",)


def _resolve_path(value: str | Path) -> Path:
    return Path(value).expanduser().resolve()


def _parse_bool_with_default(value: Any, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value == 1:
            return True
        if value == 0:
            return False
        return default
    if not isinstance(value, str):
        return default

    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


class SawchainSettings(BaseSettings):
    """
    Runtime configuration for Sawchain instances, the pytest plugin and the CLI.

    Values come from `SAWCHAIN_*` environment variables or a local `.env` file.
    Constructor arguments given to `Sawchain` take precedence over these defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="SAWCHAIN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Wait behavior.
    timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Default time budget for confirming a mutation through reads.",
    )
    interval_seconds: float = Field(
        default=1.0,
        gt=0,
        description="Default polling cadence while confirming a mutation.",
    )
    bindings: dict[str, Any] = Field(
        default_factory=dict,
        description="Global template bindings (JSON object) merged under every call's bindings.",
    )

    # Store.
    kubectl_binary: str = Field(
        default="kubectl",
        description="kubectl executable used by the cluster-backed store.",
    )
    kubeconfig: Path | None = Field(
        default=None,
        description="Optional kubeconfig path passed to kubectl.",
    )
    kubectl_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for a single kubectl invocation.",
    )

    # Logging.
    log_level: str = Field(
        default="INFO",
        description="Console log level.",
    )
    log_dir: Path | None = Field(
        default=None,
        description="Directory for JSON log files. File logging is disabled when unset.",
    )

    # Telemetry.
    telemetry_enabled: bool = Field(
        default=False,
        description="Enable lightweight internal telemetry events.",
    )
    telemetry_sink: Literal["none", "log"] = Field(
        default="none",
        description=(
            "Telemetry sink backend. `log` emits structured telemetry locally; "
            "`none` disables sink output."
        ),
    )

    @property
    def timeout(self) -> timedelta:
        return timedelta(seconds=self.timeout_seconds)

    @property
    def interval(self) -> timedelta:
        return timedelta(seconds=self.interval_seconds)

    @field_validator("bindings", mode="before")
    @classmethod
    def _parse_bindings(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, str):
            if not value.strip():
                return {}
            try:
                value = json.loads(value)
            except ValueError as exc:
                raise ValueError("SAWCHAIN_BINDINGS must be a JSON object.") from exc
        if not isinstance(value, dict):
            raise ValueError("SAWCHAIN_BINDINGS must be a JSON object.")
        return value

    @field_validator("kubectl_binary", mode="before")
    @classmethod
    def _normalize_kubectl_binary(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("SAWCHAIN_KUBECTL_BINARY must be a string.")
        normalized = value.strip()
        if not normalized:
            raise ValueError("SAWCHAIN_KUBECTL_BINARY must not be empty.")
        return normalized

    @field_validator("telemetry_sink", mode="before")
    @classmethod
    def _normalize_telemetry_sink(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("SAWCHAIN_TELEMETRY_SINK must be a string.")
        normalized = value.strip().lower()
        if normalized in TELEMETRY_SINKS:
            return normalized
        raise ValueError("SAWCHAIN_TELEMETRY_SINK must be set to: none, log.")

    @field_validator(*_PATH_FIELDS, mode="before")
    @classmethod
    def _normalize_paths(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, str) and not value.strip():
            return None
        return _resolve_path(value)

    @field_validator(*_BOOLEAN_COERCION_FIELDS, mode="before")
    @classmethod
    def _normalize_booleans(cls, value: Any, info: ValidationInfo) -> bool:
        field_name = info.field_name
        assert field_name is not None
        default_value = cls.model_fields[field_name].default
        assert isinstance(default_value, bool)
        return _parse_bool_with_default(value, default=default_value)


def _validate_wait_window(settings: SawchainSettings) -> None:
    if settings.interval_seconds >= settings.timeout_seconds:
        raise ValueError(
            "Invalid wait configuration: SAWCHAIN_INTERVAL_SECONDS "
            f"({settings.interval_seconds}) must be less than SAWCHAIN_TIMEOUT_SECONDS "
            f"({settings.timeout_seconds})."
        )


def load_settings(**overrides: Any) -> SawchainSettings:
    settings = SawchainSettings(**overrides)
    _validate_wait_window(settings)
    return settings
