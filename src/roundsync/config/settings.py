"""TOML config loading and profiles."""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any

# Default config search path (project root or cwd)
_CONFIG_DIR = Path(__file__).resolve().parent.parent.parent.parent / "config"
_CWD_CONFIG = Path.cwd() / "config"


def _load_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base. Override values take precedence."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _find_config_dir(config_dir: Path | None = None) -> Path:
    if config_dir is not None:
        return config_dir
    if _CWD_CONFIG.exists():
        return _CWD_CONFIG
    return _CONFIG_DIR


def load_config(profile: str | None = None, config_dir: Path | None = None) -> dict[str, Any]:
    """Load merged config from default.toml and optional profile overlay."""
    directory = _find_config_dir(config_dir)
    default_path = directory / "default.toml"
    if not default_path.exists():
        return {}
    base = _load_toml(default_path)
    if profile:
        profile_path = directory / f"{profile}.toml"
        if profile_path.exists():
            overlay = _load_toml(profile_path)
            base = _deep_merge(base, overlay)
    return base


def get_settings(profile: str | None = None, config_dir: Path | None = None) -> Settings:
    """Return Settings instance from merged config."""
    raw = load_config(profile, config_dir)
    return Settings.from_dict(raw)


class Settings:
    """Application settings from TOML config."""

    def __init__(
        self,
        *,
        stream: dict[str, Any] | None = None,
        rounds: dict[str, Any] | None = None,
        backend: dict[str, Any] | None = None,
        estimator: dict[str, Any] | None = None,
        storage: dict[str, Any] | None = None,
        logging: dict[str, Any] | None = None,
    ):
        self.stream = stream or {}
        self.rounds = rounds or {}
        self.backend = backend or {}
        self.estimator = estimator or {}
        self.storage = storage or {}
        self.logging = logging or {}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        return cls(
            stream=raw.get("stream"),
            rounds=raw.get("rounds"),
            backend=raw.get("backend"),
            estimator=raw.get("estimator"),
            storage=raw.get("storage"),
            logging=raw.get("logging"),
        )

    # Convenience accessors with defaults
    @property
    def ws_url(self) -> str:
        return self.stream.get("ws_url", "ws://127.0.0.1:8080/ws/live")

    @property
    def account_ws_url(self) -> str | None:
        return self.stream.get("account_ws_url") or None

    @property
    def camera_id(self) -> str | None:
        return self.stream.get("camera_id") or None

    @property
    def stale_detection_ms(self) -> float:
        return float(self.stream.get("stale_detection_ms", 350))

    @property
    def display_tick_ms(self) -> float:
        return float(self.stream.get("display_tick_ms", 50))

    @property
    def default_latency_ms(self) -> float:
        return float(self.stream.get("default_latency_ms", 0))

    @property
    def reconnect_base_delay_sec(self) -> float:
        return float(self.stream.get("reconnect_base_delay_sec", 2.0))

    @property
    def reconnect_max_delay_sec(self) -> float:
        return float(self.stream.get("reconnect_max_delay_sec", 30.0))

    @property
    def reconnect_max_retries(self) -> int:
        return int(self.stream.get("reconnect_max_retries", 0))

    @property
    def locked_grace_sec(self) -> float:
        return float(self.rounds.get("locked_grace_sec", 120))

    @property
    def reconcile_interval_sec(self) -> float:
        return float(self.rounds.get("reconcile_interval_sec", 5))

    @property
    def refresh_interval_sec(self) -> float:
        return float(self.rounds.get("refresh_interval_sec", 60))

    @property
    def optimistic_grace_sec(self) -> float:
        return float(self.rounds.get("optimistic_grace_sec", 5))

    @property
    def backend_base_url(self) -> str:
        return self.backend.get("base_url", "http://127.0.0.1:8080")

    @property
    def backend_token(self) -> str | None:
        return self.backend.get("token") or None

    @property
    def backend_timeout_sec(self) -> float:
        return float(self.backend.get("timeout_sec", 10))

    @property
    def bets_limit(self) -> int:
        return int(self.backend.get("bets_limit", 20))

    @property
    def chance_sensitivity(self) -> float:
        return float(self.estimator.get("chance_sensitivity", 6.0))

    @property
    def over_under_bounds(self) -> tuple[float, float]:
        return (
            float(self.estimator.get("over_under_floor", 5)),
            float(self.estimator.get("over_under_ceiling", 95)),
        )

    @property
    def exact_bounds(self) -> tuple[float, float]:
        return (
            float(self.estimator.get("exact_floor", 1)),
            float(self.estimator.get("exact_ceiling", 60)),
        )

    @property
    def close_ratio(self) -> float:
        return float(self.estimator.get("close_ratio", 0.8))

    @property
    def db_path(self) -> str:
        return self.storage.get("db_path", "data/roundsync.duckdb")

    @property
    def kv_namespace(self) -> str:
        return self.storage.get("kv_namespace", "roundsync")

    @property
    def snapshot_interval_sec(self) -> float:
        return float(self.storage.get("snapshot_interval_sec", 10))

    @property
    def logging_level(self) -> str:
        return self.logging.get("level", "INFO").upper()

    @property
    def logging_format(self) -> str:
        return self.logging.get("format", "console")

    @property
    def logging_level_num(self) -> int:
        return getattr(logging, self.logging_level, logging.INFO)


def configure_logging(settings: Settings) -> None:
    """Configure structlog with settings. Call once at application entry."""
    import structlog

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.logging_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.logging_level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
