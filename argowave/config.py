"""Configuration loading from environment variables.

Connection settings use the ``ARGOCD_*`` names understood by the argocd CLI;
everything specific to argowave is read from ``ARGOWAVE_*``.
"""

from __future__ import annotations

import os

from argowave.models.config import ArgoCDConfig, ArgoWaveConfig, LogConfig, ScaleDownConfig


class ConfigError(ValueError):
    """Raised when an environment value cannot be parsed or is out of range."""


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"ARGOWAVE_{key}", default)


def _argocd_env(key: str, default: str = "") -> str:
    return os.environ.get(f"ARGOCD_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    raw = _env(key, str(default))
    try:
        val = int(raw)
    except ValueError as exc:
        raise ConfigError(f"ARGOWAVE_{key} must be an integer, got {raw!r}") from exc
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float, min_val: float | None = None) -> float:
    raw = _env(key, str(default))
    try:
        val = float(raw)
    except ValueError as exc:
        raise ConfigError(f"ARGOWAVE_{key} must be a number, got {raw!r}") from exc
    if min_val is not None:
        val = max(val, min_val)
    return val


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ConfigError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def load_config() -> ArgoWaveConfig:
    """Load configuration from ARGOCD_* and ARGOWAVE_* environment variables."""
    return ArgoWaveConfig(
        argocd=ArgoCDConfig(
            server=_argocd_env("SERVER"),
            plaintext=_env_bool("PLAINTEXT", False),
            tls_no_verify=_env_bool("TLS_NO_VERIFY", False),
            username=_argocd_env("USERNAME"),
            password=_argocd_env("PASSWORD"),
            auth_token=_argocd_env("AUTH_TOKEN"),
            root_path=_env("ROOT_PATH", ""),
            request_timeout=_env_float("REQUEST_TIMEOUT", 30.0, min_val=1.0),
        ),
        scale_down=ScaleDownConfig(
            poll_interval=_env_float("POLL_INTERVAL", 1.0, min_val=0.1),
            timeout_seconds=_env_float("TIMEOUT", 1800.0, min_val=1.0),
            force_delete=_env_bool("FORCE_DELETE", False),
            grace_period_seconds=_env_int("GRACE_PERIOD", 0, min_val=0),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
            json=_env_bool("LOG_JSON", False),
        ),
    )
