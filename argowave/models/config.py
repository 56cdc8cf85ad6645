"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ArgoCDConfig:
    """Argo CD API server connection settings."""

    server: str = ""
    plaintext: bool = False
    tls_no_verify: bool = False
    username: str = ""
    password: str = ""
    auth_token: str = ""
    root_path: str = ""
    request_timeout: float = 30.0


@dataclass
class ScaleDownConfig:
    """Wave scale-down behaviour."""

    poll_interval: float = 1.0
    timeout_seconds: float = 1800.0
    force_delete: bool = False
    grace_period_seconds: int = 0


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"
    json: bool = False


@dataclass
class ArgoWaveConfig:
    """Top-level argowave configuration."""

    argocd: ArgoCDConfig = field(default_factory=ArgoCDConfig)
    scale_down: ScaleDownConfig = field(default_factory=ScaleDownConfig)
    log: LogConfig = field(default_factory=LogConfig)
