"""Logging setup for argowave."""

from argowave.observability.logging import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
