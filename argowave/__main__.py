"""Entry point for `python -m argowave`.

Usage:
    python -m argowave app down my-app --project games
"""

from __future__ import annotations

from argowave.cli import cli

cli(prog_name="argowave")
