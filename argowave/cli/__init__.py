"""argowave command-line interface.

Exposes:
    cli -- Click group entry point (registered as ``argowave`` script).
"""

from argowave.cli.main import cli

__all__ = ["cli"]
