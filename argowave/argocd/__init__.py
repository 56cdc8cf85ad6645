"""Argo CD API access for argowave.

Exposes:
    ArgoCDClient -- async REST client (session login, application reads,
                    resource tree, resource patch, sync, health wait).
"""

from argowave.argocd.client import ArgoCDClient

__all__ = ["ArgoCDClient"]
