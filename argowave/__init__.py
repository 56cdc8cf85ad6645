"""argowave: sync-wave ordered scale-down for Argo CD applications."""

__version__ = "0.1.0"
