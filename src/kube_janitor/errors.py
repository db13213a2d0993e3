"""Exception hierarchy for kube-janitor."""

from __future__ import annotations


class JanitorError(Exception):
    """Base class for all kube-janitor errors."""


class ConfigError(JanitorError):
    """Raised when configuration values cannot be parsed."""


class KubeConfigError(JanitorError):
    """Raised when no usable cluster credentials could be loaded."""


class CacheSyncError(JanitorError):
    """Raised when the pod cache does not finish its initial sync in time."""


class NotificationError(JanitorError):
    """Raised by notification backends when delivery fails."""
