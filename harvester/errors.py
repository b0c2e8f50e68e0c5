from __future__ import annotations


class HarvesterError(Exception):
    """Base class for all harvester errors."""


class SetupError(HarvesterError, ValueError):
    """Invalid input list, credentials or worker count; raised before any unit launches."""


class ConfigError(SetupError):
    """Invalid or unreadable configuration."""


class SessionError(HarvesterError):
    """An execution unit could not establish (or lost) its session. Never retried."""


class ItemError(HarvesterError):
    """A single processing attempt for one work item failed."""


class ItemTimeoutError(ItemError):
    """An attempt exceeded the per-item timeout."""


class SinkError(HarvesterError):
    """Appending a batch to the result sink failed."""
