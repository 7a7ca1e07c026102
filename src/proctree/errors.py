"""Exceptions raised by proctree."""


class ProcTreeError(Exception):
    """Base class for proctree errors."""


class SnapshotUnavailableError(ProcTreeError):
    """The snapshot source could not produce a tree for the requested pid."""


class MalformedRecordError(ProcTreeError):
    """A process record is missing a usable pid."""


class ConfigError(ProcTreeError):
    """A configuration value could not be parsed."""
