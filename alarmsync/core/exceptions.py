class AlarmSyncError(Exception):
    """Base class for errors raised by the sync service."""


class RuleConfigError(AlarmSyncError):
    """The rule configuration file is missing or does not validate."""


class SourceReadError(AlarmSyncError):
    """The telemetry source could not be reached or queried."""


class PersistenceError(AlarmSyncError):
    """A fault record and its complaint could not be written."""
