"""Reminder dispatch errors

Only ConfigMissing and SelectionError abort a run. Everything else is caught
at the candidate boundary and folded into the run summary.
"""


class ReminderError(Exception):
    """Base class for reminder pipeline errors"""


class ConfigMissing(ReminderError):
    """No usable active provider configuration"""


class SelectionError(ReminderError):
    """The candidate query itself failed"""


class RenderError(ReminderError):
    """Template substitution failed unexpectedly"""


class ProviderError(ReminderError):
    """The outbound provider could not be reached or rejected the message"""


class PersistenceError(ReminderError):
    """Insert/update of a dispatch record failed"""


class AlreadySent(ReminderError):
    """Another run already recorded a successful send for the appointment"""
