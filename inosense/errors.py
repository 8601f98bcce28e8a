"""Exception types raised by inosense."""


class InosenseError(Exception):
    """Base class for all inosense errors."""


class SettingsError(InosenseError):
    """Raised when the user settings file cannot be loaded."""


class DerivationError(InosenseError):
    """Raised when board properties cannot be derived for a sketch."""
