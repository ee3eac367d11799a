"""Exceptions raised by WAF Watch."""


class WafWatchError(Exception):
    """Base class for WAF Watch errors."""
    pass


class ConfigurationError(WafWatchError):
    """Configuration failed validation at startup."""
    pass


class FilterPatternError(WafWatchError):
    """A metric filter pattern could not be parsed."""

    def __init__(self, message: str, position: int = -1):
        if position >= 0:
            message = f"{message} (at offset {position})"
        super().__init__(message)
        self.position = position


class PublishError(WafWatchError):
    """Publishing to the notification topic failed."""
    pass
