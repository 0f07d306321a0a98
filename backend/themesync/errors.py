"""
ThemeSync Backend — Error Taxonomy

Every error surfaced to a client is one of these. The app factory registers
a handler that renders them as {"message", "error", "errorCode"} with the
class's status code.
"""


class ThemeSyncError(Exception):
    """Base class. `message` is user-facing, `error` carries the detail."""

    status_code = 500

    def __init__(self, message: str, error: str | None = None):
        self.message = message
        self.error = error
        super().__init__(f"{message}: {error}" if error else message)


class ValidationError(ThemeSyncError):
    """Malformed request body or parameter."""

    status_code = 400


class ItemIndexError(ValidationError, IndexError):
    """List item index outside 0 <= index < length. Never clamped."""


class NotFoundError(ThemeSyncError):
    """Missing project, theme, transcript or voting session."""

    status_code = 404


class ConfigurationError(ThemeSyncError):
    """Model credential missing. The client shows a setup hint for this one."""

    status_code = 400


class ExtractionError(ThemeSyncError):
    """Model call failed. Carries the upstream message; never retried."""

    status_code = 500


class StorageError(ThemeSyncError):
    """Unexpected failure inside a storage backend."""

    status_code = 500
