"""Error types raised by sprinter."""

from __future__ import annotations


class SprinterError(Exception):
    """Base class for errors that end a run with a non-zero exit code."""


class ConfigurationError(SprinterError):
    """Raised when required configuration (API token, board) is missing."""


class MissingTokenError(ConfigurationError):
    """Raised when no Jira API token is configured."""

    def __init__(self):
        super().__init__(
            "Jira API token not configured. Set JIRA_API_TOKEN in the environment "
            "or in ~/.config/sprinter/.env"
        )


class UpstreamError(SprinterError):
    """Raised when a Jira API request fails."""

    def __init__(self, message: str, status_code: int = 0, detail: str = ""):
        self.message = message
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


class UpstreamUnavailable(UpstreamError):
    """Raised when Jira answers without the data we asked for."""


class UserAbort(Exception):
    """Raised when the user picks EXIT. Not an error: the run ends with 0."""
