"""
Error types raised by the postback engine and mapped to HTTP responses.
"""


class ProxyError(Exception):
    """Base class for every error the proxy raises on purpose."""

    status_code: int = 500

    @property
    def kind(self) -> str:
        return type(self).__name__


class SelectionError(ProxyError):
    """Raised when a lookup is missing a parent selection."""
    status_code = 400


class SessionNotFoundError(ProxyError):
    """Raised when a session id is unknown or has expired."""
    status_code = 404


class UpstreamError(ProxyError):
    """Raised when the upstream site fails or answers with an error."""
    pass


class UpstreamTimeoutError(UpstreamError):
    """Raised when the upstream site does not answer in time."""
    pass


class MalformedResponseError(UpstreamError):
    """Raised when an upstream body matches neither a delta nor a page."""
    pass


class DeltaParseError(MalformedResponseError):
    """Raised when a partial-postback payload is truncated or inconsistent."""

    def __init__(self, message: str, offset: int = -1):
        super().__init__(message if offset < 0 else f"{message} (at offset {offset})")
        self.offset = offset


class MissingStateError(MalformedResponseError):
    """Raised when a page carries no __VIEWSTATE to echo back."""
    pass


class EmptyOptionsError(UpstreamError):
    """Raised when a dropdown that should be populated comes back empty."""
    pass


class StateExpiredError(UpstreamError):
    """Raised when the site rejects replayed view state (redirect or error page)."""
    pass
