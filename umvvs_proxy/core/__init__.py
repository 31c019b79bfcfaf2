"""Core module - configuration, models, errors, and logging."""

from .config import settings, Settings
from .models import (
    Level,
    DropdownOption,
    PageState,
    Selections,
    LookupResult,
    Session,
    LookupRequest,
    LookupResponse,
)
from .errors import (
    ProxyError,
    SelectionError,
    SessionNotFoundError,
    UpstreamError,
    UpstreamTimeoutError,
    MalformedResponseError,
    DeltaParseError,
    MissingStateError,
    EmptyOptionsError,
    StateExpiredError,
)

__all__ = [
    "settings",
    "Settings",
    "Level",
    "DropdownOption",
    "PageState",
    "Selections",
    "LookupResult",
    "Session",
    "LookupRequest",
    "LookupResponse",
    "ProxyError",
    "SelectionError",
    "SessionNotFoundError",
    "UpstreamError",
    "UpstreamTimeoutError",
    "MalformedResponseError",
    "DeltaParseError",
    "MissingStateError",
    "EmptyOptionsError",
    "StateExpiredError",
]
