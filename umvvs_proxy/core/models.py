"""
Pydantic models for the UMVVS postback proxy.
Defines page state, dropdown options, selections, and API payloads.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from pydantic import BaseModel, Field, field_validator
from uuid import uuid4


# ==============================================================================
# Enumerations
# ==============================================================================

class Level(str, Enum):
    """Dropdowns of the lookup page, in cascade order."""
    MAKE = "make"
    MODEL = "model"
    YEAR = "year"
    COUNTRY = "country"
    FUEL_TYPE = "fuel_type"
    ENGINE = "engine"


# Hidden inputs with a dedicated PageState field
VIEWSTATE = "__VIEWSTATE"
VIEWSTATE_GENERATOR = "__VIEWSTATEGENERATOR"
EVENT_VALIDATION = "__EVENTVALIDATION"
REQUEST_VERIFICATION_TOKEN = "__RequestVerificationToken"

# Hidden inputs that describe the triggering event, rebuilt on every postback
EVENT_TARGET = "__EVENTTARGET"
EVENT_ARGUMENT = "__EVENTARGUMENT"
LAST_FOCUS = "__LASTFOCUS"
ASYNC_POST = "__ASYNCPOST"


# ==============================================================================
# Core Data Models
# ==============================================================================

class DropdownOption(BaseModel):
    """One <option> of a dropdown."""
    value: str
    text: str


class PageState(BaseModel):
    """
    Hidden form state of the Web Forms page.

    Produced by scraping the initial page or a postback response and consumed
    by the next postback. ``selections`` records which dropdown values the
    server-side view state already reflects, in cascade order.
    """
    view_state: str
    view_state_generator: str = ""
    event_validation: str = ""
    request_verification_token: str = ""
    hidden_fields: dict[str, str] = Field(default_factory=dict)
    cookies: dict[str, str] = Field(default_factory=dict)
    selections: dict[str, str] = Field(default_factory=dict)
    captured_at: datetime = Field(default_factory=datetime.now)

    def token_fields(self) -> dict[str, str]:
        """Hidden fields to echo back, named as the page names them."""
        fields = dict(self.hidden_fields)
        fields[VIEWSTATE] = self.view_state
        if self.view_state_generator:
            fields[VIEWSTATE_GENERATOR] = self.view_state_generator
        if self.event_validation:
            fields[EVENT_VALIDATION] = self.event_validation
        if self.request_verification_token:
            fields[REQUEST_VERIFICATION_TOKEN] = self.request_verification_token
        return fields

    def with_updates(
        self,
        fields: dict[str, str],
        cookies: dict[str, str] | None = None,
        selections: dict[str, str] | None = None,
    ) -> "PageState":
        """
        Return a copy with hidden-field updates applied.

        Args:
            fields: Hidden field name → new value (as sent by the server)
            cookies: Cookies to merge in
            selections: Replacement for ``selections`` (unchanged if None)

        Returns:
            New PageState; ``self`` is not modified
        """
        merged = self.token_fields()
        merged.update(fields)
        return PageState.from_fields(
            merged,
            cookies={**self.cookies, **(cookies or {})},
            selections=dict(self.selections if selections is None else selections),
        )

    @classmethod
    def from_fields(
        cls,
        fields: dict[str, str],
        cookies: dict[str, str] | None = None,
        selections: dict[str, str] | None = None,
    ) -> "PageState":
        """Build a PageState from a flat name → value mapping of hidden inputs."""
        rest = {
            name: value for name, value in fields.items()
            if name not in (
                VIEWSTATE, VIEWSTATE_GENERATOR, EVENT_VALIDATION,
                REQUEST_VERIFICATION_TOKEN, EVENT_TARGET, EVENT_ARGUMENT, ASYNC_POST,
            )
        }
        return cls(
            view_state=fields.get(VIEWSTATE, ""),
            view_state_generator=fields.get(VIEWSTATE_GENERATOR, ""),
            event_validation=fields.get(EVENT_VALIDATION, ""),
            request_verification_token=fields.get(REQUEST_VERIFICATION_TOKEN, ""),
            hidden_fields=rest,
            cookies=dict(cookies or {}),
            selections=dict(selections or {}),
        )


class Selections(BaseModel):
    """Parent selection ids sent by a client."""
    make: str | None = None
    model: str | None = None
    year: str | None = None
    country: str | None = None
    fuel_type: str | None = None

    @field_validator("*", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        if isinstance(value, int):
            return str(value)
        return value

    def as_chain(self) -> dict[str, str]:
        """Non-empty selections in cascade order."""
        chain = {}
        for level in Level:
            value = getattr(self, level.value, None)
            if value:
                chain[level.value] = value
        return chain


class LookupResult(BaseModel):
    """Options of one dropdown plus the state that produced them."""
    level: Level
    options: list[DropdownOption] = Field(default_factory=list)
    state: PageState
    postbacks: int = 0


class Session(BaseModel):
    """A cached token bundle keyed by id."""
    id: str = Field(default_factory=lambda: str(uuid4()))
    state: PageState
    created_at: datetime = Field(default_factory=datetime.now)
    last_access: datetime = Field(default_factory=datetime.now)
    request_count: int = 0


# ==============================================================================
# API Payloads
# ==============================================================================

class LookupRequest(Selections):
    """Body of a cascade lookup: parent selections plus a token bundle."""
    session_id: str | None = None
    state: PageState | None = None


class LookupResponse(BaseModel):
    """Body returned by every cascade lookup."""
    session_id: str
    level: Level
    options: list[DropdownOption]
    state: PageState
