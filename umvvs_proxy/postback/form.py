"""
Postback form builder.
Reproduces what the browser's ASP.NET AJAX runtime posts when a dropdown
with AutoPostBack changes inside an UpdatePanel.
"""

from ..core.config import Settings
from ..core.models import (
    PageState,
    Level,
    EVENT_TARGET,
    EVENT_ARGUMENT,
    LAST_FOCUS,
    ASYNC_POST,
)
from .cascade import Cascade, LEVELS


def build_postback_form(
    state: PageState,
    cascade: Cascade,
    changed: Level,
    selections: dict[str, str],
    config: Settings,
) -> dict[str, str]:
    """
    Build the form fields of one async postback.

    Args:
        state: Hidden state to echo back
        cascade: Dropdown chain
        changed: Level whose dropdown triggered the postback
        selections: Selected values keyed by level name, must cover ``changed``
            and every level before it
        config: Settings with ScriptManager and UpdatePanel ids

    Returns:
        Ordered form fields ready for urlencoding
    """
    changed_control = cascade.dropdown(changed).name

    form: dict[str, str] = {
        config.script_manager_id: f"{config.update_panel_id}|{changed_control}",
        EVENT_TARGET: changed_control,
        EVENT_ARGUMENT: "",
        LAST_FOCUS: state.hidden_fields.get(LAST_FOCUS, ""),
    }
    for name, value in state.token_fields().items():
        form.setdefault(name, value)

    # Values after the changed dropdown are stale and left out
    for level in LEVELS[: LEVELS.index(changed) + 1]:
        form[cascade.dropdown(level).name] = selections[level.value]

    form[ASYNC_POST] = "true"
    return form


def postback_headers(config: Settings, referer: str | None = None) -> dict[str, str]:
    """Headers the ASP.NET AJAX runtime sends with an async postback."""
    return {
        "User-Agent": config.user_agent,
        "Accept": "*/*",
        "Content-Type": "application/x-www-form-urlencoded; charset=utf-8",
        "X-MicrosoftAjax": "Delta=true",
        "X-Requested-With": "XMLHttpRequest",
        "Cache-Control": "no-cache",
        "Origin": config.upstream_origin.rstrip("/"),
        "Referer": referer or config.page_url,
    }


def page_headers(config: Settings) -> dict[str, str]:
    """Headers for the initial full-page GET."""
    return {
        "User-Agent": config.user_agent,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
    }
