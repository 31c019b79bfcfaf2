"""
Page scraping - hidden form state and dropdown options.
Works on full pages and on update-panel fragments alike.
"""

import re

from bs4 import BeautifulSoup
from bs4.element import Tag

from ..core.errors import MissingStateError
from ..core.models import (
    DropdownOption,
    PageState,
    VIEWSTATE,
    VIEWSTATE_GENERATOR,
    EVENT_VALIDATION,
    REQUEST_VERIFICATION_TOKEN,
)
from .cascade import Dropdown


# Fallback for markup html.parser cannot make sense of (attributes in any order)
_HIDDEN_INPUT_RE = re.compile(r"<input\b[^>]*>", re.IGNORECASE | re.DOTALL)
_ATTR_RE = re.compile(r"""([\w:-]+)\s*=\s*(["'])(.*?)\2""", re.DOTALL)

_WHITESPACE_RE = re.compile(r"\s+")

_TOKEN_NAMES = (VIEWSTATE, VIEWSTATE_GENERATOR, EVENT_VALIDATION, REQUEST_VERIFICATION_TOKEN)


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def extract_hidden_fields(html: str) -> dict[str, str]:
    """
    Collect every named hidden input.

    Args:
        html: Page or fragment markup

    Returns:
        Input name → value, in document order
    """
    fields: dict[str, str] = {}
    for element in _soup(html).find_all("input"):
        if not isinstance(element, Tag):
            continue
        if str(element.get("type", "")).lower() != "hidden":
            continue
        name = element.get("name")
        if name:
            fields[str(name)] = str(element.get("value", ""))

    if VIEWSTATE not in fields:
        fields.update(_regex_hidden_fields(html))
    return fields


def _regex_hidden_fields(html: str) -> dict[str, str]:
    """Raw-text scan for the state tokens only."""
    found: dict[str, str] = {}
    for match in _HIDDEN_INPUT_RE.finditer(html):
        attrs = {
            key.lower(): value
            for key, _quote, value in _ATTR_RE.findall(match.group(0))
        }
        name = attrs.get("name") or attrs.get("id")
        if name in _TOKEN_NAMES and name not in found:
            found[name] = attrs.get("value", "")
    return found


def extract_page_state(
    html: str,
    cookies: dict[str, str] | None = None,
    selections: dict[str, str] | None = None,
) -> PageState:
    """
    Scrape a full page into a PageState.

    Raises:
        MissingStateError: If the page carries no __VIEWSTATE
    """
    fields = extract_hidden_fields(html)
    if not fields.get(VIEWSTATE):
        raise MissingStateError("Page has no __VIEWSTATE hidden field")
    return PageState.from_fields(fields, cookies=cookies, selections=selections)


def _find_select(soup: BeautifulSoup, dropdown: Dropdown) -> Tag | None:
    select = soup.find("select", attrs={"name": dropdown.name})
    if not isinstance(select, Tag):
        select = soup.find("select", attrs={"id": dropdown.element_id})
    if not isinstance(select, Tag):
        # Short control id, for pages rendered without naming-container prefixes
        short = dropdown.name.rsplit("$", 1)[-1]
        select = soup.find("select", attrs={"id": short}) or soup.find("select", attrs={"name": short})
    return select if isinstance(select, Tag) else None


def has_dropdown(html: str, dropdown: Dropdown) -> bool:
    return _find_select(_soup(html), dropdown) is not None


def extract_options(
    html: str,
    dropdown: Dropdown,
    placeholder_values: list[str] | tuple[str, ...] = ("",),
) -> list[DropdownOption]:
    """
    Read the options of one dropdown.

    Args:
        html: Page or update-panel markup
        dropdown: Dropdown to read
        placeholder_values: Values of "-- Select --" style entries to skip

    Returns:
        Options in document order, placeholders and duplicates removed
    """
    select = _find_select(_soup(html), dropdown)
    if select is None:
        return []

    options: list[DropdownOption] = []
    seen: set[str] = set()
    for option in select.find_all("option"):
        value = option.get("value")
        text = _WHITESPACE_RE.sub(" ", option.get_text()).strip()
        # <option> without value posts its text
        value = text if value is None else str(value).strip()
        if value in placeholder_values or value in seen:
            continue
        seen.add(value)
        options.append(DropdownOption(value=value, text=text))
    return options


def selected_value(html: str, dropdown: Dropdown) -> str | None:
    """Value of the option marked ``selected``, if any."""
    select = _find_select(_soup(html), dropdown)
    if select is None:
        return None
    option = select.find("option", selected=True)
    if isinstance(option, Tag):
        return str(option.get("value", option.get_text().strip()))
    return None
