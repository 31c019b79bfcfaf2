from __future__ import annotations

from html import escape
from typing import Any, Callable
from urllib.parse import parse_qsl

import httpx
import pytest

from umvvs_proxy.core.config import Settings
from umvvs_proxy.postback.cascade import Cascade, LEVELS
from umvvs_proxy.postback.client import PostbackClient
from umvvs_proxy.postback.delta import encode_delta


# value -> (display text, children)
CATALOG: dict[str, tuple[str, dict]] = {
    "1": ("TOYOTA", {
        "11": ("COROLLA", {
            "2015": ("2015", {
                "JP": ("JAPAN", {
                    "P": ("PETROL", {"1496": ("1496 CC", {}), "1798": ("1798 CC", {})}),
                    "D": ("DIESEL", {"1995": ("1995 CC", {})}),
                }),
            }),
            "2016": ("2016", {
                "UK": ("UNITED KINGDOM", {"P": ("PETROL", {"1598": ("1598 CC", {})})}),
            }),
        }),
        "12": ("LAND CRUISER | PRADO", {
            "2018": ("2018", {
                "ZA": ("SOUTH AFRICA", {"D": ("DIESEL", {"2755": ("2755 CC", {})})}),
            }),
        }),
    }),
    "2": ("NISSAN", {
        "21": ("X-TRAIL", {
            "2014": ("2014", {
                "JP": ("JAPAN", {"P": ("PETROL", {"1997": ("1997 CC", {})})}),
            }),
        }),
    }),
    "3": ("SUZUKI", {
        "31": ("SWIFT", {}),
    }),
}

SESSION_COOKIE = "ASP.NET_SessionId"
UPDATE_PANEL_CLIENT_ID = "ctl00_MainContent_UpdatePanel1"


def _cookies(request: httpx.Request) -> dict[str, str]:
    header = request.headers.get("cookie", "")
    pairs = [part.strip().split("=", 1) for part in header.split(";") if "=" in part]
    return {name: value for name, value in pairs}


class FakeWebForms:
    """
    In-process stand-in for the upstream page.

    Issues a fresh __VIEWSTATE/__EVENTVALIDATION pair on every response and
    only accepts a postback that echoes a pair it issued, with the parent
    dropdowns matching what that view state already reflects.
    """

    def __init__(self, config: Settings, mode: str = "delta", catalog: dict | None = None):
        self.config = config
        self.cascade = Cascade(config)
        self.mode = mode
        self.catalog = catalog or CATALOG

        self.views: dict[str, tuple[str, dict[str, str]]] = {}
        self.counter = 0
        self.session_id = "sess-42"
        self.antiforgery = "aft-token-1"

        self.gets = 0
        self.posts: list[dict[str, str]] = []
        self.fail_next: str | None = None
        # Called as each postback arrives, before it is answered
        self.on_post: Callable[[], Any] | None = None

    # -- helpers ---------------------------------------------------------

    def _issue(self, selections: dict[str, str]) -> tuple[str, str]:
        self.counter += 1
        view_state = f"/wEPDwUKMTY{self.counter:04d}ZGQ="
        validation = f"/wEdAAk{self.counter:04d}EV="
        self.views[view_state] = (validation, dict(selections))
        return view_state, validation

    def _node_children(self, path: list[str]) -> dict | None:
        children = self.catalog
        for value in path:
            if value not in children:
                return None
            children = children[value][1]
        return children

    def _render_selects(self, selections: dict[str, str]) -> str:
        values = [selections[level.value] for level in LEVELS if level.value in selections]
        parts = []
        for index, level in enumerate(LEVELS):
            dropdown = self.cascade.dropdown(level)
            options = [f'<option value="">-- Select {level.value} --</option>']
            if index <= len(values):
                children = self._node_children(values[:index]) or {}
                for value, (text, _) in children.items():
                    selected = ' selected="selected"' if selections.get(level.value) == value else ""
                    options.append(f'<option{selected} value="{value}">{escape(text)}</option>')
            parts.append(
                f'<select name="{dropdown.name}" '
                f"onchange=\"javascript:setTimeout('__doPostBack(\\'{dropdown.name}\\',\\'\\')', 0)\" "
                f'id="{dropdown.element_id}">\n\t' + "\n\t".join(options) + "\n</select>"
            )
        return "\n".join(parts)

    def _page(self, selections: dict[str, str]) -> str:
        view_state, validation = self._issue(selections)
        return f"""<!DOCTYPE html>
<html><head><title>UMVVS</title></head><body>
<form method="post" action="./Default.aspx" id="form1">
<div class="aspNetHidden">
<input type="hidden" name="__EVENTTARGET" id="__EVENTTARGET" value="" />
<input type="hidden" name="__EVENTARGUMENT" id="__EVENTARGUMENT" value="" />
<input type="hidden" name="__LASTFOCUS" id="__LASTFOCUS" value="" />
<input type="hidden" name="__VIEWSTATE" id="__VIEWSTATE" value="{view_state}" />
</div>
<div class="aspNetHidden">
<input type="hidden" name="__VIEWSTATEGENERATOR" id="__VIEWSTATEGENERATOR" value="CA0B0334" />
<input type="hidden" name="__EVENTVALIDATION" id="__EVENTVALIDATION" value="{validation}" />
</div>
<input name="__RequestVerificationToken" type="hidden" value="{self.antiforgery}" />
<div id="{UPDATE_PANEL_CLIENT_ID}">
{self._render_selects(selections)}
</div>
</form></body></html>"""

    def _delta(self, selections: dict[str, str]) -> str:
        view_state, validation = self._issue(selections)
        return encode_delta([
            ("#", "", "4"),
            ("updatePanel", UPDATE_PANEL_CLIENT_ID, "\n" + self._render_selects(selections) + "\n"),
            ("hiddenField", "__EVENTTARGET", ""),
            ("hiddenField", "__EVENTARGUMENT", ""),
            ("hiddenField", "__LASTFOCUS", ""),
            ("hiddenField", "__VIEWSTATE", view_state),
            ("hiddenField", "__VIEWSTATEGENERATOR", "CA0B0334"),
            ("hiddenField", "__EVENTVALIDATION", validation),
            ("asyncPostBackControlIDs", "", ""),
            ("postBackControlIDs", "", ""),
            ("updatePanelIDs", "", f"t{self.config.update_panel_id},{UPDATE_PANEL_CLIENT_ID}"),
            ("childUpdatePanelIDs", "", ""),
            ("panelsToRefreshIDs", "", f"{self.config.update_panel_id},"),
            ("asyncPostBackTimeout", "", "90"),
            ("formAction", "", "./Default.aspx"),
            ("pageTitle", "", "UMVVS"),
        ])

    def _error(self, message: str) -> httpx.Response:
        return httpx.Response(200, text=encode_delta([("#", "", "4"), ("error", "500", message)]))

    # -- transport ---------------------------------------------------------

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return self._get(request)
        return self._post(request)

    def _get(self, request: httpx.Request) -> httpx.Response:
        cookies = _cookies(request)
        if request.url.path == "/" and SESSION_COOKIE not in cookies:
            return httpx.Response(
                302,
                headers={
                    "location": "/Default.aspx",
                    "set-cookie": f"{SESSION_COOKIE}={self.session_id}; path=/; HttpOnly",
                },
            )
        if cookies.get(SESSION_COOKIE) != self.session_id:
            return httpx.Response(403, text="Forbidden")
        self.gets += 1
        return httpx.Response(200, text=self._page({}), headers={"content-type": "text/html"})

    def _post(self, request: httpx.Request) -> httpx.Response:
        form = dict(parse_qsl(request.content.decode(), keep_blank_values=True))
        self.posts.append(form)
        if self.on_post is not None:
            self.on_post()

        failure, self.fail_next = self.fail_next, None
        if failure == "timeout":
            raise httpx.ReadTimeout("read timed out", request=request)
        if failure == "http500":
            return httpx.Response(500, text="<title>Runtime Error</title>")
        if failure == "error":
            return self._error("Object reference not set to an instance of an object.")
        if failure == "redirect":
            return httpx.Response(200, text=encode_delta([("pageRedirect", "", "%2fSessionExpired.aspx")]))
        if failure == "garbage":
            return httpx.Response(200, text="120|updatePanel|x|too short|")

        if _cookies(request).get(SESSION_COOKIE) != self.session_id:
            return httpx.Response(302, headers={"location": "/Default.aspx"})
        if form.get("__RequestVerificationToken") != self.antiforgery:
            return self._error("The required anti-forgery form field is not present.")

        issued = self.views.get(form.get("__VIEWSTATE", ""))
        if issued is None or issued[0] != form.get("__EVENTVALIDATION"):
            return self._error("Validation of viewstate MAC failed.")
        _, previous = issued

        target = form.get("__EVENTTARGET", "")
        by_control = {self.cascade.dropdown(level).name: level for level in LEVELS}
        if target not in by_control:
            return self._error("Invalid postback or callback argument.")
        level = by_control[target]
        if form.get(self.config.script_manager_id) != f"{self.config.update_panel_id}|{target}":
            return self._error("Invalid postback or callback argument.")

        index = LEVELS.index(level)
        posted = {}
        for parent in LEVELS[: index + 1]:
            posted[parent.value] = form.get(self.cascade.dropdown(parent).name, "")
        for parent in LEVELS[:index]:
            if previous.get(parent.value) != posted[parent.value]:
                return self._error("Invalid postback or callback argument.")
        if self._node_children(list(posted.values())) is None:
            return self._error("Invalid postback or callback argument.")

        if self.mode == "full":
            return httpx.Response(200, text=self._page(posted), headers={"content-type": "text/html"})
        return httpx.Response(
            200,
            text=self._delta(posted),
            headers={"content-type": "text/plain; charset=utf-8"},
        )

    def posted_targets(self) -> list[str]:
        by_control = {self.cascade.dropdown(level).name: level.value for level in LEVELS}
        return [by_control.get(form.get("__EVENTTARGET", ""), "?") for form in self.posts]


async def _no_sleep(_: float) -> None:
    return None


@pytest.fixture
def config() -> Settings:
    return Settings(
        postback_delay=0.0,
        max_requests_per_minute=1_000_000,
        session_ttl=60,
        max_sessions=50,
        log_level="WARNING",
    )


@pytest.fixture
def fake_site(config: Settings) -> FakeWebForms:
    return FakeWebForms(config)


@pytest.fixture
def make_client(config: Settings):
    def _make(site: Any) -> PostbackClient:
        return PostbackClient(config, transport=httpx.MockTransport(site), sleep=_no_sleep)

    return _make
