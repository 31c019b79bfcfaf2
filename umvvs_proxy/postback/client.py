"""
Upstream HTTP client.
Fetches the lookup page and sends async postbacks, one dropdown at a time.
"""

import asyncio
import re
import time
from http.cookiejar import CookieJar
from typing import Any, Awaitable, Callable

import httpx

from ..core.config import Settings, settings as default_settings
from ..core.errors import (
    MalformedResponseError,
    EmptyOptionsError,
    StateExpiredError,
    UpstreamError,
    UpstreamTimeoutError,
)
from ..core.logging import bind_context, preview
from ..core.models import DropdownOption, Level, PageState
from .cascade import Cascade, LEVELS
from .delta import is_delta, parse_delta, apply_to_state
from .form import build_postback_form, postback_headers, page_headers
from .hidden_fields import extract_options, extract_page_state, has_dropdown


# Markers of a rejected replay on the ASP.NET side
_EXPIRED_STATE_RE = re.compile(
    r"validation of viewstate mac failed|invalid postback or callback argument"
    r"|invalid viewstate|the state information is invalid",
    re.IGNORECASE,
)
_SERVER_ERROR_RE = re.compile(r"<title>\s*(?:Server Error|Runtime Error)", re.IGNORECASE)

MAX_REDIRECTS = 5


class _DiscardingJar(CookieJar):
    """Cookie jar that never stores; cookies travel inside each PageState."""

    def extract_cookies(self, response: Any, request: Any) -> None:
        return None

    def set_cookie(self, cookie: Any) -> None:
        return None


def _cookie_header(cookies: dict[str, str]) -> str:
    return "; ".join(f"{name}={value}" for name, value in cookies.items())


def _response_cookies(response: httpx.Response) -> dict[str, str]:
    """Cookies set by a response (last one wins on duplicate names)."""
    return {cookie.name: cookie.value or "" for cookie in response.cookies.jar}


class PostbackClient:
    """
    Talks to the Web Forms page.
    One shared httpx.AsyncClient; per-lookup cookies ride in PageState.
    """

    def __init__(
        self,
        config: Settings | None = None,
        cascade: Cascade | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize client.

        Args:
            config: Settings (defaults to global)
            cascade: Dropdown chain (built from config if not provided)
            transport: Optional httpx transport, used by tests to fake upstream
            sleep: Awaitable sleep used for throttling
        """
        self.config = config or default_settings
        self.cascade = cascade or Cascade(self.config)
        self.transport = transport
        self.sleep = sleep

        self._client: httpx.AsyncClient | None = None

        # Rate limiting
        self._rate_lock = asyncio.Lock()
        self.last_request_time: float = 0
        self.min_request_interval: float = 60.0 / max(self.config.max_requests_per_minute, 1)
        self.requests_made: int = 0

    async def start(self) -> httpx.AsyncClient:
        """Open the shared client if needed and return it."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.config.request_timeout,
                transport=self.transport,
                cookies=_DiscardingJar(),
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "PostbackClient":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def fetch_initial(self) -> tuple[PageState, list[DropdownOption]]:
        """
        GET the lookup page.

        Returns:
            Fresh PageState (no selections applied) and the make options

        Raises:
            UpstreamError: On transport failure or a page without state/makes
        """
        url = self.config.page_url
        cookies: dict[str, str] = {}
        # Redirects followed by hand so cookies from each hop are replayed
        for _ in range(MAX_REDIRECTS + 1):
            headers = page_headers(self.config)
            if cookies:
                headers["Cookie"] = _cookie_header(cookies)
            response = await self._send("GET", url, headers=headers, follow_redirects=False)
            cookies.update(_response_cookies(response))
            if not response.is_redirect:
                break
            url = str(response.url.join(response.headers["location"]))
        else:
            raise UpstreamError(f"Too many redirects fetching {self.config.page_url}")

        html = response.text
        state = extract_page_state(html, cookies=cookies)

        make = self.cascade.dropdown(Level.MAKE)
        if not has_dropdown(html, make):
            raise MalformedResponseError(f"Initial page has no '{make.name}' dropdown")
        makes = extract_options(html, make, self.config.placeholder_values)
        if not makes:
            raise EmptyOptionsError("Upstream returned no makes")

        bind_context(level="make").info(
            "initial page scraped",
            options=len(makes),
            view_state=preview(state.view_state),
            cookies=list(state.cookies),
        )
        return state, makes

    async def postback(
        self,
        state: PageState,
        changed: Level,
        selections: dict[str, str],
    ) -> tuple[list[DropdownOption], PageState]:
        """
        Select one dropdown value and read the next dropdown's options.

        Args:
            state: State to echo (must reflect every level before ``changed``)
            changed: Level being selected
            selections: Values for ``changed`` and its parents

        Returns:
            Options of the level after ``changed`` and the updated PageState
        """
        changed = Level(changed)
        next_level = self.cascade.next_level(changed)
        if next_level is None:
            raise ValueError(f"'{changed.value}' is the last dropdown; nothing to postback for")

        applied = {
            level.value: selections[level.value]
            for level in LEVELS[: LEVELS.index(changed) + 1]
        }
        form = build_postback_form(state, self.cascade, changed, applied, self.config)

        headers = postback_headers(self.config)
        if state.cookies:
            headers["Cookie"] = _cookie_header(state.cookies)

        await self.sleep(self.config.postback_delay)
        response = await self._send(
            "POST", self.config.page_url, headers=headers, data=form, follow_redirects=False
        )
        if response.is_redirect:
            raise StateExpiredError(
                f"Upstream redirected postback to {response.headers.get('location', '?')}"
            )

        cookies = _response_cookies(response)
        text = response.text
        if is_delta(text):
            delta = parse_delta(text)
            error = delta.error()
            if error is not None:
                code, message = error
                if _EXPIRED_STATE_RE.search(message):
                    raise StateExpiredError(f"Upstream rejected view state: {message}")
                raise UpstreamError(f"Upstream error {code}: {message}")
            redirect = delta.redirect()
            if redirect is not None:
                raise StateExpiredError(f"Upstream redirected to {redirect}")
            new_state = apply_to_state(delta, state, cookies=cookies, selections=applied)
            html = delta.panel_html()
            source = f"delta ({len(delta.segments)} segments)"
        else:
            # Some upstream revisions answer with the whole page
            if _EXPIRED_STATE_RE.search(text):
                raise StateExpiredError("Upstream rejected view state")
            if _SERVER_ERROR_RE.search(text):
                raise UpstreamError("Upstream returned an ASP.NET error page")
            new_state = extract_page_state(
                text, cookies={**state.cookies, **cookies}, selections=applied
            )
            html = text
            source = "full page"

        dropdown = self.cascade.dropdown(next_level)
        if not has_dropdown(html, dropdown):
            raise MalformedResponseError(
                f"Postback for '{changed.value}' did not render the '{next_level.value}' dropdown"
            )
        options = extract_options(html, dropdown, self.config.placeholder_values)
        if not options:
            raise EmptyOptionsError(
                f"No {next_level.value} options for {changed.value}={applied[changed.value]}"
            )

        bind_context(level=next_level.value).info(
            "postback parsed",
            source=source,
            options=len(options),
            view_state=preview(new_state.view_state),
        )
        return options, new_state

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send one request with throttling and error mapping."""
        client = await self.start()

        await self._enforce_rate_limit()
        started = time.monotonic()
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(f"{method} {url} timed out: {e}") from e
        except httpx.RequestError as e:
            raise UpstreamError(f"{method} {url} failed: {e}") from e

        self.requests_made += 1
        bind_context().debug(
            "upstream request",
            method=method,
            url=url,
            status=response.status_code,
            duration_ms=round((time.monotonic() - started) * 1000, 1),
        )

        if response.status_code >= 400:
            raise UpstreamError(f"{method} {url} returned HTTP {response.status_code}")
        return response

    async def _enforce_rate_limit(self) -> None:
        """Keep at least ``min_request_interval`` between requests."""
        async with self._rate_lock:
            elapsed = time.monotonic() - self.last_request_time
            if elapsed < self.min_request_interval:
                await self.sleep(self.min_request_interval - elapsed)
            self.last_request_time = time.monotonic()
