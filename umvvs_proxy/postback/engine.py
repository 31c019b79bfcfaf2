"""
State-replay engine.
Plans and runs the chain of postbacks needed to reach one dropdown's options.
"""

from ..core.errors import StateExpiredError
from ..core.logging import bind_context
from ..core.models import DropdownOption, Level, LookupResult, PageState
from .cascade import Cascade, LEVELS
from .client import PostbackClient


class ReplayEngine:
    """
    Replays dropdown selections one postback at a time.

    A PageState records the selections its view state already reflects. When a
    lookup arrives with a state whose selections lead the requested chain, only
    the remaining selections are posted; anything else starts from a fresh GET.
    """

    def __init__(self, client: PostbackClient):
        """
        Initialize engine.

        Args:
            client: Upstream client (its cascade is reused)
        """
        self.client = client
        self.cascade: Cascade = client.cascade

    async def init(self) -> tuple[PageState, list[DropdownOption]]:
        """Fresh page state and the make options."""
        return await self.client.fetch_initial()

    async def lookup(
        self,
        level: Level | str,
        selections: dict[str, str],
        state: PageState | None = None,
        session_id: str | None = None,
    ) -> LookupResult:
        """
        Fetch the options of ``level`` for the given parent selections.

        Args:
            level: Level whose options are wanted
            selections: Client selections keyed by level name (extra keys ignored)
            state: Optional token bundle from an earlier lookup
            session_id: Only used for log context

        Returns:
            LookupResult with options and the state after the last postback

        Raises:
            SelectionError: If a parent selection is missing
            UpstreamError: On any upstream failure
        """
        level = Level(level)
        wanted = self.cascade.required_selections(level, selections)
        log = bind_context(session_id=session_id, level=level.value)

        if level == Level.MAKE:
            fresh, makes = await self.init()
            return LookupResult(level=level, options=makes, state=fresh, postbacks=0)

        reusable = state is not None and self._can_reuse(state, wanted)
        if reusable:
            try:
                return await self._replay(level, wanted, state)
            except StateExpiredError as e:
                log.warning("token bundle rejected, replaying from a fresh page", error=str(e))

        fresh, _ = await self.init()
        return await self._replay(level, wanted, fresh)

    def _can_reuse(self, state: PageState, wanted: dict[str, str]) -> bool:
        """True when every selection applied to ``state`` leads ``wanted``."""
        applied = state.selections
        prefix = self.cascade.common_prefix(applied, wanted)
        return len(prefix) == len(applied)

    async def _replay(
        self,
        level: Level,
        wanted: dict[str, str],
        state: PageState,
    ) -> LookupResult:
        """
        Post every selection in ``wanted`` not yet applied to ``state``.

        When ``state`` already reflects all of ``wanted`` the last selection is
        posted again; the re-rendered panel carries the child options.
        """
        applied = self.cascade.common_prefix(state.selections, wanted)
        start = len(applied)
        if start == len(wanted):
            start -= 1

        options: list[DropdownOption] = []
        postbacks = 0
        for changed in LEVELS[start: len(wanted)]:
            options, state = await self.client.postback(state, changed, wanted)
            postbacks += 1

        bind_context(level=level.value).info(
            "lookup replayed",
            reused=start,
            postbacks=postbacks,
            options=len(options),
        )
        return LookupResult(level=level, options=options, state=state, postbacks=postbacks)
