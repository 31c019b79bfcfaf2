"""
Cascade definition - the ordered chain of dependent dropdowns.
Maps each level to its ASP.NET control and enforces parent selections.
"""

from dataclasses import dataclass

from ..core.config import Settings, settings as default_settings
from ..core.errors import SelectionError
from ..core.models import Level


LEVELS: tuple[Level, ...] = tuple(Level)


@dataclass(frozen=True)
class Dropdown:
    """One dropdown control on the page."""
    level: Level
    name: str  # UniqueID, posted as the form field name

    @property
    def element_id(self) -> str:
        """ClientID as rendered in HTML ($ becomes _)."""
        return self.name.replace("$", "_")


class Cascade:
    """
    The make → model → year → country → fuel type → engine chain.
    Selecting a value at one level repopulates the next level's options.
    """

    def __init__(self, config: Settings | None = None):
        """
        Initialize cascade from settings.

        Args:
            config: Settings holding ``dropdown_controls`` (defaults to global)
        """
        config = config or default_settings
        controls = config.dropdown_controls
        missing = [level.value for level in LEVELS if level.value not in controls]
        if missing:
            raise ValueError(f"dropdown_controls is missing levels: {missing}")

        self.dropdowns: dict[Level, Dropdown] = {
            level: Dropdown(level=level, name=controls[level.value])
            for level in LEVELS
        }

    def dropdown(self, level: Level | str) -> Dropdown:
        return self.dropdowns[Level(level)]

    def parents(self, level: Level | str) -> list[Level]:
        """Levels that must be selected before ``level`` has options."""
        index = LEVELS.index(Level(level))
        return list(LEVELS[:index])

    def next_level(self, level: Level | str) -> Level | None:
        index = LEVELS.index(Level(level))
        if index + 1 < len(LEVELS):
            return LEVELS[index + 1]
        return None

    def is_terminal(self, level: Level | str) -> bool:
        return self.next_level(level) is None

    def required_selections(
        self,
        level: Level | str,
        selections: dict[str, str]
    ) -> dict[str, str]:
        """
        Pick the parent selections needed to look up ``level``.

        Args:
            level: Level whose options are wanted
            selections: Client selections keyed by level name

        Returns:
            Ordered parent level name → value

        Raises:
            SelectionError: If any parent is missing
        """
        chain: dict[str, str] = {}
        for parent in self.parents(level):
            value = selections.get(parent.value)
            if not value:
                raise SelectionError(
                    f"Looking up '{Level(level).value}' requires a '{parent.value}' selection"
                )
            chain[parent.value] = value
        return chain

    @staticmethod
    def common_prefix(applied: dict[str, str], wanted: dict[str, str]) -> dict[str, str]:
        """
        Longest run of leading selections shared by two chains.

        Both chains are walked in cascade order; the walk stops at the first
        level where they disagree or either is unset.
        """
        prefix: dict[str, str] = {}
        for level in LEVELS:
            a = applied.get(level.value)
            w = wanted.get(level.value)
            if a is None or w is None or a != w:
                break
            prefix[level.value] = a
        return prefix
