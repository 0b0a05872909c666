from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from rich.text import Text

NEUTRAL_COLOR = "grey50"


def to_text(visual: Any) -> Text:
    """
    Flatten any cell visual to rich Text. Plain strings are never parsed as markup.
    """
    if visual is None:
        return Text("")
    if isinstance(visual, Text):
        return visual
    fn = getattr(visual, "to_text", None)
    if callable(fn):
        return fn()
    if isinstance(visual, str):
        return Text(visual)
    if isinstance(visual, (bool, int, float)):
        return Text(str(visual))
    try:
        return Text(json.dumps(visual, ensure_ascii=False, default=str, separators=(",", ":")))
    except (TypeError, ValueError):
        return Text(repr(visual))


@dataclass(frozen=True)
class Badge:
    label: Any
    color: str = NEUTRAL_COLOR
    variant: str = "filled"  # filled | outline
    dimmed: bool = False

    @property
    def style(self) -> str:
        if self.variant == "outline":
            style = self.color
        else:
            style = f"bold white on {self.color}"
        if self.dimmed:
            style += " dim"
        return style

    def to_text(self) -> Text:
        inner = to_text(self.label)
        if self.variant == "outline":
            return Text.assemble("[", inner, "]", style=self.style)
        return Text.assemble(" ", inner, " ", style=self.style)

    def __rich__(self) -> Text:
        return self.to_text()


@dataclass(frozen=True)
class Glyph:
    symbol: str
    color: Optional[str] = None
    name: str = ""

    def to_text(self) -> Text:
        return Text(self.symbol, style=self.color or "")

    def __rich__(self) -> Text:
        return self.to_text()


@dataclass(frozen=True)
class Inline:
    """Visuals laid out on one line."""

    parts: Tuple[Any, ...] = ()
    sep: str = " "

    def to_text(self) -> Text:
        return Text(self.sep).join(to_text(p) for p in self.parts)

    def __rich__(self) -> Text:
        return self.to_text()


@dataclass(frozen=True)
class BadgeGroup:
    badges: Tuple[Badge, ...] = ()

    @property
    def labels(self) -> Tuple[str, ...]:
        return tuple(to_text(b.label).plain for b in self.badges)

    def to_text(self) -> Text:
        return Inline(self.badges).to_text()

    def __rich__(self) -> Text:
        return self.to_text()


@dataclass(frozen=True)
class WithTooltip:
    """A visual plus hover text. Terminals have no hover, so only the visual prints."""

    visual: Any
    tooltip: Optional[str] = None

    def to_text(self) -> Text:
        return to_text(self.visual)

    def __rich__(self) -> Text:
        return self.to_text()
