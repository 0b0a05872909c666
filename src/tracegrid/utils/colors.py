from __future__ import annotations

from typing import Tuple

from tracegrid.utils.hashing import stable_hash_int

# rich colour names, spread around the wheel so neighbours stay distinct.
PALETTE: Tuple[str, ...] = (
    "red",
    "magenta",
    "purple",
    "blue",
    "dodger_blue2",
    "cyan",
    "dark_cyan",
    "green",
    "chartreuse3",
    "yellow",
    "orange3",
    "dark_orange",
    "deep_pink3",
    "medium_purple",
)


def color_from_seed(seed: str) -> str:
    """Same seed, same colour, across tables and sessions."""
    return PALETTE[stable_hash_int(seed) % len(PALETTE)]
