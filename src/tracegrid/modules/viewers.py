from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from rich.style import Style
from rich.text import Text

from tracegrid.core.logger import redact_text
from tracegrid.core.state.models import AppUser
from tracegrid.utils.colors import color_from_seed

COMPACT_WIDTH = 80

_WS_RE = re.compile(r"\s+")

# (text) -> visual
TextWrapper = Callable[[str], Any]
# (payload, error, compact) -> visual
PayloadViewer = Callable[..., Any]
# template id -> route
Router = Callable[[str], str]


@dataclass(frozen=True)
class MaskingPolicy:
    """
    Redaction-aware text wrapper. When masking is enabled for the project,
    every non-empty value is replaced before display.
    """

    enabled: bool = False

    def __call__(self, text: str) -> Text:
        s = "" if text is None else str(text)
        if self.enabled and s:
            return Text(redact_text(s), style="dim")
        return Text(s)


def _one_line(s: str) -> str:
    return _WS_RE.sub(" ", s).strip()


def _truncate(s: str, width: int) -> str:
    if len(s) <= width:
        return s
    return s[: max(0, width - 1)].rstrip() + "…"


def _message_text(msg: Mapping[str, Any]) -> str:
    role = msg.get("role")
    content = msg.get("content")
    if content is None and msg.get("functionCall"):
        content = json.dumps(msg.get("functionCall"), ensure_ascii=False, default=str)
    if not isinstance(content, str):
        content = json.dumps(content, ensure_ascii=False, default=str) if content is not None else ""
    return f"{role}: {content}" if role else content


def _is_message(obj: Any) -> bool:
    return isinstance(obj, Mapping) and "role" in obj and ("content" in obj or "functionCall" in obj)


def payload_text(payload: Any) -> str:
    if payload is None:
        return ""
    if isinstance(payload, str):
        return payload
    if _is_message(payload):
        return _message_text(payload)
    if isinstance(payload, (list, tuple)) and payload and all(_is_message(m) for m in payload):
        return " | ".join(_message_text(m) for m in payload)
    try:
        return json.dumps(payload, ensure_ascii=False, default=str, separators=(",", ":"))
    except (TypeError, ValueError):
        return repr(payload)


def _error_text(error: Any) -> str:
    if isinstance(error, Mapping):
        return str(error.get("message") or error.get("stack") or payload_text(dict(error)))
    return payload_text(error)


def smart_viewer(payload: Any, error: Any = None, compact: bool = True) -> Optional[Text]:
    """
    Compact rendering of arbitrary structured payloads. An error payload
    takes precedence over normal output.
    """
    if error:
        s = "Error: " + _error_text(error)
        style = "red"
    else:
        s = payload_text(payload)
        style = ""
    if not s:
        return None
    if compact:
        s = _truncate(_one_line(s), COMPACT_WIDTH)
    return Text(s, style=style)


def template_route(template_version_id: str) -> str:
    return f"/prompts/{template_version_id}"


@dataclass(frozen=True)
class Link:
    label: str
    href: str

    def to_text(self) -> Text:
        return Text(self.label, style=Style(color="cyan", underline=True, link=self.href))

    def __rich__(self) -> Text:
        return self.to_text()


@dataclass(frozen=True)
class Avatar:
    user: AppUser
    with_name: bool = True

    def to_text(self) -> Text:
        seed = self.user.id or self.user.display_name
        chip = Text(f" {self.user.initials} ", style=f"bold white on {color_from_seed(seed)}")
        if not self.with_name:
            return chip
        return Text.assemble(chip, " ", self.user.display_name)

    def __rich__(self) -> Text:
        return self.to_text()
