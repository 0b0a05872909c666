from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterator, Tuple


def iter_jsonl(path: Path) -> Iterator[Tuple[int, Dict[str, Any]]]:
    """
    Yields (line_no, object) for each JSON object line. Blank lines and
    '#' comments are skipped; a malformed line raises ValueError with its number.
    """
    if not path.exists():
        raise FileNotFoundError(str(path))
    with path.open("r", encoding="utf-8", errors="replace") as f:
        for line_no, raw in enumerate(f, start=1):
            s = raw.strip()
            if not s or s.startswith("#"):
                continue
            try:
                obj = json.loads(s)
            except json.JSONDecodeError as exc:
                raise ValueError(f"{path}:{line_no}: invalid JSON ({exc.msg})") from exc
            if not isinstance(obj, dict):
                raise ValueError(f"{path}:{line_no}: expected a JSON object")
            yield line_no, obj
