from __future__ import annotations

import hashlib
import json
import unicodedata
from typing import Any, Dict


def _strip_nones(obj: Any) -> Any:
    if isinstance(obj, dict):
        out = {}
        for k, v in obj.items():
            v2 = _strip_nones(v)
            if v2 is None:
                continue
            out[k] = v2
        return out
    if isinstance(obj, list):
        return [_strip_nones(v) for v in obj]
    return obj


def canonical_json_bytes(obj: Dict[str, Any]) -> bytes:
    s = json.dumps(_strip_nones(obj), ensure_ascii=False, sort_keys=True, separators=(",", ":"), default=str)
    s = unicodedata.normalize("NFKC", s)
    return s.encode("utf-8")


def sha256_canonical_json(obj: Dict[str, Any]) -> str:
    h = hashlib.sha256()
    h.update(canonical_json_bytes(obj))
    return h.hexdigest()


def stable_hash_int(text: str) -> int:
    """
    Process-independent integer hash (the builtin hash() is salted per process).
    """
    s = unicodedata.normalize("NFKC", text or "")
    return int.from_bytes(hashlib.sha256(s.encode("utf-8")).digest()[:8], "big")
