from __future__ import annotations

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

STATUS_SUCCESS = "success"
STATUS_ERROR = "error"

_EMPTY: Mapping[str, Any] = MappingProxyType({})


def _pick(obj: Mapping[str, Any], *keys: str) -> Any:
    for k in keys:
        if k in obj and obj[k] is not None:
            return obj[k]
    return None


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value)
    return s if s else None


def _opt_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(n) else n


def _opt_tags(value: Any) -> Optional[Tuple[str, ...]]:
    if not isinstance(value, (list, tuple)):
        return None
    return tuple(str(t) for t in value if t is not None)


def _opt_mapping(value: Any) -> Optional[Mapping[str, Any]]:
    if isinstance(value, Mapping):
        return value
    return None


def _freeze_metadata(value: Any) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        return _EMPTY
    out: Dict[str, Any] = dict(value)
    enrichment = out.get("enrichment")
    if isinstance(enrichment, Mapping):
        out["enrichment"] = MappingProxyType(dict(enrichment))
    return MappingProxyType(out)


@dataclass(frozen=True)
class AppUser:
    id: Optional[str]
    external_id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_dict(cls, obj: Any) -> Optional["AppUser"]:
        if not isinstance(obj, Mapping):
            return None
        props = obj.get("props") if isinstance(obj.get("props"), Mapping) else {}
        return cls(
            id=_opt_str(obj.get("id")),
            external_id=_opt_str(_pick(obj, "externalId", "external_id")),
            name=_opt_str(obj.get("name") or props.get("name")),
            email=_opt_str(obj.get("email") or props.get("email")),
        )

    @property
    def display_name(self) -> str:
        return self.name or self.email or self.external_id or self.id or ""

    @property
    def initials(self) -> str:
        words = [w for w in self.display_name.replace("@", " ").replace(".", " ").split() if w]
        if not words:
            return "?"
        if len(words) == 1:
            return words[0][:2].upper()
        return (words[0][0] + words[1][0]).upper()


@dataclass(frozen=True)
class Record:
    """One logged execution event (a table row). Immutable snapshot."""

    id: str
    created_at: Any = None
    ended_at: Any = None
    status: Optional[str] = None
    type: Optional[str] = None
    name: Optional[str] = None
    tags: Optional[Tuple[str, ...]] = None
    cost: Optional[float] = None
    input: Any = None
    output: Any = None
    error: Any = None
    template_version_id: Optional[str] = None
    template_slug: Optional[str] = None
    user: Optional[AppUser] = None
    feedback: Optional[Mapping[str, Any]] = None
    parent_feedback: Optional[Mapping[str, Any]] = None
    metadata: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)
    trace_id: Optional[str] = None
    parent_run_id: Optional[str] = None

    @property
    def enrichment(self) -> Mapping[str, Any]:
        data = self.metadata.get("enrichment") if self.metadata else None
        return data if isinstance(data, Mapping) else _EMPTY

    @classmethod
    def from_dict(cls, obj: Mapping[str, Any]) -> "Record":
        rid = _opt_str(obj.get("id"))
        if not rid:
            raise ValueError("record has no id")
        return cls(
            id=rid,
            created_at=_pick(obj, "createdAt", "created_at"),
            ended_at=_pick(obj, "endedAt", "ended_at"),
            status=_opt_str(obj.get("status")),
            type=_opt_str(obj.get("type")),
            name=_opt_str(obj.get("name")),
            tags=_opt_tags(obj.get("tags")),
            cost=_opt_float(obj.get("cost")),
            input=obj.get("input"),
            output=obj.get("output"),
            error=obj.get("error"),
            template_version_id=_opt_str(_pick(obj, "templateVersionId", "template_version_id")),
            template_slug=_opt_str(_pick(obj, "templateSlug", "template_slug")),
            user=AppUser.from_dict(obj.get("user")),
            feedback=_opt_mapping(obj.get("feedback")),
            parent_feedback=_opt_mapping(_pick(obj, "parentFeedback", "parent_feedback")),
            metadata=_freeze_metadata(obj.get("metadata")),
            trace_id=_opt_str(_pick(obj, "traceId", "trace_id", "threadId", "thread_id")),
            parent_run_id=_opt_str(_pick(obj, "parentRunId", "parent_run_id")),
        )

    def to_dict(self) -> Dict[str, Any]:
        metadata: Dict[str, Any] = dict(self.metadata)
        if isinstance(metadata.get("enrichment"), Mapping):
            metadata["enrichment"] = dict(metadata["enrichment"])
        user = None
        if self.user is not None:
            user = {
                "id": self.user.id,
                "externalId": self.user.external_id,
                "name": self.user.name,
                "email": self.user.email,
            }
        return {
            "id": self.id,
            "createdAt": self.created_at,
            "endedAt": self.ended_at,
            "status": self.status,
            "type": self.type,
            "name": self.name,
            "tags": list(self.tags) if self.tags is not None else None,
            "cost": self.cost,
            "input": self.input,
            "output": self.output,
            "error": self.error,
            "templateVersionId": self.template_version_id,
            "templateSlug": self.template_slug,
            "user": user,
            "feedback": dict(self.feedback) if self.feedback is not None else None,
            "parentFeedback": dict(self.parent_feedback) if self.parent_feedback is not None else None,
            "metadata": metadata,
            "traceId": self.trace_id,
            "parentRunId": self.parent_run_id,
        }
