"""
Content fingerprints used as cache keys.

Sequences and sets are treated as unordered collections: members are
whitespace-normalised, lower-cased, de-duplicated and sorted. Free text keeps its
case but has whitespace runs collapsed. Mapping keys are sorted.
"""
import hashlib
import json
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel


def normalize_text(text: str) -> str:
    return " ".join(text.split())


def _member_key(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def canonicalize(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return canonicalize(value.model_dump(mode="json"))
    if isinstance(value, Enum):
        return canonicalize(value.value)
    if isinstance(value, dict):
        return {str(k): canonicalize(v) for k, v in sorted(value.items(), key=lambda kv: str(kv[0]))}
    if isinstance(value, (list, tuple, set, frozenset)):
        members = []
        for item in value:
            if isinstance(item, str):
                item = normalize_text(item).lower()
                if not item:
                    continue
            else:
                item = canonicalize(item)
            members.append(item)
        unique = {_member_key(m): m for m in members}
        return [unique[k] for k in sorted(unique)]
    if isinstance(value, str):
        return normalize_text(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def fingerprint(namespace: str, payload: Any) -> str:
    """Stable sha256 over the namespace and the canonical form of the payload."""
    body = json.dumps(
        {"namespace": namespace, "payload": canonicalize(payload)},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(body.encode("utf-8")).hexdigest()
