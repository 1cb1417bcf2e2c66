"""Narrowing helpers for untyped JSON loaded from the registry and metadata files."""

from __future__ import annotations

from typing import Mapping, TypeGuard, cast

StrDict = dict[str, object]


def is_str_dict(obj: object) -> TypeGuard[StrDict]:
    if not isinstance(obj, dict):
        return False
    d = cast(dict[object, object], obj)
    return all(isinstance(k, str) for k in d.keys())


def as_str_dict(obj: object) -> StrDict | None:
    return obj if is_str_dict(obj) else None


def get_str(table: Mapping[str, object], key: str) -> str | None:
    """String value stripped of whitespace; None if missing, not a str, or blank."""
    value = table.get(key)
    if not isinstance(value, str):
        return None
    return value.strip() or None


def get_table(table: Mapping[str, object], key: str) -> StrDict:
    """Nested object, or an empty dict when missing or malformed."""
    return as_str_dict(table.get(key)) or {}


def get_str_list(table: Mapping[str, object], key: str) -> list[str]:
    """List of non-blank strings; other items are dropped."""
    value = table.get(key)
    if not isinstance(value, list):
        return []
    items = cast(list[object], value)
    return [s.strip() for s in items if isinstance(s, str) and s.strip()]
