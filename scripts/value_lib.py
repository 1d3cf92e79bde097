#!/usr/bin/env python3
"""Attribute value model shared by the config and state passes.

A resource attribute is one of a closed set of value kinds: String, Number,
Boolean, ListValue, ObjectValue, or Expression (anything in configuration
text that is not a literal, e.g. `var.policy_id` or a template string).
`null` is never represented: an attribute whose value is null is treated as
absent, in both HCL and state JSON.

Stdlib only — no pip dependencies.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union


@dataclass(frozen=True)
class String:
    value: str


@dataclass(frozen=True)
class Number:
    value: Union[int, float]


@dataclass(frozen=True)
class Boolean:
    value: bool


@dataclass(frozen=True)
class ListValue:
    items: tuple = ()


@dataclass(frozen=True)
class ObjectValue:
    """Ordered mapping of field name → Value."""
    fields: tuple = ()

    def get(self, name: str) -> Optional["Value"]:
        for key, value in self.fields:
            if key == name:
                return value
        return None

    def keys(self) -> list[str]:
        return [key for key, _ in self.fields]


@dataclass(frozen=True)
class Expression:
    """Unevaluated configuration expression, kept as its source text."""
    text: str


Value = Union[String, Number, Boolean, ListValue, ObjectValue, Expression]


def make_object(pairs: Any) -> ObjectValue:
    """Build an ObjectValue from a dict or an iterable of (key, value) pairs."""
    if isinstance(pairs, dict):
        pairs = pairs.items()
    return ObjectValue(tuple((k, v) for k, v in pairs if v is not None))


# ── Accessors ─────────────────────────────────────────────────────────

def string_of(value: Optional[Value]) -> str:
    """Return the literal string content, or "" for anything else."""
    if isinstance(value, String):
        return value.value
    return ""


def is_true(value: Optional[Value]) -> bool:
    """True only for a literal boolean true."""
    return isinstance(value, Boolean) and value.value is True


def has_content(value: Optional[Value]) -> bool:
    """True if the value carries usable data for an entry field.

    Empty strings carry nothing. Expressions are kept: they cannot be
    evaluated here but are still the operator's data.
    """
    if isinstance(value, String):
        return value.value != ""
    return value is not None


# ── JSON conversion (state documents) ─────────────────────────────────

def from_json(data: Any) -> Optional[Value]:
    """Convert a decoded JSON value into a Value. null → None (absent)."""
    if data is None:
        return None
    # bool before int: bool is a subclass of int
    if isinstance(data, bool):
        return Boolean(data)
    if isinstance(data, (int, float)):
        return Number(data)
    if isinstance(data, str):
        return String(data)
    if isinstance(data, list):
        items = [from_json(item) for item in data]
        return ListValue(tuple(item for item in items if item is not None))
    if isinstance(data, dict):
        return make_object((k, from_json(v)) for k, v in data.items())
    raise TypeError(f"Unsupported JSON value: {data!r}")


def to_json(value: Value) -> Any:
    """Convert a Value back to plain JSON data."""
    if isinstance(value, (String, Number, Boolean)):
        return value.value
    if isinstance(value, ListValue):
        return [to_json(item) for item in value.items]
    if isinstance(value, ObjectValue):
        return {k: to_json(v) for k, v in value.fields}
    if isinstance(value, Expression):
        # Expressions only come from configuration text; state never holds one.
        raise TypeError(f"Expression cannot be stored in state: {value.text}")
    raise TypeError(f"Unsupported value: {value!r}")


def attributes_from_json(attrs: Optional[dict[str, Any]]) -> dict[str, Value]:
    """Flat attribute view of a state instance's `attributes` object."""
    view: dict[str, Value] = {}
    for key, raw in (attrs or {}).items():
        value = from_json(raw)
        if value is not None:
            view[key] = value
    return view
