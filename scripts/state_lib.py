#!/usr/bin/env python3
"""Terraform state document helpers.

A state document is the JSON written by Terraform (`terraform.tfstate`):
top-level metadata plus a `resources` array whose entries carry `type`,
`name` and `instances[].attributes`. Edits go through dotted paths such as
`resources.3.instances.0.attributes.exclude`; everything not addressed is
left exactly as loaded, key order included.

Stdlib only — no pip dependencies.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional

_MISSING = object()


class StateFormatError(ValueError):
    """Raised when a document is JSON but not a Terraform state."""


@dataclass
class StateDocument:
    """One state document. `processed` records cross-resource passes
    already applied to this in-memory document."""
    data: dict[str, Any]
    processed: set = field(default_factory=set)

    @property
    def resources(self) -> list[dict[str, Any]]:
        return self.data["resources"]

    def get(self, path: str, default: Any = None) -> Any:
        return get_path(self.data, path, default)

    def set(self, path: str, value: Any) -> None:
        set_path(self.data, path, value)

    def delete(self, path: str) -> bool:
        return delete_path(self.data, path)

    def dumps(self) -> str:
        return dump_state(self.data)


# ── JSON I/O ──────────────────────────────────────────────────────────

def loads_state(text: str) -> StateDocument:
    """Parse state JSON. Raises json.JSONDecodeError or StateFormatError."""
    data = json.loads(text)
    if not isinstance(data, dict) or not isinstance(data.get("resources", []), list):
        raise StateFormatError("state document has no 'resources' array")
    data.setdefault("resources", [])
    return StateDocument(data=data)


def dump_state(data: dict[str, Any]) -> str:
    """Serialize with Terraform's own layout: 2-space indent, trailing newline."""
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


# ── Path access ───────────────────────────────────────────────────────

def _split(path: str) -> list[Any]:
    return [int(p) if p.isdigit() else p for p in path.split(".")]


def _step(node: Any, key: Any) -> Any:
    if isinstance(key, int):
        if isinstance(node, list) and 0 <= key < len(node):
            return node[key]
        return _MISSING
    if isinstance(node, dict):
        return node.get(key, _MISSING)
    return _MISSING


def get_path(data: Any, path: str, default: Any = None) -> Any:
    """Read a dotted path. Missing steps return `default`."""
    node = data
    for key in _split(path):
        node = _step(node, key)
        if node is _MISSING:
            return default
    return node


def set_path(data: Any, path: str, value: Any) -> None:
    """Write a dotted path, creating intermediate objects as needed."""
    keys = _split(path)
    node = data
    for key in keys[:-1]:
        nxt = _step(node, key)
        if nxt is _MISSING or not isinstance(nxt, (dict, list)):
            if isinstance(key, int):
                raise KeyError(f"index {key} out of range in path {path!r}")
            nxt = {}
            node[key] = nxt
        node = nxt
    last = keys[-1]
    if isinstance(last, int) and not (isinstance(node, list) and last < len(node)):
        raise KeyError(f"index {last} out of range in path {path!r}")
    node[last] = value


def delete_path(data: Any, path: str) -> bool:
    """Delete a key or array element. Returns False if it did not exist."""
    keys = _split(path)
    parent = get_path(data, ".".join(str(k) for k in keys[:-1])) if len(keys) > 1 else data
    last = keys[-1]
    if isinstance(last, int):
        if isinstance(parent, list) and 0 <= last < len(parent):
            del parent[last]
            return True
        return False
    if isinstance(parent, dict) and last in parent:
        del parent[last]
        return True
    return False


# ── Resource helpers ──────────────────────────────────────────────────

def attributes_path(index: int) -> str:
    """Path of the single instance's attributes for resource `index`."""
    return f"resources.{index}.instances.0.attributes"


def instance_attributes(resource: dict[str, Any]) -> Optional[dict[str, Any]]:
    attrs = get_path(resource, "instances.0.attributes")
    return attrs if isinstance(attrs, dict) else None


def remove_resources(doc: StateDocument, indices: list[int]) -> None:
    """Remove resources by index, highest first so indices stay valid."""
    for index in sorted(set(indices), reverse=True):
        doc.delete(f"resources.{index}")
