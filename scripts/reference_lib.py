#!/usr/bin/env python3
"""Resolve symbolic resource references in configuration expressions.

A reference is recognised only when the whole expression is one of:

    <kind>.<name>.<field>          dot form
    <kind>["<name>"].<field>       indexed form

Nothing is evaluated. Variables, locals, module outputs, conditionals,
function calls and template strings never resolve: they cannot be
attributed to a resource at migration time.

Stdlib only — no pip dependencies.
"""
from __future__ import annotations

import re
from typing import Iterable, Optional

NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_-]*")
FIELD_PATH_RE = re.compile(r"(\.[A-Za-z_][A-Za-z0-9_-]*)+")
INDEXED_RE = re.compile(r'\[\s*"([^"\\$%]+)"\s*\]')


def _dot_form(expr: str, kind: str) -> Optional[str]:
    parts = expr.split(".")
    if len(parts) < 3 or parts[0] != kind:
        return None
    name = parts[1]
    if not NAME_RE.fullmatch(name):
        return None
    if not all(NAME_RE.fullmatch(p) for p in parts[2:]):
        return None
    return name


def _indexed_form(expr: str, kind: str) -> Optional[str]:
    if not expr.startswith(kind + "["):
        return None
    match = INDEXED_RE.match(expr, len(kind))
    if not match:
        return None
    if not FIELD_PATH_RE.fullmatch(expr, match.end()):
        return None
    return match.group(1)


def resolve_reference(raw: str, candidate_kinds: Iterable[str]) -> Optional[tuple[str, str]]:
    """Return (kind, name) addressed by `raw`, or None if it is not a plain reference.

    Candidate kinds are tried in the order given; the first grammar that
    matches wins.
    """
    expr = raw.strip()
    for kind in candidate_kinds:
        name = _dot_form(expr, kind) or _indexed_form(expr, kind)
        if name:
            return kind, name
    return None
