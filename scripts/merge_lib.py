#!/usr/bin/env python3
"""Cross-resource merge core: match satellites to primaries, plan the merge.

Satellite resources (e.g. `cloudflare_split_tunnel`) only exist to attach
repeatable entries to a primary resource (a device profile). This module
works on plain records built by a representation adapter (config_merge for
.tf files, state_merge for state JSON), so both passes share one matcher,
one entry filter and one output order:

    satellites ──match──▶ groups per primary ──collect──▶ per-mode entry lists
                  │                                       │
                  ├─ orphans (unparseable reference)      └─ written include → exclude
                  └─ unmatched (target not found)

Nothing here mutates its inputs. The adapters apply the returned MergePlan.

Stdlib only — no pip dependencies.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional

from classify_lib import Discriminators, Variant
from value_lib import (
    Expression, ListValue, ObjectValue, String, Value, has_content,
    make_object, to_json,
)

DEFAULT_TARGET = "<default>"

UNPARSEABLE = "unparseable reference"
NOT_FOUND = "target not found"
UNSUPPORTED_MODE = "unsupported mode"


# ── Schemas (supplied by the calling migrator) ────────────────────────

@dataclass(frozen=True)
class PrimarySchema:
    default_kind: str
    custom_kind: str
    legacy_kinds: tuple = ()
    discriminators: Discriminators = Discriminators()
    scope_field: str = "account_id"
    id_field: str = "policy_id"
    label: str = "profile"

    @property
    def kinds(self) -> tuple:
        return (self.default_kind, self.custom_kind) + tuple(self.legacy_kinds)

    @property
    def reference_kinds(self) -> tuple:
        """Kinds a satellite reference may address, in resolution priority order."""
        return (self.custom_kind, self.default_kind) + tuple(self.legacy_kinds)


@dataclass(frozen=True)
class SatelliteSchema:
    kind: str
    label: str
    reference_field: str
    mode_field: str
    default_mode: str
    entries_field: str
    key_fields: tuple
    entry_fields: tuple
    # (mode, attribute on the primary), in output order
    collections: tuple
    scope_field: str = "account_id"

    @property
    def modes(self) -> list[str]:
        return [mode for mode, _ in self.collections]


# ── Records ───────────────────────────────────────────────────────────

class Target(Enum):
    DEFAULT = "default"
    NAMED = "named"
    UNRESOLVED = "unresolved"


@dataclass
class Primary:
    name: str
    kind: str
    variant: Variant
    # what a named satellite reference resolves to (custom profiles only):
    # the resource name in config, the profile id in state
    address: Optional[str] = None
    scope: Optional[str] = None
    existing: dict = field(default_factory=dict)
    source: Any = None


@dataclass
class Satellite:
    name: str
    target: Target
    target_name: str = ""
    target_kind: str = ""
    scope: Optional[str] = None
    mode: Optional[Value] = None
    entries: list = field(default_factory=list)
    source: Any = None


@dataclass
class Diagnostic:
    message: str
    reason: str
    satellite: Satellite


@dataclass
class MatchResult:
    groups: list = field(default_factory=list)
    orphans: list = field(default_factory=list)
    unmatched: dict = field(default_factory=dict)


@dataclass
class MergePlan:
    writes: list = field(default_factory=list)
    diagnostics: list = field(default_factory=list)
    removals: list = field(default_factory=list)


# ── Matching ──────────────────────────────────────────────────────────

def _default_primary(primaries: list[Primary], scope: Optional[str]) -> Optional[Primary]:
    # a later default profile in the same scope replaces an earlier one
    for primary in reversed(primaries):
        if primary.variant is not Variant.DEFAULT:
            continue
        if scope is None or primary.scope is None or primary.scope == scope:
            return primary
    return None


def _named_primary(primaries: list[Primary], name: str, kind: str) -> Optional[Primary]:
    # only custom profiles are addressable; a default profile is reached
    # by leaving the reference out
    candidates = [p for p in primaries if p.variant is Variant.CUSTOM and p.address == name]
    for primary in candidates:
        if primary.kind == kind:
            return primary
    return candidates[0] if candidates else None


def match_satellites(primaries: list[Primary], satellites: list[Satellite]) -> MatchResult:
    """Group satellites under the primary they target.

    No reference → the default primary (same scope when scopes are known).
    Unresolvable reference → orphans. Resolved reference, or default
    target, with no primary present → unmatched, keyed by target name
    (DEFAULT_TARGET for the default profile).
    """
    result = MatchResult()
    groups: dict[int, list[Satellite]] = {id(p): [] for p in primaries}

    for sat in satellites:
        if sat.target is Target.UNRESOLVED:
            result.orphans.append(sat)
            continue
        if sat.target is Target.DEFAULT:
            primary = _default_primary(primaries, sat.scope)
            key = DEFAULT_TARGET
        else:
            primary = _named_primary(primaries, sat.target_name, sat.target_kind)
            key = sat.target_name
        if primary is None:
            result.unmatched.setdefault(key, []).append(sat)
        else:
            groups[id(primary)].append(sat)

    result.groups = [(p, groups[id(p)]) for p in primaries if groups[id(p)]]
    return result


# ── Entry collection ──────────────────────────────────────────────────

def mode_of(sat: Satellite, schema: SatelliteSchema) -> Optional[str]:
    """Explicit mode, the default mode when absent, None when unusable."""
    if sat.mode is None:
        return schema.default_mode
    if isinstance(sat.mode, String):
        return sat.mode.value or schema.default_mode
    return None


def entry_object(entry: Mapping[str, Value], schema: SatelliteSchema) -> Optional[ObjectValue]:
    """Uniform entry object, or None when no key field carries data."""
    if not any(has_content(entry.get(name)) for name in schema.key_fields):
        return None
    return make_object(
        (name, entry[name]) for name in schema.entry_fields
        if has_content(entry.get(name))
    )


def collect_entries(satellites: list[Satellite], schema: SatelliteSchema) -> tuple[dict[str, list], list[Diagnostic]]:
    """Accumulate entries per mode in satellite order, then entry order."""
    per_mode: dict[str, list] = {mode: [] for mode in schema.modes}
    diagnostics: list[Diagnostic] = []
    for sat in satellites:
        mode = mode_of(sat, schema)
        if mode not in per_mode:
            diagnostics.append(Diagnostic(unsupported_mode_message(sat, schema), UNSUPPORTED_MODE, sat))
            continue
        for entry in sat.entries:
            obj = entry_object(entry, schema)
            if obj is not None:
                per_mode[mode].append(obj)
    return per_mode, diagnostics


# ── Diagnostics ───────────────────────────────────────────────────────

def unparseable_message(sat: Satellite, schema: SatelliteSchema) -> str:
    return (f'{schema.label} "{sat.name}" has unparseable {schema.reference_field} '
            f'reference - manual migration required')


def not_found_message(sat: Satellite, schema: SatelliteSchema, primary: PrimarySchema) -> str:
    if sat.target is Target.DEFAULT:
        return (f'{schema.label} "{sat.name}" targets the default {primary.label} which was not found '
                f'- create {primary.default_kind} resource first')
    return (f'{schema.label} "{sat.name}" references {primary.label} "{sat.target_name}" '
            f'which was not found - manual migration required')


def _shown(value: Value) -> str:
    if isinstance(value, String):
        return value.value
    if isinstance(value, Expression):
        return value.text
    return json.dumps(to_json(value))


def unsupported_mode_message(sat: Satellite, schema: SatelliteSchema) -> str:
    shown = _shown(sat.mode)
    return (f'{schema.label} "{sat.name}" has unsupported {schema.mode_field} "{shown}" '
            f'- entries were not merged')


# ── Planning ──────────────────────────────────────────────────────────

def plan_merge(primaries: list[Primary], satellites: list[Satellite],
               schema: SatelliteSchema, primary_schema: PrimarySchema) -> MergePlan:
    """Decide every write, diagnostic and removal for one unit/document.

    Each primary gets one ListValue per non-empty mode, `collections`
    order (include before exclude). Entries already on the primary stay in
    front of the merged ones. Every satellite is removed, matched or not.
    """
    plan = MergePlan(removals=list(satellites))
    match = match_satellites(primaries, satellites)

    diagnostics: list[Diagnostic] = []
    for sat in match.orphans:
        diagnostics.append(Diagnostic(unparseable_message(sat, schema), UNPARSEABLE, sat))
    for sats in match.unmatched.values():
        for sat in sats:
            diagnostics.append(Diagnostic(not_found_message(sat, schema, primary_schema), NOT_FOUND, sat))

    for primary, sats in match.groups:
        per_mode, mode_diagnostics = collect_entries(sats, schema)
        diagnostics.extend(mode_diagnostics)
        collections = []
        for mode, attr in schema.collections:
            if per_mode[mode]:
                merged = list(primary.existing.get(attr, ())) + per_mode[mode]
                collections.append((attr, ListValue(tuple(merged))))
        if collections:
            plan.writes.append((primary, collections))

    order = {id(sat): i for i, sat in enumerate(satellites)}
    plan.diagnostics = sorted(diagnostics, key=lambda d: order[id(d.satellite)])
    return plan


# ── Reporting ─────────────────────────────────────────────────────────

@dataclass
class MergeReport:
    """What one orchestration pass did. `skipped` means the pass had already
    run on this in-memory unit/document."""
    merged: dict = field(default_factory=dict)
    removed: list = field(default_factory=list)
    diagnostics: list = field(default_factory=list)
    annotated: bool = False
    skipped: bool = False

    @classmethod
    def from_plan(cls, plan: MergePlan) -> "MergeReport":
        report = cls()
        for primary, collections in plan.writes:
            address = f"{primary.kind}.{primary.name}"
            report.merged[address] = {attr: len(value.items) for attr, value in collections}
        report.removed = [sat.name for sat in plan.removals]
        report.diagnostics = list(plan.diagnostics)
        return report

    def to_dict(self) -> dict[str, Any]:
        return {
            "merged": self.merged,
            "removed": self.removed,
            "diagnostics": [
                {"satellite": d.satellite.name, "reason": d.reason, "message": d.message}
                for d in self.diagnostics
            ],
            "annotated": self.annotated,
            "skipped": self.skipped,
        }
