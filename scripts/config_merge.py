#!/usr/bin/env python3
"""Merge satellite resources into primaries inside one .tf configuration unit.

Reads Primary/Satellite records off the editable tree (hcl_lib), lets
merge_lib plan the merge, then applies it: writes `include`/`exclude`
list attributes on the primary blocks, removes every satellite block, and
appends a MIGRATION_WARNING comment per diagnostic at the end of the unit
with the removed declaration quoted, so it can be re-applied by hand.

Stdlib only — no pip dependencies.
"""
from __future__ import annotations

from typing import Optional

from classify_lib import Variant, classify
from hcl_lib import Block, Body, ConfigFile, render_value
from merge_lib import (
    MergeReport, Primary, PrimarySchema, Satellite, SatelliteSchema, Target,
    plan_merge,
)
from reference_lib import resolve_reference
from value_lib import Expression, ListValue, ObjectValue, Value

MARKER = "/** MIGRATION_WARNING:"


# ── Tree → records ────────────────────────────────────────────────────

def classify_block(block: Block, schema: PrimarySchema) -> Variant:
    """Variant of a primary block; v5 kinds are already decided by name."""
    if block.kind == schema.default_kind:
        return Variant.DEFAULT
    if block.kind == schema.custom_kind:
        return Variant.CUSTOM
    return classify(block.body.attribute_values(), schema.discriminators)


def _literal_entries(value: Optional[Value]) -> list:
    if isinstance(value, ListValue):
        return [item for item in value.items if isinstance(item, ObjectValue)]
    return []


def _primary(block: Block, primary_schema: PrimarySchema, schema: SatelliteSchema) -> Primary:
    attrs = block.body.attribute_values()
    existing = {attr: _literal_entries(attrs.get(attr)) for _, attr in schema.collections}
    variant = classify_block(block, primary_schema)
    return Primary(
        name=block.name,
        kind=block.kind,
        variant=variant,
        address=block.name if variant is Variant.CUSTOM else None,
        existing={k: v for k, v in existing.items() if v},
        source=block,
    )


def _satellite(block: Block, primary_schema: PrimarySchema, schema: SatelliteSchema) -> Satellite:
    body = block.body
    attrs = body.attribute_values()
    sat = Satellite(name=block.name, target=Target.DEFAULT, mode=attrs.get(schema.mode_field), source=block)

    ref = body.get_attribute(schema.reference_field)
    if ref is not None and ref.value() is not None:
        resolved = resolve_reference(ref.expr, primary_schema.reference_kinds)
        if resolved is None:
            sat.target = Target.UNRESOLVED
        else:
            sat.target = Target.NAMED
            sat.target_kind, sat.target_name = resolved

    for entry_block in body.blocks(schema.entries_field):
        sat.entries.append(entry_block.body.attribute_values())
    # `tunnels = [{...}]` written as an attribute instead of blocks
    for item in _literal_entries(attrs.get(schema.entries_field)):
        sat.entries.append(dict(item.fields))
    return sat


# ── Records → tree ────────────────────────────────────────────────────

def _write_collection(body: Body, attr: str, value: ListValue, kept: int) -> None:
    current = body.get_attribute(attr)
    if current is not None and kept == 0 and isinstance(current.value(), Expression):
        # Existing non-literal value: append to it rather than replace it.
        added = render_value(value, body.indent)
        body.set_attribute(attr, f"concat({current.expr}, {added})")
        return
    body.set_value(attr, value)


def render_annotation(message: str, excerpt: str) -> str:
    """`/** MIGRATION_WARNING: msg` + `*  `-prefixed excerpt + `*/` + blank line."""
    lines = [f"{MARKER} {message}"]
    for line in excerpt.strip().split("\n"):
        lines.append("*  " + line.replace("*/", "* /"))
    lines.append("*/")
    return "\n".join(lines) + "\n\n"


# ── Orchestration ─────────────────────────────────────────────────────

def process_config_unit(unit: ConfigFile, schema: SatelliteSchema,
                        primary_schema: PrimarySchema) -> MergeReport:
    """Merge, remove and annotate satellites of `schema.kind` in one unit.

    Runs at most once per in-memory unit; later calls return a skipped
    report. Warning comments are only appended if the unit does not
    already carry one from an earlier run.
    """
    if schema.kind in unit.processed:
        return MergeReport(skipped=True)
    unit.processed.add(schema.kind)

    primaries = [
        _primary(block, primary_schema, schema)
        for block in unit.resource_blocks() if block.kind in primary_schema.kinds
    ]
    satellites = [
        _satellite(block, primary_schema, schema)
        for block in unit.resource_blocks(schema.kind)
    ]
    if not satellites:
        return MergeReport()

    plan = plan_merge(primaries, satellites, schema, primary_schema)

    for primary, collections in plan.writes:
        for attr, value in collections:
            kept = len(primary.existing.get(attr, ()))
            _write_collection(primary.source.body, attr, value, kept)

    excerpts = {id(sat): sat.source.text() for sat in plan.removals}
    for sat in plan.removals:
        unit.body.remove_block(sat.source)

    report = MergeReport.from_plan(plan)
    if plan.diagnostics and MARKER not in unit.render():
        for diagnostic in plan.diagnostics:
            unit.body.append_text(render_annotation(diagnostic.message, excerpts[id(diagnostic.satellite)]))
        report.annotated = True
    return report
