#!/usr/bin/env python3
"""Merge satellite resources into primaries inside one state document.

State has no expressions: a satellite names its profile by the concrete
profile id it stored (`policy_id`), and the default profile is the one in
the same account (`account_id`). Records are built from
`instances[0].attributes`, merge_lib plans the merge, and the plan is
applied through attribute paths and resource removal. Diagnostics cannot
be written into JSON; they are returned on the report for the caller to
print.

Stdlib only — no pip dependencies.
"""
from __future__ import annotations

from typing import Any, Optional

from classify_lib import Variant, classify
from merge_lib import (
    MergeReport, Primary, PrimarySchema, Satellite, SatelliteSchema, Target,
    plan_merge,
)
from state_lib import StateDocument, attributes_path, instance_attributes, remove_resources
from value_lib import ListValue, ObjectValue, attributes_from_json, string_of, to_json


def profile_id_from(compound_id: str) -> str:
    """`account_id/profile_id` → `profile_id`; "" when there is no profile part."""
    _, sep, profile = compound_id.partition("/")
    return profile if sep else ""


def classify_resource(rtype: str, attrs: dict[str, Any], schema: PrimarySchema) -> Variant:
    if rtype == schema.default_kind:
        return Variant.DEFAULT
    if rtype == schema.custom_kind:
        return Variant.CUSTOM
    return classify(attributes_from_json(attrs), schema.discriminators)


# ── Document → records ────────────────────────────────────────────────

def _primary(index: int, resource: dict[str, Any], attrs: dict[str, Any],
             primary_schema: PrimarySchema, schema: SatelliteSchema) -> Primary:
    view = attributes_from_json(attrs)
    variant = classify_resource(resource.get("type", ""), attrs, primary_schema)
    address: Optional[str] = None
    if variant is Variant.CUSTOM:
        address = string_of(view.get(primary_schema.id_field)) or profile_id_from(string_of(view.get("id")))
    existing = {}
    for _, attr in schema.collections:
        value = view.get(attr)
        if isinstance(value, ListValue) and value.items:
            existing[attr] = [item for item in value.items if isinstance(item, ObjectValue)]
    return Primary(
        name=resource.get("name", ""),
        kind=resource.get("type", ""),
        variant=variant,
        address=address or None,
        scope=string_of(view.get(primary_schema.scope_field)) or None,
        existing=existing,
        source=index,
    )


def _satellite(index: int, resource: dict[str, Any], attrs: dict[str, Any],
               schema: SatelliteSchema) -> Satellite:
    view = attributes_from_json(attrs)
    policy_id = string_of(view.get(schema.reference_field))
    sat = Satellite(
        name=resource.get("name", ""),
        target=Target.NAMED if policy_id else Target.DEFAULT,
        target_name=policy_id,
        scope=string_of(view.get(schema.scope_field)) or None,
        mode=view.get(schema.mode_field),
        source=index,
    )
    entries = view.get(schema.entries_field)
    if isinstance(entries, ListValue):
        sat.entries = [dict(item.fields) for item in entries.items if isinstance(item, ObjectValue)]
    return sat


# ── Orchestration ─────────────────────────────────────────────────────

def process_state_document(doc: StateDocument, schema: SatelliteSchema,
                           primary_schema: PrimarySchema) -> MergeReport:
    """Merge satellites of `schema.kind` into profiles and drop them from state.

    Runs at most once per in-memory document. Satellites without any
    instance attributes carry nothing to merge and are only removed.
    """
    if schema.kind in doc.processed:
        return MergeReport(skipped=True)
    doc.processed.add(schema.kind)

    primaries: list[Primary] = []
    satellites: list[Satellite] = []
    empty: list[int] = []
    for index, resource in enumerate(doc.resources):
        rtype = resource.get("type")
        attrs = instance_attributes(resource)
        if rtype == schema.kind:
            if attrs is None:
                empty.append(index)
            else:
                satellites.append(_satellite(index, resource, attrs, schema))
        elif rtype in primary_schema.kinds and attrs is not None:
            primaries.append(_primary(index, resource, attrs, primary_schema, schema))

    plan = plan_merge(primaries, satellites, schema, primary_schema)

    for primary, collections in plan.writes:
        for attr, value in collections:
            path = f"{attributes_path(primary.source)}.{attr}"
            current = doc.get(path)
            kept = len(primary.existing.get(attr, ()))
            added = [to_json(item) for item in value.items[kept:]]
            # keep existing entries exactly as stored, nulls included
            doc.set(path, (list(current) if isinstance(current, list) else []) + added)

    empty_names = [doc.resources[index].get("name", "") for index in empty]
    remove_resources(doc, [sat.source for sat in plan.removals] + empty)

    report = MergeReport.from_plan(plan)
    report.removed += empty_names
    return report
