#!/usr/bin/env python3
"""Migrate Cloudflare Terraform configuration and state from v4 to v5.

Rewrites device profiles into the v5 default/custom profile resources and
folds `cloudflare_split_tunnel` resources into the profile they belong to.
Every .tf file and the state document are processed independently; a file
that cannot be read is reported and skipped.

Usage:
    python3 tf_migrate.py --config-dir ./infra
    python3 tf_migrate.py --config-dir ./infra --state-file terraform.tfstate
    python3 tf_migrate.py --config-dir ./infra --output-dir ./infra-v5 --format text
    python3 tf_migrate.py --state-file terraform.tfstate --dry-run

Environment:
    TF_MIGRATE_CONFIG_DIR   default for --config-dir
    TF_MIGRATE_STATE_FILE   default for --state-file

Stdlib only — no pip dependencies.
"""
from __future__ import annotations

import argparse
import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

sys.path.insert(0, str(Path(__file__).resolve().parent))

from hcl_lib import parse_config
from merge_lib import Diagnostic, MergeReport
from migrators import MIGRATORS, SOURCE_VERSION, TARGET_VERSION, get_migrator
from state_lib import loads_state, remove_resources

BACKUP_SUFFIX = ".backup"


@dataclass
class MigrationResult:
    """Outcome of migrating one configuration unit or state document."""
    source: str
    text: str
    changed: bool = False
    renamed: dict = field(default_factory=dict)
    removed: list = field(default_factory=list)
    reports: list = field(default_factory=list)

    @property
    def diagnostics(self) -> list[Diagnostic]:
        return [d for report in self.reports for d in report.diagnostics]

    def to_dict(self) -> dict[str, Any]:
        merged: dict[str, Any] = {}
        for report in self.reports:
            merged.update(report.merged)
        return {
            "source": self.source,
            "changed": self.changed,
            "renamed": self.renamed,
            "removed": self.removed,
            "merged": merged,
            "diagnostics": [
                {"satellite": d.satellite.name, "reason": d.reason, "message": d.message}
                for d in self.diagnostics
            ],
        }


def _keep(report: Optional[MergeReport]) -> bool:
    return report is not None and not report.skipped


# ── Pipelines ─────────────────────────────────────────────────────────

def migrate_config_text(text: str, filename: str = "") -> MigrationResult:
    """Migrate one .tf unit. Raises HCLSyntaxError on unreadable input."""
    unit = parse_config(text, filename)
    result = MigrationResult(source=filename, text=text)

    for block in unit.resource_blocks():
        # satellites are removed by the first merge pass that sees them
        if not unit.body.contains(block):
            continue
        migrator = get_migrator(block.kind)
        if migrator is None:
            continue
        old_kind = block.kind
        outcome = migrator.transform_config(unit, block)
        if _keep(outcome.report):
            result.reports.append(outcome.report)
        if unit.body.contains(block) and block.kind != old_kind:
            result.renamed[f"{old_kind}.{block.name}"] = f"{block.kind}.{block.name}"

    for report in result.reports:
        result.removed.extend(report.removed)
    result.text = unit.render()
    result.changed = result.text != text
    return result


def migrate_state_text(text: str, source: str = "") -> MigrationResult:
    """Migrate one state document.

    Document-wide passes run first, once per migrator whose kinds occur in
    the document; then every remaining instance is transformed and its
    resource renamed or removed.
    """
    doc = loads_state(text)
    result = MigrationResult(source=source, text=text)

    kinds = {resource.get("type", "") for resource in doc.resources}
    for migrator in MIGRATORS:
        if any(migrator.can_handle(kind) for kind in kinds):
            report = migrator.preprocess_state(doc)
            if _keep(report):
                result.reports.append(report)
                result.removed.extend(report.removed)

    removals: list[int] = []
    for index, resource in enumerate(doc.resources):
        rtype = resource.get("type", "")
        migrator = get_migrator(rtype)
        if migrator is None:
            continue
        new_type, remove = rtype, False
        for instance in resource.get("instances") or []:
            if not isinstance(instance, dict):
                continue
            outcome = migrator.transform_state(rtype, instance)
            remove = remove or outcome.remove
            if outcome.resource_type:
                new_type = outcome.resource_type
        if remove:
            removals.append(index)
            result.removed.append(resource.get("name", ""))
        elif new_type != rtype:
            resource["type"] = new_type
            name = resource.get("name", "")
            result.renamed[f"{rtype}.{name}"] = f"{new_type}.{name}"
    remove_resources(doc, removals)

    result.text = doc.dumps()
    result.changed = result.text != text
    return result


# ── Files ─────────────────────────────────────────────────────────────

def find_config_files(config_dir: Path) -> list[Path]:
    """`*.tf` files directly under config_dir (not recursive), sorted."""
    return sorted(p for p in config_dir.glob("*.tf") if p.is_file())


def write_output(path: Path, text: str, original: Path, backup: bool) -> None:
    if backup and path == original:
        original.with_name(original.name + BACKUP_SUFFIX).write_text(original.read_text())
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


def _migrate_file(path: Path, output: Path, args: argparse.Namespace, migrate) -> MigrationResult:
    result = migrate(path.read_text(), str(path))
    in_place = output == path
    if args.dry_run or (in_place and not result.changed):
        return result
    write_output(output, result.text, path, backup=not args.no_backup)
    return result


def _warn(result: MigrationResult) -> None:
    for diagnostic in result.diagnostics:
        print(f"WARN: {result.source}: {diagnostic.message}", file=sys.stderr)


def run(args: argparse.Namespace) -> dict[str, Any]:
    summary: dict[str, Any] = {
        "from": SOURCE_VERSION,
        "to": TARGET_VERSION,
        "dry_run": args.dry_run,
        "config": [],
        "state": None,
        "errors": [],
    }

    if args.config_dir:
        config_dir = Path(args.config_dir)
        if not config_dir.is_dir():
            summary["errors"].append({"source": str(config_dir), "error": "not a directory"})
            print(f"ERROR: {config_dir}: not a directory", file=sys.stderr)
        else:
            output_dir = Path(args.output_dir) if args.output_dir else None
            for path in find_config_files(config_dir):
                output = output_dir / path.name if output_dir else path
                try:
                    result = _migrate_file(path, output, args, migrate_config_text)
                except (OSError, ValueError) as e:
                    summary["errors"].append({"source": str(path), "error": str(e)})
                    print(f"ERROR: {path}: {e}", file=sys.stderr)
                    continue
                _warn(result)
                summary["config"].append(result.to_dict())

    if args.state_file:
        path = Path(args.state_file)
        output = Path(args.output_state) if args.output_state else path
        try:
            result = _migrate_file(path, output, args, migrate_state_text)
        except (OSError, ValueError) as e:
            summary["errors"].append({"source": str(path), "error": str(e)})
            print(f"ERROR: {path}: {e}", file=sys.stderr)
        else:
            _warn(result)
            summary["state"] = result.to_dict()

    return summary


def format_text(summary: dict[str, Any]) -> str:
    """Format a run summary as human-readable text."""
    lines: list[str] = []
    mode = " (dry run)" if summary.get("dry_run") else ""
    lines.append(f"=== Migration {summary['from']} -> {summary['to']}{mode} ===")

    results = list(summary.get("config", []))
    if summary.get("state"):
        results.append(summary["state"])
    for entry in results:
        status = "changed" if entry["changed"] else "unchanged"
        lines.append(f"{entry['source']}: {status}")
        for old, new in entry["renamed"].items():
            lines.append(f"  renamed {old} -> {new}")
        for address, counts in entry["merged"].items():
            parts = ", ".join(f"{attr}={n}" for attr, n in counts.items())
            lines.append(f"  merged into {address}: {parts}")
        if entry["removed"]:
            lines.append(f"  removed: {', '.join(entry['removed'])}")
        for d in entry["diagnostics"]:
            lines.append(f"  [{d['reason']}] {d['message']}")

    errors = summary.get("errors", [])
    if errors:
        lines.append(f"\n=== Errors ({len(errors)}) ===")
        for e in errors:
            lines.append(f"  {e['source']}: {e['error']}")
    return "\n".join(lines)


def main() -> None:
    parser = argparse.ArgumentParser(
        description=f"Migrate Cloudflare Terraform config and state from {SOURCE_VERSION} to {TARGET_VERSION}",
    )
    parser.add_argument(
        "--config-dir", default=os.environ.get("TF_MIGRATE_CONFIG_DIR"),
        help="Directory of .tf files to migrate (env: TF_MIGRATE_CONFIG_DIR)",
    )
    parser.add_argument(
        "--state-file", default=os.environ.get("TF_MIGRATE_STATE_FILE"),
        help="State file to migrate (env: TF_MIGRATE_STATE_FILE)",
    )
    parser.add_argument(
        "--output-dir",
        help="Write migrated .tf files here instead of in place",
    )
    parser.add_argument(
        "--output-state",
        help="Write the migrated state here instead of in place",
    )
    parser.add_argument(
        "--dry-run", action="store_true",
        help="Report what would change without writing any file",
    )
    parser.add_argument(
        "--no-backup", action="store_true",
        help=f"Do not write {BACKUP_SUFFIX} copies when migrating in place",
    )
    parser.add_argument(
        "--format", choices=["json", "text"], default="json",
        help="Output format (default: json)",
    )

    args = parser.parse_args()
    if not args.config_dir and not args.state_file:
        parser.error("nothing to migrate: pass --config-dir and/or --state-file")

    summary = run(args)

    if args.format == "text":
        print(format_text(summary))
    else:
        json.dump(summary, sys.stdout, indent=2)
        print()

    if summary["errors"]:
        sys.exit(1)


if __name__ == "__main__":
    main()
