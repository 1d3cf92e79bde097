#!/usr/bin/env python3
"""v4 → v5 migrators for Zero Trust device profiles and their satellites.

Each migrator handles one family of resource kinds in both passes:

    transform_config(unit, block)      edit one .tf resource block in place
    preprocess_state(doc)              document-wide pass before per-resource work
    transform_state(rtype, instance)   edit one state instance in place

and returns a TransformResult naming the v5 resource kind the resource ends
up as. `cloudflare_split_tunnel` has no v5 counterpart: its entries are
merged into the device profile it belongs to and the resource is removed
(config_merge / state_merge).

Stdlib only — no pip dependencies.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from classify_lib import Discriminators, Variant
from config_merge import classify_block, process_config_unit
from hcl_lib import Block, ConfigFile, blocks_to_list, nest_attributes
from merge_lib import MergeReport, PrimarySchema, SatelliteSchema
from state_lib import StateDocument
from state_merge import classify_resource, process_state_document, profile_id_from
from value_lib import Boolean, Number, string_of

SOURCE_VERSION = "v4"
TARGET_VERSION = "v5"

DEVICE_PROFILES = PrimarySchema(
    default_kind="cloudflare_zero_trust_device_default_profile",
    custom_kind="cloudflare_zero_trust_device_custom_profile",
    legacy_kinds=(
        "cloudflare_zero_trust_device_profiles",
        "cloudflare_device_settings_policy",
    ),
    discriminators=Discriminators(is_default="default", match="match", precedence="precedence"),
    scope_field="account_id",
    id_field="policy_id",
    label="device profile",
)

SPLIT_TUNNELS = SatelliteSchema(
    kind="cloudflare_split_tunnel",
    label="Split tunnel",
    reference_field="policy_id",
    mode_field="mode",
    default_mode="exclude",
    entries_field="tunnels",
    key_fields=("address", "host"),
    entry_fields=("address", "description", "host"),
    collections=(("include", "include"), ("exclude", "exclude")),
    scope_field="account_id",
)

# v4 flat fields → keys of the v5 service_mode_v2 object
SERVICE_MODE_FIELDS = {"service_mode_v2_mode": "mode", "service_mode_v2_port": "port"}
CUSTOM_ONLY_FIELDS = ("name", "description", "match", "precedence")
PRECEDENCE_OFFSET = 900


@dataclass
class TransformResult:
    """Outcome of migrating one resource. `resource_type` is "" when the
    resource has no v5 counterpart."""
    resource_type: str
    remove: bool = False
    variant: Optional[Variant] = None
    report: Optional[MergeReport] = None


class Migrator:
    kinds: tuple = ()

    def can_handle(self, kind: str) -> bool:
        return kind in self.kinds

    def transform_config(self, unit: ConfigFile, block: Block) -> TransformResult:
        return TransformResult(resource_type=block.kind)

    def preprocess_state(self, doc: StateDocument) -> Optional[MergeReport]:
        return None

    def transform_state(self, rtype: str, instance: dict[str, Any]) -> TransformResult:
        return TransformResult(resource_type=rtype)


# ── Device profiles (primary) ─────────────────────────────────────────

class DeviceProfileMigrator(Migrator):
    """cloudflare_zero_trust_device_profiles / cloudflare_device_settings_policy
    → cloudflare_zero_trust_device_{default,custom}_profile."""

    kinds = DEVICE_PROFILES.kinds

    def _target_kind(self, variant: Variant) -> str:
        if variant is Variant.CUSTOM:
            return DEVICE_PROFILES.custom_kind
        return DEVICE_PROFILES.default_kind

    def transform_config(self, unit: ConfigFile, block: Block) -> TransformResult:
        report = process_config_unit(unit, SPLIT_TUNNELS, DEVICE_PROFILES)
        variant = classify_block(block, DEVICE_PROFILES)
        target = self._target_kind(variant)
        if block.kind not in DEVICE_PROFILES.legacy_kinds:
            return TransformResult(resource_type=target, variant=variant, report=report)

        block.set_label(0, target)
        body = block.body
        if variant is Variant.CUSTOM:
            precedence = body.get_attribute("precedence")
            value = precedence.value() if precedence is not None else None
            if isinstance(value, Number):
                # v5 requires precedence; shift it clear of existing policies
                body.set_value("precedence", Number(PRECEDENCE_OFFSET + value.value))
            body.remove_attributes("default", "enabled")
        else:
            body.remove_attributes(*CUSTOM_ONLY_FIELDS, "enabled", "default")

        mode = body.get_attribute("service_mode_v2_mode")
        if (mode is not None and not body.has_attribute("service_mode_v2_port")
                and string_of(mode.value()) == "warp"):
            # v4 default; v5 has none
            body.remove_attribute("service_mode_v2_mode")
        nest_attributes(body, "service_mode_v2", SERVICE_MODE_FIELDS)

        if variant is Variant.DEFAULT:
            body.ensure_value("register_interface_ip_with_dns", Boolean(True))
            body.ensure_value("sccm_vpn_boundary_support", Boolean(False))
        return TransformResult(resource_type=target, variant=variant, report=report)

    def preprocess_state(self, doc: StateDocument) -> Optional[MergeReport]:
        return process_state_document(doc, SPLIT_TUNNELS, DEVICE_PROFILES)

    def transform_state(self, rtype: str, instance: dict[str, Any]) -> TransformResult:
        attrs = instance.get("attributes")
        if rtype not in DEVICE_PROFILES.legacy_kinds:
            return TransformResult(resource_type=rtype)
        instance["schema_version"] = 0
        if not isinstance(attrs, dict):
            return TransformResult(resource_type=DEVICE_PROFILES.default_kind, variant=Variant.DEFAULT)

        variant = classify_resource(rtype, attrs, DEVICE_PROFILES)
        if variant is Variant.CUSTOM:
            for name in ("default", "enabled"):
                attrs.pop(name, None)
            profile_id = profile_id_from(str(attrs.get("id") or ""))
            if profile_id:
                attrs["policy_id"] = profile_id
        else:
            for name in CUSTOM_ONLY_FIELDS + ("enabled", "default"):
                attrs.pop(name, None)

        # v5 manages fallback domains as separate resources
        attrs.pop("fallback_domains", None)
        if attrs.get("exclude") == []:
            del attrs["exclude"]
        _nest_service_mode(attrs)
        return TransformResult(resource_type=self._target_kind(variant), variant=variant)


def _nest_service_mode(attrs: dict[str, Any]) -> None:
    mode = attrs.pop("service_mode_v2_mode", None)
    port = attrs.pop("service_mode_v2_port", None)
    has_port = port not in (None, 0)
    if mode == "warp" and not has_port:
        return
    nested = {}
    if mode:
        nested["mode"] = mode
    if has_port:
        nested["port"] = port
    if nested:
        attrs["service_mode_v2"] = nested


# ── Split tunnels (satellite) ─────────────────────────────────────────

class SplitTunnelMigrator(Migrator):
    """No local transform: the cross-resource pass merges and removes the
    resource. Running it from here too covers units that hold split
    tunnels but no device profile."""

    kinds = (SPLIT_TUNNELS.kind,)

    def transform_config(self, unit: ConfigFile, block: Block) -> TransformResult:
        report = process_config_unit(unit, SPLIT_TUNNELS, DEVICE_PROFILES)
        return TransformResult(resource_type="", report=report)

    def preprocess_state(self, doc: StateDocument) -> Optional[MergeReport]:
        return process_state_document(doc, SPLIT_TUNNELS, DEVICE_PROFILES)

    def transform_state(self, rtype: str, instance: dict[str, Any]) -> TransformResult:
        return TransformResult(resource_type="", remove=True)


# ── Local fallback domains ────────────────────────────────────────────

class FallbackDomainMigrator(Migrator):
    """cloudflare_zero_trust_local_fallback_domain / cloudflare_fallback_domain
    → cloudflare_zero_trust_device_{default,custom}_profile_local_domain_fallback,
    chosen by whether a non-null policy_id is set."""

    kinds = ("cloudflare_zero_trust_local_fallback_domain", "cloudflare_fallback_domain")
    default_kind = "cloudflare_zero_trust_device_default_profile_local_domain_fallback"
    custom_kind = "cloudflare_zero_trust_device_custom_profile_local_domain_fallback"

    def transform_config(self, unit: ConfigFile, block: Block) -> TransformResult:
        body = block.body
        policy = body.get_attribute("policy_id")
        has_policy = policy is not None and policy.value() is not None
        target = self.custom_kind if has_policy else self.default_kind
        block.set_label(0, target)
        if policy is not None and not has_policy:
            body.remove_attribute("policy_id")
        blocks_to_list(body, "domains")
        variant = Variant.CUSTOM if has_policy else Variant.DEFAULT
        return TransformResult(resource_type=target, variant=variant)

    def transform_state(self, rtype: str, instance: dict[str, Any]) -> TransformResult:
        instance["schema_version"] = 0
        attrs = instance.get("attributes")
        if not isinstance(attrs, dict):
            return TransformResult(resource_type=self.default_kind, variant=Variant.DEFAULT)
        has_policy = attrs.get("policy_id") is not None
        if not has_policy:
            attrs.pop("policy_id", None)
        domains = attrs.get("domains")
        if domains == []:
            del attrs["domains"]
        elif isinstance(domains, list):
            for domain in domains:
                if isinstance(domain, dict) and domain.get("dns_server") == []:
                    del domain["dns_server"]
        if has_policy:
            return TransformResult(resource_type=self.custom_kind, variant=Variant.CUSTOM)
        return TransformResult(resource_type=self.default_kind, variant=Variant.DEFAULT)


# ── Registry ──────────────────────────────────────────────────────────

MIGRATORS: list[Migrator] = [
    DeviceProfileMigrator(),
    SplitTunnelMigrator(),
    FallbackDomainMigrator(),
]


def get_migrator(kind: str) -> Optional[Migrator]:
    """Migrator registered for a resource kind, or None."""
    for migrator in MIGRATORS:
        if migrator.can_handle(kind):
            return migrator
    return None
