#!/usr/bin/env python3
"""Tests for the editable configuration tree (scripts/hcl_lib.py).

Uses stdlib unittest only — no pip dependencies.
"""
from __future__ import annotations

import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
SCRIPTS_DIR = PROJECT_ROOT / "scripts"

sys.path.insert(0, str(SCRIPTS_DIR))

from hcl_lib import (
    HCLSyntaxError, blocks_to_list, nest_attributes, parse_config, parse_value,
    quote, render_value,
)
from value_lib import (
    Boolean, Expression, ListValue, Number, ObjectValue, String, make_object,
)

SAMPLE = '''# Zero Trust device settings
terraform {
  required_providers {
    cloudflare = {
      source  = "cloudflare/cloudflare"
      version = "~> 4.0"
    }
  }
}

resource "cloudflare_zero_trust_device_profiles" "corp" {
  account_id  = var.account_id # shared account
  name        = "Corp ${var.env}"
  match       = "any(identity.groups.name[*] in {\\"corp\\"})"
  precedence  = 10
  description = <<-EOT
    Devices in the corp group.
    Braces { are } fine here.
  EOT

  /* tunnels are attached separately */
  exclude_office_ips = false
}

resource "cloudflare_split_tunnel" "corp" { account_id = "x" }
'''


class TestRoundTrip(unittest.TestCase):
    """Untouched text renders back byte for byte."""

    def test_sample_round_trips(self):
        self.assertEqual(parse_config(SAMPLE).render(), SAMPLE)

    def test_empty_and_comment_only(self):
        for text in ("", "\n", "# only a comment\n", "/* block */\n\n"):
            self.assertEqual(parse_config(text).render(), text)

    def test_crlf_round_trips(self):
        text = 'resource "a" "b" {\r\n  x = 1\r\n}\r\n'
        self.assertEqual(parse_config(text).render(), text)

    def test_resource_blocks(self):
        unit = parse_config(SAMPLE)
        kinds = [b.kind for b in unit.resource_blocks()]
        self.assertEqual(kinds, ["cloudflare_zero_trust_device_profiles", "cloudflare_split_tunnel"])
        self.assertEqual(len(unit.resource_blocks("cloudflare_split_tunnel")), 1)
        self.assertEqual(unit.resource_blocks()[0].name, "corp")

    def test_trailing_comment_kept_off_expression(self):
        block = parse_config(SAMPLE).resource_blocks()[0]
        attr = block.body.get_attribute("account_id")
        self.assertEqual(attr.expr, "var.account_id")
        self.assertEqual(attr.comment, " # shared account")

    def test_unclosed_block_raises(self):
        with self.assertRaises(HCLSyntaxError) as ctx:
            parse_config('resource "a" "b" {\n  x = 1\n')
        self.assertIsInstance(ctx.exception, ValueError)

    def test_stray_brace_raises(self):
        with self.assertRaises(HCLSyntaxError) as ctx:
            parse_config('x = 1\n}\n')
        self.assertEqual(ctx.exception.line, 2)

    def test_unterminated_string_raises(self):
        with self.assertRaises(HCLSyntaxError):
            parse_config('x = "open\n')


class TestEdits(unittest.TestCase):
    def test_set_attribute_appends_at_body_indent(self):
        unit = parse_config('resource "a" "b" {\n  x = 1\n}\n')
        block = unit.resource_blocks()[0]
        block.body.set_value("y", Boolean(True))
        self.assertEqual(unit.render(), 'resource "a" "b" {\n  x = 1\n  y = true\n}\n')

    def test_set_attribute_replaces_in_place(self):
        unit = parse_config('resource "a" "b" {\n  x = 1 # keep\n  y = 2\n}\n')
        unit.resource_blocks()[0].body.set_value("x", Number(901))
        self.assertEqual(unit.render(), 'resource "a" "b" {\n  x = 901 # keep\n  y = 2\n}\n')

    def test_append_to_one_line_body(self):
        unit = parse_config('resource "a" "b" { x = 1 }\n')
        unit.resource_blocks()[0].body.set_value("y", String("z"))
        self.assertEqual(unit.render(), 'resource "a" "b" {\n  x = 1 \n  y = "z"\n}\n')

    def test_remove_first_attribute_keeps_layout(self):
        unit = parse_config('resource "a" "b" {\n  x = 1\n  y = 2\n}\n')
        unit.resource_blocks()[0].body.remove_attribute("x")
        self.assertEqual(unit.render(), 'resource "a" "b" {\n  y = 2\n}\n')

    def test_remove_block(self):
        text = 'resource "a" "one" {\n}\n\nresource "a" "two" {\n}\n'
        unit = parse_config(text)
        two = unit.resource_blocks()[1]
        self.assertTrue(unit.body.remove_block(two))
        self.assertFalse(unit.body.contains(two))
        self.assertEqual(unit.render(), 'resource "a" "one" {\n}\n')

    def test_set_label_rewrites_header(self):
        unit = parse_config('resource  "old_kind"   "b" {\n}\n')
        block = unit.resource_blocks()[0]
        block.set_label(0, "new_kind")
        self.assertEqual(block.kind, "new_kind")
        self.assertEqual(unit.render(), 'resource "new_kind" "b" {\n}\n')

    def test_append_text_after_last_block(self):
        unit = parse_config('resource "a" "b" {\n}\n')
        unit.body.append_text("# note\n\n")
        unit.body.append_text("# second\n\n")
        self.assertEqual(unit.render(), 'resource "a" "b" {\n}\n\n# note\n\n# second\n\n')

    def test_null_attribute_left_out_of_view(self):
        unit = parse_config('resource "a" "b" {\n  policy_id = null\n  mode = "include"\n}\n')
        view = unit.resource_blocks()[0].body.attribute_values()
        self.assertEqual(view, {"mode": String("include")})


class TestParseValue(unittest.TestCase):
    def test_scalars(self):
        self.assertEqual(parse_value('"10.0.0.0/8"'), String("10.0.0.0/8"))
        self.assertEqual(parse_value("10"), Number(10))
        self.assertEqual(parse_value("1.5"), Number(1.5))
        self.assertEqual(parse_value("true"), Boolean(True))
        self.assertIsNone(parse_value("null"))

    def test_escapes(self):
        self.assertEqual(parse_value(r'"a\"b\n"'), String('a"b\n'))
        self.assertEqual(parse_value('"$${literal}"'), String("${literal}"))

    def test_non_literals_become_expressions(self):
        for text in ("var.policy_id", '"${var.x}"', "true ? 1 : 2", "local.a.b",
                     'cloudflare_zero_trust_device_profiles.corp.id', "trueish", "1 + 2"):
            self.assertEqual(parse_value(text), Expression(text), text)

    def test_collections(self):
        value = parse_value('[\n  { address = "a", description = "x" },\n  { host = "h" },\n]')
        self.assertEqual(value, ListValue((
            make_object([("address", String("a")), ("description", String("x"))]),
            make_object([("host", String("h"))]),
        )))

    def test_object_with_comments_and_quoted_keys(self):
        value = parse_value('{\n  # comment\n  "mode": "proxy"\n  port = 8080\n}')
        self.assertEqual(value, make_object([("mode", String("proxy")), ("port", Number(8080))]))


class TestRender(unittest.TestCase):
    def test_quote_escapes_templates(self):
        self.assertEqual(quote('a"${b}'), '"a\\"$${b}"')

    def test_list_of_objects(self):
        value = ListValue((make_object([("address", String("10.0.0.0/8")), ("description", String("corp"))]),))
        expected = (
            "[\n"
            "    {\n"
            '      address     = "10.0.0.0/8"\n'
            '      description = "corp"\n'
            "    },\n"
            "  ]"
        )
        self.assertEqual(render_value(value, "  "), expected)

    def test_scalar_list_stays_inline(self):
        self.assertEqual(render_value(ListValue((String("a"), Number(2)))), '["a", 2]')
        self.assertEqual(render_value(ListValue(())), "[]")

    def test_rendered_literal_reads_back(self):
        value = ListValue((
            make_object([("host", String('quote"d')), ("description", String("x"))]),
        ))
        self.assertEqual(parse_value(render_value(value, "  ")), value)

    def test_whole_float_renders_as_integer(self):
        self.assertEqual(render_value(Number(910.0)), "910")
        self.assertEqual(render_value(Number(0.5)), "0.5")

    def test_object_value_key_order(self):
        obj = ObjectValue((("b", Number(1)), ("a", Number(2))))
        self.assertEqual(obj.keys(), ["b", "a"])
        self.assertEqual(render_value(obj), "{\n  b = 1\n  a = 2\n}")


class TestStructuralHelpers(unittest.TestCase):
    def test_blocks_to_list(self):
        text = (
            'resource "cloudflare_fallback_domain" "d" {\n'
            '  account_id = "acc"\n'
            '  domains {\n'
            '    suffix      = "corp.example.com"\n'
            '    dns_server  = ["10.0.0.53"]\n'
            '  }\n'
            '  domains {\n'
            '    suffix = "lab.example.com"\n'
            '  }\n'
            '}\n'
        )
        unit = parse_config(text)
        body = unit.resource_blocks()[0].body
        self.assertTrue(blocks_to_list(body, "domains"))
        self.assertEqual(body.blocks("domains"), [])
        self.assertEqual(
            unit.render(),
            'resource "cloudflare_fallback_domain" "d" {\n'
            '  account_id = "acc"\n'
            '  domains = [\n'
            '    {\n'
            '      suffix     = "corp.example.com"\n'
            '      dns_server = ["10.0.0.53"]\n'
            '    },\n'
            '    {\n'
            '      suffix = "lab.example.com"\n'
            '    },\n'
            '  ]\n'
            '}\n',
        )
        self.assertFalse(blocks_to_list(body, "domains"))

    def test_nest_attributes(self):
        text = 'resource "a" "b" {\n  service_mode_v2_mode = "proxy"\n  service_mode_v2_port = 8080\n  x = 1\n}\n'
        unit = parse_config(text)
        body = unit.resource_blocks()[0].body
        fields = {"service_mode_v2_mode": "mode", "service_mode_v2_port": "port"}
        self.assertTrue(nest_attributes(body, "service_mode_v2", fields))
        self.assertEqual(
            unit.render(),
            'resource "a" "b" {\n  x = 1\n  service_mode_v2 = {\n    mode = "proxy"\n    port = 8080\n  }\n}\n',
        )

    def test_nest_attributes_keeps_expressions(self):
        unit = parse_config('resource "a" "b" {\n  service_mode_v2_mode = var.mode\n}\n')
        body = unit.resource_blocks()[0].body
        nest_attributes(body, "service_mode_v2", {"service_mode_v2_mode": "mode"})
        self.assertEqual(body.get_attribute("service_mode_v2").expr, "{\n    mode = var.mode\n  }")

    def test_nest_attributes_absent(self):
        unit = parse_config('resource "a" "b" {\n  x = 1\n}\n')
        self.assertFalse(nest_attributes(unit.resource_blocks()[0].body, "t", {"y": "y"}))


if __name__ == "__main__":
    unittest.main()
