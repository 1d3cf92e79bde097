#!/usr/bin/env python3
"""Lossless, editable tree for Terraform configuration (.tf) files.

Parses the HCL subset Terraform configuration uses (blocks with labels,
attributes, nested blocks, `#`, `//` and `/* */` comments, heredocs and
template strings) into a tree of Body / Block / Attribute nodes. Every node
keeps its original text, so a file renders back byte for byte except where
it was edited. Expressions are not evaluated: `parse_value` turns an
expression's text into a Value when it is a literal and into an Expression
otherwise.

Stdlib only — no pip dependencies.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Optional, Union

from value_lib import (
    Boolean, Expression, ListValue, Number, ObjectValue, String, Value,
    make_object,
)

IDENT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_-]*")
NUMBER_RE = re.compile(r"-?\d+(\.\d+)?([eE][+-]?\d+)?")
HEREDOC_RE = re.compile(r"<<-?([A-Za-z_][A-Za-z0-9_]*)\r?\n")
INDENT = "  "


class HCLSyntaxError(ValueError):
    """Raised when configuration text cannot be read into a tree."""

    def __init__(self, message: str, text: str = "", pos: int = 0):
        line = text.count("\n", 0, pos) + 1
        super().__init__(f"line {line}: {message}")
        self.line = line


# ── Tree nodes ────────────────────────────────────────────────────────

@dataclass
class Attribute:
    """`name = expr`. `eq` is the text between name and expr, `comment`
    anything after expr on the same line."""
    name: str
    expr: str
    eq: str = " = "
    comment: str = ""
    lead: str = ""

    def text(self) -> str:
        return f"{self.name}{self.eq}{self.expr}{self.comment}"

    def render(self) -> str:
        return self.lead + self.text()

    def value(self) -> Optional[Value]:
        return parse_value(self.expr)


@dataclass
class Block:
    type: str
    labels: list[str]
    header: str
    body: "Body"
    close: str = "}"
    lead: str = ""

    @property
    def kind(self) -> str:
        return self.labels[0] if self.labels else ""

    @property
    def name(self) -> str:
        return self.labels[1] if len(self.labels) > 1 else ""

    def set_label(self, index: int, label: str) -> None:
        self.labels[index] = label
        quoted = " ".join(json.dumps(lbl) for lbl in self.labels)
        self.header = f"{self.type} {quoted} {{"

    def text(self) -> str:
        return self.header + self.body.render() + self.close

    def render(self) -> str:
        return self.lead + self.text()


@dataclass
class Trivia:
    """Unstructured text appended to a body (e.g. a warning comment)."""
    raw: str
    lead: str = ""

    def render(self) -> str:
        return self.lead + self.raw


Node = Union[Attribute, Block, Trivia]


@dataclass
class Body:
    items: list = field(default_factory=list)
    tail: str = ""
    indent: str = INDENT
    outer_indent: str = ""

    def render(self) -> str:
        return "".join(item.render() for item in self.items) + self.tail

    # ── Attributes ──

    def attributes(self) -> list[Attribute]:
        return [item for item in self.items if isinstance(item, Attribute)]

    def get_attribute(self, name: str) -> Optional[Attribute]:
        for item in self.items:
            if isinstance(item, Attribute) and item.name == name:
                return item
        return None

    def has_attribute(self, name: str) -> bool:
        return self.get_attribute(name) is not None

    def attribute_values(self) -> dict[str, Value]:
        """Flat name → Value view; attributes set to null are left out."""
        view: dict[str, Value] = {}
        for attr in self.attributes():
            value = attr.value()
            if value is not None:
                view[attr.name] = value
        return view

    def set_attribute(self, name: str, expr: str) -> Attribute:
        """Set an attribute's expression text, appending it if absent."""
        attr = self.get_attribute(name)
        if attr is not None:
            attr.expr = expr
            return attr
        attr = Attribute(name=name, expr=expr)
        self._append(attr)
        return attr

    def set_value(self, name: str, value: Value) -> Attribute:
        return self.set_attribute(name, render_value(value, self.indent))

    def ensure_value(self, name: str, value: Value) -> None:
        if not self.has_attribute(name):
            self.set_value(name, value)

    def remove_attribute(self, name: str) -> bool:
        attr = self.get_attribute(name)
        if attr is None:
            return False
        self._remove(attr)
        return True

    def remove_attributes(self, *names: str) -> None:
        for name in names:
            self.remove_attribute(name)

    # ── Blocks ──

    def blocks(self, block_type: Optional[str] = None) -> list[Block]:
        return [
            item for item in self.items
            if isinstance(item, Block) and (block_type is None or item.type == block_type)
        ]

    def remove_block(self, block: Block) -> bool:
        for item in self.items:
            if item is block:
                self._remove(block)
                return True
        return False

    def contains(self, node: Node) -> bool:
        return any(item is node for item in self.items)

    # ── Unstructured text ──

    def append_text(self, text: str) -> None:
        """Append raw text (comments) after the last item.

        The trailing whitespace of the body is dropped; callers supply
        their own trailing newlines.
        """
        last = self.items[-1] if self.items else None
        if last is None or (isinstance(last, Trivia) and last.raw.endswith("\n\n")):
            lead = ""
        else:
            lead = "\n\n"
        self.items.append(Trivia(raw=text, lead=lead))
        self.tail = ""

    # ── Internals ──

    def _append(self, node: Node) -> None:
        if "\n" not in self.tail:
            # one-line body, e.g. `tunnels { address = "x" }`
            self.tail = "\n" + self.outer_indent
            if self.items and "\n" not in self.items[0].lead:
                self.items[0].lead = "\n" + self.indent
        node.lead = "\n" + self.indent
        self.items.append(node)

    def _remove(self, node: Node) -> None:
        index = next(i for i, item in enumerate(self.items) if item is node)
        del self.items[index]
        if index == 0 and self.items:
            self.items[0].lead = node.lead


@dataclass
class ConfigFile:
    """One configuration unit. `processed` records cross-resource passes
    already applied to this in-memory tree."""
    body: Body
    filename: str = ""
    processed: set = field(default_factory=set)

    def render(self) -> str:
        return self.body.render()

    def resource_blocks(self, kind: Optional[str] = None) -> list[Block]:
        return [
            block for block in self.body.blocks("resource")
            if len(block.labels) >= 2 and (kind is None or block.kind == kind)
        ]


def parse_config(text: str, filename: str = "") -> ConfigFile:
    """Parse configuration text into an editable ConfigFile."""
    parser = _Parser(text)
    body = parser.body(indent="", closing=False)
    return ConfigFile(body=body, filename=filename)


# ── Parser ────────────────────────────────────────────────────────────

class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def error(self, message: str) -> HCLSyntaxError:
        return HCLSyntaxError(message, self.text, self.pos)

    def peek(self, offset: int = 0) -> str:
        i = self.pos + offset
        return self.text[i] if i < len(self.text) else ""

    def body(self, indent: str, closing: bool) -> Body:
        items: list = []
        lead_start = self.pos
        while True:
            self.skip_trivia()
            if self.pos >= len(self.text):
                if closing:
                    raise self.error("unclosed block")
                break
            if self.peek() == "}":
                if not closing:
                    raise self.error("unexpected '}'")
                break
            lead = self.text[lead_start:self.pos]
            items.append(self.item(lead, indent))
            lead_start = self.pos
        tail = self.text[lead_start:self.pos]
        inner = indent + INDENT
        for item in items:
            if "\n" in item.lead:
                inner = item.lead.rsplit("\n", 1)[1]
                break
        return Body(items=items, tail=tail, indent=inner, outer_indent=indent)

    def item(self, lead: str, indent: str) -> Node:
        start = self.pos
        match = IDENT_RE.match(self.text, self.pos)
        if not match:
            raise self.error(f"expected identifier, found {self.peek()!r}")
        name = match.group(0)
        self.pos = match.end()
        self.skip_inline()
        if self.peek() == "=" and self.peek(1) != "=":
            self.pos += 1
            self.skip_inline()
            eq = self.text[match.end():self.pos]
            expr_start = self.pos
            self.expression()
            expr = self.text[expr_start:self.pos].rstrip(" \t")
            comment_start = expr_start + len(expr)
            self.trailing_comment()
            comment = self.text[comment_start:self.pos]
            return Attribute(name=name, expr=expr, eq=eq, comment=comment, lead=lead)

        labels: list[str] = []
        while self.peek() != "{":
            if self.peek() == '"':
                label_start = self.pos
                self.string()
                labels.append(json.loads(self.text[label_start:self.pos]))
            else:
                label = IDENT_RE.match(self.text, self.pos)
                if not label:
                    raise self.error(f"unexpected {self.peek()!r} in block header")
                labels.append(label.group(0))
                self.pos = label.end()
            self.skip_inline()
        self.pos += 1
        header = self.text[start:self.pos]
        body = self.body(indent=indent_of(lead, indent), closing=True)
        self.pos += 1
        return Block(type=name, labels=labels, header=header, body=body, lead=lead)

    # ── Lexical helpers ──

    def skip_inline(self) -> None:
        while self.peek() in (" ", "\t"):
            self.pos += 1

    def skip_trivia(self) -> None:
        while self.pos < len(self.text):
            ch = self.peek()
            if ch in " \t\r\n":
                self.pos += 1
            elif ch == "#" or (ch == "/" and self.peek(1) == "/"):
                self.line_comment()
            elif ch == "/" and self.peek(1) == "*":
                self.block_comment()
            else:
                break

    def line_comment(self) -> None:
        end = self.text.find("\n", self.pos)
        self.pos = len(self.text) if end == -1 else end

    def block_comment(self) -> None:
        end = self.text.find("*/", self.pos + 2)
        if end == -1:
            raise self.error("unterminated comment")
        self.pos = end + 2

    def trailing_comment(self) -> None:
        save = self.pos
        self.skip_inline()
        ch = self.peek()
        if ch == "#" or (ch == "/" and self.peek(1) == "/"):
            self.line_comment()
        elif ch == "/" and self.peek(1) == "*":
            self.block_comment()
        else:
            self.pos = save

    def string(self) -> None:
        """Skip a quoted string, including `${...}` / `%{...}` templates."""
        self.pos += 1
        while self.pos < len(self.text):
            ch = self.peek()
            if ch == "\\":
                self.pos += 2
            elif ch == '"':
                self.pos += 1
                return
            elif ch == "\n":
                break
            elif ch in "$%" and self.peek(1) == ch and self.peek(2) == "{":
                self.pos += 3
            elif ch in "$%" and self.peek(1) == "{":
                self.pos += 2
                self.template()
            else:
                self.pos += 1
        raise self.error("unterminated string")

    def template(self) -> None:
        depth = 0
        while self.pos < len(self.text):
            ch = self.peek()
            if ch == '"':
                self.string()
                continue
            if ch in "([{":
                depth += 1
            elif ch in ")]}":
                if depth == 0:
                    self.pos += 1
                    return
                depth -= 1
            self.pos += 1
        raise self.error("unterminated template interpolation")

    def heredoc(self) -> bool:
        match = HEREDOC_RE.match(self.text, self.pos)
        if not match:
            return False
        marker = match.group(1)
        self.pos = match.end()
        while self.pos < len(self.text):
            end = self.text.find("\n", self.pos)
            line_end = len(self.text) if end == -1 else end
            if self.text[self.pos:line_end].strip() == marker:
                self.pos = line_end
                return True
            self.pos = line_end + 1
        raise self.error(f"unterminated heredoc {marker}")

    def expression(self) -> None:
        """Advance to the end of the expression starting at pos."""
        depth = 0
        while self.pos < len(self.text):
            ch = self.peek()
            if ch == '"':
                self.string()
                continue
            if ch == "<" and self.peek(1) == "<" and self.heredoc():
                continue
            if ch == "#" or (ch == "/" and self.peek(1) in ("/", "*")):
                if depth == 0:
                    return
                if ch == "/" and self.peek(1) == "*":
                    self.block_comment()
                else:
                    self.line_comment()
                continue
            if ch == "\n" and depth == 0:
                return
            if ch in "([{":
                depth += 1
            elif ch in ")]}":
                if depth == 0:
                    return
                depth -= 1
            self.pos += 1
        if depth:
            raise self.error("unbalanced brackets in expression")


def indent_of(lead: str, fallback: str) -> str:
    if "\n" in lead:
        return lead.rsplit("\n", 1)[1]
    return fallback


# ── Literal values ────────────────────────────────────────────────────

class _NotLiteral(Exception):
    pass


_NULL = object()


def parse_value(text: str) -> Optional[Value]:
    """Read an expression's text as a Value.

    Literals (strings without interpolation, numbers, bools, lists and
    objects of literals) become the matching Value; `null` becomes None;
    anything else becomes an Expression holding the stripped text.
    """
    reader = _LiteralReader(text)
    try:
        value = reader.value()
        reader.skip()
        if reader.pos != len(text):
            raise _NotLiteral()
    except _NotLiteral:
        return Expression(text.strip())
    return None if value is _NULL else value


class _LiteralReader:
    ESCAPES = {"n": "\n", "r": "\r", "t": "\t", '"': '"', "\\": "\\"}

    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def peek(self) -> str:
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def skip(self) -> None:
        while self.pos < len(self.text):
            ch = self.peek()
            if ch in " \t\r\n":
                self.pos += 1
            elif ch == "#" or self.text.startswith("//", self.pos):
                end = self.text.find("\n", self.pos)
                self.pos = len(self.text) if end == -1 else end
            elif self.text.startswith("/*", self.pos):
                end = self.text.find("*/", self.pos)
                if end == -1:
                    raise _NotLiteral()
                self.pos = end + 2
            else:
                return

    def value(self):
        self.skip()
        ch = self.peek()
        if ch == '"':
            return String(self.string())
        if ch == "[":
            return self.list()
        if ch == "{":
            return self.object()
        number = NUMBER_RE.match(self.text, self.pos)
        if number:
            self.pos = number.end()
            raw = number.group(0)
            if number.group(1) or number.group(2):
                return Number(float(raw))
            return Number(int(raw))
        ident = IDENT_RE.match(self.text, self.pos)
        if ident and ident.group(0) in ("true", "false", "null"):
            end = ident.end()
            if end < len(self.text) and self.text[end] in ".[(":
                raise _NotLiteral()
            self.pos = end
            word = ident.group(0)
            if word == "null":
                return _NULL
            return Boolean(word == "true")
        raise _NotLiteral()

    def string(self) -> str:
        self.pos += 1
        out: list[str] = []
        while self.pos < len(self.text):
            ch = self.peek()
            if ch == '"':
                self.pos += 1
                return "".join(out)
            if ch == "\\":
                nxt = self.text[self.pos + 1:self.pos + 2]
                if nxt == "u":
                    out.append(chr(int(self.text[self.pos + 2:self.pos + 6], 16)))
                    self.pos += 6
                    continue
                if nxt not in self.ESCAPES:
                    raise _NotLiteral()
                out.append(self.ESCAPES[nxt])
                self.pos += 2
                continue
            if ch in "$%" and self.text.startswith(ch * 2 + "{", self.pos):
                out.append(ch + "{")
                self.pos += 3
                continue
            if ch in "$%" and self.text.startswith(ch + "{", self.pos):
                raise _NotLiteral()
            out.append(ch)
            self.pos += 1
        raise _NotLiteral()

    def list(self) -> ListValue:
        self.pos += 1
        items = []
        while True:
            self.skip()
            if self.peek() == "]":
                self.pos += 1
                return ListValue(tuple(item for item in items if item is not _NULL))
            items.append(self.value())
            self.skip()
            if self.peek() == ",":
                self.pos += 1
            elif self.peek() != "]":
                raise _NotLiteral()

    def object(self) -> ObjectValue:
        self.pos += 1
        pairs = []
        while True:
            self.skip()
            ch = self.peek()
            if ch == "}":
                self.pos += 1
                return make_object(
                    (k, None if v is _NULL else v) for k, v in pairs
                )
            if ch == '"':
                key = self.string()
            else:
                ident = IDENT_RE.match(self.text, self.pos)
                if not ident:
                    raise _NotLiteral()
                key = ident.group(0)
                self.pos = ident.end()
            self.skip()
            if self.peek() not in ("=", ":"):
                raise _NotLiteral()
            self.pos += 1
            pairs.append((key, self.value()))
            self.skip()
            if self.peek() == ",":
                self.pos += 1


# ── Rendering ─────────────────────────────────────────────────────────

def quote(text: str) -> str:
    """Render a Python string as an HCL string literal."""
    escaped = (
        text.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
        .replace("${", "$${")
        .replace("%{", "%%{")
    )
    return f'"{escaped}"'


def render_value(value: Value, indent: str = "") -> str:
    """Render a Value as HCL expression text.

    `indent` is the indentation of the line the expression starts on;
    nested lines are indented one level deeper.
    """
    if isinstance(value, String):
        return quote(value.value)
    if isinstance(value, Boolean):
        return "true" if value.value else "false"
    if isinstance(value, Number):
        number = value.value
        if isinstance(number, float) and number.is_integer():
            return str(int(number))
        return repr(number)
    if isinstance(value, Expression):
        return value.text
    inner = indent + INDENT
    if isinstance(value, ListValue):
        if not value.items:
            return "[]"
        if not any(isinstance(item, (ListValue, ObjectValue)) for item in value.items):
            return "[" + ", ".join(render_value(item, indent) for item in value.items) + "]"
        lines = [f"{inner}{render_value(item, inner)}," for item in value.items]
        return "[\n" + "\n".join(lines) + f"\n{indent}]"
    if isinstance(value, ObjectValue):
        if not value.fields:
            return "{}"
        keys = [k if IDENT_RE.fullmatch(k) else quote(k) for k in value.keys()]
        width = max(len(k) for k in keys)
        lines = [
            f"{inner}{key.ljust(width)} = {render_value(v, inner)}"
            for key, (_, v) in zip(keys, value.fields)
        ]
        return "{\n" + "\n".join(lines) + f"\n{indent}}}"
    raise TypeError(f"Unsupported value: {value!r}")


# ── Structural helpers ────────────────────────────────────────────────

def blocks_to_list(body: Body, block_type: str) -> bool:
    """Replace repeated nested blocks with a list-of-objects attribute.

    `domains { suffix = "a" }` ×N becomes `domains = [{ suffix = "a" }, ...]`.
    Returns False when there were no such blocks.
    """
    blocks = body.blocks(block_type)
    if not blocks:
        return False
    entries = [make_object(block.body.attribute_values()) for block in blocks]
    for block in blocks:
        body.remove_block(block)
    body.set_value(block_type, ListValue(tuple(entries)))
    return True


def nest_attributes(body: Body, target: str, fields: dict[str, str]) -> bool:
    """Move flat attributes into one object attribute named `target`.

    `fields` maps each flat attribute name to its key inside the object,
    e.g. {"service_mode_v2_mode": "mode"}. Literal values are re-rendered,
    other expressions kept verbatim, nulls dropped. Returns False when none
    were present.
    """
    pairs = []
    for name, key in fields.items():
        attr = body.get_attribute(name)
        if attr is not None:
            pairs.append((key, attr.value()))
            body.remove_attribute(name)
    if not pairs:
        return False
    nested = make_object(pairs)
    if nested.fields:
        body.set_value(target, nested)
    return True
