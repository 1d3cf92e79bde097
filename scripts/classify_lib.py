#!/usr/bin/env python3
"""Decide which v5 variant a v4 resource becomes.

Classification looks only at the resource's own flat attribute view, so
the config pass and the state pass reach the same answer for the same
attributes.

Stdlib only — no pip dependencies.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from value_lib import Value, is_true


class Variant(Enum):
    DEFAULT = "default"
    CUSTOM = "custom"


@dataclass(frozen=True)
class Discriminators:
    """Names of the attributes classification reads."""
    is_default: str = "default"
    match: str = "match"
    precedence: str = "precedence"


def classify(attributes: Mapping[str, Value], fields: Discriminators = Discriminators()) -> Variant:
    """First match wins:

    1. `is_default` literally true → DEFAULT, even if routing fields are set
       (an already inconsistent v4 config; left as is).
    2. both `match` and `precedence` present → CUSTOM.
    3. otherwise → DEFAULT.
    """
    if is_true(attributes.get(fields.is_default)):
        return Variant.DEFAULT
    if fields.match in attributes and fields.precedence in attributes:
        return Variant.CUSTOM
    return Variant.DEFAULT
