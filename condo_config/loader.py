"""
Configuration Loader (``condo_config.loader``).

Responsibility
--------------
Loads a settings YAML file and parses it into the frozen
``condo_config.schema`` dataclasses.  Runtime callers go through
``condo_config.get_active_settings()``, not this module.

Invariants enforced
-------------------
* Money and threshold values are parsed as ``Decimal`` from their string
  form; floats in the YAML are converted through ``str`` so no binary
  rounding leaks in.
* Unknown sections are rejected so a typo cannot silently fall back to a
  default.
* ``compute_checksum`` is deterministic for identical input.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Bad values or unknown keys  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any
from uuid import UUID

import yaml

from condo_config.schema import (
    CondoSettings,
    HouseSettings,
    PaymentDefaults,
    ReconciliationSettings,
    SystemIds,
)

_SECTIONS = {
    "houses": HouseSettings,
    "reconciliation": ReconciliationSettings,
    "payments": PaymentDefaults,
    "system": SystemIds,
}

_TOP_LEVEL = {"name", "version", "currency"} | set(_SECTIONS)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, key: str) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(f"{key}: expected a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{key}: cannot parse decimal from {value!r}") from exc


def _coerce(value: Any, default: Any, key: str) -> Any:
    """Convert a YAML scalar to the type of the dataclass default."""
    if isinstance(default, Decimal):
        return parse_decimal(value, key)
    if isinstance(default, bool):
        return bool(value)
    if isinstance(default, int):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{key}: expected an integer, got {value!r}")
        return value
    if isinstance(default, UUID):
        return UUID(str(value))
    return str(value)


def parse_section(cls: type, data: dict[str, Any] | None, section: str) -> Any:
    """Build ``cls`` from ``data``, keeping defaults for absent keys."""
    data = data or {}
    defaults = cls()
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown keys in '{section}': {sorted(unknown)}")
    values = {
        name: _coerce(data[name], getattr(defaults, name), f"{section}.{name}")
        for name in known
        if name in data
    }
    return cls(**values)


def parse_settings(data: dict[str, Any]) -> CondoSettings:
    unknown = set(data) - _TOP_LEVEL
    if unknown:
        raise ValueError(f"Unknown settings sections: {sorted(unknown)}")

    sections = {
        name: parse_section(cls, data.get(name), name)
        for name, cls in _SECTIONS.items()
    }

    houses = sections["houses"]
    if houses.min_number < 1 or houses.max_number < houses.min_number:
        raise ValueError(
            f"houses: invalid range {houses.min_number}..{houses.max_number}"
        )
    reconciliation = sections["reconciliation"]
    if reconciliation.date_tolerance_hours <= 0:
        raise ValueError("reconciliation.date_tolerance_hours must be positive")
    if reconciliation.chunk_size < 1:
        raise ValueError("reconciliation.chunk_size must be at least 1")
    payments = sections["payments"]
    if not 1 <= payments.payment_due_day <= 31:
        raise ValueError("payments.payment_due_day must be within 1..31")

    return CondoSettings(
        name=str(data.get("name", "default")),
        version=int(data.get("version", 1)),
        currency=str(data.get("currency", "MXN")),
        checksum=compute_checksum(data),
        **sections,
    )


def load_settings(path: Path) -> CondoSettings:
    return parse_settings(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
