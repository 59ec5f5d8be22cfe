"""
Settings loader (``recurrence_config.loader``).

Responsibility
--------------
Reads YAML files and parses them into the frozen dataclasses of
``recurrence_config.schema``.  Runtime callers go through
``recurrence_config.get_engine_settings()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key, or a value of the wrong type  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from recurrence_config.schema import (
    DedupSettings,
    EngineSettings,
    GenerationSettings,
    RegenerationSettings,
)

_SECTIONS = {
    "generation": GenerationSettings,
    "dedup": DedupSettings,
    "regeneration": RegenerationSettings,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def merge_settings(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Overlay ``override`` on ``base`` one section deep."""
    merged = {name: dict(values or {}) for name, values in base.items()}
    for name, values in override.items():
        if name not in _SECTIONS:
            raise ValueError(f"Unknown settings section: {name!r}")
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ValueError(f"Settings section {name!r} must be a mapping")
        merged.setdefault(name, {}).update(values)
    return merged


def _parse_bool(section: str, key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"{section}.{key} must be true or false, got {value!r}")
    return value


def _parse_int(section: str, key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{section}.{key} must be an integer, got {value!r}")
    return value


def parse_settings(data: dict[str, Any]) -> EngineSettings:
    """Parse a merged settings dict into ``EngineSettings``."""
    for name in data:
        if name not in _SECTIONS:
            raise ValueError(f"Unknown settings section: {name!r}")

    gen = data.get("generation") or {}
    _reject_unknown("generation", gen, GenerationSettings)
    generation = GenerationSettings(
        **{k: _parse_int("generation", k, v) for k, v in gen.items()}
    )

    dd = data.get("dedup") or {}
    _reject_unknown("dedup", dd, DedupSettings)
    dedup = DedupSettings(**{k: _parse_bool("dedup", k, v) for k, v in dd.items()})

    regen = data.get("regeneration") or {}
    _reject_unknown("regeneration", regen, RegenerationSettings)
    regeneration = RegenerationSettings()
    if "trigger_fields" in regen:
        fields = regen["trigger_fields"]
        if not isinstance(fields, list) or not all(isinstance(f, str) for f in fields):
            raise ValueError("regeneration.trigger_fields must be a list of names")
        regeneration = RegenerationSettings(trigger_fields=frozenset(fields))

    return EngineSettings(
        generation=generation,
        dedup=dedup,
        regeneration=regeneration,
        checksum=compute_checksum(data),
    )


def _reject_unknown(section: str, values: dict[str, Any], cls: type) -> None:
    known = set(cls.__dataclass_fields__)
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"Unknown key(s) in {section}: {sorted(unknown)}")


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
