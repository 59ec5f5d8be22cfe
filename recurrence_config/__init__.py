"""
recurrence_config -- single public entrypoint for engine settings.

Responsibility:
    ``get_engine_settings()`` is the only way services obtain configuration.
    The packaged ``defaults.yaml`` is always loaded first; an optional file
    overrides individual keys.

Failure modes:
    - ``FileNotFoundError`` -- override path does not exist.
    - ``ValueError`` -- unknown section/key or wrongly typed value.

Every load emits an ``engine_settings_loaded`` log line carrying the
settings checksum, so a run can be tied to the exact configuration used.
"""

from __future__ import annotations

import logging
from pathlib import Path

from recurrence_config.loader import load_yaml_file, merge_settings, parse_settings
from recurrence_config.schema import (
    DedupSettings,
    EngineSettings,
    GenerationSettings,
    RegenerationSettings,
)

__all__ = [
    "get_engine_settings",
    "EngineSettings",
    "GenerationSettings",
    "DedupSettings",
    "RegenerationSettings",
    "DEFAULTS_PATH",
]

_logger = logging.getLogger("recurrence_kernel.config")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

_default_settings: EngineSettings | None = None


def get_engine_settings(path: Path | str | None = None) -> EngineSettings:
    """Return engine settings, optionally overridden by the YAML at ``path``.

    The packaged defaults are parsed once per process and reused.
    """
    global _default_settings

    if path is None and _default_settings is not None:
        return _default_settings

    data = load_yaml_file(DEFAULTS_PATH)
    source = str(DEFAULTS_PATH)
    if path is not None:
        data = merge_settings(data, load_yaml_file(Path(path)))
        source = str(path)

    settings = parse_settings(data)
    _logger.info(
        "engine_settings_loaded",
        extra={"source": source, "checksum": settings.checksum},
    )

    if path is None:
        _default_settings = settings
    return settings
