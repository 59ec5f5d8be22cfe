"""
Typed engine settings (``recurrence_config.schema``).

Every section of ``defaults.yaml`` parses into one frozen dataclass.  The
defaults here mirror the packaged YAML so a partial override file only
needs the keys it changes.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class GenerationSettings:
    default_horizon_months: int = 6
    max_horizon_months: int = 24
    max_occurrences_per_window: int = 100

    def __post_init__(self) -> None:
        if self.max_horizon_months < 1:
            raise ValueError("max_horizon_months must be >= 1")
        if not 1 <= self.default_horizon_months <= self.max_horizon_months:
            raise ValueError(
                "default_horizon_months must be between 1 and max_horizon_months"
            )
        if self.max_occurrences_per_window < 1:
            raise ValueError("max_occurrences_per_window must be >= 1")


@dataclass(frozen=True)
class DedupSettings:
    similarity_enabled: bool = True
    recheck_at_write: bool = True


DEFAULT_TRIGGER_FIELDS = (
    "frequency",
    "day_of_month",
    "day_of_week",
    "start_date",
    "base_amount",
    "horizon_months",
)


@dataclass(frozen=True)
class RegenerationSettings:
    trigger_fields: frozenset[str] = field(
        default_factory=lambda: frozenset(DEFAULT_TRIGGER_FIELDS)
    )


@dataclass(frozen=True)
class EngineSettings:
    """Complete, validated engine configuration."""

    generation: GenerationSettings = field(default_factory=GenerationSettings)
    dedup: DedupSettings = field(default_factory=DedupSettings)
    regeneration: RegenerationSettings = field(default_factory=RegenerationSettings)
    checksum: str = ""
