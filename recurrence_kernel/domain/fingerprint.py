"""
Deduplication fingerprints.

A fingerprint is the set of calendar-day keys that are already represented
by an existing occurrence.  Two strategies are kept separate so each can be
audited (per-strategy counts) and the heuristic one switched off:

    LinkedFingerprint      occurrences carrying this recurrence's id.
    SimilarityFingerprint  occurrences sharing company, counterparty id, type
                           and amount with the template -- catches entries
                           created before a recurrence link existed, or by a
                           different recurrence.

Strategies are pure: they describe the equality filters to query with and
turn the returned occurrences into day keys.  The selector runs the query.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from typing import Any, Protocol

from recurrence_kernel.domain.schedule import day_key
from recurrence_kernel.domain.types import RecurrenceTemplate


class _HasDueDate(Protocol):
    due_date: date


class FingerprintStrategy(Protocol):
    name: str

    def filters(self, template: RecurrenceTemplate) -> dict[str, Any] | None:
        """Equality filters for the occurrence query, or None if not applicable."""
        ...


class LinkedFingerprint:
    name = "linked"

    def filters(self, template: RecurrenceTemplate) -> dict[str, Any] | None:
        return {"recurrence_id": template.id}


class SimilarityFingerprint:
    """Heuristic match for legacy data.  Needs a counterparty id to apply."""

    name = "similarity"

    def filters(self, template: RecurrenceTemplate) -> dict[str, Any] | None:
        if template.counterparty_id is None:
            return None
        return {
            "company_id": template.company_id,
            "counterparty_id": template.counterparty_id,
            "type": template.type,
            "amount": template.base_amount,
        }


def day_keys(occurrences: Iterable[_HasDueDate]) -> frozenset[str]:
    return frozenset(day_key(o.due_date) for o in occurrences)


@dataclass(frozen=True)
class FingerprintSet:
    """Union of the per-strategy day keys for one template."""

    linked: frozenset[str] = frozenset()
    similar: frozenset[str] = frozenset()
    similarity_applied: bool = False

    @property
    def keys(self) -> frozenset[str]:
        return self.linked | self.similar

    def __contains__(self, d: object) -> bool:
        if isinstance(d, date):
            return day_key(d) in self.keys
        return d in self.keys

    def matched_by(self, d: date) -> str | None:
        key = day_key(d)
        if key in self.linked:
            return LinkedFingerprint.name
        if key in self.similar:
            return SimilarityFingerprint.name
        return None

    def counts(self) -> dict[str, int]:
        return {"linked": len(self.linked), "similar": len(self.similar)}


def build_fingerprint(
    linked: Iterable[_HasDueDate],
    similar: Iterable[_HasDueDate] | None = None,
) -> FingerprintSet:
    """Combine the occurrences found by each strategy.

    ``similar=None`` means the similarity strategy did not run (disabled, or
    the template has no counterparty id).
    """
    return FingerprintSet(
        linked=day_keys(linked),
        similar=day_keys(similar) if similar is not None else frozenset(),
        similarity_applied=similar is not None,
    )
