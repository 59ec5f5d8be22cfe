"""
Recurrence Kernel

Turns recurring income/expense templates into individually payable
occurrences on a rolling horizon, with:
- Idempotent, deduplicated generation
- Append-only amount versioning with cascade to future entries
- Edit-driven cleanup and regeneration
- Atomic batches with optimistic locking
"""

__version__ = "0.1.0"
