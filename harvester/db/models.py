"""Dataclass models representing DB rows.

These are plain Python objects – not ORM models.  The DB layer serialises /
deserialises to and from these types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class Record:
    """One JSON document in a named collection (``kind``)."""

    kind: str
    id: str
    fields: dict[str, Any] = field(default_factory=dict)
    created_at: float = 0.0
    updated_at: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Flatten into a single dict: the document fields plus bookkeeping."""
        return {
            **self.fields,
            "id": self.id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
