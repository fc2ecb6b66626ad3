"""Domain models for the matching pipeline.

These are plain dataclasses shared by the services; the pydantic schemas in
``uniclass_gateway.api.models`` describe the wire format only.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

Identifier = Union[str, int, float]


class OutputFormat(str, Enum):
    """How the primary match is rendered into the ``match`` string."""
    CODE = "CODE"
    TITLE = "TITLE"
    COMBINED = "COBIE"

    @classmethod
    def parse(cls, value: Any) -> "OutputFormat":
        """Parse a caller-supplied format, falling back to COMBINED.

        Matching is case-insensitive. Missing or unrecognized values, including
        the literal ``"COMBINED"``, render as ``code:title``.
        """
        if isinstance(value, str):
            normalized = value.strip().upper()
            if normalized == cls.CODE.value:
                return cls.CODE
            if normalized == cls.TITLE.value:
                return cls.TITLE
        return cls.COMBINED


class MatchOutcome(str, Enum):
    """Outcome of processing one query."""
    MATCHED = "matched"
    NO_MATCH = "no_match"
    EMBEDDING_FAILED = "embedding_failed"
    DATABASE_ERROR = "database_error"
    PROCESSING_ERROR = "processing_error"

    @property
    def sentinel_label(self) -> str | None:
        """Text used in place of a match for failure outcomes."""
        return _SENTINEL_LABELS.get(self)


_SENTINEL_LABELS = {
    MatchOutcome.NO_MATCH: "No match found",
    MatchOutcome.EMBEDDING_FAILED: "Embedding failed",
    MatchOutcome.DATABASE_ERROR: "Database error",
    MatchOutcome.PROCESSING_ERROR: "Processing error",
}


@dataclass
class Query:
    """One unit of work from the caller.

    Attributes:
        position: Zero-based index of the query in the batch
        identifier: Caller-supplied request_id, or ``position`` when omitted
        text: Free-form text to classify
        category_filter: Uniclass table filter, normalized to uppercase
        output_format: Rendering of the primary match
        error: Per-item validation failure; such queries skip embedding
    """
    position: int
    identifier: Identifier
    text: str = ""
    category_filter: str = ""
    output_format: OutputFormat = OutputFormat.COMBINED
    error: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.error is None


@dataclass
class MatchCandidate:
    """One ranked result from the similarity store."""
    code: str
    title: str
    similarity: float


@dataclass
class LookupOutcome:
    """Raw result of dispatching one query, before formatting."""
    query: Query
    outcome: MatchOutcome
    candidates: list[MatchCandidate] = field(default_factory=list)
    error: str | None = None

    @property
    def best(self) -> MatchCandidate | None:
        return self.candidates[0] if self.candidates else None


@dataclass
class ResultEntry:
    """Outward-facing outcome for one query.

    ``confidence`` and ``alternatives`` are optional so the same record serves
    both the detailed batch contract and a match-only rendering.
    """
    identifier: Identifier
    match: str
    outcome: MatchOutcome
    confidence: float | None = None
    alternatives: list[MatchCandidate] | None = None

    @property
    def is_sentinel(self) -> bool:
        return self.outcome is not MatchOutcome.MATCHED
