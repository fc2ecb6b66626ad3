"""Pydantic models for API requests and responses.

Requests are validated by ``uniclass_gateway.core.validation`` against the
raw JSON body so that malformed items degrade to per-row sentinels; these
models describe the response contract and the OpenAPI documentation.
"""

from datetime import datetime
from enum import Enum
from typing import Union

from pydantic import BaseModel, ConfigDict, Field

from uniclass_gateway.core.models import MatchCandidate, ResultEntry
from uniclass_gateway.services.batch_match_service import BatchMatchResult

# ============================================================================
# Enums
# ============================================================================

class HealthStatus(str, Enum):
    """Component health status."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


# ============================================================================
# Request Models
# ============================================================================

class QueryItem(BaseModel):
    """One query in a batch request (documentation only)."""
    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(..., description="Free text to classify")
    uniclass_type: str = Field(..., description="Uniclass table, e.g. 'Ss' or 'Pr'")
    output_format: str | None = Field(
        default="COBIE",
        description="CODE, TITLE or COBIE (code:title)",
    )
    request_id: Union[str, int, float, None] = Field(
        default=None,
        description="Caller identifier; defaults to the position in the batch",
    )


# ============================================================================
# Response Models
# ============================================================================

class MatchAlternative(BaseModel):
    """A lower-ranked candidate."""
    code: str
    title: str
    confidence: float

    @classmethod
    def from_candidate(cls, candidate: MatchCandidate) -> "MatchAlternative":
        return cls(code=candidate.code, title=candidate.title, confidence=candidate.similarity)


class MatchResultItem(BaseModel):
    """Result for one query of a batch."""
    model_config = {"json_schema_extra": {
        "example": {
            "request_id": 1,
            "match": "Ss_25_10_30:Concrete block wall systems:0.87",
            "confidence": 0.8712,
            "alternatives": [
                {"code": "Ss_25_10_20", "title": "Brick wall systems", "confidence": 0.81},
            ],
        }
    }}

    request_id: Union[str, int, float]
    match: str
    confidence: float | None = None
    alternatives: list[MatchAlternative] | None = None

    @classmethod
    def from_entry(cls, entry: ResultEntry) -> "MatchResultItem":
        alternatives = None
        if entry.alternatives is not None:
            alternatives = [MatchAlternative.from_candidate(alt) for alt in entry.alternatives]
        return cls(
            request_id=entry.identifier,
            match=entry.match,
            confidence=entry.confidence,
            alternatives=alternatives,
        )


class BatchMatchResponse(BaseModel):
    """Batch match response; ``results`` is in request order."""
    success: bool = True
    processed: int = Field(..., ge=0)
    results: list[MatchResultItem] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: BatchMatchResult) -> "BatchMatchResponse":
        return cls(
            processed=result.processed,
            results=[MatchResultItem.from_entry(entry) for entry in result.results],
        )


class SingleMatchResponse(BaseModel):
    """Single match response."""
    match: str
    confidence: float
    alternatives: list[MatchAlternative] = Field(default_factory=list)

    @classmethod
    def from_entry(cls, entry: ResultEntry) -> "SingleMatchResponse":
        return cls(
            match=entry.match,
            confidence=entry.confidence or 0,
            alternatives=[MatchAlternative.from_candidate(alt) for alt in entry.alternatives or []],
        )


class ErrorResponse(BaseModel):
    """Error body returned with every non-200 response."""
    error: str


# ============================================================================
# Health Models
# ============================================================================

class ComponentHealth(BaseModel):
    """Health status of a system component."""
    model_config = ConfigDict(populate_by_name=True)

    status: HealthStatus = Field(...)
    message: str | None = Field(default=None)


class HealthStatusResponse(BaseModel):
    """Complete health status response."""
    model_config = ConfigDict(populate_by_name=True)

    status: HealthStatus = Field(...)
    version: str = Field(...)
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    components: dict[str, ComponentHealth] = Field(default_factory=dict)


class HealthAlive(BaseModel):
    """Liveness probe response."""
    status: str = Field(default="alive")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
