"""
Stock reconciliation schemas: options, match samples, results and
progress events.
"""

from pydantic import Field
from typing import Any, Optional
from enum import Enum

from models.base import BaseSchema, FrozenSchema


class MatchType(str, Enum):
    """Which matcher tier resolved a spreadsheet row."""
    EXACT = "exact"
    PREFIX_REMOVED = "prefix_removed"
    KEYWORDS = "keywords"
    PARTIAL = "partial"
    SIMILARITY = "similarity"
    NONE = "none"


class SyncOptions(BaseSchema):
    """Caller options for one sync job."""

    set_missing_to_zero: bool = Field(
        default=False,
        description="Zero the stock of every product not matched by the file"
    )


# ===================
# REVIEW SAMPLES
# ===================

class Suggestion(FrozenSchema):
    """Catalog title offered for an unmatched row."""
    title: str
    similarity: float


class MatchSample(FrozenSchema):
    """One matched row kept for human review."""
    file_product: str
    matched_product: str
    matched_sku: Optional[str] = None
    stock: int
    match_type: MatchType
    similarity: Optional[float] = None


class UnmatchedSample(FrozenSchema):
    """One unmatched row with the closest catalog titles."""
    file_product: str
    suggestions: list[Suggestion] = Field(default_factory=list)


# ===================
# RESULTS
# ===================

class ReconciliationResult(FrozenSchema):
    """
    Outcome of one sync job.

    Counts are final. Sample lists are truncated to the configured limits.
    """

    total_in_file: int = Field(..., description="Data rows matched or unmatched")
    skipped_rows: int = Field(default=0, description="Blank or noise rows")
    updated: int = Field(default=0, description="Products whose stock was written")
    not_found: int = Field(default=0, description="Rows without a catalog match")
    set_to_zero: int = Field(default=0, description="Unmatched products zeroed")
    failed_batches: int = Field(default=0, description="Batches skipped after errors")
    failed_updates: int = Field(default=0, description="Instructions in skipped batches")
    errors: list[str] = Field(default_factory=list)
    match_types: dict[str, int] = Field(default_factory=dict)
    matched_products: list[str] = Field(default_factory=list)
    matches: list[MatchSample] = Field(default_factory=list)
    unmatched: list[UnmatchedSample] = Field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def partial_failure(self) -> bool:
        """True when some batches were not committed."""
        return self.failed_batches > 0


class AnalysisStats(FrozenSchema):
    """Aggregate statistics of a preview analysis."""
    total_in_file: int
    found: int
    not_found: int
    found_percent: float
    match_types: dict[str, int]


class AnalysisResponse(FrozenSchema):
    """Preview of how a spreadsheet would match the catalog. Nothing is written."""
    stats: AnalysisStats
    matches: list[MatchSample]
    not_found: list[UnmatchedSample]
    total_matches: int
    total_not_found: int


# ===================
# PROGRESS
# ===================

class ProgressEvent(FrozenSchema):
    """
    One entry on the progress stream.

    Heartbeats carry no content and exist only to keep the connection open.
    """

    progress: int = Field(..., ge=0, le=100)
    message: str = ""
    payload: Optional[dict[str, Any]] = None
    heartbeat: bool = False

    def to_payload(self) -> dict:
        """Flatten into the wire record."""
        data = {"progress": self.progress, "message": self.message}
        if self.payload:
            data.update(self.payload)
        return data
