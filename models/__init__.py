"""
Pydantic models for validation and serialization.
"""

from models.base import (
    BaseSchema,
    FrozenSchema,
)
from models.product import (
    StockStatus,
    CatalogRecord,
    StockUpdate,
)
from models.stock_sync import (
    MatchType,
    SyncOptions,
    Suggestion,
    MatchSample,
    UnmatchedSample,
    ReconciliationResult,
    AnalysisStats,
    AnalysisResponse,
    ProgressEvent,
)

__all__ = [
    # Base
    "BaseSchema",
    "FrozenSchema",

    # Product
    "StockStatus",
    "CatalogRecord",
    "StockUpdate",

    # Stock sync
    "MatchType",
    "SyncOptions",
    "Suggestion",
    "MatchSample",
    "UnmatchedSample",
    "ReconciliationResult",
    "AnalysisStats",
    "AnalysisResponse",
    "ProgressEvent",
]
