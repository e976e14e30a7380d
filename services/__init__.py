"""
Business logic services.

Each service handles one domain area.
"""

from services.catalog_service import CatalogService, get_catalog_service
from services.matching_service import (
    CatalogIndex,
    ProductMatcher,
    MatchResult,
    MatchStrategy,
    MatcherThresholds,
    PREVIEW_STRATEGIES,
    SYNC_STRATEGIES,
)
from services.progress_channel import ProgressChannel
from services.stock_sync_service import StockSyncService, SyncState, get_stock_sync_service

__all__ = [
    "CatalogService",
    "get_catalog_service",
    "CatalogIndex",
    "ProductMatcher",
    "MatchResult",
    "MatchStrategy",
    "MatcherThresholds",
    "PREVIEW_STRATEGIES",
    "SYNC_STRATEGIES",
    "ProgressChannel",
    "StockSyncService",
    "SyncState",
    "get_stock_sync_service",
]
