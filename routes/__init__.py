"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.stock_sync import router as stock_sync_router

__all__ = [
    "stock_sync_router",
]
