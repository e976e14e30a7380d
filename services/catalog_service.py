"""
Catalog service: reads product snapshots and writes stock batches.

This is the only module that talks to the products table. Failures are
raised as TransientStorageError (worth retrying) or PermanentStorageError
(skip), so the sync job can decide per batch.
"""

from typing import Optional
import structlog

import httpx
from postgrest.exceptions import APIError

from config import get_supabase_client, settings
from models.product import CatalogRecord, StockUpdate
from exceptions import StorageError, TransientStorageError, PermanentStorageError

logger = structlog.get_logger(__name__)

# PostgREST caps rows per response
PAGE_SIZE = 1000

# SQLSTATE classes/codes worth retrying
TRANSIENT_SQLSTATE_PREFIXES = ("08", "53", "57P")
TRANSIENT_SQLSTATES = {"40001", "40P01", "55P03", "57014"}
# PostgREST connection pool / schema cache errors
TRANSIENT_POSTGREST_CODES = {"PGRST000", "PGRST001", "PGRST002", "PGRST003"}


def classify_storage_error(error: Exception, operation: str) -> StorageError:
    """
    Map a Supabase client exception onto the storage error taxonomy.

    Network failures, timeouts, HTTP 429/5xx and Postgres contention or
    connection errors are transient; everything else is permanent.
    """
    if isinstance(error, StorageError):
        return error

    if isinstance(error, httpx.TransportError):
        return TransientStorageError(
            operation, str(error) or type(error).__name__,
            details={"error_type": type(error).__name__}
        )

    if isinstance(error, APIError):
        code = str(error.code or "")
        details = {"code": code, "hint": error.hint, "details": error.details}
        message = error.message or str(error)
        transient = (
            code in TRANSIENT_SQLSTATES
            or code in TRANSIENT_POSTGREST_CODES
            or code.startswith(TRANSIENT_SQLSTATE_PREFIXES)
            or code == "429"
            or (len(code) == 3 and code.startswith("5") and code.isdigit())
        )
        if transient:
            return TransientStorageError(operation, message, details=details)
        return PermanentStorageError(operation, message, details=details)

    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status == 429 or status >= 500:
            return TransientStorageError(operation, str(error), details={"status": status})
        return PermanentStorageError(operation, str(error), details={"status": status})

    if isinstance(error, (TimeoutError, ConnectionError)):
        return TransientStorageError(operation, str(error) or type(error).__name__)

    return PermanentStorageError(
        operation, str(error),
        details={"error_type": type(error).__name__}
    )


class CatalogService:
    """
    Catalog storage on Supabase.

    Writes go through one Postgres function per batch
    (see sql/apply_stock_updates.sql) so a batch commits or rolls back
    as a unit.
    """

    def __init__(self, client=None):
        self.db = client if client is not None else get_supabase_client()
        self.table = settings.products_table
        self.update_rpc = settings.stock_update_rpc

    # ===================
    # READ OPERATIONS
    # ===================

    def list_all_products(self) -> list[CatalogRecord]:
        """
        Load every product (id, title, sku, stock).

        Pages through the table since PostgREST returns at most
        PAGE_SIZE rows per request.

        Raises:
            TransientStorageError / PermanentStorageError
        """
        logger.info("loading_catalog", table=self.table)

        records: list[CatalogRecord] = []
        offset = 0

        try:
            while True:
                result = (
                    self.db.table(self.table)
                    .select("id, title, sku, stock")
                    .order("id")
                    .range(offset, offset + PAGE_SIZE - 1)
                    .execute()
                )
                rows = result.data or []
                records.extend(self._to_record(row) for row in rows)

                if len(rows) < PAGE_SIZE:
                    break
                offset += PAGE_SIZE

        except Exception as e:
            error = classify_storage_error(e, "select")
            logger.error(
                "load_catalog_failed",
                error=str(e),
                transient=error.transient,
                loaded=len(records)
            )
            raise error from e

        logger.info("catalog_loaded", count=len(records))
        return records

    @staticmethod
    def _to_record(row: dict) -> CatalogRecord:
        return CatalogRecord(
            id=str(row["id"]),
            title=row.get("title") or "",
            sku=row.get("sku"),
            stock=int(row.get("stock") or 0)
        )

    # ===================
    # WRITE OPERATIONS
    # ===================

    def update_products_batch(self, updates: list[StockUpdate]) -> int:
        """
        Apply one batch of stock updates in a single transaction.

        Args:
            updates: Instructions for distinct product IDs

        Returns:
            Number of rows the function reports as updated

        Raises:
            TransientStorageError: Retry the whole batch
            PermanentStorageError: Skip the batch
        """
        if not updates:
            return 0

        payload = [update.to_row() for update in updates]
        logger.debug("applying_stock_batch", size=len(payload))

        try:
            result = self.db.rpc(self.update_rpc, {"updates": payload}).execute()
        except Exception as e:
            error = classify_storage_error(e, "update")
            logger.warning(
                "stock_batch_failed",
                size=len(payload),
                error=str(e),
                transient=error.transient
            )
            raise error from e

        if isinstance(result.data, int):
            return result.data
        return len(payload)


# Singleton instance for convenience
_catalog_service: Optional[CatalogService] = None


def get_catalog_service() -> CatalogService:
    """Get or create CatalogService instance."""
    global _catalog_service
    if _catalog_service is None:
        _catalog_service = CatalogService()
    return _catalog_service
