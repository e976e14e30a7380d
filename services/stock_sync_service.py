"""
Stock sync service.

Reconciles a warehouse stock spreadsheet against the product catalog:

    Initializing → ReadingFile → DetectingStructure → LoadingCatalog
    → BuildingIndex → ProcessingRows → ApplyingUpdates
    → ApplyingZeroPolicy (opt-in) → Completed | Failed

Rows are processed in file order. When several rows match the same
product the later row wins. Writes go out in fixed-size batches, one at a
time, each batch one transaction; transient failures retry the whole
batch, and a batch that still fails is skipped so the rest of the job can
finish. Progress is pushed to a ProgressChannel throughout.

analyze() runs the same reading and matching without writing anything,
for the preview screen.
"""

from collections import Counter
from enum import Enum
from typing import Callable, Optional
import asyncio
import time
import structlog

from config import settings as app_settings, Settings
from models.product import CatalogRecord, StockUpdate
from models.stock_sync import (
    SyncOptions,
    MatchSample,
    UnmatchedSample,
    ReconciliationResult,
    AnalysisStats,
    AnalysisResponse,
)
from parsers.stock_sheet_parser import (
    StockRowReader,
    validate_upload,
    decode_workbook,
    require_structure,
)
from services.catalog_service import get_catalog_service
from services.matching_service import (
    CatalogIndex,
    MatchResult,
    ProductMatcher,
    PREVIEW_STRATEGIES,
    SYNC_STRATEGIES,
)
from services.progress_channel import ProgressChannel
from exceptions import (
    AppError,
    AuthorizationError,
    InputError,
    StorageError,
    TransientStorageError,
)
from utils.retry import retry

logger = structlog.get_logger(__name__)

# Emit row progress at least this often
ROW_PROGRESS_EVERY = 50
ROW_PROGRESS_FRACTION = 0.05

# Progress milestones (percent)
PCT_READING = 5
PCT_DETECTING = 10
PCT_LOADING_CATALOG = 15
PCT_BUILDING_INDEX = 20
PCT_ROWS_END = 70
PCT_UPDATES_END = 90
PCT_ZERO_END = 98


class SyncState(str, Enum):
    """Lifecycle of one sync job."""
    INITIALIZING = "initializing"
    READING_FILE = "reading_file"
    DETECTING_STRUCTURE = "detecting_structure"
    LOADING_CATALOG = "loading_catalog"
    BUILDING_INDEX = "building_index"
    PROCESSING_ROWS = "processing_rows"
    APPLYING_UPDATES = "applying_updates"
    APPLYING_ZERO_POLICY = "applying_zero_policy"
    COMPLETED = "completed"
    FAILED = "failed"


class RowTally:
    """Accumulates match outcomes while rows are processed."""

    def __init__(self, matches_limit: int, unmatched_limit: int):
        self.matches_limit = matches_limit
        self.unmatched_limit = unmatched_limit
        self.updates: dict[str, StockUpdate] = {}
        self.matched_ids: set[str] = set()
        self.match_types: Counter = Counter()
        self.matched_rows = 0
        self.not_found = 0
        self.skipped = 0
        self.matches: list[MatchSample] = []
        self.matched_products: list[str] = []
        self.unmatched: list[UnmatchedSample] = []

    @property
    def total(self) -> int:
        return self.matched_rows + self.not_found

    def add_match(self, result: MatchResult, quantity: int) -> None:
        record = result.record
        # Later rows overwrite earlier ones and move to the end
        self.updates.pop(record.id, None)
        self.updates[record.id] = StockUpdate.for_quantity(record.id, quantity)
        self.matched_ids.add(record.id)
        self.match_types[result.match_type.value] += 1
        self.matched_rows += 1

        if len(self.matches) < self.matches_limit:
            self.matches.append(MatchSample(
                file_product=result.incoming_name,
                matched_product=record.title,
                matched_sku=record.sku,
                stock=quantity,
                match_type=result.match_type,
                similarity=round(result.similarity, 3) if result.similarity is not None else None
            ))
            self.matched_products.append(f"{record.title} (SKU: {record.sku or '-'})")

    def add_miss(self, result: MatchResult, suggest: Callable[[str], list]) -> None:
        self.not_found += 1
        if len(self.unmatched) < self.unmatched_limit:
            self.unmatched.append(UnmatchedSample(
                file_product=result.incoming_name,
                suggestions=suggest(result.normalized_name)
            ))


class BatchReport:
    """Outcome of one batched write phase."""

    def __init__(self):
        self.committed = 0
        self.failed_batches = 0
        self.failed_updates = 0
        self.errors: list[str] = []


class StockSyncService:
    """
    Stock reconciliation jobs.

    Collaborators are injected so tests can swap in fakes:
        catalog: object with list_all_products() and update_products_batch()
        decoder: bytes, filename → grid of text cells
    """

    def __init__(
        self,
        catalog=None,
        config: Optional[Settings] = None,
        decoder: Callable[[bytes, str], list[list[str]]] = decode_workbook,
    ):
        self.catalog = catalog if catalog is not None else get_catalog_service()
        self.config = config or app_settings
        self.decoder = decoder
        self.state = SyncState.INITIALIZING
        self._write_batch = retry(
            max_attempts=self.config.sync_retry_attempts,
            delay=self.config.sync_retry_delay_seconds,
            retry_on=(TransientStorageError,),
        )(self._write_batch_once)

    def _enter(self, state: SyncState, **context) -> None:
        logger.info("stock_sync_state", state=state.value, previous=self.state.value, **context)
        self.state = state

    # ===================
    # SHARED STEPS
    # ===================

    def _read_grid(self, content: bytes, filename: str) -> list[list[str]]:
        validate_upload(filename, content, self.config.max_upload_bytes)
        return self.decoder(content, filename)

    # ===================
    # PREVIEW
    # ===================

    def analyze(self, content: bytes, filename: str) -> AnalysisResponse:
        """
        Preview how a spreadsheet matches the catalog. Writes nothing.

        Uses the preview strategy list (no edit-distance fallback).

        Raises:
            InputError: Invalid file or structure
            StorageError: Catalog could not be loaded
        """
        logger.info("stock_analysis_started", filename=filename, size=len(content))

        grid = self._read_grid(content, filename)
        structure = require_structure(grid, scan_rows=self.config.header_scan_rows)
        index = CatalogIndex.build(self.catalog.list_all_products())
        matcher = ProductMatcher(PREVIEW_STRATEGIES)

        tally = RowTally(self.config.sample_matches_limit, self.config.sample_unmatched_limit)
        for row in StockRowReader(grid, structure):
            result = matcher.match(row.raw_name, index, normalized=row.normalized_name)
            if result.matched:
                tally.add_match(result, row.quantity)
            else:
                tally.add_miss(result, lambda name: matcher.suggest(name, index))

        found_percent = round(tally.matched_rows / tally.total * 100, 1) if tally.total else 0.0

        logger.info(
            "stock_analysis_completed",
            total=tally.total,
            found=tally.matched_rows,
            not_found=tally.not_found
        )

        return AnalysisResponse(
            stats=AnalysisStats(
                total_in_file=tally.total,
                found=tally.matched_rows,
                not_found=tally.not_found,
                found_percent=found_percent,
                match_types={
                    strategy.value: tally.match_types.get(strategy.value, 0)
                    for strategy in PREVIEW_STRATEGIES
                }
            ),
            matches=tally.matches,
            not_found=tally.unmatched,
            total_matches=tally.matched_rows,
            total_not_found=tally.not_found
        )

    # ===================
    # SYNC
    # ===================

    async def run_sync(
        self,
        content: bytes,
        filename: str,
        options: SyncOptions,
        channel: ProgressChannel,
        authorize: Optional[Callable[[], None]] = None,
    ) -> Optional[ReconciliationResult]:
        """
        Run one sync job, reporting through the channel.

        Every outcome, including an authorization failure, ends with exactly
        one terminal event. The job keeps writing if the consumer
        disconnects; only its events are dropped.

        Args:
            content: Uploaded workbook bytes
            filename: Original filename
            options: Caller options (set_missing_to_zero)
            channel: Progress sink
            authorize: Raises AuthorizationError for non-admin callers

        Returns:
            ReconciliationResult, or None if the job failed
        """
        started = time.monotonic()
        tally: Optional[RowTally] = None
        updates_report = BatchReport()
        zero_report = BatchReport()

        try:
            self._enter(SyncState.INITIALIZING, filename=filename)
            channel.start_heartbeat()
            if authorize is not None:
                authorize()
            channel.emit(1, "Starting stock sync")

            self._enter(SyncState.READING_FILE)
            channel.emit(PCT_READING, "Reading file")
            grid = await asyncio.to_thread(self._read_grid, content, filename)

            self._enter(SyncState.DETECTING_STRUCTURE, rows=len(grid))
            channel.emit(PCT_DETECTING, f"Detecting sheet structure ({len(grid)} rows)")
            structure = require_structure(grid, scan_rows=self.config.header_scan_rows)

            self._enter(SyncState.LOADING_CATALOG)
            channel.emit(PCT_LOADING_CATALOG, "Loading catalog")
            records = await asyncio.to_thread(self.catalog.list_all_products)

            self._enter(SyncState.BUILDING_INDEX, records=len(records))
            channel.emit(PCT_BUILDING_INDEX, f"Indexing {len(records)} products")
            index = CatalogIndex.build(records)

            self._enter(SyncState.PROCESSING_ROWS)
            tally = await self._process_rows(grid, structure, index, channel)

            self._enter(SyncState.APPLYING_UPDATES, updates=len(tally.updates))
            zero_end = PCT_UPDATES_END if options.set_missing_to_zero else PCT_ZERO_END
            updates_report = await self._apply_batches(
                list(tally.updates.values()),
                channel,
                start_pct=PCT_ROWS_END,
                end_pct=zero_end,
                label="Updating stock"
            )

            if options.set_missing_to_zero:
                self._enter(SyncState.APPLYING_ZERO_POLICY)
                zero_updates = self.missing_to_zero(records, tally.matched_ids)
                channel.emit(PCT_UPDATES_END, f"Zeroing {len(zero_updates)} products missing from file")
                zero_report = await self._apply_batches(
                    zero_updates,
                    channel,
                    start_pct=PCT_UPDATES_END,
                    end_pct=PCT_ZERO_END,
                    label="Zeroing missing products"
                )

            result = self._build_result(tally, updates_report, zero_report, started)

            self._enter(
                SyncState.COMPLETED,
                updated=result.updated,
                not_found=result.not_found,
                set_to_zero=result.set_to_zero,
                failed_batches=result.failed_batches,
                duration_seconds=result.duration_seconds
            )
            message = "Sync completed"
            if result.partial_failure:
                message = f"Sync completed with {result.failed_batches} failed batches"
            channel.complete(result.model_dump(mode="json"), message=message)
            return result

        except AppError as e:
            self._fail(channel, e.message, e.code, e, tally, updates_report, zero_report)
            return None
        except Exception as e:
            logger.exception("stock_sync_unexpected_error", error=str(e))
            self._fail(
                channel,
                "An unexpected error occurred during stock sync",
                "INTERNAL_ERROR",
                e,
                tally,
                updates_report,
                zero_report
            )
            return None

    def _fail(
        self,
        channel: ProgressChannel,
        message: str,
        code: str,
        error: Exception,
        tally: Optional[RowTally],
        updates_report: BatchReport,
        zero_report: BatchReport,
    ) -> None:
        failed_in = self.state
        self._enter(SyncState.FAILED, failed_in=failed_in.value, code=code, error=str(error))

        payload = {"state": failed_in.value}
        if isinstance(error, InputError):
            payload["input_error"] = True
        if isinstance(error, AppError) and error.details:
            payload["details"] = error.details
        if tally is not None:
            payload["partial"] = {
                "updated": updates_report.committed,
                "set_to_zero": zero_report.committed,
                "not_found": tally.not_found,
                "errors": updates_report.errors + zero_report.errors,
            }
        if isinstance(error, AuthorizationError):
            payload["status_code"] = error.status_code

        channel.fail(message, code=code, **payload)

    async def _process_rows(
        self,
        grid: list[list[str]],
        structure,
        index: CatalogIndex,
        channel: ProgressChannel
    ) -> RowTally:
        """Match every data row in file order."""
        matcher = ProductMatcher(SYNC_STRATEGIES)
        tally = RowTally(self.config.sample_matches_limit, self.config.sample_unmatched_limit)
        reader = StockRowReader(grid, structure)
        total = reader.total_rows
        fraction_step = max(1, int(total * ROW_PROGRESS_FRACTION))
        span = PCT_ROWS_END - PCT_BUILDING_INDEX

        channel.emit(PCT_BUILDING_INDEX, f"Processing {total} rows")

        for row in reader:
            result = matcher.match(row.raw_name, index, normalized=row.normalized_name)
            if result.matched:
                tally.add_match(result, row.quantity)
                if tally.matched_rows <= 5:
                    logger.debug(
                        "row_matched",
                        row=row.row_index,
                        name=row.raw_name[:60],
                        product=result.record.title,
                        match_type=result.match_type.value,
                        quantity=row.quantity
                    )
            else:
                tally.add_miss(result, lambda name: matcher.suggest(name, index))
                if tally.not_found <= 5:
                    logger.debug("row_not_matched", row=row.row_index, name=row.raw_name[:60])

            position = row.row_index - structure.data_start_row + 1
            processed = tally.total
            if processed % ROW_PROGRESS_EVERY == 0 or processed % fraction_step == 0:
                channel.emit(
                    PCT_BUILDING_INDEX + span * position / max(total, 1),
                    f"Processed {processed} rows",
                    processed=processed,
                    total=total
                )
                await asyncio.sleep(0)

        channel.emit(
            PCT_ROWS_END,
            f"Matched {tally.matched_rows} of {tally.total} rows",
            processed=tally.total,
            total=total
        )

        logger.info(
            "stock_rows_processed",
            rows=tally.total,
            matched=tally.matched_rows,
            not_found=tally.not_found,
            updates=len(tally.updates),
            skipped=reader.skipped.total,
            match_types=dict(tally.match_types)
        )
        tally.skipped = reader.skipped.total
        return tally

    @staticmethod
    def missing_to_zero(records: list[CatalogRecord], matched_ids: set[str]) -> list[StockUpdate]:
        """Zero-stock updates for every record no row matched (each once)."""
        seen: set[str] = set()
        zero_updates = []
        for record in records:
            if record.id in matched_ids or record.id in seen:
                continue
            seen.add(record.id)
            zero_updates.append(StockUpdate.for_quantity(record.id, 0))
        return zero_updates

    # ===================
    # BATCHED WRITES
    # ===================

    async def _write_batch_once(self, batch: list[StockUpdate]) -> int:
        return await asyncio.to_thread(self.catalog.update_products_batch, batch)

    async def _apply_batches(
        self,
        updates: list[StockUpdate],
        channel: ProgressChannel,
        start_pct: int,
        end_pct: int,
        label: str
    ) -> BatchReport:
        """
        Write updates in sequential batches.

        A batch that fails permanently, or still fails after the retry
        attempts, is skipped and recorded; later batches still run.
        """
        report = BatchReport()
        size = self.config.sync_batch_size
        batches = [updates[i:i + size] for i in range(0, len(updates), size)]

        if not batches:
            channel.emit(end_pct, f"{label}: nothing to write")
            return report

        for number, batch in enumerate(batches, start=1):
            try:
                await self._write_batch(batch)
                report.committed += len(batch)
            except StorageError as e:
                report.failed_batches += 1
                report.failed_updates += len(batch)
                kind = "transient" if e.transient else "permanent"
                report.errors.append(f"Batch {number} ({len(batch)} products, {kind}): {e.message}")
                logger.error(
                    "stock_batch_skipped",
                    phase=self.state.value,
                    batch=number,
                    size=len(batch),
                    transient=e.transient,
                    error=e.message
                )

            channel.emit(
                start_pct + (end_pct - start_pct) * number / len(batches),
                f"{label}: batch {number} of {len(batches)}",
                batch=number,
                batches=len(batches)
            )

            if number < len(batches) and self.config.sync_batch_delay_seconds:
                await asyncio.sleep(self.config.sync_batch_delay_seconds)

        logger.info(
            "stock_batches_applied",
            phase=self.state.value,
            batches=len(batches),
            committed=report.committed,
            failed_batches=report.failed_batches
        )
        return report

    # ===================
    # RESULT
    # ===================

    def _build_result(
        self,
        tally: RowTally,
        updates_report: BatchReport,
        zero_report: BatchReport,
        started: float
    ) -> ReconciliationResult:
        return ReconciliationResult(
            total_in_file=tally.total,
            skipped_rows=tally.skipped,
            updated=updates_report.committed,
            not_found=tally.not_found,
            set_to_zero=zero_report.committed,
            failed_batches=updates_report.failed_batches + zero_report.failed_batches,
            failed_updates=updates_report.failed_updates + zero_report.failed_updates,
            errors=updates_report.errors + zero_report.errors,
            match_types=dict(tally.match_types),
            matched_products=tally.matched_products,
            matches=tally.matches,
            unmatched=tally.unmatched,
            duration_seconds=round(time.monotonic() - started, 2)
        )


def get_stock_sync_service() -> StockSyncService:
    """Create a StockSyncService for one request (jobs hold per-run state)."""
    return StockSyncService()
