"""
Stock sync API routes.

POST /api/stock/analyze   preview matches for a spreadsheet (no writes)
POST /api/stock/sync      apply a spreadsheet, progress streamed as SSE

Both require the admin key in the X-API-Key header when one is configured.
"""

from fastapi import APIRouter, UploadFile, File, Form, Header
from fastapi.responses import JSONResponse, StreamingResponse
from typing import Optional
import asyncio
import structlog

from config import settings
from models.stock_sync import SyncOptions, AnalysisResponse
from services.stock_sync_service import get_stock_sync_service
from services.progress_channel import ProgressChannel
from exceptions import AppError
from utils.security import verify_admin_key

logger = structlog.get_logger(__name__)

router = APIRouter()

# Running sync jobs; keeps a reference until each task finishes
_sync_jobs: set[asyncio.Task] = set()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# ROUTES
# ===================

@router.post("/analyze", response_model=AnalysisResponse)
async def analyze_stock_file(
    file: UploadFile = File(..., description="Stock spreadsheet (.xls or .xlsx)"),
    x_api_key: Optional[str] = Header(None)
):
    """
    Preview how a stock spreadsheet matches the catalog.

    Returns counts per match type, up to 100 matched rows and up to 200
    unmatched rows with suggestions. Nothing is written.
    """
    try:
        verify_admin_key(x_api_key)

        content = await file.read()
        logger.info("stock_analyze_requested", filename=file.filename, size=len(content))

        service = get_stock_sync_service()
        return await asyncio.to_thread(service.analyze, content, file.filename or "")

    except Exception as e:
        return handle_error(e)


@router.post("/sync")
async def sync_stock_file(
    file: UploadFile = File(..., description="Stock spreadsheet (.xls or .xlsx)"),
    set_missing_to_zero: bool = Form(False, description="Zero products missing from the file"),
    x_api_key: Optional[str] = Header(None)
):
    """
    Apply a stock spreadsheet to the catalog.

    The response is a text/event-stream of progress records:
        data: {"progress": 40, "message": "..."}
    ending with one terminal record carrying success true/false.

    Authorization and input errors are reported as that terminal record.
    The job keeps running if the client disconnects.
    """
    content = await file.read()
    filename = file.filename or ""
    options = SyncOptions(set_missing_to_zero=set_missing_to_zero)

    logger.info(
        "stock_sync_requested",
        filename=filename,
        size=len(content),
        set_missing_to_zero=options.set_missing_to_zero
    )

    channel = ProgressChannel(
        heartbeat_initial=settings.heartbeat_initial_seconds,
        heartbeat_interval=settings.heartbeat_interval_seconds
    )
    service = get_stock_sync_service()

    task = asyncio.create_task(
        service.run_sync(
            content,
            filename,
            options,
            channel,
            authorize=lambda: verify_admin_key(x_api_key)
        )
    )
    _sync_jobs.add(task)
    task.add_done_callback(_sync_jobs.discard)

    return StreamingResponse(
        channel.sse(),
        media_type="text/event-stream",
        headers=SSE_HEADERS
    )
