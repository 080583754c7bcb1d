"""
Cron trigger endpoints.

An external timer calls these on fixed intervals; each call is one
independent scheduler or reaper invocation.
"""
import logging
import time
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends

from narrator.dependencies import Services, get_services, verify_cron_auth
from narrator.schemas.cron import CleanupResponse, ProcessDownloadsResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix='/cron', tags=['cron'], dependencies=[Depends(verify_cron_auth)])


@router.get('/process-downloads', response_model=ProcessDownloadsResponse)
async def process_downloads(services: Services = Depends(get_services)) -> ProcessDownloadsResponse:
    """Drain a batch of pending jobs."""
    start_time = time.monotonic()
    result = await services.scheduler.drain_pending(services.settings.batch_limit)
    return ProcessDownloadsResponse(
        processed=result.processed,
        succeeded=result.succeeded,
        failed=result.failed,
        skipped=result.skipped,
        duration_ms=int((time.monotonic() - start_time) * 1000),
    )


@router.get('/cleanup-expired', response_model=CleanupResponse)
async def cleanup_expired(services: Services = Depends(get_services)) -> CleanupResponse:
    """
    Retire expired downloads and fail abandoned runs.

    Per-job errors are reported in the response; the sweep still covers
    every other job.
    """
    start_time = time.monotonic()
    now = datetime.utcnow()

    stale = await services.reaper.fail_stale(
        timedelta(seconds=services.settings.stale_processing_timeout_seconds), now,
    )
    result = await services.reaper.sweep(now)

    if result.errors:
        logger.warning('Cleanup completed with %d errors', len(result.errors))

    return CleanupResponse(
        success=not result.errors,
        found=result.found,
        cleaned=result.cleaned,
        stale_failed=stale,
        errors=result.errors,
        duration_ms=int((time.monotonic() - start_time) * 1000),
    )
