"""
Pydantic schemas for the cron trigger endpoints.
"""
from typing import List

from pydantic import BaseModel


class ProcessDownloadsResponse(BaseModel):
    """Counts from one scheduler drain."""
    processed: int
    succeeded: int
    failed: int
    skipped: int
    duration_ms: int


class CleanupResponse(BaseModel):
    """Outcome of one expiry sweep plus the stale-run check."""
    success: bool
    found: int
    cleaned: int
    stale_failed: List[str]
    errors: List[str]
    duration_ms: int
