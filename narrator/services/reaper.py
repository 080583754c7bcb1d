"""
Expiry reaper: retires expired downloads and abandoned runs.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from narrator.errors import StorageError
from narrator.services.job_store import JobStore
from narrator.services.storage import Storage

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    """Outcome of one expiry sweep."""
    found: int = 0
    cleaned: int = 0
    errors: List[str] = field(default_factory=list)


class Reaper:
    """
    Deletes stored audio and soft-deletes job records past their expiry.

    A job whose stored file cannot be deleted is left untouched, so the next
    sweep picks it up again. One bad job never stops the sweep.
    """

    def __init__(self, store: JobStore, storage: Storage):
        self.store = store
        self.storage = storage

    async def sweep(self, now: Optional[datetime] = None) -> SweepResult:
        now = now or datetime.utcnow()
        expired = await self.store.list_expired(now)
        logger.info('Found %d expired jobs', len(expired))

        result = SweepResult(found=len(expired))
        for job in expired:
            try:
                if job.file_key:
                    await self.storage.delete(job.file_key)
                    logger.debug('Deleted expired file %s for job %s', job.file_key, job.id)
                await self.store.retire(job.id, now)
            except (StorageError, SQLAlchemyError) as e:
                result.errors.append(f'{job.id}: {e}')
                logger.error('Failed to clean up expired job %s: %s', job.id, e)
                continue
            except Exception as e:
                # Storage backends may raise their own exception types
                result.errors.append(f'{job.id}: {e.__class__.__name__}: {e}')
                logger.exception('Unexpected error cleaning up expired job %s', job.id)
                continue
            result.cleaned += 1

        logger.info('Finished cleanup: cleaned=%d errors=%d', result.cleaned, len(result.errors))
        return result

    async def fail_stale(self, timeout: timedelta, now: Optional[datetime] = None) -> List[str]:
        """
        Fail processing jobs with no progress for longer than timeout.

        A worker that crashed mid-run leaves its job processing forever; such
        jobs are never picked up again by the scheduler. They are moved to
        failed, keeping the cost they incurred.

        Returns:
            Ids of the jobs that were failed.
        """
        now = now or datetime.utcnow()
        cutoff = now - timeout
        failed = []
        for job in await self.store.list_stale_processing(cutoff):
            message = f'Processing stalled at chunk {job.processed_chunks}/{job.total_chunks}'
            if await self.store.fail_if_stale(job.id, cutoff, message, now):
                logger.warning('Job %s marked failed: no progress since %s', job.id, job.updated_at)
                failed.append(job.id)
        return failed
