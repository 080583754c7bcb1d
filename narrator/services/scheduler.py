"""
Batch scheduler that drains pending jobs.

Invoked periodically by an external timer. Jobs are processed strictly one
after another, which bounds the outbound call rate to vendor APIs from a
single scheduler instance.
"""
import logging
from dataclasses import dataclass

from narrator.config import BATCH_LIMIT
from narrator.errors import InvalidStateError, NotFoundError
from narrator.services.job_processor import JobOutcome, JobProcessor
from narrator.services.job_store import JobStore

logger = logging.getLogger(__name__)


@dataclass
class DrainResult:
    """Counts for one drain_pending invocation."""
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0


class Scheduler:
    """Claims and runs pending jobs in FIFO order."""

    def __init__(self, store: JobStore, processor: JobProcessor):
        self.store = store
        self.processor = processor

    async def drain_pending(self, limit: int = BATCH_LIMIT) -> DrainResult:
        """
        Process up to limit pending jobs, oldest first.

        Jobs another worker claimed between listing and running are counted
        as skipped, not failed.
        """
        jobs = await self.store.list_pending(limit)
        logger.info('Found %d pending jobs', len(jobs))

        result = DrainResult(processed=len(jobs))
        for job in jobs:
            try:
                outcome = await self.processor.run(job.id)
            except (NotFoundError, InvalidStateError) as e:
                logger.info('Skipping job %s: %s', job.id, e)
                result.skipped += 1
                continue
            except Exception:
                # Keep draining; the job stays as it was for the next pass
                logger.exception('Error running job %s', job.id)
                result.failed += 1
                continue

            if outcome is JobOutcome.completed:
                result.succeeded += 1
            elif outcome is JobOutcome.failed:
                result.failed += 1
            else:
                result.skipped += 1

        logger.info(
            'Finished pending jobs: processed=%d succeeded=%d failed=%d skipped=%d',
            result.processed, result.succeeded, result.failed, result.skipped,
        )
        return result
