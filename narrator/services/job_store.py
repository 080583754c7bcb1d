"""
Persistence for synthesis jobs.

All state changes after creation go through conditional UPDATEs keyed on the
current status, so a job can never leave a terminal state and only the
worker that claimed a job can advance it.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from narrator.config import DOWNLOAD_EXPIRY_DAYS
from narrator.models.job import AudioFormat, Job, JobStatus, Provider
from narrator.services.providers import estimate_cost

logger = logging.getLogger(__name__)


class JobStore:
    """Job record access over an async session factory."""

    def __init__(self, session_factory: async_sessionmaker, download_expiry_days: int = DOWNLOAD_EXPIRY_DAYS):
        self._session_factory = session_factory
        self.download_expiry_days = download_expiry_days

    def calculate_expiry_date(self, now: Optional[datetime] = None) -> datetime:
        return (now or datetime.utcnow()) + timedelta(days=self.download_expiry_days)

    async def create_job(
        self,
        user_id: str,
        source_ref: str,
        provider: Provider,
        voice: Optional[str] = None,
        audio_format: AudioFormat = AudioFormat.mp3,
        estimated_cost: Optional[float] = None,
        expires_at: Optional[datetime] = None,
        text: Optional[str] = None,
    ) -> Job:
        """
        Create a pending job. Used by the request-handling side.

        When the source text is given and no estimate is, the estimate is
        priced from the trimmed text.
        """
        if estimated_cost is None and text is not None:
            estimated_cost = estimate_cost(text, provider)
        job = Job(
            user_id=user_id,
            source_ref=source_ref,
            provider=Provider(provider).value,
            voice=voice,
            format=AudioFormat(audio_format).value,
            status=JobStatus.pending.value,
            estimated_cost=estimated_cost,
            expires_at=expires_at or self.calculate_expiry_date(),
        )
        async with self._session_factory() as session:
            session.add(job)
            await session.commit()
            await session.refresh(job)
        return job

    async def get_job(self, job_id: str) -> Optional[Job]:
        async with self._session_factory() as session:
            result = await session.execute(select(Job).where(Job.id == job_id))
            return result.scalar_one_or_none()

    async def _update(self, job_id: str, expected_status: JobStatus, **values) -> bool:
        """
        Apply values if the job is still in expected_status and not retired.

        Returns True if a row changed.
        """
        values.setdefault('updated_at', datetime.utcnow())
        async with self._session_factory() as session:
            result = await session.execute(
                update(Job)
                .where(
                    Job.id == job_id,
                    Job.status == expected_status.value,
                    Job.deleted_at.is_(None),
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount == 1

    async def claim(self, job_id: str) -> bool:
        """
        Atomically move a job from pending to processing.

        Returns:
            True if this caller now owns the job, False if it was not pending
            (typically because another worker claimed it first).
        """
        return await self._update(job_id, JobStatus.pending, status=JobStatus.processing.value)

    async def list_pending(self, limit: int) -> List[Job]:
        """Oldest pending jobs first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Job)
                .where(Job.status == JobStatus.pending.value, Job.deleted_at.is_(None))
                .order_by(Job.created_at.asc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def set_total_chunks(self, job_id: str, total_chunks: int) -> bool:
        return await self._update(
            job_id, JobStatus.processing,
            total_chunks=total_chunks,
            processed_chunks=0,
        )

    async def checkpoint(self, job_id: str, processed_chunks: int, actual_cost: float) -> bool:
        """Persist progress after a chunk succeeds."""
        return await self._update(
            job_id, JobStatus.processing,
            processed_chunks=processed_chunks,
            actual_cost=actual_cost,
        )

    async def mark_failed(
        self,
        job_id: str,
        error_code: str,
        error_message: str,
        actual_cost: Optional[float] = None,
        duration_ms: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        now = now or datetime.utcnow()
        values = dict(
            status=JobStatus.failed.value,
            error_code=error_code,
            error_message=error_message,
            completed_at=now,
            updated_at=now,
        )
        if actual_cost is not None:
            values['actual_cost'] = actual_cost
        if duration_ms is not None:
            values['duration_ms'] = duration_ms
        changed = await self._update(job_id, JobStatus.processing, **values)
        if not changed:
            logger.warning('Job %s was not processing; failure not recorded', job_id)
        return changed

    async def mark_completed(
        self,
        job_id: str,
        file_key: str,
        file_size: int,
        download_url: str,
        actual_cost: float,
        duration_ms: Optional[int] = None,
    ) -> bool:
        now = datetime.utcnow()
        changed = await self._update(
            job_id, JobStatus.processing,
            status=JobStatus.completed.value,
            file_key=file_key,
            file_size=file_size,
            download_url=download_url,
            actual_cost=actual_cost,
            duration_ms=duration_ms,
            completed_at=now,
            updated_at=now,
        )
        if not changed:
            logger.warning('Job %s was not processing; completion not recorded', job_id)
        return changed

    async def list_expired(self, now: datetime) -> List[Job]:
        """Non-deleted jobs whose expiry has passed, in any status."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Job)
                .where(
                    Job.deleted_at.is_(None),
                    Job.expires_at.is_not(None),
                    Job.expires_at < now,
                )
                .order_by(Job.expires_at.asc())
            )
            return list(result.scalars().all())

    async def retire(self, job_id: str, now: datetime) -> bool:
        """Soft-delete a job and clear its download URL."""
        async with self._session_factory() as session:
            result = await session.execute(
                update(Job)
                .where(Job.id == job_id, Job.deleted_at.is_(None))
                .values(deleted_at=now, download_url=None, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount == 1

    async def list_stale_processing(self, cutoff: datetime) -> List[Job]:
        """Processing jobs with no write since cutoff."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Job)
                .where(Job.status == JobStatus.processing.value, Job.updated_at < cutoff)
                .order_by(Job.updated_at.asc())
            )
            return list(result.scalars().all())

    async def fail_if_stale(self, job_id: str, cutoff: datetime, error_message: str, now: datetime) -> bool:
        """Fail a processing job only if it still has not been touched since cutoff."""
        async with self._session_factory() as session:
            result = await session.execute(
                update(Job)
                .where(
                    Job.id == job_id,
                    Job.status == JobStatus.processing.value,
                    Job.updated_at < cutoff,
                )
                .values(
                    status=JobStatus.failed.value,
                    error_code='stale_processing',
                    error_message=error_message,
                    completed_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount == 1
