"""
Job orchestrator: drives one job from claim to a terminal state.

A run claims the job, chunks its source text, synthesizes the chunks one at
a time with a checkpoint after each, then assembles and uploads the audio.
The first failing chunk ends the run. Cost already incurred is kept on the
job whatever the outcome.
"""
import asyncio
import enum
import logging
import time
from contextlib import aclosing
from dataclasses import dataclass, replace
from typing import AsyncIterator, List, Optional, Tuple, Union

from narrator.config import Settings
from narrator.errors import (
    ContentNotFoundError,
    EmptyContentError,
    InvalidStateError,
    JobNotFoundError,
    NarratorError,
    ProviderError,
    StorageError,
    UploadError,
)
from narrator.models.job import AudioFormat, Job, JobStatus, Provider
from narrator.services.assembler import assemble, build_download_url, build_file_key, content_type_for
from narrator.services.chunker import TextChunk, billed_lengths, chunk_text
from narrator.services.content import ContentSource
from narrator.services.job_store import JobStore
from narrator.services.providers import SpeechSynthesizer
from narrator.services.storage import Storage

logger = logging.getLogger(__name__)


class JobOutcome(str, enum.Enum):
    """Result of one orchestrator run."""
    completed = 'completed'
    failed = 'failed'
    already_claimed = 'already_claimed'


@dataclass(frozen=True)
class ChunkSuccess:
    index: int
    audio: bytes
    cost: float


@dataclass(frozen=True)
class ChunkFailure:
    index: int
    error: ProviderError


ChunkOutcome = Union[ChunkSuccess, ChunkFailure]


@dataclass(frozen=True)
class RunState:
    """
    Accumulated result of a run, built by folding chunk outcomes.

    Attributes:
        total_chunks: Chunks in the job
        audio: Synthesized audio in chunk order
        actual_cost: Cost of every successful chunk so far
        failure: First failed chunk, if any
    """
    total_chunks: int
    audio: Tuple[bytes, ...] = ()
    actual_cost: float = 0.0
    failure: Optional[ChunkFailure] = None

    @property
    def processed_chunks(self) -> int:
        return len(self.audio)

    @property
    def succeeded(self) -> bool:
        return self.failure is None and self.processed_chunks == self.total_chunks

    def apply(self, outcome: ChunkOutcome) -> 'RunState':
        """Fold one chunk outcome into the state."""
        if self.failure is not None:
            raise ValueError('run already failed')
        if outcome.index != self.processed_chunks:
            raise ValueError(f'chunk {outcome.index} out of order, expected {self.processed_chunks}')
        if isinstance(outcome, ChunkFailure):
            return replace(self, failure=outcome)
        return replace(
            self,
            audio=self.audio + (outcome.audio,),
            actual_cost=self.actual_cost + outcome.cost,
        )


class JobProcessor:
    """
    Processes synthesis jobs, one at a time per instance.

    Chunks of a job are synthesized strictly in order with a fixed pause
    between vendor calls. Nothing is retried within a run.
    """

    def __init__(
        self,
        store: JobStore,
        content_source: ContentSource,
        synthesizer: SpeechSynthesizer,
        storage: Storage,
        settings: Settings,
    ):
        self.store = store
        self.content_source = content_source
        self.synthesizer = synthesizer
        self.storage = storage
        self.settings = settings

    async def run(self, job_id: str) -> JobOutcome:
        """
        Run a job to a terminal state.

        Returns:
            JobOutcome.completed or JobOutcome.failed once the job is terminal,
            JobOutcome.already_claimed if another worker owns it.

        Raises:
            JobNotFoundError: no such job
            InvalidStateError: job is already completed or failed, or was
                retired by the reaper
        """
        job = await self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.status not in (JobStatus.pending.value, JobStatus.processing.value):
            raise InvalidStateError(job_id, job.status)
        if job.deleted_at is not None:
            raise InvalidStateError(job_id, 'deleted')

        if not await self.store.claim(job_id):
            logger.info('Job %s already claimed by another worker or retired', job_id)
            return JobOutcome.already_claimed

        logger.info('Starting job %s (provider=%s, format=%s)', job_id, job.provider, job.format)
        start_time = time.monotonic()
        try:
            return await self._process_job(job, start_time)
        except Exception as e:
            logger.exception('Job %s failed unexpectedly', job_id)
            await self.store.mark_failed(
                job_id,
                error_code='internal_error',
                error_message=str(e) or e.__class__.__name__,
                duration_ms=self._elapsed_ms(start_time),
            )
            return JobOutcome.failed

    async def _process_job(self, job: Job, start_time: float) -> JobOutcome:
        provider = Provider(job.provider)
        audio_format = AudioFormat(job.format)

        try:
            text = await self.content_source.get_text(job.source_ref)
        except ContentNotFoundError as e:
            return await self._fail(job, e, start_time)

        if not text.strip():
            return await self._fail(job, EmptyContentError('Book content is empty'), start_time)

        chunks = chunk_text(text, self.settings.max_chunk_chars)
        if not await self.store.set_total_chunks(job.id, len(chunks)):
            logger.warning('Job %s is no longer processing; abandoning run', job.id)
            return JobOutcome.failed
        logger.info('Job %s: %d chunks, %d characters', job.id, len(chunks), len(text))

        state = RunState(total_chunks=len(chunks))
        billed = billed_lengths(text, chunks)
        async with aclosing(self._synthesize_chunks(job, provider, audio_format, chunks, billed)) as outcomes:
            async for outcome in outcomes:
                state = state.apply(outcome)
                if state.failure is not None:
                    break
                if not await self.store.checkpoint(job.id, state.processed_chunks, state.actual_cost):
                    logger.warning('Job %s is no longer processing; abandoning run', job.id)
                    return JobOutcome.failed
                logger.debug(
                    'Job %s: chunk %d/%d done (%d%%)',
                    job.id, state.processed_chunks, len(chunks),
                    round(state.processed_chunks / len(chunks) * 100),
                )

        if state.failure is not None:
            failure = state.failure
            return await self._fail(
                job,
                failure.error,
                start_time,
                message=f'Failed to process chunk {failure.index + 1}/{len(chunks)}: {failure.error}',
                actual_cost=state.actual_cost,
            )

        return await self._finalize(job, audio_format, state, start_time)

    async def _synthesize_chunks(
        self,
        job: Job,
        provider: Provider,
        audio_format: AudioFormat,
        chunks: List[TextChunk],
        billed: List[int],
    ) -> AsyncIterator[ChunkOutcome]:
        """Yield one outcome per chunk, stopping after the first failure."""
        for chunk in chunks:
            try:
                result = await self.synthesizer.synthesize(
                    provider, chunk.text, job.voice, audio_format,
                    billed_characters=billed[chunk.index],
                )
            except ProviderError as e:
                e.chunk_index = chunk.index
                logger.error('Job %s: chunk %d/%d failed: %s', job.id, chunk.index + 1, len(chunks), e)
                yield ChunkFailure(index=chunk.index, error=e)
                return

            yield ChunkSuccess(index=chunk.index, audio=result.audio, cost=result.cost)

            # Pace vendor calls
            if chunk.index < len(chunks) - 1 and self.settings.chunk_delay_seconds > 0:
                await asyncio.sleep(self.settings.chunk_delay_seconds)

    async def _finalize(self, job: Job, audio_format: AudioFormat, state: RunState, start_time: float) -> JobOutcome:
        """Assemble and upload the audio, then mark the job completed."""
        audio = assemble(state.audio)
        file_size = len(audio)
        file_key = build_file_key(job.user_id, job.id, audio_format)
        logger.info('Job %s: assembled %d chunks into %d bytes', job.id, state.processed_chunks, file_size)

        try:
            await self.storage.put(file_key, audio, content_type_for(audio_format))
        except UploadError as e:
            # Audio was generated and billed but is lost
            return await self._fail(
                job, e, start_time,
                message='Failed to upload audio file',
                actual_cost=state.actual_cost,
            )

        completed = await self.store.mark_completed(
            job.id,
            file_key=file_key,
            file_size=file_size,
            download_url=build_download_url(self.settings.storage_public_url, file_key),
            actual_cost=state.actual_cost,
            duration_ms=self._elapsed_ms(start_time),
        )
        if not completed:
            await self._discard_upload(job, file_key)
            return JobOutcome.failed

        logger.info('Job %s completed: %d bytes, cost $%.6f', job.id, file_size, state.actual_cost)
        return JobOutcome.completed

    async def _discard_upload(self, job: Job, file_key: str):
        try:
            await self.storage.delete(file_key)
        except StorageError as e:
            logger.error('Job %s: could not remove orphaned upload %s: %s', job.id, file_key, e)

    async def _fail(
        self,
        job: Job,
        error: NarratorError,
        start_time: float,
        message: Optional[str] = None,
        actual_cost: Optional[float] = None,
    ) -> JobOutcome:
        message = message or error.message
        logger.error('Job %s failed (%s): %s', job.id, error.code, message)
        await self.store.mark_failed(
            job.id,
            error_code=error.code,
            error_message=message,
            actual_cost=actual_cost,
            duration_ms=self._elapsed_ms(start_time),
        )
        return JobOutcome.failed

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int((time.monotonic() - start_time) * 1000)
