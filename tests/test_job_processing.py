"""
Job Processing Tests

Tests for the job orchestrator: claiming, chunk synthesis, partial failure,
assembly and upload.
"""
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import update

from narrator.errors import InvalidStateError, JobNotFoundError, ProviderError
from narrator.models.job import AudioFormat, Job, JobStatus, Provider
from narrator.services.job_processor import (
    ChunkFailure,
    ChunkSuccess,
    JobOutcome,
    RunState,
)
from narrator.services.providers import calculate_cost
from narrator.services.reaper import Reaper


FIVE_THOUSAND = 'abcd ' * 1000     # 3 chunks at 2000 characters
TEN_THOUSAND = 'abcd ' * 2000      # 5 chunks at 2000 characters


@pytest.fixture
def make_job(job_store, write_content):
    """Create a pending job whose source text is text."""
    async def _make(text, source_ref='book-1', provider=Provider.openai, **kwargs):
        write_content(source_ref, text)
        return await job_store.create_job('user-1', source_ref, provider, **kwargs)
    return _make


async def set_status(session_factory, job_id, status: JobStatus):
    async with session_factory() as session:
        await session.execute(update(Job).where(Job.id == job_id).values(status=status.value))
        await session.commit()


def expected_cost(billed, provider=Provider.openai):
    return sum(calculate_cost(provider, n) for n in billed)


class TestSuccessfulRun:
    """Tests for a job that runs to completion."""

    @pytest.mark.asyncio
    async def test_five_thousand_characters(self, processor, job_store, storage, mock_synthesizer, make_job):
        job = await make_job(FIVE_THOUSAND)

        outcome = await processor.run(job.id)

        saved = await job_store.get_job(job.id)
        assert outcome is JobOutcome.completed
        assert saved.status == JobStatus.completed.value
        assert saved.total_chunks == 3
        assert saved.processed_chunks == 3
        assert len(mock_synthesizer.texts) == 3
        assert saved.actual_cost == pytest.approx(expected_cost(mock_synthesizer.billed))
        assert saved.actual_cost == pytest.approx(0.075, abs=1e-9)
        assert sum(mock_synthesizer.billed) == 5000
        assert saved.file_size == len(storage.objects[saved.file_key])
        assert saved.completed_at is not None
        assert saved.duration_ms is not None
        assert saved.error_message is None

    @pytest.mark.asyncio
    async def test_audio_is_stored_in_chunk_order(
        self, processor, job_store, storage, mock_synthesizer, make_job, audio_for,
    ):
        job = await make_job(TEN_THOUSAND)

        await processor.run(job.id)

        saved = await job_store.get_job(job.id)
        assert storage.objects[saved.file_key] == b''.join(audio_for(t) for t in mock_synthesizer.texts)

    @pytest.mark.asyncio
    async def test_file_key_and_download_url(self, processor, job_store, storage, make_job):
        job = await make_job('A short book.', audio_format=AudioFormat.opus)

        await processor.run(job.id)

        saved = await job_store.get_job(job.id)
        assert saved.file_key == f'users/user-1/audio/downloads/{job.id}.opus'
        assert saved.download_url == f'https://files.test/{saved.file_key}'
        assert storage.content_types[saved.file_key] == 'audio/opus'

    @pytest.mark.asyncio
    async def test_voice_and_format_are_passed_through(self, processor, mock_synthesizer, make_job):
        job = await make_job('A short book.', voice='nova', audio_format=AudioFormat.flac)

        await processor.run(job.id)

        call = mock_synthesizer.synthesize.call_args
        assert call.args == (Provider.openai, 'A short book.', 'nova', AudioFormat.flac)
        assert call.kwargs == {'billed_characters': 13}

    @pytest.mark.asyncio
    async def test_elevenlabs_pricing(self, processor, job_store, mock_synthesizer, make_job):
        job = await make_job(FIVE_THOUSAND, provider=Provider.elevenlabs)

        await processor.run(job.id)

        saved = await job_store.get_job(job.id)
        assert saved.actual_cost == pytest.approx(expected_cost(mock_synthesizer.billed, Provider.elevenlabs))
        assert saved.actual_cost == pytest.approx(calculate_cost(Provider.elevenlabs, 5000), abs=1e-9)

    @pytest.mark.asyncio
    async def test_cost_covers_whitespace_between_chunks(
        self, processor, job_store, settings, mock_synthesizer, make_job,
    ):
        text = '\n  First part here.\n\n\n   Second part follows.  \t Third bit.   \n'
        settings.max_chunk_chars = 20
        job = await make_job(text)

        await processor.run(job.id)

        saved = await job_store.get_job(job.id)
        assert len(mock_synthesizer.texts) > 1
        assert sum(mock_synthesizer.billed) == len(text)
        assert saved.actual_cost == pytest.approx(calculate_cost(Provider.openai, len(text)), abs=1e-9)


class TestChunkFailure:
    """Tests for a provider failing part-way through a job."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize('fail_at', range(5))
    async def test_failure_keeps_partial_progress(
        self, processor, job_store, storage, mock_synthesizer, make_job, fail_at,
    ):
        job = await make_job(TEN_THOUSAND)
        mock_synthesizer.fail_at = fail_at

        outcome = await processor.run(job.id)

        saved = await job_store.get_job(job.id)
        assert outcome is JobOutcome.failed
        assert saved.status == JobStatus.failed.value
        assert saved.total_chunks == 5
        assert saved.processed_chunks == fail_at
        assert saved.actual_cost == pytest.approx(expected_cost(mock_synthesizer.billed[:fail_at]))
        assert saved.actual_cost == pytest.approx(calculate_cost(Provider.openai, 2000 * fail_at), abs=1e-9)
        assert saved.error_code == 'provider_error'
        assert saved.error_message.startswith(f'Failed to process chunk {fail_at + 1}/5: ')
        assert 'upstream unavailable' in saved.error_message
        assert saved.file_key is None
        assert saved.download_url is None
        assert storage.put_calls == 0

    @pytest.mark.asyncio
    async def test_no_chunks_after_failure(self, processor, mock_synthesizer, make_job):
        job = await make_job(TEN_THOUSAND)
        mock_synthesizer.fail_at = 1

        await processor.run(job.id)

        assert mock_synthesizer.synthesize.await_count == 2


class TestFailurePaths:
    """Tests for content, upload and unexpected failures."""

    @pytest.mark.asyncio
    async def test_missing_content(self, processor, job_store, mock_synthesizer):
        job = await job_store.create_job('user-1', 'no-such-book', Provider.openai)

        outcome = await processor.run(job.id)

        saved = await job_store.get_job(job.id)
        assert outcome is JobOutcome.failed
        assert saved.error_code == 'content_not_found'
        mock_synthesizer.synthesize.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_content(self, processor, job_store, mock_synthesizer, make_job):
        job = await make_job('  \n\t  ')

        outcome = await processor.run(job.id)

        saved = await job_store.get_job(job.id)
        assert outcome is JobOutcome.failed
        assert saved.error_code == 'empty_content'
        assert saved.error_message == 'Book content is empty'
        assert saved.actual_cost == 0.0
        mock_synthesizer.synthesize.assert_not_called()

    @pytest.mark.asyncio
    async def test_upload_failure_keeps_cost(self, processor, job_store, storage, mock_synthesizer, make_job):
        job = await make_job(FIVE_THOUSAND)
        storage.fail_put = True

        outcome = await processor.run(job.id)

        saved = await job_store.get_job(job.id)
        assert outcome is JobOutcome.failed
        assert saved.error_code == 'upload_error'
        assert saved.error_message == 'Failed to upload audio file'
        assert saved.processed_chunks == 3
        assert saved.actual_cost == pytest.approx(expected_cost(mock_synthesizer.billed))
        assert saved.file_key is None
        assert saved.download_url is None

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_job(self, processor, job_store, mock_synthesizer, make_job):
        job = await make_job('A short book.')
        mock_synthesizer.synthesize.side_effect = RuntimeError('decoder exploded')

        outcome = await processor.run(job.id)

        saved = await job_store.get_job(job.id)
        assert outcome is JobOutcome.failed
        assert saved.status == JobStatus.failed.value
        assert saved.error_code == 'internal_error'
        assert saved.error_message == 'decoder exploded'


class TestClaiming:
    """Tests for ownership and state checks before a run."""

    @pytest.mark.asyncio
    async def test_missing_job_raises(self, processor):
        with pytest.raises(JobNotFoundError):
            await processor.run('does-not-exist')

    @pytest.mark.asyncio
    @pytest.mark.parametrize('status', [JobStatus.completed, JobStatus.failed])
    async def test_terminal_job_raises(self, processor, session_factory, mock_synthesizer, make_job, status):
        job = await make_job('A short book.')
        await set_status(session_factory, job.id, status)

        with pytest.raises(InvalidStateError):
            await processor.run(job.id)

        mock_synthesizer.synthesize.assert_not_called()

    @pytest.mark.asyncio
    async def test_job_claimed_elsewhere(self, processor, job_store, mock_synthesizer, make_job):
        job = await make_job('A short book.')
        await job_store.claim(job.id)

        outcome = await processor.run(job.id)

        assert outcome is JobOutcome.already_claimed
        assert (await job_store.get_job(job.id)).status == JobStatus.processing.value
        mock_synthesizer.synthesize.assert_not_called()

    @pytest.mark.asyncio
    async def test_run_abandoned_when_job_failed_externally(
        self, processor, job_store, session_factory, mock_synthesizer, make_job,
    ):
        job = await make_job(FIVE_THOUSAND)
        original = mock_synthesizer.synthesize.side_effect

        async def synthesize_then_fail_job(*args, **kwargs):
            result = await original(*args, **kwargs)
            await set_status(session_factory, job.id, JobStatus.failed)
            return result

        mock_synthesizer.synthesize.side_effect = synthesize_then_fail_job

        outcome = await processor.run(job.id)

        assert outcome is JobOutcome.failed
        assert mock_synthesizer.synthesize.await_count == 1
        assert (await job_store.get_job(job.id)).processed_chunks == 0

    @pytest.mark.asyncio
    async def test_upload_discarded_when_completion_is_lost(
        self, processor, job_store, session_factory, storage, make_job,
    ):
        job = await make_job('A short book.')
        original_put = storage.put

        async def put_then_fail_job(key, data, content_type):
            await original_put(key, data, content_type)
            await set_status(session_factory, job.id, JobStatus.failed)

        storage.put = put_then_fail_job

        outcome = await processor.run(job.id)

        saved = await job_store.get_job(job.id)
        assert outcome is JobOutcome.failed
        assert saved.status == JobStatus.failed.value
        assert saved.download_url is None
        assert storage.objects == {}

    @pytest.mark.asyncio
    async def test_no_synthesis_when_job_fails_before_chunking(
        self, processor, job_store, session_factory, content_source, mock_synthesizer, make_job,
    ):
        job = await make_job(FIVE_THOUSAND)
        original_get_text = content_source.get_text

        async def get_text_then_fail_job(source_ref):
            text = await original_get_text(source_ref)
            await set_status(session_factory, job.id, JobStatus.failed)
            return text

        content_source.get_text = get_text_then_fail_job

        outcome = await processor.run(job.id)

        assert outcome is JobOutcome.failed
        assert (await job_store.get_job(job.id)).total_chunks == 0
        mock_synthesizer.synthesize.assert_not_called()


class TestRetiredJobs:
    """Tests for jobs the reaper retired before or during a run."""

    @pytest.mark.asyncio
    async def test_retired_pending_job_is_not_processed(
        self, processor, job_store, storage, mock_synthesizer, make_job,
    ):
        now = datetime.utcnow()
        job = await make_job('A short book.', expires_at=now - timedelta(days=1))
        await Reaper(job_store, storage).sweep(now)

        with pytest.raises(InvalidStateError):
            await processor.run(job.id)

        saved = await job_store.get_job(job.id)
        assert saved.status == JobStatus.pending.value
        assert saved.download_url is None
        assert storage.put_calls == 0
        mock_synthesizer.synthesize.assert_not_called()

    @pytest.mark.asyncio
    async def test_job_retired_between_listing_and_claim(self, processor, job_store, mock_synthesizer, make_job):
        job = await make_job('A short book.')
        listed = await job_store.get_job(job.id)
        await job_store.retire(job.id, datetime.utcnow())

        with patch.object(job_store, 'get_job', new=AsyncMock(return_value=listed)):
            outcome = await processor.run(job.id)

        assert outcome is JobOutcome.already_claimed
        assert (await job_store.get_job(job.id)).status == JobStatus.pending.value
        mock_synthesizer.synthesize.assert_not_called()

    @pytest.mark.asyncio
    async def test_job_retired_mid_run_is_not_completed(
        self, processor, job_store, storage, mock_synthesizer, make_job,
    ):
        job = await make_job(FIVE_THOUSAND)
        original = mock_synthesizer.synthesize.side_effect

        async def synthesize_then_retire(*args, **kwargs):
            result = await original(*args, **kwargs)
            await job_store.retire(job.id, datetime.utcnow())
            return result

        mock_synthesizer.synthesize.side_effect = synthesize_then_retire

        outcome = await processor.run(job.id)

        saved = await job_store.get_job(job.id)
        assert outcome is JobOutcome.failed
        assert saved.status != JobStatus.completed.value
        assert saved.download_url is None
        assert storage.put_calls == 0


class TestPacing:
    """Tests for the pause between vendor calls."""

    @pytest.mark.asyncio
    async def test_sleeps_between_chunks_only(self, processor, settings, mock_synthesizer, make_job):
        job = await make_job(FIVE_THOUSAND)
        settings.chunk_delay_seconds = 0.5
        calls_before_sleep = []

        async def record_sleep(delay):
            calls_before_sleep.append((delay, len(mock_synthesizer.texts)))

        with patch('narrator.services.job_processor.asyncio.sleep', new=AsyncMock(side_effect=record_sleep)):
            outcome = await processor.run(job.id)

        assert outcome is JobOutcome.completed
        assert calls_before_sleep == [(0.5, 1), (0.5, 2)]

    @pytest.mark.asyncio
    async def test_no_sleep_after_failure(self, processor, settings, mock_synthesizer, make_job):
        job = await make_job(FIVE_THOUSAND)
        settings.chunk_delay_seconds = 0.5
        mock_synthesizer.fail_at = 0

        with patch('narrator.services.job_processor.asyncio.sleep', new=AsyncMock()) as sleep:
            await processor.run(job.id)

        sleep.assert_not_awaited()


class TestRunState:
    """Tests for folding chunk outcomes."""

    def test_successes_accumulate(self):
        state = RunState(total_chunks=2)
        state = state.apply(ChunkSuccess(index=0, audio=b'a', cost=0.1))
        state = state.apply(ChunkSuccess(index=1, audio=b'b', cost=0.2))

        assert state.processed_chunks == 2
        assert state.audio == (b'a', b'b')
        assert state.actual_cost == pytest.approx(0.3)
        assert state.succeeded

    def test_failure_stops_progress(self):
        error = ProviderError('openai', 'boom')
        state = RunState(total_chunks=3).apply(ChunkSuccess(index=0, audio=b'a', cost=0.1))
        state = state.apply(ChunkFailure(index=1, error=error))

        assert state.processed_chunks == 1
        assert state.actual_cost == pytest.approx(0.1)
        assert state.failure.error is error
        assert not state.succeeded

    def test_apply_after_failure_raises(self):
        state = RunState(total_chunks=2).apply(ChunkFailure(index=0, error=ProviderError('openai', 'boom')))

        with pytest.raises(ValueError):
            state.apply(ChunkSuccess(index=0, audio=b'a', cost=0.1))

    def test_out_of_order_raises(self):
        with pytest.raises(ValueError):
            RunState(total_chunks=2).apply(ChunkSuccess(index=1, audio=b'a', cost=0.1))

    def test_state_is_immutable(self):
        state = RunState(total_chunks=1)
        state.apply(ChunkSuccess(index=0, audio=b'a', cost=0.1))

        assert state.processed_chunks == 0
