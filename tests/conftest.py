"""
Pytest fixtures for testing.
"""
from pathlib import Path
from typing import AsyncGenerator, Dict, Set
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from narrator.config import Settings
from narrator.dependencies import build_services
from narrator.errors import ProviderError, StorageError, UploadError
from narrator.models import Base
from narrator.models.job import Provider
from narrator.services.content import DirectoryContentSource
from narrator.services.job_processor import JobProcessor
from narrator.services.job_store import JobStore
from narrator.services.providers import SpeechSynthesizer, SynthesisResult, calculate_cost


class InMemoryStorage:
    """Storage double that keeps objects in a dict."""

    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.content_types: Dict[str, str] = {}
        self.put_calls = 0
        self.delete_calls = 0
        self.fail_put = False
        self.fail_delete_keys: Set[str] = set()

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        self.put_calls += 1
        if self.fail_put:
            raise UploadError(f'Failed to store {key}: bucket unavailable')
        self.objects[key] = data
        self.content_types[key] = content_type

    async def delete(self, key: str) -> None:
        self.delete_calls += 1
        if key in self.fail_delete_keys:
            raise StorageError(f'Failed to delete {key}: access denied')
        self.objects.pop(key, None)


def fake_audio(text: str) -> bytes:
    """Deterministic stand-in for synthesized audio."""
    return b'AUDIO[' + text[:8].encode() + b']'


@pytest.fixture
def audio_for():
    """The audio bytes mock_synthesizer returns for a chunk."""
    return fake_audio


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at temporary directories, with no pacing delay."""
    return Settings(
        _env_file=None,
        database_url=f'sqlite+aiosqlite:///{tmp_path / "test.db"}',
        audio_dir=tmp_path / 'audio',
        content_dir=tmp_path / 'content',
        storage_public_url='https://files.test',
        openai_api_key='test-openai-key',
        elevenlabs_api_key='test-elevenlabs-key',
        max_chunk_chars=2000,
        chunk_delay_seconds=0,
        cron_secret=None,
    )


@pytest_asyncio.fixture(scope='function')
async def test_engine(settings):
    """Create a test database engine."""
    engine = create_async_engine(settings.database_url, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture(scope='function')
async def test_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def job_store(session_factory) -> JobStore:
    return JobStore(session_factory)


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def content_dir(settings) -> Path:
    settings.content_dir.mkdir(parents=True, exist_ok=True)
    return settings.content_dir


@pytest.fixture
def write_content(content_dir):
    """Write source text for a reference."""
    def _write(source_ref: str, text: str):
        (content_dir / f'{source_ref}.txt').write_text(text, encoding='utf-8')
    return _write


@pytest.fixture
def content_source(content_dir) -> DirectoryContentSource:
    return DirectoryContentSource(content_dir)


@pytest.fixture
def mock_synthesizer():
    """
    Synthesizer double pricing chunks like the real one.

    Set ``mock_synthesizer.fail_at`` to a chunk call number (0-based) to make
    that call raise a ProviderError. ``texts`` and ``billed`` record the
    chunk text and billed character count of every call.
    """
    synthesizer = MagicMock(spec=SpeechSynthesizer)
    synthesizer.fail_at = None
    synthesizer.texts = []
    synthesizer.billed = []

    async def synthesize(provider, text, voice=None, audio_format=None, billed_characters=None):
        call_number = len(synthesizer.texts)
        character_count = len(text) if billed_characters is None else billed_characters
        synthesizer.texts.append(text)
        synthesizer.billed.append(character_count)
        if synthesizer.fail_at == call_number:
            raise ProviderError(Provider(provider).value, 'API error: 500 - upstream unavailable')
        return SynthesisResult(
            audio=fake_audio(text),
            cost=calculate_cost(provider, character_count),
            character_count=character_count,
            duration_ms=1,
        )

    synthesizer.synthesize = AsyncMock(side_effect=synthesize)
    synthesizer.is_provider_available.return_value = True
    synthesizer.aclose = AsyncMock()
    return synthesizer


@pytest.fixture
def processor(job_store, content_source, mock_synthesizer, storage, settings) -> JobProcessor:
    return JobProcessor(job_store, content_source, mock_synthesizer, storage, settings)


@pytest.fixture
def services(settings, test_engine, mock_synthesizer, storage, content_source):
    return build_services(
        settings,
        engine=test_engine,
        synthesizer=mock_synthesizer,
        storage=storage,
        content_source=content_source,
    )


@pytest_asyncio.fixture
async def client(services):
    """Create a test client with test services installed."""
    from server import create_app

    app = create_app()
    app.state.services = services

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as client:
        yield client
