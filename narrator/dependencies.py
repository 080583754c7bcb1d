"""
Service wiring and FastAPI dependencies.

build_services() is the one place where Settings are turned into concrete
collaborators; everything below it receives its configuration explicitly.
"""
import secrets
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncEngine

from narrator.config import Settings
from narrator.database import create_engine, create_session_factory
from narrator.services.content import ContentSource, DirectoryContentSource
from narrator.services.job_processor import JobProcessor
from narrator.services.job_store import JobStore
from narrator.services.providers import SpeechSynthesizer
from narrator.services.reaper import Reaper
from narrator.services.scheduler import Scheduler
from narrator.services.storage import LocalFileStorage, Storage


@dataclass
class Services:
    """Collaborators shared by the cron endpoints for the process lifetime."""
    settings: Settings
    engine: AsyncEngine
    store: JobStore
    synthesizer: SpeechSynthesizer
    storage: Storage
    content_source: ContentSource
    processor: JobProcessor
    scheduler: Scheduler
    reaper: Reaper


def build_services(
    settings: Settings,
    engine: Optional[AsyncEngine] = None,
    synthesizer: Optional[SpeechSynthesizer] = None,
    storage: Optional[Storage] = None,
    content_source: Optional[ContentSource] = None,
) -> Services:
    """Create the service graph; any collaborator can be swapped in (tests do)."""
    engine = engine or create_engine(settings.database_url)
    store = JobStore(create_session_factory(engine), settings.download_expiry_days)
    synthesizer = synthesizer or SpeechSynthesizer(settings)
    storage = storage or LocalFileStorage(settings.audio_dir)
    content_source = content_source or DirectoryContentSource(settings.content_dir)
    processor = JobProcessor(store, content_source, synthesizer, storage, settings)
    return Services(
        settings=settings,
        engine=engine,
        store=store,
        synthesizer=synthesizer,
        storage=storage,
        content_source=content_source,
        processor=processor,
        scheduler=Scheduler(store, processor),
        reaper=Reaper(store, storage),
    )


def get_services(request: Request) -> Services:
    """Services created during application startup."""
    return request.app.state.services


def verify_cron_auth(request: Request, services: Services = Depends(get_services)):
    """
    Require the cron secret as a Bearer token.

    With no secret configured (local development) every request is allowed.
    """
    cron_secret = services.settings.cron_secret
    if not cron_secret:
        return
    authorization = request.headers.get('authorization', '')
    if not secrets.compare_digest(authorization, f'Bearer {cron_secret}'):
        raise HTTPException(status_code=401, detail='Unauthorized')
