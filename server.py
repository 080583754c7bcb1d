#!/usr/bin/env python3
"""
Narrator FastAPI Server

Turns long-form text into downloadable audio through pluggable speech
synthesis providers. Job processing and expiry cleanup are driven by an
external timer through the /cron endpoints.
"""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from narrator.config import APP_NAME, APP_VERSION, SERVER_HOST, SERVER_PORT, get_settings
from narrator.database import init_db, close_db
from narrator.dependencies import build_services
from narrator.models.job import Provider
from narrator.routers import health_router, voices_router, cron_router

logger = logging.getLogger('narrator.server')


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Startup:
        - Build services from settings
        - Initialize database and create tables

    Shutdown:
        - Close the vendor HTTP client
        - Close database connections
    """
    logger.info('Starting %s v%s...', APP_NAME, APP_VERSION)

    settings = get_settings()
    services = build_services(settings)

    logger.info('Initializing database...')
    await init_db(services.engine, settings)

    for provider in Provider:
        status = 'available' if services.synthesizer.is_provider_available(provider) else 'not configured'
        logger.info('Provider %s: %s', provider.value, status)

    if not settings.cron_secret:
        logger.warning('No cron secret configured; /cron endpoints are open')

    app.state.services = services
    logger.info('Server ready at http://%s:%s', SERVER_HOST, SERVER_PORT)

    yield

    logger.info('Shutting down...')
    await services.synthesizer.aclose()
    await close_db(services.engine)
    logger.info('Shutdown complete.')


def create_app() -> FastAPI:
    """Create the FastAPI application with all routers registered."""
    app = FastAPI(
        title=APP_NAME,
        description='Long-form text to downloadable audio.',
        version=APP_VERSION,
        lifespan=lifespan,
    )
    app.include_router(health_router)
    app.include_router(voices_router)
    app.include_router(cron_router)
    return app


app = create_app()


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    uvicorn.run(
        app,
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=False,
        log_level='info',
    )
