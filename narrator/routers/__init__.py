"""
FastAPI routers.
"""
from narrator.routers.health import router as health_router
from narrator.routers.voices import router as voices_router
from narrator.routers.cron import router as cron_router

__all__ = ['health_router', 'voices_router', 'cron_router']
