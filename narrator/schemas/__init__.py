"""
Pydantic schemas for API responses.
"""
from narrator.schemas.cron import ProcessDownloadsResponse, CleanupResponse
from narrator.schemas.voice import VoiceResponse, VoiceListResponse

__all__ = [
    'ProcessDownloadsResponse',
    'CleanupResponse',
    'VoiceResponse',
    'VoiceListResponse',
]
