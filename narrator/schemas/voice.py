"""
Pydantic schemas for Voice API operations.
"""
from typing import Optional, List
from pydantic import BaseModel

from narrator.models.job import Provider


class VoiceResponse(BaseModel):
    """Schema for voice response."""
    id: str
    display_name: str
    gender: str
    language: str
    description: str = ''


class VoiceListResponse(BaseModel):
    """Schema for a provider's voice catalog."""
    provider: Provider
    available: bool
    default: Optional[str]
    voices: List[VoiceResponse]
