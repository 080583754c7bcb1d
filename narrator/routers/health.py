"""
Health check endpoint.
"""
from typing import Dict
from pydantic import BaseModel
from fastapi import APIRouter, Depends

from narrator.config import APP_VERSION
from narrator.dependencies import Services, get_services
from narrator.models.job import Provider


router = APIRouter(tags=['health'])


class HealthResponse(BaseModel):
    """Health check response schema."""
    status: str
    providers: Dict[str, bool]
    version: str


@router.get('/health', response_model=HealthResponse)
async def health_check(services: Services = Depends(get_services)) -> HealthResponse:
    """
    Check server health status.

    Returns which providers are configured and the server version.
    Fast response - no database queries.
    """
    return HealthResponse(
        status='ok',
        providers={p.value: services.synthesizer.is_provider_available(p) for p in Provider},
        version=APP_VERSION,
    )
