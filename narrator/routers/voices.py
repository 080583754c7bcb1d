"""
Voice catalog endpoints.
"""
from fastapi import APIRouter, Depends, HTTPException

from narrator.dependencies import Services, get_services
from narrator.models.job import Provider
from narrator.schemas.voice import VoiceResponse, VoiceListResponse
from narrator.services.voices import DEFAULT_VOICES, get_voice, get_voices


router = APIRouter(prefix='/voices', tags=['voices'])


def _to_response(voice) -> VoiceResponse:
    return VoiceResponse(
        id=voice.id,
        display_name=voice.display_name,
        gender=voice.gender,
        language=voice.language,
        description=voice.description,
    )


@router.get('/{provider}', response_model=VoiceListResponse)
async def list_voices(
    provider: Provider,
    services: Services = Depends(get_services),
) -> VoiceListResponse:
    """
    List the voices of a provider.

    Browser-native voices are enumerated by the client, so that catalog is
    empty and has no default.
    """
    return VoiceListResponse(
        provider=provider,
        available=services.synthesizer.is_provider_available(provider),
        default=DEFAULT_VOICES[provider],
        voices=[_to_response(v) for v in get_voices(provider)],
    )


@router.get('/{provider}/{voice_id}', response_model=VoiceResponse)
async def get_provider_voice(provider: Provider, voice_id: str) -> VoiceResponse:
    """
    Get details for a specific voice.

    Raises:
        404: Voice not found
    """
    voice = get_voice(provider, voice_id)
    if not voice:
        raise HTTPException(status_code=404, detail=f'Voice not found: {voice_id}')
    return _to_response(voice)
