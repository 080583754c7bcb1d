"""
Speech synthesis providers: pricing, voice handling and vendor calls.

Each provider turns one chunk of text into audio bytes. SpeechSynthesizer
dispatches to the right back-end, normalizes the voice and prices the call.
Pricing is linear in the number of characters sent, so the cost of a job is
the same whether it is computed per chunk or once over the whole text.
"""
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

import httpx

from narrator.config import Settings
from narrator.errors import ProviderError
from narrator.models.job import AudioFormat, Provider
from narrator.services.assembler import content_type_for
from narrator.services.voices import elevenlabs_voice_id, normalize_voice

logger = logging.getLogger(__name__)

# USD per character
PRICE_PER_CHARACTER: Dict[Provider, float] = {
    Provider.web_speech: 0.0,
    Provider.openai: 15 / 1_000_000,
    Provider.elevenlabs: 0.30 / 1_000,
}

# tts-1-hd is billed at twice the standard rate
OPENAI_HD_PRICE_PER_CHARACTER = 30 / 1_000_000

assert set(PRICE_PER_CHARACTER) == set(Provider), 'price missing for a provider'


def calculate_cost(provider: Provider, character_count: int, model: Optional[str] = None) -> float:
    """
    Calculate synthesis cost for a number of characters.

    Args:
        provider: Synthesis back-end
        character_count: Characters sent to the provider
        model: OpenAI model name (tts-1 or tts-1-hd)

    Returns:
        Cost in USD
    """
    if character_count <= 0:
        return 0.0
    provider = Provider(provider)
    if provider is Provider.openai and model == 'tts-1-hd':
        return character_count * OPENAI_HD_PRICE_PER_CHARACTER
    return character_count * PRICE_PER_CHARACTER[provider]


def estimate_cost(text: str, provider: Provider, model: Optional[str] = None) -> float:
    """Estimate the cost of synthesizing text before processing it."""
    return calculate_cost(provider, len(text.strip()), model)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass
class SynthesisResult:
    """Audio and billing for one synthesis call."""
    audio: bytes
    cost: float
    character_count: int
    duration_ms: int


class SynthesisProvider(ABC):
    """One speech synthesis back-end."""

    provider: Provider

    def __init__(self, settings: Settings, client: httpx.AsyncClient):
        self.settings = settings
        self.client = client

    @property
    @abstractmethod
    def is_available(self) -> bool:
        """Whether the back-end is configured for server-side use."""

    @abstractmethod
    async def generate(self, text: str, voice: Optional[str], audio_format: AudioFormat) -> bytes:
        """Synthesize text and return the encoded audio. Raises ProviderError."""

    @property
    def model(self) -> Optional[str]:
        return None

    async def _post_for_audio(self, url: str, **kwargs) -> bytes:
        """POST to a vendor endpoint and return the body, mapping failures to ProviderError."""
        code = self.provider.value
        try:
            response = await self.client.post(url, **kwargs)
        except httpx.HTTPError as e:
            raise ProviderError(code, f'Request to {url} failed: {e}') from e

        if response.is_error:
            raise ProviderError(code, f'API error: {response.status_code} - {response.text[:500]}')

        if not response.content:
            raise ProviderError(code, 'API returned no audio')
        return response.content


class WebSpeechProvider(SynthesisProvider):
    """Browser-native speech; free, but it only runs on the client."""

    provider = Provider.web_speech

    @property
    def is_available(self) -> bool:
        return True

    async def generate(self, text: str, voice: Optional[str], audio_format: AudioFormat) -> bytes:
        raise ProviderError(self.provider.value, 'Web Speech API is client-side only')


class OpenAIProvider(SynthesisProvider):
    """OpenAI text-to-speech API."""

    provider = Provider.openai

    @property
    def is_available(self) -> bool:
        return bool(self.settings.openai_api_key)

    @property
    def model(self) -> Optional[str]:
        return self.settings.openai_model

    async def generate(self, text: str, voice: Optional[str], audio_format: AudioFormat) -> bytes:
        if not self.is_available:
            raise ProviderError(self.provider.value, 'OpenAI API key is not configured')

        return await self._post_for_audio(
            f'{self.settings.openai_base_url}/audio/speech',
            headers={'Authorization': f'Bearer {self.settings.openai_api_key}'},
            json={
                'model': self.settings.openai_model,
                'input': text,
                'voice': voice,
                'response_format': AudioFormat(audio_format).value,
                'speed': _clamp(self.settings.openai_speed, 0.25, 4.0),
            },
        )


class ElevenLabsProvider(SynthesisProvider):
    """ElevenLabs text-to-speech API."""

    provider = Provider.elevenlabs

    @property
    def is_available(self) -> bool:
        return bool(self.settings.elevenlabs_api_key)

    async def generate(self, text: str, voice: Optional[str], audio_format: AudioFormat) -> bytes:
        if not self.is_available:
            raise ProviderError(self.provider.value, 'ElevenLabs API key is not configured')

        return await self._post_for_audio(
            f'{self.settings.elevenlabs_base_url}/text-to-speech/{elevenlabs_voice_id(voice)}',
            headers={
                'xi-api-key': self.settings.elevenlabs_api_key,
                'Accept': content_type_for(audio_format),
            },
            json={
                'text': text,
                'model_id': self.settings.elevenlabs_model_id,
                'voice_settings': {
                    'stability': _clamp(self.settings.elevenlabs_stability, 0.0, 1.0),
                    'similarity_boost': _clamp(self.settings.elevenlabs_similarity_boost, 0.0, 1.0),
                },
            },
        )


class SpeechSynthesizer:
    """
    Single entry point for chunk synthesis across providers.

    Owns the HTTP client shared by all vendor back-ends. Pass a client to
    control transport and timeouts (tests use httpx.MockTransport).
    """

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=settings.provider_timeout_seconds)
        self._providers: Dict[Provider, SynthesisProvider] = {
            cls.provider: cls(settings, self.client)
            for cls in (WebSpeechProvider, OpenAIProvider, ElevenLabsProvider)
        }
        assert set(self._providers) == set(Provider), 'no back-end for a provider'

    def get_provider(self, provider: Provider) -> SynthesisProvider:
        return self._providers[Provider(provider)]

    def is_provider_available(self, provider: Provider) -> bool:
        return self.get_provider(provider).is_available

    def calculate_cost(self, provider: Provider, character_count: int) -> float:
        """Price a call with the model this synthesizer is configured for."""
        return calculate_cost(provider, character_count, self.get_provider(provider).model)

    async def synthesize(
        self,
        provider: Provider,
        text: str,
        voice: Optional[str] = None,
        audio_format: AudioFormat = AudioFormat.mp3,
        billed_characters: Optional[int] = None,
    ) -> SynthesisResult:
        """
        Synthesize one chunk of text.

        Args:
            provider: Back-end to use
            text: Chunk text
            voice: Requested voice (unknown or unset = provider default)
            audio_format: Output codec
            billed_characters: Characters to price the call at
                (defaults to len(text))

        Returns:
            SynthesisResult with the audio bytes and the billed cost

        Raises:
            ProviderError: the back-end failed; no partial audio is returned
        """
        backend = self.get_provider(provider)
        resolved_voice = normalize_voice(backend.provider, voice)

        start_time = time.monotonic()
        try:
            audio = await backend.generate(text, resolved_voice, AudioFormat(audio_format))
        except ProviderError as e:
            logger.error('%s synthesis failed (%d chars): %s', backend.provider.value, len(text), e.message)
            raise
        duration_ms = int((time.monotonic() - start_time) * 1000)

        logger.info(
            '%s synthesis complete: %d chars, voice=%s, format=%s, %d ms',
            backend.provider.value, len(text), resolved_voice, AudioFormat(audio_format).value, duration_ms,
        )
        character_count = len(text) if billed_characters is None else billed_characters
        return SynthesisResult(
            audio=audio,
            cost=self.calculate_cost(backend.provider, character_count),
            character_count=character_count,
            duration_ms=duration_ms,
        )

    async def aclose(self):
        """Release the HTTP client if this synthesizer created it."""
        if self._owns_client:
            await self.client.aclose()
