"""
Static voice catalogs for each synthesis provider.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from narrator.models.job import Provider


@dataclass(frozen=True)
class Voice:
    """Represents an available voice for a provider."""
    id: str
    display_name: str
    gender: str
    language: str
    description: str = ''


OPENAI_VOICES: Tuple[Voice, ...] = (
    Voice('alloy', 'Alloy', 'neutral', 'en', 'Balanced, versatile voice'),
    Voice('echo', 'Echo', 'male', 'en', 'Warm, friendly male voice'),
    Voice('fable', 'Fable', 'male', 'en', 'British-accented storytelling voice'),
    Voice('onyx', 'Onyx', 'male', 'en', 'Deep, authoritative male voice'),
    Voice('nova', 'Nova', 'female', 'en', 'Youthful, energetic female voice'),
    Voice('shimmer', 'Shimmer', 'female', 'en', 'Expressive, dynamic female voice'),
)

ELEVENLABS_VOICES: Tuple[Voice, ...] = (
    Voice('rachel', 'Rachel', 'female', 'en', 'Calm, young American female voice'),
    Voice('drew', 'Drew', 'male', 'en', 'Well-rounded American male voice'),
    Voice('clyde', 'Clyde', 'male', 'en', 'Deep, resonant voice'),
    Voice('paul', 'Paul', 'male', 'en', 'Authoritative news anchor voice'),
    Voice('domi', 'Domi', 'female', 'en', 'Strong, assertive female voice'),
    Voice('dave', 'Dave', 'male', 'en', 'Conversational British-Essex male voice'),
    Voice('fin', 'Fin', 'male', 'en', 'Irish, adventurous voice'),
    Voice('bella', 'Bella', 'female', 'en', 'Soft, pleasant female voice'),
    Voice('antoni', 'Antoni', 'male', 'en', 'Well-rounded American male voice'),
    Voice('thomas', 'Thomas', 'male', 'en', 'Calm, professional male voice'),
)

# ElevenLabs addresses voices by opaque id rather than name
ELEVENLABS_VOICE_IDS: Dict[str, str] = {
    'rachel': '21m00Tcm4TlvDq8ikWAM',
    'drew': '29vD33N1CtxCmqQRPOHJ',
    'clyde': '2EiwWnXFnvU5JabPnv8n',
    'paul': '5Q0t7uMcjvnagumLfvZi',
    'domi': 'AZnzlk1XvdvUeBnXmlld',
    'dave': 'CYw3kZ02Hs0563khs1Fj',
    'fin': 'D38z5RcWu1voky8WS1ja',
    'bella': 'EXAVITQu4vr4xnSDxMaL',
    'antoni': 'ErXwobaYiN019PkySvjV',
    'thomas': 'GBv7mTt0atIp3Br8iCZE',
}

# Browser voices are enumerated client-side; the server knows none
CATALOGS: Dict[Provider, Tuple[Voice, ...]] = {
    Provider.web_speech: (),
    Provider.openai: OPENAI_VOICES,
    Provider.elevenlabs: ELEVENLABS_VOICES,
}

DEFAULT_VOICES: Dict[Provider, Optional[str]] = {
    Provider.web_speech: None,
    Provider.openai: 'alloy',
    Provider.elevenlabs: 'rachel',
}

assert set(CATALOGS) == set(Provider), 'voice catalog missing a provider'
assert set(DEFAULT_VOICES) == set(Provider), 'default voice missing a provider'
assert set(ELEVENLABS_VOICE_IDS) == {v.id for v in ELEVENLABS_VOICES}


def get_voices(provider: Provider) -> List[Voice]:
    """Get list of all voices for a provider."""
    return list(CATALOGS[Provider(provider)])


def get_voice(provider: Provider, voice_id: str) -> Optional[Voice]:
    """Get a specific voice by ID."""
    for voice in CATALOGS[Provider(provider)]:
        if voice.id == voice_id:
            return voice
    return None


def is_valid_voice(provider: Provider, voice_id: Optional[str]) -> bool:
    return bool(voice_id) and get_voice(provider, voice_id) is not None


def normalize_voice(provider: Provider, voice_id: Optional[str] = None) -> Optional[str]:
    """
    Resolve the voice to use for a provider.

    Unset or unknown voices fall back to the provider default. Browser voices
    are passed through untouched since only the client can validate them.
    """
    provider = Provider(provider)
    if provider is Provider.web_speech:
        return voice_id or None
    if is_valid_voice(provider, voice_id):
        return voice_id
    return DEFAULT_VOICES[provider]


def elevenlabs_voice_id(voice_name: str) -> str:
    """Map an ElevenLabs voice name to the id its API expects."""
    return ELEVENLABS_VOICE_IDS[voice_name]
