"""
Audio assembly and storage key helpers.
"""
from typing import Dict, Iterable

from narrator.models.job import AudioFormat

CONTENT_TYPES: Dict[AudioFormat, str] = {
    AudioFormat.mp3: 'audio/mpeg',
    AudioFormat.opus: 'audio/opus',
    AudioFormat.aac: 'audio/aac',
    AudioFormat.flac: 'audio/flac',
    AudioFormat.wav: 'audio/wav',
    AudioFormat.pcm: 'audio/pcm',
}

FILE_EXTENSIONS: Dict[AudioFormat, str] = {fmt: fmt.value for fmt in AudioFormat}

assert set(CONTENT_TYPES) == set(AudioFormat), 'content type missing for an audio format'


def assemble(chunks: Iterable[bytes]) -> bytes:
    """
    Join synthesized chunks into one audio stream.

    Plain concatenation in the order given; chunks are neither re-encoded
    nor reordered.
    """
    return b''.join(chunks)


def content_type_for(audio_format: AudioFormat) -> str:
    return CONTENT_TYPES[AudioFormat(audio_format)]


def build_file_key(user_id: str, job_id: str, audio_format: AudioFormat) -> str:
    """Storage key for a job's audio; unique per job."""
    extension = FILE_EXTENSIONS[AudioFormat(audio_format)]
    return f'users/{user_id}/audio/downloads/{job_id}.{extension}'


def build_download_url(public_base_url: str, file_key: str) -> str:
    return f'{public_base_url.rstrip("/")}/{file_key}'
