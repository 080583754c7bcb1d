"""
Application configuration and paths.

Module constants hold identity and defaults. Deployment-specific values
(API keys, URLs, pacing) live in Settings, which is built once at startup
and handed to the services that need it.
"""
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Application identity
APP_NAME = 'Narrator'
APP_VERSION = '0.1.0'

# Server configuration
SERVER_HOST = '127.0.0.1'
SERVER_PORT = 5111

# Application data directory
APP_DATA_DIR = Path.home() / '.local' / 'share' / 'narrator'

# Database configuration
DATABASE_PATH = APP_DATA_DIR / 'narrator.db'
DATABASE_URL = f'sqlite+aiosqlite:///{DATABASE_PATH}'

# Stored audio (local object store root)
AUDIO_DIR = APP_DATA_DIR / 'audio'

# Extracted book text, one <source_ref>.txt file per source
CONTENT_DIR = APP_DATA_DIR / 'content'

# Chunking
MAX_CHUNK_SIZE = 4096
MIN_CHUNK_SIZE = 100

# Pause between vendor calls for one job (seconds)
CHUNK_DELAY_SECONDS = 0.5

# Jobs claimed per scheduler invocation
BATCH_LIMIT = 10

# Audio downloads are kept for this many days
DOWNLOAD_EXPIRY_DAYS = 30

# PROCESSING jobs untouched for this long are considered abandoned
STALE_PROCESSING_TIMEOUT_SECONDS = 60 * 60

STORAGE_PUBLIC_URL = 'https://storage.narrator.local'


class Settings(BaseSettings):
    """Deployment settings, read from NARRATOR_* environment variables."""

    model_config = SettingsConfigDict(
        env_file='.env',
        env_prefix='NARRATOR_',
        extra='ignore',
    )

    database_url: str = Field(default=DATABASE_URL)
    audio_dir: Path = Field(default=AUDIO_DIR)
    content_dir: Path = Field(default=CONTENT_DIR)
    storage_public_url: str = Field(
        default=STORAGE_PUBLIC_URL,
        description='Base URL that stored file keys are served from.',
    )

    # Vendor credentials and endpoints
    openai_api_key: Optional[str] = Field(default=None)
    openai_base_url: str = Field(default='https://api.openai.com/v1')
    openai_model: Literal['tts-1', 'tts-1-hd'] = Field(default='tts-1')
    openai_speed: float = Field(default=1.0, description='Clamped to 0.25-4.0.')
    elevenlabs_api_key: Optional[str] = Field(default=None)
    elevenlabs_base_url: str = Field(default='https://api.elevenlabs.io/v1')
    elevenlabs_model_id: str = Field(default='eleven_monolingual_v1')
    elevenlabs_stability: float = Field(default=0.5, description='Clamped to 0-1.')
    elevenlabs_similarity_boost: float = Field(default=0.75, description='Clamped to 0-1.')
    provider_timeout_seconds: float = Field(default=120.0, gt=0)

    # Job processing
    max_chunk_chars: int = Field(default=MAX_CHUNK_SIZE, gt=0)
    chunk_delay_seconds: float = Field(default=CHUNK_DELAY_SECONDS, ge=0)
    batch_limit: int = Field(default=BATCH_LIMIT, gt=0)
    download_expiry_days: int = Field(default=DOWNLOAD_EXPIRY_DAYS, gt=0)
    stale_processing_timeout_seconds: int = Field(
        default=STALE_PROCESSING_TIMEOUT_SECONDS, gt=0,
    )

    # Shared secret the cron trigger sends as a Bearer token (unset = open)
    cron_secret: Optional[str] = Field(default=None)


@lru_cache
def get_settings() -> Settings:
    """Get the process-wide settings instance."""
    return Settings()


def ensure_directories(settings: Settings):
    """Create required directories if they don't exist."""
    if settings.database_url.startswith('sqlite') and ':memory:' not in settings.database_url:
        Path(settings.database_url.split('///', 1)[-1]).parent.mkdir(parents=True, exist_ok=True)
    settings.audio_dir.mkdir(parents=True, exist_ok=True)
    settings.content_dir.mkdir(parents=True, exist_ok=True)
