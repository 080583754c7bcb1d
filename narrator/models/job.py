"""
Job model for audio download synthesis tasks.
"""
import uuid
import enum
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Integer, Float, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class JobStatus(str, enum.Enum):
    """Status states for synthesis jobs."""
    pending = 'pending'
    processing = 'processing'
    completed = 'completed'
    failed = 'failed'


class Provider(str, enum.Enum):
    """Speech synthesis back-ends."""
    web_speech = 'web_speech'    # browser-native, client-side only
    openai = 'openai'
    elevenlabs = 'elevenlabs'


class AudioFormat(str, enum.Enum):
    """Audio codecs a job can be rendered to."""
    mp3 = 'mp3'
    opus = 'opus'
    aac = 'aac'
    flac = 'flac'
    wav = 'wav'
    pcm = 'pcm'


class Job(Base):
    """
    Represents one request to synthesize a source text into one audio file.

    Attributes:
        id: Unique job identifier (UUID)
        user_id: Owner of the download
        source_ref: Reference to the source text (e.g. book identifier)
        provider: Synthesis back-end (Provider value)
        voice: Requested voice (null = provider default)
        format: Output codec (AudioFormat value)
        status: Current job status
        total_chunks: Number of chunks the text was split into
        processed_chunks: Chunks synthesized so far
        estimated_cost: Cost estimate computed at creation
        actual_cost: Cost incurred so far (never decreases)
        file_key: Storage key of the assembled audio (completed only)
        file_size: Size of the assembled audio in bytes (completed only)
        download_url: Public URL of the audio (completed only)
        error_code: Machine-readable failure reason (failed only)
        error_message: Error details (failed only)
        duration_ms: Wall-clock time of the processing run
        expires_at: When the audio and record are retired
        completed_at: When the job reached a terminal state
        created_at: Job creation timestamp
        updated_at: Last write to the record (checkpoints included)
        deleted_at: Soft-delete timestamp set by the reaper
    """
    __tablename__ = 'jobs'
    __table_args__ = (
        Index('ix_jobs_status_created_at', 'status', 'created_at'),
        Index('ix_jobs_expires_at', 'expires_at'),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(64), nullable=False, index=True)
    source_ref = Column(String(255), nullable=False)
    provider = Column(String(20), nullable=False, default=Provider.openai.value)
    voice = Column(String(100), nullable=True)
    format = Column(String(10), nullable=False, default=AudioFormat.mp3.value)
    status = Column(String(20), nullable=False, default=JobStatus.pending.value)
    total_chunks = Column(Integer, nullable=False, default=0)
    processed_chunks = Column(Integer, nullable=False, default=0)
    estimated_cost = Column(Float, nullable=True)
    actual_cost = Column(Float, nullable=False, default=0.0)
    file_key = Column(Text, nullable=True)
    file_size = Column(Integer, nullable=True)
    download_url = Column(Text, nullable=True)
    error_code = Column(String(50), nullable=True)
    error_message = Column(Text, nullable=True)
    duration_ms = Column(Integer, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.completed.value, JobStatus.failed.value)

    def __repr__(self):
        return f'<Job {self.id} status={self.status} chunks={self.processed_chunks}/{self.total_chunks}>'
