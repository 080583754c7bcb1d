"""
Exception types raised by the job-processing core.

Every error carries a stable ``code`` which is also what gets written to
``Job.error_code`` when the error terminates a job.
"""
from typing import Optional


class NarratorError(Exception):
    """Base class for all Narrator errors."""

    code = 'internal_error'

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidStateError(NarratorError):
    """Job is not in a state that allows processing."""

    code = 'invalid_state'

    def __init__(self, job_id: str, status: str):
        super().__init__(f'Job {job_id} cannot be processed in status {status!r}')
        self.job_id = job_id
        self.status = status


class EmptyContentError(NarratorError):
    """Source text is empty after trimming."""

    code = 'empty_content'


class ProviderError(NarratorError):
    """A synthesis back-end call failed."""

    code = 'provider_error'

    def __init__(self, provider_code: str, message: str, chunk_index: Optional[int] = None):
        super().__init__(message)
        self.provider_code = provider_code
        self.chunk_index = chunk_index

    def __str__(self):
        return f'{self.provider_code}: {self.message}'


class UploadError(NarratorError):
    """Assembled audio could not be written to storage."""

    code = 'upload_error'


class StorageError(NarratorError):
    """A storage operation other than upload failed."""

    code = 'storage_error'


class NotFoundError(NarratorError):
    """A referenced record does not exist."""

    code = 'not_found'


class JobNotFoundError(NotFoundError):
    """No job with the given id."""

    def __init__(self, job_id: str):
        super().__init__(f'Job not found: {job_id}')
        self.job_id = job_id


class ContentNotFoundError(NotFoundError):
    """The content source has nothing for the given reference."""

    code = 'content_not_found'

    def __init__(self, source_ref: str):
        super().__init__(f'Content not found: {source_ref}')
        self.source_ref = source_ref
