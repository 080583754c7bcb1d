"""
Source text collaborator.

Document parsing (EPUB/PDF extraction) happens upstream; by the time a job
runs, its text is available from a ContentSource.
"""
import asyncio
import functools
import logging
import re
from pathlib import Path
from typing import Protocol

from narrator.errors import ContentNotFoundError

logger = logging.getLogger(__name__)

_SAFE_REF = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_.-]*$')


class ContentSource(Protocol):
    """Supplies the raw text to synthesize for a source reference."""

    async def get_text(self, source_ref: str) -> str:
        """Return the full text. Raises ContentNotFoundError."""


class DirectoryContentSource:
    """Reads extracted text from <content_dir>/<source_ref>.txt files."""

    def __init__(self, content_dir: Path, encoding: str = 'utf-8'):
        self.content_dir = Path(content_dir)
        self.encoding = encoding

    def _read_sync(self, source_ref: str) -> str:
        if not _SAFE_REF.match(source_ref):
            raise ContentNotFoundError(source_ref)
        path = self.content_dir / f'{source_ref}.txt'
        try:
            return path.read_text(encoding=self.encoding)
        except FileNotFoundError:
            raise ContentNotFoundError(source_ref) from None

    async def get_text(self, source_ref: str) -> str:
        loop = asyncio.get_running_loop()
        text = await loop.run_in_executor(None, functools.partial(self._read_sync, source_ref))
        logger.debug('Loaded %d characters for %s', len(text), source_ref)
        return text
