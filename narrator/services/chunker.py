"""
Text chunking for long-form synthesis.

Splits a source text into ordered chunks no longer than a character limit,
breaking at the most natural boundary available inside the limit:

    1. Paragraph break (blank line)
    2. Sentence ending (. ! ? followed by whitespace)
    3. Any whitespace

A word is never split. A single word longer than the limit becomes a chunk
of its own.

Chunk texts exclude the whitespace around them; each chunk records its span
in the source so join_chunks() can put the original whitespace back.
"""
import re
from dataclasses import dataclass
from typing import List

from narrator.config import MAX_CHUNK_SIZE, MIN_CHUNK_SIZE

# Blank line, possibly with indentation on the empty line
_PARAGRAPH_BREAK = re.compile(r'\n[^\S\n]*\n')

# Sentence terminator plus closing quotes/brackets, followed by whitespace
_SENTENCE_END = re.compile(r'[.!?…]+["\'”’)\]]*(?=\s)')

_WHITESPACE = re.compile(r'\s')


@dataclass(frozen=True)
class TextChunk:
    """
    One bounded fragment of the source text.

    Attributes:
        index: Position in the chunk sequence (0-based)
        text: Chunk content, equal to source[start:end]
        start: Offset of the first character in the source
        end: Offset one past the last character in the source
    """
    index: int
    text: str
    start: int
    end: int

    def __len__(self):
        return len(self.text)


def _last_break(window: str, max_chars: int, min_chars: int) -> int:
    """
    Find where to end a chunk that starts at window[0].

    window holds up to max_chars + 1 characters so a boundary that falls
    exactly on the limit is still visible. Returns the chunk length, or 0
    when the window holds no whitespace at all.
    """
    paragraph = 0
    for match in _PARAGRAPH_BREAK.finditer(window):
        if match.start() <= max_chars:
            paragraph = match.start()
    if paragraph > min_chars:
        return paragraph

    sentence = 0
    for match in _SENTENCE_END.finditer(window):
        if match.end() <= max_chars:
            sentence = match.end()
    if sentence > min_chars:
        return sentence

    for i in range(min(len(window) - 1, max_chars), 0, -1):
        if window[i].isspace():
            return i
    return 0


def chunk_text(text: str, max_chunk_chars: int = MAX_CHUNK_SIZE) -> List[TextChunk]:
    """
    Split text into chunks suitable for one synthesis call each.

    Args:
        text: Full source text
        max_chunk_chars: Maximum characters per chunk

    Returns:
        Ordered list of chunks; empty when text is blank.

    Raises:
        ValueError: max_chunk_chars is not positive
    """
    if max_chunk_chars <= 0:
        raise ValueError(f'max_chunk_chars must be positive, got {max_chunk_chars}')

    # Paragraph and sentence breaks are only taken when they leave a
    # reasonably sized chunk behind
    min_chars = min(MIN_CHUNK_SIZE, max_chunk_chars // 2)

    chunks: List[TextChunk] = []
    length = len(text)
    pos = 0

    while True:
        while pos < length and text[pos].isspace():
            pos += 1
        if pos >= length:
            break

        if length - pos <= max_chunk_chars:
            brk = length - pos
        else:
            brk = _last_break(text[pos:pos + max_chunk_chars + 1], max_chunk_chars, min_chars)
            if brk == 0:
                # Over-limit word: take it whole
                match = _WHITESPACE.search(text, pos)
                brk = (match.start() if match else length) - pos

        end = pos + brk
        while end > pos and text[end - 1].isspace():
            end -= 1

        chunks.append(TextChunk(index=len(chunks), text=text[pos:end], start=pos, end=end))
        pos = end

    return chunks


def join_chunks(text: str, chunks: List[TextChunk]) -> str:
    """Rebuild the source from its chunks, reinserting the whitespace between them."""
    if not chunks:
        return text

    parts = [text[:chunks[0].start]]
    for current, following in zip(chunks, chunks[1:]):
        parts.append(current.text)
        parts.append(text[current.end:following.start])
    parts.append(chunks[-1].text)
    parts.append(text[chunks[-1].end:])
    return ''.join(parts)


def estimate_chunk_count(text: str, max_chunk_chars: int = MAX_CHUNK_SIZE) -> int:
    """Quick lower-bound estimate of chunks needed, without chunking."""
    stripped = text.strip()
    if not stripped:
        return 0
    return -(-len(stripped) // max_chunk_chars)


def total_character_count(chunks: List[TextChunk]) -> int:
    """Characters that will actually be sent for synthesis."""
    return sum(len(chunk.text) for chunk in chunks)


def billed_lengths(text: str, chunks: List[TextChunk]) -> List[int]:
    """
    Characters of the source each chunk is billed for.

    Every chunk owns the whitespace that follows it, up to the next chunk;
    the first chunk also owns the leading whitespace.
    The lengths always sum to len(text), so per-chunk pricing adds up to the
    price of the whole text.
    """
    if not chunks:
        return []
    bounds = [0] + [chunk.start for chunk in chunks[1:]] + [len(text)]
    return [bounds[i + 1] - bounds[i] for i in range(len(chunks))]
