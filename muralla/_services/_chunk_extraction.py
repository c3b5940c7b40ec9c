"""Default document chunking service.

Documents are cut on whitespace boundaries into segments of at most `chunk_char_size`
characters. Each token is a maximal run of non-whitespace characters together with the
whitespace that follows it; a document that starts with whitespace yields that run as
its own first token. Tokens are packed greedily, so the segments concatenate back to
the exact input and no segment is larger than the budget unless it holds a single
token that is larger on its own.

The default budget of 24,000 characters keeps a segment comfortably below the
8,192-token input limit of the embedding models at roughly three characters per token.
"""

import re
from dataclasses import dataclass, field
from typing import List

from muralla._exceptions import InvalidConfigError

from ._base import BaseChunkingService

# A leading whitespace run, or a word with the whitespace that trails it
TOKEN_RE = re.compile(r"\s+|\S+\s*")


@dataclass
class DefaultChunkingServiceConfig:
    """Configuration for the default chunking strategy.

    Attributes:
        chunk_char_size: Maximum number of characters per segment.
    """

    chunk_char_size: int = field(default=24_000)


@dataclass
class DefaultChunkingService(BaseChunkingService):
    """Greedy whitespace-preserving chunker.

    Attributes:
        config: Configuration object controlling the segment size.
    """

    config: DefaultChunkingServiceConfig = field(default_factory=DefaultChunkingServiceConfig)

    def __post_init__(self):
        if self.config.chunk_char_size <= 0:
            raise InvalidConfigError(f"Chunk size must be positive, got {self.config.chunk_char_size}")
        self._chunk_size = self.config.chunk_char_size

    def split(self, text: str) -> List[str]:
        """Split text into segments of at most `chunk_char_size` characters.

        Args:
            text: The text to split.

        Returns:
            The segments in document order; `[]` for empty text.
        """
        if not text:
            return []

        segments: List[str] = []
        current: List[str] = []
        current_length = 0

        for token in TOKEN_RE.findall(text):
            if current and current_length + len(token) > self._chunk_size:
                segments.append("".join(current))
                current = []
                current_length = 0
            current.append(token)
            current_length += len(token)

        if current:
            segments.append("".join(current))

        return segments or [text]
