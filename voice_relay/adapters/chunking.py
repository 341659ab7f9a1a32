"""
Chunking policies.

A chunking policy decides when accepted text is framed and transmitted. It
never drops or repeats text: the concatenation of everything ``push`` and
``flush`` return equals the concatenation of everything pushed.
"""

from abc import ABC, abstractmethod
from typing import List


class ChunkingPolicy(ABC):
    """Per-utterance framing schedule for outbound text."""

    name = "abstract"

    @abstractmethod
    def push(self, text: str) -> List[str]:
        """Accept a chunk of input and return the segments to transmit now."""

    @abstractmethod
    def flush(self) -> List[str]:
        """Input ended; return whatever is still withheld."""


class EagerChunking(ChunkingPolicy):
    """
    Transmit every chunk as soon as it arrives.

    For providers that keep per-context state and accept arbitrary fragments.
    """

    name = "eager"

    def push(self, text: str) -> List[str]:
        return [text] if text else []

    def flush(self) -> List[str]:
        return []


class WordBoundaryChunking(ChunkingPolicy):
    """
    Withhold a trailing partial word until it is completed.

    Text up to and including the last space of the input so far is sent; the
    rest waits for more input or for the end of the stream. For providers
    that need whole words to finalize generation.
    """

    name = "word_boundary"

    def __init__(self) -> None:
        self._buffer = ""

    @property
    def withheld(self) -> str:
        return self._buffer

    def push(self, text: str) -> List[str]:
        space_index = text.rfind(" ")
        if space_index == -1:
            self._buffer += text
            return []
        segment = self._buffer + text[:space_index + 1]
        self._buffer = text[space_index + 1:]
        return [segment]

    def flush(self) -> List[str]:
        remainder, self._buffer = self._buffer, ""
        return [remainder] if remainder else []
