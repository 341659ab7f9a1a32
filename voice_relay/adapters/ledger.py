"""
Sent Ledgers
============

Bookkeeping of what an utterance handed to the provider and what the provider
confirmed consuming. The ledger is what gets replayed after a reconnect and
what gets handed over to the next provider after a terminal failure.
"""

import re
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List

_LINE_BREAKS = re.compile(r"[\r\n ]+")


def normalize_text(text: str) -> str:
    """Collapse runs of spaces and line breaks into one space."""
    return _LINE_BREAKS.sub(" ", text)


def squash(text: str) -> str:
    """Whitespace-insensitive form used to compare sent and confirmed text."""
    return " ".join(text.split())


def strip_confirmed(text: str, confirmed: str) -> str:
    """
    Return the part of ``text`` left after ``confirmed``.

    Whitespace is ignored while matching, since providers echo text with
    their own spacing. When ``confirmed`` is not a prefix of ``text`` nothing
    can be trusted as consumed and ``text`` is returned whole.
    """
    wanted = "".join(confirmed.split())
    if not wanted:
        return text
    matched = 0
    for index, char in enumerate(text):
        if char.isspace():
            continue
        if char != wanted[matched]:
            return text
        matched += 1
        if matched == len(wanted):
            return text[index + 1:].lstrip()
    return text


@dataclass
class TextLedger:
    """
    Text side of one TTS utterance.

    Attributes:
        accepted: Everything read from the input stream so far, including
            text the chunking policy is still withholding
        transmitted: Text actually sent to the provider
        confirmed: Confirmation cursor, the text the provider echoed back
        input_ended: Whether the input stream has ended
    """
    accepted: str = ""
    transmitted: str = ""
    confirmed: str = ""
    input_ended: bool = False

    def accept(self, text: str) -> None:
        self.accepted += text

    def mark_transmitted(self, text: str) -> None:
        self.transmitted += text

    def confirm(self, text: str) -> None:
        self.confirmed += text

    def unconfirmed(self) -> str:
        """Transmitted text the provider has not echoed yet."""
        return strip_confirmed(self.transmitted, self.confirmed)

    def unconsumed(self) -> str:
        """Accepted text the provider has not echoed yet."""
        return strip_confirmed(self.accepted, self.confirmed)

    def pending(self) -> List[str]:
        remainder = self.unconsumed()
        return [remainder] if remainder.strip() else []

    def clear(self) -> None:
        self.accepted = ""
        self.transmitted = ""
        self.confirmed = ""

    def __bool__(self) -> bool:
        return bool(self.accepted)


@dataclass
class AudioLedger:
    """
    Audio side of one STT utterance.

    Chunks stay in the ledger until the provider reports having processed the
    audio they contain. Offsets are byte positions in the utterance's audio;
    ``origin`` maps the provider's connection timeline onto them.
    """
    bytes_per_second: int = 32000
    chunks: Deque[bytes] = field(default_factory=deque)
    base: int = 0
    received: int = 0
    transmitted: int = 0
    origin: int = 0
    input_ended: bool = False

    def accept(self, chunk: bytes) -> None:
        self.chunks.append(chunk)
        self.received += len(chunk)

    def mark_transmitted(self, chunk: bytes) -> None:
        self.transmitted += len(chunk)

    def rebase(self, connection_bytes: int) -> None:
        """Align the ledger with a connection that has carried ``connection_bytes``."""
        self.origin = connection_bytes - self.base

    def acknowledge(self, seconds: float) -> int:
        """
        Drop chunks fully covered by the provider's processed-audio time.

        Returns:
            Number of chunks dropped
        """
        offset = round(seconds * self.bytes_per_second) - self.origin
        dropped = 0
        while self.chunks and self.base + len(self.chunks[0]) <= offset:
            self.base += len(self.chunks.popleft())
            dropped += 1
        return dropped

    def unconfirmed(self) -> List[bytes]:
        """Transmitted chunks the provider has not reported as processed."""
        result = []
        offset = self.base
        for chunk in self.chunks:
            if offset >= self.transmitted:
                break
            result.append(chunk)
            offset += len(chunk)
        return result

    def pending(self) -> List[bytes]:
        return list(self.chunks)

    def clear(self) -> None:
        self.chunks.clear()
        self.base = self.received
        self.transmitted = self.received

    def __bool__(self) -> bool:
        return bool(self.chunks)
