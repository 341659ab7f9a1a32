"""
Completion correction policies.

Some providers do not flag the last audio chunk of an utterance reliably. A
completion policy decides from the confirmation cursor whether an utterance
is really finished, and whether an echoed chunk belongs to it at all.
"""

from abc import ABC, abstractmethod

from voice_relay.adapters.ledger import TextLedger, squash


class CompletionPolicy(ABC):
    """Named strategy deciding end-of-utterance from confirmations."""

    name = "abstract"

    @abstractmethod
    def accepts(self, ledger: TextLedger, echoed: str) -> bool:
        """Whether ``echoed`` text belongs to the utterance tracked by ``ledger``."""

    @abstractmethod
    def is_complete(self, ledger: TextLedger) -> bool:
        """Whether the utterance is finished even without a provider final flag."""


class ProviderCompletion(CompletionPolicy):
    """Trust the provider's own final signal; no correction."""

    name = "provider"

    def accepts(self, ledger: TextLedger, echoed: str) -> bool:
        return True

    def is_complete(self, ledger: TextLedger) -> bool:
        return False


class AlignmentCompletion(CompletionPolicy):
    """
    Finish an utterance once the provider echoed back all of its text.

    Fires only after the input stream ended and the cumulative echoed text
    equals the cumulative accepted text, ignoring whitespace. Echoes that do
    not appear in the utterance's text are audio of a superseded session.
    """

    name = "alignment"

    def accepts(self, ledger: TextLedger, echoed: str) -> bool:
        return squash(ledger.confirmed + echoed) in squash(ledger.accepted)

    def is_complete(self, ledger: TextLedger) -> bool:
        if not ledger.input_ended:
            return False
        sent = squash(ledger.accepted)
        return bool(sent) and squash(ledger.confirmed) == sent
