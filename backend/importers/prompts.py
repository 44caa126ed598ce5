"""
Interaction seams of the import pipeline.

Selection prompts, user notices and the loading indicator are injected into
the importer. Selection returns a tagged result so a dismissed prompt is a
normal outcome, not an exception.
"""

import logging
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Generic, List, Optional, Sequence, TextIO, TypeVar, Union

from importers.record_normalizer import RemoteRecord, describe_record, matches_query

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Selected(Generic[T]):
    """The user picked an item."""

    item: T


@dataclass(frozen=True)
class Cancelled:
    """The user dismissed the prompt."""


Selection = Union[Selected[T], Cancelled]


class SelectionPrompt(ABC):
    """Asks the user for a search term and for one of the search results."""

    @abstractmethod
    async def prompt_text(self, title: str, placeholder: str = "") -> Optional[str]:
        """Return the entered text, or None when dismissed."""
        pass

    @abstractmethod
    async def prompt_selection(
        self,
        title: str,
        candidates: Sequence[RemoteRecord],
    ) -> Selection:
        pass


class Notifier(ABC):
    """Shows short user-visible notices."""

    @abstractmethod
    def notify(self, message: str, timeout_ms: Optional[int] = None) -> None:
        pass


class LoadingIndicator(ABC):
    """
    Transient "working" indicator.

    ``open`` and ``close`` are idempotent; ``close`` only reaches the UI
    once per ``open``.
    """

    def __init__(self, message: str = ""):
        self.message = message
        self.is_open = False

    def open(self) -> None:
        if self.is_open:
            return
        self.is_open = True
        self._show()

    def close(self) -> None:
        if not self.is_open:
            return
        self.is_open = False
        self._hide()

    @abstractmethod
    def _show(self) -> None:
        pass

    @abstractmethod
    def _hide(self) -> None:
        pass


# ==================== Console implementations ====================

class LoggingNotifier(Notifier):
    """Notices go to the log."""

    def notify(self, message: str, timeout_ms: Optional[int] = None) -> None:
        logger.info(message)


class ConsoleLoadingIndicator(LoadingIndicator):
    def __init__(self, message: str = "", stream: TextIO = sys.stderr):
        super().__init__(message)
        self.stream = stream

    def _show(self) -> None:
        self.stream.write(f"{self.message}\n")
        self.stream.flush()

    def _hide(self) -> None:
        pass


class ConsoleSelectionPrompt(SelectionPrompt):
    """Numbered-list prompt on stdin/stdout."""

    def __init__(self, stdin: TextIO = sys.stdin, stdout: TextIO = sys.stdout):
        self.stdin = stdin
        self.stdout = stdout

    def _ask(self, prompt: str) -> Optional[str]:
        self.stdout.write(prompt)
        self.stdout.flush()
        line = self.stdin.readline()
        if not line:
            return None
        return line.strip()

    async def prompt_text(self, title: str, placeholder: str = "") -> Optional[str]:
        suffix = f" ({placeholder})" if placeholder else ""
        value = self._ask(f"{title}{suffix}: ")
        return value or None

    async def prompt_selection(
        self,
        title: str,
        candidates: Sequence[RemoteRecord],
    ) -> Selection:
        shown: List[RemoteRecord] = list(candidates)
        while True:
            self.stdout.write(f"{title}\n")
            for index, record in enumerate(shown, start=1):
                self.stdout.write(f"  {index}. {record.title or record.key}\n")
                sub = describe_record(record)
                if sub:
                    self.stdout.write(f"     {sub}\n")

            answer = self._ask("Number, filter text, or empty to cancel: ")
            if not answer:
                return Cancelled()
            if answer.isdigit() and 1 <= int(answer) <= len(shown):
                return Selected(shown[int(answer) - 1])

            filtered = [r for r in candidates if matches_query(r, answer)]
            if filtered:
                shown = filtered
            else:
                self.stdout.write("No matching items.\n")
