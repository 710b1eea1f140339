"""Ordered queue of pipeline steps.

Sub-command handlers push steps onto the tail in command-line order; the
global option post-processor prepends its encoding steps to the head. The
queue is frozen into a tuple before it is executed, so the same steps can
be replayed against any number of input files.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Iterable, Iterator, NamedTuple

if TYPE_CHECKING:
    from sculpt.handle import ImageHandle


Operation = Callable[["ImageHandle"], "ImageHandle"]


class QueueEntry(NamedTuple):
    """A labelled pipeline step. The label is informational only."""

    label: str
    operation: Operation


@dataclass
class OperationQueue:
    """Mutable list of queue entries, consumed once by the executor.

    Attributes:
        entries: Steps in execution order.
    """

    entries: list[QueueEntry] = field(default_factory=list)

    def push(self, label: str, operation: Operation) -> None:
        """Append a step to the tail."""
        self.entries.append(QueueEntry(label, operation))

    def unshift(self, label: str, operation: Operation) -> None:
        """Insert a step at the head."""
        self.entries.insert(0, QueueEntry(label, operation))

    def prepend(self, entries: Iterable[QueueEntry]) -> None:
        """Insert several steps at the head, keeping their relative order."""
        self.entries[:0] = list(entries)

    def labels(self) -> list[str]:
        return [entry.label for entry in self.entries]

    def freeze(self) -> tuple[QueueEntry, ...]:
        """Snapshot the queue for execution."""
        return tuple(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[QueueEntry]:
        return iter(self.entries)
