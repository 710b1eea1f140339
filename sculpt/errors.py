"""Exception hierarchy for sculpt.

Parse and validation errors stop the run before any image is touched.
Execution errors are reported per input file.
"""

from __future__ import annotations


class SculptError(Exception):
    """Base class for all errors reported to the user."""


class SchemaViolation(SculptError):
    """The option table is malformed or contradicts itself."""


class ParseError(SculptError):
    """The command line could not be parsed (unknown flag, bad arity, ...)."""


class ValidationError(SculptError):
    """The command line parsed, but the combination of options is invalid."""


class ExecutionError(SculptError):
    """A pipeline step failed while processing one input.

    Attributes:
        label: Label of the queue entry that failed.
        source: Input the pipeline was running against, if known.
    """

    def __init__(self, label: str, cause: BaseException, source: str | None = None):
        self.label = label
        self.cause = cause
        self.source = source
        where = f" ({source})" if source else ""
        super().__init__(f"{label} failed{where}: {cause}")


class InputError(SculptError):
    """An input image could not be read, or exceeds the pixel limit."""
