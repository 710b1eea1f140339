"""Run a frozen operation queue against input images.

The queue is built once and shared read-only; every input gets a fresh
ImageHandle and its own pass through the same steps. A failing step stops
that input's run; it is never retried, since steps are not assumed to be
safe to repeat against a partly transformed image.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Sequence

from sculpt.constants import EXTENSION
from sculpt.errors import ExecutionError, InputError, ValidationError
from sculpt.handle import ImageHandle
from sculpt.queue import QueueEntry
from sculpt.resolver import STDIO

logger = logging.getLogger(__name__)


def execute(
    entries: Sequence[QueueEntry], handle: ImageHandle, source: str | None = None
) -> ImageHandle:
    """Apply queue entries to a handle, in order.

    Args:
        entries: Frozen queue.
        handle: Handle for one input.
        source: Input name, used in error messages.

    Returns:
        The handle returned by the last step.

    Raises:
        ExecutionError: On the first failing step.
    """
    for label, operation in entries:
        logger.debug("%s: %s", source or handle.source, label)
        try:
            result = operation(handle)
        except InputError as e:
            raise ExecutionError("input", e, source) from e
        except Exception as e:
            raise ExecutionError(label, e, source) from e
        # Steps that work in place may return None.
        if result is not None:
            handle = result
    return handle


def is_directory(output: str) -> bool:
    return output != STDIO and (output.endswith(("/", os.sep)) or Path(output).is_dir())


def destination(handle: ImageHandle, source: str, output: str) -> str:
    """Path the result for `source` is written to.

    A directory output gets `<input stem>.<extension of output format>`;
    anything else is used as the file path itself.
    """
    if not is_directory(output):
        return output
    stem = "stdin" if source == STDIO else Path(source).stem
    return str(Path(output) / f"{stem}{EXTENSION[handle.output_format()]}")


def process(entries: Sequence[QueueEntry], source: str, output: str) -> str:
    """Run the pipeline for one input and write the result.

    Returns:
        Where the result went ("-" for stdout).

    Raises:
        ExecutionError: If a step or the final write fails.
    """
    handle = execute(entries, ImageHandle.open(source), source)
    try:
        if output == STDIO:
            handle.to_stream(sys.stdout.buffer)
            sys.stdout.buffer.flush()
            return STDIO
        path = destination(handle, source, output)
        handle.to_file(path)
    except InputError as e:
        raise ExecutionError("input", e, source) from e
    except Exception as e:
        raise ExecutionError("output", e, source) from e
    print(f"Saved to {path}", file=sys.stderr)
    return path


def run(entries: Sequence[QueueEntry], inputs: Sequence[str], output: str) -> int:
    """Run the pipeline for every input.

    A failure is reported on stderr and the remaining inputs still run.

    Returns:
        Number of inputs that failed.

    Raises:
        ValidationError: If several inputs would be written to one file.
    """
    if len(inputs) > 1 and not is_directory(output):
        raise ValidationError(
            f"{len(inputs)} inputs need --output to be a directory, got {output!r}"
        )
    if is_directory(output):
        Path(output).mkdir(parents=True, exist_ok=True)

    failures = 0
    for source in inputs:
        try:
            process(entries, source, output)
        except ExecutionError as e:
            print(f"Error: {e}", file=sys.stderr)
            failures += 1
    return failures
