#!/usr/bin/env python3
"""sculpt - image processing pipelines from the command line.

Global options set how images are read and encoded; sub-commands list the
transformations, applied left to right:

    sculpt -i photo.jpg -o out/ resize 300 200
    sculpt -i photo.jpg -o out/ -mq90 rotate 180 -- resize 300 -- sharpen
    cat photo.png | sculpt -f webp negate > negative.webp

The whole pipeline is built before any image is read, then replayed once
per input file.
"""

from __future__ import annotations

import logging
import sys
from typing import Sequence

from sculpt.encoding import apply_global_options
from sculpt.errors import SculptError
from sculpt.pipeline import run
from sculpt.queue import OperationQueue
from sculpt.resolver import Invocation, resolve


def build_queue(invocation: Invocation) -> OperationQueue:
    """Build the operation queue for a resolved command line.

    Command handlers append their steps in command-line order, then the
    global options' encoding steps are put in front of them.
    """
    queue = OperationQueue()
    for command, args in invocation.commands:
        command.handler(args, queue)
    apply_global_options(invocation.options, queue)
    return queue


def main(argv: Sequence[str] | None = None) -> None:
    """Main entry point."""
    argv = sys.argv[1:] if argv is None else list(argv)
    # Looked up before resolving so resolution itself is traced too.
    if "--verbose" in argv:
        logging.basicConfig(
            level=logging.DEBUG, format="%(name)s: %(message)s", stream=sys.stderr
        )
    try:
        invocation = resolve(argv)
        queue = build_queue(invocation)
        failures = run(queue.freeze(), invocation.options.input, invocation.options.output)
    except SculptError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if failures:
        sys.exit(1)


if __name__ == "__main__":
    main()
