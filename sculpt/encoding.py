"""Turn resolved global options into encoding steps at the head of the queue.

Global options describe how the input is read and how the output is
encoded, so their steps always run before any sub-command step. The checks
below are evaluated in a fixed order and each one places its step in front
of the previous ones; the resulting head of the queue is therefore the
reverse of the check order:

    withMetadata, webp, tiff, sequentialRead, png, limitInputPixels, jpeg, format

The prefix is assembled once in that final order and prepended in one call.
Encoder steps pass force=False, so they only take effect when the final
output format matches the encoder.
"""

from __future__ import annotations

import argparse
import logging

from sculpt.queue import OperationQueue, QueueEntry

logger = logging.getLogger(__name__)

JPEG_TRIGGERS = (
    "chroma_subsampling",
    "optimise",
    "optimise_scans",
    "overshoot_deringing",
    "progressive",
    "quality",
    "trellis_quantisation",
)
PNG_TRIGGERS = ("adaptive_filtering", "compression_level", "progressive")


def _format_entry(fmt: str) -> QueueEntry:
    return QueueEntry("format", lambda image: image.to_format(fmt))


def _jpeg_entry(options: argparse.Namespace) -> QueueEntry:
    optimise = getattr(options, "optimise", None)
    params = {
        "chroma_subsampling": getattr(options, "chroma_subsampling", None),
        "progressive": getattr(options, "progressive", None),
        "quality": getattr(options, "quality", None),
        # --optimise switches these on; an explicit --no-<flag> does not
        # switch them back off.
        "optimise_scans": optimise or getattr(options, "optimise_scans", None),
        "overshoot_deringing": optimise or getattr(options, "overshoot_deringing", None),
        "trellis_quantisation": optimise or getattr(options, "trellis_quantisation", None),
    }
    return QueueEntry("jpeg", lambda image: image.jpeg(force=False, **params))


def _limit_entry(limit: int) -> QueueEntry:
    return QueueEntry("limitInputPixels", lambda image: image.limit_pixels(limit))


def _png_entry(options: argparse.Namespace) -> QueueEntry:
    params = {
        "adaptive_filtering": getattr(options, "adaptive_filtering", None),
        "compression_level": getattr(options, "compression_level", None),
        "progressive": getattr(options, "progressive", None),
    }
    return QueueEntry("png", lambda image: image.png(force=False, **params))


def _quality_entry(fmt: str, quality: int) -> QueueEntry:
    def operation(image):
        return getattr(image, fmt)(force=False, quality=quality)

    return QueueEntry(fmt, operation)


def global_prefix(options: argparse.Namespace) -> list[QueueEntry]:
    """Build the encoding steps for a set of global options.

    Args:
        options: Resolved global options. Only supplied options are present
            as attributes.

    Returns:
        Queue entries in execution order.
    """

    def given(name: str) -> bool:
        return bool(getattr(options, name, None))

    checks: list[QueueEntry] = []

    if given("format"):
        checks.append(_format_entry(options.format))

    if any(given(name) for name in JPEG_TRIGGERS):
        checks.append(_jpeg_entry(options))

    # Presence, not truthiness: an explicit 0 disables the limit.
    if hasattr(options, "limit_input_pixels"):
        checks.append(_limit_entry(options.limit_input_pixels))

    if any(given(name) for name in PNG_TRIGGERS):
        checks.append(_png_entry(options))

    if given("sequential_read"):
        checks.append(QueueEntry("sequentialRead", lambda image: image.sequential()))

    if given("quality"):
        checks.append(_quality_entry("tiff", options.quality))
        checks.append(_quality_entry("webp", options.quality))

    if given("with_metadata"):
        checks.append(QueueEntry("withMetadata", lambda image: image.keep_metadata()))

    # Each check lands in front of the ones before it.
    prefix = checks[::-1]
    logger.debug("Global prefix: %s", ", ".join(entry.label for entry in prefix) or "(none)")
    return prefix


def apply_global_options(options: argparse.Namespace, queue: OperationQueue) -> None:
    """Prepend the global encoding steps to a queue of sub-command steps."""
    queue.prepend(global_prefix(options))
