"""Tests for the operation queue and the global encoding prefix."""

from __future__ import annotations

import itertools
from unittest import mock

import pytest
from PIL import Image

from sculpt.cli import build_queue
from sculpt.encoding import global_prefix
from sculpt.errors import ValidationError
from sculpt.handle import ImageHandle
from sculpt.queue import OperationQueue, QueueEntry
from sculpt.resolver import resolve


def labels(argv: list[str]) -> list[str]:
    return build_queue(resolve(argv, interactive=False)).labels()


def prefix(argv: list[str]) -> list[QueueEntry]:
    return global_prefix(resolve(argv, interactive=False).options)


def entry(entries: list[QueueEntry], label: str) -> QueueEntry:
    return next(e for e in entries if e.label == label)


class TestOperationQueue:
    """Tests for OperationQueue."""

    def test_push_appends(self):
        queue = OperationQueue()
        queue.push("a", lambda image: image)
        queue.push("b", lambda image: image)
        assert queue.labels() == ["a", "b"]

    def test_unshift_inserts_at_head(self):
        queue = OperationQueue()
        queue.push("a", lambda image: image)
        queue.unshift("b", lambda image: image)
        queue.unshift("c", lambda image: image)
        assert queue.labels() == ["c", "b", "a"]

    def test_prepend_keeps_relative_order(self):
        queue = OperationQueue()
        queue.push("tail", lambda image: image)
        queue.prepend([QueueEntry("x", lambda image: image), QueueEntry("y", lambda image: image)])
        assert queue.labels() == ["x", "y", "tail"]

    def test_freeze_is_a_snapshot(self):
        queue = OperationQueue()
        queue.push("a", lambda image: image)
        frozen = queue.freeze()
        queue.push("b", lambda image: image)
        assert isinstance(frozen, tuple)
        assert [e.label for e in frozen] == ["a"]
        assert len(queue) == 2


class TestGlobalPrefix:
    """Tests for the order and content of the global prefix."""

    def test_no_global_options(self):
        assert labels([]) == []

    def test_quality_touches_jpeg_tiff_webp(self):
        assert labels(["-q", "90"]) == ["webp", "tiff", "jpeg"]

    def test_quality_and_progressive(self):
        assert labels(["-q", "90", "-p"]) == ["webp", "tiff", "png", "jpeg"]

    def test_full_order(self):
        argv = [
            "-f", "png", "-q", "80", "-l", "100", "-c", "6",
            "--sequential-read", "-m",
        ]
        assert labels(argv) == [
            "withMetadata", "webp", "tiff", "sequentialRead",
            "png", "limitInputPixels", "jpeg", "format",
        ]

    def test_order_independent_of_flag_order(self):
        flags = [["-f", "webp"], ["-q", "70"], ["-m"], ["--sequential-read"]]
        expected = labels([token for flag in flags for token in flag])
        for permutation in itertools.permutations(flags):
            argv = [token for flag in permutation for token in flag]
            assert labels(argv) == expected

    def test_limit_zero_is_present(self):
        assert labels(["-l", "0"]) == ["limitInputPixels"]

    def test_negated_flag_adds_nothing(self):
        assert labels(["--no-progressive", "--no-with-metadata"]) == []

    def test_png_triggers(self):
        assert labels(["--compression-level", "9"]) == ["png"]
        assert labels(["--adaptive-filtering"]) == ["png"]

    def test_jpeg_triggers(self):
        assert labels(["--chroma-subsampling", "4:4:4"]) == ["jpeg"]
        assert labels(["--trellis-quantisation"]) == ["jpeg"]
        assert labels(["--optimise"]) == ["jpeg"]

    def test_prefix_precedes_commands(self):
        argv = ["resize", "300", "200", "-q", "90", "--", "rotate", "180"]
        assert labels(argv) == ["webp", "tiff", "jpeg", "resize", "rotate"]

    def test_background_flatten_pushes_two_steps(self):
        assert labels(["background", "red", "--flatten", "negate"]) == [
            "background", "flatten", "negate",
        ]

    def test_deterministic(self):
        argv = ["-mq90", "-f", "jpeg", "blur", "--", "blur", "2", "--", "gamma"]
        assert labels(argv) == labels(argv)

    def test_optimise_matches_individual_flags(self):
        """--optimise sets the same JPEG flags as the three flags it stands for."""
        keys = ("optimise_scans", "overshoot_deringing", "trellis_quantisation")

        def jpeg_kwargs(argv):
            handle = mock.Mock()
            entry(prefix(argv), "jpeg").operation(handle)
            kwargs = handle.jpeg.call_args.kwargs
            return {key: kwargs[key] for key in keys}

        combined = jpeg_kwargs(["--optimise"])
        individual = jpeg_kwargs([
            "--optimise-scans", "-p", "--overshoot-deringing", "--trellis-quantisation",
        ])
        assert combined == individual == dict.fromkeys(keys, True)

    def test_optimise_not_undone_by_negation(self):
        handle = mock.Mock()
        entry(prefix(["--optimise", "--no-trellis-quantisation"]), "jpeg").operation(handle)
        assert handle.jpeg.call_args.kwargs["trellis_quantisation"] is True

    def test_encoders_do_not_force_format(self):
        handle = mock.Mock()
        for e in prefix(["-q", "90"]):
            e.operation(handle)
        handle.tiff.assert_called_once_with(force=False, quality=90)
        handle.webp.assert_called_once_with(force=False, quality=90)
        assert handle.jpeg.call_args.kwargs["force"] is False
        handle.to_format.assert_not_called()

    def test_prefix_on_real_handle(self):
        handle = ImageHandle("in.png", Image.new("RGB", (4, 4)))
        for e in prefix(["-q", "90", "-c", "9", "-m", "-l", "0"]):
            e.operation(handle)
        assert handle.format is None
        assert handle.encoder_options["jpeg"] == {"quality": 90}
        assert handle.encoder_options["png"] == {"compress_level": 9}
        assert handle.encoder_options["tiff"] == {"quality": 90, "compression": "jpeg"}
        assert handle.with_metadata is True
        assert handle.limit_input_pixels == 0

    def test_format_entry(self):
        handle = ImageHandle("in.png", Image.new("RGB", (4, 4)))
        entry(prefix(["-f", "webp"]), "format").operation(handle)
        assert handle.format == "webp"

    def test_validation_stops_before_queue(self):
        with pytest.raises(ValidationError):
            labels(["--optimise-scans", "flip"])
