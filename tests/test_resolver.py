"""Tests for option schema, argument resolution and the command registry."""

from __future__ import annotations

from unittest import mock

import pytest

from sculpt.commands import REGISTRY, Command, CommandRegistry
from sculpt.errors import ParseError, SchemaViolation, ValidationError
from sculpt.options import OPTIONS, OptionDescriptor, OptionType, get_option, validate_schema
from sculpt.resolver import resolve, split_segments


def names(invocation) -> list[str]:
    return [command.name for command, _ in invocation.commands]


class TestOptionSchema:
    """Tests for the declarative option table."""

    def test_table_is_valid(self):
        validate_schema(OPTIONS)

    def test_duplicate_alias_rejected(self):
        table = [
            OptionDescriptor("quality", "Quality", aliases=("q",)),
            OptionDescriptor("quiet", "Quiet", type=OptionType.BOOLEAN, aliases=("q",)),
        ]
        with pytest.raises(SchemaViolation, match="-q"):
            validate_schema(table)

    def test_dangling_implication_rejected(self):
        table = [OptionDescriptor("a", "A", type=OptionType.BOOLEAN, implies="missing")]
        with pytest.raises(SchemaViolation, match="missing"):
            validate_schema(table)

    def test_boolean_with_nargs_rejected(self):
        table = [OptionDescriptor("flag", "Flag", type=OptionType.BOOLEAN, nargs=1)]
        with pytest.raises(SchemaViolation):
            validate_schema(table)

    def test_demanded_option_must_be_global(self):
        table = [OptionDescriptor("input", "In", demand=True, is_global=False)]
        with pytest.raises(SchemaViolation):
            validate_schema(table)

    def test_flags_from_aliases(self):
        assert get_option("compression-level").flags == ["--compression-level", "-c"]
        assert get_option("optimise").flags == ["--optimise", "--optimize"]

    def test_implications(self):
        assert get_option("input").implies == "output"
        assert get_option("optimise-scans").implies == "progressive"


class TestSplitSegments:
    """Tests for splitting tokens into global and command segments."""

    def test_globals_only(self):
        assert split_segments(["-q", "90"]) == (["-q", "90"], [])

    def test_commands_by_name(self):
        global_tokens, segments = split_segments(
            ["-q", "90", "resize", "300", "200", "rotate", "180"]
        )
        assert global_tokens == ["-q", "90"]
        assert segments == [("resize", ["300", "200"]), ("rotate", ["180"])]

    def test_double_dash_separator(self):
        _, segments = split_segments(["rotate", "180", "--", "resize", "300"])
        assert segments == [("rotate", ["180"]), ("resize", ["300"])]

    def test_option_value_named_like_command(self):
        """A value following a single-value flag is never a command."""
        global_tokens, segments = split_segments(["-o", "flip", "flop"])
        assert global_tokens == ["-o", "flip"]
        assert segments == [("flop", [])]

    def test_bundled_short_flags(self):
        global_tokens, segments = split_segments(["-mq", "negate"])
        assert global_tokens == ["-mq", "negate"]
        assert segments == []

    def test_bundled_value_attached(self):
        global_tokens, segments = split_segments(["-mq90", "negate"])
        assert global_tokens == ["-mq90"]
        assert segments == [("negate", [])]

    def test_long_flag_with_equals(self):
        _, segments = split_segments(["--output=out", "flip"])
        assert segments == [("flip", [])]

    def test_unknown_command_after_separator(self):
        with pytest.raises(ParseError, match="Unknown command: frobnicate"):
            split_segments(["flip", "--", "frobnicate"])

    def test_trailing_separator(self):
        with pytest.raises(ParseError):
            split_segments(["flip", "--"])


class TestResolve:
    """Tests for resolve()."""

    def test_defaults_to_stdio_when_piped(self):
        invocation = resolve([], interactive=False)
        assert invocation.options.input == ["-"]
        assert invocation.options.output == "-"
        assert invocation.commands == ()

    def test_input_and_output(self):
        invocation = resolve(["-i", "a.jpg", "b.jpg", "-o", "out/"], interactive=True)
        assert invocation.options.input == ["a.jpg", "b.jpg"]
        assert invocation.options.output == "out/"

    def test_interactive_requires_input(self):
        with pytest.raises(ValidationError, match="input"):
            resolve(["-o", "out/"], interactive=True)

    def test_interactive_requires_both(self):
        with pytest.raises(ValidationError, match="input, output"):
            resolve([], interactive=True)

    def test_interactive_detected_from_stdin(self):
        with mock.patch("sys.stdin") as stdin:
            stdin.isatty.return_value = True
            with pytest.raises(ValidationError):
                resolve([])

    def test_empty_input_list(self):
        """-i with no values is a validation error, not a missing option."""
        with pytest.raises(ValidationError, match="Not enough arguments following: i, input"):
            resolve(["-i", "-o", "out/"], interactive=False)

    def test_input_named_like_command(self):
        """A bare command name ends the input list; a path or --input= keeps it."""
        with pytest.raises(ValidationError, match="Not enough arguments following: i, input"):
            resolve(["-i", "negate", "-o", "out/"], interactive=False)
        invocation = resolve(["-i", "./negate", "-o", "out/"], interactive=False)
        assert invocation.options.input == ["./negate"]
        assert invocation.commands == ()
        invocation = resolve(["--input=negate", "-o", "out/"], interactive=False)
        assert invocation.options.input == ["negate"]
        assert invocation.commands == ()

    def test_input_implies_output(self):
        with pytest.raises(ValidationError, match="input -> output"):
            resolve(["-i", "a.jpg"], interactive=False)

    def test_optimise_scans_implies_progressive(self):
        with pytest.raises(ValidationError, match="optimise-scans -> progressive"):
            resolve(["--optimise-scans"], interactive=False)

    def test_optimise_scans_with_progressive(self):
        invocation = resolve(["--optimise-scans", "--progressive"], interactive=False)
        assert invocation.options.optimise_scans is True
        assert invocation.options.progressive is True

    def test_negated_flag_does_not_trigger_implication(self):
        invocation = resolve(["--no-optimise-scans"], interactive=False)
        assert invocation.options.optimise_scans is False

    def test_unknown_flag(self):
        with pytest.raises(ParseError, match="--not-a-real-option"):
            resolve(["--not-a-real-option"], interactive=False)

    def test_unknown_flag_in_command(self):
        with pytest.raises(ParseError, match="--bogus"):
            resolve(["resize", "300", "--bogus"], interactive=False)

    def test_unknown_positional(self):
        with pytest.raises(ParseError, match="resze"):
            resolve(["-o", "out.png", "resze", "300"], interactive=False)

    def test_bad_number(self):
        with pytest.raises(ParseError, match="invalid number"):
            resolve(["-q", "lots"], interactive=False)

    def test_bad_format(self):
        with pytest.raises(ParseError):
            resolve(["-f", "bmp"], interactive=False)

    def test_bad_command_arity(self):
        with pytest.raises(ParseError):
            resolve(["extract", "1", "2"], interactive=False)

    def test_aliases_resolve_to_same_field(self):
        short = resolve(["-q", "90", "-c", "9", "-m"], interactive=False).options
        long = resolve(
            ["--with-metadata", "--compression-level", "9", "--quality", "90"],
            interactive=False,
        ).options
        assert short.quality == long.quality == 90
        assert short.compression_level == long.compression_level == 9
        assert short.with_metadata is long.with_metadata is True

    def test_american_spelling(self):
        assert resolve(["--optimize"], interactive=False).options.optimise is True

    def test_bundled_short_flags(self):
        options = resolve(["-mq90"], interactive=False).options
        assert options.with_metadata is True
        assert options.quality == 90

    def test_only_supplied_options_present(self):
        options = resolve(["-q", "90"], interactive=False).options
        assert not hasattr(options, "progressive")
        assert not hasattr(options, "limit_input_pixels")

    def test_explicit_zero_is_present(self):
        options = resolve(["-l", "0"], interactive=False).options
        assert options.limit_input_pixels == 0

    def test_commands_in_order(self):
        invocation = resolve(["resize", "300", "200", "rotate", "180"], interactive=False)
        assert names(invocation) == ["resize", "rotate"]
        resize_args = invocation.commands[0][1]
        assert (resize_args.width, resize_args.height) == (300, 200)
        assert invocation.commands[1][1].angle == 180.0

    def test_repeated_command(self):
        invocation = resolve(["blur", "--", "blur", "2"], interactive=False)
        assert names(invocation) == ["blur", "blur"]
        assert invocation.commands[0][1].sigma is None
        assert invocation.commands[1][1].sigma == 2.0

    def test_command_alias(self):
        invocation = resolve(["grayscale", "normalize"], interactive=False)
        assert names(invocation) == ["greyscale", "normalise"]

    def test_global_option_after_command(self):
        invocation = resolve(["resize", "300", "-q", "50"], interactive=False)
        assert invocation.options.quality == 50
        assert not hasattr(invocation.commands[0][1], "quality")

    def test_later_global_occurrence_wins(self):
        invocation = resolve(["-q", "90", "flip", "-q", "40"], interactive=False)
        assert invocation.options.quality == 40

    def test_command_options(self):
        invocation = resolve(
            ["composite", "logo.png", "--gravity", "southeast", "--tile"], interactive=False
        )
        args = invocation.commands[0][1]
        assert args.overlay == "logo.png"
        assert args.gravity == "southeast"
        assert args.tile is True
        assert args.cutout is False

    def test_negative_rotation(self):
        invocation = resolve(["rotate", "-90"], interactive=False)
        assert invocation.commands[0][1].angle == -90.0

    def test_help_exits_cleanly(self, capsys):
        with pytest.raises(SystemExit) as exc:
            resolve(["--help"], interactive=False)
        assert exc.value.code == 0
        out = capsys.readouterr().out
        assert "Global Options" in out
        assert "Optimization Options" in out
        assert out.index("background") < out.index("blur") < out.index("trim")

    def test_resolution_does_not_run_handlers(self):
        handler = mock.Mock()
        registry = CommandRegistry([Command("flip", "Flip", handler)])
        with pytest.raises(ParseError):
            resolve(["flip", "--not-a-real-option"], interactive=False, registry=registry)
        resolve(["flip"], interactive=False, registry=registry)
        handler.assert_not_called()


class TestCommandRegistry:
    """Tests for the command registry."""

    def test_listing_is_alphabetical(self):
        listed = [command.name for command in REGISTRY.commands()]
        assert listed == sorted(listed)

    def test_listing_ignores_registration_order(self):
        registry = CommandRegistry([
            Command("rotate", "Rotate", mock.Mock()),
            Command("blur", "Blur", mock.Mock()),
            Command("negate", "Negate", mock.Mock()),
        ])
        assert [command.name for command in registry] == ["blur", "negate", "rotate"]

    def test_duplicate_name_rejected(self):
        registry = CommandRegistry([Command("flip", "Flip", mock.Mock())])
        with pytest.raises(ValueError):
            registry.register(Command("flip", "Flip again", mock.Mock()))

    def test_lookup_by_alias(self):
        assert REGISTRY.get("grayscale") is REGISTRY.get("greyscale")
        assert "to-colorspace" in REGISTRY
        assert REGISTRY.get("nope") is None

    def test_expected_commands(self):
        expected = {
            "background", "bandbool", "blur", "boolean", "composite", "convolve",
            "extract", "extract-channel", "flatten", "flip", "flop", "gamma",
            "greyscale", "join-channel", "negate", "normalise", "resize",
            "rotate", "sharpen", "threshold", "to-colourspace", "trim",
        }
        assert {command.name for command in REGISTRY} == expected
