"""Resolve a sculpt command line into global options and sub-commands.

The command line has the shape

    sculpt <global options> [command args...] [-- command args...]*

It is split into a global segment and one segment per command occurrence.
A command starts at any token naming a registered command (unless that
token is the value of the preceding option) or right after `--`. Each
segment is parsed strictly with its own argparse parser; global options may
appear in any segment and are merged into one namespace.

Multi-value options such as `-i` stop collecting at a command name too, so
an input file literally named like a command must be written as a path
(`-i ./negate`) or attached to its flag (`--input=negate`).

Resolution has no side effects: it builds no queue and touches no image.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from typing import Sequence

from sculpt import __version__
from sculpt.commands import REGISTRY, Command, CommandRegistry
from sculpt.errors import ParseError, ValidationError
from sculpt.options import OPTIONS, Group, OptionType

logger = logging.getLogger(__name__)

STDIO = "-"


class ArgumentParser(argparse.ArgumentParser):
    """argparse parser that raises ParseError instead of exiting.

    Usage is not printed on failure; only the message is reported.
    """

    def error(self, message: str):
        raise ParseError(f"{self.prog}: {message}")


@dataclass(frozen=True)
class Invocation:
    """Result of a successful resolution.

    Attributes:
        options: Global options. Only options the user supplied are set,
            except input/output, which default to stdin/stdout when not
            attached to a terminal.
        commands: Command occurrences with their own parsed arguments, in
            command-line order.
    """

    options: argparse.Namespace
    commands: tuple[tuple[Command, argparse.Namespace], ...]


# =============================================================================
# Parsers
# =============================================================================


def _commands_epilog(registry: CommandRegistry) -> str:
    width = max((len(command.name) for command in registry), default=0)
    lines = ["Commands:"]
    for command in registry.commands():
        lines.append(f"  {command.name.ljust(width)}  {command.help}")
    lines += [
        "",
        "Examples:",
        "  sculpt -i ./input.jpg -o ./ resize 300 200",
        "      output.jpg will be 300 pixels wide and 200 pixels high, scaled and cropped",
        "",
        "  sculpt -i ./input.jpg -o ./ -mq90 rotate 180 -- resize 300 \\",
        '      -- background "#ff6600" --flatten -- composite ./overlay.png --gravity southeast -- sharpen',
        "      upside down, 300px wide, flattened onto orange, with overlay.png in the",
        "      bottom-right corner, sharpened, keeping metadata, at quality 90",
        "",
        "Run 'sculpt <command> --help' for the options of a command.",
    ]
    return "\n".join(lines)


def create_parser(registry: CommandRegistry = REGISTRY) -> ArgumentParser:
    """Create the parser for the global segment."""
    parser = ArgumentParser(
        prog="sculpt",
        usage="%(prog)s <options> [command..]",
        description="Command-line image processing pipelines",
        epilog=_commands_epilog(registry),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
        allow_abbrev=False,
    )
    groups = {group: parser.add_argument_group(group.value) for group in Group}
    for opt in OPTIONS:
        opt.add_to(groups[opt.group])

    misc = groups[Group.MISC]
    misc.add_argument("-h", "--help", action="help", help="Show help and exit")
    misc.add_argument(
        "-v", "--version", action="version", version=f"%(prog)s {__version__}",
        help="Show version number and exit",
    )
    return parser


def create_command_parser(command: Command) -> ArgumentParser:
    """Create the parser for one command segment, global options included."""
    parser = ArgumentParser(
        prog=f"sculpt {command.name}",
        description=command.help,
        epilog=command.epilog(),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        allow_abbrev=False,
    )
    command.configure(parser)
    group = parser.add_argument_group(Group.GLOBAL.value)
    for opt in OPTIONS:
        if opt.is_global:
            opt.add_to(group)
    return parser


# =============================================================================
# Segmentation
# =============================================================================


def _value_flags() -> frozenset[str]:
    """Global flags that consume exactly one following token."""
    return frozenset(
        flag
        for opt in OPTIONS
        if opt.type in (OptionType.STRING, OptionType.NUMBER)
        for flag in opt.flags
    )


def _takes_next_token(token: str, value_flags: frozenset[str]) -> bool:
    """Whether `token` is an option whose value is the next token.

    Handles `--long`, `--long=value`, `-q`, `-q90` and bundles like `-mq`.
    """
    if token.startswith("--"):
        return "=" not in token and token in value_flags
    if not token.startswith("-") or len(token) < 2 or token[1].isdigit():
        return False
    for i, char in enumerate(token[1:], start=1):
        if f"-{char}" in value_flags:
            # The rest of the bundle, if any, is the value.
            return i == len(token) - 1
    return False


def split_segments(
    tokens: Sequence[str], registry: CommandRegistry = REGISTRY
) -> tuple[list[str], list[tuple[str, list[str]]]]:
    """Split tokens into the global segment and per-command segments.

    Only single-value options shield their value from being read as a
    command; `-i a.png flip` ends the input list at `flip`.

    Args:
        tokens: Raw command-line tokens, without the program name.
        registry: Known commands.

    Returns:
        (global tokens, [(command name, command tokens), ...])

    Raises:
        ParseError: If `--` is not followed by a command name.
    """
    value_flags = _value_flags()
    global_tokens: list[str] = []
    segments: list[tuple[str, list[str]]] = []
    current = global_tokens
    pending_value = False
    expect_command = False

    for token in tokens:
        if expect_command:
            if token not in registry:
                raise ParseError(f"Unknown command: {token}")
            current = []
            segments.append((token, current))
            expect_command = False
        elif pending_value:
            current.append(token)
            pending_value = False
        elif token == "--":
            expect_command = True
        elif token in registry:
            current = []
            segments.append((token, current))
        else:
            current.append(token)
            pending_value = _takes_next_token(token, value_flags)

    if expect_command:
        raise ParseError("Expected a command after '--'")
    return global_tokens, segments


# =============================================================================
# Validation
# =============================================================================


def _present(options: argparse.Namespace, dest: str) -> bool:
    """Supplied on the command line and not explicitly negated."""
    return hasattr(options, dest) and getattr(options, dest) is not False


def validate(options: argparse.Namespace, interactive: bool) -> None:
    """Check constraints that span several options.

    Raises:
        ValidationError: On an empty input list, a missing demanded option,
            or a failed implication.
    """
    # argparse accepts "-i" with no values; absent and empty are different.
    if hasattr(options, "input") and len(options.input) == 0:
        raise ValidationError("Not enough arguments following: i, input")

    if interactive:
        missing = [opt.name for opt in OPTIONS if opt.demand and not hasattr(options, opt.dest)]
        if missing:
            raise ValidationError(f"Missing required arguments: {', '.join(missing)}")

    by_name = {opt.name: opt for opt in OPTIONS}
    for opt in OPTIONS:
        if opt.implies is None or not _present(options, opt.dest):
            continue
        if not _present(options, by_name[opt.implies].dest):
            raise ValidationError(f"Implications failed: {opt.name} -> {opt.implies}")


# =============================================================================
# Resolution
# =============================================================================


def resolve(
    argv: Sequence[str] | None = None,
    interactive: bool | None = None,
    registry: CommandRegistry = REGISTRY,
) -> Invocation:
    """Resolve a command line.

    Args:
        argv: Tokens without the program name; defaults to sys.argv[1:].
        interactive: Whether stdin is a terminal; detected when None. In
            interactive mode input and output are mandatory, otherwise they
            default to stdin and stdout.
        registry: Known commands.

    Returns:
        The resolved Invocation.

    Raises:
        ParseError: Unknown flag or command, bad value or arity.
        ValidationError: See validate().
    """
    if argv is None:
        argv = sys.argv[1:]
    if interactive is None:
        interactive = sys.stdin.isatty()

    global_tokens, segments = split_segments(argv, registry)
    options = create_parser(registry).parse_args(global_tokens)

    global_dests = [opt.dest for opt in OPTIONS if opt.is_global]
    commands: list[tuple[Command, argparse.Namespace]] = []
    for name, tokens in segments:
        command = registry.get(name)
        args = create_command_parser(command).parse_args(tokens)
        # Global options given inside a command segment belong to the
        # global namespace; the later occurrence wins.
        for dest in global_dests:
            if hasattr(args, dest):
                setattr(options, dest, getattr(args, dest))
                delattr(args, dest)
        commands.append((command, args))

    validate(options, interactive)

    if not hasattr(options, "input"):
        options.input = [STDIO]
    if not hasattr(options, "output"):
        options.output = STDIO

    logger.debug(
        "Resolved %d command(s): %s",
        len(commands),
        " -- ".join(command.name for command, _ in commands) or "(none)",
    )
    return Invocation(options=options, commands=tuple(commands))
