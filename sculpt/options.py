"""Declarative table of sculpt's global options.

Each option is described once here and turned into argparse arguments by
the resolver. The table is checked for consistency when this module is
imported; a broken table raises SchemaViolation before anything is parsed.
"""

from __future__ import annotations

import argparse
import enum
from dataclasses import dataclass
from typing import Any, Iterable

from sculpt.constants import FORMAT, LIMIT_INPUT_PIXELS
from sculpt.errors import SchemaViolation


class OptionType(enum.Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"


class Group(enum.Enum):
    GLOBAL = "Global Options"
    OPTIMIZATION = "Optimization Options"
    MISC = "Misc. Options"


def parse_number(s: str) -> int | float:
    """Parse a numeric option value, preferring int over float.

    Examples:
        >>> parse_number("90")
        90
        >>> parse_number("0.5")
        0.5
    """
    try:
        return int(s)
    except ValueError:
        pass
    try:
        return float(s)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: {s!r}")


@dataclass(frozen=True)
class OptionDescriptor:
    """One entry of the option table.

    Attributes:
        name: Canonical kebab-case name, also the long flag.
        desc: Help text.
        type: Value type.
        group: Help section the option is listed under.
        aliases: Extra names; one-letter aliases become short flags.
        default_description: What happens when the option is absent.
        is_global: Accepted after any sub-command, not only before the first.
        demand: Mandatory when attached to an interactive terminal.
        implies: Name of an option that must be present when this one is.
        nargs: Number of values consumed (None for the type's default).
        choices: Allowed values.
    """

    name: str
    desc: str
    type: OptionType = OptionType.STRING
    group: Group = Group.GLOBAL
    aliases: tuple[str, ...] = ()
    default_description: str | None = None
    is_global: bool = True
    demand: bool = False
    implies: str | None = None
    nargs: int | None = None
    choices: tuple[str, ...] | None = None

    @property
    def dest(self) -> str:
        return self.name.replace("-", "_")

    @property
    def flags(self) -> list[str]:
        names = (self.name,) + self.aliases
        return [f"-{n}" if len(n) == 1 else f"--{n}" for n in names]

    @property
    def takes_value(self) -> bool:
        return self.type is not OptionType.BOOLEAN

    def add_to(self, parser: argparse.ArgumentParser) -> None:
        """Register this option on an argparse parser.

        Defaults are suppressed so the parsed namespace only carries options
        the user actually supplied.
        """
        help_text = self.desc
        if self.default_description is not None:
            help_text += f" [default: {self.default_description}]"

        kwargs: dict[str, Any] = {
            "dest": self.dest,
            "default": argparse.SUPPRESS,
            "help": help_text,
        }
        if self.type is OptionType.BOOLEAN:
            kwargs["action"] = argparse.BooleanOptionalAction
        elif self.type is OptionType.ARRAY:
            # Zero values is accepted here and rejected by the resolver, so
            # "given but empty" stays distinguishable from "absent".
            kwargs["nargs"] = "*"
        else:
            if self.type is OptionType.NUMBER:
                kwargs["type"] = parse_number
            if self.nargs is not None and self.nargs != 1:
                kwargs["nargs"] = self.nargs
            if self.choices:
                kwargs["choices"] = self.choices
            kwargs["metavar"] = self.dest.upper()

        parser.add_argument(*self.flags, **kwargs)


# =============================================================================
# Option table
# =============================================================================


OPTIONS: tuple[OptionDescriptor, ...] = (
    # Global options.
    OptionDescriptor(
        "compression-level",
        "zlib compression level",
        type=OptionType.NUMBER,
        aliases=("c",),
        default_description="6",
        nargs=1,
    ),
    OptionDescriptor(
        "format",
        "Force output to a given format",
        aliases=("f",),
        default_description="input",
        nargs=1,
        choices=tuple(sorted(FORMAT)),
    ),
    OptionDescriptor(
        "input",
        "Path to (an) image file(s)",
        type=OptionType.ARRAY,
        aliases=("i",),
        default_description="stdin",
        demand=True,
        implies="output",
    ),
    OptionDescriptor(
        "limit-input-pixels",
        "Do not process input images where the number of pixels "
        "(width x height) exceeds this limit",
        type=OptionType.NUMBER,
        aliases=("l",),
        default_description=str(LIMIT_INPUT_PIXELS),
        nargs=1,
    ),
    OptionDescriptor(
        "output",
        "Directory or file to write the image(s) to",
        aliases=("o",),
        default_description="stdout",
        demand=True,
        nargs=1,
    ),
    OptionDescriptor(
        "progressive",
        "Use progressive (interlace) scan",
        type=OptionType.BOOLEAN,
        aliases=("p",),
    ),
    OptionDescriptor(
        "quality",
        "Quality",
        type=OptionType.NUMBER,
        aliases=("q",),
        default_description="80",
        nargs=1,
    ),
    OptionDescriptor(
        "with-metadata",
        "Include all metadata (EXIF, XMP, IPTC) from the input image in the output image",
        type=OptionType.BOOLEAN,
        aliases=("m",),
    ),
    # Optimization options.
    OptionDescriptor(
        "adaptive-filtering",
        "Use adaptive row filtering",
        type=OptionType.BOOLEAN,
        group=Group.OPTIMIZATION,
    ),
    OptionDescriptor(
        "chroma-subsampling",
        'Set to "4:4:4" to prevent chroma subsampling when quality <= 90',
        group=Group.OPTIMIZATION,
        default_description="4:2:0",
        nargs=1,
    ),
    OptionDescriptor(
        "optimise",
        "Apply optimiseScans, overshootDeringing, and trellisQuantisation",
        type=OptionType.BOOLEAN,
        group=Group.OPTIMIZATION,
        aliases=("optimize",),
    ),
    OptionDescriptor(
        "optimise-scans",
        "Optimise progressive scans",
        type=OptionType.BOOLEAN,
        group=Group.OPTIMIZATION,
        aliases=("optimize-scans",),
        implies="progressive",
    ),
    OptionDescriptor(
        "overshoot-deringing",
        "Apply overshoot deringing",
        type=OptionType.BOOLEAN,
        group=Group.OPTIMIZATION,
    ),
    OptionDescriptor(
        "sequential-read",
        "Read the input in a single forward pass instead of seeking",
        type=OptionType.BOOLEAN,
        group=Group.OPTIMIZATION,
    ),
    OptionDescriptor(
        "trellis-quantisation",
        "Apply trellis quantisation",
        type=OptionType.BOOLEAN,
        group=Group.OPTIMIZATION,
    ),
    # Misc. options.
    OptionDescriptor(
        "verbose",
        "Log every pipeline step to stderr",
        type=OptionType.BOOLEAN,
        group=Group.MISC,
        is_global=False,
    ),
)


def validate_schema(options: Iterable[OptionDescriptor]) -> None:
    """Check that the option table is internally consistent.

    Raises:
        SchemaViolation: On duplicate names or flags, dangling `implies`
            targets, or attributes that make no sense for the option's type.
    """
    options = list(options)
    names = {opt.name for opt in options}
    if len(names) != len(options):
        raise SchemaViolation("Duplicate option names in schema")

    seen_flags: dict[str, str] = {}
    for opt in options:
        for flag in opt.flags:
            if flag in seen_flags:
                raise SchemaViolation(
                    f"Flag {flag} of '{opt.name}' already used by '{seen_flags[flag]}'"
                )
            seen_flags[flag] = opt.name
        if opt.type is OptionType.BOOLEAN:
            negated = f"--no-{opt.name}"
            if negated in seen_flags:
                raise SchemaViolation(f"Flag {negated} of '{opt.name}' already in use")
            if opt.nargs is not None or opt.choices:
                raise SchemaViolation(
                    f"Boolean option '{opt.name}' cannot declare nargs or choices"
                )
        if opt.implies is not None and opt.implies not in names:
            raise SchemaViolation(
                f"Option '{opt.name}' implies unknown option '{opt.implies}'"
            )
        if opt.implies == opt.name:
            raise SchemaViolation(f"Option '{opt.name}' implies itself")
        if opt.demand and not opt.is_global:
            raise SchemaViolation(f"Demanded option '{opt.name}' must be global")


def get_option(name: str) -> OptionDescriptor:
    for opt in OPTIONS:
        if opt.name == name:
            return opt
    raise KeyError(name)


validate_schema(OPTIONS)
