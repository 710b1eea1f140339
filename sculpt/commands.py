"""Sub-commands for sculpt.

Each command declares its argparse arguments and a handler. A handler runs
once per occurrence of the command on the command line and pushes one or
more steps onto the operation queue; it never touches an image itself.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator

from sculpt.constants import BOOLEAN_OPERATORS, COLOURSPACE, GRAVITY, KERNEL
from sculpt.errors import ValidationError
from sculpt.options import parse_number
from sculpt.queue import OperationQueue

Handler = Callable[[argparse.Namespace, OperationQueue], None]


def _no_arguments(parser: argparse.ArgumentParser) -> None:
    pass


@dataclass(frozen=True)
class Command:
    """A named sub-command.

    Attributes:
        name: Token that selects the command on the command line.
        help: One-line description.
        handler: Pushes the command's steps onto a queue.
        configure: Adds the command's arguments to its parser.
        aliases: Alternative spellings of the name.
        examples: (command line, explanation) pairs shown in help.
    """

    name: str
    help: str
    handler: Handler
    configure: Callable[[argparse.ArgumentParser], None] = _no_arguments
    aliases: tuple[str, ...] = ()
    examples: tuple[tuple[str, str], ...] = ()

    def epilog(self) -> str | None:
        if not self.examples:
            return None
        lines = ["Examples:"]
        for line, explanation in self.examples:
            lines.append(f"  sculpt {line}")
            lines.append(f"      {explanation}")
        return "\n".join(lines)


class CommandRegistry:
    """Commands keyed by name (and alias).

    Listing order is alphabetical by name regardless of registration order;
    execution order is decided by the command line alone.
    """

    def __init__(self, commands: Iterable[Command] = ()):
        self._commands: dict[str, Command] = {}
        self._lookup: dict[str, Command] = {}
        for command in commands:
            self.register(command)

    def register(self, command: Command) -> None:
        for name in (command.name,) + command.aliases:
            if name in self._lookup:
                raise ValueError(f"Command name already registered: {name}")
            self._lookup[name] = command
        self._commands[command.name] = command

    def get(self, name: str) -> Command | None:
        return self._lookup.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._lookup

    def __iter__(self) -> Iterator[Command]:
        return iter(self.commands())

    def __len__(self) -> int:
        return len(self._commands)

    def commands(self) -> list[Command]:
        """All commands, sorted by name."""
        return [self._commands[name] for name in sorted(self._commands)]


# =============================================================================
# Command handlers
# =============================================================================


def cmd_background(args: argparse.Namespace, queue: OperationQueue) -> None:
    """Set the background colour, optionally flattening onto it."""
    colour = args.rgba
    queue.push("background", lambda image: image.set_background(colour))
    if args.flatten:
        queue.push("flatten", lambda image: image.flatten())


def cmd_bandbool(args: argparse.Namespace, queue: OperationQueue) -> None:
    operator = args.operator
    queue.push("bandbool", lambda image: image.bandbool(operator))


def cmd_blur(args: argparse.Namespace, queue: OperationQueue) -> None:
    sigma = args.sigma
    queue.push("blur", lambda image: image.blur(sigma))


def cmd_boolean(args: argparse.Namespace, queue: OperationQueue) -> None:
    operand, operator = args.operand, args.operator
    queue.push("boolean", lambda image: image.boolean(operand, operator))


def cmd_composite(args: argparse.Namespace, queue: OperationQueue) -> None:
    overlay = args.overlay
    params = {"gravity": args.gravity, "tile": args.tile, "cutout": args.cutout}
    queue.push("composite", lambda image: image.composite(overlay, **params))


def cmd_convolve(args: argparse.Namespace, queue: OperationQueue) -> None:
    width, height = args.width, args.height
    kernel = tuple(args.kernel)
    if len(kernel) != width * height:
        raise ValidationError(
            f"convolve: kernel of {width}x{height} needs {width * height} values, got {len(kernel)}"
        )
    scale, offset = args.scale, args.offset
    queue.push(
        "convolve",
        lambda image: image.convolve(width, height, kernel, scale=scale, offset=offset),
    )


def cmd_extract(args: argparse.Namespace, queue: OperationQueue) -> None:
    region = (args.left, args.top, args.width, args.height)
    queue.push("extract", lambda image: image.extract(*region))


def cmd_extract_channel(args: argparse.Namespace, queue: OperationQueue) -> None:
    channel = args.channel
    queue.push("extractChannel", lambda image: image.extract_channel(channel))


def cmd_flatten(args: argparse.Namespace, queue: OperationQueue) -> None:
    queue.push("flatten", lambda image: image.flatten())


def cmd_flip(args: argparse.Namespace, queue: OperationQueue) -> None:
    queue.push("flip", lambda image: image.flip())


def cmd_flop(args: argparse.Namespace, queue: OperationQueue) -> None:
    queue.push("flop", lambda image: image.flop())


def cmd_gamma(args: argparse.Namespace, queue: OperationQueue) -> None:
    gamma = args.gamma
    queue.push("gamma", lambda image: image.gamma(gamma))


def cmd_greyscale(args: argparse.Namespace, queue: OperationQueue) -> None:
    queue.push("greyscale", lambda image: image.greyscale())


def cmd_join_channel(args: argparse.Namespace, queue: OperationQueue) -> None:
    images = tuple(args.images)
    queue.push("joinChannel", lambda image: image.join_channel(images))


def cmd_negate(args: argparse.Namespace, queue: OperationQueue) -> None:
    queue.push("negate", lambda image: image.negate())


def cmd_normalise(args: argparse.Namespace, queue: OperationQueue) -> None:
    queue.push("normalise", lambda image: image.normalise())


def cmd_resize(args: argparse.Namespace, queue: OperationQueue) -> None:
    """Resize (lazy: appends one step)."""
    if args.ignore_aspect:
        fit = "ignore_aspect"
    elif args.embed:
        fit = "embed"
    elif args.max:
        fit = "max"
    elif args.min:
        fit = "min"
    else:
        fit = "crop"
    width, height = args.width, args.height
    params = {
        "fit": fit,
        "position": args.crop,
        "kernel": args.kernel,
        "without_enlargement": args.without_enlargement,
    }
    queue.push("resize", lambda image: image.resize(width, height, **params))


def cmd_rotate(args: argparse.Namespace, queue: OperationQueue) -> None:
    angle = args.angle
    queue.push("rotate", lambda image: image.rotate(angle))


def cmd_sharpen(args: argparse.Namespace, queue: OperationQueue) -> None:
    sigma, flat, jagged = args.sigma, args.flat, args.jagged
    queue.push("sharpen", lambda image: image.sharpen(sigma, flat, jagged))


def cmd_threshold(args: argparse.Namespace, queue: OperationQueue) -> None:
    threshold, greyscale = args.threshold, args.greyscale
    queue.push("threshold", lambda image: image.threshold(threshold, greyscale=greyscale))


def cmd_to_colourspace(args: argparse.Namespace, queue: OperationQueue) -> None:
    colourspace = args.colourspace
    queue.push("toColourspace", lambda image: image.to_colourspace(colourspace))


def cmd_trim(args: argparse.Namespace, queue: OperationQueue) -> None:
    tolerance = args.tolerance
    queue.push("trim", lambda image: image.trim(tolerance))


# =============================================================================
# Arguments
# =============================================================================


def _background_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("rgba", help="Background colour (name, hex, or 'transparent')")
    parser.add_argument(
        "--flatten", action="store_true", help="Merge alpha transparency onto the background"
    )


def _operator_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("operator", choices=BOOLEAN_OPERATORS, help="Bitwise operator")


def _boolean_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("operand", help="Path to the second image")
    _operator_argument(parser)


def _blur_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "sigma", nargs="?", type=float, default=None,
        help="Gaussian sigma (0.3-1000); omit for a fast box blur",
    )


def _composite_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("overlay", help="Path to the image to composite on top")
    parser.add_argument(
        "--gravity", choices=sorted(GRAVITY), default="center", help="Where to place the overlay"
    )
    parser.add_argument("--tile", action="store_true", help="Repeat the overlay across the image")
    parser.add_argument(
        "--cutout", action="store_true", help="Keep only the image under the overlay's opaque pixels"
    )


def _convolve_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("width", type=int, help="Kernel width (3 or 5)")
    parser.add_argument("height", type=int, help="Kernel height (3 or 5)")
    parser.add_argument("kernel", type=parse_number, nargs="+", help="Kernel weights, row by row")
    parser.add_argument("--scale", type=parse_number, default=None, help="Divisor for the weighted sum")
    parser.add_argument("--offset", type=parse_number, default=0, help="Added after scaling")


def _extract_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("left", type=int, help="Left edge in pixels")
    parser.add_argument("top", type=int, help="Top edge in pixels")
    parser.add_argument("width", type=int, help="Region width in pixels")
    parser.add_argument("height", type=int, help="Region height in pixels")


def _extract_channel_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("channel", help="red, green, blue, alpha, or a zero-based index")


def _gamma_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("gamma", nargs="?", type=float, default=2.2, help="Gamma (1.0-3.0, default: 2.2)")


def _join_channel_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("images", nargs="+", help="Images whose channels are appended")


def _resize_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("width", type=int, help="Target width in pixels")
    parser.add_argument("height", nargs="?", type=int, default=None, help="Target height in pixels")
    parser.add_argument(
        "--crop", choices=sorted(GRAVITY), default="center",
        help="Gravity to crop towards (default: center)",
    )
    fit = parser.add_mutually_exclusive_group()
    fit.add_argument("--embed", action="store_true", help="Fit inside and pad with the background")
    fit.add_argument("--max", action="store_true", help="Fit inside, no padding")
    fit.add_argument("--min", action="store_true", help="Cover, no cropping")
    fit.add_argument("--ignore-aspect", action="store_true", help="Stretch to the exact size")
    parser.add_argument("--kernel", choices=sorted(KERNEL), default="lanczos3", help="Resampling kernel")
    parser.add_argument(
        "--without-enlargement", action="store_true", help="Do not enlarge smaller images"
    )


def _rotate_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "angle", nargs="?", type=float, default=None,
        help="Degrees clockwise; omit to auto-orient from EXIF",
    )


def _sharpen_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("sigma", nargs="?", type=float, default=None, help="Sharpening radius")
    parser.add_argument("flat", nargs="?", type=float, default=1.0, help="Strength for flat areas")
    parser.add_argument("jagged", nargs="?", type=float, default=2.0, help="Threshold for jagged areas")


def _threshold_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("threshold", nargs="?", type=int, default=128, help="Cut-off (0-255, default: 128)")
    parser.add_argument(
        "--greyscale", "--grayscale", action=argparse.BooleanOptionalAction, default=True,
        help="Threshold luminance instead of each band",
    )


def _to_colourspace_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("colourspace", choices=sorted(COLOURSPACE), help="Target colourspace")


def _trim_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("tolerance", nargs="?", type=int, default=10, help="Tolerance (1-99, default: 10)")


# =============================================================================
# Registry
# =============================================================================


REGISTRY = CommandRegistry([
    # Geometry
    Command(
        "resize", "Resize image to width x height", cmd_resize, _resize_arguments,
        examples=(("-i in.jpg -o out/ resize 300 200", "scale and crop to exactly 300x200"),),
    ),
    Command("extract", "Extract a region of the image", cmd_extract, _extract_arguments),
    Command(
        "rotate", "Rotate the image clockwise", cmd_rotate, _rotate_arguments,
        examples=(("-i in.jpg -o out/ rotate", "auto-orient from the EXIF tag"),),
    ),
    Command("flip", "Flip the image about the vertical Y axis", cmd_flip),
    Command("flop", "Flop the image about the horizontal X axis", cmd_flop),
    Command("trim", "Trim edges matching the top-left pixel", cmd_trim, _trim_arguments),
    # Operations
    Command("blur", "Blur the image", cmd_blur, _blur_arguments),
    Command("sharpen", "Sharpen the image", cmd_sharpen, _sharpen_arguments),
    Command("convolve", "Convolve the image with a kernel", cmd_convolve, _convolve_arguments),
    Command("gamma", "Apply gamma correction", cmd_gamma, _gamma_arguments),
    Command("negate", "Produce the negative of the image", cmd_negate),
    Command("normalise", "Stretch contrast to the full range", cmd_normalise, aliases=("normalize",)),
    Command("threshold", "Threshold the image to black and white", cmd_threshold, _threshold_arguments),
    Command("boolean", "Bitwise-combine with another image", cmd_boolean, _boolean_arguments),
    Command(
        "composite", "Composite another image on top", cmd_composite, _composite_arguments,
        examples=(("-i in.jpg -o out/ composite logo.png --gravity southeast", "place logo.png in the bottom-right corner"),),
    ),
    # Colour manipulation
    Command(
        "background", "Set the background colour", cmd_background, _background_arguments,
        examples=(('-i in.png -o out.jpg background "#ff6600" --flatten', "flatten transparency onto orange"),),
    ),
    Command("flatten", "Merge alpha transparency onto the background", cmd_flatten),
    Command("greyscale", "Convert to greyscale", cmd_greyscale, aliases=("grayscale",)),
    Command(
        "to-colourspace", "Convert to another colourspace", cmd_to_colourspace,
        _to_colourspace_arguments, aliases=("to-colorspace",),
    ),
    # Channel manipulation
    Command("bandbool", "Bitwise-reduce all channels to one", cmd_bandbool, _operator_argument),
    Command(
        "extract-channel", "Extract a single channel", cmd_extract_channel, _extract_channel_arguments,
    ),
    Command("join-channel", "Append channels from other images", cmd_join_channel, _join_channel_arguments),
])
