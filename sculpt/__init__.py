"""sculpt - build image processing pipelines from the command line.

Global options and sub-commands become an ordered queue of steps, replayed
against each input with Pillow.

    sculpt -i photo.jpg -o out/ -q 90 resize 300 200 -- rotate 180
"""

__version__ = "0.1.0"

from sculpt.cli import main  # noqa: E402

__all__ = ["main"]
