"""Lookup tables shared by the option schema, commands and image handle."""

from __future__ import annotations

from PIL import Image

# Output formats accepted by --format, mapped to Pillow format names.
FORMAT: dict[str, str] = {
    "gif": "GIF",
    "jpeg": "JPEG",
    "png": "PNG",
    "raw": "RAW",
    "tiff": "TIFF",
    "webp": "WEBP",
}

# File extension written for each output format.
EXTENSION: dict[str, str] = {
    "gif": ".gif",
    "jpeg": ".jpg",
    "png": ".png",
    "raw": ".raw",
    "tiff": ".tiff",
    "webp": ".webp",
}

# Pillow format name (as reported by Image.format) -> our format key.
PILLOW_FORMAT: dict[str, str] = {v: k for k, v in FORMAT.items()}
PILLOW_FORMAT["MPO"] = "jpeg"

# Default for --limit-input-pixels.
LIMIT_INPUT_PIXELS = 0x3FFF * 0x3FFF

# Compass gravities, as (horizontal, vertical) fractions of the free space.
GRAVITY: dict[str, tuple[float, float]] = {
    "north": (0.5, 0.0),
    "northeast": (1.0, 0.0),
    "east": (1.0, 0.5),
    "southeast": (1.0, 1.0),
    "south": (0.5, 1.0),
    "southwest": (0.0, 1.0),
    "west": (0.0, 0.5),
    "northwest": (0.0, 0.0),
    "center": (0.5, 0.5),
    "centre": (0.5, 0.5),
}

KERNEL: dict[str, Image.Resampling] = {
    "nearest": Image.Resampling.NEAREST,
    "cubic": Image.Resampling.BICUBIC,
    "lanczos2": Image.Resampling.LANCZOS,
    "lanczos3": Image.Resampling.LANCZOS,
}

# Colourspace name -> Pillow mode.
COLOURSPACE: dict[str, str] = {
    "b-w": "L",
    "cmyk": "CMYK",
    "lab": "LAB",
    "rgb": "RGB",
    "srgb": "RGB",
}

# JPEG chroma subsampling -> Pillow `subsampling` save option.
CHROMA_SUBSAMPLING: dict[str, int] = {
    "4:4:4": 0,
    "4:2:2": 1,
    "4:2:0": 2,
}

BOOLEAN_OPERATORS = ("and", "or", "eor")

CHANNELS: dict[str, int] = {
    "red": 0,
    "green": 1,
    "blue": 2,
    "alpha": 3,
}
