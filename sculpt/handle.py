"""Chainable image handle over Pillow.

An ImageHandle carries one image through the pipeline together with the
settings that only matter when it is written out: output format, per-encoder
options, metadata and the background colour. Every method returns the
handle so queue steps can be written as `lambda image: image.blur(2)`.

Pixels are not decoded until an operation needs them, so input-level
settings (pixel limit, sequential read) placed at the head of the queue
take effect before the image is loaded.
"""

from __future__ import annotations

import io
import logging
import sys
from pathlib import Path
from typing import Any, BinaryIO, Sequence

from PIL import Image

from sculpt import operations
from sculpt.constants import CHROMA_SUBSAMPLING, EXTENSION, FORMAT, KERNEL, LIMIT_INPUT_PIXELS, PILLOW_FORMAT
from sculpt.errors import InputError

logger = logging.getLogger(__name__)

# Pillow's own decompression-bomb guard is replaced by limit_input_pixels.
Image.MAX_IMAGE_PIXELS = None


def load_image(source: str, sequential: bool = False) -> Image.Image:
    """Open image from file or stdin without decoding pixels.

    Args:
        source: File path, or "-" for stdin.
        sequential: Read the whole file in one forward pass into memory
            instead of letting the decoder seek in it.

    Returns:
        Lazily decoded PIL Image.
    """
    if source == "-":
        return Image.open(io.BytesIO(sys.stdin.buffer.read()))
    if sequential:
        return Image.open(io.BytesIO(Path(source).read_bytes()))
    return Image.open(source)


class ImageHandle:
    """One in-flight image plus its pending output settings.

    Attributes:
        source: Where the image came from ("-" for stdin).
        format: Output format key (see constants.FORMAT); None keeps the
            input format.
        encoder_options: Options per output format, used only if the final
            format matches.
        with_metadata: Keep EXIF and ICC data on output.
        limit_input_pixels: Refuse inputs with more pixels (0 disables).
        sequential_read: Re-read the source in one pass before decoding.
        background: Colour used by flatten, embed and rotate.
    """

    def __init__(self, source: str, image: Image.Image | None = None):
        self.source = source
        self._image = image
        self._loaded = image is not None
        self.input_format = PILLOW_FORMAT.get(image.format or "") if image is not None else None
        self.format: str | None = None
        self.encoder_options: dict[str, dict[str, Any]] = {}
        self.with_metadata = False
        self.limit_input_pixels = LIMIT_INPUT_PIXELS
        self.sequential_read = False
        self.background = "black"
        self._metadata: dict[str, Any] = {}

    @classmethod
    def open(cls, source: str) -> ImageHandle:
        """Create a handle for a source without reading pixel data yet."""
        return cls(source)

    # =========================================================================
    # Loading
    # =========================================================================

    @property
    def image(self) -> Image.Image:
        """The current PIL image, loading it on first access."""
        if not self._loaded:
            self._load()
        return self._image

    @image.setter
    def image(self, value: Image.Image) -> None:
        self._image = value
        self._loaded = True

    def _load(self) -> None:
        try:
            image = load_image(self.source, sequential=self.sequential_read)
            width, height = image.size
            if self.limit_input_pixels and width * height > self.limit_input_pixels:
                raise InputError(
                    f"Input image exceeds pixel limit: {width}x{height} > {self.limit_input_pixels}"
                )
            image.load()
        except OSError as e:
            raise InputError(f"Cannot read {self.source}: {e}") from e
        self.input_format = PILLOW_FORMAT.get(image.format or "")
        self._metadata = {
            key: image.info[key] for key in ("exif", "icc_profile") if key in image.info
        }
        if not self._metadata and image.getexif():
            self._metadata["exif"] = image.getexif().tobytes()
        logger.debug("Loaded %s (%dx%d %s)", self.source, width, height, image.mode)
        self._image = image
        self._loaded = True

    def _apply(self, func, *args, **kwargs) -> ImageHandle:
        self.image = func(self.image, *args, **kwargs)
        return self

    # =========================================================================
    # Input settings
    # =========================================================================

    def limit_pixels(self, limit: int) -> ImageHandle:
        if limit < 0:
            raise ValueError(f"Pixel limit must not be negative, got {limit}")
        self.limit_input_pixels = int(limit)
        return self

    def sequential(self) -> ImageHandle:
        self.sequential_read = True
        return self

    # =========================================================================
    # Output settings
    # =========================================================================

    def to_format(self, fmt: str) -> ImageHandle:
        if fmt not in FORMAT:
            raise ValueError(f"Unsupported output format: {fmt}")
        self.format = fmt
        return self

    def _encoder(self, fmt: str, force: bool, options: dict[str, Any]) -> ImageHandle:
        self.encoder_options[fmt] = {k: v for k, v in options.items() if v is not None}
        if force:
            self.format = fmt
        return self

    def jpeg(
        self,
        quality: int | None = None,
        progressive: bool | None = None,
        chroma_subsampling: str | None = None,
        optimise_scans: bool | None = None,
        overshoot_deringing: bool | None = None,
        trellis_quantisation: bool | None = None,
        force: bool = True,
    ) -> ImageHandle:
        """Set JPEG encoder options.

        Pillow's libjpeg has no separate scan optimisation, deringing or
        trellis switches; any of them turns on Pillow's `optimize`.
        """
        if quality is not None and not 1 <= quality <= 100:
            raise ValueError(f"Quality must be between 1 and 100, got {quality}")
        subsampling = None
        if chroma_subsampling is not None:
            if chroma_subsampling not in CHROMA_SUBSAMPLING:
                raise ValueError(f"Unknown chroma subsampling: {chroma_subsampling}")
            subsampling = CHROMA_SUBSAMPLING[chroma_subsampling]
        optimize = bool(optimise_scans or overshoot_deringing or trellis_quantisation) or None
        return self._encoder(
            "jpeg",
            force,
            {
                "quality": quality,
                "progressive": progressive,
                "subsampling": subsampling,
                "optimize": optimize,
            },
        )

    def png(
        self,
        compression_level: int | None = None,
        adaptive_filtering: bool | None = None,
        progressive: bool | None = None,
        force: bool = True,
    ) -> ImageHandle:
        """Set PNG encoder options.

        Pillow cannot write interlaced PNG, so `progressive` is accepted and
        ignored; adaptive filtering maps to Pillow's `optimize`.
        """
        if compression_level is not None and not 0 <= compression_level <= 9:
            raise ValueError(f"Compression level must be between 0 and 9, got {compression_level}")
        return self._encoder(
            "png",
            force,
            {"compress_level": compression_level, "optimize": adaptive_filtering or None},
        )

    def tiff(self, quality: int | None = None, force: bool = True) -> ImageHandle:
        if quality is not None and not 1 <= quality <= 100:
            raise ValueError(f"Quality must be between 1 and 100, got {quality}")
        options: dict[str, Any] = {"quality": quality}
        if quality is not None:
            options["compression"] = "jpeg"
        return self._encoder("tiff", force, options)

    def webp(self, quality: int | None = None, force: bool = True) -> ImageHandle:
        if quality is not None and not 1 <= quality <= 100:
            raise ValueError(f"Quality must be between 1 and 100, got {quality}")
        return self._encoder("webp", force, {"quality": quality})

    def keep_metadata(self) -> ImageHandle:
        self.with_metadata = True
        return self

    def set_background(self, colour: str) -> ImageHandle:
        operations.parse_color(colour)
        self.background = colour
        return self

    # =========================================================================
    # Transformations
    # =========================================================================

    def resize(
        self,
        width: int | None,
        height: int | None = None,
        fit: str = "crop",
        position: str = "center",
        kernel: str = "lanczos3",
        without_enlargement: bool = False,
    ) -> ImageHandle:
        if kernel not in KERNEL:
            raise ValueError(f"Unknown kernel: {kernel}")
        return self._apply(
            operations.op_resize,
            width,
            height,
            fit=fit,
            position=position,
            kernel=KERNEL[kernel],
            without_enlargement=without_enlargement,
            background=self.background,
        )

    def extract(self, left: int, top: int, width: int, height: int) -> ImageHandle:
        return self._apply(operations.op_extract, left, top, width, height)

    def rotate(self, angle: float | None = None) -> ImageHandle:
        return self._apply(operations.op_rotate, angle, background=self.background)

    def flip(self) -> ImageHandle:
        return self._apply(operations.op_flip)

    def flop(self) -> ImageHandle:
        return self._apply(operations.op_flop)

    def trim(self, tolerance: int = 10) -> ImageHandle:
        return self._apply(operations.op_trim, tolerance)

    def blur(self, sigma: float | None = None) -> ImageHandle:
        return self._apply(operations.op_blur, sigma)

    def sharpen(self, sigma: float | None = None, flat: float = 1.0, jagged: float = 2.0) -> ImageHandle:
        return self._apply(operations.op_sharpen, sigma, flat, jagged)

    def convolve(
        self,
        width: int,
        height: int,
        kernel: Sequence[float],
        scale: float | None = None,
        offset: float = 0,
    ) -> ImageHandle:
        return self._apply(operations.op_convolve, width, height, kernel, scale=scale, offset=offset)

    def gamma(self, gamma: float = 2.2) -> ImageHandle:
        return self._apply(operations.op_gamma, gamma)

    def negate(self) -> ImageHandle:
        return self._apply(operations.op_negate)

    def normalise(self) -> ImageHandle:
        return self._apply(operations.op_normalise)

    def greyscale(self) -> ImageHandle:
        return self._apply(operations.op_greyscale)

    def threshold(self, threshold: int = 128, greyscale: bool = True) -> ImageHandle:
        return self._apply(operations.op_threshold, threshold, greyscale=greyscale)

    def to_colourspace(self, colourspace: str) -> ImageHandle:
        return self._apply(operations.op_to_colourspace, colourspace)

    def flatten(self) -> ImageHandle:
        return self._apply(operations.op_flatten, background=self.background)

    def bandbool(self, operator: str) -> ImageHandle:
        return self._apply(operations.op_bandbool, operator)

    def boolean(self, operand: str, operator: str) -> ImageHandle:
        return self._apply(operations.op_boolean, load_image(operand), operator)

    def extract_channel(self, channel: str | int) -> ImageHandle:
        return self._apply(operations.op_extract_channel, channel)

    def join_channel(self, images: Sequence[str]) -> ImageHandle:
        return self._apply(operations.op_join_channel, [load_image(path) for path in images])

    def composite(
        self, overlay: str, gravity: str = "center", tile: bool = False, cutout: bool = False
    ) -> ImageHandle:
        return self._apply(
            operations.op_composite, load_image(overlay), gravity=gravity, tile=tile, cutout=cutout
        )

    # =========================================================================
    # Output
    # =========================================================================

    def output_format(self, path: str | None = None) -> str:
        """Resolve the format the image will be written in.

        Order: explicit format, then the output file's extension, then the
        input format.
        """
        if self.format:
            return self.format
        if path and path != "-":
            ext = Path(path).suffix.lower()
            for fmt, fmt_ext in EXTENSION.items():
                if ext == fmt_ext or (fmt == "jpeg" and ext == ".jpeg") or (fmt == "tiff" and ext == ".tif"):
                    return fmt
        if not self._loaded:
            self._load()
        if self.input_format is None:
            raise ValueError(f"Cannot determine output format for {self.source}")
        return self.input_format

    def _prepare(self, fmt: str) -> Image.Image:
        image = self.image
        if not self.with_metadata:
            # Pillow encoders fall back to image.info for these.
            image.info = {k: v for k, v in image.info.items() if k not in ("exif", "icc_profile")}
        if fmt == "jpeg" and image.mode not in ("L", "RGB", "CMYK"):
            image = operations.op_flatten(image, self.background).convert("RGB")
        elif fmt in ("png", "webp", "gif") and image.mode == "CMYK":
            image = image.convert("RGB")
        elif fmt == "tiff" and "compression" in self.encoder_options.get("tiff", {}) and image.mode not in ("L", "RGB"):
            image = operations.op_flatten(image, self.background).convert("RGB")
        return image

    def save_options(self, fmt: str) -> dict[str, Any]:
        """Pillow save keyword arguments for a format."""
        options = dict(self.encoder_options.get(fmt, {}))
        if self.with_metadata and fmt in ("jpeg", "png", "tiff", "webp"):
            options.update(self._metadata)
        return options

    def to_stream(self, stream: BinaryIO, path: str | None = None) -> str:
        """Encode the image into a binary stream. Returns the format used."""
        fmt = self.output_format(path)
        image = self._prepare(fmt)
        if fmt == "raw":
            stream.write(image.tobytes())
        else:
            image.save(stream, format=FORMAT[fmt], **self.save_options(fmt))
        return fmt

    def to_file(self, path: str) -> str:
        """Write the image to a file. Returns the format used.

        The image is fully encoded before `path` is opened, so a failed
        load or encode leaves no file behind, and `path` may be the source.
        """
        buffer = io.BytesIO()
        fmt = self.to_stream(buffer, path)
        Path(path).write_bytes(buffer.getvalue())
        return fmt
