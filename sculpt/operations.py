"""Image operations for sculpt.

Each operation takes a PIL Image and returns a new PIL Image. They know
nothing about the queue; ImageHandle binds them to its chained methods.
"""

from __future__ import annotations

from typing import Callable, Sequence

import numpy as np
from PIL import Image, ImageChops, ImageCms, ImageColor, ImageFilter, ImageOps

from sculpt.constants import BOOLEAN_OPERATORS, CHANNELS, COLOURSPACE, GRAVITY


def parse_color(color: str) -> tuple[int, int, int, int]:
    """Parse color string to RGBA tuple.

    Args:
        color: Color name, hex (#RGB, #RRGGBB, #RRGGBBAA), or "transparent"

    Returns:
        (R, G, B, A) tuple with values 0-255
    """
    if color.lower() == "transparent":
        return (0, 0, 0, 0)

    try:
        rgb = ImageColor.getrgb(color)
    except ValueError:
        raise ValueError(f"Invalid color: {color}")
    if len(rgb) == 3:
        return (*rgb, 255)
    return rgb


def has_alpha(image: Image.Image) -> bool:
    return image.mode in ("RGBA", "LA", "PA") or (
        image.mode == "P" and "transparency" in image.info
    )


def _on_colour_bands(
    image: Image.Image, func: Callable[[Image.Image], Image.Image]
) -> Image.Image:
    """Apply func to the colour bands only, leaving alpha untouched."""
    if image.mode == "P":
        image = image.convert("RGBA" if has_alpha(image) else "RGB")
    if image.mode == "RGBA":
        alpha = image.getchannel("A")
        result = func(image.convert("RGB"))
        result.putalpha(alpha)
        return result
    if image.mode == "LA":
        alpha = image.getchannel("A")
        result = func(image.convert("L"))
        result.putalpha(alpha)
        return result
    return func(image)


def gravity_offset(
    outer: tuple[int, int], inner: tuple[int, int], gravity: str
) -> tuple[int, int]:
    """Top-left position of `inner` placed inside `outer` at a gravity.

    Negative offsets mean `inner` is larger than `outer` along that axis.

    Examples:
        >>> gravity_offset((100, 100), (20, 10), "southeast")
        (80, 90)
    """
    try:
        fx, fy = GRAVITY[gravity.lower()]
    except KeyError:
        raise ValueError(f"Unknown gravity: {gravity}")
    return (int((outer[0] - inner[0]) * fx), int((outer[1] - inner[1]) * fy))


# =============================================================================
# Resizing and geometry
# =============================================================================


def target_size(
    current: tuple[int, int], width: int | None, height: int | None
) -> tuple[int, int]:
    """Fill in a missing dimension from the current aspect ratio."""
    w, h = current
    if width is None and height is None:
        return current
    if width is None:
        return (max(1, round(w * height / h)), height)
    if height is None:
        return (width, max(1, round(h * width / w)))
    return (width, height)


def op_resize(
    image: Image.Image,
    width: int | None,
    height: int | None = None,
    fit: str = "crop",
    position: str = "center",
    kernel: Image.Resampling = Image.Resampling.LANCZOS,
    without_enlargement: bool = False,
    background: str = "black",
) -> Image.Image:
    """Resize image.

    Fit modes:
        - "crop": cover the target box, then crop the excess at `position`
        - "embed": fit inside the target box, then pad to it with `background`
        - "max": fit inside the target box, no padding
        - "min": cover the target box, no cropping
        - "ignore_aspect": stretch to the exact box

    Args:
        image: Input image
        width, height: Target box; either may be None to keep aspect
        fit: Fit mode
        position: Gravity used for crop and embed
        kernel: Resampling filter
        without_enlargement: Never scale up
        background: Embed padding color

    Returns:
        Resized image
    """
    if width is not None and width <= 0 or height is not None and height <= 0:
        raise ValueError(f"Invalid resize dimensions: {width}x{height}")

    w, h = image.size
    target_w, target_h = target_size(image.size, width, height)

    if without_enlargement and target_w >= w and target_h >= h:
        return image

    if fit == "ignore_aspect" or width is None or height is None:
        return image.resize((target_w, target_h), kernel)

    if fit in ("crop", "min"):
        scale = max(target_w / w, target_h / h)
    elif fit in ("embed", "max"):
        scale = min(target_w / w, target_h / h)
    else:
        raise ValueError(f"Unknown fit mode: {fit}")

    if without_enlargement:
        scale = min(scale, 1.0)
    scaled_w = max(1, round(w * scale))
    scaled_h = max(1, round(h * scale))
    scaled = image.resize((scaled_w, scaled_h), kernel)

    if fit == "crop":
        # Crop only along axes that overflow the box.
        crop_w, crop_h = min(scaled_w, target_w), min(scaled_h, target_h)
        left, top = gravity_offset((scaled_w, scaled_h), (crop_w, crop_h), position)
        return scaled.crop((left, top, left + crop_w, top + crop_h))

    if fit == "embed":
        mode = "RGBA" if has_alpha(scaled) or parse_color(background)[3] < 255 else "RGB"
        canvas = Image.new(mode, (target_w, target_h), parse_color(background)[: len(mode)])
        left, top = gravity_offset((target_w, target_h), (scaled_w, scaled_h), position)
        canvas.paste(scaled.convert(mode), (left, top))
        return canvas

    return scaled


def op_extract(image: Image.Image, left: int, top: int, width: int, height: int) -> Image.Image:
    """Extract a region of the image.

    Args:
        image: Input image
        left, top: Top-left corner
        width, height: Region dimensions

    Returns:
        Cropped image
    """
    w, h = image.size
    if left < 0 or top < 0 or width <= 0 or height <= 0 or left + width > w or top + height > h:
        raise ValueError(
            f"Bad extract area {width}x{height}+{left}+{top} for {w}x{h} image"
        )
    return image.crop((left, top, left + width, top + height))


def op_rotate(
    image: Image.Image, angle: float | None = None, background: str = "black"
) -> Image.Image:
    """Rotate image clockwise.

    Args:
        image: Input image
        angle: Degrees clockwise; None auto-orients from the EXIF tag
        background: Fill color for the corners of non-right-angle rotations

    Returns:
        Rotated image
    """
    if angle is None:
        return ImageOps.exif_transpose(image)

    angle = angle % 360
    right_angles = {
        90: Image.Transpose.ROTATE_270,
        180: Image.Transpose.ROTATE_180,
        270: Image.Transpose.ROTATE_90,
    }
    if angle == 0:
        return image.copy()
    if angle in right_angles:
        return image.transpose(right_angles[angle])

    fill = parse_color(background)
    if image.mode == "RGB" and fill[3] == 255:
        fill = fill[:3]
    else:
        image = image.convert("RGBA")
    # Pillow rotates counter-clockwise.
    return image.rotate(-angle, expand=True, resample=Image.Resampling.BICUBIC, fillcolor=fill)


def op_flip(image: Image.Image) -> Image.Image:
    """Mirror image vertically (about the x axis)."""
    return image.transpose(Image.Transpose.FLIP_TOP_BOTTOM)


def op_flop(image: Image.Image) -> Image.Image:
    """Mirror image horizontally (about the y axis)."""
    return image.transpose(Image.Transpose.FLIP_LEFT_RIGHT)


def op_trim(image: Image.Image, tolerance: int = 10) -> Image.Image:
    """Trim edges that match the top-left pixel.

    Args:
        image: Input image
        tolerance: Allowed per-band difference from the corner pixel

    Returns:
        Trimmed image (unchanged if the whole image matches)
    """
    if tolerance < 1 or tolerance > 99:
        raise ValueError(f"Trim tolerance must be between 1 and 99, got {tolerance}")

    rgb = image.convert("RGB")
    corner = Image.new("RGB", rgb.size, rgb.getpixel((0, 0)))
    diff = ImageChops.difference(rgb, corner).convert("L")
    mask = diff.point(lambda p: 255 if p > tolerance else 0)
    bbox = mask.getbbox()
    if bbox is None:
        return image
    return image.crop(bbox)


# =============================================================================
# Filters and colour
# =============================================================================


def op_blur(image: Image.Image, sigma: float | None = None) -> Image.Image:
    """Blur image.

    Args:
        image: Input image
        sigma: Gaussian sigma (0.3-1000); None for a fast 3x3 box blur

    Returns:
        Blurred image
    """
    if sigma is None:
        return image.filter(ImageFilter.BoxBlur(1))
    if not 0.3 <= sigma <= 1000:
        raise ValueError(f"Blur sigma must be between 0.3 and 1000, got {sigma}")
    return image.filter(ImageFilter.GaussianBlur(sigma))


def op_sharpen(
    image: Image.Image,
    sigma: float | None = None,
    flat: float = 1.0,
    jagged: float = 2.0,
) -> Image.Image:
    """Sharpen image.

    Args:
        image: Input image
        sigma: Unsharp mask radius; None for a fast mild sharpen
        flat: Sharpening strength, as a multiple of 100%
        jagged: Minimum brightness change to sharpen

    Returns:
        Sharpened image
    """
    if sigma is None:
        return _on_colour_bands(image, lambda im: im.filter(ImageFilter.SHARPEN))
    if sigma <= 0:
        raise ValueError(f"Sharpen sigma must be positive, got {sigma}")
    unsharp = ImageFilter.UnsharpMask(
        radius=sigma, percent=int(round(flat * 100)), threshold=int(jagged)
    )
    return _on_colour_bands(image, lambda im: im.filter(unsharp))


def op_convolve(
    image: Image.Image,
    width: int,
    height: int,
    kernel: Sequence[float],
    scale: float | None = None,
    offset: float = 0,
) -> Image.Image:
    """Convolve image with a 3x3 or 5x5 kernel.

    Args:
        image: Input image
        width, height: Kernel dimensions
        kernel: width * height weights, row by row
        scale: Divisor for the weighted sum; defaults to the sum of weights
        offset: Added after scaling

    Returns:
        Convolved image
    """
    if (width, height) not in ((3, 3), (5, 5)):
        raise ValueError(f"Kernel must be 3x3 or 5x5, got {width}x{height}")
    if len(kernel) != width * height:
        raise ValueError(
            f"Kernel of {width}x{height} needs {width * height} values, got {len(kernel)}"
        )
    flt = ImageFilter.Kernel((width, height), list(kernel), scale=scale, offset=offset)
    return _on_colour_bands(image, lambda im: im.filter(flt))


def op_gamma(image: Image.Image, gamma: float = 2.2) -> Image.Image:
    """Apply gamma correction.

    Args:
        image: Input image
        gamma: Gamma value between 1.0 and 3.0

    Returns:
        Corrected image
    """
    if not 1.0 <= gamma <= 3.0:
        raise ValueError(f"Gamma must be between 1.0 and 3.0, got {gamma}")
    lut = [round(255 * (i / 255) ** (1 / gamma)) for i in range(256)]
    return _on_colour_bands(image, lambda im: im.point(lut * len(im.getbands())))


def op_negate(image: Image.Image) -> Image.Image:
    """Invert colours, keeping alpha."""
    return _on_colour_bands(image, ImageOps.invert)


def op_normalise(image: Image.Image) -> Image.Image:
    """Stretch contrast to the full 0-255 range."""
    return _on_colour_bands(image, ImageOps.autocontrast)


def op_greyscale(image: Image.Image) -> Image.Image:
    """Convert to single-band luminance, keeping alpha."""
    return image.convert("LA" if has_alpha(image) else "L")


def op_threshold(image: Image.Image, threshold: int = 128, greyscale: bool = True) -> Image.Image:
    """Set pixels >= threshold to 255 and all others to 0.

    Args:
        image: Input image
        threshold: Cut-off between 0 and 255
        greyscale: Threshold luminance (True) or each band on its own (False)

    Returns:
        Thresholded image
    """
    if not 0 <= threshold <= 255:
        raise ValueError(f"Threshold must be between 0 and 255, got {threshold}")
    if greyscale:
        image = image.convert("L")
    elif image.mode == "P":
        image = image.convert("RGBA" if has_alpha(image) else "RGB")
    arr = np.asarray(image)
    out = np.where(arr >= threshold, 255, 0).astype(np.uint8)
    return _from_array(out, image.mode)


def op_to_colourspace(image: Image.Image, colourspace: str) -> Image.Image:
    """Convert to another colourspace.

    Args:
        image: Input image
        colourspace: One of b-w, cmyk, lab, rgb, srgb

    Returns:
        Converted image
    """
    try:
        mode = COLOURSPACE[colourspace.lower()]
    except KeyError:
        raise ValueError(f"Unknown colourspace: {colourspace}")
    if image.mode == mode:
        return image
    # Pillow converts to and from LAB only through a colour transform.
    if image.mode == "LAB":
        image = _lab_transform(image, "LAB", "RGB")
        if mode == "RGB":
            return image
    if mode == "LAB":
        return _lab_transform(image.convert("RGB"), "RGB", "LAB")
    return image.convert(mode)


def _lab_transform(image: Image.Image, in_mode: str, out_mode: str) -> Image.Image:
    profiles = {"RGB": ImageCms.createProfile("sRGB"), "LAB": ImageCms.createProfile("LAB")}
    transform = ImageCms.buildTransform(profiles[in_mode], profiles[out_mode], in_mode, out_mode)
    return ImageCms.applyTransform(image, transform)


def op_flatten(image: Image.Image, background: str = "black") -> Image.Image:
    """Merge alpha onto a background colour."""
    if not has_alpha(image):
        return image
    rgba = image.convert("RGBA")
    canvas = Image.new("RGBA", rgba.size, parse_color(background)[:3] + (255,))
    return Image.alpha_composite(canvas, rgba).convert("RGB")


# =============================================================================
# Channel operations
# =============================================================================


def _from_array(arr: np.ndarray, mode: str) -> Image.Image:
    """Build an image of a given mode from a uint8 (H, W[, bands]) array."""
    arr = np.ascontiguousarray(arr, dtype=np.uint8)
    return Image.frombytes(mode, (arr.shape[1], arr.shape[0]), arr.tobytes())


def _bitwise(operator: str) -> np.ufunc:
    if operator not in BOOLEAN_OPERATORS:
        raise ValueError(
            f"Operator must be one of {', '.join(BOOLEAN_OPERATORS)}, got {operator!r}"
        )
    return {"and": np.bitwise_and, "or": np.bitwise_or, "eor": np.bitwise_xor}[operator]


def _as_8bit(image: Image.Image) -> Image.Image:
    if image.mode in ("L", "LA", "RGB", "RGBA", "CMYK"):
        return image
    return image.convert("RGBA" if has_alpha(image) else "RGB")


def op_bandbool(image: Image.Image, operator: str) -> Image.Image:
    """Reduce all bands to one with a bitwise operator.

    Args:
        image: Input image
        operator: "and", "or" or "eor"

    Returns:
        Single-band image
    """
    func = _bitwise(operator)
    arr = np.asarray(_as_8bit(image))
    if arr.ndim == 2:
        return _from_array(arr, "L")
    return _from_array(func.reduce(arr, axis=2), "L")


def op_boolean(image: Image.Image, operand: Image.Image, operator: str) -> Image.Image:
    """Combine two same-sized images pixel by pixel with a bitwise operator.

    Args:
        image: Input image
        operand: Second image; converted to the first image's mode
        operator: "and", "or" or "eor"

    Returns:
        Combined image
    """
    func = _bitwise(operator)
    image = _as_8bit(image)
    if operand.size != image.size:
        raise ValueError(
            f"Boolean operand is {operand.size[0]}x{operand.size[1]}, "
            f"expected {image.size[0]}x{image.size[1]}"
        )
    operand = operand.convert(image.mode)
    out = func(np.asarray(image), np.asarray(operand)).astype(np.uint8)
    return _from_array(out, image.mode)


def op_extract_channel(image: Image.Image, channel: str | int) -> Image.Image:
    """Extract a single band.

    Args:
        image: Input image
        channel: red, green, blue, alpha, or a zero-based band index

    Returns:
        Single-band image
    """
    if isinstance(channel, str):
        if channel.isdigit():
            index = int(channel)
        elif channel.lower() in CHANNELS:
            index = CHANNELS[channel.lower()]
        else:
            raise ValueError(f"Unknown channel: {channel}")
    else:
        index = channel
    image = _as_8bit(image)
    bands = image.getbands()
    if not 0 <= index < len(bands):
        raise ValueError(f"Cannot extract channel {channel} from {len(bands)}-band image")
    return image.getchannel(index)


_MODE_FOR_BANDS = {1: "L", 2: "LA", 3: "RGB", 4: "RGBA"}


def op_join_channel(image: Image.Image, others: Sequence[Image.Image]) -> Image.Image:
    """Append the bands of other images to this one.

    Args:
        image: Input image
        others: Images whose bands are appended, resized to match if needed

    Returns:
        Image with the combined bands (at most four)
    """
    bands = list(_as_8bit(image).split())
    for other in others:
        other = _as_8bit(other)
        if other.size != image.size:
            other = other.resize(image.size, Image.Resampling.LANCZOS)
        bands.extend(other.split())
    if len(bands) not in _MODE_FOR_BANDS:
        raise ValueError(f"Cannot join into a {len(bands)}-band image (maximum 4)")
    bands = [band.convert("L") for band in bands]
    return Image.merge(_MODE_FOR_BANDS[len(bands)], bands)


# =============================================================================
# Composition
# =============================================================================


def op_tile(image: Image.Image, cols: int, rows: int) -> Image.Image:
    """Tile an image NxM times.

    Args:
        image: Image to tile
        cols: Number of columns
        rows: Number of rows

    Returns:
        Tiled image
    """
    w, h = image.size
    result = Image.new("RGBA", (w * cols, h * rows), (0, 0, 0, 0))

    for row in range(rows):
        for col in range(cols):
            result.paste(image, (col * w, row * h))

    return result


def op_composite(
    image: Image.Image,
    overlay: Image.Image,
    gravity: str = "center",
    tile: bool = False,
    cutout: bool = False,
) -> Image.Image:
    """Composite an overlay on top of the image.

    Args:
        image: Base image
        overlay: Image to overlay; must not be larger than the base
        gravity: Where to place the overlay
        tile: Repeat the overlay across the whole base
        cutout: Keep only base pixels under the overlay's opaque pixels

    Returns:
        Combined image (RGBA)
    """
    base = image.convert("RGBA")
    overlay = overlay.convert("RGBA")
    bw, bh = base.size
    ow, oh = overlay.size
    if ow > bw or oh > bh:
        raise ValueError(f"Overlay {ow}x{oh} is larger than the image {bw}x{bh}")

    layer = Image.new("RGBA", base.size, (0, 0, 0, 0))
    if tile:
        tiled = op_tile(overlay, -(-bw // ow), -(-bh // oh))
        left, top = gravity_offset(tiled.size, base.size, gravity)
        layer.paste(tiled.crop((left, top, left + bw, top + bh)), (0, 0))
    else:
        layer.paste(overlay, gravity_offset(base.size, overlay.size, gravity))

    if cutout:
        alpha = ImageChops.multiply(base.getchannel("A"), layer.getchannel("A"))
        base.putalpha(alpha)
        return base

    # Alpha composite
    return Image.alpha_composite(base, layer)
