"""Read image dimensions from the container header only.

Raster formats go through Pillow, whose ``Image.open`` is lazy: it parses the
header and stops, so a 64 KB prefix of a much larger download is enough.
SVG has no binary header, so its root ``<svg>`` tag is read instead.
"""

import io
import math
import re
from pathlib import Path
from typing import Tuple, Union

from PIL import Image

# Only headers are parsed here; pixel data is never loaded
Image.MAX_IMAGE_PIXELS = None

SVG_SNIFF_BYTES = 1024
SVG_READ_BYTES = 65_536

_SVG_TAG = re.compile(rb"<svg\b[^>]*>", re.IGNORECASE | re.DOTALL)
_SVG_LENGTH = re.compile(r"^\s*([0-9]*\.?[0-9]+(?:[eE][+-]?[0-9]+)?)\s*(px)?\s*$")
_VIEWBOX_SPLIT = re.compile(r"[\s,]+")


class ImageHeaderError(ValueError):
    """Raised when the leading bytes do not yield usable dimensions."""


def _attribute(tag: str, name: str):
    match = re.search(rf"""\s{name}\s*=\s*(["'])(.*?)\1""", tag, re.IGNORECASE | re.DOTALL)
    return match.group(2) if match else None


def _svg_length(value: str) -> float:
    match = _SVG_LENGTH.match(value)
    if not match:
        raise ImageHeaderError(f"unsupported SVG length '{value}'")
    return float(match.group(1))


def looks_like_svg(data: bytes) -> bool:
    head = data[:SVG_SNIFF_BYTES].lstrip(b"\xef\xbb\xbf \t\r\n").lower()
    return head.startswith((b"<svg", b"<?xml", b"<!doctype svg"))


def svg_dimensions(data: bytes) -> Tuple[int, int]:
    match = _SVG_TAG.search(data[:SVG_READ_BYTES])
    if not match:
        raise ImageHeaderError("SVG root element not found")
    tag = match.group(0).decode("utf-8", errors="replace")

    width_attr = _attribute(tag, "width")
    height_attr = _attribute(tag, "height")
    if width_attr is not None and height_attr is not None:
        width, height = _svg_length(width_attr), _svg_length(height_attr)
    else:
        viewbox = _attribute(tag, "viewBox")
        if viewbox is None:
            raise ImageHeaderError("SVG has neither width/height nor viewBox")
        parts = [p for p in _VIEWBOX_SPLIT.split(viewbox.strip()) if p]
        if len(parts) != 4:
            raise ImageHeaderError(f"invalid SVG viewBox '{viewbox}'")
        try:
            view_width, view_height = float(parts[2]), float(parts[3])
        except ValueError:
            raise ImageHeaderError(f"invalid SVG viewBox '{viewbox}'")
        width = _svg_length(width_attr) if width_attr is not None else None
        height = _svg_length(height_attr) if height_attr is not None else None
        if width is None and height is None:
            width, height = view_width, view_height
        elif width is None:
            width = height * view_width / view_height if view_height else math.nan
        else:
            height = width * view_height / view_width if view_width else math.nan

    return _validated(width, height)


def _validated(width: float, height: float) -> Tuple[int, int]:
    if not (math.isfinite(width) and math.isfinite(height)):
        raise ImageHeaderError("dimensions are not finite")
    w, h = int(round(width)), int(round(height))
    if w <= 0 or h <= 0:
        raise ImageHeaderError(f"invalid dimensions {w}x{h}")
    return w, h


def _open_raster(source: Union[io.BytesIO, Path]) -> Tuple[int, int]:
    try:
        with Image.open(source) as img:
            width, height = img.size
    except Exception as exc:
        # UnidentifiedImageError is an OSError; truncated headers surface as
        # SyntaxError, EOFError or struct.error depending on the format plugin.
        raise ImageHeaderError(str(exc) or exc.__class__.__name__) from exc
    return _validated(width, height)


def dimensions_from_bytes(data: bytes) -> Tuple[int, int]:
    """Width and height from a leading slice of an image."""
    if not data:
        raise ImageHeaderError("no data received")
    if looks_like_svg(data):
        return svg_dimensions(data)
    return _open_raster(io.BytesIO(data))


def dimensions_from_file(path: Path) -> Tuple[int, int]:
    """Width and height of a local image, reading only its header."""
    with open(path, "rb") as f:
        head = f.read(SVG_SNIFF_BYTES)
        if looks_like_svg(head):
            return svg_dimensions(head + f.read(SVG_READ_BYTES - len(head)))
    return _open_raster(Path(path))
