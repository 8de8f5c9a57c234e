"""Image loading, saving, and in-memory encoding."""

from __future__ import annotations

import base64
import io
from pathlib import Path

import numpy as np
from PIL import Image

from pixgrid.errors import ImageDecodeError, ImageEncodeError, UnsupportedFormatError
from pixgrid.scaling import check_image

# extension -> Pillow format name
OUTPUT_FORMATS: dict[str, str] = {
    ".png": "PNG",
    ".jpg": "JPEG",
    ".jpeg": "JPEG",
}


def _to_rgba_array(img: Image.Image) -> np.ndarray:
    return np.array(img.convert("RGBA"), dtype=np.uint8)


def load_image(path: str | Path) -> np.ndarray:
    """Load an image file as an (H, W, 4) uint8 RGBA array.

    Only the first frame of multi-frame files is used.
    """
    try:
        with Image.open(path) as img:
            return _to_rgba_array(img)
    except (OSError, Image.DecompressionBombError) as exc:
        raise ImageDecodeError(f"could not decode {path}: {exc}") from exc


def decode_image(data: bytes) -> np.ndarray:
    """Decode raw upload bytes (PNG, JPEG, ...) to an RGBA array."""
    if not data:
        raise ImageDecodeError("empty image payload")
    try:
        with Image.open(io.BytesIO(data)) as img:
            return _to_rgba_array(img)
    except (OSError, Image.DecompressionBombError) as exc:
        raise ImageDecodeError(f"could not decode image: {exc}") from exc


def output_format(path: str | Path) -> str:
    """Pillow format name for *path*'s extension.

    Raises:
        UnsupportedFormatError: for anything but .png, .jpg and .jpeg.
    """
    ext = Path(path).suffix.lower()
    try:
        return OUTPUT_FORMATS[ext]
    except KeyError:
        raise UnsupportedFormatError(ext) from None


def _encode(image: np.ndarray, fmt: str, fp: io.BytesIO | Path, jpeg_quality: int) -> None:
    check_image(image)
    img = Image.fromarray(image)
    if fmt == "JPEG":
        img.convert("RGB").save(fp, format="JPEG", quality=jpeg_quality)
    else:
        img.save(fp, format=fmt)


def save_image(
    image: np.ndarray,
    path: str | Path,
    jpeg_quality: int = 95,
) -> None:
    """Write *image* to *path*, choosing the encoder by extension.

    The extension is checked before anything touches the filesystem, so an
    unsupported one never leaves an empty file behind.
    """
    path = Path(path)
    fmt = output_format(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        _encode(image, fmt, path, jpeg_quality)
    except OSError as exc:
        raise ImageEncodeError(f"could not write {path}: {exc}") from exc


def encode_png(image: np.ndarray) -> bytes:
    """Encode *image* as PNG bytes."""
    buf = io.BytesIO()
    try:
        _encode(image, "PNG", buf, jpeg_quality=95)
    except OSError as exc:
        raise ImageEncodeError(f"could not encode image: {exc}") from exc
    return buf.getvalue()


def to_data_url(png_bytes: bytes) -> str:
    """Wrap PNG bytes in a ``data:`` URL for inline previews."""
    return "data:image/png;base64," + base64.b64encode(png_bytes).decode("ascii")
