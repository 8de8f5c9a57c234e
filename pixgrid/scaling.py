"""Nearest-neighbour resampling: centre-sampled downscale and block upscale."""

from __future__ import annotations

import numpy as np

from pixgrid.errors import InvalidImageError, InvalidParameterError


def check_image(image: np.ndarray) -> None:
    """Raise :class:`InvalidImageError` unless *image* is (H, W, 4) uint8."""
    if not isinstance(image, np.ndarray):
        raise InvalidImageError(f"expected a numpy array, got {type(image).__name__}")
    if image.ndim != 3 or image.shape[2] != 4:
        raise InvalidImageError(f"expected shape (H, W, 4), got {image.shape}")
    if image.dtype != np.uint8:
        raise InvalidImageError(f"expected dtype uint8, got {image.dtype}")
    if image.shape[0] == 0 or image.shape[1] == 0:
        raise InvalidImageError("image has no pixels")


def target_height(original_width: int, original_height: int, target_width: int) -> int:
    """Height that keeps the aspect ratio at *target_width* (truncated, not rounded)."""
    return original_height * target_width // original_width


def downscale(image: np.ndarray, target_width: int) -> np.ndarray:
    """Shrink *image* to *target_width* columns by centre sampling.

    Destination pixel ``(x, y)`` copies the source pixel at
    ``floor((x + 0.5) * scale_x), floor((y + 0.5) * scale_y)``, i.e. the
    centre of the source region it covers. No blending.

    Args:
        image:        (H, W, 4) uint8.
        target_width: Output width, ``1 <= target_width <= W``.

    Returns:
        (target_height, target_width, 4) uint8 array.
    """
    check_image(image)
    h, w = image.shape[:2]
    if target_width <= 0:
        raise InvalidParameterError("downscale", "pixel_size", target_width, "must be > 0")
    if target_width > w:
        raise InvalidParameterError(
            "downscale", "pixel_size", target_width,
            f"must not exceed the source width {w}",
        )
    th = target_height(w, h, target_width)
    if th <= 0:
        raise InvalidParameterError(
            "downscale", "pixel_size", target_width,
            f"target height for a {w}x{h} source would be 0",
        )

    scale_x = w / target_width
    scale_y = h / th
    src_x = np.floor((np.arange(target_width) + 0.5) * scale_x).astype(np.intp)
    src_y = np.floor((np.arange(th) + 0.5) * scale_y).astype(np.intp)
    # float error must never step outside the source
    np.minimum(src_x, w - 1, out=src_x)
    np.minimum(src_y, h - 1, out=src_y)
    return image[src_y[:, np.newaxis], src_x[np.newaxis, :]]


def upscale_nearest_neighbor(image: np.ndarray, scale_factor: int) -> np.ndarray:
    """Replicate every pixel into a ``scale_factor`` x ``scale_factor`` block.

    Output pixel ``(x, y)`` equals input pixel
    ``(x // scale_factor, y // scale_factor)``.
    """
    check_image(image)
    if scale_factor < 1:
        raise InvalidParameterError("upscale", "scale_factor", scale_factor, "must be >= 1")
    return np.repeat(np.repeat(image, scale_factor, axis=0), scale_factor, axis=1)
