"""Uniform per-channel colour reduction.

Each of R, G and B is rounded independently to the nearest of
``levels_per_channel(colors)`` evenly spaced values; alpha is untouched.
The *colors* argument is a coarse knob rather than a palette size: the
number of producible colours is ``levels ** 3``. Existing outputs depend
on the ``colors // 3`` bucket boundaries; it is not a cube root.
"""

from __future__ import annotations

import numpy as np

from pixgrid.scaling import check_image

MAX_LEVELS = 256


def levels_per_channel(colors: int) -> int:
    """Number of quantisation levels per channel for a *colors* setting."""
    return min(MAX_LEVELS, max(2, colors // 3))


def quantization_step(levels: int) -> int:
    """Distance between adjacent levels on the 0-255 scale."""
    return 255 // (levels - 1)


def quantize_channel(values: np.ndarray, step: int) -> np.ndarray:
    """Round channel *values* half-up to a multiple of *step*, capped at 255."""
    v = values.astype(np.int32)
    # floor(v / step + 0.5) in integer arithmetic
    level = (2 * v + step) // (2 * step)
    return np.minimum(level * step, 255).astype(np.uint8)


def quantize_colors(image: np.ndarray, colors: int) -> np.ndarray:
    """Reduce *image* to a uniform RGB grid of levels.

    Args:
        image:  (H, W, 4) uint8.
        colors: Reduction knob. ``<= 0`` returns *image* unchanged.

    Returns:
        (H, W, 4) uint8 array; a new array whenever quantisation runs.
    """
    check_image(image)
    if colors <= 0:
        return image

    step = quantization_step(levels_per_channel(colors))
    result = image.copy()
    result[..., :3] = quantize_channel(image[..., :3], step)
    return result
