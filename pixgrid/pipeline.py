"""The pixel-art conversion: downscale -> optional quantise -> block upscale."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import numpy as np

from pixgrid.errors import InvalidParameterError
from pixgrid.quantize import quantize_colors
from pixgrid.scaling import check_image, downscale, upscale_nearest_neighbor

# Called with the stage name and that stage's output.
StageHook = Callable[[str, np.ndarray], None]


@dataclass(frozen=True)
class ConversionParameters:
    """One request's worth of conversion settings.

    Attributes:
        pixel_size:   Width before upscaling (> 0).
        scale_factor: Block size of the upscale (>= 1).
        colors:       Quantisation knob (0 or less disables it).
    """

    pixel_size: int
    scale_factor: int
    colors: int = 0

    def validate(self) -> None:
        """Raise :class:`InvalidParameterError` for values no stage accepts."""
        if self.pixel_size <= 0:
            raise InvalidParameterError("downscale", "pixel_size", self.pixel_size, "must be > 0")
        if self.scale_factor < 1:
            raise InvalidParameterError(
                "upscale", "scale_factor", self.scale_factor, "must be >= 1",
            )


def convert(
    image: np.ndarray,
    params: ConversionParameters,
    on_stage: StageHook | None = None,
) -> np.ndarray:
    """Run the full conversion on *image*.

    The stages always run in the same order; quantising before the
    downscale would sample different pixels. Nothing is returned unless
    every stage succeeds.

    *on_stage*, if given, is called after each stage that runs, with
    ``"downscale"``, ``"quantize"`` (only when ``colors > 0``) or
    ``"upscale"``.

    Returns:
        (h * scale_factor, pixel_size * scale_factor, 4) uint8 array.
    """
    check_image(image)
    params.validate()

    small = downscale(image, params.pixel_size)
    if on_stage is not None:
        on_stage("downscale", small)
    if params.colors > 0:
        small = quantize_colors(small, params.colors)
        if on_stage is not None:
            on_stage("quantize", small)
    result = upscale_nearest_neighbor(small, params.scale_factor)
    if on_stage is not None:
        on_stage("upscale", result)
    return result


def pixelate(
    image: np.ndarray,
    pixel_size: int,
    scale_factor: int,
    colors: int = 0,
) -> np.ndarray:
    """Shorthand for :func:`convert` with positional parameters."""
    return convert(image, ConversionParameters(pixel_size, scale_factor, colors))
