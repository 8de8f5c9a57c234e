"""
pixgrid
=======

Turn any photograph into pixel art: a centre-sampled downscale, an
optional uniform colour reduction, then a hard-edged block upscale.

Ships two front ends:

- **CLI** (``pixgrid convert`` / ``pixgrid batch``) for one-shot conversions
- **HTTP service** (``pixgrid serve``) that keeps each upload in a session
  so it can be re-converted with new parameters without re-uploading
"""

__version__ = "1.0.0"

from pixgrid.config import ConvertConfig, ServiceConfig
from pixgrid.errors import (
    ImageDecodeError,
    ImageEncodeError,
    InvalidImageError,
    InvalidParameterError,
    PixelGridError,
    SessionIdError,
    SessionNotFoundError,
    UnsupportedFormatError,
)
from pixgrid.image_io import decode_image, encode_png, load_image, save_image
from pixgrid.pipeline import ConversionParameters, convert, pixelate
from pixgrid.quantize import levels_per_channel, quantize_colors
from pixgrid.scaling import downscale, upscale_nearest_neighbor
from pixgrid.sessions import Session, SessionStore

__all__ = [
    "ConversionParameters",
    "ConvertConfig",
    "ImageDecodeError",
    "ImageEncodeError",
    "InvalidImageError",
    "InvalidParameterError",
    "PixelGridError",
    "ServiceConfig",
    "Session",
    "SessionIdError",
    "SessionNotFoundError",
    "SessionStore",
    "UnsupportedFormatError",
    "convert",
    "decode_image",
    "downscale",
    "encode_png",
    "levels_per_channel",
    "load_image",
    "pixelate",
    "quantize_colors",
    "save_image",
    "upscale_nearest_neighbor",
]
