"""Centralised configuration via frozen dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class ConvertConfig:
    """Defaults for the command-line conversion path.

    Attributes:
        pixel_size:    Width of the downscaled image (height keeps aspect ratio).
        scale_factor:  Each logical pixel becomes n x n in the output image.
        colors:        Colour-reduction knob; 0 disables quantisation.
        jpeg_quality:  Quality used when the output extension is .jpg/.jpeg.
        output_format: Extension used for batch results.
        input_dir:     Folder scanned by ``batch``.
        output_dir:    Folder for ``batch`` results.
    """

    pixel_size: int = 64
    scale_factor: int = 8
    colors: int = 16  # 0 = keep original colours

    jpeg_quality: int = 95
    output_format: str = "png"

    # Paths
    input_dir: Path = field(default_factory=lambda: Path("images"))
    output_dir: Path = field(default_factory=lambda: Path("output"))

    SUPPORTED_EXTENSIONS: frozenset[str] = frozenset(
        {".jpg", ".jpeg", ".png", ".bmp", ".gif", ".tiff", ".tif", ".webp"}
    )


@dataclass(frozen=True)
class ServiceConfig:
    """Settings for the HTTP service and its session store.

    Attributes:
        host, port:            Bind address for ``pixgrid serve``.
        default_pixel_size:    Substituted when a request sends size <= 0.
        default_scale_factor:  Substituted when a request sends scale <= 0.
        max_pixel_size:        Largest accepted size (bounds conversion cost).
        max_scale_factor:      Largest accepted scale (bounds output size).
        max_upload_bytes:      Upload payload limit.
        idle_timeout:          Seconds of inactivity before a session is reaped.
        reap_interval:         Seconds between reaper ticks.
        cors_origins:          Origins allowed by the CORS middleware.
        download_filename:     Attachment name for /api/download.
    """

    host: str = "127.0.0.1"
    port: int = 8080

    # Request defaults (colours deliberately have none: 0 disables)
    default_pixel_size: int = 64
    default_scale_factor: int = 8

    # Cost bounds
    max_pixel_size: int = 1024
    max_scale_factor: int = 64
    max_upload_bytes: int = 32 << 20

    # Session lifecycle
    idle_timeout: float = 30 * 60
    reap_interval: float = 5 * 60

    cors_origins: tuple[str, ...] = ("*",)
    download_filename: str = "pixelart.png"

    def __post_init__(self) -> None:
        if self.reap_interval <= 0:
            raise ValueError("reap_interval must be positive")
        if self.idle_timeout <= self.reap_interval:
            raise ValueError("idle_timeout must exceed reap_interval")
