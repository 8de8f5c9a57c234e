"""Rich command-line interface powered by Typer."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import NoReturn

import numpy as np
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

from pixgrid.config import ConvertConfig, ServiceConfig
from pixgrid.errors import PixelGridError
from pixgrid.image_io import load_image, output_format, save_image
from pixgrid.pipeline import ConversionParameters, convert as run_conversion
from pixgrid.quantize import levels_per_channel

app = typer.Typer(
    name="pixgrid",
    help="Turn photos into blocky, colour-reduced pixel art.",
    add_completion=False,
    rich_markup_mode="rich",
)
console = Console()
logger = logging.getLogger("pixgrid")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=True)],
    )


def _collect_images(folder: Path, extensions: frozenset[str]) -> list[Path]:
    if not folder.exists():
        return []
    return sorted(
        f for f in folder.iterdir()
        if f.is_file() and f.suffix.lower() in extensions
    )


def _fail(message: str) -> NoReturn:
    console.print(f"[bold red]Error:[/bold red] {message}")
    raise typer.Exit(1)


def _clamp_size(pixel_size: int, width: int, name: str) -> int:
    if pixel_size > width:
        logger.warning(
            "%s is only %d px wide; using size %d instead of %d",
            name, width, width, pixel_size,
        )
        return width
    return pixel_size


def _pixelate(image: np.ndarray, params: ConversionParameters) -> np.ndarray:
    """Run the conversion, reporting each stage as it finishes."""

    def report(stage: str, out: np.ndarray) -> None:
        if stage == "downscale":
            logger.info("Downscaled to: %dx%d pixels", out.shape[1], out.shape[0])
        elif stage == "quantize":
            logger.info(
                "Reduced to %d colors (%d levels per channel)",
                params.colors, levels_per_channel(params.colors),
            )
        else:
            logger.info("Upscaled to: %dx%d pixels", out.shape[1], out.shape[0])

    return run_conversion(image, params, on_stage=report)


# Defaults come from the config dataclasses - single source of truth
_DEFAULTS = ConvertConfig()
_SERVICE_DEFAULTS = ServiceConfig()


# -- convert command ---------------------------------------------------

@app.command()
def convert(
    source: Path = typer.Argument(..., help="Input image (PNG, JPEG, ...)"),
    output: Path = typer.Option(
        Path("output.png"), "--output", "-o",
        help="Output file; the format follows the extension (.png, .jpg, .jpeg)",
    ),
    size: int = typer.Option(
        _DEFAULTS.pixel_size, "--size", "-s",
        help="Target width in pixels (height scales proportionally)",
    ),
    scale: int = typer.Option(
        _DEFAULTS.scale_factor, "--scale", help="Upscale factor for the blocky result",
    ),
    colors: int = typer.Option(
        _DEFAULTS.colors, "--colors", "-c", help="Colour reduction (0 = keep colours)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Convert a single image to pixel art."""
    _setup_logging(verbose)

    try:
        output_format(output)
        image = load_image(source)
        logger.info("Loaded image: %dx%d pixels", image.shape[1], image.shape[0])
        size = _clamp_size(size, image.shape[1], source.name)
        result = _pixelate(image, ConversionParameters(size, scale, colors))
        save_image(result, output, jpeg_quality=_DEFAULTS.jpeg_quality)
    except PixelGridError as exc:
        _fail(str(exc))

    console.print(f"[green]✓[/green] Saved to {output}")


# -- batch command -----------------------------------------------------

@app.command()
def batch(
    input_dir: Path = typer.Option(
        _DEFAULTS.input_dir, "--input", "-i", help="Folder with source images",
    ),
    output_dir: Path = typer.Option(
        _DEFAULTS.output_dir, "--output", "-o", help="Results folder",
    ),
    size: int = typer.Option(_DEFAULTS.pixel_size, "--size", "-s"),
    scale: int = typer.Option(_DEFAULTS.scale_factor, "--scale"),
    colors: int = typer.Option(_DEFAULTS.colors, "--colors", "-c"),
    fmt: str = typer.Option(
        _DEFAULTS.output_format, "--format", "-f", help="'png', 'jpg' or 'jpeg'",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Convert every image in INPUT_DIR and write results to OUTPUT_DIR."""
    _setup_logging(verbose)

    cfg = ConvertConfig(
        pixel_size=size,
        scale_factor=scale,
        colors=colors,
        output_format=fmt.lower().lstrip("."),
        input_dir=input_dir,
        output_dir=output_dir,
    )

    try:
        output_format(f"x.{cfg.output_format}")
    except PixelGridError as exc:
        _fail(str(exc))

    images = _collect_images(input_dir, cfg.SUPPORTED_EXTENSIONS)
    if not images:
        console.print(f"\n[yellow]No images found in {input_dir}/[/yellow]")
        console.print("Place .jpg / .png / ... files there and re-run.\n")
        raise typer.Exit(0)

    output_dir.mkdir(parents=True, exist_ok=True)

    console.print(Panel.fit(
        f"[bold]PIXGRID[/bold]\n"
        f"Size: {cfg.pixel_size}  |  Scale: {cfg.scale_factor}x\n"
        f"Colors: {cfg.colors or 'original'}  |  Images: {len(images)}",
        border_style="cyan",
    ))

    failed = 0
    for idx, img_path in enumerate(images, 1):
        console.rule(f"[bold cyan][{idx}/{len(images)}] {img_path.name}[/bold cyan]")
        t_start = time.perf_counter()
        out_path = output_dir / f"{img_path.stem}_pixel.{cfg.output_format}"
        try:
            image = load_image(img_path)
            logger.info("Loaded image: %dx%d pixels", image.shape[1], image.shape[0])
            pixel_size = _clamp_size(cfg.pixel_size, image.shape[1], img_path.name)
            result = _pixelate(
                image, ConversionParameters(pixel_size, cfg.scale_factor, cfg.colors),
            )
            save_image(result, out_path, jpeg_quality=cfg.jpeg_quality)
        except PixelGridError as exc:
            failed += 1
            console.print(f"  [red]✗[/red] {img_path.name}: {exc}")
            continue

        elapsed = time.perf_counter() - t_start
        console.print(
            f"  [green]✓[/green] {out_path.name}  "
            f"[dim]{result.shape[1]}x{result.shape[0]}  time={elapsed:.2f}s[/dim]"
        )

    if failed:
        console.print(Panel.fit(
            f"[bold yellow]{failed} of {len(images)} images failed[/bold yellow]",
            border_style="yellow",
        ))
        raise typer.Exit(1)

    console.print(Panel.fit(
        f"[bold green]ALL DONE[/bold green] - results in [bold]{output_dir}/[/bold]",
        border_style="green",
    ))


# -- serve command -----------------------------------------------------

@app.command()
def serve(
    host: str = typer.Option(_SERVICE_DEFAULTS.host, "--host", help="Bind address"),
    port: int = typer.Option(_SERVICE_DEFAULTS.port, "--port", "-p", help="Port to listen on"),
    idle_timeout: float = typer.Option(
        _SERVICE_DEFAULTS.idle_timeout, "--idle-timeout",
        help="Seconds before an unused session is dropped",
    ),
    reap_interval: float = typer.Option(
        _SERVICE_DEFAULTS.reap_interval, "--reap-interval",
        help="Seconds between expiry sweeps",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Run the upload / convert / download HTTP service."""
    import uvicorn

    from pixgrid.server import create_app

    _setup_logging(verbose)

    try:
        cfg = ServiceConfig(
            host=host,
            port=port,
            idle_timeout=idle_timeout,
            reap_interval=reap_interval,
        )
    except ValueError as exc:
        _fail(str(exc))

    console.print(Panel.fit(
        f"[bold]PIXGRID SERVER[/bold]\n"
        f"http://{cfg.host}:{cfg.port}  |  session timeout {cfg.idle_timeout:.0f}s",
        border_style="cyan",
    ))
    uvicorn.run(create_app(config=cfg), host=cfg.host, port=cfg.port, log_config=None)


if __name__ == "__main__":
    app()
