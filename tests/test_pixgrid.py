"""Tests for the conversion pipeline, its stages, image I/O and config."""

from __future__ import annotations

import base64
import io
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from pixgrid.config import ConvertConfig, ServiceConfig
from pixgrid.errors import (
    ImageDecodeError,
    InvalidImageError,
    InvalidParameterError,
    UnsupportedFormatError,
)
from pixgrid.image_io import (
    decode_image,
    encode_png,
    load_image,
    output_format,
    save_image,
    to_data_url,
)
from pixgrid.pipeline import ConversionParameters, convert, pixelate
from pixgrid.quantize import (
    levels_per_channel,
    quantization_step,
    quantize_channel,
    quantize_colors,
)
from pixgrid.scaling import check_image, downscale, target_height, upscale_nearest_neighbor

# -- Fixtures ----------------------------------------------------------

W, H = 100, 50  # non-square for aspect ratio testing


def _random_rgba(h: int, w: int, seed: int = 0, opaque: bool = False) -> np.ndarray:
    rng = np.random.default_rng(seed)
    img = rng.integers(0, 256, size=(h, w, 4), dtype=np.uint8)
    if opaque:
        img[..., 3] = 255
    return img


@pytest.fixture
def image() -> np.ndarray:
    return _random_rgba(H, W, seed=456)


@pytest.fixture
def coord_image() -> np.ndarray:
    """10x10 image whose red channel holds x and green channel holds y."""
    img = np.zeros((10, 10, 4), dtype=np.uint8)
    img[..., 0] = np.arange(10)[np.newaxis, :]
    img[..., 1] = np.arange(10)[:, np.newaxis]
    img[..., 3] = 255
    return img


@pytest.fixture
def tmp_image(tmp_path: Path) -> Path:
    """Write a small non-square RGB test PNG to disk."""
    img = Image.fromarray(
        np.random.randint(0, 256, (48, 64, 3), dtype=np.uint8),
    )
    p = tmp_path / "test.png"
    img.save(p)
    return p


# -- Config ------------------------------------------------------------

class TestConfig:
    def test_convert_defaults(self) -> None:
        cfg = ConvertConfig()
        assert cfg.pixel_size == 64
        assert cfg.scale_factor == 8
        assert cfg.colors == 16

    def test_service_defaults(self) -> None:
        cfg = ServiceConfig()
        assert cfg.default_pixel_size == 64
        assert cfg.default_scale_factor == 8
        assert cfg.idle_timeout > cfg.reap_interval

    def test_frozen(self) -> None:
        cfg = ConvertConfig()
        with pytest.raises(AttributeError):
            cfg.pixel_size = 128  # type: ignore[misc]

    def test_idle_timeout_must_exceed_interval(self) -> None:
        with pytest.raises(ValueError):
            ServiceConfig(idle_timeout=60, reap_interval=60)


# -- Downscale ---------------------------------------------------------

class TestDownscale:
    def test_width_exact_height_truncated(self, image: np.ndarray) -> None:
        small = downscale(image, 50)
        assert small.shape == (25, 50, 4)

    def test_height_truncates(self) -> None:
        img = _random_rgba(5, 7)
        assert target_height(7, 5, 3) == 2
        assert downscale(img, 3).shape == (2, 3, 4)

    @pytest.mark.parametrize("size", [2, 7, 33, 64, 99, 100])
    def test_height_formula(self, image: np.ndarray, size: int) -> None:
        small = downscale(image, size)
        assert small.shape[1] == size
        assert small.shape[0] == H * size // W

    def test_samples_cell_centres(self, coord_image: np.ndarray) -> None:
        small = downscale(coord_image, 5)
        # scale 2: x -> floor((x + 0.5) * 2) = 2x + 1
        np.testing.assert_array_equal(small[0, :, 0], [1, 3, 5, 7, 9])
        np.testing.assert_array_equal(small[:, 0, 1], [1, 3, 5, 7, 9])

    def test_same_width_is_identity(self, image: np.ndarray) -> None:
        np.testing.assert_array_equal(downscale(image, W), image)

    def test_does_not_mutate_input(self, image: np.ndarray) -> None:
        before = image.copy()
        small = downscale(image, 20)
        small[...] = 0
        np.testing.assert_array_equal(image, before)

    @pytest.mark.parametrize("size", [0, -3])
    def test_rejects_non_positive(self, image: np.ndarray, size: int) -> None:
        with pytest.raises(InvalidParameterError) as info:
            downscale(image, size)
        assert info.value.stage == "downscale"
        assert info.value.parameter == "pixel_size"

    def test_rejects_upscaling(self, image: np.ndarray) -> None:
        with pytest.raises(InvalidParameterError):
            downscale(image, W + 1)

    def test_rejects_zero_height(self) -> None:
        strip = _random_rgba(1, 1000)
        with pytest.raises(InvalidParameterError, match="height"):
            downscale(strip, 10)


# -- Quantize ----------------------------------------------------------

class TestQuantize:
    @pytest.mark.parametrize(
        ("colors", "levels"),
        [(1, 2), (6, 2), (8, 2), (9, 3), (16, 5), (32, 10), (10_000, 256)],
    )
    def test_levels_per_channel(self, colors: int, levels: int) -> None:
        assert levels_per_channel(colors) == levels

    def test_step(self) -> None:
        assert quantization_step(2) == 255
        assert quantization_step(5) == 63
        assert quantization_step(256) == 1

    @pytest.mark.parametrize("colors", [0, -4])
    def test_disabled_is_identity(self, image: np.ndarray, colors: int) -> None:
        out = quantize_colors(image, colors)
        assert out is image

    def test_two_levels(self) -> None:
        values = np.array([0, 100, 127, 128, 200, 255], dtype=np.uint8)
        np.testing.assert_array_equal(
            quantize_channel(values, 255), [0, 0, 0, 255, 255, 255],
        )

    def test_rounds_half_up(self) -> None:
        # 51 / 102 = 0.5 exactly
        assert quantize_channel(np.array([51], dtype=np.uint8), 102)[0] == 102

    def test_caps_at_255(self) -> None:
        # 255 / 2 rounds to 128 -> 256, capped
        assert quantize_channel(np.array([255], dtype=np.uint8), 2)[0] == 255

    def test_alpha_untouched(self, image: np.ndarray) -> None:
        out = quantize_colors(image, 8)
        np.testing.assert_array_equal(out[..., 3], image[..., 3])
        assert set(np.unique(out[..., :3])) <= {0, 255}

    def test_does_not_mutate_input(self, image: np.ndarray) -> None:
        before = image.copy()
        quantize_colors(image, 16)
        np.testing.assert_array_equal(image, before)

    @pytest.mark.parametrize("colors", [1, 8, 16, 32, 48, 100, 128, 384, 800])
    def test_idempotent(self, image: np.ndarray, colors: int) -> None:
        once = quantize_colors(image, colors)
        twice = quantize_colors(once, colors)
        np.testing.assert_array_equal(once, twice)


# -- Upscale -----------------------------------------------------------

class TestUpscale:
    @pytest.mark.parametrize("factor", [1, 2, 3, 8])
    def test_block_replication(self, factor: int) -> None:
        img = _random_rgba(3, 4, seed=7)
        out = upscale_nearest_neighbor(img, factor)
        assert out.shape == (3 * factor, 4 * factor, 4)
        ys = np.arange(3 * factor)[:, np.newaxis] // factor
        xs = np.arange(4 * factor)[np.newaxis, :] // factor
        np.testing.assert_array_equal(out, img[ys, xs])

    @pytest.mark.parametrize("factor", [0, -1])
    def test_rejects_factor_below_one(self, factor: int) -> None:
        with pytest.raises(InvalidParameterError) as info:
            upscale_nearest_neighbor(_random_rgba(2, 2), factor)
        assert info.value.stage == "upscale"


# -- Pipeline ----------------------------------------------------------

class TestPipeline:
    def test_end_to_end_example(self) -> None:
        img = _random_rgba(H, W, seed=1, opaque=True)
        out = convert(img, ConversionParameters(pixel_size=50, scale_factor=4, colors=8))
        assert out.shape == (100, 200, 4)

        blocks = out.reshape(25, 4, 50, 4, 4)
        np.testing.assert_array_equal(
            blocks, np.broadcast_to(blocks[:, :1, :, :1, :], blocks.shape),
        )
        assert set(np.unique(out[..., :3])) <= {0, 255}
        palette = {tuple(p) for p in out.reshape(-1, 4)}
        assert len(palette) <= 8

    def test_colors_zero_keeps_sampled_values(self) -> None:
        img = _random_rgba(H, W, seed=3)
        out = pixelate(img, 50, 2, colors=0)
        small = downscale(img, 50)
        np.testing.assert_array_equal(out[::2, ::2], small)

    def test_invalid_parameters_fail_before_work(self, image: np.ndarray) -> None:
        with pytest.raises(InvalidParameterError) as info:
            convert(image, ConversionParameters(pixel_size=10, scale_factor=0))
        assert info.value.stage == "upscale"

    def test_rejects_rgb_array(self) -> None:
        rgb = np.zeros((4, 4, 3), dtype=np.uint8)
        with pytest.raises(InvalidImageError):
            convert(rgb, ConversionParameters(pixel_size=2, scale_factor=2))

    def test_rejects_wrong_dtype(self) -> None:
        with pytest.raises(InvalidImageError):
            check_image(np.zeros((4, 4, 4), dtype=np.float32))

    def test_reads_read_only_input(self, image: np.ndarray) -> None:
        image.flags.writeable = False
        out = pixelate(image, 25, 2, colors=16)
        assert out.shape == (24, 50, 4)

    def test_stage_hook_order(self) -> None:
        img = _random_rgba(H, W, seed=4)
        seen: list[tuple[str, tuple[int, ...]]] = []
        out = convert(
            img, ConversionParameters(pixel_size=25, scale_factor=3, colors=27),
            on_stage=lambda stage, arr: seen.append((stage, arr.shape)),
        )
        assert seen == [
            ("downscale", (12, 25, 4)),
            ("quantize", (12, 25, 4)),
            ("upscale", (36, 75, 4)),
        ]
        assert out.shape == (36, 75, 4)

    def test_stage_hook_skips_quantize_when_disabled(self, image: np.ndarray) -> None:
        stages: list[str] = []
        convert(
            image, ConversionParameters(pixel_size=10, scale_factor=2, colors=0),
            on_stage=lambda stage, arr: stages.append(stage),
        )
        assert stages == ["downscale", "upscale"]

    def test_stage_hook_not_called_on_invalid_parameters(self, image: np.ndarray) -> None:
        stages: list[str] = []
        with pytest.raises(InvalidParameterError):
            convert(
                image, ConversionParameters(pixel_size=0, scale_factor=2),
                on_stage=lambda stage, arr: stages.append(stage),
            )
        assert stages == []


# -- Image I/O ---------------------------------------------------------

class TestImageIO:
    def test_load_converts_to_rgba(self, tmp_image: Path) -> None:
        arr = load_image(tmp_image)
        assert arr.shape == (48, 64, 4)
        assert arr.dtype == np.uint8
        assert (arr[..., 3] == 255).all()

    def test_load_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ImageDecodeError):
            load_image(tmp_path / "missing.png")

    def test_decode_bytes(self, tmp_image: Path) -> None:
        arr = decode_image(tmp_image.read_bytes())
        assert arr.shape == (48, 64, 4)

    @pytest.mark.parametrize("payload", [b"", b"definitely not an image"])
    def test_decode_rejects_garbage(self, payload: bytes) -> None:
        with pytest.raises(ImageDecodeError):
            decode_image(payload)

    @pytest.mark.parametrize(
        ("name", "fmt"),
        [("a.png", "PNG"), ("a.PNG", "PNG"), ("a.jpg", "JPEG"), ("a.jpeg", "JPEG")],
    )
    def test_output_format(self, name: str, fmt: str) -> None:
        assert output_format(name) == fmt

    @pytest.mark.parametrize("name", ["a.gif", "a.bmp", "noext"])
    def test_output_format_unsupported(self, name: str) -> None:
        with pytest.raises(UnsupportedFormatError):
            output_format(name)

    def test_save_unsupported_creates_nothing(self, tmp_path: Path, image: np.ndarray) -> None:
        out = tmp_path / "result.webp"
        with pytest.raises(UnsupportedFormatError):
            save_image(image, out)
        assert not out.exists()

    def test_save_png_keeps_alpha(self, tmp_path: Path, image: np.ndarray) -> None:
        out = tmp_path / "nested" / "result.png"
        save_image(image, out)
        np.testing.assert_array_equal(load_image(out), image)

    def test_save_jpeg(self, tmp_path: Path, image: np.ndarray) -> None:
        out = tmp_path / "result.jpg"
        save_image(image, out)
        with Image.open(out) as img:
            assert img.format == "JPEG"
            assert img.size == (W, H)

    def test_png_data_url(self, image: np.ndarray) -> None:
        url = to_data_url(encode_png(image))
        assert url.startswith("data:image/png;base64,")
        raw = base64.b64decode(url.split(",", 1)[1])
        with Image.open(io.BytesIO(raw)) as img:
            assert img.size == (W, H)
            assert img.mode == "RGBA"
