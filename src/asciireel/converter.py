import logging
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import numpy as np
from PIL import Image, UnidentifiedImageError

from asciireel.cframe import write_cframe, write_text_grid
from asciireel.config import ConversionOptions
from asciireel.errors import DecodeError
from asciireel.grid import CharacterGrid

LOGGER = logging.getLogger(__name__)

# Rec. 709 luma weights
LUMA_WEIGHTS = (0.2126, 0.7152, 0.0722)


def load_image(image: Image.Image | str | Path) -> Image.Image:
    if isinstance(image, Image.Image):
        return image.convert("RGB")
    try:
        with Image.open(image) as opened:
            return opened.convert("RGB")
    except (OSError, UnidentifiedImageError, Image.DecompressionBombError) as exc:
        raise DecodeError(f"Cannot decode image {image}: {exc}") from exc


def target_size(width: int, height: int, columns: int | None, font_ratio: float) -> tuple[int, int]:
    """Grid size for a source image; rows are squeezed by the font's width/height ratio."""
    target_width = columns if columns is not None else width
    # Round half up
    target_height = int(height / width * target_width * font_ratio + 0.5)
    return target_width, max(target_height, 1)


def luminance(pixels: np.ndarray) -> np.ndarray:
    """Truncated 0-255 luminance of an (..., 3) uint8 array."""
    rgb = pixels.astype(np.float64)
    wr, wg, wb = LUMA_WEIGHTS
    return (wr * rgb[..., 0] + wg * rgb[..., 1] + wb * rgb[..., 2]).astype(np.uint8)


def ramp_indices(luma: np.ndarray, threshold: int, ramp_length: int) -> np.ndarray:
    """Ramp position for each luminance value, or -1 where it falls below ``threshold``."""
    luma = luma.astype(np.int64)
    levels = ramp_length - 1
    span = max(255 - threshold, 1)
    indices = np.minimum((luma - threshold) * levels // span, levels)
    return np.where(luma < threshold, -1, indices)


def map_luminance(luma: np.ndarray, threshold: int, ramp: bytes) -> np.ndarray:
    """Map luminance values to character bytes from ``ramp`` (darkest first); below threshold is a space."""
    lookup = np.frombuffer(ramp, dtype=np.uint8)
    indices = ramp_indices(luma, threshold, len(ramp))
    return np.where(indices < 0, ord(" "), lookup[np.maximum(indices, 0)]).astype(np.uint8)


def image_to_grid(
    image: Image.Image | str | Path,
    options: ConversionOptions,
    colors: bool = False,
) -> CharacterGrid:
    image = load_image(image)

    size = target_size(image.width, image.height, options.columns, options.font_ratio)
    if size != image.size:
        image = image.resize(size, Image.LANCZOS)

    pixels = np.asarray(image, dtype=np.uint8)
    cells = map_luminance(luminance(pixels), options.luminance, options.ramp)
    return CharacterGrid.from_arrays(cells, pixels if colors else None)


def image_to_text(image: Image.Image | str | Path, options: ConversionOptions) -> str:
    return image_to_grid(image, options).text


def convert_image_file(
    source: str | Path,
    output: str | Path,
    options: ConversionOptions,
    colors: bool = False,
) -> CharacterGrid:
    """Convert one image to ``output`` (text form); with ``colors`` also write the sibling .cframe."""
    output = Path(output)
    grid = image_to_grid(source, options, colors=colors)
    write_text_grid(grid, output)
    if colors:
        write_cframe(grid, output.with_suffix(".cframe"))
    return grid


def convert_directory(
    source_dir: str | Path,
    output_dir: str | Path,
    options: ConversionOptions,
    colors: bool = False,
    keep_images: bool = True,
    progress: Callable[[int, int], None] | None = None,
    workers: int | None = None,
) -> list[Path]:
    """Convert every PNG in ``source_dir`` in parallel. One failing frame fails the whole call."""
    source_dir = Path(source_dir)
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    images = sorted(p for p in source_dir.iterdir() if p.is_file() and p.suffix.lower() == ".png")
    total = len(images)
    completed = 0
    lock = threading.Lock()
    LOGGER.info("Converting %d images from %s", total, source_dir)

    def convert(path: Path) -> Path:
        nonlocal completed
        out_txt = output_dir / f"{path.stem}.txt"
        convert_image_file(path, out_txt, options, colors=colors)
        with lock:
            completed += 1
            current = completed
            if progress is not None:
                progress(current, total)
        return out_txt

    with ThreadPoolExecutor(max_workers=workers) as executor:
        outputs = list(executor.map(convert, images))

    if not keep_images:
        for path in images:
            path.unlink()
    return outputs
