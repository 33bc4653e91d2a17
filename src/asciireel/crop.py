import logging
from dataclasses import dataclass
from pathlib import Path

from asciireel.cframe import read_cframe, read_text_grid, write_cframe, write_text_grid
from asciireel.errors import ConfigError
from asciireel.grid import CharacterGrid

LOGGER = logging.getLogger(__name__)


@dataclass
class CropResult:
    frame_count: int
    width: int
    height: int
    total_size: int  # bytes written


def crop_grid(grid: CharacterGrid, top: int, bottom: int, left: int, right: int) -> CharacterGrid:
    if top + bottom >= grid.height:
        raise ConfigError(f"Crop rows ({top} top + {bottom} bottom) exceed frame height ({grid.height})")
    if left + right >= grid.width:
        raise ConfigError(f"Crop columns ({left} left + {right} right) exceed frame width ({grid.width})")
    rows = slice(top, grid.height - bottom)
    cols = slice(left, grid.width - right)
    colours = grid.color_array()
    return CharacterGrid.from_arrays(
        grid.cells()[rows, cols],
        None if colours is None else colours[rows, cols],
    )


def crop_frames(
    source_dir: str | Path,
    top: int,
    bottom: int,
    left: int,
    right: int,
    output_dir: str | Path,
) -> CropResult:
    """Crop every frame_*.txt (and its .cframe, if any) and renumber them from frame_0001."""
    source_dir = Path(source_dir)
    output_dir = Path(output_dir)
    if not source_dir.is_dir():
        raise ConfigError(f"Source directory does not exist: {source_dir}")

    frames = sorted(p for p in source_dir.glob("frame_*.txt") if p.is_file())
    if not frames:
        raise ConfigError(f"No frame_*.txt files found in {source_dir}")
    output_dir.mkdir(parents=True, exist_ok=True)

    width = height = 0
    total_size = 0
    for index, txt_path in enumerate(frames, start=1):
        cropped = crop_grid(read_text_grid(txt_path), top, bottom, left, right)
        width, height = cropped.width, cropped.height

        out_txt = output_dir / f"frame_{index:04d}.txt"
        write_text_grid(cropped, out_txt)
        total_size += out_txt.stat().st_size

        cframe_path = txt_path.with_suffix(".cframe")
        if cframe_path.exists():
            out_cframe = out_txt.with_suffix(".cframe")
            write_cframe(crop_grid(read_cframe(cframe_path), top, bottom, left, right), out_cframe)
            total_size += out_cframe.stat().st_size

    LOGGER.info("Cropped %d frames to %dx%d", len(frames), width, height)
    return CropResult(frame_count=len(frames), width=width, height=height, total_size=total_size)
