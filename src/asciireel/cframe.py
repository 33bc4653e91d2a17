import struct
from pathlib import Path

import numpy as np

from asciireel.errors import CorruptFrame, MalformedGrid
from asciireel.grid import TEXT_ENCODING, CharacterGrid

HEADER = struct.Struct("<II")
RECORD_SIZE = 4  # char, r, g, b
WHITE = (255, 255, 255)


def encode(grid: CharacterGrid) -> bytes:
    """Serialize a grid as a cframe: ``<II`` width/height header, then one [char, r, g, b] record per cell."""
    cells = grid.cells()
    colours = grid.color_array()

    records = np.empty((grid.height, grid.width, RECORD_SIZE), dtype=np.uint8)
    records[:, :, 0] = cells
    if colours is None:
        records[:, :, 1:] = WHITE
    else:
        records[:, :, 1:] = colours
    return HEADER.pack(grid.width, grid.height) + records.tobytes()


def decode(data: bytes) -> CharacterGrid:
    if len(data) < HEADER.size:
        raise CorruptFrame(f"cframe too short: {len(data)} bytes, need at least {HEADER.size} for the header")
    width, height = HEADER.unpack_from(data)
    if width == 0 or height == 0:
        raise CorruptFrame(f"cframe declares an empty grid: {width}x{height}")

    expected = width * height * RECORD_SIZE
    body = memoryview(data)[HEADER.size :]
    if len(body) < expected:
        raise CorruptFrame(
            f"cframe truncated: {width}x{height} grid needs {expected} body bytes, found {len(body)}"
        )

    records = np.frombuffer(body[:expected], dtype=np.uint8).reshape(height, width, RECORD_SIZE)
    return CharacterGrid.from_arrays(records[:, :, 0], records[:, :, 1:])


def read_cframe(path: str | Path) -> CharacterGrid:
    path = Path(path)
    try:
        return decode(path.read_bytes())
    except CorruptFrame as exc:
        raise CorruptFrame(f"{path}: {exc}") from exc


def write_cframe(grid: CharacterGrid, path: str | Path) -> None:
    Path(path).write_bytes(encode(grid))


def parse_text_grid(text: str) -> CharacterGrid:
    """Parse a rectangular newline-separated grid. Row width comes from the first line."""
    lines = [line.removesuffix("\r") for line in text.split("\n")]
    if lines and lines[-1] == "":
        lines.pop()
    if not lines:
        raise MalformedGrid("Text grid is empty")
    width = len(lines[0])
    if width == 0:
        raise MalformedGrid("Text grid has an empty first line")
    for number, line in enumerate(lines[1:], start=2):
        if len(line) != width:
            raise MalformedGrid(f"Non-rectangular grid at line {number}: expected {width} characters, found {len(line)}")
    return CharacterGrid(width=width, height=len(lines), text="\n".join(lines) + "\n")


def read_text_grid(path: str | Path) -> CharacterGrid:
    path = Path(path)
    try:
        return parse_text_grid(path.read_bytes().decode(TEXT_ENCODING))
    except MalformedGrid as exc:
        raise MalformedGrid(f"{path}: {exc}") from exc


def write_text_grid(grid: CharacterGrid, path: str | Path) -> None:
    Path(path).write_bytes(grid.to_text().encode(TEXT_ENCODING))
