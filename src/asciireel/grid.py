from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from asciireel.errors import CorruptFrame, MalformedGrid

# Text is stored one byte per cell; latin-1 maps bytes 0-255 to code points 1:1
TEXT_ENCODING = "latin-1"


@dataclass(frozen=True)
class CharacterGrid:
    """A converted frame: ``height`` rows of ``width`` characters plus optional per-cell RGB.

    ``text`` may hold the rows separated by newlines (the on-disk text form) or
    concatenated without separators. ``colors`` is empty, meaning "render white",
    or one RGB triple per cell in row-major order.
    """

    width: int
    height: int
    text: str
    colors: bytes = b""

    @classmethod
    def from_arrays(cls, cells: np.ndarray, colors: np.ndarray | None = None) -> CharacterGrid:
        """Build a grid from a (rows, cols) uint8 array and an optional (rows, cols, 3) uint8 array."""
        height, width = cells.shape
        text = "\n".join(row.tobytes().decode(TEXT_ENCODING) for row in cells) + "\n"
        colour_bytes = b"" if colors is None else np.ascontiguousarray(colors, dtype=np.uint8).tobytes()
        return cls(width=width, height=height, text=text, colors=colour_bytes)

    @property
    def has_colors(self) -> bool:
        return len(self.colors) > 0

    def validate(self) -> None:
        if self.width < 1 or self.height < 1:
            raise MalformedGrid(f"Grid dimensions must be at least 1x1, got {self.width}x{self.height}")
        if "\n" in self.text:
            rows = self.text.split("\n")
            if rows[-1] == "":
                rows.pop()
            if len(rows) != self.height:
                raise MalformedGrid(f"Grid text holds {len(rows)} rows, expected {self.height}")
            for number, row in enumerate(rows, start=1):
                if len(row) != self.width:
                    raise MalformedGrid(
                        f"Non-rectangular grid at row {number}: expected {self.width} characters, found {len(row)}"
                    )
        cell_count = len(self.text.replace("\n", ""))
        if cell_count != self.width * self.height:
            raise MalformedGrid(
                f"Grid text holds {cell_count} cells, expected {self.width}x{self.height}={self.width * self.height}"
            )
        if self.colors and len(self.colors) != 3 * self.width * self.height:
            raise CorruptFrame(
                f"Color data is {len(self.colors)} bytes, expected {3 * self.width * self.height} "
                f"for a {self.width}x{self.height} grid"
            )

    def cells(self) -> np.ndarray:
        """Character bytes as a (height, width) uint8 array."""
        self.validate()
        try:
            raw = self.text.replace("\n", "").encode(TEXT_ENCODING)
        except UnicodeEncodeError as exc:
            raise MalformedGrid(f"Grid text holds a character outside the single-byte range: {exc}") from exc
        return np.frombuffer(raw, dtype=np.uint8).reshape(self.height, self.width)

    def color_array(self) -> np.ndarray | None:
        """Per-cell colors as a (height, width, 3) uint8 array, or None when absent."""
        if not self.colors:
            return None
        self.validate()
        return np.frombuffer(self.colors, dtype=np.uint8).reshape(self.height, self.width, 3)

    def rows(self) -> list[str]:
        cells = self.cells()
        return [row.tobytes().decode(TEXT_ENCODING) for row in cells]

    def to_text(self) -> str:
        return "\n".join(self.rows()) + "\n"
