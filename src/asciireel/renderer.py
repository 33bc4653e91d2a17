import numpy as np
from PIL import Image

from asciireel.glyph_atlas import GlyphAtlas
from asciireel.grid import CharacterGrid

SPACE = ord(" ")
WHITE = (255, 255, 255)


def _round_up_even(value: int) -> int:
    return value + (value % 2)


def frame_size(columns: int, rows: int, atlas: GlyphAtlas) -> tuple[int, int]:
    """Pixel (width, height) for a grid, each rounded up to even as most video codecs require."""
    return _round_up_even(columns * atlas.cell_width), _round_up_even(rows * atlas.cell_height)


def render_frame(grid: CharacterGrid, atlas: GlyphAtlas, use_colors: bool = True) -> np.ndarray:
    """Composite a grid into an RGB24 frame of shape (height, width, 3).

    Cells draw ``colour * alpha`` over a black background. Spaces and bytes
    missing from the atlas stay blank. Without colours (or with ``use_colors``
    off) every glyph is white.
    """
    cells = grid.cells()
    colours = grid.color_array() if use_colors and grid.has_colors else None
    cw, ch = atlas.cell_width, atlas.cell_height
    width, height = frame_size(grid.width, grid.height, atlas)
    frame = np.zeros((height, width, 3), dtype=np.uint8)

    indices = atlas.lookup[cells]
    visible = (indices >= 0) & (cells != SPACE)
    if colours is None:
        ink_colours = np.broadcast_to(np.array(WHITE, dtype=np.float32), (grid.height, grid.width, 3))
    else:
        ink_colours = colours.astype(np.float32)

    # Cells never overlap and the background is black, so blending reduces to colour * alpha
    for row in range(grid.height):
        cols = np.flatnonzero(visible[row])
        if cols.size == 0:
            continue
        alpha = atlas.masks[indices[row, cols]]  # (n, ch, cw)
        ink = alpha[..., np.newaxis] * ink_colours[row, cols][:, np.newaxis, np.newaxis, :]
        band = np.zeros((ch, grid.width, cw, 3), dtype=np.uint8)
        band[:, cols] = ink.transpose(1, 0, 2, 3).astype(np.uint8)
        frame[row * ch : (row + 1) * ch, : grid.width * cw] = band.reshape(ch, grid.width * cw, 3)

    return frame


def render_image(grid: CharacterGrid, atlas: GlyphAtlas, use_colors: bool = True) -> Image.Image:
    return Image.fromarray(render_frame(grid, atlas, use_colors))
