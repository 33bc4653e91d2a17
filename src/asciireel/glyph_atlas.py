import logging
import math
import os
import shutil
import subprocess
from dataclasses import dataclass

import numpy as np
from PIL import Image, ImageDraw, ImageFont

LOGGER = logging.getLogger(__name__)

FIRST_CHAR = 32
LAST_CHAR = 126
ATLAS_CHARACTERS = "".join(chr(i) for i in range(FIRST_CHAR, LAST_CHAR + 1))
REFERENCE_CHAR = "M"

FONT_CANDIDATES = [
    "/usr/share/fonts/truetype/dejavu/DejaVuSansMono.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationMono-Regular.ttf",
    "/usr/share/fonts/TTF/DejaVuSansMono.ttf",
    "/usr/share/fonts/dejavu-sans-mono-fonts/DejaVuSansMono.ttf",
    "/System/Library/Fonts/Menlo.ttc",
]


def find_monospace_font() -> str | None:
    """Find a monospace font on the system."""
    for path in FONT_CANDIDATES:
        if os.path.exists(path):
            return path
    if shutil.which("fc-match"):
        out = subprocess.run(["fc-match", "-f", "%{file}", "monospace"], capture_output=True, text=True)
        if out.returncode == 0 and out.stdout.strip():
            return out.stdout.strip()
    return None


def load_font(font_size: int, font_path: str | None = None) -> ImageFont.FreeTypeFont:
    if font_path is None:
        font_path = find_monospace_font()
    if font_path is None:
        # Pillow's bundled font is proportional, but cells are sized from "M" so nothing overflows badly
        LOGGER.warning("No monospace font found, falling back to Pillow's bundled font")
        return ImageFont.load_default(size=font_size)
    return ImageFont.truetype(font_path, font_size)


@dataclass(frozen=True, eq=False)
class GlyphAtlas:
    """Alpha coverage masks for printable ASCII, one (cell_height, cell_width) float32 mask per byte.

    The arrays are read-only, so an atlas can be shared between rendering threads.
    """

    cell_width: int
    cell_height: int
    masks: np.ndarray  # (num_glyphs, cell_height, cell_width) float32, 0-1
    lookup: np.ndarray  # (256,) int, mask index per byte or -1

    @classmethod
    def from_masks(cls, masks: dict[str, np.ndarray]) -> "GlyphAtlas":
        """Build an atlas from explicit per-character masks of equal shape."""
        if not masks:
            raise ValueError("Atlas needs at least one glyph")
        shapes = {np.shape(mask) for mask in masks.values()}
        if len(shapes) != 1:
            raise ValueError(f"Glyph masks differ in shape: {sorted(shapes)}")
        ((cell_height, cell_width),) = shapes

        stacked = np.zeros((len(masks), cell_height, cell_width), dtype=np.float32)
        lookup = np.full(256, -1, dtype=np.int64)
        for i, (char, mask) in enumerate(masks.items()):
            code = ord(char)
            if code > 255:
                raise ValueError(f"Glyph {char!r} is outside the single-byte range")
            stacked[i] = np.clip(mask, 0.0, 1.0)
            lookup[code] = i

        stacked.flags.writeable = False
        lookup.flags.writeable = False
        return cls(cell_width=cell_width, cell_height=cell_height, masks=stacked, lookup=lookup)

    def glyph(self, char: str) -> np.ndarray | None:
        index = self.lookup[ord(char)] if ord(char) < 256 else -1
        return None if index < 0 else self.masks[index]


def build_atlas(font_size: int, font_path: str | None = None) -> GlyphAtlas:
    """Rasterize printable ASCII (32-126) at ``font_size`` pixels.

    Cell width is the advance of "M" rounded up, cell height is ascent plus
    descent rounded up. Every glyph is drawn with its baseline at the ascent
    line; ink outside the cell is clipped.
    """
    font = load_font(font_size, font_path)
    ascent, descent = font.getmetrics()
    cell_width = max(math.ceil(font.getlength(REFERENCE_CHAR)), 1)
    cell_height = max(math.ceil(ascent + descent), 1)

    masks: dict[str, np.ndarray] = {}
    for char in ATLAS_CHARACTERS:
        img = Image.new("L", (cell_width, cell_height), 0)
        draw = ImageDraw.Draw(img)
        draw.text((0, ascent), char, fill=255, font=font, anchor="ls")
        masks[char] = np.asarray(img, dtype=np.float32) / 255.0

    LOGGER.debug("Built glyph atlas at %dpx: %dx%d cells", font_size, cell_width, cell_height)
    return GlyphAtlas.from_masks(masks)
