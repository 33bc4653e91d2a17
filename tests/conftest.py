import numpy as np
import pytest

from asciireel.encoder import EncoderStatus
from asciireel.errors import EncoderWriteError
from asciireel.glyph_atlas import GlyphAtlas, find_monospace_font

FONT_PATH = find_monospace_font()
needs_font = pytest.mark.skipif(FONT_PATH is None, reason="No monospace font found on system")


def make_atlas(cell_width=8, cell_height=16, glyphs=None):
    """Atlas with hand-made masks: '#' and 'X' fully inked, '+' half inked, space blank."""
    if glyphs is None:
        glyphs = {" ": 0.0, "#": 1.0, "X": 1.0, "+": 0.5}
    return GlyphAtlas.from_masks(
        {char: np.full((cell_height, cell_width), value, dtype=np.float32) for char, value in glyphs.items()}
    )


@pytest.fixture
def atlas():
    return make_atlas()


class FakeEncoder:
    """In-memory Encoder. Rejects writes after ``fail_after`` frames, like ffmpeg dying mid-stream."""

    def __init__(self, fail_after=None, returncode=0, diagnostics=""):
        self.fail_after = fail_after
        self.returncode = returncode
        self.diagnostics = diagnostics
        self.frames = []
        self.write_calls = 0
        self.close_calls = 0
        self.wait_calls = 0

    def write(self, data):
        self.write_calls += 1
        if self.close_calls:
            raise EncoderWriteError("write after close")
        if self.fail_after is not None and len(self.frames) >= self.fail_after:
            raise EncoderWriteError("[Errno 32] Broken pipe")
        self.frames.append(data)

    def close_input(self):
        self.close_calls += 1

    def wait(self):
        self.wait_calls += 1
        return EncoderStatus(returncode=self.returncode, diagnostics=self.diagnostics)
