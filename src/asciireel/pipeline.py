"""Batched, order-preserving conversion of frame files into an encoder's input stream.

Frames are converted in parallel one batch at a time, then rendered and
written strictly in their original (filename) order from the calling thread,
which is the only writer to the encoder.
"""

from __future__ import annotations

import enum
import logging
import os
import threading
from collections.abc import Callable, Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from asciireel.cframe import read_cframe, read_text_grid
from asciireel.config import ConversionOptions, RenderOptions
from asciireel.converter import image_to_grid
from asciireel.encoder import EncodeSession, Encoder, EncoderStatus, FfmpegEncoder
from asciireel.errors import AsciiReelError, ConfigError
from asciireel.glyph_atlas import GlyphAtlas, build_atlas
from asciireel.grid import CharacterGrid
from asciireel.renderer import frame_size, render_frame

LOGGER = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg"}
GRID_EXTENSIONS = {".cframe", ".txt"}
FRAME_EXTENSIONS = IMAGE_EXTENSIONS | GRID_EXTENSIONS
DEFAULT_BATCH_SIZE = 100

ProgressCallback = Callable[[int, int], None]
EncoderFactory = Callable[[int, int], Encoder]


class State(enum.Enum):
    COLLECTING = "collecting"
    CONVERTING = "converting"
    STREAMING = "streaming"
    DRAINING = "draining"
    DONE = "done"
    FAILED = "failed"


def collect_frames(directory: str | Path, extensions: set[str] = FRAME_EXTENSIONS) -> list[Path]:
    """Frame files in ``directory`` sorted by filename. A .cframe shadows the .txt of the same stem."""
    directory = Path(directory)
    if not directory.is_dir():
        raise ConfigError(f"Frames directory does not exist: {directory}")
    paths = sorted(
        (p for p in directory.iterdir() if p.is_file() and p.suffix.lower() in extensions),
        key=lambda p: p.name,
    )
    cframe_stems = {p.stem for p in paths if p.suffix.lower() == ".cframe"}
    return [p for p in paths if not (p.suffix.lower() == ".txt" and p.stem in cframe_stems)]


def load_frame(path: str | Path, options: ConversionOptions | None = None) -> CharacterGrid:
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".cframe":
        return read_cframe(path)
    if suffix == ".txt":
        return read_text_grid(path)
    if options is None:
        options = ConversionOptions(columns=None)
    return image_to_grid(path, options, colors=True)


def _batches(frames: Sequence[Path], size: int) -> Iterator[Sequence[Path]]:
    for start in range(0, len(frames), size):
        yield frames[start : start + size]


class EncodePipeline:
    def __init__(
        self,
        atlas: GlyphAtlas,
        options: ConversionOptions | None = None,
        use_colors: bool = True,
        batch_size: int = DEFAULT_BATCH_SIZE,
        workers: int | None = None,
        progress: ProgressCallback | None = None,
    ):
        self.atlas = atlas
        self.options = options
        self.use_colors = use_colors
        self.batch_size = batch_size
        self.workers = workers or os.cpu_count() or 1
        self.progress = progress
        self.state = State.COLLECTING
        self.converted = 0
        self._converted_lock = threading.Lock()
        self._last_percent = -1

    def run(self, frames: Sequence[Path] | str | Path, open_encoder: EncoderFactory) -> EncoderStatus:
        """Convert, render and stream every frame, then wait for the encoder to exit cleanly.

        ``open_encoder(width, height)`` is called once, after the first batch
        is converted and the frame size is known.
        """
        try:
            status = self._run(frames, open_encoder)
        except BaseException:
            self.state = State.FAILED
            raise
        self.state = State.DONE
        return status

    def _run(self, frames: Sequence[Path] | str | Path, open_encoder: EncoderFactory) -> EncoderStatus:
        self.state = State.COLLECTING
        self._last_percent = -1
        if isinstance(frames, (str, Path)):
            frames = collect_frames(frames)
        frames = list(frames)
        total = len(frames)
        if total == 0:
            raise AsciiReelError("No frames to encode", code="asciireel.pipeline.empty")
        LOGGER.info("Encoding %d frames in batches of %d", total, self.batch_size)
        self._report(0, total)

        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            batches = _batches(frames, self.batch_size)
            grids = self._convert_batch(executor, next(batches))
            width, height = frame_size(grids[0].width, grids[0].height, self.atlas)
            LOGGER.info("Output frame size %dx%d", width, height)

            with EncodeSession(open_encoder(width, height), width, height) as session:
                self._stream(session, grids, total)
                for batch in batches:
                    grids = self._convert_batch(executor, batch)
                    self._stream(session, grids, total)
                self.state = State.DRAINING
                return session.finish()

    def _convert_one(self, path: Path) -> CharacterGrid:
        grid = load_frame(path, self.options)
        with self._converted_lock:
            self.converted += 1
        return grid

    def _convert_batch(self, executor: ThreadPoolExecutor, batch: Sequence[Path]) -> list[CharacterGrid]:
        self.state = State.CONVERTING
        # map() yields in submission order whatever order the workers finish in
        return list(executor.map(self._convert_one, batch))

    def _stream(self, session: EncodeSession, grids: list[CharacterGrid], total: int) -> None:
        self.state = State.STREAMING
        for grid in grids:
            session.write_frame(render_frame(grid, self.atlas, self.use_colors))
            self._report(session.frames_written, total)

    def _report(self, written: int, total: int) -> None:
        percent = written * 100 // total
        if percent == self._last_percent and written != total:
            return
        self._last_percent = percent
        if self.progress is not None:
            self.progress(written, total)


def encode_directory(
    source: str | Path | Sequence[Path],
    output: str | Path,
    options: ConversionOptions | None = None,
    render: RenderOptions | None = None,
    audio: str | Path | None = None,
    progress: ProgressCallback | None = None,
    workers: int | None = None,
) -> EncoderStatus:
    """Render a directory of frames (images, .txt or .cframe grids) into a video with ffmpeg."""
    render = render or RenderOptions()
    atlas = build_atlas(render.font_size, render.font_path)
    pipeline = EncodePipeline(
        atlas,
        options,
        use_colors=render.use_colors,
        batch_size=render.batch_size,
        workers=workers,
        progress=progress,
    )

    def open_encoder(width: int, height: int) -> Encoder:
        return FfmpegEncoder.spawn(output, width, height, fps=render.fps, quality=render.quality, audio=audio)

    return pipeline.run(source, open_encoder)
