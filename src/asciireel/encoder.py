from __future__ import annotations

import logging
import shutil
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import numpy as np

from asciireel.errors import EncoderExitError, EncoderSpawnError, EncoderWriteError, FrameSizeError

LOGGER = logging.getLogger(__name__)

VIDEO_CODEC = "libx264"
PIXEL_FORMAT = "yuv420p"
PRESET = "medium"
AUDIO_CODEC = "aac"
AUDIO_BITRATE = "192k"


@dataclass(frozen=True)
class EncoderStatus:
    returncode: int
    diagnostics: str = ""

    @property
    def success(self) -> bool:
        return self.returncode == 0


class Encoder(Protocol):
    """A process consuming raw RGB24 frames on its input stream."""

    def write(self, data: bytes) -> None:
        """Write one frame, blocking until the consumer accepts it. Raises EncoderWriteError."""
        ...

    def close_input(self) -> None:
        """Signal end of stream."""
        ...

    def wait(self) -> EncoderStatus:
        """Block until the process exits."""
        ...


def build_ffmpeg_command(
    output: str | Path,
    width: int,
    height: int,
    fps: int,
    quality: int,
    audio: str | Path | None = None,
    ffmpeg: str = "ffmpeg",
) -> list[str]:
    cmd = [
        ffmpeg,
        "-y",
        "-loglevel",
        "error",
        "-f",
        "rawvideo",
        "-pix_fmt",
        "rgb24",
        "-s",
        f"{width}x{height}",
        "-r",
        str(fps),
        "-i",
        "-",
    ]
    if audio is not None:
        cmd.extend(["-i", str(audio), "-map", "0:v:0", "-map", "1:a:0"])
    else:
        cmd.append("-an")
    cmd.extend(["-c:v", VIDEO_CODEC, "-preset", PRESET, "-crf", str(quality), "-pix_fmt", PIXEL_FORMAT])
    if audio is not None:
        cmd.extend(["-c:a", AUDIO_CODEC, "-b:a", AUDIO_BITRATE, "-shortest"])
    cmd.extend(["-movflags", "+faststart", str(output)])
    return cmd


class FfmpegEncoder:
    """ffmpeg reading raw frames from stdin. Stderr is drained on a thread so it never blocks the pipe."""

    def __init__(self, command: list[str]):
        self.command = command
        if shutil.which(command[0]) is None:
            raise EncoderSpawnError(f"{command[0]} not found on PATH")
        try:
            self.process = subprocess.Popen(
                command,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            raise EncoderSpawnError(f"Cannot start {command[0]}: {exc}") from exc
        LOGGER.debug("Started encoder: %s", " ".join(command))

        self._stderr_chunks: list[bytes] = []
        self._stderr_thread = threading.Thread(target=self._drain_stderr, daemon=True)
        self._stderr_thread.start()

    @classmethod
    def spawn(
        cls,
        output: str | Path,
        width: int,
        height: int,
        fps: int = 30,
        quality: int = 18,
        audio: str | Path | None = None,
    ) -> FfmpegEncoder:
        return cls(build_ffmpeg_command(output, width, height, fps, quality, audio))

    def _drain_stderr(self) -> None:
        for chunk in iter(lambda: self.process.stderr.read(4096), b""):
            self._stderr_chunks.append(chunk)

    def write(self, data: bytes) -> None:
        try:
            self.process.stdin.write(data)
            self.process.stdin.flush()
        except (BrokenPipeError, ValueError, OSError) as exc:
            raise EncoderWriteError(f"Encoder input closed: {exc}") from exc

    def close_input(self) -> None:
        try:
            self.process.stdin.close()
        except BrokenPipeError:
            # Buffered bytes could not be flushed; the exit status reports why
            LOGGER.debug("Encoder input was already broken on close")

    def wait(self) -> EncoderStatus:
        returncode = self.process.wait()
        self._stderr_thread.join()
        diagnostics = b"".join(self._stderr_chunks).decode("utf-8", errors="replace").strip()
        return EncoderStatus(returncode=returncode, diagnostics=diagnostics)


class EncodeSession:
    """One output video: the encoder plus its frame geometry.

    Use as a context manager. The input stream is closed exactly once and the
    process is always awaited, on success and on failure.
    """

    def __init__(self, encoder: Encoder, width: int, height: int):
        self.encoder = encoder
        self.width = width
        self.height = height
        self.frames_written = 0
        self._closed = False
        self._status: EncoderStatus | None = None

    def __enter__(self) -> EncodeSession:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            status = self._drain()
            if status.diagnostics:
                LOGGER.debug("Encoder diagnostics after failure: %s", status.diagnostics)

    def write_frame(self, frame: np.ndarray) -> None:
        if frame.shape != (self.height, self.width, 3):
            raise FrameSizeError(
                f"Frame {self.frames_written + 1} is {frame.shape[1]}x{frame.shape[0]}, "
                f"expected {self.width}x{self.height}"
            )
        try:
            self.encoder.write(np.ascontiguousarray(frame, dtype=np.uint8).tobytes())
        except EncoderWriteError as exc:
            status = self._drain()
            raise EncoderWriteError(
                f"Encoder stopped accepting frames after {self.frames_written} frame(s) "
                f"(exit code {status.returncode}): {exc}",
                diagnostics=status.diagnostics,
                returncode=status.returncode,
            ) from exc
        self.frames_written += 1

    def finish(self) -> EncoderStatus:
        status = self._drain()
        if not status.success:
            raise EncoderExitError(
                f"Encoder exited with code {status.returncode} after {self.frames_written} frame(s)",
                diagnostics=status.diagnostics,
                returncode=status.returncode,
            )
        return status

    def _drain(self) -> EncoderStatus:
        if not self._closed:
            self._closed = True
            self.encoder.close_input()
        if self._status is None:
            self._status = self.encoder.wait()
        return self._status
