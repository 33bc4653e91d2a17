import sys

import numpy as np
import pytest

from asciireel.encoder import EncodeSession, FfmpegEncoder, build_ffmpeg_command
from asciireel.errors import EncoderExitError, EncoderSpawnError, EncoderWriteError, FrameSizeError
from tests.conftest import FakeEncoder


def make_frame(width=4, height=2, value=0):
    return np.full((height, width, 3), value, dtype=np.uint8)


def test_session_writes_frames_and_finishes():
    encoder = FakeEncoder()
    with EncodeSession(encoder, 4, 2) as session:
        session.write_frame(make_frame(value=1))
        session.write_frame(make_frame(value=2))
        status = session.finish()
    assert status.success
    assert encoder.frames == [bytes([1]) * 24, bytes([2]) * 24]
    assert encoder.close_calls == 1
    assert encoder.wait_calls == 1


def test_nonzero_exit_after_clean_writes_fails():
    encoder = FakeEncoder(returncode=1, diagnostics="Unknown encoder 'libx264'")
    with pytest.raises(EncoderExitError, match="Unknown encoder") as excinfo:
        with EncodeSession(encoder, 4, 2) as session:
            session.write_frame(make_frame())
            session.finish()
    assert excinfo.value.returncode == 1
    assert excinfo.value.diagnostics == "Unknown encoder 'libx264'"
    assert encoder.close_calls == 1


def test_write_failure_collects_diagnostics_and_closes_once():
    encoder = FakeEncoder(fail_after=1, returncode=1, diagnostics="out.mp4: Permission denied")
    with pytest.raises(EncoderWriteError, match="Permission denied") as excinfo:
        with EncodeSession(encoder, 4, 2) as session:
            session.write_frame(make_frame())
            session.write_frame(make_frame())
    assert "after 1 frame(s)" in str(excinfo.value)
    assert encoder.close_calls == 1
    assert encoder.wait_calls == 1


def test_frame_size_mismatch():
    encoder = FakeEncoder()
    with pytest.raises(FrameSizeError, match="6x2, expected 4x2"):
        with EncodeSession(encoder, 4, 2) as session:
            session.write_frame(make_frame(width=6))
    assert encoder.frames == []
    assert encoder.close_calls == 1


def test_error_inside_session_still_releases_encoder():
    encoder = FakeEncoder()
    with pytest.raises(RuntimeError):
        with EncodeSession(encoder, 4, 2):
            raise RuntimeError("boom")
    assert encoder.close_calls == 1
    assert encoder.wait_calls == 1


def test_build_ffmpeg_command():
    cmd = build_ffmpeg_command("out.mp4", 800, 600, 24, 20)
    assert cmd[0] == "ffmpeg"
    assert cmd[cmd.index("-pix_fmt") + 1] == "rgb24"
    assert cmd[cmd.index("-s") + 1] == "800x600"
    assert cmd[cmd.index("-r") + 1] == "24"
    assert cmd[cmd.index("-i") + 1] == "-"
    assert cmd[cmd.index("-crf") + 1] == "20"
    assert "-an" in cmd
    assert cmd[-1] == "out.mp4"


def test_build_ffmpeg_command_with_audio():
    cmd = build_ffmpeg_command("out.mp4", 800, 600, 24, 20, audio="audio.m4a")
    assert "-an" not in cmd
    assert "audio.m4a" in cmd
    assert "-shortest" in cmd
    assert cmd[cmd.index("-map") + 1] == "0:v:0"


def test_missing_binary_fails_to_spawn():
    with pytest.raises(EncoderSpawnError, match="not found"):
        FfmpegEncoder(["asciireel-no-such-encoder-binary"])


def test_real_process_exit_status_and_diagnostics():
    script = "import sys; sys.stdin.buffer.read(); sys.stderr.write('bad frame'); sys.exit(3)"
    encoder = FfmpegEncoder([sys.executable, "-c", script])
    encoder.write(b"\x00" * 1024)
    encoder.close_input()
    status = encoder.wait()
    assert status.returncode == 3
    assert status.diagnostics == "bad frame"


def test_real_process_broken_pipe():
    script = "import sys; sys.stderr.write('gave up'); sys.exit(1)"
    encoder = FfmpegEncoder([sys.executable, "-c", script])
    encoder.process.wait()
    with pytest.raises(EncoderWriteError):
        encoder.write(b"\x00" * (1 << 20))
    encoder.close_input()
    status = encoder.wait()
    assert status.returncode == 1
    assert status.diagnostics == "gave up"


def test_real_process_small_write_after_exit_fails():
    encoder = FfmpegEncoder([sys.executable, "-c", "import sys; sys.exit(1)"])
    encoder.process.wait()
    # Smaller than the pipe's write buffer
    with pytest.raises(EncoderWriteError):
        encoder.write(b"\x00" * 1536)
    encoder.close_input()
    assert encoder.wait().returncode == 1
