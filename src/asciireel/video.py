import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from asciireel.errors import ConfigError, DecoderError

LOGGER = logging.getLogger(__name__)

FRAME_PATTERN = "frame_%04d.png"


@dataclass(frozen=True)
class PreprocessPreset:
    name: str
    description: str
    filter: str


PREPROCESS_PRESETS = [
    PreprocessPreset(
        "contours",
        "Grayscale edge-detection with strong contrast (good for outlines).",
        "format=gray,edgedetect=mode=colormix:high=0.2:low=0.05,eq=contrast=2.5:brightness=-0.1",
    ),
    PreprocessPreset(
        "contours-soft",
        "Softer contour extraction with less aggressive edges.",
        "format=gray,edgedetect=mode=colormix:high=0.12:low=0.03,eq=contrast=2.0:brightness=-0.05",
    ),
    PreprocessPreset(
        "contours-strong",
        "Very sharp contour extraction for bold linework.",
        "format=gray,edgedetect=mode=colormix:high=0.35:low=0.08,eq=contrast=3.2:brightness=-0.12",
    ),
    PreprocessPreset(
        "bw-contrast",
        "Simple grayscale + contrast boost for clean monochrome output.",
        "format=gray,eq=contrast=2.2:brightness=-0.08",
    ),
    PreprocessPreset(
        "noir-detail",
        "Grayscale sharpened look that emphasizes texture.",
        "format=gray,unsharp=5:5:1.0:5:5:0.0,eq=contrast=1.8:brightness=-0.04",
    ),
    PreprocessPreset(
        "vivid",
        "Boost color saturation/contrast and sharpen for colorful output.",
        "eq=saturation=1.8:contrast=1.2:brightness=0.02,unsharp=5:5:0.8:5:5:0.0",
    ),
    PreprocessPreset(
        "warm-pop",
        "Warmer color balance with moderate saturation boost.",
        "colorbalance=rs=0.06:gs=0.02:bs=-0.04,eq=saturation=1.35:contrast=1.12",
    ),
    PreprocessPreset(
        "cool-pop",
        "Cooler color balance with moderate saturation boost.",
        "colorbalance=rs=-0.04:gs=0.02:bs=0.07,eq=saturation=1.28:contrast=1.10",
    ),
    PreprocessPreset(
        "soft-glow",
        "Gentle blur and color lift for smoother gradients.",
        "gblur=sigma=1.0,eq=saturation=1.15:contrast=1.08:brightness=0.02",
    ),
]


def find_preprocess_preset(name: str) -> PreprocessPreset | None:
    for preset in PREPROCESS_PRESETS:
        if preset.name.lower() == name.strip().lower():
            return preset
    return None


def resolve_preprocess_filter(preprocess: str | None = None, preset: str | None = None) -> str | None:
    """An explicit ffmpeg filter wins over a named preset."""
    if preprocess is not None:
        preprocess = preprocess.strip()
        if not preprocess:
            raise ConfigError("Preprocess filter cannot be empty")
        return preprocess
    if preset is not None:
        found = find_preprocess_preset(preset)
        if found is None:
            available = ", ".join(p.name for p in PREPROCESS_PRESETS)
            raise ConfigError(f"Unknown preprocessing preset '{preset}'. Available presets: {available}")
        return found.filter
    return None


def build_frame_filter(columns: int, fps: int, preprocess: str | None = None) -> str:
    base = f"scale={columns}:-2,fps={fps}"
    if preprocess:
        preprocess = preprocess.strip().rstrip(",")
    return f"{preprocess},{base}" if preprocess else base


def parse_timestamp(value: str) -> float:
    """Seconds from "SS", "MM:SS" or "HH:MM:SS.sss". Unparseable parts count as zero."""
    seconds = 0.0
    for i, part in enumerate(reversed(value.split(":"))):
        try:
            seconds += float(part) * 60**i
        except ValueError:
            continue
    return seconds


def _time_args(start: str | None, end: str | None) -> tuple[list[str], list[str]]:
    """Input-side (-ss) and output-side (-t) arguments for a start/end window."""
    before: list[str] = []
    after: list[str] = []
    has_start = bool(start) and start != "0"
    if has_start:
        before = ["-ss", start]
    if end:
        if has_start:
            duration = parse_timestamp(end) - parse_timestamp(start)
            if duration > 0:
                after = ["-t", str(duration)]
        else:
            after = ["-t", end]
    return before, after


def _run_ffmpeg(args: list[str], what: str) -> subprocess.CompletedProcess:
    if shutil.which("ffmpeg") is None:
        raise DecoderError("ffmpeg not found on PATH")
    cmd = ["ffmpeg", "-y", "-loglevel", "error", *args]
    LOGGER.debug("Running: %s", " ".join(cmd))
    result = subprocess.run(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.PIPE, check=False)
    if result.returncode != 0:
        stderr_text = result.stderr.decode("utf-8", errors="replace").strip()
        raise DecoderError(f"ffmpeg failed while {what} (exit code {result.returncode})", stderr_text)
    return result


def extract_frames(
    source: str | Path,
    output_dir: str | Path,
    columns: int,
    fps: int,
    start: str | None = None,
    end: str | None = None,
    preprocess: str | None = None,
) -> list[Path]:
    """Pull frames out of a video as frame_0001.png, frame_0002.png, ... scaled to ``columns`` pixels wide."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    before, after = _time_args(start, end)
    args = [*before, "-i", str(source), *after, "-vf", build_frame_filter(columns, fps, preprocess)]
    _run_ffmpeg([*args, str(output_dir / FRAME_PATTERN)], f"extracting frames from {source}")
    frames = sorted(output_dir.glob("frame_*.png"))
    LOGGER.info("Extracted %d frames from %s", len(frames), source)
    return frames


def has_audio(source: str | Path) -> bool:
    if shutil.which("ffprobe") is None:
        return False
    result = subprocess.run(
        ["ffprobe", "-v", "error", "-select_streams", "a", "-show_entries", "stream=index", "-of", "csv=p=0", str(source)],
        capture_output=True,
        text=True,
        check=False,
    )
    return result.returncode == 0 and bool(result.stdout.strip())


def extract_audio(
    source: str | Path,
    output: str | Path,
    start: str | None = None,
    end: str | None = None,
) -> Path | None:
    """Extract the audio track to ``output`` (AAC). Returns None when the source has no audio."""
    if not has_audio(source):
        LOGGER.info("No audio track in %s", source)
        return None
    before, after = _time_args(start, end)
    output = Path(output)
    _run_ffmpeg([*before, "-i", str(source), *after, "-vn", "-c:a", "aac", str(output)], f"extracting audio from {source}")
    return output


def preprocess_image(source: str | Path, output: str | Path, filter_: str) -> Path:
    """Run one image through an ffmpeg filter chain."""
    output = Path(output)
    _run_ffmpeg(["-i", str(source), "-vf", filter_, "-frames:v", "1", str(output)], f"preprocessing {source}")
    return output
