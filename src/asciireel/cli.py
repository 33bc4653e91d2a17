import argparse
import logging
import sys
import tempfile
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from tqdm import tqdm

from asciireel.config import AppConfig, ConversionOptions, RenderOptions
from asciireel.converter import convert_directory, convert_image_file
from asciireel.crop import crop_frames
from asciireel.errors import AsciiReelError, ConfigError
from asciireel.glyph_atlas import build_atlas
from asciireel.pipeline import GRID_EXTENSIONS, IMAGE_EXTENSIONS, collect_frames, encode_directory
from asciireel.renderer import render_image
from asciireel.video import extract_audio, extract_frames, preprocess_image, resolve_preprocess_filter

LOGGER = logging.getLogger("asciireel")


class ProgressBar:
    """Adapts (completed, total) callbacks to a tqdm bar created on first use."""

    def __init__(self, desc: str):
        self.desc = desc
        self.bar = None

    def __call__(self, completed: int, total: int) -> None:
        if self.bar is None:
            self.bar = tqdm(total=total, desc=self.desc, unit="frame")
        self.bar.n = completed
        self.bar.refresh()

    def __enter__(self) -> "ProgressBar":
        return self

    def __exit__(self, *exc) -> None:
        if self.bar is not None:
            self.bar.close()


def _package_version() -> str:
    try:
        return version("asciireel")
    except PackageNotFoundError:
        return "unknown"


def _parse_crop(value: str) -> tuple[int, int, int, int]:
    parts = value.split(",")
    if len(parts) == 1:
        parts = parts * 4
    if len(parts) != 4:
        raise argparse.ArgumentTypeError("expected N or TOP,BOTTOM,LEFT,RIGHT")
    try:
        top, bottom, left, right = (int(p) for p in parts)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer list: {value}") from None
    if min(top, bottom, left, right) < 0:
        raise argparse.ArgumentTypeError("crop amounts must be non-negative")
    return top, bottom, left, right


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Convert videos and images to ASCII frames, and render them back to video")
    parser.add_argument("input", help="Input video, image, or directory of frames")
    parser.add_argument("out", nargs="?", default=".", help="Output directory (default: current directory)")
    size = parser.add_mutually_exclusive_group()
    size.add_argument("-s", "--small", action="store_true", help="Use the 'small' preset")
    size.add_argument("-l", "--large", action="store_true", help="Use the 'large' preset")
    parser.add_argument("--config", help="JSON config file with presets and character ramp")
    parser.add_argument("--columns", type=int, default=None, help="Target width in characters")
    parser.add_argument("--fps", type=int, default=None, help="Frames per second when extracting from video")
    parser.add_argument("--font-ratio", type=float, default=None, help="Character width/height ratio")
    parser.add_argument("--luminance", type=int, default=None, help="Luminance threshold (0-255) below which cells are blank")
    parser.add_argument("--colors", action="store_true", help="Also write per-cell colors as .cframe files")
    parser.add_argument("--keep-images", action="store_true", help="Keep the extracted PNG frames")
    parser.add_argument("--start", default=None, help="Start time, e.g. 00:01:23.456 or 83.456")
    parser.add_argument("--end", default=None, help="End time, e.g. 00:01:30 or 90")
    preprocess = parser.add_mutually_exclusive_group()
    preprocess.add_argument("--preprocess", default=None, help="ffmpeg filter chain applied before conversion")
    preprocess.add_argument("--preprocess-preset", default=None, help="Named preprocessing preset, e.g. contours")
    parser.add_argument("--render", default=None, metavar="PATH", help="Render the frames to a video (or PNG for images)")
    parser.add_argument("--font", default=None, help="TrueType font for rendering (default: system monospace)")
    parser.add_argument("--font-size", type=int, default=16, help="Glyph size in pixels for rendering (default: 16)")
    parser.add_argument("--quality", type=int, default=18, help="x264 CRF for rendering (default: 18)")
    parser.add_argument("--no-audio", action="store_true", help="Do not copy the source audio into the render")
    parser.add_argument("--crop", type=_parse_crop, default=None, metavar="T,B,L,R", help="Crop a frames directory and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def write_details(output_dir: Path, frame_count: int, options: ConversionOptions, fps: int | None) -> None:
    lines = [
        f"Version: {_package_version()}",
        f"Frames: {frame_count}",
        f"Luminance: {options.luminance}",
        f"Font Ratio: {options.font_ratio}",
        f"Columns: {options.columns}",
    ]
    if fps is not None:
        lines.append(f"FPS: {fps}")
    (output_dir / "details.md").write_text("\n".join(lines), encoding="utf-8")


def run(args: argparse.Namespace) -> None:
    input_path = Path(args.input)
    output_path = Path(args.out)

    if args.crop is not None:
        top, bottom, left, right = args.crop
        result = crop_frames(input_path, top, bottom, left, right, output_path)
        print(
            f"Cropped {result.frame_count} frames to {result.width}x{result.height} "
            f"({result.total_size} bytes) in {output_path}"
        )
        return

    if not input_path.exists():
        raise ConfigError(f"Input path does not exist: {input_path}")

    config = AppConfig.load(args.config) if args.config else AppConfig()
    preset = config.preset("small" if args.small else "large" if args.large else None)
    options = ConversionOptions(
        columns=args.columns or preset.columns,
        font_ratio=args.font_ratio or preset.font_ratio,
        luminance=preset.luminance if args.luminance is None else args.luminance,
        ascii_chars=config.ascii_chars,
    )
    fps = args.fps or preset.fps
    render = RenderOptions(
        font_size=args.font_size,
        font_path=args.font,
        use_colors=args.colors,
        fps=fps,
        quality=args.quality,
    )
    preprocess = resolve_preprocess_filter(args.preprocess, args.preprocess_preset)

    if input_path.is_file():
        output_path = output_path / input_path.stem
    output_path.mkdir(parents=True, exist_ok=True)
    # Frames from ffmpeg or a directory are already at the target width
    frame_options = ConversionOptions(
        columns=None,
        font_ratio=options.font_ratio,
        luminance=options.luminance,
        ascii_chars=options.ascii_chars,
    )

    if input_path.is_file() and input_path.suffix.lower() in IMAGE_EXTENSIONS:
        with tempfile.TemporaryDirectory() as tmp:
            source = input_path
            if preprocess:
                source = preprocess_image(input_path, Path(tmp) / "preprocessed.png", preprocess)
            grid = convert_image_file(source, output_path / f"{input_path.stem}.txt", options, colors=args.colors)
        frame_count = 1
        fps = None
        if args.render:
            render_image(grid, build_atlas(render.font_size, render.font_path), render.use_colors).save(args.render)
            print(f"Rendered {args.render}")
    elif input_path.is_file():
        print("Extracting video frames...")
        extract_frames(input_path, output_path, options.columns, fps, args.start, args.end, preprocess)
        with ProgressBar("Converting") as progress:
            outputs = convert_directory(
                output_path,
                output_path,
                frame_options,
                colors=args.colors,
                keep_images=args.keep_images,
                progress=progress,
            )
        frame_count = len(outputs)
        if args.render:
            audio = None
            if not args.no_audio:
                audio = extract_audio(input_path, output_path / "audio.m4a", args.start, args.end)
            render_video(output_path, args.render, frame_options, render, audio)
    else:
        print("Converting directory of images...")
        with ProgressBar("Converting") as progress:
            outputs = convert_directory(
                input_path,
                output_path,
                frame_options,
                colors=args.colors,
                keep_images=True,
                progress=progress,
            )
        frame_count = len(outputs)
        fps = None
        if args.render:
            render_video(output_path, args.render, frame_options, render, None)

    write_details(output_path, frame_count, options, fps)
    print(f"ASCII generation complete in {output_path}")


def render_video(frames_dir: Path, output: str, options: ConversionOptions, render: RenderOptions, audio: Path | None) -> None:
    with ProgressBar("Encoding") as progress:
        frames = collect_frames(frames_dir, GRID_EXTENSIONS)
        encode_directory(frames, output, options, render, audio=audio, progress=progress)
    print(f"Rendered {output}")


def main():
    args = build_parser().parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    try:
        run(args)
    except AsciiReelError as exc:
        LOGGER.error("%s: %s", exc.code, str(exc).strip())
        sys.exit(1)
