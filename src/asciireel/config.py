import json
from dataclasses import dataclass, field
from pathlib import Path

from asciireel.charsets import DEFAULT_RAMP, validate_ramp
from asciireel.errors import ConfigError


@dataclass(frozen=True)
class Preset:
    columns: int
    fps: int
    font_ratio: float
    luminance: int


PRESETS = {
    "default": Preset(columns=400, fps=30, font_ratio=0.7, luminance=20),
    "small": Preset(columns=80, fps=24, font_ratio=0.44, luminance=20),
    "large": Preset(columns=800, fps=60, font_ratio=0.7, luminance=20),
}


@dataclass(frozen=True)
class ConversionOptions:
    """Settings for the luminance mapper. Validated once, on construction."""

    columns: int | None = 400
    font_ratio: float = 0.7
    luminance: int = 20
    ascii_chars: str = DEFAULT_RAMP

    def __post_init__(self) -> None:
        validate_ramp(self.ascii_chars)
        if not 0 <= self.luminance <= 255:
            raise ConfigError(f"Luminance threshold must be within 0-255, got {self.luminance}")
        if self.columns is not None and self.columns < 1:
            raise ConfigError(f"Columns must be at least 1, got {self.columns}")
        if self.font_ratio <= 0:
            raise ConfigError(f"Font ratio must be positive, got {self.font_ratio}")

    @property
    def ramp(self) -> bytes:
        return self.ascii_chars.encode("ascii")

    @classmethod
    def from_preset(cls, preset: Preset, ascii_chars: str = DEFAULT_RAMP) -> "ConversionOptions":
        return cls(
            columns=preset.columns,
            font_ratio=preset.font_ratio,
            luminance=preset.luminance,
            ascii_chars=ascii_chars,
        )


@dataclass(frozen=True)
class RenderOptions:
    font_size: int = 16
    font_path: str | None = None
    use_colors: bool = True
    fps: int = 30
    quality: int = 18  # x264 CRF, lower is better
    batch_size: int = 100

    def __post_init__(self) -> None:
        if self.font_size < 1:
            raise ConfigError(f"Font size must be at least 1, got {self.font_size}")
        if self.fps < 1:
            raise ConfigError(f"Frame rate must be at least 1, got {self.fps}")
        if not 0 <= self.quality <= 51:
            raise ConfigError(f"Quality (CRF) must be within 0-51, got {self.quality}")
        if self.batch_size < 1:
            raise ConfigError(f"Batch size must be at least 1, got {self.batch_size}")


@dataclass
class AppConfig:
    presets: dict[str, Preset] = field(default_factory=lambda: dict(PRESETS))
    default_preset: str = "default"
    ascii_chars: str = DEFAULT_RAMP

    def preset(self, name: str | None = None) -> Preset:
        name = name or self.default_preset
        try:
            return self.presets[name]
        except KeyError:
            raise ConfigError(f"Preset '{name}' not found (available: {', '.join(sorted(self.presets))})") from None

    def options(self, preset_name: str | None = None) -> ConversionOptions:
        return ConversionOptions.from_preset(self.preset(preset_name), self.ascii_chars)

    @classmethod
    def load(cls, path: str | Path) -> "AppConfig":
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise ConfigError(f"Cannot read config {path}: {exc}") from exc

        presets = dict(PRESETS)
        for name, values in data.get("presets", {}).items():
            try:
                presets[name] = Preset(
                    columns=int(values["columns"]),
                    fps=int(values["fps"]),
                    font_ratio=float(values["font_ratio"]),
                    luminance=int(values["luminance"]),
                )
            except (KeyError, TypeError, ValueError) as exc:
                raise ConfigError(f"Invalid preset '{name}' in {path}: {exc}") from exc

        ascii_chars = data.get("ascii_chars", DEFAULT_RAMP)
        try:
            validate_ramp(ascii_chars)
        except ConfigError as exc:
            raise ConfigError(f"Config file {path}: {exc}") from exc

        config = cls(
            presets=presets,
            default_preset=data.get("default_preset", "default"),
            ascii_chars=ascii_chars,
        )
        config.preset()
        return config
