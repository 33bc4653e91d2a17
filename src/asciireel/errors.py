class AsciiReelError(RuntimeError):
    """Base error with a stable code for CLI reporting."""

    code = "asciireel.error"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class DecodeError(AsciiReelError):
    code = "asciireel.decode"


class ConfigError(AsciiReelError, ValueError):
    code = "asciireel.config"


class CorruptFrame(AsciiReelError, ValueError):
    code = "asciireel.frame.corrupt"


class MalformedGrid(AsciiReelError, ValueError):
    code = "asciireel.frame.malformed"


class FrameSizeError(AsciiReelError):
    code = "asciireel.frame.size"


class DecoderError(AsciiReelError):
    """ffmpeg failed while pulling frames or audio out of a source video."""

    code = "asciireel.decoder"

    def __init__(self, message: str, diagnostics: str = "") -> None:
        if diagnostics:
            message = f"{message}: {diagnostics}"
        super().__init__(message)
        self.diagnostics = diagnostics


class EncoderError(AsciiReelError):
    code = "asciireel.encoder"

    def __init__(self, message: str, diagnostics: str = "", returncode: int | None = None) -> None:
        if diagnostics:
            message = f"{message}\n{diagnostics}"
        super().__init__(message)
        self.diagnostics = diagnostics
        self.returncode = returncode


class EncoderSpawnError(EncoderError):
    code = "asciireel.encoder.spawn"


class EncoderWriteError(EncoderError):
    code = "asciireel.encoder.write"


class EncoderExitError(EncoderError):
    code = "asciireel.encoder.exit"
