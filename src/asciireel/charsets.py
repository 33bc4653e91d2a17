from asciireel.errors import ConfigError

ASCII_PRINTABLE = "".join(chr(i) for i in range(32, 127))

# Darkest to lightest
DEFAULT_RAMP = " .'`^,:;Il!i><~+_-?][}{1)(|/tfjrxnuvczXYUJCLQ0OZmwqpdbkhao*#MW&8%B@$"

# Short ramp for small terminals and tests
SIMPLE_RAMP = " .:-=+*#%@"


def validate_ramp(ramp: str) -> bytes:
    """Check a character ramp and return it as bytes, one byte per level."""
    if not isinstance(ramp, str):
        raise ConfigError(f"Character ramp must be a string, got {type(ramp).__name__}")
    if not ramp:
        raise ConfigError("Character ramp is empty")
    bad = sorted({c for c in ramp if c not in ASCII_PRINTABLE})
    if bad:
        raise ConfigError(
            f"Character ramp contains non-ASCII or non-printable characters: {''.join(bad)!r}. "
            "Use only printable ASCII characters."
        )
    return ramp.encode("ascii")
