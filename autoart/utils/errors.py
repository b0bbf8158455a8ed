"""Error taxonomy for the image → layers → action sets pipeline.

All failures are local to one pipeline invocation and are never retried
here; the caller decides whether to re-run with adjusted configuration.

Hierarchy:
    AutoArtError
    ├── InvalidConfigurationError  (bad enum value, color count out of range)
    └── DegenerateInputError       (no opaque pixels, malformed buffer)

Both leaf classes also derive from ValueError so callers that only catch
ValueError (e.g. pydantic-style validation handlers) keep working.
"""


class AutoArtError(Exception):
    """Base class for all pipeline errors."""

    pass


class InvalidConfigurationError(AutoArtError, ValueError):
    """Raised when a configuration value is unsupported or out of range."""

    pass


class DegenerateInputError(AutoArtError, ValueError):
    """Raised when the input image cannot be processed at all."""

    pass
