"""Cross-cutting utilities (lowest dependency layer).

This package provides shared primitives for:
    - Color science (color)
    - Safe pixel access (pixel_buffer)
    - Error taxonomy (errors)
    - Config validation (validators)
    - Unified logging (logging_config)
    - Stage timing (profiler)

No module in utils/ may import from autoart.data_pipeline.

Convenience imports:
    from autoart.utils import color, validators
    from autoart.utils.logging_config import setup_logging, get_logger
"""

from . import color
from . import errors
from . import logging_config
from . import pixel_buffer
from . import profiler
from . import validators

from .errors import AutoArtError, DegenerateInputError, InvalidConfigurationError
from .logging_config import get_logger, push_context, setup_logging

__all__ = [
    # Modules
    'color',
    'errors',
    'logging_config',
    'pixel_buffer',
    'profiler',
    'validators',
    # Direct exports
    'AutoArtError',
    'DegenerateInputError',
    'InvalidConfigurationError',
    'setup_logging',
    'get_logger',
    'push_context',
]
