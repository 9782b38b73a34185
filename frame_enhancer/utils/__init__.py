"""
Utility functions for frame processing

Contains logging setup, numeric helpers, metrics and the exception hierarchy.
"""

from .errors import (
    ImageProcessingError,
    ValidationError,
    PixelBufferError,
    ConfigurationError,
    ImageIOError,
)
from .logging_config import (
    setup_logging,
    get_logger,
    get_pipeline_logger,
    PipelineLogger,
)
from .image_utils import (
    timing_decorator,
    round_half_up,
    clamp_to_byte,
    compute_luminance,
    quantize_luminance,
    scale_by_luminance_ratio,
    validate_image,
    calculate_image_metrics,
)

__all__ = [
    'ImageProcessingError',
    'ValidationError',
    'PixelBufferError',
    'ConfigurationError',
    'ImageIOError',
    'setup_logging',
    'get_logger',
    'get_pipeline_logger',
    'PipelineLogger',
    'timing_decorator',
    'round_half_up',
    'clamp_to_byte',
    'compute_luminance',
    'quantize_luminance',
    'scale_by_luminance_ratio',
    'validate_image',
    'calculate_image_metrics',
]
