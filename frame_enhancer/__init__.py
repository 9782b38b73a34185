"""
Frame Enhancer

Real-time preprocessing of camera frames ahead of computer-vision inference:
denoising, shadow and brightness correction, contrast equalisation and
motion blur compensation on RGBA pixel buffers.
"""

from .core import (
    PixelBuffer,
    FramePreprocessingPipeline,
    GaussianDenoiser,
    BackgroundShadowCorrector,
    BrightnessNormalizer,
    AdaptiveContrastEnhancer,
    GlobalHistogramEqualizer,
    UnsharpSharpener,
)
from .configs import CLAHEParams, ContrastStage, PipelineSettings, ProcessingConfig
from .io import read_image, write_image, decode_image, encode_image, from_ndarray, to_ndarray
from .utils import setup_logging, ImageProcessingError, ValidationError, ConfigurationError

__version__ = "1.0.0"

__all__ = [
    'PixelBuffer',
    'FramePreprocessingPipeline',
    'GaussianDenoiser',
    'BackgroundShadowCorrector',
    'BrightnessNormalizer',
    'AdaptiveContrastEnhancer',
    'GlobalHistogramEqualizer',
    'UnsharpSharpener',
    'CLAHEParams',
    'ContrastStage',
    'PipelineSettings',
    'ProcessingConfig',
    'read_image',
    'write_image',
    'decode_image',
    'encode_image',
    'from_ndarray',
    'to_ndarray',
    'setup_logging',
    'ImageProcessingError',
    'ValidationError',
    'ConfigurationError',
]
