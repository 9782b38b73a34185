"""
Core frame preprocessing stages and the pipeline that chains them
"""

from .pixel_buffer import PixelBuffer
from .noise_reduction import GaussianDenoiser, DENOISE_KERNEL, DENOISE_KERNEL_SUM
from .lighting_correction import BackgroundShadowCorrector, BrightnessNormalizer
from .contrast_enhancement import AdaptiveContrastEnhancer, GlobalHistogramEqualizer, TileMapping
from .quality_enhancement import UnsharpSharpener
from .pipeline import FramePreprocessingPipeline

__all__ = [
    'PixelBuffer',
    'GaussianDenoiser',
    'DENOISE_KERNEL',
    'DENOISE_KERNEL_SUM',
    'BackgroundShadowCorrector',
    'BrightnessNormalizer',
    'AdaptiveContrastEnhancer',
    'GlobalHistogramEqualizer',
    'TileMapping',
    'UnsharpSharpener',
    'FramePreprocessingPipeline',
]
