from typing import Optional

import numpy as np

from .pixel_buffer import PixelBuffer
from .noise_reduction import GaussianDenoiser
from ..utils.image_utils import timing_decorator, clamp_to_byte, logger

SHARPEN_AMOUNT = 1.5


class UnsharpSharpener:
    """Motion blur compensation by unsharp masking against the denoise blur"""

    def __init__(self, denoiser: Optional[GaussianDenoiser] = None, amount: float = SHARPEN_AMOUNT):
        self.denoiser = denoiser or GaussianDenoiser()
        self.amount = amount
        logger.debug("Initialized UnsharpSharpener")

    @timing_decorator
    def apply(self, buffer: PixelBuffer) -> PixelBuffer:
        """original + amount * (original - blurred) per colour channel; alpha is kept"""
        blurred = self.denoiser.apply(buffer)

        original = buffer.as_array()[..., :3].astype(np.float64)
        detail = original - blurred.as_array()[..., :3].astype(np.float64)

        return buffer.with_rgb(clamp_to_byte(original + self.amount * detail))
