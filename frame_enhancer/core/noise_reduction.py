import numpy as np
from scipy import ndimage

from .pixel_buffer import PixelBuffer
from ..utils.image_utils import timing_decorator, logger

# 3x3 binomial approximation of a Gaussian, shared with the sharpener
DENOISE_KERNEL = np.array([[1, 2, 1],
                           [2, 4, 2],
                           [1, 2, 1]], dtype=np.int32)
DENOISE_KERNEL.setflags(write=False)
DENOISE_KERNEL_SUM = 16


class GaussianDenoiser:
    """Fixed 3x3 Gaussian smoothing of the colour channels"""

    def __init__(self):
        logger.debug("Initialized GaussianDenoiser")

    @timing_decorator
    def apply(self, buffer: PixelBuffer) -> PixelBuffer:
        """
        Smooth every interior pixel with DENOISE_KERNEL.

        Interior R,G,B become the kernel-weighted neighbourhood sum / 16,
        rounded half up, and interior alpha is forced to 255. Pixels on the
        one-pixel border are copied unchanged.
        """
        src = buffer.as_array()
        dst = src.copy()

        if buffer.height < 3 or buffer.width < 3:
            return PixelBuffer(buffer.width, buffer.height, dst.reshape(-1))

        channels = src[..., :3].astype(np.int32)
        # Interior results do not depend on the boundary mode
        weighted = ndimage.correlate(channels, DENOISE_KERNEL[:, :, np.newaxis], mode='nearest')

        half = DENOISE_KERNEL_SUM // 2
        dst[1:-1, 1:-1, :3] = (weighted[1:-1, 1:-1] + half) // DENOISE_KERNEL_SUM
        dst[1:-1, 1:-1, 3] = 255

        return PixelBuffer(buffer.width, buffer.height, dst.reshape(-1))
