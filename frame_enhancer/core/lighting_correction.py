from typing import Optional

import numpy as np

from .pixel_buffer import PixelBuffer
from ..utils.image_utils import timing_decorator, round_half_up, compute_luminance, logger

# Background model adaptation rate (~200 frame time constant)
BACKGROUND_ALPHA = 0.005
# Background values at or below this are too dark to divide by
BACKGROUND_FLOOR = 10.0
SHADOW_TARGET = 128.0

TARGET_MEAN_LUMINANCE = 128.0
MIN_MEAN_LUMINANCE = 1.0
GAIN_RANGE = (0.5, 2.0)


class BackgroundShadowCorrector:
    """
    Shadow removal by dividing each frame by a slowly adapting background.

    The background model is a flat float32 array of per-pixel RGB running
    averages that persists across calls. Instances are not thread-safe: use
    one corrector per sequential frame stream and serialise calls on it.
    """

    def __init__(self, alpha: float = BACKGROUND_ALPHA):
        self.alpha = alpha
        self._model: Optional[np.ndarray] = None
        logger.debug("Initialized BackgroundShadowCorrector")

    @property
    def has_model(self) -> bool:
        return self._model is not None

    @property
    def background_model(self) -> Optional[np.ndarray]:
        """Copy of the current model, or None before the first pass"""
        return None if self._model is None else self._model.copy()

    def reset(self):
        """Discard the model; the next frame is learned, not corrected"""
        self._model = None
        logger.info("Background model reset")

    @timing_decorator
    def apply(self, buffer: PixelBuffer) -> PixelBuffer:
        rgb = buffer.as_array()[..., :3]
        expected = buffer.pixel_count * 3

        if self._model is None or self._model.size != expected:
            if self._model is not None:
                logger.info(f"Frame size changed to {buffer.width}x{buffer.height}, relearning background")
            self._model = rgb.reshape(-1).astype(np.float32)
            return buffer.copy()

        pixels = rgb.reshape(-1).astype(np.float64)
        self._model[:] = (1.0 - self.alpha) * self._model.astype(np.float64) + self.alpha * pixels

        background = self._model.astype(np.float64)
        usable = background > BACKGROUND_FLOOR
        ratio = pixels / np.where(usable, background, 1.0)
        corrected = round_half_up(np.clip(ratio * SHADOW_TARGET, 0, 255))

        out = np.where(usable, corrected, pixels).astype(np.uint8)
        return buffer.with_rgb(out.reshape(buffer.height, buffer.width, 3))


class BrightnessNormalizer:
    """Global gain that pulls mean luminance towards mid-grey"""

    def __init__(self):
        logger.debug("Initialized BrightnessNormalizer")

    def compute_gain(self, buffer: PixelBuffer) -> Optional[float]:
        """Clamped gain for this frame, or None when the frame is (nearly) black or empty"""
        if buffer.is_empty:
            return None

        luminance = compute_luminance(buffer.as_array())
        mean_luminance = float(luminance.sum()) / buffer.pixel_count
        if mean_luminance < MIN_MEAN_LUMINANCE:
            return None

        low, high = GAIN_RANGE
        return min(high, max(low, TARGET_MEAN_LUMINANCE / mean_luminance))

    @timing_decorator
    def apply(self, buffer: PixelBuffer) -> PixelBuffer:
        gain = self.compute_gain(buffer)
        if gain is None:
            return buffer.copy()

        rgb = buffer.as_array()[..., :3].astype(np.float64)
        scaled = np.minimum(255, round_half_up(rgb * gain)).astype(np.uint8)
        return buffer.with_rgb(scaled)
