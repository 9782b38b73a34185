import time
from functools import wraps
from typing import Any

import cv2
import numpy as np

from .logging_config import get_logger

logger = get_logger(__name__)

# ITU-R BT.601 luma weights
LUMA_WEIGHTS = (0.299, 0.587, 0.114)


def timing_decorator(func):
    """Decorator to measure and log processing time"""
    @wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        try:
            result = func(*args, **kwargs)
            processing_time = time.perf_counter() - start_time
            logger.debug(f"{func.__qualname__} completed in {processing_time:.4f} seconds")
            return result
        except Exception as e:
            processing_time = time.perf_counter() - start_time
            logger.error(f"{func.__qualname__} failed after {processing_time:.4f} seconds: {str(e)}")
            raise
    return wrapper


def round_half_up(values: Any) -> np.ndarray:
    """Round to nearest integer with halves going towards +inf (-2.5 -> -2, 2.5 -> 3)"""
    return np.floor(np.asarray(values, dtype=np.float64) + 0.5)


def clamp_to_byte(values: Any) -> np.ndarray:
    """Round half up, clamp to [0, 255] and convert to uint8"""
    return np.clip(round_half_up(values), 0, 255).astype(np.uint8)


def compute_luminance(rgb: np.ndarray) -> np.ndarray:
    """Per-pixel luminance of an (..., 3+) channel array, in double precision"""
    channels = rgb.astype(np.float64)
    r_weight, g_weight, b_weight = LUMA_WEIGHTS
    return r_weight * channels[..., 0] + g_weight * channels[..., 1] + b_weight * channels[..., 2]


def quantize_luminance(luminance: np.ndarray) -> np.ndarray:
    """Round and clamp luminance to histogram bin indices 0..255"""
    return np.clip(round_half_up(luminance), 0, 255).astype(np.intp)


def scale_by_luminance_ratio(rgb: np.ndarray, levels: np.ndarray, mapped: np.ndarray) -> np.ndarray:
    """
    Rescale R,G,B by mapped/original luminance, preserving approximate hue.

    The ratio is 1 wherever the original quantised luminance is 0.
    """
    levels = levels.astype(np.float64)
    safe_levels = np.where(levels > 0, levels, 1.0)
    scale = np.where(levels > 0, mapped.astype(np.float64) / safe_levels, 1.0)
    return clamp_to_byte(rgb.astype(np.float64) * scale[..., np.newaxis])


def validate_image(image: np.ndarray) -> bool:
    """Validate that an array can be turned into a frame"""
    if image is None:
        logger.warning("Image is None")
        return False

    if not isinstance(image, np.ndarray):
        logger.warning(f"Image is not numpy array, got {type(image)}")
        return False

    if len(image.shape) not in [2, 3]:
        logger.warning(f"Invalid image dimensions: {image.shape}")
        return False

    if len(image.shape) == 3 and image.shape[2] not in [1, 3, 4]:
        logger.warning(f"Unsupported channel count: {image.shape[2]}")
        return False

    if image.size == 0:
        logger.warning("Image is empty")
        return False

    if image.dtype != np.uint8:
        logger.warning(f"Image must be 8-bit, got {image.dtype}")
        return False

    return True


def calculate_image_metrics(frame) -> dict:
    """Calculate image quality metrics for an RGBA frame (PixelBuffer or (h, w, 4) array)"""
    rgba = frame.as_array() if hasattr(frame, "as_array") else frame
    height, width = rgba.shape[:2]

    if rgba.size == 0:
        return {
            'mean_brightness': 0.0,
            'std_brightness': 0.0,
            'contrast': 0.0,
            'dynamic_range': 0.0,
            'sharpness': 0.0,
            'noise_level': 0.0,
            'edge_density': 0.0,
            'image_size': (height, width)
        }

    gray = cv2.cvtColor(np.ascontiguousarray(rgba), cv2.COLOR_RGBA2GRAY)
    residual = gray.astype(np.float32) - cv2.medianBlur(gray, 5).astype(np.float32)

    return {
        'mean_brightness': float(np.mean(gray)),
        'std_brightness': float(np.std(gray)),
        'contrast': float(gray.max()) - float(gray.min()),
        'dynamic_range': float(np.percentile(gray, 99) - np.percentile(gray, 1)),
        'sharpness': float(cv2.Laplacian(gray, cv2.CV_64F).var()),
        'noise_level': float(np.std(residual)),
        'edge_density': float(np.sum(cv2.Canny(gray, 50, 150) > 0) / gray.size),
        'image_size': (height, width)
    }
