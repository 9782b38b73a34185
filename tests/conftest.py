"""
Pytest configuration and shared fixtures

This module provides common fixtures and configuration for all tests.
"""

import os

import cv2
import numpy as np
import pytest

from frame_enhancer.configs.processing_config import ContrastStage, PipelineSettings, ProcessingConfig
from frame_enhancer.core.pixel_buffer import PixelBuffer
from frame_enhancer.core.pipeline import FramePreprocessingPipeline
from frame_enhancer.utils.logging_config import setup_logging


# Configure test logging
setup_logging(log_level="DEBUG")


# Environment setup
@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """Setup test environment variables"""
    os.environ["ENVIRONMENT"] = "testing"
    os.environ["LOG_LEVEL"] = "DEBUG"
    yield


@pytest.fixture
def uniform_frame():
    """Factory for frames where every pixel has the same RGBA value"""
    def _make(width, height, rgba=(128, 128, 128, 255)):
        data = np.tile(np.array(rgba, dtype=np.uint8), width * height)
        return PixelBuffer(width, height, data)
    return _make


@pytest.fixture
def gray_frame():
    """Factory for opaque gray frames from an (h, w) array of levels"""
    def _make(levels):
        levels = np.asarray(levels, dtype=np.uint8)
        rgba = np.empty(levels.shape + (4,), dtype=np.uint8)
        rgba[..., :3] = levels[..., np.newaxis]
        rgba[..., 3] = 255
        return PixelBuffer.from_array(rgba)
    return _make


@pytest.fixture
def random_frame():
    """Factory for seeded random RGBA frames"""
    def _make(width, height, seed=0):
        rng = np.random.default_rng(seed)
        rgba = rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8)
        return PixelBuffer.from_array(rgba)
    return _make


@pytest.fixture
def checkerboard_frame():
    """8x8 black/white checkerboard, opaque"""
    yy, xx = np.mgrid[0:8, 0:8]
    levels = np.where((xx + yy) % 2 == 0, 0, 255).astype(np.uint8)
    rgba = np.empty((8, 8, 4), dtype=np.uint8)
    rgba[..., :3] = levels[..., np.newaxis]
    rgba[..., 3] = 255
    return PixelBuffer.from_array(rgba)


@pytest.fixture
def only_stage():
    """Factory for settings with exactly the named stages enabled"""
    def _make(denoise=False, shadow_correction=False, brightness_norm=False,
              contrast=ContrastStage.NONE, motion_blur_comp=False):
        return PipelineSettings(
            enabled=True,
            denoise=denoise,
            shadow_correction=shadow_correction,
            brightness_norm=brightness_norm,
            contrast=contrast,
            motion_blur_comp=motion_blur_comp,
        )
    return _make


@pytest.fixture
def processing_config():
    """Pipeline config that neither saves intermediates nor reads the environment"""
    return ProcessingConfig(
        CLAHE_TILES_PER_AXIS=8,
        CLAHE_CLIP_LIMIT=2.5,
        MAX_PROCESSING_TIME=30.0,
        SAVE_INTERMEDIATE_RESULTS=False,
        OUTPUT_DIR=None,
    )


@pytest.fixture
def pipeline(processing_config):
    """Fresh pipeline with default stage toggles"""
    return FramePreprocessingPipeline(PipelineSettings(), processing_config)


@pytest.fixture
def sample_image() -> np.ndarray:
    """Generate a sample BGR test image"""
    rng = np.random.default_rng(42)
    return rng.integers(0, 256, size=(48, 64, 3), dtype=np.uint8)


@pytest.fixture
def sample_image_bytes(sample_image) -> bytes:
    """Convert sample image to PNG bytes"""
    _, buffer = cv2.imencode('.png', sample_image)
    return buffer.tobytes()


# Markers for test categorization
def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
