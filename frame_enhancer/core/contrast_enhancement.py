"""
Luminance histogram equalisation, tiled (CLAHE) and global.

Both stages equalise a 256-bin luminance histogram and then rescale R, G and B
by the ratio of corrected to original luminance, so hue is roughly preserved.
"""

import math
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from .pixel_buffer import PixelBuffer
from ..configs.processing_config import CLAHEParams
from ..utils.image_utils import (
    timing_decorator, round_half_up, compute_luminance, quantize_luminance,
    scale_by_luminance_ratio, logger
)

HISTOGRAM_BINS = 256
IDENTITY_MAPPING = np.arange(HISTOGRAM_BINS, dtype=np.uint8)
IDENTITY_MAPPING.setflags(write=False)


@dataclass
class TileMapping:
    """Pixel bounds of one CLAHE tile and its luminance lookup table"""

    x0: int
    y0: int
    x1: int
    y1: int
    mapping: np.ndarray

    @property
    def pixel_count(self) -> int:
        return max(0, self.x1 - self.x0) * max(0, self.y1 - self.y0)


def cdf_to_mapping(cdf: np.ndarray, count: float) -> np.ndarray:
    """
    Normalise a cumulative histogram to an 8-bit lookup table.

    Falls back to the identity mapping when count - cdf[0] is not positive
    (empty tile, or every pixel in the lowest occupied bin).
    """
    cdf_min = float(cdf[0])
    cdf_range = count - cdf_min
    if cdf_range <= 0:
        return IDENTITY_MAPPING.copy()

    mapped = round_half_up((cdf.astype(np.float64) - cdf_min) / cdf_range * 255)
    return np.clip(mapped, 0, 255).astype(np.uint8)


def clip_histogram(hist: np.ndarray, clip_limit: float, count: int) -> np.ndarray:
    """Cap every bin at clip_limit * count / 256 and spread the excess uniformly"""
    clip_value = clip_limit * (count / HISTOGRAM_BINS)
    hist = hist.astype(np.float64)
    excess = float(np.sum(np.maximum(hist - clip_value, 0.0)))
    clipped = np.minimum(hist, np.float32(clip_value)).astype(np.float32)
    return (clipped.astype(np.float64) + excess / HISTOGRAM_BINS).astype(np.float32)


class AdaptiveContrastEnhancer:
    """
    Contrast-limited adaptive histogram equalisation over a fixed tile grid.

    Each pixel is mapped with the table of the tile it falls in (nearest
    tile, no blending between neighbouring tiles).
    """

    def __init__(self, params: Optional[CLAHEParams] = None):
        self.params = params or CLAHEParams()
        logger.debug(f"Initialized AdaptiveContrastEnhancer with {self.params}")

    def tile_size(self, width: int, height: int):
        tiles = self.params.tiles_per_axis
        return math.ceil(width / tiles), math.ceil(height / tiles)

    def _quantized_luminance(self, buffer: PixelBuffer) -> np.ndarray:
        luminance = compute_luminance(buffer.as_array()).astype(np.float32)
        return quantize_luminance(luminance)

    def _tile_mappings(self, levels: np.ndarray, width: int, height: int) -> List[TileMapping]:
        tiles = self.params.tiles_per_axis
        tile_w, tile_h = self.tile_size(width, height)
        mappings = []

        for ty in range(tiles):
            for tx in range(tiles):
                x0 = tx * tile_w
                y0 = ty * tile_h
                x1 = min(x0 + tile_w, width)
                y1 = min(y0 + tile_h, height)

                region = levels[y0:max(y0, y1), x0:max(x0, x1)]
                count = region.size
                hist = np.bincount(region.ravel(), minlength=HISTOGRAM_BINS).astype(np.float32)

                if count > 0:
                    hist = clip_histogram(hist, self.params.clip_limit, count)

                cdf = np.cumsum(hist, dtype=np.float32)
                mappings.append(TileMapping(x0, y0, x1, y1, cdf_to_mapping(cdf, count)))

        return mappings

    def build_tile_mappings(self, buffer: PixelBuffer) -> List[TileMapping]:
        """Row-major list of tiles_per_axis ** 2 tile mappings for this frame"""
        return self._tile_mappings(self._quantized_luminance(buffer), buffer.width, buffer.height)

    @timing_decorator
    def apply(self, buffer: PixelBuffer) -> PixelBuffer:
        if buffer.is_empty:
            return buffer.copy()

        width, height = buffer.width, buffer.height
        tiles = self.params.tiles_per_axis
        tile_w, tile_h = self.tile_size(width, height)

        levels = self._quantized_luminance(buffer)
        mappings = self._tile_mappings(levels, width, height)
        tables = np.stack([tile.mapping for tile in mappings]).reshape(tiles, tiles, HISTOGRAM_BINS)

        tile_x = np.minimum(np.arange(width) // tile_w, tiles - 1)
        tile_y = np.minimum(np.arange(height) // tile_h, tiles - 1)
        mapped = tables[tile_y[:, np.newaxis], tile_x[np.newaxis, :], levels]

        rgb = scale_by_luminance_ratio(buffer.as_array()[..., :3], levels, mapped)
        return buffer.with_rgb(rgb)


class GlobalHistogramEqualizer:
    """Whole-frame luminance histogram equalisation without clipping"""

    def __init__(self):
        logger.debug("Initialized GlobalHistogramEqualizer")

    def build_mapping(self, buffer: PixelBuffer) -> np.ndarray:
        """256-entry lookup table from quantised to equalised luminance"""
        levels = quantize_luminance(compute_luminance(buffer.as_array()))
        return self._mapping(levels)

    def _mapping(self, levels: np.ndarray) -> np.ndarray:
        hist = np.bincount(levels.ravel(), minlength=HISTOGRAM_BINS).astype(np.float32)
        cdf = np.cumsum(hist, dtype=np.float32)
        return cdf_to_mapping(cdf, levels.size)

    @timing_decorator
    def apply(self, buffer: PixelBuffer) -> PixelBuffer:
        if buffer.is_empty:
            return buffer.copy()

        levels = quantize_luminance(compute_luminance(buffer.as_array()))
        mapping = self._mapping(levels)
        rgb = scale_by_luminance_ratio(buffer.as_array()[..., :3], levels, mapping[levels])
        return buffer.with_rgb(rgb)
