"""
Dense RGBA8 raster shared by every pipeline stage
"""

from dataclasses import dataclass

import numpy as np

from ..utils.errors import PixelBufferError

CHANNELS = 4


def _check_dimensions(width, height):
    for name, value in (('width', width), ('height', height)):
        # bool is an int subclass
        if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
            raise PixelBufferError(f"{name} must be an integer, got {value!r}")
    if width < 0 or height < 0:
        raise PixelBufferError(f"Invalid dimensions {width}x{height}")


@dataclass(eq=False)
class PixelBuffer:
    """
    width x height RGBA frame stored as a flat, row-major uint8 array.

    ``data.size`` always equals ``width * height * 4``; buffers are never
    resized, stages either allocate a new buffer or overwrite one of the
    same shape.
    """

    width: int
    height: int
    data: np.ndarray

    def __post_init__(self):
        self.validate()

    def validate(self):
        """Raise PixelBufferError unless data is a flat uint8 array of width*height*4 bytes"""
        if not isinstance(self.data, np.ndarray):
            raise PixelBufferError(f"Pixel data must be a numpy array, got {type(self.data).__name__}")
        _check_dimensions(self.width, self.height)
        if self.data.dtype != np.uint8:
            raise PixelBufferError(f"Pixel data must be uint8, got {self.data.dtype}")
        if self.data.ndim != 1:
            raise PixelBufferError(f"Pixel data must be flat, got shape {self.data.shape}")

        expected = self.width * self.height * CHANNELS
        if self.data.size != expected:
            raise PixelBufferError(
                f"Pixel data length {self.data.size} does not match "
                f"{self.width}x{self.height}x{CHANNELS} = {expected}"
            )

    @classmethod
    def blank(cls, width: int, height: int) -> 'PixelBuffer':
        """Allocate a zeroed buffer"""
        _check_dimensions(width, height)
        return cls(width, height, np.zeros(width * height * CHANNELS, dtype=np.uint8))

    @classmethod
    def from_array(cls, array: np.ndarray) -> 'PixelBuffer':
        """Wrap a copy of an (height, width, 4) uint8 RGBA array"""
        if array.ndim != 3 or array.shape[2] != CHANNELS:
            raise PixelBufferError(f"Expected an (h, w, 4) array, got shape {array.shape}")
        if array.dtype != np.uint8:
            raise PixelBufferError(f"Pixel data must be uint8, got {array.dtype}")
        height, width = array.shape[:2]
        return cls(width, height, np.ascontiguousarray(array).reshape(-1).copy())

    def as_array(self) -> np.ndarray:
        """(height, width, 4) view over the pixel data"""
        return self.data.reshape(self.height, self.width, CHANNELS)

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    @property
    def is_empty(self) -> bool:
        return self.pixel_count == 0

    def same_shape(self, other: 'PixelBuffer') -> bool:
        return self.width == other.width and self.height == other.height

    def copy(self) -> 'PixelBuffer':
        return PixelBuffer(self.width, self.height, self.data.copy())

    def with_rgb(self, rgb: np.ndarray) -> 'PixelBuffer':
        """New buffer with the given (h, w, 3) colour channels and this buffer's alpha"""
        out = self.as_array().copy()
        out[..., :3] = rgb
        return PixelBuffer(self.width, self.height, out.reshape(-1))

    def __eq__(self, other):
        if not isinstance(other, PixelBuffer):
            return NotImplemented
        return self.same_shape(other) and np.array_equal(self.data, other.data)

    def __repr__(self):
        return f"PixelBuffer(width={self.width}, height={self.height})"
