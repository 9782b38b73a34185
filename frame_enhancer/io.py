"""
Image I/O between files, encoded bytes, OpenCV arrays and PixelBuffer.

OpenCV arrays are in BGR(A) channel order; PixelBuffer is always RGBA.
"""

from pathlib import Path
from typing import Union

import cv2
import numpy as np

from .core.pixel_buffer import PixelBuffer
from .utils.errors import ImageIOError, ValidationError
from .utils.image_utils import validate_image
from .utils.logging_config import get_logger

logger = get_logger(__name__)

_TO_RGBA = {
    1: cv2.COLOR_GRAY2RGBA,
    3: cv2.COLOR_BGR2RGBA,
    4: cv2.COLOR_BGRA2RGBA,
}


def from_ndarray(array: np.ndarray) -> PixelBuffer:
    """Gray (h, w), (h, w, 1), BGR or BGRA uint8 array to an RGBA PixelBuffer"""
    if not validate_image(array):
        raise ValidationError("Expected a non-empty uint8 image array with 1, 3 or 4 channels")

    channels = 1 if array.ndim == 2 else array.shape[2]
    if array.ndim == 3 and channels == 1:
        array = array[..., 0]

    rgba = cv2.cvtColor(np.ascontiguousarray(array), _TO_RGBA[channels])
    return PixelBuffer.from_array(rgba)


def to_ndarray(buffer: PixelBuffer) -> np.ndarray:
    """RGBA PixelBuffer to an (h, w, 4) BGRA array for OpenCV"""
    if buffer.is_empty:
        return np.zeros((buffer.height, buffer.width, 4), dtype=np.uint8)
    return cv2.cvtColor(buffer.as_array(), cv2.COLOR_RGBA2BGRA)


def decode_image(data: bytes) -> PixelBuffer:
    """Decode PNG/JPEG/... bytes, keeping alpha when the format has one"""
    if not data:
        raise ImageIOError("Empty image data")

    encoded = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(encoded, cv2.IMREAD_UNCHANGED)
    if image is None:
        raise ImageIOError("Could not decode image data")

    if image.dtype == np.uint16:
        # 16-bit PNG/TIFF
        image = (image >> 8).astype(np.uint8)
    elif image.dtype != np.uint8:
        raise ImageIOError(f"Unsupported image depth {image.dtype}")

    return from_ndarray(image)


def encode_image(buffer: PixelBuffer, ext: str = ".png") -> bytes:
    if not ext.startswith("."):
        ext = "." + ext
    if buffer.is_empty:
        raise ImageIOError("Cannot encode an empty frame")

    success, encoded = cv2.imencode(ext, to_ndarray(buffer))
    if not success:
        raise ImageIOError(f"Could not encode frame as {ext}")
    return encoded.tobytes()


def read_image(path: Union[str, Path]) -> PixelBuffer:
    """Load an image file into an RGBA PixelBuffer"""
    path = Path(path)
    if not path.is_file():
        raise ImageIOError(f"Image file not found: {path}")

    buffer = decode_image(path.read_bytes())
    logger.debug(f"Read {buffer.width}x{buffer.height} image from {path}")
    return buffer


def write_image(buffer: PixelBuffer, path: Union[str, Path]) -> Path:
    """Encode by file extension and write, creating parent directories"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    path.write_bytes(encode_image(buffer, path.suffix or ".png"))
    logger.debug(f"Wrote {buffer.width}x{buffer.height} image to {path}")
    return path
