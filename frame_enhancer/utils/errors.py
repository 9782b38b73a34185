"""
Exception hierarchy for the frame enhancement pipeline
"""


class ImageProcessingError(Exception):
    """Base exception for frame processing errors"""
    pass


class ValidationError(ImageProcessingError):
    """Exception for input validation errors"""
    pass


class PixelBufferError(ValidationError):
    """Raised when a pixel buffer violates its shape or dtype contract"""
    pass


class ConfigurationError(ImageProcessingError):
    """Exception for invalid pipeline parameters or settings keys"""
    pass


class ImageIOError(ImageProcessingError):
    """Exception for image decode, encode, read or write failures"""
    pass
