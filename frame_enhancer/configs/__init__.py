"""
Configuration module for the frame preprocessing pipeline

Contains stage toggles, CLAHE parameters, library config and service settings.
"""

from .processing_config import (
    CLAHEParams,
    ContrastStage,
    PipelineSettings,
    ProcessingConfig,
)

__all__ = [
    'CLAHEParams',
    'ContrastStage',
    'PipelineSettings',
    'ProcessingConfig',
]
