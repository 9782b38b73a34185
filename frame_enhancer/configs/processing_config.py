from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional
import os

from ..utils.errors import ConfigurationError


class ContrastStage(str, Enum):
    """Which contrast stage runs; CLAHE and global equalisation never run together"""
    NONE = "none"
    CLAHE = "clahe"
    HISTOGRAM_EQ = "histogram_eq"


@dataclass
class CLAHEParams:
    """Tile grid and clip limit for adaptive histogram equalisation"""

    tiles_per_axis: int = 8
    clip_limit: float = 2.5

    def __post_init__(self):
        if int(self.tiles_per_axis) != self.tiles_per_axis or self.tiles_per_axis < 1:
            raise ConfigurationError(
                f"tiles_per_axis must be a positive integer, got {self.tiles_per_axis!r}"
            )
        if not self.clip_limit > 0:
            raise ConfigurationError(f"clip_limit must be positive, got {self.clip_limit!r}")
        self.tiles_per_axis = int(self.tiles_per_axis)
        self.clip_limit = float(self.clip_limit)


# Accepted keys for the six-toggle settings mapping, both spellings
_FLAG_ALIASES = {
    'denoise': 'denoise',
    'shadowCorrection': 'shadow_correction',
    'shadow_correction': 'shadow_correction',
    'brightnessNorm': 'brightness_norm',
    'brightness_norm': 'brightness_norm',
    'clahe': 'clahe',
    'histogramEq': 'histogram_eq',
    'histogram_eq': 'histogram_eq',
    'motionBlurComp': 'motion_blur_comp',
    'motion_blur_comp': 'motion_blur_comp',
    'enabled': 'enabled',
}


@dataclass
class PipelineSettings:
    """Stage toggles for the preprocessing pipeline"""

    enabled: bool = True
    denoise: bool = True
    shadow_correction: bool = True
    brightness_norm: bool = True
    contrast: ContrastStage = ContrastStage.CLAHE
    motion_blur_comp: bool = False

    def __post_init__(self):
        try:
            self.contrast = ContrastStage(self.contrast)
        except ValueError:
            raise ConfigurationError(f"Unknown contrast stage: {self.contrast!r}") from None

    @property
    def clahe(self) -> bool:
        return self.contrast is ContrastStage.CLAHE

    @property
    def histogram_eq(self) -> bool:
        return self.contrast is ContrastStage.HISTOGRAM_EQ

    @classmethod
    def from_flags(cls,
                   denoise: bool = True,
                   shadow_correction: bool = True,
                   brightness_norm: bool = True,
                   clahe: bool = True,
                   histogram_eq: bool = False,
                   motion_blur_comp: bool = False,
                   enabled: bool = True) -> 'PipelineSettings':
        """Build settings from independent booleans; CLAHE takes precedence over histogram_eq"""
        if clahe:
            contrast = ContrastStage.CLAHE
        elif histogram_eq:
            contrast = ContrastStage.HISTOGRAM_EQ
        else:
            contrast = ContrastStage.NONE

        return cls(
            enabled=bool(enabled),
            denoise=bool(denoise),
            shadow_correction=bool(shadow_correction),
            brightness_norm=bool(brightness_norm),
            contrast=contrast,
            motion_blur_comp=bool(motion_blur_comp),
        )

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> 'PipelineSettings':
        """Build settings from a stage-name -> enabled mapping (camelCase or snake_case keys)"""
        flags = dict(
            enabled=True,
            denoise=True,
            shadow_correction=True,
            brightness_norm=True,
            clahe=True,
            histogram_eq=False,
            motion_blur_comp=False,
        )

        for key, value in mapping.items():
            if key not in _FLAG_ALIASES:
                raise ConfigurationError(f"Unknown pipeline setting: {key!r}")
            flags[_FLAG_ALIASES[key]] = bool(value)

        return cls.from_flags(**flags)

    def to_dict(self) -> Dict[str, bool]:
        return {
            'enabled': self.enabled,
            'denoise': self.denoise,
            'shadow_correction': self.shadow_correction,
            'brightness_norm': self.brightness_norm,
            'clahe': self.clahe,
            'histogram_eq': self.histogram_eq,
            'motion_blur_comp': self.motion_blur_comp,
        }


@dataclass
class ProcessingConfig:
    """Configuration for the frame preprocessing pipeline"""

    # Adaptive contrast settings
    CLAHE_TILES_PER_AXIS: int = int(os.getenv('CLAHE_TILES_PER_AXIS', 8))
    CLAHE_CLIP_LIMIT: float = float(os.getenv('CLAHE_CLIP_LIMIT', 2.5))

    # Per-frame budget in seconds; exceeding it only produces a warning
    MAX_PROCESSING_TIME: float = float(os.getenv('MAX_FRAME_PROCESSING_TIME', 1.0))

    LOG_PROCESSING_STEPS: bool = True
    SAVE_INTERMEDIATE_RESULTS: bool = os.getenv('DEBUG_MODE', '').lower() in ('1', 'true', 'yes')
    OUTPUT_DIR: Optional[str] = os.getenv('PROCESSING_OUTPUT_DIR')

    def __post_init__(self):
        """Validate CLAHE parameters eagerly"""
        self.clahe_params()

    def clahe_params(self) -> CLAHEParams:
        return CLAHEParams(self.CLAHE_TILES_PER_AXIS, self.CLAHE_CLIP_LIMIT)
