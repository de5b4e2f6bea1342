"""
Data containers for gel lane analysis: settings, bands, smears, lanes, overrides.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

import numpy as np

from config import DEFAULT_GEL_SETTINGS


class BackgroundMethod(str, Enum):
    ROLLING_BALL = 'rollingBall'
    MEDIAN = 'median'
    NONE = 'none'


class BandKind(str, Enum):
    DETECTED = 'B'
    MANUAL = 'M'


@dataclass(frozen=True, order=True)
class BandId:
    """Identifies a band by provenance, lane and sequence number."""
    kind: BandKind
    lane: int
    sequence: int

    @classmethod
    def detected(cls, lane: int, sequence: int) -> "BandId":
        return cls(BandKind.DETECTED, lane, sequence)

    @classmethod
    def manual(cls, lane: int, sequence: int) -> "BandId":
        return cls(BandKind.MANUAL, lane, sequence)

    @property
    def is_manual(self) -> bool:
        return self.kind is BandKind.MANUAL

    def __str__(self) -> str:
        return f"L{self.lane}-{self.kind.value}{self.sequence}"


@dataclass(frozen=True)
class GelSettings:
    """Per-run analysis settings."""
    auto_detect_lanes: bool = DEFAULT_GEL_SETTINGS['auto_detect_lanes']
    num_lanes: int = DEFAULT_GEL_SETTINGS['num_lanes']
    lane_margin: float = DEFAULT_GEL_SETTINGS['lane_margin']
    lane_detection_sensitivity: float = DEFAULT_GEL_SETTINGS['lane_detection_sensitivity']
    roi_top: float = DEFAULT_GEL_SETTINGS['roi_top']
    roi_bottom: float = DEFAULT_GEL_SETTINGS['roi_bottom']
    roi_left: float = DEFAULT_GEL_SETTINGS['roi_left']
    roi_right: float = DEFAULT_GEL_SETTINGS['roi_right']
    invert_image: bool = DEFAULT_GEL_SETTINGS['invert_image']
    background_subtraction_method: BackgroundMethod = BackgroundMethod(
        DEFAULT_GEL_SETTINGS['background_subtraction_method'])
    background_rolling_ball_radius: int = DEFAULT_GEL_SETTINGS['background_rolling_ball_radius']
    background_smoothing: int = DEFAULT_GEL_SETTINGS['background_smoothing']
    min_peak_prominence: float = DEFAULT_GEL_SETTINGS['min_peak_prominence']
    smoothing: int = DEFAULT_GEL_SETTINGS['smoothing']
    min_peak_distance: int = DEFAULT_GEL_SETTINGS['min_peak_distance']
    noise_tolerance: float = DEFAULT_GEL_SETTINGS['noise_tolerance']
    band_boundary_sigma: float = DEFAULT_GEL_SETTINGS['band_boundary_sigma']
    show_background_profile: bool = DEFAULT_GEL_SETTINGS['show_background_profile']
    rotation_angle: float = DEFAULT_GEL_SETTINGS['rotation_angle']
    adaptive_noise_floor: bool = DEFAULT_GEL_SETTINGS['adaptive_noise_floor']

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "GelSettings":
        """Build settings from a plain mapping; unknown keys are ignored."""
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in values.items() if k in known}
        if 'background_subtraction_method' in kwargs:
            kwargs['background_subtraction_method'] = BackgroundMethod(kwargs['background_subtraction_method'])
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        out = {f.name: getattr(self, f.name) for f in fields(self)}
        out['background_subtraction_method'] = self.background_subtraction_method.value
        return out

    @property
    def min_prominence_intensity(self) -> float:
        """Prominence threshold in 0-255 intensity units."""
        return float(self.min_peak_prominence) / 100.0 * 255.0


@dataclass(frozen=True)
class Rect:
    x: int
    y: int
    width: int
    height: int

    def offset(self, dx: int, dy: int) -> "Rect":
        return Rect(self.x + dx, self.y + dy, self.width, self.height)

    def to_dict(self) -> Dict[str, int]:
        return {'x': self.x, 'y': self.y, 'width': self.width, 'height': self.height}


@dataclass(frozen=True)
class Band:
    """A discrete band within one lane's profile."""
    id: BandId
    lane_index: int
    y_peak: int
    y_start: int
    y_end: int
    volume: float = 0.0
    relative_mobility: float = 0.0
    is_main_band: bool = False
    is_excluded: bool = False

    @property
    def is_manual(self) -> bool:
        return self.id.is_manual

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': str(self.id),
            'lane_index': self.lane_index,
            'y_peak': self.y_peak,
            'y_start': self.y_start,
            'y_end': self.y_end,
            'volume': float(self.volume),
            'relative_mobility': float(self.relative_mobility),
            'is_main_band': self.is_main_band,
            'is_excluded': self.is_excluded,
            'is_manual': self.is_manual,
        }


@dataclass(frozen=True)
class SmearRegion:
    """Contiguous above-noise residual signal not explained by any band."""
    id: str
    y_start: int
    y_end: int
    volume: float

    @property
    def center(self) -> float:
        return (self.y_start + self.y_end) / 2.0

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'y_start': self.y_start, 'y_end': self.y_end, 'volume': float(self.volume)}


@dataclass(frozen=True)
class BandAdjustment:
    y_start: int
    y_end: int


@dataclass(frozen=True)
class ManualOverrides:
    """User corrections re-applied on every run."""
    excluded_band_ids: FrozenSet[BandId] = frozenset()
    main_band_override: Mapping[int, BandId] = field(default_factory=dict)
    user_bands: Mapping[int, Tuple[Band, ...]] = field(default_factory=dict)
    band_adjustments: Mapping[BandId, BandAdjustment] = field(default_factory=dict)

    def bands_for_lane(self, lane_index: int) -> Tuple[Band, ...]:
        return tuple(self.user_bands.get(lane_index, ()))


@dataclass
class LaneData:
    """Analysis results for one lane."""
    index: int
    rect: Rect
    raw_profile: np.ndarray
    background_profile: np.ndarray
    net_profile: np.ndarray
    bands: List[Band]
    smears: List[SmearRegion]
    total_lane_volume: float
    main_band_volume: float
    degradation_volume: float
    integrity_score: float

    @property
    def main_band(self) -> Optional[Band]:
        return next((b for b in self.bands if b.is_main_band), None)

    def to_dict(self, include_profiles: bool = True) -> Dict[str, Any]:
        out = {
            'index': self.index,
            'rect': self.rect.to_dict(),
            'bands': [b.to_dict() for b in self.bands],
            'smears': [s.to_dict() for s in self.smears],
            'total_lane_volume': float(self.total_lane_volume),
            'main_band_volume': float(self.main_band_volume),
            'degradation_volume': float(self.degradation_volume),
            'integrity_score': float(self.integrity_score),
        }
        if include_profiles:
            out['raw_profile'] = self.raw_profile.tolist()
            out['background_profile'] = self.background_profile.tolist()
            out['net_profile'] = self.net_profile.tolist()
        return out


@dataclass
class AnalysisResult:
    """Lane results tagged with the request generation that produced them."""
    generation: int
    width: int
    height: int
    lanes: List[LaneData]
