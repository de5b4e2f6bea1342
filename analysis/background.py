"""
Background (baseline) estimation for lane profiles.
"""

from dataclasses import dataclass

import numpy as np

from analysis.models import BackgroundMethod, GelSettings
from gelquant_utils.profile_utils import gaussian_smooth, median_smooth, morphological_opening


@dataclass
class BackgroundResult:
    """Working profile, its baseline and the baseline-corrected signal."""
    smoothed: np.ndarray
    background: np.ndarray
    net: np.ndarray


def estimate_background(profile: np.ndarray, settings: GelSettings) -> np.ndarray:
    """
    Baseline for an already smoothed profile.

    rollingBall is a 1-D morphological opening along the lane followed by
    Gaussian smoothing; median is a sliding median followed by the same
    smoothing.
    """
    method = BackgroundMethod(settings.background_subtraction_method)
    if method is BackgroundMethod.NONE:
        return np.zeros_like(profile, dtype=np.float64)

    radius = int(settings.background_rolling_ball_radius)
    if method is BackgroundMethod.MEDIAN:
        # radius is used as the window size
        base = median_smooth(profile, radius)
    else:
        base = morphological_opening(profile, radius)
    return gaussian_smooth(base, settings.background_smoothing)


def subtract_background(raw: np.ndarray, settings: GelSettings) -> BackgroundResult:
    """
    Smooth the raw profile and remove its baseline.

    Args:
        raw: Raw lane profile
        settings: Analysis settings (smoothing, method, radius)

    Returns:
        BackgroundResult; net = max(0, smoothed - background)
    """
    smoothed = gaussian_smooth(raw, settings.smoothing)
    background = estimate_background(smoothed, settings)
    net = np.maximum(0.0, smoothed - background)
    return BackgroundResult(smoothed=smoothed, background=background, net=net)
