"""
Smear (degradation) detection from the residual left after band modelling.
"""

import logging
from typing import List, Sequence, Tuple

import numpy as np

from config import SMEAR_PARAMS
from analysis.models import GelSettings, SmearRegion
from analysis.peak_fitting import GaussianComponent, model_signal

LOGGER = logging.getLogger(__name__)


def compute_residual(profile: np.ndarray, components: Sequence[GaussianComponent]) -> np.ndarray:
    """Net profile minus the summed band model, clipped at zero."""
    s = np.asarray(profile, dtype=np.float64)
    return np.maximum(0.0, s - model_signal(components, len(s)))


def noise_threshold(residual: np.ndarray,
                    settings: GelSettings,
                    mode_bins: int = SMEAR_PARAMS['mode_bins'],
                    mode_factor: float = SMEAR_PARAMS['mode_factor']) -> float:
    """
    Threshold separating smear from noise.

    With an adaptive noise floor the most common low residual level (the
    noise mode) scaled by mode_factor is used when it exceeds the configured
    noise tolerance.
    """
    floor = float(settings.noise_tolerance)
    if not settings.adaptive_noise_floor or residual.size == 0:
        return floor

    levels = np.clip(np.floor(residual), 0, 255).astype(np.int64)
    hist = np.bincount(levels, minlength=256)
    mode = int(np.argmax(hist[:mode_bins]))
    return max(floor, mode * mode_factor)


def _runs_above(residual: np.ndarray, threshold: float) -> List[Tuple[int, int]]:
    """Inclusive (start, end) of contiguous runs where residual > threshold."""
    above = residual > threshold
    if not np.any(above):
        return []

    padded = np.concatenate([[False], above, [False]]).astype(np.int8)
    edges = np.diff(padded)
    starts = np.flatnonzero(edges == 1)
    ends = np.flatnonzero(edges == -1) - 1
    return list(zip(starts.tolist(), ends.tolist()))


def find_smears(profile: np.ndarray,
                components: Sequence[GaussianComponent],
                lane_index: int,
                settings: GelSettings,
                min_width_factor: float = SMEAR_PARAMS['min_width_factor'],
                min_mean_ratio: float = SMEAR_PARAMS['min_mean_ratio']) -> List[SmearRegion]:
    """
    Extract smear regions from the residual.

    A run counts when it is wider than min_width_factor * min_peak_distance,
    its mean residual reaches min_mean_ratio times the threshold and its
    maximum clears noise_tolerance plus the minimum prominence.

    Args:
        profile: Net profile
        components: Fitted band Gaussians
        lane_index: 1-based lane index used in smear ids
        settings: Analysis settings

    Returns:
        Disjoint smear regions ordered by position
    """
    residual = compute_residual(profile, components)
    if residual.size == 0:
        return []

    threshold = noise_threshold(residual, settings)
    min_width = settings.min_peak_distance * min_width_factor
    min_level = float(settings.noise_tolerance) + settings.min_prominence_intensity

    smears: List[SmearRegion] = []
    for start, end in _runs_above(residual, threshold):
        if end - start <= min_width:
            continue
        run = residual[start:end + 1]
        if float(run.mean()) < threshold * min_mean_ratio:
            continue
        if float(run.max()) <= min_level:
            continue
        smears.append(SmearRegion(
            id=f"L{lane_index}-S{len(smears) + 1}",
            y_start=int(start),
            y_end=int(end),
            volume=float(run.sum()),
        ))

    LOGGER.debug(f"Lane {lane_index}: smear threshold {threshold:.2f}, {len(smears)} smears")
    return smears
