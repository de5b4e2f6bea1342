#!/usr/bin/env python3
"""
Lane segmentation module.
Splits the cropped gel into ordered lane rectangles from a combined
intensity / texture column profile, with a uniform-grid fallback.
"""

import logging
from typing import List, Tuple

import numpy as np
from scipy.signal import find_peaks

from config import LANE_PARAMS
from analysis.models import GelSettings, Rect
from gelquant_utils.profile_utils import gaussian_smooth

LOGGER = logging.getLogger(__name__)


def column_profile(plane: np.ndarray,
                   top_frac: float = LANE_PARAMS['sample_top_frac'],
                   bottom_frac: float = LANE_PARAMS['sample_bottom_frac'],
                   row_step: int = LANE_PARAMS['row_step']) -> np.ndarray:
    """
    Combined lane score per column.

    Lanes carry signal (intensity) and texture (bands alternating with gaps);
    background and gel edges are dark or smooth. Score is
    I/maxI * (0.5 + 0.5 * E/maxE), where E is the mean absolute difference
    between consecutive sampled rows.

    Args:
        plane: (H, W) intensity plane, bands positive
        top_frac, bottom_frac: Vertical band used for sampling
        row_step: Row stride

    Returns:
        Unsmoothed score per column
    """
    H, W = plane.shape
    top = int(np.floor(H * top_frac))
    bottom = int(np.floor(H * bottom_frac))
    rows = np.arange(top, bottom, max(1, int(row_step)))
    if rows.size == 0 or W == 0:
        return np.zeros(W, dtype=np.float64)

    sampled = plane[rows, :].astype(np.float64)
    intensity = sampled.mean(axis=0)
    if rows.size > 1:
        edge = np.abs(np.diff(sampled, axis=0)).sum(axis=0) / rows.size
    else:
        edge = np.zeros(W, dtype=np.float64)

    max_i = float(intensity.max()) or 1.0
    max_e = float(edge.max()) or 1.0
    return (intensity / max_i) * (0.5 + 0.5 * (edge / max_e))


def find_lane_centers(smoothed: np.ndarray,
                      sensitivity: float,
                      threshold_k: float = LANE_PARAMS['threshold_k'],
                      min_separation_div: float = LANE_PARAMS['min_separation_div'],
                      edge_skip: int = LANE_PARAMS['edge_skip_px']) -> List[int]:
    """
    Pick lane centres as local maxima above a dynamic threshold.

    The threshold is avg + (max - avg) * k * (2 - sensitivity), so a higher
    sensitivity lowers it. Of two maxima closer than width / div only the
    taller one is kept; maxima within edge_skip of either border are dropped.
    """
    W = len(smoothed)
    if W == 0:
        return []

    lo, hi = LANE_PARAMS['sensitivity_range']
    sensitivity = float(np.clip(sensitivity, lo, hi))
    avg = float(smoothed.mean())
    peak = float(smoothed.max())
    threshold = avg + (peak - avg) * threshold_k * (2.0 - sensitivity)
    min_dist = max(1.0, W / float(min_separation_div))

    peaks, _ = find_peaks(smoothed, height=threshold, distance=min_dist)
    keep = (peaks >= edge_skip) & (peaks < W - edge_skip)
    return [int(p) for p in peaks[keep]]


def _lane_bounds(smoothed: np.ndarray, centers: List[int], edge_pad: int) -> List[Tuple[int, int]]:
    """Left/right boundary per centre: valleys between neighbours, descent at the ends."""
    W = len(smoothed)
    bounds = []
    for idx, center in enumerate(centers):
        if idx == 0:
            scan = center
            while scan > 0 and smoothed[scan] > smoothed[scan - 1]:
                scan -= 1
            left = max(0, scan - edge_pad)
        else:
            prev = centers[idx - 1]
            left = prev + int(np.argmin(smoothed[prev:center]))

        if idx == len(centers) - 1:
            scan = center
            while scan < W - 1 and smoothed[scan] > smoothed[scan + 1]:
                scan += 1
            right = min(W, scan + edge_pad)
        else:
            nxt = centers[idx + 1]
            right = center + int(np.argmin(smoothed[center:nxt]))

        bounds.append((left, right))
    return bounds


def _shrink(left: float, right: float, margin_pct: float, width: int, height: int) -> Rect:
    """Trim margin_pct of the lane width, centred, and clamp to the image."""
    lane_w = right - left
    margin = lane_w * (margin_pct / 100.0)
    x = int(np.floor(left + margin / 2.0))
    w = int(np.floor(max(1.0, lane_w - margin)))
    x = max(0, min(x, width - 1))
    w = max(1, min(w, width - x))
    return Rect(x, 0, w, height)


def uniform_lanes(width: int, height: int, num_lanes: int, margin_pct: float) -> List[Rect]:
    """Equal-width lane grid with the same margin rule as detected lanes."""
    n = max(1, int(num_lanes))
    margin_pct = float(np.clip(margin_pct, 0.0, LANE_PARAMS['max_margin_pct']))
    if width <= 0 or height <= 0:
        return []

    step = width / n
    return [_shrink(i * step, (i + 1) * step, margin_pct, width, height) for i in range(n)]


def detect_lanes(plane: np.ndarray, settings: GelSettings) -> List[Rect]:
    """
    Detect lanes from the intensity plane.

    Args:
        plane: (H, W) intensity plane (bands positive)
        settings: Analysis settings (sensitivity, margin)

    Returns:
        Lane rects ordered left to right; empty if nothing stands out
    """
    H, W = plane.shape
    if W == 0 or H == 0:
        return []

    smoothed = gaussian_smooth(column_profile(plane), LANE_PARAMS['smoothing_window'])
    centers = find_lane_centers(smoothed, settings.lane_detection_sensitivity)
    if not centers:
        return []

    margin_pct = float(np.clip(settings.lane_margin, 0.0, LANE_PARAMS['max_margin_pct']))
    rects = [
        _shrink(left, right, margin_pct, W, H)
        for left, right in _lane_bounds(smoothed, centers, LANE_PARAMS['edge_pad_px'])
    ]
    LOGGER.debug(f"Detected {len(rects)} lanes at centres {centers}")
    return rects


def segment_lanes(plane: np.ndarray, settings: GelSettings) -> List[Rect]:
    """Auto-detected lanes, or a uniform grid when detection is off or finds nothing."""
    H, W = plane.shape
    rects: List[Rect] = []
    if settings.auto_detect_lanes:
        rects = detect_lanes(plane, settings)

    if not rects:
        if settings.auto_detect_lanes:
            LOGGER.debug(f"No lanes detected; falling back to {settings.num_lanes} uniform lanes")
        rects = uniform_lanes(W, H, settings.num_lanes, settings.lane_margin)
    return rects
