#!/usr/bin/env python3
"""
Geometry preprocessing for gel images.
Estimates inversion, deskew angle and the region of interest before lanes are segmented.
"""

import dataclasses
import logging
from dataclasses import dataclass
from typing import Dict, Tuple

import numpy as np

from config import GEOMETRY_PARAMS
from analysis.models import GelSettings
from gelquant_utils.image_utils import ImageBuffer, intensity_plane, rotate_image

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoiPercent:
    """ROI as percent of the image removed from each side."""
    top: float
    bottom: float
    left: float
    right: float

    def to_dict(self) -> Dict[str, float]:
        return {'top': self.top, 'bottom': self.bottom, 'left': self.left, 'right': self.right}


def should_invert(image: ImageBuffer,
                  sample_frac: float = GEOMETRY_PARAMS['invert_sample_frac'],
                  stride: int = GEOMETRY_PARAMS['invert_stride'],
                  brightness_thr: float = GEOMETRY_PARAMS['invert_brightness_thr']) -> bool:
    """
    Judge whether the gel has a bright background.

    Samples luminance on a sparse grid over the central region; a bright
    centre means dark bands on a light gel, which should be inverted so bands
    read as positive peaks.
    """
    W, H = image.width, image.height
    if W == 0 or H == 0:
        return False

    cx, cy = W // 2, H // 2
    half_w = int(W * sample_frac) // 2
    half_h = int(H * sample_frac) // 2

    ys = np.arange(max(0, cy - half_h), min(H, cy + max(1, half_h)), stride)
    xs = np.arange(max(0, cx - half_w), min(W, cx + max(1, half_w)), stride)
    if ys.size == 0 or xs.size == 0:
        return False

    lum = intensity_plane(image, invert=False)[np.ix_(ys, xs)]
    avg = float(lum.mean())
    LOGGER.debug(f"Centre luminance {avg:.1f} over {lum.size} samples")
    return avg > brightness_thr


def _projection_variance(grad: np.ndarray,
                         dx: np.ndarray,
                         dy: np.ndarray,
                         angle_deg: float,
                         n_bins: int,
                         edge: int = 0) -> float:
    """
    Population variance of per-column mean gradient after rotating centred sample coordinates.

    Only bins in [edge, n_bins - edge) are scored; the caller picks edge so that
    every candidate angle fills that range from the full crop height.
    """
    rad = np.deg2rad(angle_deg)
    nx = dx * np.cos(rad) - dy * np.sin(rad) + n_bins / 2.0
    bins = np.floor(nx).astype(np.int64)
    valid = (bins >= 0) & (bins < n_bins)
    if not np.any(valid):
        return 0.0

    sums = np.bincount(bins[valid], weights=grad[valid], minlength=n_bins)
    counts = np.bincount(bins[valid], minlength=n_bins)
    interior = slice(edge, n_bins - edge)
    sums, counts = sums[interior], counts[interior]
    filled = counts > 0
    if not np.any(filled):
        return 0.0
    means = sums[filled] / counts[filled]
    return float(np.var(means))


def best_rotation_angle(image: ImageBuffer,
                        margin: float = GEOMETRY_PARAMS['rotation_margin'],
                        sample_step: int = GEOMETRY_PARAMS['rotation_sample_step'],
                        coarse_range: float = GEOMETRY_PARAMS['rotation_coarse_range'],
                        coarse_step: float = GEOMETRY_PARAMS['rotation_coarse_step'],
                        fine_range: float = GEOMETRY_PARAMS['rotation_fine_range'],
                        fine_step: float = GEOMETRY_PARAMS['rotation_fine_step']) -> float:
    """
    Find the deskew angle by gradient projection.

    Bands are horizontal edges inside vertical lanes. Projecting the vertical
    gradient magnitude onto the x axis gives the sharpest (highest variance)
    column profile when lanes are upright.

    Args:
        image: Source buffer
        margin: Fraction cropped from each side before searching
        sample_step: Row stride for gradient samples
        coarse_range, coarse_step: Coarse search span and step (degrees)
        fine_range, fine_step: Fine search span and step around the coarse optimum

    Returns:
        Angle in degrees; rotate_image(image, angle) straightens the lanes
    """
    W, H = image.width, image.height
    crop_x, crop_y = int(W * margin), int(H * margin)
    crop_w, crop_h = int(W * (1 - 2 * margin)), int(H * (1 - 2 * margin))
    if crop_w < 2 or crop_h < 3:
        return 0.0

    lum = intensity_plane(image, invert=False)[crop_y:crop_y + crop_h, crop_x:crop_x + crop_w]
    lum = lum.astype(np.float64)

    # vertical gradient [-1, 0, 1] on sampled rows
    rows = np.arange(1, crop_h - 1, max(1, int(sample_step)))
    grad = np.abs(lum[rows + 1, :] - lum[rows - 1, :])
    ys, xs = np.meshgrid(rows.astype(np.float64), np.arange(crop_w, dtype=np.float64), indexing='ij')
    grad = grad.ravel()
    dx = xs.ravel() - crop_w / 2.0
    dy = ys.ravel() - crop_h / 2.0

    if not np.any(grad > 0):
        return 0.0

    # skip columns that some candidate angles only cover partially
    max_angle = abs(coarse_range) + abs(fine_range)
    edge = int(np.ceil(np.abs(dy).max() * np.sin(np.deg2rad(max_angle)))) + 1
    if crop_w - 2 * edge < 2:
        return 0.0

    def score(a: float) -> float:
        return _projection_variance(grad, dx, dy, a, crop_w, edge)

    # coarse search
    n_coarse = int(round(coarse_range / coarse_step))
    coarse = [k * coarse_step for k in range(-n_coarse, n_coarse + 1)]
    coarse_scores = [score(a) for a in coarse]
    best_coarse = coarse[int(np.argmax(coarse_scores))]

    # fine search around coarse optimum
    n_fine = int(round(fine_range / fine_step))
    fine = [best_coarse + k * fine_step for k in range(-n_fine, n_fine + 1)]
    fine_scores = [score(a) for a in fine]
    i = int(np.argmax(fine_scores))
    best = fine[i]

    # quadratic sub-step refinement
    if 0 < i < len(fine) - 1:
        y0, y1, y2 = fine_scores[i - 1], fine_scores[i], fine_scores[i + 1]
        denom = y0 - 2.0 * y1 + y2
        if abs(denom) > 1e-12:
            delta = 0.5 * (y0 - y2) / denom
            best += float(np.clip(delta, -0.5, 0.5)) * fine_step

    LOGGER.debug(f"Best rotation angle {best:.2f} deg (coarse {best_coarse:.0f})")
    return float(round(best, 3))


def otsu_threshold(histogram: np.ndarray) -> float:
    """
    Otsu's threshold for a 256-bin histogram.

    Maximises between-class variance over every split t (class 0 = bins <= t).
    When a run of splits ties for the maximum, the middle of the run is
    returned, so two separated spikes give a threshold between them.
    """
    hist = np.asarray(histogram, dtype=np.float64)
    total = hist.sum()
    if total <= 0:
        return 0.0

    levels = np.arange(hist.size, dtype=np.float64)
    w_b = np.cumsum(hist)
    w_f = total - w_b
    sum_b = np.cumsum(levels * hist)
    sum_all = sum_b[-1]

    valid = (w_b > 0) & (w_f > 0)
    if not np.any(valid):
        return 0.0

    var_between = np.zeros_like(hist)
    m_b = sum_b[valid] / w_b[valid]
    m_f = (sum_all - sum_b[valid]) / w_f[valid]
    var_between[valid] = w_b[valid] * w_f[valid] * (m_b - m_f) ** 2

    best = var_between.max()
    ties = np.flatnonzero(np.isclose(var_between, best, rtol=1e-12, atol=0.0) & valid)
    return float((ties[0] + ties[-1]) / 2.0)


def intensity_histogram(plane: np.ndarray, step: int = GEOMETRY_PARAMS['roi_hist_step']) -> np.ndarray:
    """256-bin histogram of every step-th sample of an intensity plane."""
    samples = plane.ravel()[::max(1, int(step))]
    values = np.clip(samples, 0, 255).astype(np.int64)
    return np.bincount(values, minlength=256)[:256]


def _foreground_bounds(plane: np.ndarray,
                       threshold: float,
                       scan_step: int,
                       cross_step: int) -> Tuple[int, int, int, int]:
    """Bounding box (min_x, max_x, min_y, max_y) of samples above threshold; empty box if none."""
    H, W = plane.shape

    # rows first: sparse rows, sparse columns
    sub = plane[::scan_step, ::cross_step] > threshold
    row_hits = np.flatnonzero(sub.any(axis=1)) * scan_step
    if row_hits.size == 0:
        return W, 0, H, 0
    min_y, max_y = int(row_hits[0]), int(row_hits[-1])

    # columns restricted to the y range found
    band = plane[min_y:max_y + 1:cross_step, ::scan_step] > threshold
    col_hits = np.flatnonzero(band.any(axis=0)) * scan_step
    if col_hits.size == 0:
        return W, 0, min_y, max_y
    return int(col_hits[0]), int(col_hits[-1]), min_y, max_y


def auto_detect_roi(image: ImageBuffer,
                    invert: bool,
                    threshold_scale: float = GEOMETRY_PARAMS['roi_threshold_scale'],
                    threshold_min: float = GEOMETRY_PARAMS['roi_threshold_min'],
                    padding: float = GEOMETRY_PARAMS['roi_padding']) -> RoiPercent:
    """
    Detect the gel region with Otsu's threshold.

    Args:
        image: Source buffer
        invert: Sampling convention (True for bright-background gels)
        threshold_scale: Factor applied to the Otsu threshold to keep faint bands
        threshold_min: Lower bound for the scaled threshold
        padding: Fraction of the image added on each side of the box

    Returns:
        RoiPercent with each side clamped to [0, 100]
    """
    W, H = image.width, image.height
    if W == 0 or H == 0:
        return RoiPercent(0.0, 0.0, 0.0, 0.0)

    plane = intensity_plane(image, invert)
    threshold = otsu_threshold(intensity_histogram(plane))
    threshold = max(threshold_min, threshold * threshold_scale)

    min_x, max_x, min_y, max_y = _foreground_bounds(
        plane, threshold,
        scan_step=GEOMETRY_PARAMS['roi_scan_step'],
        cross_step=GEOMETRY_PARAMS['roi_cross_step'],
    )
    if min_x > max_x or min_y > max_y:
        LOGGER.debug(f"No foreground above {threshold:.1f}; keeping full image")
        return RoiPercent(0.0, 0.0, 0.0, 0.0)

    # pad and normalise
    safe_min_x = max(0.0, min_x - W * padding)
    safe_max_x = min(float(W), max_x + W * padding)
    safe_min_y = max(0.0, min_y - H * padding)
    safe_max_y = min(float(H), max_y + H * padding)

    def pct(v: float, total: int) -> float:
        return float(np.clip(round(v / total * 100.0, 1), 0.0, 100.0))

    roi = RoiPercent(
        top=pct(safe_min_y, H),
        bottom=pct(H - safe_max_y, H),
        left=pct(safe_min_x, W),
        right=pct(W - safe_max_x, W),
    )
    LOGGER.debug(f"Auto ROI (threshold {threshold:.1f}): {roi}")
    return roi


def auto_align(image: ImageBuffer, settings: GelSettings) -> GelSettings:
    """
    Estimate inversion, deskew angle and ROI in one pass.

    The angle is measured on the image already rotated by settings.rotation_angle
    and accumulated; the ROI is measured on the fully rotated image.

    Returns:
        New settings with invert_image, rotation_angle and roi_* filled in
    """
    invert = should_invert(image)

    current = rotate_image(image, settings.rotation_angle)
    skew = best_rotation_angle(current)
    rotation = settings.rotation_angle
    if abs(skew) > 0.1:
        rotation += skew
        current = rotate_image(image, rotation)

    roi = auto_detect_roi(current, invert)
    LOGGER.debug(f"Auto align: invert={invert}, rotation={rotation:.2f}, roi={roi.to_dict()}")

    return dataclasses.replace(
        settings,
        invert_image=invert,
        rotation_angle=float(rotation),
        roi_top=roi.top,
        roi_bottom=roi.bottom,
        roi_left=roi.left,
        roi_right=roi.right,
    )
