"""
Band detection and Gaussian deconvolution on net lane profiles.

Pipeline per lane:
1. strict local maxima with prominence and noise checks
2. greedy distance filtering (tallest first)
3. one Gaussian per peak, width seeded from the FWHM
4. amplitude-only refinement against the summed model
5. weighted assignment of the explained intensity to each Gaussian
6. band boundaries by outward scanning with valley detection
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from config import PEAK_PARAMS
from analysis.models import Band, BandId, GelSettings

LOGGER = logging.getLogger(__name__)


@dataclass
class GaussianComponent:
    """One fitted band: height * exp(-0.5 * ((x - center) / sigma) ** 2)."""
    center: float
    height: float
    sigma: float

    def evaluate(self, x: np.ndarray,
                 truncate: float = PEAK_PARAMS['model_truncate_sigmas']) -> np.ndarray:
        x = np.asarray(x, dtype=np.float64)
        z = (x - self.center) / self.sigma
        out = self.height * np.exp(-0.5 * z ** 2)
        out[np.abs(x - self.center) >= truncate * self.sigma] = 0.0
        return out


@dataclass
class PeakFit:
    """Fitted Gaussians and the bands derived from them (same order)."""
    components: List[GaussianComponent]
    bands: List[Band]


def find_peak_candidates(profile: np.ndarray,
                         noise_tolerance: float,
                         min_prominence: float,
                         span: int = PEAK_PARAMS['neighbor_span'],
                         window: int = PEAK_PARAMS['prominence_window']) -> List[int]:
    """
    Local maxima that clear the noise floor and the prominence threshold.

    Args:
        profile: Net profile
        noise_tolerance: Minimum peak value
        min_prominence: Minimum prominence in intensity units
        span: Peak must be strictly greater than this many neighbours on each side
        window: Samples scanned each side for the local minima

    Returns:
        Candidate indices in ascending order
    """
    s = np.asarray(profile, dtype=np.float64)
    n = len(s)
    peaks = []
    for i in range(span, n - span):
        v = s[i]
        neighbours = np.concatenate([s[i - span:i], s[i + 1:i + span + 1]])
        if not np.all(v > neighbours):
            continue
        if v <= noise_tolerance:
            continue

        min_left = float(s[max(0, i - window):i + 1].min())
        min_right = float(s[i:min(n, i + window)].min())
        prominence = v - max(min_left, min_right)
        if prominence > min_prominence:
            peaks.append(i)
    return peaks


def filter_by_distance(profile: np.ndarray, peaks: Sequence[int], min_distance: float) -> List[int]:
    """Greedy distance filter: tallest peaks claim their neighbourhood first."""
    s = np.asarray(profile, dtype=np.float64)
    by_height = sorted(peaks, key=lambda p: s[p], reverse=True)
    accepted: List[int] = []
    for p in by_height:
        if all(abs(p - q) >= min_distance for q in accepted):
            accepted.append(p)
    return sorted(accepted)


def _half_width(profile: np.ndarray, peak: int, direction: int) -> float:
    """Distance from the peak to the half-maximum crossing (linear interpolation)."""
    s = profile
    n = len(s)
    half = s[peak] / 2.0
    w = 1
    while 0 <= peak + direction * w < n and s[peak + direction * w] > half:
        w += 1

    idx = peak + direction * w
    if not 0 <= idx < n:
        # ran off the profile: distance to the last sample
        return float(w - 1) if w > 1 else 1.0

    inner = s[peak + direction * (w - 1)]
    outer = s[idx]
    if inner - outer <= 1e-12:
        return float(w)
    return (w - 1) + float((inner - half) / (inner - outer))


def initial_gaussians(profile: np.ndarray,
                      peaks: Sequence[int],
                      sigma_floor: float = PEAK_PARAMS['sigma_floor'],
                      fwhm_to_sigma: float = PEAK_PARAMS['fwhm_to_sigma']) -> List[GaussianComponent]:
    """Seed one Gaussian per peak; sigma from the FWHM, floored to avoid degenerate widths."""
    s = np.asarray(profile, dtype=np.float64)
    components = []
    for p in peaks:
        fwhm = _half_width(s, p, -1) + _half_width(s, p, +1)
        sigma = max(sigma_floor, fwhm / fwhm_to_sigma)
        components.append(GaussianComponent(center=float(p), height=float(s[p]), sigma=float(sigma)))
    return components


def component_matrix(components: Sequence[GaussianComponent], n: int) -> np.ndarray:
    """Each component evaluated over the profile, shape (K, n)."""
    x = np.arange(n, dtype=np.float64)
    if not components:
        return np.zeros((0, n), dtype=np.float64)
    return np.vstack([c.evaluate(x) for c in components])


def model_signal(components: Sequence[GaussianComponent], n: int) -> np.ndarray:
    """Sum of all components over a profile of length n."""
    return component_matrix(components, n).sum(axis=0)


def refine_amplitudes(profile: np.ndarray,
                      components: List[GaussianComponent],
                      iterations: int = PEAK_PARAMS['fit_iterations'],
                      learning_rate: float = PEAK_PARAMS['learning_rate']) -> List[GaussianComponent]:
    """
    Adjust heights so the summed model matches the profile at each centre.

    Centres and widths stay fixed; heights move by learning_rate times the
    residual at their centre and never go negative.
    """
    s = np.asarray(profile, dtype=np.float64)
    n = len(s)
    comps = [GaussianComponent(c.center, c.height, c.sigma) for c in components]
    if not comps or n == 0:
        return comps

    centers = np.array([int(round(c.center)) for c in comps])
    inside = (centers >= 0) & (centers < n)

    for _ in range(int(iterations)):
        model = model_signal(comps, n)
        for c, idx, ok in zip(comps, centers, inside):
            if not ok:
                continue
            residual = s[idx] - model[idx]
            c.height = max(0.0, c.height + residual * learning_rate)
    return comps


def assign_volumes(profile: np.ndarray,
                   components: Sequence[GaussianComponent],
                   noise_floor: float) -> np.ndarray:
    """
    Soft assignment of profile intensity to overlapping Gaussians.

    For every sample above the noise floor, the intensity explained by the
    model, min(profile, model), is shared among components in proportion to
    each component's value at that sample. Intensity above the model is not
    assigned to any band; it stays in the residual that smear analysis reads,
    so a sample is never counted as both band and smear volume.

    Returns:
        Volume per component (same order)
    """
    s = np.asarray(profile, dtype=np.float64)
    basis = component_matrix(components, len(s))
    if basis.shape[0] == 0:
        return np.zeros(0, dtype=np.float64)

    model = basis.sum(axis=0)
    mask = (s > noise_floor) & (model > 0)
    explained = np.minimum(s, model)

    weights = np.zeros_like(basis)
    weights[:, mask] = basis[:, mask] / model[mask]
    return (weights * explained).sum(axis=1)


def band_boundaries(profile: np.ndarray,
                    peak: int,
                    component: GaussianComponent,
                    settings: GelSettings,
                    height_frac: float = PEAK_PARAMS['boundary_height_frac'],
                    sigma_scale: float = PEAK_PARAMS['boundary_sigma_scale']) -> Tuple[int, int]:
    """
    Scan outward from the peak to find the band window.

    Stops when the profile falls to max(noise_tolerance, height_frac * height),
    when the distance exceeds band_boundary_sigma * sigma * sigma_scale, or
    when the profile starts rising again (valley towards a neighbour).
    """
    s = profile
    n = len(s)
    threshold = max(float(settings.noise_tolerance), component.height * height_frac)
    limit = float(settings.band_boundary_sigma) * component.sigma * sigma_scale

    start = peak
    while start > 0:
        nxt = start - 1
        if peak - nxt > limit or s[nxt] <= threshold or s[nxt] > s[start]:
            break
        start = nxt

    end = peak
    while end < n - 1:
        nxt = end + 1
        if nxt - peak > limit or s[nxt] <= threshold or s[nxt] > s[end]:
            break
        end = nxt
    return start, end


def detect_bands(profile: np.ndarray, lane_index: int, settings: GelSettings) -> PeakFit:
    """
    Detect and deconvolve bands in a net profile.

    Args:
        profile: Net (baseline-corrected) profile
        lane_index: 1-based lane index used in band ids
        settings: Analysis settings

    Returns:
        PeakFit with refined Gaussians and bands ordered by position
    """
    s = np.asarray(profile, dtype=np.float64)
    n = len(s)
    if n == 0:
        return PeakFit(components=[], bands=[])

    candidates = find_peak_candidates(s, settings.noise_tolerance, settings.min_prominence_intensity)
    peaks = filter_by_distance(s, candidates, settings.min_peak_distance)

    components = refine_amplitudes(s, initial_gaussians(s, peaks))
    volumes = assign_volumes(s, components, settings.noise_tolerance)

    bands = []
    for seq, (peak, comp, volume) in enumerate(zip(peaks, components, volumes), start=1):
        start, end = band_boundaries(s, peak, comp, settings)
        bands.append(Band(
            id=BandId.detected(lane_index, seq),
            lane_index=lane_index,
            y_peak=int(peak),
            y_start=int(start),
            y_end=int(end),
            volume=float(max(0.0, volume)),
            relative_mobility=peak / n,
        ))

    LOGGER.debug(f"Lane {lane_index}: {len(candidates)} candidates, {len(bands)} bands")
    return PeakFit(components=components, bands=bands)
