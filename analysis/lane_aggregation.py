"""
Lane aggregation: merge manual overrides, pick the main band and compute
integrity metrics.
"""

import dataclasses
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from analysis.models import Band, LaneData, ManualOverrides, Rect, SmearRegion

LOGGER = logging.getLogger(__name__)


def _clamp_window(y_start: int, y_end: int, y_peak: int, n: int) -> Tuple[int, int, int]:
    """Clamp a band window into the profile and keep the peak inside it."""
    start = int(np.clip(min(y_start, y_end), 0, n - 1))
    end = int(np.clip(max(y_start, y_end), 0, n - 1))
    peak = int(np.clip(y_peak, start, end))
    return start, end, peak


def window_volume(profile: np.ndarray, y_start: int, y_end: int) -> float:
    """Direct sum of the profile over an inclusive window."""
    return float(np.sum(profile[y_start:y_end + 1]))


def merge_bands(detected: Sequence[Band],
                lane_index: int,
                net: np.ndarray,
                overrides: ManualOverrides) -> List[Band]:
    """
    Combine detected and manual bands and apply boundary overrides and exclusions.

    Manual bands and adjusted bands get their volume from a direct sum of the
    net profile over their window. Excluded bands stay in the list.

    Returns:
        Bands ordered by peak position
    """
    n = len(net)
    if n == 0:
        return []

    bands = list(detected)
    for ub in overrides.bands_for_lane(lane_index):
        start, end, peak = _clamp_window(ub.y_start, ub.y_end, ub.y_peak, n)
        bands.append(dataclasses.replace(
            ub,
            lane_index=lane_index,
            y_start=start, y_end=end, y_peak=peak,
            volume=window_volume(net, start, end),
            relative_mobility=peak / n,
            is_main_band=False,
            is_excluded=False,
        ))

    bands.sort(key=lambda b: b.y_peak)

    merged = []
    for b in bands:
        adjustment = overrides.band_adjustments.get(b.id)
        if adjustment is not None:
            start, end, peak = _clamp_window(adjustment.y_start, adjustment.y_end, b.y_peak, n)
            b = dataclasses.replace(
                b, y_start=start, y_end=end, y_peak=peak,
                volume=window_volume(net, start, end),
                relative_mobility=peak / n,
            )
        merged.append(dataclasses.replace(b, is_excluded=b.id in overrides.excluded_band_ids))

    # adjusted windows can move a peak past its neighbours
    merged.sort(key=lambda b: b.y_peak)
    return merged


def select_main_band(bands: Sequence[Band], lane_index: int, overrides: ManualOverrides) -> Optional[Band]:
    """Forced main band if it resolves to an active band, else the active band with maximum volume."""
    active = [b for b in bands if not b.is_excluded]
    if not active:
        return None

    forced_id = overrides.main_band_override.get(lane_index)
    if forced_id is not None:
        forced = next((b for b in active if b.id == forced_id), None)
        if forced is not None:
            return forced
    return max(active, key=lambda b: b.volume)


def rollup_volumes(bands: Sequence[Band],
                   smears: Sequence[SmearRegion],
                   main: Optional[Band],
                   total_lane_volume: float) -> Tuple[float, float, float]:
    """
    Split active signal at the main band's peak.

    Returns:
        Tuple of (banded_volume, degradation_volume, integrity_score)
    """
    if main is None:
        return 0.0, float(total_lane_volume), 0.0

    banded = 0.0
    degradation = 0.0
    for b in bands:
        if b.is_excluded:
            continue
        if b.y_peak <= main.y_peak:
            banded += b.volume
        else:
            degradation += b.volume

    for s in smears:
        if s.center <= main.y_peak:
            banded += s.volume
        else:
            degradation += s.volume

    denom = banded + degradation
    integrity = banded / denom * 100.0 if denom > 0 else 0.0
    return banded, degradation, float(np.clip(integrity, 0.0, 100.0))


def aggregate_lane(index: int,
                   rect: Rect,
                   raw: np.ndarray,
                   background: np.ndarray,
                   net: np.ndarray,
                   detected: Sequence[Band],
                   smears: Sequence[SmearRegion],
                   overrides: ManualOverrides) -> LaneData:
    """Assemble the final LaneData for one lane."""
    bands = merge_bands(detected, index, net, overrides)
    main = select_main_band(bands, index, overrides)
    if main is not None:
        bands = [dataclasses.replace(b, is_main_band=(b.id == main.id)) for b in bands]

    total = float(np.sum(net))
    banded, degradation, integrity = rollup_volumes(bands, smears, main, total)

    return LaneData(
        index=index,
        rect=rect,
        raw_profile=raw,
        background_profile=background,
        net_profile=net,
        bands=bands,
        smears=list(smears),
        total_lane_volume=total,
        main_band_volume=banded,
        degradation_volume=degradation,
        integrity_score=integrity,
    )


def summarize_lanes(lanes: Sequence[LaneData]) -> List[Dict[str, Any]]:
    """
    Comparative per-lane summary.

    relative_quantity is the banded volume as a percentage of the largest banded
    volume across lanes; smear_ratio is smear / banded volume (inf when a lane
    has smear but no banded signal).

    Returns:
        One dict per lane with banded/smear volumes, relative quantity,
        smear percentage, smear ratio and integrity
    """
    max_banded = max((lane.main_band_volume for lane in lanes), default=0.0)

    summary = []
    for lane in lanes:
        banded = lane.main_band_volume
        smear = lane.degradation_volume
        total_signal = banded + smear
        smear_pct = smear / total_signal * 100.0 if total_signal > 0 else 0.0
        rel_qty = banded / max_banded * 100.0 if max_banded > 0 else 0.0
        if banded > 0:
            smear_ratio = smear / banded
        else:
            smear_ratio = float("inf") if smear > 0 else 0.0
        main = lane.main_band
        summary.append({
            'lane': lane.index,
            'num_bands': sum(1 for b in lane.bands if not b.is_excluded),
            'num_smears': len(lane.smears),
            'main_band': str(main.id) if main is not None else None,
            'banded_volume': float(banded),
            'relative_quantity': float(rel_qty),
            'smear_volume': float(smear),
            'smear_percent': round(float(smear_pct), 1),
            'smear_ratio': float(smear_ratio),
            'integrity_score': float(lane.integrity_score),
        })
    return summary
