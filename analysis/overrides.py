"""
Helpers for editing ManualOverrides.

Every function returns a new ManualOverrides; the input is never mutated.
"""

import dataclasses
from typing import Dict, Optional, Tuple

from config import OVERRIDE_PARAMS
from analysis.models import Band, BandAdjustment, BandId, ManualOverrides


def toggle_band_exclusion(overrides: ManualOverrides, band_id: BandId) -> ManualOverrides:
    excluded = set(overrides.excluded_band_ids)
    if band_id in excluded:
        excluded.remove(band_id)
    else:
        excluded.add(band_id)
    return dataclasses.replace(overrides, excluded_band_ids=frozenset(excluded))


def set_main_band(overrides: ManualOverrides, lane_index: int, band_id: Optional[BandId]) -> ManualOverrides:
    """Force the main band of a lane; passing None clears the override."""
    forced = dict(overrides.main_band_override)
    if band_id is None:
        forced.pop(lane_index, None)
    else:
        forced[lane_index] = band_id
    return dataclasses.replace(overrides, main_band_override=forced)


def _next_manual_sequence(overrides: ManualOverrides, lane_index: int) -> int:
    seqs = [b.id.sequence for b in overrides.bands_for_lane(lane_index)]
    return max(seqs, default=0) + 1


def add_manual_band(overrides: ManualOverrides,
                    lane_index: int,
                    y: int,
                    half_width: int = OVERRIDE_PARAMS['manual_band_half_width']) -> Tuple[ManualOverrides, BandId]:
    """
    Add a user band centred on y.

    The window is [y - half_width, y + half_width]; it is clamped to the lane
    profile and its volume measured when the lane is aggregated.

    Args:
        overrides: Current overrides
        lane_index: 1-based lane index
        y: Peak position in profile coordinates
        half_width: Half window size in pixels

    Returns:
        Tuple of (new overrides, id of the added band)
    """
    band_id = BandId.manual(lane_index, _next_manual_sequence(overrides, lane_index))
    y = int(y)
    band = Band(
        id=band_id,
        lane_index=lane_index,
        y_peak=y,
        y_start=y - int(half_width),
        y_end=y + int(half_width),
    )
    user_bands: Dict[int, Tuple[Band, ...]] = dict(overrides.user_bands)
    user_bands[lane_index] = overrides.bands_for_lane(lane_index) + (band,)
    return dataclasses.replace(overrides, user_bands=user_bands), band_id


def _forget_band(overrides: ManualOverrides, band_id: BandId) -> ManualOverrides:
    """Drop exclusion, main band and boundary overrides that point at band_id."""
    forced = {lane: bid for lane, bid in overrides.main_band_override.items() if bid != band_id}
    adjustments = {bid: adj for bid, adj in overrides.band_adjustments.items() if bid != band_id}
    return dataclasses.replace(
        overrides,
        excluded_band_ids=frozenset(overrides.excluded_band_ids - {band_id}),
        main_band_override=forced,
        band_adjustments=adjustments,
    )


def delete_manual_band(overrides: ManualOverrides, band_id: BandId) -> ManualOverrides:
    """Remove a user band; detected bands cannot be deleted, only excluded."""
    if not band_id.is_manual:
        raise ValueError(f"Band {band_id} was detected automatically; exclude it instead")

    user_bands = dict(overrides.user_bands)
    remaining = tuple(b for b in overrides.bands_for_lane(band_id.lane) if b.id != band_id)
    if remaining:
        user_bands[band_id.lane] = remaining
    else:
        user_bands.pop(band_id.lane, None)
    return _forget_band(dataclasses.replace(overrides, user_bands=user_bands), band_id)


def adjust_band_boundaries(overrides: ManualOverrides, band_id: BandId, y_start: int, y_end: int) -> ManualOverrides:
    adjustments = dict(overrides.band_adjustments)
    adjustments[band_id] = BandAdjustment(int(min(y_start, y_end)), int(max(y_start, y_end)))
    return dataclasses.replace(overrides, band_adjustments=adjustments)


def reset_lane_overrides(overrides: ManualOverrides, lane_index: int) -> ManualOverrides:
    """Clear every override that belongs to one lane."""
    user_bands = {lane: bands for lane, bands in overrides.user_bands.items() if lane != lane_index}
    forced = {lane: bid for lane, bid in overrides.main_band_override.items() if lane != lane_index}
    adjustments = {bid: adj for bid, adj in overrides.band_adjustments.items() if bid.lane != lane_index}
    excluded = frozenset(bid for bid in overrides.excluded_band_ids if bid.lane != lane_index)
    return ManualOverrides(
        excluded_band_ids=excluded,
        main_band_override=forced,
        user_bands=user_bands,
        band_adjustments=adjustments,
    )
