import pytest

from analysis.models import BandAdjustment, BandId, ManualOverrides
from analysis.overrides import (
    add_manual_band,
    adjust_band_boundaries,
    delete_manual_band,
    reset_lane_overrides,
    set_main_band,
    toggle_band_exclusion,
)


def test_toggle_exclusion_twice_restores():
    band = BandId.detected(1, 2)
    once = toggle_band_exclusion(ManualOverrides(), band)
    assert band in once.excluded_band_ids
    twice = toggle_band_exclusion(once, band)
    assert band not in twice.excluded_band_ids
    # original untouched
    assert band in once.excluded_band_ids


def test_manual_bands_get_increasing_sequence():
    overrides, first = add_manual_band(ManualOverrides(), 3, 40)
    overrides, second = add_manual_band(overrides, 3, 90)
    overrides, other_lane = add_manual_band(overrides, 4, 10)

    assert first == BandId.manual(3, 1)
    assert second == BandId.manual(3, 2)
    assert other_lane == BandId.manual(4, 1)
    assert str(second) == "L3-M2"
    assert [b.y_peak for b in overrides.bands_for_lane(3)] == [40, 90]


def test_manual_band_default_window():
    overrides, band_id = add_manual_band(ManualOverrides(), 1, 50)
    band = overrides.bands_for_lane(1)[0]
    assert band.id == band_id
    assert (band.y_start, band.y_end) == (40, 60)
    assert band.is_manual


def test_delete_manual_band_clears_references():
    overrides, band_id = add_manual_band(ManualOverrides(), 2, 70)
    overrides = toggle_band_exclusion(overrides, band_id)
    overrides = set_main_band(overrides, 2, band_id)
    overrides = adjust_band_boundaries(overrides, band_id, 60, 80)

    cleared = delete_manual_band(overrides, band_id)
    assert cleared.bands_for_lane(2) == ()
    assert band_id not in cleared.excluded_band_ids
    assert 2 not in cleared.main_band_override
    assert band_id not in cleared.band_adjustments


def test_detected_bands_cannot_be_deleted():
    with pytest.raises(ValueError):
        delete_manual_band(ManualOverrides(), BandId.detected(1, 1))


def test_adjust_orders_bounds():
    overrides = adjust_band_boundaries(ManualOverrides(), BandId.detected(1, 1), 30, 10)
    assert overrides.band_adjustments[BandId.detected(1, 1)] == BandAdjustment(10, 30)


def test_set_main_band_none_clears():
    overrides = set_main_band(ManualOverrides(), 1, BandId.detected(1, 1))
    assert set_main_band(overrides, 1, None).main_band_override == {}


def test_reset_lane_only_touches_that_lane():
    overrides, _ = add_manual_band(ManualOverrides(), 1, 20)
    overrides, _ = add_manual_band(overrides, 2, 20)
    overrides = toggle_band_exclusion(overrides, BandId.detected(1, 1))
    overrides = toggle_band_exclusion(overrides, BandId.detected(2, 1))
    overrides = set_main_band(overrides, 1, BandId.detected(1, 2))
    overrides = adjust_band_boundaries(overrides, BandId.detected(1, 3), 5, 9)

    reset = reset_lane_overrides(overrides, 1)
    assert reset.bands_for_lane(1) == ()
    assert len(reset.bands_for_lane(2)) == 1
    assert reset.excluded_band_ids == frozenset({BandId.detected(2, 1)})
    assert reset.main_band_override == {}
    assert reset.band_adjustments == {}
