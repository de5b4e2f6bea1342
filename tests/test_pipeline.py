import dataclasses

import numpy as np
import pytest

from analysis.models import AnalysisResult, BandId, GelSettings, ManualOverrides
from analysis.overrides import add_manual_band, delete_manual_band
from analysis.pipeline import ResultGate, analyze, process_image
from gelquant_utils.image_utils import InvalidImageError, rotate_image

from conftest import render_gel


def _dump(lanes):
    return [lane.to_dict() for lane in lanes]


def test_detects_bands_in_every_lane(gel_image, settings):
    lanes = process_image(gel_image, settings)
    assert [lane.index for lane in lanes] == [1, 2, 3, 4]

    for lane in lanes:
        active = [b for b in lane.bands if not b.is_excluded]
        assert len(active) == 2
        assert abs(active[0].y_peak - 80) <= 1
        assert abs(active[1].y_peak - 150) <= 1
        assert lane.main_band.id == BandId.detected(lane.index, 1)
        assert 0.0 < lane.integrity_score < 100.0


def test_lane_invariants(gel_image, settings):
    for lane in process_image(gel_image, settings):
        n = len(lane.net_profile)
        assert n == lane.rect.height
        assert len(lane.raw_profile) == n and len(lane.background_profile) == n
        assert np.all(lane.net_profile >= 0.0)
        assert 0.0 <= lane.integrity_score <= 100.0
        assert sum(b.is_main_band for b in lane.bands) <= 1

        peaks = [b.y_peak for b in lane.bands]
        assert peaks == sorted(peaks)
        for band in lane.bands:
            assert 0 <= band.y_start <= band.y_peak <= band.y_end < n
            assert band.volume >= 0.0
        for smear in lane.smears:
            assert 0 <= smear.y_start <= smear.y_end < n
            assert smear.volume > 0.0


def test_repeat_runs_are_identical(gel_image, settings):
    assert _dump(process_image(gel_image, settings)) == _dump(process_image(gel_image, settings))


def test_thread_pool_matches_sequential(gel_image, settings):
    sequential = process_image(gel_image, settings, max_workers=1)
    pooled = process_image(gel_image, settings, max_workers=4)
    assert _dump(sequential) == _dump(pooled)


def test_collapsed_roi_returns_no_lanes(gel_image, settings):
    settings = dataclasses.replace(settings, roi_top=60.0, roi_bottom=50.0)
    assert process_image(gel_image, settings) == []


def test_rects_are_in_image_coordinates(gel_image, settings):
    settings = dataclasses.replace(settings, roi_left=10.0, roi_top=5.0)
    lanes = process_image(gel_image, settings)
    assert lanes
    for lane in lanes:
        assert lane.rect.x >= 40
        assert lane.rect.y == 15
        assert lane.rect.x + lane.rect.width <= gel_image.width


def test_invalid_image_raises(settings):
    with pytest.raises(InvalidImageError):
        process_image(np.zeros((10, 10, 3), dtype=np.uint8), settings)


def test_uniform_grid_when_detection_disabled(gel_image, settings):
    settings = dataclasses.replace(settings, auto_detect_lanes=False, num_lanes=5)
    assert len(process_image(gel_image, settings)) == 5


def test_inverted_gel_matches_when_invert_enabled(gel_image, settings):
    dark = render_gel(dark_bands=True)
    lanes = process_image(dark, dataclasses.replace(settings, invert_image=True))
    assert len(lanes) == 4
    assert [b.y_peak for b in lanes[0].bands] == [b.y_peak for b in process_image(gel_image, settings)[0].bands]


def test_rotation_setting_straightens(large_gel, settings):
    tilted = rotate_image(large_gel, 2.0)
    lanes = process_image(tilted, dataclasses.replace(settings, rotation_angle=-2.0))
    assert len(lanes) == 8


def test_manual_band_survives_setting_changes(gel_image, settings):
    overrides, band_id = add_manual_band(ManualOverrides(), 1, 220)

    for smoothing in (5, 9):
        run_settings = dataclasses.replace(settings, smoothing=smoothing)
        lane = process_image(gel_image, run_settings, overrides)[0]
        manual = [b for b in lane.bands if b.id == band_id]
        assert len(manual) == 1
        assert manual[0].is_manual
        assert manual[0].y_peak == 220
        assert manual[0].volume == pytest.approx(lane.net_profile[210:231].sum())

    lane = process_image(gel_image, settings, delete_manual_band(overrides, band_id))[0]
    assert all(b.id != band_id for b in lane.bands)


def test_analyze_tags_generation(gel_image, settings):
    result = analyze(gel_image, settings, generation=7)
    assert result.generation == 7
    assert (result.width, result.height) == (gel_image.width, gel_image.height)
    assert len(result.lanes) == 4


def test_analyze_reports_quarter_turned_size(gel_image, settings):
    result = analyze(gel_image, dataclasses.replace(settings, rotation_angle=90.0))
    assert (result.width, result.height) == (gel_image.height, gel_image.width)
    for lane in result.lanes:
        assert lane.rect.y + lane.rect.height <= gel_image.width


def test_result_gate_drops_stale_results():
    gate = ResultGate()
    first = gate.next_generation()
    second = gate.next_generation()
    assert second > first
    assert not gate.is_current(first)

    assert gate.submit(AnalysisResult(first, 10, 10, [])) is False
    assert gate.latest is None
    assert gate.submit(AnalysisResult(second, 10, 10, [])) is True
    assert gate.latest.generation == second


def test_settings_from_dict_ignores_unknown_keys():
    settings = GelSettings.from_dict({'num_lanes': 3, 'background_subtraction_method': 'median', 'bogus': 1})
    assert settings.num_lanes == 3
    assert settings.background_subtraction_method.value == 'median'
    assert GelSettings.from_dict(settings.to_dict()) == settings
