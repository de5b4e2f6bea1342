import dataclasses

import numpy as np

from analysis.models import Rect
from gelquant_utils.image_utils import intensity_plane
from image_analysis.lane_segmentation import (
    column_profile,
    detect_lanes,
    find_lane_centers,
    segment_lanes,
    uniform_lanes,
)


def test_detects_each_lane(gel_image, settings):
    plane = intensity_plane(gel_image, invert=False)
    rects = detect_lanes(plane, settings)

    assert len(rects) == 4
    for rect, center in zip(rects, (50, 150, 250, 350)):
        assert rect.x <= center < rect.x + rect.width
        assert rect.y == 0 and rect.height == gel_image.height

    # ordered and disjoint
    for a, b in zip(rects, rects[1:]):
        assert a.x + a.width <= b.x


def test_column_profile_peaks_inside_lanes(gel_image):
    score = column_profile(intensity_plane(gel_image, invert=False))
    assert score.shape == (gel_image.width,)
    assert score[50] > score[100]
    assert score.max() <= 1.0


def test_flat_profile_has_no_centers():
    assert find_lane_centers(np.full(200, 0.5), 1.1) == []


def test_close_maxima_keep_the_tallest():
    score = np.zeros(400)
    score[100] = 1.0
    score[108] = 2.0
    score[116] = 3.0
    # 108 is suppressed by 116; 100 is far enough from 116 to survive
    assert find_lane_centers(score, 1.1) == [100, 116]


def test_maxima_near_border_are_dropped():
    score = np.zeros(400)
    score[5] = 1.0
    score[200] = 1.0
    score[396] = 1.0
    assert find_lane_centers(score, 1.1) == [200]


def test_uniform_fallback_on_blank_image(settings):
    plane = np.zeros((120, 300), dtype=np.float32)
    settings = dataclasses.replace(settings, num_lanes=6)
    rects = segment_lanes(plane, settings)
    assert len(rects) == 6
    assert all(r.height == 120 for r in rects)


def test_auto_detect_off_uses_grid(gel_image, settings):
    plane = intensity_plane(gel_image, invert=False)
    settings = dataclasses.replace(settings, auto_detect_lanes=False, num_lanes=8)
    assert len(segment_lanes(plane, settings)) == 8


def test_uniform_lanes_margin():
    rects = uniform_lanes(400, 300, 4, 10.0)
    assert rects[0] == Rect(5, 0, 90, 300)
    assert rects[3] == Rect(305, 0, 90, 300)


def test_uniform_lanes_zero_margin_tiles_width():
    rects = uniform_lanes(300, 50, 3, 0.0)
    assert sum(r.width for r in rects) == 300
    assert [r.x for r in rects] == [0, 100, 200]
