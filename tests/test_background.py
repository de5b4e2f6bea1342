import dataclasses

import numpy as np
import pytest

from analysis.background import estimate_background, subtract_background
from analysis.models import BackgroundMethod
from gelquant_utils.profile_utils import gaussian_smooth, median_smooth, morphological_opening

from conftest import gaussian


@pytest.fixture
def offset_peak():
    return 50.0 + gaussian(400, 200, 100.0, 3.0)


@pytest.mark.parametrize("method", [BackgroundMethod.ROLLING_BALL, BackgroundMethod.MEDIAN])
def test_flat_offset_is_removed(settings, offset_peak, method):
    settings = dataclasses.replace(settings, background_subtraction_method=method)
    result = subtract_background(offset_peak, settings)

    assert np.allclose(result.background, 50.0, atol=1e-6)
    assert result.net[:100].max() < 1e-6
    assert result.net.max() > 90.0
    assert int(np.argmax(result.net)) == 200


def test_none_method_keeps_signal(settings, offset_peak):
    settings = dataclasses.replace(settings, background_subtraction_method=BackgroundMethod.NONE)
    result = subtract_background(offset_peak, settings)
    assert np.all(result.background == 0.0)
    assert np.allclose(result.net, result.smoothed)


def test_method_accepts_plain_string(settings, offset_peak):
    settings = dataclasses.replace(settings, background_subtraction_method='none')
    assert np.all(estimate_background(offset_peak, settings) == 0.0)


def test_net_is_never_negative(settings):
    rng = np.random.default_rng(0)
    raw = rng.uniform(0, 60, size=300)
    result = subtract_background(raw, settings)
    assert result.net.min() >= 0.0
    assert result.net.shape == raw.shape


def test_opening_never_exceeds_input():
    x = 10.0 + gaussian(100, 30, 40.0, 2.0) + gaussian(100, 70, 20.0, 5.0)
    assert np.all(morphological_opening(x, 15) <= x + 1e-12)


def test_smoothing_windows():
    x = np.zeros(51)
    x[25] = 1.0
    smoothed = gaussian_smooth(x, 5)
    assert smoothed.sum() == pytest.approx(1.0)
    assert int(np.argmax(smoothed)) == 25
    # window < 2 leaves the data alone
    assert np.array_equal(gaussian_smooth(x, 1), x)
    assert median_smooth(x, 5)[25] == 0.0


def test_empty_profile(settings):
    result = subtract_background(np.zeros(0), settings)
    assert result.net.size == 0
