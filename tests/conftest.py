"""
Shared fixtures: synthetic gel images and lane profiles.
"""

import json

import numpy as np
import pytest

from analysis.models import GelSettings
from gelquant_utils.image_utils import ImageBuffer


def render_gel(width=400, height=300,
               centers=(50, 150, 250, 350),
               lane_width=40,
               bands=((80, 180.0), (150, 90.0)),
               band_sigma=4.0,
               body=20.0,
               background=5.0,
               body_rows=(20, 280),
               dark_bands=False):
    """Gray gel with bright bands on a dark background (or the inverse)."""
    plane = np.full((height, width), background, dtype=np.float64)

    rows = np.arange(height, dtype=np.float64)
    column = np.zeros(height, dtype=np.float64)
    column[body_rows[0]:body_rows[1]] = body
    for yc, amp in bands:
        column += amp * np.exp(-0.5 * ((rows - yc) / band_sigma) ** 2)

    half = lane_width // 2
    for c in centers:
        xs = np.arange(c - half, c + half)
        weight = 1.0 - 0.3 * ((xs - c) / float(half)) ** 2
        plane[:, c - half:c + half] = background + column[:, None] * weight[None, :]

    gray = np.round(np.clip(plane, 0, 255)).astype(np.uint8)
    if dark_bands:
        gray = 255 - gray
    rgba = np.dstack([gray, gray, gray, np.full_like(gray, 255)])
    return ImageBuffer.from_rgba(rgba)


def gaussian(n, center, height, sigma):
    x = np.arange(n, dtype=np.float64)
    return height * np.exp(-0.5 * ((x - center) / sigma) ** 2)


def read_jsonl(path):
    with open(path) as f:
        return [json.loads(line) for line in f if line.strip()]


@pytest.fixture
def settings():
    return GelSettings()


@pytest.fixture
def gel_image():
    return render_gel()


@pytest.fixture
def large_gel():
    # 8 lanes, many bands; used for rotation recovery
    return render_gel(
        width=600, height=600,
        centers=tuple(60 + 70 * k for k in range(8)),
        bands=((150, 180.0), (250, 150.0), (350, 120.0), (450, 100.0)),
        body_rows=(40, 560),
    )


@pytest.fixture
def two_band_profile():
    """Two separated Gaussians on a zero baseline."""
    return gaussian(200, 50, 200.0, 3.0) + gaussian(200, 150, 100.0, 3.0)


@pytest.fixture
def band_and_smear_profile():
    """One strong band followed by a broad flat elevation without a local maximum."""
    profile = gaussian(200, 40, 200.0, 3.0)
    profile[80:170] += 30.0
    return profile
