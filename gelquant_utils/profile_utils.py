"""
1-D profile filters shared by lane segmentation and background estimation.
"""

import numpy as np
from scipy.ndimage import gaussian_filter1d, maximum_filter1d, median_filter, minimum_filter1d

from config import PROFILE_PARAMS


def gaussian_smooth(data: np.ndarray, window: int) -> np.ndarray:
    """
    Gaussian smoothing with a window-sized kernel.

    The kernel size is made odd, its radius is window // 2 and
    sigma = radius / 3. Samples past the ends repeat the edge value.

    Args:
        data: 1-D profile
        window: Kernel size in samples

    Returns:
        Smoothed float64 profile (same length)
    """
    x = np.asarray(data, dtype=np.float64)
    window = int(window)
    k = window + 1 if window % 2 == 0 else window
    radius = k // 2
    if x.size == 0 or radius < 1:
        return x.copy()

    truncate = PROFILE_PARAMS['gaussian_truncate']
    sigma = radius / truncate
    return gaussian_filter1d(x, sigma=sigma, mode='nearest', truncate=truncate)


def median_smooth(data: np.ndarray, window: int) -> np.ndarray:
    """Sliding median with an odd window (edge values repeated)."""
    x = np.asarray(data, dtype=np.float64)
    half = max(0, int(window) // 2)
    if x.size == 0 or half == 0:
        return x.copy()
    return median_filter(x, size=2 * half + 1, mode='nearest')


def morphological_opening(data: np.ndarray, radius: int) -> np.ndarray:
    """
    1-D grayscale opening: erosion (min filter) then dilation (max filter).

    Args:
        data: 1-D profile
        radius: Structuring element radius in samples

    Returns:
        Opened profile; never above the input
    """
    x = np.asarray(data, dtype=np.float64)
    radius = max(0, int(radius))
    if x.size == 0 or radius == 0:
        return x.copy()

    size = 2 * radius + 1
    eroded = minimum_filter1d(x, size=size, mode='nearest')
    return maximum_filter1d(eroded, size=size, mode='nearest')
