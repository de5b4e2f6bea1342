import numpy as np

from analysis.models import Rect


def build_raw_profile(plane: np.ndarray, rect: Rect) -> np.ndarray:
    """
    Row-wise mean intensity across a lane rectangle.

    Args:
        plane: (H, W) intensity plane of the cropped image
        rect: Lane rectangle in plane coordinates

    Returns:
        Profile with one value per rect row
    """
    region = plane[rect.y:rect.y + rect.height, rect.x:rect.x + rect.width]
    if region.shape[0] == 0:
        return np.zeros(0, dtype=np.float64)
    if region.shape[1] == 0:
        return np.zeros(region.shape[0], dtype=np.float64)
    return region.astype(np.float64).mean(axis=1)
