"""
End-to-end gel analysis: geometry -> lanes -> profiles -> bands/smears -> metrics.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Tuple

import numpy as np

from config import PIPELINE_PARAMS
from analysis.background import subtract_background
from analysis.lane_aggregation import aggregate_lane
from analysis.models import AnalysisResult, GelSettings, LaneData, ManualOverrides, Rect
from analysis.peak_fitting import detect_bands
from analysis.profiles import build_raw_profile
from analysis.smear_analysis import find_smears
from image_analysis.lane_segmentation import segment_lanes
from gelquant_utils.image_utils import ImageBuffer, crop_percent, intensity_plane, rotate_image, rotated_size

LOGGER = logging.getLogger(__name__)


def analyze_lane(plane: np.ndarray,
                 index: int,
                 rect: Rect,
                 origin: Tuple[int, int],
                 settings: GelSettings,
                 overrides: ManualOverrides) -> LaneData:
    """
    Run profile, background, band and smear analysis for one lane.

    Args:
        plane: Intensity plane of the cropped image (read only)
        index: 1-based lane index
        rect: Lane rectangle in cropped coordinates
        origin: (crop_x, crop_y) of the crop inside the full image
        settings: Analysis settings
        overrides: Manual overrides

    Returns:
        LaneData with rect in full-image coordinates
    """
    raw = build_raw_profile(plane, rect)
    bg = subtract_background(raw, settings)
    fit = detect_bands(bg.net, index, settings)
    smears = find_smears(bg.net, fit.components, index, settings)

    return aggregate_lane(
        index=index,
        rect=rect.offset(*origin),
        raw=bg.smoothed,
        background=bg.background,
        net=bg.net,
        detected=fit.bands,
        smears=smears,
        overrides=overrides,
    )


def process_image(image: ImageBuffer,
                  settings: GelSettings,
                  overrides: Optional[ManualOverrides] = None,
                  max_workers: int = PIPELINE_PARAMS['max_workers'],
                  parallel_min_lanes: int = PIPELINE_PARAMS['parallel_min_lanes']) -> List[LaneData]:
    """
    Analyse a gel image.

    Args:
        image: Source buffer
        settings: Analysis settings
        overrides: Manual overrides re-applied on top of detection
        max_workers: Thread pool size for per-lane work (1 disables the pool)
        parallel_min_lanes: Minimum lane count before the pool is used

    Returns:
        LaneData per lane, ordered left to right; empty when the ROI collapses
    """
    if not isinstance(image, ImageBuffer):
        image = ImageBuffer.from_rgba(np.asarray(image))
    overrides = overrides if overrides is not None else ManualOverrides()

    rotated = rotate_image(image, settings.rotation_angle)
    cropped, origin = crop_percent(
        rotated, settings.roi_top, settings.roi_bottom, settings.roi_left, settings.roi_right
    )
    if cropped.width == 0 or cropped.height == 0:
        return []

    plane = intensity_plane(cropped, settings.invert_image)
    plane.setflags(write=False)
    rects = segment_lanes(plane, settings)
    LOGGER.debug(f"Analysing {len(rects)} lanes on {cropped.width}x{cropped.height} crop at {origin}")

    def run(item):
        idx, rect = item
        return analyze_lane(plane, idx, rect, origin, settings, overrides)

    items = list(enumerate(rects, start=1))
    if max_workers > 1 and len(items) >= parallel_min_lanes:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            return list(executor.map(run, items))
    return [run(item) for item in items]


def analyze(image: ImageBuffer,
            settings: GelSettings,
            overrides: Optional[ManualOverrides] = None,
            generation: int = 0) -> AnalysisResult:
    """process_image wrapped with the request generation and the size of the rotated image."""
    lanes = process_image(image, settings, overrides)
    width, height = rotated_size(image.width, image.height, settings.rotation_angle)
    return AnalysisResult(generation=generation, width=width, height=height, lanes=lanes)


class ResultGate:
    """
    Hands out request generations and discards stale results.

    A caller takes a token before each run and submits the result afterwards;
    only a result from the newest issued generation is accepted.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._generation = 0
        self._latest: Optional[AnalysisResult] = None

    def next_generation(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    def is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def submit(self, result: AnalysisResult) -> bool:
        """Store result if it is current; returns whether it was accepted."""
        with self._lock:
            if result.generation != self._generation:
                LOGGER.debug(f"Dropping stale result {result.generation} (current {self._generation})")
                return False
            self._latest = result
            return True

    @property
    def latest(self) -> Optional[AnalysisResult]:
        with self._lock:
            return self._latest
