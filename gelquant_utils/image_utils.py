"""
Image processing utility functions.
Pixel buffer container, intensity sampling, cropping and rotation.
"""

import logging
from dataclasses import dataclass
from typing import Sequence, Tuple

import cv2
import numpy as np

from config import LUMA_WEIGHTS

LOGGER = logging.getLogger(__name__)


class InvalidImageError(ValueError):
    """Raised when a pixel buffer does not match its declared dimensions."""


@dataclass(frozen=True, eq=False)
class ImageBuffer:
    """Row-major RGBA pixel buffer (uint8), read-only."""
    width: int
    height: int
    data: np.ndarray  # (height, width, 4) uint8

    def __post_init__(self):
        width, height = int(self.width), int(self.height)
        if width < 0 or height < 0:
            raise InvalidImageError(f"Negative image size: {width}x{height}")

        arr = np.asarray(self.data)
        expected = width * height * 4
        if arr.size != expected:
            raise InvalidImageError(
                f"Pixel buffer has {arr.size} values, expected {expected} for {width}x{height}x4"
            )

        pixels = np.array(arr, dtype=np.uint8).reshape(height, width, 4)
        pixels.setflags(write=False)
        object.__setattr__(self, 'width', width)
        object.__setattr__(self, 'height', height)
        object.__setattr__(self, 'data', pixels)

    @classmethod
    def from_bytes(cls, width: int, height: int, buffer: bytes) -> "ImageBuffer":
        return cls(width, height, np.frombuffer(buffer, dtype=np.uint8))

    @classmethod
    def from_rgba(cls, rgba: np.ndarray) -> "ImageBuffer":
        if rgba.ndim != 3 or rgba.shape[2] != 4:
            raise InvalidImageError(f"Expected (H, W, 4) array, got shape {rgba.shape}")
        h, w = rgba.shape[:2]
        return cls(w, h, rgba)

    @classmethod
    def from_cv2(cls, img: np.ndarray) -> "ImageBuffer":
        """
        Build a buffer from an OpenCV image (gray, BGR or BGRA).

        Args:
            img: Image as returned by cv2.imread / cv2.imdecode

        Returns:
            ImageBuffer holding RGBA pixels
        """
        if img is None:
            raise InvalidImageError("Input image is None")

        if img.ndim == 2:
            rgba = cv2.cvtColor(img, cv2.COLOR_GRAY2RGBA)
        elif img.ndim == 3 and img.shape[2] == 3:
            rgba = cv2.cvtColor(img, cv2.COLOR_BGR2RGBA)
        elif img.ndim == 3 and img.shape[2] == 4:
            rgba = cv2.cvtColor(img, cv2.COLOR_BGRA2RGBA)
        else:
            raise InvalidImageError(f"Unsupported image shape {img.shape}")

        if rgba.dtype != np.uint8:
            rgba = cv2.normalize(rgba, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)
        return cls.from_rgba(rgba)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.height, self.width


def pixel_intensity(rgba: Sequence[int], invert: bool) -> float:
    """Scalar intensity of one RGBA pixel."""
    r, g, b = float(rgba[0]), float(rgba[1]), float(rgba[2])
    val = LUMA_WEIGHTS[0] * r + LUMA_WEIGHTS[1] * g + LUMA_WEIGHTS[2] * b
    return 255.0 - val if invert else val


def intensity_plane(image: ImageBuffer, invert: bool) -> np.ndarray:
    """
    Convert the whole buffer to a float intensity plane.

    Args:
        image: Source buffer
        invert: If True, return 255 - luminance (dark bands become positive peaks)

    Returns:
        (height, width) float32 array
    """
    rgb = image.data[:, :, :3].astype(np.float32)
    lum = rgb @ np.asarray(LUMA_WEIGHTS, dtype=np.float32)
    if invert:
        lum = 255.0 - lum
    return lum.astype(np.float32, copy=False)


def crop_percent(image: ImageBuffer,
                 top: float, bottom: float,
                 left: float, right: float) -> Tuple[ImageBuffer, Tuple[int, int]]:
    """
    Crop a buffer using ROI percentages measured from each edge.

    Args:
        image: Source buffer
        top, bottom, left, right: Percent of the image removed from each side

    Returns:
        Tuple of (cropped_buffer, (crop_x, crop_y)); the buffer is empty (0 x 0)
        when the ROI collapses
    """
    W, H = image.width, image.height
    crop_x = int(np.floor(left / 100.0 * W))
    crop_y = int(np.floor(top / 100.0 * H))
    crop_w = int(np.floor((100.0 - right - left) / 100.0 * W))
    crop_h = int(np.floor((100.0 - bottom - top) / 100.0 * H))

    # Clamp to image bounds
    crop_x = max(0, min(W, crop_x))
    crop_y = max(0, min(H, crop_y))
    crop_w = min(crop_w, W - crop_x)
    crop_h = min(crop_h, H - crop_y)

    if crop_w <= 0 or crop_h <= 0:
        LOGGER.debug(f"ROI collapsed: top={top} bottom={bottom} left={left} right={right}")
        return ImageBuffer(0, 0, np.zeros(0, dtype=np.uint8)), (crop_x, crop_y)

    region = image.data[crop_y:crop_y + crop_h, crop_x:crop_x + crop_w].copy()
    return ImageBuffer.from_rgba(region), (crop_x, crop_y)


_QUARTER_TURNS = {
    1: cv2.ROTATE_90_CLOCKWISE,
    2: cv2.ROTATE_180,
    3: cv2.ROTATE_90_COUNTERCLOCKWISE,
}


def rotated_size(width: int, height: int, angle_deg: float) -> Tuple[int, int]:
    """(width, height) of the buffer rotate_image returns for this angle."""
    if int(round(float(angle_deg) / 90.0)) % 2:
        return height, width
    return width, height


def rotate_image(image: ImageBuffer, angle_deg: float) -> ImageBuffer:
    """
    Rotate a buffer about its centre.

    Positive angles rotate clockwise on screen (y axis pointing down), the same
    convention as best_rotation_angle. Whole quarter turns are exact and swap
    width and height for 90 and 270 degrees; the remaining small angle keeps
    the size and replicates the border into uncovered corners.

    Args:
        image: Source buffer
        angle_deg: Rotation angle in degrees

    Returns:
        New rotated buffer
    """
    if image.width == 0 or image.height == 0:
        return image

    quarters = int(round(float(angle_deg) / 90.0))
    residual = float(angle_deg) - 90.0 * quarters
    pixels = np.ascontiguousarray(image.data)

    turn = _QUARTER_TURNS.get(quarters % 4)
    if turn is not None:
        pixels = cv2.rotate(pixels, turn)
    if abs(residual) < 1e-9:
        return image if turn is None else ImageBuffer.from_rgba(pixels)

    h, w = pixels.shape[:2]
    center = (w / 2.0, h / 2.0)
    # cv2 treats positive angles as counter-clockwise
    M = cv2.getRotationMatrix2D(center, -residual, 1.0)
    rotated = cv2.warpAffine(
        pixels, M, (w, h),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_REPLICATE,
    )
    return ImageBuffer.from_rgba(rotated)


def calculate_brightness_stats(image: ImageBuffer, invert: bool = False) -> dict:
    """
    Calculate brightness statistics for a buffer.

    Returns:
        Dictionary with brightness statistics
    """
    plane = intensity_plane(image, invert)
    if plane.size == 0:
        return {'mean': 0.0, 'std': 0.0, 'min': 0.0, 'max': 0.0, 'median': 0.0}

    return {
        'mean': float(np.mean(plane)),
        'std': float(np.std(plane)),
        'min': float(np.min(plane)),
        'max': float(np.max(plane)),
        'median': float(np.median(plane))
    }
