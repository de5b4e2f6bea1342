import numpy as np
import pytest

from gelquant_utils.image_utils import (
    ImageBuffer,
    InvalidImageError,
    calculate_brightness_stats,
    crop_percent,
    intensity_plane,
    pixel_intensity,
    rotate_image,
    rotated_size,
)


def _solid(width, height, rgb):
    rgba = np.zeros((height, width, 4), dtype=np.uint8)
    rgba[..., :3] = rgb
    rgba[..., 3] = 255
    return ImageBuffer.from_rgba(rgba)


def test_buffer_size_mismatch_raises():
    with pytest.raises(InvalidImageError):
        ImageBuffer(10, 10, np.zeros(10, dtype=np.uint8))


def test_invalid_image_is_value_error():
    with pytest.raises(ValueError):
        ImageBuffer.from_bytes(4, 4, bytes(4 * 4 * 3))


def test_from_bytes_roundtrip_shape():
    img = ImageBuffer.from_bytes(3, 2, bytes(range(24)))
    assert img.shape == (2, 3)
    assert img.data[1, 2, 3] == 23
    assert not img.data.flags.writeable


def test_from_cv2_gray():
    gray = np.full((5, 7), 128, dtype=np.uint8)
    img = ImageBuffer.from_cv2(gray)
    assert (img.width, img.height) == (7, 5)
    assert np.all(img.data[..., :3] == 128)
    assert np.all(img.data[..., 3] == 255)


def test_from_cv2_none():
    with pytest.raises(InvalidImageError):
        ImageBuffer.from_cv2(None)


def test_intensity_plane_weights_and_invert():
    img = _solid(4, 3, (255, 0, 0))
    plane = intensity_plane(img, invert=False)
    assert plane.shape == (3, 4)
    assert plane[0, 0] == pytest.approx(0.299 * 255, abs=1e-3)

    inv = intensity_plane(img, invert=True)
    assert inv[0, 0] == pytest.approx(255 - 0.299 * 255, abs=1e-3)
    assert pixel_intensity((255, 0, 0, 255), True) == pytest.approx(inv[0, 0], abs=1e-3)


def test_white_pixel_inverted_is_zero():
    assert pixel_intensity((255, 255, 255, 255), True) == pytest.approx(0.0, abs=1e-9)


def test_crop_percent_origin_and_size():
    img = _solid(200, 100, (10, 10, 10))
    cropped, origin = crop_percent(img, top=10, bottom=20, left=5, right=15)
    assert origin == (10, 10)
    assert (cropped.width, cropped.height) == (160, 70)


def test_crop_percent_collapse_returns_empty():
    img = _solid(50, 50, (10, 10, 10))
    cropped, _ = crop_percent(img, top=60, bottom=50, left=0, right=0)
    assert cropped.width == 0 and cropped.height == 0


def test_rotate_zero_is_noop():
    img = _solid(20, 10, (1, 2, 3))
    assert rotate_image(img, 0.0) is img


def test_rotate_keeps_size():
    img = _solid(30, 20, (50, 50, 50))
    rotated = rotate_image(img, 7.5)
    assert (rotated.width, rotated.height) == (30, 20)
    # uniform image stays uniform with replicated borders
    assert np.all(rotated.data[..., 0] == 50)


def _marked(width, height):
    img = _solid(width, height, (0, 0, 0))
    data = img.data.copy()
    data[height - 1, 0, :3] = 200
    data[0, width - 1, :3] = 100
    return ImageBuffer.from_rgba(data)


def test_quarter_turn_swaps_size():
    img = _solid(400, 200, (80, 80, 80))
    rotated = rotate_image(img, 90.0)
    assert (rotated.width, rotated.height) == (200, 400)
    assert np.all(rotated.data[..., 0] == 80)
    assert rotated_size(400, 200, 90.0) == (200, 400)
    assert rotated_size(400, 200, 180.0) == (400, 200)


def test_quarter_turn_direction():
    img = _marked(4, 3)
    clockwise = rotate_image(img, 90.0)
    # bottom-left corner moves to the top-left
    assert clockwise.data[0, 0, 0] == 200
    counter = rotate_image(img, -90.0)
    # top-right corner moves to the top-left
    assert counter.data[0, 0, 0] == 100


def test_half_turn_keeps_size_and_flips():
    img = _marked(4, 3)
    rotated = rotate_image(img, 180.0)
    assert (rotated.width, rotated.height) == (4, 3)
    assert rotated.data[0, 3, 0] == 200


def test_brightness_stats(gel_image):
    stats = calculate_brightness_stats(gel_image)
    assert stats['min'] <= stats['median'] <= stats['max']
    assert stats['mean'] > 0
