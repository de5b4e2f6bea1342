"""
utility functions for file operations.
"""

import json
from pathlib import Path
from typing import Any, Dict, List

import cv2
import numpy as np

from gelquant_utils.image_utils import ImageBuffer, InvalidImageError


def load_gel_image(image_path: Path) -> ImageBuffer:
    """
    Read an image file into an RGBA buffer.

    Args:
        image_path: Path to a PNG/JPEG/TIFF gel image

    Returns:
        ImageBuffer
    """
    img = cv2.imread(str(image_path), cv2.IMREAD_UNCHANGED)
    if img is None:
        raise InvalidImageError(f"Could not read image: {image_path}")
    return ImageBuffer.from_cv2(img)


def read_json(file_path: Path) -> Dict[str, Any]:
    with open(file_path, 'r') as f:
        return json.load(f)


def write_json(data: Dict[str, Any], file_path: Path):
    """
    Write a dictionary to a JSON file, creating parent directories.

    Args:
        data: Dictionary
        file_path: Output file path
    """
    file_path.parent.mkdir(parents=True, exist_ok=True)

    with open(file_path, 'w') as f:
        json.dump(data, f, indent=2, default=_json_default)


def write_jsonl(data: List[Dict[str, Any]], file_path: Path):
    """
    Write list of dictionaries to JSONL file.

    Args:
        data: List of dictionaries
        file_path: Output file path
    """
    file_path.parent.mkdir(parents=True, exist_ok=True)

    with open(file_path, 'w') as f:
        for record in data:
            f.write(json.dumps(record, default=_json_default) + '\n')


def _json_default(obj):
    # numpy scalars / arrays and Paths
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, Path):
        return str(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")
