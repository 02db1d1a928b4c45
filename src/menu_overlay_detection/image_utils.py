"""Decode reference screenshots into BGR pixel buffers."""

from __future__ import annotations

from pathlib import Path
from typing import Union

import numpy as np
from PIL import Image

from .backend import cv2, require_opencv

ImageInput = Union[str, Path, bytes, np.ndarray, Image.Image]


def load_image(image_input: ImageInput) -> np.ndarray:
    """Return ``image_input`` as a fresh 8-bit, three-channel BGR array.

    Accepts a file path, encoded image bytes (an uploaded screenshot), a
    decoded ndarray (BGR, BGRA or gray) or a PIL image. The caller owns the
    returned buffer; ndarray inputs are copied.
    """

    require_opencv()
    if isinstance(image_input, np.ndarray):
        image = image_input.copy()
    elif isinstance(image_input, Image.Image):
        rgb = np.asarray(image_input.convert("RGB"))
        image = cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)
    elif isinstance(image_input, (bytes, bytearray)):
        encoded = np.frombuffer(image_input, dtype=np.uint8)
        image = cv2.imdecode(encoded, cv2.IMREAD_COLOR) if encoded.size else None
        if image is None:
            raise ValueError("Reference bytes are not a decodable image")
    else:
        path = Path(image_input)
        if not path.is_file():
            raise FileNotFoundError(f"Reference image not found: {path}")
        image = cv2.imread(str(path), cv2.IMREAD_COLOR)
        if image is None:
            raise ValueError(f"Unsupported or corrupt image file: {path}")

    if image.size == 0:
        raise ValueError("Reference image is empty")
    if image.dtype != np.uint8:
        raise ValueError(f"Reference image must be 8-bit, got {image.dtype}")
    return ensure_color(image)


def ensure_color(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    channels = image.shape[2] if image.ndim == 3 else 0
    if channels == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    if channels == 1:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if channels != 3:
        raise ValueError(f"Unsupported image shape: {image.shape}")
    return image
