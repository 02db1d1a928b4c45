"""Helpers that generate synthetic screenshots and videos for tests."""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

Color = Tuple[int, int, int]
NormalizedBox = Tuple[float, float, float, float]

# Colors are BGR unless the name says otherwise.
MENU_RGB: Color = (128, 43, 170)
MENU_BGR: Color = (170, 43, 128)
ACCENT_RGB: Color = (240, 200, 20)
ACCENT_BGR: Color = (20, 200, 240)
BLUE_UI_BGR: Color = (200, 80, 20)
DARK_GRAY: Color = (30, 30, 30)
WHITE: Color = (255, 255, 255)

REFERENCE_BOX: NormalizedBox = (0.1, 0.1, 0.3, 0.2)


def create_blank_image(width: int = 640, height: int = 360, color: Color = DARK_GRAY) -> np.ndarray:
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[:] = color
    return image


def to_pixels(box: NormalizedBox, width: int, height: int) -> Tuple[int, int, int, int]:
    x, y, w, h = box
    return (
        int(round(x * width)),
        int(round(y * height)),
        int(round(w * width)),
        int(round(h * height)),
    )


def draw_menu(
    image: np.ndarray,
    box: NormalizedBox = REFERENCE_BOX,
    color: Color = MENU_BGR,
    text: bool = True,
    accent: bool = False,
) -> np.ndarray:
    """Paint a debug-menu-like panel: a solid box with white text lines."""

    height, width = image.shape[:2]
    x, y, w, h = to_pixels(box, width, height)
    cv2.rectangle(image, (x, y), (x + w - 1, y + h - 1), color, -1)

    margin_x = max(2, w // 10)
    if text:
        rows = 3
        line_h = max(1, h // 12)
        for row in range(rows):
            top = y + (row + 1) * h // (rows + 1) - line_h // 2
            cv2.rectangle(
                image,
                (x + margin_x, top),
                (x + w - margin_x - 1, top + line_h - 1),
                WHITE,
                -1,
            )
    if accent:
        size = max(2, min(w, h) // 4)
        top = y + max(1, h // 12)
        cv2.rectangle(image, (x + margin_x, top), (x + margin_x + size - 1, top + size - 1), ACCENT_BGR, -1)
    return image


def create_reference_image(
    width: int = 640,
    height: int = 360,
    box: NormalizedBox = REFERENCE_BOX,
    accent: bool = False,
) -> np.ndarray:
    return draw_menu(create_blank_image(width, height), box, accent=accent)


def create_menu_frame(
    width: int = 640,
    height: int = 360,
    box: NormalizedBox = REFERENCE_BOX,
    color: Color = MENU_BGR,
    text: bool = True,
    accent: bool = False,
) -> np.ndarray:
    return draw_menu(create_blank_image(width, height), box, color=color, text=text, accent=accent)


def create_timeline(
    pattern: Sequence[bool],
    width: int = 640,
    height: int = 360,
    box: NormalizedBox = REFERENCE_BOX,
) -> List[np.ndarray]:
    """One frame per entry; ``True`` entries show the menu."""

    frames = []
    for show in pattern:
        frame = create_menu_frame(width, height, box) if show else create_blank_image(width, height)
        frames.append(frame)
    return frames


def write_video(
    path: str,
    frames: Sequence[np.ndarray],
    fps: float = 2.0,
    fourcc: str = "MJPG",
) -> Optional[str]:
    """Encode ``frames`` to ``path``; returns ``None`` when the codec is unavailable."""

    height, width = frames[0].shape[:2]
    writer = cv2.VideoWriter(path, cv2.VideoWriter_fourcc(*fourcc), fps, (width, height))
    if not writer.isOpened():
        return None
    try:
        for frame in frames:
            writer.write(frame)
    finally:
        writer.release()
    return path
