"""
Detection of baked-in letterbox bars on a source creative.

Generated creatives sometimes arrive with uniform black or white bars at the
top and bottom. Adapting such a source would carry the bars into every
output, so they can optionally be trimmed first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

logger = logging.getLogger(__name__)

UNIFORM_THRESHOLD = 10
# Bars must cover more than this share of the height to count.
MIN_PADDING_FRACTION = 0.15
SCAN_FRACTION = 0.3


@dataclass(slots=True)
class LetterboxPadding:
    top: int = 0
    bottom: int = 0
    left: int = 0
    right: int = 0
    confidence: float = 0.0
    has_padding: bool = False


def _uniform_rows(image: np.ndarray, threshold: int) -> np.ndarray:
    """Boolean per row: average colour is near-black or near-white on every channel."""
    means = image.reshape(image.shape[0], -1, image.shape[2]).mean(axis=1)
    dark = np.all(means < threshold, axis=1)
    light = np.all(means > 255 - threshold, axis=1)
    return dark | light


def detect_letterbox(image: np.ndarray, threshold: int = UNIFORM_THRESHOLD) -> LetterboxPadding:
    if image.ndim == 2:
        image = image[:, :, None]
    height = image.shape[0]
    if height == 0:
        return LetterboxPadding()

    uniform = _uniform_rows(image, threshold)

    top = 0
    while top < height * SCAN_FRACTION and uniform[top]:
        top += 1

    bottom = 0
    y = height - 1
    while y > height * (1 - SCAN_FRACTION) and uniform[y]:
        bottom += 1
        y -= 1

    fraction = (top + bottom) / height
    padding = LetterboxPadding(
        top=top,
        bottom=bottom,
        confidence=min(1.0, fraction * 3),
        has_padding=fraction > MIN_PADDING_FRACTION,
    )
    logger.debug(
        "Letterbox detection: %dpx top, %dpx bottom (%.1f%% of image)",
        top,
        bottom,
        fraction * 100,
    )
    return padding


def trim_letterbox(image: np.ndarray) -> np.ndarray:
    """Return the image without detected bars, or unchanged when none qualify."""
    padding = detect_letterbox(image)
    if not padding.has_padding:
        return image

    height = image.shape[0]
    kept = height - padding.top - padding.bottom
    if kept <= 0:
        logger.warning("Letterbox trim would remove the whole image; keeping source as-is")
        return image

    logger.info("Trimming letterbox: %dpx top, %dpx bottom", padding.top, padding.bottom)
    return image[padding.top : height - padding.bottom]
