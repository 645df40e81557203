"""
Aspect-ratio classification and per-size strategy selection.

The classifier maps raw pixel sizes onto the small set of named ratios that
reframe-style providers accept. The policy decides, per target size, whether
letterboxing the source is good enough or whether the background has to be
extended by an outpainting provider.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Tuple

from adapt_api.api.v1.schemas import SizeConfig
from adapt_api.models.jobs import Placement, Rect
from adapt_api.services.errors import InvalidSourceImage

logger = logging.getLogger(__name__)

# Canonical buckets in match order, with the tolerance used for exact matches.
CANONICAL_RATIOS: Tuple[Tuple[str, float], ...] = (
    ("1:1", 1.0),
    ("16:9", 16 / 9),
    ("9:16", 9 / 16),
    ("4:3", 4 / 3),
    ("3:4", 3 / 4),
    ("4:5", 4 / 5),
    ("5:4", 5 / 4),
)
CANONICAL_TOLERANCE = 0.01

# Float slack for the policy threshold so that e.g. 1.1 vs 1.0 counts as 0.1.
RATIO_EPSILON = 1e-9


class Strategy(str, Enum):
    CONTAIN = "smart-contain"
    CROP = "smart-crop"
    OUTPAINT = "outpaint"


def classify_aspect_ratio(width: int, height: int) -> str:
    """
    Return the named aspect-ratio bucket closest to `width:height`.

    Exact canonical ratios (within 0.01) win; anything else falls into a
    coarse range bucket, so every positive size gets a bucket.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"width and height must be positive, got {width}x{height}")

    ratio = width / height
    for name, value in CANONICAL_RATIOS:
        if abs(ratio - value) < CANONICAL_TOLERANCE:
            return name

    if ratio > 1.5:
        return "16:9"
    if ratio > 1.2:
        return "4:3"
    if ratio > 0.9:
        return "1:1"
    if ratio > 0.7:
        return "4:5"
    return "9:16"


def choose_strategy(
    source_width: int | None,
    source_height: int | None,
    target: SizeConfig,
    threshold: float = 0.1,
    outpaint_enabled: bool = True,
) -> Strategy:
    """
    Pick how to adapt a source of the given size to `target`.

    A ratio difference within `threshold` is letterboxed (contain). Anything
    larger would leave visually excessive padding and is outpainted, or
    center-cropped when outpainting is switched off.
    """
    if not source_width or not source_height or source_width <= 0 or source_height <= 0:
        raise InvalidSourceImage(
            f"Invalid source image: unable to extract dimensions ({source_width}x{source_height})"
        )

    source_ratio = source_width / source_height
    target_ratio = target.width / target.height
    diff = abs(source_ratio - target_ratio)

    if diff <= threshold + RATIO_EPSILON:
        strategy = Strategy.CONTAIN
    elif outpaint_enabled:
        strategy = Strategy.OUTPAINT
    else:
        strategy = Strategy.CROP

    logger.info(
        "Strategy for %dx%d -> %dx%d (ratio diff %.3f): %s",
        source_width,
        source_height,
        target.width,
        target.height,
        diff,
        strategy.value,
    )
    return strategy


def compute_placement(target_width: int, target_height: int, source_width: int, source_height: int) -> Placement:
    """
    Containment geometry: scale the source to fit the target box and center it.

    Shared by the contain renderer, the outpaint base image and the mask so
    that all three agree on where the original content sits.
    """
    scale = min(target_width / source_width, target_height / source_height)
    scaled_width = min(target_width, max(1, round(source_width * scale)))
    scaled_height = min(target_height, max(1, round(source_height * scale)))
    offset_x = (target_width - scaled_width) // 2
    offset_y = (target_height - scaled_height) // 2
    return Placement(
        scale=scale,
        content=Rect(x=offset_x, y=offset_y, width=scaled_width, height=scaled_height),
    )


def compute_center_crop(source_width: int, source_height: int, target_width: int, target_height: int) -> Rect:
    """Largest centered region of the source with the target's aspect ratio."""
    source_ratio = source_width / source_height
    target_ratio = target_width / target_height

    if target_ratio > source_ratio:
        # Target is wider: keep full width, trim height.
        crop_width = source_width
        crop_height = max(1, min(source_height, round(source_width / target_ratio)))
    else:
        # Target is taller: keep full height, trim width.
        crop_height = source_height
        crop_width = max(1, min(source_width, round(source_height * target_ratio)))

    return Rect(
        x=(source_width - crop_width) // 2,
        y=(source_height - crop_height) // 2,
        width=crop_width,
        height=crop_height,
    )
