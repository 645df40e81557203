"""
Inpainting mask construction for the outpaint path.

Convention (shared with the LaMa-style providers): 255 (white) marks pixels
the provider may generate, 0 (black) marks pixels it must preserve.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

import numpy as np

from adapt_api.api.v1.schemas import SafeZone
from adapt_api.models.jobs import Placement, Rect
from adapt_api.services.policy import compute_placement

logger = logging.getLogger(__name__)

INPAINT = 255
PRESERVE = 0


@dataclass(slots=True)
class AdaptationMask:
    """Mask plus the geometry it was derived from."""

    mask: np.ndarray
    placement: Placement
    # Scaled content grown by the safety margin.
    preserved: Rect
    safe_zone_bands: List[Rect]

    @property
    def coverage(self) -> float:
        """Fraction of the canvas the provider is allowed to paint."""
        return float(np.count_nonzero(self.mask == INPAINT)) / self.mask.size


def safe_zone_bands(zone: SafeZone, width: int, height: int) -> List[Rect]:
    """Edge bands for each non-zero safe-zone margin, clamped to the canvas."""
    bands: List[Rect] = []
    if zone.top > 0:
        bands.append(Rect(x=0, y=0, width=width, height=min(zone.top, height)))
    if zone.bottom > 0:
        h = min(zone.bottom, height)
        bands.append(Rect(x=0, y=height - h, width=width, height=h))
    if zone.left > 0:
        bands.append(Rect(x=0, y=0, width=min(zone.left, width), height=height))
    if zone.right > 0:
        w = min(zone.right, width)
        bands.append(Rect(x=width - w, y=0, width=w, height=height))
    return bands


def build_mask(
    target_width: int,
    target_height: int,
    source_width: int,
    source_height: int,
    safe_zone: SafeZone | None = None,
    margin: int = 20,
) -> AdaptationMask:
    """
    Build the outpainting mask for one target size.

    The canvas starts fully white; the margin-expanded content rectangle and
    every non-zero safe-zone band are painted black. Overlaps are harmless,
    any black pixel is preserved.
    """
    zone = safe_zone or SafeZone()
    placement = compute_placement(target_width, target_height, source_width, source_height)
    preserved = placement.content.expanded(margin, target_width, target_height)
    bands = safe_zone_bands(zone, target_width, target_height)

    mask = np.full((target_height, target_width), INPAINT, dtype=np.uint8)
    for rect in [preserved, *bands]:
        mask[rect.y : rect.bottom, rect.x : rect.right] = PRESERVE

    result = AdaptationMask(mask=mask, placement=placement, preserved=preserved, safe_zone_bands=bands)
    logger.debug(
        "Built %dx%d mask: content=%s margin=%d bands=%d coverage=%.1f%%",
        target_width,
        target_height,
        placement.content,
        margin,
        len(bands),
        result.coverage * 100,
    )
    return result
