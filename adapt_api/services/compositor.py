from __future__ import annotations

import logging
from io import BytesIO
from typing import Tuple

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from adapt_api.models.jobs import Placement
from adapt_api.services.errors import InvalidSourceImage
from adapt_api.services.policy import compute_center_crop, compute_placement

logger = logging.getLogger(__name__)

FILL_COLORS = {
    "black": (0, 0, 0),
    "white": (255, 255, 255),
}


def decode_image(data: bytes) -> np.ndarray:
    """
    Decode image bytes into a BGR array.

    Pillow handles the format zoo (WebP, palette PNGs, alpha); everything is
    flattened to RGB before handing over to OpenCV.
    """
    if not data:
        raise InvalidSourceImage("Invalid source image: empty payload")
    try:
        pil_image = Image.open(BytesIO(data))
        pil_image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise InvalidSourceImage(f"Invalid source image: {exc}") from exc

    if pil_image.width <= 0 or pil_image.height <= 0:
        raise InvalidSourceImage("Invalid source image: unable to extract dimensions")

    rgb = np.array(pil_image.convert("RGB"))
    return cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)


def encode_png(image: np.ndarray) -> bytes:
    ok, buffer = cv2.imencode(".png", image)
    if not ok:
        raise ValueError("PNG encoding failed")
    return buffer.tobytes()


def _resize(image: np.ndarray, width: int, height: int) -> np.ndarray:
    return cv2.resize(image, (width, height), interpolation=cv2.INTER_LANCZOS4)


def _scaled_content(source: np.ndarray, target_width: int, target_height: int) -> Tuple[np.ndarray, Placement]:
    h, w = source.shape[:2]
    placement = compute_placement(target_width, target_height, w, h)
    resized = _resize(source, placement.content.width, placement.content.height)
    return resized, placement


def render_contain(source: np.ndarray, target_width: int, target_height: int, fill: str = "black") -> np.ndarray:
    """
    Letterbox the source into the target box.

    The source keeps its aspect ratio, is centered, and the remainder is a
    solid fill.
    """
    color = FILL_COLORS[fill]
    resized, placement = _scaled_content(source, target_width, target_height)
    rect = placement.content

    output = np.empty((target_height, target_width, 3), dtype=np.uint8)
    output[:] = color
    output[rect.y : rect.bottom, rect.x : rect.right] = resized
    return output


def render_center_crop(source: np.ndarray, target_width: int, target_height: int) -> np.ndarray:
    """Center-crop to the target ratio, then scale to the exact target size."""
    h, w = source.shape[:2]
    crop = compute_center_crop(w, h, target_width, target_height)
    cropped = source[crop.y : crop.bottom, crop.x : crop.right]
    return _resize(cropped, target_width, target_height)


def render_outpaint_base(source: np.ndarray, target_width: int, target_height: int) -> np.ndarray:
    """
    Base image handed to inpainting providers.

    The contained source sits exactly where the mask preserves it; the
    margins are edge-replicated so the model sees colour context instead of
    hard black bars.
    """
    resized, placement = _scaled_content(source, target_width, target_height)
    rect = placement.content
    return cv2.copyMakeBorder(
        resized,
        top=rect.y,
        bottom=target_height - rect.bottom,
        left=rect.x,
        right=target_width - rect.right,
        borderType=cv2.BORDER_REPLICATE,
    )


def fit_to_target(image: np.ndarray, target_width: int, target_height: int) -> np.ndarray:
    """Providers may return their own resolution; force the exact target size."""
    h, w = image.shape[:2]
    if (w, h) == (target_width, target_height):
        return image
    logger.info("Rescaling provider output %dx%d to %dx%d", w, h, target_width, target_height)
    return _resize(image, target_width, target_height)


def disclaimer_band_heights(source_height: int, target_height: int, fraction: float) -> Tuple[int, int]:
    source_band = max(1, min(source_height, round(source_height * fraction)))
    target_band = max(1, min(target_height, round(target_height * fraction)))
    return source_band, target_band


def extract_disclaimer_band(source: np.ndarray, target_width: int, target_height: int, fraction: float) -> np.ndarray:
    """Bottom `fraction` of the source, rescaled to the bottom `fraction` of the target."""
    source_height = source.shape[0]
    source_band, target_band = disclaimer_band_heights(source_height, target_height, fraction)
    band = source[source_height - source_band :, :]
    return _resize(band, target_width, target_band)


def composite_disclaimer(generated: np.ndarray, source: np.ndarray, fraction: float = 0.15) -> np.ndarray:
    """
    Overwrite the bottom band of a generated image with the source's band.

    Disclaimer text has to match the source exactly and generative models do
    not reproduce small text reliably, so whatever the provider painted
    there is discarded.
    """
    target_height, target_width = generated.shape[:2]
    band = extract_disclaimer_band(source, target_width, target_height, fraction)
    output = generated.copy()
    output[target_height - band.shape[0] :, :] = band
    return output
