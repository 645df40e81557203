"""Inpainting mask geometry and safe-zone handling."""

import numpy as np
import pytest

from adapt_api.api.v1.schemas import SafeZone
from adapt_api.services.masks import INPAINT, PRESERVE, build_mask, safe_zone_bands


class TestBuildMask:
    @pytest.mark.parametrize("width,height", [(1080, 1920), (1920, 1080), (300, 250), (320, 50)])
    def test_mask_matches_target_dimensions(self, width, height):
        result = build_mask(width, height, 1000, 1000)
        assert result.mask.shape == (height, width)
        assert result.mask.dtype == np.uint8
        assert set(np.unique(result.mask)) <= {INPAINT, PRESERVE}

    def test_content_and_margin_are_preserved(self):
        result = build_mask(1080, 1920, 1000, 1000, margin=20)
        content = result.placement.content
        preserved = result.preserved

        assert preserved.y == content.y - 20
        assert preserved.bottom == content.bottom + 20
        # Content spans the full width, so the margin is clamped there.
        assert (preserved.x, preserved.right) == (0, 1080)

        region = result.mask[preserved.y : preserved.bottom, preserved.x : preserved.right]
        assert np.all(region == PRESERVE)

    def test_outside_margin_is_inpainted(self):
        result = build_mask(1080, 1920, 1000, 1000, margin=20)
        preserved = result.preserved
        assert np.all(result.mask[: preserved.y, :] == INPAINT)
        assert np.all(result.mask[preserved.bottom :, :] == INPAINT)
        assert 0.0 < result.coverage < 1.0

    def test_zero_margin_matches_content(self):
        result = build_mask(1920, 1080, 1000, 1000, margin=0)
        content = result.placement.content
        assert result.preserved == content
        assert np.all(result.mask[:, : content.x] == INPAINT)
        assert np.all(result.mask[:, content.right :] == INPAINT)

    def test_safe_zone_bands_are_preserved(self):
        zone = SafeZone(top=250, bottom=340)
        result = build_mask(1080, 1920, 1000, 1000, safe_zone=zone, margin=20)
        assert np.all(result.mask[:250, :] == PRESERVE)
        assert np.all(result.mask[1920 - 340 :, :] == PRESERVE)
        # Between the top band and the content margin the provider may paint.
        assert np.all(result.mask[250 : result.preserved.y, :] == INPAINT)

    def test_side_safe_zones(self):
        zone = SafeZone(left=60, right=140)
        result = build_mask(1920, 1080, 1000, 1000, safe_zone=zone, margin=0)
        assert np.all(result.mask[:, :60] == PRESERVE)
        assert np.all(result.mask[:, 1920 - 140 :] == PRESERVE)
        assert np.all(result.mask[:, 60 : result.preserved.x] == INPAINT)

    def test_empty_safe_zone_adds_nothing(self):
        with_zone = build_mask(1080, 1920, 1000, 1000, safe_zone=SafeZone())
        without_zone = build_mask(1080, 1920, 1000, 1000)
        assert np.array_equal(with_zone.mask, without_zone.mask)
        assert with_zone.safe_zone_bands == []

    def test_same_ratio_preserves_everything(self):
        result = build_mask(500, 500, 1000, 1000)
        assert result.coverage == 0.0


class TestSafeZoneBands:
    def test_bands_are_clamped_to_canvas(self):
        bands = safe_zone_bands(SafeZone(top=500, right=900), 800, 400)
        top, right = bands
        assert (top.x, top.y, top.width, top.height) == (0, 0, 800, 400)
        assert (right.x, right.width, right.height) == (0, 800, 400)

    def test_only_non_zero_margins_produce_bands(self):
        bands = safe_zone_bands(SafeZone(bottom=10), 100, 100)
        assert len(bands) == 1
        assert (bands[0].y, bands[0].height) == (90, 10)
