"""Rendering paths and disclaimer band compositing."""

from io import BytesIO

import cv2
import numpy as np
import pytest
from PIL import Image

from adapt_api.services.compositor import (
    composite_disclaimer,
    decode_image,
    disclaimer_band_heights,
    encode_png,
    extract_disclaimer_band,
    fit_to_target,
    render_center_crop,
    render_contain,
    render_outpaint_base,
)
from adapt_api.services.errors import InvalidSourceImage
from adapt_api.services.policy import compute_placement
from conftest import make_source_image


def _png_bytes(mode, size, color):
    buffer = BytesIO()
    Image.new(mode, size, color).save(buffer, format="PNG")
    return buffer.getvalue()


class TestDecode:
    def test_png_round_trips_through_bgr(self):
        image = make_source_image(64, 48)
        decoded = decode_image(encode_png(image))
        assert decoded.shape == (48, 64, 3)
        assert np.array_equal(decoded, image)

    def test_rgba_and_palette_images_become_bgr(self):
        rgba = decode_image(_png_bytes("RGBA", (10, 8), (255, 0, 0, 128)))
        assert rgba.shape == (8, 10, 3)
        assert tuple(rgba[0, 0]) == (0, 0, 255)

        palette = decode_image(_png_bytes("P", (5, 5), 3))
        assert palette.shape == (5, 5, 3)

    @pytest.mark.parametrize("payload", [b"", b"not an image at all"])
    def test_undecodable_bytes(self, payload):
        with pytest.raises(InvalidSourceImage):
            decode_image(payload)


class TestRenderers:
    def test_contain_letterboxes_with_fill(self):
        source = np.full((100, 100, 3), 120, dtype=np.uint8)
        output = render_contain(source, 300, 100, fill="black")
        assert output.shape == (100, 300, 3)
        assert np.all(output[:, :100] == 0)
        assert np.all(output[:, 200:] == 0)
        assert np.all(output[:, 100:200] == 120)

    def test_contain_white_fill(self):
        source = np.full((100, 100, 3), 120, dtype=np.uint8)
        output = render_contain(source, 100, 300, fill="white")
        assert np.all(output[:100, :] == 255)
        assert np.all(output[200:, :] == 255)

    def test_center_crop_fills_target_exactly(self):
        source = make_source_image(200, 200)
        output = render_center_crop(source, 160, 90)
        assert output.shape == (90, 160, 3)

    def test_outpaint_base_keeps_content_and_replicates_edges(self):
        source = np.zeros((100, 100, 3), dtype=np.uint8)
        source[:, 0] = (10, 20, 30)
        source[:, -1] = (200, 210, 220)
        output = render_outpaint_base(source, 300, 100)
        rect = compute_placement(300, 100, 100, 100).content

        assert output.shape == (100, 300, 3)
        assert np.array_equal(output[:, rect.x : rect.right], source)
        assert np.all(output[:, : rect.x] == (10, 20, 30))
        assert np.all(output[:, rect.right :] == (200, 210, 220))

    def test_fit_to_target_rescales_mismatched_output(self):
        image = np.zeros((512, 512, 3), dtype=np.uint8)
        assert fit_to_target(image, 300, 100).shape == (100, 300, 3)
        assert fit_to_target(image, 512, 512) is image


class TestDisclaimerCompositor:
    def test_band_heights(self):
        assert disclaimer_band_heights(1000, 1920, 0.15) == (150, 288)
        assert disclaimer_band_heights(3, 3, 0.15) == (1, 1)

    @pytest.mark.parametrize("target", [(1080, 1920), (1920, 1080), (300, 250)])
    def test_bottom_band_is_the_scaled_source_band(self, target):
        width, height = target
        source = make_source_image(200, 200)
        generated = np.full((height, width, 3), 77, dtype=np.uint8)

        output = composite_disclaimer(generated, source, fraction=0.15)

        source_band, target_band = disclaimer_band_heights(200, height, 0.15)
        expected = cv2.resize(
            source[200 - source_band :, :],
            (width, target_band),
            interpolation=cv2.INTER_LANCZOS4,
        )
        assert np.array_equal(output[height - target_band :, :], expected)
        assert np.all(output[: height - target_band, :] == 77)

    def test_generated_image_is_not_modified_in_place(self):
        source = make_source_image(200, 200)
        generated = np.zeros((100, 100, 3), dtype=np.uint8)
        composite_disclaimer(generated, source)
        assert not generated.any()

    def test_extract_band_dimensions(self):
        band = extract_disclaimer_band(make_source_image(200, 200), 640, 480, 0.15)
        assert band.shape == (72, 640, 3)
