"""
Outpainting provider gateway.

Every provider is wrapped in an adapter that knows its request shape. The
gateway picks the adapter, applies per-provider rate limiting, makes exactly
one call and resolves whatever came back into a single image URL.

Response shapes differ between providers (and between SDK and raw HTTP
transports of the same provider), so output resolution is an explicit,
order-sensitive classification:

1. a plain URL string,
2. a list of URLs (or file objects): the first one wins,
3. an object or mapping with `output` (string or list),
4. an object or mapping with `url` (e.g. the SDK's `FileOutput`).

Anything else is a `ProviderOutputError` carrying the raw payload.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol
from urllib.parse import urlparse

from adapt_api.config import AdaptationSettings, get_settings
from adapt_api.services.errors import ProviderError, ProviderOutputError
from adapt_api.services.rate_limiter import ProviderRateLimiter, get_rate_limiter
from adapt_api.services.replicate_client import ReplicateClient
from adapt_api.services.replicate_http_client import ReplicateHTTPClient

logger = logging.getLogger(__name__)


class ProviderId(str, Enum):
    LAMA = "lama"
    SDXL_INPAINTING = "sdxl-inpainting"
    FLUX_FILL_PRO = "flux-fill-pro"
    LUMA_REFRAME = "luma-reframe"


class OutputShape(str, Enum):
    URL = "url"
    URL_LIST = "url-list"
    OUTPUT_FIELD = "output-field"
    URL_FIELD = "url-field"
    UNKNOWN = "unknown"


_MISSING = object()
_URL_SCHEMES = {"http", "https", "data"}


@dataclass(slots=True)
class OutpaintRequest:
    base_image_url: str
    target_width: int
    target_height: int
    target_aspect_ratio: str
    guidance_prompt: str
    safety_level: int = 2
    mask_url: Optional[str] = None
    negative_prompt: str = ""


NEGATIVE_PROMPT = (
    "text, letters, watermark, logo, frame, border, duplicated product, "
    "distorted objects, visible seams, color banding"
)


def build_guidance_prompt(creative_prompt: str | None, uses_mask: bool = True) -> str:
    """
    Instructions sent with every outpainting call.

    Preserved regions must come back pixel-for-pixel; only the open
    regions are painted, matching the surrounding background.
    """
    if uses_mask:
        rules = (
            "Extend the background of this advertising image. "
            "Preserve every black-masked region pixel-for-pixel exactly as in the input image: "
            "do not redraw, restyle, move or retouch the original creative, its text or its logos. "
            "Only generate new content inside the white-masked regions. "
        )
    else:
        rules = (
            "Reframe this advertising image to the new aspect ratio by extending the scene beyond its borders. "
            "Keep the original image content pixel-for-pixel unchanged: do not redraw, restyle, move "
            "or retouch the creative, its text or its logos. Only add new background around it. "
        )
    matching = (
        "Match the lighting, color palette, texture, perspective and blur of the existing background "
        "so the extension is seamless. Do not add text, people or products."
    )
    prompt = rules + matching
    if creative_prompt:
        prompt += f" Scene context: {creative_prompt.strip()}"
    return prompt


def _field(payload: Any, name: str) -> Any:
    if isinstance(payload, Mapping):
        return payload.get(name, _MISSING)
    if isinstance(payload, (str, bytes, list, tuple)) or payload is None:
        return _MISSING
    return getattr(payload, name, _MISSING)


def classify_output(payload: Any) -> OutputShape:
    if isinstance(payload, str):
        return OutputShape.URL
    if isinstance(payload, (list, tuple)):
        return OutputShape.URL_LIST
    if _field(payload, "output") is not _MISSING:
        return OutputShape.OUTPUT_FIELD
    if _field(payload, "url") is not _MISSING:
        return OutputShape.URL_FIELD
    return OutputShape.UNKNOWN


def _looks_like_url(value: str) -> bool:
    return urlparse(value).scheme in _URL_SCHEMES


def normalize_output(payload: Any, provider: str | None = None) -> str:
    """Resolve a provider response into one image URL or raise `ProviderOutputError`."""
    return _normalize(payload, raw=payload, provider=provider, depth=0)


def _normalize(payload: Any, raw: Any, provider: str | None, depth: int) -> str:
    if depth > 3:
        raise ProviderOutputError("Provider output is nested too deeply", raw, provider=provider)

    shape = classify_output(payload)
    if shape is OutputShape.URL:
        value = payload.strip()
        if not value or not _looks_like_url(value):
            raise ProviderOutputError("Provider returned a string that is not an image URL", raw, provider=provider)
        return value
    if shape is OutputShape.URL_LIST:
        if not payload:
            raise ProviderOutputError("Provider returned an empty output list", raw, provider=provider)
        return _normalize(payload[0], raw, provider, depth + 1)
    if shape is OutputShape.OUTPUT_FIELD:
        return _normalize(_field(payload, "output"), raw, provider, depth + 1)
    if shape is OutputShape.URL_FIELD:
        value = _field(payload, "url")
        if not isinstance(value, str):
            raise ProviderOutputError("Provider output `url` is not a string", raw, provider=provider)
        return _normalize(value, raw, provider, depth + 1)
    raise ProviderOutputError(f"Unexpected provider output shape ({type(payload).__name__})", raw, provider=provider)


class OutpaintAdapter(Protocol):
    """Request shaping and transport for one provider."""

    provider_id: ProviderId
    # Inpainting providers take (image, mask); reframe providers take only
    # (image, aspect ratio, prompt).
    uses_mask: bool

    def build_input(self, request: OutpaintRequest) -> Dict[str, Any]:
        ...

    def call(self, inputs: Dict[str, Any]) -> Any:
        ...


class LamaAdapter:
    """LaMa inpainting over the raw HTTP predictions API; returns the prediction object."""

    provider_id = ProviderId.LAMA
    uses_mask = True
    model = "twn39/lama:2b91ca2340801c2a5be745612356fac36a17f698354a07f48a62d564d3b3a7a0"

    def __init__(self, client: ReplicateHTTPClient) -> None:
        self._client = client

    def build_input(self, request: OutpaintRequest) -> Dict[str, Any]:
        return {"image": request.base_image_url, "mask": request.mask_url}

    def call(self, inputs: Dict[str, Any]) -> Any:
        return self._client.predict(self.model, inputs, provider=self.provider_id.value)


class SdxlInpaintingAdapter:
    """SDXL inpainting via the SDK; returns a list of outputs."""

    provider_id = ProviderId.SDXL_INPAINTING
    uses_mask = True
    model = "lucataco/sdxl-inpainting:a5b13068cc81a89a4fbeefeccc774869fcb34df4dbc92c1555e0f2771d49dde7"

    def __init__(self, client: ReplicateClient) -> None:
        self._client = client

    def build_input(self, request: OutpaintRequest) -> Dict[str, Any]:
        return {
            "image": request.base_image_url,
            "mask": request.mask_url,
            "prompt": request.guidance_prompt,
            "negative_prompt": request.negative_prompt or NEGATIVE_PROMPT,
            "num_outputs": 1,
            "strength": 0.99,
            "steps": 30,
            "guidance_scale": 8,
        }

    def call(self, inputs: Dict[str, Any]) -> Any:
        return self._client.run(self.model, inputs, provider=self.provider_id.value)


class FluxFillAdapter:
    """FLUX Fill Pro via the SDK; returns a single file output or URL."""

    provider_id = ProviderId.FLUX_FILL_PRO
    uses_mask = True
    model = "black-forest-labs/flux-fill-pro"

    def __init__(self, client: ReplicateClient) -> None:
        self._client = client

    def build_input(self, request: OutpaintRequest) -> Dict[str, Any]:
        return {
            "image": request.base_image_url,
            "mask": request.mask_url,
            "prompt": request.guidance_prompt,
            "safety_tolerance": max(1, min(6, request.safety_level)),
            "output_format": "png",
            "prompt_upsampling": False,
        }

    def call(self, inputs: Dict[str, Any]) -> Any:
        return self._client.run(self.model, inputs, provider=self.provider_id.value)


class LumaReframeAdapter:
    """Reframe-style extension: image plus a named aspect ratio, no mask."""

    provider_id = ProviderId.LUMA_REFRAME
    uses_mask = False
    model = "luma/reframe-image"

    def __init__(self, client: ReplicateClient) -> None:
        self._client = client

    def build_input(self, request: OutpaintRequest) -> Dict[str, Any]:
        return {
            "image_url": request.base_image_url,
            "aspect_ratio": request.target_aspect_ratio,
            "prompt": request.guidance_prompt,
        }

    def call(self, inputs: Dict[str, Any]) -> Any:
        return self._client.run(self.model, inputs, provider=self.provider_id.value)


class OutpaintGateway:
    """
    Uniform entry point over all outpainting providers.

    One `invoke` is one provider call. Failures propagate; retrying is the
    caller's decision.
    """

    def __init__(
        self,
        adapters: Mapping[str, OutpaintAdapter],
        limiter_for: Callable[[str], ProviderRateLimiter] = get_rate_limiter,
        acquire_timeout: float = 30.0,
    ) -> None:
        self._adapters = {str(getattr(key, "value", key)): adapter for key, adapter in adapters.items()}
        self._limiter_for = limiter_for
        self._acquire_timeout = acquire_timeout

    @property
    def provider_ids(self) -> list[str]:
        return sorted(self._adapters)

    def adapter(self, provider_id: str) -> OutpaintAdapter:
        adapter = self._adapters.get(str(getattr(provider_id, "value", provider_id)))
        if adapter is None:
            raise ProviderError(
                f"Unknown outpainting provider {provider_id!r}; known: {', '.join(self.provider_ids)}",
                provider=str(provider_id),
            )
        return adapter

    def uses_mask(self, provider_id: str) -> bool:
        return self.adapter(provider_id).uses_mask

    def invoke(self, provider_id: str, request: OutpaintRequest) -> str:
        adapter = self.adapter(provider_id)
        name = adapter.provider_id.value
        if adapter.uses_mask and not request.mask_url:
            raise ProviderError(f"{name} requires a mask", provider=name)
        inputs = adapter.build_input(request)

        limiter = self._limiter_for(name)
        if not limiter.acquire(timeout=self._acquire_timeout):
            raise ProviderError(f"Rate limiter timeout for {name}", provider=name)

        logger.info(
            "Invoking %s for %dx%d (%s, mask=%s)",
            name,
            request.target_width,
            request.target_height,
            request.target_aspect_ratio,
            bool(request.mask_url),
        )
        try:
            raw = adapter.call(inputs)
        except ProviderError as exc:
            if exc.status_code == 429:
                limiter.report_429()
            raise
        limiter.report_success()

        url = normalize_output(raw, provider=name)
        logger.info("%s produced %s", name, url)
        return url


def build_default_gateway(settings: AdaptationSettings) -> OutpaintGateway:
    sdk = ReplicateClient(settings.replicate_api_token, timeout=settings.provider_poll_timeout_seconds)
    http = ReplicateHTTPClient(
        settings.replicate_api_token,
        request_timeout=settings.http_timeout_seconds,
        max_wait=settings.provider_poll_timeout_seconds,
    )
    adapters = {
        ProviderId.LAMA: LamaAdapter(http),
        ProviderId.SDXL_INPAINTING: SdxlInpaintingAdapter(sdk),
        ProviderId.FLUX_FILL_PRO: FluxFillAdapter(sdk),
        ProviderId.LUMA_REFRAME: LumaReframeAdapter(sdk),
    }
    return OutpaintGateway(adapters)


_gateway: Optional[OutpaintGateway] = None


def get_gateway() -> OutpaintGateway:
    """Get or create the process-wide gateway."""
    global _gateway
    if _gateway is None:
        _gateway = build_default_gateway(get_settings())
    return _gateway
