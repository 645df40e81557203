from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(slots=True)
class AdaptationSettings:
    """
    Tunables for the aspect-ratio adaptation engine.

    Holds every threshold the policy, mask builder and compositor read.
    """

    # Source/target ratio difference at or below which plain letterboxing
    # is used instead of an outpainting call.
    contain_ratio_threshold: float = 0.1
    # Extra pixels preserved around the scaled source content in the mask.
    mask_safety_margin: int = 20
    # Bottom fraction of the source treated as the disclaimer band.
    disclaimer_band_fraction: float = 0.15
    # Re-apply the source disclaimer band over outpainted outputs.
    disclaimer_compositing: bool = True
    # Fill colour for the contain-only path: "black" or "white".
    contain_fill: str = "black"
    # When disabled, large ratio changes are served by smart-crop instead.
    outpaint_enabled: bool = True
    default_provider: str = "flux-fill-pro"
    safety_level: int = 2
    # Wall-clock budget for one adaptation batch (all sizes).
    batch_timeout_seconds: float = 300.0
    provider_poll_timeout_seconds: float = 120.0
    http_timeout_seconds: float = 30.0
    # Strip uniform black/white bars from the source before adapting.
    trim_source_letterbox: bool = False
    storage_dir: str = "storage/assets"
    public_base_url: str = "http://localhost:8000/assets"
    replicate_api_token: Optional[str] = None
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.contain_fill not in ("black", "white"):
            raise ValueError(f"contain_fill must be 'black' or 'white', got {self.contain_fill!r}")
        if not 0.0 < self.disclaimer_band_fraction < 1.0:
            raise ValueError("disclaimer_band_fraction must be between 0 and 1")
        if self.mask_safety_margin < 0:
            raise ValueError("mask_safety_margin must be non-negative")
        if self.contain_ratio_threshold < 0:
            raise ValueError("contain_ratio_threshold must be non-negative")

    @classmethod
    def from_env(cls) -> "AdaptationSettings":
        """Build settings from `ADAPT_*` environment variables."""
        return cls(
            contain_ratio_threshold=_env_float("ADAPT_CONTAIN_RATIO_THRESHOLD", 0.1),
            mask_safety_margin=_env_int("ADAPT_MASK_SAFETY_MARGIN", 20),
            disclaimer_band_fraction=_env_float("ADAPT_DISCLAIMER_BAND_FRACTION", 0.15),
            disclaimer_compositing=_env_bool("ADAPT_DISCLAIMER_COMPOSITING", True),
            contain_fill=os.getenv("ADAPT_CONTAIN_FILL", "black").strip().lower(),
            outpaint_enabled=_env_bool("ADAPT_OUTPAINT_ENABLED", True),
            default_provider=os.getenv("ADAPT_DEFAULT_PROVIDER", "flux-fill-pro"),
            safety_level=_env_int("ADAPT_SAFETY_LEVEL", 2),
            batch_timeout_seconds=_env_float("ADAPT_BATCH_TIMEOUT_SECONDS", 300.0),
            provider_poll_timeout_seconds=_env_float("ADAPT_PROVIDER_POLL_TIMEOUT_SECONDS", 120.0),
            http_timeout_seconds=_env_float("ADAPT_HTTP_TIMEOUT_SECONDS", 30.0),
            trim_source_letterbox=_env_bool("ADAPT_TRIM_SOURCE_LETTERBOX", False),
            storage_dir=os.getenv("ADAPT_STORAGE_DIR", "storage/assets"),
            public_base_url=os.getenv("ADAPT_PUBLIC_BASE_URL", "http://localhost:8000/assets").rstrip("/"),
            replicate_api_token=os.environ.get("REPLICATE_API_TOKEN") or None,
            log_level=os.getenv("ADAPT_LOG_LEVEL", "INFO").upper(),
        )


_settings: Optional[AdaptationSettings] = None


def get_settings() -> AdaptationSettings:
    """Return the process-wide settings, reading the environment once."""
    global _settings
    if _settings is None:
        _settings = AdaptationSettings.from_env()
    return _settings
