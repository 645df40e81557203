"""
Platform size presets and their safe zones.

Safe-zone margins are in the target size's pixel space and mark the bands
where platform UI (captions, CTA buttons, profile chrome) is drawn on top of
the creative. Sizes not listed here default to zero margins.
"""

from __future__ import annotations

from typing import Dict, List, Tuple

from adapt_api.api.v1.schemas import PlatformPresets, SafeZone, SizeConfig

_NO_ZONE = SafeZone()

_META_STORY = SafeZone(top=250, bottom=340)
_TIKTOK_FEED = SafeZone(top=130, right=140, bottom=484, left=60)
_SNAP_STORY = SafeZone(top=150, bottom=300)
_SHORTS = SafeZone(top=120, right=120, bottom=400)


def _size(name: str, width: int, height: int, placement: str, platform: str, zone: SafeZone = _NO_ZONE) -> SizeConfig:
    return SizeConfig(
        name=name,
        width=width,
        height=height,
        placement=placement,
        platform=platform,
        safe_zone=None if zone.is_empty() else zone,
    )


_PLATFORMS: Dict[str, Tuple[str, List[SizeConfig]]] = {
    "meta": (
        "Meta (Facebook/Instagram)",
        [
            _size("Feed Square", 1080, 1080, "Feed", "meta"),
            _size("Feed Portrait", 1080, 1350, "Feed", "meta"),
            _size("Story/Reel", 1080, 1920, "Stories/Reels", "meta", _META_STORY),
            _size("Feed Landscape", 1200, 628, "Feed", "meta"),
            _size("Carousel", 1080, 1080, "Feed", "meta"),
        ],
    ),
    "tiktok": (
        "TikTok",
        [
            _size("In-Feed Video", 1080, 1920, "For You Feed", "tiktok", _TIKTOK_FEED),
            _size("TopView", 1080, 1920, "TopView", "tiktok", _TIKTOK_FEED),
            _size("Spark Ad", 1080, 1920, "Organic Style", "tiktok", _TIKTOK_FEED),
            _size("Square Option", 1080, 1080, "Feed", "tiktok"),
        ],
    ),
    "snapchat": (
        "Snapchat",
        [
            _size("Snap Ad", 1080, 1920, "Between Stories", "snapchat", _SNAP_STORY),
            _size("Story Ad", 1080, 1920, "Discover", "snapchat", _SNAP_STORY),
            _size("Collection Ad Tile", 360, 600, "Collection", "snapchat"),
            _size("Collection Ad Hero", 1080, 1920, "Collection", "snapchat", _SNAP_STORY),
            _size("Commercial", 1080, 1920, "Shows", "snapchat", _SNAP_STORY),
        ],
    ),
    "moloco": (
        "Moloco",
        [
            _size("Interstitial Portrait", 1080, 1920, "Interstitial", "moloco", SafeZone(top=100, bottom=160)),
            _size("Interstitial Landscape", 1920, 1080, "Interstitial", "moloco", SafeZone(top=80, right=120, left=120)),
            _size("Banner Large", 320, 480, "Banner", "moloco"),
            _size("Banner Medium", 300, 250, "MREC", "moloco"),
            _size("Banner Small", 320, 50, "Banner", "moloco"),
            _size("Native Square", 1200, 1200, "Native", "moloco"),
            _size("Native Landscape", 1200, 628, "Native", "moloco"),
        ],
    ),
    "googleUAC": (
        "Google UAC (App Campaigns)",
        [
            _size("Landscape Video", 1920, 1080, "YouTube/Display", "googleUAC"),
            _size("Portrait Video", 1080, 1920, "YouTube Shorts/Display", "googleUAC", _SHORTS),
            _size("Square Video", 1080, 1080, "Display/Discovery", "googleUAC"),
            _size("Landscape Image", 1200, 628, "Display", "googleUAC"),
            _size("Square Image", 1200, 1200, "Display", "googleUAC"),
            _size("Portrait Image", 1080, 1920, "Display", "googleUAC"),
        ],
    ),
}


def list_platforms() -> List[PlatformPresets]:
    return [
        PlatformPresets(key=key, display_name=display_name, sizes=list(sizes))
        for key, (display_name, sizes) in _PLATFORMS.items()
    ]


def lookup_safe_zone(platform: str, width: int, height: int, placement: str | None = None) -> SafeZone:
    """
    Return the catalog safe zone for a platform size.

    A placement match wins over a size-only match, so "Portrait Image" and
    "Portrait Video" on the same platform can differ. Unknown platforms or
    sizes get zero margins.
    """
    entry = _PLATFORMS.get(platform)
    if entry is None:
        return _NO_ZONE

    candidates = [s for s in entry[1] if s.width == width and s.height == height]
    if placement:
        for size in candidates:
            if size.placement == placement:
                return size.safe_zone or _NO_ZONE
    for size in candidates:
        if size.safe_zone is not None:
            return size.safe_zone
    return _NO_ZONE


def resolve_safe_zone(size: SizeConfig) -> SafeZone:
    """Explicit safe zone on the request wins; otherwise fall back to the catalog."""
    if size.safe_zone is not None:
        return size.safe_zone
    return lookup_safe_zone(size.platform, size.width, size.height, size.placement)
