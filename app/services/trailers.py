"""Trailer selection and YouTube link helpers."""

from __future__ import annotations

from typing import Literal, Sequence

from ..models import Trailer

YOUTUBE_EMBED_URL = "https://www.youtube.com/embed/{key}"
YOUTUBE_EMBED_PARAMS = "autoplay=1&controls=1&rel=0&showinfo=0&modestbranding=1"
YOUTUBE_THUMBNAIL_URL = "https://img.youtube.com/vi/{key}/{variant}.jpg"

ThumbnailQuality = Literal["default", "hq", "maxres"]

_THUMBNAIL_VARIANTS: dict[str, str] = {
    "default": "default",
    "hq": "hqdefault",
    "maxres": "maxresdefault",
}


def best_trailer(trailers: Sequence[Trailer]) -> Trailer | None:
    """Pick the trailer to play: official YouTube, any YouTube, then anything."""

    if not trailers:
        return None
    for trailer in trailers:
        if trailer.official and trailer.site == "YouTube" and trailer.video_type == "Trailer":
            return trailer
    for trailer in trailers:
        if trailer.site == "YouTube" and trailer.video_type == "Trailer":
            return trailer
    return trailers[0]


def youtube_embed_url(key: str) -> str:
    return f"{YOUTUBE_EMBED_URL.format(key=key)}?{YOUTUBE_EMBED_PARAMS}"


def youtube_thumbnail(key: str, quality: ThumbnailQuality = "hq") -> str:
    variant = _THUMBNAIL_VARIANTS.get(quality, "hqdefault")
    return YOUTUBE_THUMBNAIL_URL.format(key=key, variant=variant)
