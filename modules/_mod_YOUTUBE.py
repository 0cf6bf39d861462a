# /modules/_mod_YOUTUBE.py
from __future__ import annotations

__VERSION__ = "0.3.0"

import re
from typing import Any, Dict, Mapping, Optional

import requests

from ._mod_base import (
    ConfigError, RecoverableModuleError, Logger as HostLogger,
    ModuleInfo, ModuleCapabilities, http_get_json, module_logger,
)

YOUTUBE_API = "https://www.googleapis.com/youtube/v3"
YOUTUBE_VIDEOS = f"{YOUTUBE_API}/videos"
YOUTUBE_IMG = "https://img.youtube.com/vi"

# watch?v=, /embed/, /v/, /e/, /shorts/, /live/, /<user>/<path>/ and youtu.be/ forms
VIDEO_ID_RE = re.compile(
    r"(?:youtube\.com/(?:[^/]+/.+/|(?:v|e(?:mbed)?|shorts|live)/|.*[?&]v=)|youtu\.be/)([^\"&?/\s]{11})"
)
DURATION_RE = re.compile(r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?)?$")

THUMBNAIL_ORDER = ("maxres", "standard", "high", "medium", "default")


# -------- parsing helpers --------
def extract_video_id(url: str) -> Optional[str]:
    """Pull the 11-character video id out of any common YouTube URL shape."""
    m = VIDEO_ID_RE.search((url or "").strip())
    return m.group(1) if m else None


def parse_iso8601_duration(text: str) -> Optional[int]:
    """
    Convert an ISO-8601 duration as returned by contentDetails.duration to seconds.
      "PT10M30S" -> 630
      "PT1H2M3S" -> 3723
      "P1DT2H"   -> 93600
    Anything else -> None
    """
    m = DURATION_RE.match((text or "").strip().upper())
    if not m:
        return None
    days, hours, minutes, seconds = (int(g) if g else 0 for g in m.groups())
    return ((days * 24 + hours) * 60 + minutes) * 60 + seconds


def format_duration(seconds: Optional[int]) -> str:
    """630 -> "10:30", 3723 -> "1:02:03"; unknown -> "--:--"."""
    if seconds is None or seconds < 0:
        return "--:--"
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def pick_thumbnail(thumbnails: Mapping[str, Any], video_id: str = "") -> str:
    for size in THUMBNAIL_ORDER:
        node = thumbnails.get(size) if isinstance(thumbnails, Mapping) else None
        if isinstance(node, Mapping) and node.get("url"):
            return str(node["url"])
    return thumbnail_url(video_id) if video_id else ""


def thumbnail_url(video_id: str) -> str:
    return f"{YOUTUBE_IMG}/{video_id}/maxresdefault.jpg"


def embed_url(video_id: str) -> str:
    return f"https://www.youtube.com/embed/{video_id}" if video_id else ""


def mock_video_info(video_id: str) -> Dict[str, str]:
    """Placeholder used when no API key is configured."""
    return {
        "title": f"Sample video title - {video_id}",
        "thumbnail": thumbnail_url(video_id),
        "channel_title": "Sample channel",
        "duration": "10:30",
    }


def fallback_video_info(video_id: str) -> Dict[str, str]:
    """Placeholder used when the API call fails."""
    return {
        "title": f"Video title - {video_id}",
        "thumbnail": thumbnail_url(video_id),
        "channel_title": "YouTube",
        "duration": "--:--",
    }


def video_info_from_item(item: Mapping[str, Any]) -> Dict[str, str]:
    vid = str(item.get("id") or "")
    snippet = item.get("snippet") or {}
    details = item.get("contentDetails") or {}
    return {
        "title": snippet.get("title") or "",
        "thumbnail": pick_thumbnail(snippet.get("thumbnails") or {}, vid),
        "channel_title": snippet.get("channelTitle") or "",
        "duration": format_duration(parse_iso8601_duration(details.get("duration") or "")),
    }


class YouTubeModule:
    info = ModuleInfo(
        name="YOUTUBE",
        version=__VERSION__,
        description="Looks up video title, channel, thumbnail and duration via YouTube Data API v3.",
        capabilities=ModuleCapabilities(
            needs_api_key=True,
            mock_without_key=True,
            config_schema={
                "type": "object",
                "properties": {"youtube": {"type": "object", "properties": {"api_key": {"type": "string"}}}},
            },
        ),
    )

    def __init__(self, config: Mapping[str, Any], logger: Optional[HostLogger] = None, session: Optional[requests.Session] = None):
        self._yt: Dict[str, Any] = dict((config or {}).get("youtube") or {})
        self._log = module_logger(logger, self.info.name)
        self._session = session or requests.Session()

    @property
    def has_key(self) -> bool:
        return bool((self._yt.get("api_key") or "").strip())

    def validate_config(self) -> None:
        key = self._yt.get("api_key")
        if key is not None and not isinstance(key, str):
            raise ConfigError("youtube.api_key must be a string")

    def reconfigure(self, config: Mapping[str, Any]) -> None:
        self._yt = dict((config or {}).get("youtube") or {})
        self.validate_config()

    def fetch_video_info(self, video_id: str) -> Optional[Dict[str, str]]:
        """
        Return title/thumbnail/channel_title/duration for one video.
        No key -> placeholder data; request failure -> fallback data; unknown id -> None.
        """
        if not self.has_key:
            self._log("YouTube API key not found. Using mock data.", level="WARN")
            return mock_video_info(video_id)
        params = {"id": video_id, "key": self._yt["api_key"].strip(), "part": "snippet,contentDetails"}
        try:
            js = http_get_json(self._session, YOUTUBE_VIDEOS, params=params, label="YOUTUBE") or {}
        except (RecoverableModuleError, requests.RequestException) as e:
            self._log(f"YouTube API error: {e}", level="ERROR")
            return fallback_video_info(video_id)
        items = js.get("items") or []
        if not items:
            self._log(f"no video found for id={video_id}", level="DEBUG")
            return None
        return video_info_from_item(items[0])

    def lookup_url(self, url: str) -> Optional[Dict[str, str]]:
        """Extract the id from a URL and fetch its info; None when the URL has no id."""
        video_id = extract_video_id(url)
        if not video_id:
            return None
        found = self.fetch_video_info(video_id)
        if found is None:
            return None
        return {"video_id": video_id, **found}
