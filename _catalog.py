# _catalog.py
# Video bookmark library: categories + videos on top of the document store.

from __future__ import annotations
from typing import Any, Dict, List, Mapping, Optional
import re

from _store import DocumentStore, DocumentNotFound, now_iso
from modules._mod_YOUTUBE import YouTubeModule, embed_url, extract_video_id

CATEGORIES = "categories"
VIDEOS = "videos"

DEFAULT_CATEGORIES = [
    {"slug": "tutorial", "name": "Tutorial"},
    {"slug": "music", "name": "Music"},
    {"slug": "entertainment", "name": "Entertainment"},
    {"slug": "tech", "name": "Technology"},
]

BLANK_VIDEO: Dict[str, Any] = {
    "title": "",
    "url": "",
    "description": "",
    "category": "",
    "favorite": False,
    "thumbnail": "",
    "video_id": "",
    "duration": "",
    "channel_title": "",
}

_WS_RE = re.compile(r"\s+")


class CatalogError(RuntimeError): ...
class ValidationError(CatalogError): ...


# -------- Pure helpers --------
def slugify_category(name: str) -> str:
    """'Live Music ' -> 'live-music'"""
    return _WS_RE.sub("-", (name or "").strip().lower())


def category_slug(cat: Mapping[str, Any]) -> str:
    return str(cat.get("slug") or cat.get("id") or "")


def category_name(categories: List[Dict[str, Any]], slug: str) -> str:
    for c in categories:
        if category_slug(c) == slug:
            return str(c.get("name") or slug)
    return ""


def filter_videos(videos: List[Dict[str, Any]], search_term: str = "", category: str = "all") -> List[Dict[str, Any]]:
    """
    Keep videos whose title, description or channel contains search_term (case-insensitive)
    and whose category equals `category` unless it is "all". Both are used as given, untrimmed.
    """
    needle = (search_term or "").lower()
    cat = category or "all"
    out = []
    for v in videos:
        if needle:
            hay = (str(v.get(f) or "").lower() for f in ("title", "description", "channel_title"))
            if not any(needle in h for h in hay):
                continue
        if cat != "all" and v.get("category") != cat:
            continue
        out.append(v)
    return out


def with_display_fields(video: Dict[str, Any], categories: List[Dict[str, Any]]) -> Dict[str, Any]:
    out = dict(video)
    out["category_name"] = category_name(categories, str(video.get("category") or ""))
    out["embed_url"] = embed_url(str(video.get("video_id") or ""))
    return out


# -------- Library service --------
class Catalog:
    def __init__(self, store: DocumentStore, log=None) -> None:
        self.store = store
        self.log = log

    def _log(self, msg: str, level: str = "INFO") -> None:
        if self.log:
            self.log(msg, level=level, module="CATALOG")

    # ----- reads
    def categories(self) -> List[Dict[str, Any]]:
        return self.store.get_docs(CATEGORIES)

    def videos(self) -> List[Dict[str, Any]]:
        return self.store.get_docs(VIDEOS)

    def load(self) -> Dict[str, List[Dict[str, Any]]]:
        cats = self.categories()
        return {"categories": cats, "videos": [with_display_fields(v, cats) for v in self.videos()]}

    def default_category(self) -> str:
        cats = self.categories()
        return category_slug(cats[0]) if cats else ""

    def blank_video(self) -> Dict[str, Any]:
        v = dict(BLANK_VIDEO)
        v["category"] = self.default_category()
        return v

    # ----- videos
    def prepare_from_url(self, url: str, youtube: YouTubeModule, draft: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Auto-fill a draft from a pasted URL; the draft is returned unchanged when no id is found."""
        out = dict(draft or self.blank_video())
        out["url"] = url
        found = youtube.lookup_url(url)
        if found:
            out.update(found)
        return out

    def add_video(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        doc = self.blank_video()
        doc.update({k: v for k, v in dict(data).items() if k in BLANK_VIDEO})
        if not str(doc.get("title") or "").strip() or not str(doc.get("url") or "").strip():
            raise ValidationError("title and url are required")
        if not doc.get("video_id"):
            doc["video_id"] = extract_video_id(doc["url"]) or ""
        doc["favorite"] = bool(doc.get("favorite"))
        doc["added_at"] = now_iso()
        doc_id = self.store.add_doc(VIDEOS, doc)
        self._log(f"added video {doc_id} {doc['title']!r}")
        return self.store.get_doc(VIDEOS, doc_id)

    def update_video(self, doc_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        patch = {k: v for k, v in dict(data).items() if k in BLANK_VIDEO}
        if "title" in patch and not str(patch["title"] or "").strip():
            raise ValidationError("title must not be empty")
        if "url" in patch and not str(patch["url"] or "").strip():
            raise ValidationError("url must not be empty")
        if "favorite" in patch:
            patch["favorite"] = bool(patch["favorite"])
        updated = self.store.update_doc(VIDEOS, doc_id, patch)
        self._log(f"updated video {doc_id}")
        return updated

    def delete_video(self, doc_id: str) -> None:
        self.store.delete_doc(VIDEOS, doc_id)
        self._log(f"deleted video {doc_id}")

    def toggle_favorite(self, doc_id: str) -> Dict[str, Any]:
        video = self.store.get_doc(VIDEOS, doc_id)
        return self.store.update_doc(VIDEOS, doc_id, {"favorite": not bool(video.get("favorite"))})

    # ----- categories
    def add_category(self, name: str) -> Dict[str, Any]:
        display = (name or "").strip()
        slug = slugify_category(display)
        if not slug:
            raise ValidationError("category name is required")
        if any(category_slug(c) == slug for c in self.categories()):
            raise ValidationError(f"category {slug!r} already exists")
        doc_id = self.store.add_doc(CATEGORIES, {"slug": slug, "name": display})
        self._log(f"added category {slug!r}")
        return self.store.get_doc(CATEGORIES, doc_id)

    def delete_category(self, doc_id: str) -> int:
        """
        Delete one category and move its videos to the first remaining category.
        The last category cannot be deleted. Returns the number of moved videos.
        """
        cats = self.categories()
        target = next((c for c in cats if c["id"] == doc_id), None)
        if target is None:
            raise DocumentNotFound(f"{CATEGORIES}/{doc_id} not found")
        if len(cats) <= 1:
            raise ValidationError("cannot delete the last category")

        self.store.delete_doc(CATEGORIES, doc_id)
        remaining = [c for c in cats if c["id"] != doc_id]
        new_slug = category_slug(remaining[0])
        old_slug = category_slug(target)

        moved = 0
        for v in self.videos():
            if v.get("category") == old_slug:
                self.store.update_doc(VIDEOS, v["id"], {"category": new_slug})
                moved += 1
        self._log(f"deleted category {old_slug!r}, moved {moved} video(s) to {new_slug!r}")
        return moved

    def reset_categories(self) -> List[Dict[str, Any]]:
        """Development reset: drop every category and recreate the defaults."""
        removed = self.store.clear(CATEGORIES)
        for cat in DEFAULT_CATEGORIES:
            self.store.add_doc(CATEGORIES, cat)
        self._log(f"reset categories (removed {removed}, created {len(DEFAULT_CATEGORIES)})", level="WARN")
        return self.categories()
