# _watchlist.py
# Movie / TV watchlist: entries built from TMDB lookups, facet filters and sorting.

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from _catalog import ValidationError
from _store import DocumentStore, now_iso
from modules._mod_TMDB import TMDBModule, norm_media_type

WATCHLIST = "watchlist"
WATCH_STATUSES = ("want", "watching", "watched")
SORT_KEYS = ("added", "title", "year", "rating", "score")

EDITABLE_FIELDS = {"status", "rating", "favorite", "notes"}


# -------- Small helpers --------
def _iso_to_epoch(iso: Optional[str]) -> int:
    """Convert an ISO-8601-like timestamp to epoch seconds (best-effort)."""
    if not iso:
        return 0
    s = str(iso).strip()
    if s.isdigit():
        return int(s)
    try:
        return int(datetime.fromisoformat(s.replace("Z", "+00:00")).timestamp())
    except ValueError:
        return 0


def _as_int(v: Any) -> Optional[int]:
    try:
        return int(v)
    except (TypeError, ValueError):
        return None


def validate_rating(v: Any) -> Optional[float]:
    if v is None or v == "":
        return None
    try:
        r = float(v)
    except (TypeError, ValueError):
        raise ValidationError(f"rating must be a number, got {v!r}")
    if not 0 <= r <= 10:
        raise ValidationError("rating must be between 0 and 10")
    return r


def validate_status(v: Any) -> str:
    s = str(v or "").strip().lower()
    if s not in WATCH_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(WATCH_STATUSES)}")
    return s


# -------- Public: entry construction --------
def entry_from_tmdb(
    result: Mapping[str, Any],
    details: Optional[Mapping[str, Any]] = None,
    credits: Optional[Mapping[str, Any]] = None,
    status: str = "want",
) -> Dict[str, Any]:
    """
    Build a watchlist document from a normalized TMDB row.
    Details win over the search row where both carry a field.
    """
    src: Dict[str, Any] = dict(result)
    for k, v in (details or {}).items():
        if v not in (None, "", []):
            src[k] = v
    cred = credits or {}
    ts = now_iso()
    return {
        "tmdb_id": _as_int(src.get("tmdb_id")),
        "media_type": norm_media_type(src.get("media_type")) or "movie",
        "title": src.get("title") or "",
        "original_title": src.get("original_title") or "",
        "year": _as_int(src.get("year")),
        "release_date": src.get("release_date") or "",
        "overview": src.get("overview") or "",
        "poster_path": src.get("poster_path"),
        "genres": list(src.get("genres") or []),
        "runtime": _as_int(src.get("runtime")),
        "vote_average": float(src.get("vote_average") or 0.0),
        "directors": list(cred.get("directors") or []),
        "cast": list(cred.get("cast") or []),
        "status": validate_status(status),
        "rating": None,
        "favorite": False,
        "notes": "",
        "added_at": ts,
        "updated_at": ts,
    }


# -------- Public: facet filter + sort --------
@dataclass
class WatchlistFilter:
    search: str = ""
    media_type: str = "all"
    status: str = "all"
    genres: List[str] = field(default_factory=list)
    year_from: Optional[int] = None
    year_to: Optional[int] = None
    favorites_only: bool = False
    min_rating: Optional[float] = None

    def matches(self, e: Mapping[str, Any]) -> bool:
        needle = (self.search or "").strip().lower()
        if needle:
            hay = [str(e.get(k) or "") for k in ("title", "original_title", "overview")]
            hay += list(e.get("cast") or []) + list(e.get("directors") or [])
            if not any(needle in h.lower() for h in hay):
                return False

        mt = norm_media_type(self.media_type) or "all"
        if mt != "all" and e.get("media_type") != mt:
            return False

        st = (self.status or "all").strip().lower()
        if st != "all" and e.get("status") != st:
            return False

        wanted = {g.strip().lower() for g in self.genres if g and g.strip()}
        if wanted and not wanted & {str(g).lower() for g in (e.get("genres") or [])}:
            return False

        year = _as_int(e.get("year"))
        if self.year_from is not None and (year is None or year < self.year_from):
            return False
        if self.year_to is not None and (year is None or year > self.year_to):
            return False

        if self.favorites_only and not e.get("favorite"):
            return False

        if self.min_rating is not None:
            r = e.get("rating")
            if not isinstance(r, (int, float)) or r < self.min_rating:
                return False
        return True


def filter_entries(entries: Iterable[Mapping[str, Any]], flt: WatchlistFilter) -> List[Dict[str, Any]]:
    return [dict(e) for e in entries if flt.matches(e)]


def _sort_value(e: Mapping[str, Any], sort_by: str) -> Any:
    if sort_by == "added":
        ep = _iso_to_epoch(e.get("added_at"))
        return ep or None
    if sort_by == "title":
        t = str(e.get("title") or "").strip().casefold()
        return t or None
    if sort_by == "year":
        return _as_int(e.get("year"))
    if sort_by == "rating":
        r = e.get("rating")
        return float(r) if isinstance(r, (int, float)) else None
    if sort_by == "score":
        r = e.get("vote_average")
        return float(r) if isinstance(r, (int, float)) and r > 0 else None
    raise ValidationError(f"sort must be one of {', '.join(SORT_KEYS)}")


def sort_entries(entries: Iterable[Mapping[str, Any]], sort_by: str = "added", descending: bool = True) -> List[Dict[str, Any]]:
    """Stable sort on one key; entries without a value for it always go last."""
    rows = [dict(e) for e in entries]
    keyed = [(r, _sort_value(r, sort_by)) for r in rows]
    if sort_by == "added":
        # same-second adds keep store (insertion) order as tiebreaker
        keyed = [(r, None if v is None else (v, i)) for i, (r, v) in enumerate(keyed)]
    present = [p for p in keyed if p[1] is not None]
    missing = [r for r, v in keyed if v is None]
    present.sort(key=lambda p: p[1], reverse=descending)
    return [r for r, _ in present] + missing


def facet_counts(entries: Iterable[Mapping[str, Any]]) -> Dict[str, Dict[str, int]]:
    types: Dict[str, int] = {}
    statuses: Dict[str, int] = {s: 0 for s in WATCH_STATUSES}
    genres: Dict[str, int] = {}
    for e in entries:
        t = str(e.get("media_type") or "movie")
        types[t] = types.get(t, 0) + 1
        s = str(e.get("status") or "")
        if s:
            statuses[s] = statuses.get(s, 0) + 1
        for g in e.get("genres") or []:
            genres[g] = genres.get(g, 0) + 1
    return {
        "media_type": types,
        "status": statuses,
        "genres": dict(sorted(genres.items(), key=lambda kv: (-kv[1], kv[0]))),
    }


# -------- Watchlist service --------
class Watchlist:
    def __init__(self, store: DocumentStore, log=None) -> None:
        self.store = store
        self.log = log

    def _log(self, msg: str, level: str = "INFO") -> None:
        if self.log:
            self.log(msg, level=level, module="WATCHLIST")

    def entries(self) -> List[Dict[str, Any]]:
        return self.store.get_docs(WATCHLIST)

    def find(self, media_type: str, tmdb_id: int) -> Optional[Dict[str, Any]]:
        typ = norm_media_type(media_type)
        for e in self.entries():
            if e.get("media_type") == typ and _as_int(e.get("tmdb_id")) == int(tmdb_id):
                return e
        return None

    def query(self, flt: WatchlistFilter, sort_by: str = "added", descending: bool = True) -> Dict[str, Any]:
        everything = self.entries()
        items = sort_entries(filter_entries(everything, flt), sort_by, descending)
        return {"items": items, "total": len(everything), "matched": len(items), "facets": facet_counts(everything)}

    def add_from_tmdb(self, media_type: str, tmdb_id: int, tmdb: TMDBModule, status: str = "want") -> Dict[str, Any]:
        typ = norm_media_type(media_type)
        if self.find(typ, tmdb_id):
            raise ValidationError(f"{typ}/{tmdb_id} is already on the watchlist")
        details = tmdb.get_details(typ, int(tmdb_id))
        credits = tmdb.get_credits(typ, int(tmdb_id))
        doc = entry_from_tmdb(details, credits=credits, status=status)
        doc_id = self.store.add_doc(WATCHLIST, doc)
        self._log(f"added {typ}/{tmdb_id} {doc['title']!r}")
        return self.store.get_doc(WATCHLIST, doc_id)

    def update(self, doc_id: str, patch: Mapping[str, Any]) -> Dict[str, Any]:
        clean: Dict[str, Any] = {}
        for k, v in dict(patch).items():
            if k not in EDITABLE_FIELDS:
                continue
            if k == "status":
                clean[k] = validate_status(v)
            elif k == "rating":
                clean[k] = validate_rating(v)
            elif k == "favorite":
                clean[k] = bool(v)
            else:
                clean[k] = str(v or "")
        if not clean:
            raise ValidationError(f"nothing to update; editable fields: {', '.join(sorted(EDITABLE_FIELDS))}")
        clean["updated_at"] = now_iso()
        updated = self.store.update_doc(WATCHLIST, doc_id, clean)
        self._log(f"updated {doc_id}: {', '.join(k for k in clean if k != 'updated_at')}")
        return updated

    def toggle_favorite(self, doc_id: str) -> Dict[str, Any]:
        e = self.store.get_doc(WATCHLIST, doc_id)
        return self.store.update_doc(WATCHLIST, doc_id, {"favorite": not bool(e.get("favorite")), "updated_at": now_iso()})

    def delete(self, doc_id: str) -> None:
        self.store.delete_doc(WATCHLIST, doc_id)
        self._log(f"deleted {doc_id}")
