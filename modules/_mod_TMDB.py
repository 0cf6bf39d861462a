# /modules/_mod_TMDB.py
from __future__ import annotations

__VERSION__ = "0.3.0"

import json
import re
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import requests

from ._mod_base import (
    ConfigError, RecoverableModuleError, Logger as HostLogger,
    ModuleInfo, ModuleCapabilities, UA, http_get_json, module_logger,
)

TMDB_IMG = "https://image.tmdb.org/t/p"
TMDB_API = "https://api.themoviedb.org/3"

MEDIA_TYPES = ("movie", "tv")

MOVIE_GENRES: Dict[int, str] = {
    28: "Action", 12: "Adventure", 16: "Animation", 35: "Comedy", 80: "Crime",
    99: "Documentary", 18: "Drama", 10751: "Family", 14: "Fantasy", 36: "History",
    27: "Horror", 10402: "Music", 9648: "Mystery", 10749: "Romance",
    878: "Science Fiction", 10770: "TV Movie", 53: "Thriller", 10752: "War", 37: "Western",
}
TV_GENRES: Dict[int, str] = {
    10759: "Action & Adventure", 16: "Animation", 35: "Comedy", 80: "Crime",
    99: "Documentary", 18: "Drama", 10751: "Family", 10762: "Kids", 9648: "Mystery",
    10763: "News", 10764: "Reality", 10765: "Sci-Fi & Fantasy", 10766: "Soap",
    10767: "Talk", 10768: "War & Politics", 37: "Western",
}
WRITER_JOBS = {"Writer", "Screenplay", "Story", "Novel", "Teleplay", "Author"}
POSTER_SIZE_RE = re.compile(r"^(w\d{2,4}|original)$")


def poster_size(size: Optional[str]) -> str:
    """Known TMDB image size token, else w342."""
    s = (size or "").strip()
    return s if POSTER_SIZE_RE.match(s) else "w342"


# -------- normalization --------
def norm_media_type(typ: Optional[str]) -> str:
    t = (typ or "").strip().lower()
    return "tv" if t in ("tv", "show", "series") else t


def static_genres(media_type: str) -> Dict[int, str]:
    return dict(TV_GENRES if norm_media_type(media_type) == "tv" else MOVIE_GENRES)


def genre_names(ids: Iterable[Any], media_type: str, genre_map: Optional[Mapping[int, str]] = None) -> List[str]:
    """Map TMDB genre ids to names; unknown ids and repeats are dropped."""
    table = genre_map if genre_map is not None else static_genres(media_type)
    out: List[str] = []
    for g in ids or []:
        try:
            name = table.get(int(g))
        except (TypeError, ValueError):
            continue
        if name and name not in out:
            out.append(name)
    return out


def poster_url(path: Optional[str], size: str = "w342") -> str:
    return f"{TMDB_IMG}/{size}{path}" if path else ""


def _year_of(date: str) -> Optional[int]:
    return int(date[:4]) if len(date) >= 4 and date[:4].isdigit() else None


def normalize_result(
    raw: Mapping[str, Any],
    media_type: Optional[str] = None,
    genre_map: Optional[Mapping[int, str]] = None,
) -> Optional[Dict[str, Any]]:
    """
    Flatten a TMDB movie/tv payload (search hit or details) into one shape.
    People and anything without an id -> None.
    """
    typ = norm_media_type(raw.get("media_type") or media_type or "movie")
    if typ not in MEDIA_TYPES:
        return None
    try:
        tmdb_id = int(raw.get("id"))
    except (TypeError, ValueError):
        return None

    date = (raw.get("release_date") or raw.get("first_air_date") or "").strip()
    if isinstance(raw.get("genres"), list):
        pairs = [(g.get("id"), g.get("name")) for g in raw["genres"] if isinstance(g, dict)]
        genre_ids = [int(i) for i, _ in pairs if isinstance(i, int)]
        genres = [str(n).strip() for _, n in pairs if isinstance(n, str) and n.strip()]
    else:
        genre_ids = [g for g in (raw.get("genre_ids") or []) if isinstance(g, int)]
        genres = genre_names(genre_ids, typ, genre_map)

    return {
        "tmdb_id": tmdb_id,
        "media_type": typ,
        "title": (raw.get("title") or raw.get("name") or "").strip(),
        "original_title": (raw.get("original_title") or raw.get("original_name") or "").strip(),
        "year": _year_of(date),
        "release_date": date,
        "overview": (raw.get("overview") or "").strip(),
        "poster_path": raw.get("poster_path"),
        "poster_url": poster_url(raw.get("poster_path")),
        "genre_ids": genre_ids,
        "genres": genres,
        "vote_average": float(raw.get("vote_average") or 0.0),
        "vote_count": int(raw.get("vote_count") or 0),
        "popularity": float(raw.get("popularity") or 0.0),
    }


def runtime_of(raw: Mapping[str, Any], media_type: str) -> Optional[int]:
    if norm_media_type(media_type) == "movie":
        rt = raw.get("runtime")
        return int(rt) if isinstance(rt, (int, float)) and rt > 0 else None
    arr = [x for x in (raw.get("episode_run_time") or []) if isinstance(x, (int, float))]
    if arr:
        return int(sum(arr) / len(arr))
    return None


def normalize_details(raw: Mapping[str, Any], media_type: str) -> Dict[str, Any]:
    typ = norm_media_type(media_type)
    out = normalize_result(raw, typ) or {}
    out.update({
        "runtime": runtime_of(raw, typ),
        "tagline": (raw.get("tagline") or "").strip(),
        "status": raw.get("status") or "",
        "homepage": raw.get("homepage") or "",
        "imdb_id": raw.get("imdb_id") or ((raw.get("external_ids") or {}).get("imdb_id")) or "",
        "seasons": raw.get("number_of_seasons"),
        "episodes": raw.get("number_of_episodes"),
        "created_by": [c.get("name", "").strip() for c in (raw.get("created_by") or []) if isinstance(c, dict) and c.get("name")],
    })
    return out


def _dedup_keep_order(seq: Iterable[str]) -> List[str]:
    seen = set(); out = []
    for x in seq:
        if x and x not in seen:
            seen.add(x); out.append(x)
    return out


def parse_credits(
    cred: Mapping[str, Any],
    media_type: str,
    details: Optional[Mapping[str, Any]] = None,
    max_cast: int = 10,
) -> Dict[str, List[str]]:
    """Directors, writers and top-billed cast from a /credits payload; tv creators count as writers."""
    crew = [c for c in (cred.get("crew") or []) if isinstance(c, dict)]
    directors = [(c.get("name") or "").strip() for c in crew if c.get("job") == "Director"]
    writers = [(c.get("name") or "").strip() for c in crew if c.get("job") in WRITER_JOBS]
    if norm_media_type(media_type) == "tv" and details:
        writers = [(c.get("name") or "").strip() for c in (details.get("created_by") or []) if isinstance(c, dict)] + writers

    cast_rows = [c for c in (cred.get("cast") or []) if isinstance(c, dict)]
    cast_rows.sort(key=lambda c: c.get("order") if isinstance(c.get("order"), int) else 9999)
    cast = _dedup_keep_order((c.get("name") or "").strip() for c in cast_rows)
    if max_cast > 0:
        cast = cast[:max_cast]

    return {
        "directors": _dedup_keep_order(directors),
        "writers": _dedup_keep_order(writers),
        "cast": cast,
    }


# -------- placeholders (no API key) --------
def mock_search(query: str) -> List[Dict[str, Any]]:
    q = (query or "").strip()
    rows = [
        {"id": 1, "media_type": "movie", "title": f"Sample movie - {q}", "release_date": "2020-01-01",
         "overview": "Placeholder result (TMDB API key not configured).", "genre_ids": [18]},
        {"id": 2, "media_type": "tv", "name": f"Sample series - {q}", "first_air_date": "2021-01-01",
         "overview": "Placeholder result (TMDB API key not configured).", "genre_ids": [35]},
    ]
    return [r for r in (normalize_result(x) for x in rows) if r]


def mock_details(media_type: str, tmdb_id: int) -> Dict[str, Any]:
    typ = norm_media_type(media_type)
    raw = {
        "id": tmdb_id,
        "title" if typ == "movie" else "name": f"Sample {'movie' if typ == 'movie' else 'series'} - {tmdb_id}",
        "overview": "Placeholder details (TMDB API key not configured).",
        "genres": [{"id": 18, "name": "Drama"}],
        "runtime": 120,
        "episode_run_time": [45],
    }
    return normalize_details(raw, typ)


class TMDBModule:
    info = ModuleInfo(
        name="TMDB",
        version=__VERSION__,
        description="Multi search, details, credits and genre lists via TMDB API v3.",
        capabilities=ModuleCapabilities(
            needs_api_key=True,
            mock_without_key=True,
            disk_cache=True,
            config_schema={
                "type": "object",
                "properties": {
                    "tmdb": {
                        "type": "object",
                        "properties": {
                            "api_key": {"type": "string"},
                            "language": {"type": "string"},
                            "cache_ttl_days": {"type": "number"},
                        },
                    }
                },
            },
        ),
    )

    def __init__(
        self,
        config: Mapping[str, Any],
        logger: Optional[HostLogger] = None,
        session: Optional[requests.Session] = None,
        cache_dir: Optional[Path] = None,
    ):
        self._tmdb: Dict[str, Any] = dict((config or {}).get("tmdb") or {})
        self._log = module_logger(logger, self.info.name)
        self._session = session or requests.Session()
        self.cache_dir = Path(cache_dir) if cache_dir else None
        self._genre_maps: Dict[str, Dict[int, str]] = {}

    # config lifecycle
    @property
    def has_key(self) -> bool:
        return bool((self._tmdb.get("api_key") or "").strip())

    @property
    def language(self) -> str:
        return (self._tmdb.get("language") or "en-US").strip()

    def validate_config(self) -> None:
        ttl = self._tmdb.get("cache_ttl_days", 14)
        if not isinstance(ttl, (int, float)) or ttl < 0:
            raise ConfigError("tmdb.cache_ttl_days must be a non-negative number")
        lang = self._tmdb.get("language")
        if lang is not None and not isinstance(lang, str):
            raise ConfigError("tmdb.language must be a string")

    def reconfigure(self, config: Mapping[str, Any]) -> None:
        self._tmdb = dict((config or {}).get("tmdb") or {})
        self._genre_maps.clear()
        self.validate_config()

    # internals
    def _get(self, path: str, **params: Any) -> Any:
        q = {"api_key": self._tmdb["api_key"].strip(), "language": self.language}
        q.update({k: v for k, v in params.items() if v is not None})
        return http_get_json(self._session, f"{TMDB_API}{path}", params=q, label="TMDB") or {}

    def _check_type(self, media_type: str) -> str:
        typ = norm_media_type(media_type)
        if typ not in MEDIA_TYPES:
            raise ConfigError(f"unsupported media type: {media_type!r}")
        return typ

    def _cache_file(self, typ: str, tmdb_id: int) -> Optional[Path]:
        if self.cache_dir is None:
            return None
        f = self.cache_dir / "tmdb_meta" / f"{typ}-{int(tmdb_id)}.json"
        f.parent.mkdir(parents=True, exist_ok=True)
        return f

    def _raw_details(self, typ: str, tmdb_id: int) -> Dict[str, Any]:
        f = self._cache_file(typ, tmdb_id)
        ttl_days = float(self._tmdb.get("cache_ttl_days", 14))
        if f is not None and f.exists() and (time.time() - f.stat().st_mtime) < ttl_days * 86400:
            try:
                data = json.loads(f.read_text(encoding="utf-8"))
                if isinstance(data, dict):
                    return data
            except ValueError:
                self._log(f"ignoring corrupt cache file {f.name}", level="WARN")
        data = self._get(f"/{typ}/{int(tmdb_id)}", append_to_response="external_ids" if typ == "tv" else None)
        if not isinstance(data, dict):
            raise RecoverableModuleError(f"TMDB returned no details for {typ}/{tmdb_id}")
        if f is not None:
            f.write_text(json.dumps(data, indent=2), encoding="utf-8")
        return data

    # public reads
    def search_multi(self, query: str, page: int = 1) -> Dict[str, Any]:
        """Search movies and tv series in one call; person hits are dropped."""
        q = (query or "").strip()
        if not q:
            return {"results": [], "page": 1, "total_pages": 0, "total_results": 0}
        if not self.has_key:
            self._log("TMDB API key not found. Using mock data.", level="WARN")
            rows = mock_search(q)
            return {"results": rows, "page": 1, "total_pages": 1, "total_results": len(rows), "mock": True}
        js = self._get("/search/multi", query=q, page=max(1, int(page)), include_adult="false")
        results = []
        for raw in js.get("results") or []:
            typ = norm_media_type(raw.get("media_type"))
            row = normalize_result(raw, genre_map=self.get_genre_map(typ) if typ in MEDIA_TYPES else None)
            if row:
                results.append(row)
        self._log(f"search {q!r} page={page} -> {len(results)} results", level="DEBUG")
        return {
            "results": results,
            "page": int(js.get("page") or page),
            "total_pages": int(js.get("total_pages") or 0),
            "total_results": int(js.get("total_results") or 0),
        }

    def get_details(self, media_type: str, tmdb_id: int) -> Dict[str, Any]:
        typ = self._check_type(media_type)
        if not self.has_key:
            return mock_details(typ, int(tmdb_id))
        return normalize_details(self._raw_details(typ, int(tmdb_id)), typ)

    def get_credits(self, media_type: str, tmdb_id: int, max_cast: int = 10) -> Dict[str, List[str]]:
        typ = self._check_type(media_type)
        if not self.has_key:
            return {"directors": [], "writers": [], "cast": []}
        cred = self._get(f"/{typ}/{int(tmdb_id)}/credits")
        details = self._raw_details(typ, int(tmdb_id)) if typ == "tv" else None
        return parse_credits(cred, typ, details=details, max_cast=max_cast)

    def get_genre_map(self, media_type: str) -> Dict[int, str]:
        """Live genre list when possible, static table otherwise."""
        typ = self._check_type(media_type)
        if typ in self._genre_maps:
            return dict(self._genre_maps[typ])
        table = static_genres(typ)
        if self.has_key:
            try:
                js = self._get(f"/genre/{typ}/list")
                for g in js.get("genres") or []:
                    if isinstance(g, dict) and isinstance(g.get("id"), int) and isinstance(g.get("name"), str):
                        table[g["id"]] = g["name"]
            except (RecoverableModuleError, requests.RequestException) as e:
                self._log(f"genre list unavailable, using built-in table: {e}", level="WARN")
        self._genre_maps[typ] = table
        return dict(table)

    def get_poster_file(self, media_type: str, tmdb_id: int, size: str = "w342") -> Tuple[Path, str]:
        if self.cache_dir is None:
            raise ConfigError("poster cache directory not configured")
        if not self.has_key:
            raise ConfigError("TMDB key missing")
        typ = self._check_type(media_type)
        poster = self._raw_details(typ, int(tmdb_id)).get("poster_path")
        if not poster:
            raise RecoverableModuleError("no poster")
        safe_size = poster_size(size)
        root = self.cache_dir.resolve()
        local = (root / "tmdb" / typ / str(int(tmdb_id)) / f"{safe_size}.jpg").resolve()
        if root not in local.parents:
            raise ConfigError(f"poster path escapes cache dir: {size!r}")
        local.parent.mkdir(parents=True, exist_ok=True)
        if not local.exists():
            r = self._session.get(poster_url(poster, safe_size), headers={"User-Agent": UA}, timeout=15)
            if not r.ok:
                raise RecoverableModuleError(f"poster download failed: HTTP {r.status_code}")
            local.write_bytes(r.content)
        return local, "image/jpeg"
