#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Web backend (FastAPI) for the video library and the movie/TV watchlist.
Reads are public; writes require the signed-in admin.
"""
import socket
from contextlib import asynccontextmanager
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
import uvicorn
from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Query, Request, Path as FPath
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse, RedirectResponse

from _auth_helper import (
    SessionRegistry,
    google_build_authorize_url,
    google_exchange_code,
    google_fetch_userinfo,
    is_admin,
)
from _catalog import Catalog, ValidationError, filter_videos
from _config import (
    CONFIG_BASE, config_path, env_overridden, is_placeholder, load_config, read_config, redact, save_config,
)
from _logging import LOG_BUFFER, log as root_log
from _statistics import Stats
from _store import DocumentNotFound, DocumentStore
from _watchlist import SORT_KEYS, Watchlist, WatchlistFilter
from modules._mod_base import ConfigError, MetadataModule, RecoverableModuleError
from modules._mod_TMDB import TMDBModule, norm_media_type
from modules._mod_YOUTUBE import YouTubeModule

__VERSION__ = "0.5.0"

router = APIRouter()


# ---------- Application context ----------
class AppContext:
    """Everything a request handler needs, built once per app from the config base."""
    def __init__(self, base: Path, session: Optional[requests.Session] = None) -> None:
        self.base = Path(base)
        self.cache_dir = self.base / "cache"
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.http = session or requests.Session()
        self.log = root_log.child("WEB")
        self.store = DocumentStore(self.base / "library.json")
        self.stats = Stats(self.base / "statistics.json")
        self.catalog = Catalog(self.store, log=self.log)
        self.watchlist = Watchlist(self.store, log=self.log)
        self.cfg: Dict[str, Any] = {}
        self.youtube = YouTubeModule({}, logger=root_log, session=self.http)
        self.tmdb = TMDBModule({}, logger=root_log, session=self.http, cache_dir=self.cache_dir)
        self.sessions = SessionRegistry()
        self.reload()

    def providers(self) -> Dict[str, MetadataModule]:
        return {m.info.name: m for m in (self.youtube, self.tmdb)}

    def reload(self) -> None:
        self.cfg = load_config(self.base)
        root_log.configure(self.cfg.get("runtime") or {})
        for module in self.providers().values():
            module.reconfigure(self.cfg)
        self.sessions.ttl_sec = int(float((self.cfg.get("session") or {}).get("ttl_hours", 168)) * 3600)

    @property
    def admin_email(self) -> str:
        return ((self.cfg.get("app") or {}).get("admin_email") or "").strip()

    @property
    def cookie_name(self) -> str:
        return (self.cfg.get("session") or {}).get("cookie_name") or "mediashelf_session"


def _ctx(request: Request) -> AppContext:
    return request.app.state.ctx


def _current_user(request: Request) -> Optional[Dict[str, Any]]:
    ctx = _ctx(request)
    return ctx.sessions.get(request.cookies.get(ctx.cookie_name))


def require_admin(request: Request) -> Dict[str, Any]:
    user = _current_user(request)
    if not user:
        raise HTTPException(status_code=403, detail="sign in as admin to make changes")
    if not is_admin(user.get("email"), _ctx(request).admin_email):
        raise HTTPException(status_code=403, detail="admin only")
    return user


def _fail(ctx: AppContext, tag: str, e: Exception) -> JSONResponse:
    """Log an error at the call site and hand it back to the UI as {ok: false}."""
    if isinstance(e, (ValidationError, ConfigError)):
        status = 400
    elif isinstance(e, DocumentNotFound):
        status = 404
    elif isinstance(e, (RecoverableModuleError, requests.RequestException)):
        status = 502
    else:
        status = 500
    ctx.log(f"[{tag}] ERROR: {e}", level="ERROR" if status >= 500 else "WARN", module=tag)
    return JSONResponse({"ok": False, "error": str(e)}, status_code=status)


# ---------- Misc ----------
@router.get("/")
def index(request: Request) -> Dict[str, Any]:
    ctx = _ctx(request)
    return {"ok": True, "app": (ctx.cfg.get("app") or {}).get("title") or "MyTube", "version": __VERSION__}


@router.get("/api/health")
def api_health(request: Request) -> Dict[str, Any]:
    ctx = _ctx(request)
    return {
        "ok": True,
        "youtube_key": ctx.youtube.has_key,
        "tmdb_key": ctx.tmdb.has_key,
        "admin_configured": bool(ctx.admin_email),
        "missing_keys": [
            name for name, m in ctx.providers().items()
            if m.info.capabilities.needs_api_key and not m.has_key
        ],
    }


@router.get("/api/providers")
def api_providers(request: Request) -> Dict[str, Any]:
    """Metadata providers with their capabilities and config schema."""
    out = []
    for name, m in _ctx(request).providers().items():
        caps = m.info.capabilities
        out.append({
            "name": name,
            "version": m.info.version,
            "vendor": m.info.vendor,
            "description": m.info.description,
            "has_key": m.has_key,
            "mock": caps.mock_without_key and not m.has_key,
            "capabilities": asdict(caps),
        })
    return {"ok": True, "providers": out}


# ---------- Auth ----------
@router.get("/api/session")
def api_session(request: Request) -> Dict[str, Any]:
    user = _current_user(request)
    return {
        "ok": True,
        "signed_in": bool(user),
        "user": user,
        "is_admin": bool(user) and is_admin(user.get("email"), _ctx(request).admin_email),
    }


@router.get("/login")
def login(request: Request):
    ctx = _ctx(request)
    g = ctx.cfg.get("google") or {}
    if is_placeholder(g.get("client_id", "")) or is_placeholder(g.get("client_secret", "")):
        return JSONResponse({"ok": False, "error": "Google sign-in is not configured"}, status_code=400)
    url = google_build_authorize_url(g["client_id"], g.get("redirect_uri", ""), ctx.sessions.new_state())
    return RedirectResponse(url, status_code=302)


@router.get("/callback")
def oauth_google_callback(request: Request):
    ctx = _ctx(request)
    code = request.query_params.get("code") or ""
    state = request.query_params.get("state") or ""
    if not code or not ctx.sessions.consume_state(state):
        return PlainTextResponse("Invalid or expired sign-in request.", status_code=400)
    g = ctx.cfg.get("google") or {}
    try:
        tok = google_exchange_code(g.get("client_id", ""), g.get("client_secret", ""), code, g.get("redirect_uri", ""), session=ctx.http)
        user = google_fetch_userinfo(tok.get("access_token", ""), session=ctx.http)
    except (RuntimeError, requests.RequestException) as e:
        ctx.log(f"[AUTH] ERROR: {e}", level="ERROR", module="AUTH")
        return PlainTextResponse(f"Sign-in failed: {e}", status_code=400)
    token = ctx.sessions.create(user)
    role = "admin" if is_admin(user.get("email"), ctx.admin_email) else "guest (read-only)"
    ctx.log(f"signed in {user.get('email')} as {role}", module="AUTH")
    resp = RedirectResponse("/", status_code=302)
    resp.set_cookie(ctx.cookie_name, token, httponly=True, samesite="lax", max_age=ctx.sessions.ttl_sec)
    return resp


@router.post("/api/logout")
def api_logout(request: Request) -> JSONResponse:
    ctx = _ctx(request)
    ctx.sessions.drop(request.cookies.get(ctx.cookie_name))
    resp = JSONResponse({"ok": True})
    resp.delete_cookie(ctx.cookie_name)
    return resp


# ---------- Video library ----------
@router.get("/api/library")
def api_library(request: Request, search: str = Query(""), category: str = Query("all")) -> JSONResponse:
    ctx = _ctx(request)
    try:
        data = ctx.catalog.load()
    except Exception as e:
        return _fail(ctx, "CATALOG", e)
    videos = filter_videos(data["videos"], search, category)
    return JSONResponse({
        "ok": True,
        "categories": data["categories"],
        "videos": videos,
        "total": len(data["videos"]),
        "matched": len(videos),
    })


@router.get("/api/youtube/lookup")
def api_youtube_lookup(request: Request, url: str = Query(...), _: Dict[str, Any] = Depends(require_admin)) -> JSONResponse:
    ctx = _ctx(request)
    try:
        draft = ctx.catalog.prepare_from_url(url, ctx.youtube)
    except Exception as e:
        return _fail(ctx, "YOUTUBE", e)
    return JSONResponse({"ok": True, "found": bool(draft.get("video_id")), "draft": draft, "mock": not ctx.youtube.has_key})


@router.post("/api/videos")
def api_video_add(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    autofill: bool = Query(True),
    _: Dict[str, Any] = Depends(require_admin),
) -> JSONResponse:
    ctx = _ctx(request)
    try:
        data = dict(payload)
        if autofill and data.get("url") and not data.get("video_id"):
            draft = ctx.catalog.prepare_from_url(str(data["url"]), ctx.youtube)
            draft.update({k: v for k, v in data.items() if v not in ("", None)})
            data = draft
        video = ctx.catalog.add_video(data)
        ctx.stats.record_event(action="add", kind="video", key=video["id"], title=video.get("title", ""))
    except Exception as e:
        return _fail(ctx, "CATALOG", e)
    return JSONResponse({"ok": True, "video": video})


@router.put("/api/videos/{doc_id}")
def api_video_update(
    request: Request,
    doc_id: str = FPath(...),
    payload: Dict[str, Any] = Body(...),
    _: Dict[str, Any] = Depends(require_admin),
) -> JSONResponse:
    ctx = _ctx(request)
    try:
        video = ctx.catalog.update_video(doc_id, payload)
    except Exception as e:
        return _fail(ctx, "CATALOG", e)
    return JSONResponse({"ok": True, "video": video})


@router.delete("/api/videos/{doc_id}")
def api_video_delete(request: Request, doc_id: str = FPath(...), _: Dict[str, Any] = Depends(require_admin)) -> JSONResponse:
    ctx = _ctx(request)
    try:
        ctx.catalog.delete_video(doc_id)
        ctx.stats.record_event(action="remove", kind="video", key=doc_id)
    except Exception as e:
        return _fail(ctx, "CATALOG", e)
    return JSONResponse({"ok": True, "deleted": doc_id})


@router.post("/api/videos/{doc_id}/favorite")
def api_video_favorite(request: Request, doc_id: str = FPath(...), _: Dict[str, Any] = Depends(require_admin)) -> JSONResponse:
    ctx = _ctx(request)
    try:
        video = ctx.catalog.toggle_favorite(doc_id)
    except Exception as e:
        return _fail(ctx, "CATALOG", e)
    return JSONResponse({"ok": True, "video": video})


# ---------- Categories ----------
@router.post("/api/categories")
def api_category_add(request: Request, payload: Dict[str, Any] = Body(...), _: Dict[str, Any] = Depends(require_admin)) -> JSONResponse:
    ctx = _ctx(request)
    try:
        cat = ctx.catalog.add_category(str(payload.get("name") or ""))
    except Exception as e:
        return _fail(ctx, "CATALOG", e)
    return JSONResponse({"ok": True, "category": cat})


@router.delete("/api/categories/{doc_id}")
def api_category_delete(request: Request, doc_id: str = FPath(...), _: Dict[str, Any] = Depends(require_admin)) -> JSONResponse:
    ctx = _ctx(request)
    try:
        moved = ctx.catalog.delete_category(doc_id)
    except Exception as e:
        return _fail(ctx, "CATALOG", e)
    return JSONResponse({"ok": True, "deleted": doc_id, "moved": moved})


@router.post("/api/categories/reset")
def api_category_reset(request: Request, _: Dict[str, Any] = Depends(require_admin)) -> JSONResponse:
    ctx = _ctx(request)
    try:
        cats = ctx.catalog.reset_categories()
    except Exception as e:
        return _fail(ctx, "CATALOG", e)
    return JSONResponse({"ok": True, "categories": cats})


# ---------- TMDB ----------
@router.get("/api/tmdb/search")
def api_tmdb_search(request: Request, q: str = Query(""), page: int = Query(1, ge=1)) -> JSONResponse:
    ctx = _ctx(request)
    try:
        res = ctx.tmdb.search_multi(q, page=page)
    except Exception as e:
        return _fail(ctx, "TMDB", e)
    return JSONResponse({"ok": True, **res})


@router.get("/api/tmdb/details/{typ}/{tmdb_id}")
def api_tmdb_details(request: Request, typ: str = FPath(...), tmdb_id: int = FPath(...)) -> JSONResponse:
    ctx = _ctx(request)
    try:
        details = ctx.tmdb.get_details(typ, tmdb_id)
        credits = ctx.tmdb.get_credits(typ, tmdb_id)
    except Exception as e:
        return _fail(ctx, "TMDB", e)
    on_list = ctx.watchlist.find(typ, tmdb_id)
    return JSONResponse({"ok": True, **details, **credits, "watchlist_id": on_list["id"] if on_list else None})


@router.get("/api/tmdb/genres/{typ}")
def api_tmdb_genres(request: Request, typ: str = FPath(...)) -> JSONResponse:
    ctx = _ctx(request)
    try:
        table = ctx.tmdb.get_genre_map(typ)
    except Exception as e:
        return _fail(ctx, "TMDB", e)
    return JSONResponse({"ok": True, "genres": [{"id": k, "name": v} for k, v in sorted(table.items(), key=lambda kv: kv[1])]})


@router.get("/art/tmdb/{typ}/{tmdb_id}")
def api_tmdb_art(request: Request, typ: str = FPath(...), tmdb_id: int = FPath(...), size: str = Query("w342")):
    ctx = _ctx(request)
    typ = norm_media_type(typ)
    if typ not in {"movie", "tv"}:
        return PlainTextResponse("Bad type", status_code=400)
    if not ctx.tmdb.has_key:
        return PlainTextResponse("TMDb key missing", status_code=404)
    try:
        local_path, mime = ctx.tmdb.get_poster_file(typ, tmdb_id, size)
    except (ConfigError, RecoverableModuleError, requests.RequestException) as e:
        return PlainTextResponse(f"Poster not available: {e}", status_code=404)
    return FileResponse(path=str(local_path), media_type=mime, headers={"Cache-Control": "public, max-age=86400"})


# ---------- Watchlist ----------
@router.get("/api/watchlist")
def api_watchlist(
    request: Request,
    search: str = Query(""),
    type: str = Query("all"),
    status: str = Query("all"),
    genre: List[str] = Query([]),
    year_from: Optional[int] = Query(None),
    year_to: Optional[int] = Query(None),
    favorites: bool = Query(False),
    min_rating: Optional[float] = Query(None),
    sort: str = Query("added"),
    order: str = Query("desc"),
) -> JSONResponse:
    ctx = _ctx(request)
    flt = WatchlistFilter(
        search=search,
        media_type=type,
        status=status,
        genres=genre,
        year_from=year_from,
        year_to=year_to,
        favorites_only=favorites,
        min_rating=min_rating,
    )
    try:
        if sort not in SORT_KEYS:
            raise ValidationError(f"sort must be one of {', '.join(SORT_KEYS)}")
        res = ctx.watchlist.query(flt, sort_by=sort, descending=order.lower() != "asc")
    except Exception as e:
        return _fail(ctx, "WATCHLIST", e)
    return JSONResponse({"ok": True, **res, "missing_tmdb_key": not ctx.tmdb.has_key})


@router.post("/api/watchlist")
def api_watchlist_add(request: Request, payload: Dict[str, Any] = Body(...), _: Dict[str, Any] = Depends(require_admin)) -> JSONResponse:
    ctx = _ctx(request)
    try:
        typ = norm_media_type(payload.get("media_type"))
        if typ not in ("movie", "tv"):
            raise ValidationError("media_type must be movie or tv")
        try:
            tmdb_id = int(payload.get("tmdb_id"))
        except (TypeError, ValueError):
            raise ValidationError("tmdb_id must be an integer")
        entry = ctx.watchlist.add_from_tmdb(typ, tmdb_id, ctx.tmdb, status=payload.get("status") or "want")
        ctx.stats.record_event(action="add", kind="watchlist", key=f"{typ}:{tmdb_id}", title=entry.get("title", ""))
    except Exception as e:
        return _fail(ctx, "WATCHLIST", e)
    return JSONResponse({"ok": True, "entry": entry})


@router.patch("/api/watchlist/{doc_id}")
def api_watchlist_update(
    request: Request,
    doc_id: str = FPath(...),
    payload: Dict[str, Any] = Body(...),
    _: Dict[str, Any] = Depends(require_admin),
) -> JSONResponse:
    ctx = _ctx(request)
    try:
        entry = ctx.watchlist.update(doc_id, payload)
    except Exception as e:
        return _fail(ctx, "WATCHLIST", e)
    return JSONResponse({"ok": True, "entry": entry})


@router.post("/api/watchlist/{doc_id}/favorite")
def api_watchlist_favorite(request: Request, doc_id: str = FPath(...), _: Dict[str, Any] = Depends(require_admin)) -> JSONResponse:
    ctx = _ctx(request)
    try:
        entry = ctx.watchlist.toggle_favorite(doc_id)
    except Exception as e:
        return _fail(ctx, "WATCHLIST", e)
    return JSONResponse({"ok": True, "entry": entry})


@router.delete("/api/watchlist/{doc_id}")
def api_watchlist_delete(request: Request, doc_id: str = FPath(...), _: Dict[str, Any] = Depends(require_admin)) -> JSONResponse:
    ctx = _ctx(request)
    try:
        entry = ctx.store.get_doc("watchlist", doc_id)
        ctx.watchlist.delete(doc_id)
        ctx.stats.record_event(
            action="remove", kind="watchlist",
            key=f"{entry.get('media_type')}:{entry.get('tmdb_id')}", title=entry.get("title", ""),
        )
    except Exception as e:
        return _fail(ctx, "WATCHLIST", e)
    return JSONResponse({"ok": True, "deleted": doc_id})


# ---------- Statistics ----------
@router.get("/api/stats")
def api_stats(request: Request) -> JSONResponse:
    ctx = _ctx(request)
    try:
        data = ctx.stats.overview(ctx.catalog.videos(), ctx.watchlist.entries())
    except Exception as e:
        return _fail(ctx, "STATS", e)
    return JSONResponse(data)


@router.post("/api/stats/reset")
def api_stats_reset(request: Request, _: Dict[str, Any] = Depends(require_admin)) -> JSONResponse:
    ctx = _ctx(request)
    try:
        ctx.stats.reset()
    except Exception as e:
        return _fail(ctx, "STATS", e)
    return JSONResponse({"ok": True})


# ---------- Config & logs ----------
@router.get("/api/config")
def api_config(request: Request, _: Dict[str, Any] = Depends(require_admin)) -> JSONResponse:
    return JSONResponse(redact(_ctx(request).cfg))


@router.post("/api/config")
def api_config_save(request: Request, cfg: Dict[str, Any] = Body(...), _: Dict[str, Any] = Depends(require_admin)) -> JSONResponse:
    ctx = _ctx(request)
    try:
        merged = read_config(ctx.base)
        from_env = env_overridden()
        for section, values in (cfg or {}).items():
            if not isinstance(values, dict):
                raise ValidationError(f"config section {section!r} must be an object")
            sec = merged.setdefault(section, {})
            for k, v in values.items():
                if v == "********":
                    continue  # redacted secret echoed back unchanged
                if (section, k) in from_env and v == (ctx.cfg.get(section) or {}).get(k):
                    continue  # env value echoed back; it stays out of config.json
                sec[k] = v
        YouTubeModule(merged, session=ctx.http).validate_config()
        TMDBModule(merged, session=ctx.http).validate_config()
        save_config(merged, ctx.base)
        ctx.reload()
    except Exception as e:
        return _fail(ctx, "CONFIG", e)
    ctx.log("config saved", module="CONFIG")
    return JSONResponse({"ok": True})


@router.get("/api/logs")
def api_logs(
    request: Request,
    tag: str = Query("WEB"),
    n: int = Query(200, ge=0, le=3000),
    _: Dict[str, Any] = Depends(require_admin),
) -> JSONResponse:
    return JSONResponse({"ok": True, "tag": tag.upper(), "tags": LOG_BUFFER.tags(), "lines": LOG_BUFFER.tail(tag.upper(), n)})


# ---------- App factory ----------
async def _http_error(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse({"ok": False, "error": exc.detail}, status_code=exc.status_code)


def create_app(base: Optional[Path] = None, session: Optional[requests.Session] = None) -> FastAPI:
    ctx = AppContext(Path(base or CONFIG_BASE), session=session)

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        ctx.log(f"config: {config_path(ctx.base)}")
        if not ctx.admin_email:
            ctx.log("no admin email configured; the app is read-only", level="WARN")
        for name, m in ctx.providers().items():
            caps = m.info.capabilities
            if caps.needs_api_key and not m.has_key:
                tail = "lookups return placeholder data" if caps.mock_without_key else "lookups are disabled"
                ctx.log(f"{name} API key not set; {tail}", level="WARN")
            if caps.disk_cache:
                ctx.log(f"{name} cache: {ctx.cache_dir}", level="DEBUG")
        yield
        ctx.http.close()

    app = FastAPI(title="MediaShelf", version=__VERSION__, lifespan=_lifespan)
    app.state.ctx = ctx
    app.add_exception_handler(HTTPException, _http_error)
    app.include_router(router)
    return app


def get_primary_ip() -> str:
    try:
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        s.connect(("8.8.8.8", 80))
        ip = s.getsockname()[0]
        s.close()
        return ip
    except OSError:
        return "127.0.0.1"


app = create_app()


# ---- Main ----
def main(host: str = "0.0.0.0", port: int = 8787) -> None:
    ip = get_primary_ip()
    print("\nMediaShelf web backend running:")
    print(f"  Local:   http://127.0.0.1:{port}")
    print(f"  Docker:  http://{ip}:{port}")
    print(f"  Bind:    {host}:{port}")
    print(f"  Config:  {config_path()} (JSON)")
    print(f"  Data:    {CONFIG_BASE / 'library.json'}\n")
    uvicorn.run(app, host=host, port=port)

if __name__ == "__main__":
    main()
