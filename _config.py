# _config.py
# JSON config for the web UI backend (config.json), with env overrides for secrets.

from __future__ import annotations
import copy
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Set, Tuple

# -------- Paths (Docker-aware) --------
# If running from /app (typical inside a container), store config, cache and data under /config.
ROOT = Path(__file__).resolve().parent
CONFIG_BASE = Path(os.getenv("MEDIASHELF_CONFIG_DIR") or ("/config" if str(ROOT).startswith("/app") else ROOT))

DEFAULT_CFG: Dict[str, Any] = {
    "app": {"title": "MyTube", "admin_email": ""},
    "youtube": {"api_key": ""},
    "tmdb": {"api_key": "", "language": "en-US", "cache_ttl_days": 14},
    "google": {
        "client_id": "YOUR_GOOGLE_CLIENT_ID",
        "client_secret": "YOUR_GOOGLE_CLIENT_SECRET",
        "redirect_uri": "http://127.0.0.1:8787/callback",
    },
    "session": {"ttl_hours": 24 * 7, "cookie_name": "mediashelf_session"},
    "runtime": {"debug": False, "log_json": ""},
}

# env var -> (section, key)
ENV_OVERRIDES = {
    "ADMIN_EMAIL": ("app", "admin_email"),
    "YOUTUBE_API_KEY": ("youtube", "api_key"),
    "TMDB_API_KEY": ("tmdb", "api_key"),
    "GOOGLE_CLIENT_ID": ("google", "client_id"),
    "GOOGLE_CLIENT_SECRET": ("google", "client_secret"),
    "GOOGLE_REDIRECT_URI": ("google", "redirect_uri"),
}

SECRET_KEYS = {("youtube", "api_key"), ("tmdb", "api_key"), ("google", "client_secret")}


def config_path(base: Optional[Path] = None) -> Path:
    return Path(base or CONFIG_BASE) / "config.json"


def _read_json(p: Path) -> Dict[str, Any]:
    with p.open("r", encoding="utf-8") as f:
        return json.load(f)


def _write_json(p: Path, data: Dict[str, Any]) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp = p.with_suffix(".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
    tmp.replace(p)


def merge_defaults(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Fill missing sections/keys from DEFAULT_CFG without touching values that are set."""
    out = copy.deepcopy(DEFAULT_CFG)
    for section, values in (cfg or {}).items():
        if isinstance(values, dict) and isinstance(out.get(section), dict):
            out[section].update(values)
        else:
            out[section] = values
    return out


def apply_env(cfg: Dict[str, Any]) -> Dict[str, Any]:
    for env, (section, key) in ENV_OVERRIDES.items():
        val = os.getenv(env)
        if val:
            cfg.setdefault(section, {})[key] = val.strip()
    return cfg


def env_overridden() -> Set[Tuple[str, str]]:
    return {sk for env, sk in ENV_OVERRIDES.items() if os.getenv(env)}


def read_config(base: Optional[Path] = None) -> Dict[str, Any]:
    """config.json merged with defaults, without env overrides (what may be written back)."""
    p = config_path(base)
    raw: Dict[str, Any] = {}
    if p.exists():
        try:
            raw = _read_json(p)
        except (OSError, ValueError):
            raw = {}
    else:
        save_config(copy.deepcopy(DEFAULT_CFG), base)
    return merge_defaults(raw if isinstance(raw, dict) else {})


def load_config(base: Optional[Path] = None) -> Dict[str, Any]:
    return apply_env(read_config(base))


def save_config(cfg: Dict[str, Any], base: Optional[Path] = None) -> None:
    _write_json(config_path(base), cfg)


def is_placeholder(val: str) -> bool:
    v = (val or "").strip().upper()
    return not v or v.startswith("YOUR_")


def redact(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of cfg safe to send to a browser: secrets replaced by a set/unset marker."""
    out = copy.deepcopy(cfg)
    for section, key in SECRET_KEYS:
        sec = out.get(section)
        if isinstance(sec, dict) and key in sec:
            sec[key] = "********" if (sec.get(key) or "").strip() else ""
    return out
