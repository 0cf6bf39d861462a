# _statistics.py
from __future__ import annotations
from pathlib import Path
from typing import Dict, Any, List, Optional
from datetime import datetime, timezone
import json, time, threading

MAX_EVENTS = 5000


def _read_json(p: Path) -> Dict[str, Any]:
    try:
        with p.open("r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError):
        return {}


def _write_json_atomic(p: Path, data: Dict[str, Any]) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp = p.with_suffix(".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
    tmp.replace(p)


def _utc(ts: int) -> str:
    return datetime.fromtimestamp(ts, timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class Stats:
    """Add/remove event log plus counters, and an overview over the live library and watchlist."""
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.lock = threading.Lock()
        self.data: Dict[str, Any] = {}
        self._load()

    def _load(self) -> None:
        d = _read_json(self.path)
        if not isinstance(d, dict):
            d = {}
        d.setdefault("events", [])
        d.setdefault("counters", {"added": 0, "removed": 0})
        self.data = d

    def _save(self) -> None:
        self.data["generated_at"] = _utc(int(time.time()))
        _write_json_atomic(self.path, self.data)

    def reset(self) -> None:
        with self.lock:
            self.data = {"events": [], "counters": {"added": 0, "removed": 0}}
            self._save()

    def record_event(self, *, action: str, kind: str, key: str, title: str = "") -> None:
        now = int(time.time())
        with self.lock:
            ev = self.data.get("events") or []
            ev.append({"ts": now, "action": action, "kind": kind, "key": key, "title": title})
            self.data["events"] = ev[-MAX_EVENTS:]
            c = self.data.setdefault("counters", {"added": 0, "removed": 0})
            if action == "add":
                c["added"] = int(c.get("added", 0)) + 1
            elif action == "remove":
                c["removed"] = int(c.get("removed", 0)) + 1
            self._save()

    def _events_since(self, ts_floor: int) -> List[Dict[str, Any]]:
        return [e for e in (self.data.get("events") or []) if int((e or {}).get("ts") or 0) >= ts_floor]

    @staticmethod
    def _count_by(rows: List[Dict[str, Any]], field: str) -> Dict[str, int]:
        out: Dict[str, int] = {}
        for r in rows:
            k = str(r.get(field) or "")
            out[k] = out.get(k, 0) + 1
        return out

    def overview(
        self,
        videos: List[Dict[str, Any]],
        entries: List[Dict[str, Any]],
        now_epoch: Optional[int] = None,
    ) -> Dict[str, Any]:
        now_epoch = int(now_epoch or time.time())
        week_floor = now_epoch - 7 * 86400

        genres: Dict[str, int] = {}
        for e in entries:
            for g in e.get("genres") or []:
                genres[g] = genres.get(g, 0) + 1
        top_genres = sorted(genres.items(), key=lambda kv: (-kv[1], kv[0]))[:10]

        with self.lock:
            counters = dict(self.data.get("counters") or {})
            week = self._events_since(week_floor)

        return {
            "ok": True,
            "generated_at": _utc(now_epoch),
            "videos": {
                "total": len(videos),
                "favorites": sum(1 for v in videos if v.get("favorite")),
                "by_category": self._count_by(videos, "category"),
            },
            "watchlist": {
                "total": len(entries),
                "favorites": sum(1 for e in entries if e.get("favorite")),
                "by_status": self._count_by(entries, "status"),
                "by_type": self._count_by(entries, "media_type"),
                "top_genres": [{"genre": g, "count": n} for g, n in top_genres],
            },
            "added": int(counters.get("added", 0)),
            "removed": int(counters.get("removed", 0)),
            "week": {
                "added": sum(1 for e in week if e.get("action") == "add"),
                "removed": sum(1 for e in week if e.get("action") == "remove"),
                "start": _utc(week_floor),
            },
        }
