# _store.py
# Tiny document store on top of one JSON file: named collections of documents keyed by id.

from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional
from datetime import datetime, timezone
import json, threading, uuid


class StoreError(RuntimeError): ...
class DocumentNotFound(StoreError): ...


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
        json.dump(data, f, indent=2, ensure_ascii=False)
    tmp.replace(p)


def new_doc_id() -> str:
    return uuid.uuid4().hex[:20]


def now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class DocumentStore:
    """
    Collections are read whole and written one document at a time.
    Documents come back as plain dicts with the document id under "id".
    """
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.lock = threading.Lock()
        self.data: Dict[str, Any] = {}
        self._load()

    def _load(self) -> None:
        d = _read_json(self.path)
        if not isinstance(d, dict):
            d = {}
        cols = d.get("collections")
        d["collections"] = cols if isinstance(cols, dict) else {}
        self.data = d

    def _save(self) -> None:
        self.data["generated_at"] = now_iso()
        _write_json_atomic(self.path, self.data)

    def _col(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self.data["collections"].setdefault(name, {})

    @staticmethod
    def _out(doc_id: str, doc: Mapping[str, Any]) -> Dict[str, Any]:
        out = dict(doc)
        out["id"] = doc_id
        return out

    # ----- reads
    def get_docs(self, collection: str) -> List[Dict[str, Any]]:
        with self.lock:
            return [self._out(k, v) for k, v in self.data["collections"].get(collection, {}).items()]

    def get_doc(self, collection: str, doc_id: str) -> Dict[str, Any]:
        with self.lock:
            doc = self.data["collections"].get(collection, {}).get(doc_id)
            if doc is None:
                raise DocumentNotFound(f"{collection}/{doc_id} not found")
            return self._out(doc_id, doc)

    # ----- writes
    def add_doc(self, collection: str, data: Mapping[str, Any], doc_id: Optional[str] = None) -> str:
        body = {k: v for k, v in dict(data).items() if k != "id"}
        with self.lock:
            col = self._col(collection)
            key = doc_id or new_doc_id()
            while key in col and doc_id is None:
                key = new_doc_id()
            col[key] = body
            self._save()
            return key

    def update_doc(self, collection: str, doc_id: str, patch: Mapping[str, Any]) -> Dict[str, Any]:
        with self.lock:
            col = self._col(collection)
            if doc_id not in col:
                raise DocumentNotFound(f"{collection}/{doc_id} not found")
            col[doc_id].update({k: v for k, v in dict(patch).items() if k != "id"})
            self._save()
            return self._out(doc_id, col[doc_id])

    def delete_doc(self, collection: str, doc_id: str) -> None:
        with self.lock:
            col = self._col(collection)
            if col.pop(doc_id, None) is None:
                raise DocumentNotFound(f"{collection}/{doc_id} not found")
            self._save()

    def clear(self, collection: str) -> int:
        with self.lock:
            n = len(self.data["collections"].get(collection, {}))
            self.data["collections"][collection] = {}
            self._save()
            return n
