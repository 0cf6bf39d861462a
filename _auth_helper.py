#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Auth helpers for the web UI
- GOOGLE: OAuth Authorization Code flow (authorize URL + token exchange + userinfo).
- Sessions: opaque cookie tokens kept in memory, plus pending OAuth states.
- Admin gate: a single configured admin email may write; everyone may read.

Requires: requests
"""

from __future__ import annotations
import secrets
import threading
import time
from typing import Any, Dict, Optional
import urllib.parse as _url

import requests

__VERSION__ = "0.4.0"
UA = f"MediaShelf-Auth/{__VERSION__}"

# ---------------- GOOGLE (Authorization Code) ----------------

GOOGLE_AUTHORIZE = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN     = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO  = "https://openidconnect.googleapis.com/v1/userinfo"

def google_build_authorize_url(client_id: str, redirect_uri: str, state: str) -> str:
    """
    Returns the full authorize URL for Google sign-in (openid email profile).
    """
    q = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": "openid email profile",
        "state": state,
        "prompt": "select_account",
    }
    return GOOGLE_AUTHORIZE + "?" + _url.urlencode(q)

def google_exchange_code(
    client_id: str,
    client_secret: str,
    code: str,
    redirect_uri: str,
    session: Optional[requests.Session] = None,
) -> Dict[str, Any]:
    """
    Exchange authorization code for tokens (Google expects form data).
    """
    s = session or requests.Session()
    payload = {
        "grant_type": "authorization_code",
        "code": code.strip(),
        "redirect_uri": redirect_uri,
        "client_id": client_id,
        "client_secret": client_secret,
    }
    r = s.post(GOOGLE_TOKEN, data=payload, headers={"User-Agent": UA, "Accept": "application/json"}, timeout=30)
    if not r.ok:
        raise RuntimeError(f"Google token exchange failed: HTTP {r.status_code} {r.text}")
    return r.json()

def google_fetch_userinfo(access_token: str, session: Optional[requests.Session] = None) -> Dict[str, Any]:
    s = session or requests.Session()
    r = s.get(
        GOOGLE_USERINFO,
        headers={"User-Agent": UA, "Accept": "application/json", "Authorization": f"Bearer {access_token}"},
        timeout=15,
    )
    if not r.ok:
        raise RuntimeError(f"Google userinfo failed: HTTP {r.status_code} {r.text}")
    js = r.json() or {}
    if not js.get("email"):
        raise RuntimeError("Google userinfo did not include an email")
    return {
        "email": js.get("email"),
        "email_verified": bool(js.get("email_verified", False)),
        "display_name": js.get("name") or "",
        "picture": js.get("picture") or "",
    }

# ---------------- Admin gate ----------------

def is_admin(email: Optional[str], admin_email: Optional[str]) -> bool:
    a = (admin_email or "").strip().casefold()
    e = (email or "").strip().casefold()
    return bool(a) and e == a

# ---------------- Sessions ----------------

class SessionRegistry:
    """In-memory session tokens and pending OAuth states, both with expiry."""
    STATE_TTL = 600
    MAX_STATES = 1000

    def __init__(self, ttl_sec: int = 7 * 86400) -> None:
        self.ttl_sec = ttl_sec
        self._lock = threading.Lock()
        self._sessions: Dict[str, Dict[str, Any]] = {}
        self._states: Dict[str, float] = {}

    def _prune(self, now: float) -> None:
        # caller holds the lock
        for st in [k for k, ts in self._states.items() if now - ts > self.STATE_TTL]:
            del self._states[st]
        for tok in [k for k, s in self._sessions.items() if now - s["created_at"] > self.ttl_sec]:
            del self._sessions[tok]

    def new_state(self) -> str:
        st = secrets.token_urlsafe(24)
        now = time.time()
        with self._lock:
            self._prune(now)
            while len(self._states) >= self.MAX_STATES:
                self._states.pop(next(iter(self._states)))
            self._states[st] = now
        return st

    def consume_state(self, state: str) -> bool:
        with self._lock:
            ts = self._states.pop(state or "", None)
        return ts is not None and (time.time() - ts) <= self.STATE_TTL

    def create(self, user: Dict[str, Any]) -> str:
        token = secrets.token_urlsafe(32)
        now = time.time()
        with self._lock:
            self._prune(now)
            self._sessions[token] = {"user": dict(user), "created_at": now}
        return token

    def get(self, token: Optional[str]) -> Optional[Dict[str, Any]]:
        if not token:
            return None
        with self._lock:
            sess = self._sessions.get(token)
            if not sess:
                return None
            if time.time() - sess["created_at"] > self.ttl_sec:
                self._sessions.pop(token, None)
                return None
            return dict(sess["user"])

    def drop(self, token: Optional[str]) -> bool:
        with self._lock:
            return self._sessions.pop(token or "", None) is not None
