"""Shared fixtures: isolated config dir, fake HTTP session, app clients."""

import json
import os
import tempfile

# must happen before webapp/_config are imported anywhere
os.environ["MEDIASHELF_CONFIG_DIR"] = tempfile.mkdtemp(prefix="mediashelf-test-")
for _var in ("ADMIN_EMAIL", "YOUTUBE_API_KEY", "TMDB_API_KEY", "GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET", "GOOGLE_REDIRECT_URI"):
    os.environ.pop(_var, None)

import pytest
from fastapi.testclient import TestClient

from _config import merge_defaults, save_config
from _store import DocumentStore

ADMIN = "admin@example.com"


class FakeResponse:
    def __init__(self, payload=None, status_code=200, content=b""):
        self._payload = payload
        self.status_code = status_code
        self.content = content
        self.text = json.dumps(payload) if payload is not None else ""

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload


class FakeSession:
    """Answers GET/POST by longest matching URL prefix and records every call."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []
        self.closed = False

    def _dispatch(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        for prefix in sorted(self.routes, key=len, reverse=True):
            if url.startswith(prefix):
                answer = self.routes[prefix]
                if isinstance(answer, Exception):
                    raise answer
                return answer(kwargs) if callable(answer) else answer
        return FakeResponse({"status_message": "not found"}, status_code=404)

    def get(self, url, **kwargs):
        return self._dispatch("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._dispatch("POST", url, **kwargs)

    def urls(self):
        return [u for _, u, _ in self.calls]

    def close(self):
        self.closed = True


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def store(tmp_path):
    return DocumentStore(tmp_path / "library.json")


@pytest.fixture
def app_config():
    """Config written before the app starts; tests may mutate it first."""
    return {"app": {"admin_email": ADMIN}}


@pytest.fixture
def app(tmp_path, fake_session, app_config):
    from webapp import create_app

    save_config(merge_defaults(app_config), tmp_path)
    return create_app(base=tmp_path, session=fake_session)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def sign_in(app, client, email):
    token = app.state.ctx.sessions.create({"email": email, "display_name": email.split("@")[0]})
    client.cookies.set(app.state.ctx.cookie_name, token)
    return token


@pytest.fixture
def admin_client(app, client):
    sign_in(app, client, ADMIN)
    return client
