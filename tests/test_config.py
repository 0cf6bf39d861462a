import json

from _config import (
    DEFAULT_CFG,
    config_path,
    is_placeholder,
    load_config,
    merge_defaults,
    redact,
    save_config,
)


def test_first_load_writes_defaults(tmp_path):
    cfg = load_config(tmp_path)

    assert cfg == DEFAULT_CFG
    assert json.loads(config_path(tmp_path).read_text(encoding="utf-8")) == DEFAULT_CFG


def test_merge_keeps_set_values():
    cfg = merge_defaults({"tmdb": {"api_key": "k"}, "extra": 1})

    assert cfg["tmdb"] == {"api_key": "k", "language": "en-US", "cache_ttl_days": 14}
    assert cfg["youtube"] == {"api_key": ""}
    assert cfg["extra"] == 1


def test_env_overrides_file(tmp_path, monkeypatch):
    save_config({"tmdb": {"api_key": "from-file"}, "app": {"admin_email": "file@example.com"}}, tmp_path)
    monkeypatch.setenv("TMDB_API_KEY", " from-env ")

    cfg = load_config(tmp_path)

    assert cfg["tmdb"]["api_key"] == "from-env"
    assert cfg["app"]["admin_email"] == "file@example.com"


def test_broken_file_falls_back_to_defaults(tmp_path):
    config_path(tmp_path).write_text("{", encoding="utf-8")

    assert load_config(tmp_path)["app"]["title"] == "MyTube"


def test_is_placeholder():
    assert is_placeholder("")
    assert is_placeholder("YOUR_GOOGLE_CLIENT_ID")
    assert not is_placeholder("1234.apps.googleusercontent.com")


def test_redact_hides_only_set_secrets():
    cfg = merge_defaults({"tmdb": {"api_key": "secret"}, "google": {"client_id": "cid"}})

    out = redact(cfg)

    assert out["tmdb"]["api_key"] == "********"
    assert out["youtube"]["api_key"] == ""
    assert out["google"]["client_id"] == "cid"
    assert cfg["tmdb"]["api_key"] == "secret"
