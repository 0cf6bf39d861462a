"""Video library: category maintenance, video CRUD, filtering."""

import pytest

from _catalog import (
    DEFAULT_CATEGORIES,
    Catalog,
    ValidationError,
    filter_videos,
    slugify_category,
)
from _store import DocumentNotFound
from conftest import FakeSession
from modules._mod_YOUTUBE import YouTubeModule

VID = "dQw4w9WgXcQ"

VIDEOS = [
    {"title": "Python Basics", "description": "intro course", "channel_title": "Corey", "category": "tutorial"},
    {"title": "Lo-fi Beats", "description": "", "channel_title": "Chill", "category": "music"},
    {"title": "Rust for Pythonistas", "description": "systems", "channel_title": "", "category": "tech"},
]


@pytest.fixture
def catalog(store):
    cat = Catalog(store)
    cat.reset_categories()
    return cat


def _cat_id(catalog, slug):
    return next(c["id"] for c in catalog.categories() if c["slug"] == slug)


@pytest.mark.parametrize(
    "name,slug",
    [("Live Music ", "live-music"), ("Tech", "tech"), ("Sci  Fi", "sci-fi"), ("", "")],
)
def test_slugify_category(name, slug):
    assert slugify_category(name) == slug


def test_filter_by_search_is_case_insensitive():
    assert [v["title"] for v in filter_videos(VIDEOS, "PYTHON")] == ["Python Basics", "Rust for Pythonistas"]


def test_filter_searches_description_and_channel():
    assert [v["title"] for v in filter_videos(VIDEOS, "chill")] == ["Lo-fi Beats"]
    assert [v["title"] for v in filter_videos(VIDEOS, "intro")] == ["Python Basics"]


def test_filter_combines_search_and_category():
    assert [v["title"] for v in filter_videos(VIDEOS, "python", "tech")] == ["Rust for Pythonistas"]
    assert filter_videos(VIDEOS, "", "all") == VIDEOS
    assert filter_videos(VIDEOS, "", "unknown") == []


def test_reset_creates_defaults(catalog):
    slugs = sorted(c["slug"] for c in catalog.categories())
    assert slugs == sorted(c["slug"] for c in DEFAULT_CATEGORIES)

    catalog.add_category("Extra")
    catalog.reset_categories()
    assert len(catalog.categories()) == len(DEFAULT_CATEGORIES)


def test_add_category(catalog):
    cat = catalog.add_category("  Live Music ")

    assert cat["slug"] == "live-music"
    assert cat["name"] == "Live Music"


@pytest.mark.parametrize("name", ["", "   ", "Music", "  TECH "])
def test_add_category_rejects_blank_and_duplicates(catalog, name):
    with pytest.raises(ValidationError):
        catalog.add_category(name)


def test_add_video_requires_title_and_url(catalog):
    with pytest.raises(ValidationError):
        catalog.add_video({"title": "", "url": "https://youtu.be/x"})
    with pytest.raises(ValidationError):
        catalog.add_video({"title": "t", "url": "  "})


def test_add_video_fills_defaults(catalog):
    v = catalog.add_video({"title": "Song", "url": f"https://youtu.be/{VID}", "bogus": 1})

    assert v["video_id"] == VID
    assert v["favorite"] is False
    assert v["category"] == catalog.default_category()
    assert v["added_at"].endswith("Z")
    assert "bogus" not in v


def test_load_adds_display_fields(catalog):
    catalog.add_video({"title": "Song", "url": f"https://youtu.be/{VID}", "category": "music"})

    loaded = catalog.load()

    assert len(loaded["categories"]) == 4
    (video,) = loaded["videos"]
    assert video["category_name"] == "Music"
    assert video["embed_url"] == f"https://www.youtube.com/embed/{VID}"


def test_update_and_toggle_favorite(catalog):
    v = catalog.add_video({"title": "Song", "url": "https://example.com/v"})

    assert catalog.update_video(v["id"], {"title": "Renamed"})["title"] == "Renamed"
    assert catalog.toggle_favorite(v["id"])["favorite"] is True
    assert catalog.toggle_favorite(v["id"])["favorite"] is False
    with pytest.raises(ValidationError):
        catalog.update_video(v["id"], {"title": " "})


def test_delete_video(catalog):
    v = catalog.add_video({"title": "Song", "url": "https://example.com/v"})

    catalog.delete_video(v["id"])

    assert catalog.videos() == []
    with pytest.raises(DocumentNotFound):
        catalog.delete_video(v["id"])


def test_delete_category_moves_videos(catalog):
    catalog.add_video({"title": "a", "url": "u1", "category": "music"})
    catalog.add_video({"title": "b", "url": "u2", "category": "music"})
    catalog.add_video({"title": "c", "url": "u3", "category": "tech"})

    moved = catalog.delete_category(_cat_id(catalog, "music"))

    first = catalog.categories()[0]["slug"]
    assert moved == 2
    assert "music" not in [c["slug"] for c in catalog.categories()]
    assert sorted(v["category"] for v in catalog.videos()) == sorted([first, first, "tech"])


def test_last_category_cannot_be_deleted(store):
    catalog = Catalog(store)
    only = catalog.add_category("Only")

    with pytest.raises(ValidationError):
        catalog.delete_category(only["id"])


def test_delete_unknown_category(catalog):
    with pytest.raises(DocumentNotFound):
        catalog.delete_category("missing")


def test_prepare_from_url_without_key(catalog):
    youtube = YouTubeModule({}, session=FakeSession())

    draft = catalog.prepare_from_url(f"https://www.youtube.com/watch?v={VID}", youtube)

    assert draft["video_id"] == VID
    assert draft["title"] == f"Sample video title - {VID}"
    assert draft["duration"] == "10:30"
    assert draft["category"] == catalog.default_category()


def test_prepare_from_url_keeps_draft_for_other_links(catalog):
    youtube = YouTubeModule({}, session=FakeSession())

    draft = catalog.prepare_from_url("https://vimeo.com/1", youtube, {"title": "mine"})

    assert draft == {"title": "mine", "url": "https://vimeo.com/1"}


def test_filter_uses_search_term_as_given():
    videos = [{"title": "Intro", "description": "", "channel_title": ""}, {"title": "Deep Dive", "description": "", "channel_title": ""}]

    assert [v["title"] for v in filter_videos(videos, " ")] == ["Deep Dive"]
    assert [v["title"] for v in filter_videos(videos, " dive")] == ["Deep Dive"]
    assert filter_videos(videos, "intro ") == []
