"""Watchlist: entry building, facet filters, sorting, service operations."""

import pytest

from _catalog import ValidationError
from _store import DocumentNotFound
from _watchlist import (
    Watchlist,
    WatchlistFilter,
    entry_from_tmdb,
    facet_counts,
    filter_entries,
    sort_entries,
    validate_rating,
)
from conftest import FakeSession
from modules._mod_TMDB import TMDBModule

ENTRIES = [
    {"title": "Inception", "media_type": "movie", "status": "watched", "year": 2010, "rating": 9.0,
     "vote_average": 8.4, "genres": ["Action", "Science Fiction"], "favorite": True,
     "cast": ["Leonardo DiCaprio"], "directors": ["Christopher Nolan"], "added_at": "2024-01-02T00:00:00Z"},
    {"title": "Game of Thrones", "media_type": "tv", "status": "watching", "year": 2011, "rating": None,
     "vote_average": 8.5, "genres": ["Drama", "Sci-Fi & Fantasy"], "favorite": False,
     "cast": ["Emilia Clarke"], "directors": [], "added_at": "2024-01-03T00:00:00Z"},
    {"title": "arrival", "media_type": "movie", "status": "want", "year": None, "rating": 7.5,
     "vote_average": 0, "genres": ["Drama", "Science Fiction"], "favorite": False,
     "overview": "Linguist meets visitors", "added_at": "2024-01-01T00:00:00Z"},
]


def _titles(rows):
    return [r["title"] for r in rows]


@pytest.fixture
def tmdb():
    return TMDBModule({}, session=FakeSession())


@pytest.fixture
def watchlist(store):
    return Watchlist(store)


def test_entry_from_tmdb_prefers_details():
    row = {"tmdb_id": 27205, "media_type": "movie", "title": "Inception", "year": 2010, "genres": ["Action"], "vote_average": 8.4}
    details = {"runtime": 148, "genres": ["Action", "Science Fiction"], "overview": "", "title": "Inception"}
    credits = {"directors": ["Christopher Nolan"], "cast": ["Leonardo DiCaprio"]}

    e = entry_from_tmdb(row, details, credits, status="Watching")

    assert e["runtime"] == 148
    assert e["genres"] == ["Action", "Science Fiction"]
    assert e["directors"] == ["Christopher Nolan"]
    assert e["status"] == "watching"
    assert e["rating"] is None
    assert e["favorite"] is False
    assert e["added_at"] == e["updated_at"]


def test_entry_from_tmdb_rejects_bad_status():
    with pytest.raises(ValidationError):
        entry_from_tmdb({"tmdb_id": 1, "media_type": "movie"}, status="dropped")


@pytest.mark.parametrize("value,expected", [(None, None), ("", None), (0, 0.0), ("7.5", 7.5), (10, 10.0)])
def test_validate_rating(value, expected):
    assert validate_rating(value) == expected


@pytest.mark.parametrize("value", [-1, 10.5, "great"])
def test_validate_rating_rejects(value):
    with pytest.raises(ValidationError):
        validate_rating(value)


def test_search_covers_people_and_overview():
    assert _titles(filter_entries(ENTRIES, WatchlistFilter(search="nolan"))) == ["Inception"]
    assert _titles(filter_entries(ENTRIES, WatchlistFilter(search="LINGUIST"))) == ["arrival"]
    assert _titles(filter_entries(ENTRIES, WatchlistFilter(search="clarke"))) == ["Game of Thrones"]


def test_type_and_status_facets():
    assert _titles(filter_entries(ENTRIES, WatchlistFilter(media_type="show"))) == ["Game of Thrones"]
    assert _titles(filter_entries(ENTRIES, WatchlistFilter(media_type="movie", status="want"))) == ["arrival"]


def test_genre_facet_matches_any_selected_genre():
    flt = WatchlistFilter(genres=["science fiction", "Sci-Fi & Fantasy"])
    assert len(filter_entries(ENTRIES, flt)) == 3
    assert _titles(filter_entries(ENTRIES, WatchlistFilter(genres=["action"]))) == ["Inception"]


def test_year_range_excludes_unknown_years():
    assert _titles(filter_entries(ENTRIES, WatchlistFilter(year_from=2011))) == ["Game of Thrones"]
    assert _titles(filter_entries(ENTRIES, WatchlistFilter(year_to=2010))) == ["Inception"]


def test_favorites_and_min_rating():
    assert _titles(filter_entries(ENTRIES, WatchlistFilter(favorites_only=True))) == ["Inception"]
    assert _titles(filter_entries(ENTRIES, WatchlistFilter(min_rating=8))) == ["Inception"]
    assert _titles(filter_entries(ENTRIES, WatchlistFilter(min_rating=7))) == ["Inception", "arrival"]


def test_facets_combine():
    flt = WatchlistFilter(media_type="movie", genres=["Drama"], min_rating=5)
    assert _titles(filter_entries(ENTRIES, flt)) == ["arrival"]


def test_sort_by_added_newest_first():
    assert _titles(sort_entries(ENTRIES)) == ["Game of Thrones", "Inception", "arrival"]
    assert _titles(sort_entries(ENTRIES, "added", descending=False)) == ["arrival", "Inception", "Game of Thrones"]


def test_sort_by_title_ignores_case():
    assert _titles(sort_entries(ENTRIES, "title", descending=False)) == ["arrival", "Game of Thrones", "Inception"]


@pytest.mark.parametrize("descending", [True, False])
def test_missing_values_sort_last(descending):
    assert _titles(sort_entries(ENTRIES, "year", descending))[-1] == "arrival"
    assert _titles(sort_entries(ENTRIES, "rating", descending))[-1] == "Game of Thrones"
    assert _titles(sort_entries(ENTRIES, "score", descending))[-1] == "arrival"


def test_unknown_sort_key():
    with pytest.raises(ValidationError):
        sort_entries(ENTRIES, "popularity")


def test_facet_counts():
    f = facet_counts(ENTRIES)

    assert f["media_type"] == {"movie": 2, "tv": 1}
    assert f["status"] == {"want": 1, "watching": 1, "watched": 1}
    assert list(f["genres"]) == ["Drama", "Science Fiction", "Action", "Sci-Fi & Fantasy"]


def test_add_from_tmdb_without_key(watchlist, tmdb):
    e = watchlist.add_from_tmdb("movie", 1, tmdb)

    assert e["tmdb_id"] == 1
    assert e["title"] == "Sample movie - 1"
    assert e["genres"] == ["Drama"]
    assert e["runtime"] == 120
    assert e["status"] == "want"
    assert watchlist.find("movie", 1)["id"] == e["id"]
    assert watchlist.find("tv", 1) is None


def test_add_twice_is_rejected(watchlist, tmdb):
    watchlist.add_from_tmdb("tv", 2, tmdb)
    with pytest.raises(ValidationError):
        watchlist.add_from_tmdb("series", 2, tmdb)


def test_update_validates_and_stamps(watchlist, tmdb):
    e = watchlist.add_from_tmdb("movie", 1, tmdb)

    updated = watchlist.update(e["id"], {"status": "watched", "rating": "8", "notes": "great", "title": "ignored"})

    assert updated["status"] == "watched"
    assert updated["rating"] == 8.0
    assert updated["notes"] == "great"
    assert updated["title"] == "Sample movie - 1"
    with pytest.raises(ValidationError):
        watchlist.update(e["id"], {"rating": 11})
    with pytest.raises(ValidationError):
        watchlist.update(e["id"], {"title": "only read-only fields"})


def test_query_returns_totals_and_facets(watchlist, tmdb):
    watchlist.add_from_tmdb("movie", 1, tmdb)
    tv = watchlist.add_from_tmdb("tv", 2, tmdb)
    watchlist.toggle_favorite(tv["id"])

    res = watchlist.query(WatchlistFilter(favorites_only=True))

    assert res["total"] == 2
    assert res["matched"] == 1
    assert res["items"][0]["media_type"] == "tv"
    assert res["facets"]["media_type"] == {"movie": 1, "tv": 1}


def test_delete(watchlist, tmdb):
    e = watchlist.add_from_tmdb("movie", 1, tmdb)

    watchlist.delete(e["id"])

    assert watchlist.entries() == []
    with pytest.raises(DocumentNotFound):
        watchlist.toggle_favorite(e["id"])


def test_same_second_adds_sort_newest_first():
    ts = "2024-02-01T10:00:00Z"
    rows = [{"title": "first", "added_at": ts}, {"title": "second", "added_at": ts}, {"title": "third", "added_at": ts}]

    assert _titles(sort_entries(rows)) == ["third", "second", "first"]
    assert _titles(sort_entries(rows, "added", descending=False)) == ["first", "second", "third"]


def test_query_lists_latest_add_first(watchlist, tmdb):
    watchlist.add_from_tmdb("movie", 1, tmdb)
    watchlist.add_from_tmdb("tv", 2, tmdb)

    items = watchlist.query(WatchlistFilter())["items"]

    assert [e["media_type"] for e in items] == ["tv", "movie"]
