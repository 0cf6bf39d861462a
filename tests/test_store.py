import pytest

from _store import DocumentNotFound, DocumentStore


def test_add_and_get_round_trip(store):
    doc_id = store.add_doc("videos", {"title": "a", "id": "ignored"})

    doc = store.get_doc("videos", doc_id)

    assert doc == {"title": "a", "id": doc_id}
    assert "id" not in store.data["collections"]["videos"][doc_id]


def test_explicit_id_is_kept(store):
    assert store.add_doc("categories", {"slug": "x"}, doc_id="cat-1") == "cat-1"
    assert store.get_doc("categories", "cat-1")["slug"] == "x"


def test_update_merges_fields(store):
    doc_id = store.add_doc("videos", {"title": "a", "favorite": False})

    updated = store.update_doc("videos", doc_id, {"favorite": True})

    assert updated == {"title": "a", "favorite": True, "id": doc_id}


def test_missing_documents_raise(store):
    with pytest.raises(DocumentNotFound):
        store.get_doc("videos", "nope")
    with pytest.raises(DocumentNotFound):
        store.update_doc("videos", "nope", {"title": "x"})
    with pytest.raises(DocumentNotFound):
        store.delete_doc("videos", "nope")


def test_unknown_collection_reads_empty(store):
    assert store.get_docs("nothing-here") == []


def test_data_survives_reload(tmp_path):
    path = tmp_path / "lib.json"
    first = DocumentStore(path)
    doc_id = first.add_doc("videos", {"title": "kept"})
    gone = first.add_doc("videos", {"title": "gone"})
    first.delete_doc("videos", gone)

    second = DocumentStore(path)

    assert [d["id"] for d in second.get_docs("videos")] == [doc_id]
    assert not path.with_suffix(".tmp").exists()


def test_corrupt_file_starts_empty(tmp_path):
    path = tmp_path / "lib.json"
    path.write_text("{not json", encoding="utf-8")

    assert DocumentStore(path).get_docs("videos") == []


def test_clear_returns_count(store):
    store.add_doc("categories", {"slug": "a"})
    store.add_doc("categories", {"slug": "b"})

    assert store.clear("categories") == 2
    assert store.get_docs("categories") == []
