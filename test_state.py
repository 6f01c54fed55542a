"""
Tests for the shared tagger state.
"""

import threading

import pytest

from conftest import UNIVERSE, write_annotation
from image_tagger.config import load_settings
from image_tagger.image_index import build_index
from image_tagger.models import TagState
from image_tagger.state import TaggerState, TagValidationError
from image_tagger.tag_store import FileTagStore, TagStoreError


def test_query_cat_not_dog(cat_dog_state):
    matches = cat_dog_state.query({"cat": TagState.INCLUDE, "dog": TagState.EXCLUDE})

    assert [item.name for item in matches] == ["a.jpg"]


def test_clearing_tags_moves_item_to_empty_group(cat_dog_state, tag_dir):
    assert cat_dog_state.update("a.jpg", []) is True

    assert FileTagStore(tag_dir).load_one("a.jpg").tags == []
    counts = {group.signature: group.count for group in cat_dog_state.stats()}
    assert counts == {"": 2, "cat & dog": 1}


def test_update_first_text_file(cat_dog_state, tag_dir):
    cat_dog_state.update("c.jpg", ["dog"])

    assert (tag_dir / "c.txt").read_text(encoding="utf-8") == "dog"
    assert cat_dog_state.find("c.jpg").tags == ["dog"]


def test_unknown_item_is_ignored(cat_dog_state):
    assert cat_dog_state.update("missing.jpg", ["cat"]) is False
    assert cat_dog_state.metrics.get_metrics()["ignored_updates"] == 1


def test_unknown_tag_rejected(cat_dog_state):
    with pytest.raises(TagValidationError, match="Unknown tags: bird"):
        cat_dog_state.update("a.jpg", ["bird"])


def test_single_label_rejects_multiple_tags(image_dir, tag_dir):
    store = FileTagStore(tag_dir)
    state = TaggerState(build_index(image_dir, store), store, UNIVERSE, multilabel=False)

    with pytest.raises(TagValidationError, match="Only one tag"):
        state.update("a.jpg", ["cat", "dog"])
    assert state.update("a.jpg", ["dog"]) is True


def test_failed_write_keeps_old_tags(image_dir, tag_dir):
    write_annotation(tag_dir, "a", {"cat": True})
    store = FileTagStore(tag_dir)
    state = TaggerState(build_index(image_dir, store), store, UNIVERSE)
    (tag_dir / "a.json").unlink()

    with pytest.raises(TagStoreError):
        state.update("a.jpg", ["dog"])

    assert state.find("a.jpg").tags == ["cat"]
    assert state.metrics.get_metrics()["update_failures"] == 1


def test_reads_return_copies(cat_dog_state):
    items = cat_dog_state.list_items()
    items[0].tags.append("dog")

    assert cat_dog_state.find("a.jpg").tags == ["cat"]


def test_concurrent_updates(cat_dog_state, tag_dir):
    def tag(name, tags):
        for _ in range(20):
            cat_dog_state.update(name, tags)

    threads = [
        threading.Thread(target=tag, args=("a.jpg", ["dog"])),
        threading.Thread(target=tag, args=("b.jpg", [])),
        threading.Thread(target=tag, args=("c.jpg", ["cat", "dog"])),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert [item.tags for item in cat_dog_state.list_items()] == [["dog"], [], ["cat", "dog"]]
    assert cat_dog_state.metrics.get_metrics()["updates"] == 60


def test_from_settings(tmp_path, image_dir):
    config_path = tmp_path / "config.toml"
    config_path.write_text(f"""
img_dir = "{image_dir.as_posix()}"
tag_dir = "{(tmp_path / 'tags.db').as_posix()}"
tags = ["cat", "dog"]
""", encoding="utf-8")

    state = TaggerState.from_settings(load_settings(config_path))

    assert state.store.kind == "sql"
    assert len(state.index) == 3
    assert state.update("a.jpg", ["cat"]) is True
    assert state.store.load_one("a.jpg").tags == ["cat"]
    state.close()
