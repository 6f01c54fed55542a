"""
Shared fixtures for the Image Tagger tests.
"""

import json
from pathlib import Path
import pytest

from image_tagger.image_index import build_index
from image_tagger.state import TaggerState
from image_tagger.tag_store import FileTagStore


UNIVERSE = ["cat", "dog"]


def write_text_tags(tag_dir: Path, stem: str, tags):
    (tag_dir / f"{stem}.txt").write_text("\n".join(tags), encoding="utf-8")


def write_annotation(tag_dir: Path, stem: str, flags, **fields):
    document = {"version": "5.0.1", "shapes": [], **fields, "flags": flags}
    (tag_dir / f"{stem}.json").write_text(json.dumps(document), encoding="utf-8")


@pytest.fixture
def image_dir(tmp_path):
    path = tmp_path / "images"
    path.mkdir()
    for name in ["c.jpg", "a.jpg", "b.jpg"]:
        (path / name).write_bytes(b"\xff\xd8\xff\xe0fake-jpeg")
    return path


@pytest.fixture
def tag_dir(tmp_path):
    path = tmp_path / "tags"
    path.mkdir()
    return path


@pytest.fixture
def cat_dog_state(image_dir, tag_dir):
    """a.jpg = [cat], b.jpg = [cat, dog], c.jpg = []."""
    write_text_tags(tag_dir, "a", ["cat"])
    write_text_tags(tag_dir, "b", ["cat", "dog"])
    store = FileTagStore(tag_dir)
    state = TaggerState(build_index(image_dir, store), store, UNIVERSE, multilabel=True)
    yield state
    state.close()
