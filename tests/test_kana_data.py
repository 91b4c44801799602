"""
Tests for the kana seed catalog and its lookups.
"""

import os
import tempfile
from collections import Counter
from typing import Generator

import pytest

from kana_school import db
from kana_school.kana_data import ALL_KANA_ROWS, BASE_KANA, catalog_records


@pytest.fixture(scope="function")
def store() -> Generator[db.Store, None, None]:
    """Setup transient SQLite DB for testing."""
    fd, path = tempfile.mkstemp()
    os.close(fd)
    store = db.Store(f"sqlite:///{path}")
    db.init_db(store)
    yield store
    store.dispose()
    os.unlink(path)


def test_catalog_sizes() -> None:
    records = catalog_records()
    assert len(ALL_KANA_ROWS) == 71
    assert len(BASE_KANA) == 46
    assert len(records) == 142

    per_script = Counter(r["is_katakana"] for r in records)
    assert per_script[False] == 71
    assert per_script[True] == 71

    mods = Counter((r["is_katakana"], r["mod"]) for r in records)
    assert mods[(False, 1)] == 20
    assert mods[(False, 2)] == 5
    assert mods[(True, 2)] == 5


def test_catalog_glyphs_are_unique() -> None:
    glyphs = [r["unicode"] for r in catalog_records()]
    assert len(glyphs) == len(set(glyphs))


def test_duplicate_readings_live_on_different_lines() -> None:
    ji = [r for r in catalog_records() if r["reading"] == "ji" and not r["is_katakana"]]
    assert {(r["consonant_line"], r["unicode"]) for r in ji} == {("s", "じ"), ("t", "ぢ")}


def test_seed_kanas_only_when_empty(store: db.Store) -> None:
    assert db.seed_kanas(store) == 142
    assert db.seed_kanas(store) == 0
    assert len(db.get_all_kanas(store)) == 142
    assert len(db.get_hiraganas(store)) == 71
    assert all(k.is_katakana for k in db.get_katakanas(store))


def test_is_db_initialized(store: db.Store) -> None:
    assert db.is_db_initialized(store) is True

    fd, path = tempfile.mkstemp()
    os.close(fd)
    empty = db.Store(f"sqlite:///{path}")
    try:
        assert db.is_db_initialized(empty) is False
    finally:
        empty.dispose()
        os.unlink(path)


def test_get_kana_by_reading(store: db.Store) -> None:
    db.seed_kanas(store)

    ka = db.get_kana_by_reading(store, "ka", is_katakana=True)
    assert ka is not None and ka.unicode == "カ"

    ji = db.get_kana_by_reading(store, "ji", is_katakana=False)
    assert ji is not None and ji.unicode == "じ"

    ji_t = db.get_kana_by_reading(store, "ji", is_katakana=False, consonant_line="t")
    assert ji_t is not None and ji_t.unicode == "ぢ"

    assert db.get_kana_by_reading(store, "xx", is_katakana=False) is None
