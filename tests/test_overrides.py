"""Tests for the override store."""

import json
from pathlib import Path

import pytest

from data.models import GroupKey
from data.overrides import InvalidOverride, OverrideStore, parse_amount

KEY = GroupKey("Aetna", "99213", "11", "25")


def test_set_get_roundtrip_through_file(tmp_path: Path):
    path = tmp_path / "overrides.json"
    store = OverrideStore(path)
    assert store.set(KEY, "$45.005") == 45.01
    store.save_all()

    reloaded = OverrideStore(path)
    assert reloaded.load_all() == {"Aetna|99213|11|25": 45.01}
    assert reloaded.get(KEY) == 45.01
    assert reloaded.get("Aetna|99213|11|25") == 45.01
    assert KEY in reloaded


def test_missing_file_loads_empty(tmp_path: Path):
    store = OverrideStore(tmp_path / "nope.json")
    assert store.load_all() == {}
    assert len(store) == 0


@pytest.mark.parametrize("amount", ["abc", "", "nan", "inf", None, float("nan")])
def test_invalid_amount_rejected_and_state_kept(tmp_path: Path, amount):
    store = OverrideStore(tmp_path / "o.json")
    store.set(KEY, 10)
    with pytest.raises(InvalidOverride):
        store.set(KEY, amount)
    assert store.get(KEY) == 10.0


def test_delete_and_clear_all(tmp_path: Path):
    store = OverrideStore(tmp_path / "o.json")
    other = GroupKey("Cigna", "99214", "22", "—")
    store.set(KEY, 10)
    store.set(other, 20)

    assert store.delete(KEY)
    assert not store.delete(KEY)
    assert store.snapshot() == {other.label: 20.0}

    store.clear_all()
    assert store.snapshot() == {}


def test_snapshot_is_a_copy(tmp_path: Path):
    store = OverrideStore(tmp_path / "o.json")
    store.set(KEY, 10)
    snap = store.snapshot()
    store.set(KEY, 99)
    assert snap[KEY.label] == 10.0


def test_corrupt_file_loads_empty(tmp_path: Path):
    path = tmp_path / "o.json"
    path.write_text("{not json")
    assert OverrideStore(path).load_all() == {}


def test_bad_entries_skipped_on_load(tmp_path: Path):
    path = tmp_path / "o.json"
    path.write_text(json.dumps({"a|1|11|—": 12.5, "b|2|11|—": "oops"}))
    assert OverrideStore(path).load_all() == {"a|1|11|—": 12.5}


def test_parse_amount_rounds_to_cents():
    assert parse_amount("1,234.567") == 1234.57
    assert parse_amount(45) == 45.0


def test_large_amount_is_kept_not_zeroed(tmp_path: Path):
    store = OverrideStore(tmp_path / "o.json")
    assert store.set(KEY, "1e300") == 1e300
    assert store.set(KEY, "98765432109876543210987654321.50") == 98765432109876543210987654321.5
    with pytest.raises(InvalidOverride):
        store.set(KEY, "1e400")
    assert store.get(KEY) == 98765432109876543210987654321.5
