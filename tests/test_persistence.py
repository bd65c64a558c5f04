"""Tests for the AccessoryStore cache layer."""

import logging

import pytest
import yaml

from pyButtonPlatform.persistence import (
    CACHE_ROOT_KEY,
    AccessoryStore,
    CachedAccessory,
    build_tree,
)


@pytest.fixture
def store(tmp_path):
    return AccessoryStore(tmp_path / "accessories.yaml")


def _entry(name, **overrides):
    entry = {
        "className": "ButtonAccessory",
        "version": "0.1.0",
        "id": f"id-{name.lower()}",
        "name": name,
        "context": {"button": name},
        "alive": True,
    }
    entry.update(overrides)
    return entry


def _entries(*names):
    return [_entry(name) for name in names]


def _write_raw(path, document):
    path.write_text(yaml.safe_dump(document), encoding="utf-8")


def _names(cached):
    return [c.name for c in cached]


# ---------------------------------------------------------------------------
# Document layout
# ---------------------------------------------------------------------------

class TestLayout:

    def test_build_tree(self):
        assert build_tree("Buttons", _entries("Kitchen")) == {
            "buttonPlatform": {
                "name": "Buttons",
                "accessories": [_entry("Kitchen")],
            }
        }

    def test_file_layout(self, store):
        store.save("Hall", _entries("Kitchen"))
        with open(store.path, encoding="utf-8") as fh:
            document = yaml.safe_load(fh)
        assert document[CACHE_ROOT_KEY]["name"] == "Hall"
        assert document[CACHE_ROOT_KEY]["accessories"] == [_entry("Kitchen")]

    def test_block_style_yaml(self, store):
        store.save("Buttons", _entries("Kitchen"))
        text = store.path.read_text(encoding="utf-8")
        assert "buttonPlatform:" in text
        assert "className: ButtonAccessory" in text


# ---------------------------------------------------------------------------
# save / load
# ---------------------------------------------------------------------------

class TestSaveLoad:

    def test_nothing_cached_yet(self, store):
        assert store.load() is None

    def test_load_returns_cached_accessories(self, store):
        store.save("Buttons", _entries("Kitchen"))
        assert store.load() == [
            CachedAccessory(
                class_name="ButtonAccessory",
                version="0.1.0",
                id="id-kitchen",
                name="Kitchen",
                context={"button": "Kitchen"},
                alive=True,
            )
        ]

    def test_unicode_names_survive(self, store):
        store.save("Buttons", _entries("Küche"))
        assert _names(store.load()) == ["Küche"]
        assert "Küche" in store.path.read_text(encoding="utf-8")

    def test_order_preserved(self, store):
        store.save("Buttons", _entries("B", "A", "C"))
        assert _names(store.load()) == ["B", "A", "C"]

    def test_empty_accessory_list(self, store):
        store.save("Buttons", [])
        assert store.load() == []

    def test_creates_parent_dirs(self, tmp_path):
        s = AccessoryStore(tmp_path / "var" / "lib" / "buttons.yaml")
        s.save("Buttons", _entries("Kitchen"))
        assert s.path.is_file()

    def test_no_tmp_file_left(self, store):
        store.save("Buttons", _entries("Kitchen"))
        assert not store.path.with_name("accessories.yaml.tmp").exists()


# ---------------------------------------------------------------------------
# Malformed entries
# ---------------------------------------------------------------------------

class TestEntryValidation:

    def test_non_mapping_entry_dropped(self, store, caplog):
        _write_raw(store.path, {CACHE_ROOT_KEY: {"accessories": [
            "junk", _entry("Kitchen"),
        ]}})
        with caplog.at_level(logging.WARNING):
            assert _names(store.load()) == ["Kitchen"]
        assert "removing cached entry 'junk'" in caplog.text

    def test_string_context_dropped(self, store, caplog):
        _write_raw(store.path, {CACHE_ROOT_KEY: {"accessories": [
            _entry("Kitchen", context="Kitchen"),
            _entry("Hall"),
        ]}})
        with caplog.at_level(logging.WARNING):
            assert _names(store.load()) == ["Hall"]
        assert "context is not a mapping" in caplog.text

    def test_missing_context_is_empty(self, store):
        entry = _entry("Kitchen")
        del entry["context"]
        _write_raw(store.path, {CACHE_ROOT_KEY: {"accessories": [entry]}})
        (cached,) = store.load()
        assert cached.context == {}

    def test_alive_only_when_true(self, store):
        _write_raw(store.path, {CACHE_ROOT_KEY: {"accessories": [
            _entry("A", alive="yes"),
            _entry("B", alive=True),
        ]}})
        assert [c.alive for c in store.load()] == [False, True]

    def test_scalar_fields_become_strings(self, store):
        _write_raw(store.path, {CACHE_ROOT_KEY: {"accessories": [
            _entry("Kitchen", id=42, version=1.0),
        ]}})
        (cached,) = store.load()
        assert cached.id == "42"
        assert cached.version == "1.0"

    def test_null_accessories(self, store):
        _write_raw(store.path, {CACHE_ROOT_KEY: {"accessories": None}})
        assert store.load() == []


# ---------------------------------------------------------------------------
# backup and recovery
# ---------------------------------------------------------------------------

class TestBackup:

    def test_first_save_has_no_backup(self, store):
        store.save("Buttons", _entries("Kitchen"))
        assert not store.backup_path.exists()

    def test_backup_holds_previous_version(self, store):
        store.save("Buttons", _entries("V1"))
        store.save("Buttons", _entries("V2"))
        store.save("Buttons", _entries("V3"))
        with open(store.backup_path, encoding="utf-8") as fh:
            document = yaml.safe_load(fh)
        names = [a["name"] for a in document[CACHE_ROOT_KEY]["accessories"]]
        assert names == ["V2"]


class TestRecovery:

    @pytest.fixture
    def two_versions(self, store):
        store.save("Buttons", _entries("Old"))
        store.save("Buttons", _entries("New"))
        return store

    def test_corrupt_primary_uses_backup(self, two_versions):
        two_versions.path.write_text("{{{{nope::::", encoding="utf-8")
        assert _names(two_versions.load()) == ["Old"]

    def test_missing_primary_uses_backup(self, two_versions):
        two_versions.path.unlink()
        assert _names(two_versions.load()) == ["Old"]

    def test_primary_rewritten_from_backup(self, two_versions):
        two_versions.path.unlink()
        two_versions.load()
        assert two_versions.path.is_file()
        assert _names(two_versions.load()) == ["Old"]

    @pytest.mark.parametrize("document", [
        ["Kitchen"],
        {"somethingElse": {}},
        {CACHE_ROOT_KEY: ["junk"]},
        {CACHE_ROOT_KEY: {"accessories": "Kitchen"}},
    ])
    def test_wrong_shape_uses_backup(self, two_versions, document):
        _write_raw(two_versions.path, document)
        assert _names(two_versions.load()) == ["Old"]

    def test_both_unusable(self, two_versions):
        two_versions.path.write_text("garbage: [", encoding="utf-8")
        _write_raw(two_versions.backup_path, {CACHE_ROOT_KEY: ["junk"]})
        assert two_versions.load() is None


# ---------------------------------------------------------------------------
# delete() / repr
# ---------------------------------------------------------------------------

class TestDelete:

    def test_delete_removes_all_files(self, store):
        store.save("Buttons", _entries("A"))
        store.save("Buttons", _entries("B"))
        store.delete()
        assert not store.path.exists()
        assert not store.backup_path.exists()

    def test_delete_without_files(self, store):
        store.delete()


def test_repr(store):
    assert repr(store).startswith("AccessoryStore(")
    assert "accessories.yaml" in repr(store)
