"""Tests for the persisted base snapshot."""

import hashlib

import pytest

from mcu_sync.snapshot import DirNode, FileNode
from mcu_sync.state_db import StateDB, StateDBError, TranspiledFile


def node(data: bytes) -> FileNode:
    return FileNode(len(data), hashlib.md5(data).hexdigest())


class TestStateDB:
    """StateDB tests."""

    def test_missing_file_is_empty(self, tmp_path):
        """Test a never-saved base loads as an empty tree without creating a file."""
        db = StateDB(str(tmp_path / "base.db"))

        tree, transpiled = db.load_snapshot()

        assert tree == DirNode()
        assert transpiled == {}
        assert not db.exists()

    def test_save_and_load(self, tmp_path, build_tree):
        """Test a saved tree loads back equal, empty directories included."""
        tree = build_tree({"main.js": b"m", "lib": {"a.js": b"a", "empty": {}}})
        db = StateDB(str(tmp_path / "base.db"))

        db.save_snapshot(tree)
        loaded, transpiled = db.load_snapshot()

        assert db.exists()
        assert loaded == tree
        assert transpiled == {}

    def test_save_replaces_previous(self, tmp_path, build_tree):
        """Test each save replaces the whole snapshot."""
        db = StateDB(str(tmp_path / "base.db"))
        db.save_snapshot(build_tree({"old.txt": b"o"}))

        db.save_snapshot(build_tree({"new.txt": b"n"}))

        assert db.load_snapshot()[0] == build_tree({"new.txt": b"n"})
        assert [p.name for p in tmp_path.iterdir()] == ["base.db"]

    def test_transpiled_aliases(self, tmp_path, build_tree):
        """Test aliases persist only for files still in the tree."""
        db = StateDB(str(tmp_path / "base.db"))
        alias = TranspiledFile(remote=node(b"OUT"), source=node(b"in"))
        stale = TranspiledFile(remote=node(b"X"), source=node(b"x"))

        db.save_snapshot(build_tree({"main.js": b"in"}), {"main.js": alias, "gone.js": stale})

        assert db.load_snapshot()[1] == {"main.js": alias}

    def test_corrupt_file(self, tmp_path):
        """Test an unreadable base raises StateDBError."""
        path = tmp_path / "base.db"
        path.write_bytes(b"this is not a database at all, just some bytes" * 4)

        with pytest.raises(StateDBError):
            StateDB(str(path)).load_snapshot()

    def test_creates_parent_directory(self, tmp_path):
        """Test the base file's directory is created on save."""
        db = StateDB(str(tmp_path / "state" / "base.db"))

        db.save_snapshot(DirNode())

        assert db.exists()

    def test_discard(self, tmp_path, build_tree):
        """Test discarding forgets the history."""
        db = StateDB(str(tmp_path / "base.db"))
        db.save_snapshot(build_tree({"a": b"a"}))

        db.discard()
        db.discard()

        assert not db.exists()
        assert db.load_snapshot()[0] == DirNode()
