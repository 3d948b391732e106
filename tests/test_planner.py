"""Tests for the operation planner."""

import pytest

from mcu_sync.planner import Direction, OperationType, plan_operations
from mcu_sync.snapshot import DirNode, FileNode, NodeKind
from mcu_sync.sync_logic import SyncAction, SyncEngine, SyncJob


def summary(plan):
    return [(op.direction, op.operation, op.relative_path) for op in plan.operations]


class TestPlanOperations:
    """plan_operations tests."""

    def test_new_file(self, build_tree):
        """Test a new local file becomes one add."""
        local = build_tree({"a.txt": b"0123456789"})
        jobs = SyncEngine(local, DirNode(), DirNode()).generate_actions()
        plan = plan_operations(jobs, local, DirNode())

        assert summary(plan) == [(Direction.TO_REMOTE, OperationType.ADD, "a.txt")]
        assert plan.operations[0].kind == NodeKind.FILE

    def test_updated_file(self, build_tree):
        """Test an edited file becomes one update."""
        local = build_tree({"b.txt": b"H1"})
        remote = build_tree({"b.txt": b"H0"})
        jobs = SyncEngine(local, remote, build_tree({"b.txt": b"H0"})).generate_actions()

        assert summary(plan_operations(jobs, local, remote)) == [
            (Direction.TO_REMOTE, OperationType.UPDATE, "b.txt")
        ]

    def test_new_directory_parent_before_children(self, build_tree):
        """Test a new tree is created top-down."""
        remote = build_tree({"lib": {"a.js": b"a", "sub": {"b.js": b"b"}, "empty": {}}})
        jobs = SyncEngine(DirNode(), remote, DirNode()).generate_actions()
        plan = plan_operations(jobs, DirNode(), remote)

        assert summary(plan) == [
            (Direction.TO_LOCAL, OperationType.ADD, "lib"),
            (Direction.TO_LOCAL, OperationType.ADD, "lib/a.js"),
            (Direction.TO_LOCAL, OperationType.ADD, "lib/empty"),
            (Direction.TO_LOCAL, OperationType.ADD, "lib/sub"),
            (Direction.TO_LOCAL, OperationType.ADD, "lib/sub/b.js"),
        ]

    def test_deleted_directory_uses_fake_removals(self, build_tree):
        """Test a removed tree gets one real delete and bookkeeping for the rest."""
        spec = {"d": {"x.txt": b"x"}}
        remote = build_tree(spec)
        jobs = SyncEngine(DirNode(), remote, build_tree(spec)).generate_actions()
        plan = plan_operations(jobs, DirNode(), remote)

        assert summary(plan) == [
            (Direction.TO_REMOTE, OperationType.REMOVE, "d"),
            (Direction.TO_REMOTE, OperationType.FAKE_REMOVE, "d/x.txt"),
        ]
        assert [op.relative_path for op in plan.fake_removals] == ["d/x.txt"]

    def test_kind_change_removes_then_adds(self, build_tree):
        """Test a file replaced by a directory is removed before the directory is added."""
        local = build_tree({"cfg": {"inner.json": b"{}"}})
        remote = build_tree({"cfg": b"file"})
        jobs = SyncEngine(local, remote, build_tree({"cfg": b"file"})).generate_actions()

        assert summary(plan_operations(jobs, local, remote)) == [
            (Direction.TO_REMOTE, OperationType.REMOVE, "cfg"),
            (Direction.TO_REMOTE, OperationType.ADD, "cfg"),
            (Direction.TO_REMOTE, OperationType.ADD, "cfg/inner.json"),
        ]

    def test_directory_sync_skips_equal_files(self, build_tree):
        """Test a directory-level job only touches differing descendants."""
        local = build_tree({"lib": {"same.js": b"s", "changed.js": b"new"}})
        remote = build_tree({"lib": {"same.js": b"s", "changed.js": b"old", "extra.js": b"e"}})
        job = SyncJob(SyncAction.SYNC_TO_REMOTE, "lib", NodeKind.DIR)

        assert summary(plan_operations([job], local, remote)) == [
            (Direction.TO_REMOTE, OperationType.UPDATE, "lib/changed.js"),
            (Direction.TO_REMOTE, OperationType.REMOVE, "lib/extra.js"),
        ]

    def test_non_transfer_jobs_ignored(self, build_tree):
        """Test noop and base updates plan nothing."""
        jobs = [
            SyncJob(SyncAction.NOOP, "a"),
            SyncJob(SyncAction.UPDATE_BASE, "b"),
        ]
        plan = plan_operations(jobs, build_tree({"a": b"1", "b": b"2"}), DirNode())

        assert not plan.has_transfers

    def test_unresolved_conflict_rejected(self):
        """Test ASK_USER never reaches planning."""
        with pytest.raises(ValueError):
            plan_operations([SyncJob(SyncAction.ASK_USER, "a")], DirNode(), DirNode())

    def test_every_operation_has_its_parent_before_it(self, build_tree):
        """Test no operation refers to a path whose parent is created later."""
        local = build_tree({"a": {"b": {"c": {"d.txt": b"d"}}, "e.txt": b"e"}, "f": {}})
        jobs = SyncEngine(local, DirNode(), DirNode()).generate_actions()
        plan = plan_operations(jobs, local, DirNode())

        created = set()
        for op in plan.operations:
            parent = op.relative_path.rpartition("/")[0]
            assert not parent or parent in created
            created.add(op.relative_path)


def test_destination_without_hash_is_transferred(build_tree):
    """Test a same-size file on a device without checksums is still updated."""
    local = build_tree({"a.txt": b"new"})
    remote = DirNode({"a.txt": FileNode(3, None)})
    job = SyncJob(SyncAction.SYNC_TO_REMOTE, "a.txt", NodeKind.FILE)

    assert summary(plan_operations([job], local, remote)) == [
        (Direction.TO_REMOTE, OperationType.UPDATE, "a.txt")
    ]
