"""Turns final sync jobs into an ordered list of file-level operations."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from mcu_sync.filesystem_utils import join_path
from mcu_sync.logging_setup import get_logger
from mcu_sync.snapshot import DirNode, FileNode, Node, NodeKind, get_sub_structure, walk
from mcu_sync.sync_logic import SyncAction, SyncJob

logger = get_logger()


class Direction(Enum):
    """Side receiving an operation."""

    TO_LOCAL = "toLocal"
    TO_REMOTE = "toRemote"


class OperationType(Enum):
    """What an operation does at the destination."""

    ADD = "add"
    UPDATE = "update"
    REMOVE = "remove"
    FAKE_REMOVE = "fakeRemove"


@dataclass
class Operation:
    """One file-level step of a sync."""

    direction: Direction
    relative_path: str
    kind: NodeKind
    operation: OperationType
    # Source node for add/update; the removed destination node for removals
    node: Optional[Node] = field(default=None, repr=False, compare=False)


@dataclass
class SyncPlan:
    """Ordered operations for a sync run."""

    operations: List[Operation] = field(default_factory=list)

    @property
    def fake_removals(self) -> List[Operation]:
        """Bookkeeping-only removals implied by an ancestor's removal."""
        return [op for op in self.operations if op.operation == OperationType.FAKE_REMOVE]

    @property
    def has_transfers(self) -> bool:
        return bool(self.operations)


def plan_operations(jobs: List[SyncJob], local: DirNode, remote: DirNode) -> SyncPlan:
    """Expand the directional jobs into operations.

    Jobs are taken in path order. For each one the destination subtree is
    brought to the source subtree: a parent is created before its children,
    a removed directory gets one real ``remove`` followed by a ``fakeRemove``
    per descendant, and files already equal at the destination are skipped.

    Args:
        jobs: Final jobs (no ASK_USER)
        local: Local snapshot
        remote: Device snapshot

    Returns:
        SyncPlan with operations in execution order
    """
    plan = SyncPlan()
    for job in sorted(jobs, key=lambda j: j.file_path):
        if job.action == SyncAction.ASK_USER:
            raise ValueError(f"Unresolved conflict reached planning: {job.file_path}")
        if job.action == SyncAction.SYNC_TO_REMOTE:
            direction, source, destination = Direction.TO_REMOTE, local, remote
        elif job.action == SyncAction.SYNC_TO_LOCAL:
            direction, source, destination = Direction.TO_LOCAL, remote, local
        else:
            continue
        _plan_path(
            plan,
            direction,
            job.file_path,
            get_sub_structure(source, job.file_path),
            get_sub_structure(destination, job.file_path),
        )

    logger.info(
        f"Planned {len(plan.operations)} operations "
        f"({len(plan.fake_removals)} bookkeeping-only removals)"
    )
    return plan


def _plan_path(
    plan: SyncPlan,
    direction: Direction,
    path: str,
    source: Optional[Node],
    destination: Optional[Node],
) -> None:
    if source is None:
        if destination is not None:
            _plan_removal(plan, direction, path, destination)
        return

    if destination is not None and destination.kind != source.kind:
        _plan_removal(plan, direction, path, destination)
        destination = None

    if isinstance(source, FileNode):
        if destination is None:
            plan.operations.append(
                Operation(direction, path, NodeKind.FILE, OperationType.ADD, source)
            )
        elif not _known_identical(source, destination):
            plan.operations.append(
                Operation(direction, path, NodeKind.FILE, OperationType.UPDATE, source)
            )
        return

    if destination is None:
        plan.operations.append(Operation(direction, path, NodeKind.DIR, OperationType.ADD, source))
        destination_children = {}
    else:
        destination_children = destination.children

    for name in sorted(set(source.children) | set(destination_children)):
        _plan_path(
            plan,
            direction,
            join_path(path, name),
            source.children.get(name),
            destination_children.get(name),
        )


def _plan_removal(plan: SyncPlan, direction: Direction, path: str, node: Node) -> None:
    plan.operations.append(Operation(direction, path, node.kind, OperationType.REMOVE, node))
    for child_path, child in walk(node, path):
        plan.operations.append(
            Operation(direction, child_path, child.kind, OperationType.FAKE_REMOVE, child)
        )


def _known_identical(source: FileNode, destination: FileNode) -> bool:
    """Whether both files are known to hold the same bytes.

    A missing hash only allows a size comparison, which is not enough to skip
    a transfer that was asked for.
    """
    if source.content_hash is None or destination.content_hash is None:
        return False
    return source == destination
