"""Three-way reconciliation of the local, remote and base snapshots."""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from mcu_sync.filesystem_utils import join_path
from mcu_sync.logging_setup import get_logger
from mcu_sync.snapshot import (
    DirNode,
    Node,
    NodeKind,
    get_sub_structure,
    node_kind,
    remove_from_structure,
    set_in_structure,
)
from mcu_sync.state_db import TranspiledFile

logger = get_logger()


class SyncAction(Enum):
    """Per-path reconciliation outcome."""

    NOOP = "noop"
    SYNC_TO_REMOTE = "syncToRemote"
    SYNC_TO_LOCAL = "syncToLocal"
    UPDATE_BASE = "updateBase"
    ASK_USER = "askUser"


TRANSFER_ACTIONS = (SyncAction.SYNC_TO_REMOTE, SyncAction.SYNC_TO_LOCAL)


@dataclass
class SyncJob:
    """The action decided for one path, with the three observed nodes."""

    action: SyncAction
    file_path: str
    kind: Optional[NodeKind] = None
    local: Optional[Node] = field(default=None, repr=False)
    remote: Optional[Node] = field(default=None, repr=False)
    base: Optional[Node] = field(default=None, repr=False)
    details: Optional[str] = None

    @property
    def is_final(self) -> bool:
        """Whether the job can go to planning without a user decision."""
        return self.action != SyncAction.ASK_USER

    def with_action(self, action: SyncAction, details: Optional[str] = None) -> "SyncJob":
        """Copy of this job with another action (used to resolve conflicts)."""
        source = self.local if action == SyncAction.SYNC_TO_REMOTE else self.remote
        return SyncJob(
            action=action,
            file_path=self.file_path,
            kind=node_kind(source) or self.kind,
            local=self.local,
            remote=self.remote,
            base=self.base,
            details=details or self.details,
        )


class SyncEngine:
    """Classifies every path of three snapshots into a SyncJob.

    The walk is top-down. When both sides hold a directory the engine
    descends into it, unless both directories are identical, in which case
    the directory is settled as a whole. Any other directory-level decision
    covers the directory's entire subtree. A directional decision is only
    reached when one side agrees with base, so it never hides a conflict in
    a descendant.
    """

    def __init__(self, local: DirNode, remote: DirNode, base: DirNode):
        """Initialize sync engine.

        Args:
            local: Current local snapshot
            remote: Current device snapshot
            base: Snapshot both sides agreed on after the last sync
        """
        self.local = local
        self.remote = remote
        self.base = base

    def generate_actions(self) -> List[SyncJob]:
        """Classify all paths.

        Returns:
            List of SyncJob in top-down, name-sorted order
        """
        jobs: List[SyncJob] = []
        self._classify_children("", self.local, self.remote, self.base, jobs)

        counts: Dict[SyncAction, int] = {}
        for job in jobs:
            counts[job.action] = counts.get(job.action, 0) + 1
            if job.action != SyncAction.NOOP:
                logger.debug(f"Action: {job.action.value} {job.file_path} ({job.details})")
        summary = ", ".join(f"{a.value}={n}" for a, n in counts.items()) or "nothing"
        logger.info(f"Classified {len(jobs)} paths: {summary}")
        return jobs

    def _classify_children(
        self,
        path: str,
        local: DirNode,
        remote: DirNode,
        base: Optional[Node],
        jobs: List[SyncJob],
    ) -> None:
        base_children = base.children if isinstance(base, DirNode) else {}
        names = set(local.children) | set(remote.children) | set(base_children)
        for name in sorted(names):
            self._classify(
                join_path(path, name),
                local.children.get(name),
                remote.children.get(name),
                base_children.get(name),
                jobs,
            )

    def _classify(
        self,
        path: str,
        local: Optional[Node],
        remote: Optional[Node],
        base: Optional[Node],
        jobs: List[SyncJob],
    ) -> None:
        def job(action: SyncAction, kind: Optional[NodeKind], details: str) -> SyncJob:
            return SyncJob(action, path, kind, local, remote, base, details)

        if isinstance(local, DirNode) and isinstance(remote, DirNode):
            if local == remote:
                if local == base:
                    jobs.append(job(SyncAction.NOOP, NodeKind.DIR, "Unchanged"))
                else:
                    jobs.append(
                        job(SyncAction.UPDATE_BASE, NodeKind.DIR, "Identical on both sides")
                    )
                return
            jobs.append(job(SyncAction.NOOP, NodeKind.DIR, "Directory on both sides"))
            self._classify_children(path, local, remote, base, jobs)
            return

        changed_local = local != base
        changed_remote = remote != base

        if not changed_local and not changed_remote:
            jobs.append(job(SyncAction.NOOP, node_kind(local), "Unchanged"))
        elif changed_local and not changed_remote:
            details = "Deleted locally" if local is None else "Changed locally"
            jobs.append(
                job(SyncAction.SYNC_TO_REMOTE, node_kind(local) or node_kind(remote), details)
            )
        elif changed_remote and not changed_local:
            details = "Deleted on device" if remote is None else "Changed on device"
            jobs.append(
                job(SyncAction.SYNC_TO_LOCAL, node_kind(remote) or node_kind(local), details)
            )
        elif local == remote:
            details = "Deleted on both sides" if local is None else "Same change on both sides"
            jobs.append(job(SyncAction.UPDATE_BASE, node_kind(local), details))
        else:
            details = "Created on both sides" if base is None else "Changed on both sides"
            jobs.append(job(SyncAction.ASK_USER, node_kind(local) or node_kind(remote), details))


def apply_base_updates(jobs: List[SyncJob], local: DirNode, base: DirNode) -> int:
    """Absorb every UPDATE_BASE job's local value into the base snapshot.

    A path absent locally is dropped from base. Values are copied so later
    changes to base never alias the local snapshot.

    Returns:
        Number of base entries touched
    """
    updated = 0
    for job in jobs:
        if job.action != SyncAction.UPDATE_BASE:
            continue
        node = get_sub_structure(local, job.file_path)
        if node is None:
            remove_from_structure(base, job.file_path)
        else:
            set_in_structure(base, job.file_path, copy.deepcopy(node))
        updated += 1
    if updated:
        logger.info(f"Updated base snapshot for {updated} paths")
    return updated


def apply_transpile_aliases(remote: DirNode, aliases: Dict[str, TranspiledFile]) -> int:
    """Replace transformed uploads in the remote snapshot by their sources.

    A device file that still matches what was uploaded is reported as the
    local file it was produced from, so it is not seen as a remote edit.

    Returns:
        Number of remote files substituted
    """
    substituted = 0
    for path, transpiled in aliases.items():
        if get_sub_structure(remote, path) == transpiled.remote:
            set_in_structure(remote, path, transpiled.source)
            substituted += 1
    if substituted:
        logger.debug(f"Mapped {substituted} transpiled device files to their sources")
    return substituted
