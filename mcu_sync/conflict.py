"""Conflict resolution: turns ASK_USER jobs into final jobs."""

from enum import Enum
from typing import Callable, List, Optional

from mcu_sync.logging_setup import get_logger
from mcu_sync.prompts import prompt_choice
from mcu_sync.snapshot import describe_node
from mcu_sync.sync_logic import SyncAction, SyncJob

logger = get_logger()


class SyncAborted(Exception):
    """Raised when the user aborts the sync before any transfer."""

    pass


class ConflictResolution(Enum):
    """Ways to settle a conflicting path."""

    KEEP_LOCAL = "keep_local"
    KEEP_REMOTE = "keep_remote"
    SKIP = "skip"
    ABORT = "abort"


RESOLUTION_ACTIONS = {
    ConflictResolution.KEEP_LOCAL: SyncAction.SYNC_TO_REMOTE,
    ConflictResolution.KEEP_REMOTE: SyncAction.SYNC_TO_LOCAL,
    ConflictResolution.SKIP: SyncAction.NOOP,
}

CONFLICT_CHOICES = [
    (ConflictResolution.KEEP_LOCAL.value, "Keep local version (overwrite device)"),
    (ConflictResolution.KEEP_REMOTE.value, "Keep device version (overwrite local)"),
    (ConflictResolution.SKIP.value, "Skip for now (ask again next time)"),
    (ConflictResolution.ABORT.value, "Abort synchronization"),
]

Prompt = Callable[[SyncJob], ConflictResolution]


def ask_in_terminal(job: SyncJob) -> ConflictResolution:
    """Show the three observed values of a conflict and ask for a decision."""
    message = (
        f"Conflict: {job.file_path} ({job.details})\n"
        f"  local:  {describe_node(job.local)}\n"
        f"  device: {describe_node(job.remote)}\n"
        f"  last synced: {describe_node(job.base) if job.base is not None else 'never'}"
    )
    value = prompt_choice(message, CONFLICT_CHOICES, default=ConflictResolution.SKIP.value)
    return ConflictResolution(value)


class ConflictResolver:
    """Resolves conflicts one at a time in path order."""

    def __init__(self, policy: str = "ask", prompt: Optional[Prompt] = None):
        """Initialize conflict resolver.

        Args:
            policy: ``ask`` to prompt for every conflict, or a
                ConflictResolution value applied to all of them
            prompt: Callable asking for one decision (defaults to the terminal)
        """
        self.policy = policy
        self.prompt = prompt or ask_in_terminal

    def _decide(self, job: SyncJob) -> ConflictResolution:
        if self.policy != "ask":
            return ConflictResolution(self.policy)
        try:
            return self.prompt(job)
        except (KeyboardInterrupt, EOFError) as e:
            raise SyncAborted("Synchronization aborted by user") from e

    def resolve(self, jobs: List[SyncJob]) -> List[SyncJob]:
        """Resolve every ASK_USER job.

        Decisions are only returned once all conflicts are settled; an abort
        discards the ones made so far.

        Args:
            jobs: Jobs needing a decision

        Returns:
            Final jobs, one per input job, sorted by path

        Raises:
            SyncAborted: If the user aborts
        """
        resolved = []
        for job in sorted(jobs, key=lambda j: j.file_path):
            resolution = self._decide(job)
            if resolution == ConflictResolution.ABORT:
                logger.info(f"User aborted at conflict {job.file_path}")
                raise SyncAborted("Synchronization aborted by user")

            action = RESOLUTION_ACTIONS[resolution]
            logger.info(f"Conflict {job.file_path}: {resolution.value} -> {action.value}")
            details = f"Conflict resolved: {resolution.value}"
            resolved.append(job.with_action(action, details=details))
        return resolved
