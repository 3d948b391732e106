"""Dry run output formatter."""

from typing import Dict, List, Tuple

from mcu_sync.planner import Direction, Operation, OperationType, SyncPlan
from mcu_sync.snapshot import NodeKind


class DryRunFormatter:
    """Formats a planned sync for preview."""

    OPERATION_SYMBOLS = {
        OperationType.ADD: "[+]",
        OperationType.UPDATE: "[~]",
        OperationType.REMOVE: "[X]",
        OperationType.FAKE_REMOVE: "[x]",
    }

    OPERATION_DESCRIPTIONS = {
        OperationType.ADD: "Add",
        OperationType.UPDATE: "Update",
        OperationType.REMOVE: "Delete",
        OperationType.FAKE_REMOVE: "Deleted with parent",
    }

    def __init__(self, local_name: str = "PC", remote_name: str = "MC"):
        """Initialize formatter.

        Args:
            local_name: Display name for the local side
            remote_name: Display name for the device side
        """
        self.local_name = local_name
        self.remote_name = remote_name

    def _direction_label(self, direction: Direction) -> str:
        if direction == Direction.TO_REMOTE:
            return f"{self.local_name} => {self.remote_name}"
        return f"{self.remote_name} => {self.local_name}"

    def format_dry_run_output(self, plan: SyncPlan, skipped_conflicts: int = 0) -> str:
        """Format dry run output.

        Args:
            plan: Planned operations
            skipped_conflicts: Conflicts left unresolved this run

        Returns:
            Formatted output string
        """
        output = []
        output.append("=" * 80)
        output.append("DRY RUN MODE - NO CHANGES WILL BE MADE")
        output.append("=" * 80)
        output.append("")

        if not plan.has_transfers:
            output.append("[OK] No synchronization needed - both sides are in sync!")
        else:
            output.append(
                f"The following {len(plan.operations)} operations would be performed:\n"
            )
            output.append("Summary:")
            output.append("-" * 80)
            for (direction, op_type), ops in self._group(plan.operations).items():
                symbol = self.OPERATION_SYMBOLS[op_type]
                desc = self.OPERATION_DESCRIPTIONS[op_type]
                output.append(
                    f"  {symbol} {desc} ({self._direction_label(direction)}): {len(ops)}"
                )
            output.append("")
            output.append("Detailed Changes:")
            output.append("-" * 80)
            for op in plan.operations:
                output.append(self._format_operation(op))

        if skipped_conflicts:
            output.append("")
            output.append(f"[!] {skipped_conflicts} conflicts skipped and left unsynchronized")

        output.append("")
        output.append("=" * 80)
        output.append("END DRY RUN - To perform these changes, set dry_run: false in config")
        output.append("=" * 80)
        return "\n".join(output)

    def _group(self, operations: List[Operation]) -> Dict[Tuple[Direction, OperationType], list]:
        grouped: Dict[Tuple[Direction, OperationType], list] = {}
        for op in operations:
            grouped.setdefault((op.direction, op.operation), []).append(op)
        return grouped

    def _format_operation(self, op: Operation) -> str:
        symbol = self.OPERATION_SYMBOLS[op.operation]
        what = "Folder" if op.kind == NodeKind.DIR else "File"
        return f"  {symbol} {self._direction_label(op.direction)}: {what} {op.relative_path}"
