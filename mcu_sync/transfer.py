"""Executes a sync plan against the local disk and the device."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple, Union

from mcu_sync.device_client import DeviceClient, DeviceError
from mcu_sync.file_ops import FileOps, FileOpsError
from mcu_sync.filesystem_utils import is_under, md5_bytes
from mcu_sync.logging_setup import get_logger
from mcu_sync.planner import Direction, Operation, OperationType, SyncPlan
from mcu_sync.snapshot import (
    DirNode,
    FileNode,
    NodeKind,
    get_sub_structure,
    remove_from_structure,
    set_in_structure,
)
from mcu_sync.state_db import TranspiledFile
from mcu_sync.transpile import Transpiler, TranspileError

logger = get_logger()


class TransferError(Exception):
    """Raised when a transferred file does not verify at the destination."""

    pass


# Both sides expose read_file, write_file, delete, make_dir and checksum
Side = Union[FileOps, DeviceClient]


class OperationStatus(Enum):
    """Lifecycle of one operation."""

    PENDING = "pending"
    IN_FLIGHT = "in-flight"
    VERIFIED = "verified"
    FAILED = "failed"


@dataclass
class TransferResult:
    """Outcome of one operation."""

    operation: Operation
    status: OperationStatus = OperationStatus.PENDING
    error: Optional[str] = None


@dataclass
class TransferReport:
    """Outcome of a whole plan."""

    results: List[TransferResult] = field(default_factory=list)

    @property
    def verified(self) -> List[TransferResult]:
        return [r for r in self.results if r.status == OperationStatus.VERIFIED]

    @property
    def failed(self) -> List[TransferResult]:
        return [r for r in self.results if r.status == OperationStatus.FAILED]

    @property
    def failed_paths(self) -> List[str]:
        return [r.operation.relative_path for r in self.failed]

    @property
    def changed_remote_paths(self) -> List[str]:
        """Device paths touched by verified operations."""
        return [
            r.operation.relative_path
            for r in self.verified
            if r.operation.direction == Direction.TO_REMOTE
        ]

    @property
    def succeeded(self) -> bool:
        return not self.failed


ProgressCallback = Callable[[TransferResult], None]

TRANSFER_ERRORS = (FileOpsError, DeviceError, TranspileError, TransferError)


class TransferExecutor:
    """Applies operations in plan order and records verified ones in base.

    A failed operation withholds its base update and every later operation
    on the same path or below it is failed without I/O. Operations on other
    paths carry on. The base snapshot is mutated in place; persisting it is
    left to the caller so an interrupted run can still save verified work.
    """

    def __init__(
        self,
        file_ops: FileOps,
        device: DeviceClient,
        base: DirNode,
        transpiled: Dict[str, TranspiledFile],
        transpiler: Optional[Transpiler] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        """Initialize transfer executor.

        Args:
            file_ops: Local side
            device: Device side
            base: Base snapshot, updated as operations verify
            transpiled: Transformed uploads by path, updated alongside base
            transpiler: Optional transformation for uploads
            on_progress: Called with each result once it is final
        """
        self.file_ops = file_ops
        self.device = device
        self.base = base
        self.transpiled = transpiled
        self.transpiler = transpiler or Transpiler()
        self.on_progress = on_progress

    def _sides(self, direction: Direction) -> Tuple[Side, Side]:
        if direction == Direction.TO_REMOTE:
            return self.file_ops, self.device
        return self.device, self.file_ops

    def execute(self, plan: SyncPlan) -> TransferReport:
        """Run every operation of the plan in order.

        Returns:
            TransferReport with one result per operation
        """
        report = TransferReport()
        failed_roots: List[str] = []

        for op in plan.operations:
            result = TransferResult(op)
            report.results.append(result)

            blocked_by = next((p for p in failed_roots if is_under(op.relative_path, p)), None)
            if blocked_by is not None:
                result.status = OperationStatus.FAILED
                result.error = f"Skipped because {blocked_by} failed"
                logger.warning(f"[SKIPPED] {op.relative_path}: {result.error}")
                self._notify(result)
                continue

            result.status = OperationStatus.IN_FLIGHT
            try:
                self._perform(op)
            except TRANSFER_ERRORS as e:
                result.status = OperationStatus.FAILED
                result.error = str(e)
                failed_roots.append(op.relative_path)
                logger.error(
                    f"[FAILED] {op.operation.value} {op.direction.value} {op.relative_path}: {e}"
                )
            else:
                result.status = OperationStatus.VERIFIED
                logger.info(f"[{op.operation.value}] {op.direction.value} {op.relative_path}")
            self._notify(result)

        logger.info(
            f"Transfer finished: {len(report.verified)} verified, {len(report.failed)} failed"
        )
        return report

    def _notify(self, result: TransferResult) -> None:
        if self.on_progress:
            self.on_progress(result)

    def _perform(self, op: Operation) -> None:
        source, destination = self._sides(op.direction)
        path = op.relative_path

        if op.operation == OperationType.FAKE_REMOVE:
            self._forget(path)
        elif op.operation == OperationType.REMOVE:
            destination.delete(path)
            self._forget(path)
        elif op.kind == NodeKind.DIR:
            destination.make_dir(path)
            if not isinstance(get_sub_structure(self.base, path), DirNode):
                set_in_structure(self.base, path, DirNode())
        else:
            self._transfer_file(op, source, destination)

    def _forget(self, path: str) -> None:
        remove_from_structure(self.base, path)
        for alias in [p for p in self.transpiled if is_under(p, path)]:
            del self.transpiled[alias]

    def _transfer_file(self, op: Operation, source: Side, destination: Side) -> None:
        path = op.relative_path
        data = source.read_file(path)
        source_node = FileNode(len(data), md5_bytes(data))

        payload = data
        transpiled = op.direction == Direction.TO_REMOTE and self.transpiler.applies_to(path)
        if transpiled:
            payload = self.transpiler.transpile(path, data)

        destination.write_file(path, payload)
        observed = self._verify(path, destination, payload)

        set_in_structure(self.base, path, source_node)
        if transpiled:
            self.transpiled[path] = TranspiledFile(remote=observed, source=source_node)
        else:
            self.transpiled.pop(path, None)

    def _verify(self, path: str, destination: Side, payload: bytes) -> FileNode:
        """Check the destination holds ``payload``; returns the observed node.

        The content hash is compared when the destination reports one,
        otherwise the size.
        """
        expected = FileNode(len(payload), md5_bytes(payload))
        observed = destination.checksum(path)
        if observed is None:
            raise TransferError(f"{path} missing at destination after write")

        size, content_hash = observed
        if content_hash:
            if content_hash.lower() != expected.content_hash:
                raise TransferError(
                    f"{path} checksum mismatch: expected {expected.content_hash}, "
                    f"got {content_hash}"
                )
        elif size != expected.size:
            raise TransferError(f"{path} size mismatch: expected {expected.size}, got {size}")
        return FileNode(size, content_hash.lower() if content_hash else None)
