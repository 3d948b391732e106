"""Local directory scanner producing snapshot stat entries."""

from pathlib import Path
from typing import List, Optional

from mcu_sync.filesystem_utils import matches_any_subpath, md5_file
from mcu_sync.logging_setup import get_logger
from mcu_sync.snapshot import NodeKind, StatEntry

logger = get_logger()


class ScanError(Exception):
    """Raised when a snapshot cannot be acquired."""

    pass


class Scanner:
    """Scans the local sync directory and builds stat entries."""

    def __init__(self, exclude_globs: Optional[List[str]] = None):
        """Initialize scanner with exclusion globs.

        Args:
            exclude_globs: Globs of paths to leave out; a match on a directory
                excludes everything below it
        """
        self.exclude_globs = [g for g in (exclude_globs or []) if g]

    def _should_ignore(self, relative_path: str) -> bool:
        """Check if a path or one of its ancestors is excluded."""
        return matches_any_subpath(relative_path, self.exclude_globs)

    def scan_directory(self, root_path: str) -> List[StatEntry]:
        """Scan a directory and return one stat entry per file and directory.

        Args:
            root_path: Root directory to scan

        Returns:
            List of StatEntry, files carrying size and MD5 checksum

        Raises:
            ScanError: If the root is missing or an entry cannot be read
        """
        root = Path(root_path)
        if not root.is_dir():
            raise ScanError(f"Sync directory does not exist: {root_path}")

        result = []
        try:
            for path in sorted(root.rglob("*")):
                relative_path = path.relative_to(root).as_posix()

                if self._should_ignore(relative_path):
                    logger.debug(f"Excluding: {relative_path}")
                    continue

                if path.is_dir():
                    result.append(StatEntry(relative_path, NodeKind.DIR))
                elif path.is_file():
                    result.append(
                        StatEntry(
                            relative_path,
                            NodeKind.FILE,
                            size=path.stat().st_size,
                            content_hash=md5_file(path),
                        )
                    )
                else:
                    logger.debug(f"Skipping special file: {relative_path}")
        except OSError as e:
            logger.error(f"Error scanning directory {root_path}: {e}")
            raise ScanError(f"Could not scan {root_path}: {e}") from e

        logger.info(f"Scanned {len(result)} items in {root_path}")
        return result
