"""Local file operations under the sync directory."""

import os
import shutil
import stat
import tempfile
from pathlib import Path
from typing import Optional, Tuple

from mcu_sync.filesystem_utils import md5_file, normalize_path
from mcu_sync.logging_setup import get_logger

logger = get_logger()


class FileOpsError(Exception):
    """Raised when file operation fails."""

    pass


def _target_mode(path: Path) -> int:
    """Permission bits for a written file: kept from an existing file, else umask based."""
    if path.exists():
        return stat.S_IMODE(path.stat().st_mode)
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


class FileOps:
    """Reads, writes and deletes files relative to the local sync root."""

    def __init__(self, root: str):
        """Initialize file operations handler.

        Args:
            root: Local sync directory
        """
        self.root = Path(root)

    def _path(self, relative_path: str) -> Path:
        return self.root / normalize_path(relative_path)

    def read_file(self, relative_path: str) -> bytes:
        """Read a file's bytes.

        Raises:
            FileOpsError: If the file cannot be read
        """
        try:
            return self._path(relative_path).read_bytes()
        except OSError as e:
            logger.error(f"Failed to read {relative_path}: {e}")
            raise FileOpsError(f"Read failed: {e}") from e

    def write_file(self, relative_path: str, data: bytes) -> None:
        """Write a file through a temporary sibling, replacing any existing file.

        Raises:
            FileOpsError: If writing fails
        """
        dst_path = self._path(relative_path)
        tmp_name = None
        try:
            dst_path.parent.mkdir(parents=True, exist_ok=True)
            mode = _target_mode(dst_path)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{dst_path.name}.", dir=str(dst_path.parent))
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.chmod(tmp_name, mode)
            os.replace(tmp_name, dst_path)
            tmp_name = None
            logger.debug(f"Wrote {relative_path} ({len(data)} bytes)")
        except OSError as e:
            logger.error(f"Failed to write {relative_path}: {e}")
            raise FileOpsError(f"Write failed: {e}") from e
        finally:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)

    def delete(self, relative_path: str) -> None:
        """Delete a file or a whole directory tree; a missing target is fine.

        Raises:
            FileOpsError: If delete fails
        """
        path = self._path(relative_path)
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            elif path.exists() or path.is_symlink():
                path.unlink()
            else:
                logger.warning(f"Local path already gone: {relative_path}")
                return
            logger.debug(f"Deleted {relative_path}")
        except OSError as e:
            logger.error(f"Failed to delete {relative_path}: {e}")
            raise FileOpsError(f"Delete failed: {e}") from e

    def make_dir(self, relative_path: str) -> None:
        """Ensure directory exists.

        Raises:
            FileOpsError: If creation fails
        """
        try:
            self._path(relative_path).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create directory {relative_path}: {e}")
            raise FileOpsError(f"Directory creation failed: {e}") from e

    def checksum(self, relative_path: str) -> Optional[Tuple[int, str]]:
        """Return ``(size, md5)`` of a file, or None if it does not exist."""
        path = self._path(relative_path)
        if not path.is_file():
            return None
        try:
            return path.stat().st_size, md5_file(path)
        except OSError as e:
            raise FileOpsError(f"Checksum failed: {e}") from e
