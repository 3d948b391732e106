"""Persisted base snapshot: the last state both sides agreed on."""

import os
import sqlite3
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple

from mcu_sync.logging_setup import get_logger
from mcu_sync.snapshot import DirNode, FileNode, NodeKind, StatEntry, to_stat_entries, to_structure

logger = get_logger()

SCHEMA_VERSION = 1


class StateDBError(Exception):
    """Raised when the base snapshot cannot be read or written."""

    pass


@dataclass(frozen=True)
class TranspiledFile:
    """A file uploaded in transformed form.

    ``remote`` is what the device reports for the uploaded content,
    ``source`` is the local file it was produced from.
    """

    remote: FileNode
    source: FileNode


class StateDB:
    """SQLite file holding the base snapshot between runs."""

    def __init__(self, db_path: str):
        """Initialize the store; nothing is created until the first save.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path

    def exists(self) -> bool:
        """Check whether a base snapshot was ever saved."""
        return Path(self.db_path).exists()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        """Create tables in a fresh database."""
        conn.execute(
            """
            CREATE TABLE schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE nodes (
                path TEXT PRIMARY KEY,
                kind TEXT NOT NULL,
                size INTEGER,
                content_hash TEXT
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE transpiled (
                path TEXT PRIMARY KEY,
                remote_size INTEGER,
                remote_hash TEXT,
                source_size INTEGER,
                source_hash TEXT
            )
            """
        )
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))

    def load_snapshot(self) -> Tuple[DirNode, Dict[str, TranspiledFile]]:
        """Load the base snapshot.

        Returns:
            Tuple of (snapshot tree, transpiled files by path); an empty tree
            when no base file exists yet

        Raises:
            StateDBError: If the file exists but cannot be read
        """
        if not self.exists():
            logger.info(f"No base snapshot at {self.db_path}, starting empty")
            return DirNode(), {}

        conn = None
        try:
            conn = sqlite3.connect(self.db_path)
            stats = [
                StatEntry(path, NodeKind(kind), size, content_hash)
                for path, kind, size, content_hash in conn.execute(
                    "SELECT path, kind, size, content_hash FROM nodes"
                )
            ]
            transpiled = {
                path: TranspiledFile(
                    remote=FileNode(remote_size, remote_hash),
                    source=FileNode(source_size, source_hash),
                )
                for path, remote_size, remote_hash, source_size, source_hash in conn.execute(
                    "SELECT path, remote_size, remote_hash, source_size, source_hash "
                    "FROM transpiled"
                )
            }
            tree = to_structure(stats)
        except (sqlite3.Error, ValueError) as e:
            logger.error(f"Error loading base snapshot from {self.db_path}: {e}")
            raise StateDBError(f"Cannot read base snapshot {self.db_path}: {e}") from e
        finally:
            if conn:
                conn.close()

        logger.info(f"Loaded base snapshot with {len(stats)} entries from {self.db_path}")
        return tree, transpiled

    def save_snapshot(
        self, tree: DirNode, transpiled: Optional[Dict[str, TranspiledFile]] = None
    ) -> None:
        """Replace the persisted base snapshot atomically.

        The new content is written to a temporary database next to the target
        and moved over it, so readers see either the old or the new snapshot.

        Args:
            tree: Snapshot tree to persist
            transpiled: Transformed uploads; entries for paths that are no
                longer files in ``tree`` are dropped

        Raises:
            StateDBError: If writing fails
        """
        entries = to_stat_entries(tree)
        files = {e.relative_path for e in entries if e.kind == NodeKind.FILE}
        aliases = {p: t for p, t in (transpiled or {}).items() if p in files}

        target = Path(self.db_path)
        tmp_path = None
        conn = None
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent)
            )
            os.close(fd)

            conn = sqlite3.connect(tmp_path)
            self._create_schema(conn)
            conn.executemany(
                "INSERT INTO nodes (path, kind, size, content_hash) VALUES (?, ?, ?, ?)",
                [(e.relative_path, e.kind.value, e.size, e.content_hash) for e in entries],
            )
            conn.executemany(
                """
                INSERT INTO transpiled
                (path, remote_size, remote_hash, source_size, source_hash)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (p, t.remote.size, t.remote.content_hash, t.source.size, t.source.content_hash)
                    for p, t in sorted(aliases.items())
                ],
            )
            conn.commit()
            conn.close()
            conn = None

            os.replace(tmp_path, target)
            tmp_path = None
            logger.info(f"Saved base snapshot with {len(entries)} entries to {self.db_path}")
        except (sqlite3.Error, OSError) as e:
            logger.error(f"Error saving base snapshot to {self.db_path}: {e}")
            raise StateDBError(f"Cannot write base snapshot {self.db_path}: {e}") from e
        finally:
            if conn:
                conn.close()
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)

    def discard(self) -> None:
        """Delete the base snapshot, forgetting all sync history."""
        try:
            Path(self.db_path).unlink(missing_ok=True)
            logger.info(f"Discarded base snapshot {self.db_path}")
        except OSError as e:
            raise StateDBError(f"Cannot delete base snapshot {self.db_path}: {e}") from e
