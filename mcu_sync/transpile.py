"""Optional source transformation applied to files before upload."""

import shlex
import subprocess
from pathlib import PurePosixPath
from typing import List, Optional

from mcu_sync.logging_setup import get_logger

logger = get_logger()


class TranspileError(Exception):
    """Raised when a file cannot be transformed."""

    pass


class Transpiler:
    """Pipes qualifying files through an external command.

    The command reads the source on stdin and writes the transformed code to
    stdout, e.g. ``npx babel --filename {path}``. ``{path}`` is replaced by
    the file's relative path.
    """

    def __init__(
        self,
        command: Optional[str] = None,
        extensions: Optional[List[str]] = None,
        enabled: bool = False,
        timeout: float = 60,
    ):
        self.command = command
        self.extensions = [e.lower() for e in (extensions or [".js"])]
        self.enabled = enabled and bool(command)
        self.timeout = timeout
        if enabled and not command:
            logger.warning("Transpiling enabled but no transpile.command configured; disabled")

    def applies_to(self, relative_path: str) -> bool:
        """Check whether a file qualifies for transformation."""
        return self.enabled and PurePosixPath(relative_path).suffix.lower() in self.extensions

    def transpile(self, relative_path: str, data: bytes) -> bytes:
        """Transform a file's content.

        Raises:
            TranspileError: If the command fails or cannot be started
        """
        args = [a.replace("{path}", relative_path) for a in shlex.split(self.command)]
        try:
            result = subprocess.run(
                args,
                input=data,
                capture_output=True,
                timeout=self.timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise TranspileError(f"Cannot transpile {relative_path}: {e}") from e

        if result.returncode != 0:
            stderr = result.stderr.decode(errors="replace").strip()
            raise TranspileError(
                f"Transpiling {relative_path} failed (exit {result.returncode}): {stderr}"
            )
        logger.debug(f"Transpiled {relative_path}: {len(data)} -> {len(result.stdout)} bytes")
        return result.stdout
