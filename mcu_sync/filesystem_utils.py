"""Path normalization, exclusion globs and content checksums."""

import hashlib
import re
from functools import lru_cache
from pathlib import Path
from typing import Iterable, List, Pattern

_CHUNK_SIZE = 64 * 1024


def normalize_path(path: str) -> str:
    """Normalize a relative path to the shared convention.

    Slash-separated, no leading or trailing slash, no empty or ``.`` segments.
    The sync root itself is the empty string.
    """
    parts = [p for p in str(path).replace("\\", "/").split("/") if p and p != "."]
    if ".." in parts:
        raise ValueError(f"Path escapes the sync root: {path}")
    return "/".join(parts)


def join_path(parent: str, name: str) -> str:
    """Join a normalized parent path and a child name."""
    return f"{parent}/{name}" if parent else name


def parent_paths(path: str) -> List[str]:
    """Return every ancestor subpath of ``path``, nearest first, excluding the root."""
    parts = normalize_path(path).split("/")
    return ["/".join(parts[:i]) for i in range(len(parts) - 1, 0, -1)]


def is_under(path: str, ancestor: str) -> bool:
    """Check whether ``path`` equals ``ancestor`` or lies inside it."""
    if not ancestor:
        return True
    return path == ancestor or path.startswith(ancestor + "/")


def md5_bytes(data: bytes) -> str:
    """Compute the hex MD5 checksum of a byte string."""
    return hashlib.md5(data).hexdigest()


def md5_file(path: Path) -> str:
    """Compute the hex MD5 checksum of a file without loading it whole."""
    digest = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


@lru_cache(maxsize=256)
def glob_to_regex(pattern: str) -> Pattern:
    """Compile an exclusion glob into a regex matched against normalized paths.

    ``**`` spans any number of segments, ``*`` and ``?`` stay within one
    segment. A glob without a slash matches a name at any depth; a glob with
    a slash is anchored at the sync root.
    """
    raw = pattern.strip()
    anchored = "/" in raw.rstrip("/")
    raw = normalize_path(raw) if raw.strip("/") else raw

    regex = ""
    i = 0
    while i < len(raw):
        if raw.startswith("**/", i):
            regex += "(?:.*/)?"
            i += 3
        elif raw.startswith("**", i):
            regex += ".*"
            i += 2
        elif raw[i] == "*":
            regex += "[^/]*"
            i += 1
        elif raw[i] == "?":
            regex += "[^/]"
            i += 1
        else:
            regex += re.escape(raw[i])
            i += 1

    if not anchored:
        regex = "(?:.*/)?" + regex
    return re.compile(f"^{regex}$")


def matches_any_glob(path: str, globs: Iterable[str]) -> bool:
    """Check whether a normalized path matches any of the globs."""
    norm = normalize_path(path)
    return any(glob_to_regex(g).match(norm) for g in globs if g)


def matches_any_subpath(path: str, globs: Iterable[str]) -> bool:
    """Check whether a path or any of its ancestor subpaths matches a glob."""
    globs = list(globs)
    if not globs:
        return False
    norm = normalize_path(path)
    return any(matches_any_glob(p, globs) for p in [norm] + parent_paths(norm))
