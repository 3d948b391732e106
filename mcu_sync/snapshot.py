"""Filesystem snapshot model shared by the local, remote and base sides.

A snapshot is a tree rooted at a :class:`DirNode`. Scanners produce flat
:class:`StatEntry` lists which :func:`to_structure` turns into a tree; the
persisted base snapshot goes the other way through :func:`to_stat_entries`.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple, Union

from mcu_sync.filesystem_utils import join_path, normalize_path


class NodeKind(Enum):
    """Kinds of filesystem nodes."""

    FILE = "file"
    DIR = "dir"


@dataclass
class StatEntry:
    """Flat stat record produced by a snapshot source."""

    relative_path: str
    kind: NodeKind
    size: Optional[int] = None
    content_hash: Optional[str] = None


@dataclass(frozen=True, eq=False)
class FileNode:
    """A file: equal to another file iff size and content hash match.

    When either side carries no content hash (devices may not report one)
    only the sizes are compared.
    """

    size: Optional[int]
    content_hash: Optional[str] = None

    @property
    def kind(self) -> NodeKind:
        return NodeKind.FILE

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FileNode):
            return NotImplemented
        if self.size != other.size:
            return False
        if self.content_hash is None or other.content_hash is None:
            return True
        return self.content_hash == other.content_hash

    def __hash__(self) -> int:
        return hash(self.size)


@dataclass
class DirNode:
    """A directory: equal to another directory iff all children are equal."""

    children: Dict[str, "Node"] = field(default_factory=dict)

    @property
    def kind(self) -> NodeKind:
        return NodeKind.DIR


Node = Union[FileNode, DirNode]


def node_kind(node: Optional[Node]) -> Optional[NodeKind]:
    """Return the kind of a node, or None when absent."""
    return node.kind if node is not None else None


def to_structure(stats: List[StatEntry]) -> DirNode:
    """Build a snapshot tree from a flat stat list.

    The result does not depend on the order of ``stats``: entries are inserted
    shortest path first, and a directory entry never replaces children that
    were already materialized for it.

    Raises:
        ValueError: If two entries share a path or a file has children
    """
    root = DirNode()
    seen = set()
    ordered = sorted(
        stats, key=lambda s: (normalize_path(s.relative_path).count("/"), s.relative_path)
    )
    for stat in ordered:
        path = normalize_path(stat.relative_path)
        if not path:
            continue
        if path in seen:
            raise ValueError(f"Duplicate path in snapshot: {path}")
        seen.add(path)

        parent = _materialize_parent(root, path, strict=True)
        name = path.rsplit("/", 1)[-1]
        if stat.kind == NodeKind.DIR:
            parent.children.setdefault(name, DirNode())
        else:
            parent.children[name] = FileNode(stat.size, stat.content_hash)
    return root


def to_stat_entries(tree: DirNode) -> List[StatEntry]:
    """Flatten a snapshot tree into stat entries sorted by path."""
    entries = []
    for path, node in walk(tree):
        if isinstance(node, FileNode):
            entries.append(StatEntry(path, NodeKind.FILE, node.size, node.content_hash))
        else:
            entries.append(StatEntry(path, NodeKind.DIR))
    return entries


def walk(node: Node, path: str = "") -> Iterator[Tuple[str, Node]]:
    """Yield ``(path, node)`` for every descendant, parents first, names sorted.

    The node passed in is not yielded itself.
    """
    if not isinstance(node, DirNode):
        return
    for name in sorted(node.children):
        child = node.children[name]
        child_path = join_path(path, name)
        yield child_path, child
        yield from walk(child, child_path)


def get_sub_structure(tree: DirNode, path: str) -> Optional[Node]:
    """Return the node at ``path``, or None when nothing exists there."""
    node: Node = tree
    norm = normalize_path(path)
    if not norm:
        return tree
    for part in norm.split("/"):
        if not isinstance(node, DirNode):
            return None
        node = node.children.get(part)
        if node is None:
            return None
    return node


def set_in_structure(tree: DirNode, path: str, node: Node) -> None:
    """Write ``node`` at ``path``, overwriting whatever was there.

    Missing ancestors are created as directories; an ancestor that is a file
    is replaced by a directory. Siblings are never touched.
    """
    norm = normalize_path(path)
    if not norm:
        raise ValueError("Cannot replace the snapshot root")
    parent = _materialize_parent(tree, norm, strict=False)
    parent.children[norm.rsplit("/", 1)[-1]] = node


def remove_from_structure(tree: DirNode, path: str) -> Optional[Node]:
    """Remove and return the node at ``path``; absent paths are a no-op."""
    norm = normalize_path(path)
    if not norm:
        raise ValueError("Cannot remove the snapshot root")
    head, _, name = norm.rpartition("/")
    parent = get_sub_structure(tree, head)
    if not isinstance(parent, DirNode):
        return None
    return parent.children.pop(name, None)


def describe_node(node: Optional[Node]) -> str:
    """Human readable one-line description of a node."""
    if node is None:
        return "does not exist"
    if isinstance(node, DirNode):
        return f"directory ({len(list(walk(node)))} entries)"
    checksum = node.content_hash[:8] if node.content_hash else "unknown"
    return f"file, {node.size} bytes, md5 {checksum}"


def _materialize_parent(tree: DirNode, path: str, strict: bool) -> DirNode:
    parent = tree
    for part in path.split("/")[:-1]:
        child = parent.children.get(part)
        if not isinstance(child, DirNode):
            if child is not None and strict:
                raise ValueError(f"File entry used as a directory: {part} in {path}")
            child = DirNode()
            parent.children[part] = child
        parent = child
    return parent
