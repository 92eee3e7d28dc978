"""Domain models for the nook content tree."""

from dataclasses import dataclass, field, replace
from enum import StrEnum


class NodeKind(StrEnum):
    """What a tree node represents."""

    FOLDER = "folder"
    FILE = "file"
    MANUSCRIPT = "manuscript"
    CHAPTER = "chapter"
    SCENE = "scene"
    IMAGE = "image"

    @property
    def is_container(self) -> bool:
        return self in CONTAINER_KINDS


CONTAINER_KINDS = frozenset({NodeKind.FOLDER, NodeKind.MANUSCRIPT, NodeKind.CHAPTER})
LEAF_KINDS = frozenset(NodeKind) - CONTAINER_KINDS

# Parent kinds each kind may live under; None is the project root.
ALLOWED_PARENTS: dict[NodeKind, frozenset[NodeKind | None]] = {
    NodeKind.FOLDER: frozenset({None, NodeKind.FOLDER}),
    NodeKind.FILE: frozenset({None, NodeKind.FOLDER}),
    NodeKind.MANUSCRIPT: frozenset({None}),
    NodeKind.CHAPTER: frozenset({NodeKind.MANUSCRIPT}),
    NodeKind.SCENE: frozenset({NodeKind.CHAPTER}),
    NodeKind.IMAGE: frozenset({NodeKind.CHAPTER}),
}


@dataclass(frozen=True)
class Node:
    """A single file, folder, manuscript, chapter or chapter entry."""

    id: str
    owner_id: str
    project_id: str
    parent_id: str | None
    kind: NodeKind
    name: str
    order: int
    created_at: int
    updated_at: int
    is_pinned: bool = False
    content: str | None = None
    version: int = 1

    @property
    def is_container(self) -> bool:
        return self.kind.is_container

    @property
    def size(self) -> int | None:
        """Byte length of the content, for leaf kinds only."""
        if self.is_container:
            return None
        return len((self.content or "").encode("utf-8"))

    def sort_key(self) -> tuple[bool, int, int, str]:
        """Display order: pinned first, then by order."""
        return (not self.is_pinned, self.order, self.created_at, self.id)


UNSET = object()


@dataclass(frozen=True)
class NodePatch:
    """Partial update applied by a store's ``replace``.

    ``parent_id`` uses a sentinel so that ``None`` (move to root) is
    distinguishable from "leave unchanged".
    """

    id: str
    name: str | None = None
    parent_id: object = UNSET
    order: int | None = None
    is_pinned: bool | None = None
    content: str | None = None
    updated_at: int | None = None
    expected_version: int | None = None

    @property
    def moves(self) -> bool:
        return self.parent_id is not UNSET

    def apply(self, node: Node) -> Node:
        """Return ``node`` with this patch applied and its version bumped."""
        changes: dict[str, object] = {"version": node.version + 1}
        if self.name is not None:
            changes["name"] = self.name
        if self.moves:
            changes["parent_id"] = self.parent_id
        if self.order is not None:
            changes["order"] = self.order
        if self.is_pinned is not None:
            changes["is_pinned"] = self.is_pinned
        if self.content is not None:
            changes["content"] = self.content
        if self.updated_at is not None:
            changes["updated_at"] = self.updated_at
        return replace(node, **changes)  # type: ignore[arg-type]


@dataclass(frozen=True)
class TreeEntry:
    """A node with its ordered children, as produced by ``build_tree``."""

    node: Node
    depth: int
    children: tuple["TreeEntry", ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Project:
    """A writing project owning one content tree."""

    id: str
    owner_id: str
    name: str
    created_at: int
    updated_at: int
    blurb: str = ""
