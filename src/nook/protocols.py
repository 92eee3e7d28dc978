"""Persistence ports the tree and project services depend on."""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from nook.models.node import Node, NodePatch, Project
from nook.result import Result


@runtime_checkable
class NodeStore(Protocol):
    """Keyed storage of tree nodes.

    Every method returns a ``Result``; adapters translate their own
    backend exceptions into ``StorageError`` failures. Ownership mismatches
    are reported as ``NotFound``.
    """

    def get(self, node_id: str, owner_id: str) -> Result[Node]:
        """Load one node."""
        ...

    def list_children(
        self, parent_id: str | None, owner_id: str, project_id: str
    ) -> Result[list[Node]]:
        """Direct children of ``parent_id`` (None = root), pinned first then by order."""
        ...

    def list_all(self, owner_id: str, project_id: str) -> Result[list[Node]]:
        """Every node in the project."""
        ...

    def insert(self, node: Node) -> Result[Node]:
        """Persist a new node. ``Conflict`` on id or sibling-name collision."""
        ...

    def replace(self, patch: NodePatch, owner_id: str) -> Result[Node]:
        """Apply a partial update and bump the node's version."""
        ...

    def replace_many(self, patches: Sequence[NodePatch], owner_id: str) -> Result[list[Node]]:
        """Apply several patches atomically."""
        ...

    def remove(self, node_id: str, owner_id: str) -> Result[None]:
        """Delete one node (no cascade)."""
        ...

    def remove_many(self, node_ids: Sequence[str], owner_id: str) -> Result[None]:
        """Delete a batch of nodes as one unit."""
        ...

    def search(self, text: str, owner_id: str, project_id: str) -> Result[list[Node]]:
        """Substring match: case-insensitive on name, case-sensitive on leaf content."""
        ...


@runtime_checkable
class ProjectStore(Protocol):
    """Keyed storage of projects.

    Unlike ``NodeStore.get``, ``get`` is not owner-scoped: the project
    service needs to tell "missing" from "someone else's".
    """

    def get(self, project_id: str) -> Result[Project]:
        ...

    def list_by_owner(self, owner_id: str) -> Result[list[Project]]:
        ...

    def insert(self, project: Project) -> Result[Project]:
        ...

    def update(self, project: Project) -> Result[Project]:
        ...

    def remove(self, project_id: str) -> Result[None]:
        ...
