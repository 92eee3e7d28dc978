"""Dict-backed stores, used for tests and throwaway sessions."""

from collections.abc import Sequence

from loguru import logger

from nook.core.tree.ordering import sort_siblings
from nook.models.node import LEAF_KINDS, Node, NodePatch, Project
from nook.result import Err, ErrorKind, Ok, Result, err, not_found, version_conflict


class MemoryNodeStore:
    """In-memory ``NodeStore`` keyed by node id.

    With ``enforce_unique_names`` the store rejects a write that would give
    two siblings the same name, as the SQLite unique index does.
    """

    def __init__(self, *, enforce_unique_names: bool = True) -> None:
        self._nodes: dict[str, Node] = {}
        self.enforce_unique_names = enforce_unique_names

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, node_id: str, owner_id: str) -> Result[Node]:
        node = self._nodes.get(node_id)
        if node is None or node.owner_id != owner_id:
            return not_found(node_id)
        return Ok(node)

    def list_children(
        self, parent_id: str | None, owner_id: str, project_id: str
    ) -> Result[list[Node]]:
        return Ok(sort_siblings(self._group(self._nodes, parent_id, owner_id, project_id)))

    def list_all(self, owner_id: str, project_id: str) -> Result[list[Node]]:
        return Ok(
            [
                n
                for n in self._nodes.values()
                if n.owner_id == owner_id and n.project_id == project_id
            ]
        )

    def insert(self, node: Node) -> Result[Node]:
        if node.id in self._nodes:
            return err(ErrorKind.CONFLICT, f"Item with id {node.id} already exists")
        clash = self._name_clash(self._nodes, node)
        if clash is not None:
            return clash
        self._nodes[node.id] = node
        return Ok(node)

    def replace(self, patch: NodePatch, owner_id: str) -> Result[Node]:
        result = self.replace_many([patch], owner_id)
        if isinstance(result, Err):
            return result
        return Ok(result.value[0])

    def replace_many(self, patches: Sequence[NodePatch], owner_id: str) -> Result[list[Node]]:
        staged = dict(self._nodes)
        updated: list[Node] = []
        for patch in patches:
            current = staged.get(patch.id)
            if current is None or current.owner_id != owner_id:
                return not_found(patch.id)
            if patch.expected_version is not None and patch.expected_version != current.version:
                return version_conflict(patch.id, patch.expected_version, current.version)
            node = patch.apply(current)
            staged[node.id] = node
            updated.append(node)

        for node in updated:
            clash = self._name_clash(staged, node)
            if clash is not None:
                return clash

        self._nodes = staged
        return Ok([staged[n.id] for n in updated])

    def remove(self, node_id: str, owner_id: str) -> Result[None]:
        loaded = self.get(node_id, owner_id)
        if isinstance(loaded, Err):
            return loaded
        del self._nodes[node_id]
        return Ok(None)

    def remove_many(self, node_ids: Sequence[str], owner_id: str) -> Result[None]:
        staged = dict(self._nodes)
        for node_id in node_ids:
            node = staged.get(node_id)
            if node is None or node.owner_id != owner_id:
                logger.debug("Skipping removal of missing item {}", node_id)
                continue
            del staged[node_id]
        self._nodes = staged
        return Ok(None)

    def search(self, text: str, owner_id: str, project_id: str) -> Result[list[Node]]:
        needle = text.lower()
        hits = [
            n
            for n in self._nodes.values()
            if n.owner_id == owner_id
            and n.project_id == project_id
            and (
                needle in n.name.lower()
                or (n.kind in LEAF_KINDS and n.content is not None and text in n.content)
            )
        ]
        return Ok(sorted(hits, key=lambda n: (n.name.lower(), n.id)))

    @staticmethod
    def _group(
        nodes: dict[str, Node], parent_id: str | None, owner_id: str, project_id: str
    ) -> list[Node]:
        return [
            n
            for n in nodes.values()
            if n.owner_id == owner_id and n.project_id == project_id and n.parent_id == parent_id
        ]

    def _name_clash(self, nodes: dict[str, Node], node: Node) -> Err | None:
        if not self.enforce_unique_names:
            return None
        for other in self._group(nodes, node.parent_id, node.owner_id, node.project_id):
            if other.id != node.id and other.name == node.name:
                return err(
                    ErrorKind.CONFLICT,
                    f"An item named {node.name!r} already exists in this folder",
                )
        return None


class MemoryProjectStore:
    """In-memory ``ProjectStore``."""

    def __init__(self) -> None:
        self._projects: dict[str, Project] = {}

    def get(self, project_id: str) -> Result[Project]:
        project = self._projects.get(project_id)
        if project is None:
            return err(ErrorKind.NOT_FOUND, "Project not found")
        return Ok(project)

    def list_by_owner(self, owner_id: str) -> Result[list[Project]]:
        projects = [p for p in self._projects.values() if p.owner_id == owner_id]
        return Ok(sorted(projects, key=lambda p: (p.created_at, p.id)))

    def insert(self, project: Project) -> Result[Project]:
        if project.id in self._projects:
            return err(ErrorKind.CONFLICT, f"Project {project.id} already exists")
        self._projects[project.id] = project
        return Ok(project)

    def update(self, project: Project) -> Result[Project]:
        if project.id not in self._projects:
            return err(ErrorKind.NOT_FOUND, "Project not found")
        self._projects[project.id] = project
        return Ok(project)

    def remove(self, project_id: str) -> Result[None]:
        if self._projects.pop(project_id, None) is None:
            return err(ErrorKind.NOT_FOUND, "Project not found")
        return Ok(None)
