"""Tree service: validated create/rename/move/pin/delete over a NodeStore."""

import uuid
from collections.abc import Callable

from loguru import logger

from nook.config import MAX_NAME_LENGTH
from nook.core.timestamps import Clock, next_timestamp, now_ms
from nook.core.tree.hierarchy import (
    collect_descendants,
    get_ancestors,
    validate_move,
    validate_parent,
)
from nook.core.tree.naming import clean_name, resolve_unique_name
from nook.core.tree.navigation import build_tree
from nook.core.tree.ordering import splice_orders
from nook.models.node import Node, NodeKind, NodePatch, TreeEntry
from nook.protocols import NodeStore
from nook.result import Err, ErrorKind, Ok, Result, err, not_found


def _new_id() -> str:
    return uuid.uuid4().hex


def _blank(value: str | None) -> bool:
    return value is not None and not value.strip()


class TreeService:
    """All tree operations for one owner within one project.

    Each call validates its input, checks structure, then writes through
    the store in as few calls as possible. Failures come back as ``Err``
    values; the first failure stops the operation.

    There is no locking. Read-then-write sequences pass the version they
    read, so a concurrent writer surfaces as ``Conflict`` instead of being
    silently overwritten.
    """

    def __init__(
        self,
        store: NodeStore,
        *,
        owner_id: str,
        project_id: str,
        clock: Clock = now_ms,
        max_name_length: int = MAX_NAME_LENGTH,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        if not owner_id or not project_id:
            msg = "TreeService requires an owner_id and a project_id"
            raise ValueError(msg)
        self.store = store
        self.owner_id = owner_id
        self.project_id = project_id
        self.clock = clock
        self.max_name_length = max_name_length
        self.id_factory = id_factory

    # --- Reads ---

    def get(self, node_id: str) -> Result[Node]:
        if not node_id or _blank(node_id):
            return err(ErrorKind.INVALID_INPUT, "Invalid item ID provided.")
        loaded = self.store.get(node_id, self.owner_id)
        if isinstance(loaded, Err):
            return loaded
        if loaded.value.project_id != self.project_id:
            return not_found(node_id)
        return loaded

    def list_children(self, parent_id: str | None = None) -> Result[list[Node]]:
        if _blank(parent_id):
            return err(ErrorKind.INVALID_INPUT, "Invalid folder ID provided.")
        return self.store.list_children(parent_id, self.owner_id, self.project_id)

    def list_all(self) -> Result[list[Node]]:
        return self.store.list_all(self.owner_id, self.project_id)

    def build_tree(self) -> Result[tuple[TreeEntry, ...]]:
        nodes = self.list_all()
        if isinstance(nodes, Err):
            return nodes
        return Ok(build_tree(nodes.value))

    def breadcrumbs(self, node_id: str) -> Result[list[Node]]:
        """Ancestors of a node, root first."""
        loaded = self.get(node_id)
        if isinstance(loaded, Err):
            return loaded
        ancestors = get_ancestors(self.store, loaded.value, owner_id=self.owner_id)
        if isinstance(ancestors, Err):
            return ancestors
        return Ok(list(reversed(ancestors.value)))

    def search(self, query: str) -> Result[list[Node]]:
        text = (query or "").strip()
        if not text:
            return err(ErrorKind.INVALID_QUERY, "Search query cannot be empty.")
        return self.store.search(text, self.owner_id, self.project_id)

    # --- Mutations ---

    def create(
        self,
        kind: NodeKind | str,
        name: str,
        *,
        parent_id: str | None = None,
        content: str | None = None,
        index: int | None = None,
    ) -> Result[Node]:
        """Create a node under ``parent_id`` (None = project root).

        The name is trimmed and suffixed with ``(n)`` if a sibling already
        uses it. Without ``index`` the node goes after its siblings.
        """
        try:
            kind = NodeKind(kind)
        except ValueError:
            return err(ErrorKind.INVALID_INPUT, f"Invalid item type: {kind!r}")
        cleaned = clean_name(name, max_length=self.max_name_length)
        if isinstance(cleaned, Err):
            return cleaned
        if _blank(parent_id):
            return err(ErrorKind.INVALID_INPUT, "Invalid folder ID provided.")
        if index is not None and index < 0:
            return err(ErrorKind.INVALID_INPUT, "Position cannot be negative.")
        if content is not None and kind.is_container:
            return err(ErrorKind.INVALID_INPUT, f"A {kind} cannot hold content.")

        parent = validate_parent(
            self.store,
            parent_id,
            owner_id=self.owner_id,
            project_id=self.project_id,
            child_kind=kind,
        )
        if isinstance(parent, Err):
            return parent

        siblings = self.list_children(parent_id)
        if isinstance(siblings, Err):
            return siblings

        unique = self._unique_name(cleaned.value, siblings.value)
        if isinstance(unique, Err):
            return unique
        node_id = self.id_factory()
        ranks = splice_orders(siblings.value, node_id, index)
        now = next_timestamp(self.clock)
        node = Node(
            id=node_id,
            owner_id=self.owner_id,
            project_id=self.project_id,
            parent_id=parent_id,
            kind=kind,
            name=unique.value,
            order=ranks.pop(node_id),
            created_at=now,
            updated_at=now,
            content=None if kind.is_container else (content or ""),
        )
        created = self.store.insert(node)
        if isinstance(created, Err):
            return created

        if ranks:
            shifted = self.store.replace_many(
                self._rank_patches(siblings.value, ranks), self.owner_id
            )
            if isinstance(shifted, Err):
                # Undo the insert so the create is all-or-nothing.
                undone = self.store.remove(node_id, self.owner_id)
                if isinstance(undone, Err):
                    logger.warning("Could not roll back item {}: {}", node_id, undone.message)
                return shifted

        logger.debug("Created {} {!r} ({})", kind, unique.value, node_id)
        return created

    def rename(self, node_id: str, new_name: str) -> Result[Node]:
        cleaned = clean_name(new_name, max_length=self.max_name_length)
        if isinstance(cleaned, Err):
            return cleaned
        loaded = self.get(node_id)
        if isinstance(loaded, Err):
            return loaded
        node = loaded.value
        if cleaned.value == node.name:
            return Ok(node)

        siblings = self.list_children(node.parent_id)
        if isinstance(siblings, Err):
            return siblings
        unique = self._unique_name(cleaned.value, [s for s in siblings.value if s.id != node.id])
        if isinstance(unique, Err):
            return unique
        result = self.store.replace(
            NodePatch(
                id=node.id,
                name=unique.value,
                updated_at=next_timestamp(self.clock, node.updated_at),
                expected_version=node.version,
            ),
            self.owner_id,
        )
        if isinstance(result, Ok):
            logger.debug("Renamed {} {!r} -> {!r}", node.id, node.name, unique.value)
        return result

    def update_content(self, node_id: str, content: str) -> Result[Node]:
        """Replace the content of a leaf node."""
        loaded = self.get(node_id)
        if isinstance(loaded, Err):
            return loaded
        node = loaded.value
        if node.is_container:
            return err(ErrorKind.INVALID_INPUT, f"A {node.kind} cannot hold content.")
        return self.store.replace(
            NodePatch(
                id=node.id,
                content=content,
                updated_at=next_timestamp(self.clock, node.updated_at),
                expected_version=node.version,
            ),
            self.owner_id,
        )

    def toggle_pin(self, node_id: str) -> Result[Node]:
        loaded = self.get(node_id)
        if isinstance(loaded, Err):
            return loaded
        node = loaded.value
        return self.store.replace(
            NodePatch(
                id=node.id,
                is_pinned=not node.is_pinned,
                updated_at=next_timestamp(self.clock, node.updated_at),
                expected_version=node.version,
            ),
            self.owner_id,
        )

    def move(
        self, node_id: str, new_parent_id: str | None, index: int | None = None
    ) -> Result[Node]:
        """Reparent a node, optionally at ``index`` among its new siblings.

        The name is suffixed if it collides in the new folder. Moving onto
        the current parent without an index changes nothing.
        """
        if _blank(new_parent_id):
            return err(ErrorKind.INVALID_INPUT, "Invalid folder ID provided.")
        if index is not None and index < 0:
            return err(ErrorKind.INVALID_INPUT, "Position cannot be negative.")
        loaded = self.get(node_id)
        if isinstance(loaded, Err):
            return loaded
        node = loaded.value
        if new_parent_id == node.id:
            return err(ErrorKind.SELF_MOVE, "Cannot move an item into itself")
        if new_parent_id == node.parent_id and index is None:
            return Ok(node)

        parent = validate_parent(
            self.store,
            new_parent_id,
            owner_id=self.owner_id,
            project_id=self.project_id,
            child_kind=node.kind,
        )
        if isinstance(parent, Err):
            return parent
        legal = validate_move(self.store, node, parent.value, owner_id=self.owner_id)
        if isinstance(legal, Err):
            return legal

        return self._place(node, new_parent_id, index)

    def reorder(self, node_id: str, index: int) -> Result[Node]:
        """Move a node to ``index`` within its current parent."""
        if index is None or index < 0:
            return err(ErrorKind.INVALID_INPUT, "Target position is required.")
        loaded = self.get(node_id)
        if isinstance(loaded, Err):
            return loaded
        return self._place(loaded.value, loaded.value.parent_id, index)

    def delete(self, node_id: str) -> Result[None]:
        """Delete a node and, for containers, everything beneath it."""
        loaded = self.get(node_id)
        if isinstance(loaded, Err):
            return loaded
        node = loaded.value

        descendants = collect_descendants(self.store, node, owner_id=self.owner_id)
        if isinstance(descendants, Err):
            return descendants
        # Children before parents, sent as one batch.
        ids = [d.id for d in descendants.value] + [node.id]
        removed = self.store.remove_many(ids, self.owner_id)
        if isinstance(removed, Err):
            return removed

        logger.info("Deleted {!r} and {} descendant(s)", node.name, len(descendants.value))
        return Ok(None)

    # --- Helpers ---

    def _place(self, node: Node, parent_id: str | None, index: int | None) -> Result[Node]:
        siblings = self.list_children(parent_id)
        if isinstance(siblings, Err):
            return siblings
        others = [s for s in siblings.value if s.id != node.id]

        name = node.name
        if parent_id != node.parent_id:
            unique = self._unique_name(node.name, others)
            if isinstance(unique, Err):
                return unique
            name = unique.value

        ranks = splice_orders(others, node.id, index)
        own = NodePatch(
            id=node.id,
            name=name if name != node.name else None,
            parent_id=parent_id,
            order=ranks.pop(node.id),
            updated_at=next_timestamp(self.clock, node.updated_at),
            expected_version=node.version,
        )
        result = self.store.replace_many(
            [own, *self._rank_patches(others, ranks)], self.owner_id
        )
        if isinstance(result, Err):
            return result

        moved = result.value[0]
        logger.debug("Placed {} under {} at order {}", moved.id, parent_id, moved.order)
        return Ok(moved)

    def _unique_name(self, desired: str, siblings: list[Node]) -> Result[str]:
        """Resolve a sibling name clash without going over the length limit."""
        unique = resolve_unique_name(
            desired, (s.name for s in siblings), max_length=self.max_name_length
        )
        return clean_name(unique, max_length=self.max_name_length)

    def _rank_patches(self, siblings: list[Node], ranks: dict[str, int]) -> list[NodePatch]:
        by_id = {s.id: s for s in siblings}
        return [
            NodePatch(
                id=sibling_id,
                order=rank,
                updated_at=next_timestamp(self.clock, by_id[sibling_id].updated_at),
                expected_version=by_id[sibling_id].version,
            )
            for sibling_id, rank in ranks.items()
        ]
