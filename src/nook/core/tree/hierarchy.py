"""Structural checks: parent legality, cycle prevention, subtree collection."""

from collections import deque

from nook.models.node import ALLOWED_PARENTS, Node, NodeKind
from nook.protocols import NodeStore
from nook.result import Err, ErrorKind, Ok, Result, err


def validate_parent(
    store: NodeStore,
    parent_id: str | None,
    *,
    owner_id: str,
    project_id: str,
    child_kind: NodeKind,
) -> Result[Node | None]:
    """Check that ``parent_id`` may hold a child of ``child_kind``.

    Returns the parent node, or None for the (virtual) root.
    """
    if parent_id is None:
        parent_kind: NodeKind | None = None
        parent: Node | None = None
    else:
        loaded = store.get(parent_id, owner_id)
        if isinstance(loaded, Err):
            if loaded.kind is ErrorKind.NOT_FOUND:
                return err(ErrorKind.PARENT_NOT_FOUND, f"Parent folder {parent_id} not found")
            return loaded
        parent = loaded.value
        if parent.project_id != project_id or not parent.is_container:
            return err(ErrorKind.PARENT_NOT_FOUND, f"Parent folder {parent_id} not found")
        parent_kind = parent.kind

    if parent_kind not in ALLOWED_PARENTS[child_kind]:
        where = "the project root" if parent_kind is None else f"a {parent_kind}"
        return err(ErrorKind.INVALID_INPUT, f"A {child_kind} cannot be placed in {where}")
    return Ok(parent)


def get_ancestors(store: NodeStore, node: Node, *, owner_id: str) -> Result[list[Node]]:
    """Ancestors of ``node`` from its parent up to the root.

    Walks iteratively; stops if stored data already contains a cycle.
    """
    ancestors: list[Node] = []
    seen = {node.id}
    current = node.parent_id
    while current is not None and current not in seen:
        seen.add(current)
        loaded = store.get(current, owner_id)
        if isinstance(loaded, Err):
            return loaded
        ancestors.append(loaded.value)
        current = loaded.value.parent_id
    return Ok(ancestors)


def validate_move(
    store: NodeStore,
    node: Node,
    new_parent: Node | None,
    *,
    owner_id: str,
) -> Result[None]:
    """Reject moves that would make ``node`` its own ancestor."""
    if new_parent is None:
        return Ok(None)
    if new_parent.id == node.id:
        return err(ErrorKind.SELF_MOVE, "Cannot move an item into itself")
    if not node.is_container:
        return Ok(None)

    ancestors = get_ancestors(store, new_parent, owner_id=owner_id)
    if isinstance(ancestors, Err):
        return ancestors
    if any(a.id == node.id for a in ancestors.value):
        return err(ErrorKind.DESCENDANT_MOVE, "Cannot move an item into one of its descendants")
    return Ok(None)


def collect_descendants(store: NodeStore, node: Node, *, owner_id: str) -> Result[list[Node]]:
    """All descendants of ``node``, deepest levels first.

    Breadth-first so arbitrarily deep trees do not hit the recursion limit.
    """
    if not node.is_container:
        return Ok([])

    found: list[Node] = []
    seen = {node.id}
    todo: deque[str] = deque([node.id])
    while todo:
        parent_id = todo.popleft()
        children = store.list_children(parent_id, owner_id, node.project_id)
        if isinstance(children, Err):
            return children
        for child in children.value:
            if child.id in seen:
                continue
            seen.add(child.id)
            found.append(child)
            if child.is_container:
                todo.append(child.id)

    found.reverse()
    return Ok(found)
