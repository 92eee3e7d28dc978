"""Sibling ordering: display sort, append positions, index splices."""

from collections.abc import Iterable, Sequence

from nook.models.node import Node


def sort_siblings(nodes: Iterable[Node]) -> list[Node]:
    """Pinned nodes first, then ascending ``order``."""
    return sorted(nodes, key=Node.sort_key)


def next_order(siblings: Iterable[Node]) -> int:
    """One past the current maximum ``order``, or 0 for an empty group."""
    return max((s.order for s in siblings), default=-1) + 1


def splice_orders(
    siblings: Sequence[Node],
    node_id: str,
    index: int | None,
) -> dict[str, int]:
    """Compute new ranks after placing ``node_id`` among ``siblings``.

    ``siblings`` is the target group in display order, without the node
    being placed. With ``index`` None the node is appended and nobody else
    moves. Otherwise the node is inserted at ``index`` (clamped to the
    group size) and the whole group is re-ranked 0..n.

    Returns only the ranks that need writing, including the placed node's.
    """
    if index is None:
        return {node_id: next_order(siblings)}

    ordered = [s.id for s in siblings if s.id != node_id]
    ordered.insert(min(index, len(ordered)), node_id)
    current = {s.id: s.order for s in siblings}

    changes: dict[str, int] = {}
    for rank, sibling_id in enumerate(ordered):
        if sibling_id == node_id or current.get(sibling_id) != rank:
            changes[sibling_id] = rank
    return changes
