"""Assemble flat node lists into nested, ordered trees."""

from collections import defaultdict, deque
from collections.abc import Iterable

from nook.core.tree.ordering import sort_siblings
from nook.models.node import Node, TreeEntry


def build_tree(nodes: Iterable[Node]) -> tuple[TreeEntry, ...]:
    """Nest ``nodes`` under their parents, siblings in display order.

    Nodes whose parent is not in ``nodes`` become roots instead of being
    dropped. Built iteratively, bottom-up, so depth is unbounded.
    """
    by_id = {n.id: n for n in nodes}
    children_of: dict[str | None, list[Node]] = defaultdict(list)
    for n in by_id.values():
        parent = n.parent_id if n.parent_id in by_id else None
        children_of[parent].append(n)

    roots = sort_siblings(children_of[None])
    visit_order: list[tuple[Node, int]] = []
    seen: set[str] = set()

    def walk(starts: list[Node]) -> None:
        todo: deque[tuple[Node, int]] = deque((r, 0) for r in starts)
        while todo:
            node, depth = todo.popleft()
            if node.id in seen:
                continue
            seen.add(node.id)
            visit_order.append((node, depth))
            for child in sort_siblings(children_of[node.id]):
                todo.append((child, depth + 1))

    walk(roots)
    # Members of a parent cycle are unreachable from any root; surface them as roots.
    leftovers = sort_siblings(n for n in by_id.values() if n.id not in seen)
    for n in leftovers:
        if n.id not in seen:
            roots.append(n)
            walk([n])

    built: dict[str, TreeEntry] = {}
    for node, depth in reversed(visit_order):
        kids = tuple(
            built[c.id]
            for c in sort_siblings(children_of[node.id])
            if c.id in built and built[c.id].depth == depth + 1
        )
        built[node.id] = TreeEntry(node=node, depth=depth, children=kids)

    return tuple(built[r.id] for r in roots)


def iter_entries(entries: Iterable[TreeEntry]) -> list[TreeEntry]:
    """Flatten a forest in display (pre-)order."""
    out: list[TreeEntry] = []
    stack = list(reversed(tuple(entries)))
    while stack:
        entry = stack.pop()
        out.append(entry)
        stack.extend(reversed(entry.children))
    return out
