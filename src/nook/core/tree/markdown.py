"""Render content trees as markdown outlines."""

import io
from collections.abc import Iterable

from nook.core.tree.navigation import iter_entries
from nook.models.node import TreeEntry


def render_tree_as_markdown(
    entries: Iterable[TreeEntry],
    *,
    max_depth: int | None = None,
    include_content: bool = False,
    show_ids: bool = False,
) -> str:
    """Render a forest as an indented bullet list.

    Args:
        entries: Root entries, as returned by ``build_tree``.
        max_depth: Max levels below the roots to include (None = unlimited).
        include_content: Whether to include leaf content under each leaf.
        show_ids: Append ``[id=...]`` to each line.

    Returns:
        Markdown string with bullet-list hierarchy.
    """
    out = io.StringIO()
    for entry in iter_entries(entries):
        if max_depth is not None and entry.depth > max_depth:
            continue
        node = entry.node
        indent = "    " * entry.depth
        pin = "📌 " if node.is_pinned else ""
        suffix = "/" if node.is_container else ""
        line = f"{indent}- {pin}{node.name}{suffix}"
        if show_ids:
            line += f"  [id={node.id}]"
        out.write(line + "\n")

        if include_content and node.content:
            for content_line in node.content.split("\n"):
                out.write(f"{indent}  > {content_line}\n")

        # Truncation indicator when children are cut off by max_depth
        if max_depth is not None and entry.depth == max_depth and entry.children:
            count = len(entry.children)
            noun = "child" if count == 1 else "children"
            out.write(f"{indent}    - ... ({count} more {noun}, id={node.id})\n")

    return out.getvalue()
