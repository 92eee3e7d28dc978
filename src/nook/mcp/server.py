"""MCP server exposing nook project and tree tools."""

import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from loguru import logger
from mcp.server.fastmcp import Context, FastMCP

from nook.config import DB_FILENAME, resolve_data_directory, resolve_max_name_length, resolve_owner
from nook.core.database.schema import open_database
from nook.core.projects import ProjectService
from nook.core.service import TreeService
from nook.core.store.factory import open_node_store
from nook.core.store.sqlite import SqliteProjectStore
from nook.core.tree.markdown import render_tree_as_markdown
from nook.core.tree.navigation import iter_entries
from nook.models.node import Node, Project, TreeEntry
from nook.result import Err


def _error(result: Err) -> dict[str, Any]:
    return {"error": result.message, "kind": str(result.kind)}


def _iso(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=UTC).isoformat()


def _node_summary(node: Node) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "id": node.id,
        "name": node.name,
        "kind": str(node.kind),
        "parent_id": node.parent_id,
        "is_pinned": node.is_pinned,
        "modified": _iso(node.updated_at),
    }
    if not node.is_container:
        entry["size"] = node.size
    return entry


def _project_summary(project: Project) -> dict[str, Any]:
    return {
        "id": project.id,
        "name": project.name,
        "blurb": project.blurb,
        "created": _iso(project.created_at),
        "modified": _iso(project.updated_at),
    }


def _entry_json(entry: TreeEntry, remaining_depth: int | None) -> dict[str, Any]:
    out = _node_summary(entry.node)
    if entry.children and (remaining_depth is None or remaining_depth > 0):
        next_depth = None if remaining_depth is None else remaining_depth - 1
        out["children"] = [_entry_json(c, next_depth) for c in entry.children]
    elif entry.children:
        out["child_count"] = len(entry.children)
    return out


# --- Core functions (testable without MCP context) ---


def nook_list_projects(projects: ProjectService) -> dict[str, Any]:
    """List the current owner's projects."""
    result = projects.list_projects()
    if isinstance(result, Err):
        return _error(result)
    return {
        "projects": [_project_summary(p) for p in result.value],
        "count": len(result.value),
    }


def nook_create_project(projects: ProjectService, *, name: str, blurb: str = "") -> dict[str, Any]:
    result = projects.create_project(name, blurb)
    if isinstance(result, Err):
        return _error(result)
    return {"project": _project_summary(result.value)}


def nook_read_tree(
    tree: TreeService,
    *,
    max_depth: int | None = None,
    output_format: str = "markdown",
    include_content: bool = False,
) -> dict[str, Any]:
    """Read the whole project tree as markdown or structured JSON.

    Args:
        max_depth: Max depth levels below the roots (None = unlimited).
        output_format: "markdown" or "json".
        include_content: Include leaf content (markdown only).
    """
    result = tree.build_tree()
    if isinstance(result, Err):
        return _error(result)
    entries = result.value
    count = len(iter_entries(entries))

    if output_format == "json":
        return {"items": [_entry_json(e, max_depth) for e in entries], "count": count}

    md = render_tree_as_markdown(
        entries, max_depth=max_depth, include_content=include_content, show_ids=True
    )
    estimated_tokens = len(md) // 4
    output: dict[str, Any] = {"content": md, "count": count, "estimated_tokens": estimated_tokens}
    if estimated_tokens > 5000:
        output["warning"] = (
            f"Large result (~{estimated_tokens} tokens). "
            "Consider using max_depth to limit output."
        )
    return output


def nook_read_item(tree: TreeService, *, node_id: str) -> dict[str, Any]:
    """Read one item with its content, breadcrumbs and direct children."""
    loaded = tree.get(node_id)
    if isinstance(loaded, Err):
        return _error(loaded)
    node = loaded.value
    crumbs = tree.breadcrumbs(node_id)
    if isinstance(crumbs, Err):
        return _error(crumbs)

    output: dict[str, Any] = {
        "item": _node_summary(node),
        "breadcrumbs": " > ".join(a.name for a in crumbs.value),
    }
    if node.is_container:
        children = tree.list_children(node_id)
        if isinstance(children, Err):
            return _error(children)
        output["children"] = [_node_summary(c) for c in children.value]
    else:
        output["content"] = node.content or ""
    return output


def nook_list_children(tree: TreeService, *, parent_id: str | None = None) -> dict[str, Any]:
    result = tree.list_children(parent_id)
    if isinstance(result, Err):
        return _error(result)
    return {"items": [_node_summary(n) for n in result.value], "count": len(result.value)}


def nook_search(tree: TreeService, *, query: str, limit: int = 20) -> dict[str, Any]:
    """Find items by name (any case) or leaf content (exact case).

    Args:
        query: Text to look for.
        limit: Max results (1-100, default 20).
    """
    result = tree.search(query)
    if isinstance(result, Err):
        return {**_error(result), "results": [], "count": 0, "total": 0}
    limit = max(1, min(limit, 100))
    hits = result.value[:limit]
    return {
        "results": [_node_summary(n) for n in hits],
        "count": len(hits),
        "total": len(result.value),
    }


# --- Write core functions ---


def nook_create_item(
    tree: TreeService,
    *,
    kind: str,
    name: str,
    parent_id: str | None = None,
    content: str | None = None,
    index: int | None = None,
) -> dict[str, Any]:
    """Create an item; the name gets a " (n)" suffix if a sibling already uses it."""
    result = tree.create(kind, name, parent_id=parent_id, content=content, index=index)
    if isinstance(result, Err):
        return _error(result)
    return {"item": _node_summary(result.value)}


def nook_rename_item(tree: TreeService, *, node_id: str, name: str) -> dict[str, Any]:
    result = tree.rename(node_id, name)
    if isinstance(result, Err):
        return _error(result)
    return {"item": _node_summary(result.value)}


def nook_move_item(
    tree: TreeService,
    *,
    node_id: str,
    parent_id: str | None = None,
    index: int | None = None,
) -> dict[str, Any]:
    result = tree.move(node_id, parent_id, index)
    if isinstance(result, Err):
        return _error(result)
    return {"item": _node_summary(result.value)}


def nook_reorder_item(tree: TreeService, *, node_id: str, index: int) -> dict[str, Any]:
    result = tree.reorder(node_id, index)
    if isinstance(result, Err):
        return _error(result)
    return {"item": _node_summary(result.value)}


def nook_toggle_pin(tree: TreeService, *, node_id: str) -> dict[str, Any]:
    result = tree.toggle_pin(node_id)
    if isinstance(result, Err):
        return _error(result)
    return {"item": _node_summary(result.value)}


def nook_write_item(tree: TreeService, *, node_id: str, content: str) -> dict[str, Any]:
    result = tree.update_content(node_id, content)
    if isinstance(result, Err):
        return _error(result)
    return {"item": _node_summary(result.value)}


def nook_delete_item(tree: TreeService, *, node_id: str) -> dict[str, Any]:
    result = tree.delete(node_id)
    if isinstance(result, Err):
        return _error(result)
    return {"deleted": node_id}


# --- MCP Server Setup ---


@dataclass
class ServerContext:
    """Shared resources for the MCP server lifetime."""

    conn: sqlite3.Connection
    projects: ProjectService


@asynccontextmanager
async def server_lifespan(_server: FastMCP) -> AsyncIterator[ServerContext]:
    """Open database on startup, close on shutdown."""
    db_path = resolve_data_directory() / DB_FILENAME
    conn = open_database(db_path)
    try:
        owner = resolve_owner()
        projects = ProjectService(
            SqliteProjectStore(conn),
            owner_id=owner,
            nodes=open_node_store(conn),
            max_name_length=resolve_max_name_length(),
        )
        logger.info("Serving projects of {} from {}", owner, db_path)
        yield ServerContext(conn=conn, projects=projects)
    finally:
        conn.close()


mcp_server = FastMCP(
    "nook",
    instructions="""\
nook stores writing projects as trees of folders and files, and manuscripts
made of chapters holding scenes and images.

## Workflow

1. Call nook_list_projects_tool to find the project id.
2. Call nook_read_tree_tool to see the outline (ids are shown in brackets).
3. Use nook_read_item_tool to read one file or scene in full.

## Rules
- folders and files live at the root or inside folders.
- manuscripts live at the root; chapters inside manuscripts; scenes and
  images inside chapters.
- Names are unique per folder; a clashing name gets a " (n)" suffix.
- Pass index to place an item at a position; pinned items stay on top.
""",
    lifespan=server_lifespan,
)


def _ctx(mcp_ctx: Context) -> ServerContext:
    return mcp_ctx.request_context.lifespan_context  # type: ignore[return-value]


def _open_tree(mcp_ctx: Context, project: str) -> TreeService | dict[str, Any]:
    result = _ctx(mcp_ctx).projects.open_tree(project)
    if isinstance(result, Err):
        return _error(result)
    return result.value


# --- MCP Tool Wrappers ---


@mcp_server.tool()
async def nook_list_projects_tool(ctx: Context) -> dict[str, Any]:
    """List your writing projects with their ids."""
    return nook_list_projects(_ctx(ctx).projects)


@mcp_server.tool()
async def nook_create_project_tool(ctx: Context, name: str, blurb: str = "") -> dict[str, Any]:
    """Create a new project.

    Args:
        name: Project name.
        blurb: Short description (max 500 characters).
    """
    return nook_create_project(_ctx(ctx).projects, name=name, blurb=blurb)


@mcp_server.tool()
async def nook_read_tree_tool(
    ctx: Context,
    project: str,
    max_depth: int | None = None,
    output_format: str = "markdown",
    include_content: bool = False,
) -> dict[str, Any]:
    """Read a project's whole tree.

    Args:
        project: Project id.
        max_depth: Max depth levels (None = unlimited).
        output_format: "markdown" (human-readable) or "json" (structured).
        include_content: Include file and scene text in markdown output.
    """
    tree = _open_tree(ctx, project)
    if isinstance(tree, dict):
        return tree
    return nook_read_tree(
        tree, max_depth=max_depth, output_format=output_format, include_content=include_content
    )


@mcp_server.tool()
async def nook_read_item_tool(ctx: Context, project: str, node_id: str) -> dict[str, Any]:
    """Read one item: its content (leaves) or children (containers), with breadcrumbs.

    Args:
        project: Project id.
        node_id: Item id.
    """
    tree = _open_tree(ctx, project)
    if isinstance(tree, dict):
        return tree
    return nook_read_item(tree, node_id=node_id)


@mcp_server.tool()
async def nook_list_children_tool(
    ctx: Context, project: str, parent_id: str | None = None
) -> dict[str, Any]:
    """List the direct children of a folder (None = project root), in display order.

    Args:
        project: Project id.
        parent_id: Folder, manuscript or chapter id.
    """
    tree = _open_tree(ctx, project)
    if isinstance(tree, dict):
        return tree
    return nook_list_children(tree, parent_id=parent_id)


@mcp_server.tool()
async def nook_search_tool(
    ctx: Context, project: str, query: str, limit: int = 20
) -> dict[str, Any]:
    """Search item names (case-insensitive) and file/scene content (case-sensitive).

    Args:
        project: Project id.
        query: Text to look for.
        limit: Max results (1-100, default 20).
    """
    tree = _open_tree(ctx, project)
    if isinstance(tree, dict):
        return tree
    return nook_search(tree, query=query, limit=limit)


@mcp_server.tool()
async def nook_create_item_tool(
    ctx: Context,
    project: str,
    kind: str,
    name: str,
    parent_id: str | None = None,
    content: str | None = None,
    index: int | None = None,
) -> dict[str, Any]:
    """Create a folder, file, manuscript, chapter, scene or image.

    Args:
        project: Project id.
        kind: One of folder, file, manuscript, chapter, scene, image.
        name: Item name.
        parent_id: Parent id (None = project root).
        content: Initial text for files and scenes, or a URL for images.
        index: Position among siblings (None = last).
    """
    tree = _open_tree(ctx, project)
    if isinstance(tree, dict):
        return tree
    return nook_create_item(
        tree, kind=kind, name=name, parent_id=parent_id, content=content, index=index
    )


@mcp_server.tool()
async def nook_rename_item_tool(
    ctx: Context, project: str, node_id: str, name: str
) -> dict[str, Any]:
    """Rename an item.

    Args:
        project: Project id.
        node_id: Item id.
        name: New name.
    """
    tree = _open_tree(ctx, project)
    if isinstance(tree, dict):
        return tree
    return nook_rename_item(tree, node_id=node_id, name=name)


@mcp_server.tool()
async def nook_move_item_tool(
    ctx: Context,
    project: str,
    node_id: str,
    parent_id: str | None = None,
    index: int | None = None,
) -> dict[str, Any]:
    """Move an item to a new parent (None = project root), optionally at a position.

    Args:
        project: Project id.
        node_id: Item id.
        parent_id: New parent id.
        index: Position among the new siblings (None = last).
    """
    tree = _open_tree(ctx, project)
    if isinstance(tree, dict):
        return tree
    return nook_move_item(tree, node_id=node_id, parent_id=parent_id, index=index)


@mcp_server.tool()
async def nook_reorder_item_tool(
    ctx: Context, project: str, node_id: str, index: int
) -> dict[str, Any]:
    """Move an item to a new position within its current parent.

    Args:
        project: Project id.
        node_id: Item id.
        index: New position (0 = first).
    """
    tree = _open_tree(ctx, project)
    if isinstance(tree, dict):
        return tree
    return nook_reorder_item(tree, node_id=node_id, index=index)


@mcp_server.tool()
async def nook_toggle_pin_tool(ctx: Context, project: str, node_id: str) -> dict[str, Any]:
    """Pin an item to the top of its folder, or unpin it."""
    tree = _open_tree(ctx, project)
    if isinstance(tree, dict):
        return tree
    return nook_toggle_pin(tree, node_id=node_id)


@mcp_server.tool()
async def nook_write_item_tool(
    ctx: Context, project: str, node_id: str, content: str
) -> dict[str, Any]:
    """Replace the content of a file, scene or image.

    Args:
        project: Project id.
        node_id: Item id.
        content: New content.
    """
    tree = _open_tree(ctx, project)
    if isinstance(tree, dict):
        return tree
    return nook_write_item(tree, node_id=node_id, content=content)


@mcp_server.tool()
async def nook_delete_item_tool(ctx: Context, project: str, node_id: str) -> dict[str, Any]:
    """Delete an item and everything beneath it.

    Args:
        project: Project id.
        node_id: Item id.
    """
    tree = _open_tree(ctx, project)
    if isinstance(tree, dict):
        return tree
    return nook_delete_item(tree, node_id=node_id)


def run_mcp_server() -> None:
    """Run the MCP server with stdio transport."""
    from nook.logging_config import configure_logging

    configure_logging(verbose=False)
    mcp_server.run(transport="stdio")
