"""CLI for nook (projects, tree editing, MCP server)."""

import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated, NoReturn, TypeVar

import typer
from loguru import logger

from nook.config import DB_FILENAME, resolve_data_directory, resolve_max_name_length, resolve_owner
from nook.core.database.schema import open_database
from nook.core.projects import ProjectService
from nook.core.service import TreeService
from nook.core.store.factory import open_node_store
from nook.core.store.sqlite import SqliteProjectStore
from nook.core.tree.markdown import render_tree_as_markdown
from nook.logging_config import configure_logging
from nook.models.node import Node, NodeKind, Project
from nook.result import Err, Result

T = TypeVar("T")

app = typer.Typer(help="nook: organise manuscripts, chapters, files and folders.")
project_app = typer.Typer(help="Create, list, rename and delete projects.")
app.add_typer(project_app, name="project")

DataDirOption = Annotated[
    Path | None,
    typer.Option("--data-dir", "-d", help="Database directory"),
]
ProjectOption = Annotated[
    str,
    typer.Option("--project", "-p", envvar="NOOK_PROJECT", help="Project name or id"),
]


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    configure_logging(verbose=verbose)


@contextmanager
def _session(data_dir: Path | None) -> Iterator[ProjectService]:
    """Open the database and yield a project service for the current owner."""
    db_path = (data_dir or resolve_data_directory()) / DB_FILENAME
    conn: sqlite3.Connection = open_database(db_path)
    try:
        yield ProjectService(
            SqliteProjectStore(conn),
            owner_id=resolve_owner(),
            nodes=open_node_store(conn),
            max_name_length=resolve_max_name_length(),
        )
    finally:
        conn.close()


def _fail(result: Err) -> NoReturn:
    typer.echo(f"Error: {result.message}", err=True)
    logger.debug("Command failed with {}", result.kind)
    raise typer.Exit(1)


def _unwrap(result: Result[T]) -> T:
    if isinstance(result, Err):
        _fail(result)
    return result.value


def _find_project(projects: ProjectService, ref: str) -> Project:
    """Resolve a project by id, falling back to an exact name match."""
    owned = _unwrap(projects.list_projects())
    for project in owned:
        if project.id == ref:
            return project
    matches = [p for p in owned if p.name == ref]
    if len(matches) == 1:
        return matches[0]
    if matches:
        typer.echo(f"Several projects are named '{ref}'; use the id instead.", err=True)
    else:
        typer.echo(f"Project '{ref}' not found.", err=True)
    raise typer.Exit(1)


def _tree(projects: ProjectService, ref: str) -> TreeService:
    return _unwrap(projects.open_tree(_find_project(projects, ref).id))


def _node_line(node: Node) -> str:
    pin = "📌 " if node.is_pinned else ""
    suffix = "/" if node.is_container else ""
    return f"  {pin}{node.name}{suffix}  [{node.kind}] id={node.id}"


def _node_dict(node: Node) -> dict[str, object]:
    return {
        "id": node.id,
        "parent_id": node.parent_id,
        "kind": str(node.kind),
        "name": node.name,
        "order": node.order,
        "is_pinned": node.is_pinned,
        "size": node.size,
    }


# --- Projects ---


@project_app.command(name="create")
def project_create(
    name: Annotated[str, typer.Argument(help="Project name")],
    blurb: str = typer.Option("", "--blurb", "-b", help="Short description"),
    data_dir: DataDirOption = None,
) -> None:
    """Create a project."""
    with _session(data_dir) as projects:
        project = _unwrap(projects.create_project(name, blurb))
        typer.echo(f"Created project '{project.name}'  id={project.id}")


@project_app.command(name="list")
def project_list(data_dir: DataDirOption = None) -> None:
    """List your projects."""
    with _session(data_dir) as projects:
        rows = _unwrap(projects.list_projects())
        typer.echo(f"{len(rows)} projects:\n")
        for p in rows:
            blurb = f" - {p.blurb[:60]}" if p.blurb else ""
            typer.echo(f"  {p.name}{blurb}  [id={p.id}]")


@project_app.command(name="rename")
def project_rename(
    project: Annotated[str, typer.Argument(help="Project name or id")],
    new_name: Annotated[str, typer.Argument(help="New project name")],
    data_dir: DataDirOption = None,
) -> None:
    """Rename a project."""
    with _session(data_dir) as projects:
        found = _find_project(projects, project)
        renamed = _unwrap(projects.update_project(found.id, name=new_name))
        typer.echo(f"Renamed project to '{renamed.name}'")


@project_app.command(name="delete")
def project_delete(
    project: Annotated[str, typer.Argument(help="Project name or id")],
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    data_dir: DataDirOption = None,
) -> None:
    """Delete a project and everything in it."""
    with _session(data_dir) as projects:
        found = _find_project(projects, project)
        if not yes:
            typer.confirm(f"Delete project '{found.name}' and all its items?", abort=True)
        _unwrap(projects.delete_project(found.id))
        typer.echo(f"Deleted project '{found.name}'")


# --- Tree ---


@app.command()
def add(
    name: Annotated[str, typer.Argument(help="Item name")],
    project: ProjectOption,
    kind: NodeKind = typer.Option(NodeKind.FILE, "--kind", "-k", help="Item type"),
    parent: Annotated[
        str | None,
        typer.Option("--parent", "-P", help="Parent item id (default: project root)"),
    ] = None,
    content: Annotated[
        str | None, typer.Option("--content", "-c", help="Initial content (leaf items)")
    ] = None,
    index: Annotated[
        int | None, typer.Option("--index", "-i", help="Position among siblings")
    ] = None,
    data_dir: DataDirOption = None,
) -> None:
    """Create a file, folder, manuscript, chapter, scene or image."""
    with _session(data_dir) as projects:
        tree = _tree(projects, project)
        node = _unwrap(tree.create(kind, name, parent_id=parent, content=content, index=index))
        typer.echo(f"Created {node.kind} '{node.name}'  id={node.id}")


@app.command()
def rename(
    node_id: Annotated[str, typer.Argument(help="Item id")],
    new_name: Annotated[str, typer.Argument(help="New name")],
    project: ProjectOption,
    data_dir: DataDirOption = None,
) -> None:
    """Rename an item (a numeric suffix is added if the name is taken)."""
    with _session(data_dir) as projects:
        node = _unwrap(_tree(projects, project).rename(node_id, new_name))
        typer.echo(f"Renamed to '{node.name}'")


@app.command()
def move(
    node_id: Annotated[str, typer.Argument(help="Item id")],
    project: ProjectOption,
    to: Annotated[
        str | None, typer.Option("--to", "-t", help="New parent id (default: project root)")
    ] = None,
    index: Annotated[
        int | None, typer.Option("--index", "-i", help="Position among new siblings")
    ] = None,
    data_dir: DataDirOption = None,
) -> None:
    """Move an item under another folder, or to the project root."""
    with _session(data_dir) as projects:
        node = _unwrap(_tree(projects, project).move(node_id, to, index))
        typer.echo(f"Moved '{node.name}' to {node.parent_id or 'root'}")


@app.command()
def reorder(
    node_id: Annotated[str, typer.Argument(help="Item id")],
    index: Annotated[int, typer.Argument(help="New position among siblings")],
    project: ProjectOption,
    data_dir: DataDirOption = None,
) -> None:
    """Change an item's position within its folder."""
    with _session(data_dir) as projects:
        node = _unwrap(_tree(projects, project).reorder(node_id, index))
        typer.echo(f"Moved '{node.name}' to position {index}")


@app.command()
def pin(
    node_id: Annotated[str, typer.Argument(help="Item id")],
    project: ProjectOption,
    data_dir: DataDirOption = None,
) -> None:
    """Pin or unpin an item."""
    with _session(data_dir) as projects:
        node = _unwrap(_tree(projects, project).toggle_pin(node_id))
        state = "Pinned" if node.is_pinned else "Unpinned"
        typer.echo(f"{state} '{node.name}'")


@app.command()
def write(
    node_id: Annotated[str, typer.Argument(help="Item id")],
    project: ProjectOption,
    content: Annotated[
        str | None, typer.Option("--content", "-c", help="New content")
    ] = None,
    from_file: Annotated[
        Path | None, typer.Option("--file", "-f", help="Read new content from a file")
    ] = None,
    data_dir: DataDirOption = None,
) -> None:
    """Replace the content of a file, scene or image."""
    if (content is None) == (from_file is None):
        typer.echo("Pass exactly one of --content or --file.", err=True)
        raise typer.Exit(1)
    text = content if content is not None else from_file.read_text(encoding="utf-8")
    with _session(data_dir) as projects:
        node = _unwrap(_tree(projects, project).update_content(node_id, text))
        typer.echo(f"Wrote {node.size} bytes to '{node.name}'")


@app.command(name="rm")
def remove(
    node_id: Annotated[str, typer.Argument(help="Item id")],
    project: ProjectOption,
    data_dir: DataDirOption = None,
) -> None:
    """Delete an item and everything beneath it."""
    with _session(data_dir) as projects:
        tree = _tree(projects, project)
        node = _unwrap(tree.get(node_id))
        _unwrap(tree.delete(node_id))
        typer.echo(f"Deleted '{node.name}'")


@app.command(name="ls")
def list_children(
    project: ProjectOption,
    parent: Annotated[
        str | None, typer.Argument(help="Folder id (default: project root)")
    ] = None,
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
    data_dir: DataDirOption = None,
) -> None:
    """List the direct children of a folder."""
    with _session(data_dir) as projects:
        children = _unwrap(_tree(projects, project).list_children(parent))
        if output_json:
            typer.echo(json.dumps([_node_dict(n) for n in children], indent=2))
            return
        for node in children:
            typer.echo(_node_line(node))


@app.command()
def tree(
    project: ProjectOption,
    max_depth: Annotated[
        int | None, typer.Option("--max-depth", "-m", help="Max depth levels to render")
    ] = None,
    include_content: bool = typer.Option(
        False, "--content", "-c", help="Include leaf content"
    ),
    show_ids: bool = typer.Option(False, "--ids", help="Show item ids"),
    data_dir: DataDirOption = None,
) -> None:
    """Print the whole project as a markdown outline."""
    with _session(data_dir) as projects:
        entries = _unwrap(_tree(projects, project).build_tree())
        md = render_tree_as_markdown(
            entries, max_depth=max_depth, include_content=include_content, show_ids=show_ids
        )
        typer.echo(md.rstrip("\n") if md else "(empty project)")


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Text to look for")],
    project: ProjectOption,
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
    data_dir: DataDirOption = None,
) -> None:
    """Find items whose name or content contains the query."""
    with _session(data_dir) as projects:
        hits = _unwrap(_tree(projects, project).search(query))
        if output_json:
            typer.echo(json.dumps({"results": [_node_dict(n) for n in hits]}, indent=2))
            return
        typer.echo(f"Found {len(hits)} results:\n")
        for node in hits:
            typer.echo(_node_line(node))


@app.command()
def serve() -> None:
    """Start the MCP server (stdio transport)."""
    from nook.mcp.server import run_mcp_server

    run_mcp_server()
