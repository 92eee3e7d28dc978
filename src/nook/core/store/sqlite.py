"""SQLite-backed node and project stores."""

import sqlite3
from collections.abc import Sequence

from loguru import logger

from nook.models.node import LEAF_KINDS, Node, NodeKind, NodePatch, Project
from nook.result import Err, ErrorKind, Ok, Result, err, not_found, version_conflict

_NODE_COLUMNS = (
    "id, owner_id, project_id, parent_id, kind, name, sort_order, "
    "is_pinned, content, created_at, updated_at, version"
)

_LEAF_KIND_VALUES = tuple(sorted(k.value for k in LEAF_KINDS))


def _row_to_node(row: sqlite3.Row | tuple) -> Node:
    return Node(
        id=row[0],
        owner_id=row[1],
        project_id=row[2],
        parent_id=row[3],
        kind=NodeKind(row[4]),
        name=row[5],
        order=row[6],
        is_pinned=bool(row[7]),
        content=row[8],
        created_at=row[9],
        updated_at=row[10],
        version=row[11],
    )


def _storage_error(action: str, exc: sqlite3.Error) -> Err:
    logger.warning("SQLite {} failed: {}", action, exc)
    return err(ErrorKind.STORAGE_ERROR, f"Failed to {action}: {exc}")


class SqliteNodeStore:
    """``NodeStore`` over the ``nodes`` table.

    The connection must already carry the schema (see ``open_database``).
    Multi-row writes run in one transaction and roll back on any failure.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        # SQLite's lower() only folds ASCII.
        self.conn.create_function("nook_lower", 1, _lower, deterministic=True)

    def get(self, node_id: str, owner_id: str) -> Result[Node]:
        try:
            node = self._fetch(node_id, owner_id)
        except sqlite3.Error as e:
            return _storage_error("fetch item", e)
        if node is None:
            return not_found(node_id)
        return Ok(node)

    def list_children(
        self, parent_id: str | None, owner_id: str, project_id: str
    ) -> Result[list[Node]]:
        try:
            rows = self.conn.execute(
                f"SELECT {_NODE_COLUMNS} FROM nodes "
                "WHERE owner_id = ? AND project_id = ? AND parent_id IS ? "
                "ORDER BY is_pinned DESC, sort_order, created_at, id",
                (owner_id, project_id, parent_id),
            ).fetchall()
        except sqlite3.Error as e:
            return _storage_error("fetch folder contents", e)
        return Ok([_row_to_node(r) for r in rows])

    def list_all(self, owner_id: str, project_id: str) -> Result[list[Node]]:
        try:
            rows = self.conn.execute(
                f"SELECT {_NODE_COLUMNS} FROM nodes WHERE owner_id = ? AND project_id = ?",
                (owner_id, project_id),
            ).fetchall()
        except sqlite3.Error as e:
            return _storage_error("fetch items", e)
        return Ok([_row_to_node(r) for r in rows])

    def insert(self, node: Node) -> Result[Node]:
        try:
            self.conn.execute(
                f"INSERT INTO nodes ({_NODE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    node.id, node.owner_id, node.project_id, node.parent_id,
                    node.kind.value, node.name, node.order, int(node.is_pinned),
                    node.content, node.created_at, node.updated_at, node.version,
                ),
            )
            self.conn.commit()
        except sqlite3.IntegrityError as e:
            self.conn.rollback()
            return err(ErrorKind.CONFLICT, f"Failed to create item: {e}")
        except sqlite3.Error as e:
            self.conn.rollback()
            return _storage_error("create item", e)
        return Ok(node)

    def replace(self, patch: NodePatch, owner_id: str) -> Result[Node]:
        result = self.replace_many([patch], owner_id)
        if isinstance(result, Err):
            return result
        return Ok(result.value[0])

    def replace_many(self, patches: Sequence[NodePatch], owner_id: str) -> Result[list[Node]]:
        updated: list[Node] = []
        try:
            for patch in patches:
                current = self._fetch(patch.id, owner_id)
                if current is None:
                    self.conn.rollback()
                    return not_found(patch.id)
                if (
                    patch.expected_version is not None
                    and patch.expected_version != current.version
                ):
                    self.conn.rollback()
                    return version_conflict(patch.id, patch.expected_version, current.version)
                node = patch.apply(current)
                # The version predicate makes the write itself the optimistic check.
                cursor = self.conn.execute(
                    "UPDATE nodes SET parent_id = ?, name = ?, sort_order = ?, is_pinned = ?, "
                    "content = ?, updated_at = ?, version = ? "
                    "WHERE id = ? AND owner_id = ? AND version = ?",
                    (
                        node.parent_id, node.name, node.order, int(node.is_pinned),
                        node.content, node.updated_at, node.version,
                        node.id, owner_id, current.version,
                    ),
                )
                if cursor.rowcount != 1:
                    self.conn.rollback()
                    return err(ErrorKind.CONFLICT, f"Item {patch.id} was modified concurrently")
                updated.append(node)
            self.conn.commit()
        except sqlite3.IntegrityError as e:
            self.conn.rollback()
            return err(ErrorKind.CONFLICT, f"Failed to update item: {e}")
        except sqlite3.Error as e:
            self.conn.rollback()
            return _storage_error("update item", e)
        return Ok(updated)

    def remove(self, node_id: str, owner_id: str) -> Result[None]:
        try:
            cursor = self.conn.execute(
                "DELETE FROM nodes WHERE id = ? AND owner_id = ?", (node_id, owner_id)
            )
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            return _storage_error("delete item", e)
        if cursor.rowcount == 0:
            return not_found(node_id)
        return Ok(None)

    def remove_many(self, node_ids: Sequence[str], owner_id: str) -> Result[None]:
        try:
            self.conn.executemany(
                "DELETE FROM nodes WHERE id = ? AND owner_id = ?",
                [(node_id, owner_id) for node_id in node_ids],
            )
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            return _storage_error("delete items", e)
        return Ok(None)

    def search(self, text: str, owner_id: str, project_id: str) -> Result[list[Node]]:
        placeholders = ",".join("?" * len(_LEAF_KIND_VALUES))
        try:
            rows = self.conn.execute(
                f"SELECT {_NODE_COLUMNS} FROM nodes "
                "WHERE owner_id = ? AND project_id = ? AND ("
                "instr(nook_lower(name), ?) > 0 "
                f"OR (kind IN ({placeholders}) AND instr(content, ?) > 0)"
                ") ORDER BY nook_lower(name), id",
                (owner_id, project_id, text.lower(), *_LEAF_KIND_VALUES, text),
            ).fetchall()
        except sqlite3.Error as e:
            return _storage_error("search items", e)
        return Ok([_row_to_node(r) for r in rows])

    def _fetch(self, node_id: str, owner_id: str) -> Node | None:
        row = self.conn.execute(
            f"SELECT {_NODE_COLUMNS} FROM nodes WHERE id = ? AND owner_id = ?",
            (node_id, owner_id),
        ).fetchone()
        return _row_to_node(row) if row else None


def _lower(value: str | None) -> str | None:
    return value.lower() if value is not None else None


_PROJECT_COLUMNS = "id, owner_id, name, blurb, created_at, updated_at"


def _row_to_project(row: sqlite3.Row | tuple) -> Project:
    return Project(
        id=row[0],
        owner_id=row[1],
        name=row[2],
        blurb=row[3],
        created_at=row[4],
        updated_at=row[5],
    )


class SqliteProjectStore:
    """``ProjectStore`` over the ``projects`` table."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def get(self, project_id: str) -> Result[Project]:
        try:
            row = self.conn.execute(
                f"SELECT {_PROJECT_COLUMNS} FROM projects WHERE id = ?", (project_id,)
            ).fetchone()
        except sqlite3.Error as e:
            return _storage_error("fetch project", e)
        if row is None:
            return err(ErrorKind.NOT_FOUND, "Project not found")
        return Ok(_row_to_project(row))

    def list_by_owner(self, owner_id: str) -> Result[list[Project]]:
        try:
            rows = self.conn.execute(
                f"SELECT {_PROJECT_COLUMNS} FROM projects WHERE owner_id = ? "
                "ORDER BY created_at, id",
                (owner_id,),
            ).fetchall()
        except sqlite3.Error as e:
            return _storage_error("fetch projects", e)
        return Ok([_row_to_project(r) for r in rows])

    def insert(self, project: Project) -> Result[Project]:
        try:
            self.conn.execute(
                f"INSERT INTO projects ({_PROJECT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    project.id, project.owner_id, project.name, project.blurb,
                    project.created_at, project.updated_at,
                ),
            )
            self.conn.commit()
        except sqlite3.IntegrityError as e:
            self.conn.rollback()
            return err(ErrorKind.CONFLICT, f"Failed to create project: {e}")
        except sqlite3.Error as e:
            self.conn.rollback()
            return _storage_error("create project", e)
        return Ok(project)

    def update(self, project: Project) -> Result[Project]:
        try:
            cursor = self.conn.execute(
                "UPDATE projects SET name = ?, blurb = ?, updated_at = ? WHERE id = ?",
                (project.name, project.blurb, project.updated_at, project.id),
            )
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            return _storage_error("update project", e)
        if cursor.rowcount == 0:
            return err(ErrorKind.NOT_FOUND, "Project not found")
        return Ok(project)

    def remove(self, project_id: str) -> Result[None]:
        try:
            cursor = self.conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            return _storage_error("delete project", e)
        if cursor.rowcount == 0:
            return err(ErrorKind.NOT_FOUND, "Project not found")
        return Ok(None)
