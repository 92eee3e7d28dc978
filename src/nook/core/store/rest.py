"""``NodeStore`` over a hosted PostgREST-style relational endpoint."""

from collections.abc import Sequence
from typing import Any

import requests
from loguru import logger

from nook.config import REST_TIMEOUT_SECONDS
from nook.models.node import LEAF_KINDS, Node, NodeKind, NodePatch
from nook.result import Err, ErrorKind, Ok, Result, err, not_found, version_conflict

_LEAF_KIND_LIST = ",".join(sorted(k.value for k in LEAF_KINDS))

_CHILD_ORDER = "is_pinned.desc,position.asc,created_at.asc,id.asc"


# Server-side half of ``replace_many``. PostgREST runs each RPC call in one
# transaction, and ``PT409`` becomes an HTTP 409 that rolls the batch back.
REPLACE_NODES_SQL = """
create or replace function nook_replace_nodes(p_owner_id text, p_rows jsonb)
returns setof nodes
language plpgsql as $$
declare
    r jsonb;
    updated nodes;
begin
    for r in select * from jsonb_array_elements(p_rows) loop
        update nodes set
            parent_id = r->>'parent_id',
            name = r->>'name',
            position = (r->>'position')::int,
            is_pinned = (r->>'is_pinned')::boolean,
            content = r->>'content',
            updated_at = (r->>'updated_at')::bigint,
            version = (r->>'version')::int
        where id = r->>'id'
          and owner_id = p_owner_id
          and version = (r->>'expected_version')::int
        returning * into updated;
        if not found then
            raise sqlstate 'PT409'
                using message = format('Item %s was modified concurrently', r->>'id');
        end if;
        return next updated;
    end loop;
end
$$;
"""


def node_to_row(node: Node) -> dict[str, Any]:
    """Map a ``Node`` onto the hosted table's column names."""
    return {
        "id": node.id,
        "owner_id": node.owner_id,
        "project_id": node.project_id,
        "parent_id": node.parent_id,
        "kind": node.kind.value,
        "name": node.name,
        "position": node.order,
        "is_pinned": node.is_pinned,
        "content": node.content,
        "created_at": node.created_at,
        "updated_at": node.updated_at,
        "version": node.version,
    }


def row_to_node(row: dict[str, Any]) -> Node:
    return Node(
        id=row["id"],
        owner_id=row["owner_id"],
        project_id=row["project_id"],
        parent_id=row.get("parent_id"),
        kind=NodeKind(row["kind"]),
        name=row["name"],
        order=row.get("position", 0),
        is_pinned=bool(row.get("is_pinned", False)),
        content=row.get("content"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        version=row.get("version", 1),
    )


def _like_literal(text: str) -> str:
    """Escape LIKE wildcards (and PostgREST's ``*``) so ``text`` matches literally."""
    for ch in ("\\", "%", "_", "*"):
        text = text.replace(ch, "\\" + ch)
    return text


def _quote(value: str) -> str:
    """Quote a value for use inside a PostgREST ``or=(...)`` filter."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class RestNodeStore:
    """Talks to ``{base_url}/{table}`` with PostgREST query syntax.

    Single-row updates carry a ``version=eq.N`` filter, so a concurrent
    writer turns into a ``Conflict``. Batches go through the
    ``REPLACE_NODES_SQL`` function, which checks every version in one
    transaction.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        *,
        table: str = "nodes",
        rpc: str = "nook_replace_nodes",
        session: requests.Session | None = None,
        timeout: float = REST_TIMEOUT_SECONDS,
    ) -> None:
        base = base_url.rstrip("/")
        self.url = f"{base}/{table}"
        self.rpc_url = f"{base}/rpc/{rpc}"
        self.timeout = timeout
        self.sess = session or requests.Session()
        if token:
            self.sess.headers.update({"apikey": token, "Authorization": f"Bearer {token}"})
        logger.debug("REST store ready: {!r}", self.url)

    def get(self, node_id: str, owner_id: str) -> Result[Node]:
        rows = self._request(
            "GET", {"id": f"eq.{node_id}", "owner_id": f"eq.{owner_id}"}, action="fetch item"
        )
        if isinstance(rows, Err):
            return rows
        if not rows.value:
            return not_found(node_id)
        return Ok(row_to_node(rows.value[0]))

    def list_children(
        self, parent_id: str | None, owner_id: str, project_id: str
    ) -> Result[list[Node]]:
        params = {
            "owner_id": f"eq.{owner_id}",
            "project_id": f"eq.{project_id}",
            "parent_id": "is.null" if parent_id is None else f"eq.{parent_id}",
            "order": _CHILD_ORDER,
        }
        return self._nodes("GET", params, action="fetch folder contents")

    def list_all(self, owner_id: str, project_id: str) -> Result[list[Node]]:
        params = {"owner_id": f"eq.{owner_id}", "project_id": f"eq.{project_id}"}
        return self._nodes("GET", params, action="fetch items")

    def insert(self, node: Node) -> Result[Node]:
        rows = self._request("POST", {}, json=node_to_row(node), action="create item")
        if isinstance(rows, Err):
            return rows
        return Ok(row_to_node(rows.value[0]) if rows.value else node)

    def replace(self, patch: NodePatch, owner_id: str) -> Result[Node]:
        loaded = self.get(patch.id, owner_id)
        if isinstance(loaded, Err):
            return loaded
        current = loaded.value
        if patch.expected_version is not None and patch.expected_version != current.version:
            return version_conflict(patch.id, patch.expected_version, current.version)

        node = patch.apply(current)
        row = node_to_row(node)
        body = {k: row[k] for k in ("parent_id", "name", "position", "is_pinned",
                                    "content", "updated_at", "version")}
        params = {
            "id": f"eq.{node.id}",
            "owner_id": f"eq.{owner_id}",
            "version": f"eq.{current.version}",
        }
        rows = self._request("PATCH", params, json=body, action="update item")
        if isinstance(rows, Err):
            return rows
        if not rows.value:
            return err(ErrorKind.CONFLICT, f"Item {patch.id} was modified concurrently")
        return Ok(row_to_node(rows.value[0]))

    def replace_many(self, patches: Sequence[NodePatch], owner_id: str) -> Result[list[Node]]:
        if len(patches) == 1:
            single = self.replace(patches[0], owner_id)
            return single if isinstance(single, Err) else Ok([single.value])

        ids = [p.id for p in patches]
        loaded = self._nodes(
            "GET",
            {"id": f"in.({','.join(ids)})", "owner_id": f"eq.{owner_id}"},
            action="fetch items",
        )
        if isinstance(loaded, Err):
            return loaded
        staged = {n.id: n for n in loaded.value}
        read_versions = {n.id: n.version for n in loaded.value}
        updated: list[Node] = []
        for patch in patches:
            current = staged.get(patch.id)
            if current is None:
                return not_found(patch.id)
            if patch.expected_version is not None and patch.expected_version != current.version:
                return version_conflict(patch.id, patch.expected_version, current.version)
            staged[patch.id] = patch.apply(current)
            updated.append(staged[patch.id])

        # The write re-checks the versions read above, so a writer that got
        # in between turns into a 409 and nothing in the batch is applied.
        payload = [
            {**node_to_row(n), "expected_version": read_versions[n.id]} for n in updated
        ]
        rows = self._request(
            "POST",
            {},
            json={"p_owner_id": owner_id, "p_rows": payload},
            url=self.rpc_url,
            action="update items",
        )
        if isinstance(rows, Err):
            return rows
        by_id = {r["id"]: row_to_node(r) for r in rows.value}
        return Ok([by_id.get(n.id, n) for n in updated])

    def remove(self, node_id: str, owner_id: str) -> Result[None]:
        rows = self._request(
            "DELETE", {"id": f"eq.{node_id}", "owner_id": f"eq.{owner_id}"}, action="delete item"
        )
        if isinstance(rows, Err):
            return rows
        if not rows.value:
            return not_found(node_id)
        return Ok(None)

    def remove_many(self, node_ids: Sequence[str], owner_id: str) -> Result[None]:
        if not node_ids:
            return Ok(None)
        rows = self._request(
            "DELETE",
            {"id": f"in.({','.join(node_ids)})", "owner_id": f"eq.{owner_id}"},
            action="delete items",
        )
        if isinstance(rows, Err):
            return rows
        return Ok(None)

    def search(self, text: str, owner_id: str, project_id: str) -> Result[list[Node]]:
        pattern = _quote(f"*{_like_literal(text)}*")
        params = {
            "owner_id": f"eq.{owner_id}",
            "project_id": f"eq.{project_id}",
            "or": f"(name.ilike.{pattern},and(kind.in.({_LEAF_KIND_LIST}),content.like.{pattern}))",
            "order": "name.asc,id.asc",
        }
        return self._nodes("GET", params, action="search items")

    def _nodes(self, method: str, params: dict[str, str], *, action: str) -> Result[list[Node]]:
        rows = self._request(method, params, action=action)
        if isinstance(rows, Err):
            return rows
        return Ok([row_to_node(r) for r in rows.value])

    def _request(
        self,
        method: str,
        params: dict[str, str],
        *,
        action: str,
        json: Any = None,
        url: str | None = None,
    ) -> Result[list[dict[str, Any]]]:
        url = url or self.url
        headers = {"Prefer": "return=representation"}
        logger.debug("Making request: {} {} {}", method, url, repr(params)[:64])
        try:
            r = self.sess.request(
                method, url, params=params, json=json, headers=headers, timeout=self.timeout
            )
            if r.status_code == 409:
                return err(ErrorKind.CONFLICT, f"Failed to {action}: {_detail(r)}")
            r.raise_for_status()
            rv = r.json() if r.content else []
        except requests.RequestException as e:
            logger.warning("REST {} failed: {}", action, e)
            return err(ErrorKind.STORAGE_ERROR, f"Failed to {action}: {e}")
        except ValueError as e:
            logger.warning("REST {} returned invalid JSON: {}", action, e)
            return err(ErrorKind.STORAGE_ERROR, f"Failed to {action}: invalid response")
        return Ok(rv if isinstance(rv, list) else [rv])


def _detail(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        return str(body.get("message") or body.get("details") or body)
    return str(body)

