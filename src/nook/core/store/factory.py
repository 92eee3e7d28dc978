"""Pick the node store backend from configuration."""

import sqlite3

from loguru import logger

from nook.config import resolve_rest_token, resolve_rest_url
from nook.core.store.rest import RestNodeStore
from nook.core.store.sqlite import SqliteNodeStore
from nook.protocols import NodeStore


def open_node_store(conn: sqlite3.Connection) -> NodeStore:
    """The hosted REST store if $NOOK_REST_URL is set, else SQLite on ``conn``."""
    url = resolve_rest_url()
    if url:
        logger.debug("Using hosted node store at {}", url)
        return RestNodeStore(url, resolve_rest_token())
    return SqliteNodeStore(conn)
