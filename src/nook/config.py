"""Configuration constants for nook."""

import getpass
import os
from pathlib import Path

# Directory with the database. First directory which is found is used.
DATA_DIRECTORIES: list[Path] = [
    Path("~/.local/share/nook").expanduser(),
    Path("~/.nook").expanduser(),
    Path("~/.config/nook").expanduser(),
]

# Used when no data directory exists yet.
DEFAULT_DATA_DIR: Path = DATA_DIRECTORIES[0]

DB_FILENAME = "nook.db"

MAX_NAME_LENGTH = 255
MAX_BLURB_LENGTH = 500

# Token for the hosted REST backend. First file found is used.
REST_TOKEN_FILES: list[Path] = [
    Path("~/.config/nook-rest-token.txt").expanduser(),
    Path("~/.config/secret/nook-rest-token.txt").expanduser(),
]

REST_TIMEOUT_SECONDS = 10.0


def resolve_data_directory() -> Path:
    """Return the data directory: $NOOK_DATA_DIR, else the first existing candidate."""
    env_dir = os.environ.get("NOOK_DATA_DIR")
    if env_dir:
        return Path(env_dir).expanduser()
    for candidate in DATA_DIRECTORIES:
        if candidate.is_dir():
            return candidate
    return DEFAULT_DATA_DIR


def resolve_owner() -> str:
    """Return the acting account id: $NOOK_OWNER, else the login name."""
    return os.environ.get("NOOK_OWNER") or getpass.getuser()


def resolve_max_name_length() -> int:
    raw = os.environ.get("NOOK_MAX_NAME_LENGTH")
    if not raw:
        return MAX_NAME_LENGTH
    try:
        value = int(raw)
    except ValueError:
        msg = f"NOOK_MAX_NAME_LENGTH must be an integer, got {raw!r}"
        raise RuntimeError(msg) from None
    if value < 1:
        msg = f"NOOK_MAX_NAME_LENGTH must be positive, got {value}"
        raise RuntimeError(msg)
    return value


def resolve_rest_token() -> str | None:
    """Return the REST token from $NOOK_REST_TOKEN or the first token file found."""
    env_token = os.environ.get("NOOK_REST_TOKEN")
    if env_token:
        return env_token.strip()
    for token_path in REST_TOKEN_FILES:
        try:
            return token_path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            pass
    return None


def resolve_rest_url() -> str | None:
    """Hosted node table endpoint, if $NOOK_REST_URL is set."""
    return os.environ.get("NOOK_REST_URL") or None
