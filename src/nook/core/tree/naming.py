"""Sibling name validation and collision-free name generation."""

import itertools
from collections.abc import Iterable

from nook.result import ErrorKind, Ok, Result, err


def clean_name(raw: str | None, *, max_length: int) -> Result[str]:
    """Trim a proposed name and check it is non-empty and not too long."""
    name = (raw or "").strip()
    if not name:
        return err(ErrorKind.INVALID_NAME, "Item name is required.")
    if len(name) > max_length:
        return err(
            ErrorKind.INVALID_NAME,
            f"Item name cannot exceed {max_length} characters.",
        )
    return Ok(name)


def split_extension(name: str) -> tuple[str, str]:
    """Split ``"Name.txt"`` into ``("Name", ".txt")``.

    A leading dot is part of the base (``".notes"`` has no extension).
    """
    dot = name.rfind(".")
    if dot <= 0:
        return name, ""
    return name[:dot], name[dot:]


def resolve_unique_name(
    desired: str, taken: Iterable[str], *, max_length: int | None = None
) -> str:
    """Return ``desired``, or ``"{base} (n){ext}"`` with the lowest free ``n``.

    Comparison is exact and case-sensitive. With ``max_length`` the base is
    shortened so a suffixed name still fits; when even a one-character base
    cannot fit, the over-long candidate is returned for the caller to reject.
    """
    names = set(taken)
    if desired not in names:
        return desired

    base, ext = split_extension(desired)
    for count in itertools.count(1):
        suffix = f" ({count})"
        stem = base
        if max_length is not None:
            room = max_length - len(suffix) - len(ext)
            if room >= 1:
                stem = base[:room].rstrip() or base[:room]
        candidate = f"{stem}{suffix}{ext}"
        if candidate not in names:
            return candidate
