"""Projects: the per-owner containers each content tree lives in."""

import secrets

from loguru import logger

from nook.config import MAX_BLURB_LENGTH, MAX_NAME_LENGTH
from nook.core.service import TreeService
from nook.core.timestamps import Clock, next_timestamp, now_ms
from nook.models.node import Project
from nook.protocols import NodeStore, ProjectStore
from nook.result import Err, ErrorKind, Ok, Result, err


def _new_project_id() -> str:
    return f"proj_{secrets.token_hex(8)}"


def _clean_project_name(raw: str | None, *, max_length: int) -> Result[str]:
    name = (raw or "").strip()
    if not name:
        return err(ErrorKind.INVALID_NAME, "Project name is required.")
    if len(name) > max_length:
        return err(
            ErrorKind.INVALID_NAME,
            f"Project name cannot exceed {max_length} characters.",
        )
    return Ok(name)


def _check_blurb(blurb: str) -> Result[str]:
    if len(blurb) > MAX_BLURB_LENGTH:
        return err(
            ErrorKind.INVALID_INPUT,
            f"Project blurb cannot exceed {MAX_BLURB_LENGTH} characters.",
        )
    return Ok(blurb)


class ProjectService:
    """Create, rename and delete one owner's projects.

    With a ``nodes`` store, deleting a project also removes its tree and
    ``open_tree`` hands out a ``TreeService`` bound to the project.
    """

    def __init__(
        self,
        store: ProjectStore,
        *,
        owner_id: str,
        nodes: NodeStore | None = None,
        clock: Clock = now_ms,
        max_name_length: int = MAX_NAME_LENGTH,
    ) -> None:
        if not owner_id:
            msg = "ProjectService requires an owner_id"
            raise ValueError(msg)
        self.store = store
        self.owner_id = owner_id
        self.nodes = nodes
        self.clock = clock
        self.max_name_length = max_name_length

    def get_project(self, project_id: str) -> Result[Project]:
        if not project_id or not project_id.strip():
            return err(ErrorKind.INVALID_INPUT, "Project ID is required.")
        loaded = self.store.get(project_id)
        if isinstance(loaded, Err):
            return loaded
        if loaded.value.owner_id != self.owner_id:
            return err(ErrorKind.UNAUTHORIZED, "Unauthorized access to project")
        return loaded

    def list_projects(self) -> Result[list[Project]]:
        return self.store.list_by_owner(self.owner_id)

    def create_project(self, name: str, blurb: str = "") -> Result[Project]:
        cleaned = _clean_project_name(name, max_length=self.max_name_length)
        if isinstance(cleaned, Err):
            return cleaned
        checked = _check_blurb(blurb or "")
        if isinstance(checked, Err):
            return checked

        now = next_timestamp(self.clock)
        project = Project(
            id=_new_project_id(),
            owner_id=self.owner_id,
            name=cleaned.value,
            blurb=checked.value,
            created_at=now,
            updated_at=now,
        )
        created = self.store.insert(project)
        if isinstance(created, Ok):
            logger.info("Created project {!r} ({})", project.name, project.id)
        return created

    def update_project(
        self, project_id: str, *, name: str | None = None, blurb: str | None = None
    ) -> Result[Project]:
        """Change the name and/or blurb; omitted fields keep their value."""
        loaded = self.get_project(project_id)
        if isinstance(loaded, Err):
            return loaded
        project = loaded.value

        new_name = project.name
        if name is not None:
            cleaned = _clean_project_name(name, max_length=self.max_name_length)
            if isinstance(cleaned, Err):
                return cleaned
            new_name = cleaned.value
        new_blurb = project.blurb
        if blurb is not None:
            checked = _check_blurb(blurb)
            if isinstance(checked, Err):
                return checked
            new_blurb = checked.value

        return self.store.update(
            Project(
                id=project.id,
                owner_id=project.owner_id,
                name=new_name,
                blurb=new_blurb,
                created_at=project.created_at,
                updated_at=next_timestamp(self.clock, project.updated_at),
            )
        )

    def delete_project(self, project_id: str) -> Result[None]:
        loaded = self.get_project(project_id)
        if isinstance(loaded, Err):
            return loaded

        if self.nodes is not None:
            nodes = self.nodes.list_all(self.owner_id, project_id)
            if isinstance(nodes, Err):
                return nodes
            purged = self.nodes.remove_many([n.id for n in nodes.value], self.owner_id)
            if isinstance(purged, Err):
                return purged
            logger.debug("Purged {} item(s) of project {}", len(nodes.value), project_id)

        removed = self.store.remove(project_id)
        if isinstance(removed, Ok):
            logger.info("Deleted project {!r}", loaded.value.name)
        return removed

    def open_tree(self, project_id: str) -> Result[TreeService]:
        """A ``TreeService`` for one of this owner's projects."""
        if self.nodes is None:
            msg = "open_tree needs a node store"
            raise RuntimeError(msg)
        loaded = self.get_project(project_id)
        if isinstance(loaded, Err):
            return loaded
        return Ok(
            TreeService(
                self.nodes,
                owner_id=self.owner_id,
                project_id=project_id,
                clock=self.clock,
                max_name_length=self.max_name_length,
            )
        )
