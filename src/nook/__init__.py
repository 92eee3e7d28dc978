"""nook: a hierarchical content tree for writing projects."""

from nook.core.projects import ProjectService
from nook.core.service import TreeService
from nook.models.node import Node, NodeKind, NodePatch, Project, TreeEntry
from nook.result import Err, ErrorKind, Failure, Ok, Result

__all__ = [
    "Err",
    "ErrorKind",
    "Failure",
    "Node",
    "NodeKind",
    "NodePatch",
    "Ok",
    "Project",
    "ProjectService",
    "Result",
    "TreeEntry",
    "TreeService",
]
