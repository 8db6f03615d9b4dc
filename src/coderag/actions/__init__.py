"""Edit actions: model-output parsing, workspace file access, patch application."""

from coderag.actions.patch import FileOutcome, PatchReport, PatchService
from coderag.actions.response import parse_code_changes, parse_diff_content
from coderag.actions.workspace import Workspace

__all__ = [
    "FileOutcome",
    "PatchReport",
    "PatchService",
    "Workspace",
    "parse_code_changes",
    "parse_diff_content",
]
