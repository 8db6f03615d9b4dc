"""Apply diffs and proposed code changes to a workspace.

A multi-file patch is applied file by file; one failing file is recorded in
the report and the rest still go through.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from coderag.diff.apply import apply_diff, apply_new_content, uses_crlf, with_line_ending
from coderag.diff.compute import join_lines, split_lines_keepends
from coderag.diff.parse import parse_diff
from coderag.exceptions import CoderagError, InputError

if TYPE_CHECKING:
    from coderag.actions.workspace import Workspace
    from coderag.diff.blocks import BlockFormatRegistry
    from coderag.types import CodeChange, ParsedDiff

__all__ = ["FileOutcome", "PatchReport", "PatchService"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileOutcome:
    """What happened to one file.

    ``status`` is one of ``created``, ``modified``, ``renamed``, ``deleted``,
    ``unchanged`` or ``failed``.
    """

    path: str
    status: str
    error: str | None = None


@dataclass(frozen=True)
class PatchReport:
    """Aggregate result of applying a patch."""

    outcomes: tuple[FileOutcome, ...] = ()
    dry_run: bool = False

    @property
    def failed(self) -> list[FileOutcome]:
        return [o for o in self.outcomes if o.status == "failed"]

    @property
    def ok(self) -> bool:
        return not self.failed


class PatchService:
    """Writes diff results into a :class:`Workspace`.

    Args:
        workspace: Target file tree.
        formats: Block formats used during reconciliation.
    """

    def __init__(self, workspace: Workspace, *, formats: BlockFormatRegistry | None = None) -> None:
        self._workspace = workspace
        self._formats = formats

    def apply_patch(self, diff_text: str, *, dry_run: bool = False) -> PatchReport:
        """Apply every file section of a unified diff.

        Raises:
            InputError: If the text holds no parsable hunk.
        """
        parsed = parse_diff(diff_text)
        if not parsed:
            raise InputError("No applicable hunks found in diff")

        outcomes: list[FileOutcome] = []
        for section in parsed:
            label = section.path or "(unnamed)"
            try:
                outcomes.append(self._apply_section(section, dry_run=dry_run))
            except CoderagError as e:
                logger.error("Failed to apply diff to %s: %s", label, e)
                outcomes.append(FileOutcome(path=label, status="failed", error=str(e)))

        report = PatchReport(outcomes=tuple(outcomes), dry_run=dry_run)
        logger.info(
            "Patch applied to %d file(s), %d failed%s",
            len(outcomes) - len(report.failed),
            len(report.failed),
            " (dry run)" if dry_run else "",
        )
        return report

    def apply_change(self, change: CodeChange, *, dry_run: bool = False) -> PatchReport:
        """Apply a change extracted from model output.

        Diff changes go through :meth:`apply_patch`. Full-text changes
        replace an existing file through the diff engine, or create it.

        Raises:
            InputError: If the change has no target path.
        """
        if change.diff is not None:
            return self.apply_patch(change.diff, dry_run=dry_run)
        if not change.file_path:
            raise InputError("Code change has no target file path")

        path = change.file_path
        try:
            if self._workspace.exists(path):
                current = self._workspace.read_text(path)
                new_content = _match_file_endings(change.new_code, current)
                updated = apply_new_content(current, new_content, path, formats=self._formats)
                outcome = self._write(path, current, updated, dry_run=dry_run)
            else:
                if not dry_run:
                    self._workspace.write_text(path, change.new_code + "\n")
                outcome = FileOutcome(path=path, status="created")
        except CoderagError as e:
            logger.error("Failed to apply change to %s: %s", path, e)
            outcome = FileOutcome(path=path, status="failed", error=str(e))
        return PatchReport(outcomes=(outcome,), dry_run=dry_run)

    def _apply_section(self, section: ParsedDiff, *, dry_run: bool) -> FileOutcome:
        old_path, new_path = section.old_path, section.new_path
        if new_path is None:
            if old_path is None:
                raise InputError("Diff section names no file")
            if not self._workspace.exists(old_path):
                raise InputError(f"Cannot delete missing file {old_path}")
            if not dry_run:
                self._workspace.delete(old_path)
            return FileOutcome(path=old_path, status="deleted")

        if old_path is None:
            content = apply_diff(section, "", formats=self._formats)
            if not dry_run:
                self._workspace.write_text(new_path, content)
            return FileOutcome(path=new_path, status="created")

        current = self._workspace.read_text(old_path)
        updated = apply_diff(section, current, formats=self._formats)
        if old_path != new_path:
            if not dry_run:
                self._workspace.write_text(new_path, updated)
                self._workspace.delete(old_path)
            return FileOutcome(path=new_path, status="renamed")
        return self._write(new_path, current, updated, dry_run=dry_run)

    def _write(self, path: str, current: str, updated: str, *, dry_run: bool) -> FileOutcome:
        if updated == current:
            return FileOutcome(path=path, status="unchanged")
        if not dry_run:
            self._workspace.write_text(path, updated, overwrite=True)
        return FileOutcome(path=path, status="modified")


def _match_file_endings(code: str, current: str) -> str:
    # Extracted blocks are stripped LF text; restore the file's final newline
    # and its CRLF convention
    if current.endswith("\n") and not code.endswith("\n"):
        code += "\n"
    if uses_crlf(split_lines_keepends(current)):
        code = join_lines(with_line_ending(split_lines_keepends(code), crlf=True))
    return code
