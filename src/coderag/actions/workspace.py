"""Workspace file system rooted at a single directory."""

from __future__ import annotations

import logging
from pathlib import Path

from coderag.exceptions import WorkspaceError

__all__ = ["Workspace"]

logger = logging.getLogger(__name__)


class Workspace:
    """Read and write files relative to a workspace root.

    Relative paths resolve against ``root``; absolute paths are used as is.
    Writes refuse to replace an existing file unless ``overwrite=True``.
    """

    def __init__(self, root: Path) -> None:
        self.root = root.resolve()

    def resolve(self, path: str | Path) -> Path:
        candidate = Path(path)
        if candidate.is_absolute():
            return candidate
        return self.root / candidate

    def relative(self, path: str | Path) -> str:
        """Workspace-relative POSIX path, or the absolute path if outside the root."""
        resolved = self.resolve(path).resolve()
        try:
            return resolved.relative_to(self.root).as_posix()
        except ValueError:
            return str(resolved)

    def exists(self, path: str | Path) -> bool:
        return self.resolve(path).is_file()

    def read_text(self, path: str | Path) -> str:
        """Read a UTF-8 text file.

        Raises:
            WorkspaceError: If the file is missing or unreadable.
        """
        target = self.resolve(path)
        try:
            # newline="" keeps line endings exactly as stored
            with target.open(encoding="utf-8", newline="") as f:
                return f.read()
        except FileNotFoundError as e:
            raise WorkspaceError(f"File not found: {target}") from e
        except (OSError, UnicodeDecodeError) as e:
            raise WorkspaceError(f"Cannot read {target}: {e}") from e

    def write_text(self, path: str | Path, content: str, *, overwrite: bool = False) -> Path:
        """Write ``content``, creating parent directories as needed.

        Returns:
            The absolute path written.

        Raises:
            WorkspaceError: If the file exists and ``overwrite`` is false, or
                the write fails.
        """
        target = self.resolve(path)
        if target.exists() and not overwrite:
            raise WorkspaceError(f"File {target} already exists and overwrite is disabled")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("w", encoding="utf-8", newline="") as f:
                f.write(content)
        except OSError as e:
            raise WorkspaceError(f"Cannot write {target}: {e}") from e
        logger.info("Wrote %s (%d chars)", target, len(content))
        return target

    def delete(self, path: str | Path) -> None:
        """Remove a file.

        Raises:
            WorkspaceError: If the file is missing or cannot be removed.
        """
        target = self.resolve(path)
        try:
            target.unlink()
        except FileNotFoundError as e:
            raise WorkspaceError(f"File not found: {target}") from e
        except OSError as e:
            raise WorkspaceError(f"Cannot delete {target}: {e}") from e
        logger.info("Deleted %s", target)
