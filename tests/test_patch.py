"""Tests for coderag.actions.patch: applying diffs and changes to a workspace."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from coderag.actions.patch import PatchService
from coderag.actions.workspace import Workspace
from coderag.diff.compute import create_unified_diff
from coderag.exceptions import InputError
from coderag.types import CodeChange

if TYPE_CHECKING:
    from pathlib import Path

# --- Helpers ---

_APP_DIFF = """\
--- a/src/app.py
+++ b/src/app.py
@@ -1,2 +1,2 @@
 def greet(name):
-    return f'hello {name}'
+    return f'hi {name}'
"""


def _make_service(root: Path) -> PatchService:
    return PatchService(Workspace(root))


def _read(root: Path, rel: str) -> str:
    return (root / rel).read_text(encoding="utf-8")


# --- apply_patch ---


class TestApplyPatch:
    def test_modifies_file(self, workspace_tree: Path):
        report = _make_service(workspace_tree).apply_patch(_APP_DIFF)
        assert report.ok
        assert [(o.path, o.status) for o in report.outcomes] == [("src/app.py", "modified")]
        assert "hi {name}" in _read(workspace_tree, "src/app.py")

    def test_dry_run_leaves_disk_alone(self, workspace_tree: Path):
        before = _read(workspace_tree, "src/app.py")
        report = _make_service(workspace_tree).apply_patch(_APP_DIFF, dry_run=True)
        assert report.dry_run is True
        assert report.outcomes[0].status == "modified"
        assert _read(workspace_tree, "src/app.py") == before

    def test_creates_file(self, workspace_tree: Path):
        diff = "--- /dev/null\n+++ b/src/new.py\n@@ -0,0 +1,2 @@\n+a = 1\n+b = 2\n"
        report = _make_service(workspace_tree).apply_patch(diff)
        assert report.outcomes[0].status == "created"
        assert _read(workspace_tree, "src/new.py") == "a = 1\nb = 2\n"

    def test_create_over_existing_fails(self, workspace_tree: Path):
        diff = "--- /dev/null\n+++ b/src/app.py\n@@ -0,0 +1,1 @@\n+x\n"
        report = _make_service(workspace_tree).apply_patch(diff)
        assert not report.ok
        assert "already exists" in report.failed[0].error

    def test_deletes_file(self, workspace_tree: Path):
        diff = "--- a/src/style.css\n+++ /dev/null\n@@ -1,3 +0,0 @@\n-.header {\n-    color: red;\n-}\n"
        report = _make_service(workspace_tree).apply_patch(diff)
        assert report.outcomes[0].status == "deleted"
        assert not (workspace_tree / "src" / "style.css").exists()

    def test_delete_missing_fails(self, workspace_tree: Path):
        diff = "--- a/gone.py\n+++ /dev/null\n@@ -1,1 +0,0 @@\n-x\n"
        report = _make_service(workspace_tree).apply_patch(diff)
        assert report.failed[0].path == "gone.py"

    def test_renames_file(self, workspace_tree: Path):
        diff = (
            "diff --git a/src/app.py b/src/greet.py\n"
            "--- a/src/app.py\n"
            "+++ b/src/greet.py\n"
            "@@ -1,2 +1,2 @@\n"
            " def greet(name):\n"
            "-    return f'hello {name}'\n"
            "+    return f'hey {name}'\n"
        )
        report = _make_service(workspace_tree).apply_patch(diff)
        assert report.outcomes[0].status == "renamed"
        assert not (workspace_tree / "src" / "app.py").exists()
        assert "hey {name}" in _read(workspace_tree, "src/greet.py")

    def test_one_failure_does_not_stop_others(self, workspace_tree: Path):
        diff = "--- a/missing.py\n+++ b/missing.py\n@@ -1 +1 @@\n-a\n+b\n" + _APP_DIFF
        report = _make_service(workspace_tree).apply_patch(diff)
        assert [o.status for o in report.outcomes] == ["failed", "modified"]
        assert not report.ok
        assert "hi {name}" in _read(workspace_tree, "src/app.py")

    def test_unchanged(self, workspace_tree: Path):
        current = _read(workspace_tree, "src/app.py")
        diff = create_unified_diff(current, current, "src/app.py")
        report = _make_service(workspace_tree).apply_patch(diff)
        assert report.outcomes[0].status == "unchanged"

    def test_no_hunks_raises(self, workspace_tree: Path):
        with pytest.raises(InputError, match="No applicable hunks"):
            _make_service(workspace_tree).apply_patch("not a diff")


# --- apply_change ---


class TestApplyChange:
    def test_replaces_existing_file(self, workspace_tree: Path):
        change = CodeChange(
            new_code="def greet(name):\n    return f'yo {name}'",
            language="python",
            file_path="src/app.py",
        )
        report = _make_service(workspace_tree).apply_change(change)
        assert report.outcomes[0].status == "modified"
        assert _read(workspace_tree, "src/app.py") == "def greet(name):\n    return f'yo {name}'\n"

    def test_css_change(self, workspace_tree: Path):
        change = CodeChange(
            new_code=".header {\n    color: blue;\n}", language="css", file_path="src/style.css"
        )
        _make_service(workspace_tree).apply_change(change)
        assert _read(workspace_tree, "src/style.css") == ".header {\n    color: blue;\n}\n"

    def test_creates_missing_file(self, workspace_tree: Path):
        change = CodeChange(new_code="print('new')", file_path="scripts/run.py")
        report = _make_service(workspace_tree).apply_change(change)
        assert report.outcomes[0].status == "created"
        assert _read(workspace_tree, "scripts/run.py") == "print('new')\n"

    def test_dry_run_create(self, workspace_tree: Path):
        change = CodeChange(new_code="print('new')", file_path="scripts/run.py")
        _make_service(workspace_tree).apply_change(change, dry_run=True)
        assert not (workspace_tree / "scripts" / "run.py").exists()

    def test_diff_change_routes_to_patch(self, workspace_tree: Path):
        change = CodeChange(new_code="", file_path="src/app.py", diff=_APP_DIFF)
        report = _make_service(workspace_tree).apply_change(change)
        assert report.outcomes[0].status == "modified"

    def test_no_path_raises(self, workspace_tree: Path):
        with pytest.raises(InputError, match="no target file path"):
            _make_service(workspace_tree).apply_change(CodeChange(new_code="x = 1"))
