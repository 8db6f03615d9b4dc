"""Tests for coderag.diff.apply: applying hunks and reconciling CSS rules."""

from __future__ import annotations

import pytest

from coderag.diff.apply import apply_diff, apply_new_content, plan_edits, reconcile_block
from coderag.diff.blocks import CssBlockFormat
from coderag.diff.compute import create_unified_diff, split_lines_keepends
from coderag.diff.parse import parse_diff
from coderag.exceptions import PartialApplyError

# --- Helpers ---


def _parse_one(text: str):
    parsed = parse_diff(text)
    assert len(parsed) == 1
    return parsed[0]


_CSS_SHIFTED = """\
/* header */
.header {
    color: red;
    margin: 0;
}
"""


# --- Exact application ---


class TestApplyDiff:
    def test_exact_match(self):
        parsed = _parse_one(create_unified_diff("a\nb\nc\n", "a\nx\nc\n"))
        assert apply_diff(parsed, "a\nb\nc\n") == "a\nx\nc\n"

    def test_two_hunks_bottom_up(self):
        content = "".join(f"l{i}\n" for i in range(1, 21))
        diff = (
            "--- a/f.txt\n+++ b/f.txt\n"
            "@@ -1,2 +1,3 @@\n l1\n+inserted\n l2\n"
            "@@ -15,1 +16,1 @@\n-l15\n+L15\n"
        )
        result = apply_diff(_parse_one(diff), content).splitlines()
        assert result[:3] == ["l1", "inserted", "l2"]
        assert result[15] == "L15"
        assert len(result) == 21

    def test_mismatch_applies_at_stated_lines(self):
        parsed = _parse_one("--- a/f.py\n+++ b/f.py\n@@ -2,1 +2,1 @@\n-zzz\n+y\n")
        assert apply_diff(parsed, "a\nb\nc\n") == "a\ny\nc\n"

    def test_start_past_end_appends(self):
        parsed = _parse_one("--- a/f.py\n+++ b/f.py\n@@ -9,0 +10,1 @@\n+tail\n")
        assert apply_diff(parsed, "a\n") == "a\ntail\n"

    def test_crlf_diff_on_lf_content(self):
        parsed = _parse_one("--- a/f.py\r\n+++ b/f.py\r\n@@ -1,2 +1,2 @@\r\n a\r\n-b\r\n+c\r\n")
        assert apply_diff(parsed, "a\nb\n") == "a\nc\n"

    def test_lf_diff_on_crlf_content(self):
        parsed = _parse_one(create_unified_diff("a\nb\n", "a\nc\nd\n", "f.py"))
        assert apply_diff(parsed, "a\r\nb\r\n") == "a\r\nc\r\nd\r\n"

    def test_mismatch_keeps_file_line_ending(self):
        parsed = _parse_one("--- a/f.py\n+++ b/f.py\n@@ -2,1 +2,1 @@\n-zzz\n+y\n")
        assert apply_diff(parsed, "a\r\nb\r\nc\r\n") == "a\r\ny\r\nc\r\n"

    def test_no_changes_hunk_is_noop(self):
        parsed = _parse_one(create_unified_diff("same\n", "same\n"))
        assert apply_diff(parsed, "same\n") == "same\n"


class TestPlanEdits:
    def test_edits_listed_bottom_up(self):
        content = "".join(f"l{i}\n" for i in range(1, 11))
        diff = "@@ -1,1 +1,1 @@\n-l1\n+one\n@@ -8,1 +8,1 @@\n-l8\n+eight\n"
        edits = plan_edits(_parse_one(diff), content)
        assert [e.start for e in edits] == [7, 0]
        assert edits[0].lines == (("eight", True),)


class TestApplyNewContent:
    @pytest.mark.parametrize(
        ("original", "new"),
        [
            ("a\nb\nc\n", "a\nx\nc\n"),
            ("", "x\ny\n"),
            ("x\n", ""),
            ("a\n", "a"),
            ("a", "a\n"),
            ("a\nb\n", "a\nnew\nb\n"),
            ("same\n", "same\n"),
            ("a\r\nb\r\nc\r\n", "a\r\nx\r\nc\r\n"),
            ("a\r\nb\nc\r\n", "a\r\nx\nc\r\n"),
            ("a\r\n", "a\n"),
            ("a\n", "a\r\n"),
            ("a\rb\n", "a\rc\n"),
            ("x\r\ny\r\n", "x\r\ny"),
        ],
    )
    def test_reproduces_new_content(self, original: str, new: str):
        assert apply_new_content(original, new, "f.py") == new

    def test_css_full_replacement(self):
        original = ".a {\n    color: red;\n}\n"
        new = ".a {\n    color: blue;\n}\n"
        assert apply_new_content(original, new, "site.css") == new

    def test_css_full_replacement_crlf(self):
        original = ".a {\r\n    color: red;\r\n}\r\n"
        new = ".a {\r\n    color: blue;\r\n}\r\n"
        assert apply_new_content(original, new, "site.css") == new


# --- Block reconciliation ---


class TestCssReconcile:
    def test_shifted_rule_rebuilt(self):
        diff = (
            "--- a/style.css\n+++ b/style.css\n"
            "@@ -1,3 +1,4 @@\n"
            " .header {\n"
            "-    color: red;\n"
            "+    color: blue;\n"
            "+    padding: 4px;\n"
            "     margin: 0;\n"
        )
        assert apply_diff(_parse_one(diff), _CSS_SHIFTED) == (
            "/* header */\n"
            ".header {\n"
            "    color: blue;\n"
            "    margin: 0;\n"
            "    padding: 4px;\n"
            "}\n"
        )

    def test_shifted_rule_keeps_crlf(self):
        diff = (
            "--- a/style.css\n+++ b/style.css\n"
            "@@ -1,3 +1,4 @@\n"
            " .header {\n"
            "-    color: red;\n"
            "+    color: blue;\n"
            "+    padding: 4px;\n"
            "     margin: 0;\n"
        )
        content = _CSS_SHIFTED.replace("\n", "\r\n")
        assert apply_diff(_parse_one(diff), content) == (
            "/* header */\r\n"
            ".header {\r\n"
            "    color: blue;\r\n"
            "    margin: 0;\r\n"
            "    padding: 4px;\r\n"
            "}\r\n"
        )

    def test_removed_property_dropped(self):
        diff = "--- a/style.css\n+++ b/style.css\n@@ -1,3 +1,2 @@\n .header {\n     color: red;\n-    margin: 0;\n"
        assert apply_diff(_parse_one(diff), _CSS_SHIFTED) == (
            "/* header */\n.header {\n    color: red;\n}\n"
        )

    def test_hunk_header_selects_rule(self):
        content = ".a {\n    color: red;\n}\n.card {\n    color: red;\n    margin: 0;\n}\n"
        diff = (
            "--- a/site.css\n+++ b/site.css\n"
            "@@ -2,2 +2,2 @@ .card {\n"
            "-    color: red;\n"
            "+    color: green;\n"
            "     margin: 0;\n"
        )
        assert apply_diff(_parse_one(diff), content) == (
            ".a {\n    color: red;\n}\n.card {\n    color: green;\n    margin: 0;\n}\n"
        )

    def test_non_property_change_falls_back(self):
        diff = (
            "--- a/style.css\n+++ b/style.css\n"
            "@@ -1,2 +1,2 @@\n"
            " .header {\n"
            "-    color: red;\n"
            "+.footer {\n"
        )
        result = apply_diff(_parse_one(diff), _CSS_SHIFTED)
        assert result.splitlines()[1] == ".footer {"

    def test_other_extensions_not_reconciled(self):
        diff = "--- a/f.py\n+++ b/f.py\n@@ -1,3 +1,3 @@\n .header {\n-    color: red;\n+    color: blue;\n     margin: 0;\n"
        result = apply_diff(_parse_one(diff), _CSS_SHIFTED)
        assert "/* header */" not in result


class TestReconcileBlock:
    def test_rejects_non_property_line(self):
        hunk = _parse_one("@@ -1,1 +1,1 @@\n-    color: red;\n+.footer {\n").hunks[0]
        with pytest.raises(PartialApplyError, match="Not a css property"):
            reconcile_block(hunk, split_lines_keepends(_CSS_SHIFTED), CssBlockFormat())

    def test_rejects_context_only_hunk(self):
        hunk = _parse_one("@@ -1,1 +1,1 @@\n .header {\n").hunks[0]
        with pytest.raises(PartialApplyError, match="changes no lines"):
            reconcile_block(hunk, split_lines_keepends(_CSS_SHIFTED), CssBlockFormat())

    def test_rule_not_found(self):
        hunk = _parse_one("@@ -1,1 +1,1 @@\n-color: red;\n+color: blue;\n").hunks[0]
        with pytest.raises(PartialApplyError, match="Could not locate"):
            reconcile_block(hunk, split_lines_keepends("color: red;\n"), CssBlockFormat())

    def test_edit_covers_whole_rule(self):
        hunk = _parse_one("@@ -2,1 +2,1 @@\n-    margin: 0;\n+    margin: 2px;\n").hunks[0]
        edit = reconcile_block(hunk, split_lines_keepends(_CSS_SHIFTED), CssBlockFormat())
        assert (edit.start, edit.end) == (1, 5)
        assert ("    margin: 2px;", True) in edit.lines
