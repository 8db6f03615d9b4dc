"""Tests for coderag.actions.response: extracting code changes from model output."""

from __future__ import annotations

import pytest

from coderag.actions.response import (
    infer_description,
    infer_file_path,
    infer_language_from_code,
    is_likely_code,
    is_valid_file_path,
    parse_code_changes,
    parse_diff_content,
)

_FENCE = "```"


def _block(language: str, body: str) -> str:
    return f"{_FENCE}{language}\n{body}\n{_FENCE}"


# --- Validation helpers ---


class TestIsValidFilePath:
    @pytest.mark.parametrize(
        "path",
        ["app.js", "src/utils/helpers.py", "C:\\proj\\main.cs", "/home/me/My Project/app.py"],
    )
    def test_valid(self, path: str):
        assert is_valid_file_path(path) is True

    @pytest.mark.parametrize(
        "path",
        ["", "this is a sentence.py", "tool.exe", "/dev/null", "a\tb.py", "x" * 101 + ".py"],
    )
    def test_invalid(self, path: str):
        assert is_valid_file_path(path) is False


class TestIsLikelyCode:
    def test_too_short(self):
        assert is_likely_code("x = 1", "python") is False

    def test_language_signs(self):
        assert is_likely_code("def main():\n    pass", "py") is True
        assert is_likely_code("const x = () => 1;", "typescript") is True
        assert is_likely_code("plain words only", "css") is False

    def test_json(self):
        assert is_likely_code('{"a": 1, "b": 2}', "json") is True
        assert is_likely_code("not json at all", "json") is False

    def test_generic(self):
        assert is_likely_code("foo(bar, baz)", "ruby") is True
        assert is_likely_code("just some prose", "") is False


class TestInferLanguage:
    @pytest.mark.parametrize(
        ("code", "expected"),
        [
            ("function f() { return 1; }", "javascript"),
            ("def f():\n    return 1", "python"),
            ("class A { }", "java"),
            ("<div>x</div>", "html"),
            ("#include <stdio.h>", "cpp"),
            ("nothing recognisable", ""),
        ],
    )
    def test_cues(self, code: str, expected: str):
        assert infer_language_from_code(code) == expected


# --- Strategies ---


class TestInferFilePath:
    @pytest.mark.parametrize(
        ("context", "expected"),
        [
            ("In file src/app.js, we need a guard.", "src/app.js"),
            ("Update the file config.json as follows:", "config.json"),
            ("src/main.py needs to be updated.", "src/main.py"),
            ("Here's the updated styles.css:", "styles.css"),
            ("First paragraph.\n\nlib/core.py:\n", "lib/core.py"),
        ],
    )
    def test_strategies(self, context: str, expected: str):
        assert infer_file_path(context) == expected

    def test_extension_from_language(self):
        context = "The helper views.py handles requests."
        assert infer_file_path(context, "python") == "views.py"

    def test_nothing_found(self):
        assert infer_file_path("Some general advice without names.") is None


class TestInferDescription:
    def test_intent(self):
        assert infer_description("I will add a guard clause.\n\n") == "add a guard clause"

    def test_need_to(self):
        assert infer_description("We need to rename the helper.") == "rename the helper"

    def test_change_will(self):
        assert infer_description("This change will fix the off-by-one.") == "fix the off-by-one"

    def test_none(self):
        assert infer_description("Nothing declarative") is None


# --- parse_diff_content ---


class TestParseDiffContent:
    def test_reconstructs_both_sides(self):
        change = parse_diff_content(
            "--- a/src/app.py\n+++ b/src/app.py\n@@ -1,2 +1,2 @@\n-x = 1\n+x = 2\n y = 3"
        )
        assert change.file_path == "src/app.py"
        assert change.language == "python"
        assert change.original_code == "x = 1\n y = 3"
        assert change.new_code == "x = 2\n y = 3"
        assert change.is_diff

    def test_git_header_path(self):
        change = parse_diff_content("diff --git a/lib/u.js b/lib/u.js\n@@ -1 +1 @@\n-a\n+b")
        assert change.file_path == "lib/u.js"
        assert change.language == "javascript"

    def test_lenient_without_hunk_header(self):
        change = parse_diff_content("-old line\n+new line")
        assert change.original_code == "old line"
        assert change.new_code == "new line"
        assert change.file_path is None


# --- parse_code_changes ---


class TestParseCodeChanges:
    def test_empty(self):
        assert parse_code_changes("") == []

    def test_plain_block(self):
        content = (
            "In file src/app.js, I will add a guard clause.\n\n"
            + _block("javascript", "function main() {\n  return 1;\n}")
        )
        changes = parse_code_changes(content)
        assert len(changes) == 1
        change = changes[0]
        assert change.file_path == "src/app.js"
        assert change.language == "javascript"
        assert change.description == "add a guard clause"
        assert change.new_code.startswith("function main()")
        assert not change.is_diff

    def test_non_code_blocks_skipped(self):
        content = _block("bash", "npm install left-pad") + "\n" + _block("output", "ok: 3 passed")
        assert parse_code_changes(content) == []

    def test_short_block_skipped(self):
        assert parse_code_changes(_block("python", "x = 1")) == []

    def test_before_after_pair(self):
        content = (
            "Before:\n"
            + _block("python", "def f():\n    return 1")
            + "\nAfter:\n"
            + _block("python", "def f():\n    return 2")
        )
        changes = parse_code_changes(content)
        assert len(changes) == 1
        assert changes[0].original_code == "def f():\n    return 1"
        assert changes[0].new_code == "def f():\n    return 2"
        assert changes[0].language == "python"

    def test_diff_block(self):
        content = "This change will fix the greeting.\n\n" + _block(
            "diff",
            "--- a/src/app.py\n+++ b/src/app.py\n@@ -1,1 +1,1 @@\n-print('hi')\n+print('hello')",
        )
        changes = parse_code_changes(content)
        assert len(changes) == 1
        change = changes[0]
        assert change.is_diff
        assert change.file_path == "src/app.py"
        assert change.description == "fix the greeting"
        assert change.new_code == "print('hello')"
        assert change.diff.endswith("+print('hello')\n")

    def test_bare_git_diff_block(self):
        content = _block(
            "",
            "diff --git a/lib/util.py b/lib/util.py\n--- a/lib/util.py\n+++ b/lib/util.py\n"
            "@@ -1 +1 @@\n-a = 1\n+a = 2",
        )
        changes = parse_code_changes(content)
        assert len(changes) == 1
        assert changes[0].file_path == "lib/util.py"
        assert changes[0].is_diff

    def test_mixed_in_reading_order(self):
        content = (
            "Update the file a.py first.\n\n"
            + _block("python", "def a():\n    return 1")
            + "\n\nThen:\n\n"
            + _block("diff", "--- a/b.py\n+++ b/b.py\n@@ -1 +1 @@\n-x\n+y")
        )
        changes = parse_code_changes(content)
        assert [c.file_path for c in changes] == ["a.py", "b.py"]
        assert [c.is_diff for c in changes] == [False, True]
