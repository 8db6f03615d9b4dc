"""Extract proposed code changes from free-form model output.

Model answers are prose with fenced code blocks, not a grammar. Each piece
of information is recovered by an ordered list of small named strategies;
the first one that yields a plausible answer wins. Every strategy is a plain
function of the text before the block so it can be tested on its own.

Three kinds of change are recognised:

- a fenced code block, with a target path and description inferred from the
  300 characters before it;
- a ``Before:``/``After:`` pair of blocks;
- a ``diff`` block or a bare ``diff --git`` block, kept as raw diff text.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from coderag.languages import language_for_path
from coderag.types import CodeChange

if TYPE_CHECKING:
    from collections.abc import Callable

__all__ = [
    "DESCRIPTION_STRATEGIES",
    "PATH_STRATEGIES",
    "infer_description",
    "infer_file_path",
    "infer_language_from_code",
    "is_likely_code",
    "is_valid_file_path",
    "parse_code_changes",
    "parse_diff_content",
]

logger = logging.getLogger(__name__)

CONTEXT_WINDOW = 300
MAX_PATH_LENGTH = 100

_CODE_BLOCK_RE = re.compile(r"```([\w-]*)\n([\s\S]*?)```")
_BEFORE_AFTER_RE = re.compile(
    r"Before:?\s*```(?:[\w-]*)\n([\s\S]*?)```\s*After:?\s*```(?:[\w-]*)\n([\s\S]*?)```",
    re.IGNORECASE,
)
_DIFF_BLOCK_RE = re.compile(r"```diff\n([\s\S]*?)```")
_GIT_DIFF_BLOCK_RE = re.compile(r"```(?:patch|git)?\n(diff\s+--git\s+[\s\S]*?)```")

NON_CODE_LANGUAGES = frozenset(
    {"output", "log", "text", "console", "terminal", "bash", "shell", "sh", "cmd", "powershell"}
)
# Diff blocks are picked up by their own pass
_DIFF_LANGUAGES = frozenset({"diff", "patch", "git"})

_VALID_EXTENSION_RE = re.compile(
    r"\.(js|jsx|ts|tsx|py|java|c|cpp|cs|go|rb|php|html|css|json|md|txt|xml|yaml|yml"
    r"|config|ini|sh|bat|ps1)$",
    re.IGNORECASE,
)
_INVALID_PATH_CHARS_RE = re.compile(r'[<>:"|?*]')
_WINDOWS_DRIVE_RE = re.compile(r"^[A-Za-z]:\\")
_ABSOLUTE_POSIX_RE = re.compile(r"^/[A-Za-z]")

_LANGUAGE_EXTENSIONS = {
    "javascript": "js",
    "typescript": "ts",
    "python": "py",
    "java": "java",
    "csharp": "cs",
    "html": "html",
    "css": "css",
    "json": "json",
    "markdown": "md",
}


# --- Validation ---


def is_valid_file_path(path: str) -> bool:
    """Heuristic check that a captured string names a file, not a sentence."""
    if not path or len(path) > MAX_PATH_LENGTH:
        return False
    if "\t" in path or path == "/dev/null":
        return False
    is_windows = bool(_WINDOWS_DRIVE_RE.match(path))
    if " " in path and not path.startswith(("'", '"')):
        if not is_windows and not _ABSOLUTE_POSIX_RE.match(path):
            return False
    if not _VALID_EXTENSION_RE.search(path):
        return False
    if _INVALID_PATH_CHARS_RE.search(path) and not is_windows:
        return False
    return True


_CODE_SIGNS: dict[str, re.Pattern[str]] = {
    "javascript": re.compile(r"function|const|let|var|import|export|class|interface|=>", re.I),
    "python": re.compile(r"def|class|import|from|if|for|while|return", re.I),
    "java": re.compile(r"class|public|private|protected|void|int|String|boolean", re.I),
    "csharp": re.compile(r"class|namespace|using|public|private|void|string|int|bool", re.I),
    "html": re.compile(r"</?[a-z][\s\S]*>", re.I),
    "css": re.compile(r"[.#]?[\w-]+\s*\{[^}]*\}", re.I),
}
_LANGUAGE_ALIASES = {
    "js": "javascript",
    "ts": "javascript",
    "typescript": "javascript",
    "py": "python",
    "cs": "csharp",
}
_GENERIC_CODE_SIGNS = (
    re.compile(r"[{}\[\]();]"),
    re.compile(r"\b(if|else|for|while|return|function|class)\b", re.I),
    re.compile(r"[a-zA-Z_]\w*\s*\("),
    re.compile(r"=\s*[^;]+;"),
    re.compile(r"\b(const|let|var|int|string|bool|void)\b", re.I),
)


def is_likely_code(code: str, language: str) -> bool:
    """Whether a fenced block plausibly holds source code in ``language``."""
    if len(code) < 10:
        return False
    lang = _LANGUAGE_ALIASES.get(language, language)
    if lang == "json":
        return bool(re.match(r"^\s*[{\[]", code)) and bool(re.search(r"[}\]]\s*$", code))
    sign = _CODE_SIGNS.get(lang)
    if sign is not None:
        return bool(sign.search(code))
    return any(pattern.search(code) for pattern in _GENERIC_CODE_SIGNS)


def infer_language_from_code(code: str) -> str:
    """Guess a language tag from syntax cues; ``""`` when nothing matches."""
    if "function" in code and ("=>" in code or "{" in code):
        return "javascript"
    if "def " in code and ":" in code:
        return "python"
    if "class " in code and "{" in code:
        return "java"
    if "<html" in code or "</div>" in code:
        return "html"
    if "import React" in code or 'from "react"' in code:
        return "javascript"
    if "#include" in code:
        return "cpp"
    return ""


# --- File path strategies ---

_QUOTED_PATH = r"[`\"']?([^`\"'\n,;]+\.\w+)[`\"']?"

_IN_FILE_RE = re.compile(
    r"\b(?:in|inside|within|for|to)\s+(?:the\s+)?(?:file\s+)?" + _QUOTED_PATH, re.I
)
_ACTION_FILE_RE = re.compile(
    r"\b(?:create|modify|update|edit|change)(?:\s+the)?\s+(?:file\s+)?" + _QUOTED_PATH, re.I
)
_FILE_NEEDS_RE = re.compile(
    _QUOTED_PATH
    + r"\s+(?:needs|should|must|will|can)\s+(?:to\s+)?(?:be\s+)?(?:updated|modified|changed|edited)",
    re.I,
)
_UPDATED_FILE_RE = re.compile(
    r"(?:here's|here\s+is|this\s+is)\s+(?:the\s+)?(?:updated|modified|new|changed)?\s+"
    r"(?:version\s+of\s+)?" + _QUOTED_PATH,
    re.I,
)
_PATH_AT_START_RE = re.compile(r"^[`\"']?([^`\"'\n,;]+\.\w+)[`\"']?[:\s]", re.M)
_CODE_FOR_RE = re.compile(r"Code\s+for\s+([^`\"'\n,;]+\.\w+)", re.I)


def _first_valid(pattern: re.Pattern[str], text: str) -> str | None:
    match = pattern.search(text)
    if match is None:
        return None
    candidate = match.group(1).strip()
    return candidate if is_valid_file_path(candidate) else None


def path_in_file(context: str, language: str) -> str | None:
    """``In file app.js, we need to ...``"""
    return _first_valid(_IN_FILE_RE, context)


def path_action_file(context: str, language: str) -> str | None:
    """``Update the file app.js``"""
    return _first_valid(_ACTION_FILE_RE, context)


def path_file_needs(context: str, language: str) -> str | None:
    """``app.js needs to be updated``"""
    return _first_valid(_FILE_NEEDS_RE, context)


def path_updated_file(context: str, language: str) -> str | None:
    """``Here's the updated app.js``"""
    return _first_valid(_UPDATED_FILE_RE, context)


def path_paragraph_start(context: str, language: str) -> str | None:
    """A path opening the paragraph right before the block: ``app.js:``"""
    last_paragraph = context.split("\n\n")[-1]
    return _first_valid(_PATH_AT_START_RE, last_paragraph)


def path_code_for(context: str, language: str) -> str | None:
    """``Code for app.js``"""
    return _first_valid(_CODE_FOR_RE, context)


def path_extension_from_language(context: str, language: str) -> str | None:
    """Any mention of a file whose extension matches the block language."""
    if not language:
        return None
    extension = _LANGUAGE_EXTENSIONS.get(language, language)
    pattern = re.compile(rf"([\w\-./]+\.{re.escape(extension)})\b", re.I)
    return _first_valid(pattern, context)


PATH_STRATEGIES: tuple[tuple[str, Callable[[str, str], str | None]], ...] = (
    ("in_file", path_in_file),
    ("action_file", path_action_file),
    ("file_needs", path_file_needs),
    ("updated_file", path_updated_file),
    ("paragraph_start", path_paragraph_start),
    ("code_for", path_code_for),
    ("extension_from_language", path_extension_from_language),
)


def infer_file_path(context: str, language: str = "") -> str | None:
    """Run :data:`PATH_STRATEGIES` in order; first plausible path wins."""
    for name, strategy in PATH_STRATEGIES:
        path = strategy(context, language)
        if path is not None:
            logger.debug("File path %r found by strategy %s", path, name)
            return path
    return None


# --- Description strategies ---

_INTENT_RE = re.compile(
    r"(?:I will|Let's|Here's|I'm going to)\s+([^.!?]+(?:[.!?][^.!?]+)*)[.!?]", re.I
)
_NEED_TO_RE = re.compile(r"(?:We|You|I)\s+(?:need|want|should|must|can)\s+to\s+([^.!?]+)[.!?]", re.I)
_CHANGE_WILL_RE = re.compile(
    r"(?:This|The)\s+(?:change|update|modification|code|diff)\s+(?:will|should|can)\s+([^.!?]+)[.!?]",
    re.I,
)
_MAKING_CHANGES_RE = re.compile(
    r"(?:I'm|I am)\s+(?:making|applying)\s+(?:changes|updates|modifications)\s+to\s+([^.!?]+)[.!?]",
    re.I,
)


def _first_group(pattern: re.Pattern[str], text: str) -> str | None:
    match = pattern.search(text)
    return match.group(1).strip() if match else None


def describe_intent(context: str) -> str | None:
    """``I will add a guard clause.``"""
    return _first_group(_INTENT_RE, context)


def describe_need_to(context: str) -> str | None:
    """``We need to rename the helper.``"""
    return _first_group(_NEED_TO_RE, context)


def describe_change_will(context: str) -> str | None:
    """``This change will fix the off-by-one.``"""
    return _first_group(_CHANGE_WILL_RE, context)


def describe_making_changes(context: str) -> str | None:
    """``I'm making changes to the parser.``"""
    return _first_group(_MAKING_CHANGES_RE, context)


DESCRIPTION_STRATEGIES: tuple[tuple[str, Callable[[str], str | None]], ...] = (
    ("intent", describe_intent),
    ("need_to", describe_need_to),
    ("change_will", describe_change_will),
)

_DIFF_DESCRIPTION_STRATEGIES: tuple[tuple[str, Callable[[str], str | None]], ...] = (
    ("change_will", describe_change_will),
    ("making_changes", describe_making_changes),
)


def infer_description(
    context: str,
    strategies: tuple[tuple[str, Callable[[str], str | None]], ...] = DESCRIPTION_STRATEGIES,
) -> str | None:
    for _name, strategy in strategies:
        description = strategy(context)
        if description:
            return description
    return None


# --- Diff blocks ---

_FILE_HEADER_RE = re.compile(r"^(?:---|\+\+\+)\s+(?:a/|b/)?(.+)$")
_GIT_HEADER_RE = re.compile(r"^diff\s+--git\s+a/(.+?)\s+b/(.+)$")
_DIFF_META_PREFIXES = ("diff", "index", "---", "+++")


def _language_for(path: str) -> str:
    language = language_for_path(path, default="")
    return language or path.rsplit(".", 1)[-1]


def parse_diff_content(diff_text: str) -> CodeChange:
    """Reconstruct both sides of a diff found in model output.

    The target path comes from the first valid ``---``/``+++`` header, else
    the ``b/`` path of a ``diff --git`` line. When the text has no ``@@``
    header, every ``+``/``-`` line is still read leniently.
    """
    lines = diff_text.split("\n")
    file_path: str | None = None
    language = ""

    for line in lines:
        match = _FILE_HEADER_RE.match(line)
        if match and is_valid_file_path(match.group(1)):
            file_path = match.group(1)
            language = _language_for(file_path)
            break
    if file_path is None:
        for line in lines:
            match = _GIT_HEADER_RE.match(line)
            if match and is_valid_file_path(match.group(2)):
                file_path = match.group(2)
                language = _language_for(file_path)
                break

    original: list[str] = []
    new: list[str] = []
    in_hunk = False
    for line in lines:
        if line.startswith("@@"):
            in_hunk = True
            continue
        if not in_hunk:
            continue
        if line.startswith("-"):
            original.append(line[1:])
        elif line.startswith("+"):
            new.append(line[1:])
        elif not line.startswith(_DIFF_META_PREFIXES):
            original.append(line)
            new.append(line)

    if not original and not new:
        for line in lines:
            if line.startswith("-") and not line.startswith("---"):
                original.append(line[1:])
            elif line.startswith("+") and not line.startswith("+++"):
                new.append(line[1:])
            elif not line.startswith(("@@", *_DIFF_META_PREFIXES)):
                original.append(line)
                new.append(line)

    original_code = "\n".join(original).strip()
    new_code = "\n".join(new).strip()
    return CodeChange(
        new_code=new_code,
        language=language or infer_language_from_code(original_code or new_code),
        original_code=original_code,
        file_path=file_path,
        diff=diff_text,
    )


def _diff_changes(content: str) -> list[CodeChange]:
    changes: list[CodeChange] = []
    for match in _DIFF_BLOCK_RE.finditer(content):
        diff_text = match.group(1).strip()
        parsed = parse_diff_content(diff_text)
        if not parsed.original_code and not parsed.new_code:
            continue
        context = content[max(0, match.start() - CONTEXT_WINDOW) : match.start()]
        changes.append(
            CodeChange(
                new_code=parsed.new_code or diff_text,
                language=parsed.language,
                original_code=parsed.original_code,
                description=infer_description(context, _DIFF_DESCRIPTION_STRATEGIES),
                file_path=parsed.file_path,
                diff=diff_text + "\n",
            )
        )

    for match in _GIT_DIFF_BLOCK_RE.finditer(content):
        diff_text = match.group(1).strip()
        if not (
            diff_text.startswith("diff --git") or "--- a/" in diff_text or "+++ b/" in diff_text
        ):
            continue
        parsed = parse_diff_content(diff_text)
        changes.append(
            CodeChange(
                new_code=parsed.new_code or diff_text,
                language=parsed.language,
                original_code=parsed.original_code or diff_text,
                file_path=parsed.file_path,
                diff=diff_text + "\n",
            )
        )
    return changes


# --- Entry point ---


def parse_code_changes(content: str) -> list[CodeChange]:
    """Extract every proposed change from a model answer, in reading order.

    Plain code blocks come first, then ``Before``/``After`` pairs, then diff
    blocks. Blocks that belong to a ``Before``/``After`` pair or hold a diff
    are reported only by their dedicated pass.
    """
    if not content:
        logger.warning("Cannot parse code changes: content is empty")
        return []

    paired_spans = [m.span() for m in _BEFORE_AFTER_RE.finditer(content)]

    def in_pair(pos: int) -> bool:
        return any(start <= pos < end for start, end in paired_spans)

    changes: list[CodeChange] = []
    blocks = 0
    for match in _CODE_BLOCK_RE.finditer(content):
        blocks += 1
        language = match.group(1).strip().lower()
        code = match.group(2).strip()
        if not code or language in NON_CODE_LANGUAGES or language in _DIFF_LANGUAGES:
            continue
        if code.startswith("diff --git") or in_pair(match.start()):
            continue
        if not is_likely_code(code, language):
            continue

        context = content[max(0, match.start() - CONTEXT_WINDOW) : match.start()]
        changes.append(
            CodeChange(
                new_code=code,
                language=language,
                description=infer_description(context),
                file_path=infer_file_path(context, language),
            )
        )

    for match in _BEFORE_AFTER_RE.finditer(content):
        original_code = match.group(1).strip()
        changes.append(
            CodeChange(
                new_code=match.group(2).strip(),
                language=infer_language_from_code(original_code),
                original_code=original_code,
            )
        )

    changes.extend(_diff_changes(content))
    logger.info("Parsed %d code changes from %d code blocks", len(changes), blocks)
    return changes
