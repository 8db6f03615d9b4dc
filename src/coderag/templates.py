"""Jinja2 template engine for retrieval answers and prompt context.

Loads templates from the package's built-in ``templates/`` directory, with
optional user overrides from ``.coderag/templates/``.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from pathlib import Path
from typing import TYPE_CHECKING, Any

import jinja2

from coderag.exceptions import TemplateError
from coderag.project import PROJECT_DIR

if TYPE_CHECKING:
    from _typeshed import DataclassInstance

__all__ = ["TemplateEngine"]

logger = logging.getLogger(__name__)


class TemplateEngine:
    """Jinja2 template engine with built-in and user-override support.

    Template search order:
      1. .coderag/templates/ (user overrides, optional)
      2. src/coderag/templates/ (built-in, always present)

    Args:
        project_root: Project root directory. If provided, enables user
            template overrides from ``project_root/.coderag/templates/``.
    """

    def __init__(self, project_root: Path | None = None) -> None:
        from importlib.resources import files

        search_paths: list[str] = []
        self._user_template_dir: Path | None = None

        if project_root is not None:
            user_dir = project_root / PROJECT_DIR / "templates"
            self._user_template_dir = user_dir
            if user_dir.is_dir():
                search_paths.append(str(user_dir))
                logger.info("User template overrides enabled: %s", user_dir)

        builtin_dir = Path(str(files("coderag") / "templates"))
        if not builtin_dir.is_dir():
            logger.debug("Expected template dir at: %s", builtin_dir)
            raise TemplateError("Built-in template directory not found, installation may be corrupted")
        search_paths.append(str(builtin_dir))

        self._loader = jinja2.FileSystemLoader(search_paths)
        self._env = jinja2.Environment(
            loader=self._loader,
            autoescape=False,
            undefined=jinja2.StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._env.filters["basename"] = lambda p: Path(str(p)).name
        logger.debug("TemplateEngine initialized with %d search path(s)", len(search_paths))

    def render(self, template_name: str, context: DataclassInstance | dict[str, Any]) -> str:
        """Render a template with a dataclass (flattened via ``asdict``) or a dict.

        Raises:
            TemplateError: If the template is not found or rendering fails.
        """
        try:
            template = self._env.get_template(template_name)
        except jinja2.TemplateNotFound as e:
            raise TemplateError(f"Template not found: {template_name}") from e

        data = context if isinstance(context, dict) else asdict(context)
        try:
            return template.render(**data)
        except jinja2.TemplateError as e:
            raise TemplateError(f"Failed to render template {template_name}: {e}") from e

    def list_templates(self) -> list[str]:
        """List all available template names (built-in + overrides)."""
        return sorted(self._loader.list_templates())

    def is_overridden(self, template_name: str) -> bool:
        """Check if a template has a user override in .coderag/templates/."""
        if self._user_template_dir is None:
            return False
        return (self._user_template_dir / template_name).is_file()
