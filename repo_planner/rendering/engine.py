"""Sandboxed Jinja2 rendering of milestone descriptions, issue bodies and replies.

Templates live in the package's ``templates`` directory. The environment is
sandboxed because template context includes AI-generated text, and uses
``StrictUndefined`` so a missing variable fails loudly instead of rendering
an empty section.

Example:
    >>> renderer = get_renderer()
    >>> renderer.render("milestone_description.md.j2", analysis=analysis, generated_at=now)
"""

from functools import lru_cache
from pathlib import Path
from typing import Any

from jinja2 import FileSystemLoader, StrictUndefined, TemplateError as JinjaTemplateError, TemplateNotFound
from jinja2.sandbox import SandboxedEnvironment

from repo_planner.exceptions import TemplateError


class TemplateRenderer:
    """Jinja2 renderer for markdown output.

    Attributes:
        template_dir: Resolved path to the template directory.
        env: The SandboxedEnvironment instance.
    """

    def __init__(self, template_dir: Path | None = None) -> None:
        """Initialize renderer.

        Args:
            template_dir: Root directory for templates. If None, uses the
                package's built-in templates directory.

        Raises:
            ValueError: If template_dir doesn't exist or isn't a directory.
        """
        if template_dir is None:
            template_dir = Path(__file__).parent / "templates"

        self.template_dir = template_dir.resolve()
        if not self.template_dir.is_dir():
            raise ValueError(f"Template directory does not exist: {self.template_dir}")

        self.env = SandboxedEnvironment(
            loader=FileSystemLoader(str(self.template_dir)),
            undefined=StrictUndefined,
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=False,
        )

    def render(self, template_name: str, **context: Any) -> str:
        """Render a template with the given context.

        Raises:
            TemplateError: If the template is missing or fails to render
        """
        try:
            template = self.env.get_template(template_name)
        except TemplateNotFound as e:
            raise TemplateError(f"Template not found: {template_name}") from e

        try:
            return template.render(**context).strip()
        except JinjaTemplateError as e:
            raise TemplateError(f"Failed to render {template_name}: {e}") from e


@lru_cache(maxsize=1)
def get_renderer() -> TemplateRenderer:
    """Return the shared renderer for the built-in templates."""
    return TemplateRenderer()
