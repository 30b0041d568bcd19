"""Markdown rendering for milestone descriptions, issue bodies and replies."""

from repo_planner.rendering.engine import TemplateRenderer, get_renderer

__all__ = ["TemplateRenderer", "get_renderer"]
