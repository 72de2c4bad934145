"""Template parser package."""

from .ast_nodes import TemplateDocument
from .template_parser import TemplateParser, parse_template

__all__ = [
    "TemplateDocument",
    "TemplateParser",
    "parse_template",
]
