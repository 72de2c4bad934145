"""Narrative templates: render text from structured data items.

Templates interleave literal text with {{ expressions }} and
{% if %} / {% loop %} / {% include %} directives.
"""

from narrative.engine import NarrativeEngine
from narrative.system.errors import (
    CyclicIncludeError,
    ExpressionError,
    ExpressionEvaluationError,
    ExpressionSyntaxError,
    TemplateEvaluationError,
    TemplateSyntaxError,
    UnresolvedIncludeError,
)
from narrative.system.models import EngineSettings, TemplateSyntaxErrorKind

__all__ = [
    "NarrativeEngine",
    "EngineSettings",
    "TemplateSyntaxErrorKind",
    "TemplateSyntaxError",
    "TemplateEvaluationError",
    "ExpressionError",
    "ExpressionSyntaxError",
    "ExpressionEvaluationError",
    "UnresolvedIncludeError",
    "CyclicIncludeError",
]
