"""Template evaluator component.

Walks parsed templates, manages variable scopes and sub-template includes,
and resolves template-bound names for the expression engine.
"""

from .interfaces import ExpressionEngine, HostResolver, IncludeResolver
from .include_resolvers import DictIncludeResolver, DirectoryIncludeResolver
from .template_evaluator import TemplateEvaluator

__all__ = [
    "ExpressionEngine",
    "HostResolver",
    "IncludeResolver",
    "DictIncludeResolver",
    "DirectoryIncludeResolver",
    "TemplateEvaluator",
]
