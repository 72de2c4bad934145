"""
NarrativeEngine: the entry point for parsing and rendering templates.

Wires a TemplateParser, a TemplateEvaluator, an expression engine and an
include resolver together, and applies EngineSettings.
"""

import logging
from typing import Any, Optional

from narrative.path_engine.path_engine import PathExpressionEngine
from narrative.system.errors import TemplateEvaluationError, TemplateSyntaxError
from narrative.system.models import EngineSettings
from narrative.template_evaluator.interfaces import ExpressionEngine, IncludeResolver
from narrative.template_evaluator.template_evaluator import TemplateEvaluator
from narrative.template_parser.ast_nodes import TemplateDocument
from narrative.template_parser.template_parser import TemplateParser

logger = logging.getLogger(__name__)


class NarrativeEngine:
    """
    Parses template sources into documents and renders documents against data items.

    A parsed TemplateDocument can be rendered any number of times, with
    different items and application contexts.
    """

    def __init__(
        self,
        expression_engine: Optional[ExpressionEngine] = None,
        include_resolver: Optional[IncludeResolver] = None,
        settings: Optional[EngineSettings] = None
    ):
        """
        Initializes the engine.

        Args:
            expression_engine: Engine for {{ }} and directive expressions. Defaults to PathExpressionEngine.
            include_resolver: Source of sub-templates for {% include %}. May be set later.
            settings: Engine configuration. Defaults to EngineSettings().
        """
        self.settings = settings if settings is not None else EngineSettings()
        self.expression_engine = expression_engine if expression_engine is not None else PathExpressionEngine()
        for key, value in self.settings.environment.items():
            self.expression_engine.set_environment_variable(key, value)
        self.evaluator = TemplateEvaluator(
            self.expression_engine,
            include_resolver=include_resolver,
            max_include_depth=self.settings.max_include_depth
        )
        logger.info(
            f"NarrativeEngine initialized with {type(self.expression_engine).__name__} "
            f"(max include depth {self.settings.max_include_depth})."
        )

    @property
    def include_resolver(self) -> Optional[IncludeResolver]:
        return self.evaluator.include_resolver

    @include_resolver.setter
    def include_resolver(self, include_resolver: Optional[IncludeResolver]) -> None:
        self.evaluator.include_resolver = include_resolver

    def set_environment_variable(self, key: str, value: str) -> None:
        """Makes value readable by expressions as %key. Set before rendering."""
        self.expression_engine.set_environment_variable(key, value)

    def parse(self, source: str, source_name: str) -> TemplateDocument:
        """
        Parses template source.

        Raises:
            TemplateSyntaxError: If the source is malformed.
        """
        return TemplateParser(source, source_name, self.expression_engine).parse()

    def evaluate(self, document: TemplateDocument, item: Any, app_context: Any = None) -> str:
        """
        Renders a parsed document against a data item.

        Raises:
            TemplateEvaluationError: For expression failures and include problems.
                Nothing is rendered when an error occurs.
        """
        try:
            return self.evaluator.evaluate(document, item, app_context)
        except (TemplateEvaluationError, TemplateSyntaxError) as e:
            logger.error(f"Evaluation of template '{document.name}' failed: {e}")
            raise

    def render(self, source: str, item: Any, source_name: str = "template", app_context: Any = None) -> str:
        """Parses and renders in one step."""
        return self.evaluate(self.parse(source, source_name), item, app_context)
