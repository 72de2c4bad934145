"""
Template evaluator implementation.
Walks a parsed TemplateDocument and renders it against a data item.
Handles interpolation, conditionals, loops and sub-template includes.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from narrative.system.errors import CyclicIncludeError, UnresolvedIncludeError
from narrative.template_evaluator.interfaces import ExpressionEngine, IncludeResolver
from narrative.template_evaluator.template_environment import IncludeParameterBag, TemplateEnvironment
from narrative.template_parser.ast_nodes import TemplateDocument
from narrative.template_parser.template_parser import parse_template

logger = logging.getLogger(__name__)

DEFAULT_MAX_INCLUDE_DEPTH = 32


class TemplateEvaluator:
    """
    Renders parsed templates.

    Every node handler appends to one output buffer (a list of strings) owned
    by the evaluate() call; handlers never keep a reference to it once they
    return. The evaluator is also the host resolver the expression engine
    calls back into for loop variables and the include parameter bag.
    """

    def __init__(
        self,
        expression_engine: ExpressionEngine,
        include_resolver: Optional[IncludeResolver] = None,
        max_include_depth: int = DEFAULT_MAX_INCLUDE_DEPTH
    ):
        """
        Initializes the evaluator with its collaborators.

        Args:
            expression_engine: Compiles and evaluates the expressions in templates.
            include_resolver: Supplies sub-template source for include tags.
            max_include_depth: Include nesting beyond this fails with CyclicIncludeError.
        """
        self.engine = expression_engine
        self.include_resolver = include_resolver
        self.max_include_depth = max_include_depth

        self.NODE_HANDLERS: Dict[str, Callable] = {
            "literal": self._eval_literal,
            "statement": self._eval_statement,
            "if": self._eval_if,
            "loop": self._eval_loop,
            "include": self._eval_include,
        }
        logger.debug(f"TemplateEvaluator initialized. NODE_HANDLERS keys: {list(self.NODE_HANDLERS.keys())}")

    def evaluate(self, document: TemplateDocument, item: Any, app_context: Any = None) -> str:
        """
        Renders a document against a data item.

        Args:
            document: A parsed template.
            item: The data item; serves as both root and current item for expressions.
            app_context: Opaque caller context, kept on every scope as external_context.

        Returns:
            The rendered text. On any error nothing is returned and the exception propagates.
        """
        logger.debug(f"Evaluating template '{document.name}'")
        buffer: List[str] = []
        env = TemplateEnvironment(external_context=app_context)
        self._eval_nodes(document.body, buffer, item, env)
        return "".join(buffer)

    def resolve_constant(self, context: Any, name: str) -> Optional[Any]:
        """
        Host-resolver callback: looks a name up in the template scope chain only.
        """
        if not isinstance(context, TemplateEnvironment):
            logger.debug(f"resolve_constant called with non-template context {type(context).__name__}")
            return None
        return context.lookup(name)

    # --- Node handlers ---

    def _eval_nodes(self, nodes: Sequence[Any], buffer: List[str], item: Any, env: TemplateEnvironment) -> None:
        for node in nodes:
            handler = self.NODE_HANDLERS.get(node.type)
            if handler is None:
                raise ValueError(f"Unknown template node type '{node.type}'")
            handler(node, buffer, item, env)

    def _eval_literal(self, node, buffer: List[str], item: Any, env: TemplateEnvironment) -> None:
        buffer.append(node.text)

    def _eval_statement(self, node, buffer: List[str], item: Any, env: TemplateEnvironment) -> None:
        compiled = node.expression.get(self.engine)
        buffer.append(self.engine.evaluate_to_string(env, item, item, compiled, self))

    def _eval_if(self, node, buffer: List[str], item: Any, env: TemplateEnvironment) -> None:
        compiled = node.condition.get(self.engine)
        ok = self.engine.evaluate_to_boolean(env, item, item, compiled, self)
        logger.debug(f"'if {node.condition.text}' evaluated to {ok}")
        self._eval_nodes(node.then_body if ok else node.else_body, buffer, item, env)

    def _eval_loop(self, node, buffer: List[str], item: Any, env: TemplateEnvironment) -> None:
        compiled = node.iterable.get(self.engine)
        values = self.engine.evaluate(env, item, item, compiled, self)
        logger.debug(f"'loop {node.var_name} in {node.iterable.text}' over {len(values)} items")
        if not values:
            return
        loop_env = env.extend()
        for value in values:
            loop_env.define(node.var_name, value)
            self._eval_nodes(node.body, buffer, item, loop_env)

    def _eval_include(self, node, buffer: List[str], item: Any, env: TemplateEnvironment) -> None:
        if len(env.include_chain) >= self.max_include_depth:
            logger.error(f"Include depth {self.max_include_depth} exceeded while including '{node.target}'")
            raise CyclicIncludeError(env.include_chain + (node.target,), self.max_include_depth)
        if self.include_resolver is None:
            raise UnresolvedIncludeError(node.target, error_details="No include resolver is configured")

        source = self.include_resolver.fetch_include(node.target)
        if source is None:
            raise UnresolvedIncludeError(node.target)
        document = parse_template(source, node.target, self.engine)

        parameters = IncludeParameterBag()
        include_env = env.for_include(node.target, parameters)
        for name, compiled in node.params.items():
            parameters.add_property(name, self.engine.evaluate(env, item, item, compiled, self))
        logger.debug(f"Including '{node.target}' with parameters {list(parameters.keys())}")
        self._eval_nodes(document.body, buffer, item, include_env)
