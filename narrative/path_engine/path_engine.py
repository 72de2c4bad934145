"""
Default expression engine: compiles and evaluates path expressions against
data items (mappings or plain objects).

Every expression evaluates to a collection (a Python list). Names at the head
of a path are first asked from the host resolver the caller passes in, which
is how template loop variables and include parameters become visible and
shadow same-named fields; names the resolver does not know are looked up on
the current item.
"""

import logging
from collections.abc import Mapping
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

from narrative.path_engine.path_nodes import CompiledPath
from narrative.path_engine.path_parser import PathParser
from narrative.system.errors import ExpressionEvaluationError, ExpressionSyntaxError
from narrative.template_evaluator.interfaces import HostResolver

logger = logging.getLogger(__name__)

_MISSING = object()
_SCALAR_TYPES = (str, bytes, int, float, Decimal, bool)


class _EvaluationState:
    """Per-call values every node handler needs."""

    def __init__(self, context: Any, root: Any, host: Optional[HostResolver], text: str):
        self.context = context
        self.root = root
        self.host = host
        self.text = text


def _as_collection(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [v for v in value if v is not None]
    return [value]


def _get_member(element: Any, name: str) -> Any:
    if isinstance(element, Mapping):
        return element[name] if name in element else _MISSING
    if isinstance(element, _SCALAR_TYPES) or name.startswith("_"):
        return _MISSING
    value = getattr(element, name, _MISSING)
    if callable(value):
        return _MISSING
    return value


def to_text(value: Any) -> str:
    """Renders a single item the way expressions print it."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def to_boolean(values: List[Any]) -> bool:
    """Empty is false, a single boolean is itself, anything else is true."""
    if not values:
        return False
    if len(values) == 1 and isinstance(values[0], bool):
        return values[0]
    return True


class PathExpressionEngine:
    """
    Compiles path expressions and evaluates them against data items.

    Implements the ExpressionEngine interface used by TemplateEvaluator.
    Compiled expressions are immutable and may be shared across threads;
    environment variables should be set before evaluation starts.
    """

    def __init__(self, environment: Optional[Dict[str, str]] = None):
        self._environment: Dict[str, Any] = dict(environment or {})
        self.NODE_HANDLERS: Dict[str, Callable] = {
            "constant": self._eval_constant,
            "empty": self._eval_empty,
            "environment": self._eval_environment,
            "name": self._eval_name,
            "member": self._eval_member,
            "index": self._eval_index,
            "function": self._eval_function,
            "binary": self._eval_binary,
        }
        self.FUNCTIONS: Dict[str, Callable] = {
            "exists": lambda values, args: [bool(values)],
            "empty": lambda values, args: [not values],
            "count": lambda values, args: [len(values)],
            "first": lambda values, args: values[:1],
            "last": lambda values, args: values[-1:],
            "not": lambda values, args: [not to_boolean(values)] if values else [],
            "upper": lambda values, args: [to_text(v).upper() for v in values],
            "lower": lambda values, args: [to_text(v).lower() for v in values],
            "join": self._fn_join,
        }
        logger.debug(f"PathExpressionEngine initialized with environment keys: {list(self._environment.keys())}")

    # --- Environment ---

    def set_environment_variable(self, key: str, value: str) -> None:
        logger.debug(f"Setting environment variable '%{key}'")
        self._environment[key] = value

    # --- Compilation ---

    def compile(self, text: str) -> CompiledPath:
        """
        Compiles a complete expression.

        Raises:
            ExpressionSyntaxError: If the text is empty, malformed, or has trailing content.
        """
        compiled = PathParser(text).parse_all()
        logger.debug(f"Compiled expression {text!r} -> {compiled.node!r}")
        return compiled

    def parse_partial(self, text: str, offset: int) -> Tuple[CompiledPath, int]:
        """
        Compiles the longest expression starting at offset and reports where it stopped.
        """
        if offset < 0 or offset > len(text):
            raise ExpressionSyntaxError("Offset outside of expression text", text, offset)
        compiled, end = PathParser(text, offset).parse_prefix(offset)
        logger.debug(f"Partially compiled {compiled.text!r} from offset {offset} to {end}")
        return compiled, end

    # --- Evaluation ---

    def evaluate(self, context: Any, root: Any, item: Any, compiled: CompiledPath,
                 host: Optional[HostResolver] = None) -> List[Any]:
        """
        Evaluates a compiled expression to a list of items.

        Args:
            context: Opaque evaluation context, passed back to the host resolver.
            root: The root data item (reachable as %root).
            item: The current data item that head names are resolved against.
            compiled: Result of compile() or parse_partial().
            host: Resolver consulted before the item for head names.
        """
        state = _EvaluationState(context, root, host, compiled.text)
        return self._eval(compiled.node, _as_collection(item), state)

    def evaluate_to_string(self, context: Any, root: Any, item: Any, compiled: CompiledPath,
                           host: Optional[HostResolver] = None) -> str:
        return "".join(to_text(v) for v in self.evaluate(context, root, item, compiled, host))

    def evaluate_to_boolean(self, context: Any, root: Any, item: Any, compiled: CompiledPath,
                            host: Optional[HostResolver] = None) -> bool:
        return to_boolean(self.evaluate(context, root, item, compiled, host))

    def _eval(self, node: Any, focus: List[Any], state: _EvaluationState) -> List[Any]:
        handler = self.NODE_HANDLERS.get(node.type)
        if handler is None:
            raise ExpressionEvaluationError(f"Unknown expression node type '{node.type}'", state.text)
        return handler(node, focus, state)

    def _eval_constant(self, node, focus, state) -> List[Any]:
        return [node.value]

    def _eval_empty(self, node, focus, state) -> List[Any]:
        return []

    def _eval_environment(self, node, focus, state) -> List[Any]:
        if node.name in self._environment:
            return _as_collection(self._environment[node.name])
        if node.name == "root":
            return _as_collection(state.root)
        raise ExpressionEvaluationError(f"Unknown environment variable '%{node.name}'", state.text)

    def _eval_name(self, node, focus, state) -> List[Any]:
        # Template bindings shadow fields of the current item
        if state.host is not None:
            bound = state.host.resolve_constant(state.context, node.name)
            if bound is not None:
                logger.debug(f"Name '{node.name}' resolved through host resolver")
                return _as_collection(bound)
        results: List[Any] = []
        found = False
        for element in focus:
            value = _get_member(element, node.name)
            if value is not _MISSING:
                found = True
                results.extend(_as_collection(value))
        if found:
            return results
        raise ExpressionEvaluationError(f"Unresolved name '{node.name}'", state.text)

    def _eval_member(self, node, focus, state) -> List[Any]:
        results: List[Any] = []
        for element in self._eval(node.target, focus, state):
            value = _get_member(element, node.name)
            if value is not _MISSING:
                results.extend(_as_collection(value))
        return results

    def _eval_index(self, node, focus, state) -> List[Any]:
        values = self._eval(node.target, focus, state)
        if 0 <= node.index < len(values):
            return [values[node.index]]
        return []

    def _eval_function(self, node, focus, state) -> List[Any]:
        values = self._eval(node.target, focus, state) if node.target is not None else focus
        arguments = [self._eval(arg, focus, state) for arg in node.arguments]
        function = self.FUNCTIONS.get(node.name)
        if function is None:
            raise ExpressionEvaluationError(f"Unknown function '{node.name}'", state.text)
        return function(values, arguments)

    def _fn_join(self, values: List[Any], arguments: List[List[Any]]) -> List[Any]:
        separator = "".join(to_text(v) for v in arguments[0])
        return [separator.join(to_text(v) for v in values)]

    def _eval_binary(self, node, focus, state) -> List[Any]:
        if node.operator == "and":
            return [to_boolean(self._eval(node.left, focus, state)) and to_boolean(self._eval(node.right, focus, state))]
        if node.operator == "or":
            return [to_boolean(self._eval(node.left, focus, state)) or to_boolean(self._eval(node.right, focus, state))]

        left = self._eval(node.left, focus, state)
        right = self._eval(node.right, focus, state)
        if not left or not right:
            return []
        if node.operator == "=":
            return [left == right]
        if node.operator == "!=":
            return [left != right]
        if len(left) != 1 or len(right) != 1:
            raise ExpressionEvaluationError(f"Operator '{node.operator}' requires single items on both sides", state.text)
        try:
            if node.operator == "<":
                return [left[0] < right[0]]
            if node.operator == "<=":
                return [left[0] <= right[0]]
            if node.operator == ">":
                return [left[0] > right[0]]
            return [left[0] >= right[0]]
        except TypeError as e:
            raise ExpressionEvaluationError(
                f"Cannot compare {type(left[0]).__name__} with {type(right[0]).__name__}",
                state.text, error_details=str(e)
            ) from e
