"""Interface definitions for the template evaluator's collaborators.

This module defines the interfaces the TemplateEvaluator consumes (expression
engine, include resolver) and the one it exposes back to the expression engine
(host resolver for loop and include bindings).
"""
from typing import Any, List, Optional, Protocol, Tuple, runtime_checkable


@runtime_checkable
class HostResolver(Protocol):
    """
    Capability handed to the expression engine on every evaluation call.

    The engine calls back into it for names it cannot resolve against the
    data item itself.
    """

    def resolve_constant(self, context: Any, name: str) -> Optional[Any]:
        """
        Look up a name bound by the template (loop variable, include bag).

        Args:
            context: The evaluation context the engine was called with
            name: The name the engine could not resolve on the item

        Returns:
            The bound item, or None if the name is not bound
        """
        ...


@runtime_checkable
class ExpressionEngine(Protocol):
    """
    Interface for the expression engine used by templates.

    Compiled expressions are opaque to the template layer; the engine is the
    only component that builds or interprets them.
    """

    def compile(self, text: str) -> Any:
        """
        Compile expression text.

        Raises:
            ExpressionSyntaxError: If the text is not a single valid expression
        """
        ...

    def parse_partial(self, text: str, offset: int) -> Tuple[Any, int]:
        """
        Compile the longest expression starting at offset.

        Returns:
            (compiled expression, offset just past the consumed text)
        """
        ...

    def evaluate(self, context: Any, root: Any, item: Any, compiled: Any, host: Optional[HostResolver] = None) -> List[Any]:
        """Evaluate to a sequence of items."""
        ...

    def evaluate_to_string(self, context: Any, root: Any, item: Any, compiled: Any, host: Optional[HostResolver] = None) -> str:
        """Evaluate and render the result as text."""
        ...

    def evaluate_to_boolean(self, context: Any, root: Any, item: Any, compiled: Any, host: Optional[HostResolver] = None) -> bool:
        """Evaluate and coerce the result to a boolean."""
        ...

    def set_environment_variable(self, key: str, value: str) -> None:
        """Set an engine-wide value readable by expressions."""
        ...


@runtime_checkable
class IncludeResolver(Protocol):
    """
    Interface for components that supply sub-template source by name.
    """

    def fetch_include(self, name: str) -> Optional[str]:
        """
        Return the source text of the named sub-template.

        Args:
            name: Include target as written in the template (quotes stripped)

        Returns:
            Template source, or None if the name is unknown
        """
        ...
