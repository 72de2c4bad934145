"""AST node implementations for narrative templates.

Every node carries a ``type`` tag ("literal", "statement", "if", "loop",
"include") that TemplateEvaluator dispatches on. Child node sequences are
stored as tuples once the parser closes a node, so a parsed document is
read-only apart from the compiled-expression cells.
"""
import threading
from typing import Any, Dict, List, Optional, Tuple


class CompiledExpressionCell:
    """
    Lazily compiled expression text.

    The first call to get() compiles the text with the given engine; later
    calls return the cached form. Compilation is guarded by a lock so that
    concurrent evaluations of one document compile at most once.
    """

    def __init__(self, text: str):
        self.text = text
        self._compiled: Optional[Any] = None
        self._lock = threading.Lock()

    @property
    def is_compiled(self) -> bool:
        return self._compiled is not None

    def get(self, engine: Any) -> Any:
        compiled = self._compiled
        if compiled is None:
            with self._lock:
                if self._compiled is None:
                    self._compiled = engine.compile(self.text)
                compiled = self._compiled
        return compiled

    def __repr__(self) -> str:
        return f"CompiledExpressionCell({self.text!r}, compiled={self.is_compiled})"


class LiteralNode:
    """
    Raw text between markers.

    Built one character at a time while parsing; close() seals the text.
    """

    def __init__(self):
        self.type = "literal"
        self._parts: Optional[List[str]] = []
        self.text: Optional[str] = None

    def add_char(self, ch: str) -> None:
        if self._parts is None:
            raise ValueError("Cannot extend a closed literal")
        self._parts.append(ch)

    def close(self) -> None:
        if self._parts is not None:
            self.text = "".join(self._parts)
            self._parts = None

    def __repr__(self) -> str:
        text = self.text if self.text is not None else "".join(self._parts or [])
        return f"LiteralNode({text!r})"


class StatementNode:
    """An interpolation ``{{ expression }}``."""

    def __init__(self, expression: str):
        self.type = "statement"
        self.expression = CompiledExpressionCell(expression)

    def close(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"StatementNode({self.expression.text!r})"


class ConditionalNode:
    """
    ``{% if condition %} ... [{% else %} ...] {% endif %}``

    Attributes:
        condition: Cell holding the condition expression
        then_body: Nodes rendered when the condition is true
        else_body: Nodes rendered otherwise (may be empty)
    """

    def __init__(self, condition: str):
        self.type = "if"
        self.condition = CompiledExpressionCell(condition)
        self.then_body: Any = []
        self.else_body: Any = []

    def close(self) -> None:
        self.then_body = tuple(self.then_body)
        self.else_body = tuple(self.else_body)

    def __repr__(self) -> str:
        return (f"ConditionalNode({self.condition.text!r}, then={list(self.then_body)!r}, "
                f"else={list(self.else_body)!r})")


class LoopNode:
    """
    ``{% loop var in expression %} ... {% endloop %}``

    Attributes:
        var_name: Name bound to each item inside the body
        iterable: Cell holding the expression producing the items
        body: Nodes rendered once per item
    """

    def __init__(self, var_name: str, iterable: str):
        self.type = "loop"
        self.var_name = var_name
        self.iterable = CompiledExpressionCell(iterable)
        self.body: Any = []

    def close(self) -> None:
        self.body = tuple(self.body)

    def __repr__(self) -> str:
        return f"LoopNode({self.var_name!r} in {self.iterable.text!r}, body={list(self.body)!r})"


class IncludeNode:
    """
    ``{% include name param=expression ... %}``

    Parameter expressions are compiled when the tag is parsed, since the
    engine has to parse them anyway to find where each one ends.
    """

    def __init__(self, target: str):
        self.type = "include"
        self.target = target
        self.params: Dict[str, Any] = {}

    def add_param(self, name: str, compiled: Any) -> None:
        self.params[name] = compiled

    def has_param(self, name: str) -> bool:
        return name in self.params

    def close(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"IncludeNode({self.target!r}, params={list(self.params.keys())!r})"


class TemplateDocument:
    """
    A parsed template: its name and the closed sequence of top-level nodes.
    """

    def __init__(self, name: str, body: Tuple[Any, ...]):
        self.name = name
        self.body = tuple(body)

    def __len__(self) -> int:
        return len(self.body)

    def __repr__(self) -> str:
        return f"TemplateDocument(name={self.name!r}, nodes={len(self.body)})"
