"""AST node implementations for path expressions.

Each node carries a ``type`` tag that PathExpressionEngine dispatches on.
Nodes are immutable once built by PathParser, so a compiled expression can be
shared freely between evaluations and threads.
"""
from typing import Any, List, Optional


class ConstantExpr:
    """A literal string, number or boolean."""

    def __init__(self, value: Any):
        self.type = "constant"
        self.value = value

    def __repr__(self) -> str:
        return f"ConstantExpr({self.value!r})"


class EmptyExpr:
    """The empty collection literal ``{}``."""

    def __init__(self):
        self.type = "empty"

    def __repr__(self) -> str:
        return "EmptyExpr()"


class EnvironmentExpr:
    """An engine-wide setting referenced as ``%name``."""

    def __init__(self, name: str):
        self.type = "environment"
        self.name = name

    def __repr__(self) -> str:
        return f"EnvironmentExpr(name='{self.name}')"


class NameExpr:
    """
    An identifier at the head of a path.

    Resolved against the current item first, then through the host resolver.
    """

    def __init__(self, name: str):
        self.type = "name"
        self.name = name

    def __repr__(self) -> str:
        return f"NameExpr(name='{self.name}')"


class MemberExpr:
    """Navigation ``target.name``."""

    def __init__(self, target: Any, name: str):
        self.type = "member"
        self.target = target
        self.name = name

    def __repr__(self) -> str:
        return f"MemberExpr(target={self.target!r}, name='{self.name}')"


class IndexExpr:
    """Zero-based indexing ``target[n]``."""

    def __init__(self, target: Any, index: int):
        self.type = "index"
        self.target = target
        self.index = index

    def __repr__(self) -> str:
        return f"IndexExpr(target={self.target!r}, index={self.index})"


class FunctionExpr:
    """
    A function call, either ``target.name(args)`` or ``name(args)``.

    Attributes:
        name: Function name, validated by the parser
        arguments: Argument expressions, evaluated against the current item
        target: Expression producing the input collection, or None for the current item
    """

    def __init__(self, name: str, arguments: List[Any], target: Optional[Any] = None):
        self.type = "function"
        self.name = name
        self.arguments = arguments
        self.target = target

    def __repr__(self) -> str:
        args_repr = ", ".join(repr(arg) for arg in self.arguments)
        return f"FunctionExpr(name='{self.name}', arguments=[{args_repr}], target={self.target!r})"


class BinaryExpr:
    """A logical (``and``/``or``) or comparison operator."""

    def __init__(self, operator: str, left: Any, right: Any):
        self.type = "binary"
        self.operator = operator
        self.left = left
        self.right = right

    def __repr__(self) -> str:
        return f"BinaryExpr({self.left!r} {self.operator} {self.right!r})"


class CompiledPath:
    """
    The compiled form handed back to callers of PathExpressionEngine.

    Keeps the source text next to the tree so runtime errors can quote it.
    """

    def __init__(self, node: Any, text: str):
        self.node = node
        self.text = text

    def __repr__(self) -> str:
        return f"CompiledPath({self.text!r})"
