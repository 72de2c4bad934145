"""
System-wide custom error types for template parsing and evaluation.
"""

from typing import Optional, Sequence

from narrative.system.models import SourceLocation, TemplateSyntaxErrorKind


class TemplateSyntaxError(ValueError):
    """
    Raised when a template source cannot be parsed.
    Inherits from ValueError for general compatibility but carries the error kind,
    the template name and the location of the offending construct.
    """
    def __init__(
        self,
        kind: TemplateSyntaxErrorKind,
        message: str,
        template_name: str,
        location: Optional[SourceLocation] = None,
        error_details: str = "",
    ):
        """
        Initializes the TemplateSyntaxError.

        Args:
            kind: The category of syntax error.
            message: A high-level error message.
            template_name: Name of the template being parsed.
            location: Line/column of the construct that failed, if known.
            error_details: Specific details from a collaborator (e.g. the expression engine).
        """
        full_message = f"Template '{template_name}': {message}"
        if location is not None:
            full_message += f" (line {location.line}, column {location.column})"
        if error_details:
            full_message += f"\nDetails: {error_details}"
        super().__init__(full_message)
        self.kind = kind
        self.template_name = template_name
        self.location = location
        self.error_details = error_details


class TemplateEvaluationError(Exception):
    """
    Base class for errors raised while evaluating a parsed template.
    Any of these aborts the whole evaluation; no partial output is returned.
    """
    def __init__(self, message: str, expression: str = "", error_details: str = ""):
        full_message = f"{message}"
        if expression:
            full_message += f"\nExpression: '{expression}'"
        if error_details:
            full_message += f"\nDetails: {error_details}"
        super().__init__(full_message)
        self.expression = expression
        self.error_details = error_details


class ExpressionError(TemplateEvaluationError):
    """Base class for errors coming from the expression engine."""


class ExpressionSyntaxError(ExpressionError):
    """
    Raised by the expression engine when expression text cannot be compiled.
    Carries the offset in the expression text where parsing stopped.
    """
    def __init__(self, message: str, expression: str = "", offset: int = -1):
        details = f"at offset {offset}" if offset >= 0 else ""
        super().__init__(message, expression=expression, error_details=details)
        self.offset = offset


class ExpressionEvaluationError(ExpressionError):
    """
    Raised by the expression engine at runtime, e.g. for unresolved names,
    unknown environment variables or invalid function arguments.
    """


class UnresolvedIncludeError(TemplateEvaluationError):
    """Raised when the include resolver does not know the requested sub-template."""
    def __init__(self, include_name: str, error_details: str = ""):
        super().__init__(f"Unable to resolve include '{include_name}'", error_details=error_details)
        self.include_name = include_name


class CyclicIncludeError(TemplateEvaluationError):
    """
    Raised when nested includes exceed the configured depth, which in practice
    means a sub-template includes itself (directly or through others).
    """
    def __init__(self, include_chain: Sequence[str], max_depth: int):
        chain = " -> ".join(include_chain)
        super().__init__(
            f"Include depth limit of {max_depth} exceeded; probable include cycle",
            error_details=f"Include chain: {chain}"
        )
        self.include_chain = tuple(include_chain)
        self.max_depth = max_depth
