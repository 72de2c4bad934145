"""
Parser for narrative templates.
Scans template source into a TemplateDocument (a tree of AST nodes).

Recognised markers:
    {{ expression }}                               interpolation
    {% if expr %} ... [{% else %} ...] {% endif %} conditional
    {% loop var in expr %} ... {% endloop %}       iteration
    {% include name [param=expr ...] %}            sub-template inclusion

Block structure is matched with terminator sets: each nested if/loop parses its
body with the closing keywords it accepts, and the recursive call returns the
keyword that ended the body.
"""

import logging
import re
from typing import Any, List, Optional, Sequence

from narrative.system.errors import ExpressionSyntaxError, TemplateSyntaxError
from narrative.system.models import SourceLocation, TemplateSyntaxErrorKind
from narrative.template_parser.ast_nodes import (
    ConditionalNode, IncludeNode, LiteralNode, LoopNode, StatementNode, TemplateDocument,
)

logger = logging.getLogger(__name__)

_CONTROL_RE = re.compile(r"(if|loop|include)\s+(.*)", re.DOTALL)
_IDENTIFIER_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

TAG_OPEN, TAG_CLOSE = "{%", "%}"
STATEMENT_OPEN, STATEMENT_CLOSE = "{{", "}}"


class TemplateParser:
    """
    Parses one template source into a TemplateDocument.

    A parser instance is single-use: create one per source text. The
    expression engine is only used to compile include parameters, which
    must be parsed here to find where each parameter expression ends.
    """

    def __init__(self, source: str, name: str, expression_engine: Any):
        if not isinstance(source, str):
            raise TypeError("Template source must be a string.")
        self.source = source
        self.name = name
        self.engine = expression_engine
        self.cursor = 0

    def parse(self) -> TemplateDocument:
        """
        Parses the whole source.

        Returns:
            The parsed TemplateDocument.

        Raises:
            TemplateSyntaxError: On any malformed construct. No partial document is returned.
        """
        logger.debug(f"Parsing template '{self.name}' ({len(self.source)} chars)")
        body: List[Any] = []
        self._parse_list(body, ())
        document = TemplateDocument(self.name, body)
        logger.debug(f"Parsed template '{self.name}' into {len(document)} top-level nodes")
        return document

    # --- Helpers ---

    def _location(self, offset: int) -> SourceLocation:
        return SourceLocation.from_offset(self.source, offset)

    def _error(self, kind: TemplateSyntaxErrorKind, message: str, offset: int, details: str = "") -> TemplateSyntaxError:
        logger.error(f"Template '{self.name}' syntax error ({kind.value}): {message}")
        return TemplateSyntaxError(kind, message, self.name, self._location(offset), error_details=details)

    def _starts_with(self, marker: str) -> bool:
        return self.source.startswith(marker, self.cursor)

    def _read_until(self, close: str, kind: TemplateSyntaxErrorKind, description: str) -> str:
        """Consumes an opening marker and everything up to the matching close marker."""
        start = self.cursor
        end = self.source.find(close, start + 2)
        if end < 0:
            fragment = self.source[start:start + 40]
            raise self._error(kind, f"Unterminated {description} {fragment!r}", start)
        self.cursor = end + len(close)
        return self.source[start + 2:end].strip()

    # --- Grammar ---

    def _parse_list(self, nodes: List[Any], terminators: Sequence[str], opened_at: int = 0) -> Optional[str]:
        """
        Parses nodes into `nodes` until end of input or a terminator tag.

        Returns:
            The terminator that ended the list, or None at end of input.
        """
        close = None
        while self.cursor < len(self.source):
            if self._starts_with(TAG_OPEN):
                tag_start = self.cursor
                content = self._read_until(TAG_CLOSE, TemplateSyntaxErrorKind.UNTERMINATED_TAG, "tag")
                if content in terminators:
                    close = content
                    break
                nodes.append(self._parse_control(content, tag_start))
            elif self._starts_with(STATEMENT_OPEN):
                nodes.append(self._parse_statement())
            else:
                if not nodes or not isinstance(nodes[-1], LiteralNode):
                    nodes.append(LiteralNode())
                nodes[-1].add_char(self.source[self.cursor])
                self.cursor += 1

        for node in nodes:
            node.close()

        if terminators and close is None:
            raise self._error(
                TemplateSyntaxErrorKind.MISSING_TERMINATOR,
                f"Found end of input, expected one of {list(terminators)}",
                opened_at
            )
        return close

    def _parse_control(self, content: str, tag_start: int) -> Any:
        match = _CONTROL_RE.fullmatch(content)
        if not match:
            raise self._error(
                TemplateSyntaxErrorKind.UNKNOWN_CONTROL_KEYWORD,
                f"Unknown flow control statement '{content}'",
                tag_start
            )
        keyword, rest = match.group(1), match.group(2).strip()
        if keyword == "if":
            return self._parse_if(rest, tag_start)
        if keyword == "loop":
            return self._parse_loop(rest, tag_start)
        return self._parse_include(rest, tag_start)

    def _parse_if(self, condition: str, tag_start: int) -> ConditionalNode:
        node = ConditionalNode(condition)
        term = self._parse_list(node.then_body, ("else", "endif"), tag_start)
        if term == "else":
            self._parse_list(node.else_body, ("endif",), tag_start)
        return node

    def _parse_loop(self, content: str, tag_start: int) -> LoopNode:
        parts = content.split(None, 2)
        if len(parts) != 3 or parts[1] != "in" or not _IDENTIFIER_RE.fullmatch(parts[0]):
            raise self._error(
                TemplateSyntaxErrorKind.MALFORMED_LOOP_SYNTAX,
                f"Error reading loop: expected 'loop VAR in EXPRESSION', got '{content}'",
                tag_start
            )
        node = LoopNode(parts[0], parts[2].strip())
        self._parse_list(node.body, ("endloop",), tag_start)
        return node

    def _parse_include(self, content: str, tag_start: int) -> IncludeNode:
        target_end = 0
        while target_end < len(content) and not content[target_end].isspace():
            target_end += 1
        target = content[:target_end]
        if len(target) >= 2 and target[0] == target[-1] and target[0] in "'\"":
            target = target[1:-1]
        if not target:
            raise self._error(
                TemplateSyntaxErrorKind.MALFORMED_INCLUDE_SYNTAX,
                f"Error reading include: missing template name in '{content}'",
                tag_start
            )
        node = IncludeNode(target)

        i = target_end
        while i < len(content) and content[i].isspace():
            i += 1
        while i < len(content):
            name_start = i
            equals = content.find("=", i)
            name = content[name_start:equals].strip() if equals >= 0 else ""
            if not _IDENTIFIER_RE.fullmatch(name):
                raise self._error(
                    TemplateSyntaxErrorKind.MALFORMED_INCLUDE_SYNTAX,
                    f"Error reading include: expected 'name=expression' at '{content[name_start:]}'",
                    tag_start
                )
            if node.has_param(name):
                raise self._error(
                    TemplateSyntaxErrorKind.DUPLICATE_INCLUDE_PARAM,
                    f"Error reading include: duplicate parameter '{name}'",
                    tag_start
                )
            try:
                compiled, i = self.engine.parse_partial(content, equals + 1)
            except ExpressionSyntaxError as e:
                raise self._error(
                    TemplateSyntaxErrorKind.MALFORMED_INCLUDE_SYNTAX,
                    f"Error reading include: invalid expression for parameter '{name}'",
                    tag_start,
                    details=str(e)
                ) from e
            node.add_param(name, compiled)
            while i < len(content) and content[i].isspace():
                i += 1
        logger.debug(f"Parsed include of '{target}' with params {list(node.params.keys())}")
        return node

    def _parse_statement(self) -> StatementNode:
        start = self.cursor
        expression = self._read_until(STATEMENT_CLOSE, TemplateSyntaxErrorKind.UNTERMINATED_STATEMENT, "statement")
        if not expression:
            raise self._error(TemplateSyntaxErrorKind.EMPTY_STATEMENT, "Empty statement '{{ }}'", start)
        return StatementNode(expression)


def parse_template(source: str, name: str, expression_engine: Any) -> TemplateDocument:
    """
    Convenience function for parsing a template source.

    Raises:
        TemplateSyntaxError: On malformed template source
    """
    return TemplateParser(source, name, expression_engine).parse()
