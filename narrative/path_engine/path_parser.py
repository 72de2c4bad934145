"""
Tokenizer and recursive-descent parser for path expressions.

Grammar, lowest precedence first::

    expression := and_expr ('or' and_expr)*
    and_expr   := comparison ('and' comparison)*
    comparison := path (('=' | '!=' | '<' | '<=' | '>' | '>=') path)?
    path       := primary ('.' IDENT ['(' args ')'] | '[' INT ']')*
    primary    := STRING | NUMBER | 'true' | 'false' | '{' '}' | '%' IDENT
                | IDENT ['(' args ')'] | '(' expression ')'

The parser scans tokens lazily, so it can stop in the middle of a larger text
(used for include parameters, where several expressions share one tag).
"""

import logging
import re
from decimal import Decimal
from typing import Any, List, NamedTuple, Tuple

from narrative.path_engine.path_nodes import (
    BinaryExpr, CompiledPath, ConstantExpr, EmptyExpr, EnvironmentExpr,
    FunctionExpr, IndexExpr, MemberExpr, NameExpr,
)
from narrative.system.errors import ExpressionSyntaxError

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"""
    (?P<number>\d+(?:\.\d+)?)
  | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
  | (?P<env>%[A-Za-z_][A-Za-z0-9_]*)
  | (?P<ident>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<op>!=|<=|>=|=|<|>)
  | (?P<punct>[.()\[\],{}])
""", re.VERBOSE)
_WHITESPACE_RE = re.compile(r"\s*")
_ESCAPE_RE = re.compile(r"\\(.)", re.DOTALL)
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r"}

# Function name -> number of arguments
FUNCTION_ARITY = {
    "exists": 0,
    "empty": 0,
    "count": 0,
    "first": 0,
    "last": 0,
    "not": 0,
    "upper": 0,
    "lower": 0,
    "join": 1,
}

_KEYWORDS = {"and", "or"}


class Token(NamedTuple):
    kind: str
    value: str
    start: int
    end: int


def _unescape(literal: str) -> str:
    body = literal[1:-1]
    return _ESCAPE_RE.sub(lambda m: _ESCAPES.get(m.group(1), m.group(1)), body)


class PathParser:
    """
    Parses one path expression out of a text, starting at a given offset.
    """

    def __init__(self, text: str, offset: int = 0):
        if not isinstance(text, str):
            raise TypeError("Expression text must be a string.")
        self.text = text
        self._token = self._scan(offset)

    # --- Scanning ---

    def _scan(self, pos: int) -> Token:
        pos = _WHITESPACE_RE.match(self.text, pos).end()
        if pos >= len(self.text):
            return Token("eof", "", len(self.text), len(self.text))
        match = _TOKEN_RE.match(self.text, pos)
        if not match:
            char = self.text[pos]
            if char in "'\"":
                raise ExpressionSyntaxError("Unterminated string literal", self.text, pos)
            raise ExpressionSyntaxError(f"Unexpected character {char!r}", self.text, pos)
        kind = match.lastgroup
        return Token(kind, match.group(kind), match.start(), match.end())

    def _advance(self) -> Token:
        token = self._token
        self._token = self._scan(token.end)
        return token

    def _at(self, kind: str, value: str = None) -> bool:
        return self._token.kind == kind and (value is None or self._token.value == value)

    def _expect(self, kind: str, value: str = None) -> Token:
        if not self._at(kind, value):
            expected = value or kind
            found = self._token.value or "end of expression"
            raise ExpressionSyntaxError(f"Expected '{expected}' but found '{found}'", self.text, self._token.start)
        return self._advance()

    # --- Entry points ---

    def parse_expression(self) -> Any:
        if self._at("eof"):
            raise ExpressionSyntaxError("Empty expression", self.text, self._token.start)
        return self._parse_or()

    def parse_all(self) -> CompiledPath:
        """Parses the whole text as one expression."""
        node = self.parse_expression()
        if not self._at("eof"):
            raise ExpressionSyntaxError(f"Unexpected token '{self._token.value}'", self.text, self._token.start)
        return CompiledPath(node, self.text.strip())

    def parse_prefix(self, start: int) -> Tuple[CompiledPath, int]:
        """
        Parses the longest expression at the current position.

        Returns:
            The compiled expression and the offset of the first unconsumed token.
        """
        node = self.parse_expression()
        end = self._token.start
        return CompiledPath(node, self.text[start:end].strip()), end

    # --- Grammar ---

    def _parse_or(self) -> Any:
        left = self._parse_and()
        while self._at("ident", "or"):
            self._advance()
            left = BinaryExpr("or", left, self._parse_and())
        return left

    def _parse_and(self) -> Any:
        left = self._parse_comparison()
        while self._at("ident", "and"):
            self._advance()
            left = BinaryExpr("and", left, self._parse_comparison())
        return left

    def _parse_comparison(self) -> Any:
        left = self._parse_path()
        if self._at("op"):
            operator = self._advance().value
            return BinaryExpr(operator, left, self._parse_path())
        return left

    def _parse_path(self) -> Any:
        node = self._parse_primary()
        while True:
            if self._at("punct", "."):
                self._advance()
                name = self._expect("ident").value
                if self._at("punct", "("):
                    node = FunctionExpr(name, self._parse_arguments(name), target=node)
                else:
                    node = MemberExpr(node, name)
            elif self._at("punct", "["):
                self._advance()
                index_token = self._expect("number")
                if "." in index_token.value:
                    raise ExpressionSyntaxError("Index must be an integer", self.text, index_token.start)
                self._expect("punct", "]")
                node = IndexExpr(node, int(index_token.value))
            else:
                return node

    def _parse_primary(self) -> Any:
        token = self._token
        if token.kind == "string":
            self._advance()
            return ConstantExpr(_unescape(token.value))
        if token.kind == "number":
            self._advance()
            return ConstantExpr(Decimal(token.value) if "." in token.value else int(token.value))
        if token.kind == "env":
            self._advance()
            return EnvironmentExpr(token.value[1:])
        if token.kind == "ident":
            if token.value in _KEYWORDS:
                raise ExpressionSyntaxError(f"Unexpected keyword '{token.value}'", self.text, token.start)
            self._advance()
            if token.value == "true":
                return ConstantExpr(True)
            if token.value == "false":
                return ConstantExpr(False)
            if self._at("punct", "("):
                return FunctionExpr(token.value, self._parse_arguments(token.value))
            return NameExpr(token.value)
        if self._at("punct", "("):
            self._advance()
            node = self._parse_or()
            self._expect("punct", ")")
            return node
        if self._at("punct", "{"):
            self._advance()
            self._expect("punct", "}")
            return EmptyExpr()
        found = token.value or "end of expression"
        raise ExpressionSyntaxError(f"Unexpected token '{found}'", self.text, token.start)

    def _parse_arguments(self, name: str) -> List[Any]:
        start = self._token.start
        if name not in FUNCTION_ARITY:
            raise ExpressionSyntaxError(f"Unknown function '{name}'", self.text, start)
        self._expect("punct", "(")
        arguments: List[Any] = []
        if not self._at("punct", ")"):
            arguments.append(self._parse_or())
            while self._at("punct", ","):
                self._advance()
                arguments.append(self._parse_or())
        self._expect("punct", ")")
        if len(arguments) != FUNCTION_ARITY[name]:
            raise ExpressionSyntaxError(
                f"Function '{name}' takes {FUNCTION_ARITY[name]} argument(s), got {len(arguments)}",
                self.text, start
            )
        logger.debug(f"Parsed call to '{name}' with {len(arguments)} argument(s)")
        return arguments
