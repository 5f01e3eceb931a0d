"""Parser for the basequery expression language.

Converts a stream of tokens into an Abstract Syntax Tree (AST).
Binary operators are parsed by precedence climbing; everything above them
(unary operators, postfix chains, primaries) by recursive descent.

Operator Precedence (lowest to highest):
1. || (or)
2. && (and)
3. == !=
4. < <= > >=
5. + -
6. * / %
7. ! (not) - (unary)
8. . (member access) () (call) [] (index)
"""

from dataclasses import dataclass
from typing import Any

from basequery.expressions.lexer import ExpressionSyntaxError, Lexer, Token, TokenType
from basequery.expressions.values import Pattern


# -----------------------------------------------------------------------------
# AST Node Types
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class ASTNode:
    """Base class for AST nodes."""
    pass


@dataclass(frozen=True)
class Literal(ASTNode):
    """A literal value (number, string, pattern, boolean, null)."""
    value: Any
    raw: str = ""


@dataclass(frozen=True)
class Identifier(ASTNode):
    """A property or variable reference."""
    name: str


@dataclass(frozen=True)
class MemberAccess(ASTNode):
    """Dot notation member access (e.g., file.name, formula.total)."""
    object: ASTNode
    member: str


@dataclass(frozen=True)
class IndexAccess(ASTNode):
    """Bracket notation index access (e.g., tags[0], note["due date"])."""
    object: ASTNode
    index: ASTNode


@dataclass(frozen=True)
class BinaryOp(ASTNode):
    """Binary operation (e.g., a + b, x == y)."""
    operator: str
    left: ASTNode
    right: ASTNode


@dataclass(frozen=True)
class UnaryOp(ASTNode):
    """Unary operation (e.g., !x, -y)."""
    operator: str
    operand: ASTNode


@dataclass(frozen=True)
class Call(ASTNode):
    """Call of a global function or a method (e.g., now(), name.lower())."""
    callee: ASTNode
    arguments: tuple[ASTNode, ...]


@dataclass(frozen=True)
class ArrayLiteral(ASTNode):
    """List literal (e.g., [1, 2, 3], ["a", "b"])."""
    elements: tuple[ASTNode, ...]


@dataclass(frozen=True)
class ObjectLiteral(ASTNode):
    """Object literal (e.g., {key: value, "other key": 1}); pairs keep source order."""
    pairs: tuple[tuple[str, ASTNode], ...]


# -----------------------------------------------------------------------------
# Parser
# -----------------------------------------------------------------------------


class ParseError(ExpressionSyntaxError):
    """Error during parsing."""

    def __init__(self, message: str, token: Token):
        self.token = token
        super().__init__(message, token.position)


BINARY_PRECEDENCE = {
    "||": 1,
    "&&": 2,
    "==": 3,
    "!=": 3,
    "<": 4,
    "<=": 4,
    ">": 4,
    ">=": 4,
    "+": 5,
    "-": 5,
    "*": 6,
    "/": 6,
    "%": 6,
}

_NORMALIZED_OPERATORS = {"or": "||", "and": "&&", "not": "!"}

_KEYWORD_LITERALS = {"true": True, "false": False, "null": None}


class Parser:
    """Precedence-climbing parser for the expression language.

    Usage:
        parser = Parser('status == "active" && file.hasTag("project")')
        ast = parser.parse()
    """

    def __init__(self, source: str):
        self.source = source
        self.lexer = Lexer(source)
        self.tokens = self.lexer.tokenize()
        self.position = 0

    def parse(self) -> ASTNode:
        """Parse the expression and return the AST root."""
        if self._is_at_end():
            raise ParseError("Empty expression", self._current())

        ast = self._parse_expression(1)

        if not self._is_at_end():
            raise ParseError(
                f"Unexpected token '{self._current().value}'",
                self._current(),
            )

        return ast

    # -------------------------------------------------------------------------
    # Helper methods
    # -------------------------------------------------------------------------

    def _current(self) -> Token:
        """Get current token."""
        if self.position >= len(self.tokens):
            return Token(TokenType.EOF, "", len(self.source), len(self.source))
        return self.tokens[self.position]

    def _is_at_end(self) -> bool:
        """Check if we've consumed all tokens."""
        return self._current().type == TokenType.EOF

    def _advance(self) -> Token:
        """Consume and return current token."""
        token = self._current()
        self.position += 1
        return token

    def _match(self, token_type: TokenType, *values: str) -> bool:
        """Check if current token has the given type (and one of the values)."""
        token = self._current()
        if token.type != token_type:
            return False
        return not values or token.value in values

    def _consume(self, token_type: TokenType, value: str | None, message: str) -> Token:
        """Consume a token of the expected type, or raise error."""
        if self._match(token_type, *([value] if value else [])):
            return self._advance()
        raise ParseError(message, self._current())

    def _binary_operator(self) -> str | None:
        token = self._current()
        if token.type != TokenType.OPERATOR:
            return None
        operator = _NORMALIZED_OPERATORS.get(token.value, token.value)
        return operator if operator in BINARY_PRECEDENCE else None

    # -------------------------------------------------------------------------
    # Parsing methods
    # -------------------------------------------------------------------------

    def _parse_expression(self, min_precedence: int) -> ASTNode:
        """Parse a binary expression whose operators bind at least min_precedence."""
        left = self._parse_unary()

        while True:
            operator = self._binary_operator()
            if operator is None or BINARY_PRECEDENCE[operator] < min_precedence:
                return left
            self._advance()
            # Left associative: the right operand only takes tighter operators
            right = self._parse_expression(BINARY_PRECEDENCE[operator] + 1)
            left = BinaryOp(operator, left, right)

    def _parse_unary(self) -> ASTNode:
        """Parse unary expression (!, not, -)."""
        if self._match(TokenType.OPERATOR, "!", "not", "-"):
            token = self._advance()
            operand = self._parse_unary()
            return UnaryOp(_NORMALIZED_OPERATORS.get(token.value, token.value), operand)

        return self._parse_postfix()

    def _parse_postfix(self) -> ASTNode:
        """Parse postfix chains (member access, index, call)."""
        expr = self._parse_primary()

        while True:
            if self._match(TokenType.PUNCTUATION, "."):
                self._advance()
                member_token = self._consume(
                    TokenType.IDENTIFIER, None, "Expected property name after '.'"
                )
                expr = MemberAccess(expr, member_token.value)

            elif self._match(TokenType.PUNCTUATION, "["):
                self._advance()
                index = self._parse_expression(1)
                self._consume(TokenType.PUNCTUATION, "]", "Expected ']' after index")
                expr = IndexAccess(expr, index)

            elif self._match(TokenType.PUNCTUATION, "("):
                arguments = self._parse_sequence("(", ")", "arguments")
                expr = Call(expr, arguments)

            else:
                break

        return expr

    def _parse_primary(self) -> ASTNode:
        """Parse primary expression (literals, identifiers, grouped expressions)."""
        token = self._current()

        if token.type == TokenType.NUMBER:
            self._advance()
            value = float(token.value) if "." in token.value else int(token.value)
            return Literal(value, self.source[token.position:token.end])

        if token.type == TokenType.STRING:
            self._advance()
            return Literal(token.value, self.source[token.position:token.end])

        if token.type == TokenType.PATTERN:
            self._advance()
            return Literal(self._compile_pattern(token), token.value)

        if token.type == TokenType.IDENTIFIER:
            self._advance()
            if token.value in _KEYWORD_LITERALS:
                return Literal(_KEYWORD_LITERALS[token.value], token.value)
            return Identifier(token.value)

        if self._match(TokenType.PUNCTUATION, "("):
            self._advance()
            expr = self._parse_expression(1)
            self._consume(TokenType.PUNCTUATION, ")", "Expected ')' after expression")
            return expr

        if self._match(TokenType.PUNCTUATION, "["):
            return ArrayLiteral(self._parse_sequence("[", "]", "list elements"))

        if self._match(TokenType.PUNCTUATION, "{"):
            return self._parse_object_literal()

        if token.type == TokenType.EOF:
            raise ParseError("Unexpected end of expression", token)
        raise ParseError(f"Unexpected token '{token.value}'", token)

    def _parse_sequence(self, opener: str, closer: str, what: str) -> tuple[ASTNode, ...]:
        """Parse a comma-separated expression list between brackets."""
        self._consume(TokenType.PUNCTUATION, opener, f"Expected '{opener}'")

        items: list[ASTNode] = []

        if not self._match(TokenType.PUNCTUATION, closer):
            items.append(self._parse_expression(1))

            while self._match(TokenType.PUNCTUATION, ","):
                self._advance()
                items.append(self._parse_expression(1))

        self._consume(TokenType.PUNCTUATION, closer, f"Expected '{closer}' after {what}")

        return tuple(items)

    def _parse_object_literal(self) -> ObjectLiteral:
        """Parse an object literal {key: value, "key": value}."""
        self._consume(TokenType.PUNCTUATION, "{", "Expected '{'")

        pairs: list[tuple[str, ASTNode]] = []

        if not self._match(TokenType.PUNCTUATION, "}"):
            pairs.append(self._parse_object_pair())

            while self._match(TokenType.PUNCTUATION, ","):
                self._advance()
                pairs.append(self._parse_object_pair())

        self._consume(TokenType.PUNCTUATION, "}", "Expected '}' after object")

        return ObjectLiteral(tuple(pairs))

    def _parse_object_pair(self) -> tuple[str, ASTNode]:
        """Parse a key-value pair in an object literal."""
        # Key can be string or bareword
        if self._match(TokenType.STRING) or self._match(TokenType.IDENTIFIER):
            key = self._advance().value
        else:
            raise ParseError("Expected string or identifier as object key", self._current())

        self._consume(TokenType.PUNCTUATION, ":", "Expected ':' after object key")

        value = self._parse_expression(1)

        return key, value

    def _compile_pattern(self, token: Token) -> Pattern:
        closing = token.value.rfind("/")
        body, flags = token.value[1:closing], token.value[closing + 1:]
        try:
            return Pattern.create(body, flags)
        except ValueError as e:
            raise ParseError(str(e), token) from e


def parse(source: str) -> ASTNode:
    """Convenience function to parse an expression string.

    Args:
        source: The expression string

    Returns:
        The AST root node
    """
    return Parser(source).parse()
