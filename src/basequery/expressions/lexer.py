"""Lexer/tokenizer for the basequery expression language.

Converts expression strings into a stream of tokens for the parser.

Token types:
- Literals: NUMBER, STRING, PATTERN (``/body/flags``)
- Identifiers: IDENTIFIER (property names, function names, true/false/null)
- Operators: comparison, logical (including ``and``/``or``/``not``), arithmetic
- Punctuation: ( ) [ ] { } , . :
"""

import re
from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator


class TokenType(Enum):
    """Kinds of tokens in the expression language."""

    NUMBER = auto()
    STRING = auto()
    IDENTIFIER = auto()
    PATTERN = auto()
    OPERATOR = auto()
    PUNCTUATION = auto()
    EOF = auto()


@dataclass(frozen=True)
class Token:
    """A single token from the lexer.

    Attributes:
        type: The token kind
        value: Token text (string contents are unescaped, number separators stripped)
        position: Offset of the first character in the source string
        end: Offset just past the last character
    """

    type: TokenType
    value: str
    position: int
    end: int

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, pos={self.position})"


class ExpressionSyntaxError(Exception):
    """Source text is not a valid expression."""

    def __init__(self, message: str, position: int):
        self.reason = message
        self.position = position
        super().__init__(f"{message} at position {position}")


class LexerError(ExpressionSyntaxError):
    """Error during lexical analysis."""


# Multi-character operators first
OPERATORS = ["==", "!=", ">=", "<=", "&&", "||", "+", "-", "*", "/", "%", ">", "<", "!"]

WORD_OPERATORS = {"and", "or", "not"}

PUNCTUATORS = set("()[]{},.:")

# Punctuation after which a slash opens a pattern literal
_PATTERN_OPENERS = {"(", "[", "{", ",", ":"}

_WHITESPACE = re.compile(r"\s+")
_NUMBER = re.compile(r"\d[\d_]*(?:\.\d[\d_]*)?")
_IDENTIFIER = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*")
_FLAGS = re.compile(r"[A-Za-z]*")


class Lexer:
    """Tokenizer for the expression language.

    Usage:
        lexer = Lexer('status == "active" && file.hasTag("project")')
        for token in lexer:
            print(token)
    """

    def __init__(self, source: str):
        self.source = source
        self.position = 0
        self._previous: Token | None = None

    def __iter__(self) -> Iterator[Token]:
        """Iterate over all tokens in the source."""
        while True:
            token = self.next_token()
            yield token
            if token.type == TokenType.EOF:
                break

    def next_token(self) -> Token:
        """Get the next token from the source."""
        token = self._read_token()
        self._previous = token
        return token

    def tokenize(self) -> list[Token]:
        """Tokenize the entire source and return list of tokens."""
        return list(self)

    def _read_token(self) -> Token:
        whitespace = _WHITESPACE.match(self.source, self.position)
        if whitespace:
            self.position = whitespace.end()

        start = self.position
        if start >= len(self.source):
            return Token(TokenType.EOF, "", start, start)

        char = self.source[start]

        if char in "\"'":
            return self._read_string(char)

        number = _NUMBER.match(self.source, start)
        if number:
            self.position = number.end()
            return Token(TokenType.NUMBER, number.group().replace("_", ""), start, self.position)

        identifier = _IDENTIFIER.match(self.source, start)
        if identifier:
            self.position = identifier.end()
            word = identifier.group()
            token_type = TokenType.OPERATOR if word in WORD_OPERATORS else TokenType.IDENTIFIER
            return Token(token_type, word, start, self.position)

        if char == "/" and self._can_start_pattern():
            return self._read_pattern()

        for operator in OPERATORS:
            if self.source.startswith(operator, start):
                self.position = start + len(operator)
                return Token(TokenType.OPERATOR, operator, start, self.position)

        if char in PUNCTUATORS:
            self.position = start + 1
            return Token(TokenType.PUNCTUATION, char, start, self.position)

        raise LexerError(f"Unexpected character '{char}'", start)

    def _can_start_pattern(self) -> bool:
        """A slash opens a pattern only where an operand is expected."""
        previous = self._previous
        if previous is None:
            return True
        if previous.type == TokenType.OPERATOR:
            return True
        return previous.type == TokenType.PUNCTUATION and previous.value in _PATTERN_OPENERS

    def _read_string(self, quote: str) -> Token:
        start = self.position
        index = start + 1
        chars: list[str] = []

        while index < len(self.source):
            current = self.source[index]
            if current == "\\":
                # The escaped character is taken verbatim
                if index + 1 < len(self.source):
                    chars.append(self.source[index + 1])
                index += 2
                continue
            if current == quote:
                self.position = index + 1
                return Token(TokenType.STRING, "".join(chars), start, self.position)
            chars.append(current)
            index += 1

        raise LexerError("Unterminated string literal", start)

    def _read_pattern(self) -> Token:
        start = self.position
        index = start + 1
        escaped = False

        while index < len(self.source):
            current = self.source[index]
            if current == "/" and not escaped:
                flags = _FLAGS.match(self.source, index + 1)
                self.position = flags.end()
                return Token(TokenType.PATTERN, self.source[start:self.position], start, self.position)
            escaped = current == "\\" and not escaped
            index += 1

        raise LexerError("Unterminated pattern literal", start)
