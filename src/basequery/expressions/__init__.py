"""Expression language shared by filters, formulas and summaries.

This module provides:
- Lexer: Tokenizes expression strings
- Parser: Produces an immutable AST from tokens
- Evaluator: Evaluates an AST against a per-document context
- FunctionRegistry / MethodRegistry: Global functions and per-type methods
- Value helpers: kinds, coercion, comparison and display form
"""

from basequery.expressions.builtins import ensure_builtins, register_all_builtins
from basequery.expressions.evaluator import (
    EvaluationContext,
    EvaluationError,
    Evaluator,
    evaluate,
    evaluate_bool,
)
from basequery.expressions.functions import (
    FunctionCategory,
    FunctionDefinition,
    FunctionParameter,
    FunctionRegistry,
    MethodDefinition,
    MethodRegistry,
)
from basequery.expressions.lexer import (
    ExpressionSyntaxError,
    Lexer,
    LexerError,
    Token,
    TokenType,
)
from basequery.expressions.parser import (
    ASTNode,
    ArrayLiteral,
    BinaryOp,
    Call,
    Identifier,
    IndexAccess,
    Literal,
    MemberAccess,
    ObjectLiteral,
    ParseError,
    Parser,
    UnaryOp,
    parse,
)
from basequery.expressions.temporal import apply_duration, parse_duration
from basequery.expressions.values import (
    Duration,
    DurationPart,
    FileRecord,
    Html,
    Icon,
    Image,
    Link,
    Pattern,
    ValueKind,
    compare,
    equals,
    is_truthy,
    kind_of,
    stable_key,
    to_display,
    to_number,
)

__all__ = [
    # Evaluator
    "EvaluationContext",
    "EvaluationError",
    "Evaluator",
    "evaluate",
    "evaluate_bool",
    # Functions
    "FunctionCategory",
    "FunctionDefinition",
    "FunctionParameter",
    "FunctionRegistry",
    "MethodDefinition",
    "MethodRegistry",
    "ensure_builtins",
    "register_all_builtins",
    # Lexer
    "ExpressionSyntaxError",
    "Lexer",
    "LexerError",
    "Token",
    "TokenType",
    # Parser
    "ASTNode",
    "ArrayLiteral",
    "BinaryOp",
    "Call",
    "Identifier",
    "IndexAccess",
    "Literal",
    "MemberAccess",
    "ObjectLiteral",
    "ParseError",
    "Parser",
    "UnaryOp",
    "parse",
    # Values
    "Duration",
    "DurationPart",
    "FileRecord",
    "Html",
    "Icon",
    "Image",
    "Link",
    "Pattern",
    "ValueKind",
    "apply_duration",
    "compare",
    "equals",
    "is_truthy",
    "kind_of",
    "parse_duration",
    "stable_key",
    "to_display",
    "to_number",
]
