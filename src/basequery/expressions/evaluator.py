"""Evaluator for the basequery expression language.

Walks the AST and computes the result against an evaluation context holding
one document's front matter (``note``), its file record (``file``), computed
formulas, and any scoped variables bound by list methods or summaries.

In strict mode an unknown identifier, function, method or property, or a
failed numeric coercion, raises ``EvaluationError``. Otherwise the offending
sub-expression evaluates to None and evaluation continues.
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any

from basequery.expressions.builtins import ensure_builtins
from basequery.expressions.functions import FunctionRegistry, MethodRegistry
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
    UnaryOp,
    parse,
)
from basequery.expressions.temporal import (
    apply_duration,
    shift_milliseconds,
    try_parse_duration,
)
from basequery.expressions.values import (
    Duration,
    EvaluationError,
    FileRecord,
    Link,
    ValueKind,
    as_datetime,
    compare,
    equals,
    is_number,
    is_truthy,
    kind_of,
    normalize_path,
    timestamp_ms,
    to_display,
    to_number,
)


__all__ = ["EvaluationContext", "EvaluationError", "Evaluator", "evaluate", "evaluate_bool"]


@dataclass
class EvaluationContext:
    """Context for expression evaluation.

    Attributes:
        note: Front-matter properties of the current document
        file: File record of the current document
        formula: Formula values computed so far for the current row
        this: Identity metadata of the current document (path, name)
        projected: Final column values, once the row has been projected
        variables: Scoped names (value, index, acc, values)
        files_by_path: Every document's file record keyed by path and name
    """

    note: Mapping[str, Any] = field(default_factory=dict)
    file: FileRecord | None = None
    formula: dict[str, Any] = field(default_factory=dict)
    this: dict[str, Any] | None = None
    projected: dict[str, Any] | None = None
    variables: dict[str, Any] = field(default_factory=dict)
    files_by_path: Mapping[str, FileRecord] = field(default_factory=dict)

    def with_variables(self, **variables: Any) -> "EvaluationContext":
        """Copy of this context with additional scoped variables."""
        return replace(self, variables={**self.variables, **variables})

    def own_field(self, name: str) -> tuple[bool, Any]:
        """Look up a context-level name; returns (found, value)."""
        if name in self.variables:
            return True, self.variables[name]
        if name == "note":
            return True, self.note
        if name == "file" and self.file is not None:
            return True, self.file
        if name == "formula":
            return True, self.formula
        if name == "this" and self.this is not None:
            return True, self.this
        if name == "projected" and self.projected is not None:
            return True, self.projected
        return False, None

    def lookup_file(self, path_like: str) -> FileRecord | None:
        """Find an indexed file by path, path.md, name, basename or basename.md."""
        normalized = normalize_path(path_like)
        name = normalized.rsplit("/", 1)[-1]
        stem = name.rsplit(".", 1)[0] if "." in name else name

        for candidate in (normalized, f"{normalized}.md", name, stem, f"{stem}.md"):
            found = self.files_by_path.get(candidate)
            if found is not None:
                return found
        return None

    def resolve_file(self, value: Any) -> FileRecord | None:
        """Resolve a file, link or path string to a file record.

        Paths that are not indexed resolve to a synthetic record.
        """
        if isinstance(value, FileRecord):
            return value
        if isinstance(value, Link):
            value = value.path
        if isinstance(value, str):
            return self.lookup_file(value) or FileRecord.synthetic(value)
        return None


_TIMESTAMP_FIELDS = {
    "year": lambda moment: moment.year,
    "month": lambda moment: moment.month,
    "day": lambda moment: moment.day,
    "hour": lambda moment: moment.hour,
    "minute": lambda moment: moment.minute,
    "second": lambda moment: moment.second,
    "millisecond": lambda moment: moment.microsecond // 1000,
}


class Evaluator:
    """Evaluates expression AST against a context.

    Usage:
        ctx = EvaluationContext(note={"status": "active", "count": 5})
        evaluator = Evaluator(ctx)
        result = evaluator.evaluate(ast)
    """

    def __init__(self, context: EvaluationContext, strict: bool = True):
        ensure_builtins()
        self.context = context
        self.strict = strict

    def evaluate(self, node: ASTNode) -> Any:
        """Evaluate an AST node and return the result."""
        method_name = f"_eval_{type(node).__name__.lower()}"
        method = getattr(self, method_name, None)

        if method is None:
            raise EvaluationError(f"Unknown node type: {type(node).__name__}")

        return method(node)

    def scoped(self, **variables: Any) -> "Evaluator":
        """Evaluator over this context extended with scoped variables."""
        return Evaluator(self.context.with_variables(**variables), strict=self.strict)

    def number(self, value: Any) -> int | float:
        return to_number(value, self.strict)

    def fail(self, message: str) -> None:
        """Raise in strict mode; the caller returns None otherwise."""
        if self.strict:
            raise EvaluationError(message)

    # -------------------------------------------------------------------------
    # Node type evaluators
    # -------------------------------------------------------------------------

    def _eval_literal(self, node: Literal) -> Any:
        """Evaluate a literal value."""
        return node.value

    def _eval_identifier(self, node: Identifier) -> Any:
        """Evaluate an identifier: context fields first, then front matter."""
        found, value = self.context.own_field(node.name)
        if found:
            return value

        if node.name in self.context.note:
            return self.context.note[node.name]

        self.fail(f"Unknown identifier: {node.name}")
        return None

    def _eval_memberaccess(self, node: MemberAccess) -> Any:
        """Evaluate member access (a.b)."""
        return self.member(self.evaluate(node.object), node.member)

    def member(self, obj: Any, name: str) -> Any:
        """Resolve a named member of a value."""
        kind = kind_of(obj)

        if kind == ValueKind.NULL:
            self.fail(f"Cannot access property '{name}' on null")
            return None

        if kind == ValueKind.DATE:
            if name in _TIMESTAMP_FIELDS:
                return _TIMESTAMP_FIELDS[name](as_datetime(obj))
            self.fail(f"Unknown date property: {name}")
            return None

        if kind == ValueKind.FILE:
            if obj.has(name):
                return obj.get(name)
            self.fail(f"Unknown file property: {name}")
            return None

        if kind == ValueKind.LINK and name in ("path", "display"):
            return getattr(obj, name)

        if kind in (ValueKind.STRING, ValueKind.LIST) and name == "length":
            return len(obj)

        if kind == ValueKind.OBJECT and isinstance(obj, Mapping):
            return obj.get(name)

        if kind == ValueKind.LIST:
            return None

        self.fail(f"Cannot access property '{name}' on {kind.value} value")
        return None

    def _eval_indexaccess(self, node: IndexAccess) -> Any:
        """Evaluate index access (a[b])."""
        obj = self.evaluate(node.object)
        index = self.evaluate(node.index)
        kind = kind_of(obj)

        if kind == ValueKind.LIST:
            number = self.number(index)
            if not math.isfinite(number):
                return None
            position = math.trunc(number)
            if 0 <= position < len(obj):
                return obj[position]
            return None

        if isinstance(index, str) or is_number(index):
            key = to_display(index)
            if kind == ValueKind.OBJECT and isinstance(obj, Mapping):
                return obj.get(key)
            if kind == ValueKind.FILE:
                return obj.get(key) if obj.has(key) else None

        self.fail(f"Cannot index {kind.value} value")
        return None

    def _eval_binaryop(self, node: BinaryOp) -> Any:
        """Evaluate a binary operation."""
        op = node.operator

        # Short-circuit: the deciding operand is the result
        if op == "&&":
            left = self.evaluate(node.left)
            if not is_truthy(left):
                return left
            return self.evaluate(node.right)

        if op == "||":
            left = self.evaluate(node.left)
            if is_truthy(left):
                return left
            return self.evaluate(node.right)

        left = self.evaluate(node.left)
        right = self.evaluate(node.right)

        # Comparison operators
        if op == "==":
            return equals(left, right, self.strict)
        if op == "!=":
            return not equals(left, right, self.strict)
        if op == "<":
            return compare(left, right, self.strict) < 0
        if op == "<=":
            return compare(left, right, self.strict) <= 0
        if op == ">":
            return compare(left, right, self.strict) > 0
        if op == ">=":
            return compare(left, right, self.strict) >= 0

        # Arithmetic operators
        try:
            if op == "+":
                return self._add(left, right)
            if op == "-":
                return self._subtract(left, right)
            if op == "*":
                return self._multiply(left, right)
            if op == "/":
                return self._divide(left, right)
            if op == "%":
                return self._modulo(left, right)
        except (OverflowError, ValueError) as e:
            raise EvaluationError(f"Invalid arithmetic: {e}") from e

        raise EvaluationError(f"Unknown operator: {op}")

    def _eval_unaryop(self, node: UnaryOp) -> Any:
        """Evaluate a unary operation."""
        operand = self.evaluate(node.operand)

        if node.operator == "!":
            return not is_truthy(operand)

        if node.operator == "-":
            return -self.number(operand)

        raise EvaluationError(f"Unknown unary operator: {node.operator}")

    def _eval_call(self, node: Call) -> Any:
        """Evaluate a global function call or a method call."""
        if isinstance(node.callee, Identifier):
            return self._call_function(node.callee.name, node.arguments)

        if isinstance(node.callee, MemberAccess):
            target = self.evaluate(node.callee.object)
            return self._call_method(target, node.callee.member, node.arguments)

        self.fail("Expression is not callable")
        return None

    def _call_function(self, func_name: str, arguments: tuple[ASTNode, ...]) -> Any:
        if not FunctionRegistry.is_registered(func_name):
            self.fail(f"Unknown function: {func_name}")
            return None

        func_def = FunctionRegistry.get(func_name)
        args = arguments if func_def.lazy else [self.evaluate(arg) for arg in arguments]

        try:
            return func_def.implementation(self, *args)
        except EvaluationError:
            raise
        except Exception as e:
            raise EvaluationError(f"Error calling {func_name}: {e}") from e

    def _call_method(self, target: Any, method_name: str, arguments: tuple[ASTNode, ...]) -> Any:
        kind = kind_of(target)
        method_def = MethodRegistry.resolve(kind, method_name)

        if method_def is None:
            self.fail(f"Unknown method: {method_name} on {kind.value} value")
            return None

        args = arguments if method_def.lazy else [self.evaluate(arg) for arg in arguments]

        try:
            return method_def.implementation(self, target, *args)
        except EvaluationError:
            raise
        except Exception as e:
            raise EvaluationError(f"Error calling {method_name}: {e}") from e

    def _eval_arrayliteral(self, node: ArrayLiteral) -> list[Any]:
        """Evaluate a list literal."""
        return [self.evaluate(elem) for elem in node.elements]

    def _eval_objectliteral(self, node: ObjectLiteral) -> dict[str, Any]:
        """Evaluate an object literal."""
        return {key: self.evaluate(value) for key, value in node.pairs}

    # -------------------------------------------------------------------------
    # Arithmetic
    # -------------------------------------------------------------------------

    def _add(self, left: Any, right: Any) -> Any:
        if isinstance(left, date):
            duration = try_parse_duration(right)
            if duration is not None:
                return apply_duration(left, duration, 1)
            if is_number(right):
                return shift_milliseconds(left, right)

        if isinstance(right, date):
            duration = try_parse_duration(left)
            if duration is not None:
                return apply_duration(right, duration, 1)

        if isinstance(left, Duration) and isinstance(right, Duration):
            return left + right

        if isinstance(left, str) or isinstance(right, str):
            return to_display(left) + to_display(right)

        return self.number(left) + self.number(right)

    def _subtract(self, left: Any, right: Any) -> Any:
        if isinstance(left, date) and isinstance(right, date):
            return timestamp_ms(left) - timestamp_ms(right)

        if isinstance(left, date):
            duration = try_parse_duration(right)
            if duration is not None:
                return apply_duration(left, duration, -1)
            if is_number(right):
                return shift_milliseconds(left, -right)

        if isinstance(left, Duration) and isinstance(right, Duration):
            return left.to_milliseconds() - right.to_milliseconds()

        return self.number(left) - self.number(right)

    def _multiply(self, left: Any, right: Any) -> Any:
        if isinstance(left, Duration) and is_number(right):
            return left.scaled(right)
        if isinstance(right, Duration) and is_number(left):
            return right.scaled(left)

        return self.number(left) * self.number(right)

    def _divide(self, left: Any, right: Any) -> Any:
        divisor = self.number(right)
        if divisor == 0:
            self.fail("Division by zero")
            return None

        if isinstance(left, Duration) and is_number(right):
            return left.scaled(1 / divisor)

        return self.number(left) / divisor

    def _modulo(self, left: Any, right: Any) -> Any:
        dividend = self.number(left)
        divisor = self.number(right)
        if divisor == 0:
            self.fail("Modulo by zero")
            return None

        # Sign follows the dividend
        result = math.fmod(dividend, divisor)
        if isinstance(dividend, int) and isinstance(divisor, int):
            return int(result)
        return result


# -----------------------------------------------------------------------------
# Convenience functions
# -----------------------------------------------------------------------------


def evaluate(
    expression: str | ASTNode,
    context: EvaluationContext | Mapping[str, Any] | None = None,
    *,
    strict: bool = True,
) -> Any:
    """Evaluate an expression against a context.

    This is the main entry point for expression evaluation.

    Args:
        expression: Expression source or an already parsed AST
        context: An EvaluationContext, or a plain mapping used as front matter
        strict: Raise on unresolved names and failed coercions

    Returns:
        The result of evaluating the expression

    Example:
        result = evaluate(
            'status == "active" && count > 0',
            {"status": "active", "count": 5}
        )
        # result = True
    """
    ast = parse(expression) if isinstance(expression, str) else expression

    if context is None:
        ctx = EvaluationContext()
    elif isinstance(context, EvaluationContext):
        ctx = context
    else:
        ctx = EvaluationContext(note=context)

    return Evaluator(ctx, strict=strict).evaluate(ast)


def evaluate_bool(
    expression: str | ASTNode,
    context: EvaluationContext | Mapping[str, Any] | None = None,
    *,
    strict: bool = True,
) -> bool:
    """Evaluate an expression and return its truthiness."""
    return is_truthy(evaluate(expression, context, strict=strict))
