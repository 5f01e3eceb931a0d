"""Function and method registries for the basequery expression language.

Global functions are callable by name (e.g. ``now()``, ``link("Notes/Alpha")``);
methods are called on a value (e.g. ``name.lower()``, ``file.hasTag("x")``)
and dispatched on the runtime kind of that value, falling back to the
methods registered for any kind.

Every implementation receives the calling ``Evaluator`` as its first
argument (methods receive the target value next). Eager implementations get
evaluated argument values; lazy ones get the unevaluated AST nodes and decide
what to evaluate themselves.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from basequery.expressions.values import ValueKind


class FunctionCategory(Enum):
    """Categories for organizing functions in documentation."""

    STRING = "string"
    DATE = "date"
    MATH = "math"
    COLLECTION = "collection"
    LOGIC = "logic"
    FILE = "file"
    RENDER = "render"


@dataclass
class FunctionParameter:
    """Definition of a function parameter.

    Attributes:
        name: Parameter name
        type: Expected type ("string", "number", "date", "any", "list", etc.)
        description: Human-readable description
        required: Whether this parameter is required
        default: Default value if not provided
        variadic: If True, this parameter accepts multiple values
    """

    name: str
    type: str
    description: str
    required: bool = True
    default: Any = None
    variadic: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "required": self.required,
            "variadic": self.variadic,
        }


@dataclass
class FunctionDefinition:
    """Complete definition of a global expression function.

    Attributes:
        name: Function name as used in expressions
        description: Human-readable description
        category: Category for documentation organization
        parameters: List of parameter definitions
        return_type: Type of the return value
        examples: Example expressions using this function
        implementation: The Python callable
        lazy: If True, the implementation receives unevaluated AST nodes
    """

    name: str
    description: str
    category: FunctionCategory
    parameters: list[FunctionParameter]
    return_type: str
    examples: list[str] = field(default_factory=list)
    implementation: Callable[..., Any] | None = None
    lazy: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Export for documentation output."""
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category.value,
            "parameters": [p.to_dict() for p in self.parameters],
            "returnType": self.return_type,
            "lazy": self.lazy,
            "examples": self.examples,
        }


@dataclass
class MethodDefinition:
    """A method callable on values of one kind (or on any kind when receiver is None)."""

    name: str
    receiver: ValueKind | None
    description: str
    implementation: Callable[..., Any]
    return_type: str = "any"
    lazy: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "receiver": self.receiver.value if self.receiver else "any",
            "description": self.description,
            "returnType": self.return_type,
            "lazy": self.lazy,
        }


class FunctionRegistry:
    """Registry for global expression functions.

    Example:
        FunctionRegistry.register(FunctionDefinition(
            name="number",
            description="Converts a value to a number",
            ...
        ))

        func = FunctionRegistry.get("number")
    """

    _functions: dict[str, FunctionDefinition] = {}
    _ready = False

    @classmethod
    def register(cls, func_def: FunctionDefinition) -> None:
        """Register a function definition.

        Args:
            func_def: Complete function definition with implementation
        """
        cls._functions[func_def.name] = func_def

    @classmethod
    def get(cls, name: str) -> FunctionDefinition:
        """Get a function definition by name.

        Raises:
            ValueError: If function is not registered
        """
        if name not in cls._functions:
            raise ValueError(f"Unknown function: {name}")
        return cls._functions[name]

    @classmethod
    def is_registered(cls, name: str) -> bool:
        """Check if a function is registered."""
        return name in cls._functions

    @classmethod
    def is_ready(cls) -> bool:
        """True once the builtin library has been fully registered."""
        return cls._ready

    @classmethod
    def mark_ready(cls) -> None:
        cls._ready = True

    @classmethod
    def list_all(cls) -> list[FunctionDefinition]:
        """List all registered functions."""
        return list(cls._functions.values())

    @classmethod
    def list_by_category(cls, category: FunctionCategory) -> list[FunctionDefinition]:
        """List functions in a specific category."""
        return [f for f in cls._functions.values() if f.category == category]

    @classmethod
    def export_documentation(cls) -> dict[str, Any]:
        """Export the registry for documentation output.

        Returns:
            Dict with all function definitions, also organized by category,
            plus the registered methods per receiver kind
        """
        by_category: dict[str, list[dict[str, Any]]] = {}
        for func_def in cls._functions.values():
            category = func_def.category.value
            if category not in by_category:
                by_category[category] = []
            by_category[category].append(func_def.to_dict())

        return {
            "functions": {name: f.to_dict() for name, f in cls._functions.items()},
            "byCategory": by_category,
            "methods": MethodRegistry.export_documentation(),
        }

    @classmethod
    def clear(cls) -> None:
        """Clear all registrations, methods included. Primarily for testing."""
        cls._functions.clear()
        cls._ready = False
        MethodRegistry.clear()


class MethodRegistry:
    """Registry for methods, keyed by receiver kind then method name."""

    _methods: dict[ValueKind | None, dict[str, MethodDefinition]] = {}

    @classmethod
    def register(cls, method_def: MethodDefinition) -> None:
        cls._methods.setdefault(method_def.receiver, {})[method_def.name] = method_def

    @classmethod
    def resolve(cls, receiver: ValueKind, name: str) -> MethodDefinition | None:
        """Find the method for a receiver kind, falling back to the any-kind set."""
        specific = cls._methods.get(receiver, {})
        if name in specific:
            return specific[name]
        return cls._methods.get(None, {}).get(name)

    @classmethod
    def list_for(cls, receiver: ValueKind | None) -> list[MethodDefinition]:
        return list(cls._methods.get(receiver, {}).values())

    @classmethod
    def export_documentation(cls) -> dict[str, list[dict[str, Any]]]:
        return {
            (receiver.value if receiver else "any"): [m.to_dict() for m in methods.values()]
            for receiver, methods in cls._methods.items()
        }

    @classmethod
    def clear(cls) -> None:
        cls._methods.clear()
