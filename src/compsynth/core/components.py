"""Synthesis components, programs and their Z3 translation."""

import operator
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from z3 import And, BoolSort, BoolVal, Const, ExprRef, If, IntSort, IntVal, Not, Or
from ..exceptions import ComponentTypeError


class Type(Enum):
    """Value types a component can produce."""

    INT = "int"
    BOOL = "bool"

    def sort(self):
        """Z3 sort of values of this type."""
        return IntSort() if self is Type.INT else BoolSort()

    @classmethod
    def parse(cls, name: str) -> "Type":
        try:
            return cls(name.lower())
        except (AttributeError, ValueError):
            raise ComponentTypeError(f"Unknown type: {name!r}")

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class Constant:
    """A literal value."""

    value: Union[int, bool]
    type: Optional[Type] = None

    def __post_init__(self):
        # bool is an int subclass, so the type is part of the identity
        if self.type is None:
            inferred = Type.BOOL if isinstance(self.value, bool) else Type.INT
            object.__setattr__(self, "type", inferred)

    def __str__(self):
        if self.type is Type.BOOL:
            return "true" if self.value else "false"
        return str(self.value)


@dataclass(frozen=True)
class Input:
    """A program variable bound by each example."""

    name: str
    type: Type = Type.INT

    def __str__(self):
        return self.name


@dataclass(frozen=True)
class Parameter:
    """A free constant whose value is chosen by the solver."""

    name: str
    type: Type = Type.INT

    def __str__(self):
        return self.name


@dataclass(frozen=True)
class Hole:
    """A typed open slot of a function component."""

    name: str
    type: Type = Type.INT

    def __str__(self):
        return f"?{self.name}"


@dataclass(frozen=True)
class Apply:
    """Application of a built-in operator to argument nodes."""

    op: str
    args: Tuple[Any, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "args", tuple(self.args))

    def __str__(self):
        return format_node(self)


Node = Union[Constant, Input, Parameter, Hole, Apply]


@dataclass(frozen=True)
class Operator:
    """Signature and semantics of a built-in operator."""

    arg_types: Optional[Tuple[Type, ...]]
    result: Optional[Type]
    smt: Any
    evaluate: Any
    infix: bool = False


_INT2 = (Type.INT, Type.INT)
_BOOL2 = (Type.BOOL, Type.BOOL)

OPERATORS: Dict[str, Operator] = {
    "+": Operator(_INT2, Type.INT, operator.add, operator.add, infix=True),
    "-": Operator(_INT2, Type.INT, operator.sub, operator.sub, infix=True),
    "*": Operator(_INT2, Type.INT, operator.mul, operator.mul, infix=True),
    "neg": Operator((Type.INT,), Type.INT, operator.neg, operator.neg),
    "<": Operator(_INT2, Type.BOOL, operator.lt, operator.lt, infix=True),
    "<=": Operator(_INT2, Type.BOOL, operator.le, operator.le, infix=True),
    ">": Operator(_INT2, Type.BOOL, operator.gt, operator.gt, infix=True),
    ">=": Operator(_INT2, Type.BOOL, operator.ge, operator.ge, infix=True),
    "=": Operator(_INT2, Type.BOOL, operator.eq, operator.eq, infix=True),
    "and": Operator(_BOOL2, Type.BOOL, And, lambda a, b: a and b, infix=True),
    "or": Operator(_BOOL2, Type.BOOL, Or, lambda a, b: a or b, infix=True),
    "not": Operator((Type.BOOL,), Type.BOOL, Not, operator.not_),
    # polymorphic in the branch type, checked in type_of
    "ite": Operator(None, None, If, lambda c, t, e: t if c else e),
}


def type_of(node: Node) -> Type:
    """Infer the result type of a node."""
    if isinstance(node, (Constant, Input, Parameter, Hole)):
        return node.type

    if not isinstance(node, Apply):
        raise ComponentTypeError(f"Not a component node: {node!r}")

    if node.op not in OPERATORS:
        raise ComponentTypeError(f"Unknown operator: {node.op!r}")

    arg_types = [type_of(arg) for arg in node.args]

    if node.op == "ite":
        if len(arg_types) != 3 or arg_types[0] is not Type.BOOL:
            raise ComponentTypeError(f"ite expects (bool, T, T), got {arg_types}")
        if arg_types[1] is not arg_types[2]:
            raise ComponentTypeError(f"ite branches differ: {arg_types[1]} vs {arg_types[2]}")
        return arg_types[1]

    signature = OPERATORS[node.op]
    if tuple(arg_types) != signature.arg_types:
        expected = ", ".join(str(t) for t in signature.arg_types)
        actual = ", ".join(str(t) for t in arg_types)
        raise ComponentTypeError(f"{node.op} expects ({expected}), got ({actual})")
    return signature.result


def _collect(node: Node, kind, found: List) -> List:
    if isinstance(node, kind):
        if node not in found:
            found.append(node)
    elif isinstance(node, Apply):
        for arg in node.args:
            _collect(arg, kind, found)
    return found


def holes(node: Node) -> List[Hole]:
    """Holes of a component in declared (left-to-right) order, each listed once."""
    return _collect(node, Hole, [])


def parameters(node: Node) -> List[Parameter]:
    return _collect(node, Parameter, [])


def inputs(node: Node) -> List[Input]:
    return _collect(node, Input, [])


def is_leaf(node: Node) -> bool:
    return not holes(node)


def substitute(node: Node, mapping: Mapping[Hole, Node]) -> Node:
    """Replace holes with nodes."""
    if isinstance(node, Hole):
        return mapping.get(node, node)
    if isinstance(node, Apply):
        return Apply(node.op, tuple(substitute(arg, mapping) for arg in node.args))
    return node


def value_to_z3(value: Union[int, bool], type: Optional[Type] = None) -> ExprRef:
    if type is Type.BOOL or (type is None and isinstance(value, bool)):
        return BoolVal(bool(value))
    return IntVal(int(value))


SYMBOL_PREFIXES = {Input: "in!", Parameter: "param!"}


def symbol(node: Union[Input, Parameter]) -> str:
    """Z3 constant name of an input or parameter."""
    return SYMBOL_PREFIXES[type(node)] + node.name


def to_z3(node: Node, env: Optional[Mapping[Node, ExprRef]] = None) -> ExprRef:
    """Translate a node to a Z3 term.

    Holes must be bound in ``env``. Inputs and parameters default to Z3
    constants named by ``symbol`` unless ``env`` overrides them.
    """
    env = env or {}
    if node in env:
        return env[node]

    if isinstance(node, Constant):
        return value_to_z3(node.value, node.type)
    if isinstance(node, (Input, Parameter)):
        return Const(symbol(node), node.type.sort())
    if isinstance(node, Hole):
        raise ComponentTypeError(f"Unbound hole {node} in Z3 translation")
    if isinstance(node, Apply):
        type_of(node)
        args = [to_z3(arg, env) for arg in node.args]
        return OPERATORS[node.op].smt(*args)

    raise ComponentTypeError(f"Not a component node: {node!r}")


def evaluate(node: Node, env: Mapping[Node, Any]) -> Any:
    """Evaluate a hole-free node given values for its inputs and parameters."""
    if isinstance(node, Constant):
        return node.value
    if isinstance(node, (Input, Parameter)):
        if node not in env:
            raise ComponentTypeError(f"No value for {node}")
        return env[node]
    if isinstance(node, Hole):
        raise ComponentTypeError(f"Cannot evaluate open hole {node}")
    args = [evaluate(arg, env) for arg in node.args]
    return OPERATORS[node.op].evaluate(*args)


def format_node(node: Node) -> str:
    if not isinstance(node, Apply):
        return str(node)
    args = [format_node(arg) for arg in node.args]
    signature = OPERATORS.get(node.op)
    if signature is not None and signature.infix and len(args) == 2:
        return f"({args[0]} {node.op} {args[1]})"
    return f"{node.op}({', '.join(args)})"


@dataclass(frozen=True)
class Program:
    """An expression tree: a component whose holes are bound to sub-programs."""

    root: Node
    children: Tuple[Tuple[Hole, "Program"], ...] = ()

    @classmethod
    def leaf(cls, component: Node) -> "Program":
        if not is_leaf(component):
            raise ComponentTypeError(f"Component {component} has open holes")
        return cls(component)

    @classmethod
    def app(cls, component: Node, args: Mapping[Hole, "Program"]) -> "Program":
        bound = []
        for hole in holes(component):
            if hole not in args:
                raise ComponentTypeError(f"No program bound to {hole} in {component}")
            child = args[hole]
            if type_of(child.root) is not hole.type:
                raise ComponentTypeError(
                    f"Program {child} of type {type_of(child.root)} cannot fill {hole}"
                )
            bound.append((hole, child))
        return cls(component, tuple(bound))

    def child(self, hole: Hole) -> Optional["Program"]:
        for bound_hole, program in self.children:
            if bound_hole == hole:
                return program
        return None

    @property
    def type(self) -> Type:
        return type_of(self.root)

    @property
    def depth(self) -> int:
        """Number of component levels; this is what the encoder's bound limits."""
        return 1 + max((child.depth for _, child in self.children), default=0)

    @property
    def size(self) -> int:
        """Number of component instances."""
        return 1 + sum(child.size for _, child in self.children)

    def components(self) -> List[Node]:
        """Every component instance, pre-order."""
        found = [self.root]
        for _, child in self.children:
            found.extend(child.components())
        return found

    def to_node(self) -> Node:
        return substitute(
            self.root, {hole: child.to_node() for hole, child in self.children}
        )

    def evaluate(
        self,
        inputs: Optional[Mapping[str, Any]] = None,
        parameters: Optional[Mapping[Parameter, Any]] = None,
    ) -> Any:
        node = self.to_node()
        env: Dict[Node, Any] = dict(parameters or {})
        for variable in _collect(node, Input, []):
            if inputs is not None and variable.name in inputs:
                env[variable] = inputs[variable.name]
        return evaluate(node, env)

    def __str__(self):
        return format_node(self.to_node())
