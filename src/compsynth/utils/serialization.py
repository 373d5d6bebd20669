"""JSON representation of components, programs and synthesis problems."""

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List

from ..core.components import Apply, Constant, Hole, Input, Node, Parameter, Program, Type, holes
from ..core.shapes import Shape, make_bag
from ..core.synthesizer import Example
from ..exceptions import ComponentTypeError, ConfigurationError, ProblemFormatError


@dataclass
class Problem:
    """A synthesis problem loaded from JSON."""

    bag: Counter
    shape: Shape
    examples: List[Example] = field(default_factory=list)


def _type(data: Dict[str, Any]) -> Type:
    try:
        return Type.parse(data.get("type", "int"))
    except ComponentTypeError as e:
        raise ProblemFormatError(str(e))


def component_from_json(data: Any) -> Node:
    """Parse a component node.

    Bare JSON numbers and booleans are accepted as constants.
    """
    if isinstance(data, (bool, int)):
        return Constant(data)
    if not isinstance(data, dict):
        raise ProblemFormatError(f"Expected a component object, got {data!r}")

    if "const" in data:
        value = data["const"]
        if not isinstance(value, (bool, int)):
            raise ProblemFormatError(f"Unsupported constant: {value!r}")
        return Constant(value)
    if "input" in data:
        return Input(data["input"], _type(data))
    if "param" in data:
        return Parameter(data["param"], _type(data))
    if "hole" in data:
        return Hole(data["hole"], _type(data))
    if "op" in data:
        return Apply(data["op"], tuple(component_from_json(arg) for arg in data.get("args", [])))

    raise ProblemFormatError(f"Unrecognized component: {data!r}")


def component_to_json(node: Node) -> Any:
    if isinstance(node, Constant):
        return {"const": node.value}
    if isinstance(node, Input):
        return {"input": node.name, "type": str(node.type)}
    if isinstance(node, Parameter):
        return {"param": node.name, "type": str(node.type)}
    if isinstance(node, Hole):
        return {"hole": node.name, "type": str(node.type)}
    return {"op": node.op, "args": [component_to_json(arg) for arg in node.args]}


def program_from_json(data: Any) -> Program:
    """Parse a program: ``{"root": <component>, "children": {<hole name>: <program>}}``."""
    if not isinstance(data, dict) or "root" not in data:
        return Program.leaf(component_from_json(data))

    root = component_from_json(data["root"])
    children = data.get("children", {})
    by_name = {hole.name: hole for hole in holes(root)}
    unknown = set(children) - set(by_name)
    if unknown:
        raise ProblemFormatError(
            f"Holes {', '.join(sorted(unknown))} do not exist in {root}"
        )
    try:
        return Program.app(
            root,
            {by_name[name]: program_from_json(child) for name, child in children.items()},
        )
    except ComponentTypeError as e:
        raise ProblemFormatError(str(e))


def program_to_json(program: Program) -> Dict[str, Any]:
    data: Dict[str, Any] = {"root": component_to_json(program.root)}
    if program.children:
        data["children"] = {
            hole.name: program_to_json(child) for hole, child in program.children
        }
    return data


def problem_from_json(data: Dict[str, Any]) -> Problem:
    """Parse a complete problem with components, shape and examples."""
    if not isinstance(data, dict):
        raise ProblemFormatError("Problem must be a JSON object")

    bag: Counter = Counter()
    for entry in data.get("components", []):
        if isinstance(entry, dict) and "component" in entry:
            bag[component_from_json(entry["component"])] += entry.get("count", 1)
        else:
            bag[component_from_json(entry)] += 1
    if not bag:
        raise ProblemFormatError("Problem has no components")

    shape_data = data.get("shape")
    if not isinstance(shape_data, dict) or "bound" not in shape_data:
        raise ProblemFormatError("Problem needs a shape with a bound")

    try:
        bag = make_bag(bag)
    except (ComponentTypeError, ConfigurationError) as e:
        raise ProblemFormatError(str(e))

    try:
        shape = Shape.bounded(
            _type(shape_data),
            shape_data["bound"],
            [program_from_json(p) for p in shape_data.get("forbidden", [])],
        )
    except ComponentTypeError as e:
        raise ProblemFormatError(str(e))

    examples = []
    for example in data.get("examples", []):
        if not isinstance(example, dict) or "output" not in example:
            raise ProblemFormatError(f"Example without output: {example!r}")
        examples.append(Example(dict(example.get("inputs", {})), example["output"]))

    return Problem(bag, shape, examples)
