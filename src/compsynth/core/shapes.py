"""Search-space shapes and component bags."""

from collections import Counter
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional, Tuple, Union

from .components import Node, Program, Type, inputs, parameters, type_of
from ..exceptions import ConfigurationError


class ShapeKind(Enum):
    BOUNDED = "bounded"
    UNBOUNDED = "unbounded"


@dataclass(frozen=True)
class Shape:
    """Output type, tree bound and forbidden programs of a synthesis query.

    Only bounded shapes can be encoded; ``bound`` limits the number of
    component levels from the root to any leaf.
    """

    kind: ShapeKind
    output_type: Type
    bound: Optional[int] = None
    forbidden: Tuple[Program, ...] = ()

    @classmethod
    def bounded(
        cls, output_type: Type, bound: int, forbidden: Iterable[Program] = ()
    ) -> "Shape":
        if not isinstance(bound, int) or bound < 1:
            raise ConfigurationError(f"Shape bound must be a positive integer, got {bound!r}")
        return cls(ShapeKind.BOUNDED, output_type, bound, _unique(forbidden))

    @classmethod
    def unbounded(cls, output_type: Type, forbidden: Iterable[Program] = ()) -> "Shape":
        return cls(ShapeKind.UNBOUNDED, output_type, None, _unique(forbidden))

    def with_forbidden(self, forbidden: Iterable[Program]) -> "Shape":
        return replace(self, forbidden=_unique(forbidden))


def _unique(programs: Iterable[Program]) -> Tuple[Program, ...]:
    return tuple(dict.fromkeys(programs))


def make_bag(components: Union[Mapping[Node, int], Iterable[Node]]) -> Counter:
    """Build a component bag, checking that every component is well typed.

    Accepts either a mapping from component to multiplicity or an iterable in
    which repeated components add up.
    """
    bag = Counter(components)
    for component, count in bag.items():
        if not isinstance(count, int) or count < 1:
            raise ConfigurationError(
                f"Multiplicity of {component} must be a positive integer, got {count!r}"
            )
        type_of(component)
    check_names(bag)
    return bag


def check_names(components: Iterable[Node]) -> None:
    """Reject an input or parameter name used with two kinds or types."""
    seen: Dict[str, Node] = {}
    for component in components:
        for variable in inputs(component) + parameters(component):
            other = seen.setdefault(variable.name, variable)
            if other != variable:
                raise ConfigurationError(
                    f"Name {variable.name!r} is used by both {other!r} and {variable!r}"
                )
