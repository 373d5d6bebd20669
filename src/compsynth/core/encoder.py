"""Tree-bounded encoding of a component bag into Z3 constraints.

Every position of the program tree gets one boolean selector per component
that can produce its type. A selector being true means "this component,
with these child positions filling its holes, is the value at this
position". Children created for one component are offered to the other
components of the same position, so alternatives share subtrees.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from itertools import count
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from z3 import (
    And,
    Bool,
    BoolRef,
    BoolVal,
    Const,
    ExprRef,
    Implies,
    ModelRef,
    Not,
    Or,
    is_false,
    is_int_value,
    is_true,
)
from .cardinality import PSEUDO_BOOLEAN, at_most_k
from .components import (
    Hole,
    Node,
    Parameter,
    Program,
    Type,
    holes,
    is_leaf,
    parameters,
    to_z3,
    type_of,
)
from .shapes import Shape, ShapeKind
from ..exceptions import DecodingError, InfeasibleRootError, UnsupportedShapeError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, order=True)
class BranchPosition:
    """A typed slot of the program tree."""

    id: int
    type: Type = field(compare=False)

    @property
    def name(self) -> str:
        return "output" if self.id == 0 else f"branch_{self.id}"

    def z3(self) -> ExprRef:
        return Const(self.name, self.type.sort())

    def __str__(self):
        return self.name


@dataclass(frozen=True, order=True)
class Selector:
    """Boolean choice of one component at one position."""

    id: int

    @property
    def name(self) -> str:
        return f"sel_{self.id}"

    def z3(self) -> BoolRef:
        return Bool(self.name)

    def __str__(self):
        return self.name


@dataclass(frozen=True)
class EncodingInfo:
    """Bookkeeping of one encoded subtree.

    Built once per position and never changed afterwards; a parent merges its
    children's info into fresh dictionaries.
    """

    # position -> child positions, in creation order
    tree: Dict[BranchPosition, Tuple[BranchPosition, ...]]
    # position -> candidate selectors
    node_choices: Dict[BranchPosition, Tuple[Selector, ...]]
    selected_component: Dict[Selector, Node]
    # child position -> selectors whose choice requires it
    branch_dependencies: Dict[BranchPosition, Tuple[Selector, ...]]
    # component -> every selector of the subtree consuming one unit of it
    component_usage: Dict[Node, Tuple[Selector, ...]]
    # top-level forbidden program -> position groups
    forbidden_selectors: Dict[Program, Tuple[Tuple[Selector, ...], ...]]
    clauses: Tuple[BoolRef, ...]

    @property
    def positions(self) -> List[BranchPosition]:
        return sorted(self.node_choices)

    @property
    def selectors(self) -> List[Selector]:
        return sorted(self.selected_component)


@dataclass
class Encoding:
    """Result of encoding: root position, constraints and decoding info."""

    root: BranchPosition
    clauses: List[BoolRef]
    guards: List[BoolRef]
    info: EncodingInfo

    @property
    def constraints(self) -> List[BoolRef]:
        """Equality clauses followed by activation, forbidden and cardinality constraints."""
        return self.clauses + self.guards

    def __iter__(self) -> Iterator[Any]:
        return iter((self.root, self.constraints, self.info))


def disjunction(literals: Sequence[BoolRef]) -> BoolRef:
    literals = list(literals)
    if not literals:
        return BoolVal(False)
    if len(literals) == 1:
        return literals[0]
    return Or(*literals)


def conjunction(literals: Sequence[BoolRef]) -> BoolRef:
    literals = list(literals)
    if not literals:
        return BoolVal(True)
    if len(literals) == 1:
        return literals[0]
    return And(*literals)


def bind_children(
    component_holes: Sequence[Hole],
    available: Sequence[BranchPosition],
    allocate: Optional[Callable[[Type], BranchPosition]] = None,
) -> Dict[Hole, BranchPosition]:
    """Bind each hole to the first unclaimed available position of its type.

    Without a match a fresh position is taken from ``allocate``; positions
    allocated here are not offered to the remaining holes.
    """
    unclaimed = list(available)
    bound = {}
    for hole in component_holes:
        child = next((p for p in unclaimed if p.type is hole.type), None)
        if child is not None:
            unclaimed.remove(child)
        elif allocate is not None:
            child = allocate(hole.type)
        else:
            raise DecodingError(f"No child position of type {hole.type} for {hole}")
        bound[hole] = child
    return bound


class TreeBoundedEncoder:
    """Encodes all programs of bounded depth over a component bag.

    Forbidden programs are excluded only when the whole program fits in the
    bound; programs sharing a prefix with a forbidden one are kept.
    """

    def __init__(
        self,
        shape: Shape,
        unique_usage: bool = True,
        cardinality: str = PSEUDO_BOOLEAN,
    ):
        self.shape = shape
        self.unique_usage = unique_usage
        self.cardinality = cardinality
        self._position_ids = count()
        self._selector_ids = count()

    def encode(self, components: Mapping[Node, int]) -> Encoding:
        """Encode the search space of ``components`` (component -> multiplicity)."""
        if self.shape.kind is not ShapeKind.BOUNDED:
            raise UnsupportedShapeError(
                f"Only bounded shapes can be encoded, got {self.shape.kind.value}"
            )

        bag = Counter(components)
        self._position_ids = count()
        self._selector_ids = count()

        root = self._new_position(self.shape.output_type)
        # top level -> current level
        initial_forbidden = {expression: expression for expression in self.shape.forbidden}

        info = self._encode_branch(root, self.shape.bound, list(bag), initial_forbidden)
        if info is None:
            raise InfeasibleRootError(
                "Wrong synthesis configuration: no program can be built",
                output_type=self.shape.output_type,
                bound=self.shape.bound,
            )

        guards: List[BoolRef] = []

        # branch activation constraints
        for position in info.positions:
            candidates = info.node_choices[position]
            if not candidates:
                continue
            dependencies = info.branch_dependencies.get(position)
            if dependencies:
                precondition = disjunction([s.z3() for s in dependencies])
            else:
                precondition = BoolVal(True)
            guards.append(Implies(precondition, disjunction([s.z3() for s in candidates])))

        # forbidden constraints
        for expression, groups in info.forbidden_selectors.items():
            if not groups:
                logger.debug("Forbidden %s is not representable, no constraint", expression)
                continue
            guards.append(
                disjunction([conjunction([Not(s.z3()) for s in group]) for group in groups])
            )

        # uniqueness constraints
        if self.unique_usage:
            for index, component in enumerate(bag):
                usage = info.component_usage.get(component)
                if usage:
                    guards.extend(
                        at_most_k(
                            [s.z3() for s in usage],
                            bag[component],
                            method=self.cardinality,
                            prefix=f"card_{index}",
                        )
                    )

        logger.info(
            "Encoded %d positions, %d selectors, %d constraints",
            len(info.node_choices),
            len(info.selected_component),
            len(info.clauses) + len(guards),
        )
        return Encoding(root, list(info.clauses), guards, info)

    def _new_position(self, type: Type) -> BranchPosition:
        return BranchPosition(next(self._position_ids), type)

    def _new_selector(self) -> Selector:
        return Selector(next(self._selector_ids))

    def _encode_branch(
        self,
        output: BranchPosition,
        size: int,
        components: List[Node],
        forbidden: Dict[Program, Program],
    ) -> Optional[EncodingInfo]:
        """Encode the choices at ``output`` and, recursively, its children.

        ``forbidden`` maps each top-level forbidden program to its projection
        at this position. Returns None when nothing fits here.
        """
        current_choices: List[Selector] = []
        selected_component: Dict[Selector, Node] = {}
        branch_dependencies: Dict[BranchPosition, List[Selector]] = {}
        component_usage: Dict[Node, List[Selector]] = {}
        clauses: List[BoolRef] = []

        relevant = [c for c in components if type_of(c) is output.type]
        leaf_components = [c for c in relevant if is_leaf(c)]
        function_components = [c for c in relevant if not is_leaf(c)]

        local_forbidden = list(dict.fromkeys(forbidden.values()))
        # current level -> selectors matching its root
        root_matches: Dict[Program, List[Selector]] = {e: [] for e in local_forbidden}
        leaf_matches: Dict[Program, List[Selector]] = {}

        def choose(selector: Selector, component: Node, value: ExprRef) -> None:
            clauses.append(Implies(selector.z3(), output.z3() == value))
            component_usage.setdefault(component, []).append(selector)
            selected_component[selector] = component
            current_choices.append(selector)

        for component in leaf_components:
            selector = self._new_selector()
            for expression in local_forbidden:
                if expression.root == component and not expression.children:
                    leaf_matches.setdefault(expression, []).append(selector)
            choose(selector, component, to_z3(component))

        children: List[BranchPosition] = []
        subresults: Dict[BranchPosition, EncodingInfo] = {}

        if size > 1:
            branch_matching: Dict[Node, Dict[Hole, BranchPosition]] = {}
            # components depending on each child
            component_dependencies: Dict[BranchPosition, List[Node]] = {}
            # projection of forbidden programs onto each child
            subnode_forbidden: Dict[BranchPosition, Dict[Program, Program]] = {}

            for component in function_components:
                args = bind_children(holes(component), children, self._new_position)
                for hole, child in args.items():
                    component_dependencies.setdefault(child, []).append(component)
                    projection = subnode_forbidden.setdefault(child, {})
                    for local in local_forbidden:
                        if local.root != component:
                            continue
                        subexpression = local.child(hole)
                        if subexpression is None:
                            continue
                        for global_expression, current in forbidden.items():
                            if current == local:
                                projection[global_expression] = subexpression
                for child in args.values():
                    if child not in children:
                        children.append(child)
                branch_matching[component] = args

            feasible_components = list(function_components)
            for child in children:
                subresult = self._encode_branch(
                    child, size - 1, components, subnode_forbidden[child]
                )
                if subresult is None:
                    pruned = component_dependencies[child]
                    logger.debug(
                        "%s (%s, size %d) is infeasible, pruning %s",
                        child,
                        child.type,
                        size - 1,
                        ", ".join(str(c) for c in pruned),
                    )
                    feasible_components = [c for c in feasible_components if c not in pruned]
                else:
                    subresults[child] = subresult

            # children left without a feasible component are unreachable
            used = {
                child
                for component in feasible_components
                for child in branch_matching[component].values()
            }
            for child in children:
                if child in subresults and child not in used:
                    logger.debug("%s is no longer used by any component, dropping it", child)
            children = [child for child in children if child in used]
            subresults = {child: subresults[child] for child in children}

            for component in feasible_components:
                selector = self._new_selector()
                args = branch_matching[component]
                for child in dict.fromkeys(args.values()):
                    branch_dependencies.setdefault(child, []).append(selector)
                for expression in local_forbidden:
                    if expression.root == component:
                        root_matches[expression].append(selector)
                value = to_z3(component, {hole: child.z3() for hole, child in args.items()})
                choose(selector, component, value)

        if not current_choices:
            return None

        tree = {output: tuple(children)}
        node_choices = {output: tuple(current_choices)}
        dependencies = {p: tuple(s) for p, s in branch_dependencies.items()}
        usage = {c: list(s) for c, s in component_usage.items()}

        # merging subnode information
        for child in children:
            subresult = subresults[child]
            clauses.extend(subresult.clauses)
            for component, selectors in subresult.component_usage.items():
                usage.setdefault(component, []).extend(selectors)
            tree.update(subresult.tree)
            node_choices.update(subresult.node_choices)
            selected_component.update(subresult.selected_component)
            dependencies.update(subresult.branch_dependencies)

        forbidden_result = {
            global_expression: self._forbidden_groups(
                global_expression, local, leaf_matches, root_matches, subresults
            )
            for global_expression, local in forbidden.items()
        }

        return EncodingInfo(
            tree=tree,
            node_choices=node_choices,
            selected_component=selected_component,
            branch_dependencies=dependencies,
            component_usage={c: tuple(s) for c, s in usage.items()},
            forbidden_selectors=forbidden_result,
            clauses=tuple(clauses),
        )

    def _forbidden_groups(
        self,
        global_expression: Program,
        local: Program,
        leaf_matches: Dict[Program, List[Selector]],
        root_matches: Dict[Program, List[Selector]],
        subresults: Dict[BranchPosition, EncodingInfo],
    ) -> Tuple[Tuple[Selector, ...], ...]:
        """Position groups realizing ``local`` here, or () if it cannot be rebuilt."""
        if local in leaf_matches:
            return (tuple(leaf_matches[local]),)

        if not root_matches.get(local):
            return ()

        groups = [tuple(root_matches[local])]
        for child in sorted(subresults):
            child_groups = subresults[child].forbidden_selectors
            # children not matched with this program
            if global_expression not in child_groups:
                continue
            if not child_groups[global_expression]:
                logger.debug(
                    "Forbidden %s cannot be rebuilt below %s", global_expression, child
                )
                return ()
            groups.extend(child_groups[global_expression])
        return tuple(groups)

    def decode(
        self,
        assignment: Any,
        root: BranchPosition,
        info: EncodingInfo,
    ) -> Tuple[Program, Dict[Parameter, Any]]:
        """Rebuild the program selected by ``assignment`` below ``root``.

        ``assignment`` is a Z3 model or a mapping from selectors and
        parameters (or their names) to values.
        """
        values = _Assignment(assignment)
        choice = next((s for s in info.node_choices[root] if values.selected(s)), None)
        if choice is None:
            raise DecodingError(f"No candidate selected for {root}")

        component = info.selected_component[choice]
        parameter_valuation = {p: values.value(p) for p in parameters(component)}

        component_holes = holes(component)
        if not component_holes:
            return Program.leaf(component), parameter_valuation

        args = {}
        bindings = bind_children(component_holes, info.tree[root])
        for hole in component_holes:
            program, valuation = self.decode(assignment, bindings[hole], info)
            parameter_valuation.update(valuation)
            args[hole] = program

        return Program.app(component, args), parameter_valuation


class _Assignment:
    """Uniform read access to a Z3 model or a plain valuation mapping."""

    def __init__(self, assignment: Any):
        self.model = assignment if isinstance(assignment, ModelRef) else None
        if self.model is None:
            self.mapping = {str(key): value for key, value in assignment.items()}

    def _raw(self, variable: ExprRef) -> Any:
        if self.model is not None:
            return self.model.eval(variable, model_completion=True)
        return self.mapping.get(str(variable))

    def selected(self, selector: Selector) -> bool:
        return _to_python(self._raw(selector.z3())) is True

    def value(self, parameter: Parameter) -> Any:
        raw = self._raw(to_z3(parameter))
        if raw is None:
            raw = self.mapping.get(parameter.name)
        if raw is None:
            raise DecodingError(f"No value assigned to parameter {parameter}")
        return _to_python(raw)


def _to_python(value: Any) -> Any:
    if isinstance(value, ExprRef):
        if is_true(value):
            return True
        if is_false(value):
            return False
        if is_int_value(value):
            return value.as_long()
        return value
    return value
