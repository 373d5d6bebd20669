"""Example-driven synthesis on top of the tree-bounded encoding."""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from z3 import BoolRef, Const, Solver, sat, substitute, unsat
from .cardinality import PSEUDO_BOOLEAN
from .components import Input, Node, Parameter, Program, inputs, to_z3, value_to_z3
from .encoder import Encoding, TreeBoundedEncoder
from .shapes import Shape
from ..exceptions import ProblemFormatError, SolverTimeoutError

logger = logging.getLogger(__name__)


@dataclass
class Example:
    """Input values and the output expected for them."""

    inputs: Dict[str, Any]
    output: Any


@dataclass
class SynthesisResult:
    """Result of a synthesis query."""

    status: str
    program: Optional[Program] = None
    parameters: Dict[Parameter, Any] = field(default_factory=dict)
    solver_time: Optional[float] = None
    error_message: Optional[str] = None
    constraint_count: int = 0

    @property
    def found(self) -> bool:
        return self.status == "sat"


@dataclass
class SynthesisConfig:
    """Configuration for encoding and solving."""

    timeout: int = 30  # seconds
    unique_usage: bool = True
    cardinality: str = PSEUDO_BOOLEAN
    raise_on_timeout: bool = False


class Synthesizer:
    """Finds programs from a component bag that agree with examples."""

    def __init__(self, config: Optional[SynthesisConfig] = None):
        self.config = config or SynthesisConfig()

    def encoder(self, shape: Shape) -> TreeBoundedEncoder:
        return TreeBoundedEncoder(
            shape,
            unique_usage=self.config.unique_usage,
            cardinality=self.config.cardinality,
        )

    def encode(self, bag: Mapping[Node, int], shape: Shape) -> Encoding:
        return self.encoder(shape).encode(bag)

    def synthesize(
        self,
        bag: Mapping[Node, int],
        shape: Shape,
        examples: Sequence[Example] = (),
    ) -> SynthesisResult:
        """Search for a program of ``shape`` consistent with ``examples``.

        Configuration errors are raised; unsatisfiable and unknown outcomes
        are reported through the result status.
        """
        encoder = self.encoder(shape)
        encoding = encoder.encode(bag)
        constraints = self.instantiate(encoding, bag, examples)

        solver = self._setup_solver()
        solver.add(*constraints)
        start_time = time.time()
        result = solver.check()
        solver_time = time.time() - start_time
        logger.debug("Solver returned %s after %.3fs", result, solver_time)

        if result == sat:
            program, valuation = encoder.decode(solver.model(), encoding.root, encoding.info)
            return SynthesisResult(
                status="sat",
                program=program,
                parameters=valuation,
                solver_time=solver_time,
                constraint_count=len(constraints),
            )
        elif result == unsat:
            return SynthesisResult(
                status="unsat", solver_time=solver_time, constraint_count=len(constraints)
            )
        else:  # unknown
            message = f"Z3 solver returned unknown after {solver_time:.2f}s"
            if self.config.raise_on_timeout:
                raise SolverTimeoutError(message)
            return SynthesisResult(
                status="unknown",
                solver_time=solver_time,
                error_message=message,
                constraint_count=len(constraints),
            )

    def enumerate(
        self,
        bag: Mapping[Node, int],
        shape: Shape,
        examples: Sequence[Example] = (),
        limit: Optional[int] = None,
    ) -> Iterator[SynthesisResult]:
        """Yield distinct programs, forbidding each one before the next query."""
        forbidden = list(shape.forbidden)
        found = 0
        while limit is None or found < limit:
            result = self.synthesize(bag, shape.with_forbidden(forbidden), examples)
            if not result.found:
                return
            yield result
            found += 1
            forbidden.append(result.program)

    def instantiate(
        self,
        encoding: Encoding,
        bag: Mapping[Node, int],
        examples: Sequence[Example],
    ) -> List[BoolRef]:
        """Copy the equality clauses once per example.

        Position constants are renamed per example and inputs replaced by the
        example's values; selectors and parameters stay shared so that every
        copy describes the same program.
        """
        constraints = list(encoding.guards)
        if not examples:
            return encoding.clauses + constraints

        variables: List[Input] = []
        for component in bag:
            for variable in inputs(component):
                if variable not in variables:
                    variables.append(variable)

        positions = encoding.info.positions
        for index, example in enumerate(examples):
            pairs = [
                (p.z3(), Const(f"{p.name}#{index}", p.type.sort())) for p in positions
            ]
            for variable in variables:
                if variable.name not in example.inputs:
                    raise ProblemFormatError(
                        f"Example {index} has no value for input {variable.name!r}"
                    )
                pairs.append(
                    (to_z3(variable), value_to_z3(example.inputs[variable.name], variable.type))
                )

            for clause in encoding.clauses:
                constraints.append(substitute(clause, *pairs))
            root = Const(f"{encoding.root.name}#{index}", encoding.root.type.sort())
            constraints.append(root == value_to_z3(example.output, encoding.root.type))

        return constraints

    def _setup_solver(self) -> Solver:
        """Setup Z3 solver with configuration."""
        solver = Solver()
        solver.set("timeout", self.config.timeout * 1000)  # Z3 expects milliseconds
        return solver
