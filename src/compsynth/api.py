"""
compsynth's library interface for component-based synthesis.

This module provides a small API over the encoder and synthesizer without
depending on the CLI.
"""

from typing import Any, Iterable, Iterator, Mapping, Optional, Sequence, Union

from .core.cardinality import PSEUDO_BOOLEAN
from .core.components import Node, Program, Type
from .core.encoder import Encoding
from .core.shapes import Shape, make_bag
from .core.synthesizer import Example, SynthesisConfig, SynthesisResult, Synthesizer


class CompSynthAPI:
    """
    Simple API for bounded component-based synthesis.

    Usage:
        api = CompSynthAPI()
        result = api.synthesize(
            {Constant(1): 1, Input("x"): 1, plus: 1},
            Type.INT,
            bound=2,
            examples=[Example({"x": 1}, 2), Example({"x": 5}, 6)],
        )

        if result.found:
            print(result.program)
    """

    def __init__(
        self,
        timeout: int = 30,
        unique_usage: bool = True,
        cardinality: str = PSEUDO_BOOLEAN,
    ):
        """
        Initialize the API.

        Args:
            timeout: Z3 solver timeout in seconds
            unique_usage: Limit each component to its multiplicity in the bag
            cardinality: 'pseudo_boolean' or 'sorting_network' at-most-k encoding
        """
        self.config = SynthesisConfig(
            timeout=timeout, unique_usage=unique_usage, cardinality=cardinality
        )
        self.synthesizer = Synthesizer(self.config)

    def shape(
        self,
        output_type: Union[Type, str],
        bound: int,
        forbidden: Iterable[Program] = (),
    ) -> Shape:
        if isinstance(output_type, str):
            output_type = Type.parse(output_type)
        return Shape.bounded(output_type, bound, forbidden)

    def encode(
        self,
        components: Union[Mapping[Node, int], Iterable[Node]],
        output_type: Union[Type, str],
        bound: int,
        forbidden: Iterable[Program] = (),
    ) -> Encoding:
        """Encode the search space without solving it."""
        return self.synthesizer.encode(
            make_bag(components), self.shape(output_type, bound, forbidden)
        )

    def synthesize(
        self,
        components: Union[Mapping[Node, int], Iterable[Node]],
        output_type: Union[Type, str],
        bound: int,
        examples: Sequence[Example] = (),
        forbidden: Iterable[Program] = (),
    ) -> SynthesisResult:
        """
        Find a program consistent with the examples.

        Returns:
            SynthesisResult with status 'sat' and the program, or 'unsat'/'unknown'

        Raises:
            ConfigurationError: if no program of the output type fits the bound
        """
        return self.synthesizer.synthesize(
            make_bag(components), self.shape(output_type, bound, forbidden), examples
        )

    def enumerate(
        self,
        components: Union[Mapping[Node, int], Iterable[Node]],
        output_type: Union[Type, str],
        bound: int,
        examples: Sequence[Example] = (),
        forbidden: Iterable[Program] = (),
        limit: Optional[int] = None,
    ) -> Iterator[SynthesisResult]:
        """Yield distinct programs consistent with the examples."""
        return self.synthesizer.enumerate(
            make_bag(components),
            self.shape(output_type, bound, forbidden),
            examples,
            limit=limit,
        )


def synthesize(
    components: Union[Mapping[Node, int], Iterable[Node]],
    output_type: Union[Type, str],
    bound: int,
    examples: Sequence[Example] = (),
    **kwargs: Any,
) -> SynthesisResult:
    """
    Convenience function for one-off synthesis.

    Args:
        components: Component bag (mapping to multiplicities, or an iterable)
        output_type: Type of the program to build
        bound: Maximum number of component levels
        examples: Input/output examples
        **kwargs: Passed to CompSynthAPI

    Returns:
        SynthesisResult
    """
    api = CompSynthAPI(**kwargs)
    return api.synthesize(components, output_type, bound, examples)
