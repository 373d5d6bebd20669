"""At-most-k cardinality constraints over Z3 booleans."""

from itertools import count
from typing import Iterator, List, Sequence, Tuple

from z3 import And, AtMost, Bool, BoolRef, BoolVal, Not, Or
from ..exceptions import ConfigurationError

PSEUDO_BOOLEAN = "pseudo_boolean"
SORTING_NETWORK = "sorting_network"
METHODS = (PSEUDO_BOOLEAN, SORTING_NETWORK)


def at_most_k(
    variables: Sequence[BoolRef],
    k: int,
    method: str = PSEUDO_BOOLEAN,
    prefix: str = "card",
) -> List[BoolRef]:
    """Constraints allowing at most ``k`` of ``variables`` to be true.

    ``pseudo_boolean`` hands the bound to Z3's native cardinality atom.
    ``sorting_network`` sorts the variables with a Batcher odd-even merge
    network built from fresh booleans named after ``prefix`` and forbids the
    (k+1)-th largest output.
    """
    if k < 0:
        raise ConfigurationError(f"Cardinality bound must be non-negative, got {k}")
    if method not in METHODS:
        raise ConfigurationError(
            f"Unknown cardinality method {method!r}, expected one of {', '.join(METHODS)}"
        )

    variables = list(variables)
    if k >= len(variables):
        return []

    if method == PSEUDO_BOOLEAN:
        return [AtMost(*variables, k)]
    return _sorting_network(variables, k, prefix)


def _sorting_network(variables: List[BoolRef], k: int, prefix: str) -> List[BoolRef]:
    width = 1
    while width < len(variables):
        width *= 2

    wires = variables + [BoolVal(False)] * (width - len(variables))
    constraints: List[BoolRef] = []
    names = count()

    for i, j in batcher_pairs(width):
        index = next(names)
        high = Bool(f"{prefix}_{index}_hi")
        low = Bool(f"{prefix}_{index}_lo")
        constraints.append(high == Or(wires[i], wires[j]))
        constraints.append(low == And(wires[i], wires[j]))
        wires[i], wires[j] = high, low

    # wires are now sorted descending: wires[k] holds "more than k are true"
    constraints.append(Not(wires[k]))
    return constraints


def batcher_pairs(width: int) -> Iterator[Tuple[int, int]]:
    """Comparator pairs of Batcher's odd-even merge sort for a power-of-two width."""
    p = 1
    while p < width:
        k = p
        while k >= 1:
            for j in range(k % p, width - k, 2 * k):
                for i in range(min(k, width - j - k)):
                    if (i + j) // (p * 2) == (i + j + k) // (p * 2):
                        yield i + j, i + j + k
            k //= 2
        p *= 2
