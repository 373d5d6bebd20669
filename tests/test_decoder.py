"""
Decoding tests: rebuilding programs and parameter values from assignments.
"""

import pytest
from z3 import And, Not, Solver, sat

from compsynth.core.components import Apply, Constant, Hole, Parameter, Program, Type
from compsynth.core.encoder import TreeBoundedEncoder
from compsynth.core.shapes import Shape
from compsynth.exceptions import DecodingError


def build(bag, bound=2, forbidden=(), unique_usage=True, output_type=Type.INT):
    encoder = TreeBoundedEncoder(
        Shape.bounded(output_type, bound, forbidden), unique_usage=unique_usage
    )
    return encoder, encoder.encode(bag)


def assignment_for(info, choices):
    """Assignment making exactly the given (position, component) choices true."""
    chosen = {
        s
        for position, component in choices
        for s in info.node_choices[position]
        if info.selected_component[s] == component
    }
    return {s.name: s in chosen for s in info.selectors}


@pytest.mark.decoding
def test_decode_leaf_at_bound_one(components):
    """Selecting the literal 1 decodes to 1."""
    bag = {components["zero"]: 1, components["one"]: 1}
    encoder, encoding = build(bag, bound=1)
    assignment = assignment_for(encoding.info, [(encoding.root, components["one"])])

    program, valuation = encoder.decode(assignment, encoding.root, encoding.info)

    assert program == Program.leaf(components["one"])
    assert str(program) == "1"
    assert valuation == {}


@pytest.mark.decoding
def test_round_trip_of_builder_choices(components):
    plus, zero, one = components["plus"], components["zero"], components["one"]
    encoder, encoding = build({zero: 1, one: 1, plus: 1})
    info = encoding.info
    left, right = info.tree[encoding.root]

    assignment = assignment_for(
        info, [(encoding.root, plus), (left, zero), (right, one)]
    )
    program, _ = encoder.decode(assignment, encoding.root, info)

    expected = Program.app(
        plus, {components["a"]: Program.leaf(zero), components["b"]: Program.leaf(one)}
    )
    assert program == expected
    assert str(program) == "(0 + 1)"


@pytest.mark.decoding
def test_decode_mixed_hole_types(components):
    ite, less = components["ite"], components["less"]
    x, y = components["x"], components["y"]
    encoder, encoding = build({x: 2, y: 2, ite: 1, less: 1}, bound=3)
    info = encoding.info
    condition, then_branch, else_branch = info.tree[encoding.root]
    lhs, rhs = info.tree[condition]

    assignment = assignment_for(
        info,
        [
            (encoding.root, ite),
            (condition, less),
            (lhs, x),
            (rhs, y),
            (then_branch, y),
            (else_branch, x),
        ],
    )
    program, _ = encoder.decode(assignment, encoding.root, info)

    assert str(program) == "ite((x < y), y, x)"
    assert program.depth == 3
    assert program.evaluate({"x": 3, "y": 8}) == 8


@pytest.mark.decoding
def test_decode_parameter_value(components):
    p = components["p"]
    encoder, encoding = build({p: 1}, bound=1)
    assignment = assignment_for(encoding.info, [(encoding.root, p)])
    assignment["p"] = 7

    program, valuation = encoder.decode(assignment, encoding.root, encoding.info)

    assert program == Program.leaf(p)
    assert valuation == {Parameter("p"): 7}


@pytest.mark.decoding
def test_decode_parameters_below_root(components):
    plus, x, p = components["plus"], components["x"], components["p"]
    q = Parameter("q")
    encoder, encoding = build({plus: 1, p: 1, q: 1, x: 1})
    info = encoding.info
    left, right = info.tree[encoding.root]

    assignment = assignment_for(info, [(encoding.root, plus), (left, p), (right, q)])
    assignment.update({"p": 4, "q": -2})
    program, valuation = encoder.decode(assignment, encoding.root, info)

    assert str(program) == "(p + q)"
    assert valuation == {p: 4, q: -2}
    assert program.evaluate({}, valuation) == 2


@pytest.mark.decoding
def test_decode_from_model(components, solve):
    """A Z3 model decodes to the program its selectors describe."""
    plus, zero, one = components["plus"], components["zero"], components["one"]
    encoder, encoding = build({zero: 1, one: 1, plus: 1})
    info = encoding.info
    left, right = info.tree[encoding.root]

    def chosen(position, component):
        return next(
            s.z3() for s in info.node_choices[position] if info.selected_component[s] == component
        )

    model = solve(
        encoding.constraints,
        chosen(encoding.root, plus),
        chosen(left, one),
        chosen(right, zero),
    )
    assert model is not None

    program, _ = encoder.decode(model, encoding.root, info)
    assert str(program) == "(1 + 0)"


@pytest.mark.decoding
def test_decoded_programs_respect_bag(components):
    """Every model decodes to a well-typed program within bound and bag."""
    plus, minus = components["plus"], components["minus"]
    zero, one = components["zero"], components["one"]
    bag = {zero: 1, one: 2, plus: 1, minus: 1}
    encoder, encoding = build(bag, bound=3)
    info = encoding.info

    solver = Solver()
    solver.add(*encoding.constraints)
    seen = set()
    for _ in range(25):
        if solver.check() != sat:
            break
        model = solver.model()
        program, _ = encoder.decode(model, encoding.root, info)

        assert program.type is Type.INT
        assert program.depth <= 3
        used = program.components()
        for component, count in bag.items():
            assert used.count(component) <= count
        seen.add(program)

        # block this exact selector assignment
        solver.add(
            Not(And(*[s.z3() == model.eval(s.z3(), model_completion=True) for s in info.selectors]))
        )

    assert seen


@pytest.mark.decoding
def test_decode_without_selection_fails(components):
    bag = {components["zero"]: 1, components["one"]: 1}
    encoder, encoding = build(bag, bound=1)
    assignment = {s.name: False for s in encoding.info.selectors}

    with pytest.raises(DecodingError):
        encoder.decode(assignment, encoding.root, encoding.info)


@pytest.mark.decoding
def test_decode_missing_parameter_value_fails(components):
    p = components["p"]
    encoder, encoding = build({p: 1}, bound=1)
    assignment = assignment_for(encoding.info, [(encoding.root, p)])

    with pytest.raises(DecodingError):
        encoder.decode(assignment, encoding.root, encoding.info)


@pytest.mark.decoding
def test_decode_square_component():
    """A hole appearing twice in a template is filled by one sub-program."""
    a = Hole("a", Type.INT)
    square = Apply("*", (a, a))
    three = Constant(3)
    encoder, encoding = build({three: 1, square: 1})
    info = encoding.info
    (child,) = info.tree[encoding.root]

    assignment = assignment_for(info, [(encoding.root, square), (child, three)])
    program, _ = encoder.decode(assignment, encoding.root, info)

    assert str(program) == "(3 * 3)"
    assert program.evaluate() == 9


@pytest.mark.decoding
def test_first_true_candidate_wins(components):
    """With several candidates true at one position the earliest created is decoded."""
    zero, one = components["zero"], components["one"]
    encoder, encoding = build({zero: 1, one: 1}, bound=1)
    root = encoding.root
    assignment = assignment_for(encoding.info, [(root, zero), (root, one)])

    assert sum(assignment.values()) == 2
    program, _ = encoder.decode(assignment, root, encoding.info)

    assert program == Program.leaf(zero)
    assert encoding.info.selected_component[encoding.info.node_choices[root][0]] == zero
