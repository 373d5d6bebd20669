"""CLI commands for compsynth."""

import json
import logging
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich import print as rprint

from ..core.cardinality import METHODS, PSEUDO_BOOLEAN
from ..core.synthesizer import SynthesisConfig, SynthesisResult, Synthesizer
from ..exceptions import CompSynthError, ConfigurationError
from ..utils.serialization import Problem, problem_from_json, program_to_json

app = typer.Typer()
console = Console()


def _synthesizer(timeout: int, unique: bool, cardinality: str) -> Synthesizer:
    if cardinality not in METHODS:
        raise ConfigurationError(
            f"Unknown cardinality method {cardinality!r}, expected one of {', '.join(METHODS)}"
        )
    return Synthesizer(
        SynthesisConfig(timeout=timeout, unique_usage=unique, cardinality=cardinality)
    )


def _setup_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
            force=True,
        )


def _report_error(e: Exception, verbose: bool) -> None:
    if isinstance(e, ConfigurationError):
        console.print("[red]Error: invalid synthesis configuration[/red]")
        console.print(f"[yellow]{e}[/yellow]")
    elif isinstance(e, CompSynthError):
        console.print(f"[red]Error: {e}[/red]")
    else:
        console.print(f"[red]Unexpected error: {e}[/red]")
        if verbose:
            import traceback

            console.print(traceback.format_exc())


@app.command()
def synth(
    problem_file: Path = typer.Argument(..., help="Path to JSON problem file"),
    timeout: int = typer.Option(30, "--timeout", help="Z3 solver timeout in seconds"),
    unique: bool = typer.Option(
        True,
        "--unique/--no-unique",
        help="Limit each component to its multiplicity in the bag",
    ),
    cardinality: str = typer.Option(
        PSEUDO_BOOLEAN,
        "--cardinality",
        help="At-most-k encoding: pseudo_boolean or sorting_network",
    ),
    output_format: str = typer.Option(
        "pretty", "--output-format", help="Output format: json, pretty, or minimal"
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Enable verbose output"),
) -> None:
    """Synthesize a program consistent with the problem's examples."""
    _setup_logging(verbose)

    try:
        problem = load_problem(problem_file)
        synthesizer = _synthesizer(timeout, unique, cardinality)

        if verbose:
            console.print(f"[blue]Loaded problem from {problem_file}[/blue]")

        result = synthesizer.synthesize(problem.bag, problem.shape, problem.examples)

        if output_format == "json":
            output_json(result)
        elif output_format == "minimal":
            output_minimal(result)
        else:  # pretty
            output_pretty(result, verbose)

        sys.exit(0 if result.found else 1)

    except Exception as e:
        _report_error(e, verbose)
        sys.exit(2)


@app.command("enumerate")
def enumerate_programs(
    problem_file: Path = typer.Argument(..., help="Path to JSON problem file"),
    limit: int = typer.Option(10, "--limit", help="Maximum number of programs"),
    timeout: int = typer.Option(30, "--timeout", help="Z3 solver timeout in seconds"),
    unique: bool = typer.Option(True, "--unique/--no-unique"),
    cardinality: str = typer.Option(PSEUDO_BOOLEAN, "--cardinality"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable verbose output"),
) -> None:
    """List distinct programs consistent with the problem's examples."""
    _setup_logging(verbose)

    try:
        problem = load_problem(problem_file)
        synthesizer = _synthesizer(timeout, unique, cardinality)

        found = 0
        for result in synthesizer.enumerate(
            problem.bag, problem.shape, problem.examples, limit=limit
        ):
            found += 1
            rprint(f"[green]{found}.[/green] {result.program}{_format_parameters(result)}")

        if not found:
            rprint("[yellow]No program found[/yellow]")
        sys.exit(0 if found else 1)

    except Exception as e:
        _report_error(e, verbose)
        sys.exit(2)


@app.command()
def encode(
    problem_file: Path = typer.Argument(..., help="Path to JSON problem file"),
    unique: bool = typer.Option(True, "--unique/--no-unique"),
    cardinality: str = typer.Option(PSEUDO_BOOLEAN, "--cardinality"),
    show_constraints: bool = typer.Option(
        False, "--show-constraints", help="Print every generated Z3 constraint"
    ),
) -> None:
    """Show the positions and constraints of the encoded search space."""
    try:
        problem = load_problem(problem_file)
        encoding = _synthesizer(30, unique, cardinality).encode(problem.bag, problem.shape)
    except Exception as e:
        _report_error(e, False)
        sys.exit(2)

    info = encoding.info
    table = Table(title=f"Encoding of {problem_file.name}")
    table.add_column("Position")
    table.add_column("Type")
    table.add_column("Children")
    table.add_column("Candidates")
    for position in info.positions:
        table.add_row(
            position.name,
            str(position.type),
            ", ".join(child.name for child in info.tree[position]),
            ", ".join(
                f"{s.name}={info.selected_component[s]}" for s in info.node_choices[position]
            ),
        )
    console.print(table)
    rprint(
        f"{len(info.positions)} positions, {len(info.selectors)} selectors, "
        f"{len(encoding.constraints)} constraints"
    )

    if show_constraints:
        for constraint in encoding.constraints:
            rprint(f"[dim]{constraint}[/dim]")


def load_problem(problem_file: Path) -> Problem:
    """Load and parse a synthesis problem from file."""
    try:
        with open(problem_file, "r") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise CompSynthError(f"Problem file not found: {problem_file}")
    except json.JSONDecodeError as e:
        raise CompSynthError(f"Invalid JSON in problem file {problem_file}: {e}")
    return problem_from_json(data)


def _format_parameters(result: SynthesisResult) -> str:
    if not result.parameters:
        return ""
    values = ", ".join(f"{p.name}={v}" for p, v in result.parameters.items())
    return f"  [dim]where {values}[/dim]"


def output_json(result: SynthesisResult) -> None:
    """Output result in JSON format."""
    output = {
        "status": result.status,
        "program": program_to_json(result.program) if result.program else None,
        "expression": str(result.program) if result.program else None,
        "parameters": {p.name: v for p, v in result.parameters.items()},
        "solver_time": result.solver_time,
    }
    if result.error_message:
        output["error"] = result.error_message
    print(json.dumps(output, indent=2))


def output_minimal(result: SynthesisResult) -> None:
    """Output result in minimal format."""
    if result.found:
        print(result.program)
    else:
        print(result.status)


def output_pretty(result: SynthesisResult, verbose: bool = False) -> None:
    """Output result in pretty format."""
    if result.found:
        rprint("[green]✓ Program found[/green]")
        rprint(f"{result.program}{_format_parameters(result)}")
    elif result.status == "unsat":
        rprint("[red]✗ No program in the search space matches the examples[/red]")
    else:
        rprint(f"[yellow]? {result.error_message}[/yellow]")

    if verbose and result.solver_time:
        rprint(f"\n[dim]Solver time: {result.solver_time:.3f}s[/dim]")
        rprint(f"[dim]Constraints: {result.constraint_count}[/dim]")


if __name__ == "__main__":
    app()
