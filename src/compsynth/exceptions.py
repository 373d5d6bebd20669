"""Custom exceptions for compsynth."""


class CompSynthError(Exception):
    """Base exception for compsynth."""

    pass


class ConfigurationError(CompSynthError):
    """Raised when a synthesis configuration describes an empty or unsupported search space."""

    pass


class UnsupportedShapeError(ConfigurationError):
    """Raised when the encoder is given a shape it cannot encode."""

    pass


class InfeasibleRootError(ConfigurationError):
    """Raised when no component can produce the output type within the bound."""

    def __init__(self, message: str, output_type=None, bound=None):
        super().__init__(message)
        self.output_type = output_type
        self.bound = bound

    def __str__(self):
        if self.output_type is None:
            return super().__str__()
        return (
            f"{super().__str__()}\n\nOutput type: {self.output_type}, bound: {self.bound}"
            + "\n\nSuggestion: add a component producing this type or raise the bound."
        )


class ComponentTypeError(CompSynthError):
    """Raised when a component or program is ill-typed."""

    pass


class ProblemFormatError(CompSynthError):
    """Raised when a problem description cannot be parsed."""

    pass


class DecodingError(CompSynthError):
    """Raised when an assignment does not select a candidate for a reachable position."""

    pass


class SolverTimeoutError(CompSynthError):
    """Raised when Z3 solver times out."""

    pass
