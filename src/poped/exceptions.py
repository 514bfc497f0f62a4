"""Custom exceptions for PopED design optimization."""

class PopEDError(Exception):
    """Base exception for all PopED optimization errors."""
    pass

class ValidationError(PopEDError):
    """Errors from design or design space validation."""
    pass

class OptimizationError(PopEDError):
    """Errors from optimization routines."""
    pass

class NoOptimizableParametersError(OptimizationError):
    """No design element is left to optimize after grouping and fixing."""
    pass

class UnsupportedOptimizationError(OptimizationError):
    """Requested optimization target is not implemented."""
    pass

class InvalidObjectiveError(OptimizationError):
    """Objective function of the initial design cannot be used."""
    pass

class MissingDependencyError(OptimizationError):
    """Optional library required by an optimization method is not installed."""
    pass
