"""Exception types raised by the NEAT engine."""

from __future__ import annotations


class NEATError(Exception):
    """Base class for engine errors."""


class ConfigurationError(NEATError, ValueError):
    """Raised when run configuration values are invalid."""


class InputArityError(NEATError, ValueError):
    """Raised when a network receives the wrong number of inputs."""

    def __init__(self, expected: int, received: int) -> None:
        self.expected = expected
        self.received = received
        super().__init__(f"Expected {expected} inputs but received {received}.")


class StructuralMutationExhausted(NEATError, RuntimeError):
    """Raised when add-connection finds no valid node pair."""


__all__ = [
    "ConfigurationError",
    "InputArityError",
    "NEATError",
    "StructuralMutationExhausted",
]
