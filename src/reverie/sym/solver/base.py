"""
Interface the constraint verifier expects from a decision procedure.
"""
from typing import Any, ContextManager, Protocol

from .result import SatCheck


class SatBackend(Protocol):
    """A solver for quantifier-free linear integer/real arithmetic.

    Terms handed to a backend must come from the backend's own term
    factory (for Z3, its ``ctx``).
    """

    name: str

    def assert_term(self, term: Any) -> None:
        """Add ``term`` to the current assertion scope."""
        ...

    def witness(self, name: str, term: Any) -> None:
        """Report the value of ``term`` under ``name`` in every sat model."""
        ...

    def scope(self) -> ContextManager[Any]:
        """Assertions made inside the block are retracted when it exits."""
        ...

    def check(self) -> SatCheck:
        ...
