"""
Per-function symbolic models produced by the expression builder.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from ..expr.nodes import Node, Variable
from ..expr.rewrite import combined_digest, render
from ..ir.typed import Location, Tag
from ..ir.types import Type

RESULT_NAME = "result"


class ConstraintKind(Enum):
    ASSUMPTION = "assumption"
    GUARANTEE = "guarantee"


@dataclass(frozen=True)
class Constraint:
    """A boolean graph declared as a precondition or postcondition.

    Attributes:
        kind: Assumption or guarantee
        expr: Boolean expression over parameters (and ``result`` for guarantees)
        function: Name of the declaring function
        text: Source text of the declaration, rendered from ``expr`` if empty
        location: Source position of the declaration or, for instantiated
            assumptions, of the call site
    """
    kind: ConstraintKind
    expr: Node
    function: str
    text: str = ""
    location: Optional[Location] = None

    @property
    def display(self) -> str:
        return self.text or render(self.expr)


@dataclass(frozen=True)
class CallSite:
    """A direct call from one analysed function to another.

    Attributes:
        caller: Calling function
        callee: Resolved callee
        args: Actual arguments in the caller's symbolic form
        path_condition: Conjunction of the branch conditions enclosing the call
        location: Source position of the call
        index: Position of the call among the caller's call sites
    """
    caller: str
    callee: str
    args: Tuple[Node, ...]
    path_condition: Node
    location: Optional[Location] = None
    index: int = 0

    @property
    def label(self) -> str:
        where = str(self.location) if self.location is not None else f"#{self.index}"
        return f"{self.caller} -> {self.callee} @ {where}"


@dataclass(frozen=True)
class FunctionSymbolicModel:
    """Symbolic view of one function.

    Attributes:
        name: Function name
        params: Ordered parameter variables
        body: Return value expression with let-bindings inlined
        result_type: Declared return type
        assumptions: Declared preconditions over ``params``
        guarantees: Declared postconditions over ``params`` and ``result``
        tag: reversible / lossy / unmarked
        call_sites: Direct calls to other analysed functions
        inlined: Names of every analysed function inlined into ``body``
        inverse_target: Parameter solved for when inverting
        entry_point: Callable from outside the compilation unit
        location: Source position of the declaration
    """
    name: str
    params: Tuple[Variable, ...]
    body: Node
    result_type: Type
    assumptions: Tuple[Constraint, ...] = ()
    guarantees: Tuple[Constraint, ...] = ()
    tag: Tag = Tag.UNMARKED
    call_sites: Tuple[CallSite, ...] = ()
    inlined: Tuple[str, ...] = ()
    inverse_target: Optional[str] = None
    entry_point: bool = False
    location: Optional[Location] = None

    @property
    def param_names(self) -> Tuple[str, ...]:
        return tuple(p.name for p in self.params)

    def param(self, name: str) -> Optional[Variable]:
        for p in self.params:
            if p.name == name:
                return p
        return None

    def content_hash(self) -> str:
        """Structural hash of the graph, declared constraints, and tag.

        Inlined callee bodies are part of ``body``, so any change to them
        changes this hash.
        """
        nodes = list(self.params) + [self.body]
        nodes += [c.expr for c in self.assumptions]
        nodes += [c.expr for c in self.guarantees]
        nodes += [arg for site in self.call_sites for arg in site.args]
        nodes += [site.path_condition for site in self.call_sites]
        extra = [self.name, self.tag.value, str(self.inverse_target),
                 str(self.entry_point), ",".join(s.callee for s in self.call_sites)]
        return combined_digest(nodes, *extra)
