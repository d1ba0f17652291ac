"""Filter expressions for the PuppetDB query protocol.

Expressions form a small typed tree that serializes to PuppetDB's AST query
language, e.g. ``Equals("certname", "n1")`` becomes ``["=", "certname", "n1"]``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple, Union


@dataclass(frozen=True)
class Equals:
    field: str
    value: Any

    def to_wire(self) -> List[Any]:
        return ["=", self.field, self.value]


@dataclass(frozen=True)
class And:
    exprs: Tuple["Expr", ...]

    def to_wire(self) -> List[Any]:
        return ["and", *(e.to_wire() for e in self.exprs)]


@dataclass(frozen=True)
class Extract:
    fields: Tuple[str, ...]
    expr: Optional["Expr"] = None

    def to_wire(self) -> List[Any]:
        wire: List[Any] = ["extract", list(self.fields)]
        if self.expr is not None:
            wire.append(self.expr.to_wire())
        return wire


Expr = Union[Equals, And, Extract]


def equals(field: str, value: Any) -> Equals:
    return Equals(field, value)


def and_(*exprs: Expr) -> And:
    if not exprs:
        raise ValueError("and_ needs at least one expression")
    return And(tuple(exprs))


def extract(fields: Sequence[str], expr: Optional[Expr] = None) -> Extract:
    return Extract(tuple(fields), expr)


def serialize(expr: Optional[Expr]) -> Optional[str]:
    """Render an expression as the JSON string PuppetDB expects, or None for no filter."""
    if expr is None:
        return None
    return json.dumps(expr.to_wire(), separators=(",", ":"))
