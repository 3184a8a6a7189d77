"""Per-file analysis context models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional


class LoopKind(Enum):
    """Loop constructs recognised by the detectors."""
    FOR = "for"
    FOR_OF = "for-of"
    FOR_IN = "for-in"
    WHILE = "while"
    DO_WHILE = "do-while"
    ITERATION_METHOD = "iteration-method"


@dataclass(frozen=True)
class AccessContext:
    """Data-access library families inferred from a file's imports."""
    families: FrozenSet[str] = frozenset()           # e.g. {"sequelize", "prisma"}
    symbols: Dict[str, str] = field(default_factory=dict)  # identifier -> family
    client_binding: Optional[str] = None             # e.g. `prisma` in `const prisma = new PrismaClient()`

    @property
    def has_families(self) -> bool:
        return bool(self.families)


@dataclass(frozen=True)
class AnalysisContext:
    """Everything a detector may read about one file. Built once, never mutated."""
    source_text: str
    file_identifier: str
    parsed: Any                                      # analyzer.parser.ParsedSource
    scopes: Any = None                               # analyzer.scope.ScopeTree
    access: Optional[AccessContext] = None


@dataclass
class Loop:
    """A loop found during one detect() call."""
    kind: LoopKind
    node: Any
    line: int
    scope: Any = None                                # analyzer.scope.Scope
    bodies: List[Any] = field(default_factory=list) # nodes executed per iteration
    method_name: Optional[str] = None                # forEach/map/... for iteration methods


@dataclass
class DatabaseCall:
    """A data-access call found inside a loop."""
    method_name: str
    resolved_family: str
    line: int
    snippet: str
