"""Data models for code analysis and fix synthesis."""

from .issue import (
    Severity,
    SEVERITY_ORDER,
    EstimatedImpact,
    Issue,
    DetectorResult,
    FileResult,
)
from .solution import RiskLevel, Solution, ProjectContext
from .context import LoopKind, AccessContext, AnalysisContext, Loop, DatabaseCall
from .evolution import (
    EvolutionState,
    ProgressEventType,
    SolutionCandidate,
    MutationResult,
    ValidationResult,
    ProgressEvent,
)

__all__ = [
    "Severity",
    "SEVERITY_ORDER",
    "EstimatedImpact",
    "Issue",
    "DetectorResult",
    "FileResult",
    "RiskLevel",
    "Solution",
    "ProjectContext",
    "LoopKind",
    "AccessContext",
    "AnalysisContext",
    "Loop",
    "DatabaseCall",
    "EvolutionState",
    "ProgressEventType",
    "SolutionCandidate",
    "MutationResult",
    "ValidationResult",
    "ProgressEvent",
]
