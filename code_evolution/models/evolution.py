"""Data models for the evolutionary optimizer."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .solution import RiskLevel


class EvolutionState(Enum):
    """States of one optimizer run."""
    SEEDING = "seeding"
    EVALUATING = "evaluating"
    EVOLVING = "evolving"
    CONVERGED = "converged"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


class ProgressEventType(Enum):
    """Event kinds sent to a progress sink."""
    START = "evolution-start"
    PROGRESS = "evolution-progress"
    COMPLETE = "evolution-complete"
    TIMEOUT = "evolution-timeout"


@dataclass
class SolutionCandidate:
    """One code variant inside a population."""
    id: str
    code: str
    solution_type: str
    risk_level: RiskLevel = RiskLevel.MEDIUM
    estimated_minutes: int = 0
    fitness: float = 0.0
    generation: int = 0
    parent_ids: List[str] = field(default_factory=list)  # at most two
    mutations: List[str] = field(default_factory=list)   # descriptions, oldest first
    tree: Any = None                                     # parsed tree of `code`


@dataclass
class MutationResult:
    """Outcome of a mutation operator."""
    code: str
    success: bool
    description: str


@dataclass
class ValidationResult:
    """Outcome of validating a piece of code."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    tree: Any = None


@dataclass
class ProgressEvent:
    """Best-effort progress notification from an optimizer run."""
    type: ProgressEventType
    issue_type: str
    issue_title: str
    generation_index: Optional[int] = None   # 0-based
    max_generations: Optional[int] = None
    best_fitness: Optional[float] = None
    mean_fitness: Optional[float] = None
    best_solution_code: Optional[str] = None
    population: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Transport shape; `generation` is 1-based."""
        data: Dict[str, Any] = {
            "type": self.type.value,
            "issueType": self.issue_type,
            "issueTitle": self.issue_title,
        }
        if self.generation_index is not None:
            data["generation"] = self.generation_index + 1
        if self.max_generations is not None:
            data["maxGenerations"] = self.max_generations
        if self.best_fitness is not None:
            data["bestFitness"] = self.best_fitness
        if self.mean_fitness is not None:
            data["avgFitness"] = self.mean_fitness
        if self.best_solution_code is not None:
            data["bestSolution"] = {
                "code": self.best_solution_code,
                "fitness": self.best_fitness,
            }
        if self.population:
            data["population"] = list(self.population)
        return data
