"""Data models for candidate fixes."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Set


class RiskLevel(Enum):
    """Risk of applying a solution."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class Solution:
    """A ranked fix proposal for one issue.

    Only rank and fitness_score change after creation, and only through
    re-ranking.
    """
    id: str
    issue_id: str
    rank: int
    type: str
    code: str
    fitness_score: float
    reasoning: str
    estimated_minutes: int
    risk_level: RiskLevel

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "issueId": self.issue_id,
            "rank": self.rank,
            "type": self.type,
            "code": self.code,
            "fitnessScore": self.fitness_score,
            "reasoning": self.reasoning,
            "estimatedImplementationMinutes": self.estimated_minutes,
            "riskLevel": self.risk_level.value,
        }


@dataclass
class ProjectContext:
    """What the surrounding project already has."""
    existing_patterns: Set[str] = field(default_factory=set)
    dependencies: Set[str] = field(default_factory=set)

    def with_patterns(self, patterns: Iterable[str]) -> "ProjectContext":
        """Return a copy with extra existing patterns."""
        return ProjectContext(
            existing_patterns=set(self.existing_patterns) | set(patterns),
            dependencies=set(self.dependencies),
        )
