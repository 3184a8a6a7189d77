"""Base class for template solution generators."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Set

from ..models import Issue, ProjectContext, RiskLevel, Solution
from .fitness import FitnessCalculator


@dataclass(frozen=True)
class SolutionTemplate:
    """A literal fix proposal."""
    type: str
    code: str
    reasoning: str
    estimated_minutes: int
    risk_level: RiskLevel = RiskLevel.LOW


class SolutionGenerator(ABC):
    """
    Produces a fixed, ranked catalog of template solutions per issue type.

    Output is deterministic for a given issue and always sorted by
    descending fitness with dense ranks.
    """

    name: str = "Solution Generator"
    issue_types: FrozenSet[str] = frozenset()

    def __init__(self, calculator: Optional[FitnessCalculator] = None):
        self.calculator = calculator or FitnessCalculator()

    @abstractmethod
    def templates_for(self, issue: Issue) -> List[SolutionTemplate]:
        """Templates that apply to `issue`, in catalog order."""

    def existing_patterns(self, issue: Issue) -> Set[str]:
        """Solution types that match what the issue's code already uses."""
        return set()

    def generate_solutions(self, issue: Issue, project: Optional[ProjectContext] = None) -> List[Solution]:
        """
        Build ranked template solutions for an issue.

        Args:
            issue: Issue to fix
            project: Known project patterns and dependencies

        Returns:
            Solutions sorted by descending fitness, ranks 1..N
        """
        solutions = [self.create_solution(issue, template) for template in self.templates_for(issue)]
        context = (project or ProjectContext()).with_patterns(self.existing_patterns(issue))
        return self.calculator.rank_solutions(solutions, issue, context)

    def create_solution(self, issue: Issue, template: SolutionTemplate) -> Solution:
        return Solution(
            id=f"sol-{issue.id}-{template.type}",
            issue_id=issue.id,
            rank=0,
            type=template.type,
            code=template.code,
            fitness_score=0.0,
            reasoning=template.reasoning,
            estimated_minutes=template.estimated_minutes,
            risk_level=template.risk_level,
        )
