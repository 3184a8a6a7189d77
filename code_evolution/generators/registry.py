"""Routes issues to the generator that owns their type."""

from typing import Dict, Iterable, List, Optional, Set

from ..models import Issue, ProjectContext, Solution
from ..utils.logging import get_logger
from .base import SolutionGenerator
from .fitness import FitnessCalculator
from .inefficient_loop import InefficientLoopSolutionGenerator
from .large_payload import LargePayloadSolutionGenerator
from .memory_leak import MemoryLeakSolutionGenerator
from .n1_query import N1QuerySolutionGenerator

logger = get_logger("generators")


class GeneratorRegistry:
    """Maps issue types to solution generators sharing one fitness calculator."""

    def __init__(
        self,
        generators: Optional[Iterable[SolutionGenerator]] = None,
        calculator: Optional[FitnessCalculator] = None,
    ):
        self.calculator = calculator or FitnessCalculator()
        if generators is None:
            generators = [
                N1QuerySolutionGenerator(self.calculator),
                InefficientLoopSolutionGenerator(self.calculator),
                MemoryLeakSolutionGenerator(self.calculator),
                LargePayloadSolutionGenerator(self.calculator),
            ]
        self._by_type: Dict[str, SolutionGenerator] = {}
        for generator in generators:
            self.register(generator)

    def register(self, generator: SolutionGenerator) -> None:
        for issue_type in generator.issue_types:
            self._by_type[issue_type] = generator

    def generator_for(self, issue_type: str) -> Optional[SolutionGenerator]:
        return self._by_type.get(issue_type)

    @property
    def issue_types(self) -> List[str]:
        return sorted(self._by_type)

    def generate_solutions(self, issue: Issue, project: Optional[ProjectContext] = None) -> List[Solution]:
        """Ranked template solutions for `issue`; empty for unknown types."""
        generator = self.generator_for(issue.type)
        if generator is None:
            logger.debug(f"No solution generator for issue type {issue.type}")
            return []
        return generator.generate_solutions(issue, project)

    def existing_patterns(self, issue: Issue) -> Set[str]:
        generator = self.generator_for(issue.type)
        return generator.existing_patterns(issue) if generator is not None else set()
