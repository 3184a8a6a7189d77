"""Template solution generators and fitness scoring."""

from .base import SolutionGenerator, SolutionTemplate
from .fitness import FitnessCalculator, weighted_fitness
from .inefficient_loop import InefficientLoopSolutionGenerator
from .large_payload import LargePayloadSolutionGenerator
from .memory_leak import MemoryLeakSolutionGenerator
from .n1_query import N1QuerySolutionGenerator, detect_access_family
from .registry import GeneratorRegistry

__all__ = [
    "SolutionGenerator",
    "SolutionTemplate",
    "FitnessCalculator",
    "weighted_fitness",
    "N1QuerySolutionGenerator",
    "InefficientLoopSolutionGenerator",
    "MemoryLeakSolutionGenerator",
    "LargePayloadSolutionGenerator",
    "GeneratorRegistry",
    "detect_access_family",
]
