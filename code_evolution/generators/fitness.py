"""Fitness scoring and ranking of solutions."""

import re
from typing import Dict, List, Optional, Set

from ..models import Issue, ProjectContext, RiskLevel, Solution


WEIGHTS = {
    "performance": 0.4,
    "complexity": 0.2,
    "maintainability": 0.25,
    "compatibility": 0.15,
}

DEFAULT_SCORE = 70

# Estimated performance gain per solution type
PERFORMANCE_SCORES: Dict[str, int] = {
    # N+1 queries
    "eager_loading": 95,
    "batch_query": 90,
    "prisma_include": 95,
    "prisma_select": 98,
    "mongoose_populate": 90,
    "raw_join": 100,
    "dataloader": 85,
    # Loops
    "promise_all_map": 95,
    "promise_all_settled": 92,
    "batched_concurrency": 90,
    "array_to_set": 98,
    "array_to_map": 98,
    "index_object": 95,
    "hash_map_join": 98,
    "sort_and_merge": 85,
    "database_join": 100,
    "array_join": 95,
    "template_map": 95,
    "hoist_regex": 98,
    "batch_json_operations": 90,
    "structured_clone": 95,
    "async_promise_all": 98,
    "streaming": 95,
    "single_reduce": 92,
    "flatten_with_map": 98,
    "document_fragment": 98,
    "inner_html_batch": 95,
    "own_property_check": 95,
    "functional_approach": 85,
    # Memory leaks
    "react_useeffect_cleanup": 98,
    "react_class_cleanup": 95,
    "vue_cleanup": 95,
    "angular_cleanup": 95,
    "abort_controller": 92,
    "react_timer_cleanup": 98,
    "class_timer_cleanup": 95,
    "timeout_cancellation": 92,
    "timer_manager": 88,
    "module_scope": 95,
    "singleton_cleanup": 90,
    "context_provider": 92,
    "weak_map": 90,
    "limit_scope": 95,
    "explicit_cleanup": 92,
    "generic_cleanup": 85,
    # Payloads
    "limit_offset_pagination": 95,
    "cursor_pagination": 98,
    "field_selection": 92,
    "pagination_with_fields": 98,
    "streaming_response": 95,
    "specify_fields": 95,
    "add_pagination": 92,
    "add_filtering": 98,
    "lean_queries": 95,
    "pagination_wrapper": 95,
    "dto_serializer": 92,
    "graphql_fields": 90,
    "response_compression": 88,
    "generic_pagination": 85,
}

# Estimated maintainability per solution type
MAINTAINABILITY_SCORES: Dict[str, int] = {
    "eager_loading": 90,
    "batch_query": 75,
    "prisma_include": 95,
    "prisma_select": 90,
    "mongoose_populate": 85,
    "raw_join": 60,
    "dataloader": 70,
    "promise_all_map": 95,
    "promise_all_settled": 90,
    "batched_concurrency": 85,
    "array_to_set": 95,
    "array_to_map": 90,
    "index_object": 85,
    "hash_map_join": 90,
    "sort_and_merge": 70,
    "database_join": 95,
    "array_join": 95,
    "template_map": 98,
    "hoist_regex": 100,
    "batch_json_operations": 85,
    "structured_clone": 90,
    "async_promise_all": 95,
    "streaming": 85,
    "single_reduce": 85,
    "flatten_with_map": 90,
    "document_fragment": 95,
    "inner_html_batch": 85,
    "own_property_check": 95,
    "functional_approach": 95,
    "react_useeffect_cleanup": 98,
    "react_class_cleanup": 95,
    "vue_cleanup": 95,
    "angular_cleanup": 95,
    "abort_controller": 90,
    "react_timer_cleanup": 98,
    "class_timer_cleanup": 90,
    "timeout_cancellation": 95,
    "timer_manager": 85,
    "module_scope": 98,
    "singleton_cleanup": 85,
    "context_provider": 95,
    "weak_map": 80,
    "limit_scope": 95,
    "explicit_cleanup": 90,
    "generic_cleanup": 85,
    "limit_offset_pagination": 95,
    "cursor_pagination": 90,
    "field_selection": 90,
    "pagination_with_fields": 95,
    "streaming_response": 80,
    "specify_fields": 98,
    "add_pagination": 95,
    "add_filtering": 95,
    "lean_queries": 90,
    "pagination_wrapper": 95,
    "dto_serializer": 90,
    "graphql_fields": 88,
    "response_compression": 85,
    "generic_pagination": 90,
}

RISK_COMPLEXITY = {
    RiskLevel.LOW: 90,
    RiskLevel.MEDIUM: 70,
    RiskLevel.HIGH: 50,
}

# Packages a solution type cannot work without
REQUIRED_PACKAGES: Dict[str, List[str]] = {
    "dataloader": ["dataloader"],
    "batched_concurrency": ["p-limit"],
    "response_compression": ["compression"],
}

RAW_QUERY_TYPES = frozenset({"raw_join"})

NODE_BUILTINS = frozenset({
    "assert", "buffer", "child_process", "crypto", "events", "fs", "http", "https",
    "net", "os", "path", "perf_hooks", "readline", "stream", "timers", "url", "util",
    "worker_threads", "zlib",
})

_IMPORT_SOURCE = re.compile(r"""(?:\bfrom\s+|\brequire\s*\(\s*|\bimport\s+)['"]([^'"]+)['"]""")
_RAW_QUERY = re.compile(r"""\.(?:query|raw)\s*\(\s*[`'"]\s*(?:SELECT|WITH)\b""", re.IGNORECASE)


def weighted_fitness(performance: float, complexity: float, maintainability: float, compatibility: float) -> float:
    """Combine the four 0-100 sub-scores."""
    return (
        performance * WEIGHTS["performance"]
        + complexity * WEIGHTS["complexity"]
        + maintainability * WEIGHTS["maintainability"]
        + compatibility * WEIGHTS["compatibility"]
    )


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def imported_packages(code: str) -> Set[str]:
    """Third-party package names imported or required by a code snippet."""
    packages = set()
    for source in _IMPORT_SOURCE.findall(code):
        if source.startswith((".", "/", "node:")):
            continue
        parts = source.split("/")
        name = "/".join(parts[:2]) if source.startswith("@") else parts[0]
        if name not in NODE_BUILTINS:
            packages.add(name)
    return packages


class FitnessCalculator:
    """
    Scores solutions against an issue and the surrounding project.

    fitness = 0.4 * performance + 0.2 * complexity
            + 0.25 * maintainability + 0.15 * compatibility
    """

    def performance(self, solution: Solution) -> float:
        return float(PERFORMANCE_SCORES.get(solution.type, DEFAULT_SCORE))

    def complexity(self, solution: Solution) -> float:
        score = RISK_COMPLEXITY.get(solution.risk_level, RISK_COMPLEXITY[RiskLevel.MEDIUM])
        if solution.estimated_minutes < 30:
            score += 10
        elif solution.estimated_minutes > 120:
            score -= 20
        return _clamp(score)

    def maintainability(self, solution: Solution) -> float:
        return float(MAINTAINABILITY_SCORES.get(solution.type, DEFAULT_SCORE))

    def compatibility(self, solution: Solution, project: Optional[ProjectContext] = None) -> float:
        project = project or ProjectContext()
        score = 80
        if solution.type in project.existing_patterns:
            score += 20
        if self.missing_dependencies(solution, project):
            score -= 15
        if self.uses_raw_queries(solution):
            score -= 10
        return _clamp(score)

    def missing_dependencies(self, solution: Solution, project: ProjectContext) -> Set[str]:
        required = set(REQUIRED_PACKAGES.get(solution.type, [])) | imported_packages(solution.code)
        return required - set(project.dependencies)

    def uses_raw_queries(self, solution: Solution) -> bool:
        return solution.type in RAW_QUERY_TYPES or bool(_RAW_QUERY.search(solution.code))

    def calculate(
        self,
        solution: Solution,
        issue: Optional[Issue] = None,
        project: Optional[ProjectContext] = None,
    ) -> float:
        """Fitness of one solution, rounded to two decimals."""
        return round(
            weighted_fitness(
                self.performance(solution),
                self.complexity(solution),
                self.maintainability(solution),
                self.compatibility(solution, project),
            ),
            2,
        )

    def rank_solutions(
        self,
        solutions: List[Solution],
        issue: Optional[Issue] = None,
        project: Optional[ProjectContext] = None,
    ) -> List[Solution]:
        """
        Recompute fitness, sort descending and assign dense ranks 1..N.

        Ties keep their input order.
        """
        for solution in solutions:
            solution.fitness_score = self.calculate(solution, issue, project)
        ranked = sorted(solutions, key=lambda s: -s.fitness_score)
        for position, solution in enumerate(ranked, start=1):
            solution.rank = position
        return ranked
