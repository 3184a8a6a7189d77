"""Evolutionary refinement of template solutions."""

from .validator import CodeValidator, validate_code
from .mutation import (
    MUTATION_OPERATORS,
    add_cache_guard,
    apply_edits,
    apply_random_mutation,
    mutate_query_options,
    rename_variable,
    swap_data_access_method,
)
from .engine import EvolutionaryEngine, EvolutionRun, statement_segments

__all__ = [
    "CodeValidator",
    "validate_code",
    "MUTATION_OPERATORS",
    "add_cache_guard",
    "apply_edits",
    "apply_random_mutation",
    "mutate_query_options",
    "rename_variable",
    "swap_data_access_method",
    "EvolutionaryEngine",
    "EvolutionRun",
    "statement_segments",
]
