"""Generational search over template solutions."""

import random
import time
from dataclasses import replace
from typing import Callable, List, Optional, Protocol, Set, Tuple

from ..analyzer.parser import ParsedSource
from ..config import EvolutionConfig
from ..generators.fitness import FitnessCalculator
from ..models import (
    EvolutionState,
    Issue,
    ProgressEvent,
    ProgressEventType,
    ProjectContext,
    RiskLevel,
    Solution,
    SolutionCandidate,
)
from ..utils.logging import get_logger
from .mutation import apply_random_mutation
from .validator import CodeValidator

logger = get_logger("optimizer")

ProgressSink = Callable[[ProgressEvent], None]

EVOLVED_TYPE = "evolved"
EVOLVED_MINUTES = 5
SEED_ATTEMPTS_PER_SLOT = 5


class SolutionSource(Protocol):
    """Anything that produces ranked template solutions for an issue."""

    def generate_solutions(self, issue: Issue, project: Optional[ProjectContext] = None) -> List[Solution]:
        ...

    def existing_patterns(self, issue: Issue) -> Set[str]:
        ...


def statement_segments(parsed: ParsedSource) -> List[str]:
    """
    Top-level statements of a program, each with its leading comments.

    Comments after the last statement stay with that statement.
    """
    segments: List[str] = []
    start: Optional[int] = None
    for child in parsed.root.named_children:
        if child.type == "hash_bang_line":
            continue
        if start is None:
            start = child.start_byte
        if child.type == "comment":
            continue
        segments.append(parsed.source[start:child.end_byte].decode("utf-8"))
        start = None
    if start is not None and segments:
        segments[-1] = segments[-1] + "\n" + parsed.source[start:parsed.root.end_byte].decode("utf-8").rstrip()
    return segments


class EvolutionRun:
    """
    State of one optimizer run for one issue.

    SEEDING -> EVALUATING -> (CONVERGED | EVOLVING -> EVALUATING) -> FINALIZING -> DONE.
    Any exception moves the run to FAILED and the caller falls back to the
    template solutions.
    """

    def __init__(
        self,
        issue: Issue,
        templates: List[Solution],
        project: ProjectContext,
        config: EvolutionConfig,
        calculator: FitnessCalculator,
        validator: CodeValidator,
        progress_sink: Optional[ProgressSink] = None,
    ):
        self.issue = issue
        self.templates = templates
        self.project = project
        self.config = config
        self.calculator = calculator
        self.validator = validator
        self.progress_sink = progress_sink

        seed = f"{config.seed}:{issue.id}" if config.seed is not None else None
        self.rng = random.Random(seed)
        self.state = EvolutionState.SEEDING
        self.generation = 0
        self.population: List[SolutionCandidate] = []
        self.timed_out = False
        self._next_id = 0

    # -- lifecycle ----------------------------------------------------

    def run(self) -> List[Solution]:
        started = time.monotonic()
        self.emit(ProgressEvent(
            type=ProgressEventType.START,
            issue_type=self.issue.type,
            issue_title=self.issue.title,
            max_generations=self.config.max_generations,
        ))

        self.population = self.seed()
        if not self.population:
            raise RuntimeError("No valid seed candidates")

        while True:
            self.state = EvolutionState.EVALUATING
            self.evaluate(self.population)
            self.report_generation()

            if self.has_converged():
                self.state = EvolutionState.CONVERGED
                break
            if self._budget_exceeded(started):
                self.timed_out = True
                self.emit(ProgressEvent(
                    type=ProgressEventType.TIMEOUT,
                    issue_type=self.issue.type,
                    issue_title=self.issue.title,
                    generation_index=self.generation,
                    max_generations=self.config.max_generations,
                    best_fitness=self.population[0].fitness,
                ))
                break

            self.state = EvolutionState.EVOLVING
            self.population = self.evolve_generation()
            self.generation += 1

        self.state = EvolutionState.FINALIZING
        solutions = self.finalize()
        self.state = EvolutionState.DONE
        self.emit(ProgressEvent(
            type=ProgressEventType.COMPLETE,
            issue_type=self.issue.type,
            issue_title=self.issue.title,
            generation_index=self.generation,
            max_generations=self.config.max_generations,
            best_fitness=solutions[0].fitness_score if solutions else None,
            best_solution_code=solutions[0].code if solutions else None,
        ))
        return solutions

    def _budget_exceeded(self, started: float) -> bool:
        budget = self.config.time_budget_seconds
        return budget is not None and time.monotonic() - started > budget

    # -- seeding ------------------------------------------------------

    def new_id(self) -> str:
        self._next_id += 1
        return f"cand-{self._next_id}"

    def seed(self) -> List[SolutionCandidate]:
        """Valid templates first, then mutants of random templates."""
        seeds: List[SolutionCandidate] = []
        for template in self.templates:
            validation = self.validator.validate(template.code)
            if not validation.is_valid:
                logger.debug(f"Discarding template {template.type}: {'; '.join(validation.errors)}")
                continue
            seeds.append(SolutionCandidate(
                id=self.new_id(),
                code=template.code,
                solution_type=template.type,
                risk_level=template.risk_level,
                estimated_minutes=template.estimated_minutes,
                tree=validation.tree,
            ))

        population = seeds[:self.config.population_size]
        if not seeds:
            return population

        attempts = (self.config.population_size - len(population)) * SEED_ATTEMPTS_PER_SLOT
        while len(population) < self.config.population_size and attempts > 0:
            attempts -= 1
            parent = self.rng.choice(seeds)
            mutant = self.mutate(parent)
            if mutant is not parent:
                population.append(mutant)
        return population

    # -- evaluation ---------------------------------------------------

    def fitness_of(self, candidate: SolutionCandidate) -> float:
        solution = Solution(
            id=candidate.id,
            issue_id=self.issue.id,
            rank=0,
            type=candidate.solution_type,
            code=candidate.code,
            fitness_score=0.0,
            reasoning="",
            estimated_minutes=candidate.estimated_minutes,
            risk_level=candidate.risk_level,
        )
        return self.calculator.calculate(solution, self.issue, self.project)

    def evaluate(self, candidates: List[SolutionCandidate]) -> None:
        for candidate in candidates:
            candidate.fitness = self.fitness_of(candidate)
        candidates.sort(key=lambda c: c.fitness, reverse=True)

    def stats(self) -> Tuple[float, float]:
        fitness = [c.fitness for c in self.population]
        return max(fitness), sum(fitness) / len(fitness)

    def report_generation(self) -> None:
        best, mean = self.stats()
        self.emit(ProgressEvent(
            type=ProgressEventType.PROGRESS,
            issue_type=self.issue.type,
            issue_title=self.issue.title,
            generation_index=self.generation,
            max_generations=self.config.max_generations,
            best_fitness=best,
            mean_fitness=round(mean, 2),
            best_solution_code=self.population[0].code,
            population=[{"fitness": c.fitness, "generation": c.generation} for c in self.population],
        ))
        logger.debug(
            f"{self.issue.type} generation {self.generation + 1}/{self.config.max_generations}: "
            f"best={best:.2f} mean={mean:.2f} size={len(self.population)}"
        )

    def has_converged(self) -> bool:
        if self.generation >= self.config.max_generations - 1:
            return True
        if len(self.population) > 1:
            best, mean = self.stats()
            if best > 0 and (best - mean) / best < self.config.convergence_threshold:
                return True
        return False

    # -- evolution ----------------------------------------------------

    def evolve_generation(self) -> List[SolutionCandidate]:
        pair_count = int(self.config.population_size * self.config.crossover_rate / 2)
        offspring: List[SolutionCandidate] = []
        for _ in range(pair_count):
            first = self.tournament_select()
            second = self.tournament_select()
            offspring.append(self.crossover(first, second))
            offspring.append(self.crossover(second, first))

        offspring = [
            self.mutate(child) if self.rng.random() < self.config.mutation_rate else child
            for child in offspring
        ]
        self.evaluate(offspring)
        return self.select_survivors(self.population + offspring)

    def tournament_select(self) -> SolutionCandidate:
        contestants = [self.rng.choice(self.population) for _ in range(self.config.tournament_size)]
        best = contestants[0]
        for contestant in contestants[1:]:
            if contestant.fitness > best.fitness:
                best = contestant
        return best

    def crossover(self, prefix_parent: SolutionCandidate, suffix_parent: SolutionCandidate) -> SolutionCandidate:
        """Single-point recombination of top-level statements; the prefix parent on failure."""
        prefix = statement_segments(prefix_parent.tree)
        suffix = statement_segments(suffix_parent.tree)
        if not prefix or not suffix:
            return prefix_parent

        split = self.rng.randrange(min(len(prefix), len(suffix)))
        code = "\n\n".join(prefix[:split] + suffix[split:]) + "\n"
        validation = self.validator.validate(code)
        if not validation.is_valid:
            logger.debug(f"Discarding crossover child: {'; '.join(validation.errors)}")
            return prefix_parent

        return SolutionCandidate(
            id=self.new_id(),
            code=code,
            solution_type=prefix_parent.solution_type,
            risk_level=prefix_parent.risk_level,
            estimated_minutes=prefix_parent.estimated_minutes,
            generation=self.generation + 1,
            parent_ids=[prefix_parent.id, suffix_parent.id],
            mutations=list(prefix_parent.mutations),
            tree=validation.tree,
        )

    def mutate(self, candidate: SolutionCandidate) -> SolutionCandidate:
        """A validated mutant of `candidate`, or `candidate` itself."""
        result = apply_random_mutation(candidate.code, self.rng)
        if not result.success:
            return candidate
        validation = self.validator.validate(result.code)
        if not validation.is_valid:
            logger.debug(f"Discarding mutant: {'; '.join(validation.errors)}")
            return candidate
        return replace(
            candidate,
            id=self.new_id(),
            code=result.code,
            generation=self.generation if self.state is EvolutionState.SEEDING else self.generation + 1,
            parent_ids=[candidate.id],
            mutations=candidate.mutations + [result.description],
            tree=validation.tree,
        )

    def select_survivors(self, combined: List[SolutionCandidate]) -> List[SolutionCandidate]:
        """Elites by rank, the rest by roulette over fitness."""
        ranked = sorted(combined, key=lambda c: c.fitness, reverse=True)
        survivors = ranked[:self.config.elitism_count]
        remaining = ranked[self.config.elitism_count:]

        while len(survivors) < self.config.population_size and remaining:
            total = sum(max(0.0, c.fitness) for c in remaining)
            if total <= 0:
                index = self.rng.randrange(len(remaining))
            else:
                pick = self.rng.random() * total
                index = len(remaining) - 1
                for i, candidate in enumerate(remaining):
                    pick -= max(0.0, candidate.fitness)
                    if pick <= 0:
                        index = i
                        break
            survivors.append(remaining.pop(index))

        survivors = survivors[:self.config.population_size]
        survivors.sort(key=lambda c: c.fitness, reverse=True)
        return survivors

    # -- output -------------------------------------------------------

    def finalize(self) -> List[Solution]:
        ranked = sorted(self.population, key=lambda c: c.fitness, reverse=True)
        top: List[SolutionCandidate] = []
        seen_code: Set[str] = set()
        for candidate in ranked:
            if candidate.code in seen_code:
                continue
            seen_code.add(candidate.code)
            top.append(candidate)
            if len(top) == self.config.max_solutions:
                break

        return [
            Solution(
                id=f"sol-{self.issue.id}-{EVOLVED_TYPE}-{rank}",
                issue_id=self.issue.id,
                rank=rank,
                type=EVOLVED_TYPE,
                code=candidate.code,
                fitness_score=candidate.fitness,
                reasoning=(
                    f"Evolved solution (generation {candidate.generation}, "
                    f"{len(candidate.mutations)} mutations applied)"
                ),
                estimated_minutes=EVOLVED_MINUTES,
                risk_level=RiskLevel.MEDIUM,
            )
            for rank, candidate in enumerate(top, start=1)
        ]

    def emit(self, event: ProgressEvent) -> None:
        if self.progress_sink is None:
            return
        try:
            self.progress_sink(event)
        except Exception as e:
            logger.warning(f"Progress sink failed on {event.type.value}: {e}")


class EvolutionaryEngine:
    """
    Refines generator output with mutation, crossover and selection.

    Disabled engines return the generator output unchanged. Enabled engines
    never raise: any internal failure falls back to the generator output.
    """

    def __init__(
        self,
        config: Optional[EvolutionConfig] = None,
        calculator: Optional[FitnessCalculator] = None,
        validator: Optional[CodeValidator] = None,
    ):
        self.config = config or EvolutionConfig()
        self.calculator = calculator or FitnessCalculator()
        self.validator = validator or CodeValidator()

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def evolve(
        self,
        issue: Issue,
        generator: SolutionSource,
        project: Optional[ProjectContext] = None,
        progress_sink: Optional[ProgressSink] = None,
    ) -> List[Solution]:
        """
        Produce ranked solutions for one issue.

        Args:
            issue: Issue to solve
            generator: Template source, also the fallback
            project: Known project patterns and dependencies
            progress_sink: Receives ProgressEvent objects; failures are ignored

        Returns:
            Evolved solutions, or the generator's solutions when disabled or failed
        """
        if not self.enabled:
            return generator.generate_solutions(issue, project)

        templates: Optional[List[Solution]] = None
        run: Optional[EvolutionRun] = None
        try:
            templates = generator.generate_solutions(issue, project)
            context = (project or ProjectContext()).with_patterns(generator.existing_patterns(issue))
            run = EvolutionRun(
                issue=issue,
                templates=templates,
                project=context,
                config=self.config,
                calculator=self.calculator,
                validator=self.validator,
                progress_sink=progress_sink,
            )
            solutions = run.run()
            logger.info(
                f"Evolved {len(solutions)} solution(s) for {issue.type} "
                f"in {run.generation + 1} generation(s)"
            )
            return solutions
        except Exception as e:
            if run is not None:
                run.state = EvolutionState.FAILED
            logger.warning(f"Evolution failed for {issue.type} ({e}); using template solutions")
            return self._fallback(issue, generator, project, templates)

    def _fallback(
        self,
        issue: Issue,
        generator: SolutionSource,
        project: Optional[ProjectContext],
        templates: Optional[List[Solution]],
    ) -> List[Solution]:
        if templates is not None:
            return templates
        try:
            return generator.generate_solutions(issue, project)
        except Exception as e:
            logger.error(f"Template generation failed for {issue.type}: {e}")
            return []
