"""Tests for the code validator, mutation operators and evolutionary engine."""

import random
import re

import pytest

from code_evolution.analyzer import parse_code
from code_evolution.config import EvolutionConfig
from code_evolution.detectors import create_impact
from code_evolution.models import Issue, ProgressEventType, RiskLevel, Severity, Solution
from code_evolution.optimizer import (
    CodeValidator,
    EvolutionaryEngine,
    EvolutionRun,
    add_cache_guard,
    apply_edits,
    apply_random_mutation,
    mutate_query_options,
    rename_variable,
    statement_segments,
    swap_data_access_method,
    validate_code,
)
from code_evolution.tools import ProgressRecorder


LOAD_USERS = """async function loadUsers() {
  const users = await User.findAll({ where: { active: true } });
  return users;
}
"""

LOAD_ORDERS = """async function loadOrders(ids) {
  const orders = await Order.findAll({ where: { id: ids } });
  return orders;
}
"""


def make_issue():
    return Issue(
        id="n_plus_1_query-0123456789ab",
        type="n_plus_1_query",
        severity=Severity.HIGH,
        file_path="app.js",
        line_number=3,
        title="N+1 Query Detected",
        description="Query inside loop",
        before_snippet="for (const u of users) { await Order.findAll(); }",
        estimated_impact=create_impact(7, "test", 85, {"accessFamilies": ["Sequelize"]}),
    )


def make_solution(solution_type, code, minutes=15, risk=RiskLevel.LOW, rank=1):
    return Solution(
        id=f"sol-test-{solution_type}",
        issue_id="n_plus_1_query-0123456789ab",
        rank=rank,
        type=solution_type,
        code=code,
        fitness_score=0.0,
        reasoning="template",
        estimated_minutes=minutes,
        risk_level=risk,
    )


class StubGenerator:
    """Returns a fixed list of template solutions."""

    def __init__(self, solutions):
        self.solutions = solutions
        self.calls = 0

    def generate_solutions(self, issue, project=None):
        self.calls += 1
        return self.solutions

    def existing_patterns(self, issue):
        return set()


class RaisingGenerator:
    """Fails on every call."""

    def generate_solutions(self, issue, project=None):
        raise RuntimeError("catalog unavailable")

    def existing_patterns(self, issue):
        return set()


def two_templates():
    return [
        make_solution("eager_loading", LOAD_USERS, rank=1),
        make_solution("dataloader", LOAD_ORDERS, minutes=180, risk=RiskLevel.HIGH, rank=2),
    ]


class TestCodeValidator:
    """Tests for the acceptance gate."""

    def test_valid_code(self):
        """Given well-formed code, should accept it and return its tree."""
        # When
        result = CodeValidator().validate("const a = 1;\nconsole.log(a);\n")

        # Then
        assert result.is_valid
        assert result.errors == []
        assert result.warnings == []
        assert result.tree is not None

    def test_syntax_error_rejected(self):
        """Given code that does not parse, should reject it with a located error."""
        # When
        result = validate_code("function (\n")

        # Then
        assert not result.is_valid
        assert result.errors[0].startswith("Syntax error at ")
        assert result.tree is None

    def test_duplicate_let_rejected(self):
        """Given two let declarations of one name in a scope, should reject the code."""
        # When
        result = CodeValidator().validate("let a = 1;\nlet a = 2;\n")

        # Then
        assert not result.is_valid
        assert result.errors == ["Duplicate declaration 'a' (line 1 and line 2)"]

    def test_var_redeclaration_allowed(self):
        """Given a var declared twice, should accept the code."""
        assert CodeValidator().is_valid("var a = 1;\nvar a = 2;\n")

    def test_same_name_in_nested_scope_allowed(self):
        """Given a shadowing declaration in an inner block, should accept the code."""
        assert CodeValidator().is_valid("const a = 1;\nfunction f() {\n  const a = 2;\n  return a;\n}\n")

    def test_unreachable_code_is_warning(self):
        """Given a statement after return, should accept the code with a warning."""
        # When
        result = CodeValidator().validate("function f() {\n  return 1;\n  console.log('x');\n}\n")

        # Then
        assert result.is_valid
        assert result.warnings == ["Contains unreachable code (line 3)"]

    def test_hoisted_function_after_return_not_unreachable(self):
        """Given a function declaration after return, should not warn about unreachable code."""
        # When
        result = CodeValidator().validate("function f() {\n  return g();\n  function g() { return 1; }\n}\n")

        # Then
        assert result.is_valid
        assert result.warnings == []

    @pytest.mark.parametrize("code,error", [
        ("const x;\n", "Missing initializer in const declaration (line 1)"),
        ("break;\n", "Illegal break statement (line 1)"),
        ("continue;\n", "Illegal continue statement (line 1)"),
        ("return 1;\n", "Illegal return statement (line 1)"),
        ("function f() {\n  await g();\n}\n", "'await' outside an async function (line 2)"),
        ("switch (k) {\n  case 1:\n    continue;\n}\n", "Illegal continue statement (line 3)"),
        ("for (const x of xs) {\n  items.forEach(() => {\n    break;\n  });\n}\n", "Illegal break statement (line 3)"),
    ])
    def test_early_errors_rejected(self, code, error):
        """Given code that parses but a JavaScript engine refuses to run, should reject it."""
        # When
        result = CodeValidator().validate(code)

        # Then
        assert not result.is_valid
        assert error in result.errors

    def test_catch_parameter_redeclared_rejected(self):
        """Given a let in a catch body that reuses the catch parameter, should reject the code."""
        # When
        result = CodeValidator().validate("try {\n  run();\n} catch (e) {\n  let e = 1;\n}\n")

        # Then
        assert not result.is_valid
        assert result.errors == ["Duplicate declaration 'e' (line 3 and line 4)"]

    @pytest.mark.parametrize("code", [
        "try {\n  run();\n} catch (e) {\n  var e = 1;\n}\n",
        "while (ready) {\n  if (done) {\n    break;\n  }\n  continue;\n}\n",
        "switch (k) {\n  case 1:\n    break;\n}\n",
        "outer: for (const a of rows) {\n  for (const b of a) {\n    continue outer;\n  }\n}\n",
        "async function f() {\n  const g = async () => await h();\n  return await g();\n}\n",
        "do {\n  step();\n} while (pending());\n",
    ])
    def test_legal_jumps_and_declarations_accepted(self, code):
        """Given jumps, returns, awaits and catch declarations in valid positions, should accept the code."""
        assert CodeValidator().is_valid(code)

    def test_empty_block_is_warning(self):
        """Given an empty block, should accept the code with a warning."""
        # When
        result = CodeValidator().validate("if (ready) {}\n")

        # Then
        assert result.is_valid
        assert result.warnings == ["Contains 1 empty block(s)"]


class TestMutationOperators:
    """Tests for the individual mutation operators."""

    def test_apply_edits_in_any_order(self):
        """Given non-overlapping edits in any order, should splice all of them."""
        # When
        result = apply_edits(b"hello big world", [(0, 5, "bye"), (10, 15, "moon")])

        # Then
        assert result == "bye big moon"

    def test_rename_variable_updates_references(self):
        """Given a declared variable, should rename it everywhere it is used."""
        # Given
        code = "const total = 1;\nconsole.log(total + total);\n"

        # When
        result = rename_variable(code, random.Random(1))

        # Then
        assert result.success
        new_name = re.search(r"to '(\w+)'", result.description).group(1)
        assert result.description.startswith("Renamed variable 'total' to ")
        assert re.search(r"\btotal\b", result.code) is None
        assert result.code.count(new_name) == 3

    def test_rename_keeps_shorthand_property_key(self):
        """Given a variable used as shorthand property, should keep the property key."""
        # Given
        code = "const user = load();\nsave({ user });\n"

        # When
        result = rename_variable(code, random.Random(7))

        # Then
        assert result.success
        new_name = re.search(r"to '(\w+)'", result.description).group(1)
        assert f"{{ user: {new_name} }}" in result.code

    def test_rename_without_variables_declines(self):
        """Given code that declares no variables, should decline and keep the code."""
        # Given
        code = "function f() {}\n"

        # When
        result = rename_variable(code, random.Random(0))

        # Then
        assert not result.success
        assert result.code == code

    def test_query_options_adds_selection_or_pagination(self):
        """Given a Sequelize query with options, should add attributes or a limit."""
        # When
        result = mutate_query_options(LOAD_USERS, random.Random(3))

        # Then
        assert result.success
        assert result.description.startswith("Modified sequelize findAll query parameters: ")
        assert "attributes: ['id', 'name']" in result.code or re.search(r"limit: \d+", result.code)

    def test_query_options_removes_include(self):
        """Given a Prisma query that already selects and paginates, should drop an include entry."""
        # Given
        code = (
            "async function load() {\n"
            "  return prisma.post.findMany({ select: { id: true }, take: 10, include: { author: true } });\n"
            "}\n"
        )

        # When
        result = mutate_query_options(code, random.Random(0))

        # Then
        assert result.success
        assert result.description == "Modified prisma findMany query parameters: removed one include entry"
        assert "author" not in result.code

    def test_query_options_without_query_declines(self):
        """Given code with no data-access call, should decline."""
        # When
        result = mutate_query_options("const a = [1, 2];\n", random.Random(0))

        # Then
        assert not result.success

    def test_swap_method_within_family(self):
        """Given a Sequelize findOne, should swap it for findAll."""
        # Given
        code = "async function load(id) {\n  return User.findOne({ where: { id } });\n}\n"

        # When
        result = swap_data_access_method(code, random.Random(0))

        # Then
        assert result.success
        assert "User.findAll(" in result.code
        assert result.description == "Changed sequelize method from 'findOne' to 'findAll'"

    def test_cache_guard_added_once(self):
        """Given an async function, should add one cache guard and decline a second one."""
        # Given
        code = "async function load(id) {\n  const row = await db.get(id);\n  return row;\n}\n"

        # When
        first = add_cache_guard(code, random.Random(0))
        second = add_cache_guard(first.code, random.Random(0))

        # Then
        assert first.success
        assert first.description == "Added caching optimization"
        assert first.code.count("if (cache.has(key))") == 1
        assert CodeValidator().is_valid(first.code)
        assert not second.success

    def test_cache_guard_skips_sync_functions(self):
        """Given only synchronous functions, should decline."""
        # When
        result = add_cache_guard("function f() {\n  return 1;\n}\n", random.Random(0))

        # Then
        assert not result.success

    def test_random_mutation_reports_failure(self):
        """Given code no operator can change, should return the input with a failure."""
        # Given
        code = "// nothing to see\n"

        # When
        result = apply_random_mutation(code, random.Random(0))

        # Then
        assert not result.success
        assert result.code == code
        assert result.description == "All mutation attempts failed"

    def test_random_mutation_survives_operator_errors(self):
        """Given an operator that raises, should fall through to the next one."""
        # Given
        def broken(code, rng):
            raise RuntimeError("boom")

        # When
        result = apply_random_mutation(LOAD_USERS, random.Random(0), [broken, swap_data_access_method])

        # Then
        assert result.success
        assert "User.findOne(" in result.code


class TestStatementSegments:
    """Tests for crossover segmentation."""

    def test_comments_attach_to_statements(self):
        """Given leading and trailing comments, should keep them with their statements."""
        # Given
        parsed = parse_code("// first\nconst a = 1;\n\nfunction f() {}\n// tail\n")

        # When
        segments = statement_segments(parsed)

        # Then
        assert segments == ["// first\nconst a = 1;", "function f() {}\n// tail"]


class TestEvolutionaryEngine:
    """Tests for the optimizer's contract with its callers."""

    def test_disabled_returns_generator_output(self):
        """Given a disabled engine, should return the generator's solutions unchanged."""
        # Given
        generator = StubGenerator(two_templates())
        engine = EvolutionaryEngine(EvolutionConfig(enabled=False))

        # When
        solutions = engine.evolve(make_issue(), generator)

        # Then
        assert solutions is generator.solutions
        assert [s.type for s in solutions] == ["eager_loading", "dataloader"]

    def test_enabled_returns_ranked_valid_solutions(self):
        """Given an enabled engine, should return valid, ranked evolved solutions."""
        # Given
        config = EvolutionConfig(enabled=True, population_size=6, max_generations=3, seed=42)
        engine = EvolutionaryEngine(config)
        issue = make_issue()

        # When
        solutions = engine.evolve(issue, StubGenerator(two_templates()))

        # Then
        assert 1 <= len(solutions) <= config.max_solutions
        assert [s.rank for s in solutions] == list(range(1, len(solutions) + 1))
        scores = [s.fitness_score for s in solutions]
        assert scores == sorted(scores, reverse=True)
        validator = CodeValidator()
        for solution in solutions:
            assert solution.type == "evolved"
            assert solution.id == f"sol-{issue.id}-evolved-{solution.rank}"
            assert solution.issue_id == issue.id
            assert solution.reasoning.startswith("Evolved solution (generation ")
            assert validator.is_valid(solution.code)
        assert len({s.code for s in solutions}) == len(solutions)

    def test_same_seed_same_result(self):
        """Given the same seed twice, should produce the same solutions."""
        # Given
        config = EvolutionConfig(enabled=True, population_size=8, max_generations=4, seed=7)

        # When
        first = EvolutionaryEngine(config).evolve(make_issue(), StubGenerator(two_templates()))
        second = EvolutionaryEngine(config).evolve(make_issue(), StubGenerator(two_templates()))

        # Then
        assert [(s.code, s.fitness_score) for s in first] == [(s.code, s.fitness_score) for s in second]

    def test_progress_events(self):
        """Given a progress sink, should receive start, per-generation progress and completion."""
        # Given
        config = EvolutionConfig(enabled=True, population_size=6, max_generations=3, seed=1)
        recorder = ProgressRecorder()

        # When
        EvolutionaryEngine(config).evolve(make_issue(), StubGenerator(two_templates()), progress_sink=recorder)

        # Then
        types = [e.type for e in recorder.values]
        assert types[0] == ProgressEventType.START
        assert types[-1] == ProgressEventType.COMPLETE
        progress = [e for e in recorder.values if e.type == ProgressEventType.PROGRESS]
        assert 1 <= len(progress) <= config.max_generations
        assert progress[0].to_dict()["generation"] == 1
        assert recorder.values[-1].to_dict()["bestSolution"]["code"]

    def test_failing_sink_does_not_stop_run(self):
        """Given a sink that raises, should still return evolved solutions."""
        # Given
        def broken_sink(event):
            raise RuntimeError("transport closed")

        config = EvolutionConfig(enabled=True, population_size=4, max_generations=2, seed=3)

        # When
        solutions = EvolutionaryEngine(config).evolve(
            make_issue(), StubGenerator(two_templates()), progress_sink=broken_sink
        )

        # Then
        assert solutions
        assert all(s.type == "evolved" for s in solutions)

    def test_time_budget_stops_between_generations(self):
        """Given a zero time budget, should stop after the first generation with a timeout event."""
        # Given
        config = EvolutionConfig(
            enabled=True, population_size=6, max_generations=10, seed=5, time_budget_seconds=0.0
        )
        recorder = ProgressRecorder()

        # When
        solutions = EvolutionaryEngine(config).evolve(
            make_issue(), StubGenerator(two_templates()), progress_sink=recorder
        )

        # Then
        types = [e.type for e in recorder.values]
        assert ProgressEventType.TIMEOUT in types
        assert types.count(ProgressEventType.PROGRESS) == 1
        assert solutions

    def test_invalid_templates_fall_back(self):
        """Given templates that all fail validation, should return the templates unchanged."""
        # Given
        generator = StubGenerator([make_solution("eager_loading", "function (")])
        engine = EvolutionaryEngine(EvolutionConfig(enabled=True, seed=1))

        # When
        solutions = engine.evolve(make_issue(), generator)

        # Then
        assert solutions is generator.solutions

    def test_generator_failure_returns_empty(self):
        """Given a generator that raises, should return no solutions instead of raising."""
        # Given
        engine = EvolutionaryEngine(EvolutionConfig(enabled=True, seed=1))

        # When
        solutions = engine.evolve(make_issue(), RaisingGenerator())

        # Then
        assert solutions == []

    def test_every_generation_is_valid(self, monkeypatch):
        """Given an enabled run, every candidate of every generation should pass the validator."""
        # Given
        evaluated = []
        original_evaluate = EvolutionRun.evaluate

        def recording_evaluate(run, candidates):
            evaluated.append((run.generation, [c.code for c in candidates]))
            original_evaluate(run, candidates)

        monkeypatch.setattr(EvolutionRun, "evaluate", recording_evaluate)
        config = EvolutionConfig(
            enabled=True, population_size=8, max_generations=4, mutation_rate=1.0,
            convergence_threshold=0.0, seed=11,
        )
        validator = CodeValidator()

        # When
        EvolutionaryEngine(config).evolve(make_issue(), StubGenerator(two_templates()))

        # Then
        assert {generation for generation, _ in evaluated} == {0, 1, 2, 3}
        for generation, codes in evaluated:
            for code in codes:
                result = validator.validate(code)
                assert result.is_valid, (generation, result.errors, code)

    def test_converges_when_spread_is_below_threshold(self):
        """Given a threshold no population spread can reach, should stop after the first generation."""
        # Given
        config = EvolutionConfig(
            enabled=True, population_size=6, max_generations=10, convergence_threshold=1.0, seed=9
        )
        recorder = ProgressRecorder()

        # When
        solutions = EvolutionaryEngine(config).evolve(
            make_issue(), StubGenerator(two_templates()), progress_sink=recorder
        )

        # Then
        types = [e.type for e in recorder.values]
        assert types.count(ProgressEventType.PROGRESS) == 1
        assert ProgressEventType.TIMEOUT not in types
        assert solutions

    def test_zero_threshold_runs_to_generation_limit(self):
        """Given a zero convergence threshold, should run exactly max_generations generations."""
        # Given
        config = EvolutionConfig(
            enabled=True, population_size=6, max_generations=3, convergence_threshold=0.0, seed=9
        )
        recorder = ProgressRecorder()

        # When
        EvolutionaryEngine(config).evolve(make_issue(), StubGenerator(two_templates()), progress_sink=recorder)

        # Then
        progress = [e for e in recorder.values if e.type == ProgressEventType.PROGRESS]
        assert len(progress) == config.max_generations
